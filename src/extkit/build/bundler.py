"""
Bundler producing standalone extension archives.

The pipeline treats the bundler as a black box behind the :class:`Bundler`
protocol: given a build target and options it writes one or more artifacts
to an output filesystem, or fails with a list of diagnostics.

:class:`ZipappBundler` is the default implementation. It packs the entry
package, the local modules reachable from it, and (optionally) the
third-party packages it imports into a single zip archive that can be put
on ``sys.path`` and imported without anything else installed, apart from
the host-provided ``externals``.
"""

import ast
import hashlib
import importlib.machinery
import importlib.util
import io
import json
import logging
import os
import re
import sys
import threading
import zipfile
from dataclasses import dataclass
from pathlib import Path, PurePath
from typing import Dict, Iterator, List, Optional, Protocol, Sequence, Set, Tuple

from extkit.build.discovery import BuildTarget

logger = logging.getLogger(__name__)

# Archive member describing the bundle
BUNDLE_HEADER = "__bundle__.json"

# Fixed timestamp so identical inputs give identical archives
_ZIP_EPOCH = (1980, 1, 1, 0, 0, 0)

_SKIP_DIRS = {"__pycache__", ".git", ".mypy_cache", ".pytest_cache"}
_SKIP_SUFFIXES = {".pyc", ".pyo"}

ImportRecord = Tuple[int, Optional[str], Tuple[str, ...]]


@dataclass(frozen=True)
class Diagnostic:
    """A problem reported by the bundler."""

    message: str
    path: Optional[str] = None
    hint: Optional[str] = None

    def __str__(self) -> str:
        text = f"{self.path}: {self.message}" if self.path else self.message
        if self.hint:
            text += f" (hint: {self.hint})"
        return text


class BundleFailed(Exception):
    """Raised by a bundler when a target cannot be bundled."""

    def __init__(self, diagnostics: Sequence[Diagnostic]):
        self.diagnostics = list(diagnostics)
        super().__init__("; ".join(str(d) for d in self.diagnostics))


@dataclass(frozen=True)
class Artifact:
    """A file produced by the bundler."""

    name: str
    path: Path
    size: int


@dataclass(frozen=True)
class BundleOptions:
    """
    Bundler configuration for one target.

    Attributes:
        dist_dir: Output directory
        dist_entry: Output file name
        cache_dir: Directory for the bundler's internal cache (None disables it)
        output_format: Archive format, only "zipapp" is supported
        is_library: Library bundles have no ``__main__.py``
        scope_hoist: Pack only modules reachable from the entry
        source_maps: Write a ``<dist_entry>.map`` file next to the bundle
        context: Runtime the bundle targets, only "cpython" is supported
        include_dependencies: Vendor reachable third-party packages
        externals: Top-level modules provided by the host, never vendored
        export_name: Module attribute holding the extension class
        search_paths: Directories searched for local absolute imports
        entry_filenames: Entry file names of build targets; a root target
                         leaves out subdirectories holding one
    """

    dist_dir: Path
    dist_entry: str
    cache_dir: Optional[Path] = None
    output_format: str = "zipapp"
    is_library: bool = True
    scope_hoist: bool = True
    source_maps: bool = False
    context: str = "cpython"
    include_dependencies: bool = True
    externals: Tuple[str, ...] = ("extkit",)
    export_name: str = "default"
    search_paths: Tuple[Path, ...] = ()
    entry_filenames: Tuple[str, ...] = ("__init__.py",)


class OutputFS(Protocol):
    """Filesystem the bundler writes artifacts to."""

    def write_bytes(self, path: Path, data: bytes) -> None:
        ...

    def read_bytes(self, path: Path) -> bytes:
        ...

    def exists(self, path: Path) -> bool:
        ...

    def listdir(self, path: Path) -> List[str]:
        ...

    def clear(self) -> None:
        ...


class DiskOutput:
    """Writes artifacts to the real filesystem."""

    def write_bytes(self, path: Path, data: bytes) -> None:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = path.with_name(f".{path.name}.tmp")
        tmp_path.write_bytes(data)
        os.replace(tmp_path, path)

    def read_bytes(self, path: Path) -> bytes:
        return Path(path).read_bytes()

    def exists(self, path: Path) -> bool:
        return Path(path).exists()

    def listdir(self, path: Path) -> List[str]:
        return sorted(os.listdir(path))

    def clear(self) -> None:
        pass


class MemoryOutput:
    """Keeps artifacts in memory, nothing touches the disk."""

    def __init__(self) -> None:
        self._files: Dict[str, bytes] = {}
        self._lock = threading.Lock()

    @staticmethod
    def _key(path: Path) -> str:
        return PurePath(path).as_posix()

    def write_bytes(self, path: Path, data: bytes) -> None:
        with self._lock:
            self._files[self._key(path)] = bytes(data)

    def read_bytes(self, path: Path) -> bytes:
        with self._lock:
            try:
                return self._files[self._key(path)]
            except KeyError:
                raise FileNotFoundError(str(path)) from None

    def exists(self, path: Path) -> bool:
        with self._lock:
            return self._key(path) in self._files

    def listdir(self, path: Path) -> List[str]:
        prefix = self._key(path).rstrip("/") + "/"
        with self._lock:
            return sorted(
                key[len(prefix):]
                for key in self._files
                if key.startswith(prefix) and "/" not in key[len(prefix):]
            )

    def clear(self) -> None:
        with self._lock:
            self._files.clear()

    def __len__(self) -> int:
        return len(self._files)


class Bundler(Protocol):
    """Protocol for bundlers used by the compiler adapter."""

    def bundle(
        self, target: BuildTarget, options: BundleOptions, output: OutputFS
    ) -> List[Artifact]:
        """
        Bundle a build target.

        Returns:
            Descriptors of the written artifacts

        Raises:
            BundleFailed: With diagnostics describing why bundling failed
        """
        ...


def package_name(logical_name: str) -> str:
    """Turn a logical module name into an importable package name."""
    name = re.sub(r"\W", "_", logical_name)
    if not name or name[0].isdigit():
        name = f"_{name}"
    return name


class ImportScanCache:
    """
    Import lists of source files keyed by content hash.

    Stored as one JSON file per build target in the cache directory.
    Entries not used by the latest bundle of the target are dropped on
    save. Unreadable cache files are ignored and rewritten.
    """

    FILENAME = "imports-v1-{name}.json"

    def __init__(self, cache_dir: Optional[Path], name: str = "default") -> None:
        self.path = Path(cache_dir) / self.FILENAME.format(name=name) if cache_dir else None
        self._entries: Optional[Dict[str, list]] = None
        self._used: Set[str] = set()
        self._dirty = False
        self._lock = threading.Lock()

    def _load(self) -> Dict[str, list]:
        if self._entries is None:
            self._entries = {}
            if self.path and self.path.exists():
                try:
                    self._entries = json.loads(self.path.read_text(encoding="utf-8"))
                except (OSError, ValueError) as e:
                    logger.debug(f"Ignoring unreadable import cache {self.path}: {e}")
        return self._entries

    def get(self, digest: str) -> Optional[List[ImportRecord]]:
        with self._lock:
            records = self._load().get(digest)
            if records is not None:
                self._used.add(digest)
        if records is None:
            return None
        return [(level, module, tuple(names)) for level, module, names in records]

    def put(self, digest: str, records: List[ImportRecord]) -> None:
        with self._lock:
            self._load()[digest] = [[lvl, mod, list(names)] for lvl, mod, names in records]
            self._used.add(digest)
            self._dirty = True

    def save(self) -> None:
        if not self.path:
            return
        with self._lock:
            if self._entries is None:
                return
            stale = set(self._entries) - self._used
            for digest in stale:
                del self._entries[digest]
            if not self._dirty and not stale:
                return
            try:
                DiskOutput().write_bytes(self.path, json.dumps(self._entries).encode("utf-8"))
                self._dirty = False
            except OSError as e:
                logger.warning(f"Could not write import cache {self.path}: {e}")


def scan_imports(source: bytes, filename: str) -> List[ImportRecord]:
    """
    List the import statements of a module.

    Returns:
        ``(level, module, names)`` records; ``names`` is empty for plain
        ``import`` statements

    Raises:
        SyntaxError: If the source does not parse
    """
    tree = ast.parse(source, filename=filename)
    records: List[ImportRecord] = []
    for node in ast.walk(tree):
        if isinstance(node, ast.Import):
            for alias in node.names:
                records.append((0, alias.name, ()))
        elif isinstance(node, ast.ImportFrom):
            names = tuple(alias.name for alias in node.names if alias.name != "*")
            records.append((node.level, node.module, names))
    return records


def _walk_files(root: Path, skip_dirs: Set[Path]) -> Iterator[Path]:
    for dirpath, dirnames, filenames in os.walk(root):
        current = Path(dirpath)
        dirnames[:] = sorted(
            d for d in dirnames if d not in _SKIP_DIRS and current / d not in skip_dirs
        )
        for filename in sorted(filenames):
            path = current / filename
            if path.suffix not in _SKIP_SUFFIXES:
                yield path


class _BundlePlan:
    """Collects the archive members of one bundle by walking imports."""

    def __init__(
        self,
        target: BuildTarget,
        options: BundleOptions,
        cache: ImportScanCache,
    ) -> None:
        self.target = target
        self.options = options
        self.cache = cache
        self.package = package_name(target.name)
        self.is_package_entry = target.entry.name == "__init__.py"
        self.members: Dict[str, Path] = {}
        self.vendored: Set[str] = set()
        self.diagnostics: List[Diagnostic] = []
        self._visited: Set[str] = set()
        self._scanned_vendor_files: Set[Path] = set()
        self._stdlib = set(sys.stdlib_module_names) | set(sys.builtin_module_names)
        self._skip_dirs: Set[Path] = set()
        if target.is_root:
            # Sibling targets living under the root are bundled separately
            self._skip_dirs = {
                child
                for child in target.package_dir.iterdir()
                if child.is_dir()
                and any((child / filename).is_file() for filename in options.entry_filenames)
            }

    def collect(self) -> Dict[str, Path]:
        self._visit(self.package)

        if self.is_package_entry:
            package_dir = self.target.package_dir
            for path in _walk_files(package_dir, self._skip_dirs):
                rel = path.relative_to(package_dir)
                if path.suffix == ".py":
                    if not self.options.scope_hoist:
                        self._visit_file(self._module_for(rel), path)
                else:
                    self.members[f"{self.package}/{rel.as_posix()}"] = path

        if self.diagnostics:
            raise BundleFailed(self.diagnostics)
        return self.members

    def _module_for(self, rel: PurePath) -> str:
        parts = list(rel.with_suffix("").parts)
        if parts[-1] == "__init__":
            parts.pop()
        return ".".join([self.package, *parts])

    def _locate(self, module: str) -> Optional[Tuple[Path, bool]]:
        """Find the source file of a local module, with its package flag."""
        parts = module.split(".")
        top, rest = parts[0], parts[1:]

        if top == self.package:
            if not self.is_package_entry:
                return (self.target.entry, True) if not rest else None
            base = self.target.package_dir
        else:
            base = None
            for search_path in self.options.search_paths:
                if (search_path / top / "__init__.py").is_file():
                    base = search_path / top
                    break
                if (search_path / f"{top}.py").is_file():
                    return (search_path / f"{top}.py", False) if not rest else None
            if base is None:
                return None

        current = base
        for index, part in enumerate(rest):
            if (current / part / "__init__.py").is_file():
                current = current / part
            elif index == len(rest) - 1 and (current / f"{part}.py").is_file():
                return current / f"{part}.py", False
            else:
                return None
        return current / "__init__.py", True

    def _is_local(self, top: str) -> bool:
        return self._locate(top) is not None

    def _visit(self, module: str) -> bool:
        """Add a local module and its parent packages. Returns False if missing."""
        parts = module.split(".")
        for index in range(1, len(parts) + 1):
            name = ".".join(parts[:index])
            if name in self._visited:
                continue
            located = self._locate(name)
            if located is None:
                return False
            self._visit_file(name, located[0], located[1])
        return True

    def _visit_file(self, module: str, path: Path, is_package: Optional[bool] = None) -> None:
        if module in self._visited:
            return
        self._visited.add(module)
        if is_package is None:
            is_package = path.name == "__init__.py"

        arcname = module.replace(".", "/") + ("/__init__.py" if is_package else ".py")
        self.members[arcname] = path

        records = self._imports_of(path)
        if records is None:
            return
        current_package = module if is_package else module.rpartition(".")[0]
        for level, name, names in records:
            if level:
                self._visit_relative(path, current_package, level, name, names)
            elif name:
                self._visit_absolute(path, name, names)

    def _imports_of(self, path: Path, strict: bool = True) -> Optional[List[ImportRecord]]:
        try:
            source = path.read_bytes()
        except OSError as e:
            self.diagnostics.append(Diagnostic(f"Cannot read source: {e}", str(path)))
            return None

        digest = hashlib.sha256(source).hexdigest()
        records = self.cache.get(digest)
        if records is not None:
            return records
        try:
            records = scan_imports(source, str(path))
        except SyntaxError as e:
            if strict:
                self.diagnostics.append(
                    Diagnostic(f"Syntax error at line {e.lineno}: {e.msg}", str(path))
                )
            else:
                logger.debug(f"Skipping import scan of {path}: {e}")
            return None
        self.cache.put(digest, records)
        return records

    def _visit_relative(
        self,
        path: Path,
        current_package: str,
        level: int,
        name: Optional[str],
        names: Tuple[str, ...],
    ) -> None:
        base = current_package.split(".") if current_package else []
        if level - 1 >= len(base):
            self.diagnostics.append(
                Diagnostic(
                    "Relative import beyond the top-level package",
                    str(path),
                    hint="use an absolute import or move the module into the package",
                )
            )
            return
        base = base[: len(base) - (level - 1)]
        module = ".".join(base + ([name] if name else []))
        if not self._visit(module):
            self.diagnostics.append(Diagnostic(f"Cannot resolve import '{module}'", str(path)))
            return
        for sub in names:
            self._visit_optional(f"{module}.{sub}")

    def _visit_absolute(self, path: Path, name: str, names: Tuple[str, ...]) -> None:
        top = name.split(".")[0]
        if self._is_local(top):
            if not self._visit(name):
                self.diagnostics.append(Diagnostic(f"Cannot resolve import '{name}'", str(path)))
                return
            for sub in names:
                self._visit_optional(f"{name}.{sub}")
            return
        self._require_dependency(top, path)

    def _visit_optional(self, module: str) -> None:
        # "from pkg import name" may name an attribute rather than a submodule
        if module not in self._visited and self._locate(module) is not None:
            self._visit(module)

    def _require_dependency(self, top: str, importer: Path) -> None:
        if top in self._stdlib or top in self.options.externals or top in self.vendored:
            return
        if not self.options.include_dependencies:
            return

        try:
            spec = importlib.util.find_spec(top)
        except (ImportError, ValueError) as e:
            logger.warning(f"Cannot resolve dependency '{top}' imported by {importer}: {e}")
            return
        if spec is None:
            # Optional imports guarded by try/except are common
            logger.warning(f"Dependency '{top}' imported by {importer} is not installed")
            return

        self.vendored.add(top)
        if spec.submodule_search_locations:
            for location in spec.submodule_search_locations:
                self._vendor_tree(top, Path(location))
        elif spec.origin and os.path.isfile(spec.origin):
            self._vendor_file(f"{top}{Path(spec.origin).suffix}", Path(spec.origin), top)

    def _vendor_tree(self, top: str, location: Path) -> None:
        for path in _walk_files(location, set()):
            rel = path.relative_to(location.parent).as_posix()
            self._vendor_file(rel, path, top)

    def _vendor_file(self, arcname: str, path: Path, top: str) -> None:
        if any(arcname.endswith(suffix) for suffix in importlib.machinery.EXTENSION_SUFFIXES):
            self.diagnostics.append(
                Diagnostic(
                    f"Dependency '{top}' contains a compiled extension module",
                    str(path),
                    hint=f"add '{top}' to externals and provide it from the host",
                )
            )
            return
        self.members[arcname] = path
        if path.suffix == ".py" and path not in self._scanned_vendor_files:
            self._scanned_vendor_files.add(path)
            for level, name, _names in self._imports_of(path, strict=False) or []:
                if not level and name:
                    top_name = name.split(".")[0]
                    if top_name != top:
                        self._require_dependency(top_name, path)


class ZipappBundler:
    """
    Bundle extensions into single-file zip archives.

    Example:
        >>> bundler = ZipappBundler()
        >>> options = BundleOptions(dist_dir=Path("dist"), dist_entry="example.pyz")
        >>> bundler.bundle(target, options, DiskOutput())
    """

    SUPPORTED_FORMATS = ("zipapp",)
    SUPPORTED_CONTEXTS = ("cpython",)

    def bundle(
        self, target: BuildTarget, options: BundleOptions, output: OutputFS
    ) -> List[Artifact]:
        problems = []
        if options.output_format not in self.SUPPORTED_FORMATS:
            problems.append(Diagnostic(f"Unsupported output format '{options.output_format}'"))
        if options.context not in self.SUPPORTED_CONTEXTS:
            problems.append(Diagnostic(f"Unsupported execution context '{options.context}'"))
        if problems:
            raise BundleFailed(problems)

        cache = ImportScanCache(options.cache_dir, package_name(target.name))
        plan = _BundlePlan(target, options, cache)
        try:
            members = plan.collect()
        finally:
            cache.save()

        data = self._write_archive(plan, members, options)
        bundle_path = Path(options.dist_dir) / options.dist_entry
        output.write_bytes(bundle_path, data)
        artifacts = [Artifact(name=options.dist_entry, path=bundle_path, size=len(data))]

        if options.source_maps:
            map_path = bundle_path.with_name(f"{options.dist_entry}.map")
            source_map = {
                "version": 1,
                "file": options.dist_entry,
                "sources": {arcname: str(path) for arcname, path in sorted(members.items())},
            }
            map_data = json.dumps(source_map, indent=2).encode("utf-8")
            output.write_bytes(map_path, map_data)
            artifacts.append(Artifact(name=map_path.name, path=map_path, size=len(map_data)))

        logger.debug(
            f"Bundled {target.name}: {len(members)} file(s), "
            f"{len(plan.vendored)} vendored package(s)"
        )
        return artifacts

    @staticmethod
    def _write_archive(
        plan: _BundlePlan, members: Dict[str, Path], options: BundleOptions
    ) -> bytes:
        header = {
            "name": plan.target.name,
            "package": plan.package,
            "export": options.export_name,
            "format": options.output_format,
            "context": options.context,
            "python": f"{sys.version_info.major}.{sys.version_info.minor}",
            "library": options.is_library,
            "vendored": sorted(plan.vendored),
        }

        buffer = io.BytesIO()
        if not options.is_library:
            buffer.write(b"#!/usr/bin/env python3\n")

        with zipfile.ZipFile(buffer, "w") as archive:

            def add(arcname: str, data: bytes) -> None:
                info = zipfile.ZipInfo(arcname, date_time=_ZIP_EPOCH)
                info.compress_type = zipfile.ZIP_DEFLATED
                archive.writestr(info, data)

            add(BUNDLE_HEADER, json.dumps(header, sort_keys=True).encode("utf-8"))
            for arcname in sorted(members):
                try:
                    add(arcname, members[arcname].read_bytes())
                except OSError as e:
                    raise BundleFailed(
                        [Diagnostic(f"Cannot read source: {e}", str(members[arcname]))]
                    ) from e
            if not options.is_library:
                add(
                    "__main__.py",
                    f"import runpy\nrunpy.run_module({plan.package!r}, run_name='__main__')\n".encode(),
                )

        return buffer.getvalue()


def read_bundle_header(archive: zipfile.ZipFile) -> Dict[str, object]:
    """
    Read the header of an opened bundle.

    Raises:
        KeyError: If the archive has no header
        ValueError: If the header is not valid JSON
    """
    return json.loads(archive.read(BUNDLE_HEADER).decode("utf-8"))
