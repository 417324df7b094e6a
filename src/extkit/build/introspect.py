"""
Metadata introspection of compiled artifacts.

An artifact is loaded by an :class:`ArtifactLoader`, which constructs the
bundle's default export and hands back a :class:`MetadataSource`. The
:class:`Introspector` only talks to that interface, so the loading strategy
can change without touching the catalog code.

Run as ``python -m extkit.build.introspect <artifact>`` to print the
metadata of an artifact as JSON; :class:`SubprocessLoader` runs the same
entry point in a child interpreter.
"""

import asyncio
import importlib.util
import json
import logging
import sys
import zipfile
import zipimport
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Protocol

from pydantic import ValidationError

from extkit.build.bundler import read_bundle_header
from extkit.exceptions import IntrospectionError
from extkit.extension import REQUIRED_FIELDS, MetadataSource
from extkit.models.source import ExtensionMetadata

logger = logging.getLogger(__name__)


def resolve_artifact(artifact: Path | str) -> Path:
    """
    Fully qualified location of an artifact.

    Import machinery caches by path string, so relative paths would resolve
    differently depending on the working directory.
    """
    return Path(artifact).expanduser().resolve()


class InstanceMetadataSource:
    """Reads the catalog fields off a constructed extension instance."""

    def __init__(self, instance: Any) -> None:
        self.instance = instance

    def describe(self) -> ExtensionMetadata:
        missing = [name for name in REQUIRED_FIELDS if not hasattr(self.instance, name)]
        if missing:
            raise ValueError(f"missing required field(s): {', '.join(missing)}")
        return ExtensionMetadata(
            **{name: getattr(self.instance, name) for name in REQUIRED_FIELDS}
        )


class StaticMetadataSource:
    """Metadata already extracted elsewhere, e.g. by a child process."""

    def __init__(self, data: Dict[str, Any]) -> None:
        self.data = data

    def describe(self) -> ExtensionMetadata:
        return ExtensionMetadata(**self.data)


class ArtifactLoader(Protocol):
    """Strategy for loading an artifact and constructing its export."""

    async def load(self, artifact: Path) -> MetadataSource:
        """
        Load an artifact.

        Raises:
            Exception: Any failure to load or construct the export
        """
        ...


@contextmanager
def _isolated_import(location: Path, package: str) -> Iterator[zipimport.zipimporter]:
    """
    Make an archive importable for the duration of the block.

    Modules imported inside the block are removed from ``sys.modules``
    afterwards and any module they shadowed is restored.
    """
    path_entry = str(location)
    importer = zipimport.zipimporter(path_entry)
    # The archive may have been rebuilt since it was last imported
    importer.invalidate_caches()

    before = set(sys.modules)
    shadowed = {
        name: module
        for name, module in sys.modules.items()
        if name == package or name.startswith(f"{package}.")
    }
    for name in shadowed:
        del sys.modules[name]

    sys.path.insert(0, path_entry)
    sys.path_importer_cache[path_entry] = importer
    try:
        yield importer
    finally:
        if path_entry in sys.path:
            sys.path.remove(path_entry)
        sys.path_importer_cache.pop(path_entry, None)
        for name in set(sys.modules) - before:
            sys.modules.pop(name, None)
        sys.modules.update(shadowed)


class ZipImportLoader:
    """Loads artifacts into the running interpreter."""

    async def load(self, artifact: Path) -> MetadataSource:
        return await asyncio.to_thread(self.load_sync, artifact)

    def load_sync(self, artifact: Path) -> MetadataSource:
        location = resolve_artifact(artifact)
        with zipfile.ZipFile(location) as archive:
            try:
                header = read_bundle_header(archive)
            except KeyError:
                raise ValueError("not a bundle (missing header)") from None

        package = str(header["package"])
        export = str(header.get("export", "default"))

        with _isolated_import(location, package) as importer:
            spec = importer.find_spec(package)
            if spec is None or spec.loader is None:
                raise ValueError(f"bundle does not contain package '{package}'")
            module = importlib.util.module_from_spec(spec)
            sys.modules[package] = module
            spec.loader.exec_module(module)

            factory = getattr(module, export, None)
            if factory is None:
                raise ValueError(f"package '{package}' has no '{export}' export")
            if not callable(factory):
                raise ValueError(f"'{export}' export of '{package}' is not constructible")
            instance = factory()

        return InstanceMetadataSource(instance)


# Child interpreter entry point; the artifact path is its only argument
_CHILD_MAIN = "import sys; from extkit.build.introspect import main; sys.exit(main())"


class SubprocessLoader:
    """
    Loads artifacts in a separate interpreter.

    Keeps extension code out of the pipeline process. The child prints the
    metadata as JSON on standard output.
    """

    def __init__(self, python: Optional[str] = None) -> None:
        self.python = python or sys.executable

    async def load(self, artifact: Path) -> MetadataSource:
        location = resolve_artifact(artifact)
        process = await asyncio.create_subprocess_exec(
            self.python,
            "-c",
            _CHILD_MAIN,
            str(location),
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        stdout, stderr = await process.communicate()
        if process.returncode != 0:
            message = stderr.decode("utf-8", errors="replace").strip()
            raise RuntimeError(message or f"introspection exited with status {process.returncode}")
        return StaticMetadataSource(json.loads(stdout))


def _format_validation_error(error: ValidationError) -> str:
    problems = []
    for err in error.errors():
        location = ".".join(str(part) for part in err["loc"])
        problems.append(f"{location}: {err['msg']}" if location else err["msg"])
    return "invalid metadata: " + "; ".join(problems)


class Introspector:
    """
    Recover the catalog metadata of compiled artifacts.

    Args:
        loader: Loading strategy (default: in-process zipimport)
    """

    def __init__(self, loader: Optional[ArtifactLoader] = None) -> None:
        self.loader: ArtifactLoader = loader or ZipImportLoader()

    async def describe(self, artifact: Path) -> ExtensionMetadata:
        """
        Describe an artifact.

        Raises:
            IntrospectionError: If the artifact cannot be loaded, its export
                                cannot be constructed, or a field is missing
                                or invalid
        """
        try:
            source = await self.loader.load(Path(artifact))
            metadata = source.describe()
        except IntrospectionError:
            raise
        except ValidationError as e:
            raise IntrospectionError(artifact, _format_validation_error(e)) from e
        except Exception as e:
            raise IntrospectionError(artifact, f"{type(e).__name__}: {e}") from e
        except SystemExit as e:
            raise IntrospectionError(artifact, f"extension exited with status {e.code}") from e

        logger.debug(f"Introspected {artifact}: id={metadata.id} name={metadata.name}")
        return metadata


def main(argv: Optional[List[str]] = None) -> int:
    argv = sys.argv[1:] if argv is None else argv
    if len(argv) != 1:
        print("usage: python -m extkit.build.introspect <artifact>", file=sys.stderr)
        return 2

    loader = ZipImportLoader()
    try:
        metadata = loader.load_sync(Path(argv[0])).describe()
    except ValidationError as e:
        print(_format_validation_error(e), file=sys.stderr)
        return 1
    except Exception as e:
        print(f"{type(e).__name__}: {e}", file=sys.stderr)
        return 1
    except SystemExit as e:
        print(f"extension exited with status {e.code}", file=sys.stderr)
        return 1

    print(json.dumps(metadata.to_manifest_dict(), ensure_ascii=False))
    return 0


if __name__ == "__main__":
    sys.exit(main())
