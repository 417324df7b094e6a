"""
Discovery of build targets and conformance test entries.

Only the first level of the source tree is scanned. Results keep
directory-listing order; catalog determinism comes from the assembler's sort.
"""

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Sequence

from extkit.exceptions import DirectoryNotFoundError, DiscoveryError

logger = logging.getLogger(__name__)

DEFAULT_ENTRY_FILENAMES = ("__init__.py",)


@dataclass(frozen=True)
class BuildTarget:
    """
    One compilation unit.

    Attributes:
        entry: Path of the entry file
        name: Logical module name, used for the artifact file name
        is_root: True for the entry placed directly in the source root
    """

    entry: Path
    name: str
    is_root: bool = False

    @property
    def package_dir(self) -> Path:
        return self.entry.parent


def _list_dir(path: Path) -> List[os.DirEntry]:
    if not path.exists():
        raise DirectoryNotFoundError(path)
    if not path.is_dir():
        raise DiscoveryError(f"Not a directory: {path}")
    try:
        with os.scandir(path) as entries:
            return list(entries)
    except OSError as e:
        raise DiscoveryError(f"Cannot read directory {path}: {e}") from e


def _find_entry(directory: Path, entry_filenames: Sequence[str]) -> Optional[Path]:
    for filename in entry_filenames:
        candidate = directory / filename
        if candidate.is_file():
            return candidate
    return None


def discover_targets(
    source_root: Path,
    project_name: Optional[str] = None,
    entry_filenames: Sequence[str] = DEFAULT_ENTRY_FILENAMES,
) -> List[BuildTarget]:
    """
    Find the build targets of a source tree.

    Every immediate subdirectory holding an entry file becomes a target named
    after the subdirectory. An entry file in the source root itself adds one
    more target named after the project.

    Args:
        source_root: Directory containing the extension packages
        project_name: Name for the root target (defaults to the name of the
                      current working directory)
        entry_filenames: File names recognized as entry points

    Returns:
        Build targets in directory-listing order

    Raises:
        DirectoryNotFoundError: If source_root does not exist
        DiscoveryError: If source_root cannot be read
    """
    source_root = Path(source_root)
    targets: List[BuildTarget] = []
    has_root = False

    for entry in _list_dir(source_root):
        if entry.is_dir():
            entry_file = _find_entry(Path(entry.path), entry_filenames)
            if entry_file is None:
                logger.debug(f"Skipping {entry.path}: no entry file")
                continue
            targets.append(BuildTarget(entry=entry_file, name=entry.name))
        elif entry.is_file() and entry.name in entry_filenames and not has_root:
            name = project_name or Path.cwd().name
            targets.append(BuildTarget(entry=Path(entry.path), name=name, is_root=True))
            has_root = True

    logger.info(f"Discovered {len(targets)} build target(s) in {source_root}")
    return targets


def discover_tests(tests_dir: Path, suffix: str = "_test.py") -> List[Path]:
    """
    Find conformance test entries.

    Args:
        tests_dir: Directory containing the test files
        suffix: File name suffix marking a test entry

    Returns:
        Test entry paths in directory-listing order

    Raises:
        DirectoryNotFoundError: If tests_dir does not exist
        DiscoveryError: If tests_dir cannot be read
    """
    tests_dir = Path(tests_dir)
    tests = [
        Path(entry.path)
        for entry in _list_dir(tests_dir)
        if entry.is_file() and entry.name.endswith(suffix)
    ]
    logger.info(f"Discovered {len(tests)} test entr{'y' if len(tests) == 1 else 'ies'}")
    return tests
