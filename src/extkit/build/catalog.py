"""
Catalog assembly.

The catalog is rebuilt from whatever artifacts sit in the output directory,
independently of the build step, so it can be regenerated without
recompiling. Entries are sorted by id, which makes the manifest independent
of filesystem iteration order.
"""

import functools
import json
import logging
from pathlib import Path
from typing import List, Optional, Sequence

from extkit.build.introspect import Introspector
from extkit.exceptions import DirectoryNotFoundError, IntrospectionError, ManifestWriteError
from extkit.models.source import ExtensionMetadata

logger = logging.getLogger(__name__)

MANIFEST_FILENAME = "index.json"
ARTIFACT_SUFFIX = ".pyz"


def scan_artifacts(output_dir: Path, suffix: str = ARTIFACT_SUFFIX) -> List[Path]:
    """
    List compiled artifacts in an output directory, sorted by file name.

    Raises:
        DirectoryNotFoundError: If output_dir does not exist
    """
    output_dir = Path(output_dir)
    if not output_dir.is_dir():
        raise DirectoryNotFoundError(output_dir)
    return sorted(
        (path for path in output_dir.iterdir() if path.is_file() and path.name.endswith(suffix)),
        key=lambda path: path.name,
    )


async def collect_entries(
    artifacts: Sequence[Path],
    introspector: Introspector,
) -> List[ExtensionMetadata]:
    """
    Introspect artifacts, skipping those that fail.

    An artifact whose id was already seen is skipped with a warning, so ids
    stay unique within a catalog.
    """
    entries: List[ExtensionMetadata] = []
    seen: dict[int, Path] = {}

    for artifact in artifacts:
        try:
            metadata = await introspector.describe(artifact)
        except IntrospectionError as e:
            logger.error(f"Skipping {artifact.name}: {e.reason}")
            continue

        if metadata.id in seen:
            logger.warning(
                f"Skipping {artifact.name}: id {metadata.id} already used by {seen[metadata.id].name}"
            )
            continue

        seen[metadata.id] = artifact
        entries.append(metadata)

    return entries


def compare_ids(a: ExtensionMetadata, b: ExtensionMetadata) -> int:
    """Three-way comparison of two entries by id."""
    if a.id > b.id:
        return 1
    if a.id < b.id:
        return -1
    return 0


def sort_entries(entries: Sequence[ExtensionMetadata]) -> List[ExtensionMetadata]:
    """Sort entries by ascending id; equal ids keep their input order."""
    return sorted(entries, key=functools.cmp_to_key(compare_ids))


def render_manifest(entries: Sequence[ExtensionMetadata]) -> bytes:
    """Serialize entries as a compact UTF-8 JSON array."""
    payload = [entry.to_manifest_dict() for entry in entries]
    return json.dumps(payload, ensure_ascii=False, separators=(",", ":")).encode("utf-8")


def write_manifest(
    entries: Sequence[ExtensionMetadata],
    output_dir: Path,
    filename: str = MANIFEST_FILENAME,
) -> Path:
    """
    Write the manifest, replacing any previous one.

    Raises:
        ManifestWriteError: If the file cannot be written
    """
    path = Path(output_dir) / filename
    try:
        path.write_bytes(render_manifest(entries))
    except OSError as e:
        raise ManifestWriteError(path, str(e)) from e
    logger.info(f"Wrote {len(entries)} extension(s) to {path}")
    return path


async def assemble_catalog(
    output_dir: Path,
    introspector: Optional[Introspector] = None,
    suffix: str = ARTIFACT_SUFFIX,
    filename: str = MANIFEST_FILENAME,
) -> List[ExtensionMetadata]:
    """
    Rebuild the manifest of an output directory.

    Running it twice on an unchanged directory writes identical bytes.

    Returns:
        The catalog entries in manifest order

    Raises:
        DirectoryNotFoundError: If output_dir does not exist
        ManifestWriteError: If the manifest cannot be written
    """
    introspector = introspector or Introspector()
    artifacts = scan_artifacts(output_dir, suffix)
    entries = sort_entries(await collect_entries(artifacts, introspector))
    write_manifest(entries, output_dir, filename)
    return entries
