"""
Workflows behind the ``build``, ``json`` and ``test`` commands.

``build`` and ``json`` are best effort: a broken extension is logged and
left out while the rest of the batch goes on. ``test`` is a CI gate and
stops at the first failure.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from extkit.build.bundler import Bundler, ZipappBundler
from extkit.build.catalog import assemble_catalog
from extkit.build.compiler import CompileResult, CompilerAdapter, build_options
from extkit.build.discovery import BuildTarget, discover_targets
from extkit.build.introspect import Introspector
from extkit.build.runner import ConformanceRunner, EntryOutcome, Reporter
from extkit.config import Settings
from extkit.exceptions import IntrospectionError
from extkit.models.source import ExtensionMetadata

logger = logging.getLogger(__name__)


@dataclass
class BuildReport:
    """Summary of a build run."""

    built: List[CompileResult] = field(default_factory=list)
    failed: List[CompileResult] = field(default_factory=list)
    described: List[ExtensionMetadata] = field(default_factory=list)
    introspection_errors: List[IntrospectionError] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failed and not self.introspection_errors


async def run_build(
    settings: Settings,
    bundler: Optional[Bundler] = None,
    introspector: Optional[Introspector] = None,
    project_name: Optional[str] = None,
) -> BuildReport:
    """
    Compile every discovered extension and introspect the results.

    Targets are processed one at a time in discovery order. No manifest is
    written; use :func:`run_json` for that.

    Raises:
        DiscoveryError: If the source directory cannot be scanned
    """
    targets: List[BuildTarget] = discover_targets(
        settings.source_path,
        project_name=project_name,
        entry_filenames=settings.entry_filenames,
    )
    adapter = CompilerAdapter(
        bundler or ZipappBundler(),
        lambda target: build_options(settings, target),
    )
    introspector = introspector or Introspector()
    report = BuildReport()

    for target in targets:
        result = await adapter.compile(target)
        if not result.ok:
            logger.error(f"Failed to build {target.name}:")
            for diagnostic in result.diagnostics:
                logger.error(f"  {diagnostic}")
            report.failed.append(result)
            continue

        report.built.append(result)
        for artifact in result.artifacts:
            if not artifact.name.endswith(settings.artifact_suffix):
                continue
            try:
                metadata = await introspector.describe(artifact.path)
            except IntrospectionError as e:
                logger.error(f"Built {artifact.name} but could not introspect it: {e.reason}")
                report.introspection_errors.append(e)
                continue
            logger.info(f"{artifact.name}: {metadata.model_dump_json()}")
            report.described.append(metadata)

    logger.info(
        f"Build finished: {len(report.built)} built, {len(report.failed)} failed"
    )
    return report


async def run_json(
    path: Path,
    settings: Settings,
    introspector: Optional[Introspector] = None,
) -> List[ExtensionMetadata]:
    """
    Regenerate the manifest of an existing output directory.

    Raises:
        DirectoryNotFoundError: If path does not exist
        ManifestWriteError: If the manifest cannot be written
    """
    return await assemble_catalog(
        Path(path),
        introspector=introspector,
        suffix=settings.artifact_suffix,
        filename=settings.manifest_filename,
    )


async def run_tests(
    settings: Settings,
    nocapture: bool = False,
    reporter: Optional[Reporter] = None,
    bundler: Optional[Bundler] = None,
) -> List[EntryOutcome]:
    """
    Run the conformance tests.

    Raises:
        DiscoveryError: If the tests directory cannot be scanned
        CompileError: If a test entry fails to compile
        ValidationFailure: On the first failing entry
    """
    runner = ConformanceRunner(settings, bundler=bundler, nocapture=nocapture, reporter=reporter)
    return await runner.run()
