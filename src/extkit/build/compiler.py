"""
Compiler adapter around the bundler.

Runs the bundler off the event loop and turns its failures into
diagnostics, so one broken extension never aborts a batch.
"""

import asyncio
import functools
import logging
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, List, Optional

from extkit.build.bundler import Artifact, BundleFailed, Bundler, BundleOptions, DiskOutput, OutputFS
from extkit.build.discovery import BuildTarget
from extkit.config import Settings
from extkit.exceptions import CompileError

logger = logging.getLogger(__name__)


class WorkerPool:
    """
    Pool of background workers running bundler jobs.

    Closing is idempotent; a closed pool rejects new work.
    """

    def __init__(self, max_workers: int = 2) -> None:
        self._executor: Optional[ThreadPoolExecutor] = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="extkit-bundle"
        )
        self.max_workers = max_workers

    @property
    def executor(self) -> ThreadPoolExecutor:
        if self._executor is None:
            raise RuntimeError("Worker pool is closed")
        return self._executor

    @property
    def closed(self) -> bool:
        return self._executor is None

    def close(self, wait: bool = True) -> None:
        """
        Release the workers.

        Args:
            wait: Wait for running jobs; otherwise queued jobs are cancelled
                  and running ones are left to finish in the background
        """
        if self._executor is not None:
            self._executor.shutdown(wait=wait, cancel_futures=not wait)
            self._executor = None
            logger.debug("Worker pool closed")


@dataclass
class CompileResult:
    """Outcome of compiling one build target."""

    target: BuildTarget
    artifacts: List[Artifact] = field(default_factory=list)
    build_time_ms: float = 0.0
    diagnostics: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.diagnostics

    def raise_for_status(self) -> None:
        """Raise CompileError if the compile failed."""
        if not self.ok:
            raise CompileError(self.target.name, self.diagnostics)


def build_options(
    settings: Settings,
    target: BuildTarget,
    dist_dir: Optional[Path] = None,
) -> BundleOptions:
    """
    Fixed bundler configuration for a target.

    Library-mode zipapp, dependencies included, scope hoisting on, no source
    maps, CPython context, written to ``<dist_dir>/<name><artifact_suffix>``.
    """
    return BundleOptions(
        dist_dir=Path(dist_dir) if dist_dir is not None else settings.output_path,
        dist_entry=f"{target.name}{settings.artifact_suffix}",
        cache_dir=Path(settings.cache_dir) if settings.cache_dir else None,
        output_format="zipapp",
        is_library=True,
        scope_hoist=True,
        source_maps=False,
        context="cpython",
        include_dependencies=settings.include_dependencies,
        externals=tuple(settings.externals),
        search_paths=(settings.source_path.resolve(),),
        entry_filenames=tuple(settings.entry_filenames),
    )


class CompilerAdapter:
    """
    Compile build targets with a bundler.

    Args:
        bundler: Bundler implementation
        options_factory: Builds the bundle options of a target
        pool: Worker pool to run bundler jobs on (default: the loop's executor)
        output: Output filesystem (default: the real filesystem)
    """

    def __init__(
        self,
        bundler: Bundler,
        options_factory: Callable[[BuildTarget], BundleOptions],
        pool: Optional[WorkerPool] = None,
        output: Optional[OutputFS] = None,
    ) -> None:
        self.bundler = bundler
        self.options_factory = options_factory
        self.pool = pool
        self.output: OutputFS = output if output is not None else DiskOutput()

    async def compile(self, target: BuildTarget) -> CompileResult:
        """
        Compile one target.

        Never raises for bundler failures: they are returned as diagnostics
        on the result.
        """
        options = self.options_factory(target)
        loop = asyncio.get_running_loop()
        executor = self.pool.executor if self.pool is not None else None
        job = functools.partial(self.bundler.bundle, target, options, self.output)

        start_ms = time.time() * 1000
        try:
            artifacts = await loop.run_in_executor(executor, job)
        except BundleFailed as e:
            diagnostics = [str(d) for d in e.diagnostics] or [str(e)]
            return CompileResult(
                target=target,
                build_time_ms=(time.time() * 1000) - start_ms,
                diagnostics=diagnostics,
            )
        except Exception as e:
            logger.debug(f"Bundler crashed on {target.name}", exc_info=True)
            return CompileResult(
                target=target,
                build_time_ms=(time.time() * 1000) - start_ms,
                diagnostics=[f"{type(e).__name__}: {e}"],
            )

        build_time_ms = (time.time() * 1000) - start_ms
        for artifact in artifacts:
            logger.info(f"Built {artifact.name} in {build_time_ms:.0f}ms")
        return CompileResult(target=target, artifacts=list(artifacts), build_time_ms=build_time_ms)
