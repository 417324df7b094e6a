"""
Conformance test runner.

Each test entry is bundled in memory and the bundle is piped into an
external validator process on standard input. Unlike the build workflow
this is fail-fast: the first failing entry stops the run.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Callable, List, Optional, Sequence

from extkit.build.bundler import Bundler, MemoryOutput, ZipappBundler
from extkit.build.compiler import CompilerAdapter, WorkerPool, build_options
from extkit.build.discovery import BuildTarget, discover_tests
from extkit.config import Settings
from extkit.exceptions import ValidationFailure

logger = logging.getLogger(__name__)

# In-memory bundles are written under this directory
MEMORY_DIST_DIR = Path("/memory/dist")

# Shell convention for "command not found"
VALIDATOR_NOT_FOUND = 127


class EntryState(str, Enum):
    """Lifecycle of a single test entry."""

    DISCOVERED = "discovered"
    COMPILING = "compiling"
    COMPILE_FAILED = "compile_failed"
    COMPILED = "compiled"
    VALIDATING = "validating"
    PASSED = "passed"
    FAILED = "failed"


@dataclass
class EntryOutcome:
    """Result of validating one bundle of a test entry."""

    entry: Path
    state: EntryState = EntryState.DISCOVERED
    bundle: Optional[str] = None
    status: Optional[int] = None
    stdout: str = ""
    stderr: str = ""
    build_time_ms: float = 0.0
    diagnostics: Optional[List[str]] = None

    @property
    def passed(self) -> bool:
        return self.state == EntryState.PASSED


Reporter = Callable[[EntryOutcome], None]


@dataclass
class ValidatorResult:
    status: int
    stdout: str
    stderr: str


async def run_validator(command: Sequence[str], payload: bytes) -> ValidatorResult:
    """
    Run the validator with a bundle on standard input.

    Raises:
        FileNotFoundError: If the validator executable is not installed
    """
    process = await asyncio.create_subprocess_exec(
        *command,
        stdin=asyncio.subprocess.PIPE,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    )
    stdout, stderr = await process.communicate(input=payload)
    return ValidatorResult(
        status=process.returncode if process.returncode is not None else 0,
        stdout=stdout.decode("utf-8", errors="replace"),
        stderr=stderr.decode("utf-8", errors="replace"),
    )


class ConformanceRunner:
    """
    Compile test entries in memory and validate them.

    Args:
        settings: Pipeline settings (tests dir, suffix, validator command)
        bundler: Bundler used for the test bundles
        nocapture: Also report the validator's standard output
        reporter: Called after each validated bundle and on compile failure;
                  outcomes are logged when not set
        validator_command: Overrides the validator command from settings
    """

    def __init__(
        self,
        settings: Settings,
        bundler: Optional[Bundler] = None,
        nocapture: bool = False,
        reporter: Optional[Reporter] = None,
        validator_command: Optional[Sequence[str]] = None,
    ) -> None:
        self.settings = settings
        self.bundler = bundler or ZipappBundler()
        self.nocapture = nocapture
        self.reporter = reporter
        self.validator_command = list(validator_command or settings.validator_argv)

        self.pool: Optional[WorkerPool] = None
        self.output: Optional[MemoryOutput] = None

    def _report(self, outcome: EntryOutcome) -> None:
        if self.reporter is not None:
            self.reporter(outcome)
            return
        if outcome.stderr:
            logger.info(f"[{outcome.entry.name}] validator stderr:\n{outcome.stderr.rstrip()}")
        if self.nocapture and outcome.stdout:
            logger.info(f"[{outcome.entry.name}] validator stdout:\n{outcome.stdout.rstrip()}")

    async def run(self) -> List[EntryOutcome]:
        """
        Run every discovered test entry.

        Returns:
            Outcomes of all validated bundles, all passed

        Raises:
            DiscoveryError: If the tests directory cannot be scanned
            CompileError: If a test entry fails to compile
            ValidationFailure: On the first non-zero validator status
        """
        tests = discover_tests(self.settings.tests_path, self.settings.test_suffix)

        pool = self.pool = WorkerPool(max_workers=self.settings.pool_workers)
        output = self.output = MemoryOutput()
        try:
            adapter = CompilerAdapter(
                self.bundler,
                lambda target: build_options(self.settings, target, dist_dir=MEMORY_DIST_DIR),
                pool=pool,
                output=output,
            )
            outcomes: List[EntryOutcome] = []
            for entry in tests:
                outcomes.extend(await self._run_entry(adapter, output, entry))
            return outcomes
        except BaseException:
            # Aborted runs do not wait for bundle jobs still running
            self.close(wait=False)
            raise
        finally:
            self.close()

    def close(self, wait: bool = True) -> None:
        """Release the worker pool and the in-memory output."""
        if self.output is not None:
            self.output.clear()
            self.output = None
        if self.pool is not None:
            self.pool.close(wait=wait)
            self.pool = None

    async def _run_entry(
        self, adapter: CompilerAdapter, output: MemoryOutput, entry: Path
    ) -> List[EntryOutcome]:
        logger.info(f"test {entry}")
        target = BuildTarget(entry=entry, name=entry.stem)

        outcome = EntryOutcome(entry=entry, state=EntryState.COMPILING)
        result = await adapter.compile(target)
        if not result.ok:
            outcome.state = EntryState.COMPILE_FAILED
            outcome.diagnostics = result.diagnostics
            outcome.build_time_ms = result.build_time_ms
            for diagnostic in result.diagnostics:
                logger.error(f"[{entry.name}] {diagnostic}")
            self._report(outcome)
            result.raise_for_status()

        outcomes: List[EntryOutcome] = []
        for artifact in result.artifacts:
            outcome = EntryOutcome(
                entry=entry,
                state=EntryState.COMPILED,
                bundle=artifact.name,
                build_time_ms=result.build_time_ms,
            )
            payload = output.read_bytes(artifact.path)

            outcome.state = EntryState.VALIDATING
            start = time.monotonic()
            try:
                validation = await run_validator(self.validator_command, payload)
            except FileNotFoundError:
                validation = ValidatorResult(
                    status=VALIDATOR_NOT_FOUND,
                    stdout="",
                    stderr=f"validator not found: {self.validator_command[0]}\n",
                )
            outcome.status = validation.status
            outcome.stdout = validation.stdout
            outcome.stderr = validation.stderr
            outcome.state = EntryState.PASSED if validation.status == 0 else EntryState.FAILED
            logger.debug(f"Validated {artifact.name} in {time.monotonic() - start:.2f}s")

            self._report(outcome)
            if validation.status != 0:
                raise ValidationFailure(entry.name, validation.status, validation.stderr)
            outcomes.append(outcome)

        return outcomes
