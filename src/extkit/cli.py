"""
extkit CLI - build, catalog and test extensions.

Run from the root of an extensions repository: sources under ``src/``,
conformance tests under ``tests/``, artifacts written to ``dist/``.
"""

import asyncio
import logging
from pathlib import Path

import typer
from rich.console import Console

from extkit.logging_config import setup_logging

app = typer.Typer(
    name="extkit",
    help="extkit - build and catalog extension packages",
    no_args_is_help=True,
)

console = Console()
err_console = Console(stderr=True)


def _init_logging(context: str) -> None:
    # Fall back to console logging if file logging is not permitted
    try:
        setup_logging(context=context)
    except PermissionError:
        logging.basicConfig(level=logging.INFO)


def _exit_code(status: int) -> int:
    """Map a child exit status to a process exit code (signals become 128+n)."""
    return status if status > 0 else 128 - status


@app.command()
def build() -> None:
    """
    Compile every extension into the output directory.

    Extensions that fail to compile or introspect are reported and skipped;
    the manifest is not written (use ``extkit json``).
    """
    from extkit.build.pipeline import run_build
    from extkit.config import settings
    from extkit.exceptions import DiscoveryError

    _init_logging("cli")

    console.print(f"[bold blue]Building extensions from:[/bold blue] {settings.source_dir}")
    console.print(f"  Output: {settings.output_dir}")
    console.print()

    try:
        report = asyncio.run(run_build(settings))
    except DiscoveryError as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)

    for result in report.built:
        for artifact in result.artifacts:
            console.print(
                f"  [green]✓ Built[/green] {artifact.name} in {result.build_time_ms:.0f}ms"
            )
    for result in report.failed:
        console.print(f"  [red]✗ {result.target.name}[/red]")
        for diagnostic in result.diagnostics:
            console.print(f"      {diagnostic}")
    for error in report.introspection_errors:
        console.print(f"  [yellow]⚠ {error}[/yellow]")

    console.print()
    console.print("[bold]Summary:[/bold]")
    console.print(f"  Built: {len(report.built)}")
    console.print(f"  Failed: {len(report.failed)}")
    console.print(f"  Described: {len(report.described)}")


@app.command("json")
def json_command(
    path: Path = typer.Option(Path("./dist"), "--path", help="Output directory to catalog"),
) -> None:
    """
    Write index.json for the artifacts in an output directory.

    Artifacts that cannot be introspected are left out of the catalog.
    """
    from extkit.build.pipeline import run_json
    from extkit.config import settings
    from extkit.exceptions import DirectoryNotFoundError, ManifestWriteError

    _init_logging("cli")

    try:
        entries = asyncio.run(run_json(path, settings))
    except DirectoryNotFoundError as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)
    except ManifestWriteError as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)

    for entry in entries:
        console.print(f"  {entry.id:>5}  {entry.name} v{entry.version}")
    console.print(
        f"[green]✓ Wrote {len(entries)} extension(s) to "
        f"{path / settings.manifest_filename}[/green]"
    )


@app.command()
def test(
    nocapture: bool = typer.Option(
        False, "--nocapture", help="Also print the validator's standard output"
    ),
) -> None:
    """
    Compile the conformance tests in memory and run them through the validator.

    Stops at the first failure and exits with the validator's status.
    """
    from extkit.build.pipeline import run_tests
    from extkit.build.runner import EntryOutcome, EntryState
    from extkit.config import settings
    from extkit.exceptions import CompileError, DiscoveryError, ValidationFailure

    _init_logging("test")

    def report(outcome: EntryOutcome) -> None:
        if outcome.state == EntryState.COMPILE_FAILED:
            console.print(f"[red]✗ {outcome.entry.name} failed to compile[/red]")
            return
        console.print(
            f"[blue]test[/blue] {outcome.entry.name} "
            f"({outcome.bundle}, built in {outcome.build_time_ms:.0f}ms)"
        )
        if outcome.stderr:
            err_console.print(outcome.stderr, end="", markup=False, highlight=False)
        if nocapture and outcome.stdout:
            console.print(outcome.stdout, end="", markup=False, highlight=False)
        if outcome.passed:
            console.print("  [green]✓ passed[/green]")
        else:
            console.print(f"  [red]✗ failed (exit status {outcome.status})[/red]")

    try:
        outcomes = asyncio.run(run_tests(settings, nocapture=nocapture, reporter=report))
    except DiscoveryError as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)
    except CompileError as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)
    except ValidationFailure as e:
        raise typer.Exit(_exit_code(e.status))

    console.print(f"[green]✓ {len(outcomes)} test bundle(s) passed[/green]")


if __name__ == "__main__":
    app()
