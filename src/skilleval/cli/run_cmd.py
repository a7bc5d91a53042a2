"""skilleval run -- execute a batch of activation or quality cases.

Loads the catalog, resolves the agent, runs the selected cases through
BatchRunner (persisting to the results database unless --no-store),
renders Rich output or JSON, and exits with a status-based code.
"""

from __future__ import annotations

import asyncio
import logging
import signal
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console

from skilleval.adapters.registry import get_agent
from skilleval.cli.output import (
    create_case_progress,
    output_json,
    render_cases,
    render_summary,
)
from skilleval.execution.runner import BatchOutcome, BatchRunner
from skilleval.loader.catalog import load_catalog, select_cases
from skilleval.loader.yaml_parser import CatalogError
from skilleval.models.cases import TestType
from skilleval.models.config import find_project_root, load_project_config
from skilleval.storage.base import StorageError
from skilleval.storage.sqlite_store import SQLiteResultStore

console = Console(stderr=True)

# Exit codes
EXIT_PASSED = 0
EXIT_FAILED = 1
EXIT_USAGE = 2
EXIT_ALL_ERRORED = 3

_RUNNABLE = {TestType.activation.value, TestType.quality.value}


def configure_logging(verbose: bool) -> None:
    """Send library logs to stderr: DEBUG with --verbose, WARNING otherwise."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
        force=True,
    )


def exit_code_for(outcome: BatchOutcome) -> int:
    """0 if every attempted case passed, 3 if all errored, 1 otherwise."""
    if outcome.all_errored:
        return EXIT_ALL_ERRORED
    if outcome.totals.total == 0 or outcome.totals.failed > 0:
        return EXIT_FAILED
    if any(r.status.value == "rejected" for r in outcome.results):
        return EXIT_FAILED
    return EXIT_PASSED


def run(
    test_type: str = typer.Argument(..., help="Which batch to run: activation or quality"),
    catalog: Optional[str] = typer.Option(None, "--catalog", "-c", help="Catalog YAML (default from skilleval.yaml)"),
    model: Optional[str] = typer.Option(None, "--model", "-m", help="Model id (default from skilleval.yaml)"),
    only: Optional[str] = typer.Option(None, "--only", help="Comma-separated test ids to run"),
    skill: Optional[str] = typer.Option(None, "--skill", help="Only run cases targeting this skill"),
    format_json: bool = typer.Option(False, "--json", help="Output pure JSON to stdout"),
    no_store: bool = typer.Option(False, "--no-store", help="Do not write results to the database"),
    verbose: bool = typer.Option(False, "-V", "--verbose", help="Show debug logs and per-case trace"),
) -> None:
    """Run activation or quality cases against the agent and score them."""
    if test_type not in _RUNNABLE:
        console.print(f"[bold red]Unknown test type:[/bold red] {test_type} (expected activation or quality)")
        raise typer.Exit(code=EXIT_USAGE)

    configure_logging(verbose)
    asyncio.run(
        _run_async(
            TestType(test_type),
            catalog_path=catalog,
            model=model,
            only=[item.strip() for item in only.split(",") if item.strip()] if only else None,
            skill=skill,
            format_json=format_json,
            no_store=no_store,
            verbose=verbose,
        )
    )


async def _run_async(
    test_type: TestType,
    *,
    catalog_path: str | None,
    model: str | None,
    only: list[str] | None,
    skill: str | None,
    format_json: bool,
    no_store: bool,
    verbose: bool,
) -> None:
    """Async implementation of the run command."""
    project_root = find_project_root()
    config = load_project_config(project_root)

    # 1. Load catalog and pick cases
    path = Path(catalog_path) if catalog_path else project_root / config.catalog
    try:
        catalog = load_catalog(path)
    except CatalogError as exc:
        console.print(f"[bold red]Catalog error:[/bold red] {exc}")
        raise typer.Exit(code=EXIT_USAGE)

    cases = select_cases(catalog.cases(test_type), only=only, skill=skill)
    if not cases:
        console.print(f"[yellow]No {test_type.value} cases selected from {path}.[/yellow]")
        raise typer.Exit(code=EXIT_FAILED)

    # 2. Resolve agent
    try:
        agent = get_agent(config.agent)
    except (ImportError, ValueError, TypeError) as exc:
        console.print(f"[bold red]Agent error:[/bold red] {exc}")
        raise typer.Exit(code=EXIT_USAGE)

    # 3. Open the results store (a failure here only disables storage)
    store = None
    if not no_store:
        try:
            store = SQLiteResultStore(config.resolve_database_path(project_root))
        except StorageError as exc:
            console.print(f"[yellow]Results database unavailable, not storing: {exc}[/yellow]")

    output_console = Console()

    try:
        progress = None if format_json else create_case_progress(console)
        if progress is not None:
            with progress:
                task = progress.add_task(f"Running {test_type.value} cases", total=len(cases))

                def on_result(position: int, total: int, result) -> None:
                    progress.update(task, advance=1)

                runner = BatchRunner(agent, store, config=config, project_root=project_root, on_result=on_result)
                outcome = await _execute(runner, test_type, cases, model)
        else:
            runner = BatchRunner(agent, store, config=config, project_root=project_root)
            outcome = await _execute(runner, test_type, cases, model)
    finally:
        if store is not None:
            store.close()

    # 4. Output
    if format_json:
        output_json(outcome)
    else:
        render_cases(outcome.results, output_console)
        render_summary(outcome, output_console)
        if verbose:
            for result in outcome.results:
                if not result.passed and result.logs:
                    output_console.print(f"[bold]{result.test_id}[/bold]")
                    for line in result.logs:
                        output_console.print(f"  {line}", style="dim", markup=False)

    code = exit_code_for(outcome)
    if code != EXIT_PASSED:
        raise typer.Exit(code=code)


async def _execute(runner: BatchRunner, test_type: TestType, cases: list, model: str | None) -> BatchOutcome:
    """Run the batch; the first Ctrl+C stops it after the case in flight."""
    loop = asyncio.get_running_loop()

    def on_interrupt() -> None:
        console.print("[yellow]Interrupted: finishing the current case. Press Ctrl+C again to abort.[/yellow]")
        runner.cancel()
        # A second Ctrl+C falls through to the default KeyboardInterrupt.
        loop.remove_signal_handler(signal.SIGINT)

    try:
        loop.add_signal_handler(signal.SIGINT, on_interrupt)
        installed = True
    except (NotImplementedError, RuntimeError, ValueError):
        # No loop signal handlers on Windows or off the main thread.
        installed = False

    try:
        if test_type == TestType.activation:
            return await runner.run_activation(cases, model=model)
        return await runner.run_quality(cases, model=model)
    finally:
        if installed:
            loop.remove_signal_handler(signal.SIGINT)
