"""Read-side commands over the results database.

report   -- one run's aggregates and results, or a list of recent runs
trends   -- pass rates per skill version, missing facts, source comparison
history  -- one test's results over time
versions -- stored skill versions
logs     -- trace lines recorded for one result
repair   -- recompute a run's aggregates from its stored results
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from typing import Optional

import typer
from rich import box
from rich.console import Console
from rich.table import Table

from skilleval.cli.output import render_result_rows, render_rows, render_run
from skilleval.models.cases import TestType
from skilleval.models.config import find_project_root, load_project_config
from skilleval.storage.base import StorageError
from skilleval.storage.sqlite_store import SQLiteResultStore

console = Console(stderr=True)

_TREND_VIEWS = ("activation", "quality", "missing-facts", "sources")


@contextmanager
def open_store() -> Iterator[SQLiteResultStore]:
    """Open the project's results database, exiting 1 if it cannot be read."""
    project_root = find_project_root()
    config = load_project_config(project_root)
    db_path = config.resolve_database_path(project_root)
    if not db_path.exists():
        console.print(f"[yellow]No results database at {db_path}. Run 'skilleval run' first.[/yellow]")
        raise typer.Exit(code=1)
    try:
        store = SQLiteResultStore(db_path)
    except StorageError as exc:
        console.print(f"[bold red]Storage error:[/bold red] {exc}")
        raise typer.Exit(code=1)
    try:
        yield store
    except StorageError as exc:
        console.print(f"[bold red]Storage error:[/bold red] {exc}")
        raise typer.Exit(code=1)
    finally:
        store.close()


def report(
    run_id: Optional[str] = typer.Argument(None, help="Run ID to show (default: list recent runs)"),
    test_type: Optional[str] = typer.Option(None, "--type", "-t", help="Filter runs by test type"),
    limit: int = typer.Option(10, "--limit", "-n", help="Number of recent runs to list"),
) -> None:
    """Show a stored run in detail, or list recent runs."""
    output_console = Console()
    with open_store() as store:
        if run_id is not None:
            run = store.get_run(run_id)
            if run is None:
                console.print(f"[bold red]Error:[/bold red] Run '{run_id}' not found.")
                raise typer.Exit(code=1)
            render_run(run, output_console)
            render_result_rows(store.get_results(run_id), output_console)
            return

        try:
            type_filter = TestType(test_type) if test_type else None
        except ValueError:
            console.print(f"[bold red]Unknown test type:[/bold red] {test_type}")
            raise typer.Exit(code=2)

        runs = store.list_runs(limit=limit, test_type=type_filter)
        if not runs:
            console.print("[yellow]No runs found.[/yellow]")
            return

        table = Table(title="Recent Runs", box=box.ROUNDED)
        table.add_column("Run ID")
        table.add_column("When")
        table.add_column("Type")
        table.add_column("Model")
        table.add_column("Passed", justify="right")
        table.add_column("Avg Latency", justify="right")
        table.add_column("Cost", justify="right")
        for run in runs:
            rate = run.passed_tests / run.total_tests if run.total_tests else 0.0
            table.add_row(
                run.id,
                f"{run.run_timestamp:%Y-%m-%d %H:%M}",
                run.test_type.value,
                run.model,
                f"{run.passed_tests}/{run.total_tests} ({rate:.0%})",
                f"{run.avg_latency_ms:.0f}ms",
                f"${run.total_cost_usd:.4f}",
            )
        output_console.print(table)


def trends(
    view: str = typer.Argument(..., help="activation, quality, missing-facts, or sources"),
    skill: Optional[str] = typer.Option(None, "--skill", "-s", help="Only show this skill"),
) -> None:
    """Show pass-rate trends and failure hot spots across runs."""
    if view not in _TREND_VIEWS:
        console.print(f"[bold red]Unknown view:[/bold red] {view} (expected one of {', '.join(_TREND_VIEWS)})")
        raise typer.Exit(code=2)

    output_console = Console()
    with open_store() as store:
        if view == "activation":
            rows = store.skill_trends(TestType.activation, skill)
            columns = ["expected_skill", "run_timestamp", "skill_version", "passed_tests",
                       "total_tests", "pass_rate", "avg_latency_ms", "avg_cost_usd"]
            title = "Activation trends"
        elif view == "quality":
            rows = store.skill_trends(TestType.quality, skill)
            columns = ["skill", "run_timestamp", "skill_version", "passed_tests",
                       "total_tests", "pass_rate", "avg_latency_ms", "avg_cost_usd"]
            title = "Quality trends"
        elif view == "missing-facts":
            rows = store.missing_facts_frequency(skill)
            columns = ["skill", "fact", "occurrence_count", "affected_tests", "last_seen"]
            title = "Most frequently missing facts"
        else:
            rows = store.source_comparison()
            columns = ["test_case_source", "passed_tests", "total_tests", "pass_rate"]
            title = "Pass rate by case source"

        for row in rows:
            if row.get("skill_version"):
                row["skill_version"] = row["skill_version"][:12]
        render_rows(title, rows, columns, output_console)


def history(
    test_id: str = typer.Argument(..., help="Test case id"),
) -> None:
    """Show one test case's results over time, per skill version."""
    output_console = Console()
    with open_store() as store:
        activation = store.activation_history(test_id)
        quality = store.quality_history(test_id)
        if not activation and not quality:
            console.print(f"[yellow]No history for test '{test_id}'.[/yellow]")
            return
        for rows in (activation, quality):
            for row in rows:
                row["skill_version"] = (row.get("skill_version") or "")[:12]
                row["passed"] = "yes" if row["passed"] else "no"
        if activation:
            render_rows(
                f"Activation history: {test_id}",
                activation,
                ["run_timestamp", "model", "skill_version", "expected_skill", "activated_skill", "passed"],
                output_console,
            )
        if quality:
            render_rows(
                f"Quality history: {test_id}",
                quality,
                ["run_timestamp", "model", "skill_version", "skill", "missing_facts_count",
                 "forbidden_content_count", "passed"],
                output_console,
            )


def versions(
    skill: Optional[str] = typer.Option(None, "--skill", "-s", help="Only show this skill"),
) -> None:
    """List stored skill versions."""
    output_console = Console()
    with open_store() as store:
        stored = store.list_skill_versions(skill)
        if not stored:
            console.print("[yellow]No skill versions recorded.[/yellow]")
            return

        table = Table(title="Skill Versions", box=box.ROUNDED)
        table.add_column("Skill")
        table.add_column("Hash")
        table.add_column("Recorded")
        table.add_column("Version ID")
        for version in stored:
            table.add_row(
                version.skill_name,
                version.content_hash[:12],
                f"{version.created_at:%Y-%m-%d %H:%M}",
                version.id,
            )
        output_console.print(table)


def logs(
    result_id: str = typer.Argument(..., help="Result ID (see 'skilleval report RUN_ID')"),
) -> None:
    """Print the trace lines recorded for one result."""
    with open_store() as store:
        lines = store.get_logs(result_id)
    if not lines:
        console.print(f"[yellow]No logs for result '{result_id}'.[/yellow]")
        raise typer.Exit(code=1)
    for line in lines:
        typer.echo(line)


def repair(
    run_id: str = typer.Argument(..., help="Run ID whose aggregates should be rebuilt"),
) -> None:
    """Recompute a run's aggregates from its stored results."""
    with open_store() as store:
        totals = store.recompute_run_aggregates(run_id)
    typer.echo(
        f"Run {run_id}: {totals.passed}/{totals.total} passed, "
        f"cost ${totals.cost_usd:.4f}, avg latency {totals.avg_latency_ms:.0f}ms"
    )
