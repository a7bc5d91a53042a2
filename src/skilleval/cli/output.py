"""Rich terminal output for batches, stored runs, and analysis views.

Provides the per-case progress bar, the batch summary and per-case
tables, generic view tables, and JSON output for CI consumption.
"""

from __future__ import annotations

import json
import sys
from collections.abc import Sequence
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

from rich import box
from rich.console import Console
from rich.markup import escape
from rich.progress import (
    BarColumn,
    MofNCompleteColumn,
    Progress,
    TextColumn,
    TimeElapsedColumn,
)
from rich.table import Table

from skilleval.models.result import ActivationResult, CaseMetrics, CaseResult, CaseStatus

if TYPE_CHECKING:
    from skilleval.execution.runner import BatchOutcome
    from skilleval.models.run import TestRun


# Status styling map: status value -> (symbol, Rich markup style)
_STATUS_STYLES: dict[str, tuple[str, str]] = {
    "passed": ("✓ PASS", "bold green"),
    "failed": ("✗ FAIL", "bold red"),
    "error": ("! ERROR", "bold bright_red"),
    "rejected": ("? REJECTED", "bold yellow"),
}


def status_display(status: CaseStatus | str) -> str:
    """Return the styled markup for a case status."""
    value = status.value if hasattr(status, "value") else str(status)
    symbol, style = _STATUS_STYLES.get(value, ("✗ UNKNOWN", "bold red"))
    return f"[{style}]{symbol}[/{style}]"


def create_case_progress(console: Console) -> Progress | None:
    """Create a progress bar for batch execution.

    Returns None when the console is not a terminal (CI/pipe mode).
    """
    if not console.is_terminal:
        return None

    return Progress(
        TextColumn("[bold blue]{task.description}"),
        BarColumn(),
        MofNCompleteColumn(),
        TimeElapsedColumn(),
        console=console,
        transient=True,
    )


def _case_detail(result: CaseResult) -> str:
    if result.error:
        return escape(result.error.splitlines()[0])
    if isinstance(result, ActivationResult):
        return f"expected={result.expected_skill} got={result.activated_skill or '-'}"
    parts = []
    if result.missing_facts:
        parts.append(f"missing: {', '.join(result.missing_facts)}")
    if result.forbidden_content:
        parts.append(f"forbidden: {', '.join(result.forbidden_content)}")
    return escape("; ".join(parts)) if parts else ""


def _cost_cell(metrics: CaseMetrics | None) -> str:
    if metrics is None or metrics.estimated_cost_usd is None:
        return "-"
    return f"${metrics.estimated_cost_usd:.4f}"


def render_cases(results: Sequence[CaseResult], console: Console) -> None:
    """Render one row per case: status, id, detail, latency, cost."""
    table = Table(box=box.ROUNDED)
    table.add_column("Status")
    table.add_column("Test")
    table.add_column("Detail")
    table.add_column("Latency", justify="right")
    table.add_column("Cost", justify="right")

    for result in results:
        metrics = result.metrics
        table.add_row(
            status_display(result.status),
            escape(result.test_id),
            _case_detail(result),
            f"{metrics.latency_ms}ms" if metrics is not None else "-",
            _cost_cell(metrics),
        )

    console.print(table)


def render_summary(outcome: BatchOutcome, console: Console) -> None:
    """Render the key-value headline for a finished batch."""
    totals = outcome.totals
    table = Table(box=box.SIMPLE, show_header=False, padding=(0, 2))
    table.add_column("Key", style="bold")
    table.add_column("Value")

    rate = totals.passed / totals.total if totals.total else 0.0
    table.add_row("Type", outcome.test_type.value)
    table.add_row("Model", outcome.model)
    table.add_row("Cases", f"{totals.passed}/{totals.total} passed ({rate:.0%})")

    rejected = sum(1 for r in outcome.results if r.status == CaseStatus.rejected)
    if rejected:
        table.add_row("Rejected", f"{rejected} invalid case(s) (not run)")
    errored = sum(1 for r in outcome.results if r.status == CaseStatus.error)
    if errored:
        table.add_row("Errors", f"{errored} case(s) failed to run")

    table.add_row(
        "Tokens",
        f"in={totals.input_tokens} out={totals.output_tokens} cache_read={totals.cache_read_tokens}",
    )
    table.add_row("Latency", f"total={totals.latency_ms}ms avg={totals.avg_latency_ms:.0f}ms")
    table.add_row("Cost", f"${totals.cost_usd:.4f}")

    if outcome.run_id is not None:
        table.add_row("Run", outcome.run_id)
    elif outcome.degraded:
        table.add_row("Run", "[yellow]not stored (storage unavailable)[/yellow]")
    if outcome.cancelled:
        table.add_row("Status", "[yellow]cancelled before all cases ran[/yellow]")

    console.print()
    console.print(table)


def render_run(run: TestRun, console: Console) -> None:
    """Render the stored aggregates of one run."""
    rate = run.passed_tests / run.total_tests if run.total_tests else 0.0
    console.print()
    console.print(f"[bold]Run:[/bold] {run.id}")
    console.print(
        f"[bold]Type:[/bold] {run.test_type.value}  [bold]Model:[/bold] {run.model}"
        + (f"  [bold]Commit:[/bold] {run.git_commit_hash[:12]}" if run.git_commit_hash else "")
    )
    console.print(f"[bold]When:[/bold] {run.run_timestamp:%Y-%m-%d %H:%M:%S} UTC")

    table = Table(box=box.SIMPLE, show_header=False, padding=(0, 2))
    table.add_column("Key", style="bold")
    table.add_column("Value")
    table.add_row("Cases", f"{run.passed_tests}/{run.total_tests} passed ({rate:.0%})")
    table.add_row(
        "Tokens",
        f"in={run.total_input_tokens} out={run.total_output_tokens} "
        f"cache_read={run.total_cache_read_tokens}",
    )
    table.add_row("Latency", f"total={run.total_latency_ms}ms avg={run.avg_latency_ms:.0f}ms")
    table.add_row("Cost", f"${run.total_cost_usd:.4f}")
    console.print(table)


def render_result_rows(rows: Sequence[dict[str, Any]], console: Console) -> None:
    """Render stored result rows of one run, with their result ids."""
    table = Table(box=box.ROUNDED)
    table.add_column("Result ID")
    table.add_column("Test")
    table.add_column("Passed")
    table.add_column("Detail")
    table.add_column("Latency", justify="right")

    for row in rows:
        if row.get("error"):
            detail = row["error"].splitlines()[0]
        elif row["kind"] == "activation":
            detail = f"expected={row['expected_skill']} got={row['activated_skill'] or '-'}"
        else:
            missing = row.get("missing_facts") or []
            forbidden = row.get("forbidden_content") or []
            detail = "; ".join(
                part
                for part in (
                    f"missing: {', '.join(missing)}" if missing else "",
                    f"forbidden: {', '.join(forbidden)}" if forbidden else "",
                )
                if part
            )
        latency = row.get("latency_ms")
        table.add_row(
            row["id"],
            escape(row["test_id"]),
            "[green]yes[/green]" if row["passed"] else "[red]no[/red]",
            escape(detail),
            f"{latency}ms" if latency is not None else "-",
        )

    console.print(table)


_TIMESTAMP_COLUMNS = {"run_timestamp", "last_seen", "created_at"}


def _format_cell(column: str, value: Any) -> str:
    if value is None:
        return "-"
    if column in _TIMESTAMP_COLUMNS and isinstance(value, int):
        return f"{datetime.fromtimestamp(value / 1000, tz=timezone.utc):%Y-%m-%d %H:%M}"
    if isinstance(value, float):
        return f"{value:.4f}" if value < 1 else f"{value:.2f}"
    return escape(str(value))


def render_rows(
    title: str,
    rows: Sequence[dict[str, Any]],
    columns: Sequence[str],
    console: Console,
) -> None:
    """Render arbitrary view rows as a table with the given columns."""
    if not rows:
        console.print(f"[dim]No data for {title}.[/dim]")
        return

    table = Table(title=title, box=box.ROUNDED)
    for column in columns:
        table.add_column(column)
    for row in rows:
        table.add_row(*(_format_cell(column, row.get(column)) for column in columns))
    console.print(table)


def output_json(outcome: BatchOutcome) -> None:
    """Write a batch outcome as pure JSON to stdout."""
    payload = {
        "run_id": outcome.run_id,
        "test_type": outcome.test_type.value,
        "model": outcome.model,
        "degraded": outcome.degraded,
        "cancelled": outcome.cancelled,
        "totals": outcome.totals.model_dump(mode="json"),
        "results": [result.model_dump(mode="json") for result in outcome.results],
    }
    sys.stdout.write(json.dumps(payload, indent=2))
    sys.stdout.write("\n")
