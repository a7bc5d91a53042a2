"""skilleval validate -- check a catalog without running anything.

Reports every invalid case at once, with its section, id, field and
source line. Exits 0 if all cases are valid, 1 otherwise.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import typer
from rich.console import Console

from skilleval.loader.catalog import load_catalog, validate_catalog
from skilleval.loader.yaml_parser import CatalogError
from skilleval.models.config import find_project_root, load_project_config

console = Console(stderr=True)


def validate(
    catalog: Optional[str] = typer.Argument(None, help="Catalog YAML (default from skilleval.yaml)"),
) -> None:
    """Validate a test-case catalog."""
    if catalog is not None:
        path = Path(catalog)
    else:
        project_root = find_project_root()
        path = project_root / load_project_config(project_root).catalog

    try:
        loaded = load_catalog(path)
    except CatalogError as exc:
        console.print(f"[bold red]Catalog error:[/bold red] {exc}")
        raise typer.Exit(code=1)

    issues = validate_catalog(loaded)
    for issue in issues:
        location = f"{path}:{issue.line}" if issue.line is not None else str(path)
        case = issue.test_id or f"#{issue.index}"
        hint = f" ({issue.suggestion})" if issue.suggestion else ""
        typer.echo(f"{location} -- {issue.test_type.value}[{case}].{issue.field}: {issue.message}{hint}")

    total = len(loaded.activation) + len(loaded.quality)
    invalid = len({(issue.test_type, issue.index) for issue in issues})
    typer.echo(f"\n{total - invalid}/{total} cases valid")

    if issues:
        raise typer.Exit(code=1)
