"""skilleval CLI entry point."""

import typer

from skilleval import __version__
from skilleval.cli.report_cmd import history, logs, repair, report, trends, versions
from skilleval.cli.run_cmd import run
from skilleval.cli.validate_cmd import validate

app = typer.Typer(
    name="skilleval",
    help="Evaluation harness for agent skills",
    no_args_is_help=True,
)

# Register subcommands
app.command()(run)
app.command()(validate)
app.command()(report)
app.command()(trends)
app.command()(history)
app.command()(versions)
app.command()(logs)
app.command()(repair)


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        typer.echo(f"skilleval {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        False,
        "--version",
        "-v",
        help="Show version and exit.",
        callback=version_callback,
        is_eager=True,
    ),
) -> None:
    """Evaluation harness for agent skills."""
