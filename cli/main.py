#!/usr/bin/env python3
"""
treestore CLI

Main entrypoint for the treestore command-line tool.
"""

import typer
from rich.console import Console
from rich.table import Table

from cli.commands import dispatch, inspect
from treestore.logging_config import setup_logging

# Initialize Typer app
app = typer.Typer(
    name="treestore",
    help="Inspect and exercise treestore action registries",
    add_completion=False,
)

# Console for rich output
console = Console()

app.command(name="inspect")(inspect.inspect_command)
app.command(name="dispatch")(dispatch.dispatch_command)


@app.callback()
def _configure(
    log_level: str = typer.Option("WARNING", "--log-level", envvar="TREESTORE_LOG_LEVEL", help="Log level"),
):
    setup_logging(level=log_level)


@app.command()
def version():
    """Show version information."""
    from cli import __version__
    from treestore import __version__ as core_version

    table = Table(show_header=False, box=None)
    table.add_row("[bold]treestore CLI[/bold]", f"v{__version__}")
    table.add_row("Core", f"v{core_version}")

    console.print(table)


def main():
    """Main entrypoint."""
    app()


if __name__ == "__main__":
    main()
