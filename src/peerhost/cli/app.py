"""Main CLI application using Typer."""

import logging
import sys

import typer
from rich.console import Console
from rich.logging import RichHandler

from peerhost import __version__

app = typer.Typer(
    name="peerhost",
    help="peerhost - Run a peer node hosting permission-scoped addons",
    no_args_is_help=True,
)

console = Console()


def configure_logging(level: str = "INFO") -> None:
    """Route log records through rich on stderr."""
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


@app.command()
def version():
    """Show peerhost version."""
    console.print(f"peerhost version {__version__}")


@app.command()
def run(
    config_path: str = typer.Option(
        None,
        "--config",
        "-c",
        help="Path to config file (default: ~/.peerhost/peerhost.yaml)",
    ),
    addons: list[str] = typer.Option(
        None,
        "--addon",
        "-a",
        help="Addon locator to load in addition to addons.paths (repeatable)",
    ),
    once: bool = typer.Option(
        False, "--once", help="Stop right after loading addons instead of waiting for Ctrl+C"
    ),
):
    """Start a peer node and load addons."""
    from peerhost.cli.run_cmd import run_command

    run_command(config_path=config_path, addons=addons or [], once=once)


# Addon commands
addons_app = typer.Typer(help="Inspect peerhost addons")
app.add_typer(addons_app, name="addons")


@addons_app.command("list")
def addons_list(
    config_path: str = typer.Option(
        None,
        "--config",
        "-c",
        help="Path to config file",
    ),
):
    """Load the configured addons and list them."""
    from peerhost.cli.addon_cmd import list_addons

    list_addons(config_path=config_path)


@addons_app.command("info")
def addons_info(
    locator: str = typer.Argument(..., help="Addon path, registry:<name> or entrypoint:<name>"),
):
    """Show an addon's manifest without initializing it."""
    from peerhost.cli.addon_cmd import info_addon

    info_addon(locator)


def main():
    """Entry point for the CLI."""
    try:
        app()
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted by user[/yellow]")
        sys.exit(130)
    except Exception as e:
        console.print(f"[red]Error: {e}[/red]")
        sys.exit(1)


if __name__ == "__main__":
    main()
