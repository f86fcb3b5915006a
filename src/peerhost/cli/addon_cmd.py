"""CLI commands for addon inspection."""

from __future__ import annotations

import asyncio
from collections.abc import Iterable
from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from peerhost.addons.manifest import LoadedAddon
from peerhost.config.schema import PeerHostConfig

console = Console()


def load_config_or_exit(config_path: str | None) -> PeerHostConfig:
    """Load the config, printing the error and exiting with status 1 on failure."""
    from peerhost.config.loader import load_config

    path = Path(config_path) if config_path else None
    try:
        return load_config(path)
    except Exception as e:
        console.print(f"[red]Failed to load config: {e}[/red]")
        raise typer.Exit(code=1) from e


def print_addon_table(addons: Iterable[LoadedAddon], title: str = "Loaded Addons") -> None:
    addons = list(addons)
    if not addons:
        console.print("[dim]No addons loaded.[/dim]")
        return

    table = Table(title=title)
    table.add_column("Id", style="cyan")
    table.add_column("Name")
    table.add_column("Version")
    table.add_column("Permissions", style="green")
    table.add_column("Source")

    for addon in addons:
        m = addon.manifest
        table.add_row(
            m.id,
            m.name,
            m.version,
            ", ".join(sorted(m.permissions)) if m.permissions else "-",
            addon.source,
        )

    console.print(table)


def list_addons(config_path: str | None = None) -> None:
    """Load the configured addons, list them, then unload them."""
    config = load_config_or_exit(config_path)
    if not config.addons.paths:
        console.print("[dim]No addons configured.[/dim]")
        console.print("Add locators under addons.paths in your config file.")
        return

    asyncio.run(_list_addons(config))


async def _list_addons(config: PeerHostConfig) -> None:
    from peerhost.node import PeerNode

    node = PeerNode(config)
    try:
        results = await node.start()
        print_addon_table(node.host.get_all(), title="Configured Addons")
        for locator, instance in results.items():
            if not instance:
                console.print(f"[red]Failed to load: {locator}[/red]")
    finally:
        await node.stop()


def info_addon(locator: str) -> None:
    """Show an addon's manifest."""
    from peerhost.addons.host import AddonHost
    from peerhost.errors import AddonLoadError

    host = AddonHost()
    try:
        definition = asyncio.run(host.resolve(locator))
    except AddonLoadError as e:
        console.print(f"[red]Cannot resolve addon '{locator}': {e}[/red]")
        raise typer.Exit(code=1) from e

    m = definition.manifest
    console.print(f"\n[bold cyan]{m.name}[/bold cyan] v{m.version}")
    console.print(f"  Id: {m.id}")
    if m.description:
        console.print(f"  {m.description}")
    console.print(f"  Permissions: {', '.join(sorted(m.permissions)) or 'none'}")
    console.print(f"  Terminate hook: {'yes' if definition.terminate else 'no'}")
