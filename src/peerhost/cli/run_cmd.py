"""Node run command."""

from __future__ import annotations

import asyncio

from rich.console import Console

from peerhost.config.schema import PeerHostConfig

console = Console()


def run_command(
    config_path: str | None = None, addons: list[str] | None = None, once: bool = False
) -> None:
    """Start a peer node, load addons and wait until interrupted.

    Args:
        config_path: Optional path to config file
        addons: Extra addon locators to load
        once: Stop after loading instead of waiting for Ctrl+C
    """
    from peerhost.cli.addon_cmd import load_config_or_exit
    from peerhost.cli.app import configure_logging

    config = load_config_or_exit(config_path)
    configure_logging(config.logging.level)

    try:
        asyncio.run(_run(config, addons or [], once))
    except KeyboardInterrupt:
        console.print("\n[yellow]Node stopped[/yellow]")


async def _run(config: PeerHostConfig, addons: list[str], once: bool) -> None:
    from peerhost.cli.addon_cmd import print_addon_table
    from peerhost.node import PeerNode

    node = PeerNode(config)
    try:
        results = await node.start(extra_addons=addons)
        identity = await node.identity_provider.get_peer_id()
        console.print(f"[green]Peer node running as {identity}[/green]")
        print_addon_table(node.host.get_all())
        for locator, instance in results.items():
            if not instance:
                console.print(f"[red]Failed to load: {locator}[/red]")

        if once:
            return
        console.print("\nPress Ctrl+C to stop")
        await asyncio.Event().wait()
    finally:
        await node.stop()
