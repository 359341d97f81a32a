"""status command: connect to the configured relays and report connectivity."""

from __future__ import annotations

import asyncio

import click
from rich.console import Console
from rich.table import Table

from dvmreview_core.errors import CapabilityError
from dvmreview_core.relay import ConnectionStatus
from dvmreview_core.result import ResultStatus
from dvmreview_core.session import Session

console = Console()

_STATUS_STYLE = {
    ConnectionStatus.CONNECTED: "green",
    ConnectionStatus.CONNECTING: "yellow",
    ConnectionStatus.ERROR: "red",
}


async def _probe(session: Session):
    async with session:
        result = await session.start()
        return result, session.status, session.relays.connected_relays


@click.command("status")
@click.option("--relay", "relays", multiple=True, help="Relay URL to probe instead of the configured ones (repeatable).")
@click.pass_context
def status_cmd(ctx, relays: tuple[str, ...]):
    """Connect to the configured relays and show which ones answered."""
    config = dict(ctx.obj["config"])
    if relays:
        config["relays"] = list(relays)

    try:
        session = Session.from_config(config)
    except CapabilityError as e:
        raise click.UsageError(str(e))

    result, status, connected = asyncio.run(_probe(session))

    style = _STATUS_STYLE.get(status, "white")
    console.print(f"Relay status: [{style}]{status.value}[/{style}]")

    table = Table(show_header=True, header_style="bold cyan")
    table.add_column("Relay")
    table.add_column("Connected", justify="center")
    for url in config.get("relays", []):
        ok = url in connected
        table.add_row(url, "[green]yes[/green]" if ok else "[red]no[/red]")
    console.print(table)

    if result.status is ResultStatus.CAPABILITY_MISSING or status is ConnectionStatus.ERROR:
        console.print(f"[red]{result.message}[/red]")
        ctx.exit(1)
    if session.signer is None:
        console.print("[yellow]No signer configured: job requests cannot be signed.[/yellow]")
    elif session.identity.public_key:
        console.print(f"Identity: [bold]{session.identity.public_key}[/bold]")
    else:
        console.print("[yellow]The signer did not provide a public key.[/yellow]")
    if session.wallet is None:
        console.print("[yellow]No wallet configured: responses cannot be paid.[/yellow]")
