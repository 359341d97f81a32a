"""init command: interactive setup wizard.

Writes .dvmreview.yml with the relays to publish to, the transport that
reaches them, where to keep job history, and which signer and wallet capabilities to load. Existing keys in
the file are preserved.
"""

from __future__ import annotations

from pathlib import Path

import click
import yaml
from rich.console import Console

from dvmreview_core.config import DEFAULT_CONFIG

console = Console()


@click.command("init")
@click.pass_context
def init_cmd(ctx):
    """Set up dvmreview for this repository.

    Creates .dvmreview.yml with relays, a history store, and the signer and
    wallet factories used to sign job requests and pay for responses.
    """
    config_path = (ctx.obj or {}).get("config_path", ".dvmreview.yml")
    console.print("\n[bold cyan]dvmreview init[/bold cyan] setup wizard\n")

    # --- Relays ---
    relays_answer = click.prompt(
        "Relays (comma-separated)",
        default=",".join(DEFAULT_CONFIG["relays"]),
    )
    relays = [url.strip() for url in relays_answer.split(",") if url.strip()]

    # --- Transport ---
    console.print("\nRelay transport:")
    console.print("  [bold]loopback[/bold]  in-process relay for offline dry runs")
    console.print("  [bold]package.module:factory[/bold]  a BaseRelayPool that speaks to real relays")
    transport = click.prompt("Transport", default="", show_default=False).strip()

    # --- Store backend ---
    console.print("\nJob history store:")
    console.print("  [bold]none[/bold]    no persistence (default)")
    console.print("  [bold]sqlite[/bold]  local SQLite file")
    store_type = click.prompt(
        "Store backend",
        type=click.Choice(["none", "sqlite"]),
        default="none",
    )

    config: dict = {"relays": relays}
    if transport:
        config["transport"] = transport

    if store_type == "sqlite":
        db_path = click.prompt("SQLite database path", default=".dvmreview.db")
        config["store"] = "sqlite"
        if db_path != ".dvmreview.db":
            config["store_path"] = db_path
        console.print(f"[green]SQLite store configured at {db_path}[/green]")

    # --- Capabilities ---
    console.print(
        "\nSigner and wallet are loaded from factories written as [bold]package.module:factory[/bold]. "
        "Leave blank to configure later."
    )
    signer = click.prompt("Signer factory", default="", show_default=False).strip()
    if signer:
        config["signer"] = signer
    wallet = click.prompt("Wallet factory", default="", show_default=False).strip()
    if wallet:
        config["wallet"] = wallet

    _write_config(config, config_path)
    console.print(f"[green]Created {config_path}[/green]")

    console.print("\n[bold green]Setup complete![/bold green]")
    console.print("Submit your changes with: [bold]dvmreview submit[/bold]")
    if not signer:
        console.print("[yellow]Remember to set a signer (or DVMREVIEW_SIGNER) before submitting.[/yellow]")
    if not transport:
        console.print("[yellow]No transport set: `dvmreview submit` cannot reach any relay yet.[/yellow]")


def _write_config(config: dict, config_path: str = ".dvmreview.yml") -> None:
    """Write or update the config file, preserving any existing keys."""
    path = Path(config_path)
    existing: dict = {}
    if path.exists():
        existing = yaml.safe_load(path.read_text()) or {}
    existing.update(config)
    path.write_text(yaml.dump(existing, default_flow_style=False, sort_keys=False))
