"""CLI entry point for dvmreview.

Commands:
  diff     show the local changes that would be submitted
  submit   publish the diff as a code-review job and collect worker responses
  status   connect to the configured relays and report connectivity
  history  display past jobs and their responses from the configured store
  init     interactive setup wizard
"""

from __future__ import annotations

import importlib.metadata
import logging

import click
from rich.console import Console
from rich.logging import RichHandler

from dvmreview_cli.commands.diff import diff_cmd
from dvmreview_cli.commands.history import history_cmd
from dvmreview_cli.commands.init import init_cmd
from dvmreview_cli.commands.status import status_cmd
from dvmreview_cli.commands.submit import submit_cmd

console = Console()


def _build_store(config: dict):
    """Instantiate the configured store from .dvmreview.yml settings.

    Store selection:
      store: sqlite → SQLiteStore (uses store_path, default .dvmreview.db)
      (default)     → NoOpStore  (no persistence)
    """
    from dvmreview_store.noop import NoOpStore

    store_type = config.get("store", "noop")

    if store_type == "sqlite":
        from dvmreview_store.sqlite import SQLiteStore

        db_path = config.get("store_path") or ".dvmreview.db"
        return SQLiteStore(db_path=db_path)

    if store_type not in (None, "noop", "none"):
        console.print(f"[yellow]Unknown store {store_type!r}. Falling back to no store.[/yellow]")
    return NoOpStore()


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


@click.group()
@click.version_option(
    version=importlib.metadata.version("dvmreview"),
    prog_name="dvmreview",
)
@click.option(
    "--config",
    "config_path",
    default=".dvmreview.yml",
    show_default=True,
    help="Path to the configuration file.",
    envvar="DVMREVIEW_CONFIG",
)
@click.option("--verbose", "-v", is_flag=True, help="Log protocol activity to stderr.")
@click.pass_context
def main(ctx: click.Context, config_path: str, verbose: bool):
    """Get code reviews for your local changes from Nostr data vending machines."""
    from dvmreview_core.config import load_config

    _configure_logging(verbose)
    ctx.ensure_object(dict)

    config = load_config(config_path)
    store = _build_store(config)
    ctx.obj["store"] = store
    ctx.obj["config"] = config
    ctx.obj["config_path"] = config_path
    ctx.call_on_close(store.close)


main.add_command(diff_cmd)
main.add_command(submit_cmd)
main.add_command(status_cmd)
main.add_command(history_cmd)
main.add_command(init_cmd)
