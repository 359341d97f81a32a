"""diff command: show the local changes a job request would carry."""

from __future__ import annotations

import click
from rich.console import Console
from rich.syntax import Syntax

from dvmreview_core.diff import check_diffs
from dvmreview_core.errors import DiffError
from dvmreview_cli.render import diff_table

console = Console()


@click.command("diff")
@click.option("--patch", "show_patch", is_flag=True, help="Print the full diff text as well.")
@click.pass_context
def diff_cmd(ctx, show_patch: bool):
    """Show the files that would be submitted for review."""
    config = ctx.obj["config"]
    try:
        result = check_diffs(exclude=config.get("exclude", []))
    except DiffError as e:
        raise click.ClickException(str(e))

    if result.is_empty:
        console.print("[yellow]No changes found. Edit some files and try again.[/yellow]")
        return

    console.print(diff_table(result.files))
    if show_patch:
        console.print(Syntax(result.output, "diff", word_wrap=True))
