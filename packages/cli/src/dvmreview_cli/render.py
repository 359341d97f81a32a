"""Terminal rendering for diffs and the response feed."""

from __future__ import annotations

from typing import TYPE_CHECKING, Iterable

from rich.console import Console, Group
from rich.markdown import Markdown
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

if TYPE_CHECKING:
    from dvmreview_core.diff import DiffFile
    from dvmreview_core.events import ResponseEvent

_STATUS_STYLE = {"added": "green", "modified": "yellow", "deleted": "red", "renamed": "cyan"}
PAYMENT_STYLE = {"unpaid": "dim", "pending": "yellow", "paid": "green", "failed": "red"}


def short_key(pubkey: str) -> str:
    if len(pubkey) <= 16:
        return pubkey
    return f"{pubkey[:8]}…{pubkey[-8:]}"


def format_sats(amount: float | None) -> str:
    if amount is None:
        return "?"
    return f"{amount:g}"


def diff_table(files: list[DiffFile]) -> Table:
    table = Table(title="Changed files", show_header=True, header_style="bold cyan")
    table.add_column("File")
    table.add_column("Status", width=10)
    table.add_column("+", justify="right", style="green")
    table.add_column("-", justify="right", style="red")
    for f in files:
        style = _STATUS_STYLE.get(f.status, "white")
        table.add_row(f.filename, f"[{style}]{f.status}[/{style}]", str(f.additions), str(f.deletions))
    return table


def response_panel(index: int, response: ResponseEvent) -> Panel:
    header = Text.assemble(("From: ", "bold"), short_key(response.author))
    body = [header, Markdown(response.content or "_(empty response)_")]
    subtitle = None
    if response.is_payable:
        state = response.payment_state.value
        style = PAYMENT_STYLE.get(state, "white")
        subtitle = f"Zap ⚡ {format_sats(response.amount_sats)} sats [{style}]({state})[/{style}]"
    return Panel(Group(*body), title=f"[bold]#{index}[/bold]", subtitle=subtitle, title_align="left")


def print_feed(console: Console, responses: Iterable[ResponseEvent]) -> None:
    """Print responses in the order given; the feed already yields newest first."""
    for index, response in enumerate(responses, 1):
        console.print(response_panel(index, response))
