"""history command: display past jobs and their responses from the store."""

from __future__ import annotations

from datetime import datetime, timezone

import click
from rich.console import Console
from rich.markdown import Markdown
from rich.table import Table

from dvmreview_cli.render import PAYMENT_STYLE, format_sats, short_key

console = Console()


def _timestamp(created_at: int) -> str:
    return datetime.fromtimestamp(created_at, tz=timezone.utc).strftime("%Y-%m-%d %H:%M:%S")


@click.command("history")
@click.option("--job", "job_id", default=None, help="Show the responses to one job (id or id prefix).")
@click.option("--limit", default=20, show_default=True, help="Maximum number of jobs to show.")
@click.pass_context
def history_cmd(ctx, job_id: str | None, limit: int):
    """Show past job requests, or the responses to one of them.

    Reads from the configured store. Add 'store: sqlite' to .dvmreview.yml
    (or run `dvmreview init`) to keep history.
    """
    from dvmreview_store.noop import NoOpStore

    store = ctx.obj.get("store") if ctx.obj else None
    if store is None or isinstance(store, NoOpStore):
        raise click.UsageError(
            "No store configured. Add 'store: sqlite' to .dvmreview.yml, or run `dvmreview init` to set one up."
        )

    if job_id:
        _show_responses(store, job_id)
        return

    jobs = store.list_jobs(limit=limit)
    if not jobs:
        console.print("[yellow]No jobs found.[/yellow]")
        return

    table = Table(title="Job History", show_header=True, header_style="bold cyan")
    table.add_column("Job", style="bold", width=10)
    table.add_column("Submitted", width=20)
    table.add_column("Files", max_width=40)
    table.add_column("Bid", justify="right")
    table.add_column("Status")
    table.add_column("Responses", justify="right")

    for job in jobs:
        responses = store.list_responses(job.event_id)
        files = ", ".join(job.files)
        table.add_row(
            job.event_id[:8],
            _timestamp(job.created_at),
            files[:40],
            job.bid,
            job.status if job.status == "published" else f"[red]{job.status}[/red]",
            str(len(responses)),
        )

    console.print(table)


def _show_responses(store, job_id: str) -> None:
    matches = [j for j in store.list_jobs() if j.event_id.startswith(job_id)]
    if not matches:
        raise click.UsageError(f"No job matching {job_id!r}.")
    if len(matches) > 1:
        raise click.UsageError(f"{job_id!r} matches {len(matches)} jobs; use a longer prefix.")

    job = matches[0]
    responses = store.list_responses(job.event_id)
    console.print(f"[bold]Job {job.event_id[:8]}[/bold]  submitted {_timestamp(job.created_at)}")
    if not responses:
        console.print("[yellow]No responses recorded for this job.[/yellow]")
        return

    for r in responses:
        line = f"[bold cyan]{short_key(r.author)}[/bold cyan]"
        if r.invoice:
            sats = r.amount_msats / 1000 if r.amount_msats is not None else None
            style = PAYMENT_STYLE.get(r.payment_state, "white")
            line += f"  ⚡ {format_sats(sats)} sats [{style}]{r.payment_state}[/{style}]"
        console.print(line)
        console.print(Markdown(r.content or "_(empty response)_"))
        console.print()
