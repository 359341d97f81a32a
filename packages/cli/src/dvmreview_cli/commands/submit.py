"""submit command: publish the local diff as a code-review job."""

from __future__ import annotations

import asyncio
import json
import logging

import click
from nostr_sdk import Keys
from rich.console import Console

from dvmreview_core.config import DEFAULT_PREAMBLE
from dvmreview_core.diff import DiffFile, DiffResult, check_diffs
from dvmreview_core.errors import CapabilityError, DiffError
from dvmreview_core.events import Event, ResponseEvent
from dvmreview_core.publisher import build_request
from dvmreview_core.result import ResultStatus
from dvmreview_core.session import Session
from dvmreview_cli.render import diff_table, format_sats, print_feed, short_key
from dvmreview_store.models import JobRecord, ResponseRecord

console = Console()
logger = logging.getLogger(__name__)


def _job_record(event: Event, relays: list[str], files: list[DiffFile], status: str = "published") -> JobRecord:
    """Map a signed job request to a JobRecord for the store.

    The CLI owns this mapping: dvmreview_core has no store knowledge and
    dvmreview_store has no core knowledge.
    """
    job_tag = event.get_tag("j")
    bid_tag = event.get_tag("bid")
    return JobRecord(
        event_id=event.id,
        pubkey=event.pubkey,
        created_at=event.created_at,
        kind=event.kind,
        job_type=job_tag[1] if job_tag and len(job_tag) > 1 else "",
        bid=bid_tag[1] if bid_tag and len(bid_tag) > 1 else "",
        relays=list(relays),
        files=[f.filename for f in files],
        content=event.content,
        status=status,
    )


def _response_record(response: ResponseEvent, job_id: str) -> ResponseRecord:
    request = response.payment_request
    return ResponseRecord(
        event_id=response.id,
        job_id=job_id,
        author=response.author,
        created_at=response.event.created_at,
        kind=response.event.kind,
        content=response.content,
        amount_msats=request.amount_msats if request else None,
        invoice=request.invoice if request else None,
        payment_state=response.payment_state.value,
    )


def _save(save, record) -> None:
    # Never abort the job because persistence failed; it is already on the relays.
    try:
        save(record)
    except Exception as e:
        logger.warning("Store %s failed (%s): %s", getattr(save, "__name__", "save"), type(e).__name__, e)
        console.print(f"[yellow]Warning: could not persist job history ({type(e).__name__}: {e})[/yellow]")


async def _collect(session: Session, wait_seconds: float) -> None:
    """Listen for responses for ``wait_seconds``, announcing each batch as it lands."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + wait_seconds
    seen = len(session.feed)
    while True:
        remaining = deadline - loop.time()
        if remaining <= 0:
            break
        await asyncio.sleep(min(0.5, remaining))
        if len(session.feed) > seen:
            newest = session.feed[0]
            console.print(
                f"[cyan]{len(session.feed) - seen} new response(s), latest from {short_key(newest.author)}[/cyan]"
            )
            seen = len(session.feed)
    # Let already-scheduled deliveries land before the feed is read.
    await asyncio.sleep(0)


async def _pay_interactively(session: Session, store, job_id: str) -> None:
    payable = session.feed.payable()
    if not payable:
        console.print("[yellow]None of the responses carry an invoice.[/yellow]")
        return

    console.print("\nPayable responses:")
    for i, response in enumerate(payable, 1):
        console.print(f"  [bold]{i}[/bold]  {short_key(response.author)}  ⚡ {format_sats(response.amount_sats)} sats")
    choice = click.prompt(
        "\nPay which response (0 to skip)",
        type=click.IntRange(0, len(payable)),
        default=0,
    )
    if choice == 0:
        return

    response = payable[choice - 1]
    result = await session.pay(response)
    if result.status is ResultStatus.CAPABILITY_MISSING:
        console.print(f"[red]{result.message}[/red]")
        return
    if result.is_ok:
        console.print(f"[green]Paid {format_sats(response.amount_sats)} sats to {short_key(response.author)}.[/green]")
    else:
        console.print(f"[red]{result.message}[/red]")
    _save(store.save_response, _response_record(response, job_id))


async def _run_job(session: Session, diff: DiffResult, wait_seconds: float, store, pay: bool) -> None:
    async with session:
        connected = await session.start()
        if connected.status is ResultStatus.CAPABILITY_MISSING:
            raise click.UsageError(connected.message)
        if not connected.is_ok:
            raise click.ClickException(connected.message)
        console.print(
            f"[dim]Relay status: {session.status.value} "
            f"({len(session.relays.connected_relays)}/{len(session.config.get('relays', []))} relays)[/dim]"
        )

        result = await session.submit(diff.output)
        if result.status is ResultStatus.CAPABILITY_MISSING:
            raise click.UsageError(result.message)
        if not result.is_ok:
            if result.value is not None:
                relays = session.config.get("relays", [])
                _save(store.save_job, _job_record(result.value, relays, diff.files, status="failed"))
            raise click.ClickException(result.message)

        event = result.value
        _save(store.save_job, _job_record(event, session.relays.connected_relays, diff.files))
        console.print(f"[green]Job {event.id[:8]} published. Listening for responses for {wait_seconds:g}s...[/green]")

        await _collect(session, wait_seconds)

        responses = list(session.feed)
        if not responses:
            console.print("[yellow]No responses yet.[/yellow]")
            return

        console.print(f"\n[bold]{len(responses)} response(s), newest first[/bold]\n")
        print_feed(console, responses)
        for response in responses:
            _save(store.save_response, _response_record(response, event.id))

        if pay:
            await _pay_interactively(session, store, event.id)


@click.command("submit")
@click.option("--yes", "-y", is_flag=True, help="Skip the confirmation prompt.")
@click.option(
    "--shadow",
    "-s",
    is_flag=True,
    help="Dry-run mode: print the unsigned job request without signing or publishing it.",
)
@click.option(
    "--wait",
    "wait_seconds",
    type=float,
    default=None,
    help="Seconds to listen for responses. Overrides config file.",
)
@click.option("--pay", is_flag=True, help="After listening, choose a response and pay its invoice.")
@click.option("--relay", "relays", multiple=True, help="Relay URL to use instead of the configured ones (repeatable).")
@click.pass_context
def submit_cmd(ctx, yes: bool, shadow: bool, wait_seconds: float | None, pay: bool, relays: tuple[str, ...]):
    """Submit your local diff as a code-review job.

    Publishes a kind 68005 job request to the configured relays, then shows
    worker responses as they arrive, newest first.

    \b
    Capabilities (configure in .dvmreview.yml or the environment):
      signer      DVMREVIEW_SIGNER   factory returning a BaseSigner (required)
      wallet      DVMREVIEW_WALLET   factory returning a BaseWallet (for --pay)
      transport                      "loopback" or a factory returning a BaseRelayPool
    """
    config = dict(ctx.obj["config"])
    if relays:
        config["relays"] = list(relays)
    if wait_seconds is None:
        wait_seconds = config.get("wait_seconds", 60)

    try:
        diff = check_diffs(exclude=config.get("exclude", []))
    except DiffError as e:
        raise click.ClickException(str(e))

    if diff.is_empty:
        console.print("[yellow]No changes found. Nothing to submit.[/yellow]")
        return

    console.print(diff_table(diff.files))

    if shadow:
        event = build_request(
            diff.output,
            pubkey=Keys.generate().public_key().to_hex(),
            job_type=config.get("job_type", "code-review"),
            bid=config.get("bid", "10000"),
            preamble=config.get("preamble", DEFAULT_PREAMBLE),
        )
        console.print("\n[bold]Shadow mode: job request not signed or published (author is a throwaway key)[/bold]")
        console.print_json(json.dumps(event.to_dict()))
        return

    if not yes and not click.confirm(f"\nSubmit {len(diff.files)} file(s) for review?", default=True):
        return

    try:
        session = Session.from_config(config)
    except CapabilityError as e:
        raise click.UsageError(str(e))

    asyncio.run(_run_job(session, diff, wait_seconds, ctx.obj["store"], pay))
