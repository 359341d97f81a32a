"""Build, sign and publish code-review job requests."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from dvmreview_core.config import DEFAULT_PREAMBLE
from dvmreview_core.events import JOB_REQUEST_KIND, Event, build_event
from dvmreview_core.result import OperationResult

if TYPE_CHECKING:
    from dvmreview_core.session import Session

logger = logging.getLogger(__name__)


def build_request(
    diff_text: str,
    pubkey: str,
    job_type: str = "code-review",
    bid: str = "10000",
    preamble: str = DEFAULT_PREAMBLE,
    created_at: int | None = None,
) -> Event:
    """Return the unsigned job-request event for ``diff_text``."""
    return build_event(
        pubkey,
        JOB_REQUEST_KIND,
        [["j", job_type], ["bid", str(bid)]],
        f"{preamble}\n\n{diff_text}",
        created_at=created_at,
    )


class JobRequestPublisher:
    def __init__(self, session: Session):
        self.session = session

    def build(self, diff_text: str, pubkey: str) -> Event:
        config = self.session.config
        return build_request(
            diff_text,
            pubkey,
            job_type=config.get("job_type", "code-review"),
            bid=config.get("bid", "10000"),
            preamble=config.get("preamble", DEFAULT_PREAMBLE),
        )

    async def submit(self, diff_text: str) -> OperationResult[Event]:
        """Sign and publish a job request, subscribing for its responses first.

        Returns CAPABILITY_MISSING without side effects when there is no relay
        pool or no identity, and TRANSPORT_ERROR when signing or publishing
        fails. A failed publish carries the signed event and leaves no
        subscription open. The response subscription is opened before publishing so a
        fast worker cannot answer before anyone is listening.
        """
        pool = self.session.relays.pool
        if pool is None:
            logger.debug("submit() called without a relay pool; nothing to do.")
            return OperationResult.missing("Not connected to any relay pool.")

        pubkey = self.session.identity.public_key
        signer = self.session.signer
        if pubkey is None or signer is None:
            logger.debug("submit() called without a resolved identity; nothing to do.")
            return OperationResult.missing("No signer available. Configure `signer` in .dvmreview.yml.")

        unsigned = self.build(diff_text, pubkey)
        try:
            sig = await signer.sign_event(unsigned)
        except Exception as e:
            logger.error("Signing the job request failed: %s", e)
            return OperationResult.failed(e, f"Could not sign the job request: {e}")
        event = unsigned.with_signature(sig)
        logger.debug("signed_event %s", event.to_dict())

        self.session.subscriptions.subscribe(event, pool)

        try:
            accepted = await pool.publish(event)
        except Exception as e:
            logger.error("Publishing job request %s failed: %s", event.id[:8], e)
            self.session.subscriptions.stop()
            return OperationResult.failed(e, f"The job request was not broadcast: {e}", value=event)
        logger.info("Published job request %s to %d relay(s)", event.id[:8], len(accepted or ()))
        return OperationResult.ok(event)
