"""Job history data models.

Decoupled from dvmreview_core so the store layer can be used independently
and dvmreview_core has no knowledge of persistence concerns.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass
class JobRecord:
    """A job request that was signed and published."""

    event_id: str
    pubkey: str
    created_at: int  # unix seconds, from the signed event
    kind: int
    job_type: str
    bid: str
    relays: list[str]
    files: list[str]
    content: str
    status: str = "published"  # "published" | "failed"


@dataclass
class ResponseRecord:
    """A worker's response to a stored job request."""

    event_id: str
    job_id: str
    author: str
    created_at: int
    kind: int
    content: str
    amount_msats: int | None = None
    invoice: str | None = None
    payment_state: str = "unpaid"  # "unpaid" | "pending" | "paid" | "failed"
