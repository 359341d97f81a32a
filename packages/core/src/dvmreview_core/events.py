"""Nostr event model for code-review job requests and their responses.

``Event`` is a frozen wrapper around the NIP-01 wire fields. Event ids, the
response filter and filter matching are computed by ``nostr_sdk``; signing is
delegated to an external signer, so this module only builds, identifies and
matches events.

Payment data carried by responses is validated once, when the event is
ingested, into a typed ``PaymentRequest`` so the payment path never has to
scan raw tag arrays.
"""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Optional, Union

import nostr_sdk

from dvmreview_core.errors import MalformedEventError

logger = logging.getLogger(__name__)

JOB_REQUEST_KIND = 68005
AMOUNT_TAG = "amount"

_REQUIRED_FIELDS = ("pubkey", "created_at", "kind", "tags", "content")


@dataclass(frozen=True)
class Event:
    """An immutable Nostr event. ``id`` and ``sig`` are empty until signed."""

    pubkey: str
    created_at: int
    kind: int
    tags: tuple[tuple[str, ...], ...]
    content: str
    id: str = ""
    sig: str = ""

    @classmethod
    def from_nostr(cls, event: Union[nostr_sdk.Event, nostr_sdk.UnsignedEvent]) -> Event:
        """Wrap an event built or received through ``nostr_sdk``."""
        return cls.from_dict(json.loads(event.as_json()))

    def to_nostr(self) -> nostr_sdk.Event:
        if not self.is_signed:
            raise ValueError("Only signed events can be handed to nostr_sdk.")
        return nostr_sdk.Event.from_json(json.dumps(self.to_dict()))

    def compute_id(self) -> str:
        try:
            author = nostr_sdk.PublicKey.parse(self.pubkey)
        except Exception as e:
            raise MalformedEventError(f"Invalid public key {self.pubkey!r}: {e}") from e
        event_id = nostr_sdk.EventId(
            author,
            nostr_sdk.Timestamp.from_secs(self.created_at),
            nostr_sdk.Kind(self.kind),
            [nostr_sdk.Tag.parse(list(t)) for t in self.tags],
            self.content,
        )
        return event_id.to_hex()

    def with_id(self) -> Event:
        return replace(self, id=self.compute_id())

    def with_signature(self, sig: str) -> Event:
        return replace(self, id=self.id or self.compute_id(), sig=sig)

    @property
    def is_signed(self) -> bool:
        return bool(self.id and self.sig)

    def filter(self) -> dict:
        """Filter matching every event that references this one."""
        event_id = nostr_sdk.EventId.parse(self.id or self.compute_id())
        return json.loads(nostr_sdk.Filter().event(event_id).as_json())

    def get_tag(self, name: str) -> tuple[str, ...] | None:
        """Return the first tag whose first element equals ``name``."""
        for tag in self.tags:
            if tag and tag[0] == name:
                return tag
        return None

    def tag_values(self, name: str) -> list[str]:
        return [tag[1] for tag in self.tags if len(tag) > 1 and tag[0] == name]

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "pubkey": self.pubkey,
            "created_at": self.created_at,
            "kind": self.kind,
            "tags": [list(t) for t in self.tags],
            "content": self.content,
            "sig": self.sig,
        }

    @classmethod
    def from_dict(cls, data: dict) -> Event:
        """Build an Event from its wire dict, rejecting structurally invalid input."""
        if not isinstance(data, dict):
            raise MalformedEventError(f"Event must be an object, got {type(data).__name__}")
        missing = [k for k in _REQUIRED_FIELDS if k not in data]
        if missing:
            raise MalformedEventError(f"Event is missing field(s): {', '.join(missing)}")
        tags = data["tags"]
        if not isinstance(tags, list) or not all(isinstance(t, list) for t in tags):
            raise MalformedEventError("Event tags must be a list of lists")
        if not isinstance(data["kind"], int) or not isinstance(data["created_at"], int):
            raise MalformedEventError("Event kind and created_at must be integers")
        return cls(
            pubkey=str(data["pubkey"]),
            created_at=data["created_at"],
            kind=data["kind"],
            tags=tuple(tuple(str(v) for v in t) for t in tags),
            content=str(data["content"]),
            id=str(data.get("id") or ""),
            sig=str(data.get("sig") or ""),
        )


def build_event(
    pubkey: str,
    kind: int,
    tags: list[list[str]],
    content: str,
    created_at: int | None = None,
) -> Event:
    """Build an unsigned event with ``nostr_sdk.EventBuilder`` and return it with its id."""
    try:
        author = nostr_sdk.PublicKey.parse(pubkey)
    except Exception as e:
        raise MalformedEventError(f"Invalid public key {pubkey!r}: {e}") from e
    builder = nostr_sdk.EventBuilder(nostr_sdk.Kind(kind), content).tags([nostr_sdk.Tag.parse(t) for t in tags])
    builder = builder.custom_created_at(
        nostr_sdk.Timestamp.from_secs(int(time.time()) if created_at is None else created_at)
    )
    return Event.from_nostr(builder.build(author)).with_id()


def matches_filter(event: Event, flt: dict[str, Any]) -> bool:
    """NIP-01 filter matching, delegated to ``nostr_sdk.Filter``."""
    return nostr_sdk.Filter.from_json(json.dumps(flt)).match_event(event.to_nostr())


@dataclass(frozen=True)
class PaymentRequest:
    """Invoice attached to a response through its ``amount`` tag."""

    invoice: str
    amount_msats: Optional[int] = None

    @property
    def amount_sats(self) -> float | None:
        if self.amount_msats is None:
            return None
        return self.amount_msats / 1000

    @classmethod
    def from_event(cls, event: Event) -> PaymentRequest | None:
        """Parse ``["amount", <msats>, <invoice>]``; None means not payable."""
        tag = event.get_tag(AMOUNT_TAG)
        if tag is None:
            return None
        if len(tag) < 3 or not tag[2]:
            logger.warning("Response %s has an amount tag without an invoice; not payable.", event.id[:8])
            return None
        try:
            amount_msats: int | None = int(tag[1])
        except ValueError:
            logger.warning("Response %s has a non-numeric amount %r.", event.id[:8], tag[1])
            amount_msats = None
        return cls(invoice=tag[2], amount_msats=amount_msats)


class PaymentState(str, Enum):
    UNPAID = "unpaid"
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"


@dataclass
class ResponseEvent:
    """A worker's response to a job request, as held in the event feed."""

    event: Event
    payment_request: Optional[PaymentRequest] = None
    payment_state: PaymentState = PaymentState.UNPAID
    payment_error: str = ""
    received_at: float = field(default_factory=time.time)

    @classmethod
    def ingest(cls, event: Event) -> ResponseEvent:
        return cls(event=event, payment_request=PaymentRequest.from_event(event))

    @property
    def id(self) -> str:
        return self.event.id

    @property
    def author(self) -> str:
        return self.event.pubkey

    @property
    def content(self) -> str:
        return self.event.content

    @property
    def is_payable(self) -> bool:
        return self.payment_request is not None

    @property
    def amount_sats(self) -> float | None:
        return self.payment_request.amount_sats if self.payment_request else None
