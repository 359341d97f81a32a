"""Response subscription for a published job request.

Every job request gets its own open-ended subscription (no close on EOSE, not
grouped with other subscriptions) because workers answer asynchronously and
more than once. Only one subscription is live per session: subscribing again
stops the previous one before the new one starts receiving events.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import TYPE_CHECKING, Iterator

from dvmreview_core.events import ResponseEvent

if TYPE_CHECKING:
    from dvmreview_core.capabilities.base import BaseRelayPool, BaseSubscriptionHandle
    from dvmreview_core.events import Event

logger = logging.getLogger(__name__)


class SubscriptionState(str, Enum):
    IDLE = "idle"
    ACTIVE = "active"
    STOPPED = "stopped"


class EventFeed:
    """Responses received this session, newest first.

    Arrival order is preserved exactly as the transport delivers it; nothing
    is deduplicated, reordered or evicted.
    """

    def __init__(self):
        self._items: list[ResponseEvent] = []

    def prepend(self, response: ResponseEvent) -> None:
        self._items.insert(0, response)

    def __iter__(self) -> Iterator[ResponseEvent]:
        return iter(list(self._items))

    def __len__(self) -> int:
        return len(self._items)

    def __getitem__(self, index: int) -> ResponseEvent:
        return self._items[index]

    def payable(self) -> list[ResponseEvent]:
        return [r for r in self._items if r.is_payable]

    def for_request(self, request_id: str) -> list[ResponseEvent]:
        return [r for r in self._items if request_id in r.event.tag_values("e")]


class Subscription:
    """One response stream: IDLE -> ACTIVE -> STOPPED, never reused."""

    def __init__(self, request: Event, feed: EventFeed):
        self.request = request
        self.filter = request.filter()
        self.state = SubscriptionState.IDLE
        self.received = 0
        self._feed = feed
        self._handle: BaseSubscriptionHandle | None = None

    @property
    def active(self) -> bool:
        return self.state is SubscriptionState.ACTIVE

    def start(self, pool: BaseRelayPool) -> None:
        if self.state is not SubscriptionState.IDLE:
            raise RuntimeError(f"Cannot start a subscription in state {self.state.value}")
        self._handle = pool.subscribe(self.filter, close_on_eose=False, groupable=False)
        self._handle.on_event(self._on_event)
        self.state = SubscriptionState.ACTIVE
        logger.debug("Subscribed for responses to %s", self.request.id[:8])

    def stop(self) -> None:
        """Stop receiving events. Calling it again is a no-op."""
        if self.state is SubscriptionState.STOPPED:
            return
        self.state = SubscriptionState.STOPPED
        handle, self._handle = self._handle, None
        if handle is not None:
            handle.stop()
        logger.debug("Stopped subscription for %s after %d response(s)", self.request.id[:8], self.received)

    def _on_event(self, event: Event) -> None:
        # The transport may still flush a buffered event after stop().
        if self.state is not SubscriptionState.ACTIVE:
            return
        self.received += 1
        self._feed.prepend(ResponseEvent.ingest(event))


class ResponseSubscriptionManager:
    def __init__(self, feed: EventFeed):
        self.feed = feed
        self._active: Subscription | None = None

    @property
    def active(self) -> Subscription | None:
        return self._active

    def subscribe(self, request: Event, pool: BaseRelayPool) -> Subscription:
        """Replace any live subscription with one for ``request``'s responses."""
        if self._active is not None:
            logger.debug("Replacing active subscription for %s", self._active.request.id[:8])
            self._active.stop()
            self._active = None
        subscription = Subscription(request, self.feed)
        subscription.start(pool)
        self._active = subscription
        return subscription

    def stop(self) -> None:
        if self._active is not None:
            self._active.stop()
            self._active = None
