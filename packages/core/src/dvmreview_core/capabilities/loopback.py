"""In-process relay pool.

Stores every published event and hands it to each open subscription whose
filter matches, the way a relay would. No sockets are opened. Select it with
``transport: loopback`` for offline dry runs; it is also the transport the
test suite runs against.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from dvmreview_core.capabilities.base import BaseRelayPool, BaseSubscriptionHandle
from dvmreview_core.events import matches_filter

if TYPE_CHECKING:
    from dvmreview_core.events import Event

logger = logging.getLogger(__name__)


class LoopbackSubscription(BaseSubscriptionHandle):
    def __init__(self, pool: LoopbackRelayPool, flt: dict, close_on_eose: bool, groupable: bool):
        super().__init__(flt, close_on_eose=close_on_eose, groupable=groupable)
        self._pool = pool

    def _close(self) -> None:
        self._pool._subscriptions.discard(self)


class LoopbackRelayPool(BaseRelayPool):
    def __init__(self, relays: list[str], signer=None, unreachable: set[str] | None = None):
        super().__init__(relays, signer=signer)
        self.events: list[Event] = []
        self._subscriptions: set[LoopbackSubscription] = set()
        # Relays listed here fail to connect, for exercising partial connectivity.
        self._unreachable = set(unreachable or ())

    async def _connect_relay(self, url: str) -> None:
        await asyncio.sleep(0)
        if url in self._unreachable:
            raise ConnectionError(f"{url} is unreachable")

    def _open_subscription(self, flt: dict, close_on_eose: bool, groupable: bool) -> LoopbackSubscription:
        sub = LoopbackSubscription(self, flt, close_on_eose, groupable)
        self._subscriptions.add(sub)
        try:
            asyncio.get_running_loop().call_soon(self._replay, sub, list(self.events))
        except RuntimeError:
            self._replay(sub, list(self.events))
        return sub

    async def _publish(self, event: Event) -> set[str]:
        self.events.append(event)
        for sub in list(self._subscriptions):
            if matches_filter(event, sub.filter):
                sub.deliver(event)
        return set(self.connected)

    async def _close(self) -> None:
        for sub in list(self._subscriptions):
            sub.stop()

    def _replay(self, sub: LoopbackSubscription, stored: list[Event]) -> None:
        for event in stored:
            if matches_filter(event, sub.filter):
                sub.deliver(event)
