"""Abstract capabilities the protocol client orchestrates.

dvmreview never signs events, speaks the relay wire protocol or moves money
itself. Those jobs belong to three external capabilities:

    BaseSigner     get_public_key() / sign_event()      (NIP-07 style signer)
    BaseRelayPool  connect() / subscribe() / publish()  (relay transport)
    BaseWallet     enable() / send_payment()            (WebLN / NWC wallet)

BaseRelayPool implements the connection fan-out once. Subclasses only provide
``_connect_relay`` (one relay, one attempt), ``_open_subscription`` and
``_publish``, so every transport reports connectivity the same way.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from collections import defaultdict
from typing import TYPE_CHECKING, Callable

if TYPE_CHECKING:
    from dvmreview_core.events import Event

logger = logging.getLogger(__name__)

EventCallback = Callable[["Event"], None]


class BaseSigner(ABC):
    @abstractmethod
    async def get_public_key(self) -> str:
        """Return the hex public key of the active identity."""

    @abstractmethod
    async def sign_event(self, event: Event) -> str:
        """Return the signature over ``event.id``.

        Should raise on failure (user rejected, extension locked); the
        publisher turns the exception into a failed result.
        """


class BaseWallet(ABC):
    @abstractmethod
    async def enable(self) -> None:
        """Ask the wallet for permission to send payments."""

    @abstractmethod
    async def send_payment(self, invoice: str) -> dict:
        """Pay a bolt11 invoice and return the wallet's receipt."""


class BaseSubscriptionHandle(ABC):
    """A live filter on a relay pool delivering events to registered callbacks."""

    def __init__(self, flt: dict, close_on_eose: bool = False, groupable: bool = False):
        self.filter = flt
        self.close_on_eose = close_on_eose
        self.groupable = groupable
        self.closed = False
        self._callbacks: list[EventCallback] = []

    def on_event(self, callback: EventCallback) -> None:
        self._callbacks.append(callback)

    def deliver(self, event: Event) -> None:
        if self.closed:
            return
        for callback in list(self._callbacks):
            callback(event)

    def stop(self) -> None:
        """Close the handle. Safe to call more than once."""
        if self.closed:
            return
        self.closed = True
        self._callbacks.clear()
        self._close()

    @abstractmethod
    def _close(self) -> None:
        """Release the transport-side subscription (send CLOSE, drop listeners)."""


class BaseRelayPool(ABC):
    """A set of relays behind one publish/subscribe interface.

    Emits ``relay:connect`` (with the relay url) each time a single relay
    connects, and ``connect`` once the initial fan-out settles.
    """

    def __init__(self, relays: list[str], signer: BaseSigner | None = None):
        self.relays = list(relays)
        self.signer = signer
        self.connected: set[str] = set()
        self._listeners: dict[str, list[Callable]] = defaultdict(list)
        self._pending: set[asyncio.Task] = set()

    # ------------------------------------------------------------------ #
    # Public interface                                                     #
    # ------------------------------------------------------------------ #

    def on(self, event_name: str, callback: Callable) -> None:
        self._listeners[event_name].append(callback)

    async def connect(self, timeout_ms: int = 2500) -> None:
        """Start connecting to every relay and wait up to ``timeout_ms``.

        The timeout does not cancel anything: relays still connecting when
        it expires keep going in the background and announce themselves
        through ``relay:connect`` when they get there.
        """
        tasks = [asyncio.ensure_future(self._connect_one(url)) for url in self.relays]
        self._pending.update(tasks)
        for task in tasks:
            task.add_done_callback(self._pending.discard)
        if tasks:
            await asyncio.wait(tasks, timeout=timeout_ms / 1000)
        logger.debug("Relay pool settled: %d/%d connected", len(self.connected), len(self.relays))
        self._emit("connect")

    def subscribe(self, flt: dict, close_on_eose: bool = False, groupable: bool = False) -> BaseSubscriptionHandle:
        return self._open_subscription(flt, close_on_eose=close_on_eose, groupable=groupable)

    async def publish(self, event: Event) -> set[str]:
        """Publish a signed event and return the relays that accepted it."""
        if not event.is_signed:
            raise ValueError("Refusing to publish an unsigned event.")
        if not self.connected:
            raise ConnectionError("Not connected to any relay.")
        return await self._publish(event)

    async def close(self) -> None:
        for task in list(self._pending):
            task.cancel()
        self._pending.clear()
        self.connected.clear()
        await self._close()

    def stats(self) -> dict:
        return {"total": len(self.relays), "connected": len(self.connected)}

    # ------------------------------------------------------------------ #
    # Abstract: implement in each transport                               #
    # ------------------------------------------------------------------ #

    @abstractmethod
    async def _connect_relay(self, url: str) -> None:
        """Open one relay connection. Raise on failure."""

    @abstractmethod
    def _open_subscription(self, flt: dict, close_on_eose: bool, groupable: bool) -> BaseSubscriptionHandle:
        """Create a transport subscription for ``flt``."""

    @abstractmethod
    async def _publish(self, event: Event) -> set[str]:
        """Send ``event`` to the connected relays."""

    async def _close(self) -> None:
        """Release transport resources. Default is a no-op."""

    # ------------------------------------------------------------------ #
    # Shared implementations                                               #
    # ------------------------------------------------------------------ #

    async def _connect_one(self, url: str) -> None:
        try:
            await self._connect_relay(url)
        except Exception as e:
            logger.warning("Could not connect to relay %s: %s", url, e)
            return
        self.connected.add(url)
        self._emit("relay:connect", url)

    def _emit(self, event_name: str, *args) -> None:
        for callback in list(self._listeners.get(event_name, [])):
            try:
                callback(*args)
            except Exception:
                logger.exception("Listener for %r failed", event_name)
