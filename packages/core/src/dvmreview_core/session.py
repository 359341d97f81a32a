"""Session context tying the protocol components together.

A Session owns every resource that lives for the length of one run: the
signer and wallet capabilities, the resolved identity, the relay pool, the
single active response subscription and the event feed. Components receive
the session instead of reaching for globals, and anything that replaces a
resource (a new pool, a new subscription) releases the previous one first.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from dvmreview_core.capabilities.loader import load_signer, load_wallet, relay_pool_factory
from dvmreview_core.identity import IdentityProvider
from dvmreview_core.payment import PaymentDispatcher
from dvmreview_core.publisher import JobRequestPublisher
from dvmreview_core.relay import DEFAULT_CONNECT_TIMEOUT_MS, ConnectionStatus, RelayConnectionManager
from dvmreview_core.subscription import EventFeed, ResponseSubscriptionManager

if TYPE_CHECKING:
    from dvmreview_core.capabilities.base import BaseRelayPool, BaseSigner, BaseWallet
    from dvmreview_core.capabilities.loader import RelayPoolFactory
    from dvmreview_core.events import Event, PaymentState, ResponseEvent
    from dvmreview_core.result import OperationResult

logger = logging.getLogger(__name__)


class Session:
    def __init__(
        self,
        config: dict,
        signer: BaseSigner | None = None,
        wallet: BaseWallet | None = None,
        pool_factory: RelayPoolFactory | None = None,
    ):
        self.config = config
        self.signer = signer
        self.wallet = wallet
        self.identity = IdentityProvider()
        self.relays = RelayConnectionManager(
            pool_factory or relay_pool_factory(config),
            timeout_ms=config.get("connect_timeout_ms", DEFAULT_CONNECT_TIMEOUT_MS),
        )
        self.feed = EventFeed()
        self.subscriptions = ResponseSubscriptionManager(self.feed)
        self.publisher = JobRequestPublisher(self)
        self.payments = PaymentDispatcher(wallet)

    @classmethod
    def from_config(cls, config: dict) -> Session:
        """Build a session with the signer, wallet and transport named in config."""
        return cls(config, signer=load_signer(config), wallet=load_wallet(config))

    @property
    def status(self) -> ConnectionStatus:
        return self.relays.status

    async def start(self) -> OperationResult[BaseRelayPool]:
        """Resolve the identity and connect to the configured relays."""
        await self.identity.resolve(self.signer)
        return await self.connect(self.config.get("relays", []))

    async def connect(self, relays: list[str]) -> OperationResult[BaseRelayPool]:
        # A new pool invalidates the subscription opened on the old one.
        self.subscriptions.stop()
        return await self.relays.connect(relays, signer=self.signer)

    async def submit(self, diff_text: str) -> OperationResult[Event]:
        return await self.publisher.submit(diff_text)

    async def pay(self, response: ResponseEvent) -> OperationResult[PaymentState]:
        return await self.payments.pay(response)

    async def close(self) -> None:
        self.subscriptions.stop()
        await self.relays.close()

    async def __aenter__(self) -> Session:
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()
