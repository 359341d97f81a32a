"""Relay connection management and the session-wide connectivity status."""

from __future__ import annotations

import logging
from enum import Enum
from typing import TYPE_CHECKING

from dvmreview_core.result import OperationResult

if TYPE_CHECKING:
    from dvmreview_core.capabilities.base import BaseRelayPool, BaseSigner
    from dvmreview_core.capabilities.loader import RelayPoolFactory

logger = logging.getLogger(__name__)

DEFAULT_CONNECT_TIMEOUT_MS = 2500


class ConnectionStatus(str, Enum):
    CONNECTING = "Connecting"
    CONNECTED = "Connected"
    ERROR = "Error"


class RelayConnectionManager:
    """Owns the relay pool (the client context) for one session.

    ``connect`` may be called again whenever the relay list changes; the
    previous pool is closed before the new one is built so there is never
    more than one pool holding open connections.
    """

    def __init__(self, pool_factory: RelayPoolFactory | None, timeout_ms: int = DEFAULT_CONNECT_TIMEOUT_MS):
        self._pool_factory = pool_factory
        self.timeout_ms = timeout_ms
        self.status = ConnectionStatus.CONNECTING
        self._pool: BaseRelayPool | None = None

    @property
    def pool(self) -> BaseRelayPool | None:
        return self._pool

    @property
    def connected_relays(self) -> list[str]:
        if self._pool is None:
            return []
        return sorted(self._pool.connected)

    async def connect(self, relays: list[str], signer: BaseSigner | None = None) -> OperationResult[BaseRelayPool]:
        await self.close()
        self.status = ConnectionStatus.CONNECTING
        if self._pool_factory is None:
            logger.debug("connect() called without a relay transport; nothing to do.")
            return OperationResult.missing(
                "No relay transport configured. Set `transport` in .dvmreview.yml ('loopback' for an offline dry run)."
            )
        pool = None
        try:
            pool = self._pool_factory(relays, signer=signer)
            pool.on("relay:connect", self._on_relay_connect)
            pool.on("connect", lambda: logger.debug("Relay pool connected: %s", pool.stats()))
            self._pool = pool
            await pool.connect(self.timeout_ms)
        except Exception as e:
            logger.error("Relay connection failed: %s", e)
            self.status = ConnectionStatus.ERROR
            self._pool = None
            if pool is not None:
                await pool.close()
            return OperationResult.failed(e, f"Could not connect to relays: {e}")
        return OperationResult.ok(pool)

    async def close(self) -> None:
        pool, self._pool = self._pool, None
        if pool is not None:
            await pool.close()

    def _on_relay_connect(self, url: str) -> None:
        self.status = ConnectionStatus.CONNECTED
        logger.info("Connected to relay %s", url)
