"""Pay the invoice a worker attached to its response."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from dvmreview_core.events import PaymentState
from dvmreview_core.result import OperationResult

if TYPE_CHECKING:
    from dvmreview_core.capabilities.base import BaseWallet
    from dvmreview_core.events import ResponseEvent

logger = logging.getLogger(__name__)

WALLET_MISSING_MESSAGE = (
    "You need a WebLN or NWC enabled wallet to zap for these jobs! "
    "Configure `wallet` in .dvmreview.yml (for example an Alby connection, https://getalby.com)."
)


class PaymentDispatcher:
    def __init__(self, wallet: BaseWallet | None):
        self.wallet = wallet
        self._enabled = False
        self._tasks: set[asyncio.Task] = set()

    async def pay(self, response: ResponseEvent) -> OperationResult[PaymentState]:
        """Forward the response's invoice to the wallet and record the outcome on it.

        A response without an ``amount`` tag is not payable: nothing is sent
        and the result is OK with the response left UNPAID.
        """
        if self.wallet is None:
            return OperationResult.missing(WALLET_MISSING_MESSAGE)

        request = response.payment_request
        if request is None:
            logger.debug("Response %s carries no invoice; skipping payment.", response.id[:8])
            return OperationResult.ok(response.payment_state)

        response.payment_state = PaymentState.PENDING
        try:
            if not self._enabled:
                await self.wallet.enable()
                self._enabled = True
            receipt = await self.wallet.send_payment(request.invoice)
        except Exception as e:
            logger.warning("Payment for response %s failed: %s", response.id[:8], e)
            response.payment_state = PaymentState.FAILED
            response.payment_error = str(e)
            return OperationResult.failed(e, f"Payment failed: {e}")

        logger.info("Paid %s sats for response %s", request.amount_sats, response.id[:8])
        logger.debug("Wallet receipt: %s", receipt)
        response.payment_state = PaymentState.PAID
        return OperationResult.ok(PaymentState.PAID)

    def pay_in_background(self, response: ResponseEvent) -> asyncio.Task:
        """Schedule ``pay`` without awaiting it; the outcome still lands on ``response``."""
        task = asyncio.ensure_future(self.pay(response))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task
