"""Active identity, resolved from the external signer."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from dvmreview_core.capabilities.base import BaseSigner

logger = logging.getLogger(__name__)


class IdentityProvider:
    """Holds the session's public key once a signer hands it over.

    Resolution never raises: without a signer, or when the signer fails, the
    key simply stays unset and callers read that as "signing unavailable".
    """

    def __init__(self):
        self._public_key: str | None = None

    @property
    def public_key(self) -> str | None:
        return self._public_key

    @property
    def is_resolved(self) -> bool:
        return self._public_key is not None

    async def resolve(self, signer: BaseSigner | None) -> str | None:
        if self._public_key is not None:
            return self._public_key
        if signer is None:
            logger.debug("No signer available; identity stays unset.")
            return None
        try:
            pubkey = await signer.get_public_key()
        except Exception as e:
            logger.warning("Signer could not provide a public key: %s", e)
            return None
        if not pubkey:
            return None
        self._public_key = pubkey
        logger.debug("Resolved public key %s", pubkey)
        return pubkey

    def reset(self) -> None:
        """Forget the key so the next resolve() asks the signer again."""
        self._public_key = None
