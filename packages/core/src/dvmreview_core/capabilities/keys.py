"""Local-key signer backed by ``nostr_sdk.Keys``.

Point ``signer`` at ``dvmreview_core.capabilities.keys:build`` to sign with a
secret key (hex or nsec) read from ``secret_key`` in the config or from the
DVMREVIEW_SECRET_KEY environment variable.
"""

from __future__ import annotations

import json
import logging
import os
from typing import TYPE_CHECKING

from nostr_sdk import Keys, UnsignedEvent

from dvmreview_core.capabilities.base import BaseSigner
from dvmreview_core.errors import CapabilityError

if TYPE_CHECKING:
    from dvmreview_core.events import Event

logger = logging.getLogger(__name__)

SECRET_KEY_ENV = "DVMREVIEW_SECRET_KEY"


class KeysSigner(BaseSigner):
    def __init__(self, keys: Keys):
        self.keys = keys

    async def get_public_key(self) -> str:
        return self.keys.public_key().to_hex()

    async def sign_event(self, event: Event) -> str:
        data = event.with_id().to_dict()
        data.pop("sig")
        signed = UnsignedEvent.from_json(json.dumps(data)).sign_with_keys(self.keys)
        return json.loads(signed.as_json())["sig"]


def build(config: dict) -> KeysSigner:
    secret = config.get("secret_key") or os.environ.get(SECRET_KEY_ENV)
    if not secret:
        logger.warning("No secret key configured; signing with a throwaway key for this run.")
        return KeysSigner(Keys.generate())
    try:
        return KeysSigner(Keys.parse(secret))
    except Exception as e:
        raise CapabilityError(f"Invalid secret key: {e}") from e
