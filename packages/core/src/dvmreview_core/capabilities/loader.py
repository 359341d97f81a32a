"""Resolve signer, wallet and transport capabilities from configuration.

Config values are dotted factory paths such as ``my_signer.nip46:build``. The
factory is called with the loaded config and must return an instance of the
matching base class. ``None`` means the capability is absent, which the core
treats as "unavailable" rather than as an error.
"""

from __future__ import annotations

import importlib
import logging
from typing import Callable

from dvmreview_core.capabilities.base import BaseRelayPool, BaseSigner, BaseWallet
from dvmreview_core.errors import CapabilityError

logger = logging.getLogger(__name__)

RelayPoolFactory = Callable[..., BaseRelayPool]


def import_factory(path: str) -> Callable:
    module_name, _, attr = path.partition(":")
    if not module_name or not attr:
        raise CapabilityError(f"Capability path must look like 'package.module:factory', got {path!r}")
    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        raise CapabilityError(f"Cannot import {module_name!r} for capability {path!r}: {e}") from e
    try:
        return getattr(module, attr)
    except AttributeError:
        raise CapabilityError(f"{module_name!r} has no attribute {attr!r}") from None


def load_capability(path: str | None, config: dict, expected: type | None = None):
    """Build the capability at ``path``, or return None when it is not configured."""
    if not path:
        return None
    factory = import_factory(path)
    instance = factory(config)
    if expected is not None and not isinstance(instance, expected):
        raise CapabilityError(f"{path} returned {type(instance).__name__}, expected a {expected.__name__}")
    logger.debug("Loaded capability %s from %s", type(instance).__name__, path)
    return instance


def load_signer(config: dict) -> BaseSigner | None:
    return load_capability(config.get("signer"), config, BaseSigner)


def load_wallet(config: dict) -> BaseWallet | None:
    return load_capability(config.get("wallet"), config, BaseWallet)


def relay_pool_factory(config: dict) -> RelayPoolFactory | None:
    """Return a callable ``(relays, signer) -> BaseRelayPool`` for the configured transport.

    Returns None when no transport is configured. The in-process loopback
    pool is only used when ``transport: loopback`` is set explicitly.
    """
    transport = config.get("transport")
    if not transport:
        return None
    if transport == "loopback":
        from dvmreview_core.capabilities.loopback import LoopbackRelayPool

        return LoopbackRelayPool

    factory = import_factory(transport)

    def _build(relays: list[str], signer: BaseSigner | None = None) -> BaseRelayPool:
        return factory(relays, signer=signer, config=config)

    return _build
