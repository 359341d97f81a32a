import os
from pathlib import Path
from typing import Optional

import yaml

DEFAULT_PREAMBLE = "Here is the git diff of my code.  Please provide me with a code review:"

DEFAULT_CONFIG: dict = {
    "relays": [
        "wss://relay.damus.io",
        "wss://nos.lol",
        "wss://relay.nostr.band",
    ],
    "connect_timeout_ms": 2500,
    "job_type": "code-review",
    "bid": "10000",
    "preamble": DEFAULT_PREAMBLE,
    "transport": None,  # "loopback" or "package.module:factory"
    "signer": None,  # "package.module:factory" returning a BaseSigner
    "wallet": None,  # "package.module:factory" returning a BaseWallet
    "store": "noop",
    "store_path": ".dvmreview.db",
    "exclude": [],  # fnmatch patterns or directory names to leave out of the diff
    "wait_seconds": 60,
}

_LIST_KEYS = ("relays", "exclude")


def load_config(config_path: str = ".dvmreview.yml", cli_overrides: Optional[dict] = None) -> dict:
    """
    Load configuration by merging (in order of precedence):
      1. Built-in defaults
      2. .dvmreview.yml in the current directory
      3. Environment variables (DVMREVIEW_RELAYS, DVMREVIEW_TRANSPORT, DVMREVIEW_SIGNER, DVMREVIEW_WALLET)
      4. CLI argument overrides
    """
    config = {**DEFAULT_CONFIG}
    for key in _LIST_KEYS:
        config[key] = list(DEFAULT_CONFIG[key])

    path = Path(config_path)
    if path.exists():
        with open(path) as f:
            file_config = yaml.safe_load(f) or {}
        config.update(file_config)

    relays_env = os.environ.get("DVMREVIEW_RELAYS")
    if relays_env:
        config["relays"] = [url.strip() for url in relays_env.split(",") if url.strip()]
    if os.environ.get("DVMREVIEW_TRANSPORT"):
        config["transport"] = os.environ["DVMREVIEW_TRANSPORT"]
    if os.environ.get("DVMREVIEW_SIGNER"):
        config["signer"] = os.environ["DVMREVIEW_SIGNER"]
    if os.environ.get("DVMREVIEW_WALLET"):
        config["wallet"] = os.environ["DVMREVIEW_WALLET"]

    if cli_overrides:
        for key, value in cli_overrides.items():
            if value is not None:
                config[key] = value

    # A single relay written as a scalar in YAML is still a list of relays.
    if isinstance(config.get("relays"), str):
        config["relays"] = [config["relays"]]
    config["relays"] = _unique(config.get("relays") or [])

    return config


def _unique(urls: list[str]) -> list[str]:
    seen: set[str] = set()
    result = []
    for url in urls:
        normalized = url.rstrip("/")
        if normalized not in seen:
            seen.add(normalized)
            result.append(normalized)
    return result
