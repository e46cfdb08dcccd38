"""Runtime configuration read from environment variables.

Environment Variables:
    EPCIS_REMOTE_URL (str): Base URL of the remote conversion API
        (default ``https://tools.openepcis.io/api``).
    EPCIS_REMOTE_ENABLED (bool): ``false`` disables the remote backend so every
        call runs locally (default ``true``).
    EPCIS_REMOTE_TIMEOUT (float): Seconds allowed per remote call (default 20).
    EPCIS_REMOTE_PROBE_URL (str): URL fetched by the connectivity probe
        (default ``https://tools.openepcis.io``).
    EPCIS_STYLESHEET_URL (str): XSLT stylesheet for the declarative migrator.
        Unset means the tree-rewriting migrator is used.
    EPCIS_CACHE_DIR (str): Base directory for downloaded assets
        (default ``~/.cache/epcis-transformer``).
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Optional

logger = logging.getLogger(__name__)

DEFAULT_REMOTE_URL = "https://tools.openepcis.io/api"
DEFAULT_PROBE_URL = "https://tools.openepcis.io"
DEFAULT_REMOTE_TIMEOUT = 20.0

_FALSE_VALUES = {"0", "false", "no", "off"}


@dataclass
class TransformerSettings:
    """Settings consumed by :func:`epcis_transformer.coordinator.create_coordinator`."""

    remote_url: str = DEFAULT_REMOTE_URL
    remote_enabled: bool = True
    remote_timeout: float = DEFAULT_REMOTE_TIMEOUT
    probe_url: str = DEFAULT_PROBE_URL
    stylesheet_url: Optional[str] = None
    cache_dir: Optional[str] = None


def _get_timeout() -> float:
    raw = os.getenv("EPCIS_REMOTE_TIMEOUT")
    if not raw:
        return DEFAULT_REMOTE_TIMEOUT
    try:
        value = float(raw)
    except ValueError:
        logger.warning(
            f"Ignoring invalid EPCIS_REMOTE_TIMEOUT={raw!r}; using {DEFAULT_REMOTE_TIMEOUT}"
        )
        return DEFAULT_REMOTE_TIMEOUT
    if value <= 0:
        logger.warning(
            f"EPCIS_REMOTE_TIMEOUT must be positive; using {DEFAULT_REMOTE_TIMEOUT}"
        )
        return DEFAULT_REMOTE_TIMEOUT
    return value


def load_settings() -> TransformerSettings:
    """Build :class:`TransformerSettings` from the current environment."""
    enabled = os.getenv("EPCIS_REMOTE_ENABLED", "true").strip().lower()
    return TransformerSettings(
        remote_url=os.getenv("EPCIS_REMOTE_URL", DEFAULT_REMOTE_URL).rstrip("/"),
        remote_enabled=enabled not in _FALSE_VALUES,
        remote_timeout=_get_timeout(),
        probe_url=os.getenv("EPCIS_REMOTE_PROBE_URL", DEFAULT_PROBE_URL),
        stylesheet_url=os.getenv("EPCIS_STYLESHEET_URL") or None,
        cache_dir=os.getenv("EPCIS_CACHE_DIR") or None,
    )
