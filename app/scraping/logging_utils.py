"""
Structured logging helpers for traffic extraction.

Every event is one JSON object per line so batch runs can be grepped by
``event`` and correlated by domain.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Sequence
from typing import Any

DOMAIN_SAMPLE_SIZE = 5


def domain_sample(domains: Sequence[str], limit: int = DOMAIN_SAMPLE_SIZE) -> str:
    """
    Render a domain list for a log field, e.g. ``a.com,b.com (+3 more)``.
    """

    shown = ",".join(domains[:limit])
    hidden = len(domains) - limit
    return f"{shown} (+{hidden} more)" if hidden > 0 else shown


def log_event(logger: logging.Logger, level: int, event: str, **fields: Any) -> None:
    """
    Emit ``{"event": ..., **fields}`` as compact JSON with sorted keys.
    Skips serialization when `level` is disabled for `logger`.
    """

    if not logger.isEnabledFor(level):
        return
    logger.log(level, json.dumps({"event": event, **fields}, default=str, sort_keys=True))
