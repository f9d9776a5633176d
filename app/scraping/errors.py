"""
Exceptions raised by the traffic extraction engine.
"""

from __future__ import annotations


class TrafficScrapeError(Exception):
    """Base exception for recoverable sub-batch extraction failures."""


class RenderTimeoutError(TrafficScrapeError):
    """Raised when navigating to the upstream page exceeds its time bound."""


class UpstreamUnavailableError(TrafficScrapeError):
    """Raised when the browser cannot be launched or the upstream cannot be reached."""


class TrafficRequestError(ValueError):
    """Base exception for invalid batch requests."""


class EmptyDomainListError(TrafficRequestError):
    """Raised when a batch request carries no usable domains."""


class BatchSizeError(TrafficRequestError):
    """Raised when more domains than the upstream limit are sent in one render."""
