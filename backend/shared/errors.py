"""
Error taxonomy for upstream source access.

TransientFetchError   : network/HTTP failure; retried by with_retry.
UpstreamShapeError    : payload no longer matches the expected schema; never
                        retried, adapters turn it into an empty result.

Rate-limiter waits are scheduling, not errors, and have no type here.
"""
from __future__ import annotations

from typing import Optional


class SourceError(Exception):
    """Base for failures attributable to a single upstream source."""

    retryable = False

    def __init__(self, source: str, message: str) -> None:
        self.source = source
        super().__init__(f"[{source}] {message}")


class TransientFetchError(SourceError):
    """Raised on transport errors and non-2xx responses."""

    retryable = True

    def __init__(
        self,
        source: str,
        url: str,
        status: Optional[int] = None,
        message: str = "",
        retryable: bool = True,
    ) -> None:
        self.url = url
        self.status = status
        self.retryable = retryable
        detail = message or (f"HTTP {status}" if status is not None else "request failed")
        super().__init__(source, f"{detail} ({url})")


class UpstreamShapeError(SourceError):
    """Raised when a payload cannot be parsed into the event model."""


class UnknownSourceError(LookupError):
    """Raised when a request names a source that is not registered."""

    def __init__(self, source: str) -> None:
        self.source = source
        super().__init__(f"unknown source: {source}")
