from __future__ import annotations

from typing import Any


class FetchError(Exception):
    def __init__(
        self,
        message: str,
        *,
        url: str | None = None,
        status_code: int | None = None,
        payload: Any | None = None,
    ) -> None:
        super().__init__(message)
        self.url = url
        self.status_code = status_code
        self.payload = payload


class TransportError(FetchError):
    """Connection failure, timeout or non-throttling HTTP error status."""


class RateLimitExhausted(FetchError):
    def __init__(self, message: str, *, attempts: int, **kwargs: Any) -> None:
        super().__init__(message, **kwargs)
        self.attempts = attempts


class ParseError(FetchError):
    """Response body did not match the expected shape; ``payload`` holds the raw body."""


class MissingData(FetchError):
    """Well-formed but empty result set."""


__all__ = ["FetchError", "MissingData", "ParseError", "RateLimitExhausted", "TransportError"]
