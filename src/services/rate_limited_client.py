from __future__ import annotations

import logging
import threading
from functools import cache
from time import sleep
from typing import Any, Callable, Literal, TypeVar

import requests
from pydantic import TypeAdapter, ValidationError
from requests.adapters import HTTPAdapter
from urllib3.util import Retry

from .errors import ParseError, RateLimitExhausted, TransportError

logger = logging.getLogger(__name__)

T = TypeVar("T")

# FMP answers throttled requests with HTTP 200 and this text in the body.
FMP_RATE_LIMIT_MARKER = "Limit Reach"

RateLimitPredicate = Callable[[int, str], bool]


def is_fmp_rate_limited(status_code: int, body: str) -> bool:
    return status_code == 429 or FMP_RATE_LIMIT_MARKER in body


@cache
def _type_adapter(response_type: Any) -> TypeAdapter[Any]:
    return TypeAdapter(response_type)


class PermitPool:
    """Fixed pool of request permits.

    A permit returned through :meth:`release_after_settlement` only becomes
    available again once ``settlement_delay`` seconds have passed, which keeps
    throughput under the provider's per-minute quota without tracking request
    timestamps.
    """

    def __init__(self, size: int = 300, *, settlement_delay: float = 0.2) -> None:
        if size <= 0:
            msg = "size must be > 0"
            raise ValueError(msg)
        if settlement_delay < 0:
            msg = "settlement_delay must be >= 0"
            raise ValueError(msg)

        self.size = size
        self.settlement_delay = settlement_delay
        self._semaphore = threading.BoundedSemaphore(size)

    def acquire(self, timeout: float | None = None) -> bool:
        return self._semaphore.acquire(timeout=timeout)

    def release(self) -> None:
        self._semaphore.release()

    def release_after_settlement(self) -> None:
        if self.settlement_delay == 0:
            self.release()
            return
        timer = threading.Timer(self.settlement_delay, self.release)
        timer.daemon = True
        timer.start()


class RateLimitedClient:
    """HTTP client for a quota-constrained provider.

    Every request holds one permit from a shared :class:`PermitPool`. Throttled
    responses (as decided by ``rate_limit_predicate``) are retried with
    exponential backoff; the full request, permit acquisition included, is
    repeated on each attempt.
    """

    def __init__(
        self,
        *,
        api_key: str,
        base_url: str,
        permits: PermitPool | None = None,
        timeout: float = 10.0,
        max_attempts: int = 3,
        initial_backoff_seconds: float = 5.0,
        rate_limit_predicate: RateLimitPredicate = is_fmp_rate_limited,
        auth: Literal["query", "bearer"] = "query",
        api_key_param: str = "apikey",
        session: requests.Session | None = None,
    ) -> None:
        if not api_key:
            msg = "api_key must be provided"
            raise ValueError(msg)
        if auth not in ("query", "bearer"):
            msg = f"Unsupported auth mode {auth!r}"
            raise ValueError(msg)
        if max_attempts < 1:
            msg = "max_attempts must be >= 1"
            raise ValueError(msg)
        if initial_backoff_seconds < 0:
            msg = "initial_backoff_seconds must be >= 0"
            raise ValueError(msg)

        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.permits = permits or PermitPool()
        self.timeout = timeout
        self.max_attempts = max_attempts
        self.initial_backoff_seconds = initial_backoff_seconds
        self.rate_limit_predicate = rate_limit_predicate
        self.auth = auth
        self.api_key_param = api_key_param

        if session is not None:
            self._session = session
        else:
            self._session = requests.Session()
            # Throttling is retried above the transport layer; connections are sized to the permit pool.
            adapter = HTTPAdapter(pool_maxsize=self.permits.size, max_retries=Retry(total=0, raise_on_status=False))
            self._session.mount("https://", adapter)
            self._session.mount("http://", adapter)

    def fetch(self, path: str, response_type: type[T] | Any, *, params: dict[str, Any] | None = None) -> T:
        url = f"{self.base_url}{path}"
        query = dict(params or {})
        headers: dict[str, str] = {}
        if self.auth == "bearer":
            headers["Authorization"] = f"Bearer {self.api_key}"
        else:
            query[self.api_key_param] = self.api_key
        adapter = _type_adapter(response_type)

        attempt = 0
        delay = self.initial_backoff_seconds
        while True:
            attempt += 1
            status_code, body = self._send(url, query, headers)

            if self.rate_limit_predicate(status_code, body):
                if attempt >= self.max_attempts:
                    raise RateLimitExhausted(
                        f"Rate limit reached after {attempt} attempts",
                        attempts=attempt,
                        url=url,
                        status_code=status_code,
                        payload=body,
                    )
                logger.warning(
                    "Rate limit hit for %s (attempt %d/%d). Retrying in %.1f seconds",
                    path,
                    attempt,
                    self.max_attempts,
                    delay,
                )
                sleep(delay)
                delay *= 2
                continue

            if not 200 <= status_code < 300:
                raise TransportError(
                    f"Provider responded with HTTP {status_code}",
                    url=url,
                    status_code=status_code,
                    payload=body,
                )

            try:
                return adapter.validate_json(body)
            except ValidationError as exc:
                logger.warning("Failed to parse response for %s: %s", path, exc)
                raise ParseError(
                    f"Failed to parse response for {path}",
                    url=url,
                    status_code=status_code,
                    payload=body,
                ) from exc

    def _send(self, url: str, params: dict[str, Any], headers: dict[str, str]) -> tuple[int, str]:
        self.permits.acquire()
        try:
            response = self._session.request("GET", url, params=params, headers=headers, timeout=self.timeout)
            body = response.text
        except requests.RequestException as exc:
            self.permits.release()
            status_code = getattr(getattr(exc, "response", None), "status_code", None)
            raise TransportError("Provider request failed", url=url, status_code=status_code) from exc
        except BaseException:
            self.permits.release()
            raise

        self.permits.release_after_settlement()
        return response.status_code, body


__all__ = [
    "FMP_RATE_LIMIT_MARKER",
    "PermitPool",
    "RateLimitPredicate",
    "RateLimitedClient",
    "is_fmp_rate_limited",
]
