from __future__ import annotations

import json
from datetime import date, datetime, timezone
from typing import Any, cast

import pytest
import requests

from config import AppSettings
from domain.currency import CurrencyRateGraph
from services.errors import MissingData, RateLimitExhausted, TransportError
from services.polygon_client import (
    PolygonClient,
    PolygonDetailsFetcher,
    build_polygon_client,
    is_polygon_rate_limited,
)
from services.rate_limited_client import PermitPool, RateLimitedClient

FETCHED_AT = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)

DETAILS = {
    "status": "OK",
    "request_id": "abc",
    "results": {
        "ticker": "AAPL",
        "name": "Apple Inc.",
        "market_cap": 2_000_000_000.0,
        "currency_name": "usd",
        "primary_exchange": "XNAS",
        "active": True,
        "homepage_url": "https://www.apple.com",
        "total_employees": 161000,
        "sic_code": "3571",
    },
}


class _StubResponse:
    def __init__(self, status_code: int, text: str) -> None:
        self.status_code = status_code
        self.text = text


class _StubSession:
    def __init__(self, responses: list[tuple[int, str]]) -> None:
        self._responses = list(responses)
        self.requests: list[dict[str, Any]] = []

    def request(
        self,
        method: str,
        url: str,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        timeout: float | None = None,
    ) -> _StubResponse:
        self.requests.append({"url": url, "params": params, "headers": headers})
        status_code, text = self._responses.pop(0) if len(self._responses) > 1 else self._responses[0]
        return _StubResponse(status_code, text)


def _polygon(stub: _StubSession) -> PolygonClient:
    client = RateLimitedClient(
        api_key="poly-key",
        base_url="https://api.polygon.example",
        permits=PermitPool(2, settlement_delay=0),
        rate_limit_predicate=is_polygon_rate_limited,
        auth="bearer",
        max_attempts=2,
        session=cast(requests.Session, stub),
    )
    return PolygonClient(client)


@pytest.fixture(autouse=True)
def _no_backoff(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr("services.rate_limited_client.sleep", lambda _: None)


def test_get_details_uses_bearer_token_and_date() -> None:
    stub = _StubSession([(200, json.dumps(DETAILS))])

    details = _polygon(stub).get_details("AAPL", date(2024, 1, 2))

    assert details.name == "Apple Inc."
    assert details.market_cap == 2_000_000_000.0
    assert stub.requests == [
        {
            "url": "https://api.polygon.example/v3/reference/tickers/AAPL",
            "params": {"date": "2024-01-02"},
            "headers": {"Authorization": "Bearer poly-key"},
        }
    ]


def test_error_status_is_not_retried() -> None:
    stub = _StubSession([(403, '{"status": "NOT_AUTHORIZED"}')])

    with pytest.raises(TransportError) as exc_info:
        _polygon(stub).get_details("AAPL")

    assert exc_info.value.status_code == 403
    assert len(stub.requests) == 1


def test_only_http_429_counts_as_throttling() -> None:
    stub = _StubSession([(429, "")])

    with pytest.raises(RateLimitExhausted):
        _polygon(stub).get_details("AAPL")

    assert len(stub.requests) == 2
    assert not is_polygon_rate_limited(200, "Limit Reach")


def test_missing_results_raise_missing_data() -> None:
    stub = _StubSession([(200, '{"status": "OK", "request_id": "x"}')])

    with pytest.raises(MissingData):
        _polygon(stub).get_details("NOPE")


def test_polygon_client_requires_bearer_auth() -> None:
    client = RateLimitedClient(
        api_key="k",
        base_url="https://api.polygon.example",
        session=cast(requests.Session, _StubSession([(200, "{}")])),
    )

    with pytest.raises(ValueError):
        PolygonClient(client)


def test_details_fetcher_builds_converted_record() -> None:
    stub = _StubSession([(200, json.dumps(DETAILS))])
    fetcher = PolygonDetailsFetcher(_polygon(stub), clock=lambda: FETCHED_AT)

    record = fetcher.fetch("AAPL", CurrencyRateGraph({"EUR/USD": 1.25}))

    assert record.currency == "USD"
    assert record.exchange == "XNAS"
    assert record.employees == "161000"
    assert record.market_cap_usd == 2_000_000_000.0
    assert record.market_cap_eur == pytest.approx(1_600_000_000.0)
    assert record.extra == {"sic_code": "3571"}
    assert record.fetched_at == FETCHED_AT


def test_build_polygon_client_requires_api_key() -> None:
    settings = AppSettings(financialmodelingprep_api_key="k", polygon_api_key=None)

    with pytest.raises(ValueError, match="POLYGON_API_KEY"):
        build_polygon_client(settings)
