from __future__ import annotations

from typing import cast

import pytest

from services.errors import RateLimitExhausted
from services.exchange_rates import FALLBACK_USD_RATES, ExchangeRateService, rates_from_quotes
from services.fmp_client import FMPClient
from services.fmp_types import ForexQuote


class _StubFMPClient:
    def __init__(self, quotes: list[ForexQuote] | None = None, *, error: Exception | None = None) -> None:
        self._quotes = quotes or []
        self._error = error
        self.calls = 0

    def get_exchange_rates(self) -> list[ForexQuote]:
        self.calls += 1
        if self._error is not None:
            raise self._error
        return self._quotes


def test_rates_from_quotes_skips_unusable_rows() -> None:
    quotes = [
        ForexQuote(name="EUR/USD", price=1.1),
        ForexQuote(name="GBP/USD", price=None),
        ForexQuote(name="USDJPY", price=150.0),
        ForexQuote(name="USD/USD", price=1.0),
        ForexQuote(name="CHF/USD", price=0.0),
        ForexQuote(symbol="JPYUSD", price=0.0067),
    ]

    assert rates_from_quotes(quotes) == {"EUR/USD": 1.1}


def test_snapshot_uses_live_quotes() -> None:
    quotes = [ForexQuote(name="EUR/USD", price=1.1), ForexQuote(name="USD/JPY", price=150.0)]
    client = _StubFMPClient(quotes)

    snapshot = ExchangeRateService(cast(FMPClient, client)).snapshot()

    assert not snapshot.is_fallback
    assert snapshot.quotes == quotes
    assert snapshot.graph.convert(100.0, "EUR", "USD") == pytest.approx(110.0)
    assert client.calls == 1


def test_snapshot_falls_back_when_fetch_fails() -> None:
    client = _StubFMPClient(error=RateLimitExhausted("limit", attempts=3))

    snapshot = ExchangeRateService(cast(FMPClient, client)).snapshot()

    assert snapshot.is_fallback
    assert snapshot.quotes == []
    assert snapshot.graph.rate("EUR", "USD") == FALLBACK_USD_RATES["EUR/USD"]


def test_snapshot_falls_back_when_no_usable_rates() -> None:
    client = _StubFMPClient([ForexQuote(name="broken", price=1.0)])

    snapshot = ExchangeRateService(cast(FMPClient, client), fallback_rates={"EUR/USD": 2.0}).snapshot()

    assert snapshot.is_fallback
    assert snapshot.graph.convert(1.0, "EUR", "USD") == 2.0


def test_rates_from_quotes_skips_non_finite_prices() -> None:
    quotes = [ForexQuote(name="EUR/USD", price=float("inf")), ForexQuote(name="GBP/USD", price=1.25)]

    assert rates_from_quotes(quotes) == {"GBP/USD": 1.25}
