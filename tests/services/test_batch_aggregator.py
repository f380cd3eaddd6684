from __future__ import annotations

import threading
import time
from datetime import datetime, timezone
from typing import cast

import pytest

from domain.currency import CurrencyRateGraph
from domain.instrument import InstrumentRecord
from services.batch_aggregator import BatchAggregator
from services.errors import MissingData
from services.fmp_client import FMPClient
from services.fmp_types import CompanyProfile
from services.instrument_fetcher import InstrumentFetcher

FETCHED_AT = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


class _StubFetcher:
    def __init__(self, failing: set[str] | None = None, *, delay: float = 0.0) -> None:
        self.failing = failing or set()
        self.delay = delay
        self._lock = threading.Lock()
        self.in_flight = 0
        self.max_in_flight = 0
        self.seen_rates: list[CurrencyRateGraph] = []

    def fetch(self, ticker: str, rates: CurrencyRateGraph) -> InstrumentRecord:
        with self._lock:
            self.in_flight += 1
            self.max_in_flight = max(self.max_in_flight, self.in_flight)
            self.seen_rates.append(rates)
        try:
            if self.delay:
                time.sleep(self.delay)
            if ticker in self.failing:
                raise MissingData(f"No profile found for ticker {ticker}")
            if ticker == "BOOM":
                raise RuntimeError("unexpected")
            return InstrumentRecord(ticker=ticker, currency="USD", market_cap=1.0, fetched_at=FETCHED_AT)
        finally:
            with self._lock:
                self.in_flight -= 1


def test_partial_failure_is_collected_without_raising() -> None:
    fetcher = _StubFetcher(failing={"CCC"})
    tickers = ["AAA", "BBB", "CCC", "DDD"]

    result = BatchAggregator(fetcher).run(tickers, {})

    assert sorted(record.ticker for record in result.successes) == ["AAA", "BBB", "DDD"]
    assert [(failure.ticker, failure.error_type) for failure in result.failures] == [("CCC", "MissingData")]
    assert result.failures[0].reason == "No profile found for ticker CCC"


def test_unexpected_errors_are_reported_as_failures() -> None:
    result = BatchAggregator(_StubFetcher()).run(["AAA", "BOOM"], {})

    assert [record.ticker for record in result.successes] == ["AAA"]
    assert [(failure.ticker, failure.error_type) for failure in result.failures] == [("BOOM", "RuntimeError")]


def test_concurrency_is_bounded() -> None:
    fetcher = _StubFetcher(delay=0.02)

    result = BatchAggregator(fetcher, max_concurrency=3).run([f"T{i}" for i in range(12)], {})

    assert len(result.successes) == 12
    assert 1 <= fetcher.max_in_flight <= 3


def test_all_fetches_share_one_rate_snapshot() -> None:
    fetcher = _StubFetcher()

    BatchAggregator(fetcher).run(["AAA", "BBB", "CCC"], {"EUR/USD": 1.1})

    assert len({id(rates) for rates in fetcher.seen_rates}) == 1


def test_empty_universe_returns_empty_result() -> None:
    result = BatchAggregator(_StubFetcher()).run([], {})

    assert result.successes == []
    assert result.failures == []


def test_rejects_non_positive_concurrency() -> None:
    with pytest.raises(ValueError):
        BatchAggregator(_StubFetcher(), max_concurrency=0)


class _StubFMPClient:
    def get_profile(self, ticker: str) -> list[CompanyProfile]:
        if ticker == "BBB":
            return []
        return [CompanyProfile(symbol=ticker, companyName="AAA AG", currency="EUR", mktCap=1_000_000.0)]

    def get_ratios(self, ticker: str) -> list[object]:
        return []

    def get_income_statement(self, ticker: str, *, limit: int = 1) -> list[object]:
        return []


def test_batch_with_real_fetcher_converts_and_collects_failures() -> None:
    fetcher = InstrumentFetcher(cast(FMPClient, _StubFMPClient()), clock=lambda: FETCHED_AT)

    result = BatchAggregator(fetcher).run(["AAA", "BBB"], {"EUR/USD": 1.10})

    [record] = result.successes
    assert record.ticker == "AAA"
    assert record.market_cap_usd == pytest.approx(1_100_000.0)
    assert record.market_cap_eur == 1_000_000.0
    [failure] = result.failures
    assert failure.ticker == "BBB"
    assert failure.error_type == "MissingData"
