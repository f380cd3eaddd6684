from datetime import datetime, timezone

import pytest
from sqlalchemy.orm import Session

from db.repositories import ForexRateRepository, MarketCapRepository
from domain.instrument import InstrumentRecord
from services.fmp_types import ForexQuote

FETCHED_AT = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


def _record(ticker: str, eur: float | None, *, incomplete: bool = False) -> InstrumentRecord:
    return InstrumentRecord(
        ticker=ticker,
        name=f"{ticker} Corp",
        currency="EUR",
        exchange="XETRA",
        active=True,
        market_cap=eur,
        market_cap_eur=eur,
        market_cap_usd=None if eur is None else eur * 1.1,
        fetched_at=FETCHED_AT,
        conversion_incomplete=incomplete,
    )


@pytest.fixture()
def forex_repo(test_session: Session) -> ForexRateRepository:
    return ForexRateRepository(test_session)


@pytest.fixture()
def market_cap_repo(test_session: Session) -> MarketCapRepository:
    return MarketCapRepository(test_session)


def test_latest_rate_map_returns_newest_rate_per_symbol(forex_repo: ForexRateRepository) -> None:
    forex_repo.upsert("EUR/USD", 1.05, 1.04, timestamp=100)
    forex_repo.upsert("EUR/USD", 1.10, 1.09, timestamp=200)
    forex_repo.upsert("GBP/USD", 1.25, 1.24, timestamp=100)

    assert forex_repo.latest_rate_map() == {"EUR/USD": 1.10, "GBP/USD": 1.25}
    assert forex_repo.list_symbols() == ["EUR/USD", "GBP/USD"]


def test_upsert_replaces_rate_for_same_timestamp(forex_repo: ForexRateRepository) -> None:
    forex_repo.upsert("EUR/USD", 1.05, 1.04, timestamp=100)
    forex_repo.upsert("EUR/USD", 1.07, 1.06, timestamp=100)

    assert forex_repo.latest_rate_map() == {"EUR/USD": 1.07}


def test_upsert_quotes_skips_rows_without_price(forex_repo: ForexRateRepository) -> None:
    quotes = [
        ForexQuote(name="EUR/USD", price=1.1),
        ForexQuote(name="GBP/USD", price=None),
        ForexQuote(symbol="JPYUSD", price=0.0067),
    ]

    stored = forex_repo.upsert_quotes(quotes, timestamp=100)

    assert stored == 1
    assert forex_repo.latest_rate_map() == {"EUR/USD": 1.1}


def test_list_latest_orders_by_eur_market_cap(market_cap_repo: MarketCapRepository) -> None:
    market_cap_repo.create_many([_record("OLD", 9_999.0)], api_timestamp=100)
    stored = market_cap_repo.create_many(
        [_record("SMALL", 10.0), _record("NONE", None, incomplete=True), _record("BIG", 1_000.0)],
        api_timestamp=200,
    )

    rows = market_cap_repo.list_latest()

    assert stored == 3
    assert [row.ticker for row in rows] == ["BIG", "SMALL", "NONE"]
    assert rows[0].market_cap_usd == pytest.approx(1_100.0)
    assert rows[0].original_currency == "EUR"
    assert rows[2].conversion_incomplete


def test_create_many_upserts_same_snapshot(market_cap_repo: MarketCapRepository) -> None:
    market_cap_repo.create_many([_record("AAA", 10.0)], api_timestamp=200)
    market_cap_repo.create_many([_record("AAA", 20.0)], api_timestamp=200)

    [row] = market_cap_repo.list_latest()
    assert row.market_cap_eur == 20.0


def test_create_many_with_no_records(market_cap_repo: MarketCapRepository) -> None:
    assert market_cap_repo.create_many([], api_timestamp=1) == 0
    assert market_cap_repo.list_latest() == []
