from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Iterable

from sqlalchemy import and_, func, select
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.orm import Session

from db import models
from domain.instrument import InstrumentRecord
from services.fmp_types import ForexQuote


@dataclass(frozen=True)
class StoredMarketCap:
    ticker: str
    name: str | None
    market_cap_original: float | None
    original_currency: str
    market_cap_eur: float | None
    market_cap_usd: float | None
    exchange: str | None
    active: bool | None
    conversion_incomplete: bool
    api_timestamp: int


class ForexRateRepository:
    def __init__(self, session: Session) -> None:
        self._session = session

    def upsert(self, symbol: str, ask: float, bid: float, timestamp: int) -> None:
        self._upsert_rows([self._row(symbol, ask, bid, timestamp)])

    def upsert_quotes(self, quotes: Iterable[ForexQuote], timestamp: int) -> int:
        rows = [
            self._row(quote.name, quote.price, quote.price, timestamp)
            for quote in quotes
            if quote.name is not None and quote.price is not None
        ]
        self._upsert_rows(rows)
        return len(rows)

    def latest_rate_map(self) -> dict[str, float]:
        """Newest ask per symbol, keyed ``"FROM/TO"``."""
        latest = (
            select(models.ForexRateOrm.symbol, func.max(models.ForexRateOrm.timestamp).label("max_ts"))
            .group_by(models.ForexRateOrm.symbol)
            .subquery()
        )
        stmt = select(models.ForexRateOrm.symbol, models.ForexRateOrm.ask).join(
            latest,
            and_(
                models.ForexRateOrm.symbol == latest.c.symbol,
                models.ForexRateOrm.timestamp == latest.c.max_ts,
            ),
        )
        return {symbol: ask for symbol, ask in self._session.execute(stmt)}

    def list_symbols(self) -> list[str]:
        stmt = select(models.ForexRateOrm.symbol).distinct().order_by(models.ForexRateOrm.symbol)
        return list(self._session.scalars(stmt))

    def _upsert_rows(self, rows: list[dict[str, object]]) -> None:
        if not rows:
            return

        stmt = sqlite_insert(models.ForexRateOrm).values(rows)
        stmt = stmt.on_conflict_do_update(
            index_elements=["symbol", "timestamp"],
            set_={"ask": stmt.excluded.ask, "bid": stmt.excluded.bid, "updated_at": stmt.excluded.updated_at},
        )
        self._session.execute(stmt)
        self._session.commit()

    @staticmethod
    def _row(symbol: str, ask: float, bid: float, timestamp: int) -> dict[str, object]:
        return {
            "symbol": symbol,
            "ask": ask,
            "bid": bid,
            "timestamp": timestamp,
            "updated_at": datetime.now(timezone.utc),
        }


class MarketCapRepository:
    _UPDATABLE = (
        "name",
        "market_cap_original",
        "original_currency",
        "market_cap_eur",
        "market_cap_usd",
        "revenue",
        "revenue_usd",
        "exchange",
        "active",
        "conversion_incomplete",
        "updated_at",
    )

    def __init__(self, session: Session) -> None:
        self._session = session

    def create_many(self, records: Iterable[InstrumentRecord], api_timestamp: int) -> int:
        now = datetime.now(timezone.utc)
        rows: list[dict[str, object]] = [
            {
                "ticker": record.ticker,
                "name": record.name,
                "market_cap_original": record.market_cap,
                "original_currency": record.currency,
                "market_cap_eur": record.market_cap_eur,
                "market_cap_usd": record.market_cap_usd,
                "revenue": record.revenue,
                "revenue_usd": record.revenue_usd,
                "exchange": record.exchange,
                "active": record.active,
                "conversion_incomplete": record.conversion_incomplete,
                "api_timestamp": api_timestamp,
                "updated_at": now,
            }
            for record in records
        ]
        if not rows:
            return 0

        stmt = sqlite_insert(models.MarketCapOrm).values(rows)
        stmt = stmt.on_conflict_do_update(
            index_elements=["ticker", "api_timestamp"],
            set_={column: stmt.excluded[column] for column in self._UPDATABLE},
        )
        self._session.execute(stmt)
        self._session.commit()
        return len(rows)

    def list_latest(self) -> list[StoredMarketCap]:
        """Rows of the newest snapshot, largest EUR market cap first."""
        newest = select(func.max(models.MarketCapOrm.api_timestamp)).scalar_subquery()
        stmt = (
            select(models.MarketCapOrm)
            .where(models.MarketCapOrm.api_timestamp == newest)
            .order_by(models.MarketCapOrm.market_cap_eur.desc().nulls_last(), models.MarketCapOrm.ticker)
        )
        return [self._to_domain(row) for row in self._session.scalars(stmt)]

    @staticmethod
    def _to_domain(row: models.MarketCapOrm) -> StoredMarketCap:
        return StoredMarketCap(
            ticker=row.ticker,
            name=row.name,
            market_cap_original=row.market_cap_original,
            original_currency=row.original_currency,
            market_cap_eur=row.market_cap_eur,
            market_cap_usd=row.market_cap_usd,
            exchange=row.exchange,
            active=row.active,
            conversion_incomplete=row.conversion_incomplete,
            api_timestamp=row.api_timestamp,
        )


__all__ = ["ForexRateRepository", "MarketCapRepository", "StoredMarketCap"]
