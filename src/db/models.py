from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import Boolean, DateTime, Float, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    pass


class ForexRateOrm(Base):
    __tablename__ = "forex_rates"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    symbol: Mapped[str] = mapped_column(String, nullable=False)
    ask: Mapped[float] = mapped_column(Float, nullable=False)
    bid: Mapped[float] = mapped_column(Float, nullable=False)
    timestamp: Mapped[int] = mapped_column(Integer, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)

    __table_args__ = (
        UniqueConstraint("symbol", "timestamp", name="uq_forex_symbol_timestamp"),
        Index("ix_forex_symbol", "symbol"),
    )


class MarketCapOrm(Base):
    __tablename__ = "market_caps"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    ticker: Mapped[str] = mapped_column(String, nullable=False)
    name: Mapped[str | None] = mapped_column(String, nullable=True)
    market_cap_original: Mapped[float | None] = mapped_column(Float, nullable=True)
    original_currency: Mapped[str] = mapped_column(String, nullable=False)
    market_cap_eur: Mapped[float | None] = mapped_column(Float, nullable=True)
    market_cap_usd: Mapped[float | None] = mapped_column(Float, nullable=True)
    revenue: Mapped[float | None] = mapped_column(Float, nullable=True)
    revenue_usd: Mapped[float | None] = mapped_column(Float, nullable=True)
    exchange: Mapped[str | None] = mapped_column(String, nullable=True)
    active: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    conversion_incomplete: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    api_timestamp: Mapped[int] = mapped_column(Integer, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)

    __table_args__ = (
        UniqueConstraint("ticker", "api_timestamp", name="uq_market_caps_ticker_timestamp"),
        Index("ix_market_caps_timestamp", "api_timestamp"),
    )
