from __future__ import annotations

import datetime as dt
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class _FMPPayload(BaseModel):
    # Unknown provider fields are kept and surface through ``model_extra``.
    model_config = ConfigDict(populate_by_name=True, extra="allow", frozen=True)


class CompanyProfile(_FMPPayload):
    symbol: str
    company_name: str = Field(alias="companyName")
    currency: str
    market_cap: float = Field(default=0.0, alias="mktCap")
    price: float = 0.0
    exchange: str | None = Field(default=None, alias="exchangeShortName")
    is_actively_trading: bool = Field(default=False, alias="isActivelyTrading")
    description: str | None = None
    website: str | None = None
    employees: str | None = Field(default=None, alias="fullTimeEmployees")

    @field_validator("employees", mode="before")
    @classmethod
    def _employees_as_text(cls, value: Any) -> Any:
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(int(value))
        return value


class FinancialRatios(_FMPPayload):
    symbol: str
    date: str | None = None
    current_ratio: float | None = Field(default=None, alias="currentRatio")
    quick_ratio: float | None = Field(default=None, alias="quickRatio")
    eps: float | None = None
    price_earnings_ratio: float | None = Field(default=None, alias="priceEarningsRatio")
    debt_equity_ratio: float | None = Field(default=None, alias="debtEquityRatio")
    return_on_equity: float | None = Field(default=None, alias="returnOnEquity")


class IncomeStatement(_FMPPayload):
    date: str
    symbol: str
    revenue: float | None = None
    eps: float | None = None


class HistoricalMarketCap(_FMPPayload):
    """One day of the historical market capitalization endpoint, in the listing currency."""

    symbol: str
    date: dt.date
    market_cap: float = Field(alias="marketCap")


class ForexQuote(_FMPPayload):
    """One row of the forex quotes endpoint; ``name`` is the ``"FROM/TO"`` pair."""

    symbol: str | None = None
    name: str | None = None
    price: float | None = None
    changes_percentage: float | None = Field(default=None, alias="changesPercentage")
    change: float | None = None
    day_low: float | None = Field(default=None, alias="dayLow")
    day_high: float | None = Field(default=None, alias="dayHigh")
    year_high: float | None = Field(default=None, alias="yearHigh")
    year_low: float | None = Field(default=None, alias="yearLow")
    previous_close: float | None = Field(default=None, alias="previousClose")
    timestamp: int | None = None


__all__ = ["CompanyProfile", "FinancialRatios", "ForexQuote", "HistoricalMarketCap", "IncomeStatement"]
