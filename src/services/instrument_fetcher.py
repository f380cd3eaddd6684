from __future__ import annotations

import logging
from concurrent.futures import Future, ThreadPoolExecutor
from datetime import datetime, timezone
from typing import Callable, TypeVar

from domain.currency import CurrencyRateGraph
from domain.instrument import InstrumentRecord

from .errors import FetchError, MissingData
from .fmp_client import FMPClient
from .fmp_types import CompanyProfile, FinancialRatios, IncomeStatement

logger = logging.getLogger(__name__)

RowT = TypeVar("RowT")


class AmountConverter:
    """Converts one ticker's amounts and remembers whether any rate path was missing."""

    def __init__(self, ticker: str, currency: str, rates: CurrencyRateGraph) -> None:
        self.ticker = ticker
        self.currency = currency
        self.rates = rates
        self.incomplete = False

    def to(self, amount: float | None, target: str) -> float | None:
        if amount is None:
            return None
        converted = self.rates.try_convert(amount, self.currency, target)
        if converted is None:
            logger.warning("No %s -> %s rate for %s, keeping unconverted amount", self.currency, target, self.ticker)
            self.incomplete = True
            return amount
        return converted


def require_ticker(ticker: str) -> str:
    if not ticker or not ticker.strip():
        raise ValueError("ticker empty")
    return ticker.strip()


def require_currency(ticker: str, currency: str | None) -> str:
    if not currency or not currency.strip():
        raise MissingData(f"No currency reported for ticker {ticker}")
    return currency.strip()


class InstrumentFetcher:
    """Builds one :class:`InstrumentRecord` from the profile, ratios and income endpoints.

    The three calls run concurrently. The profile is required; ratios and
    income statement failures only leave their fields unset.
    """

    def __init__(self, client: FMPClient, *, clock: Callable[[], datetime] | None = None) -> None:
        self.client = client
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def fetch(self, ticker: str, rates: CurrencyRateGraph) -> InstrumentRecord:
        ticker = require_ticker(ticker)

        with ThreadPoolExecutor(max_workers=3, thread_name_prefix=f"instrument-{ticker}") as executor:
            profiles_future = executor.submit(self.client.get_profile, ticker)
            ratios_future = executor.submit(self.client.get_ratios, ticker)
            income_future = executor.submit(self.client.get_income_statement, ticker)

            profiles = profiles_future.result()
            ratios: FinancialRatios | None = optional_first(ticker, "ratios", ratios_future)
            income: IncomeStatement | None = optional_first(ticker, "income statement", income_future)

        if not profiles:
            raise MissingData(f"No profile found for ticker {ticker}")

        return self._build_record(ticker, profiles[0], ratios, income, rates)

    def _build_record(
        self,
        ticker: str,
        profile: CompanyProfile,
        ratios: FinancialRatios | None,
        income: IncomeStatement | None,
        rates: CurrencyRateGraph,
    ) -> InstrumentRecord:
        currency = require_currency(ticker, profile.currency)
        revenue = income.revenue if income is not None else None
        converter = AmountConverter(ticker, currency, rates)

        market_cap_usd = converter.to(profile.market_cap, "USD")
        market_cap_eur = converter.to(profile.market_cap, "EUR")
        revenue_usd = converter.to(revenue, "USD")
        revenue_eur = converter.to(revenue, "EUR")

        eps = ratios.eps if ratios is not None else None
        if eps is None and income is not None:
            eps = income.eps

        return InstrumentRecord(
            ticker=profile.symbol or ticker,
            name=profile.company_name,
            exchange=profile.exchange,
            currency=currency,
            price=profile.price,
            active=profile.is_actively_trading,
            description=profile.description,
            homepage_url=profile.website,
            employees=profile.employees,
            market_cap=profile.market_cap,
            market_cap_usd=market_cap_usd,
            market_cap_eur=market_cap_eur,
            revenue=revenue,
            revenue_usd=revenue_usd,
            revenue_eur=revenue_eur,
            working_capital_ratio=ratios.current_ratio if ratios else None,
            quick_ratio=ratios.quick_ratio if ratios else None,
            eps=eps,
            pe_ratio=ratios.price_earnings_ratio if ratios else None,
            debt_equity_ratio=ratios.debt_equity_ratio if ratios else None,
            roe=ratios.return_on_equity if ratios else None,
            fetched_at=self._clock(),
            conversion_incomplete=converter.incomplete,
            extra=dict(profile.model_extra or {}),
        )


def optional_first(ticker: str, label: str, future: Future[list[RowT]]) -> RowT | None:
    try:
        rows = future.result()
    except FetchError as exc:
        logger.warning("Ignoring %s for %s: %s", label, ticker, exc)
        return None
    if not rows:
        logger.info("No %s rows for %s", label, ticker)
        return None
    return rows[0]


__all__ = ["AmountConverter", "InstrumentFetcher", "optional_first", "require_currency", "require_ticker"]
