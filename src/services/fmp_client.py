from __future__ import annotations

from datetime import date, timedelta
from urllib.parse import quote

from config import AppSettings, config

from .fmp_types import CompanyProfile, FinancialRatios, ForexQuote, HistoricalMarketCap, IncomeStatement
from .rate_limited_client import PermitPool, RateLimitedClient

# API docs: https://site.financialmodelingprep.com/developer/docs


class FMPClient:
    """Financial Modeling Prep endpoints, all routed through one rate-limited client."""

    def __init__(self, client: RateLimitedClient) -> None:
        self._client = client

    def get_profile(self, ticker: str) -> list[CompanyProfile]:
        return self._client.fetch(f"/profile/{self._ticker_path(ticker)}", list[CompanyProfile])

    def get_ratios(self, ticker: str) -> list[FinancialRatios]:
        return self._client.fetch(f"/ratios/{self._ticker_path(ticker)}", list[FinancialRatios])

    def get_income_statement(self, ticker: str, *, limit: int = 1) -> list[IncomeStatement]:
        if limit <= 0:
            raise ValueError("limit must be > 0")
        return self._client.fetch(
            f"/income-statement/{self._ticker_path(ticker)}",
            list[IncomeStatement],
            params={"limit": limit},
        )

    def get_historical_market_cap(
        self, ticker: str, on: date, *, lookback_days: int = 7
    ) -> HistoricalMarketCap | None:
        """Market cap on ``on`` or the closest earlier trading day within ``lookback_days``."""
        if lookback_days < 0:
            raise ValueError("lookback_days must be >= 0")
        rows = self._client.fetch(
            f"/historical-market-capitalization/{self._ticker_path(ticker)}",
            list[HistoricalMarketCap],
            params={"from": (on - timedelta(days=lookback_days)).isoformat(), "to": on.isoformat()},
        )
        eligible = [row for row in rows if row.date <= on]
        if not eligible:
            return None
        return max(eligible, key=lambda row: row.date)

    def get_exchange_rates(self) -> list[ForexQuote]:
        return self._client.fetch("/quotes/forex", list[ForexQuote])

    @staticmethod
    def _ticker_path(ticker: str) -> str:
        if not ticker or not ticker.strip():
            raise ValueError("ticker empty")
        return quote(ticker.strip(), safe="")


def build_default_client(settings: AppSettings | None = None) -> FMPClient:
    settings = settings or config()
    permits = PermitPool(settings.permit_pool_size, settlement_delay=settings.settlement_delay_seconds)
    client = RateLimitedClient(
        api_key=settings.financialmodelingprep_api_key,
        base_url=settings.fmp_base_url,
        permits=permits,
        timeout=settings.request_timeout_seconds,
        max_attempts=settings.max_attempts,
        initial_backoff_seconds=settings.initial_backoff_seconds,
    )
    return FMPClient(client)


__all__ = ["FMPClient", "build_default_client"]
