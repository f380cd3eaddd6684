from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Callable
from urllib.parse import quote

from pydantic import BaseModel, ConfigDict

from config import AppSettings, config
from domain.currency import CurrencyRateGraph
from domain.instrument import InstrumentRecord

from .errors import MissingData
from .instrument_fetcher import AmountConverter, require_currency, require_ticker
from .rate_limited_client import PermitPool, RateLimitedClient

# API docs: https://polygon.io/docs/stocks/get_v3_reference_tickers__ticker


def is_polygon_rate_limited(status_code: int, body: str) -> bool:
    # Polygon only signals throttling through the status code.
    return status_code == 429


class TickerDetails(BaseModel):
    model_config = ConfigDict(extra="allow", frozen=True)

    ticker: str
    name: str | None = None
    market_cap: float | None = None
    currency_name: str | None = None
    primary_exchange: str | None = None
    active: bool | None = None
    description: str | None = None
    homepage_url: str | None = None
    total_employees: int | None = None
    weighted_shares_outstanding: float | None = None


class TickerDetailsResponse(BaseModel):
    model_config = ConfigDict(extra="allow", frozen=True)

    status: str
    request_id: str | None = None
    results: TickerDetails | None = None


class PolygonClient:
    """Ticker reference data from Polygon, authenticated with a bearer token."""

    def __init__(self, client: RateLimitedClient) -> None:
        if client.auth != "bearer":
            raise ValueError("Polygon requires bearer authentication")
        self._client = client

    def get_details(self, ticker: str, on: date | None = None) -> TickerDetails:
        ticker = require_ticker(ticker)
        params = {"date": on.isoformat()} if on is not None else None
        response = self._client.fetch(
            f"/v3/reference/tickers/{quote(ticker, safe='')}",
            TickerDetailsResponse,
            params=params,
        )
        if response.results is None:
            raise MissingData(f"No details found for ticker {ticker}")
        return response.results


class PolygonDetailsFetcher:
    """Builds an :class:`InstrumentRecord` from Polygon ticker details."""

    def __init__(
        self,
        client: PolygonClient,
        *,
        on: date | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.client = client
        self.on = on
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def fetch(self, ticker: str, rates: CurrencyRateGraph) -> InstrumentRecord:
        details = self.client.get_details(ticker, self.on)
        # Polygon reports lower-case ISO codes ("usd").
        currency = require_currency(ticker, (details.currency_name or "").upper())
        converter = AmountConverter(ticker, currency, rates)
        market_cap_usd = converter.to(details.market_cap, "USD")
        market_cap_eur = converter.to(details.market_cap, "EUR")

        return InstrumentRecord(
            ticker=details.ticker or ticker,
            name=details.name,
            exchange=details.primary_exchange,
            currency=currency,
            active=details.active,
            description=details.description,
            homepage_url=details.homepage_url,
            employees=str(details.total_employees) if details.total_employees is not None else None,
            market_cap=details.market_cap,
            market_cap_usd=market_cap_usd,
            market_cap_eur=market_cap_eur,
            fetched_at=self._clock(),
            conversion_incomplete=converter.incomplete,
            extra=dict(details.model_extra or {}),
        )


def build_polygon_client(settings: AppSettings | None = None) -> PolygonClient:
    settings = settings or config()
    if not settings.polygon_api_key:
        raise ValueError("POLYGON_API_KEY must be set to use Polygon")
    permits = PermitPool(settings.polygon_permit_pool_size, settlement_delay=settings.settlement_delay_seconds)
    client = RateLimitedClient(
        api_key=settings.polygon_api_key,
        base_url=settings.polygon_base_url,
        permits=permits,
        timeout=settings.request_timeout_seconds,
        max_attempts=settings.max_attempts,
        initial_backoff_seconds=settings.initial_backoff_seconds,
        rate_limit_predicate=is_polygon_rate_limited,
        auth="bearer",
    )
    return PolygonClient(client)


__all__ = [
    "PolygonClient",
    "PolygonDetailsFetcher",
    "TickerDetails",
    "TickerDetailsResponse",
    "build_polygon_client",
    "is_polygon_rate_limited",
]
