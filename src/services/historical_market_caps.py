from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from datetime import date, datetime, time, timezone

from domain.currency import CurrencyRateGraph
from domain.instrument import InstrumentRecord

from .errors import MissingData
from .fmp_client import FMPClient
from .instrument_fetcher import AmountConverter, require_currency, require_ticker

logger = logging.getLogger(__name__)


def end_of_day(on: date) -> datetime:
    return datetime.combine(on, time(23, 59, 59), tzinfo=timezone.utc)


class HistoricalMarketCapFetcher:
    """Market cap of a ticker as of a past date, converted with the given rates.

    The historical endpoint only reports the amount in the listing currency, so
    the profile is fetched alongside it for currency and identifying fields.
    """

    def __init__(self, client: FMPClient, on: date, *, lookback_days: int = 7) -> None:
        self.client = client
        self.on = on
        self.lookback_days = lookback_days

    def fetch(self, ticker: str, rates: CurrencyRateGraph) -> InstrumentRecord:
        ticker = require_ticker(ticker)

        with ThreadPoolExecutor(max_workers=2, thread_name_prefix=f"historical-{ticker}") as executor:
            profiles_future = executor.submit(self.client.get_profile, ticker)
            point_future = executor.submit(
                self.client.get_historical_market_cap, ticker, self.on, lookback_days=self.lookback_days
            )
            profiles = profiles_future.result()
            point = point_future.result()

        if not profiles:
            raise MissingData(f"No profile found for ticker {ticker}")
        if point is None:
            raise MissingData(f"No market cap for ticker {ticker} on or before {self.on.isoformat()}")

        profile = profiles[0]
        currency = require_currency(ticker, profile.currency)
        converter = AmountConverter(ticker, currency, rates)
        market_cap_usd = converter.to(point.market_cap, "USD")
        market_cap_eur = converter.to(point.market_cap, "EUR")
        if point.date != self.on:
            logger.debug("Using %s market cap from %s for requested %s", ticker, point.date, self.on)

        return InstrumentRecord(
            ticker=profile.symbol or ticker,
            name=profile.company_name,
            exchange=profile.exchange,
            currency=currency,
            active=profile.is_actively_trading,
            market_cap=point.market_cap,
            market_cap_usd=market_cap_usd,
            market_cap_eur=market_cap_eur,
            fetched_at=end_of_day(point.date),
            conversion_incomplete=converter.incomplete,
            extra={"market_cap_date": point.date.isoformat()},
        )


__all__ = ["HistoricalMarketCapFetcher", "end_of_day"]
