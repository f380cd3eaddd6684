from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from types import MappingProxyType
from typing import Iterable, Mapping

from domain.currency import CurrencyRateGraph, is_valid_rate, pair_key, split_pair

from .errors import FetchError
from .fmp_client import FMPClient
from .fmp_types import ForexQuote

logger = logging.getLogger(__name__)

# Approximate XXX/USD rates, only used when the live forex endpoint is unavailable.
FALLBACK_USD_RATES: Mapping[str, float] = MappingProxyType(
    {
        "EUR/USD": 1.08,
        "GBP/USD": 1.25,
        "CHF/USD": 1.14,
        "SEK/USD": 0.096,
        "DKK/USD": 0.145,
        "NOK/USD": 0.093,
        "JPY/USD": 0.0068,
        "HKD/USD": 0.128,
        "CNY/USD": 0.139,
        "BRL/USD": 0.203,
        "CAD/USD": 0.737,
        "ILS/USD": 0.27,
        "ZAR/USD": 0.053,
    }
)


@dataclass(frozen=True)
class RateSnapshot:
    graph: CurrencyRateGraph
    taken_at: datetime
    is_fallback: bool = False
    quotes: list[ForexQuote] = field(default_factory=list)


def rates_from_quotes(quotes: Iterable[ForexQuote]) -> dict[str, float]:
    rates: dict[str, float] = {}
    for quote in quotes:
        if quote.name is None or quote.price is None:
            continue
        parsed = split_pair(quote.name)
        if parsed is None:
            logger.debug("Skipping forex quote with unexpected name %r", quote.name)
            continue
        from_currency, to_currency = parsed
        if from_currency == to_currency or not is_valid_rate(quote.price):
            continue
        rates[pair_key(from_currency, to_currency)] = quote.price
    return rates


class ExchangeRateService:
    def __init__(self, client: FMPClient, *, fallback_rates: Mapping[str, float] = FALLBACK_USD_RATES) -> None:
        self.client = client
        self.fallback_rates = fallback_rates

    def snapshot(self) -> RateSnapshot:
        """Fetch live forex quotes once; falls back to the static table on failure."""
        taken_at = datetime.now(timezone.utc)
        try:
            quotes = self.client.get_exchange_rates()
        except FetchError as exc:
            logger.warning("Failed to fetch exchange rates (%s), using fallback rates", exc)
            return self._fallback(taken_at)

        rates = rates_from_quotes(quotes)
        if not rates:
            logger.warning("Forex endpoint returned no usable rates, using fallback rates")
            return self._fallback(taken_at)

        logger.info("Loaded %d exchange rates", len(rates))
        return RateSnapshot(graph=CurrencyRateGraph(rates), taken_at=taken_at, quotes=list(quotes))

    def _fallback(self, taken_at: datetime) -> RateSnapshot:
        return RateSnapshot(graph=CurrencyRateGraph(self.fallback_rates), taken_at=taken_at, is_fallback=True)


__all__ = ["FALLBACK_USD_RATES", "ExchangeRateService", "RateSnapshot", "rates_from_quotes"]
