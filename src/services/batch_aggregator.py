from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Iterable, Mapping, Protocol

from domain.currency import CurrencyRateGraph
from domain.instrument import InstrumentRecord

from .errors import FetchError

logger = logging.getLogger(__name__)


class InstrumentSource(Protocol):
    def fetch(self, ticker: str, rates: CurrencyRateGraph) -> InstrumentRecord: ...


@dataclass(frozen=True)
class TickerFailure:
    ticker: str
    reason: str
    error_type: str


@dataclass(frozen=True)
class BatchResult:
    """Outcome of one batch; ``successes`` are in completion order, not sorted."""

    successes: list[InstrumentRecord] = field(default_factory=list)
    failures: list[TickerFailure] = field(default_factory=list)


class BatchAggregator:
    def __init__(self, fetcher: InstrumentSource, *, max_concurrency: int = 50) -> None:
        if max_concurrency <= 0:
            msg = "max_concurrency must be > 0"
            raise ValueError(msg)
        self.fetcher = fetcher
        self.max_concurrency = max_concurrency

    def run(self, tickers: Iterable[str], rates: CurrencyRateGraph | Mapping[str, float]) -> BatchResult:
        # One snapshot shared read-only by every fetch in this batch.
        snapshot = rates if isinstance(rates, CurrencyRateGraph) else CurrencyRateGraph(rates)
        universe = list(tickers)
        result = BatchResult()
        if not universe:
            return result

        logger.info("Fetching %d tickers (max %d concurrent)", len(universe), self.max_concurrency)
        workers = min(self.max_concurrency, len(universe))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="batch") as executor:
            futures = {executor.submit(self.fetcher.fetch, ticker, snapshot): ticker for ticker in universe}
            for future in as_completed(futures):
                ticker = futures[future]
                try:
                    result.successes.append(future.result())
                except FetchError as exc:
                    logger.warning("Failed to fetch %s: %s", ticker, exc)
                    result.failures.append(self._failure(ticker, exc))
                except Exception as exc:
                    logger.exception("Unexpected error while fetching %s", ticker)
                    result.failures.append(self._failure(ticker, exc))

        logger.info(
            "Batch finished: %d successful, %d failed",
            len(result.successes),
            len(result.failures),
        )
        return result

    @staticmethod
    def _failure(ticker: str, exc: Exception) -> TickerFailure:
        return TickerFailure(ticker=ticker, reason=str(exc) or type(exc).__name__, error_type=type(exc).__name__)


__all__ = ["BatchAggregator", "BatchResult", "InstrumentSource", "TickerFailure"]
