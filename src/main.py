from __future__ import annotations

import argparse
import logging
from datetime import date
from pathlib import Path
from typing import Sequence

from config import config
from db.db import init_db
from db.repositories import ForexRateRepository, MarketCapRepository
from services.batch_aggregator import BatchAggregator, BatchResult, InstrumentSource
from services.exchange_rates import ExchangeRateService
from services.fmp_client import build_default_client
from services.historical_market_caps import HistoricalMarketCapFetcher, end_of_day
from services.instrument_fetcher import InstrumentFetcher
from services.polygon_client import PolygonDetailsFetcher, build_polygon_client
from universe import load_ticker_universe
from utils.market_cap_summary import render_market_cap_summary

logger = logging.getLogger(__name__)


def run(
    tickers_file: Path,
    db_file: Path,
    *,
    limit: int | None,
    top: int,
    currency: str,
    persist: bool,
    on: date | None = None,
    polygon_us: bool = False,
) -> BatchResult:
    settings = config()
    universe = load_ticker_universe(tickers_file)
    client = build_default_client(settings)

    # Rates are fetched once and shared by every ticker of this run
    snapshot = ExchangeRateService(client).snapshot()
    graph = snapshot.graph.with_derived_pairs()
    api_timestamp = int((end_of_day(on) if on is not None else snapshot.taken_at).timestamp())

    fmp_fetcher: InstrumentSource = (
        HistoricalMarketCapFetcher(client, on) if on is not None else InstrumentFetcher(client)
    )
    if polygon_us:
        batches: list[tuple[InstrumentSource, list[str]]] = [
            (fmp_fetcher, _clean(universe.non_us_tickers)),
            (PolygonDetailsFetcher(build_polygon_client(settings), on=on), _clean(universe.us_tickers)),
        ]
    else:
        batches = [(fmp_fetcher, universe.tickers())]

    result = BatchResult()
    remaining = limit
    for fetcher, tickers in batches:
        if remaining is not None:
            tickers = tickers[:remaining]
            remaining -= len(tickers)
        partial = BatchAggregator(fetcher, max_concurrency=settings.batch_concurrency).run(tickers, graph)
        result.successes.extend(partial.successes)
        result.failures.extend(partial.failures)

    if persist:
        session = init_db(db_file=db_file)
        with session:
            if not snapshot.is_fallback:
                stored = ForexRateRepository(session).upsert_quotes(
                    snapshot.quotes, int(snapshot.taken_at.timestamp())
                )
                logger.info("Stored %d forex quotes", stored)
            stored = MarketCapRepository(session).create_many(result.successes, api_timestamp)
            logger.info("Stored %d market caps in %s", stored, db_file)

    if snapshot.is_fallback:
        print("Warning: live exchange rates unavailable, converted with fallback rates")
    if on is not None:
        print(f"Market caps as of {on.isoformat()} (converted with current rates)")
    render_market_cap_summary(result, top=top, currency=currency)
    return result


def _clean(tickers: list[str]) -> list[str]:
    return list(dict.fromkeys(ticker.strip() for ticker in tickers if ticker.strip()))


def main(argv: Sequence[str] | None = None) -> None:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s %(message)s")
    settings = config()
    parser = argparse.ArgumentParser(description="Fetch market caps and fundamentals for the ticker universe.")
    parser.add_argument("--tickers", type=Path, default=settings.tickers_file)
    parser.add_argument("--db", type=Path, default=settings.db_file)
    parser.add_argument("--limit", type=int, default=None, help="Only fetch the first N tickers.")
    parser.add_argument("--top", type=int, default=20)
    parser.add_argument("--currency", choices=("EUR", "USD"), default="EUR")
    parser.add_argument("--date", type=date.fromisoformat, default=None, help="Historical market caps (YYYY-MM-DD).")
    parser.add_argument("--polygon-us", action="store_true", help="Fetch US tickers from Polygon instead of FMP.")
    parser.add_argument("--no-persist", action="store_true", help="Skip writing results to the database.")
    args = parser.parse_args(argv)
    run(
        args.tickers,
        args.db,
        limit=args.limit,
        top=args.top,
        currency=args.currency,
        persist=not args.no_persist,
        on=args.date,
        polygon_us=args.polygon_us,
    )


if __name__ == "__main__":
    main()
