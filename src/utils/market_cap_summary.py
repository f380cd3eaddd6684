from __future__ import annotations

from domain.instrument import InstrumentRecord, rank_by_market_cap
from services.batch_aggregator import BatchResult

from .formatting import format_amount, format_ratio


def render_market_cap_summary(result: BatchResult, *, top: int = 20, currency: str = "EUR") -> None:
    print(f"Fetched {len(result.successes)} instruments, {len(result.failures)} failed")
    render_top_instruments(rank_by_market_cap(result.successes, currency)[:top], currency=currency)
    render_failures(result)


def render_top_instruments(records: list[InstrumentRecord], *, currency: str = "EUR") -> None:
    print(f"Top {len(records)} by market cap ({currency}):")
    if not records:
        print("  (empty)")
        return

    cap_label = f"Cap {currency}"
    rows: list[tuple[str, str, str, str]] = []
    for record in records:
        name = record.name or ""
        cap_text = format_amount(record.market_cap_in(currency))
        if record.conversion_incomplete:
            cap_text += "*"
        rows.append((record.ticker, name, cap_text, format_ratio(record.pe_ratio)))

    ticker_width = max(len("Ticker"), max(len(ticker) for ticker, _, _, _ in rows))
    name_width = max(len("Name"), max(len(name) for _, name, _, _ in rows))
    cap_width = max(len(cap_label), max(len(cap) for _, _, cap, _ in rows))
    pe_width = max(len("P/E"), max(len(pe) for _, _, _, pe in rows))

    header = f"{'Ticker':<{ticker_width}} {'Name':<{name_width}} {cap_label:>{cap_width}} {'P/E':>{pe_width}}"
    lines = [header, "-" * len(header)]
    for ticker, name, cap_text, pe_text in rows:
        lines.append(f"{ticker:<{ticker_width}} {name:<{name_width}} {cap_text:>{cap_width}} {pe_text:>{pe_width}}")
    lines.append("-" * len(header))
    if any(record.conversion_incomplete for record in records):
        lines.append("* amount left in the original currency, no exchange rate available")
    print("\n".join(lines))


def render_failures(result: BatchResult) -> None:
    if not result.failures:
        return
    print("Failed tickers:")
    for failure in sorted(result.failures, key=lambda item: item.ticker):
        print(f"  {failure.ticker}: {failure.error_type}: {failure.reason}")
