from __future__ import annotations

import tomllib
from pathlib import Path

from pydantic import BaseModel, ValidationError

from config import config


class TickerUniverse(BaseModel):
    non_us_tickers: list[str] = []
    us_tickers: list[str] = []

    def tickers(self) -> list[str]:
        """All tickers, non-US first, stripped and de-duplicated in first-seen order."""
        seen: dict[str, None] = {}
        for ticker in [*self.non_us_tickers, *self.us_tickers]:
            cleaned = ticker.strip()
            if cleaned:
                seen.setdefault(cleaned, None)
        return list(seen)


def load_ticker_universe(path: Path | None = None) -> TickerUniverse:
    resolved = path or config().tickers_file
    with resolved.open("rb") as handle:
        payload = tomllib.load(handle)
    try:
        return TickerUniverse.model_validate(payload)
    except ValidationError as exc:
        msg = f"Ticker file {resolved} must define 'non_us_tickers' and/or 'us_tickers' as lists of strings."
        raise ValueError(msg) from exc


__all__ = ["TickerUniverse", "load_ticker_universe"]
