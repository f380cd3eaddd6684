from __future__ import annotations

from datetime import datetime
from types import MappingProxyType
from typing import Any, Iterable, Mapping

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator, model_validator


class InstrumentRecord(BaseModel):
    """Normalized per-ticker record handed to reporting and persistence.

    Monetary fields keep the provider's original amount next to the converted
    USD/EUR values. ``conversion_incomplete`` is set when at least one
    conversion had no rate path and the converted field holds the unconverted
    amount.
    """

    model_config = ConfigDict(frozen=True)

    ticker: str
    name: str | None = None
    exchange: str | None = None
    currency: str
    price: float | None = None
    active: bool | None = None
    description: str | None = None
    homepage_url: str | None = None
    employees: str | None = None

    market_cap: float | None = None
    market_cap_usd: float | None = None
    market_cap_eur: float | None = None
    revenue: float | None = None
    revenue_usd: float | None = None
    revenue_eur: float | None = None

    working_capital_ratio: float | None = None
    quick_ratio: float | None = None
    eps: float | None = None
    pe_ratio: float | None = None
    debt_equity_ratio: float | None = None
    roe: float | None = None

    fetched_at: datetime
    conversion_incomplete: bool = False
    extra: Mapping[str, Any] = Field(default_factory=dict, validate_default=True)

    @field_validator("extra", mode="after")
    @classmethod
    def _freeze_extra(cls, value: Mapping[str, Any]) -> Mapping[str, Any]:
        return MappingProxyType(dict(value))

    @field_serializer("extra")
    def _serialize_extra(self, value: Mapping[str, Any]) -> dict[str, Any]:
        return dict(value)

    @model_validator(mode="after")
    def _validate_fields(self) -> InstrumentRecord:
        if not self.ticker:
            raise ValueError("InstrumentRecord.ticker must be non-empty")
        if not self.currency:
            raise ValueError("InstrumentRecord.currency must be non-empty")
        return self

    def market_cap_in(self, currency: str) -> float | None:
        if currency == "USD":
            return self.market_cap_usd
        if currency == "EUR":
            return self.market_cap_eur
        if currency == self.currency:
            return self.market_cap
        return None


def rank_by_market_cap(records: Iterable[InstrumentRecord], currency: str = "EUR") -> list[InstrumentRecord]:
    """Sort by converted market cap, largest first; records without a value go last."""
    with_value: list[tuple[float, InstrumentRecord]] = []
    without_value: list[InstrumentRecord] = []
    for record in records:
        value = record.market_cap_in(currency)
        if value is None:
            without_value.append(record)
        else:
            with_value.append((value, record))
    with_value.sort(key=lambda item: item[0], reverse=True)
    return [record for _, record in with_value] + without_value


__all__ = ["InstrumentRecord", "rank_by_market_cap"]
