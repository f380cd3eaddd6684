from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from types import MappingProxyType
from typing import Iterator, Mapping

logger = logging.getLogger(__name__)

HUB_CURRENCY = "USD"


@dataclass(frozen=True)
class SubunitAlias:
    """Minor-unit currency code quoted as ``1/scale`` of its major currency."""

    code: str
    major: str
    scale: float


SUBUNIT_ALIASES: Mapping[str, SubunitAlias] = MappingProxyType(
    {
        "GBp": SubunitAlias(code="GBp", major="GBP", scale=100.0),
        "ZAc": SubunitAlias(code="ZAc", major="ZAR", scale=100.0),
        "ILA": SubunitAlias(code="ILA", major="ILS", scale=100.0),
    }
)


def pair_key(from_currency: str, to_currency: str) -> str:
    return f"{from_currency}/{to_currency}"


def split_pair(key: str) -> tuple[str, str] | None:
    from_currency, sep, to_currency = key.partition("/")
    if not sep or not from_currency or not to_currency or "/" in to_currency:
        return None
    return from_currency.strip(), to_currency.strip()


def is_valid_rate(rate: float) -> bool:
    return math.isfinite(rate) and rate > 0


def _to_major(currency: str) -> tuple[str, float]:
    alias = SUBUNIT_ALIASES.get(currency)
    if alias is None:
        return currency, 1.0
    return alias.major, alias.scale


class CurrencyRateGraph:
    """Read-only snapshot of exchange rates keyed by ``"FROM/TO"``.

    Only the stored edges are kept; reverse pairs (``1/rate``) and cross pairs
    through a hub currency are resolved on every lookup. Currency codes are
    case-sensitive because minor-unit aliases such as ``GBp`` differ from their
    major code only by case.

    A graph built by :meth:`with_derived_pairs` already holds every resolvable
    pair and therefore skips hub traversal, so both forms return identical
    results.
    """

    def __init__(
        self,
        rates: Mapping[str, float] | None = None,
        *,
        hub: str = HUB_CURRENCY,
        _traverse_hubs: bool = True,
    ) -> None:
        cleaned: dict[str, float] = {}
        neighbours: dict[str, dict[str, None]] = {}
        for key, raw_rate in (rates or {}).items():
            parsed = split_pair(key)
            if parsed is None:
                logger.warning("Ignoring malformed currency pair %r", key)
                continue
            from_currency, to_currency = parsed
            if from_currency == to_currency:
                continue
            try:
                rate = float(raw_rate)
            except (TypeError, ValueError):
                logger.warning("Ignoring non-numeric rate %r for %s", raw_rate, key)
                continue
            if not is_valid_rate(rate):
                logger.warning("Ignoring invalid rate %s for %s", raw_rate, key)
                continue
            cleaned[pair_key(from_currency, to_currency)] = rate
            neighbours.setdefault(from_currency, {})[to_currency] = None
            neighbours.setdefault(to_currency, {})[from_currency] = None

        self.hub = hub
        self._rates: Mapping[str, float] = MappingProxyType(cleaned)
        self._neighbours = {currency: tuple(adjacent) for currency, adjacent in neighbours.items()}
        self._traverse_hubs = _traverse_hubs

    @property
    def pairs(self) -> Mapping[str, float]:
        return self._rates

    def currencies(self) -> frozenset[str]:
        return frozenset(self._neighbours)

    def __len__(self) -> int:
        return len(self._rates)

    def __contains__(self, key: object) -> bool:
        return key in self._rates

    def __repr__(self) -> str:
        return f"CurrencyRateGraph(pairs={len(self._rates)}, hub={self.hub!r})"

    def rate(self, from_currency: str, to_currency: str) -> float | None:
        """Return the major-unit rate for ``from -> to`` or ``None`` when no path exists."""
        from_major, _ = _to_major(from_currency)
        to_major, _ = _to_major(to_currency)
        if from_major == to_major:
            return 1.0

        rate = self._edge(from_major, to_major)
        if rate is not None:
            return rate
        if not self._traverse_hubs:
            return None
        return self._via_hub(from_major, to_major)

    def try_convert(self, amount: float, from_currency: str, to_currency: str) -> float | None:
        if from_currency == to_currency:
            return amount

        from_major, from_scale = _to_major(from_currency)
        to_major, to_scale = _to_major(to_currency)
        major_amount = amount / from_scale
        if from_major == to_major:
            return major_amount * to_scale

        rate = self.rate(from_major, to_major)
        if rate is None or not is_valid_rate(rate):
            return None
        return major_amount * rate * to_scale

    def convert(self, amount: float, from_currency: str, to_currency: str) -> float:
        """Convert ``amount``; falls back to the untouched amount when no rate path exists."""
        converted = self.try_convert(amount, from_currency, to_currency)
        if converted is None:
            logger.debug("No rate path %s -> %s, returning amount unconverted", from_currency, to_currency)
            return amount
        return converted

    def can_convert(self, from_currency: str, to_currency: str) -> bool:
        return self.try_convert(1.0, from_currency, to_currency) is not None

    def with_derived_pairs(self) -> CurrencyRateGraph:
        """Return a new graph with every reverse and cross pair materialized."""
        derived: dict[str, float] = dict(self._rates)
        currencies = sorted(self._neighbours)
        for from_currency in currencies:
            for to_currency in currencies:
                if from_currency == to_currency:
                    continue
                key = pair_key(from_currency, to_currency)
                if key in derived:
                    continue
                rate = self.rate(from_currency, to_currency)
                if rate is not None:
                    derived[key] = rate
        return CurrencyRateGraph(derived, hub=self.hub, _traverse_hubs=False)

    def _edge(self, from_currency: str, to_currency: str) -> float | None:
        direct = self._rates.get(pair_key(from_currency, to_currency))
        if direct is not None:
            return direct
        reverse = self._rates.get(pair_key(to_currency, from_currency))
        if reverse is not None:
            return 1.0 / reverse
        return None

    def _via_hub(self, from_currency: str, to_currency: str) -> float | None:
        for hub in self._hub_candidates(from_currency):
            if hub in (from_currency, to_currency):
                continue
            first_leg = self._edge(from_currency, hub)
            if first_leg is None:
                continue
            second_leg = self._edge(hub, to_currency)
            if second_leg is not None:
                return first_leg * second_leg
        return None

    def _hub_candidates(self, currency: str) -> Iterator[str]:
        # The configured hub first, then any other currency adjacent to ``currency``.
        yield self.hub
        for neighbour in self._neighbours.get(currency, ()):
            if neighbour != self.hub:
                yield neighbour


def convert_currency(
    amount: float,
    from_currency: str,
    to_currency: str,
    rates: CurrencyRateGraph | Mapping[str, float],
) -> float:
    graph = rates if isinstance(rates, CurrencyRateGraph) else CurrencyRateGraph(rates)
    return graph.convert(amount, from_currency, to_currency)


__all__ = [
    "HUB_CURRENCY",
    "SUBUNIT_ALIASES",
    "CurrencyRateGraph",
    "SubunitAlias",
    "convert_currency",
    "is_valid_rate",
    "pair_key",
    "split_pair",
]
