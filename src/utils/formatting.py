from __future__ import annotations

_SCALES = ((1e12, "T"), (1e9, "B"), (1e6, "M"), (1e3, "K"))


def format_amount(value: float | None) -> str:
    if value is None:
        return "n/a"
    magnitude = abs(value)
    for threshold, suffix in _SCALES:
        if magnitude >= threshold:
            return f"{value / threshold:.2f}{suffix}"
    return f"{value:.2f}"


def format_ratio(value: float | None) -> str:
    return "n/a" if value is None else f"{value:.2f}"
