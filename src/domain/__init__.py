"""Domain models and types for the market cap pipeline.

This package holds the currency rate graph and the normalized instrument
records. They are independent from provider payloads and persistence models so
that conversion logic and testing can evolve without HTTP or DB coupling.
"""

__all__ = [
    "currency",
    "instrument",
]
