"""Read-only library statistics."""

from .aggregator import LibraryStats, StatsAggregator

__all__ = ["LibraryStats", "StatsAggregator"]
