"""Usage analytics derived from the local store."""

from .aggregator import MAX_EVENTS, AnalyticsAggregator, storage_size

__all__ = ["MAX_EVENTS", "AnalyticsAggregator", "storage_size"]
