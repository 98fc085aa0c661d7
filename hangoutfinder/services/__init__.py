"""
Service layer helpers that orchestrate adapters and domain logic.
"""

from .availability_finder import AlternativeSuggestion, AvailabilityFinderService, AvailabilityReport
from .busy_time_aggregator import (
    AggregationReport,
    BusyTimeAggregator,
    CalendarProviderAdapter,
    FetchFailed,
    FetchOutcome,
    FetchSucceeded,
    UnavailableProvider,
)

__all__ = [
    "AggregationReport",
    "AlternativeSuggestion",
    "AvailabilityFinderService",
    "AvailabilityReport",
    "BusyTimeAggregator",
    "CalendarProviderAdapter",
    "FetchFailed",
    "FetchOutcome",
    "FetchSucceeded",
    "UnavailableProvider",
]
