"""
Application service for finding mutually free hangout slots.

The service coordinates busy-time collection via the ``BusyTimeAggregator``
and delegates the availability calculation to the domain-level
``AvailabilityResolver``. Both collaborators are injected, so tests can swap
the provider adapters for stubs.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Dict, List, Mapping, Sequence

import pendulum

from ..domain.availability_resolver import AvailabilityResolver
from ..domain.models import AvailabilityQuery, BusyInterval, CandidateSlot
from .busy_time_aggregator import AggregationReport, BusyTimeAggregator, FetchFailed


@dataclass
class AvailabilityReport:
    """Slots found for a query, plus the provider fetches that failed on the way."""
    slots: List[CandidateSlot] = field(default_factory=list)
    failures: List[FetchFailed] = field(default_factory=list)

    @property
    def is_degraded(self) -> bool:
        """True if some busy data was missing, so slots may be over-optimistic."""
        return bool(self.failures)


@dataclass(frozen=True)
class AlternativeSuggestion:
    """Slots found by relaxing one constraint of the original query."""
    reason: str
    query: AvailabilityQuery
    slots: List[CandidateSlot]


class AvailabilityFinderService:
    """
    Orchestrates busy-time retrieval and availability resolution.
    """

    SHORTER_DURATION_THRESHOLD = pendulum.duration(minutes=60)
    MIN_SHORTER_DURATION = pendulum.duration(minutes=30)

    def __init__(
        self,
        aggregator: BusyTimeAggregator,
        resolver: AvailabilityResolver,
    ) -> None:
        self._aggregator = aggregator
        self._resolver = resolver

    async def find_slots(
        self,
        *,
        query: AvailabilityQuery,
        connections: Mapping[str, Sequence[str]],
    ) -> AvailabilityReport:
        """
        Collect busy data for the query's participants and resolve free slots.

        Raises:
            InvalidQuery: If the query is malformed (checked before any fetch)
        """
        query.validate()

        aggregation = await self.fetch_busy_times(query=query, connections=connections)
        slots = self.calculate_slots(busy_times=aggregation.busy_times, query=query)

        return AvailabilityReport(slots=slots, failures=aggregation.failures)

    async def fetch_busy_times(
        self,
        *,
        query: AvailabilityQuery,
        connections: Mapping[str, Sequence[str]],
    ) -> AggregationReport:
        """Fetch busy times for the query's participants only."""
        participant_connections = {
            participant_id: list(connections.get(participant_id, []))
            for participant_id in sorted(query.participant_ids)
        }

        return await self._aggregator.fetch_busy_times(
            connections=participant_connections,
            range_start=query.range_start,
            range_end=query.range_end,
        )

    def calculate_slots(
        self,
        *,
        busy_times: Dict[str, List[BusyInterval]],
        query: AvailabilityQuery,
    ) -> List[CandidateSlot]:
        """Resolve mutually free slots from already collected busy data."""
        return self._resolver.find_mutual_availability(busy_times, query)

    async def suggest_alternatives(
        self,
        *,
        query: AvailabilityQuery,
        connections: Mapping[str, Sequence[str]],
        limit: int = 3,
        extension_days: int = 14,
    ) -> List[AlternativeSuggestion]:
        """
        Look for near misses when a query found nothing.

        Strategies, each contributing at most ``limit`` slots:
        1. For meetings longer than an hour, half the duration (min 30 minutes)
        2. The same duration in the ``extension_days`` after the original range
        """
        query.validate()

        candidates: List[tuple[str, AvailabilityQuery]] = []

        if query.duration > self.SHORTER_DURATION_THRESHOLD:
            shorter = max(self.MIN_SHORTER_DURATION, query.duration / 2)
            candidates.append((
                f"shorter duration ({int(shorter.total_seconds() // 60)} min)",
                replace(query, duration=shorter),
            ))

        if extension_days > 0 and not query.is_degenerate:
            range_end = pendulum.instance(query.range_end)
            candidates.append((
                f"next {extension_days} days",
                replace(query, range_start=range_end, range_end=range_end.add(days=extension_days)),
            ))

        suggestions: List[AlternativeSuggestion] = []

        for reason, alternative in candidates:
            report = await self.find_slots(query=alternative, connections=connections)
            if report.slots:
                suggestions.append(
                    AlternativeSuggestion(reason=reason, query=alternative, slots=report.slots[:limit])
                )

        return suggestions
