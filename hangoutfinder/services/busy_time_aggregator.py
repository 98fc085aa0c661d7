"""
Concurrent collection of busy intervals from calendar providers.

Every (participant, provider) connection is fetched in parallel, bounded by a
concurrency cap and a per-fetch timeout. A failing provider never aborts the
whole collection: its outcome is recorded as ``FetchFailed`` and the
participant's busy time is assembled from whatever succeeded.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Protocol, Sequence, Union

from pendulum import DateTime

from ..domain.exceptions import ProviderFetchFailure
from ..domain.models import BusyInterval

logger = logging.getLogger(__name__)


class CalendarProviderAdapter(Protocol):
    """
    Protocol describing what the aggregator needs from a calendar provider.

    ``get_busy_intervals`` may be a plain method (run in a worker thread) or a
    coroutine function (awaited directly).
    """

    name: str

    def get_busy_intervals(
        self,
        participant_id: str,
        range_start: DateTime,
        range_end: DateTime,
    ) -> List[BusyInterval]:
        """Return the participant's busy intervals within the window."""


class UnavailableProvider:
    """
    Placeholder for a provider that could not be set up (bad credentials,
    unreadable token file). Every fetch fails with the setup error.
    """

    def __init__(self, name: str, reason: str):
        self.name = name
        self.reason = reason

    def get_busy_intervals(
        self,
        participant_id: str,
        range_start: DateTime,
        range_end: DateTime,
    ) -> List[BusyInterval]:
        raise ProviderFetchFailure(self.reason)


@dataclass(frozen=True)
class FetchSucceeded:
    participant_id: str
    provider: str
    intervals: List[BusyInterval]


@dataclass(frozen=True)
class FetchFailed:
    participant_id: str
    provider: str
    reason: str


FetchOutcome = Union[FetchSucceeded, FetchFailed]


@dataclass
class AggregationReport:
    """
    Result of one collection run.

    ``busy_times`` only contains participants for whom at least one provider
    answered; a participant whose every fetch failed is absent, so the
    resolver's missing-participant policy decides how to treat them.
    """
    busy_times: Dict[str, List[BusyInterval]] = field(default_factory=dict)
    outcomes: List[FetchOutcome] = field(default_factory=list)

    @property
    def failures(self) -> List[FetchFailed]:
        return [outcome for outcome in self.outcomes if isinstance(outcome, FetchFailed)]

    @property
    def is_degraded(self) -> bool:
        """True if any provider data is missing from ``busy_times``."""
        return bool(self.failures)


class BusyTimeAggregator:
    """
    Fans out busy-time fetches to provider adapters and joins the results.
    """

    def __init__(
        self,
        adapters: Sequence[CalendarProviderAdapter],
        max_concurrency: int = 8,
        timeout_seconds: float = 15.0,
    ) -> None:
        if max_concurrency <= 0:
            raise ValueError("max_concurrency must be greater than zero")
        if timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be greater than zero")

        self._adapters: Dict[str, CalendarProviderAdapter] = {
            adapter.name: adapter for adapter in adapters
        }
        self.max_concurrency = max_concurrency
        self.timeout_seconds = timeout_seconds

    @property
    def provider_names(self) -> List[str]:
        return list(self._adapters)

    async def fetch_busy_times(
        self,
        *,
        connections: Mapping[str, Sequence[str]],
        range_start: DateTime,
        range_end: DateTime,
    ) -> AggregationReport:
        """
        Fetch busy intervals for every connected provider of every participant.

        Args:
            connections: Participant id -> names of the providers connected
                for that participant
            range_start: Start of the time window
            range_end: End of the time window

        Returns:
            AggregationReport with concatenated busy intervals and one outcome
            per connection, in connection order
        """
        semaphore = asyncio.Semaphore(self.max_concurrency)

        tasks = [
            self._fetch_one(semaphore, participant_id, provider_name, range_start, range_end)
            for participant_id, provider_names in connections.items()
            for provider_name in dict.fromkeys(provider_names)
        ]

        outcomes: List[FetchOutcome] = list(await asyncio.gather(*tasks))

        report = AggregationReport(outcomes=outcomes)
        for outcome in outcomes:
            if isinstance(outcome, FetchSucceeded):
                report.busy_times.setdefault(outcome.participant_id, []).extend(outcome.intervals)

        logger.debug(
            "Collected busy times from %d connection(s), %d failed",
            len(outcomes),
            len(report.failures),
        )

        return report

    async def _fetch_one(
        self,
        semaphore: asyncio.Semaphore,
        participant_id: str,
        provider_name: str,
        range_start: DateTime,
        range_end: DateTime,
    ) -> FetchOutcome:
        adapter = self._adapters.get(provider_name)
        if adapter is None:
            logger.warning(
                "Provider %s is not configured, skipping it for %s", provider_name, participant_id
            )
            return FetchFailed(participant_id, provider_name, "provider not configured")

        await semaphore.acquire()

        # The slot stays taken until the call finishes, even after a timeout
        call = asyncio.ensure_future(
            self._call_adapter(adapter, participant_id, range_start, range_end)
        )
        call.add_done_callback(lambda finished: self._release(semaphore, finished))

        try:
            intervals = await asyncio.wait_for(asyncio.shield(call), timeout=self.timeout_seconds)
        except asyncio.TimeoutError:
            if inspect.iscoroutinefunction(adapter.get_busy_intervals):
                call.cancel()
            logger.warning(
                "Timed out after %ss fetching %s busy times for %s",
                self.timeout_seconds,
                provider_name,
                participant_id,
            )
            return FetchFailed(participant_id, provider_name, f"timed out after {self.timeout_seconds}s")
        except Exception as e:  # noqa: BLE001
            logger.warning(
                "Failed to fetch %s busy times for %s: %s", provider_name, participant_id, e
            )
            return FetchFailed(participant_id, provider_name, str(e) or type(e).__name__)

        return FetchSucceeded(participant_id, provider_name, list(intervals))

    @staticmethod
    def _release(semaphore: asyncio.Semaphore, call: asyncio.Future) -> None:
        semaphore.release()
        # Abandoned calls have no other reader for their errors
        if not call.cancelled() and call.exception() is not None:
            logger.debug("Fetch call ended with an error: %s", call.exception())

    @staticmethod
    async def _call_adapter(
        adapter: CalendarProviderAdapter,
        participant_id: str,
        range_start: DateTime,
        range_end: DateTime,
    ) -> List[BusyInterval]:
        if inspect.iscoroutinefunction(adapter.get_busy_intervals):
            return await adapter.get_busy_intervals(participant_id, range_start, range_end)

        return await asyncio.to_thread(
            adapter.get_busy_intervals, participant_id, range_start, range_end
        )
