"""
Tests for concurrent busy-time aggregation.
"""

import asyncio
import threading
import time
from typing import Dict, List

import pendulum
import pytest

from hangoutfinder.domain.exceptions import ProviderFetchFailure
from hangoutfinder.domain.models import BusyInterval
from hangoutfinder.services.busy_time_aggregator import (
    BusyTimeAggregator,
    FetchFailed,
    FetchSucceeded,
    UnavailableProvider,
)

TZ = "Europe/Berlin"
RANGE_START = pendulum.parse("2024-11-26 00:00", tz=TZ)
RANGE_END = pendulum.parse("2024-11-27 00:00", tz=TZ)


def _busy(start: str, end: str, provider: str) -> BusyInterval:
    return BusyInterval(
        start=pendulum.parse(start, tz=TZ),
        end=pendulum.parse(end, tz=TZ),
        provider=provider,
    )


class StubAdapter:
    """Synchronous adapter returning canned busy data."""

    def __init__(self, name: str, busy: Dict[str, List[BusyInterval]] | None = None, error: Exception | None = None):
        self.name = name
        self.busy = busy or {}
        self.error = error
        self.calls: List[str] = []

    def get_busy_intervals(self, participant_id, range_start, range_end):
        self.calls.append(participant_id)
        if self.error:
            raise self.error
        return list(self.busy.get(participant_id, []))


class SlowAsyncAdapter:
    """Async adapter that sleeps and records how many calls overlap."""

    def __init__(self, name: str, delay: float):
        self.name = name
        self.delay = delay
        self.active = 0
        self.peak = 0

    async def get_busy_intervals(self, participant_id, range_start, range_end):
        self.active += 1
        self.peak = max(self.peak, self.active)
        try:
            await asyncio.sleep(self.delay)
        finally:
            self.active -= 1
        return []


class BlockingSyncAdapter:
    """Synchronous adapter that blocks its worker thread, like a slow HTTP call."""

    def __init__(self, name: str, delay: float):
        self.name = name
        self.delay = delay
        self.active = 0
        self.peak = 0
        self.finished = 0
        self._lock = threading.Lock()

    def get_busy_intervals(self, participant_id, range_start, range_end):
        with self._lock:
            self.active += 1
            self.peak = max(self.peak, self.active)
        try:
            time.sleep(self.delay)
        finally:
            with self._lock:
                self.active -= 1
                self.finished += 1
        return []


def _fetch(aggregator: BusyTimeAggregator, connections):
    return asyncio.run(
        aggregator.fetch_busy_times(
            connections=connections,
            range_start=RANGE_START,
            range_end=RANGE_END,
        )
    )


class TestBusyTimeAggregator:
    """Tests for BusyTimeAggregator."""

    def test_concatenates_intervals_across_providers(self):
        google = StubAdapter("google", {"a@example.com": [_busy("2024-11-26 09:00", "2024-11-26 10:00", "google")]})
        outlook = StubAdapter("outlook", {"a@example.com": [_busy("2024-11-26 14:00", "2024-11-26 15:00", "outlook")]})
        aggregator = BusyTimeAggregator([google, outlook])

        report = _fetch(aggregator, {"a@example.com": ["google", "outlook"]})

        assert [busy.provider for busy in report.busy_times["a@example.com"]] == ["google", "outlook"]
        assert not report.is_degraded
        assert all(isinstance(outcome, FetchSucceeded) for outcome in report.outcomes)

    def test_failed_provider_is_reported_and_skipped(self):
        google = StubAdapter("google", {"a@example.com": [_busy("2024-11-26 09:00", "2024-11-26 10:00", "google")]})
        outlook = StubAdapter("outlook", error=ProviderFetchFailure("graph is down"))
        aggregator = BusyTimeAggregator([google, outlook])

        report = _fetch(aggregator, {"a@example.com": ["google", "outlook"]})

        assert len(report.busy_times["a@example.com"]) == 1
        assert report.is_degraded
        assert report.failures == [FetchFailed("a@example.com", "outlook", "graph is down")]

    def test_unexpected_exceptions_are_contained(self):
        broken = StubAdapter("google", error=KeyError("calendars"))
        aggregator = BusyTimeAggregator([broken])

        report = _fetch(aggregator, {"a@example.com": ["google"]})

        assert report.failures[0].provider == "google"
        assert "calendars" in report.failures[0].reason

    def test_participant_with_only_failures_is_absent(self):
        """No data at all is different from an empty calendar."""
        google = StubAdapter("google", error=ProviderFetchFailure("token expired"))
        json_calendar = StubAdapter("json")
        aggregator = BusyTimeAggregator([google, json_calendar])

        report = _fetch(aggregator, {"a@example.com": ["google"], "b@example.com": ["json"]})

        assert "a@example.com" not in report.busy_times
        assert report.busy_times["b@example.com"] == []

    def test_participant_without_connections_is_absent(self):
        aggregator = BusyTimeAggregator([StubAdapter("google")])

        report = _fetch(aggregator, {"a@example.com": []})

        assert report.busy_times == {}
        assert report.outcomes == []

    def test_unknown_provider_is_a_failure(self):
        aggregator = BusyTimeAggregator([StubAdapter("google")])

        report = _fetch(aggregator, {"a@example.com": ["apple"]})

        assert report.failures == [FetchFailed("a@example.com", "apple", "provider not configured")]

    def test_duplicate_provider_names_are_fetched_once(self):
        google = StubAdapter("google")
        aggregator = BusyTimeAggregator([google])

        report = _fetch(aggregator, {"a@example.com": ["google", "google"]})

        assert google.calls == ["a@example.com"]
        assert len(report.outcomes) == 1

    def test_timed_out_fetch_is_a_failure(self):
        slow = SlowAsyncAdapter("outlook", delay=1.0)
        fast = StubAdapter("google", {"a@example.com": [_busy("2024-11-26 09:00", "2024-11-26 10:00", "google")]})
        aggregator = BusyTimeAggregator([slow, fast], timeout_seconds=0.05)

        report = _fetch(aggregator, {"a@example.com": ["outlook", "google"]})

        assert len(report.busy_times["a@example.com"]) == 1
        assert len(report.failures) == 1
        assert report.failures[0].provider == "outlook"
        assert "timed out" in report.failures[0].reason

    def test_timed_out_threads_keep_their_concurrency_slot(self):
        """A sync call that timed out still occupies its slot until it returns."""
        blocking = BlockingSyncAdapter("google", delay=0.3)
        aggregator = BusyTimeAggregator([blocking], max_concurrency=1, timeout_seconds=0.05)

        report = _fetch(aggregator, {f"user{i}@example.com": ["google"] for i in range(3)})

        assert len(report.failures) == 3
        assert all("timed out" in failure.reason for failure in report.failures)
        assert blocking.peak == 1
        assert blocking.finished == 3

    def test_unavailable_provider_reports_its_setup_error(self):
        google = StubAdapter("google", {"a@example.com": [_busy("2024-11-26 09:00", "2024-11-26 10:00", "google")]})
        broken = UnavailableProvider("outlook", "Authentication failed: consent revoked")
        aggregator = BusyTimeAggregator([google, broken])

        report = _fetch(aggregator, {"a@example.com": ["google", "outlook"]})

        assert len(report.busy_times["a@example.com"]) == 1
        assert report.failures == [
            FetchFailed("a@example.com", "outlook", "Authentication failed: consent revoked")
        ]

    def test_concurrency_is_capped(self):
        slow = SlowAsyncAdapter("google", delay=0.02)
        aggregator = BusyTimeAggregator([slow], max_concurrency=2)

        connections = {f"user{i}@example.com": ["google"] for i in range(6)}
        report = _fetch(aggregator, connections)

        assert len(report.busy_times) == 6
        assert slow.peak == 2

    def test_fetches_run_concurrently(self):
        slow = SlowAsyncAdapter("google", delay=0.02)
        aggregator = BusyTimeAggregator([slow], max_concurrency=10)

        _fetch(aggregator, {f"user{i}@example.com": ["google"] for i in range(4)})

        assert slow.peak == 4

    @pytest.mark.parametrize("kwargs", [{"max_concurrency": 0}, {"timeout_seconds": 0}])
    def test_invalid_limits_raise(self, kwargs):
        with pytest.raises(ValueError):
            BusyTimeAggregator([], **kwargs)
