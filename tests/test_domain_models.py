"""
Tests for domain models.
"""

from datetime import datetime, timedelta, timezone

import pendulum
import pytest

from hangoutfinder.domain.exceptions import InvalidQuery
from hangoutfinder.domain.models import (
    AvailabilityQuery,
    BusinessHoursPolicy,
    BusyInterval,
    CandidateSlot,
)

TZ = "Europe/Berlin"


def _dt(value: str):
    return pendulum.parse(value, tz=TZ)


class TestBusyInterval:
    """Tests for BusyInterval model."""

    def test_create_valid_interval(self):
        """Test creating a valid busy interval."""
        busy = BusyInterval(start=_dt("2024-11-26 09:00"), end=_dt("2024-11-26 10:30"), label="Standup")

        assert busy.duration_minutes() == 90
        assert busy.label == "Standup"
        assert busy.all_day is False

    def test_end_before_start_raises_error(self):
        """Test that an inverted interval is rejected."""
        with pytest.raises(ValueError, match="before its start"):
            BusyInterval(start=_dt("2024-11-26 10:00"), end=_dt("2024-11-26 09:00"))

    @pytest.mark.parametrize(
        "start, end",
        [
            (datetime(2024, 11, 26, 9, 0), datetime(2024, 11, 26, 10, 0)),
            (datetime(2024, 11, 26, 9, 0, tzinfo=timezone.utc), datetime(2024, 11, 26, 10, 0)),
        ],
    )
    def test_naive_datetimes_are_rejected(self, start, end):
        """Naive bounds cannot be compared with aware slots."""
        with pytest.raises(ValueError, match="timezone-aware"):
            BusyInterval(start=start, end=end)

    def test_zero_length_interval_is_allowed(self):
        """A zero-length interval exists but blocks nothing."""
        busy = BusyInterval(start=_dt("2024-11-26 09:15"), end=_dt("2024-11-26 09:15"))
        slot = CandidateSlot(start=_dt("2024-11-26 09:00"), end=_dt("2024-11-26 09:30"))

        assert busy.duration_minutes() == 0
        assert not slot.overlaps(busy)


class TestCandidateSlot:
    """Tests for CandidateSlot model."""

    def test_overlaps_uses_half_open_intervals(self):
        """Touching intervals do not overlap."""
        slot = CandidateSlot(start=_dt("2024-11-26 10:00"), end=_dt("2024-11-26 10:30"))

        before = BusyInterval(start=_dt("2024-11-26 09:00"), end=_dt("2024-11-26 10:00"))
        after = BusyInterval(start=_dt("2024-11-26 10:30"), end=_dt("2024-11-26 11:00"))
        inside = BusyInterval(start=_dt("2024-11-26 10:10"), end=_dt("2024-11-26 10:20"))
        covering = BusyInterval(start=_dt("2024-11-26 08:00"), end=_dt("2024-11-26 12:00"))

        assert not slot.overlaps(before)
        assert not slot.overlaps(after)
        assert slot.overlaps(inside)
        assert slot.overlaps(covering)

    def test_overlaps_across_timezones(self):
        """Busy intervals reported in UTC are compared as instants."""
        slot = CandidateSlot(start=_dt("2024-11-26 09:00"), end=_dt("2024-11-26 09:30"))
        busy_utc = BusyInterval(
            start=datetime(2024, 11, 26, 8, 0, tzinfo=timezone.utc),
            end=datetime(2024, 11, 26, 8, 15, tzinfo=timezone.utc),
        )

        assert slot.overlaps(busy_utc)

    def test_format_display(self):
        """Test display formatting."""
        slot = CandidateSlot(start=_dt("2024-11-26 09:00"), end=_dt("2024-11-26 09:30"))

        assert slot.format_display() == "Tuesday, 26.11.2024 | 09:00 – 09:30 (30 min)"
        assert slot.duration_minutes() == 30


class TestAvailabilityQuery:
    """Tests for AvailabilityQuery model."""

    def test_create_from_minutes(self):
        query = AvailabilityQuery.create(
            ["a@example.com", "b@example.com", "a@example.com"],
            _dt("2024-11-26 09:00"),
            _dt("2024-11-26 18:00"),
            45,
        )

        assert query.participant_ids == frozenset({"a@example.com", "b@example.com"})
        assert query.duration.total_seconds() == 45 * 60
        query.validate()

    def test_degenerate_range_is_valid(self):
        """An empty range is not an error."""
        query = AvailabilityQuery.create([], _dt("2024-11-26 18:00"), _dt("2024-11-26 09:00"), 30)

        assert query.is_degenerate
        query.validate()

    @pytest.mark.parametrize("duration", [timedelta(0), timedelta(minutes=-30)])
    def test_non_positive_duration_is_invalid(self, duration):
        query = AvailabilityQuery(
            participant_ids=frozenset(),
            range_start=_dt("2024-11-26 09:00"),
            range_end=_dt("2024-11-26 18:00"),
            duration=duration,
        )

        with pytest.raises(InvalidQuery, match="greater than zero"):
            query.validate()

    def test_naive_datetime_is_invalid(self):
        query = AvailabilityQuery(
            participant_ids=frozenset(),
            range_start=datetime(2024, 11, 26, 9, 0),
            range_end=_dt("2024-11-26 18:00"),
            duration=timedelta(minutes=30),
        )

        with pytest.raises(InvalidQuery, match="timezone-aware"):
            query.validate()

    def test_non_datetime_bound_is_invalid(self):
        query = AvailabilityQuery(
            participant_ids=frozenset(),
            range_start="2024-11-26 09:00",
            range_end=_dt("2024-11-26 18:00"),
            duration=timedelta(minutes=30),
        )

        with pytest.raises(InvalidQuery, match="must be a datetime"):
            query.validate()

    def test_invalid_query_is_a_value_error(self):
        """Callers catching ValueError also catch InvalidQuery."""
        assert issubclass(InvalidQuery, ValueError)


class TestBusinessHoursPolicy:
    """Tests for BusinessHoursPolicy model."""

    def test_defaults(self):
        policy = BusinessHoursPolicy()

        assert policy.start_hour == 9
        assert policy.end_hour == 18
        assert policy.working_weekdays == frozenset({0, 1, 2, 3, 4})
        assert policy.slot_interval_minutes == 30

    def test_is_working_day(self):
        """Test working day detection."""
        policy = BusinessHoursPolicy(timezone=TZ)

        assert policy.is_working_day(_dt("2024-11-25"))  # Monday
        assert not policy.is_working_day(_dt("2024-11-23"))  # Saturday
        assert not policy.is_working_day(_dt("2024-11-24"))  # Sunday

    def test_opening_and_closing(self):
        policy = BusinessHoursPolicy(start_hour=8, end_hour=16, timezone=TZ)
        day = _dt("2024-11-26")

        assert policy.opening_for_day(day) == _dt("2024-11-26 08:00")
        assert policy.closing_for_day(day) == _dt("2024-11-26 16:00")

    @pytest.mark.parametrize(
        "kwargs, message",
        [
            ({"start_hour": 24}, "between 0 and 23"),
            ({"start_hour": 18, "end_hour": 9}, "later than start_hour"),
            ({"working_weekdays": {0, 7}}, "between 0 and 6"),
            ({"slot_interval_minutes": 0}, "greater than zero"),
        ],
    )
    def test_invalid_policy_raises_error(self, kwargs, message):
        with pytest.raises(ValueError, match=message):
            BusinessHoursPolicy(**kwargs)
