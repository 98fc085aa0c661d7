"""
Domain models for busy intervals, candidate slots and availability queries.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import FrozenSet, Iterable, Optional

import pendulum
from pendulum import DateTime

from .exceptions import InvalidQuery


WEEKDAY_NAMES = {
    0: "Monday",
    1: "Tuesday",
    2: "Wednesday",
    3: "Thursday",
    4: "Friday",
    5: "Saturday",
    6: "Sunday",
}


@dataclass(frozen=True)
class BusyInterval:
    """
    One occupied period of one participant, as reported by a calendar provider.

    Half-open: the interval covers ``[start, end)``. A zero-length interval is
    accepted but never overlaps anything.
    """
    start: datetime
    end: datetime
    label: Optional[str] = None
    all_day: bool = False
    provider: Optional[str] = None

    def __post_init__(self):
        for label, value in (("start", self.start), ("end", self.end)):
            if not isinstance(value, datetime) or value.tzinfo is None or value.utcoffset() is None:
                raise ValueError(f"Busy interval {label} must be a timezone-aware datetime, got {value!r}")
        if self.end < self.start:
            raise ValueError(f"Busy interval end {self.end} is before its start {self.start}")

    def duration_minutes(self) -> int:
        """Return the duration in minutes."""
        return int((self.end - self.start).total_seconds() / 60)


@dataclass(frozen=True)
class CandidateSlot:
    """
    A generated meeting window of exactly the requested duration.
    """
    start: DateTime
    end: DateTime

    def duration_minutes(self) -> int:
        """Return the duration in minutes."""
        return int((self.end - self.start).total_seconds() / 60)

    def overlaps(self, interval: BusyInterval) -> bool:
        """Check if a busy interval intersects this slot (half-open semantics)."""
        return max(self.start, interval.start) < min(self.end, interval.end)

    def format_display(self) -> str:
        """
        Format the slot for display.
        Format: Weekday, DD.MM.YYYY | HH:mm – HH:mm (N min)
        """
        weekday = WEEKDAY_NAMES[self.start.weekday()]
        date_str = self.start.format("DD.MM.YYYY")
        time_str = f"{self.start.format('HH:mm')} – {self.end.format('HH:mm')}"

        return f"{weekday}, {date_str} | {time_str} ({self.duration_minutes()} min)"

    def __str__(self) -> str:
        return f"{self.start.format('DD.MM.YYYY HH:mm')} - {self.end.format('HH:mm')}"


@dataclass(frozen=True)
class AvailabilityQuery:
    """
    What to search for: who, within which range, and for how long.

    ``range_start >= range_end`` is a valid (empty) query; a non-positive
    duration is not, see ``validate``.
    """
    participant_ids: FrozenSet[str]
    range_start: datetime
    range_end: datetime
    duration: timedelta

    def __post_init__(self):
        # Accept any iterable of ids but keep the dataclass hashable
        object.__setattr__(self, "participant_ids", frozenset(self.participant_ids))

    @classmethod
    def create(
        cls,
        participant_ids: Iterable[str],
        range_start: datetime,
        range_end: datetime,
        duration_minutes: int,
    ) -> "AvailabilityQuery":
        """Build a query from a duration given in minutes."""
        return cls(
            participant_ids=frozenset(participant_ids),
            range_start=range_start,
            range_end=range_end,
            duration=pendulum.duration(minutes=duration_minutes),
        )

    @property
    def is_degenerate(self) -> bool:
        """True when the range contains no instant at all."""
        return self.range_start >= self.range_end

    def validate(self) -> None:
        """
        Reject queries that are caller errors.

        Raises:
            InvalidQuery: If the duration is not positive or a range bound is
                not a timezone-aware datetime.
        """
        for label, value in (("range_start", self.range_start), ("range_end", self.range_end)):
            if not isinstance(value, datetime):
                raise InvalidQuery(f"{label} must be a datetime, got {type(value).__name__}")
            if value.tzinfo is None or value.utcoffset() is None:
                raise InvalidQuery(f"{label} must be timezone-aware, got {value}")

        if not isinstance(self.duration, timedelta):
            raise InvalidQuery(f"duration must be a timedelta, got {type(self.duration).__name__}")
        if self.duration.total_seconds() <= 0:
            raise InvalidQuery(f"duration must be greater than zero, got {self.duration}")


class MissingParticipantPolicy(str, Enum):
    """How to treat a queried participant that has no busy data at all."""
    ASSUME_FREE = "assume_free"
    ASSUME_BUSY = "assume_busy"
    ERROR = "error"


@dataclass(frozen=True)
class BusinessHoursPolicy:
    """
    When meetings may take place.

    Hours are interpreted in ``timezone``; weekdays use 0=Monday, 6=Sunday.
    """
    start_hour: int = 9
    end_hour: int = 18
    working_weekdays: FrozenSet[int] = field(default_factory=lambda: frozenset(range(5)))
    timezone: str = "UTC"
    slot_interval_minutes: int = 30

    def __post_init__(self):
        object.__setattr__(self, "working_weekdays", frozenset(self.working_weekdays))

        for name in ("start_hour", "end_hour"):
            value = getattr(self, name)
            if not 0 <= value <= 23:
                raise ValueError(f"{name} must be between 0 and 23, got {value}")
        if self.end_hour <= self.start_hour:
            raise ValueError("end_hour must be later than start_hour")

        invalid_days = sorted(day for day in self.working_weekdays if day not in range(7))
        if invalid_days:
            raise ValueError(f"working_weekdays must be between 0 and 6, got {invalid_days}")

        if self.slot_interval_minutes <= 0:
            raise ValueError("slot_interval_minutes must be greater than zero")

    def is_working_day(self, dt: datetime) -> bool:
        """Check if a given datetime falls on a working day."""
        return dt.weekday() in self.working_weekdays

    def opening_for_day(self, day: DateTime) -> DateTime:
        """Business hours start on the given day."""
        return day.set(hour=self.start_hour, minute=0, second=0, microsecond=0)

    def closing_for_day(self, day: DateTime) -> DateTime:
        """Business hours end on the given day."""
        return day.set(hour=self.end_hour, minute=0, second=0, microsecond=0)
