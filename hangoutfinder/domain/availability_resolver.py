"""
Core business logic for resolving mutual availability.

Pure domain logic: no calendar API calls, no persistence, no I/O. Busy data is
handed in by the caller, typically the busy-time aggregator.
"""

import logging
from typing import Dict, Iterable, List, Mapping, Sequence

import pendulum
from pendulum import DateTime

from .exceptions import MissingBusyDataError
from .models import (
    AvailabilityQuery,
    BusinessHoursPolicy,
    BusyInterval,
    CandidateSlot,
    MissingParticipantPolicy,
)

logger = logging.getLogger(__name__)


class AvailabilityResolver:
    """
    Finds slots in which every participant is free.

    Algorithm:
    1. Walk the calendar days of the query range (in the policy timezone)
    2. On working days, generate candidates on the slot grid inside business hours
    3. Drop candidates that overlap any busy interval of any participant
    4. Apply the missing-participant policy
    5. Return the survivors sorted by start time
    """

    def __init__(
        self,
        policy: BusinessHoursPolicy | None = None,
        missing_participant_policy: MissingParticipantPolicy = MissingParticipantPolicy.ASSUME_FREE,
    ):
        self.policy = policy or BusinessHoursPolicy()
        self.missing_participant_policy = MissingParticipantPolicy(missing_participant_policy)

    def find_mutual_availability(
        self,
        participant_busy_times: Mapping[str, Sequence[BusyInterval]],
        query: AvailabilityQuery,
    ) -> List[CandidateSlot]:
        """
        Compute the slots that are free for every participant.

        Args:
            participant_busy_times: Busy intervals per participant, already
                concatenated across that participant's calendar providers
            query: Participants, search range and meeting duration

        Returns:
            Candidate slots ascending by start; empty when nothing fits

        Raises:
            InvalidQuery: If the query duration is not positive or the range
                bounds are malformed
            MissingBusyDataError: If a queried participant has no busy data
                and the policy is ``error``
        """
        query.validate()

        if query.is_degenerate:
            return []

        missing = self._missing_participants(participant_busy_times, query.participant_ids)
        if missing:
            if self.missing_participant_policy is MissingParticipantPolicy.ERROR:
                raise MissingBusyDataError(missing)
            if self.missing_participant_policy is MissingParticipantPolicy.ASSUME_BUSY:
                logger.info(
                    "No busy data for %s, treating as unavailable", ", ".join(sorted(missing))
                )
                return []
            logger.debug("No busy data for %s, assuming free", ", ".join(sorted(missing)))

        candidates = self.generate_candidate_slots(query)

        all_busy = [
            busy
            for intervals in participant_busy_times.values()
            for busy in intervals
        ]

        free_slots = [
            slot for slot in candidates
            if self.is_slot_free(slot, all_busy)
        ]

        return sorted(free_slots, key=lambda slot: slot.start)

    def generate_candidate_slots(self, query: AvailabilityQuery) -> List[CandidateSlot]:
        """
        Generate every grid-aligned slot of the query duration within the range.

        Busy data is not consulted; this is the universe the filter works on.
        """
        query.validate()

        if query.is_degenerate:
            return []

        range_start = self._localize(query.range_start)
        range_end = self._localize(query.range_end)

        slots: List[CandidateSlot] = []
        current = range_start.start_of("day")

        while current < range_end:
            if self.policy.is_working_day(current):
                slots.extend(
                    self._slots_for_day(current, range_start, range_end, query.duration)
                )

            current = current.add(days=1)

        return slots

    @staticmethod
    def is_slot_free(slot: CandidateSlot, busy_intervals: Iterable[BusyInterval]) -> bool:
        """True if no busy interval overlaps the slot."""
        return not any(slot.overlaps(busy) for busy in busy_intervals)

    def _slots_for_day(
        self,
        day: DateTime,
        range_start: DateTime,
        range_end: DateTime,
        duration,
    ) -> List[CandidateSlot]:
        """
        Walk the slot grid of one business day.

        A candidate must start inside the range and end no later than both the
        closing time of the day and the end of the range.
        """
        slots: List[CandidateSlot] = []
        closing = self.policy.closing_for_day(day)
        start = self.policy.opening_for_day(day)

        while start < closing:
            end = start + duration

            if end > closing or end > range_end:
                break

            if start >= range_start:
                slots.append(CandidateSlot(start=start, end=end))

            start = start.add(minutes=self.policy.slot_interval_minutes)

        return slots

    def _localize(self, dt) -> DateTime:
        """Convert any aware datetime to a pendulum DateTime in the policy timezone."""
        return pendulum.instance(dt).in_timezone(self.policy.timezone)

    @staticmethod
    def _missing_participants(
        participant_busy_times: Mapping[str, Sequence[BusyInterval]],
        participant_ids: Iterable[str],
    ) -> List[str]:
        return [pid for pid in participant_ids if pid not in participant_busy_times]


def group_slots_by_day(slots: Iterable[CandidateSlot]) -> Dict[str, List[CandidateSlot]]:
    """Group slots by their ISO date, preserving order."""
    grouped: Dict[str, List[CandidateSlot]] = {}
    for slot in slots:
        grouped.setdefault(slot.start.to_date_string(), []).append(slot)
    return grouped
