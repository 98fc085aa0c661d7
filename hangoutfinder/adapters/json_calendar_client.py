"""
Calendar provider reading events from a JSON export.

Serves local calendars that have no web API (e.g. exported from a phone) and
powers mock mode with the bundled ``mock_calendar_data.json``.
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Mapping

import pendulum
from pendulum import DateTime

from ..domain.exceptions import ProviderFetchFailure
from ..domain.models import BusyInterval

logger = logging.getLogger(__name__)

MOCK_DATA_FILE = Path(__file__).parent / "mock_calendar_data.json"


class JsonCalendarClient:
    """
    Provider that loads calendar events from a JSON file.

    Expected format: a list of events, each with ``calendarId``, ``start``
    and ``end`` (ISO 8601) and optionally ``title`` and ``allDay``.
    """

    name = "json"

    def __init__(
        self,
        data_file: Path = MOCK_DATA_FILE,
        calendar_ids: Mapping[str, str] | None = None,
        timezone: str = "UTC",
    ):
        """
        Args:
            data_file: Path of the JSON export
            calendar_ids: Optional participant id -> calendarId mapping;
                unmapped participants use their id as calendarId
            timezone: Timezone for event times without an offset
        """
        self.data_file = Path(data_file)
        self.calendar_ids = {key.lower(): value for key, value in (calendar_ids or {}).items()}
        self.timezone = timezone
        self._events: List[Dict[str, Any]] | None = None

    @property
    def events(self) -> List[Dict[str, Any]]:
        """Events from the data file, loaded on first access."""
        if self._events is None:
            self._events = self._load_events()
        return self._events

    def _load_events(self) -> List[Dict[str, Any]]:
        try:
            with open(self.data_file, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            raise ProviderFetchFailure(f"Could not read calendar export {self.data_file}: {e}") from e

        if not isinstance(data, list):
            raise ProviderFetchFailure(f"{self.data_file} must contain a JSON list of events")

        return data

    def _get_calendar_id(self, participant_id: str) -> str:
        return self.calendar_ids.get(participant_id.lower(), participant_id)

    def get_busy_intervals(
        self,
        participant_id: str,
        range_start: DateTime,
        range_end: DateTime,
    ) -> List[BusyInterval]:
        """Events of the participant's calendar that overlap the window."""
        calendar_id = self._get_calendar_id(participant_id)
        busy: List[BusyInterval] = []

        for event in self.events:
            if event.get("calendarId") != calendar_id:
                continue

            try:
                event_start = self._parse_datetime(event["start"])
                event_end = self._parse_datetime(event["end"])
                interval = BusyInterval(
                    start=event_start,
                    end=event_end,
                    label=event.get("title"),
                    all_day=bool(event.get("allDay", False)),
                    provider=self.name,
                )
            except (KeyError, ValueError) as e:
                logger.warning("Skipping invalid event in %s: %s", self.data_file, e)
                continue

            if interval.start < range_end and interval.end > range_start:
                busy.append(interval)

        return busy

    def _parse_datetime(self, value: str) -> DateTime:
        """Parse an event time; values without an offset use the client timezone."""
        dt = pendulum.parse(value, tz=self.timezone)

        if isinstance(dt, DateTime):
            return dt

        raise ValueError(f"Not a date or datetime: {value}")
