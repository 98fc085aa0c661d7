"""
Google Calendar client for fetching free/busy data.
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Mapping

import pendulum
import requests
from pendulum import DateTime

from ..domain.exceptions import ProviderFetchFailure
from ..domain.models import BusyInterval

logger = logging.getLogger(__name__)


class GoogleCalendarClient:
    """
    Google calendar provider using the Calendar API v3 ``freeBusy`` endpoint.

    Tokens are obtained elsewhere; this client only needs a bearer token per
    participant. Only the primary calendar of each participant is queried.
    """

    name = "google"

    API_ENDPOINT = "https://www.googleapis.com/calendar/v3"

    def __init__(
        self,
        access_tokens: Mapping[str, str],
        calendar_id: str = "primary",
        timeout: float = 30,
    ):
        self.access_tokens = {key.lower(): token for key, token in access_tokens.items()}
        self.calendar_id = calendar_id
        self.timeout = timeout

    @classmethod
    def from_tokens_file(cls, tokens_file: Path, **kwargs) -> "GoogleCalendarClient":
        """
        Build a client from a JSON file mapping participant email -> access token.

        Raises:
            ProviderFetchFailure: If the file cannot be read
        """
        try:
            tokens = json.loads(Path(tokens_file).read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            raise ProviderFetchFailure(f"Could not read Google tokens from {tokens_file}: {e}") from e

        if not isinstance(tokens, dict):
            raise ProviderFetchFailure(f"{tokens_file} must contain a JSON object")

        return cls(access_tokens=tokens, **kwargs)

    def get_busy_intervals(
        self,
        participant_id: str,
        range_start: DateTime,
        range_end: DateTime,
    ) -> List[BusyInterval]:
        """
        Fetch busy periods of one participant.

        Raises:
            ProviderFetchFailure: If there is no token for the participant or
                the API call fails
        """
        token = self.access_tokens.get(participant_id.lower())
        if not token:
            raise ProviderFetchFailure(f"No Google access token for {participant_id}")

        payload = {
            "timeMin": pendulum.instance(range_start).in_timezone("UTC").to_iso8601_string(),
            "timeMax": pendulum.instance(range_end).in_timezone("UTC").to_iso8601_string(),
            "items": [{"id": self.calendar_id}],
        }
        headers = {
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json",
        }

        try:
            response = requests.post(
                f"{self.API_ENDPOINT}/freeBusy",
                headers=headers,
                json=payload,
                timeout=self.timeout,
            )
            response.raise_for_status()
            data = response.json()

        except requests.exceptions.RequestException as e:
            raise ProviderFetchFailure(f"Failed to fetch free/busy from Google: {e}") from e
        except ValueError as e:
            raise ProviderFetchFailure(f"Google returned invalid JSON: {e}") from e

        return self._parse_free_busy_response(data)

    def _parse_free_busy_response(self, response_data: Dict[str, Any]) -> List[BusyInterval]:
        """
        Parse a freeBusy response.

        Response format:
        {
            "calendars": {
                "primary": {
                    "busy": [{"start": "2024-11-26T09:00:00Z", "end": "..."}],
                    "errors": [{"domain": "global", "reason": "notFound"}]
                }
            }
        }
        """
        calendar = response_data.get("calendars", {}).get(self.calendar_id)
        if calendar is None:
            raise ProviderFetchFailure(f"Calendar {self.calendar_id} missing from freeBusy response")

        errors = calendar.get("errors") or []
        if errors:
            reasons = ", ".join(error.get("reason", "unknown") for error in errors)
            raise ProviderFetchFailure(f"Google freeBusy reported errors: {reasons}")

        busy_ranges: List[BusyInterval] = []

        for item in calendar.get("busy", []):
            try:
                start = self._parse_datetime(item["start"])
                end = self._parse_datetime(item["end"])
                busy_ranges.append(BusyInterval(start=start, end=end, provider=self.name))
            except (KeyError, ValueError) as e:
                logger.warning("Could not parse Google busy period %s: %s", item, e)
                continue

        return busy_ranges

    @staticmethod
    def _parse_datetime(value: str) -> DateTime:
        """Parse an RFC 3339 timestamp from the freeBusy response."""
        dt = pendulum.parse(value)

        if isinstance(dt, DateTime):
            return dt

        raise ValueError(f"Not a datetime: {value}")
