"""
Microsoft Graph API client for fetching Outlook free/busy data.
"""

import logging
from typing import Any, Dict, List

import pendulum
import requests
from pendulum import DateTime

from ..domain.exceptions import ProviderFetchFailure
from ..domain.models import BusyInterval

logger = logging.getLogger(__name__)


class GraphClient:
    """
    Outlook calendar provider backed by Microsoft Graph.

    Uses the /calendar/getSchedule endpoint to fetch free/busy information.
    """

    name = "outlook"

    GRAPH_API_ENDPOINT = "https://graph.microsoft.com/v1.0"

    # Schedule item statuses that block a slot
    BUSY_STATUSES = {"busy", "tentative", "oof", "workingelsewhere"}

    def __init__(self, access_token: str, timezone: str = "UTC", timeout: float = 30):
        """
        Initialize the Graph API client.

        Args:
            access_token: Valid Microsoft Graph access token
            timezone: IANA timezone used for request and response times
            timeout: Per-request timeout in seconds
        """
        self.access_token = access_token
        self.timezone = timezone
        self.timeout = timeout
        self.headers = {
            "Authorization": f"Bearer {access_token}",
            "Content-Type": "application/json"
        }

    def get_busy_intervals(
        self,
        participant_id: str,
        range_start: DateTime,
        range_end: DateTime,
    ) -> List[BusyInterval]:
        """Busy intervals of one participant, keyed by email address."""
        schedules = self.get_schedule(
            emails=[participant_id],
            start_time=range_start,
            end_time=range_end,
        )
        return schedules.get(participant_id.lower(), [])

    def get_schedule(
        self,
        emails: List[str],
        start_time: DateTime,
        end_time: DateTime,
    ) -> Dict[str, List[BusyInterval]]:
        """
        Get schedule (busy times) for multiple users.

        Args:
            emails: List of user email addresses
            start_time: Start of the time window
            end_time: End of the time window

        Returns:
            Dictionary mapping lower-cased email -> list of busy intervals

        Raises:
            ProviderFetchFailure: If the API call fails
        """
        url = f"{self.GRAPH_API_ENDPOINT}/me/calendar/getSchedule"

        payload = {
            "schedules": emails,
            "startTime": {
                "dateTime": pendulum.instance(start_time).in_timezone(self.timezone).to_iso8601_string(),
                "timeZone": self.timezone
            },
            "endTime": {
                "dateTime": pendulum.instance(end_time).in_timezone(self.timezone).to_iso8601_string(),
                "timeZone": self.timezone
            },
            "availabilityViewInterval": 30
        }

        try:
            response = requests.post(
                url,
                headers=self.headers,
                json=payload,
                timeout=self.timeout
            )
            response.raise_for_status()
            data = response.json()

        except requests.exceptions.RequestException as e:
            raise ProviderFetchFailure(f"Failed to fetch schedule from Microsoft Graph: {e}") from e
        except ValueError as e:
            raise ProviderFetchFailure(f"Microsoft Graph returned invalid JSON: {e}") from e

        return self._parse_schedule_response(data)

    def _parse_schedule_response(self, response_data: Dict[str, Any]) -> Dict[str, List[BusyInterval]]:
        """
        Parse the getSchedule API response into busy intervals.

        Response format:
        {
            "value": [
                {
                    "scheduleId": "user@example.com",
                    "scheduleItems": [
                        {
                            "status": "busy",
                            "subject": "...",
                            "start": {"dateTime": "...", "timeZone": "..."},
                            "end": {"dateTime": "...", "timeZone": "..."}
                        }
                    ]
                }
            ]
        }
        """
        busy_times: Dict[str, List[BusyInterval]] = {}

        for schedule in response_data.get("value", []):
            email = schedule.get("scheduleId", "").lower()

            if "error" in schedule:
                message = schedule["error"].get("message", "unknown error")
                raise ProviderFetchFailure(f"Graph could not read schedule of {email}: {message}")

            busy_ranges: List[BusyInterval] = []

            for item in schedule.get("scheduleItems", []):
                status = item.get("status", "").lower()

                if status not in self.BUSY_STATUSES:
                    continue

                try:
                    start = self._parse_datetime(item["start"]["dateTime"], item["start"].get("timeZone"))
                    end = self._parse_datetime(item["end"]["dateTime"], item["end"].get("timeZone"))

                    busy_ranges.append(
                        BusyInterval(
                            start=start,
                            end=end,
                            label=item.get("subject"),
                            provider=self.name,
                        )
                    )

                except (KeyError, ValueError) as e:
                    logger.warning("Could not parse schedule item for %s: %s", email, e)
                    continue

            busy_times[email] = busy_ranges

        return busy_times

    def _parse_datetime(self, datetime_str: str, source_timezone: str | None) -> DateTime:
        """
        Parse a Graph datetime string into a pendulum DateTime in the client timezone.

        Graph returns wall-clock strings without offset plus a separate
        ``timeZone`` field.
        """
        dt = pendulum.parse(datetime_str, tz=source_timezone or self.timezone)

        if isinstance(dt, DateTime):
            return dt.in_timezone(self.timezone)

        raise ValueError(f"Could not parse datetime: {datetime_str}")

    def test_connection(self) -> Dict[str, Any]:
        """
        Test the connection and authentication by fetching user profile.

        Raises:
            ProviderFetchFailure: If connection test fails
        """
        url = f"{self.GRAPH_API_ENDPOINT}/me"

        try:
            response = requests.get(url, headers=self.headers, timeout=10)
            response.raise_for_status()
            return response.json()

        except requests.exceptions.RequestException as e:
            raise ProviderFetchFailure(f"Connection test failed: {e}") from e
