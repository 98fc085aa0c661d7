"""
Adapters layer - Calendar provider integrations.
"""

from .google_calendar_client import GoogleCalendarClient
from .graph_authenticator import GraphAuthenticator
from .graph_client import GraphClient
from .json_calendar_client import MOCK_DATA_FILE, JsonCalendarClient

__all__ = [
    "GoogleCalendarClient",
    "GraphAuthenticator",
    "GraphClient",
    "JsonCalendarClient",
    "MOCK_DATA_FILE",
]
