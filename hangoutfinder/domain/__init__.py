"""
Domain layer - Pure business logic without external dependencies.
"""

from .availability_resolver import AvailabilityResolver
from .exceptions import (
    AuthenticationError,
    ConfigError,
    HangoutFinderError,
    InvalidQuery,
    MissingBusyDataError,
    ProviderFetchFailure,
)
from .models import (
    AvailabilityQuery,
    BusinessHoursPolicy,
    BusyInterval,
    CandidateSlot,
    MissingParticipantPolicy,
)

__all__ = [
    "AvailabilityResolver",
    "AvailabilityQuery",
    "BusinessHoursPolicy",
    "BusyInterval",
    "CandidateSlot",
    "MissingParticipantPolicy",
    "AuthenticationError",
    "ConfigError",
    "HangoutFinderError",
    "InvalidQuery",
    "MissingBusyDataError",
    "ProviderFetchFailure",
]
