"""
Domain-specific exception hierarchy for hangoutfinder.
"""


class HangoutFinderError(Exception):
    """Base class for all application-level errors."""


class InvalidQuery(HangoutFinderError, ValueError):
    """Raised when an availability query cannot be evaluated (caller error)."""


class MissingBusyDataError(HangoutFinderError):
    """Raised when a queried participant has no busy data and the policy forbids guessing."""

    def __init__(self, participant_ids):
        self.participant_ids = sorted(participant_ids)
        super().__init__(
            f"No busy data for participant(s): {', '.join(self.participant_ids)}"
        )


class ProviderFetchFailure(HangoutFinderError):
    """Raised when calendar data cannot be fetched or parsed from a provider."""


class AuthenticationError(HangoutFinderError):
    """Raised when authentication or token handling fails."""


class ConfigError(HangoutFinderError):
    """Raised when the configuration file is missing or malformed."""
