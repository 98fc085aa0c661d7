"""
Configuration management using pydantic models loaded from YAML.
"""

from pathlib import Path
from typing import Dict, List, Sequence

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from .domain.exceptions import ConfigError
from .domain.models import BusinessHoursPolicy, MissingParticipantPolicy


class BusinessHoursConfig(BaseModel):
    """When hangouts may be scheduled."""
    start_hour: int = 9
    end_hour: int = 18
    working_weekdays: List[int] = Field(default_factory=lambda: [0, 1, 2, 3, 4])
    slot_interval_minutes: int = 30

    @field_validator("start_hour", "end_hour")
    @classmethod
    def validate_hour(cls, v: int) -> int:
        """Validate hour is between 0 and 23."""
        if not 0 <= v <= 23:
            raise ValueError(f"Hour must be between 0 and 23, got {v}")
        return v

    @field_validator("working_weekdays")
    @classmethod
    def validate_weekdays(cls, value: List[int]) -> List[int]:
        """Ensure weekdays are in valid range and deduplicated."""
        invalid_days = [day for day in value if day not in range(7)]
        if invalid_days:
            raise ValueError(f"working_weekdays must be between 0 and 6, got {invalid_days}")
        return sorted(set(value))

    @field_validator("slot_interval_minutes")
    @classmethod
    def validate_interval(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("slot_interval_minutes must be greater than zero")
        return value

    @model_validator(mode="after")
    def validate_hours_order(self) -> "BusinessHoursConfig":
        """Ensure the business day opens before it closes."""
        if self.end_hour <= self.start_hour:
            raise ValueError("end_hour must be later than start_hour")
        return self


class DefaultsConfig(BaseModel):
    """Default settings for search."""
    duration_minutes: int = 60
    search_days: int = 7

    @field_validator("duration_minutes", "search_days")
    @classmethod
    def validate_positive(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("value must be greater than zero")
        return value


class AggregationConfig(BaseModel):
    """Limits for fetching busy times from providers."""
    max_concurrency: int = 8
    timeout_seconds: float = 15.0

    @field_validator("max_concurrency", "timeout_seconds")
    @classmethod
    def validate_positive(cls, value):
        if value <= 0:
            raise ValueError("value must be greater than zero")
        return value


class OutlookConfig(BaseModel):
    """Azure AD application used for Microsoft Graph access."""
    client_id: str
    tenant_id: str

    def get_authority_url(self) -> str:
        """Get the formatted authority URL."""
        return f"https://login.microsoftonline.com/{self.tenant_id}"


class GoogleConfig(BaseModel):
    """Google Calendar access; tokens are obtained outside hangoutfinder."""
    tokens_file: Path
    calendar_id: str = "primary"


class JsonCalendarConfig(BaseModel):
    """Calendar export read from disk."""
    path: Path


class Participant(BaseModel):
    """Participant configuration."""
    name: str  # Used as alias
    email: str
    providers: List[str] = Field(default_factory=list)
    calendar_id: str = ""  # Optional: calendarId in JSON exports

    def display_name(self) -> str:
        """Get display name."""
        return self.name


class AppConfig(BaseModel):
    """Application configuration."""
    timezone: str = "UTC"
    business_hours: BusinessHoursConfig = Field(default_factory=BusinessHoursConfig)
    defaults: DefaultsConfig = Field(default_factory=DefaultsConfig)
    missing_participant_policy: MissingParticipantPolicy = MissingParticipantPolicy.ASSUME_FREE
    aggregation: AggregationConfig = Field(default_factory=AggregationConfig)
    outlook: OutlookConfig | None = None
    google: GoogleConfig | None = None
    json_calendar: JsonCalendarConfig | None = None
    participants: List[Participant] = Field(default_factory=list)

    @field_validator("participants")
    @classmethod
    def validate_participants(cls, value: List[Participant]) -> List[Participant]:
        """Ensure participant aliases and emails are unique."""
        seen_names: set[str] = set()
        seen_emails: set[str] = set()
        for participant in value:
            name_key = participant.name.lower()
            email_key = participant.email.lower()
            if name_key in seen_names:
                raise ValueError(f"Duplicate participant name detected: {participant.name}")
            if email_key in seen_emails:
                raise ValueError(f"Duplicate participant email detected: {participant.email}")
            seen_names.add(name_key)
            seen_emails.add(email_key)
        return value

    @classmethod
    def load_from_yaml(cls, config_path: Path) -> "AppConfig":
        """
        Load configuration from YAML file.

        Relative provider file paths are resolved against the config file's
        directory.

        Raises:
            ConfigError: If the file is missing, not valid YAML or fails validation
        """
        if not config_path.exists():
            raise ConfigError(
                f"Config file not found: {config_path}\n"
                f"Please create a config.yaml file. See config.example.yaml for reference."
            )

        try:
            with open(config_path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as exc:
            raise ConfigError(f"Invalid YAML in {config_path}: {exc}") from exc

        if not isinstance(data, dict):
            raise ConfigError("Config file must contain a mapping at the root level.")

        try:
            config = cls(**data)
        except ValidationError as exc:
            raise ConfigError(f"Invalid configuration in {config_path}:\n{exc}") from exc

        return config.with_paths_relative_to(config_path.parent)

    def with_paths_relative_to(self, base_dir: Path) -> "AppConfig":
        updates = {}
        if self.google and not self.google.tokens_file.is_absolute():
            updates["google"] = self.google.model_copy(
                update={"tokens_file": base_dir / self.google.tokens_file}
            )
        if self.json_calendar and not self.json_calendar.path.is_absolute():
            updates["json_calendar"] = self.json_calendar.model_copy(
                update={"path": base_dir / self.json_calendar.path}
            )
        return self.model_copy(update=updates) if updates else self

    def business_hours_policy(self) -> BusinessHoursPolicy:
        """Build the domain policy from the configured business hours."""
        return BusinessHoursPolicy(
            start_hour=self.business_hours.start_hour,
            end_hour=self.business_hours.end_hour,
            working_weekdays=frozenset(self.business_hours.working_weekdays),
            timezone=self.timezone,
            slot_interval_minutes=self.business_hours.slot_interval_minutes,
        )

    def find_participant_by_name(self, name: str) -> Participant | None:
        """Find a participant by their name (alias)."""
        for participant in self.participants:
            if participant.name.lower() == name.lower():
                return participant
        return None

    def find_participant_by_email(self, email: str) -> Participant | None:
        """Find a participant by their email."""
        for participant in self.participants:
            if participant.email.lower() == email.lower():
                return participant
        return None

    def resolve_participant(self, identifier: str) -> str:
        """
        Resolve a participant identifier (name/alias or email) to an email address.

        Raises:
            ValueError: If identifier cannot be resolved
        """
        if "@" in identifier:
            return identifier.lower()

        participant = self.find_participant_by_name(identifier)
        if participant:
            return participant.email.lower()

        raise ValueError(
            f"Unknown participant identifier: '{identifier}'. "
            f"Use an email address or a configured name."
        )

    def resolve_participants(self, identifiers: Sequence[str]) -> List[str]:
        """
        Resolve multiple participant identifiers, ensuring uniqueness.

        Raises:
            ValueError: If no identifiers are given or some are unknown
        """
        if not identifiers:
            raise ValueError("No participants provided.")

        resolved_emails: List[str] = []
        unknown_identifiers: List[str] = []

        for identifier in identifiers:
            try:
                email = self.resolve_participant(identifier)
            except ValueError:
                unknown_identifiers.append(identifier)
                continue

            if email not in resolved_emails:
                resolved_emails.append(email)

        if unknown_identifiers:
            missing = ", ".join(sorted(set(unknown_identifiers)))
            raise ValueError(
                f"Unknown participant identifier(s): {missing}. "
                "Ensure they exist in the configuration or provide valid email addresses."
            )

        return resolved_emails

    def connections(self) -> Dict[str, List[str]]:
        """Participant email -> names of the providers connected for them."""
        return {
            participant.email.lower(): list(participant.providers)
            for participant in self.participants
        }

    def calendar_ids(self) -> Dict[str, str]:
        """Participant email -> calendarId used in JSON exports (name if unset)."""
        return {
            participant.email.lower(): participant.calendar_id or participant.name
            for participant in self.participants
        }


def get_default_config_path() -> Path:
    """Get the default configuration file path."""
    config_path = Path.cwd() / "config.yaml"

    if not config_path.exists():
        # Fall back to the project root (parent of the package)
        config_path = Path(__file__).parent.parent / "config.yaml"

    return config_path
