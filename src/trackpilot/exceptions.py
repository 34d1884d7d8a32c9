"""Custom exception hierarchy for TrackPilot."""


class TrackPilotError(Exception):
    """Base exception for all TrackPilot errors."""


class DateParseError(TrackPilotError, ValueError):
    """Raised when a timestamp value is missing or cannot be parsed."""


class ConfigurationError(TrackPilotError):
    """Raised when settings or rule configs are invalid or missing."""


class PersistenceError(TrackPilotError):
    """Raised when a proposed update cannot be written to the store."""


class RunInProgressError(TrackPilotError):
    """Raised when an automation run is requested while another is in flight."""
