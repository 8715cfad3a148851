"""Exception hierarchy for insights_hoarder."""

from datetime import datetime


class HoarderError(Exception):
    """Base exception for all insights_hoarder errors."""


class ConfigurationError(HoarderError):
    """Raised when required settings are missing."""


class UnsupportedFormatError(HoarderError):
    """Raised for a history format other than json or csv."""

    def __init__(self, value: object):
        """Initialize with the rejected format value.

        Args:
            value: The format that was requested.
        """
        super().__init__(f'Unsupported format {value!r}. Please choose either "json" or "csv".')
        self.value = value


class DecodeError(HoarderError):
    """Raised when a persisted history file cannot be parsed."""


class ExhaustedRetriesError(HoarderError):
    """Raised when a bounded retry loop gives up."""


class UpstreamError(HoarderError):
    """Base exception for GitHub API errors."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class NotFoundError(UpstreamError):
    """Raised when a repository, file or ref doesn't exist or no access."""


class AuthenticationError(UpstreamError):
    """Raised for authentication failures."""


class RateLimitError(UpstreamError):
    """Raised when rate limit is exceeded."""

    def __init__(self, message: str, reset_at: datetime | None = None):
        """Initialize with reset time.

        Args:
            message: Error message.
            reset_at: When rate limit resets (UTC).
        """
        super().__init__(message, status_code=403)
        self.reset_at = reset_at


class TransientConflictError(UpstreamError):
    """Raised when a ref update loses a race with another writer."""
