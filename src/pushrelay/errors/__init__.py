"""Centralized error definitions for pushrelay.

Usage:
    from pushrelay.errors import PushRelayError, BadResponseError, is_recoverable

    try:
        data = await fetcher.fetch_json(options)
    except BadResponseError as e:
        logger.error(e.message, extra=e.details)
"""

from __future__ import annotations


# =============================================================================
# Base Error
# =============================================================================


class PushRelayError(Exception):
    """Base exception for all pushrelay errors.

    Attributes:
        code: Error code for categorization
        recoverable: Whether the listener can keep serving after this error
        details: Additional error details for debugging
    """

    code: str = "PUSHRELAY_ERROR"
    default_message: str = "An unexpected error occurred"
    recoverable: bool = True

    def __init__(
        self,
        message: str | None = None,
        *,
        details: dict | None = None,
    ) -> None:
        self.message = message or self.default_message
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            "code": self.code,
            "message": self.message,
            "recoverable": self.recoverable,
            "details": self.details,
        }


# =============================================================================
# Input Errors
# =============================================================================


class BadCharacterError(PushRelayError):
    """Decoded text contained a replacement character."""

    code = "BAD_CHARACTER"
    default_message = "Bad character decode"


class BadResponseError(PushRelayError):
    """Server response could not be parsed."""

    code = "BAD_RESPONSE"
    default_message = "Bad response from server"


# =============================================================================
# Configuration Errors
# =============================================================================


class ConfigurationError(PushRelayError):
    """Base error for configuration issues."""

    code = "CONFIG_ERROR"
    default_message = "Configuration error"


class MissingConfigError(ConfigurationError):
    """Required configuration is missing."""

    code = "MISSING_CONFIG"
    default_message = "Required configuration is missing"


# =============================================================================
# Job Errors
# =============================================================================


class UpdateJobError(PushRelayError):
    """The full update job failed; the listener stops serving."""

    code = "UPDATE_JOB_FAILED"
    default_message = "Full update job failed"
    recoverable = False


def is_recoverable(error: Exception) -> bool:
    """Check if an error leaves the listener in a usable state."""
    if isinstance(error, PushRelayError):
        return error.recoverable
    return False


__all__ = [
    "PushRelayError",
    "BadCharacterError",
    "BadResponseError",
    "ConfigurationError",
    "MissingConfigError",
    "UpdateJobError",
    "is_recoverable",
]
