"""
Custom exception hierarchy for the survey engine.

All application exceptions inherit from WdaError. Messages are stable so
callers can tell failures apart without parsing tracebacks.
"""

from typing import List, Optional


class WdaError(Exception):
    """Base exception for all application errors."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


# =============================================================================
# Configuration Errors
# =============================================================================


class ConfigurationError(WdaError):
    """Invalid or missing configuration (including question packs)."""

    pass


# =============================================================================
# Input Errors
# =============================================================================


class ValidationError(WdaError):
    """Input validation failed.

    Carries every violation found, not just the first.
    """

    def __init__(self, message: str, errors: Optional[List[str]] = None):
        self.errors = list(errors) if errors else [message]
        super().__init__(message)


# =============================================================================
# State Errors
# =============================================================================


class InvalidTransitionError(WdaError):
    """Session lifecycle transition not allowed from the current status."""

    pass


class InvalidStateError(WdaError):
    """Operation not allowed in the session's current state."""

    pass


class ExhaustedError(WdaError):
    """No more questions to serve. The normal end-of-survey signal."""

    pass


class AlreadyEndedError(WdaError):
    """Free-form entry has already been closed."""

    pass


# =============================================================================
# Lookup Errors
# =============================================================================


class NotFoundError(WdaError):
    """Base for unknown identifiers."""

    pass


class SessionNotFoundError(NotFoundError):
    """Session does not exist."""

    pass


class InvalidSessionIdError(NotFoundError):
    """Session id is not of the form session-<uuid4>."""

    pass


class QuestionNotFoundError(NotFoundError):
    """Question id is not part of the catalog."""

    pass


class FreeTalkNotFoundError(NotFoundError):
    """Free-form entry does not exist for the session."""

    pass


class CheckpointNotFoundError(NotFoundError):
    """No checkpoint available for the session."""

    pass


class RecordNotFoundError(NotFoundError):
    """Store key is absent."""

    pass


# =============================================================================
# Persistence Errors
# =============================================================================


class ConcurrencyError(WdaError):
    """Base for concurrent modification errors."""

    pass


class VersionConflictError(ConcurrencyError):
    """Stored record version differs from the expected version."""

    pass


class CheckpointError(WdaError):
    """Checkpoint could not be written or verified."""

    pass


# =============================================================================
# AI Provider Errors
# =============================================================================


class ProviderError(WdaError):
    """Base for AI provider errors."""

    pass


class ProviderTimeoutError(ProviderError):
    """Provider call timed out."""

    pass


class ProviderRateLimitError(ProviderError):
    """Provider rate limit exceeded."""

    pass


class ProviderResponseParseError(ProviderError):
    """Failed to parse provider response."""

    pass
