"""
Custom exception classes for the WhatsApp status scheduler bot.

Errors raised at the command boundary (validation, unknown ids) are turned
into chat replies.  Errors raised while posting a due status are caught per
post inside the scheduler tick.  Persistence errors are logged and never
crash the process.

Hierarchy:
    Exception
    +-- StatusBotError (base for all bot-specific errors)
    |   +-- NotFoundError
    |   +-- SendFailure
    |   +-- GatewayError
    +-- ValidationError (ValueError)
    |   +-- ScheduleFormatError
    |   +-- PastScheduleError
    |   +-- UnsupportedContentError
    +-- PersistenceError
    +-- ConfigurationError
    +-- RetryExhaustedError
"""

from typing import Optional


# =============================================================================
# BASE EXCEPTION
# =============================================================================


class StatusBotError(Exception):
    """Base exception for all bot-related errors."""

    pass


# =============================================================================
# CORE EXCEPTIONS
# =============================================================================


class ValidationError(ValueError):
    """Raised when a schedule request fails validation."""

    pass


class PersistenceError(Exception):
    """Raised when the schedule file or media directory cannot be read or written.

    Attributes:
        path: Filesystem path involved in the failed operation.
    """

    def __init__(self, message: str, path: Optional[str] = None):
        self.path = path
        super().__init__(message)


class ConfigurationError(Exception):
    """Raised when system configuration is invalid."""

    pass


class RetryExhaustedError(Exception):
    """Raised when all retry attempts have been exhausted.

    Attributes:
        operation: Name of the operation that was retried.
        attempts: Total number of attempts made.
        last_error: The last exception raised before giving up.
    """

    def __init__(self, operation: str, attempts: int, last_error: Exception):
        self.operation = operation
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(
            f"{operation} failed after {attempts} attempts. "
            f"Last error: {last_error}"
        )


# =============================================================================
# SCHEDULING EXCEPTIONS
# =============================================================================


class NotFoundError(StatusBotError):
    """Raised when a schedule id does not exist in the store.

    Attributes:
        schedule_id: The id that was looked up.
    """

    def __init__(self, schedule_id: str):
        self.schedule_id = schedule_id
        super().__init__(f"Status schedule ID not found: {schedule_id}")


class SendFailure(StatusBotError):
    """Raised when posting a status through the gateway fails.

    Attributes:
        schedule_id: Id of the scheduled post, ``None`` for immediate posts.
        reason: Short description of the underlying failure.
    """

    def __init__(self, schedule_id: Optional[str], reason: str):
        self.schedule_id = schedule_id
        self.reason = reason
        target = f"scheduled status {schedule_id}" if schedule_id else "status"
        super().__init__(f"Failed to post {target}: {reason}")


class GatewayError(StatusBotError):
    """Raised for non-recoverable WhatsApp gateway errors."""

    pass


# =============================================================================
# VALIDATION EXCEPTIONS
# =============================================================================


class ScheduleFormatError(ValidationError):
    """Raised when the date or time arguments cannot be parsed."""

    pass


class PastScheduleError(ValidationError):
    """Raised when the requested time is not strictly in the future."""

    pass


class UnsupportedContentError(ValidationError):
    """Raised when the quoted message holds no schedulable content."""

    pass


# =============================================================================
# PUBLIC API
# =============================================================================

__all__ = [
    # Base
    "StatusBotError",
    # Core
    "ValidationError",
    "PersistenceError",
    "ConfigurationError",
    "RetryExhaustedError",
    # Scheduling
    "NotFoundError",
    "SendFailure",
    "GatewayError",
    # Validation
    "ScheduleFormatError",
    "PastScheduleError",
    "UnsupportedContentError",
]
