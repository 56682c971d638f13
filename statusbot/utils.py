"""
Shared utility functions used throughout the status scheduler bot.

Provides:
    - utc_now(): Timezone-aware UTC datetime
    - get_timezone(name): Resolve a configured timezone name via ``pytz``
    - now_in(tz): Current time in a configured timezone
    - ensure_aware(dt, tz): Attach a timezone to naive datetimes
    - format_time_until(target, now): Human-readable relative time
    - truncate(text, limit): Shorten previews for chat replies
    - @with_retry: Async decorator with exponential backoff for transient failures
"""

from datetime import datetime, timezone
import asyncio
import inspect
import logging
from functools import wraps
from typing import Callable, TypeVar, Any, Tuple, Type, Optional, Union

import pytz

from statusbot.exceptions import ConfigurationError, RetryExhaustedError

# ---------------------------------------------------------------------------
# Type variable for generic return types in the retry decorator
# ---------------------------------------------------------------------------
T = TypeVar("T")

TzLike = Union[str, Any]


# ===========================================================================
# TIMEZONE UTILITIES
# Every persisted timestamp is timezone-aware ISO-8601
# ===========================================================================


def utc_now() -> datetime:
    """
    Get current UTC time as timezone-aware datetime.

    Returns:
        Timezone-aware datetime in UTC.
    """
    return datetime.now(timezone.utc)


def get_timezone(tz: TzLike) -> Any:
    """
    Resolve a timezone name (e.g. ``"Africa/Lagos"``) to a ``pytz`` zone.

    Already-resolved tzinfo objects are returned unchanged.

    Raises:
        ConfigurationError: If the name is not a known IANA timezone.
    """
    if not isinstance(tz, str):
        return tz
    try:
        return pytz.timezone(tz)
    except pytz.UnknownTimeZoneError as exc:
        raise ConfigurationError(f"Unknown timezone '{tz}'") from exc


def now_in(tz: TzLike) -> datetime:
    """Current time as an aware datetime in the given timezone."""
    return utc_now().astimezone(get_timezone(tz))


def ensure_aware(dt: datetime, tz: TzLike = "UTC") -> datetime:
    """
    Ensure a datetime is timezone-aware, converted to *tz*.

    Naive datetimes are interpreted as wall-clock time in *tz* (using
    ``localize`` so DST offsets are correct).
    """
    zone = get_timezone(tz)
    if dt.tzinfo is None:
        if hasattr(zone, "localize"):
            return zone.localize(dt)
        return dt.replace(tzinfo=zone)
    return dt.astimezone(zone)


# ===========================================================================
# HUMAN-READABLE FORMATTING
# ===========================================================================


def format_time_until(target: datetime, now: Optional[datetime] = None) -> str:
    """
    Describe the distance from *now* to *target* the way chat users expect.

    Examples: ``"in 5 minutes"``, ``"in an hour"``, ``"2 days ago"``.
    """
    now = now or utc_now()
    delta = (target - now).total_seconds()
    seconds = abs(delta)

    minutes = seconds / 60
    hours = minutes / 60
    days = hours / 24

    if seconds < 45:
        phrase = "a few seconds"
    elif seconds < 90:
        phrase = "a minute"
    elif minutes < 45:
        phrase = f"{round(minutes)} minutes"
    elif minutes < 90:
        phrase = "an hour"
    elif hours < 22:
        phrase = f"{round(hours)} hours"
    elif hours < 36:
        phrase = "a day"
    elif days < 26:
        phrase = f"{round(days)} days"
    elif days < 45:
        phrase = "a month"
    elif days < 320:
        phrase = f"{round(days / 30.4375)} months"
    elif days < 548:
        phrase = "a year"
    else:
        phrase = f"{round(days / 365.25)} years"

    return f"in {phrase}" if delta >= 0 else f"{phrase} ago"


def truncate(text: str, limit: int) -> str:
    """Cut *text* to *limit* characters, appending ``...`` when shortened."""
    if len(text) <= limit:
        return text
    return text[:limit] + "..."


# ===========================================================================
# RETRY DECORATOR WITH EXPONENTIAL BACKOFF
# Only for idempotent gateway reads (media download, inbound polling).
# Status sends are never retried.
# ===========================================================================


def with_retry(
    max_attempts: int = 3,
    base_delay: float = 2.0,
    retryable_exceptions: Tuple[Type[Exception], ...] = (Exception,),
    operation_name: Optional[str] = None,
) -> Callable:
    """
    Decorator for retry logic with exponential backoff.

    Wraps coroutine functions only; every retried operation in the bot is a
    gateway call.

    Args:
        max_attempts: Maximum number of attempts (default ``3``).
        base_delay: Initial delay in seconds before the first retry
            (default ``2.0``). Subsequent delays grow exponentially:
            ``base_delay * (2 ** attempt)``.
        retryable_exceptions: Tuple of exception types that should trigger
            a retry. Any exception **not** in this tuple will propagate
            immediately without retrying.
        operation_name: Human-readable name used in log messages. If
            ``None``, the wrapped function's ``__name__`` is used.

    Raises:
        RetryExhaustedError: When all retry attempts have been exhausted.

    Usage::

        @with_retry(max_attempts=3, retryable_exceptions=(httpx.HTTPError,))
        async def download_media(message: dict) -> bytes:
            ...
    """

    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        op_name = operation_name or func.__name__

        @wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> T:
            last_error: Optional[Exception] = None
            for attempt in range(1, max_attempts + 1):
                try:
                    return await func(*args, **kwargs)
                except retryable_exceptions as e:
                    last_error = e
                    if attempt < max_attempts:
                        delay = base_delay * (2 ** (attempt - 1))
                        logging.warning(
                            "[RETRY] %s attempt %d/%d failed: %s. "
                            "Retrying in %.1fs...",
                            op_name,
                            attempt,
                            max_attempts,
                            e,
                            delay,
                        )
                        await asyncio.sleep(delay)
                    else:
                        logging.error(
                            "[RETRY EXHAUSTED] %s failed after %d attempts: %s",
                            op_name,
                            max_attempts,
                            e,
                        )
            raise RetryExhaustedError(
                op_name, max_attempts, last_error  # type: ignore[arg-type]
            )

        if not inspect.iscoroutinefunction(func):
            raise TypeError(f"with_retry only wraps coroutine functions, got {op_name}")
        return wrapper  # type: ignore[return-value]

    return decorator
