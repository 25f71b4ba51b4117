"""
============================================================================
UPTIMEKIT - HELPERS UTILITY
============================================================================
Time and text helpers shared by the stats aggregator, the notifier
and the status server.
============================================================================
"""

import time
from datetime import datetime, timezone
from typing import Optional


# ============================================================================
# TIME UTILITIES
# ============================================================================

MINUTES_IN_DAY = 1440
MINUTES_IN_MONTH = 43200


class TimeHelper:
    """
    Time and date manipulation utilities.

    All datetimes handed out are timezone-aware UTC. Naive values read
    back from SQLite are assumed to be UTC.
    """

    @staticmethod
    def get_utc_now() -> datetime:
        """Get current UTC datetime."""
        return datetime.now(timezone.utc)

    @staticmethod
    def ensure_utc(dt: datetime) -> datetime:
        """Attach UTC to naive datetimes, convert aware ones to UTC."""
        if dt.tzinfo is None:
            return dt.replace(tzinfo=timezone.utc)
        return dt.astimezone(timezone.utc)

    @staticmethod
    def to_iso(dt: Optional[datetime] = None) -> str:
        """ISO-8601 UTC timestamp with a trailing Z."""
        dt = TimeHelper.ensure_utc(dt or TimeHelper.get_utc_now())
        return dt.isoformat(timespec="milliseconds").replace("+00:00", "Z")

    @staticmethod
    def time_distance(start: datetime, end: Optional[datetime] = None) -> str:
        """
        Human-readable distance between two datetimes.

        Args:
            start: Earlier datetime
            end: Later datetime (defaults to now)

        Returns:
            String like "less than a minute", "5 minutes",
            "about 2 hours", "3 days"
        """
        end = TimeHelper.ensure_utc(end or TimeHelper.get_utc_now())
        start = TimeHelper.ensure_utc(start)

        seconds = abs((end - start).total_seconds())
        minutes = int(round(seconds / 60))

        if minutes < 1:
            return "less than a minute"
        if minutes < 45:
            return f"{minutes} minute{'s' if minutes != 1 else ''}"
        if minutes < 90:
            return "about 1 hour"
        if minutes < MINUTES_IN_DAY:
            hours = int(round(minutes / 60))
            return f"about {hours} hours"
        if minutes < 2520:
            return "1 day"
        if minutes < MINUTES_IN_MONTH:
            days = int(round(minutes / MINUTES_IN_DAY))
            return f"{days} days"

        months = int(round(minutes / MINUTES_IN_MONTH))
        if minutes < 2 * MINUTES_IN_MONTH:
            return f"about {months} month{'s' if months != 1 else ''}"
        if months < 12:
            return f"{months} months"

        years, remainder = divmod(months, 12)
        if remainder < 3:
            return f"about {years} year{'s' if years != 1 else ''}"
        if remainder < 9:
            return f"over {years} year{'s' if years != 1 else ''}"
        return f"almost {years + 1} years"

    @staticmethod
    def get_time_ago(dt: datetime, now: Optional[datetime] = None) -> str:
        """
        Get human-readable time ago string.

        Args:
            dt: Past datetime
            now: Reference time (defaults to now)

        Returns:
            String like "5 minutes ago", "about 2 hours ago", etc.
        """
        return f"{TimeHelper.time_distance(dt, now)} ago"

    @staticmethod
    def seconds_to_human_readable(seconds: int) -> str:
        """
        Convert seconds to human-readable format.

        Args:
            seconds: Number of seconds

        Returns:
            Human-readable string (e.g., "2h 30m 15s")
        """
        if seconds < 0:
            return "0s"

        seconds = int(seconds)
        days, remainder = divmod(seconds, 86400)
        hours, remainder = divmod(remainder, 3600)
        minutes, secs = divmod(remainder, 60)

        parts = []
        if days > 0:
            parts.append(f"{days}d")
        if hours > 0:
            parts.append(f"{hours}h")
        if minutes > 0:
            parts.append(f"{minutes}m")
        if secs > 0 or not parts:
            parts.append(f"{secs}s")

        return " ".join(parts)


class Stopwatch:
    """
    Monotonic elapsed-time measurement in whole milliseconds.

    Probes use this for latency so wall-clock jumps never produce
    negative values.
    """

    def __init__(self):
        self._start = time.perf_counter()

    @property
    def elapsed_ms(self) -> int:
        return max(0, int(round((time.perf_counter() - self._start) * 1000)))


# ============================================================================
# STRING UTILITIES
# ============================================================================

class StringHelper:
    """String manipulation utilities."""

    @staticmethod
    def truncate(text: str, max_length: int = 100, suffix: str = "...") -> str:
        """
        Truncate text to maximum length.

        Args:
            text: Text to truncate
            max_length: Maximum length
            suffix: Suffix to add if truncated

        Returns:
            Truncated text
        """
        if len(text) <= max_length:
            return text
        return text[:max_length - len(suffix)] + suffix

    @staticmethod
    def display_name(name: Optional[str], url: str) -> str:
        """Monitor label: its name when set, otherwise its target."""
        return name if name else url


# ============================================================================
# END OF HELPERS MODULE
# ============================================================================
