"""
Time provider abstraction and civil-calendar helpers

Provides both real-time and controllable test-time implementations, plus the
US Eastern calendar math that every reset boundary is computed in.

Fun fact: The U.S. campaign-finance calendar year ends at midnight where the
FEC sits - in Washington, D.C. - not at midnight UTC.
"""

from datetime import date, datetime, time, timedelta, timezone
from typing import Protocol
from zoneinfo import ZoneInfo

EASTERN = ZoneInfo("America/New_York")


class TimeProvider(Protocol):
    """Protocol for time providers - allows deterministic testing"""

    def now(self) -> datetime:
        """Return current UTC datetime"""
        ...


class RealTimeProvider:
    """Production time provider using system clock"""

    def now(self) -> datetime:
        """Return current UTC time from system clock"""
        return datetime.now(timezone.utc)


class TestTimeProvider:
    """
    Controllable time provider for deterministic tests

    Allows tests to freeze time, advance time, and ensure
    reproducible event timestamps.
    """

    __test__ = False  # not a pytest test class

    def __init__(self, initial_time: datetime | None = None) -> None:
        """
        Initialize with optional fixed time

        Args:
            initial_time: Starting time (defaults to Unix epoch)
        """
        self._current_time = initial_time or datetime(1970, 1, 1, tzinfo=timezone.utc)

    def now(self) -> datetime:
        """Return current test time"""
        return self._current_time

    def set_time(self, dt: datetime) -> None:
        """Set current time to specific value"""
        self._current_time = dt

    def advance_days(self, days: int) -> None:
        """Advance time by specified days"""
        self._current_time += timedelta(days=days)


def ensure_aware(dt: datetime) -> datetime:
    """Treat naive datetimes as UTC"""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt


def to_eastern(dt: datetime) -> datetime:
    """Convert an instant to US Eastern wall-clock time (DST aware)"""
    return ensure_aware(dt).astimezone(EASTERN)


def eastern_year(dt: datetime) -> int:
    """Calendar year of the instant as seen in US Eastern"""
    return to_eastern(dt).year


def eastern_day_start(day: date) -> datetime:
    """First instant of a civil day in US Eastern, as a UTC datetime"""
    return datetime.combine(day, time.min, tzinfo=EASTERN).astimezone(timezone.utc)


def eastern_year_start(year: int) -> datetime:
    """Jan 1 00:00 US Eastern of the given year, as a UTC datetime"""
    return eastern_day_start(date(year, 1, 1))


def eastern_year_end(year: int) -> datetime:
    """Last representable instant of Dec 31 US Eastern of the given year"""
    return eastern_year_start(year + 1) - timedelta(microseconds=1)


def parse_civil_date(value: str | date | datetime | None) -> datetime | None:
    """
    Parse an election or session date into an instant

    Plain dates ("2026-11-03") mean the start of that civil day in Eastern.
    Full timestamps are kept as given (naive ones are read as UTC).
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return ensure_aware(value)
    if isinstance(value, date):
        return eastern_day_start(value)
    text = value.strip()
    if len(text) == 10:
        return eastern_day_start(date.fromisoformat(text))
    return ensure_aware(datetime.fromisoformat(text.replace("Z", "+00:00")))
