"""
Congressional session signal

Celebrations are tied to bills in the current Congress. When a session
ends without action, active celebrations go defunct; in the month before
that, donors get a warning. This module answers "has the session ended?"
and "are we in the warning period?" from the constitutional calendar, with
an optional override for the real adjournment date.

Fun fact: Under the 20th Amendment each Congress begins at noon on
January 3rd of odd-numbered years - which is why January 3rd is the
default session boundary here.
"""

from datetime import date, datetime, timedelta
from typing import Protocol

from pydantic import BaseModel

from celebration_engine.kernel.logging import get_logger
from celebration_engine.kernel.time import (
    TimeProvider,
    eastern_day_start,
    eastern_year,
    to_eastern,
)

logger = get_logger(__name__)

FIRST_CONGRESS_OFFSET = 1787
SESSION_BOUNDARY = (1, 3)


class SessionInfo(BaseModel):
    """Snapshot of the current legislative session"""

    current_congress: int
    current_session: int
    session_type: str
    session_end_date: datetime
    next_election_date: datetime
    in_warning_period: bool
    has_ended: bool

    def session_metadata(self) -> dict:
        """Metadata recorded on ledger entries when a session end makes celebrations defunct"""
        return {
            "congress": self.current_congress,
            "session_number": self.current_session,
            "session_end_date": self.session_end_date.isoformat(),
            "session_type": self.session_type,
        }


class SessionSignal(Protocol):
    """Contract for the legislative-session signal"""

    def is_session_ended(self) -> bool: ...

    def is_in_warning_period(self) -> bool: ...

    def get_session_info(self) -> SessionInfo: ...


def session_year(now: datetime) -> int:
    """Calendar year whose session is sitting at an instant (sessions turn over on Jan 3)"""
    today = to_eastern(now).date()
    if today < date(today.year, *SESSION_BOUNDARY):
        return today.year - 1
    return today.year


def congress_number(year: int) -> int:
    """Number of the Congress sitting in a calendar year (2025 -> 119)"""
    return (year - FIRST_CONGRESS_OFFSET) // 2


def session_number(year: int) -> int:
    """Second session in even years, first session in odd years"""
    return 2 if year % 2 == 0 else 1


def default_session_end(congress: int, session: int) -> date:
    """Constitutional default end of a session: Jan 3 of the following year"""
    start_year = FIRST_CONGRESS_OFFSET + congress * 2
    return date(start_year + session, *SESSION_BOUNDARY)


def closed_session_metadata(congress: int, session: int) -> dict:
    """Ledger metadata for a session that ended at its constitutional boundary"""
    end = eastern_day_start(default_session_end(congress, session))
    return {
        "congress": congress,
        "session_number": session,
        "session_end_date": end.isoformat(),
        "session_type": "regular",
    }


def federal_general_election(year: int) -> date:
    """The Tuesday after the first Monday in November"""
    first = date(year, 11, 1)
    days_to_tuesday = (1 - first.weekday()) % 7
    tuesday = first + timedelta(days=days_to_tuesday)
    if tuesday.day == 1:
        tuesday += timedelta(days=7)
    return tuesday


def next_federal_general_election(now: datetime) -> date:
    """General election of the current election year (even year)"""
    year = eastern_year(now)
    return federal_general_election(year if year % 2 == 0 else year + 1)


def previous_federal_general_election(now: datetime) -> date:
    """Most recent federal general election strictly before the Eastern civil date of now"""
    today = to_eastern(now).date()
    year = today.year if today.year % 2 == 0 else today.year - 1
    election = federal_general_election(year)
    if election >= today:
        election = federal_general_election(year - 2)
    return election


def months_before(moment: datetime, months: int) -> datetime:
    """Same wall-clock instant a number of months earlier (day clamped to month length)"""
    local = to_eastern(moment)
    month_index = local.month - 1 - months
    year = local.year + month_index // 12
    month = month_index % 12 + 1
    day = local.day
    while True:
        try:
            return local.replace(year=year, month=month, day=day)
        except ValueError:
            day -= 1


class CalendarSessionSignal:
    """
    Session signal computed from the constitutional calendar

    Args:
        time_provider: Source of "now"
        warning_months: Length of the pre-end warning window
        session_end_override: Known adjournment date, when one has been published
    """

    def __init__(
        self,
        time_provider: TimeProvider,
        warning_months: int = 1,
        session_end_override: date | datetime | None = None,
    ) -> None:
        self.time_provider = time_provider
        self.warning_months = warning_months
        self.session_end_override = session_end_override

    def session_end_date(self) -> datetime:
        override = self.session_end_override
        if isinstance(override, datetime):
            return override
        if isinstance(override, date):
            return eastern_day_start(override)
        year = session_year(self.time_provider.now())
        end = default_session_end(congress_number(year), session_number(year))
        return eastern_day_start(end)

    def is_session_ended(self) -> bool:
        return self.time_provider.now() > self.session_end_date()

    def is_in_warning_period(self) -> bool:
        now = self.time_provider.now()
        end = self.session_end_date()
        warning_start = months_before(end, self.warning_months)
        return warning_start <= now < end

    def get_session_info(self) -> SessionInfo:
        now = self.time_provider.now()
        year = session_year(now)
        info = SessionInfo(
            current_congress=congress_number(year),
            current_session=session_number(year),
            session_type="regular",
            session_end_date=self.session_end_date(),
            next_election_date=eastern_day_start(next_federal_general_election(now)),
            in_warning_period=self.is_in_warning_period(),
            has_ended=self.is_session_ended(),
        )
        logger.debug(
            "Congressional session status",
            current_congress=info.current_congress,
            current_session=info.current_session,
            session_end_date=info.session_end_date.isoformat(),
            in_warning_period=info.in_warning_period,
            has_ended=info.has_ended,
        )
        return info
