"""
Tests for the congressional session calendar

Fun fact: The 119th Congress first met on January 3, 2025 - (2025 - 1787) // 2
gives 119, which is the whole trick behind congress_number.
"""

from datetime import date, datetime, timezone

import pytest

from celebration_engine.congress.session import (
    CalendarSessionSignal,
    closed_session_metadata,
    congress_number,
    default_session_end,
    federal_general_election,
    months_before,
    previous_federal_general_election,
    session_number,
    session_year,
)
from celebration_engine.kernel.time import TestTimeProvider, eastern_day_start


@pytest.mark.parametrize(
    ("year", "congress", "session"),
    [(2025, 119, 1), (2026, 119, 2), (2027, 120, 1), (2024, 118, 2)],
)
def test_congress_and_session_numbers(year: int, congress: int, session: int) -> None:
    assert congress_number(year) == congress
    assert session_number(year) == session


def test_default_session_end_is_january_third() -> None:
    assert default_session_end(119, 1) == date(2026, 1, 3)
    assert default_session_end(119, 2) == date(2027, 1, 3)


def test_session_year_turns_over_on_january_third() -> None:
    """Jan 2 still belongs to the outgoing session"""
    jan_2 = datetime(2027, 1, 2, 18, 0, tzinfo=timezone.utc)
    jan_3 = datetime(2027, 1, 3, 18, 0, tzinfo=timezone.utc)

    assert session_year(jan_2) == 2026
    assert session_year(jan_3) == 2027


@pytest.mark.parametrize(
    ("year", "election_day"),
    [(2024, date(2024, 11, 5)), (2026, date(2026, 11, 3)), (2028, date(2028, 11, 7))],
)
def test_federal_general_election(year: int, election_day: date) -> None:
    """Tuesday after the first Monday in November"""
    assert federal_general_election(year) == election_day


def test_previous_general_is_strictly_before_today() -> None:
    election_day = datetime(2026, 11, 3, 17, 0, tzinfo=timezone.utc)
    day_after = datetime(2026, 11, 4, 17, 0, tzinfo=timezone.utc)

    assert previous_federal_general_election(election_day) == date(2024, 11, 5)
    assert previous_federal_general_election(day_after) == date(2026, 11, 3)


def test_months_before_clamps_day() -> None:
    moment = datetime(2026, 3, 31, 16, 0, tzinfo=timezone.utc)

    earlier = months_before(moment, 1)

    assert (earlier.year, earlier.month, earlier.day) == (2026, 2, 28)


def test_session_info_for_second_session() -> None:
    signal = CalendarSessionSignal(
        TestTimeProvider(datetime(2026, 3, 2, 15, 0, tzinfo=timezone.utc))
    )

    info = signal.get_session_info()

    assert (info.current_congress, info.current_session) == (119, 2)
    assert info.session_end_date == eastern_day_start(date(2027, 1, 3))
    assert info.next_election_date == eastern_day_start(date(2026, 11, 3))
    assert info.in_warning_period is False
    assert info.has_ended is False


def test_warning_period_is_the_last_month() -> None:
    time = TestTimeProvider(datetime(2026, 12, 2, 15, 0, tzinfo=timezone.utc))
    signal = CalendarSessionSignal(time, warning_months=1)

    assert signal.is_in_warning_period() is False

    time.set_time(datetime(2026, 12, 10, 15, 0, tzinfo=timezone.utc))
    assert signal.is_in_warning_period() is True
    assert signal.is_session_ended() is False


def test_override_end_date_marks_session_ended() -> None:
    time = TestTimeProvider(datetime(2026, 12, 20, 15, 0, tzinfo=timezone.utc))
    signal = CalendarSessionSignal(time, session_end_override=date(2026, 12, 18))

    info = signal.get_session_info()

    assert info.has_ended is True
    assert info.in_warning_period is False
    assert info.session_metadata() == {
        "congress": 119,
        "session_number": 2,
        "session_end_date": eastern_day_start(date(2026, 12, 18)).isoformat(),
        "session_type": "regular",
    }


def test_closed_session_metadata() -> None:
    metadata = closed_session_metadata(119, 2)

    assert metadata["session_number"] == 2
    assert metadata["session_end_date"] == eastern_day_start(date(2027, 1, 3)).isoformat()
