"""
Election cycle calculation

Works out which election window a state is in, from whatever per-state
dates the election-date source could provide. The verified tier's
per-candidate limit resets on these boundaries, so a fallback to generic
dates is always flagged on the result.
"""

from datetime import date, datetime, timedelta

from celebration_engine.compliance.models import (
    ELECTION_PRIORITY,
    DateSource,
    ElectionCycle,
    ElectionDates,
    ElectionType,
)
from celebration_engine.congress.elections import ElectionDateSource
from celebration_engine.congress.session import (
    federal_general_election,
    previous_federal_general_election,
)
from celebration_engine.kernel.errors import DataDegraded
from celebration_engine.kernel.logging import get_logger
from celebration_engine.kernel.metrics import data_degraded_total
from celebration_engine.kernel.time import (
    eastern_day_start,
    eastern_year,
    eastern_year_end,
)

logger = get_logger(__name__)

ONE_INSTANT = timedelta(microseconds=1)

# Generic month/day used when a state has no data
FALLBACK_PRIMARY = (6, 1)
FALLBACK_GENERAL = (11, 5)


def current_election_year(now: datetime) -> int:
    """The current year if even, otherwise the next (even) year"""
    year = eastern_year(now)
    return year if year % 2 == 0 else year + 1


def fallback_election_dates(year: int) -> ElectionDates:
    """Generic same-year primary/general pair, flagged as fallback"""
    return ElectionDates(
        primary=eastern_day_start(date(year, *FALLBACK_PRIMARY)),
        general=eastern_day_start(date(year, *FALLBACK_GENERAL)),
        source=DateSource.FALLBACK,
    )


def federal_cycle(now: datetime) -> ElectionCycle:
    """Generic federal cycle: from the last general election up to the next one"""
    previous = previous_federal_general_election(now)
    upcoming = federal_general_election(previous.year + 2)
    return ElectionCycle(
        current_election_type=ElectionType.GENERAL,
        is_in_election_cycle=True,
        cycle_start_date=eastern_day_start(previous),
        cycle_end_date=eastern_day_start(upcoming) - ONE_INSTANT,
        next_election_date=eastern_day_start(upcoming),
        source=DateSource.FALLBACK,
    )


class ElectionCycleCalculator:
    """
    Computes election-cycle windows

    The date-type priority (primary, general, runoff, special) is a
    tie-break policy rather than a chronological order and is preserved
    exactly: the first type in that order whose date has passed decides
    the current cycle.
    """

    def __init__(self, election_dates: ElectionDateSource | None = None) -> None:
        self.election_dates = election_dates

    def calculate(self, dates: ElectionDates, now: datetime) -> ElectionCycle:
        """
        Compute the cycle window for a set of dates at a given instant

        Args:
            dates: Per-state election dates (any may be None)
            now: The moment to evaluate

        Returns:
            ElectionCycle; all fields empty when no dates are configured
        """
        current_year = eastern_year(now)
        configured = dates.configured()

        for election_type in ELECTION_PRIORITY:
            start = dates.get(election_type)
            if start is None or start > now:
                continue

            later = [d for d in configured if d > start]
            if later:
                end = min(later) - ONE_INSTANT
            else:
                end = eastern_year_end(current_year + 2)

            return ElectionCycle(
                current_election_type=election_type,
                is_in_election_cycle=True,
                cycle_start_date=start,
                cycle_end_date=end,
                next_election_date=min((d for d in later if d > now), default=None),
                source=dates.source,
            )

        upcoming = [d for d in configured if d > now]
        if not upcoming:
            return ElectionCycle(source=dates.source)

        next_election = min(upcoming)
        previous_general = fallback_election_dates(current_year - 2).general
        return ElectionCycle(
            current_election_type=None,
            is_in_election_cycle=False,
            cycle_start_date=previous_general,
            cycle_end_date=next_election - ONE_INSTANT,
            next_election_date=next_election,
            source=dates.source,
        )

    def resolve_dates(self, state: str | None, now: datetime) -> ElectionDates:
        """
        Fetch dates for a state, falling back to generic dates

        Missing source, unknown state or a failing source all degrade to
        the generic pair for the current election year.
        """
        try:
            return self.strict_dates(state)
        except DataDegraded as e:
            data_degraded_total.labels(subject="election_dates").inc()
            logger.warning(
                "Election dates unavailable, using generic fallback",
                state=state,
                detail=e.detail,
            )
            return fallback_election_dates(current_election_year(now))

    def strict_dates(self, state: str | None) -> ElectionDates:
        """
        Fetch dates for a state without falling back

        Raises:
            DataDegraded: if no authoritative dates can be obtained
        """
        if not state:
            raise DataDegraded("election_dates", "no state given for recipient")
        if self.election_dates is None:
            raise DataDegraded("election_dates", "no election-date source configured")
        try:
            dates = self.election_dates.get_election_dates(state)
        except Exception as e:
            raise DataDegraded("election_dates", f"source failed: {e}") from e
        if dates is None or not dates.configured():
            raise DataDegraded("election_dates", f"no dates for state {state}")
        return dates

    def cycle_for_state(self, state: str | None, now: datetime) -> ElectionCycle:
        """Cycle window for a state, degrading to generic dates if needed"""
        return self.calculate(self.resolve_dates(state, now), now)

    def limit_cycle(self, state: str | None, now: datetime) -> ElectionCycle:
        """
        Window the per-election limit is enforced over

        Without authoritative dates the limit falls back to the federal
        general-to-general cycle, the same window legacy validation checks,
        so the remaining amount shown matches what will be accepted.
        """
        try:
            return self.calculate(self.strict_dates(state), now)
        except DataDegraded as e:
            data_degraded_total.labels(subject="limit_cycle").inc()
            logger.warning(
                "Election dates unavailable, limiting over the federal cycle",
                state=state,
                detail=e.detail,
            )
            return federal_cycle(now)
