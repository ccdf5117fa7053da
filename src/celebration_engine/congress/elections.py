"""
Election-date sources

The engine never fetches election data inline. Whatever keeps the dates
fresh (a scheduled snapshot job, a bundled file) hands them over through
this contract, and the engine falls back to generic dates when it cannot.
"""

import json
from pathlib import Path
from typing import Any, Protocol

from celebration_engine.compliance.models import DateSource, ElectionDates
from celebration_engine.kernel.logging import get_logger
from celebration_engine.kernel.time import parse_civil_date

logger = get_logger(__name__)


class ElectionDateSource(Protocol):
    """Contract for per-state election dates"""

    def get_election_dates(self, state: str) -> ElectionDates | None:
        """Dates for a state, or None when the state is unknown"""
        ...


def parse_election_dates(raw: dict[str, Any]) -> ElectionDates:
    """Build ElectionDates from a {primary, general, runoff, special} mapping of date strings"""
    return ElectionDates(
        primary=parse_civil_date(raw.get("primary")),
        general=parse_civil_date(raw.get("general")),
        runoff=parse_civil_date(raw.get("runoff")),
        special=parse_civil_date(raw.get("special")),
        source=DateSource.AUTHORITATIVE,
    )


class StaticElectionDateSource:
    """
    In-memory election dates keyed by two-letter state code

    Example:
        >>> source = StaticElectionDateSource({"CA": {"primary": "2026-06-02", "general": "2026-11-03"}})
        >>> source.get_election_dates("ca").general.year
        2026
    """

    def __init__(self, dates_by_state: dict[str, dict[str, Any]] | None = None) -> None:
        self._dates = {
            state.upper(): parse_election_dates(raw)
            for state, raw in (dates_by_state or {}).items()
        }

    def get_election_dates(self, state: str) -> ElectionDates | None:
        return self._dates.get(state.upper())

    def states(self) -> list[str]:
        return sorted(self._dates)

    @classmethod
    def from_snapshot(
        cls, path: str | Path, election_year: int | None = None
    ) -> "StaticElectionDateSource":
        """
        Load a snapshot file written by the election-date ingestion job

        Format: {"electionYear": 2026, "dates": {"CA": {"primary": "...", ...}}}

        A snapshot for a different election year is stale and yields an
        empty source, so every lookup falls back to generic dates.
        """
        snapshot = json.loads(Path(path).read_text(encoding="utf-8"))
        snapshot_year = snapshot.get("electionYear")
        if election_year is not None and snapshot_year != election_year:
            logger.warning(
                "Election-date snapshot is for a different year, ignoring it",
                snapshot_year=snapshot_year,
                election_year=election_year,
                path=str(path),
            )
            return cls({})
        return cls(snapshot.get("dates", {}))
