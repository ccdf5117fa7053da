"""
Congress Module - legislative calendar and election dates

Supplies the two outside facts the engine reacts to: where each state is
in its election cycle, and whether the current congressional session has
ended (or is about to).
"""

from celebration_engine.congress.elections import (
    ElectionDateSource,
    StaticElectionDateSource,
)
from celebration_engine.congress.session import (
    CalendarSessionSignal,
    SessionInfo,
    SessionSignal,
)

__all__ = [
    "ElectionDateSource",
    "StaticElectionDateSource",
    "CalendarSessionSignal",
    "SessionInfo",
    "SessionSignal",
]
