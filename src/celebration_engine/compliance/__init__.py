"""
Compliance Module - contribution tiers, limits and the PAC tip ceiling

This module answers one question for every donation attempt: is this
amount allowed for this donor, to this recipient, right now?
- Tier resolution (unverified vs. verified, legacy names degrade safely)
- Election-cycle windows per state
- Annual and per-election limits, checked server-side every time
- The annual ceiling on optional tips

Fun fact: "Reckoning" a donation against limits is older than computers -
campaign treasurers kept paper contributor ledgers for exactly this.
"""

from celebration_engine.compliance.models import (
    ComplianceTier,
    ElectionCycle,
    ElectionDates,
    LimitInfo,
    LimitSummary,
    LimitType,
    PacLimitStatus,
    PledgeRecord,
)

__all__ = [
    "ComplianceTier",
    "ElectionCycle",
    "ElectionDates",
    "LimitInfo",
    "LimitSummary",
    "LimitType",
    "PacLimitStatus",
    "PledgeRecord",
]
