"""
Compliance Module Models - tiers, election cycles and limit results

These models describe what the limit engine reads (donor tier, pledge
history, election dates) and what it answers (remaining limits, which
limit a donation breaks, how much of a tip survives).
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from celebration_engine.kernel.compliance_policy import ResetType


class ComplianceTier(str, Enum):
    """
    Contribution-limit regime applied to a donor

    UNVERIFIED: the default; small per-donation limit and an annual cap
    VERIFIED: identity on file; per-candidate, per-election limit
    """

    UNVERIFIED = "unverified"
    VERIFIED = "verified"


# Tier names used by older records
LEGACY_TIER_ALIASES = {
    "guest": ComplianceTier.UNVERIFIED,
    "compliant": ComplianceTier.VERIFIED,
}


class ElectionType(str, Enum):
    """Election date types, in the tie-break priority order"""

    PRIMARY = "primary"
    GENERAL = "general"
    RUNOFF = "runoff"
    SPECIAL = "special"


ELECTION_PRIORITY = (
    ElectionType.PRIMARY,
    ElectionType.GENERAL,
    ElectionType.RUNOFF,
    ElectionType.SPECIAL,
)


class DateSource(str, Enum):
    """Whether election dates came from real data or the generic fallback"""

    AUTHORITATIVE = "authoritative"
    FALLBACK = "fallback"


class ElectionDates(BaseModel):
    """Per-state election dates as instants (start of the Eastern civil day)"""

    primary: datetime | None = None
    general: datetime | None = None
    runoff: datetime | None = None
    special: datetime | None = None
    source: DateSource = DateSource.AUTHORITATIVE

    def get(self, election_type: ElectionType) -> datetime | None:
        return getattr(self, election_type.value)

    def configured(self) -> list[datetime]:
        """All non-null dates"""
        return [d for d in (self.get(t) for t in ELECTION_PRIORITY) if d is not None]


class ElectionCycle(BaseModel):
    """Current election-cycle window for one state"""

    current_election_type: ElectionType | None = None
    is_in_election_cycle: bool = False
    cycle_start_date: datetime | None = None
    cycle_end_date: datetime | None = None
    next_election_date: datetime | None = None
    source: DateSource = DateSource.AUTHORITATIVE

    def contains(self, moment: datetime) -> bool:
        """True if the instant falls inside [cycle_start, cycle_end]"""
        if self.cycle_start_date is None or self.cycle_end_date is None:
            return False
        return self.cycle_start_date <= moment <= self.cycle_end_date

    @property
    def has_window(self) -> bool:
        return self.cycle_start_date is not None and self.cycle_end_date is not None


class PledgeRecord(BaseModel):
    """
    Minimal view of a past pledge used for limit aggregation

    Built from the celebration projection; the legacy flags are what the
    aggregation filters on.
    """

    donation_amount: Decimal
    tip_amount: Decimal = Decimal("0")
    recipient_id: str
    created_at: datetime
    resolved: bool = False
    paused: bool = False
    defunct: bool = False

    model_config = {"frozen": True}

    def counts_toward_donation_limits(self) -> bool:
        """Defunct and paused pledges never count against donation limits"""
        return not (self.defunct or self.paused)

    def counts_toward_pac_limit(self) -> bool:
        """Only live escrowed tips count against the PAC ceiling"""
        return not (self.resolved or self.defunct or self.paused)


class LimitType(str, Enum):
    """Which limit a donation breaks"""

    PER_DONATION = "per-donation"
    ANNUAL_CAP = "annual-cap"
    PER_ELECTION = "per-election"


class LimitInfo(BaseModel):
    """Human-facing description of the limit a donation would break"""

    limit_type: LimitType
    amount: Decimal
    scope: str
    message: str

    def to_client(self) -> dict[str, Any]:
        return {
            "limitType": self.limit_type.value,
            "amount": float(self.amount),
            "scope": self.scope,
            "message": self.message,
        }


class LimitSummary(BaseModel):
    """A donor's effective and remaining limit at one moment"""

    compliance_tier: str
    reset_type: ResetType
    reset_date: datetime | None
    effective_limit: Decimal
    remaining_limit: Decimal
    next_reset_date: datetime | None
    current_total: Decimal = Decimal("0")
    cycle_source: DateSource | None = None

    def to_client(self) -> dict[str, Any]:
        """Read-only summary shape returned to clients"""
        return {
            "complianceTier": self.compliance_tier,
            "resetType": self.reset_type.value,
            "resetDate": self.reset_date.isoformat() if self.reset_date else None,
            "effectiveLimit": float(self.effective_limit),
            "remainingLimit": float(self.remaining_limit),
            "nextResetDate": self.next_reset_date.isoformat() if self.next_reset_date else None,
        }


class RecipientSelection(BaseModel):
    """Result of switching the selected recipient in a donation form"""

    recipient_id: str
    remaining_limit: Decimal
    staged_amount: Decimal
    clamped: bool
    suggestions: list[Decimal] = Field(default_factory=list)


class PacLimitStatus(BaseModel):
    """Annual PAC tip ceiling status for a donor"""

    pac_limit: Decimal
    current_pac_total: Decimal
    remaining_pac_limit: Decimal
    is_compliant: bool
    attempted_tip_amount: Decimal = Decimal("0")
    would_exceed: bool = False
    pac_limit_exceeded: bool = False

    def to_client(self) -> dict[str, Any]:
        return {
            "pacLimit": float(self.pac_limit),
            "currentPACTotal": float(self.current_pac_total),
            "pacLimitExceeded": self.pac_limit_exceeded,
            "remainingPACLimit": float(self.remaining_pac_limit),
        }


class TipDecision(BaseModel):
    """What happens to the optional tip on one donation"""

    requested_tip: Decimal
    applied_tip: Decimal
    truncated: bool
    limit_reached: bool
    status: PacLimitStatus


class ValidationMethod(str, Enum):
    ENHANCED = "enhanced"
    LEGACY = "legacy"


class ComplianceResult(BaseModel):
    """Outcome of server-side donation validation"""

    is_compliant: bool
    compliance_tier: str
    attempted_amount: Decimal
    validation_method: ValidationMethod | None = None
    reason: str | None = None
    limit_info: LimitInfo | None = None
    per_donation_limit: Decimal | None = None
    annual_cap: Decimal | None = None
    per_election_limit: Decimal | None = None
