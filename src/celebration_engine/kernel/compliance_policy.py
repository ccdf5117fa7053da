"""
Compliance Policy - contribution limits and lifecycle parameters as data

The CompliancePolicy holds the tier table, the PAC tip ceiling and the
session-warning window. Every validator reads its numbers from here, so
adding a third tier is a data change, not a new code path.

Fun fact: The per-candidate, per-election individual limit is indexed to
inflation every odd-numbered year - which is why these numbers live in
configuration instead of constants.
"""

import os
from decimal import Decimal
from enum import Enum

from pydantic import BaseModel, Field, model_validator


class ResetType(str, Enum):
    """How an aggregate limit window resets"""

    ANNUAL = "annual"
    ELECTION_CYCLE = "election_cycle"


class ResetTime(str, Enum):
    """When the reset fires"""

    MIDNIGHT_EASTERN = "midnight_est"
    ELECTION_DATE = "election_date"


class TierRules(BaseModel):
    """
    Limit rules for one compliance tier

    Annual-reset tiers carry an annual_cap across all recipients;
    election-cycle tiers carry a per_election_limit per recipient.
    """

    per_donation_limit: Decimal = Field(..., gt=0)
    annual_cap: Decimal | None = Field(default=None, gt=0)
    per_election_limit: Decimal | None = Field(default=None, gt=0)
    scope: str
    description: str
    reset_type: ResetType
    reset_time: ResetTime
    suggested_amounts: list[Decimal] = Field(default_factory=list)

    model_config = {"frozen": True}

    @model_validator(mode="after")
    def _aggregate_matches_reset_type(self) -> "TierRules":
        if self.reset_type == ResetType.ANNUAL and self.annual_cap is None:
            raise ValueError("annual tiers need an annual_cap")
        if self.reset_type == ResetType.ELECTION_CYCLE and self.per_election_limit is None:
            raise ValueError("election-cycle tiers need a per_election_limit")
        return self

    @property
    def aggregate_limit(self) -> Decimal:
        """The cap the tier's aggregate window is measured against"""
        if self.reset_type == ResetType.ANNUAL:
            return self.annual_cap  # type: ignore[return-value]
        return self.per_election_limit  # type: ignore[return-value]


def default_tier_table() -> dict[str, TierRules]:
    """The two tiers the platform ships with"""
    return {
        "unverified": TierRules(
            per_donation_limit=Decimal("50"),
            annual_cap=Decimal("200"),
            scope="Total annual cap across all candidates",
            description="Unverified donors: small donations, no identity details collected",
            reset_type=ResetType.ANNUAL,
            reset_time=ResetTime.MIDNIGHT_EASTERN,
            suggested_amounts=[Decimal(v) for v in ("2", "5", "10", "25", "50")],
        ),
        "verified": TierRules(
            per_donation_limit=Decimal("3500"),
            per_election_limit=Decimal("3500"),
            scope="Per candidate per election",
            description="Verified donors: name, address, occupation and employer on file",
            reset_type=ResetType.ELECTION_CYCLE,
            reset_time=ResetTime.ELECTION_DATE,
            suggested_amounts=[Decimal(v) for v in ("100", "250", "500", "1000", "3500")],
        ),
    }


class CompliancePolicy(BaseModel):
    """
    Contribution-limit and lifecycle parameters

    Defaults mirror the platform's published limits. Values can be
    overridden per deployment through CELEBRATION_* environment variables.
    """

    policy_version: str = Field(
        default="1.0",
        description="Policy version for tracking changes over time",
    )

    tier_hierarchy: list[str] = Field(
        default=["unverified", "verified"],
        min_length=1,
        description="Tiers from lowest to highest; index order decides the effective tier",
    )

    tiers: dict[str, TierRules] = Field(
        default_factory=default_tier_table,
        description="Limit table keyed by tier name",
    )

    pac_annual_limit: Decimal = Field(
        default=Decimal("5000"),
        gt=0,
        description="Annual ceiling on optional tips, shared across all recipients",
    )

    minimum_donation: Decimal = Field(
        default=Decimal("1"),
        gt=0,
        description="Smallest donation amount accepted",
    )

    session_warning_months: int = Field(
        default=1,
        ge=0,
        le=12,
        description="Months before session end during which donors are warned",
    )

    validation_version: str = Field(
        default="1.0",
        description="Version stamped on donor validation flags",
    )

    model_config = {
        "frozen": False,
        "json_schema_extra": {
            "description": "Contribution limits and lifecycle parameters"
        },
    }

    @model_validator(mode="after")
    def _hierarchy_has_rules(self) -> "CompliancePolicy":
        missing = [tier for tier in self.tier_hierarchy if tier not in self.tiers]
        if missing:
            raise ValueError(f"tiers missing from the limit table: {missing}")
        return self

    @property
    def default_tier(self) -> str:
        """The lowest tier; unknown tier names degrade to it"""
        return self.tier_hierarchy[0]

    @classmethod
    def from_env(cls) -> "CompliancePolicy":
        """
        Build a policy from environment overrides

        Recognized variables:
            CELEBRATION_PAC_ANNUAL_LIMIT
            CELEBRATION_MINIMUM_DONATION
            CELEBRATION_SESSION_WARNING_MONTHS
            CELEBRATION_UNVERIFIED_PER_DONATION / CELEBRATION_UNVERIFIED_ANNUAL_CAP
            CELEBRATION_VERIFIED_PER_DONATION / CELEBRATION_VERIFIED_PER_ELECTION
        """
        overrides: dict = {}
        if value := os.getenv("CELEBRATION_PAC_ANNUAL_LIMIT"):
            overrides["pac_annual_limit"] = Decimal(value)
        if value := os.getenv("CELEBRATION_MINIMUM_DONATION"):
            overrides["minimum_donation"] = Decimal(value)
        if value := os.getenv("CELEBRATION_SESSION_WARNING_MONTHS"):
            overrides["session_warning_months"] = int(value)

        tiers = default_tier_table()
        tier_overrides = {
            "unverified": {
                "per_donation_limit": os.getenv("CELEBRATION_UNVERIFIED_PER_DONATION"),
                "annual_cap": os.getenv("CELEBRATION_UNVERIFIED_ANNUAL_CAP"),
            },
            "verified": {
                "per_donation_limit": os.getenv("CELEBRATION_VERIFIED_PER_DONATION"),
                "per_election_limit": os.getenv("CELEBRATION_VERIFIED_PER_ELECTION"),
            },
        }
        for tier, fields in tier_overrides.items():
            changed = {k: Decimal(v) for k, v in fields.items() if v}
            if changed:
                tiers[tier] = tiers[tier].model_copy(update=changed)
        overrides["tiers"] = tiers

        return cls(**overrides)


# Default global policy instance
default_compliance_policy = CompliancePolicy()
