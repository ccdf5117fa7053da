"""
Compliance tier resolution

A donor's tier lives on the donor record, but a donor part-way through the
verification form may already qualify for a higher one. The effective tier
is the higher of the two; anything unrecognized degrades to the lowest tier
instead of failing the request.
"""

from collections.abc import Iterable
from typing import Literal

from celebration_engine.compliance.models import LEGACY_TIER_ALIASES, ComplianceTier
from celebration_engine.kernel.compliance_policy import CompliancePolicy, TierRules
from celebration_engine.kernel.errors import DataDegraded
from celebration_engine.kernel.logging import get_logger
from celebration_engine.kernel.metrics import data_degraded_total

logger = get_logger(__name__)


class ComplianceTierResolver:
    """Maps tier names onto the policy's ordered tier hierarchy"""

    def __init__(self, policy: CompliancePolicy) -> None:
        self.policy = policy
        self.hierarchy = list(policy.tier_hierarchy)

    def strict(self, tier: str | ComplianceTier | None) -> str:
        """
        Canonical tier name, or DataDegraded if it is not recognized

        Accepts enum members, canonical names and the legacy aliases.
        """
        if isinstance(tier, ComplianceTier):
            tier = tier.value
        if isinstance(tier, str):
            name = tier.strip().lower()
            if name in LEGACY_TIER_ALIASES:
                name = LEGACY_TIER_ALIASES[name].value
            if name in self.hierarchy:
                return name
        raise DataDegraded("tier", f"unrecognized compliance tier {tier!r}")

    def normalize(self, tier: str | ComplianceTier | None) -> str:
        """Canonical tier name; unknown values degrade to the lowest tier"""
        try:
            return self.strict(tier)
        except DataDegraded as e:
            data_degraded_total.labels(subject="tier").inc()
            logger.warning(
                "Unrecognized compliance tier, degrading to default",
                tier=str(tier),
                default_tier=self.policy.default_tier,
                detail=e.detail,
            )
            return self.policy.default_tier

    def index_of(self, tier: str | ComplianceTier | None) -> int:
        return self.hierarchy.index(self.normalize(tier))

    def effective_tier(
        self,
        form_tier: str | ComplianceTier | None,
        user_tier: str | ComplianceTier | None,
    ) -> str:
        """The higher of the in-progress form tier and the stored donor tier"""
        return self.hierarchy[max(self.index_of(form_tier), self.index_of(user_tier))]

    def extremum(
        self,
        tiers: Iterable[str | ComplianceTier | None],
        mode: Literal["max", "min"] = "max",
    ) -> int:
        """
        Highest or lowest hierarchy position among a set of tiers

        Used by donor-facing messaging to pick which tier's wording to show.
        An empty set yields position 0.
        """
        indices = [self.index_of(tier) for tier in tiers]
        if not indices:
            return 0
        return max(indices) if mode == "max" else min(indices)

    def rules_for(self, tier: str | ComplianceTier | None) -> TierRules:
        """Limit rules for a tier (lowest tier's rules when unrecognized)"""
        return self.policy.tiers[self.normalize(tier)]

    def is_higher(self, candidate: str | ComplianceTier, current: str | ComplianceTier) -> bool:
        return self.index_of(candidate) > self.index_of(current)
