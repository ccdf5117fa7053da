"""
Server-side donation compliance gate

Every donation is validated here before it is committed, regardless of
what the donor's browser computed. Enhanced validation uses the recipient
state's real election cycle; when that data is degraded or the date source
fails, validation falls back to the legacy rules (annual cap, or the
generic federal cycle between general elections) and logs a warning.
"""

from datetime import datetime
from decimal import Decimal

from celebration_engine.compliance.cycle import ElectionCycleCalculator, federal_cycle
from celebration_engine.compliance.limits import (
    LimitEngine,
    annual_total,
    election_total,
    format_money,
    limit_info_for,
    per_donation_info,
)
from celebration_engine.compliance.models import (
    ComplianceResult,
    LimitInfo,
    LimitType,
    PledgeRecord,
    ValidationMethod,
)
from celebration_engine.compliance.tiers import ComplianceTierResolver
from celebration_engine.kernel.compliance_policy import CompliancePolicy, ResetType, TierRules
from celebration_engine.kernel.errors import DataDegraded, ValidationRejected
from celebration_engine.kernel.logging import get_logger
from celebration_engine.kernel.metrics import (
    data_degraded_total,
    donations_approved_total,
    limit_rejections_total,
)
from celebration_engine.kernel.time import TimeProvider

logger = get_logger(__name__)


class DonationComplianceValidator:
    """Validates one donation amount for a donor, recipient and history"""

    def __init__(
        self,
        policy: CompliancePolicy,
        resolver: ComplianceTierResolver,
        limit_engine: LimitEngine,
        cycle_calculator: ElectionCycleCalculator,
        time_provider: TimeProvider,
    ) -> None:
        self.policy = policy
        self.resolver = resolver
        self.limit_engine = limit_engine
        self.cycle_calculator = cycle_calculator
        self.time_provider = time_provider

    def validate(
        self,
        tier: str | None,
        amount: Decimal,
        history: list[PledgeRecord],
        recipient_id: str,
        state: str | None = None,
        now: datetime | None = None,
    ) -> ComplianceResult:
        """
        Validate a donation and report how it was decided

        Args:
            tier: Donor's compliance tier as stored
            amount: Donation amount (tip excluded)
            history: Donor's existing pledges
            recipient_id: Recipient of the donation
            state: Recipient's state, for the election cycle
            now: Evaluation instant (defaults to the time provider)

        Returns:
            ComplianceResult; rejections carry a reason and, for limit
            breaches, the LimitInfo of the broken limit
        """
        now = now or self.time_provider.now()

        if amount < self.policy.minimum_donation:
            return ComplianceResult(
                is_compliant=False,
                compliance_tier=str(tier),
                attempted_amount=amount,
                reason=(
                    f"Donation must be at least {format_money(self.policy.minimum_donation)}"
                ),
            )

        try:
            tier_name = self.resolver.strict(tier)
        except DataDegraded:
            logger.warning("Donation rejected: invalid compliance tier", tier=str(tier))
            return ComplianceResult(
                is_compliant=False,
                compliance_tier=str(tier),
                attempted_amount=amount,
                reason=f"Invalid compliance tier: {tier}",
            )

        rules = self.policy.tiers[tier_name]
        if amount > rules.per_donation_limit:
            limit_rejections_total.labels(
                compliance_tier=tier_name, limit_type=LimitType.PER_DONATION.value
            ).inc()
            return self._rejected(tier_name, rules, amount, per_donation_info(rules), None)

        try:
            self._validate_enhanced(tier_name, rules, amount, history, recipient_id, state, now)
        except ValidationRejected as e:
            return self._rejected(
                tier_name, rules, amount, e.limit_info, ValidationMethod.ENHANCED
            )
        except DataDegraded as e:
            data_degraded_total.labels(subject="enhanced_validation").inc()
            logger.warning(
                "Enhanced compliance check failed, falling back to legacy validation",
                compliance_tier=tier_name,
                recipient_id=recipient_id,
                state=state,
                detail=e.detail,
            )
            info = self._legacy_limit_info(rules, amount, history, recipient_id, now)
            if info is not None:
                limit_rejections_total.labels(
                    compliance_tier=tier_name, limit_type=info.limit_type.value
                ).inc()
                return self._rejected(tier_name, rules, amount, info, ValidationMethod.LEGACY)
            return self._approved(tier_name, rules, amount, ValidationMethod.LEGACY)

        return self._approved(tier_name, rules, amount, ValidationMethod.ENHANCED)

    def _validate_enhanced(
        self,
        tier_name: str,
        rules: TierRules,
        amount: Decimal,
        history: list[PledgeRecord],
        recipient_id: str,
        state: str | None,
        now: datetime,
    ) -> None:
        cycle = None
        if rules.reset_type == ResetType.ELECTION_CYCLE:
            cycle = self.cycle_calculator.calculate(
                self.cycle_calculator.strict_dates(state), now
            )
        self.limit_engine.validate(
            tier_name, amount, history, recipient_id, state, now=now, cycle=cycle
        )

    def _legacy_limit_info(
        self,
        rules: TierRules,
        amount: Decimal,
        history: list[PledgeRecord],
        recipient_id: str,
        now: datetime,
    ) -> LimitInfo | None:
        if rules.reset_type == ResetType.ANNUAL:
            return limit_info_for(rules, amount, annual_total(history, now), Decimal("0"))
        total = election_total(history, recipient_id, federal_cycle(now))
        return limit_info_for(rules, amount, Decimal("0"), total)

    def _approved(
        self,
        tier_name: str,
        rules: TierRules,
        amount: Decimal,
        method: ValidationMethod,
    ) -> ComplianceResult:
        donations_approved_total.labels(
            compliance_tier=tier_name, validation_method=method.value
        ).inc()
        return ComplianceResult(
            is_compliant=True,
            compliance_tier=tier_name,
            attempted_amount=amount,
            validation_method=method,
            per_donation_limit=rules.per_donation_limit,
            annual_cap=rules.annual_cap,
            per_election_limit=rules.per_election_limit,
        )

    def _rejected(
        self,
        tier_name: str,
        rules: TierRules,
        amount: Decimal,
        info: LimitInfo,
        method: ValidationMethod | None,
    ) -> ComplianceResult:
        return ComplianceResult(
            is_compliant=False,
            compliance_tier=tier_name,
            attempted_amount=amount,
            validation_method=method,
            reason=info.message,
            limit_info=info,
            per_donation_limit=rules.per_donation_limit,
            annual_cap=rules.annual_cap,
            per_election_limit=rules.per_election_limit,
        )
