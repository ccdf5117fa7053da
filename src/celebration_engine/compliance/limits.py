"""
Limit engine - effective limits, remaining limits and limit violations

Server values are authoritative: every donation is re-checked here even if
the donor's browser already ran the same numbers.

Two aggregate windows exist, chosen by the tier's reset type:
- annual: all donations to all recipients in the current Eastern calendar year
- election_cycle: donations to one recipient inside the state's cycle window

In both, a single donation is also bounded by the per-donation limit, which
is checked first.
"""

from collections.abc import Iterable
from datetime import datetime
from decimal import Decimal

from celebration_engine.compliance.cycle import ONE_INSTANT, ElectionCycleCalculator
from celebration_engine.compliance.models import (
    ElectionCycle,
    LimitInfo,
    LimitSummary,
    LimitType,
    PledgeRecord,
    RecipientSelection,
)
from celebration_engine.compliance.tiers import ComplianceTierResolver
from celebration_engine.kernel.compliance_policy import CompliancePolicy, ResetType, TierRules
from celebration_engine.kernel.errors import ValidationRejected
from celebration_engine.kernel.logging import get_logger
from celebration_engine.kernel.metrics import limit_rejections_total
from celebration_engine.kernel.time import (
    TimeProvider,
    eastern_year,
    eastern_year_start,
)

logger = get_logger(__name__)

ZERO = Decimal("0")
GENERIC_LIMIT_MESSAGE = "Donation limit exceeded."


def format_money(amount: Decimal) -> str:
    """$200 for whole amounts, $12.50 otherwise"""
    if amount == amount.to_integral_value():
        return f"${int(amount)}"
    return f"${amount.quantize(Decimal('0.01'))}"


def annual_total(history: Iterable[PledgeRecord], now: datetime) -> Decimal:
    """Donations this Eastern calendar year, across all recipients"""
    year = eastern_year(now)
    return sum(
        (
            p.donation_amount
            for p in history
            if p.counts_toward_donation_limits() and eastern_year(p.created_at) == year
        ),
        ZERO,
    )


def election_total(
    history: Iterable[PledgeRecord],
    recipient_id: str,
    cycle: ElectionCycle | None,
) -> Decimal:
    """
    Donations to one recipient inside the cycle window

    Without a usable window every donation to the recipient counts.
    """
    return sum(
        (
            p.donation_amount
            for p in history
            if p.counts_toward_donation_limits()
            and p.recipient_id == recipient_id
            and (cycle is None or not cycle.has_window or cycle.contains(p.created_at))
        ),
        ZERO,
    )


def per_donation_info(rules: TierRules) -> LimitInfo:
    return LimitInfo(
        limit_type=LimitType.PER_DONATION,
        amount=rules.per_donation_limit,
        scope="per donation",
        message=(
            f"You cannot donate more than {format_money(rules.per_donation_limit)} "
            "in a single transaction."
        ),
    )


def aggregate_info(rules: TierRules) -> LimitInfo:
    if rules.reset_type == ResetType.ANNUAL:
        return LimitInfo(
            limit_type=LimitType.ANNUAL_CAP,
            amount=rules.annual_cap,
            scope="total annual cap",
            message=(
                f"This donation would exceed your {format_money(rules.annual_cap)} "
                "annual cap across all candidates."
            ),
        )
    return LimitInfo(
        limit_type=LimitType.PER_ELECTION,
        amount=rules.per_election_limit,
        scope="per candidate per election",
        message=(
            f"This donation would exceed your {format_money(rules.per_election_limit)} "
            "limit for this candidate in this election."
        ),
    )


def limit_info_for(
    rules: TierRules,
    amount: Decimal,
    current_annual_total: Decimal,
    current_election_total: Decimal,
) -> LimitInfo | None:
    """
    First limit the amount breaks, per-donation before aggregate

    Returns None when the amount fits every limit of the tier.
    """
    if amount > rules.per_donation_limit:
        return per_donation_info(rules)
    if rules.reset_type == ResetType.ANNUAL:
        if current_annual_total + amount > rules.annual_cap:
            return aggregate_info(rules)
    elif current_election_total + amount > rules.per_election_limit:
        return aggregate_info(rules)
    return None


class LimitEngine:
    """
    Computes and enforces contribution limits

    Unknown tier names are resolved to the lowest tier's rules by the
    resolver, so a corrupt tier never fails a request.
    """

    def __init__(
        self,
        policy: CompliancePolicy,
        resolver: ComplianceTierResolver,
        cycle_calculator: ElectionCycleCalculator,
        time_provider: TimeProvider,
    ) -> None:
        self.policy = policy
        self.resolver = resolver
        self.cycle_calculator = cycle_calculator
        self.time_provider = time_provider

    def effective_limits(
        self,
        tier: str | None,
        history: list[PledgeRecord],
        recipient_id: str | None = None,
        state: str | None = None,
        now: datetime | None = None,
        cycle: ElectionCycle | None = None,
    ) -> LimitSummary:
        """
        Effective and remaining limit for a donor

        Args:
            tier: Donor's tier name (unknown names degrade)
            history: Donor's past pledges
            recipient_id: Selected recipient (election-cycle tiers only)
            state: Recipient's state, used to find the election cycle
            now: Evaluation instant (defaults to the time provider)
            cycle: Precomputed cycle window, skips the date lookup

        Returns:
            LimitSummary with reset boundaries
        """
        now = now or self.time_provider.now()
        tier_name = self.resolver.normalize(tier)
        rules = self.policy.tiers[tier_name]

        if rules.reset_type == ResetType.ANNUAL:
            year = eastern_year(now)
            total = annual_total(history, now)
            return LimitSummary(
                compliance_tier=tier_name,
                reset_type=rules.reset_type,
                reset_date=eastern_year_start(year),
                effective_limit=rules.annual_cap,
                remaining_limit=self._remaining(rules, total),
                next_reset_date=eastern_year_start(year + 1),
                current_total=total,
            )

        if cycle is None:
            cycle = self.cycle_calculator.limit_cycle(state, now)
        total = election_total(history, recipient_id, cycle) if recipient_id else ZERO
        next_reset = cycle.next_election_date
        if next_reset is None and cycle.cycle_end_date is not None:
            next_reset = cycle.cycle_end_date + ONE_INSTANT
        return LimitSummary(
            compliance_tier=tier_name,
            reset_type=rules.reset_type,
            reset_date=cycle.cycle_start_date,
            effective_limit=rules.per_election_limit,
            remaining_limit=self._remaining(rules, total),
            next_reset_date=next_reset,
            current_total=total,
            cycle_source=cycle.source,
        )

    def _remaining(self, rules: TierRules, total: Decimal) -> Decimal:
        headroom = max(ZERO, rules.aggregate_limit - total)
        return min(rules.per_donation_limit, headroom)

    def would_exceed_limits(
        self,
        tier: str | None,
        amount: Decimal,
        current_annual_total: Decimal = ZERO,
        current_election_total: Decimal = ZERO,
    ) -> bool:
        """True if the amount breaks any limit of the tier"""
        return (
            self.get_limit_info(tier, amount, current_annual_total, current_election_total)
            is not None
        )

    def get_limit_info(
        self,
        tier: str | None,
        amount: Decimal,
        current_annual_total: Decimal = ZERO,
        current_election_total: Decimal = ZERO,
    ) -> LimitInfo | None:
        """Which limit the amount breaks (per-donation first), or None"""
        rules = self.resolver.rules_for(tier)
        return limit_info_for(rules, amount, current_annual_total, current_election_total)

    def validate(
        self,
        tier: str | None,
        amount: Decimal,
        history: list[PledgeRecord],
        recipient_id: str | None = None,
        state: str | None = None,
        now: datetime | None = None,
        cycle: ElectionCycle | None = None,
    ) -> LimitSummary:
        """
        Check a donation against the donor's live totals

        Returns:
            The pre-donation LimitSummary when the amount is allowed

        Raises:
            ValidationRejected: carrying the LimitInfo of the broken limit
        """
        summary = self.effective_limits(tier, history, recipient_id, state, now, cycle)
        rules = self.policy.tiers[summary.compliance_tier]
        if rules.reset_type == ResetType.ANNUAL:
            info = limit_info_for(rules, amount, summary.current_total, ZERO)
        else:
            info = limit_info_for(rules, amount, ZERO, summary.current_total)

        if info is not None:
            limit_rejections_total.labels(
                compliance_tier=summary.compliance_tier, limit_type=info.limit_type.value
            ).inc()
            logger.info(
                "Donation rejected by limit",
                compliance_tier=summary.compliance_tier,
                limit_type=info.limit_type.value,
                attempted=str(amount),
                current_total=str(summary.current_total),
            )
            raise ValidationRejected(info, attempted_amount=amount)
        return summary

    def suggested_amounts(self, tier: str | None, remaining: Decimal) -> list[Decimal]:
        """Tier's suggestion list capped at the remaining limit, non-positive entries dropped"""
        rules = self.resolver.rules_for(tier)
        suggestions: list[Decimal] = []
        for suggestion in rules.suggested_amounts:
            capped = min(suggestion, remaining)
            if capped > ZERO and capped not in suggestions:
                suggestions.append(capped)
        return suggestions

    @staticmethod
    def clamp_staged_amount(staged: Decimal, remaining: Decimal) -> tuple[Decimal, bool]:
        """Staged donation bounded by the remaining limit; second item tells if it moved"""
        if staged > remaining:
            return remaining, True
        return staged, False

    def select_recipient(
        self,
        tier: str | None,
        history: list[PledgeRecord],
        recipient_id: str,
        state: str | None,
        staged_amount: Decimal,
        now: datetime | None = None,
    ) -> RecipientSelection:
        """
        Recompute the remaining limit after switching recipients

        The staged donation is dependent on the remaining limit and is
        clamped down whenever it no longer fits.
        """
        summary = self.effective_limits(tier, history, recipient_id, state, now)
        staged, clamped = self.clamp_staged_amount(staged_amount, summary.remaining_limit)
        if clamped:
            logger.debug(
                "Staged donation clamped to remaining limit",
                recipient_id=recipient_id,
                requested=str(staged_amount),
                clamped_to=str(staged),
            )
        return RecipientSelection(
            recipient_id=recipient_id,
            remaining_limit=summary.remaining_limit,
            staged_amount=staged,
            clamped=clamped,
            suggestions=self.suggested_amounts(tier, summary.remaining_limit),
        )
