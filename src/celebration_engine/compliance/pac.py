"""
PAC limit tracking for optional tips

Tips go to the platform's PAC and share one annual ceiling across every
recipient, independent of the donor's tier. A tip never blocks a donation:
when it would push the donor over the ceiling, the tip alone is dropped.
"""

from datetime import datetime
from decimal import Decimal

from celebration_engine.compliance.models import PacLimitStatus, PledgeRecord, TipDecision
from celebration_engine.kernel.compliance_policy import CompliancePolicy
from celebration_engine.kernel.logging import get_logger
from celebration_engine.kernel.metrics import tip_limit_reached_total, tips_truncated_total
from celebration_engine.kernel.time import TimeProvider, eastern_year

logger = get_logger(__name__)

ZERO = Decimal("0")


class PacLimitTracker:
    """Sums this year's live tips against the annual PAC ceiling"""

    def __init__(self, policy: CompliancePolicy, time_provider: TimeProvider) -> None:
        self.policy = policy
        self.time_provider = time_provider

    @property
    def pac_limit(self) -> Decimal:
        return self.policy.pac_annual_limit

    def current_total(self, history: list[PledgeRecord], now: datetime | None = None) -> Decimal:
        """Tips on live pledges created in the current Eastern calendar year"""
        year = eastern_year(now or self.time_provider.now())
        return sum(
            (
                p.tip_amount
                for p in history
                if p.counts_toward_pac_limit() and eastern_year(p.created_at) == year
            ),
            ZERO,
        )

    def check(
        self,
        history: list[PledgeRecord],
        attempted_tip: Decimal = ZERO,
        now: datetime | None = None,
    ) -> PacLimitStatus:
        """
        PAC status before an optional attempted tip

        is_compliant means the attempted tip still fits; would_exceed means
        it would go strictly over the ceiling.
        """
        total = self.current_total(history, now)
        would_exceed = total + attempted_tip > self.pac_limit
        return PacLimitStatus(
            pac_limit=self.pac_limit,
            current_pac_total=total,
            remaining_pac_limit=max(ZERO, self.pac_limit - total),
            is_compliant=not would_exceed,
            attempted_tip_amount=attempted_tip,
            would_exceed=would_exceed,
            pac_limit_exceeded=total >= self.pac_limit,
        )

    def apply_tip(
        self,
        history: list[PledgeRecord],
        requested_tip: Decimal,
        now: datetime | None = None,
    ) -> TipDecision:
        """
        Decide the tip for one donation

        Reaching the ceiling exactly keeps the tip and marks the limit
        reached; going over it drops the tip to zero (and also marks it).
        """
        status = self.check(history, requested_tip, now)
        if requested_tip <= ZERO:
            return TipDecision(
                requested_tip=requested_tip,
                applied_tip=ZERO,
                truncated=False,
                limit_reached=False,
                status=status,
            )

        limit_reached = status.current_pac_total + requested_tip >= self.pac_limit
        truncated = status.would_exceed
        applied = ZERO if truncated else requested_tip

        if truncated:
            tips_truncated_total.inc()
            logger.info(
                "Tip truncated: would exceed annual PAC limit",
                requested_tip=str(requested_tip),
                current_pac_total=str(status.current_pac_total),
                pac_limit=str(self.pac_limit),
            )
        if limit_reached:
            tip_limit_reached_total.inc()

        return TipDecision(
            requested_tip=requested_tip,
            applied_tip=applied,
            truncated=truncated,
            limit_reached=limit_reached,
            status=status,
        )
