"""
Tests for the limit engine

Covers both tiers end to end: the unverified annual cap across all
recipients and the verified per-candidate, per-election limit, including
the staged-amount clamp when a donor switches recipients.
"""

from datetime import date, datetime, timezone
from decimal import Decimal

import pytest

from celebration_engine.compliance.limits import LimitEngine, format_money, limit_info_for
from celebration_engine.compliance.models import LimitType
from celebration_engine.kernel.compliance_policy import ResetType
from celebration_engine.kernel.errors import ValidationRejected
from celebration_engine.kernel.time import TestTimeProvider, eastern_day_start, eastern_year_start

FEB_1 = datetime(2026, 2, 1, 17, 0, tzinfo=timezone.utc)


def test_format_money() -> None:
    assert format_money(Decimal("200")) == "$200"
    assert format_money(Decimal("12.5")) == "$12.50"


# =============================================================================
# Unverified: annual cap across all recipients
# =============================================================================


def test_unverified_fresh_donor_limits(limit_engine: LimitEngine) -> None:
    summary = limit_engine.effective_limits("unverified", [])

    assert summary.compliance_tier == "unverified"
    assert summary.reset_type == ResetType.ANNUAL
    assert summary.effective_limit == Decimal("200")
    assert summary.remaining_limit == Decimal("50")
    assert summary.reset_date == eastern_year_start(2026)
    assert summary.next_reset_date == eastern_year_start(2027)


def test_unverified_180_then_30_is_rejected_citing_annual_cap(
    limit_engine: LimitEngine, make_pledge
) -> None:
    history = [
        make_pledge("50", FEB_1, "pol-1"),
        make_pledge("50", FEB_1, "pol-2"),
        make_pledge("50", FEB_1, "pol-3"),
        make_pledge("30", FEB_1, "pol-4"),
    ]

    with pytest.raises(ValidationRejected) as exc_info:
        limit_engine.validate("unverified", Decimal("30"), history, "pol-5")

    info = exc_info.value.limit_info
    assert info.limit_type == LimitType.ANNUAL_CAP
    assert info.amount == Decimal("200")
    assert "$200" in info.message
    assert info.to_client()["limitType"] == "annual-cap"


def test_unverified_180_then_15_is_approved_leaving_5(
    limit_engine: LimitEngine, make_pledge, test_time: TestTimeProvider
) -> None:
    history = [make_pledge("50", FEB_1)] * 3 + [make_pledge("30", FEB_1)]

    before = limit_engine.validate("unverified", Decimal("15"), history, "pol-5")
    after = limit_engine.effective_limits(
        "unverified", history + [make_pledge("15", test_time.now(), "pol-5")]
    )

    assert before.remaining_limit == Decimal("20")
    assert after.remaining_limit == Decimal("5")
    assert after.current_total == Decimal("195")


def test_per_donation_limit_is_checked_first(limit_engine: LimitEngine, make_pledge) -> None:
    history = [make_pledge("50", FEB_1)] * 4

    with pytest.raises(ValidationRejected) as exc_info:
        limit_engine.validate("unverified", Decimal("60"), history, "pol-1")

    assert exc_info.value.limit_type == LimitType.PER_DONATION
    assert "single transaction" in str(exc_info.value)


def test_annual_window_uses_eastern_calendar_year(limit_engine: LimitEngine, make_pledge) -> None:
    """11:30pm on Dec 31 in Washington is already Jan 1 in UTC, but it was last year's gift"""
    new_years_eve = datetime(2026, 1, 1, 4, 30, tzinfo=timezone.utc)
    history = [make_pledge("50", new_years_eve)] * 4

    summary = limit_engine.effective_limits("unverified", history)

    assert summary.current_total == Decimal("0")
    assert summary.remaining_limit == Decimal("50")


def test_defunct_and_paused_pledges_do_not_count(limit_engine: LimitEngine, make_pledge) -> None:
    history = [
        make_pledge("50", FEB_1, defunct=True),
        make_pledge("50", FEB_1, paused=True),
        make_pledge("50", FEB_1, resolved=True),
    ]

    summary = limit_engine.effective_limits("unverified", history)

    assert summary.current_total == Decimal("50")
    assert summary.remaining_limit == Decimal("50")


def test_remaining_never_goes_negative(limit_engine: LimitEngine, make_pledge) -> None:
    history = [make_pledge("50", FEB_1)] * 5

    assert limit_engine.effective_limits("unverified", history).remaining_limit == Decimal("0")


def test_unknown_tier_gets_unverified_numbers(limit_engine: LimitEngine) -> None:
    summary = limit_engine.effective_limits("platinum", [])

    assert summary.compliance_tier == "unverified"
    assert summary.remaining_limit == Decimal("50")


def test_limit_info_for_without_breach_is_none(compliance_policy) -> None:
    rules = compliance_policy.tiers["unverified"]

    assert limit_info_for(rules, Decimal("50"), Decimal("150"), Decimal("0")) is None
    assert limit_info_for(rules, Decimal("50"), Decimal("151"), Decimal("0")) is not None


def test_would_exceed_limits(limit_engine: LimitEngine) -> None:
    assert limit_engine.would_exceed_limits("verified", Decimal("600"), current_election_total=Decimal("3000"))
    assert not limit_engine.would_exceed_limits("verified", Decimal("500"), current_election_total=Decimal("3000"))


# =============================================================================
# Verified: per candidate per election
# =============================================================================


def test_verified_limits_are_per_recipient(limit_engine: LimitEngine, make_pledge) -> None:
    history = [make_pledge("3000", FEB_1, "pol-a")]

    a = limit_engine.effective_limits("verified", history, "pol-a", "CA")
    b = limit_engine.effective_limits("verified", history, "pol-b", "CA")

    assert a.reset_type == ResetType.ELECTION_CYCLE
    assert a.remaining_limit == Decimal("500")
    assert b.remaining_limit == Decimal("3500")
    assert a.reset_date == eastern_day_start(date(2024, 11, 5))
    assert a.next_reset_date == eastern_day_start(date(2026, 6, 2))


def test_switching_recipient_clamps_staged_amount(limit_engine: LimitEngine, make_pledge) -> None:
    """Staged $3200 for B, then switching to A where only $500 is left"""
    history = [make_pledge("3000", FEB_1, "pol-a")]

    to_b = limit_engine.select_recipient("verified", history, "pol-b", "CA", Decimal("3200"))
    to_a = limit_engine.select_recipient("verified", history, "pol-a", "CA", to_b.staged_amount)

    assert to_b.staged_amount == Decimal("3200")
    assert to_b.clamped is False
    assert to_a.staged_amount == Decimal("500")
    assert to_a.clamped is True
    assert to_a.remaining_limit == Decimal("500")
    assert to_a.suggestions == [Decimal("100"), Decimal("250"), Decimal("500")]


def test_verified_rejects_over_per_election(limit_engine: LimitEngine, make_pledge) -> None:
    history = [make_pledge("3000", FEB_1, "pol-a")]

    with pytest.raises(ValidationRejected) as exc_info:
        limit_engine.validate("verified", Decimal("600"), history, "pol-a", "CA")

    assert exc_info.value.limit_type == LimitType.PER_ELECTION
    assert "$3500" in str(exc_info.value)


def test_pledges_before_the_cycle_do_not_count(limit_engine: LimitEngine, make_pledge) -> None:
    history = [make_pledge("3500", datetime(2024, 10, 1, tzinfo=timezone.utc), "pol-a")]

    summary = limit_engine.effective_limits("verified", history, "pol-a", "CA")

    assert summary.current_total == Decimal("0")


def test_verified_without_recipient_has_full_headroom(limit_engine: LimitEngine, make_pledge) -> None:
    history = [make_pledge("3000", FEB_1, "pol-a")]

    assert limit_engine.effective_limits("verified", history).remaining_limit == Decimal("3500")


def test_suggested_amounts_are_capped_and_deduplicated(limit_engine: LimitEngine) -> None:
    assert limit_engine.suggested_amounts("unverified", Decimal("7")) == [
        Decimal("2"),
        Decimal("5"),
        Decimal("7"),
    ]
    assert limit_engine.suggested_amounts("unverified", Decimal("0")) == []


def test_summary_client_shape(limit_engine: LimitEngine) -> None:
    client = limit_engine.effective_limits("unverified", []).to_client()

    assert set(client) == {
        "complianceTier",
        "resetType",
        "resetDate",
        "effectiveLimit",
        "remainingLimit",
        "nextResetDate",
    }
    assert client["remainingLimit"] == 50.0
