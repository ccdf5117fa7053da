"""
Tests for celebration command handlers and the projections they feed

Handlers are exercised directly against in-memory registries; no event
store is involved, so every test reads as command → events → state.
"""

from datetime import timedelta
from decimal import Decimal

import pytest

from celebration_engine.celebration.commands import (
    CreateCelebration,
    PromoteComplianceTier,
    RegisterDonor,
)
from celebration_engine.celebration.donor import build_donor_snapshot
from celebration_engine.celebration.models import AuditTrail
from celebration_engine.celebration.status import (
    activate_command,
    defunct_command,
    pause_command,
    resolve_command,
)
from celebration_engine.kernel.errors import (
    CelebrationNotFound,
    DataDegraded,
    DonationBelowMinimum,
    DonorAlreadyRegistered,
    DonorNotFound,
    InvalidTransition,
    InvariantViolation,
    TierDemotionNotAllowed,
    ValidationRejected,
)
from celebration_engine.kernel.events import StreamType, create_event
from celebration_engine.kernel.ids import generate_id


def register(handlers, donor_registry, user_id="donor-ada", tier="unverified", **profile):
    events = handlers.handle_register_donor(
        RegisterDonor(user_id=user_id, compliance_tier=tier, **profile),
        generate_id(),
        "user-ada",
        donor_registry.donors,
    )
    for event in events:
        donor_registry.apply_event(event)
    return donor_registry.get(user_id)


def create(
    handlers,
    validator,
    pac_tracker,
    donor_registry,
    celebration_registry,
    donor_id="donor-ada",
    amount="25",
    tip="0",
    recipient_id="pol-1",
    idempotency_key=None,
):
    donor = donor_registry.get(donor_id)
    history = celebration_registry.history_for_donor(donor_id)
    command = CreateCelebration(
        donor_id=donor_id,
        recipient_id=recipient_id,
        recipient_state="CA",
        bill_id="hr-42",
        donation_amount=Decimal(amount),
        tip_amount=Decimal(tip),
        idempotency_key=idempotency_key,
        audit=AuditTrail(ip_address="203.0.113.7"),
    )
    compliance = validator.validate(
        donor["compliance_tier"], command.donation_amount, history, recipient_id, "CA"
    )
    decision = pac_tracker.apply_tip(history, command.tip_amount)
    snapshot = build_donor_snapshot(
        donor, compliance.compliance_tier, handlers.time_provider.now()
    )
    events = handlers.handle_create_celebration(
        command,
        idempotency_key or generate_id(),
        "user-ada",
        donor,
        compliance,
        decision,
        snapshot,
    )
    for event in events:
        if event.stream_type == "donor":
            donor_registry.apply_event(event)
        else:
            celebration_registry.apply_event(event)
    return events


# =============================================================================
# Donors
# =============================================================================


def test_register_donor_normalizes_legacy_tier(celebration_handlers, donor_registry) -> None:
    donor = register(celebration_handlers, donor_registry, tier="guest", first_name="Ada")

    assert donor["compliance_tier"] == "unverified"
    assert donor["first_name"] == "Ada"
    assert donor["version"] == 1
    assert donor["tip_limit_reached"] is False


def test_register_generates_id_when_missing(celebration_handlers, donor_registry) -> None:
    events = celebration_handlers.handle_register_donor(
        RegisterDonor(), generate_id(), None, donor_registry.donors
    )

    assert events[0].stream_id
    assert events[0].payload["user_id"] == events[0].stream_id


def test_register_twice_is_rejected(celebration_handlers, donor_registry) -> None:
    register(celebration_handlers, donor_registry)

    with pytest.raises(DonorAlreadyRegistered):
        register(celebration_handlers, donor_registry)


def test_promote_tier(celebration_handlers, donor_registry) -> None:
    register(celebration_handlers, donor_registry)

    events = celebration_handlers.handle_promote_tier(
        PromoteComplianceTier(user_id="donor-ada", new_tier="verified"),
        generate_id(),
        "user-ada",
        donor_registry.donors,
    )
    donor_registry.apply_event(events[0])

    assert events[0].version == 2
    assert events[0].payload["previous_tier"] == "unverified"
    assert donor_registry.get("donor-ada")["compliance_tier"] == "verified"


def test_promote_to_same_tier_is_noop(celebration_handlers, donor_registry) -> None:
    register(celebration_handlers, donor_registry)

    events = celebration_handlers.handle_promote_tier(
        PromoteComplianceTier(user_id="donor-ada", new_tier="guest"),
        generate_id(),
        None,
        donor_registry.donors,
    )

    assert events == []


def test_promote_rejects_demotion_and_unknown_tiers(celebration_handlers, donor_registry) -> None:
    register(celebration_handlers, donor_registry, tier="verified")

    with pytest.raises(TierDemotionNotAllowed):
        celebration_handlers.handle_promote_tier(
            PromoteComplianceTier(user_id="donor-ada", new_tier="unverified"),
            generate_id(),
            None,
            donor_registry.donors,
        )
    with pytest.raises(DataDegraded):
        celebration_handlers.handle_promote_tier(
            PromoteComplianceTier(user_id="donor-ada", new_tier="platinum"),
            generate_id(),
            None,
            donor_registry.donors,
        )
    with pytest.raises(DonorNotFound):
        celebration_handlers.handle_promote_tier(
            PromoteComplianceTier(user_id="nobody", new_tier="verified"),
            generate_id(),
            None,
            donor_registry.donors,
        )


# =============================================================================
# Celebrations
# =============================================================================


def test_create_celebration_spans_two_streams(
    celebration_handlers, validator, pac_tracker, donor_registry, celebration_registry
) -> None:
    register(celebration_handlers, donor_registry)

    events = create(
        celebration_handlers, validator, pac_tracker, donor_registry, celebration_registry,
        tip="2",
    )

    assert [e.event_type for e in events] == ["CelebrationCreated", "DonationCommitted"]
    assert events[0].version == 1
    assert events[1].version == 2
    assert events[0].command_id == events[1].command_id

    celebration = celebration_registry.get(events[0].stream_id)
    assert celebration["current_status"] == "active"
    assert celebration["tip_amount"] == Decimal("2")
    assert celebration["resolved"] is False
    assert celebration["defunct"] is False
    assert donor_registry.get("donor-ada")["celebration_ids"] == [events[0].stream_id]


def test_created_celebration_has_initial_ledger_entry(
    celebration_handlers, validator, pac_tracker, donor_registry, celebration_registry
) -> None:
    register(celebration_handlers, donor_registry)
    events = create(
        celebration_handlers, validator, pac_tracker, donor_registry, celebration_registry
    )

    [entry] = celebration_registry.get(events[0].stream_id)["status_ledger"]

    assert entry["previous_status"] == "none"
    assert entry["new_status"] == "active"
    assert entry["reason"] == "Celebration created"
    assert entry["triggered_by_name"] == "System - Creation"
    assert entry["compliance_tier_at_time"] == "unverified"
    assert entry["audit_trail"]["ip_address"] == "203.0.113.7"
    assert entry["status_change_id"].startswith("sc_")


def test_create_rejects_limit_breach(
    celebration_handlers, validator, pac_tracker, donor_registry, celebration_registry
) -> None:
    register(celebration_handlers, donor_registry)

    with pytest.raises(ValidationRejected) as exc_info:
        create(
            celebration_handlers, validator, pac_tracker, donor_registry, celebration_registry,
            amount="75",
        )

    assert exc_info.value.limit_type.value == "per-donation"
    assert celebration_registry.list_all() == []


def test_create_rejects_below_minimum(
    celebration_handlers, validator, pac_tracker, donor_registry, celebration_registry
) -> None:
    register(celebration_handlers, donor_registry)

    with pytest.raises(DonationBelowMinimum):
        create(
            celebration_handlers, validator, pac_tracker, donor_registry, celebration_registry,
            amount="0.50",
        )


def test_create_rejects_corrupt_tier(
    celebration_handlers, validator, pac_tracker, donor_registry, celebration_registry
) -> None:
    register(celebration_handlers, donor_registry)
    donor_registry.get("donor-ada")["compliance_tier"] = "platinum"

    with pytest.raises(InvariantViolation, match="Invalid compliance tier"):
        create(
            celebration_handlers, validator, pac_tracker, donor_registry, celebration_registry
        )


def test_create_for_unknown_donor(celebration_handlers, validator, pac_tracker) -> None:
    with pytest.raises(DonorNotFound):
        celebration_handlers.handle_create_celebration(
            CreateCelebration(
                donor_id="nobody", recipient_id="pol-1", bill_id="hr-1",
                donation_amount=Decimal("5"),
            ),
            generate_id(),
            None,
            None,
            validator.validate("unverified", Decimal("5"), [], "pol-1"),
            pac_tracker.apply_tip([], Decimal("0")),
            build_donor_snapshot({}, "unverified", celebration_handlers.time_provider.now()),
        )


def test_tip_limit_reached_is_emitted_once(
    celebration_handlers, validator, pac_tracker, donor_registry, celebration_registry
) -> None:
    register(celebration_handlers, donor_registry)
    celebration_handlers.policy.pac_annual_limit = Decimal("5")

    first = create(
        celebration_handlers, validator, pac_tracker, donor_registry, celebration_registry,
        tip="5",
    )
    second = create(
        celebration_handlers, validator, pac_tracker, donor_registry, celebration_registry,
        tip="1",
    )

    assert [e.event_type for e in first][-1] == "TipLimitReached"
    assert first[-1].version == 3
    assert "TipLimitReached" not in [e.event_type for e in second]
    assert second[1].payload["tip_truncated"] is True
    assert second[1].payload["tip_amount"] == "0"
    assert donor_registry.get("donor-ada")["tip_limit_reached"] is True


def test_change_status_appends_to_ledger(
    celebration_handlers, validator, pac_tracker, donor_registry, celebration_registry, test_time
) -> None:
    register(celebration_handlers, donor_registry)
    celebration_id = create(
        celebration_handlers, validator, pac_tracker, donor_registry, celebration_registry
    )[0].stream_id

    test_time.advance_days(3)
    [event] = celebration_handlers.handle_change_status(
        pause_command(celebration_id, "Recipient under review", {"resume_on": "2026-04-01"}),
        generate_id(),
        "admin-1",
        celebration_registry.celebrations,
    )
    celebration_registry.apply_event(event)

    celebration = celebration_registry.get(celebration_id)
    assert event.version == 2
    assert celebration["current_status"] == "paused"
    assert celebration["paused"] is True
    assert [e["new_status"] for e in celebration["status_ledger"]] == ["active", "paused"]
    assert celebration["status_ledger"][-1]["metadata"] == {
        "pause_details": {"resume_on": "2026-04-01"}
    }
    assert celebration["status_ledger"][-1]["triggered_by_id"] == "admin-1"


def test_ledger_keeps_tier_from_snapshot_after_promotion(
    celebration_handlers, validator, pac_tracker, donor_registry, celebration_registry
) -> None:
    register(celebration_handlers, donor_registry)
    celebration_id = create(
        celebration_handlers, validator, pac_tracker, donor_registry, celebration_registry
    )[0].stream_id
    for event in celebration_handlers.handle_promote_tier(
        PromoteComplianceTier(user_id="donor-ada", new_tier="verified"),
        generate_id(),
        None,
        donor_registry.donors,
    ):
        donor_registry.apply_event(event)

    [event] = celebration_handlers.handle_change_status(
        resolve_command(celebration_id, "Bill passed"),
        generate_id(),
        None,
        celebration_registry.celebrations,
    )

    assert event.payload["entry"]["compliance_tier_at_time"] == "unverified"


def test_change_status_rejects_invalid_and_unknown(
    celebration_handlers, validator, pac_tracker, donor_registry, celebration_registry
) -> None:
    register(celebration_handlers, donor_registry)
    celebration_id = create(
        celebration_handlers, validator, pac_tracker, donor_registry, celebration_registry
    )[0].stream_id
    for event in celebration_handlers.handle_change_status(
        resolve_command(celebration_id, "Bill passed"), generate_id(), None,
        celebration_registry.celebrations,
    ):
        celebration_registry.apply_event(event)

    with pytest.raises(InvalidTransition):
        celebration_handlers.handle_change_status(
            pause_command(celebration_id, "too late"), generate_id(), None,
            celebration_registry.celebrations,
        )
    with pytest.raises(CelebrationNotFound):
        celebration_handlers.handle_change_status(
            pause_command("missing", "nothing here"), generate_id(), None,
            celebration_registry.celebrations,
        )
    assert len(celebration_registry.get(celebration_id)["status_ledger"]) == 2


def test_defunct_sets_date_and_reason(
    celebration_handlers, validator, pac_tracker, donor_registry, celebration_registry, test_time
) -> None:
    register(celebration_handlers, donor_registry)
    celebration_id = create(
        celebration_handlers, validator, pac_tracker, donor_registry, celebration_registry
    )[0].stream_id

    [event] = celebration_handlers.handle_change_status(
        defunct_command(celebration_id, {"congress": 119, "session_number": 2}),
        generate_id(),
        "system",
        celebration_registry.celebrations,
    )
    celebration_registry.apply_event(event)

    celebration = celebration_registry.get(celebration_id)
    assert celebration["defunct"] is True
    assert celebration["defunct_reason"].startswith("Congressional session ended")
    assert celebration["defunct_date"].startswith("2026-03-02T15:00:00")
    assert celebration["status_ledger"][-1]["metadata"]["congressional_session"]["congress"] == 119


# =============================================================================
# Projections
# =============================================================================


def test_history_and_status_queries(
    celebration_handlers, validator, pac_tracker, donor_registry, celebration_registry, test_time
) -> None:
    register(celebration_handlers, donor_registry)
    ids = [
        create(
            celebration_handlers, validator, pac_tracker, donor_registry, celebration_registry,
            amount="10", recipient_id=f"pol-{n}",
        )[0].stream_id
        for n in range(3)
    ]
    create(
        celebration_handlers, validator, pac_tracker, donor_registry, celebration_registry,
        amount="10", idempotency_key="seed:demo-1",
    )
    for event in celebration_handlers.handle_change_status(
        pause_command(ids[0], "review"), generate_id(), None, celebration_registry.celebrations
    ):
        celebration_registry.apply_event(event)

    history = celebration_registry.history_for_donor("donor-ada")
    assert len(history) == 4
    assert sum(1 for p in history if p.paused) == 1

    assert celebration_registry.count_by_status() == {
        "active": 3, "paused": 1, "resolved": 0, "defunct": 0,
    }
    needing = {c["celebration_id"] for c in celebration_registry.get_celebrations_needing_updates()}
    assert needing == set(ids)
    assert len(celebration_registry.get_celebrations_by_status("paused")) == 1
    assert len(celebration_registry.summaries("active")) == 3
    assert celebration_registry.find_by_idempotency_key("seed:demo-1") is not None


def test_status_history_newest_first(
    celebration_handlers, validator, pac_tracker, donor_registry, celebration_registry, test_time
) -> None:
    register(celebration_handlers, donor_registry)
    celebration_id = create(
        celebration_handlers, validator, pac_tracker, donor_registry, celebration_registry
    )[0].stream_id
    for days, command in (
        (2, pause_command(celebration_id, "review")),
        (3, activate_command(celebration_id)),
    ):
        test_time.advance_days(days)
        for event in celebration_handlers.handle_change_status(
            command, generate_id(), None, celebration_registry.celebrations
        ):
            celebration_registry.apply_event(event)

    history = celebration_registry.get_status_history(celebration_id, limit=2)

    assert history["total_changes"] == 3
    assert [e["new_status"] for e in history["recent_changes"]] == ["active", "paused"]
    assert history["current_status"] == "active"
    assert history["status_duration"]["total_lifetime_days"] == 5

    later = celebration_registry.calculate_status_duration(
        celebration_id, test_time.now() + timedelta(days=4)
    )
    assert later["current_status_duration_days"] == 4
    assert later["total_lifetime_days"] == 9
    assert celebration_registry.get_status_history("missing") is None


def test_tip_limit_reset_clears_flags_without_touching_versions(
    celebration_handlers, donor_registry
) -> None:
    register(celebration_handlers, donor_registry)
    donor = donor_registry.get("donor-ada")
    donor["tip_limit_reached"] = True
    donor["tip_limit_reached_at"] = "2025-06-01T12:00:00Z"

    assert donor_registry.flagged_before(
        celebration_handlers.time_provider.now()
    ) == ["donor-ada"]

    donor_registry.apply_event(
        create_event(
            event_id=generate_id(),
            stream_id="system",
            stream_type=StreamType.SYSTEM,
            event_type="TipLimitReset",
            occurred_at=celebration_handlers.time_provider.now(),
            command_id="tip-reset:2026",
            version=1,
            payload={"year": 2026, "user_ids": ["donor-ada"], "reset_at": "2026-03-02T15:00:00Z"},
        )
    )

    assert donor["tip_limit_reached"] is False
    assert donor["version"] == 1
