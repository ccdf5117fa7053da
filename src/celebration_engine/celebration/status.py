"""
Celebration status machine

The transition table is data. Anything not listed is rejected, including
asking for the status a celebration already has.
"""

from typing import Any

from celebration_engine.celebration.commands import ChangeCelebrationStatus
from celebration_engine.celebration.models import AuditTrail, CelebrationStatus, TriggerSource
from celebration_engine.kernel.errors import InvalidTransition
from celebration_engine.kernel.metrics import invalid_transitions_total

VALID_TRANSITIONS: dict[CelebrationStatus, tuple[CelebrationStatus, ...]] = {
    CelebrationStatus.ACTIVE: (
        CelebrationStatus.PAUSED,
        CelebrationStatus.RESOLVED,
        CelebrationStatus.DEFUNCT,
    ),
    CelebrationStatus.PAUSED: (
        CelebrationStatus.ACTIVE,
        CelebrationStatus.DEFUNCT,
    ),
    CelebrationStatus.RESOLVED: (),
    CelebrationStatus.DEFUNCT: (),
}

DEFUNCT_SESSION_REASON = "Congressional session ended without action on target bill"


def allowed_transitions(status: str | CelebrationStatus) -> list[str]:
    return [s.value for s in VALID_TRANSITIONS[CelebrationStatus(status)]]


def validate_transition(
    from_status: str | CelebrationStatus, to_status: str | CelebrationStatus
) -> None:
    """
    Raises:
        InvalidTransition: naming the pair and the allowed targets
    """
    current = CelebrationStatus(from_status)
    target = CelebrationStatus(to_status)
    if target not in VALID_TRANSITIONS[current]:
        invalid_transitions_total.labels(
            from_status=current.value, to_status=target.value
        ).inc()
        raise InvalidTransition(current.value, target.value, allowed_transitions(current))


def legacy_flags(status: str | CelebrationStatus) -> dict[str, bool]:
    """The resolved/paused/defunct booleans that mirror a status"""
    status = CelebrationStatus(status)
    return {
        "resolved": status == CelebrationStatus.RESOLVED,
        "paused": status == CelebrationStatus.PAUSED,
        "defunct": status == CelebrationStatus.DEFUNCT,
    }


# Convenience commands with their ledger defaults


def activate_command(
    celebration_id: str,
    reason: str = "Celebration activated",
    triggered_by_id: str | None = None,
    audit: AuditTrail | None = None,
) -> ChangeCelebrationStatus:
    return ChangeCelebrationStatus(
        celebration_id=celebration_id,
        new_status=CelebrationStatus.ACTIVE,
        reason=reason,
        triggered_by_id=triggered_by_id,
        triggered_by_name="System - Activation",
        audit=audit or AuditTrail(),
    )


def pause_command(
    celebration_id: str,
    reason: str,
    pause_details: dict[str, Any] | None = None,
    triggered_by_id: str | None = None,
    audit: AuditTrail | None = None,
) -> ChangeCelebrationStatus:
    """pause_details typically carries the expected resume date"""
    return ChangeCelebrationStatus(
        celebration_id=celebration_id,
        new_status=CelebrationStatus.PAUSED,
        reason=reason,
        triggered_by_id=triggered_by_id,
        triggered_by_name="System - Pause",
        metadata={"pause_details": pause_details or {}},
        audit=audit or AuditTrail(),
    )


def resolve_command(
    celebration_id: str,
    reason: str,
    resolution_details: dict[str, Any] | None = None,
    triggered_by_id: str | None = None,
    audit: AuditTrail | None = None,
) -> ChangeCelebrationStatus:
    return ChangeCelebrationStatus(
        celebration_id=celebration_id,
        new_status=CelebrationStatus.RESOLVED,
        reason=reason,
        triggered_by_id=triggered_by_id,
        triggered_by_name="System - Resolution",
        metadata={"resolution_details": resolution_details or {}},
        audit=audit or AuditTrail(),
    )


def defunct_command(
    celebration_id: str,
    session_metadata: dict[str, Any],
    reason: str = DEFUNCT_SESSION_REASON,
    audit: AuditTrail | None = None,
) -> ChangeCelebrationStatus:
    """session_metadata: {session_number, session_end_date, session_type}"""
    return ChangeCelebrationStatus(
        celebration_id=celebration_id,
        new_status=CelebrationStatus.DEFUNCT,
        reason=reason,
        triggered_by=TriggerSource.CONGRESSIONAL_SESSION,
        triggered_by_name="Congressional Session End",
        metadata={"congressional_session": session_metadata},
        audit=audit or AuditTrail(),
        defunct_reason=reason,
    )
