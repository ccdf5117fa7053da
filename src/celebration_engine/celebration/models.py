"""
Celebration Domain Models - pledges, their status ledger and donor snapshots

A celebration is an escrowed pledge to a politician, released only when a
tracked bill sees action. Its status history is an append-only ledger, and
the donor's details are frozen into a snapshot at the moment of donating.

Fun fact: The name comes from the donor's point of view - the money is held
until there is something to celebrate!
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field
from sqlmodel import SQLModel


class CelebrationStatus(str, Enum):
    """
    Celebration lifecycle states

    ACTIVE → PAUSED ⇄ ACTIVE, ACTIVE/PAUSED → DEFUNCT, ACTIVE → RESOLVED.
    RESOLVED and DEFUNCT are terminal.
    """

    ACTIVE = "active"  # Funds escrowed, waiting on the bill
    PAUSED = "paused"  # Temporarily held back, e.g. pending review
    RESOLVED = "resolved"  # Condition met, funds released
    DEFUNCT = "defunct"  # Session ended without action on the bill


# previous_status of the creation ledger entry
NO_STATUS = "none"


class TriggerSource(str, Enum):
    """Who or what caused a status change"""

    SYSTEM = "system"
    CONGRESSIONAL_SESSION = "congressional_session"
    USER = "user"


class AuditTrail(BaseModel):
    """Request context supplied by the caller, stored verbatim on ledger entries"""

    ip_address: str | None = None
    user_agent: str | None = None
    session_id: str | None = None


class StatusLedgerEntry(BaseModel):
    """
    One append-only entry in a celebration's status ledger

    compliance_tier_at_time is copied from the donor snapshot, never from the
    donor's current tier.
    """

    status_change_id: str
    previous_status: str
    new_status: CelebrationStatus
    change_datetime: datetime
    reason: str
    triggered_by: TriggerSource = TriggerSource.SYSTEM
    triggered_by_id: str | None = None
    triggered_by_name: str
    metadata: dict[str, Any] = Field(default_factory=dict)
    compliance_tier_at_time: str
    fec_compliant: bool = True
    audit_trail: AuditTrail = Field(default_factory=AuditTrail)


class ValidationFlag(BaseModel):
    """A questionable donor field, kept for recipient committee review"""

    field: str
    reason: str
    match: str
    original_value: str


class ValidationSummary(BaseModel):
    total_flags: int = 0
    field_flags: dict[str, int] = Field(default_factory=dict)


class ValidationFlags(BaseModel):
    """Donor validation outcome captured at donation time"""

    is_flagged: bool = False
    summary: ValidationSummary = Field(default_factory=ValidationSummary)
    flags: list[ValidationFlag] = Field(default_factory=list)
    validated_at: datetime
    validation_version: str = "1.0"


class DonorInfoSnapshot(BaseModel):
    """
    Donor details as they were when the donation was made

    Immutable: later profile edits or tier promotions never rewrite it.
    """

    first_name: str = ""
    last_name: str = ""
    address: str = ""
    city: str = ""
    state: str = ""
    zip: str = ""
    country: str = "United States"
    is_employed: bool = False
    occupation: str = ""
    employer: str = ""
    compliance: str
    validation_flags: ValidationFlags

    model_config = {"frozen": True}


class CelebrationSummary(SQLModel):
    """
    Flat read model of a celebration for listings and reports

    Used by the CLI listing and health output; the registry projection
    remains the source for decisions.
    """

    celebration_id: str
    donor_id: str
    recipient_id: str
    bill_id: str
    donation_amount: Decimal
    tip_amount: Decimal
    current_status: str
    status_changes: int
    created_at: datetime
