"""
Celebration Module Commands - Intentions to change donors and pledges

Commands represent what callers want to do. They are validated against
contribution limits and the status machine, then converted to events by
handlers.

Fun fact: Commands can fail (a limit was hit, a transition is not
allowed), but events never fail - they're facts that already happened!
"""

from decimal import Decimal
from typing import Any

from pydantic import BaseModel, Field

from celebration_engine.celebration.models import AuditTrail, CelebrationStatus, TriggerSource


# Donor Commands


class RegisterDonor(BaseModel):
    """
    Register a donor account

    Identity fields are optional for unverified donors and are checked
    (flagged, not rejected) once the donor donates as verified.
    """

    user_id: str | None = None  # Generated when omitted
    first_name: str = ""
    last_name: str = ""
    email: str = ""
    address: str = ""
    city: str = ""
    state: str = ""
    zip: str = ""
    country: str = "United States"
    is_employed: bool = False
    occupation: str = ""
    employer: str = ""
    compliance_tier: str = "unverified"
    subscribed_to_updates: bool = True


class PromoteComplianceTier(BaseModel):
    """Move a donor to a higher compliance tier"""

    user_id: str
    new_tier: str = Field(..., min_length=1)


# Celebration Commands


class CreateCelebration(BaseModel):
    """
    Pledge a donation to a recipient, held until the bill sees action

    idempotency_key makes retries safe: a repeated key returns the original
    celebration instead of charging the donor twice.
    """

    donor_id: str
    recipient_id: str = Field(..., min_length=1)
    recipient_state: str | None = None
    bill_id: str = Field(..., min_length=1)
    donation_amount: Decimal = Field(..., gt=0)
    tip_amount: Decimal = Field(default=Decimal("0"), ge=0)
    fee: Decimal = Field(default=Decimal("0"), ge=0)
    idempotency_key: str | None = None
    audit: AuditTrail = Field(default_factory=AuditTrail)


class ChangeCelebrationStatus(BaseModel):
    """
    Move a celebration through the status machine

    Everything besides the target status ends up verbatim on the new
    ledger entry.
    """

    celebration_id: str
    new_status: CelebrationStatus
    reason: str = Field(..., min_length=1)
    triggered_by: TriggerSource = TriggerSource.SYSTEM
    triggered_by_id: str | None = None
    triggered_by_name: str = "System"
    metadata: dict[str, Any] = Field(default_factory=dict)
    audit: AuditTrail = Field(default_factory=AuditTrail)
    defunct_reason: str | None = None
