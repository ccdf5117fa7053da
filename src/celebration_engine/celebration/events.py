"""
Celebration Module Events - Domain events for donors and pledges

Events are immutable facts about what happened. They form the
append-only log that doubles as the compliance audit trail.

Fun fact: A status change is never an update here - even "resolved" is
just one more line in the ledger, right after the line that said "active".
"""

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, Field

from celebration_engine.celebration.models import DonorInfoSnapshot, StatusLedgerEntry


# Donor Events


class DonorRegistered(BaseModel):
    """A donor account was created"""

    user_id: str
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
    compliance_tier: str
    subscribed_to_updates: bool = True
    registered_at: datetime


class ComplianceTierPromoted(BaseModel):
    """A donor moved up the tier hierarchy (never down)"""

    user_id: str
    previous_tier: str
    new_tier: str
    promoted_at: datetime


class DonationCommitted(BaseModel):
    """
    A donation passed validation and was committed

    Appended to the donor stream together with CelebrationCreated, at the
    donor version the limits were checked against.
    """

    user_id: str
    celebration_id: str
    recipient_id: str
    donation_amount: Decimal
    tip_amount: Decimal
    requested_tip: Decimal
    tip_truncated: bool
    validation_method: str | None
    committed_at: datetime


class TipLimitReached(BaseModel):
    """The donor's tips reached the annual PAC ceiling (sticky until reset)"""

    user_id: str
    celebration_id: str
    current_pac_total: Decimal
    pac_limit: Decimal
    reached_at: datetime


# Celebration Events


class CelebrationCreated(BaseModel):
    """
    A pledge was created

    Carries the initial none → active ledger entry so the celebration never
    exists without one.
    """

    celebration_id: str
    donor_id: str
    recipient_id: str
    recipient_state: str | None
    bill_id: str
    donation_amount: Decimal
    tip_amount: Decimal
    fee: Decimal
    idempotency_key: str
    donor_info: DonorInfoSnapshot
    initial_entry: StatusLedgerEntry
    created_at: datetime


class CelebrationStatusChanged(BaseModel):
    """One transition of the status machine, with its full ledger entry"""

    celebration_id: str
    entry: StatusLedgerEntry
    defunct_date: datetime | None = None
    defunct_reason: str | None = None


# System Events


class SystemTick(BaseModel):
    """Periodic evaluation ran"""

    tick_id: str
    tick_at: datetime


class SessionObserved(BaseModel):
    """The tick saw a (new) congressional session sitting"""

    congress: int
    session_number: int
    session_end_date: datetime
    observed_at: datetime


class DefunctSweepCompleted(BaseModel):
    """Active celebrations were made defunct because a session ended"""

    congress: int
    session_number: int
    converted_count: int
    affected_users: list[str] = Field(default_factory=list)
    reason: str
    swept_at: datetime


class DefunctWarningsSent(BaseModel):
    """Donors with active celebrations were warned about the session end"""

    congress: int
    session_number: int
    session_end_date: datetime
    users_notified: list[str] = Field(default_factory=list)
    sent_at: datetime


class TipLimitReset(BaseModel):
    """Annual reset of sticky tip-limit flags (run once per Eastern year)"""

    year: int
    user_ids: list[str] = Field(default_factory=list)
    reset_at: datetime
