"""
Celebration Module - escrowed pledges and their status lifecycle

A celebration is a donation held in escrow until a tracked bill sees action:
- Created active, with the donor's details frozen into a snapshot
- Paused, resumed, resolved or made defunct through a strict status machine
- Every change recorded as an append-only ledger entry
- Swept to defunct when the congressional session ends without action

Fun fact: Resolved and defunct are both final - once the money has moved,
or the bill has died, there is no going back.
"""

from celebration_engine.celebration.models import (
    AuditTrail,
    CelebrationStatus,
    DonorInfoSnapshot,
    StatusLedgerEntry,
    TriggerSource,
)

__all__ = [
    "AuditTrail",
    "CelebrationStatus",
    "DonorInfoSnapshot",
    "StatusLedgerEntry",
    "TriggerSource",
]
