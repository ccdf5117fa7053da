"""
Celebration Module Projections - Read models built from events

Projections are denormalized views optimized for queries.
They are rebuilt from the event log, making them disposable and rebuildable.

Fun fact: The limit engine never asks "what is this donor's total?" from a
stored counter - it re-sums the pledges every time, straight from these
views, so a corrected event log always yields corrected limits.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any

from celebration_engine.celebration.models import CelebrationStatus, CelebrationSummary
from celebration_engine.celebration.status import legacy_flags
from celebration_engine.compliance.models import PledgeRecord
from celebration_engine.kernel.events import Event
from celebration_engine.kernel.ids import is_seed_key


def _as_datetime(value: str | datetime) -> datetime:
    return datetime.fromisoformat(value) if isinstance(value, str) else value


class DonorRegistry:
    """
    Projection: Registry of all donors

    Tracks tier, sticky tip-limit flag and stream version per donor.
    """

    def __init__(self) -> None:
        self.donors: dict[str, dict[str, Any]] = {}

    def apply_event(self, event: Event) -> None:
        """Apply an event to update projection state"""
        if event.event_type == "DonorRegistered":
            payload = event.payload
            self.donors[payload["user_id"]] = {
                **payload,
                "created_at": payload["registered_at"],
                "tip_limit_reached": False,
                "tip_limit_reached_at": None,
                "celebration_ids": [],
                "version": event.version,
            }

        elif event.event_type == "ComplianceTierPromoted":
            donor = self.donors.get(event.payload["user_id"])
            if donor:
                donor["compliance_tier"] = event.payload["new_tier"]
                donor["promoted_at"] = event.payload["promoted_at"]
                donor["version"] = event.version

        elif event.event_type == "DonationCommitted":
            donor = self.donors.get(event.payload["user_id"])
            if donor:
                donor["celebration_ids"].append(event.payload["celebration_id"])
                donor["version"] = event.version

        elif event.event_type == "TipLimitReached":
            donor = self.donors.get(event.payload["user_id"])
            if donor:
                donor["tip_limit_reached"] = True
                donor["tip_limit_reached_at"] = event.payload["reached_at"]
                donor["version"] = event.version

        elif event.event_type == "TipLimitReset":
            # System stream event: donor versions are untouched
            for user_id in event.payload["user_ids"]:
                donor = self.donors.get(user_id)
                if donor:
                    donor["tip_limit_reached"] = False
                    donor["tip_limit_reached_at"] = None

    def get(self, user_id: str) -> dict[str, Any] | None:
        """Get donor by ID"""
        return self.donors.get(user_id)

    def list_all(self) -> list[dict[str, Any]]:
        return list(self.donors.values())

    def flagged_before(self, moment: datetime) -> list[str]:
        """Donors whose tip-limit flag was set before an instant"""
        return [
            user_id
            for user_id, donor in self.donors.items()
            if donor["tip_limit_reached"]
            and _as_datetime(donor["tip_limit_reached_at"]) < moment
        ]


class CelebrationRegistry:
    """
    Projection: Registry of all celebrations with their status ledgers

    The status, ledger and legacy flags are always updated together from
    one event, so they can never disagree.
    """

    def __init__(self) -> None:
        self.celebrations: dict[str, dict[str, Any]] = {}
        self.by_idempotency_key: dict[str, str] = {}

    def apply_event(self, event: Event) -> None:
        """Apply an event to update projection state"""
        if event.event_type == "CelebrationCreated":
            payload = event.payload
            entry = payload["initial_entry"]
            status = entry["new_status"]
            self.celebrations[payload["celebration_id"]] = {
                "celebration_id": payload["celebration_id"],
                "donor_id": payload["donor_id"],
                "recipient_id": payload["recipient_id"],
                "recipient_state": payload.get("recipient_state"),
                "bill_id": payload["bill_id"],
                "donation_amount": Decimal(payload["donation_amount"]),
                "tip_amount": Decimal(payload["tip_amount"]),
                "fee": Decimal(payload["fee"]),
                "idempotency_key": payload["idempotency_key"],
                "donor_info": payload["donor_info"],
                "current_status": status,
                "status_ledger": [entry],
                **legacy_flags(status),
                "defunct_date": None,
                "defunct_reason": None,
                "created_at": payload["created_at"],
                "version": event.version,
            }
            self.by_idempotency_key[payload["idempotency_key"]] = payload["celebration_id"]

        elif event.event_type == "CelebrationStatusChanged":
            celebration = self.celebrations.get(event.payload["celebration_id"])
            if celebration:
                entry = event.payload["entry"]
                status = entry["new_status"]
                celebration["status_ledger"].append(entry)
                celebration["current_status"] = status
                celebration.update(legacy_flags(status))
                if status == CelebrationStatus.DEFUNCT.value:
                    celebration["defunct_date"] = event.payload.get("defunct_date")
                    celebration["defunct_reason"] = event.payload.get("defunct_reason")
                celebration["version"] = event.version

    def get(self, celebration_id: str) -> dict[str, Any] | None:
        """Get celebration by ID"""
        return self.celebrations.get(celebration_id)

    def find_by_idempotency_key(self, idempotency_key: str) -> dict[str, Any] | None:
        celebration_id = self.by_idempotency_key.get(idempotency_key)
        return self.celebrations.get(celebration_id) if celebration_id else None

    def list_all(self) -> list[dict[str, Any]]:
        return list(self.celebrations.values())

    def list_for_donor(self, donor_id: str) -> list[dict[str, Any]]:
        return [c for c in self.celebrations.values() if c["donor_id"] == donor_id]

    def history_for_donor(self, donor_id: str) -> list[PledgeRecord]:
        """Donor's pledges in the shape the limit engine aggregates"""
        return [
            PledgeRecord(
                donation_amount=c["donation_amount"],
                tip_amount=c["tip_amount"],
                recipient_id=c["recipient_id"],
                created_at=_as_datetime(c["created_at"]),
                resolved=c["resolved"],
                paused=c["paused"],
                defunct=c["defunct"],
            )
            for c in self.list_for_donor(donor_id)
        ]

    def get_celebrations_by_status(self, status: str | CelebrationStatus) -> list[dict[str, Any]]:
        status = CelebrationStatus(status).value
        return [c for c in self.celebrations.values() if c["current_status"] == status]

    def get_celebrations_needing_updates(self) -> list[dict[str, Any]]:
        """Active and paused celebrations, excluding seeded demo data"""
        open_statuses = {CelebrationStatus.ACTIVE.value, CelebrationStatus.PAUSED.value}
        return [
            c
            for c in self.celebrations.values()
            if c["current_status"] in open_statuses and not is_seed_key(c["idempotency_key"])
        ]

    def count_by_status(self) -> dict[str, int]:
        counts = {status.value: 0 for status in CelebrationStatus}
        for celebration in self.celebrations.values():
            counts[celebration["current_status"]] += 1
        return counts

    def get_status_history(
        self, celebration_id: str, limit: int = 10, now: datetime | None = None
    ) -> dict[str, Any] | None:
        """
        Recent ledger entries, newest first

        Returns:
            {total_changes, recent_changes, current_status, status_duration}
            or None if the celebration doesn't exist
        """
        celebration = self.get(celebration_id)
        if celebration is None:
            return None
        ledger = celebration["status_ledger"]
        return {
            "total_changes": len(ledger),
            "recent_changes": list(reversed(ledger))[:limit],
            "current_status": celebration["current_status"],
            "status_duration": self.calculate_status_duration(celebration_id, now),
        }

    def calculate_status_duration(
        self, celebration_id: str, now: datetime | None = None
    ) -> dict[str, Any] | None:
        """
        Time spent in the current status and since creation

        Measured up to now when given, otherwise up to the newest ledger
        entry's change time.
        """
        celebration = self.get(celebration_id)
        if celebration is None or not celebration["status_ledger"]:
            return None
        ledger = celebration["status_ledger"]
        last_change = _as_datetime(ledger[-1]["change_datetime"])
        first_change = _as_datetime(ledger[0]["change_datetime"])
        until = now or last_change
        return {
            "current_status_duration_days": (until - last_change).days,
            "total_lifetime_days": (until - first_change).days,
            "last_change_date": last_change,
        }

    def summaries(self, status: str | None = None) -> list[CelebrationSummary]:
        """Flat rows for listings, oldest first"""
        rows = [
            CelebrationSummary(
                celebration_id=c["celebration_id"],
                donor_id=c["donor_id"],
                recipient_id=c["recipient_id"],
                bill_id=c["bill_id"],
                donation_amount=c["donation_amount"],
                tip_amount=c["tip_amount"],
                current_status=c["current_status"],
                status_changes=len(c["status_ledger"]),
                created_at=_as_datetime(c["created_at"]),
            )
            for c in self.celebrations.values()
            if status is None or c["current_status"] == status
        ]
        return sorted(rows, key=lambda row: row.created_at)


class SystemLog:
    """
    Projection: What the periodic tick has already done

    Lets the tick run any number of times without repeating a sweep, a
    warning round or an annual reset.
    """

    def __init__(self) -> None:
        self.observed_session: tuple[int, int] | None = None
        self.swept_sessions: set[tuple[int, int]] = set()
        self.warned_sessions: set[tuple[int, int]] = set()
        self.last_tip_reset_year: int | None = None
        self.last_tick_at: str | None = None
        self.tick_count = 0

    def apply_event(self, event: Event) -> None:
        """Apply an event to update projection state"""
        payload = event.payload
        if event.event_type == "SystemTick":
            self.tick_count += 1
            self.last_tick_at = payload["tick_at"]
        elif event.event_type == "SessionObserved":
            self.observed_session = (payload["congress"], payload["session_number"])
        elif event.event_type == "DefunctSweepCompleted":
            self.swept_sessions.add((payload["congress"], payload["session_number"]))
        elif event.event_type == "DefunctWarningsSent":
            self.warned_sessions.add((payload["congress"], payload["session_number"]))
        elif event.event_type == "TipLimitReset":
            self.last_tip_reset_year = payload["year"]
