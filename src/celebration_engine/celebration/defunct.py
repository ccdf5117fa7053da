"""
Session-end handling: defunct sweep and advance warnings

When a congressional session ends without action on a bill, every active
celebration becomes defunct in one atomic batch, and each affected donor
who opted in to updates is told about it. During the warning period
before the end, those donors get one heads-up per session.

Seeded demo celebrations (idempotency key "seed:...") are never touched.
Paused celebrations are left alone by the sweep.
"""

from collections import defaultdict
from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from celebration_engine.celebration.events import DefunctSweepCompleted, DefunctWarningsSent
from celebration_engine.celebration.handlers import CelebrationCommandHandlers
from celebration_engine.celebration.models import CelebrationStatus
from celebration_engine.celebration.notifications import (
    NotificationSink,
    NotificationTopic,
    deliver,
)
from celebration_engine.celebration.projections import (
    CelebrationRegistry,
    DonorRegistry,
    SystemLog,
)
from celebration_engine.celebration.status import DEFUNCT_SESSION_REASON, defunct_command
from celebration_engine.congress.session import SessionInfo, SessionSignal
from celebration_engine.kernel.event_store import SQLiteEventStore, StreamWrite
from celebration_engine.kernel.events import Event, StreamType, create_event
from celebration_engine.kernel.ids import generate_id, is_seed_key
from celebration_engine.kernel.logging import LogOperation, get_logger
from celebration_engine.kernel.time import TimeProvider

logger = get_logger(__name__)

SYSTEM_STREAM = "system"


class DefunctResult(BaseModel):
    """Outcome of a sweep, a warning round or a no-op check"""

    action: str  # converted, warned, none
    converted_count: int = 0
    users_notified: int = 0
    reason: str | None = None
    events: list[Event] = Field(default_factory=list)


def group_by_donor(celebrations: list[dict[str, Any]]) -> dict[str, list[dict[str, Any]]]:
    grouped: dict[str, list[dict[str, Any]]] = defaultdict(list)
    for celebration in celebrations:
        grouped[celebration["donor_id"]].append(celebration)
    return dict(grouped)


class DefunctService:
    """Converts celebrations at session end and warns donors beforehand"""

    def __init__(
        self,
        event_store: SQLiteEventStore,
        handlers: CelebrationCommandHandlers,
        session_signal: SessionSignal,
        notification_sink: NotificationSink,
        time_provider: TimeProvider,
    ) -> None:
        self.event_store = event_store
        self.handlers = handlers
        self.session_signal = session_signal
        self.notification_sink = notification_sink
        self.time_provider = time_provider

    def _sweepable(self, celebration_registry: CelebrationRegistry) -> list[dict[str, Any]]:
        return [
            c
            for c in celebration_registry.get_celebrations_by_status(CelebrationStatus.ACTIVE)
            if not is_seed_key(c["idempotency_key"])
        ]

    def _system_event(self, event_type: str, command_id: str, payload: dict) -> Event:
        return create_event(
            event_id=generate_id(),
            stream_id=SYSTEM_STREAM,
            stream_type=StreamType.SYSTEM,
            event_type=event_type,
            occurred_at=self.time_provider.now(),
            command_id=command_id,
            actor_id="system",
            payload=payload,
            version=self.event_store.get_stream_version(SYSTEM_STREAM) + 1,
        )

    def convert_active_to_defunct(
        self,
        celebration_registry: CelebrationRegistry,
        donor_registry: DonorRegistry,
        congress: int,
        session_number: int,
        session_metadata: dict[str, Any],
        next_election_date: datetime | None = None,
        reason: str = DEFUNCT_SESSION_REASON,
    ) -> DefunctResult:
        """
        Make every active celebration defunct for a session that ended

        All transitions and the DefunctSweepCompleted marker are written in
        one batch; a concurrent change to any celebration raises
        StreamVersionConflict and nothing is written.

        Args:
            celebration_registry: Current celebrations
            donor_registry: Current donors (for notification opt-in)
            congress: Congress whose session ended
            session_number: Session that ended
            session_metadata: Recorded on each ledger entry
            next_election_date: Included in donor notifications
            reason: Ledger reason and defunct_reason

        Returns:
            DefunctResult with the appended events
        """
        now = self.time_provider.now()
        celebrations = self._sweepable(celebration_registry)
        by_donor = group_by_donor(celebrations)
        command_id = f"defunct-sweep:{congress}-{session_number}"

        with LogOperation(
            logger,
            "defunct_sweep",
            congress=congress,
            session_number=session_number,
            celebrations=len(celebrations),
            donors=len(by_donor),
        ):
            writes = []
            for celebration in celebrations:
                events = self.handlers.handle_change_status(
                    defunct_command(celebration["celebration_id"], session_metadata, reason),
                    command_id,
                    "system",
                    celebration_registry.celebrations,
                )
                writes.append(
                    StreamWrite(celebration["celebration_id"], celebration["version"], events)
                )

            marker = self._system_event(
                "DefunctSweepCompleted",
                command_id,
                DefunctSweepCompleted(
                    congress=congress,
                    session_number=session_number,
                    converted_count=len(celebrations),
                    affected_users=sorted(by_donor),
                    reason=reason,
                    swept_at=now,
                ).model_dump(mode="json"),
            )
            writes.append(StreamWrite(SYSTEM_STREAM, marker.version - 1, [marker]))
            appended = self.event_store.append_batch(writes)

        users_notified = 0
        for user_id, donor_celebrations in by_donor.items():
            donor = donor_registry.get(user_id)
            if donor is None or not donor.get("subscribed_to_updates", True):
                logger.debug("Skipping defunct notification (unsubscribed)", user_id=user_id)
                continue
            payload = {
                "first_name": donor.get("first_name", ""),
                "session_end_date": session_metadata.get("session_end_date"),
                "next_election_date": (
                    next_election_date.isoformat() if next_election_date else None
                ),
                "defunct_celebrations": [
                    {
                        "celebration_id": c["celebration_id"],
                        "recipient_id": c["recipient_id"],
                        "bill_id": c["bill_id"],
                        "donation_amount": str(c["donation_amount"]),
                        "created_at": c["created_at"],
                    }
                    for c in donor_celebrations
                ],
            }
            if deliver(
                self.notification_sink, user_id, NotificationTopic.CELEBRATION_DEFUNCT, payload
            ):
                users_notified += 1

        logger.info(
            "Defunct celebration conversion completed",
            converted_count=len(celebrations),
            users_notified=users_notified,
            congress=congress,
            session_number=session_number,
        )
        return DefunctResult(
            action="converted",
            converted_count=len(celebrations),
            users_notified=users_notified,
            events=appended,
        )

    def send_warning_emails(
        self,
        celebration_registry: CelebrationRegistry,
        donor_registry: DonorRegistry,
        session_info: SessionInfo | None = None,
    ) -> DefunctResult:
        """
        Warn donors with active celebrations that the session is ending

        Only runs inside the warning period; only subscribed donors are
        notified.
        """
        info = session_info or self.session_signal.get_session_info()
        if not info.in_warning_period:
            logger.info("Not in warning period, skipping warning emails")
            return DefunctResult(action="none", reason="Not in warning period")

        by_donor = group_by_donor(self._sweepable(celebration_registry))
        notified: list[str] = []
        for user_id, donor_celebrations in by_donor.items():
            donor = donor_registry.get(user_id)
            if donor is None or not donor.get("subscribed_to_updates", True):
                continue
            payload = {
                "first_name": donor.get("first_name", ""),
                "session_end_date": info.session_end_date.isoformat(),
                "active_celebrations": len(donor_celebrations),
                "bill_ids": sorted({c["bill_id"] for c in donor_celebrations}),
            }
            if deliver(
                self.notification_sink, user_id, NotificationTopic.DEFUNCT_WARNING, payload
            ):
                notified.append(user_id)

        marker = self._system_event(
            "DefunctWarningsSent",
            f"defunct-warning:{info.current_congress}-{info.current_session}",
            DefunctWarningsSent(
                congress=info.current_congress,
                session_number=info.current_session,
                session_end_date=info.session_end_date,
                users_notified=notified,
                sent_at=self.time_provider.now(),
            ).model_dump(mode="json"),
        )
        appended = self.event_store.append(SYSTEM_STREAM, marker.version - 1, [marker])

        logger.info(
            "Defunct warnings sent",
            users_notified=len(notified),
            donors_with_active=len(by_donor),
        )
        return DefunctResult(action="warned", users_notified=len(notified), events=appended)

    def check_and_convert_if_needed(
        self,
        celebration_registry: CelebrationRegistry,
        donor_registry: DonorRegistry,
        system_log: SystemLog,
    ) -> DefunctResult:
        """
        Sweep if the session has ended, warn if it is about to

        Each session is swept once and warned once, however often this runs.
        """
        info = self.session_signal.get_session_info()
        key = (info.current_congress, info.current_session)

        if info.has_ended:
            if key in system_log.swept_sessions:
                return DefunctResult(action="none", reason="Session already swept")
            logger.info("Congressional session has ended, converting active celebrations")
            return self.convert_active_to_defunct(
                celebration_registry,
                donor_registry,
                info.current_congress,
                info.current_session,
                info.session_metadata(),
                info.next_election_date,
            )

        if info.in_warning_period:
            if key in system_log.warned_sessions:
                return DefunctResult(action="none", reason="Warnings already sent")
            logger.info("In warning period, sending warning emails")
            return self.send_warning_emails(celebration_registry, donor_registry, info)

        logger.debug("No action needed - session active and not in warning period")
        return DefunctResult(action="none", reason="Session active and not in warning period")
