"""
TickEngine - Periodic evaluation orchestrator

The TickEngine runs the engine's scheduled work. It's called periodically
(e.g., hourly, daily) and is safe to run as often as you like:
- notices when a new congressional session starts, and sweeps the old one
- makes celebrations defunct when the session ends, warns donors before that
- clears last year's sticky tip-limit flags once per Eastern year

Fun fact: This replaces a handful of cron jobs that each had to remember
whether they'd already run - here the event log remembers for them.
"""

from collections.abc import Callable
from datetime import datetime

from celebration_engine.celebration.defunct import SYSTEM_STREAM, DefunctResult, DefunctService
from celebration_engine.celebration.events import SessionObserved, SystemTick, TipLimitReset
from celebration_engine.celebration.projections import (
    CelebrationRegistry,
    DonorRegistry,
    SystemLog,
)
from celebration_engine.congress.session import SessionSignal, closed_session_metadata
from celebration_engine.kernel.compliance_policy import CompliancePolicy
from celebration_engine.kernel.event_store import SQLiteEventStore
from celebration_engine.kernel.events import Event, StreamType, create_event
from celebration_engine.kernel.ids import generate_id
from celebration_engine.kernel.logging import LogOperation, get_logger
from celebration_engine.kernel.metrics import tick_execution_duration_seconds
from celebration_engine.kernel.time import TimeProvider, eastern_year, eastern_year_start

logger = get_logger(__name__)


class TickResult:
    """
    Result of a tick evaluation

    Contains all events generated and what the session check decided.
    """

    def __init__(
        self,
        tick_id: str,
        tick_at: datetime,
        triggered_events: list[Event],
        defunct: DefunctResult,
        tip_limits_reset: int | None,
    ):
        self.tick_id = tick_id
        self.tick_at = tick_at
        self.triggered_events = triggered_events
        self.defunct = defunct
        self.tip_limits_reset = tip_limits_reset

    @property
    def defunct_count(self) -> int:
        """Celebrations made defunct by this tick"""
        return sum(
            1
            for e in self.triggered_events
            if e.event_type == "CelebrationStatusChanged"
            and e.payload["entry"]["new_status"] == "defunct"
        )

    def has_warnings(self) -> bool:
        """Check if donors were warned about an ending session"""
        return any(e.event_type == "DefunctWarningsSent" for e in self.triggered_events)

    def has_sweeps(self) -> bool:
        return any(e.event_type == "DefunctSweepCompleted" for e in self.triggered_events)

    def summary(self) -> str:
        """Human-readable summary of tick result"""
        parts = [
            f"Tick {self.tick_id} at {self.tick_at}",
            f"Events: {len(self.triggered_events)}",
        ]

        if self.has_sweeps():
            parts.append(f"Defunct sweep: {self.defunct_count} celebration(s)")
        if self.has_warnings():
            parts.append("⚠️  Session-end warnings sent")
        if self.tip_limits_reset is not None:
            parts.append(f"Tip limits reset: {self.tip_limits_reset}")

        return " | ".join(parts)


class TickEngine:
    """
    Orchestrates periodic evaluation

    The TickEngine:
    1. Records the session it sees, sweeping the previous one on rollover
    2. Sweeps or warns for the current session as needed
    3. Runs the annual tip-limit reset once per Eastern year
    4. Emits a SystemTick event
    5. Returns summary result

    refresh is called after every append so each step decides on
    up-to-date projections.
    """

    def __init__(
        self,
        event_store: SQLiteEventStore,
        time_provider: TimeProvider,
        policy: CompliancePolicy,
        session_signal: SessionSignal,
        defunct_service: DefunctService,
    ):
        self.event_store = event_store
        self.time_provider = time_provider
        self.policy = policy
        self.session_signal = session_signal
        self.defunct_service = defunct_service

    def _append_system(self, event_type: str, command_id: str, payload: dict) -> list[Event]:
        version = self.event_store.get_stream_version(SYSTEM_STREAM)
        event = create_event(
            event_id=generate_id(),
            stream_id=SYSTEM_STREAM,
            stream_type=StreamType.SYSTEM,
            event_type=event_type,
            occurred_at=self.time_provider.now(),
            command_id=command_id,
            actor_id="system",
            payload=payload,
            version=version + 1,
        )
        return self.event_store.append(SYSTEM_STREAM, version, [event])

    def tick(
        self,
        donor_registry: DonorRegistry,
        celebration_registry: CelebrationRegistry,
        system_log: SystemLog,
        refresh: Callable[[], None],
    ) -> TickResult:
        """
        Execute a single tick evaluation

        Args:
            donor_registry: Current donor state
            celebration_registry: Current celebration state
            system_log: What earlier ticks already did
            refresh: Catches the projections up with the event store

        Returns:
            TickResult with events and the session-check outcome
        """
        now = self.time_provider.now()
        tick_id = generate_id()
        triggered_events: list[Event] = []

        with (
            LogOperation(logger, "tick_evaluation", tick_id=tick_id),
            tick_execution_duration_seconds.time(),
        ):
            # Session rollover
            info = self.session_signal.get_session_info()
            current = (info.current_congress, info.current_session)
            previous = system_log.observed_session

            if previous != current:
                if previous is not None and previous not in system_log.swept_sessions:
                    logger.info(
                        "Congressional session rolled over, sweeping the previous session",
                        tick_id=tick_id,
                        previous_congress=previous[0],
                        previous_session=previous[1],
                    )
                    rollover = self.defunct_service.convert_active_to_defunct(
                        celebration_registry,
                        donor_registry,
                        previous[0],
                        previous[1],
                        closed_session_metadata(*previous),
                        info.next_election_date,
                    )
                    triggered_events.extend(rollover.events)
                    refresh()

                triggered_events.extend(
                    self._append_system(
                        "SessionObserved",
                        f"session:{current[0]}-{current[1]}",
                        SessionObserved(
                            congress=current[0],
                            session_number=current[1],
                            session_end_date=info.session_end_date,
                            observed_at=now,
                        ).model_dump(mode="json"),
                    )
                )
                refresh()

            # Current session: sweep when ended, warn when close
            defunct = self.defunct_service.check_and_convert_if_needed(
                celebration_registry, donor_registry, system_log
            )
            if defunct.events:
                triggered_events.extend(defunct.events)
                refresh()

            # Annual tip-limit reset
            tip_limits_reset = None
            year = eastern_year(now)
            if system_log.last_tip_reset_year != year:
                user_ids = donor_registry.flagged_before(eastern_year_start(year))
                triggered_events.extend(
                    self._append_system(
                        "TipLimitReset",
                        f"tip-reset:{year}",
                        TipLimitReset(year=year, user_ids=user_ids, reset_at=now).model_dump(
                            mode="json"
                        ),
                    )
                )
                tip_limits_reset = len(user_ids)
                refresh()
                logger.info("Annual tip limits reset", year=year, donors_reset=len(user_ids))

            self._append_system(
                "SystemTick",
                tick_id,
                SystemTick(tick_id=tick_id, tick_at=now).model_dump(mode="json"),
            )
            refresh()

            logger.info(
                "Tick evaluation completed",
                tick_id=tick_id,
                triggered_events_count=len(triggered_events),
                defunct_action=defunct.action,
                has_warnings=any(e.event_type == "DefunctWarningsSent" for e in triggered_events),
            )

        return TickResult(
            tick_id=tick_id,
            tick_at=now,
            triggered_events=triggered_events,
            defunct=defunct,
            tip_limits_reset=tip_limits_reset,
        )
