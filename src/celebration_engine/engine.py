"""
CelebrationEngine - Main façade class

This is the primary interface for the donation compliance engine. It
provides a clean, high-level API that hides the complexity of event
sourcing, projections, and limit arithmetic.

Example:
    >>> from celebration_engine import CelebrationEngine
    >>> engine = CelebrationEngine("celebrations.db")
    >>> donor = engine.register_donor(first_name="Ada", last_name="Lovelace")
    >>> engine.get_limits(donor["user_id"]).remaining_limit
    Decimal('50')
    >>> c = engine.create_celebration(donor["user_id"], "pol-1", "hr-42", Decimal("25"))
    >>> engine.resolve(c["celebration_id"], "Bill passed the House")
    >>> engine.tick()  # Session sweep, warnings, annual tip reset
"""

from datetime import datetime
from decimal import Decimal
from pathlib import Path
from typing import Any

from celebration_engine.celebration.commands import (
    ChangeCelebrationStatus,
    CreateCelebration,
    PromoteComplianceTier,
    RegisterDonor,
)
from celebration_engine.celebration.defunct import DefunctService
from celebration_engine.celebration.donor import build_donor_snapshot
from celebration_engine.celebration.handlers import CelebrationCommandHandlers
from celebration_engine.celebration.models import (
    AuditTrail,
    CelebrationStatus,
    CelebrationSummary,
    TriggerSource,
)
from celebration_engine.celebration.notifications import (
    LoggingNotificationSink,
    NotificationSink,
    NotificationTopic,
    deliver,
)
from celebration_engine.celebration.projections import (
    CelebrationRegistry,
    DonorRegistry,
    SystemLog,
)
from celebration_engine.celebration.status import (
    activate_command,
    defunct_command,
    pause_command,
    resolve_command,
)
from celebration_engine.compliance.cycle import ElectionCycleCalculator
from celebration_engine.compliance.limits import LimitEngine
from celebration_engine.compliance.models import (
    ComplianceResult,
    ElectionCycle,
    LimitSummary,
    PacLimitStatus,
    PledgeRecord,
    RecipientSelection,
)
from celebration_engine.compliance.pac import PacLimitTracker
from celebration_engine.compliance.tiers import ComplianceTierResolver
from celebration_engine.compliance.validation import DonationComplianceValidator
from celebration_engine.congress.elections import ElectionDateSource
from celebration_engine.congress.session import (
    CalendarSessionSignal,
    SessionInfo,
    SessionSignal,
)
from celebration_engine.kernel.compliance_policy import CompliancePolicy
from celebration_engine.kernel.errors import (
    CelebrationNotFound,
    CommandIdempotencyViolation,
    DonorNotFound,
)
from celebration_engine.kernel.event_store import SQLiteEventStore, StreamWrite
from celebration_engine.kernel.events import Event
from celebration_engine.kernel.ids import generate_id
from celebration_engine.kernel.logging import LogOperation, get_logger
from celebration_engine.kernel.metrics import (
    projection_rebuild_duration_seconds,
    status_transitions_total,
    track_command_duration,
    update_status_gauges,
)
from celebration_engine.kernel.retry import retry_on_version_conflict
from celebration_engine.kernel.tick import TickEngine, TickResult
from celebration_engine.kernel.time import RealTimeProvider, TimeProvider

logger = get_logger(__name__)


class CelebrationEngine:
    """
    Celebration engine main façade

    Provides a unified API for all system operations including:
    - Donor registration and tier promotion
    - Limit summaries, recipient switching and PAC tip status
    - Server-side validation and creation of celebrations
    - The celebration status lifecycle
    - Periodic session sweep and annual resets (tick)
    """

    def __init__(
        self,
        sqlite_path: str | Path,
        policy: CompliancePolicy | None = None,
        time_provider: TimeProvider | None = None,
        election_dates: ElectionDateSource | None = None,
        session_signal: SessionSignal | None = None,
        notification_sink: NotificationSink | None = None,
    ) -> None:
        """
        Initialize the engine

        Args:
            sqlite_path: Path to SQLite database
            policy: Compliance policy (uses defaults if None)
            time_provider: Time provider (uses real time if None)
            election_dates: Per-state election dates (generic fallback if None)
            session_signal: Legislative-session signal (calendar defaults if None)
            notification_sink: Where donor notifications go (logged if None)
        """
        self.sqlite_path = Path(sqlite_path)
        self.policy = policy or CompliancePolicy()
        self.time_provider = time_provider or RealTimeProvider()
        self.session_signal = session_signal or CalendarSessionSignal(
            self.time_provider, warning_months=self.policy.session_warning_months
        )
        self.notification_sink = notification_sink or LoggingNotificationSink()

        # Initialize infrastructure
        self.event_store = SQLiteEventStore(str(self.sqlite_path))
        self.resolver = ComplianceTierResolver(self.policy)
        self.cycle_calculator = ElectionCycleCalculator(election_dates)
        self.limit_engine = LimitEngine(
            self.policy, self.resolver, self.cycle_calculator, self.time_provider
        )
        self.pac_tracker = PacLimitTracker(self.policy, self.time_provider)
        self.validator = DonationComplianceValidator(
            self.policy,
            self.resolver,
            self.limit_engine,
            self.cycle_calculator,
            self.time_provider,
        )
        self.handlers = CelebrationCommandHandlers(self.time_provider, self.policy)
        self.defunct_service = DefunctService(
            self.event_store,
            self.handlers,
            self.session_signal,
            self.notification_sink,
            self.time_provider,
        )
        self.tick_engine = TickEngine(
            self.event_store,
            self.time_provider,
            self.policy,
            self.session_signal,
            self.defunct_service,
        )

        # Initialize projections
        self.donor_registry = DonorRegistry()
        self.celebration_registry = CelebrationRegistry()
        self.system_log = SystemLog()
        self._position = 0

        # Rebuild projections from event store
        self._rebuild_projections()

    def _rebuild_projections(self) -> None:
        """Rebuild all projections from event store"""
        with projection_rebuild_duration_seconds.time():
            self._catch_up()
        logger.info(
            "Projections rebuilt",
            donors=len(self.donor_registry.donors),
            celebrations=len(self.celebration_registry.celebrations),
            position=self._position,
        )

    def _catch_up(self) -> None:
        """Apply events appended since the last known position (by any writer)"""
        for position, event in self.event_store.load_events_after(self._position):
            self._apply(event)
            self._position = position
        update_status_gauges(self.celebration_registry.count_by_status())

    def _apply(self, event: Event) -> None:
        if event.stream_type == "donor":
            self.donor_registry.apply_event(event)
        elif event.stream_type == "celebration":
            self.celebration_registry.apply_event(event)
            if event.event_type == "CelebrationStatusChanged":
                entry = event.payload["entry"]
                status_transitions_total.labels(
                    from_status=entry["previous_status"], to_status=entry["new_status"]
                ).inc()
        elif event.stream_type == "system":
            self.system_log.apply_event(event)
            if event.event_type == "TipLimitReset":
                self.donor_registry.apply_event(event)

    # Donor operations

    @track_command_duration("RegisterDonor")
    def register_donor(
        self,
        user_id: str | None = None,
        compliance_tier: str = "unverified",
        actor_id: str | None = None,
        **profile: Any,
    ) -> dict[str, Any]:
        """
        Register a donor

        Args:
            user_id: Donor id (generated if None)
            compliance_tier: Starting tier (legacy names accepted)
            actor_id: Actor registering the donor
            **profile: Name, address, occupation, employer, email,
                subscribed_to_updates

        Returns:
            Donor dict with user_id
        """
        self._catch_up()
        command = RegisterDonor(user_id=user_id, compliance_tier=compliance_tier, **profile)
        events = self.handlers.handle_register_donor(
            command, generate_id(), actor_id, self.donor_registry.donors
        )
        self.event_store.append(events[0].stream_id, 0, events)
        self._catch_up()
        return self.donor_registry.get(events[0].stream_id)

    @track_command_duration("PromoteComplianceTier")
    def promote_tier(
        self, user_id: str, new_tier: str, actor_id: str | None = None
    ) -> dict[str, Any]:
        """
        Promote a donor to a higher compliance tier

        Raises:
            TierDemotionNotAllowed: If new_tier is lower than the current one
        """
        self._catch_up()
        command = PromoteComplianceTier(user_id=user_id, new_tier=new_tier)
        events = self.handlers.handle_promote_tier(
            command, generate_id(), actor_id, self.donor_registry.donors
        )
        if events:
            self.event_store.append(user_id, events[0].version - 1, events)
            self._catch_up()
        return self.donor_registry.get(user_id)

    def get_donor(self, user_id: str) -> dict[str, Any]:
        self._catch_up()
        donor = self.donor_registry.get(user_id)
        if donor is None:
            raise DonorNotFound(user_id)
        return donor

    def donor_history(self, user_id: str) -> list[PledgeRecord]:
        """The donor's pledges as the limit engine sees them"""
        self.get_donor(user_id)
        return self.celebration_registry.history_for_donor(user_id)

    # Limits

    def get_limits(
        self,
        user_id: str,
        recipient_id: str | None = None,
        state: str | None = None,
        form_tier: str | None = None,
    ) -> LimitSummary:
        """
        Effective and remaining limit for a donor

        Args:
            user_id: Donor
            recipient_id: Selected recipient (needed for per-election limits)
            state: Recipient's state, for election-cycle dates
            form_tier: Tier reached in an in-progress verification form
        """
        donor = self.get_donor(user_id)
        tier = self.resolver.effective_tier(form_tier, donor["compliance_tier"])
        return self.limit_engine.effective_limits(
            tier, self.donor_history(user_id), recipient_id, state
        )

    def select_recipient(
        self,
        user_id: str,
        recipient_id: str,
        staged_amount: Decimal,
        state: str | None = None,
        form_tier: str | None = None,
    ) -> RecipientSelection:
        """Remaining limit for a newly selected recipient, with the staged amount clamped"""
        donor = self.get_donor(user_id)
        tier = self.resolver.effective_tier(form_tier, donor["compliance_tier"])
        return self.limit_engine.select_recipient(
            tier, self.donor_history(user_id), recipient_id, state, staged_amount
        )

    def election_cycle(self, state: str | None) -> ElectionCycle:
        return self.cycle_calculator.cycle_for_state(state, self.time_provider.now())

    def check_pac(self, user_id: str, attempted_tip: Decimal = Decimal("0")) -> PacLimitStatus:
        """Annual PAC tip status, optionally for an attempted tip"""
        return self.pac_tracker.check(self.donor_history(user_id), attempted_tip)

    def validate_donation_compliance(
        self,
        user_id: str,
        amount: Decimal,
        recipient_id: str,
        state: str | None = None,
    ) -> ComplianceResult:
        """Server-side check of a donation amount against the donor's live totals"""
        donor = self.get_donor(user_id)
        return self.validator.validate(
            donor["compliance_tier"], amount, self.donor_history(user_id), recipient_id, state
        )

    # Celebration operations

    @track_command_duration("CreateCelebration")
    def create_celebration(
        self,
        donor_id: str,
        recipient_id: str,
        bill_id: str,
        donation_amount: Decimal,
        tip_amount: Decimal = Decimal("0"),
        fee: Decimal = Decimal("0"),
        recipient_state: str | None = None,
        idempotency_key: str | None = None,
        audit: AuditTrail | None = None,
        actor_id: str | None = None,
    ) -> dict[str, Any]:
        """
        Validate and commit a donation as a new active celebration

        Limits are re-checked here against the donor's live history, and the
        commit is conditional on the donor not having changed since, so two
        racing donations cannot both pass the same check. A repeated
        idempotency key returns the original celebration.

        Returns:
            Celebration dict

        Raises:
            DonorNotFound: If donor doesn't exist
            ValidationRejected: If a contribution limit would be exceeded
            DonationBelowMinimum: If the amount is under the platform minimum
            CommandIdempotencyViolation: If the key belongs to another donor
        """
        command = CreateCelebration(
            donor_id=donor_id,
            recipient_id=recipient_id,
            recipient_state=recipient_state,
            bill_id=bill_id,
            donation_amount=donation_amount,
            tip_amount=tip_amount,
            fee=fee,
            idempotency_key=idempotency_key,
            audit=audit or AuditTrail(),
        )
        command_id = command.idempotency_key or generate_id()

        with LogOperation(
            logger,
            "create_celebration",
            donor_id=donor_id,
            recipient_id=recipient_id,
            donation_amount=str(donation_amount),
            ip_address=command.audit.ip_address,
        ):
            self._catch_up()
            existing = self.celebration_registry.find_by_idempotency_key(command_id)
            if existing is not None:
                if existing["donor_id"] != donor_id:
                    raise CommandIdempotencyViolation(
                        command_id,
                        f"Idempotency key {command_id} belongs to another donor's celebration",
                    )
                logger.info("Idempotent celebration replay", idempotency_key=command_id)
                return existing

            events = self._commit_celebration(command, command_id, actor_id)
            self._catch_up()

        created = next(e for e in events if e.event_type == "CelebrationCreated")
        if any(e.event_type == "TipLimitReached" for e in events):
            reached = next(e for e in events if e.event_type == "TipLimitReached")
            deliver(
                self.notification_sink,
                donor_id,
                NotificationTopic.TIP_LIMIT_REACHED,
                {
                    "current_pac_total": reached.payload["current_pac_total"],
                    "pac_limit": reached.payload["pac_limit"],
                },
            )
        return self.celebration_registry.get(created.stream_id)

    @retry_on_version_conflict()
    def _commit_celebration(
        self, command: CreateCelebration, command_id: str, actor_id: str | None
    ) -> list[Event]:
        self._catch_up()
        donor = self.donor_registry.get(command.donor_id)
        if donor is None:
            raise DonorNotFound(command.donor_id)

        history = self.celebration_registry.history_for_donor(command.donor_id)
        compliance = self.validator.validate(
            donor["compliance_tier"],
            command.donation_amount,
            history,
            command.recipient_id,
            command.recipient_state,
        )
        tip = self.pac_tracker.apply_tip(history, command.tip_amount)
        donor_info = build_donor_snapshot(
            donor,
            compliance.compliance_tier,
            self.time_provider.now(),
            self.policy.validation_version,
        )

        events = self.handlers.handle_create_celebration(
            command, command_id, actor_id, donor, compliance, tip, donor_info
        )
        celebration_events = [e for e in events if e.stream_type == "celebration"]
        donor_events = [e for e in events if e.stream_type == "donor"]
        return self.event_store.append_batch(
            [
                StreamWrite(celebration_events[0].stream_id, 0, celebration_events),
                StreamWrite(command.donor_id, donor["version"], donor_events),
            ]
        )

    def get_celebration(self, celebration_id: str) -> dict[str, Any]:
        self._catch_up()
        celebration = self.celebration_registry.get(celebration_id)
        if celebration is None:
            raise CelebrationNotFound(celebration_id)
        return celebration

    def list_celebrations(self, status: str | None = None) -> list[CelebrationSummary]:
        self._catch_up()
        return self.celebration_registry.summaries(status)

    def get_celebrations_by_status(self, status: str) -> list[dict[str, Any]]:
        self._catch_up()
        return self.celebration_registry.get_celebrations_by_status(status)

    def get_celebrations_needing_updates(self) -> list[dict[str, Any]]:
        self._catch_up()
        return self.celebration_registry.get_celebrations_needing_updates()

    def get_status_history(self, celebration_id: str, limit: int = 10) -> dict[str, Any]:
        self.get_celebration(celebration_id)
        return self.celebration_registry.get_status_history(
            celebration_id, limit, self.time_provider.now()
        )

    def calculate_status_duration(self, celebration_id: str) -> dict[str, Any]:
        self.get_celebration(celebration_id)
        return self.celebration_registry.calculate_status_duration(
            celebration_id, self.time_provider.now()
        )

    # Status lifecycle

    @track_command_duration("ChangeCelebrationStatus")
    def change_status(
        self,
        celebration_id: str,
        new_status: str | CelebrationStatus,
        reason: str,
        triggered_by: str | TriggerSource = TriggerSource.SYSTEM,
        triggered_by_id: str | None = None,
        triggered_by_name: str = "System",
        metadata: dict[str, Any] | None = None,
        audit: AuditTrail | None = None,
        actor_id: str | None = None,
    ) -> dict[str, Any]:
        """
        Generic status transition

        Raises:
            CelebrationNotFound: If celebration doesn't exist
            InvalidTransition: If the transition is not allowed
        """
        command = ChangeCelebrationStatus(
            celebration_id=celebration_id,
            new_status=new_status,
            reason=reason,
            triggered_by=triggered_by,
            triggered_by_id=triggered_by_id,
            triggered_by_name=triggered_by_name,
            metadata=metadata or {},
            audit=audit or AuditTrail(),
        )
        return self._transition(command, actor_id)

    def activate(
        self, celebration_id: str, reason: str = "Celebration activated", **kwargs: Any
    ) -> dict[str, Any]:
        """Resume a paused celebration"""
        return self._transition(activate_command(celebration_id, reason, **kwargs))

    def pause(
        self,
        celebration_id: str,
        reason: str,
        pause_details: dict[str, Any] | None = None,
        **kwargs: Any,
    ) -> dict[str, Any]:
        return self._transition(pause_command(celebration_id, reason, pause_details, **kwargs))

    def resolve(
        self,
        celebration_id: str,
        reason: str,
        resolution_details: dict[str, Any] | None = None,
        **kwargs: Any,
    ) -> dict[str, Any]:
        return self._transition(
            resolve_command(celebration_id, reason, resolution_details, **kwargs)
        )

    def make_defunct(
        self,
        celebration_id: str,
        session_metadata: dict[str, Any] | None = None,
        **kwargs: Any,
    ) -> dict[str, Any]:
        """Make one celebration defunct (defaults to the current session's metadata)"""
        metadata = session_metadata or self.session_info().session_metadata()
        return self._transition(defunct_command(celebration_id, metadata, **kwargs))

    def _transition(
        self, command: ChangeCelebrationStatus, actor_id: str | None = None
    ) -> dict[str, Any]:
        self._commit_transition(command, generate_id(), actor_id)
        self._catch_up()
        return self.celebration_registry.get(command.celebration_id)

    @retry_on_version_conflict()
    def _commit_transition(
        self, command: ChangeCelebrationStatus, command_id: str, actor_id: str | None
    ) -> list[Event]:
        self._catch_up()
        events = self.handlers.handle_change_status(
            command, command_id, actor_id, self.celebration_registry.celebrations
        )
        return self.event_store.append(command.celebration_id, events[0].version - 1, events)

    # Session and periodic work

    def session_info(self) -> SessionInfo:
        return self.session_signal.get_session_info()

    @retry_on_version_conflict()
    def tick(self) -> TickResult:
        """
        Run periodic evaluation

        Checks the congressional session (sweep or warn), and the annual
        tip-limit reset. Safe to call repeatedly.

        Returns:
            TickResult with triggered events
        """
        self._catch_up()
        return self.tick_engine.tick(
            self.donor_registry,
            self.celebration_registry,
            self.system_log,
            refresh=self._catch_up,
        )

    def health(self) -> dict[str, Any]:
        """Ledger and lifecycle overview"""
        self._catch_up()
        return {
            "event_count": self.event_store.count_events(),
            "stream_count": self.event_store.count_streams(),
            "donors": len(self.donor_registry.donors),
            "celebrations_by_status": self.celebration_registry.count_by_status(),
            "last_tick_at": self.system_log.last_tick_at,
            "observed_session": self.system_log.observed_session,
        }

    def now(self) -> datetime:
        return self.time_provider.now()
