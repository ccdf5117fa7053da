"""
Celebration Module Handlers - Command→Event transformation

Handlers are the decision-making layer. They:
1. Take current state (from projections)
2. Validate invariants (limits already decided, status transitions)
3. Generate events if valid
4. Return events for append to event store

Fun fact: Handlers should be "almost boring" - the limit arithmetic lives
in the compliance module and the transition table in status.py.
Handlers just orchestrate!
"""

from datetime import datetime
from typing import Any

from celebration_engine.celebration.commands import (
    ChangeCelebrationStatus,
    CreateCelebration,
    PromoteComplianceTier,
    RegisterDonor,
)
from celebration_engine.celebration.events import (
    CelebrationCreated,
    CelebrationStatusChanged,
    ComplianceTierPromoted,
    DonationCommitted,
    DonorRegistered,
    TipLimitReached,
)
from celebration_engine.celebration.models import (
    NO_STATUS,
    CelebrationStatus,
    DonorInfoSnapshot,
    StatusLedgerEntry,
    TriggerSource,
)
from celebration_engine.celebration.status import validate_transition
from celebration_engine.compliance.models import ComplianceResult, TipDecision
from celebration_engine.compliance.tiers import ComplianceTierResolver
from celebration_engine.kernel.compliance_policy import CompliancePolicy
from celebration_engine.kernel.errors import (
    CelebrationNotFound,
    DonationBelowMinimum,
    DonorAlreadyRegistered,
    DonorNotFound,
    InvariantViolation,
    TierDemotionNotAllowed,
    ValidationRejected,
)
from celebration_engine.kernel.events import Event, StreamType, create_event
from celebration_engine.kernel.ids import generate_id, generate_status_change_id
from celebration_engine.kernel.time import TimeProvider, eastern_year


def flagged_this_year(donor: dict[str, Any], now: datetime) -> bool:
    """True if the donor's sticky tip flag was set in the current Eastern year"""
    reached_at = donor.get("tip_limit_reached_at")
    if not donor.get("tip_limit_reached") or reached_at is None:
        return False
    if isinstance(reached_at, str):
        reached_at = datetime.fromisoformat(reached_at)
    return eastern_year(reached_at) == eastern_year(now)


class CelebrationCommandHandlers:
    """
    Command handlers for donors and celebrations

    Handlers convert commands into events, enforcing invariants.
    They depend on projections to get current state.
    """

    def __init__(
        self,
        time_provider: TimeProvider,
        policy: CompliancePolicy,
    ) -> None:
        """
        Initialize handlers with dependencies

        Args:
            time_provider: For timestamps (injectable for testing)
            policy: Contribution limits and lifecycle parameters
        """
        self.time_provider = time_provider
        self.policy = policy
        self.resolver = ComplianceTierResolver(policy)

    def handle_register_donor(
        self,
        command: RegisterDonor,
        command_id: str,
        actor_id: str | None,
        donor_registry: dict,  # From projection
    ) -> list[Event]:
        """
        Handle RegisterDonor command

        The stored tier is normalized, so legacy names never reach the log.

        Raises:
            DonorAlreadyRegistered: If the user id is taken
        """
        now = self.time_provider.now()
        user_id = command.user_id or generate_id()
        if user_id in donor_registry:
            raise DonorAlreadyRegistered(user_id)

        event_payload = DonorRegistered(
            user_id=user_id,
            first_name=command.first_name,
            last_name=command.last_name,
            email=command.email,
            address=command.address,
            city=command.city,
            state=command.state,
            zip=command.zip,
            country=command.country,
            is_employed=command.is_employed,
            occupation=command.occupation,
            employer=command.employer,
            compliance_tier=self.resolver.normalize(command.compliance_tier),
            subscribed_to_updates=command.subscribed_to_updates,
            registered_at=now,
        ).model_dump(mode="json")

        event = create_event(
            event_id=generate_id(),
            stream_id=user_id,
            stream_type=StreamType.DONOR,
            event_type="DonorRegistered",
            occurred_at=now,
            command_id=command_id,
            actor_id=actor_id,
            payload=event_payload,
            version=1,
        )

        return [event]

    def handle_promote_tier(
        self,
        command: PromoteComplianceTier,
        command_id: str,
        actor_id: str | None,
        donor_registry: dict,  # From projection
    ) -> list[Event]:
        """
        Handle PromoteComplianceTier command

        Promoting to the tier the donor already has is a no-op.

        Raises:
            DonorNotFound: If donor doesn't exist
            TierDemotionNotAllowed: If the new tier is lower
            DataDegraded: If the new tier is not recognized
        """
        now = self.time_provider.now()

        if command.user_id not in donor_registry:
            raise DonorNotFound(command.user_id)

        donor = donor_registry[command.user_id]
        current_tier = donor["compliance_tier"]
        new_tier = self.resolver.strict(command.new_tier)

        if new_tier == current_tier:
            return []
        if not self.resolver.is_higher(new_tier, current_tier):
            raise TierDemotionNotAllowed(command.user_id, current_tier, new_tier)

        event_payload = ComplianceTierPromoted(
            user_id=command.user_id,
            previous_tier=current_tier,
            new_tier=new_tier,
            promoted_at=now,
        ).model_dump(mode="json")

        event = create_event(
            event_id=generate_id(),
            stream_id=command.user_id,
            stream_type=StreamType.DONOR,
            event_type="ComplianceTierPromoted",
            occurred_at=now,
            command_id=command_id,
            actor_id=actor_id,
            payload=event_payload,
            version=donor["version"] + 1,
        )

        return [event]

    def handle_create_celebration(
        self,
        command: CreateCelebration,
        command_id: str,
        actor_id: str | None,
        donor: dict[str, Any] | None,  # From projection
        compliance: ComplianceResult,
        tip: TipDecision,
        donor_info: DonorInfoSnapshot,
    ) -> list[Event]:
        """
        Handle CreateCelebration command

        The compliance result and tip decision are computed against the
        donor's live history right before this call. The returned events
        span two streams: CelebrationCreated opens the celebration stream,
        DonationCommitted (and TipLimitReached, the first time the ceiling
        is hit in an Eastern year) advance the donor stream.

        Args:
            command: CreateCelebration command
            command_id: Idempotency key
            actor_id: Who issued the command
            donor: Current donor state
            compliance: Server-side validation of the donation amount
            tip: What happens to the optional tip
            donor_info: Snapshot frozen onto the celebration

        Returns:
            List of events to append

        Raises:
            DonorNotFound: If donor doesn't exist
            DonationBelowMinimum: If the amount is under the platform minimum
            ValidationRejected: If a contribution limit would be exceeded
            InvariantViolation: If the donor's tier is not valid
        """
        now = self.time_provider.now()

        if donor is None:
            raise DonorNotFound(command.donor_id)

        if not compliance.is_compliant:
            if compliance.limit_info is not None:
                raise ValidationRejected(compliance.limit_info, command.donation_amount)
            if command.donation_amount < self.policy.minimum_donation:
                raise DonationBelowMinimum(
                    str(command.donation_amount), str(self.policy.minimum_donation)
                )
            raise InvariantViolation(compliance.reason or "Donation is not compliant")

        celebration_id = generate_id()
        initial_entry = StatusLedgerEntry(
            status_change_id=generate_status_change_id(),
            previous_status=NO_STATUS,
            new_status=CelebrationStatus.ACTIVE,
            change_datetime=now,
            reason="Celebration created",
            triggered_by=TriggerSource.SYSTEM,
            triggered_by_id=actor_id,
            triggered_by_name="System - Creation",
            compliance_tier_at_time=donor_info.compliance,
            audit_trail=command.audit,
        )

        created_payload = CelebrationCreated(
            celebration_id=celebration_id,
            donor_id=command.donor_id,
            recipient_id=command.recipient_id,
            recipient_state=command.recipient_state,
            bill_id=command.bill_id,
            donation_amount=command.donation_amount,
            tip_amount=tip.applied_tip,
            fee=command.fee,
            idempotency_key=command_id,
            donor_info=donor_info,
            initial_entry=initial_entry,
            created_at=now,
        ).model_dump(mode="json")

        events = [
            create_event(
                event_id=generate_id(),
                stream_id=celebration_id,
                stream_type=StreamType.CELEBRATION,
                event_type="CelebrationCreated",
                occurred_at=now,
                command_id=command_id,
                actor_id=actor_id,
                payload=created_payload,
                version=1,
            )
        ]

        donor_version = donor["version"]
        committed_payload = DonationCommitted(
            user_id=command.donor_id,
            celebration_id=celebration_id,
            recipient_id=command.recipient_id,
            donation_amount=command.donation_amount,
            tip_amount=tip.applied_tip,
            requested_tip=tip.requested_tip,
            tip_truncated=tip.truncated,
            validation_method=(
                compliance.validation_method.value if compliance.validation_method else None
            ),
            committed_at=now,
        ).model_dump(mode="json")
        events.append(
            create_event(
                event_id=generate_id(),
                stream_id=command.donor_id,
                stream_type=StreamType.DONOR,
                event_type="DonationCommitted",
                occurred_at=now,
                command_id=command_id,
                actor_id=actor_id,
                payload=committed_payload,
                version=donor_version + 1,
            )
        )

        if tip.limit_reached and not flagged_this_year(donor, now):
            reached_payload = TipLimitReached(
                user_id=command.donor_id,
                celebration_id=celebration_id,
                current_pac_total=tip.status.current_pac_total + tip.applied_tip,
                pac_limit=tip.status.pac_limit,
                reached_at=now,
            ).model_dump(mode="json")
            events.append(
                create_event(
                    event_id=generate_id(),
                    stream_id=command.donor_id,
                    stream_type=StreamType.DONOR,
                    event_type="TipLimitReached",
                    occurred_at=now,
                    command_id=command_id,
                    actor_id=actor_id,
                    payload=reached_payload,
                    version=donor_version + 2,
                )
            )

        return events

    def handle_change_status(
        self,
        command: ChangeCelebrationStatus,
        command_id: str,
        actor_id: str | None,
        celebration_registry: dict,  # From projection
    ) -> list[Event]:
        """
        Handle ChangeCelebrationStatus command

        The event is appended at the celebration's current version, so a
        concurrent change makes this one conflict instead of silently
        overwriting it.

        Raises:
            CelebrationNotFound: If celebration doesn't exist
            InvalidTransition: If the transition is not in the table
        """
        now = self.time_provider.now()

        if command.celebration_id not in celebration_registry:
            raise CelebrationNotFound(command.celebration_id)

        celebration = celebration_registry[command.celebration_id]
        current_status = celebration["current_status"]
        validate_transition(current_status, command.new_status)

        entry = StatusLedgerEntry(
            status_change_id=generate_status_change_id(),
            previous_status=current_status,
            new_status=command.new_status,
            change_datetime=now,
            reason=command.reason,
            triggered_by=command.triggered_by,
            triggered_by_id=command.triggered_by_id or actor_id,
            triggered_by_name=command.triggered_by_name,
            metadata=command.metadata,
            compliance_tier_at_time=celebration["donor_info"]["compliance"],
            audit_trail=command.audit,
        )

        is_defunct = command.new_status == CelebrationStatus.DEFUNCT
        event_payload = CelebrationStatusChanged(
            celebration_id=command.celebration_id,
            entry=entry,
            defunct_date=now if is_defunct else None,
            defunct_reason=(command.defunct_reason or command.reason) if is_defunct else None,
        ).model_dump(mode="json")

        event = create_event(
            event_id=generate_id(),
            stream_id=command.celebration_id,
            stream_type=StreamType.CELEBRATION,
            event_type="CelebrationStatusChanged",
            occurred_at=now,
            command_id=command_id,
            actor_id=actor_id,
            payload=event_payload,
            version=celebration["version"] + 1,
        )

        return [event]
