"""
Custom exceptions for the celebration engine

A small, explicit hierarchy lets callers tell apart a donation that broke a
limit, a lifecycle change that is not allowed, and storage trouble.

Fun fact: The first U.S. federal contribution limits arrived with the
Federal Election Campaign Act amendments of 1974, right after Watergate.
"""

from typing import Any


class CelebrationEngineError(Exception):
    """Base exception for all celebration engine errors"""

    pass


class EventStoreError(CelebrationEngineError):
    """Base class for event store errors"""

    pass


class CommandIdempotencyViolation(EventStoreError):
    """
    Raised when a command id was already used for a different stream

    A replay of the same donation is not an error (the store returns the
    original events); this is raised only when the id cannot be reconciled.
    """

    def __init__(self, command_id: str, message: str = "") -> None:
        self.command_id = command_id
        super().__init__(
            message or f"Command {command_id} already processed (idempotency preserved)"
        )


class StreamVersionConflict(EventStoreError):
    """
    Raised when stream version doesn't match expected (optimistic locking)

    Another writer changed the donor or celebration first - reload and
    re-validate before trying again.
    """

    def __init__(
        self, stream_id: str, expected_version: int, actual_version: int
    ) -> None:
        self.stream_id = stream_id
        self.expected_version = expected_version
        self.actual_version = actual_version
        super().__init__(
            f"Stream {stream_id} version mismatch: "
            f"expected {expected_version}, got {actual_version}"
        )


class InvariantViolation(CelebrationEngineError):
    """
    Raised when a domain rule would be broken

    Contribution limits and the status transition table are the rules
    that MUST hold for every accepted command.
    """

    pass


class ValidationRejected(InvariantViolation):
    """
    Raised when a donation amount violates a contribution limit

    Carries the limit description shown to the donor.
    """

    def __init__(self, limit_info: Any, attempted_amount: Any = None) -> None:
        self.limit_info = limit_info
        self.attempted_amount = attempted_amount
        self.limit_type = getattr(limit_info, "limit_type", None)
        super().__init__(getattr(limit_info, "message", None) or "Donation limit exceeded.")


class DonationBelowMinimum(InvariantViolation):
    """Raised when the donation is smaller than the platform minimum"""

    def __init__(self, amount: str, minimum: str) -> None:
        self.amount = amount
        self.minimum = minimum
        super().__init__(f"Donation must be at least ${minimum} (attempted ${amount})")


class InvalidTransition(InvariantViolation):
    """Raised when a celebration status change is not in the transition table"""

    def __init__(self, from_status: str, to_status: str, allowed: list[str]) -> None:
        self.from_status = from_status
        self.to_status = to_status
        self.allowed = allowed
        valid = ", ".join(allowed) if allowed else "none"
        super().__init__(
            f"Cannot transition from '{from_status}' to '{to_status}'. "
            f"Valid transitions: {valid}"
        )


class TierDemotionNotAllowed(InvariantViolation):
    """Raised when a donor would be moved to a lower compliance tier"""

    def __init__(self, user_id: str, current_tier: str, requested_tier: str) -> None:
        self.user_id = user_id
        self.current_tier = current_tier
        self.requested_tier = requested_tier
        super().__init__(
            f"Donor {user_id} is '{current_tier}' and cannot be moved to "
            f"'{requested_tier}' - tiers are only ever promoted"
        )


class DataDegraded(CelebrationEngineError):
    """
    Raised when an input is missing or unrecognized and a fallback applies

    The engine catches this, logs it, and continues with the fallback
    (unverified tier numbers or generic election dates).
    """

    def __init__(self, subject: str, detail: str) -> None:
        self.subject = subject
        self.detail = detail
        super().__init__(f"Degraded data for {subject}: {detail}")


class DownstreamNotificationFailure(CelebrationEngineError):
    """Raised by notification sinks; logged, never propagated past the engine"""

    def __init__(self, user_id: str, topic: str, reason: str) -> None:
        self.user_id = user_id
        self.topic = topic
        self.reason = reason
        super().__init__(f"Notification '{topic}' to {user_id} failed: {reason}")


class DonorNotFound(CelebrationEngineError):
    """Raised when donor does not exist"""

    def __init__(self, user_id: str) -> None:
        self.user_id = user_id
        super().__init__(f"Donor {user_id} not found")


class DonorAlreadyRegistered(CelebrationEngineError):
    """Raised when a donor id is registered twice"""

    def __init__(self, user_id: str) -> None:
        self.user_id = user_id
        super().__init__(f"Donor {user_id} is already registered")


class CelebrationNotFound(CelebrationEngineError):
    """Raised when celebration does not exist"""

    def __init__(self, celebration_id: str) -> None:
        self.celebration_id = celebration_id
        super().__init__(f"Celebration {celebration_id} not found")
