"""
Base Event model for the donation ledger

Every donor registration, committed donation and celebration status change
is an immutable event. The log is the compliance audit trail: nothing in it
is ever edited or deleted, not even administratively.
"""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field


class StreamType(str, Enum):
    """Kinds of aggregate streams kept in the store"""

    DONOR = "donor"
    CELEBRATION = "celebration"
    SYSTEM = "system"


class Event(BaseModel):
    """
    Base event class - all domain events are stored in this envelope

    The combination of stream_id + version provides the conditional write
    ("only if nobody changed this donor/celebration since I read it"),
    while command_id carries the donation idempotency key.
    """

    event_id: str = Field(
        ...,
        description="Unique event identifier (UUIDv7 for time-ordering)",
    )

    stream_id: str = Field(
        ...,
        description="Aggregate root identifier: a donor id or a celebration id",
    )

    stream_type: str = Field(
        ...,
        description="Type of aggregate: 'donor', 'celebration' or 'system'",
    )

    event_type: str = Field(
        ...,
        description="Specific event type: 'CelebrationCreated', 'DonationCommitted', etc.",
    )

    occurred_at: datetime = Field(
        ...,
        description="UTC timestamp when event occurred",
    )

    actor_id: str | None = Field(
        default=None,
        description="ID of actor who triggered this event (None for system events)",
    )

    command_id: str = Field(
        ...,
        description="ID of command that caused this event (idempotency key)",
    )

    payload: dict = Field(
        default_factory=dict,
        description="Event-specific data (must be JSON-serializable)",
    )

    version: int = Field(
        ...,
        description="Stream version after this event (monotonically increasing)",
        ge=1,
    )

    model_config = {
        "frozen": True,
        "json_schema_extra": {
            "examples": [
                {
                    "event_id": "01908e9a-3b87-7000-8000-123456789abc",
                    "stream_id": "01908e9a-3b87-7000-8000-00000000c0de",
                    "stream_type": "celebration",
                    "event_type": "CelebrationCreated",
                    "occurred_at": "2026-03-02T15:30:00Z",
                    "actor_id": "user-ada",
                    "command_id": "donation-7f3a",
                    "payload": {"donation_amount": "25", "tip_amount": "2"},
                    "version": 1,
                }
            ]
        },
    }


def create_event(
    *,
    event_id: str,
    stream_id: str,
    stream_type: str | StreamType,
    event_type: str,
    occurred_at: datetime,
    command_id: str,
    version: int,
    actor_id: str | None = None,
    payload: dict | None = None,
) -> Event:
    """
    Factory function for creating events with all required fields

    Accepts a StreamType member or its plain string value.
    """
    if isinstance(stream_type, StreamType):
        stream_type = stream_type.value
    return Event(
        event_id=event_id,
        stream_id=stream_id,
        stream_type=stream_type,
        event_type=event_type,
        occurred_at=occurred_at,
        actor_id=actor_id,
        command_id=command_id,
        payload=payload or {},
        version=version,
    )
