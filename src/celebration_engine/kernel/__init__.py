"""
Kernel - Core event sourcing infrastructure

The kernel provides the foundational event sourcing machinery the donation
ledger builds upon. It enforces idempotency, conditional writes and
append-only semantics.

Fun fact: Event sourcing was inspired by accountants - they never erase ledger
entries, they add correcting entries. Campaign treasurers work the same way.
"""

from celebration_engine.kernel.errors import (
    CelebrationEngineError,
    CommandIdempotencyViolation,
    DataDegraded,
    EventStoreError,
    InvariantViolation,
    StreamVersionConflict,
)
from celebration_engine.kernel.events import Event, StreamType
from celebration_engine.kernel.ids import generate_id
from celebration_engine.kernel.time import RealTimeProvider, TestTimeProvider, TimeProvider

__all__ = [
    # IDs
    "generate_id",
    # Time
    "TimeProvider",
    "RealTimeProvider",
    "TestTimeProvider",
    # Events
    "Event",
    "StreamType",
    # Errors
    "CelebrationEngineError",
    "EventStoreError",
    "CommandIdempotencyViolation",
    "StreamVersionConflict",
    "InvariantViolation",
    "DataDegraded",
]
