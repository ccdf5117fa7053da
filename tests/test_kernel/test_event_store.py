"""
Tests for SQLite Event Store

Verifies core event sourcing properties:
- Append-only semantics
- Idempotency via command_id (the donation idempotency key)
- Conditional writes via stream versioning
- Multi-stream batches that move together or not at all

Fun fact: Event sourcing tests are like an audit - we're verifying
that the ledger is complete, immutable, and replayable!
"""

from datetime import datetime, timedelta, timezone

import pytest

from celebration_engine.kernel.errors import CommandIdempotencyViolation, StreamVersionConflict
from celebration_engine.kernel.event_store import SQLiteEventStore, StreamWrite
from celebration_engine.kernel.events import Event, StreamType, create_event
from celebration_engine.kernel.ids import generate_id

T0 = datetime(2026, 3, 2, 15, 0, tzinfo=timezone.utc)


def make_event(
    stream_id: str,
    version: int,
    command_id: str | None = None,
    event_type: str = "DonationCommitted",
    stream_type: StreamType = StreamType.DONOR,
    occurred_at: datetime = T0,
    **payload,
) -> Event:
    return create_event(
        event_id=generate_id(),
        stream_id=stream_id,
        stream_type=stream_type,
        event_type=event_type,
        occurred_at=occurred_at,
        command_id=command_id or generate_id(),
        actor_id="user-ada",
        payload=payload,
        version=version,
    )


def test_append_and_load_single_event(event_store: SQLiteEventStore) -> None:
    """Test appending and loading a single event"""
    event = make_event("donor-1", 1, donation_amount="25")

    appended = event_store.append("donor-1", 0, [event])
    assert len(appended) == 1
    assert appended[0].event_id == event.event_id

    loaded = event_store.load_stream("donor-1")
    assert len(loaded) == 1
    assert loaded[0].event_id == event.event_id
    assert loaded[0].payload == {"donation_amount": "25"}
    assert loaded[0].occurred_at == T0


def test_stream_versioning(event_store: SQLiteEventStore) -> None:
    """Test that stream versioning works correctly"""
    event_store.append("donor-1", 0, [make_event("donor-1", 1)])
    assert event_store.get_stream_version("donor-1") == 1

    event_store.append("donor-1", 1, [make_event("donor-1", 2)])
    assert event_store.get_stream_version("donor-1") == 2

    loaded = event_store.load_stream("donor-1")
    assert [e.version for e in loaded] == [1, 2]


def test_unknown_stream_has_version_zero(event_store: SQLiteEventStore) -> None:
    assert event_store.get_stream_version("nobody") == 0
    assert event_store.load_stream("nobody") == []


def test_conditional_write_conflict(event_store: SQLiteEventStore) -> None:
    """Two writers that read the same version: the second one loses"""
    event_store.append("donor-1", 0, [make_event("donor-1", 1)])

    event_store.append("donor-1", 1, [make_event("donor-1", 2)])

    with pytest.raises(StreamVersionConflict) as exc_info:
        event_store.append("donor-1", 1, [make_event("donor-1", 2)])

    assert exc_info.value.stream_id == "donor-1"
    assert exc_info.value.expected_version == 1
    assert exc_info.value.actual_version == 2
    assert event_store.count_events() == 2


def test_command_idempotency(event_store: SQLiteEventStore) -> None:
    """Replaying a command id returns the original events and writes nothing"""
    command_id = "donation-key-7f3a"
    first = event_store.append("donor-1", 0, [make_event("donor-1", 1, command_id)])

    replay = event_store.append("donor-1", 1, [make_event("donor-1", 2, command_id)])

    assert [e.event_id for e in replay] == [e.event_id for e in first]
    assert event_store.get_stream_version("donor-1") == 1
    assert event_store.count_events() == 1


def test_command_id_reused_on_other_stream_is_rejected(event_store: SQLiteEventStore) -> None:
    command_id = "donation-key-7f3a"
    event_store.append("donor-1", 0, [make_event("donor-1", 1, command_id)])

    with pytest.raises(CommandIdempotencyViolation):
        event_store.append("donor-2", 0, [make_event("donor-2", 1, command_id)])


def test_batch_appends_all_streams_atomically(event_store: SQLiteEventStore) -> None:
    """A celebration and its donor move together"""
    command_id = generate_id()
    event_store.append("donor-1", 0, [make_event("donor-1", 1, event_type="DonorRegistered")])

    appended = event_store.append_batch(
        [
            StreamWrite(
                "cel-1",
                0,
                [
                    make_event(
                        "cel-1",
                        1,
                        command_id,
                        event_type="CelebrationCreated",
                        stream_type=StreamType.CELEBRATION,
                    )
                ],
            ),
            StreamWrite("donor-1", 1, [make_event("donor-1", 2, command_id)]),
        ]
    )

    assert len(appended) == 2
    assert event_store.get_stream_version("cel-1") == 1
    assert event_store.get_stream_version("donor-1") == 2


def test_batch_conflict_on_one_stream_writes_nothing(event_store: SQLiteEventStore) -> None:
    """If the donor moved, the celebration is not created either"""
    event_store.append("donor-1", 0, [make_event("donor-1", 1)])
    event_store.append("donor-1", 1, [make_event("donor-1", 2)])

    command_id = generate_id()
    with pytest.raises(StreamVersionConflict):
        event_store.append_batch(
            [
                StreamWrite(
                    "cel-1",
                    0,
                    [make_event("cel-1", 1, command_id, stream_type=StreamType.CELEBRATION)],
                ),
                StreamWrite("donor-1", 1, [make_event("donor-1", 2, command_id)]),
            ]
        )

    assert event_store.get_stream_version("cel-1") == 0
    assert event_store.get_events_by_command_id(command_id) == []


def test_batch_replay_returns_original_events(event_store: SQLiteEventStore) -> None:
    command_id = "donation-key-1"

    def batch(celebration_id: str) -> list[StreamWrite]:
        return [
            StreamWrite(
                celebration_id,
                0,
                [make_event(celebration_id, 1, command_id, stream_type=StreamType.CELEBRATION)],
            ),
            StreamWrite("donor-1", 0, [make_event("donor-1", 1, command_id)]),
        ]

    first = event_store.append_batch(batch("cel-1"))
    # A retried request generates a fresh celebration id; the donor stream matches
    replay = event_store.append_batch(batch("cel-2"))

    assert {e.event_id for e in replay} == {e.event_id for e in first}
    assert event_store.get_stream_version("cel-2") == 0
    assert event_store.count_streams() == 2


def test_append_empty_events_list(event_store: SQLiteEventStore) -> None:
    assert event_store.append("donor-1", 0, []) == []
    assert event_store.count_events() == 0


def test_load_events_after_position(event_store: SQLiteEventStore) -> None:
    """Catch-up reads return only what was appended since a position"""
    for version in range(1, 4):
        event_store.append("donor-1", version - 1, [make_event("donor-1", version)])

    everything = event_store.load_events_after(0)
    assert [e.version for _, e in everything] == [1, 2, 3]

    first_position = everything[0][0]
    rest = event_store.load_events_after(first_position)
    assert [e.version for _, e in rest] == [2, 3]

    assert event_store.load_events_after(everything[-1][0]) == []
    assert len(event_store.load_all_events()) == 3


def test_query_events_with_filters(event_store: SQLiteEventStore) -> None:
    event_store.append("donor-1", 0, [make_event("donor-1", 1, event_type="DonorRegistered")])
    event_store.append(
        "cel-1",
        0,
        [
            make_event(
                "cel-1",
                1,
                event_type="CelebrationCreated",
                stream_type=StreamType.CELEBRATION,
                occurred_at=T0 + timedelta(days=1),
            )
        ],
    )
    event_store.append(
        "cel-1",
        1,
        [
            make_event(
                "cel-1",
                2,
                event_type="CelebrationStatusChanged",
                stream_type=StreamType.CELEBRATION,
                occurred_at=T0 + timedelta(days=5),
            )
        ],
    )

    assert len(event_store.query_events(stream_type="celebration")) == 2
    assert len(event_store.query_events(event_type="DonorRegistered")) == 1
    assert len(event_store.query_events(from_time=T0 + timedelta(days=2))) == 1
    assert len(event_store.query_events(to_time=T0 + timedelta(days=1))) == 2
    assert len(event_store.query_events(limit=1)) == 1
    assert (
        len(
            event_store.query_events(
                stream_type="celebration", event_type="CelebrationStatusChanged"
            )
        )
        == 1
    )


def test_count_operations(event_store: SQLiteEventStore) -> None:
    event_store.append("donor-1", 0, [make_event("donor-1", 1)])
    event_store.append("donor-2", 0, [make_event("donor-2", 1)])
    event_store.append("donor-2", 1, [make_event("donor-2", 2)])

    assert event_store.count_events() == 3
    assert event_store.count_streams() == 2


def test_store_survives_reopen(temp_db) -> None:
    """The ledger is durable across store instances"""
    SQLiteEventStore(temp_db).append("donor-1", 0, [make_event("donor-1", 1)])

    reopened = SQLiteEventStore(temp_db)
    assert reopened.get_stream_version("donor-1") == 1
