"""
SQLite Event Store - Append-only donation ledger with idempotency

The event store is the source of truth for donors and celebrations. It provides:
- Append-only semantics (events never modified or deleted)
- Idempotency via command_id (same donation key = same events)
- Conditional writes via stream versioning, checked under a write lock
- Multi-stream batches so a celebration and its donor aggregate move together
"""

import json
import sqlite3
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Iterator

from celebration_engine.kernel.errors import (
    CommandIdempotencyViolation,
    EventStoreError,
    StreamVersionConflict,
)
from celebration_engine.kernel.events import Event
from celebration_engine.kernel.logging import get_logger
from celebration_engine.kernel.metrics import (
    events_appended_total,
    events_loaded_total,
    stream_version_conflicts_total,
)
from celebration_engine.kernel.retry import retry_on_sqlite_lock

logger = get_logger(__name__)

_EVENT_COLUMNS = """
    position, event_id, stream_id, stream_type, version,
    command_id, event_type, occurred_at, actor_id, payload_json
"""


@dataclass(frozen=True)
class StreamWrite:
    """Events for one stream plus the version the writer last saw"""

    stream_id: str
    expected_version: int
    events: list[Event]


class SQLiteEventStore:
    """
    SQLite-based event store with append-only semantics

    Uses WAL mode for crash safety and concurrent readers. Writers take
    the database write lock (BEGIN IMMEDIATE) before checking stream
    versions, so the check and the insert are one atomic step across
    processes.

    Schema:
    - events table: append-only event log with a global position
    - Unique constraints: event_id, (stream_id, version)
    - Indices: stream_id, event_type, occurred_at, command_id
    """

    def __init__(self, db_path: str | Path) -> None:
        """
        Initialize event store with SQLite database

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = Path(db_path)
        self._initialize_schema()

    def _initialize_schema(self) -> None:
        """Create tables and indices if they don't exist"""
        with self._connect() as conn:
            conn.execute("PRAGMA journal_mode=WAL")
            conn.execute("PRAGMA synchronous=NORMAL")

            conn.execute("""
                CREATE TABLE IF NOT EXISTS events (
                    position INTEGER PRIMARY KEY AUTOINCREMENT,
                    event_id TEXT NOT NULL UNIQUE,
                    stream_id TEXT NOT NULL,
                    stream_type TEXT NOT NULL,
                    version INTEGER NOT NULL,
                    command_id TEXT NOT NULL,
                    event_type TEXT NOT NULL,
                    occurred_at TEXT NOT NULL,
                    actor_id TEXT,
                    payload_json TEXT NOT NULL,

                    UNIQUE(stream_id, version)
                )
            """)

            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_events_stream "
                "ON events(stream_id, version)"
            )
            conn.execute("CREATE INDEX IF NOT EXISTS idx_events_type ON events(event_type)")
            conn.execute("CREATE INDEX IF NOT EXISTS idx_events_time ON events(occurred_at)")
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_events_command ON events(command_id)"
            )

            conn.commit()

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        """
        Context manager for database connections

        Ensures connections are properly closed; callers commit or roll back.
        """
        conn = sqlite3.connect(str(self.db_path), timeout=5.0)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
        finally:
            conn.close()

    def append(
        self,
        stream_id: str,
        expected_version: int,
        events: list[Event],
    ) -> list[Event]:
        """
        Append events to a single stream with a conditional version check

        Args:
            stream_id: Aggregate root identifier
            expected_version: Stream version the caller based its decision on
            events: Events to append (sequential versions)

        Returns:
            The appended events, or the original ones on an idempotent replay

        Raises:
            StreamVersionConflict: If the stream moved since the caller read it
            EventStoreError: On other database errors
        """
        return self.append_batch([StreamWrite(stream_id, expected_version, events)])

    @retry_on_sqlite_lock()
    def append_batch(self, writes: list[StreamWrite]) -> list[Event]:
        """
        Append events to several streams in one transaction

        Every stream's expected version is checked after the write lock is
        taken, so either all streams move together or none do.

        Idempotency: if the command id of the first event was already
        recorded on any stream in the batch, nothing is written and the
        originally recorded events for that command are returned.

        Args:
            writes: One StreamWrite per stream

        Returns:
            All events in the batch (or the originals on replay)

        Raises:
            StreamVersionConflict: If any stream moved since it was read
            CommandIdempotencyViolation: If the command id belongs to other streams
            EventStoreError: On other database errors
        """
        all_events = [event for write in writes for event in write.events]
        if not all_events:
            return []

        command_id = all_events[0].command_id
        stream_ids = {write.stream_id for write in writes}

        with self._connect() as conn:
            try:
                conn.execute("BEGIN IMMEDIATE")

                existing = self._events_by_command_id(conn, command_id)
                if existing:
                    conn.rollback()
                    if any(e.stream_id in stream_ids for e in existing):
                        logger.info(
                            "Idempotent replay detected",
                            command_id=command_id,
                            existing_events=len(existing),
                        )
                        return existing
                    raise CommandIdempotencyViolation(command_id)

                for write in writes:
                    current = self._get_stream_version(conn, write.stream_id)
                    if current != write.expected_version:
                        raise StreamVersionConflict(
                            write.stream_id, write.expected_version, current
                        )

                for event in all_events:
                    conn.execute(
                        """
                        INSERT INTO events (
                            event_id, stream_id, stream_type, version,
                            command_id, event_type, occurred_at, actor_id, payload_json
                        ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                        (
                            event.event_id,
                            event.stream_id,
                            event.stream_type,
                            event.version,
                            event.command_id,
                            event.event_type,
                            event.occurred_at.isoformat(),
                            event.actor_id,
                            json.dumps(event.payload),
                        ),
                    )

                conn.commit()

            except StreamVersionConflict as e:
                conn.rollback()
                stream_type = next(
                    (ev.stream_type for ev in all_events if ev.stream_id == e.stream_id),
                    "unknown",
                )
                stream_version_conflicts_total.labels(stream_type=stream_type).inc()
                raise

            except CommandIdempotencyViolation:
                raise

            except sqlite3.IntegrityError as e:
                conn.rollback()
                error_msg = str(e).lower()
                if "stream_id" in error_msg and "version" in error_msg:
                    write = writes[0]
                    raise StreamVersionConflict(
                        write.stream_id,
                        write.expected_version,
                        self._get_stream_version(conn, write.stream_id),
                    ) from e
                raise EventStoreError(f"Failed to append events: {e}") from e

            except sqlite3.OperationalError:
                conn.rollback()
                raise

            except Exception as e:
                conn.rollback()
                raise EventStoreError(f"Unexpected error appending events: {e}") from e

        for event in all_events:
            events_appended_total.labels(
                stream_type=event.stream_type, event_type=event.event_type
            ).inc()
        return all_events

    def load_stream(self, stream_id: str) -> list[Event]:
        """
        Load all events for a stream in version order

        Args:
            stream_id: Aggregate root identifier

        Returns:
            List of events in version order (empty if stream doesn't exist)
        """
        with self._connect() as conn:
            cursor = conn.execute(
                f"SELECT {_EVENT_COLUMNS} FROM events WHERE stream_id = ? ORDER BY version ASC",
                (stream_id,),
            )
            events = [self._row_to_event(row) for row in cursor.fetchall()]
        if events:
            events_loaded_total.labels(stream_type=events[0].stream_type).inc(len(events))
        return events

    def load_events_after(
        self, position: int = 0, limit: int | None = None
    ) -> list[tuple[int, Event]]:
        """
        Load events in log order after a global position (exclusive)

        Used to build projections and to catch them up before a decision.

        Returns:
            (position, event) pairs in append order
        """
        query = f"SELECT {_EVENT_COLUMNS} FROM events WHERE position > ? ORDER BY position ASC"
        params: list = [position]
        if limit:
            query += " LIMIT ?"
            params.append(limit)
        with self._connect() as conn:
            cursor = conn.execute(query, params)
            return [(row["position"], self._row_to_event(row)) for row in cursor.fetchall()]

    def load_all_events(self) -> list[Event]:
        """Load every event in append order (for projection rebuilding)"""
        return [event for _, event in self.load_events_after(0)]

    def query_events(
        self,
        *,
        stream_type: str | None = None,
        event_type: str | None = None,
        from_time: datetime | None = None,
        to_time: datetime | None = None,
        limit: int | None = None,
    ) -> list[Event]:
        """
        Query events by various criteria

        Args:
            stream_type: Filter by stream type (e.g., "donor", "celebration")
            event_type: Filter by event type (e.g., "CelebrationStatusChanged")
            from_time: Events at or after this time
            to_time: Events at or before this time
            limit: Maximum number of events to return

        Returns:
            List of matching events in append order
        """
        conditions = []
        params: list = []

        if stream_type:
            conditions.append("stream_type = ?")
            params.append(stream_type)
        if event_type:
            conditions.append("event_type = ?")
            params.append(event_type)
        if from_time:
            conditions.append("occurred_at >= ?")
            params.append(from_time.isoformat())
        if to_time:
            conditions.append("occurred_at <= ?")
            params.append(to_time.isoformat())

        where_clause = " AND ".join(conditions) if conditions else "1=1"
        query = f"SELECT {_EVENT_COLUMNS} FROM events WHERE {where_clause} ORDER BY position ASC"
        if limit:
            query += " LIMIT ?"
            params.append(limit)

        with self._connect() as conn:
            cursor = conn.execute(query, params)
            return [self._row_to_event(row) for row in cursor.fetchall()]

    def get_events_by_command_id(self, command_id: str) -> list[Event]:
        """Get events recorded for a command (idempotency lookups)"""
        with self._connect() as conn:
            return self._events_by_command_id(conn, command_id)

    def get_stream_version(self, stream_id: str) -> int:
        """
        Get current version of a stream

        Returns:
            Current stream version (0 if stream doesn't exist)
        """
        with self._connect() as conn:
            return self._get_stream_version(conn, stream_id)

    def _get_stream_version(self, conn: sqlite3.Connection, stream_id: str) -> int:
        cursor = conn.execute(
            "SELECT MAX(version) FROM events WHERE stream_id = ?",
            (stream_id,),
        )
        row = cursor.fetchone()
        return row[0] if row[0] is not None else 0

    def _events_by_command_id(self, conn: sqlite3.Connection, command_id: str) -> list[Event]:
        cursor = conn.execute(
            f"SELECT {_EVENT_COLUMNS} FROM events WHERE command_id = ? ORDER BY position ASC",
            (command_id,),
        )
        return [self._row_to_event(row) for row in cursor.fetchall()]

    def _row_to_event(self, row: sqlite3.Row) -> Event:
        """Convert SQLite row to Event object"""
        return Event(
            event_id=row["event_id"],
            stream_id=row["stream_id"],
            stream_type=row["stream_type"],
            version=row["version"],
            command_id=row["command_id"],
            event_type=row["event_type"],
            occurred_at=datetime.fromisoformat(row["occurred_at"]),
            actor_id=row["actor_id"],
            payload=json.loads(row["payload_json"]),
        )

    def count_events(self) -> int:
        """Get total number of events in store"""
        with self._connect() as conn:
            return conn.execute("SELECT COUNT(*) FROM events").fetchone()[0]

    def count_streams(self) -> int:
        """Get total number of distinct streams"""
        with self._connect() as conn:
            return conn.execute("SELECT COUNT(DISTINCT stream_id) FROM events").fetchone()[0]
