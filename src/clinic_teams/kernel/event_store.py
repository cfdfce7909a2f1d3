"""
SQLite Event Store - Append-only event log with idempotency

The event store is the single source of truth for users, teams and
delegations. It provides:
- Append-only semantics (soft deletes and revocations are new events)
- Multi-stream atomic batches (a team deletion and its cascading delegation
  deactivations commit together or not at all)
- Optimistic locking via per-stream versions
- Idempotency via command_id
"""

import json
import sqlite3
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Iterator

from clinic_teams.kernel.errors import EventStoreError, StreamVersionConflict
from clinic_teams.kernel.events import Event
from clinic_teams.kernel.logging import get_logger
from clinic_teams.kernel.metrics import (
    events_appended_total,
    events_loaded_total,
    stream_version_conflicts_total,
)
from clinic_teams.kernel.retry import retry_on_sqlite_lock

logger = get_logger(__name__)

_EVENT_COLUMNS = (
    "event_id, stream_id, stream_type, version, "
    "command_id, event_type, occurred_at, actor_id, payload_json"
)


class SQLiteEventStore:
    """
    SQLite-based event store

    WAL mode gives crash safety and concurrent readers. Writers take an
    immediate (reserved) lock so the version check and the insert of a batch
    happen under the same lock.

    Schema:
    - events table with an autoincrement position (global append order)
    - Unique constraint: (stream_id, version)
    - Indices: stream_id, event_type, command_id
    """

    def __init__(self, db_path: str | Path) -> None:
        """
        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = Path(db_path)
        self._initialize_schema()

    def _initialize_schema(self) -> None:
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
                "CREATE INDEX IF NOT EXISTS idx_events_stream ON events(stream_id, version)"
            )
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_events_type ON events(event_type)"
            )
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_events_command ON events(command_id)"
            )

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        """
        Open a connection in autocommit mode

        Transactions are opened explicitly with BEGIN IMMEDIATE in
        append_batch; reads need no transaction.
        """
        conn = sqlite3.connect(str(self.db_path), timeout=5.0, isolation_level=None)
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
        Append events to a single stream with optimistic locking

        Args:
            stream_id: Record identifier
            expected_version: Current stream version the caller based its decision on
            events: Events to append (sequential versions)

        Returns:
            The appended events (or the previously stored ones if idempotent)
        """
        return self.append_batch(events, {stream_id: expected_version})

    @retry_on_sqlite_lock()
    def append_batch(
        self,
        events: list[Event],
        expected_versions: dict[str, int],
    ) -> list[Event]:
        """
        Append events spanning one or more streams in a single transaction

        Every stream touched by the batch must appear in expected_versions.
        Streams that were only read may appear too: they are checked the same
        way but receive no events.
        Either every event is written or none is.

        Args:
            events: Events to append, in order
            expected_versions: stream_id -> version the caller read

        Returns:
            The appended events (or the previously stored ones if idempotent)

        Raises:
            StreamVersionConflict: If any stream moved since it was read
            EventStoreError: On malformed batches or database errors
        """
        if not events:
            return []

        missing = {e.stream_id for e in events} - set(expected_versions)
        if missing:
            raise EventStoreError(
                f"No expected version supplied for streams: {sorted(missing)}"
            )

        # Same command already processed for these streams - return stored events
        command_id = events[0].command_id
        touched = {e.stream_id for e in events}
        existing = [
            e for e in self._get_events_by_command_id(command_id) if e.stream_id in touched
        ]
        if existing:
            logger.debug("Idempotent append - returning stored events", command_id=command_id)
            return existing

        with self._connect() as conn:
            try:
                conn.execute("BEGIN IMMEDIATE")
                for stream_id, expected in expected_versions.items():
                    current = self._get_stream_version(conn, stream_id)
                    if current != expected:
                        stream_type = next(
                            (e.stream_type for e in events if e.stream_id == stream_id),
                            "unknown",
                        )
                        stream_version_conflicts_total.labels(stream_type=stream_type).inc()
                        raise StreamVersionConflict(stream_id, expected, current)

                for event in events:
                    conn.execute(
                        f"INSERT INTO events ({_EVENT_COLUMNS}) "
                        "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
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
                conn.execute("COMMIT")

            except StreamVersionConflict:
                conn.execute("ROLLBACK")
                raise

            except sqlite3.IntegrityError as e:
                conn.execute("ROLLBACK")
                raise EventStoreError(f"Failed to append events: {e}") from e

            except sqlite3.OperationalError:
                # Lock contention - let the retry decorator back off and try again
                if conn.in_transaction:
                    conn.execute("ROLLBACK")
                raise

        for event in events:
            events_appended_total.labels(
                stream_type=event.stream_type, event_type=event.event_type
            ).inc()
        return events

    def load_stream(self, stream_id: str) -> list[Event]:
        """Load all events for one record in version order"""
        with self._connect() as conn:
            cursor = conn.execute(
                f"SELECT {_EVENT_COLUMNS} FROM events WHERE stream_id = ? ORDER BY version ASC",
                (stream_id,),
            )
            events = [self._row_to_event(row) for row in cursor.fetchall()]
        if events:
            events_loaded_total.labels(stream_type=events[0].stream_type).inc(len(events))
        return events

    def load_all_events(self, limit: int | None = None) -> list[Event]:
        """
        Load every event in append order (for projection rebuilding)

        Args:
            limit: Maximum number of events to return, or None for all
        """
        query = f"SELECT {_EVENT_COLUMNS} FROM events ORDER BY position ASC"
        params: tuple = ()
        if limit:
            query += " LIMIT ?"
            params = (limit,)
        with self._connect() as conn:
            events = [self._row_to_event(row) for row in conn.execute(query, params)]
        for event in events:
            events_loaded_total.labels(stream_type=event.stream_type).inc()
        return events

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
        Query events by type and time range, in append order

        Args:
            stream_type: "user", "team" or "delegation"
            event_type: e.g. "DelegationRevoked"
            from_time: Events at or after this time
            to_time: Events at or before this time
            limit: Maximum number of events
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
            return [self._row_to_event(row) for row in conn.execute(query, params)]

    def get_stream_version(self, stream_id: str) -> int:
        """Current version of a stream (0 if it does not exist)"""
        with self._connect() as conn:
            return self._get_stream_version(conn, stream_id)

    def _get_stream_version(self, conn: sqlite3.Connection, stream_id: str) -> int:
        row = conn.execute(
            "SELECT MAX(version) FROM events WHERE stream_id = ?",
            (stream_id,),
        ).fetchone()
        return row[0] if row[0] is not None else 0

    def _get_events_by_command_id(self, command_id: str) -> list[Event]:
        with self._connect() as conn:
            cursor = conn.execute(
                f"SELECT {_EVENT_COLUMNS} FROM events WHERE command_id = ? ORDER BY position ASC",
                (command_id,),
            )
            return [self._row_to_event(row) for row in cursor.fetchall()]

    def _row_to_event(self, row: sqlite3.Row) -> Event:
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
        """Total number of events in store"""
        with self._connect() as conn:
            return conn.execute("SELECT COUNT(*) FROM events").fetchone()[0]

    def count_streams(self) -> int:
        """Total number of distinct records"""
        with self._connect() as conn:
            return conn.execute("SELECT COUNT(DISTINCT stream_id) FROM events").fetchone()[0]
