"""SQLite storage implementation."""

import json
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Protocol, Sequence

import aiosqlite

from ..config import resolve_db_path
from ..logging_config import get_logger
from ..models import DialogueState, Message, MuteReason, Session, TraceEvent

logger = get_logger(__name__)

_SESSION_COLUMNS = """
    contact_id, dialogue_state, pending_field, collected_fields, first_message,
    created_at, last_activity_at, mute_until, mute_reason, blocked_until
"""


def _ts(value: datetime | None) -> str | None:
    """Serialize a timestamp as a sortable UTC ISO string."""
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def _parse_ts(value: str | None) -> datetime | None:
    if not value:
        return None
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _parse_state(contact_id: str, value: str) -> DialogueState | str:
    try:
        return DialogueState(value)
    except ValueError:
        logger.warning("Unknown dialogue state %r stored for %s", value, contact_id)
        return value


def _row_to_session(row) -> Session:
    return Session(
        contact_id=row[0],
        dialogue_state=_parse_state(row[0], row[1]),
        pending_field=row[2],
        collected_fields=json.loads(row[3]) if row[3] else {},
        first_message=row[4] or "",
        created_at=_parse_ts(row[5]),
        last_activity_at=_parse_ts(row[6]),
        mute_until=_parse_ts(row[7]),
        mute_reason=MuteReason(row[8]) if row[8] else None,
        blocked_until=_parse_ts(row[9]),
    )


class IStorage(Protocol):
    """Durable keyed session store plus message log and audit trail."""

    async def init(self) -> None:
        """Initialize database and create tables."""
        ...

    async def close(self) -> None:
        """Close database connection."""
        ...

    # Sessions
    async def get_session(self, contact_id: str) -> Session | None:
        """Get the session for a contact without touching it."""
        ...

    async def get_or_create_session(
        self, contact_id: str, first_message: str, now: datetime
    ) -> tuple[Session, bool]:
        """Return (session, created). Existing sessions get last_activity_at touched."""
        ...

    async def save_session(self, session: Session) -> None:
        """Upsert the full session record."""
        ...

    async def touch_session(self, contact_id: str, at: datetime) -> None:
        """Advance last_activity_at (never moves it backwards)."""
        ...

    async def delete_session(self, contact_id: str) -> bool:
        """Delete one session. Returns True if a row was removed."""
        ...

    async def list_sessions(self, limit: int = 100) -> list[Session]:
        """List sessions, most recently active first."""
        ...

    async def list_excluded_sessions(self, now: datetime) -> list[Session]:
        """Sessions with a mute or block window still in the future."""
        ...

    async def delete_sessions_inactive_since(self, cutoff: datetime) -> int:
        """Delete sessions idle since before cutoff, with their message log."""
        ...

    async def reset_sessions_except_blocked(
        self, now: datetime, skip: Sequence[str] = ()
    ) -> int:
        """Reset every session to INITIAL except opted-out and skipped contacts."""
        ...

    # Message log
    async def save_message(self, message: Message) -> None:
        """Append a message to the log."""
        ...

    async def get_messages(self, contact_id: str, limit: int = 100) -> list[Message]:
        """Latest messages for a contact, oldest first."""
        ...

    # TraceEvents
    async def save_trace_event(self, event: TraceEvent) -> None:
        """Save a trace event."""
        ...

    async def get_trace_events(
        self,
        after: datetime | None = None,
        event_types: list[str] | None = None,
        actor: str | None = None,
        limit: int = 100,
    ) -> list[TraceEvent]:
        """Get trace events with optional filters."""
        ...

    # Lifecycle
    async def clear(self) -> None:
        """Clear all data."""
        ...


class Storage:
    """SQLite storage implementation."""

    def __init__(self, db_path: str | Path | None = None):
        self._db_path = resolve_db_path(db_path)
        self._conn: aiosqlite.Connection | None = None

    async def init(self) -> None:
        """Initialize database and create tables."""
        self._conn = await aiosqlite.connect(self._db_path)

        schema_path = Path(__file__).parent / "schema.sql"
        with open(schema_path, "r", encoding="utf-8") as f:
            schema_sql = f.read()
        await self._conn.executescript(schema_sql)
        await self._conn.commit()

    async def close(self) -> None:
        """Close database connection."""
        if self._conn:
            await self._conn.close()
            self._conn = None

    def _require_conn(self) -> aiosqlite.Connection:
        if not self._conn:
            raise RuntimeError("Storage not initialized")
        return self._conn

    # Sessions
    async def get_session(self, contact_id: str) -> Session | None:
        """Get the session for a contact without touching it."""
        conn = self._require_conn()
        cursor = await conn.execute(
            f"SELECT {_SESSION_COLUMNS} FROM sessions WHERE contact_id = ?",
            (contact_id,),
        )
        row = await cursor.fetchone()
        return _row_to_session(row) if row else None

    async def get_or_create_session(
        self, contact_id: str, first_message: str, now: datetime
    ) -> tuple[Session, bool]:
        """Return (session, created). Existing sessions get last_activity_at touched."""
        conn = self._require_conn()
        cursor = await conn.execute(
            """
            INSERT INTO sessions (
                contact_id, dialogue_state, collected_fields, first_message,
                created_at, last_activity_at
            )
            VALUES (?, ?, '{}', ?, ?, ?)
            ON CONFLICT(contact_id) DO NOTHING
            """,
            (
                contact_id,
                DialogueState.INITIAL.value,
                first_message,
                _ts(now),
                _ts(now),
            ),
        )
        created = cursor.rowcount == 1
        await conn.commit()

        if not created:
            await self.touch_session(contact_id, now)

        session = await self.get_session(contact_id)
        if session is None:
            # Evicted between the insert and the read
            raise RuntimeError(f"Session for {contact_id} disappeared")
        return session, created

    async def save_session(self, session: Session) -> None:
        """Upsert the full session record."""
        conn = self._require_conn()
        state = session.dialogue_state
        await conn.execute(
            f"""
            INSERT INTO sessions ({_SESSION_COLUMNS})
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(contact_id) DO UPDATE SET
                dialogue_state = excluded.dialogue_state,
                pending_field = excluded.pending_field,
                collected_fields = excluded.collected_fields,
                first_message = excluded.first_message,
                last_activity_at = MAX(sessions.last_activity_at, excluded.last_activity_at),
                mute_until = excluded.mute_until,
                mute_reason = excluded.mute_reason,
                blocked_until = excluded.blocked_until
            """,
            (
                session.contact_id,
                state.value if isinstance(state, DialogueState) else state,
                session.pending_field,
                json.dumps(session.collected_fields, ensure_ascii=False),
                session.first_message,
                _ts(session.created_at),
                _ts(session.last_activity_at),
                _ts(session.mute_until),
                session.mute_reason.value if session.mute_reason else None,
                _ts(session.blocked_until),
            ),
        )
        await conn.commit()

    async def touch_session(self, contact_id: str, at: datetime) -> None:
        """Advance last_activity_at (never moves it backwards)."""
        conn = self._require_conn()
        await conn.execute(
            """
            UPDATE sessions
            SET last_activity_at = ?
            WHERE contact_id = ? AND last_activity_at < ?
            """,
            (_ts(at), contact_id, _ts(at)),
        )
        await conn.commit()

    async def delete_session(self, contact_id: str) -> bool:
        """Delete one session. Returns True if a row was removed."""
        conn = self._require_conn()
        cursor = await conn.execute(
            "DELETE FROM sessions WHERE contact_id = ?", (contact_id,)
        )
        await conn.commit()
        return cursor.rowcount > 0

    async def list_sessions(self, limit: int = 100) -> list[Session]:
        """List sessions, most recently active first."""
        conn = self._require_conn()
        cursor = await conn.execute(
            f"""
            SELECT {_SESSION_COLUMNS}
            FROM sessions
            ORDER BY last_activity_at DESC
            LIMIT ?
            """,
            (limit,),
        )
        rows = await cursor.fetchall()
        return [_row_to_session(row) for row in rows]

    async def list_excluded_sessions(self, now: datetime) -> list[Session]:
        """Sessions with a mute or block window still in the future."""
        conn = self._require_conn()
        cursor = await conn.execute(
            f"""
            SELECT {_SESSION_COLUMNS}
            FROM sessions
            WHERE mute_until > ? OR blocked_until > ?
            ORDER BY contact_id ASC
            """,
            (_ts(now), _ts(now)),
        )
        rows = await cursor.fetchall()
        return [_row_to_session(row) for row in rows]

    async def delete_sessions_inactive_since(self, cutoff: datetime) -> int:
        """Delete sessions idle since before cutoff, with their message log.

        Trace events older than cutoff are pruned in the same transaction.
        Returns the number of sessions removed.
        """
        conn = self._require_conn()
        await conn.execute(
            """
            DELETE FROM messages
            WHERE contact_id IN (
                SELECT contact_id FROM sessions WHERE last_activity_at < ?
            )
            """,
            (_ts(cutoff),),
        )
        cursor = await conn.execute(
            "DELETE FROM sessions WHERE last_activity_at < ?",
            (_ts(cutoff),),
        )
        deleted = cursor.rowcount
        await conn.execute(
            "DELETE FROM trace_events WHERE timestamp < ?",
            (_ts(cutoff),),
        )
        await conn.commit()
        return deleted

    async def reset_sessions_except_blocked(
        self, now: datetime, skip: Sequence[str] = ()
    ) -> int:
        """Reset every session to INITIAL except those opted out at `now`.

        Contacts in `skip` are left alone. Expired blocks are cleared along
        the way; live blocks and last_activity_at are left untouched.
        """
        conn = self._require_conn()
        query = """
            UPDATE sessions
            SET dialogue_state = ?,
                pending_field = NULL,
                collected_fields = '{}',
                mute_until = NULL,
                mute_reason = NULL,
                blocked_until = NULL
            WHERE (blocked_until IS NULL OR blocked_until <= ?)
        """
        params: list = [DialogueState.INITIAL.value, _ts(now)]

        if skip:
            placeholders = ",".join("?" * len(skip))
            query += f" AND contact_id NOT IN ({placeholders})"
            params.extend(skip)

        cursor = await conn.execute(query, params)
        await conn.commit()
        return cursor.rowcount

    # Message log
    async def save_message(self, message: Message) -> None:
        """Append a message to the log."""
        conn = self._require_conn()

        # Generate ID if not provided
        if not message.id:
            message.id = str(uuid.uuid4())

        await conn.execute(
            """
            INSERT INTO messages (id, contact_id, direction, origin, content, timestamp)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (
                message.id,
                message.contact_id,
                message.direction,
                message.origin,
                message.content,
                _ts(message.timestamp),
            ),
        )
        await conn.commit()

    async def get_messages(self, contact_id: str, limit: int = 100) -> list[Message]:
        """Latest messages for a contact, oldest first."""
        conn = self._require_conn()
        cursor = await conn.execute(
            """
            SELECT id, contact_id, direction, origin, content, timestamp
            FROM (
                SELECT id, contact_id, direction, origin, content, timestamp, rowid
                FROM messages
                WHERE contact_id = ?
                ORDER BY timestamp DESC, rowid DESC
                LIMIT ?
            )
            ORDER BY timestamp ASC, rowid ASC
            """,
            (contact_id, limit),
        )
        rows = await cursor.fetchall()
        return [
            Message(
                id=row[0],
                contact_id=row[1],
                direction=row[2],
                origin=row[3],
                content=row[4],
                timestamp=_parse_ts(row[5]),
            )
            for row in rows
        ]

    # TraceEvents
    async def save_trace_event(self, event: TraceEvent) -> None:
        """Save a trace event."""
        conn = self._require_conn()

        await conn.execute(
            """
            INSERT INTO trace_events (id, event_type, actor, data, timestamp)
            VALUES (?, ?, ?, ?, ?)
            """,
            (
                event.id or str(uuid.uuid4()),
                event.event_type,
                event.actor,
                json.dumps(event.data, ensure_ascii=False, default=str),
                _ts(event.timestamp),
            ),
        )
        await conn.commit()

    async def get_trace_events(
        self,
        after: datetime | None = None,
        event_types: list[str] | None = None,
        actor: str | None = None,
        limit: int = 100,
    ) -> list[TraceEvent]:
        """Get trace events with optional filters."""
        conn = self._require_conn()

        # Build query dynamically
        conditions = []
        params: list = []

        if after:
            conditions.append("timestamp > ?")
            params.append(_ts(after))
        if event_types:
            placeholders = ",".join("?" * len(event_types))
            conditions.append(f"event_type IN ({placeholders})")
            params.extend(event_types)
        if actor:
            conditions.append("actor = ?")
            params.append(actor)

        where_clause = f"WHERE {' AND '.join(conditions)}" if conditions else ""

        query = f"""
            SELECT id, event_type, actor, data, timestamp
            FROM trace_events
            {where_clause}
            ORDER BY timestamp DESC, rowid DESC
            LIMIT ?
        """
        params.append(limit)

        cursor = await conn.execute(query, params)
        rows = await cursor.fetchall()

        return [
            TraceEvent(
                id=row[0],
                event_type=row[1],
                actor=row[2],
                data=json.loads(row[3]),
                timestamp=_parse_ts(row[4]),
            )
            for row in rows
        ]

    # Lifecycle
    async def clear(self) -> None:
        """Clear all data."""
        conn = self._require_conn()

        for table in ["sessions", "messages", "trace_events"]:
            await conn.execute(f"DELETE FROM {table}")

        await conn.commit()
