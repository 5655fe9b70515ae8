"""Durable record of CTF events and their participants."""
from __future__ import annotations

import logging
import sqlite3
from contextlib import closing
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional, Tuple

from .models import CTFEvent, Participant, ParticipantStatus

logger = logging.getLogger(__name__)

_DB_SCHEMA = """
CREATE TABLE IF NOT EXISTS ctf_events (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    discord_event_id INTEGER UNIQUE NOT NULL,
    event_name TEXT NOT NULL,
    event_slug TEXT NOT NULL,
    role_id INTEGER NOT NULL,
    channel_id INTEGER NOT NULL,
    start_time TEXT NOT NULL,
    end_time TEXT NOT NULL,
    is_active INTEGER NOT NULL DEFAULT 1,
    archived_at TEXT,
    created_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_ctf_events_active
    ON ctf_events (is_active, start_time);
CREATE TABLE IF NOT EXISTS event_participants (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    event_id INTEGER NOT NULL,
    user_id INTEGER NOT NULL,
    username TEXT NOT NULL,
    status TEXT NOT NULL DEFAULT 'active' CHECK (status IN ('active', 'left')),
    joined_at TEXT NOT NULL,
    left_at TEXT,
    FOREIGN KEY (event_id) REFERENCES ctf_events (id),
    UNIQUE (event_id, user_id)
);
CREATE INDEX IF NOT EXISTS idx_event_participants_event
    ON event_participants (event_id, status);
"""

_EVENT_COLUMNS = (
    "id, discord_event_id, event_name, event_slug, role_id, channel_id, "
    "start_time, end_time, is_active, archived_at, created_at"
)


def _parse_ts(value: Optional[str]) -> Optional[datetime]:
    if value is None:
        return None
    return datetime.fromisoformat(value)


def _row_to_event(row: Tuple) -> CTFEvent:
    return CTFEvent(
        id=row[0],
        external_id=row[1],
        name=row[2],
        slug=row[3],
        role_id=row[4],
        channel_id=row[5],
        start_time=datetime.fromisoformat(row[6]),
        end_time=datetime.fromisoformat(row[7]),
        is_active=bool(row[8]),
        archived_at=_parse_ts(row[9]),
        created_at=_parse_ts(row[10]),
    )


class EventStore:
    """CRUD gateway over the events database; holds no business rules."""

    def __init__(self, db_path: Path) -> None:
        self._db_path = db_path
        self._ensure_schema()

    @property
    def db_path(self) -> Path:
        return self._db_path

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path)
        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    def _ensure_schema(self) -> None:
        with closing(self._connect()) as conn:
            conn.executescript(_DB_SCHEMA)
            conn.commit()

    # Events ------------------------------------------------------------
    def create_event(self, event: CTFEvent) -> int:
        created_at = event.created_at or datetime.now(timezone.utc)
        with closing(self._connect()) as conn:
            cursor = conn.execute(
                """INSERT INTO ctf_events
                       (discord_event_id, event_name, event_slug, role_id, channel_id,
                        start_time, end_time, is_active, created_at)
                   VALUES (?, ?, ?, ?, ?, ?, ?, 1, ?)""",
                (
                    event.external_id,
                    event.name,
                    event.slug,
                    event.role_id,
                    event.channel_id,
                    event.start_time.isoformat(),
                    event.end_time.isoformat(),
                    created_at.isoformat(),
                ),
            )
            conn.commit()
            event_id = cursor.lastrowid
        logger.debug("Stored event %s as id %s", event.slug, event_id)
        return event_id

    def get_event(self, event_id: int) -> Optional[CTFEvent]:
        with closing(self._connect()) as conn:
            row = conn.execute(
                f"SELECT {_EVENT_COLUMNS} FROM ctf_events WHERE id = ?",
                (event_id,),
            ).fetchone()
        return _row_to_event(row) if row else None

    def get_event_by_external_id(self, external_id: int) -> Optional[CTFEvent]:
        with closing(self._connect()) as conn:
            row = conn.execute(
                f"SELECT {_EVENT_COLUMNS} FROM ctf_events WHERE discord_event_id = ?",
                (external_id,),
            ).fetchone()
        return _row_to_event(row) if row else None

    def list_active_events(self) -> List[CTFEvent]:
        with closing(self._connect()) as conn:
            rows = conn.execute(
                f"SELECT {_EVENT_COLUMNS} FROM ctf_events WHERE is_active = 1 "
                "ORDER BY start_time ASC"
            ).fetchall()
        return [_row_to_event(row) for row in rows]

    def list_events(self, include_archived: bool = True) -> List[CTFEvent]:
        query = f"SELECT {_EVENT_COLUMNS} FROM ctf_events"
        if not include_archived:
            query += " WHERE is_active = 1"
        query += " ORDER BY start_time DESC"
        with closing(self._connect()) as conn:
            rows = conn.execute(query).fetchall()
        return [_row_to_event(row) for row in rows]

    def archive_event(self, event_id: int, archived_at: Optional[datetime] = None) -> None:
        stamp = (archived_at or datetime.now(timezone.utc)).isoformat()
        with closing(self._connect()) as conn:
            conn.execute(
                "UPDATE ctf_events SET is_active = 0, archived_at = ? WHERE id = ?",
                (stamp, event_id),
            )
            conn.commit()

    # Participants ------------------------------------------------------
    def add_or_reactivate_participant(
        self,
        event_id: int,
        user_id: int,
        display_name: str,
        joined_at: Optional[datetime] = None,
    ) -> None:
        """Upsert a participant as active.

        A left participant is reactivated with a fresh ``joined_at``; an
        already-active one keeps its original join time. The display name
        snapshot is always refreshed.
        """

        stamp = (joined_at or datetime.now(timezone.utc)).isoformat()
        with closing(self._connect()) as conn:
            conn.execute(
                """INSERT INTO event_participants (event_id, user_id, username, status, joined_at)
                   VALUES (?, ?, ?, 'active', ?)
                   ON CONFLICT(event_id, user_id) DO UPDATE SET
                       username = excluded.username,
                       joined_at = CASE
                           WHEN event_participants.status = 'left' THEN excluded.joined_at
                           ELSE event_participants.joined_at
                       END,
                       status = 'active',
                       left_at = NULL""",
                (event_id, user_id, display_name, stamp),
            )
            conn.commit()

    def mark_participant_left(
        self, event_id: int, user_id: int, left_at: Optional[datetime] = None
    ) -> bool:
        stamp = (left_at or datetime.now(timezone.utc)).isoformat()
        with closing(self._connect()) as conn:
            cursor = conn.execute(
                """UPDATE event_participants
                   SET status = 'left', left_at = ?
                   WHERE event_id = ? AND user_id = ?""",
                (stamp, event_id, user_id),
            )
            conn.commit()
            return cursor.rowcount > 0

    def list_participants(self, event_id: int, include_left: bool = False) -> List[Participant]:
        query = (
            "SELECT event_id, user_id, username, status, joined_at, left_at "
            "FROM event_participants WHERE event_id = ?"
        )
        if not include_left:
            query += " AND status = 'active'"
        query += " ORDER BY joined_at ASC, id ASC"
        with closing(self._connect()) as conn:
            rows = conn.execute(query, (event_id,)).fetchall()
        return [
            Participant(
                event_id=row[0],
                user_id=row[1],
                display_name=row[2],
                status=ParticipantStatus(row[3]),
                joined_at=datetime.fromisoformat(row[4]),
                left_at=_parse_ts(row[5]),
            )
            for row in rows
        ]


__all__ = ["EventStore"]
