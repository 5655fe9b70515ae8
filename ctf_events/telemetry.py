"""Telemetry for command usage, errors and CTF lifecycle transitions."""
from __future__ import annotations

import json
import logging
import os
import sqlite3
import time
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)


class MetricType(Enum):
    """Types of metrics tracked."""
    COMMAND_USAGE = "command_usage"
    ERROR_RATE = "error_rate"
    LIFECYCLE = "lifecycle"
    PARTICIPATION = "participation"
    PERFORMANCE = "performance"


@dataclass
class MetricEvent:
    """Individual metric event."""
    timestamp: float
    metric_type: MetricType
    name: str
    value: float
    tags: Dict[str, str] = field(default_factory=dict)
    metadata: Dict[str, Any] = field(default_factory=dict)


class TelemetryCollector:
    """Collects and stores telemetry data for the bot."""

    def __init__(self, db_path: Optional[Path] = None, *, flush_interval: float = 60.0):
        self.db_path = db_path or Path("telemetry.db")
        self._init_database()
        self._start_time = time.time()
        self._metrics_buffer: List[MetricEvent] = []
        self._flush_interval = flush_interval
        self._last_flush = time.time()

    def _init_database(self):
        with sqlite3.connect(self.db_path) as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS metrics (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    timestamp REAL NOT NULL,
                    metric_type TEXT NOT NULL,
                    name TEXT NOT NULL,
                    value REAL NOT NULL,
                    tags TEXT,
                    metadata TEXT
                )
            """)
            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_metrics_type_time
                ON metrics(metric_type, timestamp DESC)
            """)
            conn.commit()

    def track_command(
        self,
        command_name: str,
        user_id: str,
        guild_id: str,
        success: bool = True,
        duration_ms: Optional[float] = None,
    ):
        """Track slash command or button usage."""
        self.record(
            MetricType.COMMAND_USAGE,
            command_name,
            1.0,
            tags={"user_id": user_id, "guild_id": guild_id, "success": str(success)},
            metadata={"duration_ms": duration_ms} if duration_ms else {},
        )

    def track_error(
        self,
        error_type: str,
        source: Optional[str] = None,
        user_id: Optional[str] = None,
        error_details: Optional[str] = None,
    ):
        """Track errors caught at the interaction boundary."""
        tags = {}
        if source:
            tags["source"] = source
        if user_id:
            tags["user_id"] = user_id
        self.record(
            MetricType.ERROR_RATE,
            error_type,
            1.0,
            tags=tags,
            metadata={"error_details": error_details} if error_details else {},
        )

    def track_lifecycle(
        self,
        transition: str,
        event_slug: str,
        details: Optional[Dict[str, Any]] = None,
    ):
        """Track an event lifecycle transition (created, archived, synced)."""
        self.record(
            MetricType.LIFECYCLE,
            transition,
            1.0,
            tags={"event": event_slug},
            metadata=details or {},
        )

    def track_participation(self, action: str, event_slug: str, user_id: str):
        self.record(
            MetricType.PARTICIPATION,
            action,
            1.0,
            tags={"event": event_slug, "user_id": user_id},
        )

    def track_performance(self, operation: str, duration_ms: float):
        self.record(
            MetricType.PERFORMANCE,
            operation,
            duration_ms,
            metadata={"unit": "milliseconds"},
        )

    def record(
        self,
        metric_type: MetricType,
        name: str,
        value: float,
        tags: Optional[Dict[str, str]] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ):
        """Record a metric event."""
        event = MetricEvent(
            timestamp=time.time(),
            metric_type=metric_type,
            name=name,
            value=value,
            tags=tags or {},
            metadata=metadata or {},
        )
        self._metrics_buffer.append(event)

        if len(self._metrics_buffer) >= 100 or \
           time.time() - self._last_flush > self._flush_interval:
            self.flush()

    def flush(self):
        """Flush buffered metrics to database."""
        if not self._metrics_buffer:
            return

        try:
            with sqlite3.connect(self.db_path) as conn:
                conn.executemany(
                    """
                    INSERT INTO metrics (timestamp, metric_type, name, value, tags, metadata)
                    VALUES (?, ?, ?, ?, ?, ?)
                    """,
                    [
                        (
                            event.timestamp,
                            event.metric_type.value,
                            event.name,
                            event.value,
                            json.dumps(event.tags),
                            json.dumps(event.metadata),
                        )
                        for event in self._metrics_buffer
                    ],
                )
                conn.commit()
        except sqlite3.Error:
            logger.exception("Failed to flush %d metrics", len(self._metrics_buffer))
            return

        logger.debug("Flushed %d metrics to database", len(self._metrics_buffer))
        self._metrics_buffer.clear()
        self._last_flush = time.time()

    def get_command_stats(self, hours: Optional[int] = None) -> Dict[str, Dict[str, Any]]:
        """Get command usage statistics."""
        self.flush()
        query = """
            SELECT
                name,
                COUNT(*),
                AVG(CASE WHEN json_extract(tags, '$.success') = 'True' THEN 1 ELSE 0 END),
                COUNT(DISTINCT json_extract(tags, '$.user_id'))
            FROM metrics
            WHERE metric_type = ?
        """
        params: List[Any] = [MetricType.COMMAND_USAGE.value]
        if hours is not None:
            query += " AND timestamp >= ?"
            params.append(time.time() - hours * 3600)
        query += " GROUP BY name"

        with sqlite3.connect(self.db_path) as conn:
            rows = conn.execute(query, params).fetchall()
        return {
            row[0]: {"usage_count": row[1], "success_rate": row[2], "unique_users": row[3]}
            for row in rows
        }

    def get_error_summary(self, hours: int = 24) -> Dict[str, int]:
        """Get error counts for the last N hours."""
        self.flush()
        with sqlite3.connect(self.db_path) as conn:
            rows = conn.execute(
                """
                SELECT name, COUNT(*) AS error_count
                FROM metrics
                WHERE metric_type = ? AND timestamp >= ?
                GROUP BY name
                ORDER BY error_count DESC
                """,
                [MetricType.ERROR_RATE.value, time.time() - hours * 3600],
            ).fetchall()
        return {row[0]: row[1] for row in rows}

    def get_lifecycle_events(self, hours: int = 24 * 7, limit: int = 20) -> List[Dict[str, Any]]:
        """Return recent lifecycle transitions, newest first."""
        self.flush()
        with sqlite3.connect(self.db_path) as conn:
            rows = conn.execute(
                """
                SELECT name, timestamp, json_extract(tags, '$.event'), metadata
                FROM metrics
                WHERE metric_type = ? AND timestamp >= ?
                ORDER BY timestamp DESC, id DESC
                LIMIT ?
                """,
                [MetricType.LIFECYCLE.value, time.time() - hours * 3600, limit],
            ).fetchall()
        return [
            {
                "transition": row[0],
                "timestamp": datetime.fromtimestamp(row[1]).isoformat(),
                "event": row[2],
                "details": json.loads(row[3]) if row[3] else {},
            }
            for row in rows
        ]

    def generate_report(self) -> Dict[str, Any]:
        """Summarise usage, errors and lifecycle activity."""
        return {
            "generated_at": datetime.now().isoformat(),
            "uptime_seconds": time.time() - self._start_time,
            "command_stats": self.get_command_stats(),
            "errors_24h": self.get_error_summary(24),
            "lifecycle_7d": self.get_lifecycle_events(),
        }

    def cleanup_old_data(self, days_to_keep: int = 30) -> int:
        cutoff_time = time.time() - (days_to_keep * 86400)
        with sqlite3.connect(self.db_path) as conn:
            cursor = conn.execute("DELETE FROM metrics WHERE timestamp < ?", (cutoff_time,))
            deleted = cursor.rowcount
            conn.commit()
        logger.info("Cleaned up %d old metric events", deleted)
        return deleted


_telemetry: Optional[TelemetryCollector] = None


def get_telemetry(db_path: Optional[Path] = None) -> TelemetryCollector:
    """Get or create singleton telemetry collector.

    ``db_path`` only applies to the first call; later calls return the
    existing collector.
    """
    global _telemetry
    if _telemetry is None:
        _telemetry = TelemetryCollector(
            db_path or Path(os.environ.get("CTF_EVENTS_TELEMETRY_DB", "telemetry.db"))
        )
    return _telemetry


class track_duration:
    """Context manager for tracking operation duration."""

    def __init__(self, operation: str, telemetry: Optional[TelemetryCollector] = None):
        self.operation = operation
        self.telemetry = telemetry
        self.start_time = 0.0

    def __enter__(self):
        self.start_time = time.time()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        telemetry = self.telemetry or get_telemetry()
        telemetry.track_performance(self.operation, (time.time() - self.start_time) * 1000)
        if exc_type:
            telemetry.track_error(exc_type.__name__, source=self.operation, error_details=str(exc_val))


__all__ = ["MetricType", "MetricEvent", "TelemetryCollector", "get_telemetry", "track_duration"]
