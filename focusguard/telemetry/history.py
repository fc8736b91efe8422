"""
Activity History — SQLite store of breaks, reminders and deviations.
Feeds the per-day analytics.
"""

from __future__ import annotations

import asyncio
import json
import logging
import sqlite3
from collections import Counter
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from functools import partial
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional

from ..tracking.focus_tracker import DeviationEvent
from ..tracking.work_timer import BreakRecord

logger = logging.getLogger(__name__)

KIND_BREAK = "break"
KIND_REMINDER = "reminder"
KIND_DEVIATION = "deviation"

DAY_MS = 24 * 3600 * 1000


@dataclass
class HistoryEntry:
    id: Optional[int]
    timestamp: int              # epoch ms
    kind: str                   # break | reminder | deviation
    channel: str                # reminder channel, break type, or "" for deviations
    detail_json: str = "{}"

    @property
    def detail(self) -> Dict[str, Any]:
        return json.loads(self.detail_json or "{}")


@dataclass
class DailyStats:
    """Aggregate statistics for a single calendar day (UTC)."""
    date: str                   # "YYYY-MM-DD"
    breaks_taken: int = 0
    breaks_completed: int = 0
    breaks_cancelled: int = 0
    total_break_minutes: float = 0.0
    reminders_fired: Dict[str, int] = field(default_factory=dict)    # channel → count
    deviations: int = 0
    most_common_break_type: Optional[str] = None


class ActivityHistory:
    """SQLite-backed history store. One short-lived connection per call."""

    def __init__(self, db_path: Path):
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    # ------------------------------------------------------------------
    # Write
    # ------------------------------------------------------------------

    def append(self, entry: HistoryEntry) -> int:
        with self._conn() as conn:
            cur = conn.execute(
                "INSERT INTO history (timestamp, kind, channel, detail_json) VALUES (?, ?, ?, ?)",
                (entry.timestamp, entry.kind, entry.channel, entry.detail_json),
            )
            return cur.lastrowid  # type: ignore[return-value]

    def record_break(self, record: BreakRecord, triggered_by: str = "user") -> int:
        detail = {
            "type": record.break_type,
            "planned_duration_ms": record.planned_duration_ms,
            "actual_duration_ms": record.actual_duration_ms,
            "completed": record.completed,
            "work_time_before_ms": record.work_time_before_ms,
            "triggered_by": triggered_by,
            "started_at": record.started_at,
        }
        return self.append(HistoryEntry(
            id=None, timestamp=record.ended_at, kind=KIND_BREAK,
            channel=record.break_type, detail_json=json.dumps(detail),
        ))

    def record_reminder(self, channel: str, timestamp: int, detail: Optional[Dict[str, Any]] = None) -> int:
        return self.append(HistoryEntry(
            id=None, timestamp=timestamp, kind=KIND_REMINDER,
            channel=channel, detail_json=json.dumps(detail or {}),
        ))

    def record_deviation(self, event: DeviationEvent) -> int:
        return self.append(HistoryEntry(
            id=None, timestamp=event.timestamp, kind=KIND_DEVIATION,
            channel="", detail_json=json.dumps(event.to_dict()),
        ))

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    def query(
        self,
        since: Optional[int] = None,
        until: Optional[int] = None,
        kind: Optional[str] = None,
        limit: int = 500,
    ) -> List[HistoryEntry]:
        clauses = []
        params: list = []

        if since is not None:
            clauses.append("timestamp >= ?")
            params.append(since)
        if until is not None:
            clauses.append("timestamp <= ?")
            params.append(until)
        if kind:
            clauses.append("kind = ?")
            params.append(kind)

        where = ("WHERE " + " AND ".join(clauses)) if clauses else ""
        params.append(limit)

        with self._conn() as conn:
            rows = conn.execute(
                f"SELECT id, timestamp, kind, channel, detail_json "
                f"FROM history {where} ORDER BY timestamp DESC, id DESC LIMIT ?",
                params,
            ).fetchall()

        return [HistoryEntry(*row) for row in rows]

    def get_daily_stats(self, since: int, until: int) -> List[DailyStats]:
        """One DailyStats per UTC calendar day that has any history in range."""
        by_date: Dict[str, DailyStats] = {}
        break_types: Dict[str, Counter] = {}

        for e in self._scan(since, until):
            day = datetime.fromtimestamp(e.timestamp / 1000, tz=timezone.utc).strftime("%Y-%m-%d")
            stats = by_date.setdefault(day, DailyStats(date=day))
            if e.kind == KIND_BREAK:
                detail = e.detail
                stats.breaks_taken += 1
                if detail.get("completed"):
                    stats.breaks_completed += 1
                else:
                    stats.breaks_cancelled += 1
                stats.total_break_minutes += detail.get("actual_duration_ms", 0) / 60_000
                break_types.setdefault(day, Counter())[e.channel] += 1
            elif e.kind == KIND_REMINDER:
                stats.reminders_fired[e.channel] = stats.reminders_fired.get(e.channel, 0) + 1
            elif e.kind == KIND_DEVIATION:
                stats.deviations += 1

        result = []
        for day in sorted(by_date):
            stats = by_date[day]
            stats.total_break_minutes = round(stats.total_break_minutes, 1)
            counts = break_types.get(day)
            if counts:
                stats.most_common_break_type = counts.most_common(1)[0][0]
            result.append(stats)
        return result

    def _scan(self, since: int, until: int) -> Iterator[HistoryEntry]:
        """Every entry in [since, until], oldest first, streamed from the cursor."""
        with self._conn() as conn:
            cur = conn.execute(
                "SELECT id, timestamp, kind, channel, detail_json FROM history "
                "WHERE timestamp >= ? AND timestamp <= ? ORDER BY timestamp, id",
                (since, until),
            )
            for row in cur:
                yield HistoryEntry(*row)

    # ------------------------------------------------------------------
    # Retention
    # ------------------------------------------------------------------

    def purge_older_than(self, cutoff_ms: int) -> int:
        """Delete entries with timestamp < cutoff_ms. Returns the number removed."""
        with self._conn() as conn:
            cur = conn.execute("DELETE FROM history WHERE timestamp < ?", (cutoff_ms,))
            removed = cur.rowcount
        if removed:
            logger.info("Purged %d history entries older than %d", removed, cutoff_ms)
        return removed

    # ------------------------------------------------------------------
    # Async wrappers (blocking sqlite calls run on the default executor)
    # ------------------------------------------------------------------

    async def run(self, fn, *args, **kwargs):
        loop = asyncio.get_event_loop()
        return await loop.run_in_executor(None, partial(fn, *args, **kwargs))

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _init_db(self) -> None:
        with self._conn() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS history (
                    id          INTEGER PRIMARY KEY AUTOINCREMENT,
                    timestamp   INTEGER NOT NULL,
                    kind        TEXT    NOT NULL,
                    channel     TEXT    NOT NULL DEFAULT '',
                    detail_json TEXT    NOT NULL DEFAULT '{}'
                )
                """
            )
            conn.execute("CREATE INDEX IF NOT EXISTS idx_history_ts ON history(timestamp)")

    @contextmanager
    def _conn(self) -> Iterator[sqlite3.Connection]:
        conn = sqlite3.connect(str(self.db_path), check_same_thread=False)
        try:
            yield conn
            conn.commit()
        finally:
            conn.close()
