"""
Work/Break Timer — the single authoritative work/break state machine.

States: WORK_ACTIVE, WORK_PAUSED, ON_BREAK. Every mutation is persisted as a
whole TimerSnapshot; on process start recover() reconciles the stored
snapshot with the current time before anything else touches the timer.

Transitions never raise for expected conditions. They return a
TransitionResult that is falsy when the current mode rejects the operation.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import asdict, dataclass, replace
from enum import Enum
from typing import Any, Dict, Optional

from ..clock import MINUTE_MS, Clock, now_ms
from ..errors import InvalidTransition, PersistenceFailure, TransitionResult
from ..storage import KeyValueStore

logger = logging.getLogger(__name__)

TIMER_KEY = "timer_snapshot"
DEFAULT_THRESHOLD_MS = 30 * MINUTE_MS
DEFAULT_INACTIVITY_CEILING_MS = 5 * MINUTE_MS


class TimerMode(str, Enum):
    WORK_ACTIVE = "work_active"
    WORK_PAUSED = "work_paused"
    ON_BREAK = "on_break"


@dataclass
class TimerSnapshot:
    mode: TimerMode = TimerMode.WORK_PAUSED
    total_work_time_ms: int = 0
    work_start_timestamp: Optional[int] = None      # set iff WORK_ACTIVE
    break_type: Optional[str] = None                # break_* set iff ON_BREAK
    break_start_timestamp: Optional[int] = None
    break_duration_ms: Optional[int] = None
    last_activity_timestamp: int = 0
    work_time_threshold_ms: int = DEFAULT_THRESHOLD_MS
    auto_paused: bool = False                       # paused by inactivity, not by the user

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["mode"] = self.mode.value
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TimerSnapshot":
        """Build from stored data, normalising fields that contradict the mode."""
        snap = cls(
            mode=TimerMode(data.get("mode", TimerMode.WORK_PAUSED.value)),
            total_work_time_ms=max(0, int(data.get("total_work_time_ms") or 0)),
            work_start_timestamp=_opt_int(data.get("work_start_timestamp")),
            break_type=data.get("break_type"),
            break_start_timestamp=_opt_int(data.get("break_start_timestamp")),
            break_duration_ms=_opt_int(data.get("break_duration_ms")),
            last_activity_timestamp=int(data.get("last_activity_timestamp") or 0),
            work_time_threshold_ms=int(data.get("work_time_threshold_ms") or DEFAULT_THRESHOLD_MS),
            auto_paused=bool(data.get("auto_paused", False)),
        )
        if snap.mode == TimerMode.ON_BREAK and snap.break_start_timestamp is None:
            snap.mode = TimerMode.WORK_PAUSED
        if snap.mode != TimerMode.ON_BREAK:
            snap.break_type = None
            snap.break_start_timestamp = None
            snap.break_duration_ms = None
        if snap.mode != TimerMode.WORK_ACTIVE:
            snap.work_start_timestamp = None
        return snap


@dataclass
class BreakRecord:
    """A finished break, handed to analytics by the owner."""
    break_type: str
    started_at: int
    planned_duration_ms: int
    ended_at: int
    completed: bool                 # False when cancelled early
    work_time_before_ms: int

    @property
    def actual_duration_ms(self) -> int:
        return max(0, self.ended_at - self.started_at)


class RecoveryOutcome(str, Enum):
    FRESH = "fresh"                     # nothing stored
    RESUMED = "resumed"                 # work span continued across the gap
    PAUSED_INACTIVE = "paused_inactive"
    BREAK_EXPIRED = "break_expired"
    BREAK_CONTINUES = "break_continues"
    UNCHANGED = "unchanged"             # was paused


@dataclass
class RecoveryResult:
    snapshot: TimerSnapshot
    outcome: RecoveryOutcome
    expired_break: Optional[BreakRecord] = None


def recover_snapshot(
    snapshot: Optional[TimerSnapshot],
    now: int,
    inactivity_ceiling_ms: int = DEFAULT_INACTIVITY_CEILING_MS,
    default_threshold_ms: int = DEFAULT_THRESHOLD_MS,
) -> RecoveryResult:
    """
    Reconcile a stored snapshot with *now* after the process was suspended
    or restarted. Pure: the input snapshot is not modified.
    """
    if snapshot is None:
        fresh = TimerSnapshot(
            last_activity_timestamp=now,
            work_time_threshold_ms=default_threshold_ms,
        )
        return RecoveryResult(fresh, RecoveryOutcome.FRESH)

    snap = replace(snapshot)
    outcome = RecoveryOutcome.UNCHANGED
    expired: Optional[BreakRecord] = None
    last_activity = snap.last_activity_timestamp or now

    if snap.mode == TimerMode.WORK_ACTIVE:
        start = snap.work_start_timestamp if snap.work_start_timestamp is not None else last_activity
        # elapsed in the current span as of the last observed activity
        last_known_elapsed = max(0, last_activity - start)
        if now - last_activity > inactivity_ceiling_ms:
            snap.total_work_time_ms += last_known_elapsed
            snap.work_start_timestamp = None
            snap.mode = TimerMode.WORK_PAUSED
            snap.auto_paused = True
            outcome = RecoveryOutcome.PAUSED_INACTIVE
        else:
            snap.work_start_timestamp = now - last_known_elapsed
            outcome = RecoveryOutcome.RESUMED

    elif snap.mode == TimerMode.ON_BREAK:
        start = snap.break_start_timestamp or 0
        duration = snap.break_duration_ms or 0
        if now >= start + duration:
            expired = BreakRecord(
                break_type=snap.break_type or "unknown",
                started_at=start,
                planned_duration_ms=duration,
                ended_at=start + duration,
                completed=True,
                work_time_before_ms=snap.total_work_time_ms,
            )
            snap.break_type = None
            snap.break_start_timestamp = None
            snap.break_duration_ms = None
            snap.total_work_time_ms = 0
            snap.work_start_timestamp = now
            snap.mode = TimerMode.WORK_ACTIVE
            snap.auto_paused = False
            outcome = RecoveryOutcome.BREAK_EXPIRED
        else:
            outcome = RecoveryOutcome.BREAK_CONTINUES

    snap.last_activity_timestamp = now
    return RecoveryResult(snap, outcome, expired)


class WorkBreakTimer:
    """
    Usage:
        timer = WorkBreakTimer(store)
        await timer.recover()
        await timer.start_work()
        timer.is_threshold_exceeded()
    """

    def __init__(
        self,
        store: KeyValueStore,
        clock: Clock = now_ms,
        inactivity_ceiling_ms: int = DEFAULT_INACTIVITY_CEILING_MS,
        work_time_threshold_ms: int = DEFAULT_THRESHOLD_MS,
        key: str = TIMER_KEY,
    ):
        self._store = store
        self._clock = clock
        self._key = key
        self.inactivity_ceiling_ms = inactivity_ceiling_ms
        self._state = TimerSnapshot(
            last_activity_timestamp=clock(),
            work_time_threshold_ms=work_time_threshold_ms,
        )
        self._lock = asyncio.Lock()
        self.persistence_ok = True
        self.last_finished_break: Optional[BreakRecord] = None

        # window focus is process-local; it is not part of the snapshot
        self._window_focused = True
        self._focus_lost_at: Optional[int] = None

    # ------------------------------------------------------------------
    # Recovery
    # ------------------------------------------------------------------

    async def recover(self) -> RecoveryResult:
        """Load the stored snapshot and reconcile it. Call once at startup."""
        async with self._lock:
            stored = await self._load()
            result = recover_snapshot(
                stored,
                self._clock(),
                inactivity_ceiling_ms=self.inactivity_ceiling_ms,
                default_threshold_ms=self._state.work_time_threshold_ms,
            )
            self._state = result.snapshot
            if result.expired_break is not None:
                self.last_finished_break = result.expired_break
            await self._persist()
        logger.info("Timer recovered: %s (mode=%s)", result.outcome.value, self._state.mode.value)
        return result

    async def _load(self) -> Optional[TimerSnapshot]:
        try:
            data = await self._store.get(self._key)
        except (PersistenceFailure, OSError) as e:
            logger.warning("Could not read timer snapshot, starting fresh: %s", e)
            return None
        if not data:
            return None
        try:
            return TimerSnapshot.from_dict(data)
        except (ValueError, TypeError, AttributeError) as e:
            logger.warning("Discarding malformed timer snapshot: %s", e)
            return None

    # ------------------------------------------------------------------
    # Work transitions
    # ------------------------------------------------------------------

    async def start_work(self) -> TransitionResult:
        async with self._lock:
            if self._state.mode == TimerMode.ON_BREAK:
                return TransitionResult.failure(InvalidTransition.ALREADY_ON_BREAK)
            if self._state.mode == TimerMode.WORK_ACTIVE:
                return TransitionResult.success()
            self._begin_work(self._clock())
            await self._persist()
        logger.info("Work started")
        return TransitionResult.success()

    async def pause_work(self) -> TransitionResult:
        async with self._lock:
            if self._state.mode != TimerMode.WORK_ACTIVE:
                return TransitionResult.failure(InvalidTransition.NOT_WORKING)
            self._pause_at(self._clock(), auto=False)
            await self._persist()
        logger.info("Work paused at %d ms total", self._state.total_work_time_ms)
        return TransitionResult.success()

    async def resume_work(self) -> TransitionResult:
        async with self._lock:
            if self._state.mode == TimerMode.ON_BREAK:
                return TransitionResult.failure(InvalidTransition.ALREADY_ON_BREAK)
            if self._state.mode != TimerMode.WORK_PAUSED:
                return TransitionResult.failure(InvalidTransition.NOT_PAUSED)
            self._begin_work(self._clock())
            await self._persist()
        logger.info("Work resumed")
        return TransitionResult.success()

    async def reset_work(self) -> TransitionResult:
        async with self._lock:
            if self._state.mode == TimerMode.ON_BREAK:
                return TransitionResult.failure(InvalidTransition.ALREADY_ON_BREAK)
            self._reset(self._clock())
            await self._persist()
        logger.info("Work timer reset")
        return TransitionResult.success()

    # ------------------------------------------------------------------
    # Break transitions
    # ------------------------------------------------------------------

    async def start_break(self, break_type: str, duration_ms: int) -> TransitionResult:
        async with self._lock:
            if self._state.mode == TimerMode.ON_BREAK:
                return TransitionResult.failure(InvalidTransition.BREAK_ALREADY_ACTIVE)
            now = self._clock()
            if self._state.mode == TimerMode.WORK_ACTIVE:
                self._fold_work(now)
            self._state.mode = TimerMode.ON_BREAK
            self._state.break_type = break_type
            self._state.break_start_timestamp = now
            self._state.break_duration_ms = max(0, int(duration_ms))
            self._state.auto_paused = False
            await self._persist()
        logger.info("Started %s break for %d ms", break_type, duration_ms)
        return TransitionResult.success()

    async def end_break(self) -> TransitionResult:
        """Finish the break and start a clean work span at zero."""
        return await self._finish_break(completed=True)

    async def cancel_break(self) -> TransitionResult:
        """Terminate the break early. Same state effect as end_break()."""
        return await self._finish_break(completed=False)

    async def _finish_break(self, completed: bool) -> TransitionResult:
        async with self._lock:
            if self._state.mode != TimerMode.ON_BREAK:
                return TransitionResult.failure(InvalidTransition.NOT_ON_BREAK)
            now = self._clock()
            self.last_finished_break = BreakRecord(
                break_type=self._state.break_type or "unknown",
                started_at=self._state.break_start_timestamp or now,
                planned_duration_ms=self._state.break_duration_ms or 0,
                ended_at=now,
                completed=completed,
                work_time_before_ms=self._state.total_work_time_ms,
            )
            self._state.break_type = None
            self._state.break_start_timestamp = None
            self._state.break_duration_ms = None
            self._reset(now)
            await self._persist()
        logger.info("Break %s, work timer reset", "ended" if completed else "cancelled")
        return TransitionResult.success()

    # ------------------------------------------------------------------
    # Activity and window focus
    # ------------------------------------------------------------------

    async def heartbeat(self) -> None:
        """Periodic tick: note that the process was alive now."""
        async with self._lock:
            self._state.last_activity_timestamp = self._clock()
            await self._persist()

    async def record_activity(self) -> bool:
        """
        User activity observed. Resumes a timer that was paused automatically.
        Returns True if work resumed.
        """
        async with self._lock:
            now = self._clock()
            self._state.last_activity_timestamp = now
            resumed = self._maybe_auto_resume(now)
            await self._persist()
        if resumed:
            logger.info("Work resumed on activity")
        return resumed

    async def on_window_focus_lost(self) -> None:
        async with self._lock:
            now = self._clock()
            self._window_focused = False
            self._focus_lost_at = now
            self._state.last_activity_timestamp = now
            await self._persist()

    async def on_window_focus_gained(self) -> bool:
        async with self._lock:
            now = self._clock()
            self._window_focused = True
            self._focus_lost_at = None
            self._state.last_activity_timestamp = now
            resumed = self._maybe_auto_resume(now)
            await self._persist()
        if resumed:
            logger.info("Work resumed on window focus")
        return resumed

    async def check_inactivity(self) -> bool:
        """
        Pause work once the window has been unfocused past the inactivity
        ceiling. Work already reported stays credited, so the pause folds up
        to now and the current work time never goes backwards.
        """
        async with self._lock:
            if self._state.mode != TimerMode.WORK_ACTIVE or self._window_focused:
                return False
            if self._focus_lost_at is None:
                return False
            now = self._clock()
            if now - self._focus_lost_at < self.inactivity_ceiling_ms:
                return False
            self._pause_at(now, auto=True)
            await self._persist()
        logger.info("Work paused after inactivity")
        return True

    async def set_work_time_threshold_ms(self, threshold_ms: int) -> None:
        async with self._lock:
            self._state.work_time_threshold_ms = int(threshold_ms)
            await self._persist()

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @property
    def mode(self) -> TimerMode:
        return self._state.mode

    @property
    def snapshot(self) -> TimerSnapshot:
        return replace(self._state)

    @property
    def window_focused(self) -> bool:
        return self._window_focused

    def is_on_break(self) -> bool:
        return self._state.mode == TimerMode.ON_BREAK

    def current_work_time_ms(self, now: Optional[int] = None) -> int:
        now = self._clock() if now is None else now
        total = self._state.total_work_time_ms
        if self._state.mode == TimerMode.WORK_ACTIVE and self._state.work_start_timestamp is not None:
            total += max(0, now - self._state.work_start_timestamp)
        return total

    def remaining_break_ms(self, now: Optional[int] = None) -> int:
        if self._state.mode != TimerMode.ON_BREAK:
            return 0
        now = self._clock() if now is None else now
        elapsed = now - (self._state.break_start_timestamp or now)
        return max(0, (self._state.break_duration_ms or 0) - elapsed)

    def is_break_expired(self, now: Optional[int] = None) -> bool:
        return self.is_on_break() and self.remaining_break_ms(now) == 0

    def is_threshold_exceeded(self, now: Optional[int] = None) -> bool:
        return self.current_work_time_ms(now) >= self._state.work_time_threshold_ms

    def status(self) -> Dict[str, Any]:
        now = self._clock()
        s = self._state
        return {
            "mode": s.mode.value,
            "is_work_active": s.mode == TimerMode.WORK_ACTIVE,
            "is_on_break": s.mode == TimerMode.ON_BREAK,
            "break_type": s.break_type,
            "work_start_timestamp": s.work_start_timestamp,
            "current_work_time_ms": self.current_work_time_ms(now),
            "total_work_time_ms": s.total_work_time_ms,
            "work_time_threshold_ms": s.work_time_threshold_ms,
            "is_threshold_exceeded": self.is_threshold_exceeded(now),
            "remaining_break_ms": self.remaining_break_ms(now),
            "last_activity_timestamp": s.last_activity_timestamp,
            "window_focused": self._window_focused,
        }

    # ------------------------------------------------------------------
    # Internal (caller holds the lock)
    # ------------------------------------------------------------------

    def _begin_work(self, now: int) -> None:
        self._state.mode = TimerMode.WORK_ACTIVE
        self._state.work_start_timestamp = now
        self._state.last_activity_timestamp = now
        self._state.auto_paused = False
        # an unfocused window is measured from the start of the new span
        if not self._window_focused:
            self._focus_lost_at = now

    def _reset(self, now: int) -> None:
        self._state.total_work_time_ms = 0
        self._begin_work(now)

    def _fold_work(self, until: int) -> None:
        if self._state.work_start_timestamp is not None:
            self._state.total_work_time_ms += max(0, until - self._state.work_start_timestamp)
        self._state.work_start_timestamp = None

    def _pause_at(self, at: int, auto: bool) -> None:
        self._fold_work(at)
        self._state.mode = TimerMode.WORK_PAUSED
        self._state.auto_paused = auto

    def _maybe_auto_resume(self, now: int) -> bool:
        if (
            self._state.mode == TimerMode.WORK_PAUSED
            and self._state.auto_paused
            and self._window_focused
        ):
            self._begin_work(now)
            return True
        return False

    async def _persist(self) -> bool:
        try:
            await self._store.set(self._key, self._state.to_dict())
        except (PersistenceFailure, OSError) as e:
            if self.persistence_ok:
                logger.warning("Timer snapshot not persisted, continuing in memory: %s", e)
            self.persistence_ok = False
            return False
        self.persistence_ok = True
        return True


def _opt_int(value: Any) -> Optional[int]:
    return None if value is None else int(value)
