"""
Focus Deviation Tracker — watches tab activations against the user's chosen
focus target and records confirmed deviations.

A switch away from the target starts a short debounce. Coming back before it
elapses cancels it; otherwise one DeviationEvent is appended to a bounded
log and the session counter goes up. At most one debounce is pending per
tracker; a new off-target activation replaces the previous one.

The debounce runs as an asyncio task, but check_pending() confirms an
overdue deviation too, so a suspended process catches up on the next tick.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections import deque
from dataclasses import asdict, dataclass
from typing import Any, Awaitable, Callable, Deque, Dict, List, Optional
from urllib.parse import urlparse

from ..clock import Clock, now_ms
from ..errors import PersistenceFailure
from ..storage import KeyValueStore

logger = logging.getLogger(__name__)

FOCUS_KEY = "focus_tracker"
DEFAULT_DEBOUNCE_MS = 3000
DEFAULT_HISTORY_LIMIT = 50


@dataclass(frozen=True)
class FocusTarget:
    id: str
    descriptor: str = ""        # usually the tab URL

    @property
    def host(self) -> Optional[str]:
        return normalize_host(self.descriptor)

    def matches(self, other: Optional["FocusTarget"]) -> bool:
        """Same logical identity, or the same normalised host for URLs."""
        if other is None:
            return False
        if self.id and self.id == other.id:
            return True
        mine, theirs = self.host, other.host
        if mine and theirs:
            return mine == theirs
        return bool(self.descriptor) and self.descriptor == other.descriptor


@dataclass
class DeviationEvent:
    from_target: str
    to_target: str
    timestamp: int

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class _PendingDeviation:
    to_target: FocusTarget
    started_at: int


def normalize_host(descriptor: str) -> Optional[str]:
    if not descriptor or "://" not in descriptor:
        return None
    try:
        host = (urlparse(descriptor).hostname or "").lower()
    except ValueError:
        return None
    if host.startswith("www."):
        host = host[4:]
    return host or None


class FocusDeviationTracker:

    def __init__(
        self,
        store: KeyValueStore,
        clock: Clock = now_ms,
        debounce_ms: int = DEFAULT_DEBOUNCE_MS,
        history_limit: int = DEFAULT_HISTORY_LIMIT,
        key: str = FOCUS_KEY,
    ):
        self._store = store
        self._clock = clock
        self._key = key
        self.debounce_ms = debounce_ms
        self._target: Optional[FocusTarget] = None
        self._current: Optional[FocusTarget] = None
        self._events: Deque[DeviationEvent] = deque(maxlen=history_limit)
        self._session_count = 0
        self._total_count = 0
        self._pending: Optional[_PendingDeviation] = None
        self._timer_task: Optional[asyncio.Task] = None
        self._lock = asyncio.Lock()
        self._listeners: List[Callable[[DeviationEvent], Awaitable[None]]] = []
        self.persistence_ok = True

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    async def load(self) -> None:
        try:
            data = await self._store.get(self._key)
        except (PersistenceFailure, OSError) as e:
            logger.warning("Could not read focus tracker state: %s", e)
            return
        if not data:
            return
        try:
            target = data.get("target")
            self._target = FocusTarget(**target) if target else None
            self._session_count = int(data.get("session_deviation_count", 0))
            self._total_count = int(data.get("total_deviation_count", 0))
            self._events.clear()
            for e in data.get("recent_events", []):
                self._events.append(DeviationEvent(**e))
        except (TypeError, ValueError, AttributeError) as e:
            logger.warning("Discarding malformed focus tracker state: %s", e)
            self._reset_all()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "target": asdict(self._target) if self._target else None,
            "session_deviation_count": self._session_count,
            "total_deviation_count": self._total_count,
            "recent_events": [e.to_dict() for e in self._events],
        }

    async def _persist(self) -> bool:
        try:
            await self._store.set(self._key, self.to_dict())
        except (PersistenceFailure, OSError) as e:
            if self.persistence_ok:
                logger.warning("Focus tracker state not persisted: %s", e)
            self.persistence_ok = False
            return False
        self.persistence_ok = True
        return True

    # ------------------------------------------------------------------
    # Target management
    # ------------------------------------------------------------------

    async def set_focus_target(self, target: FocusTarget) -> None:
        """New target, fresh session: session counter and recent log are cleared."""
        async with self._lock:
            self._cancel_pending()
            self._target = target
            self._current = target
            self._session_count = 0
            self._events.clear()
            await self._persist()
        logger.info("Focus target set: %s", target.host or target.id)

    async def clear_focus_target(self) -> None:
        async with self._lock:
            self._cancel_pending()
            self._reset_all()
            await self._persist()
        logger.info("Focus target cleared")

    def _reset_all(self) -> None:
        self._target = None
        self._current = None
        self._session_count = 0
        self._total_count = 0
        self._events.clear()

    # ------------------------------------------------------------------
    # Activity
    # ------------------------------------------------------------------

    async def on_activity_observed(self, current: FocusTarget, timestamp: Optional[int] = None) -> None:
        timestamp = self._clock() if timestamp is None else timestamp
        async with self._lock:
            self._current = current
            if self._target is None:
                return
            if self._target.matches(current):
                if self._pending is not None:
                    logger.debug("Returned to focus within debounce")
                self._cancel_pending()
                return
            self._cancel_pending()
            self._pending = _PendingDeviation(to_target=current, started_at=timestamp)
            self._timer_task = self._schedule_confirmation(self._pending)

    def _schedule_confirmation(self, pending: _PendingDeviation) -> Optional[asyncio.Task]:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return None
        return loop.create_task(self._confirm_after_debounce(pending))

    async def _confirm_after_debounce(self, pending: _PendingDeviation) -> None:
        await asyncio.sleep(self.debounce_ms / 1000.0)
        async with self._lock:
            if self._pending is not pending:
                return
            self._timer_task = None     # this task is finishing; nothing left to cancel
            await self._confirm(pending.started_at + self.debounce_ms)

    async def check_pending(self, now: Optional[int] = None) -> bool:
        """Confirm a pending deviation whose debounce has elapsed. True if recorded."""
        now = self._clock() if now is None else now
        async with self._lock:
            pending = self._pending
            if pending is None or now - pending.started_at < self.debounce_ms:
                return False
            self._cancel_pending()
            self._pending = pending
            await self._confirm(now)
            return True

    async def _confirm(self, timestamp: int) -> None:
        pending = self._pending
        self._pending = None
        if pending is None or self._target is None:
            return
        event = DeviationEvent(
            from_target=self._target.descriptor or self._target.id,
            to_target=pending.to_target.descriptor or pending.to_target.id,
            timestamp=timestamp,
        )
        self._events.append(event)
        self._session_count += 1
        self._total_count += 1
        await self._persist()
        logger.info("Deviation recorded (%d this session)", self._session_count)
        for listener in self._listeners:
            try:
                await listener(event)
            except Exception:
                logger.exception("Deviation listener failed")

    def _cancel_pending(self) -> None:
        self._pending = None
        task, self._timer_task = self._timer_task, None
        if task is not None and not task.done():
            task.cancel()

    def register_listener(self, fn: Callable[[DeviationEvent], Awaitable[None]]) -> None:
        """Register an async callback(event) run after each confirmed deviation.
        It runs under the tracker lock and must not call back into async tracker methods."""
        self._listeners.append(fn)

    async def shutdown(self) -> None:
        task = self._timer_task
        self._cancel_pending()
        if task is not None:
            with contextlib.suppress(asyncio.CancelledError):
                await task

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @property
    def target(self) -> Optional[FocusTarget]:
        return self._target

    @property
    def has_pending(self) -> bool:
        return self._pending is not None

    def is_on_focus(self) -> bool:
        if self._target is None:
            return False
        # nothing observed since the target was set: assume still on it
        return self._current is None or self._target.matches(self._current)

    def get_deviation_snapshot(self) -> Dict[str, Any]:
        return {
            "target": asdict(self._target) if self._target else None,
            "is_on_focus": self.is_on_focus(),
            "session_deviation_count": self._session_count,
            "total_deviation_count": self._total_count,
            "recent_events": [e.to_dict() for e in self._events],
            "pending": self._pending is not None,
        }
