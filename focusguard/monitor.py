"""
Focus Monitor — the owning orchestrator.

Constructs the timer, the deviation tracker and one reminder scheduler per
channel, and wires them together with explicit calls:

    activity events ──► WorkBreakTimer / FocusDeviationTracker
    periodic tick   ──► break expiry, break reminder, distraction reminder
    fired decision  ──► NotificationOutbox ──► (external display layer)
    user action     ──► handle_action() / dismiss_notification()

None of the components know about each other; everything crosses through
here. One FocusMonitor per app instance, no module-level state.
"""

from __future__ import annotations

import asyncio
import logging
import sqlite3
from typing import Any, Dict, List, Optional

from .actions.notifications import DISTRACTION_DISPLAY_MS, Notification, NotificationOutbox
from .clock import MINUTE_MS, Clock, now_ms
from .errors import InvalidTransition, PersistenceFailure, TransitionResult
from .router import messages
from .router.reminder_scheduler import (
    BREAK_CHANNEL,
    CHANNELS,
    DISTRACTION_CHANNEL,
    AdaptiveReminderScheduler,
    ReminderState,
    build_reminder_config,
)
from .settings import MonitorSettings, SettingsStore
from .storage import KeyValueStore
from .telemetry.activity import ActivityEvent, ActivityKind
from .telemetry.history import DAY_MS, ActivityHistory
from .tracking.focus_tracker import (
    DEFAULT_DEBOUNCE_MS,
    DEFAULT_HISTORY_LIMIT,
    DeviationEvent,
    FocusDeviationTracker,
    FocusTarget,
)
from .tracking.work_timer import (
    DEFAULT_INACTIVITY_CEILING_MS,
    BreakRecord,
    RecoveryOutcome,
    RecoveryResult,
    TimerMode,
    WorkBreakTimer,
)

logger = logging.getLogger(__name__)

KIND_BREAK_REMINDER = "break_reminder"
KIND_BREAK_COMPLETE = "break_complete"
KIND_DISTRACTION = "distraction_reminder"

_RETURN_TO_FOCUS = "return_to_focus"
_TAKE_BREAK = "take_break"
_DISMISS = "dismiss"

DEFAULT_RETENTION_DAYS = 90


class UnknownAction(ValueError):
    pass


def reminder_key(channel: str) -> str:
    return f"reminder_state:{channel}"


class FocusMonitor:
    """
    Usage:
        monitor = FocusMonitor(store, SettingsStore(path), history)
        await monitor.start()
        await monitor.on_activity(event)
        await monitor.tick()
    """

    def __init__(
        self,
        store: KeyValueStore,
        settings_store: SettingsStore,
        history: Optional[ActivityHistory] = None,
        clock: Clock = now_ms,
        inactivity_ceiling_ms: int = DEFAULT_INACTIVITY_CEILING_MS,
        debounce_ms: int = DEFAULT_DEBOUNCE_MS,
        deviation_history_limit: int = DEFAULT_HISTORY_LIMIT,
        history_retention_days: int = DEFAULT_RETENTION_DAYS,
    ):
        self._store = store
        self._clock = clock
        self.settings_store = settings_store
        self.history = history
        settings = settings_store.get()

        self.timer = WorkBreakTimer(
            store,
            clock=clock,
            inactivity_ceiling_ms=inactivity_ceiling_ms,
            work_time_threshold_ms=settings.work_time_threshold_ms,
        )
        self.tracker = FocusDeviationTracker(
            store, clock=clock, debounce_ms=debounce_ms, history_limit=deviation_history_limit,
        )
        self.tracker.register_listener(self._on_deviation)
        self.schedulers: Dict[str, AdaptiveReminderScheduler] = {
            ch: AdaptiveReminderScheduler(ch, build_reminder_config(settings, ch)) for ch in CHANNELS
        }
        self.outbox = NotificationOutbox()

        self._settings = settings
        self._channels_persist_ok: Dict[str, bool] = {ch: True for ch in CHANNELS}
        self._break_trigger = "user"
        self._tick_lock = asyncio.Lock()
        self.last_recovery: Optional[RecoveryResult] = None
        self.history_retention_ms = history_retention_days * DAY_MS
        self._last_purge_at: Optional[int] = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> RecoveryResult:
        """Recover persisted state. Must run before any other operation."""
        result = await self.timer.recover()
        self.last_recovery = result
        if result.expired_break is not None:
            await self._record_break(result.expired_break, "recovery")
        if result.outcome == RecoveryOutcome.FRESH:
            await self.timer.start_work()

        await self.tracker.load()
        for ch in CHANNELS:
            await self._load_channel(ch)
        await self.timer.set_work_time_threshold_ms(self._settings.work_time_threshold_ms)
        logger.info("Monitor started (%s)", result.outcome.value)
        return result

    async def shutdown(self) -> None:
        await self.tracker.shutdown()

    def now(self) -> int:
        return self._clock()

    @property
    def settings(self) -> MonitorSettings:
        return self._settings

    @property
    def persistence_ok(self) -> bool:
        return (
            self.timer.persistence_ok
            and self.tracker.persistence_ok
            and all(self._channels_persist_ok.values())
        )

    # ------------------------------------------------------------------
    # Activity ingestion
    # ------------------------------------------------------------------

    async def on_activity(self, event: ActivityEvent) -> None:
        if event.kind == ActivityKind.TICK:
            await self.tick()
        elif event.kind == ActivityKind.WINDOW_FOCUS_LOST:
            await self.timer.on_window_focus_lost()
        elif event.kind == ActivityKind.WINDOW_FOCUS_GAINED:
            await self.timer.on_window_focus_gained()
        elif event.kind == ActivityKind.TAB_REMOVED:
            if self._is_focus_tab(event):
                logger.info("Focus tab closed, clearing focus target")
                await self.clear_focus_target()
        elif event.is_tab_event and event.target is not None:
            await self.timer.record_activity()
            await self.tracker.on_activity_observed(event.target, event.timestamp_ms)

    def _is_focus_tab(self, event: ActivityEvent) -> bool:
        target = self.tracker.target
        if target is None or event.target is None:
            return False
        if event.target.id == target.id:
            return True
        return event.tab_id is not None and target.id == f"tab:{event.tab_id}"

    async def tick(self) -> None:
        """Periodic re-evaluation. Tolerates arriving late."""
        async with self._tick_lock:
            await self.timer.heartbeat()
            await self.timer.check_inactivity()
            now = self._clock()
            await self.tracker.check_pending(now)
            await self._check_break_expiry(now)
            await self._check_break_reminder(now)
            await self._check_distraction_reminder(now)
            self.outbox.expire(now)
            await self._maybe_purge_history(now)

    # ------------------------------------------------------------------
    # Timer operations (break bookkeeping lives here, not in the timer)
    # ------------------------------------------------------------------

    async def start_break(
        self,
        break_type: str,
        duration_minutes: Optional[int] = None,
        triggered_by: str = "user",
    ) -> TransitionResult:
        if duration_minutes is not None:
            duration_ms = duration_minutes * MINUTE_MS
        else:
            duration_ms = self._settings.break_duration_ms(break_type)
        if duration_ms is None:
            return TransitionResult.failure(InvalidTransition.UNKNOWN_BREAK_TYPE)
        result = await self.timer.start_break(break_type, duration_ms)
        if result:
            self._break_trigger = triggered_by
            self.outbox.discard_kind(KIND_BREAK_REMINDER)
        return result

    async def end_break(self) -> TransitionResult:
        return await self._finish_break(completed=True)

    async def cancel_break(self) -> TransitionResult:
        return await self._finish_break(completed=False)

    async def _finish_break(self, completed: bool) -> TransitionResult:
        if completed:
            result = await self.timer.end_break()
        else:
            result = await self.timer.cancel_break()
        if result and self.timer.last_finished_break is not None:
            await self._record_break(self.timer.last_finished_break, self._break_trigger)
            self.outbox.discard_kind(KIND_BREAK_COMPLETE)
            await self._reset_channel(BREAK_CHANNEL)
        return result

    async def reset_work(self) -> TransitionResult:
        result = await self.timer.reset_work()
        if result:
            await self._reset_channel(BREAK_CHANNEL)
        return result

    # ------------------------------------------------------------------
    # Focus target
    # ------------------------------------------------------------------

    async def set_focus_target(self, target: FocusTarget) -> None:
        await self.tracker.set_focus_target(target)
        self.outbox.discard_kind(KIND_DISTRACTION)
        await self._reset_channel(DISTRACTION_CHANNEL)

    async def clear_focus_target(self) -> None:
        await self.tracker.clear_focus_target()
        self.outbox.discard_kind(KIND_DISTRACTION)
        await self._reset_channel(DISTRACTION_CHANNEL)

    # ------------------------------------------------------------------
    # Notification responses
    # ------------------------------------------------------------------

    async def handle_action(self, notification_id: str, action: str) -> Optional[Dict[str, Any]]:
        """
        Apply the user's button choice. Returns None if the notification is
        unknown (expired or already answered); raises UnknownAction if the
        action is not one the notification offered.
        """
        note = self.outbox.get(notification_id)
        if note is None:
            return None
        if action not in note.actions:
            raise UnknownAction(f"{action!r} is not an action of {notification_id}")
        self.outbox.pop(notification_id)
        now = self._clock()

        result: Optional[TransitionResult] = None
        if note.kind == KIND_BREAK_REMINDER:
            result = await self.start_break(action, triggered_by="reminder")
        elif note.kind == KIND_BREAK_COMPLETE:
            result = await self.reset_work()
        elif note.kind == KIND_DISTRACTION:
            sched = self.schedulers[DISTRACTION_CHANNEL]
            if action == _RETURN_TO_FOCUS:
                sched.record_returned()
            elif action == _TAKE_BREAK:
                result = await self.start_break("short", triggered_by="distraction_reminder")
            elif action == _DISMISS:
                sched.record_dismissed(now)
            await self._persist_channel(DISTRACTION_CHANNEL)

        logger.info("Notification %s answered with %s", notification_id, action)
        return {
            "notification_id": notification_id,
            "action": action,
            "ok": True if result is None else result.ok,
            "reason": None if result is None or result.reason is None else result.reason.value,
        }

    async def dismiss_notification(self, notification_id: str) -> bool:
        """User closed the notification without choosing an action."""
        note = self.outbox.pop(notification_id)
        if note is None:
            return False
        if note.kind == KIND_BREAK_REMINDER:
            # closing the break reminder counts as "keep working, start over"
            await self.reset_work()
        elif note.kind == KIND_DISTRACTION:
            self.schedulers[DISTRACTION_CHANNEL].record_dismissed(self._clock())
            await self._persist_channel(DISTRACTION_CHANNEL)
        logger.info("Notification %s dismissed", notification_id)
        return True

    def pending_notifications(self) -> List[Notification]:
        return self.outbox.pending(self._clock())

    # ------------------------------------------------------------------
    # Reminder channels
    # ------------------------------------------------------------------

    def reminders_status(self) -> Dict[str, Any]:
        now = self._clock()
        return {ch: s.status(now) for ch, s in self.schedulers.items()}

    async def reset_channel(self, channel: str) -> None:
        if channel not in self.schedulers:
            raise KeyError(channel)
        await self._reset_channel(channel)

    async def _reset_channel(self, channel: str) -> None:
        self.schedulers[channel].reset_session(self._clock())
        await self._persist_channel(channel)

    async def _load_channel(self, channel: str) -> None:
        try:
            data = await self._store.get(reminder_key(channel))
        except (PersistenceFailure, OSError) as e:
            logger.warning("Could not read %s reminder state: %s", channel, e)
            return
        if not data:
            self.schedulers[channel].reset_session(self._clock())
            return
        try:
            self.schedulers[channel].state = ReminderState.from_dict(data)
        except (TypeError, ValueError, AttributeError) as e:
            logger.warning("Discarding malformed %s reminder state: %s", channel, e)

    async def _persist_channel(self, channel: str) -> None:
        try:
            await self._store.set(reminder_key(channel), self.schedulers[channel].state.to_dict())
        except (PersistenceFailure, OSError) as e:
            if self._channels_persist_ok[channel]:
                logger.warning("%s reminder state not persisted: %s", channel, e)
            self._channels_persist_ok[channel] = False
            return
        self._channels_persist_ok[channel] = True

    # ------------------------------------------------------------------
    # Settings
    # ------------------------------------------------------------------

    async def apply_settings(self, patch: Dict[str, Any]) -> MonitorSettings:
        """Validate and persist *patch*, then push it into live components.
        Raises pydantic.ValidationError on invalid values."""
        updated = self.settings_store.update(patch)
        self._settings = updated
        await self.timer.set_work_time_threshold_ms(updated.work_time_threshold_ms)
        for ch, sched in self.schedulers.items():
            sched.reconfigure(build_reminder_config(updated, ch))
        return updated

    # ------------------------------------------------------------------
    # Tick steps
    # ------------------------------------------------------------------

    async def _check_break_expiry(self, now: int) -> None:
        if not self.timer.is_break_expired(now):
            return
        break_type = self.timer.snapshot.break_type or "unknown"
        if not await self.end_break():
            return
        if self._settings.notifications_enabled:
            title, body, actions = messages.break_complete(break_type)
            self.outbox.push(BREAK_CHANNEL, KIND_BREAK_COMPLETE, title, body, actions, now)

    async def _check_break_reminder(self, now: int) -> None:
        if not self._settings.notifications_enabled or self.timer.mode != TimerMode.WORK_ACTIVE:
            return
        if not self.timer.is_threshold_exceeded(now):
            return
        sched = self.schedulers[BREAK_CHANNEL]
        reason = sched.suppression_reason(now, 1)
        if reason is not None:
            logger.debug("Break reminder suppressed: %s", reason)
            return
        sched.record_fired(now)
        await self._persist_channel(BREAK_CHANNEL)

        work_minutes = self.timer.current_work_time_ms(now) // MINUTE_MS
        title, body, actions = messages.break_reminder(self._settings, work_minutes)
        # at most one break reminder on screen
        self.outbox.discard_kind(KIND_BREAK_REMINDER)
        self.outbox.push(
            BREAK_CHANNEL, KIND_BREAK_REMINDER, title, body, actions, now,
            context={"work_minutes": work_minutes},
        )
        await self._record_reminder(BREAK_CHANNEL, now, {"work_minutes": work_minutes})

    async def _check_distraction_reminder(self, now: int) -> None:
        s = self._settings
        if not (s.enabled and s.notifications_enabled):
            return
        target = self.tracker.target
        if target is None or self.tracker.is_on_focus():
            return
        if self.timer.is_on_break() and not s.show_during_breaks:
            return
        sched = self.schedulers[DISTRACTION_CHANNEL]
        if sched.is_legitimate_gap(now):
            logger.debug("Distraction reminder suppressed: legitimate break")
            return
        count = self.tracker.get_deviation_snapshot()["session_deviation_count"]
        reason = sched.suppression_reason(now, count)
        if reason is not None:
            logger.debug("Distraction reminder suppressed: %s", reason)
            return

        reminder_number = sched.state.fired_count
        sched.record_fired(now)
        await self._persist_channel(DISTRACTION_CHANNEL)

        focus = target.host or target.descriptor or target.id
        self.outbox.discard_kind(KIND_DISTRACTION)
        self.outbox.push(
            DISTRACTION_CHANNEL, KIND_DISTRACTION,
            messages.distraction_title(s.reminder_style),
            messages.distraction_body(s.reminder_style, focus, count, reminder_number),
            messages.DISTRACTION_ACTIONS, now,
            display_ms=DISTRACTION_DISPLAY_MS,
            context={"deviation_count": count, "focus": focus},
        )
        await self._record_reminder(DISTRACTION_CHANNEL, now, {"deviation_count": count})

    async def _on_deviation(self, event: DeviationEvent) -> None:
        # runs inside the tracker's lock: only synchronous tracker queries allowed
        if self.history is not None:
            try:
                await self.history.run(self.history.record_deviation, event)
            except sqlite3.Error as e:
                logger.warning("Deviation not written to history: %s", e)
        await self._check_distraction_reminder(self._clock())

    # ------------------------------------------------------------------
    # History
    # ------------------------------------------------------------------

    async def _record_break(self, record: BreakRecord, triggered_by: str) -> None:
        if self.history is None:
            return
        try:
            await self.history.run(self.history.record_break, record, triggered_by=triggered_by)
        except sqlite3.Error as e:
            logger.warning("Break not written to history: %s", e)

    async def _record_reminder(self, channel: str, now: int, detail: Dict[str, Any]) -> None:
        if self.history is None:
            return
        try:
            await self.history.run(self.history.record_reminder, channel, now, detail)
        except sqlite3.Error as e:
            logger.warning("Reminder not written to history: %s", e)

    async def _maybe_purge_history(self, now: int) -> None:
        """Drop history past the retention window, at most once a day."""
        if self.history is None:
            return
        if self._last_purge_at is not None and now - self._last_purge_at < DAY_MS:
            return
        self._last_purge_at = now
        try:
            await self.history.run(self.history.purge_older_than, now - self.history_retention_ms)
        except sqlite3.Error as e:
            logger.warning("History purge failed: %s", e)

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    def status(self) -> Dict[str, Any]:
        return {
            "status": "ok" if self.persistence_ok else "degraded",
            "timer": self.timer.status(),
            "focus": self.tracker.get_deviation_snapshot(),
            "reminders": self.reminders_status(),
            "pending_notifications": len(self.pending_notifications()),
            "last_recovery": self.last_recovery.outcome.value if self.last_recovery else None,
        }
