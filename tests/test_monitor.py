"""
Integration tests for FocusMonitor: tick-driven reminders, notification
responses, recovery across restarts and degraded persistence.
"""

from __future__ import annotations

import pytest
import pytest_asyncio

from focusguard.clock import MINUTE_MS
from focusguard.monitor import (
    KIND_BREAK_COMPLETE,
    KIND_BREAK_REMINDER,
    KIND_DISTRACTION,
    FocusMonitor,
    UnknownAction,
    reminder_key,
)
from focusguard.settings import SettingsStore
from focusguard.storage import MemoryStore
from focusguard.telemetry.activity import parse_activity_event
from focusguard.telemetry.history import DAY_MS, KIND_BREAK, KIND_DEVIATION, KIND_REMINDER, ActivityHistory
from focusguard.tracking.focus_tracker import FocusTarget
from focusguard.tracking.work_timer import RecoveryOutcome, TimerMode

FOCUS = "https://docs.python.org/3/"
YOUTUBE = "https://www.youtube.com/"
REDDIT = "https://reddit.com/r/python"


def _make_monitor(tmp_path, store, clock) -> FocusMonitor:
    return FocusMonitor(
        store,
        SettingsStore(tmp_path / "settings.json"),
        history=ActivityHistory(tmp_path / "history.db"),
        clock=clock,
    )


@pytest_asyncio.fixture
async def monitor(tmp_path, store, clock):
    m = _make_monitor(tmp_path, store, clock)
    await m.start()
    yield m
    await m.shutdown()


async def _visit(monitor: FocusMonitor, clock, url: str) -> None:
    event = parse_activity_event({"type": "TAB_ACTIVATED", "data": {"tabId": 1, "url": url}}, now=clock.now)
    await monitor.on_activity(event)


async def _deviate(monitor: FocusMonitor, clock, url: str = YOUTUBE) -> None:
    await _visit(monitor, clock, url)
    clock.advance(3000)
    await monitor.tick()


def _pending(monitor: FocusMonitor, kind: str):
    return [n for n in monitor.pending_notifications() if n.kind == kind]


# ── Startup ─────────────────────────────────────────────────────────────────

class TestStartup:
    async def test_fresh_start_begins_working(self, monitor):
        assert monitor.last_recovery.outcome == RecoveryOutcome.FRESH
        assert monitor.timer.mode == TimerMode.WORK_ACTIVE
        assert monitor.status()["status"] == "ok"

    async def test_expired_break_recovered_and_recorded(self, tmp_path, store, clock):
        first = _make_monitor(tmp_path, store, clock)
        await first.start()
        await first.start_break("short")
        await first.shutdown()

        clock.advance_minutes(10)
        second = _make_monitor(tmp_path, store, clock)
        result = await second.start()
        assert result.outcome == RecoveryOutcome.BREAK_EXPIRED
        assert second.timer.mode == TimerMode.WORK_ACTIVE
        assert second.timer.current_work_time_ms() == 0
        [entry] = second.history.query(kind=KIND_BREAK)
        assert entry.detail["triggered_by"] == "recovery"
        assert entry.detail["completed"] is True
        await second.shutdown()

    async def test_channel_state_survives_restart(self, tmp_path, store, clock):
        first = _make_monitor(tmp_path, store, clock)
        await first.start()
        clock.advance_minutes(30)
        await first.tick()
        await first.shutdown()

        second = _make_monitor(tmp_path, store, clock)
        await second.start()
        assert second.schedulers["break"].state.fired_count == 1
        assert (await store.get(reminder_key("break")))["fired_count"] == 1
        await second.shutdown()


# ── Break-threshold channel ─────────────────────────────────────────────────

class TestBreakReminders:
    async def test_no_reminder_before_threshold(self, monitor, clock):
        clock.advance_minutes(29)
        await monitor.tick()
        assert _pending(monitor, KIND_BREAK_REMINDER) == []

    async def test_reminder_at_threshold(self, monitor, clock):
        clock.advance_minutes(30)
        await monitor.tick()
        [note] = _pending(monitor, KIND_BREAK_REMINDER)
        assert note.title == "Break Reminder!"
        assert note.body == "You've been working for 30 minutes. Time to take a break!"
        assert note.actions == ["short", "medium", "long"]
        assert note.expires_at is None
        assert len(monitor.history.query(kind=KIND_REMINDER)) == 1

    async def test_reminders_escalate(self, monitor, clock):
        clock.advance_minutes(30)
        await monitor.tick()
        clock.advance_minutes(7)
        await monitor.tick()
        assert monitor.schedulers["break"].state.fired_count == 1
        clock.advance(MINUTE_MS // 2)   # 7.5 min after the first
        await monitor.tick()
        assert monitor.schedulers["break"].state.fired_count == 2
        # only the latest reminder stays on screen
        assert len(_pending(monitor, KIND_BREAK_REMINDER)) == 1

    async def test_disabled_notifications_suppress(self, monitor, clock):
        await monitor.apply_settings({"notifications_enabled": False})
        clock.advance_minutes(45)
        await monitor.tick()
        assert monitor.pending_notifications() == []

    async def test_choosing_break_type_starts_break(self, monitor, clock):
        clock.advance_minutes(30)
        await monitor.tick()
        [note] = _pending(monitor, KIND_BREAK_REMINDER)
        result = await monitor.handle_action(note.id, "medium")
        assert result["ok"] is True
        assert monitor.timer.snapshot.break_type == "medium"
        assert monitor.timer.remaining_break_ms() == 15 * MINUTE_MS

    async def test_dismissing_reminder_resets_work(self, monitor, clock):
        clock.advance_minutes(30)
        await monitor.tick()
        [note] = _pending(monitor, KIND_BREAK_REMINDER)
        assert await monitor.dismiss_notification(note.id)
        assert monitor.timer.current_work_time_ms() == 0
        assert monitor.schedulers["break"].state.fired_count == 0

    async def test_break_completes_on_tick(self, monitor, clock):
        clock.advance_minutes(30)
        await monitor.tick()
        [note] = _pending(monitor, KIND_BREAK_REMINDER)
        await monitor.handle_action(note.id, "short")
        clock.advance_minutes(5)
        await monitor.tick()

        assert monitor.timer.mode == TimerMode.WORK_ACTIVE
        [done] = _pending(monitor, KIND_BREAK_COMPLETE)
        assert done.title == "Break Complete!"
        assert done.body == "Your short break is over. Ready to get back to work?"
        assert done.actions == ["start_working"]
        [entry] = monitor.history.query(kind=KIND_BREAK)
        assert entry.detail["completed"] is True
        assert entry.detail["triggered_by"] == "reminder"
        assert entry.detail["work_time_before_ms"] == 30 * MINUTE_MS

        result = await monitor.handle_action(done.id, "start_working")
        assert result["ok"] is True
        assert monitor.timer.current_work_time_ms() == 0

    async def test_cancelled_break_recorded_as_incomplete(self, monitor, clock):
        await monitor.start_break("long")
        clock.advance_minutes(3)
        assert await monitor.cancel_break()
        [entry] = monitor.history.query(kind=KIND_BREAK)
        assert entry.detail["completed"] is False
        assert entry.detail["actual_duration_ms"] == 3 * MINUTE_MS

    async def test_unknown_break_type_rejected(self, monitor):
        result = await monitor.start_break("nap")
        assert not result
        assert result.reason.value == "unknown_break_type"

    async def test_explicit_duration_overrides_settings(self, monitor):
        assert await monitor.start_break("short", duration_minutes=2)
        assert monitor.timer.remaining_break_ms() == 2 * MINUTE_MS


# ── Distraction channel ─────────────────────────────────────────────────────

class TestDistractionReminders:
    async def test_gentle_style_waits_for_three_deviations(self, monitor, clock):
        await monitor.set_focus_target(FocusTarget(id=FOCUS, descriptor=FOCUS))
        await _deviate(monitor, clock, YOUTUBE)
        await _visit(monitor, clock, FOCUS)
        await _deviate(monitor, clock, REDDIT)
        await _visit(monitor, clock, FOCUS)
        assert _pending(monitor, KIND_DISTRACTION) == []

        await _deviate(monitor, clock, YOUTUBE)
        [note] = _pending(monitor, KIND_DISTRACTION)
        assert note.title == "Gentle Focus Reminder"
        assert "docs.python.org" in note.body
        assert note.actions == ["return_to_focus", "take_break", "dismiss"]
        assert note.context["deviation_count"] == 3
        assert len(monitor.history.query(kind=KIND_DEVIATION)) == 3

    async def test_assertive_fires_on_first_deviation(self, monitor, clock):
        await monitor.apply_settings({"reminder_style": "assertive"})
        await monitor.set_focus_target(FocusTarget(id=FOCUS, descriptor=FOCUS))
        await _deviate(monitor, clock)
        [note] = _pending(monitor, KIND_DISTRACTION)
        assert note.title == "Focus Alert!"
        assert note.body == "Focus alert! You've deviated 1 times from docs.python.org. Get back on track!"

    async def test_popup_expires_after_display_window(self, monitor, clock):
        await monitor.apply_settings({"reminder_style": "assertive"})
        await monitor.set_focus_target(FocusTarget(id=FOCUS, descriptor=FOCUS))
        await _deviate(monitor, clock)
        [note] = _pending(monitor, KIND_DISTRACTION)
        assert note.expires_at == note.created_at + 8000
        clock.advance(8000)
        await monitor.tick()
        assert monitor.outbox.get(note.id) is None

    async def test_no_reminder_without_target(self, monitor, clock):
        await monitor.apply_settings({"reminder_style": "assertive"})
        await _deviate(monitor, clock)
        assert _pending(monitor, KIND_DISTRACTION) == []

    async def test_suppressed_during_break(self, monitor, clock):
        await monitor.apply_settings({"reminder_style": "assertive"})
        await monitor.set_focus_target(FocusTarget(id=FOCUS, descriptor=FOCUS))
        await monitor.start_break("long")
        await _deviate(monitor, clock)
        assert _pending(monitor, KIND_DISTRACTION) == []

        await monitor.apply_settings({"show_during_breaks": True})
        clock.advance_minutes(3)
        await monitor.tick()
        assert len(_pending(monitor, KIND_DISTRACTION)) == 1

    async def test_return_to_focus_rewards_compliance(self, monitor, clock):
        await monitor.apply_settings({"reminder_style": "assertive"})
        await monitor.set_focus_target(FocusTarget(id=FOCUS, descriptor=FOCUS))
        await _deviate(monitor, clock)
        [note] = _pending(monitor, KIND_DISTRACTION)
        assert monitor.schedulers["distraction"].state.fired_count == 1
        await monitor.handle_action(note.id, "return_to_focus")
        assert monitor.schedulers["distraction"].state.fired_count == 0

    async def test_take_break_starts_short_break(self, monitor, clock):
        await monitor.apply_settings({"reminder_style": "assertive"})
        await monitor.set_focus_target(FocusTarget(id=FOCUS, descriptor=FOCUS))
        await _deviate(monitor, clock)
        [note] = _pending(monitor, KIND_DISTRACTION)
        await monitor.handle_action(note.id, "take_break")
        assert monitor.timer.snapshot.break_type == "short"
        assert monitor.timer.remaining_break_ms() == 5 * MINUTE_MS

    async def test_dismiss_pushes_next_reminder_out(self, monitor, clock):
        await monitor.apply_settings({"reminder_style": "assertive"})
        await monitor.set_focus_target(FocusTarget(id=FOCUS, descriptor=FOCUS))
        await _deviate(monitor, clock)
        [note] = _pending(monitor, KIND_DISTRACTION)
        await monitor.dismiss_notification(note.id)
        assert monitor.schedulers["distraction"].state.last_fired_at == clock.now + MINUTE_MS

    async def test_legitimate_gap_stops_nagging(self, monitor, clock):
        await monitor.apply_settings({"reminder_style": "assertive", "legitimate_gap_ms": 60_000})
        await monitor.set_focus_target(FocusTarget(id=FOCUS, descriptor=FOCUS))
        await _deviate(monitor, clock)
        assert monitor.schedulers["distraction"].state.fired_count == 1
        clock.advance_minutes(5)
        await monitor.tick()
        assert monitor.schedulers["distraction"].state.fired_count == 1

    async def test_new_target_resets_channel(self, monitor, clock):
        await monitor.apply_settings({"reminder_style": "assertive"})
        await monitor.set_focus_target(FocusTarget(id=FOCUS, descriptor=FOCUS))
        await _deviate(monitor, clock)
        await monitor.set_focus_target(FocusTarget(id=REDDIT, descriptor=REDDIT))
        assert monitor.schedulers["distraction"].state.fired_count == 0
        assert _pending(monitor, KIND_DISTRACTION) == []


# ── Notification responses ──────────────────────────────────────────────────

class TestNotificationResponses:
    async def test_unknown_notification_returns_none(self, monitor):
        assert await monitor.handle_action("nope", "dismiss") is None
        assert await monitor.dismiss_notification("nope") is False

    async def test_action_not_offered_raises(self, monitor, clock):
        clock.advance_minutes(30)
        await monitor.tick()
        [note] = _pending(monitor, KIND_BREAK_REMINDER)
        with pytest.raises(UnknownAction):
            await monitor.handle_action(note.id, "return_to_focus")
        assert monitor.outbox.get(note.id) is not None


# ── Closed tabs ─────────────────────────────────────────────────────────────

async def _close(monitor: FocusMonitor, clock, tab_id: int, url: str = "") -> None:
    data = {"tabId": tab_id}
    if url:
        data["url"] = url
    await monitor.on_activity(parse_activity_event({"type": "TAB_REMOVED", "data": data}, now=clock.now))


class TestTabRemoved:
    async def test_closing_focus_tab_clears_target(self, monitor, clock):
        await monitor.apply_settings({"reminder_style": "assertive"})
        await monitor.set_focus_target(FocusTarget(id=FOCUS, descriptor=FOCUS))
        await _deviate(monitor, clock)
        assert _pending(monitor, KIND_DISTRACTION)

        await _close(monitor, clock, 1, FOCUS)
        assert monitor.tracker.target is None
        assert _pending(monitor, KIND_DISTRACTION) == []

        await _deviate(monitor, clock, REDDIT)
        assert monitor.tracker.get_deviation_snapshot()["session_deviation_count"] == 0

    async def test_closing_focus_tab_by_tab_id(self, monitor, clock):
        await monitor.set_focus_target(FocusTarget(id="tab:7"))
        await _close(monitor, clock, 7)
        assert monitor.tracker.target is None

    async def test_closing_other_tab_keeps_target(self, monitor, clock):
        await monitor.set_focus_target(FocusTarget(id=FOCUS, descriptor=FOCUS))
        await _close(monitor, clock, 3, "https://docs.python.org/3/library/")
        await _close(monitor, clock, 4)
        assert monitor.tracker.target == FocusTarget(id=FOCUS, descriptor=FOCUS)


# ── Window focus ────────────────────────────────────────────────────────────

class TestWindowFocus:
    async def test_focus_loss_pauses_then_gain_resumes(self, monitor, clock):
        clock.advance_minutes(10)
        await monitor.on_activity(parse_activity_event({"type": "WINDOW_FOCUS_LOST"}, now=clock.now))
        clock.advance_minutes(6)
        await monitor.tick()
        assert monitor.timer.mode == TimerMode.WORK_PAUSED
        assert monitor.timer.current_work_time_ms() == 16 * MINUTE_MS

        await monitor.on_activity(parse_activity_event({"type": "WINDOW_FOCUS_GAINED"}, now=clock.now))
        assert monitor.timer.mode == TimerMode.WORK_ACTIVE

    async def test_tick_event_runs_tick(self, monitor, clock):
        clock.advance_minutes(30)
        await monitor.on_activity(parse_activity_event({"type": "TICK"}, now=clock.now))
        assert len(_pending(monitor, KIND_BREAK_REMINDER)) == 1


# ── History retention ───────────────────────────────────────────────────────

class TestHistoryRetention:
    async def test_tick_purges_expired_history_once_a_day(self, monitor, clock):
        old = clock.now - 91 * DAY_MS
        recent = clock.now - 10 * DAY_MS
        monitor.history.record_reminder("break", old)
        monitor.history.record_reminder("break", recent)

        await monitor.tick()
        assert [e.timestamp for e in monitor.history.query(until=recent)] == [recent]

        monitor.history.record_reminder("break", old)
        clock.advance_minutes(60)
        await monitor.tick()
        assert len(monitor.history.query(until=old)) == 1

        clock.advance(DAY_MS)
        await monitor.tick()
        assert monitor.history.query(until=old) == []


# ── Degraded persistence ────────────────────────────────────────────────────

class TestDegraded:
    async def test_failing_store_reports_degraded_but_keeps_working(self, tmp_path, clock):
        store = MemoryStore()
        monitor = _make_monitor(tmp_path, store, clock)
        await monitor.start()
        store.fail_writes = True

        assert await monitor.start_break("short")
        assert monitor.timer.mode == TimerMode.ON_BREAK
        assert monitor.status()["status"] == "degraded"

        store.fail_writes = False
        await monitor.end_break()
        assert monitor.status()["status"] == "ok"
        await monitor.shutdown()
