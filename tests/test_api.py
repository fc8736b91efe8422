"""
Integration tests for the FastAPI application.
Uses httpx.AsyncClient with the ASGI transport (no running server needed).
Fixtures are provided by tests/conftest.py.
"""

from __future__ import annotations

from httpx import ASGITransport, AsyncClient

from focusguard.api.app import create_app
from focusguard.storage import MemoryStore

FOCUS = "https://docs.python.org/3/"
YOUTUBE = "https://www.youtube.com/"


async def _tab(client, url: str):
    return await client.post("/activity/event", json={
        "type": "TAB_ACTIVATED",
        "data": {"tabId": 1, "url": url},
    })


async def _assertive_deviation(client, clock):
    await client.put("/settings", json={"reminder_style": "assertive"})
    await client.put("/focus/target", json={"id": FOCUS, "descriptor": FOCUS})
    await _tab(client, YOUTUBE)
    clock.advance(3000)
    await client.post("/activity/event", json={"type": "TICK"})


class TestHealth:
    async def test_health_ok(self, client):
        r = await client.get("/health")
        assert r.status_code == 200
        body = r.json()
        assert body["status"] == "ok"
        assert body["timer_mode"] == "work_active"

    async def test_health_degraded_when_store_fails(self, tmp_path, clock):
        store = MemoryStore()
        app = create_app(data_dir=tmp_path, clock=clock, store=store, tick_interval_s=3600)
        async with app.router.lifespan_context(app):
            async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
                store.fail_writes = True
                await ac.post("/timer/pause")
                r = await ac.get("/health")
                assert r.json()["status"] == "degraded"


class TestTimerEndpoints:
    async def test_get_timer(self, client, clock):
        clock.advance_minutes(12)
        r = await client.get("/timer")
        assert r.status_code == 200
        body = r.json()
        assert body["mode"] == "work_active"
        assert body["current_work_time_ms"] == 12 * 60_000
        assert body["work_time_threshold_ms"] == 30 * 60_000
        assert body["is_threshold_exceeded"] is False

    async def test_pause_resume(self, client):
        r = await client.post("/timer/pause")
        assert r.status_code == 200
        assert r.json()["mode"] == "work_paused"
        r = await client.post("/timer/resume")
        assert r.json()["mode"] == "work_active"

    async def test_invalid_transition_is_409(self, client):
        await client.post("/timer/pause")
        r = await client.post("/timer/pause")
        assert r.status_code == 409
        assert r.json()["detail"] == "not_working"

    async def test_start_is_idempotent(self, client):
        first = (await client.post("/timer/start")).json()
        second = (await client.post("/timer/start")).json()
        assert first["work_start_timestamp"] == second["work_start_timestamp"]

    async def test_break_lifecycle(self, client, clock):
        r = await client.post("/timer/break/start", json={"break_type": "short"})
        assert r.status_code == 200
        assert r.json()["is_on_break"] is True
        assert r.json()["remaining_break_ms"] == 5 * 60_000

        r = await client.post("/timer/break/start", json={"break_type": "long"})
        assert r.status_code == 409
        assert r.json()["detail"] == "break_already_active"

        r = await client.post("/timer/start")
        assert r.status_code == 409
        assert r.json()["detail"] == "already_on_break"

        clock.advance_minutes(2)
        r = await client.post("/timer/break/end")
        assert r.status_code == 200
        assert r.json()["mode"] == "work_active"
        assert r.json()["current_work_time_ms"] == 0

    async def test_unknown_break_type_is_409(self, client):
        r = await client.post("/timer/break/start", json={"break_type": "nap"})
        assert r.status_code == 409
        assert r.json()["detail"] == "unknown_break_type"

    async def test_cancel_without_break_is_409(self, client):
        r = await client.post("/timer/break/cancel")
        assert r.status_code == 409
        assert r.json()["detail"] == "not_on_break"

    async def test_reset(self, client, clock):
        clock.advance_minutes(20)
        r = await client.post("/timer/reset")
        assert r.status_code == 200
        assert r.json()["current_work_time_ms"] == 0


class TestFocusEndpoints:
    async def test_set_and_clear_target(self, client):
        r = await client.put("/focus/target", json={"id": FOCUS, "descriptor": FOCUS})
        assert r.status_code == 200
        assert r.json()["target"] == {"id": FOCUS, "descriptor": FOCUS}
        assert r.json()["is_on_focus"] is True

        r = await client.delete("/focus/target")
        assert r.json()["target"] is None

    async def test_empty_id_rejected(self, client):
        r = await client.put("/focus/target", json={"id": ""})
        assert r.status_code == 422

    async def test_deviation_counted_through_activity(self, client, clock):
        await client.put("/focus/target", json={"id": FOCUS, "descriptor": FOCUS})
        await _tab(client, YOUTUBE)
        clock.advance(3000)
        await client.post("/activity/event", json={"type": "TICK"})
        body = (await client.get("/focus")).json()
        assert body["session_deviation_count"] == 1
        assert body["recent_events"][0]["to_target"] == YOUTUBE
        assert body["is_on_focus"] is False


class TestActivityEndpoints:
    async def test_ingest_tab_event(self, client):
        r = await _tab(client, FOCUS)
        assert r.status_code == 202

    async def test_unknown_event_type_returns_422(self, client):
        r = await client.post("/activity/event", json={"type": "MADE_UP_EVENT"})
        assert r.status_code == 422

    async def test_batch_ingest(self, client):
        r = await client.post("/activity/batch", json=[
            {"type": "TAB_ACTIVATED", "data": {"tabId": 1, "url": FOCUS}},
            {"type": "WINDOW_FOCUS_LOST"},
            {"type": "BOGUS"},
            {"type": "WINDOW_FOCUS_GAINED"},
        ])
        assert r.status_code == 202
        assert r.json() == {"accepted": 3, "total": 4}


class TestNotificationEndpoints:
    async def test_break_reminder_appears_and_is_answered(self, client, clock):
        clock.advance_minutes(30)
        await client.post("/activity/event", json={"type": "TICK"})
        notes = (await client.get("/notifications")).json()
        assert [n["kind"] for n in notes] == ["break_reminder"]

        r = await client.post(f"/notifications/{notes[0]['id']}/action", json={"action": "long"})
        assert r.status_code == 200
        assert r.json()["ok"] is True
        timer = (await client.get("/timer")).json()
        assert timer["break_type"] == "long"
        assert (await client.get("/notifications")).json() == []

    async def test_distraction_reminder_dismissed(self, client, clock):
        await _assertive_deviation(client, clock)
        [note] = (await client.get("/notifications")).json()
        assert note["title"] == "Focus Alert!"
        r = await client.delete(f"/notifications/{note['id']}")
        assert r.status_code == 204
        assert (await client.get("/notifications")).json() == []

    async def test_unknown_notification_is_404(self, client):
        r = await client.post("/notifications/missing/action", json={"action": "dismiss"})
        assert r.status_code == 404
        r = await client.delete("/notifications/missing")
        assert r.status_code == 404

    async def test_action_not_offered_is_422(self, client, clock):
        await _assertive_deviation(client, clock)
        [note] = (await client.get("/notifications")).json()
        r = await client.post(f"/notifications/{note['id']}/action", json={"action": "long"})
        assert r.status_code == 422


class TestReminderEndpoints:
    async def test_lists_both_channels(self, client):
        body = (await client.get("/reminders")).json()
        assert set(body) == {"break", "distraction"}
        assert body["break"]["cooldown_ms"] == 5 * 60_000
        assert body["distraction"]["style_threshold"] == 3

    async def test_reset_channel(self, client, clock):
        await _assertive_deviation(client, clock)
        assert (await client.get("/reminders")).json()["distraction"]["fired_count"] == 1
        r = await client.post("/reminders/distraction/reset")
        assert r.status_code == 200
        assert r.json()["fired_count"] == 0

    async def test_unknown_channel_is_404(self, client):
        r = await client.post("/reminders/email/reset")
        assert r.status_code == 404


class TestHistoryEndpoints:
    async def test_break_shows_in_history_and_daily_stats(self, client, clock):
        await client.post("/timer/break/start", json={"break_type": "medium"})
        clock.advance_minutes(4)
        await client.post("/timer/break/cancel")

        entries = (await client.get("/history", params={"kind": "break"})).json()
        assert len(entries) == 1
        assert entries[0]["channel"] == "medium"
        assert entries[0]["detail"]["completed"] is False

        [day] = (await client.get("/history/daily")).json()
        assert day["breaks_taken"] == 1
        assert day["breaks_cancelled"] == 1
        assert day["most_common_break_type"] == "medium"

    async def test_empty_history(self, client):
        assert (await client.get("/history")).json() == []
        assert (await client.get("/history/daily")).json() == []
