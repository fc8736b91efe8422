"""
/activity — ingest tab and window events from the browser extension.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request, status

from ...api.schemas import ActivityEventIn
from ...telemetry.activity import parse_activity_event

router = APIRouter(prefix="/activity", tags=["activity"])


def _get_monitor(request: Request):
    """Dependency — resolved by the app lifespan state."""
    return request.app.state.monitor


def _to_payload(event: ActivityEventIn) -> dict:
    payload = {"type": event.type, "data": event.data}
    if event.timestamp is not None:
        payload["timestamp"] = event.timestamp
    return payload


@router.post("/event", status_code=status.HTTP_202_ACCEPTED)
async def ingest_event(event: ActivityEventIn, monitor=Depends(_get_monitor)):
    parsed = parse_activity_event(_to_payload(event), now=monitor.now())
    if parsed is None:
        raise HTTPException(status_code=422, detail=f"Unrecognised event type: {event.type!r}")
    await monitor.on_activity(parsed)
    return {"status": "accepted"}


@router.post("/batch", status_code=status.HTTP_202_ACCEPTED)
async def ingest_batch(events: list[ActivityEventIn], monitor=Depends(_get_monitor)):
    """Accept a batch of events (used when the extension buffers while the engine is down)."""
    accepted = 0
    for event in events:
        parsed = parse_activity_event(_to_payload(event), now=monitor.now())
        if parsed:
            await monitor.on_activity(parsed)
            accepted += 1
    return {"accepted": accepted, "total": len(events)}
