"""
/timer — work/break timer state and transitions.

A transition the current mode rejects comes back as 409 with the reason.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request

from ...api.schemas import BreakStartRequest, TimerStatusOut
from ...errors import TransitionResult

router = APIRouter(prefix="/timer", tags=["timer"])


def _get_monitor(request: Request):
    return request.app.state.monitor


def _status_or_conflict(result: TransitionResult, monitor) -> TimerStatusOut:
    if not result:
        raise HTTPException(status_code=409, detail=result.reason.value if result.reason else "rejected")
    return TimerStatusOut(**monitor.timer.status())


@router.get("", response_model=TimerStatusOut)
def get_timer(monitor=Depends(_get_monitor)):
    return TimerStatusOut(**monitor.timer.status())


@router.post("/start", response_model=TimerStatusOut)
async def start_work(monitor=Depends(_get_monitor)):
    """Start work. Already working is a no-op success."""
    return _status_or_conflict(await monitor.timer.start_work(), monitor)


@router.post("/pause", response_model=TimerStatusOut)
async def pause_work(monitor=Depends(_get_monitor)):
    return _status_or_conflict(await monitor.timer.pause_work(), monitor)


@router.post("/resume", response_model=TimerStatusOut)
async def resume_work(monitor=Depends(_get_monitor)):
    return _status_or_conflict(await monitor.timer.resume_work(), monitor)


@router.post("/reset", response_model=TimerStatusOut)
async def reset_work(monitor=Depends(_get_monitor)):
    """Zero the accumulated work time and start a fresh work span."""
    return _status_or_conflict(await monitor.reset_work(), monitor)


# ── Breaks ──────────────────────────────────────────────────────────────────

@router.post("/break/start", response_model=TimerStatusOut)
async def start_break(req: BreakStartRequest, monitor=Depends(_get_monitor)):
    result = await monitor.start_break(req.break_type, duration_minutes=req.duration_minutes)
    return _status_or_conflict(result, monitor)


@router.post("/break/end", response_model=TimerStatusOut)
async def end_break(monitor=Depends(_get_monitor)):
    return _status_or_conflict(await monitor.end_break(), monitor)


@router.post("/break/cancel", response_model=TimerStatusOut)
async def cancel_break(monitor=Depends(_get_monitor)):
    """End the break early; recorded in history as not completed."""
    return _status_or_conflict(await monitor.cancel_break(), monitor)
