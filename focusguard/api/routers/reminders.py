"""
/reminders — per-channel scheduler state.
"""

from __future__ import annotations

from typing import Dict

from fastapi import APIRouter, Depends, HTTPException, Request

from ...api.schemas import ReminderChannelOut

router = APIRouter(prefix="/reminders", tags=["reminders"])


def _get_monitor(request: Request):
    return request.app.state.monitor


@router.get("", response_model=Dict[str, ReminderChannelOut])
def get_reminders(monitor=Depends(_get_monitor)):
    return {ch: ReminderChannelOut(**s) for ch, s in monitor.reminders_status().items()}


@router.post("/{channel}/reset", response_model=ReminderChannelOut)
async def reset_channel(channel: str, monitor=Depends(_get_monitor)):
    """Start a new reminder session on *channel* (count and cooldown cleared)."""
    try:
        await monitor.reset_channel(channel)
    except KeyError:
        raise HTTPException(status_code=404, detail=f"Unknown reminder channel: {channel!r}")
    return ReminderChannelOut(**monitor.reminders_status()[channel])
