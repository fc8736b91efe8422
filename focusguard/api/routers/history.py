"""
/history — breaks, reminders and deviations, plus per-day analytics.
"""

from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Request

from ...api.schemas import DailyStatsOut, HistoryEntryOut
from ...telemetry.history import DAY_MS

router = APIRouter(prefix="/history", tags=["history"])


def _get_history(request: Request):
    return request.app.state.history


def _get_monitor(request: Request):
    return request.app.state.monitor


@router.get("", response_model=List[HistoryEntryOut])
async def query_history(
    since: Optional[int] = Query(default=None, description="Epoch ms lower bound"),
    until: Optional[int] = Query(default=None, description="Epoch ms upper bound"),
    kind: Optional[str] = Query(default=None, description="Filter by kind (break|reminder|deviation)"),
    limit: int = Query(default=200, ge=1, le=1000),
    history=Depends(_get_history),
):
    entries = await history.run(history.query, since=since, until=until, kind=kind, limit=limit)
    return [
        HistoryEntryOut(
            id=e.id,
            timestamp=e.timestamp,
            kind=e.kind,
            channel=e.channel,
            detail=e.detail,
        )
        for e in entries
    ]


@router.get("/daily", response_model=List[DailyStatsOut])
async def get_daily_stats(
    since: Optional[int] = Query(default=None, description="Epoch ms lower bound (default: 7 days ago)"),
    until: Optional[int] = Query(default=None, description="Epoch ms upper bound (default: now)"),
    history=Depends(_get_history),
    monitor=Depends(_get_monitor),
):
    """
    Per-day break and reminder statistics: breaks taken/completed/cancelled,
    break minutes, reminders per channel, deviations. Defaults to the last 7 days.
    """
    if until is None:
        until = monitor.now()
    if since is None:
        since = until - 7 * DAY_MS
    stats = await history.run(history.get_daily_stats, since, until)
    return [DailyStatsOut(**vars(d)) for d in stats]
