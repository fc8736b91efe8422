"""
/focus — the focus target and deviation counters.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from ...api.schemas import DeviationSnapshotOut, FocusTargetIn
from ...tracking.focus_tracker import FocusTarget

router = APIRouter(prefix="/focus", tags=["focus"])


def _get_monitor(request: Request):
    return request.app.state.monitor


@router.get("", response_model=DeviationSnapshotOut)
def get_focus(monitor=Depends(_get_monitor)):
    return DeviationSnapshotOut(**monitor.tracker.get_deviation_snapshot())


@router.put("/target", response_model=DeviationSnapshotOut)
async def set_target(body: FocusTargetIn, monitor=Depends(_get_monitor)):
    """Set a new focus target. Starts a fresh deviation session."""
    await monitor.set_focus_target(FocusTarget(id=body.id, descriptor=body.descriptor))
    return DeviationSnapshotOut(**monitor.tracker.get_deviation_snapshot())


@router.delete("/target", response_model=DeviationSnapshotOut)
async def clear_target(monitor=Depends(_get_monitor)):
    await monitor.clear_focus_target()
    return DeviationSnapshotOut(**monitor.tracker.get_deviation_snapshot())
