"""
/notifications — the outbox polled by the display layer, and the user's answers.
"""

from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, HTTPException, Request, status

from ...api.schemas import NotificationActionIn, NotificationActionOut, NotificationOut
from ...monitor import UnknownAction

router = APIRouter(prefix="/notifications", tags=["notifications"])


def _get_monitor(request: Request):
    return request.app.state.monitor


@router.get("", response_model=List[NotificationOut])
def list_pending(monitor=Depends(_get_monitor)):
    """Notifications waiting to be shown, oldest first. Expired ones are omitted."""
    return [NotificationOut(**n.to_dict()) for n in monitor.pending_notifications()]


@router.post("/{notification_id}/action", response_model=NotificationActionOut)
async def answer(notification_id: str, body: NotificationActionIn, monitor=Depends(_get_monitor)):
    try:
        result = await monitor.handle_action(notification_id, body.action)
    except UnknownAction as e:
        raise HTTPException(status_code=422, detail=str(e))
    if result is None:
        raise HTTPException(status_code=404, detail=f"No pending notification {notification_id!r}")
    return NotificationActionOut(**result)


@router.delete("/{notification_id}", status_code=status.HTTP_204_NO_CONTENT)
async def dismiss(notification_id: str, monitor=Depends(_get_monitor)):
    """The user closed the notification without choosing an action."""
    if not await monitor.dismiss_notification(notification_id):
        raise HTTPException(status_code=404, detail=f"No pending notification {notification_id!r}")
