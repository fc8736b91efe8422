"""
Notification Outbox — display requests waiting for the external display layer.

The monitor never renders anything itself. A fired reminder becomes a
Notification here; the display layer polls pending(), then reports back with
an action id or a dismissal. Notifications with an expiry drop out of the
outbox on their own (the popup closed without an answer).
"""

from __future__ import annotations

import itertools
import logging
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)

DISTRACTION_DISPLAY_MS = 8000


@dataclass
class Notification:
    id: str
    channel: str                # "break" | "distraction"
    kind: str                   # "break_reminder" | "break_complete" | "distraction_reminder"
    title: str
    body: str
    actions: List[str]
    created_at: int
    expires_at: Optional[int] = None
    context: Dict[str, Any] = field(default_factory=dict)

    def is_expired(self, now: int) -> bool:
        return self.expires_at is not None and now >= self.expires_at

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class NotificationOutbox:

    def __init__(self):
        self._pending: Dict[str, Notification] = {}
        self._ids = itertools.count(1)

    def push(
        self,
        channel: str,
        kind: str,
        title: str,
        body: str,
        actions: List[str],
        now: int,
        display_ms: Optional[int] = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> Notification:
        note = Notification(
            id=f"{kind}-{now}-{next(self._ids)}",
            channel=channel,
            kind=kind,
            title=title,
            body=body,
            actions=list(actions),
            created_at=now,
            expires_at=now + display_ms if display_ms is not None else None,
            context=dict(context or {}),
        )
        self._pending[note.id] = note
        logger.info("Notification queued: %s (%s)", note.title, note.id)
        return note

    def get(self, notification_id: str) -> Optional[Notification]:
        return self._pending.get(notification_id)

    def pop(self, notification_id: str) -> Optional[Notification]:
        return self._pending.pop(notification_id, None)

    def pending(self, now: Optional[int] = None) -> List[Notification]:
        notes = sorted(self._pending.values(), key=lambda n: n.created_at)
        if now is None:
            return notes
        return [n for n in notes if not n.is_expired(now)]

    def discard_kind(self, kind: str) -> int:
        stale = [nid for nid, n in self._pending.items() if n.kind == kind]
        for nid in stale:
            del self._pending[nid]
        return len(stale)

    def expire(self, now: int) -> List[Notification]:
        """Drop and return notifications whose display window has passed."""
        expired = [n for n in self._pending.values() if n.is_expired(now)]
        for n in expired:
            del self._pending[n.id]
            logger.debug("Notification expired unanswered: %s", n.id)
        return expired
