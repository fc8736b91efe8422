"""
Activity Receiver — accepts events POSTed by the browser extension and
converts them to ActivityEvent objects for the monitor.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

from ..clock import now_ms
from ..tracking.focus_tracker import FocusTarget


class ActivityKind(str, Enum):
    TAB_ACTIVATED = "tab_activated"
    TAB_UPDATED = "tab_updated"
    TAB_REMOVED = "tab_removed"
    WINDOW_FOCUS_LOST = "window_focus_lost"
    WINDOW_FOCUS_GAINED = "window_focus_gained"
    TICK = "tick"


# Mapping from browser extension event names → internal kinds
_EVENT_MAP: Dict[str, ActivityKind] = {
    "TAB_ACTIVATED": ActivityKind.TAB_ACTIVATED,
    "TAB_UPDATED": ActivityKind.TAB_UPDATED,
    "TAB_REMOVED": ActivityKind.TAB_REMOVED,
    "WINDOW_FOCUS_LOST": ActivityKind.WINDOW_FOCUS_LOST,
    "WINDOW_FOCUS_GAINED": ActivityKind.WINDOW_FOCUS_GAINED,
    "TICK": ActivityKind.TICK,
}

_TAB_KINDS = (ActivityKind.TAB_ACTIVATED, ActivityKind.TAB_UPDATED)
_TAB_PAYLOAD_KINDS = _TAB_KINDS + (ActivityKind.TAB_REMOVED,)


@dataclass
class ActivityEvent:
    kind: ActivityKind
    timestamp_ms: int
    target: Optional[FocusTarget] = None    # set for tab events only
    tab_id: Optional[int] = None

    @property
    def is_tab_event(self) -> bool:
        return self.kind in _TAB_KINDS


def parse_activity_event(payload: Dict[str, Any], now: Optional[int] = None) -> ActivityEvent | None:
    """
    Parse a raw extension payload into an ActivityEvent.
    Returns None if the event type is unknown or malformed.

    Expected payload shape:
    {
        "type": "TAB_ACTIVATED",
        "timestamp": 1700000000123,     # epoch ms, optional, defaults to *now*
        "data": { "tabId": 42, "url": "https://example.com/page" }
    }
    """
    kind = _EVENT_MAP.get(str(payload.get("type", "")).upper())
    if kind is None:
        return None

    raw_ts = payload.get("timestamp")
    try:
        timestamp = int(raw_ts) if raw_ts is not None else (now if now is not None else now_ms())
    except (TypeError, ValueError):
        return None

    target = None
    tab_id = None
    if kind in _TAB_PAYLOAD_KINDS:
        data = payload.get("data") or {}
        if not isinstance(data, dict):
            return None
        url = str(data.get("url") or "")
        raw_tab = data.get("tabId")
        if not url and raw_tab is None:
            return None
        try:
            tab_id = int(raw_tab) if raw_tab is not None else None
        except (TypeError, ValueError):
            return None
        # tabs are identified by URL; the numeric id alone says nothing about focus
        target = FocusTarget(id=url or f"tab:{tab_id}", descriptor=url)

    return ActivityEvent(kind=kind, timestamp_ms=timestamp, target=target, tab_id=tab_id)
