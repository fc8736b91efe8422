"""
Pydantic schemas for the FastAPI local API.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

# ── Activity ───────────────────────────────────────────────────────────────

class ActivityEventIn(BaseModel):
    type: str = Field(..., description="TAB_ACTIVATED | TAB_UPDATED | TAB_REMOVED | WINDOW_FOCUS_LOST | WINDOW_FOCUS_GAINED | TICK")
    timestamp: Optional[int] = Field(None, description="Epoch milliseconds; defaults to now")
    data: Dict[str, Any] = Field(default_factory=dict)


# ── Timer ──────────────────────────────────────────────────────────────────

class TimerStatusOut(BaseModel):
    mode: str
    is_work_active: bool
    is_on_break: bool
    break_type: Optional[str] = None
    work_start_timestamp: Optional[int] = None
    current_work_time_ms: int
    total_work_time_ms: int
    work_time_threshold_ms: int
    is_threshold_exceeded: bool
    remaining_break_ms: int
    last_activity_timestamp: int
    window_focused: bool


class BreakStartRequest(BaseModel):
    break_type: str = Field(..., description="short | medium | long")
    duration_minutes: Optional[int] = Field(None, gt=0, le=240, description="Overrides the configured duration")


# ── Focus ──────────────────────────────────────────────────────────────────

class FocusTargetIn(BaseModel):
    id: str = Field(..., min_length=1)
    descriptor: str = ""


class FocusTargetOut(BaseModel):
    id: str
    descriptor: str


class DeviationEventOut(BaseModel):
    from_target: str
    to_target: str
    timestamp: int


class DeviationSnapshotOut(BaseModel):
    target: Optional[FocusTargetOut] = None
    is_on_focus: bool
    session_deviation_count: int
    total_deviation_count: int
    recent_events: List[DeviationEventOut]
    pending: bool


# ── Notifications ──────────────────────────────────────────────────────────

class NotificationOut(BaseModel):
    id: str
    channel: str
    kind: str
    title: str
    body: str
    actions: List[str]
    created_at: int
    expires_at: Optional[int] = None
    context: Dict[str, Any] = Field(default_factory=dict)


class NotificationActionIn(BaseModel):
    action: str


class NotificationActionOut(BaseModel):
    notification_id: str
    action: str
    ok: bool
    reason: Optional[str] = None


# ── Reminders ──────────────────────────────────────────────────────────────

class ReminderChannelOut(BaseModel):
    channel: str
    fired_count: int
    max_reminders_per_session: int
    last_fired_at: int
    session_started_at: int
    cooldown_ms: int
    cooldown_remaining_ms: int
    style_threshold: int


# ── History ────────────────────────────────────────────────────────────────

class HistoryEntryOut(BaseModel):
    id: int
    timestamp: int
    kind: str
    channel: str
    detail: Dict[str, Any]


class DailyStatsOut(BaseModel):
    date: str
    breaks_taken: int
    breaks_completed: int
    breaks_cancelled: int
    total_break_minutes: float
    reminders_fired: Dict[str, int]
    deviations: int
    most_common_break_type: Optional[str] = None
