"""
Adaptive Reminder Scheduler — decides whether now is an acceptable moment
to interrupt the user on one reminder channel.

The caller decides *whether* a reminder is warranted and passes a magnitude
(e.g. the session deviation count). The scheduler only owns timing:

    cooldown = min(base * factor ** fired_count, max_cooldown)

Reminders stop once the per-session cap is reached, and an optional
legitimate-gap veto suppresses nagging when the last reminder is long past.
One instance per channel; channels share no state.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from typing import Any, Dict, Optional

from ..settings import Frequency, MonitorSettings, ReminderStyle

logger = logging.getLogger(__name__)

BREAK_CHANNEL = "break"
DISTRACTION_CHANNEL = "distraction"
CHANNELS = (BREAK_CHANNEL, DISTRACTION_CHANNEL)

# minimum session deviation count before a distraction reminder may fire
STYLE_THRESHOLDS: Dict[ReminderStyle, int] = {
    ReminderStyle.GENTLE: 3,
    ReminderStyle.STANDARD: 2,
    ReminderStyle.ASSERTIVE: 1,
}

# scales base and max cooldowns
FREQUENCY_MULTIPLIERS: Dict[Frequency, float] = {
    Frequency.LOW: 2.0,
    Frequency.MEDIUM: 1.0,
    Frequency.HIGH: 0.5,
    Frequency.ADAPTIVE: 1.0,
}


@dataclass(frozen=True)
class ReminderConfig:
    base_cooldown_ms: int
    max_cooldown_ms: int
    escalation_factor: float = 1.5
    max_reminders_per_session: int = 10
    legitimate_gap_ms: Optional[int] = None     # None disables the veto
    style_threshold: int = 1

    def __post_init__(self):
        if self.escalation_factor <= 1:
            raise ValueError("escalation_factor must be > 1")
        if self.base_cooldown_ms < 0 or self.max_cooldown_ms < self.base_cooldown_ms:
            raise ValueError("cooldowns must satisfy 0 <= base <= max")
        if self.max_reminders_per_session < 0:
            raise ValueError("max_reminders_per_session must be >= 0")


@dataclass
class ReminderState:
    last_fired_at: int = 0
    fired_count: int = 0
    session_started_at: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ReminderState":
        return cls(
            last_fired_at=int(data.get("last_fired_at", 0)),
            fired_count=max(0, int(data.get("fired_count", 0))),
            session_started_at=int(data.get("session_started_at", 0)),
        )


class AdaptiveReminderScheduler:

    def __init__(self, channel: str, config: ReminderConfig, state: Optional[ReminderState] = None):
        self.channel = channel
        self.config = config
        self.state = state or ReminderState()

    # ------------------------------------------------------------------
    # Decision
    # ------------------------------------------------------------------

    def cooldown_ms(self) -> int:
        c = self.config
        escalated = c.base_cooldown_ms * (c.escalation_factor ** self.state.fired_count)
        return int(min(escalated, c.max_cooldown_ms))

    def should_fire(self, now: int, magnitude: float) -> bool:
        return self.suppression_reason(now, magnitude) is None

    def suppression_reason(self, now: int, magnitude: float) -> Optional[str]:
        """Why should_fire() would say no, or None if it would fire."""
        if self.state.fired_count >= self.config.max_reminders_per_session:
            return "session_cap"
        if now - self.state.last_fired_at < self.cooldown_ms():
            return "cooldown"
        if magnitude < self.config.style_threshold:
            return "below_threshold"
        return None

    def is_legitimate_gap(self, now: int) -> bool:
        """
        True when the last reminder of this session is older than the
        legitimate-gap window. Measured from the last reminder, not the last
        deviation.

        A channel that has not fired this session (``last_fired_at == 0``)
        never reports a gap. Taken literally, ``now - last_fired_at`` against
        a zero timestamp would always exceed the window and veto the first
        reminder forever, so an unfired channel is treated as having no
        reminder to measure from.
        """
        if self.config.legitimate_gap_ms is None or self.state.last_fired_at <= 0:
            return False
        return now - self.state.last_fired_at > self.config.legitimate_gap_ms

    # ------------------------------------------------------------------
    # State updates
    # ------------------------------------------------------------------

    def record_fired(self, now: int) -> None:
        self.state.fired_count += 1
        self.state.last_fired_at = now
        logger.debug(
            "[%s] reminder %d/%d fired",
            self.channel, self.state.fired_count, self.config.max_reminders_per_session,
        )

    def record_returned(self) -> None:
        """User came back on their own: shorten the next cooldown one step."""
        self.state.fired_count = max(0, self.state.fired_count - 1)

    def record_dismissed(self, now: int) -> None:
        """User dismissed a reminder: push the next one out by half a base cooldown."""
        self.state.last_fired_at = now + self.config.base_cooldown_ms // 2

    def reset_session(self, now: int) -> None:
        self.state = ReminderState(last_fired_at=0, fired_count=0, session_started_at=now)
        logger.debug("[%s] reminder session reset", self.channel)

    def reconfigure(self, config: ReminderConfig) -> None:
        self.config = config

    def status(self, now: int) -> Dict[str, Any]:
        return {
            "channel": self.channel,
            "fired_count": self.state.fired_count,
            "max_reminders_per_session": self.config.max_reminders_per_session,
            "last_fired_at": self.state.last_fired_at,
            "session_started_at": self.state.session_started_at,
            "cooldown_ms": self.cooldown_ms(),
            "cooldown_remaining_ms": max(0, self.state.last_fired_at + self.cooldown_ms() - now),
            "style_threshold": self.config.style_threshold,
        }


# ---------------------------------------------------------------------------
# Channel configuration from user settings
# ---------------------------------------------------------------------------

_CHANNEL_BASES: Dict[str, tuple[int, int]] = {
    DISTRACTION_CHANNEL: (2 * 60_000, 15 * 60_000),
    BREAK_CHANNEL: (5 * 60_000, 30 * 60_000),
}


def style_threshold_for(style: ReminderStyle) -> int:
    return STYLE_THRESHOLDS.get(ReminderStyle(style), STYLE_THRESHOLDS[ReminderStyle.STANDARD])


def build_reminder_config(settings: MonitorSettings, channel: str) -> ReminderConfig:
    """Derive a channel's timing parameters from the user's settings."""
    base, maximum = _CHANNEL_BASES[channel]
    multiplier = FREQUENCY_MULTIPLIERS[Frequency(settings.frequency)]
    if channel == DISTRACTION_CHANNEL:
        return ReminderConfig(
            base_cooldown_ms=int(base * multiplier),
            max_cooldown_ms=int(maximum * multiplier),
            escalation_factor=1.5,
            max_reminders_per_session=settings.max_reminders_per_session,
            legitimate_gap_ms=settings.legitimate_gap_ms,
            style_threshold=style_threshold_for(settings.reminder_style),
        )
    return ReminderConfig(
        base_cooldown_ms=int(base * multiplier),
        max_cooldown_ms=int(maximum * multiplier),
        escalation_factor=1.5,
        max_reminders_per_session=settings.max_reminders_per_session,
        legitimate_gap_ms=None,
        style_threshold=1,
    )
