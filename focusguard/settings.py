"""
User-tunable runtime settings — persisted to data/settings.json.

The monitor owns one SettingsStore; read with get(), mutate and save with
update(patch). Values are validated when the file is loaded and on every
update, so components only ever see a well-formed MonitorSettings.
"""

from __future__ import annotations

import json
import logging
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field, ValidationError, field_validator

logger = logging.getLogger(__name__)


class ReminderStyle(str, Enum):
    GENTLE = "gentle"
    STANDARD = "standard"
    ASSERTIVE = "assertive"


class Frequency(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    ADAPTIVE = "adaptive"


class BreakType(BaseModel):
    duration_minutes: int = Field(..., gt=0, le=240)
    label: str


def _default_break_types() -> Dict[str, BreakType]:
    return {
        "short": BreakType(duration_minutes=5, label="Short Break (5 min)"),
        "medium": BreakType(duration_minutes=15, label="Medium Break (15 min)"),
        "long": BreakType(duration_minutes=30, label="Long Break (30 min)"),
    }


REQUIRED_BREAK_TYPES = ("short", "medium", "long")


class MonitorSettings(BaseModel):
    work_time_threshold_minutes: int = Field(30, ge=5, le=180)
    notifications_enabled: bool = True
    break_types: Dict[str, BreakType] = Field(default_factory=_default_break_types)

    # distraction reminders
    enabled: bool = True
    reminder_style: ReminderStyle = ReminderStyle.GENTLE
    frequency: Frequency = Frequency.ADAPTIVE
    max_reminders_per_session: int = Field(10, ge=1, le=100)
    legitimate_gap_ms: int = Field(10 * 60_000, ge=60_000, le=4 * 3600_000)
    show_during_breaks: bool = False

    @field_validator("break_types")
    @classmethod
    def _all_break_types_present(cls, v: Dict[str, BreakType]) -> Dict[str, BreakType]:
        missing = [k for k in REQUIRED_BREAK_TYPES if k not in v]
        if missing:
            raise ValueError(f"missing break types: {', '.join(missing)}")
        return v

    def break_duration_ms(self, break_type: str) -> Optional[int]:
        bt = self.break_types.get(break_type)
        if bt is None:
            return None
        return bt.duration_minutes * 60_000

    @property
    def work_time_threshold_ms(self) -> int:
        return self.work_time_threshold_minutes * 60_000


DEFAULTS: Dict[str, Any] = MonitorSettings().model_dump(mode="json")


class SettingsStore:
    """JSON-file backed holder of the current MonitorSettings."""

    def __init__(self, path: Path):
        self.path = Path(path)
        self._current: Optional[MonitorSettings] = None

    def _load(self) -> MonitorSettings:
        settings = MonitorSettings()
        if self.path.exists():
            try:
                saved = json.loads(self.path.read_text())
                known = {k: v for k, v in saved.items() if k in MonitorSettings.model_fields}
                settings = MonitorSettings.model_validate({**DEFAULTS, **known})
            except (ValueError, ValidationError, AttributeError) as e:
                # malformed file, fall back to defaults
                logger.warning("Ignoring unreadable settings file %s: %s", self.path, e)
        return settings

    def get(self) -> MonitorSettings:
        """Return a copy of the current settings."""
        if self._current is None:
            self._current = self._load()
        return self._current.model_copy(deep=True)

    def update(self, patch: Dict[str, Any]) -> MonitorSettings:
        """Apply *patch* (unknown keys ignored), validate, persist, return full settings."""
        current = self.get().model_dump(mode="json")
        for k, v in patch.items():
            if k in MonitorSettings.model_fields:
                current[k] = v
        updated = MonitorSettings.model_validate(current)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(updated.model_dump(mode="json"), indent=2))
        self._current = updated
        logger.info("Settings updated: %s", sorted(k for k in patch if k in MonitorSettings.model_fields))
        return updated.model_copy(deep=True)

    def reset(self) -> MonitorSettings:
        return self.update(DEFAULTS)
