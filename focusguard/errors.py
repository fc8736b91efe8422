"""
Error taxonomy.

Expected conditions (already on break, no focus target) never raise; they
come back as a falsy TransitionResult. Only storage faults are exceptions,
and components catch those at the persistence boundary.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class InvalidTransition(str, Enum):
    ALREADY_ON_BREAK = "already_on_break"
    BREAK_ALREADY_ACTIVE = "break_already_active"
    NOT_ON_BREAK = "not_on_break"
    NOT_WORKING = "not_working"
    NOT_PAUSED = "not_paused"
    UNKNOWN_BREAK_TYPE = "unknown_break_type"


@dataclass(frozen=True)
class TransitionResult:
    ok: bool
    reason: Optional[InvalidTransition] = None

    def __bool__(self) -> bool:
        return self.ok

    @classmethod
    def success(cls) -> "TransitionResult":
        return cls(ok=True)

    @classmethod
    def failure(cls, reason: InvalidTransition) -> "TransitionResult":
        return cls(ok=False, reason=reason)


class PersistenceFailure(Exception):
    """A snapshot could not be read from or written to the store."""

    def __init__(self, key: str, message: str):
        super().__init__(f"{key}: {message}")
        self.key = key
