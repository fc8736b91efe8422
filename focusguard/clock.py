"""Wall-clock helpers. All engine timestamps are integer epoch milliseconds."""

from __future__ import annotations

import time
from typing import Callable

Clock = Callable[[], int]

MINUTE_MS = 60_000


def now_ms() -> int:
    return int(time.time() * 1000)
