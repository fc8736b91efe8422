"""
Activity Simulator — drives the FocusGuard engine with synthetic browser
events so you can watch the timer, deviation counters and reminder outbox
without the real browser extension.

Usage:
    # Make sure the engine is running first:
    #   python start.py
    # Then in a separate terminal:
    python scripts/simulate.py                      # default: cycle all scenarios
    python scripts/simulate.py --scenario wander    # specific scenario
    python scripts/simulate.py --loop               # repeat forever
    python scripts/simulate.py --speed 2.0          # 2× faster
"""

from __future__ import annotations

import argparse
import json
import random
import time
import urllib.error
import urllib.request
from typing import Iterator

API = "http://127.0.0.1:8766"

FOCUS_URL = "https://docs.python.org/3/library/asyncio.html"
DISTRACTIONS = [
    "https://www.youtube.com/watch?v=dQw4w9WgXcQ",
    "https://reddit.com/r/learnpython",
    "https://news.ycombinator.com",
    "https://twitter.com/home",
]


# ---------------------------------------------------------------------------
# Low-level HTTP helpers
# ---------------------------------------------------------------------------

def _request(method: str, path: str, body: list | dict | None = None) -> dict | list | None:
    data = json.dumps(body).encode() if body is not None else None
    req = urllib.request.Request(
        f"{API}{path}",
        data=data,
        headers={"Content-Type": "application/json"},
        method=method,
    )
    try:
        with urllib.request.urlopen(req, timeout=3) as r:
            raw = r.read()
            return json.loads(raw) if raw else {}
    except urllib.error.HTTPError as e:
        print(f"  [!] {method} {path} → {e.code}")
        return None
    except (urllib.error.URLError, OSError) as e:
        print(f"  [!] Engine unreachable: {e}")
        return None


def _get(path: str) -> dict | list | None:
    return _request("GET", path)


def send_events(events: list[dict]) -> bool:
    return _request("POST", "/activity/batch", events) is not None


def _tab(url: str, tab_id: int = 1) -> dict:
    return {"type": "TAB_ACTIVATED", "data": {"tabId": tab_id, "url": url}}


def _tick() -> dict:
    return {"type": "TICK"}


# ---------------------------------------------------------------------------
# Scenario generators: each yields (description, action, delay)
# An action is either a list of activity events or a (method, path, body) call.
# ---------------------------------------------------------------------------

Step = tuple[str, "list[dict] | tuple[str, str, dict | None]", float]


def scenario_steady(speed: float = 1.0) -> Iterator[Step]:
    """Heads-down work on the focus tab."""
    yield ("Steady: set focus target", ("PUT", "/focus/target", {"id": FOCUS_URL, "descriptor": FOCUS_URL}), 1.0 / speed)
    yield ("Steady: start work", ("POST", "/timer/start", None), 1.0 / speed)
    for i in range(6):
        yield (f"Steady [{i+1}/6]: on focus", [_tab(FOCUS_URL), _tick()], 2.0 / speed)


def scenario_wander(speed: float = 1.0) -> Iterator[Step]:
    """Drifting off to other sites and lingering past the debounce."""
    yield ("Wander: set focus target", ("PUT", "/focus/target", {"id": FOCUS_URL, "descriptor": FOCUS_URL}), 1.0 / speed)
    for i in range(5):
        url = random.choice(DISTRACTIONS)
        yield (f"Wander [{i+1}/5]: off to {url.split('/')[2]}", [_tab(url, tab_id=10 + i)], 4.0 / speed)
        yield (f"Wander [{i+1}/5]: tick", [_tick()], 1.0 / speed)
    yield ("Wander: quick glance away and back", [_tab(DISTRACTIONS[0], 20), _tab(FOCUS_URL)], 1.0 / speed)


def scenario_break(speed: float = 1.0) -> Iterator[Step]:
    """Take a short break, then cut it short."""
    yield ("Break: start short break", ("POST", "/timer/break/start", {"break_type": "short"}), 2.0 / speed)
    yield ("Break: tick while on break", [_tick()], 2.0 / speed)
    yield ("Break: cancel early", ("POST", "/timer/break/cancel", None), 1.0 / speed)


SCENARIOS = {
    "steady": scenario_steady,
    "wander": scenario_wander,
    "break": scenario_break,
}

CYCLE = ["steady", "wander", "break", "steady"]


# ---------------------------------------------------------------------------
# Runner
# ---------------------------------------------------------------------------

def _run_step(action) -> bool:
    if isinstance(action, list):
        return send_events(action)
    method, path, body = action
    return _request(method, path, body) is not None


def run_scenario(name: str, speed: float) -> None:
    gen_fn = SCENARIOS[name]
    print(f"\n{'─' * 60}")
    print(f"  SCENARIO: {name.upper()}")
    print(f"{'─' * 60}")

    for description, action, delay in gen_fn(speed):
        ok = _run_step(action)
        timer = _get("/timer") or {}
        focus = _get("/focus") or {}
        pending = _get("/notifications") or []
        minutes = timer.get("current_work_time_ms", 0) / 60_000

        status = "✓" if ok else "✗"
        print(
            f"  {status} {timer.get('mode', '?'):<12} {minutes:5.1f} min  "
            f"dev={focus.get('session_deviation_count', 0):<3} "
            f"notes={len(pending):<2} {description}"
        )
        for note in pending:
            print(f"      ↳ {note['title']}: {note['body']}")
        time.sleep(delay)


def main() -> None:
    parser = argparse.ArgumentParser(description="FocusGuard Activity Simulator")
    parser.add_argument(
        "--scenario",
        choices=list(SCENARIOS.keys()) + ["cycle"],
        default="cycle",
        help="Which scenario to run (default: cycle through all)",
    )
    parser.add_argument("--loop", action="store_true", help="Repeat indefinitely")
    parser.add_argument("--speed", type=float, default=1.0, help="Speed multiplier (default 1.0)")
    args = parser.parse_args()

    health = _get("/health")
    if not health:
        print(f"[!] Cannot reach engine at {API}")
        print("    Start it first: python start.py")
        return
    print(f"[✓] Engine connected — FocusGuard v{health.get('version', '?')} ({health.get('status')})")
    print(f"    Speed: {args.speed}×  |  Scenario: {args.scenario}")

    sequence = CYCLE if args.scenario == "cycle" else [args.scenario]

    while True:
        for name in sequence:
            run_scenario(name, args.speed)
        if not args.loop:
            break
        print("\n[↺] Looping...\n")
        time.sleep(2.0)

    print("\n[✓] Simulation complete.")


if __name__ == "__main__":
    main()
