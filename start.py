"""
Convenience launcher — starts the FocusGuard engine and (optionally) the
scenario simulator against it.

Usage:
    python start.py                 # engine only
    python start.py --simulate      # engine + simulator (all scenarios)
"""

from __future__ import annotations

import argparse
import subprocess
import sys
import time

from focusguard.config import config


def start_engine() -> subprocess.Popen:
    return subprocess.Popen(
        [sys.executable, "-m", "focusguard.main"],
        stdout=sys.stdout,
        stderr=sys.stderr,
    )


def start_simulator() -> subprocess.Popen:
    return subprocess.Popen(
        [sys.executable, "scripts/simulate.py"],
        stdout=sys.stdout,
        stderr=sys.stderr,
    )


def main() -> None:
    parser = argparse.ArgumentParser(description="Start the FocusGuard engine")
    parser.add_argument("--simulate", action="store_true", help="Also run the scenario simulator")
    args = parser.parse_args()

    print("Starting FocusGuard engine…")
    engine_proc = start_engine()
    sim_proc = None

    if args.simulate:
        time.sleep(1.5)  # give engine a moment to bind
        print("Starting simulator…")
        sim_proc = start_simulator()

    print(f"\nEngine → http://{config.api_host}:{config.api_port}")
    print("Press Ctrl+C to stop.\n")

    try:
        engine_proc.wait()
    except KeyboardInterrupt:
        print("\nShutting down…")
        if sim_proc is not None:
            sim_proc.terminate()
        engine_proc.terminate()
        engine_proc.wait()


if __name__ == "__main__":
    main()
