from __future__ import annotations

from datetime import datetime, timezone
from threading import Lock
from typing import Any

PHASES = ("starting", "bootstrap", "watching", "stopping", "stopped")


def utc_now() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


class RuntimeState:
    """In-memory counters for the status API.

    Nothing here is used to decide what to register; Consul is the only record
    of that.
    """

    def __init__(self) -> None:
        self.lock = Lock()
        self.started_at = utc_now()
        self.phase = "starting"
        self.in_flight = 0
        self.counters: dict[str, int] = {
            "registered": 0,
            "deregistered": 0,
            "failed": 0,
            "skipped": 0,
            "events": 0,
        }

    def set_phase(self, phase: str) -> None:
        if phase not in PHASES:
            raise ValueError(f"Unknown phase {phase!r}")
        with self.lock:
            self.phase = phase

    def count(self, key: str, n: int = 1) -> None:
        with self.lock:
            self.counters[key] = self.counters.get(key, 0) + n

    def task_started(self) -> None:
        with self.lock:
            self.in_flight += 1

    def task_finished(self) -> None:
        with self.lock:
            self.in_flight = max(0, self.in_flight - 1)

    def snapshot(self) -> dict[str, Any]:
        with self.lock:
            return {
                "phase": self.phase,
                "started_at": self.started_at,
                "in_flight": self.in_flight,
                "counters": dict(self.counters),
            }
