"""Dispatch event log for observability."""

from __future__ import annotations

import threading
import time
from collections import defaultdict, deque
from dataclasses import dataclass

DAY_SECONDS = 24 * 60 * 60


@dataclass
class DispatchEvent:
    """Metrics for a single dispatch, successful or not."""

    timestamp: float
    backend: str
    model: str
    source: str  # auto, explicit, compare
    latency_ms: float
    success: bool
    user_id: str = ""
    team_id: str = ""
    tokens_in: int = 0
    tokens_out: int = 0
    cost: float = 0.0
    error_code: str | None = None


class MetricsCollector:
    """Thread-safe bounded event log with aggregate statistics.

    Keeps only the most recent ``max_events`` events in memory.
    """

    def __init__(self, max_events: int = 1000):
        self._lock = threading.Lock()
        self._events: deque[DispatchEvent] = deque(maxlen=max_events)
        self._counters: dict[str, int] = defaultdict(int)
        self._start_time = time.time()

    def record(self, event: DispatchEvent) -> None:
        with self._lock:
            self._events.append(event)
            self._counters["total_dispatches"] += 1
            self._counters[f"backend_{event.backend}"] += 1
            self._counters[f"source_{event.source}"] += 1
            if event.success:
                self._counters["successes"] += 1
            else:
                self._counters["failures"] += 1
                self._counters[f"error_{event.error_code}"] += 1

    def get_summary(self) -> dict:
        """Get aggregate metrics summary over the retained events."""
        with self._lock:
            uptime = round(time.time() - self._start_time, 1)
            if not self._events:
                return {"total_events": 0, "uptime_seconds": uptime}

            events = list(self._events)
            now = time.time()
            latencies = sorted(e.latency_ms for e in events)
            successes = sum(1 for e in events if e.success)

            return {
                "total_events": len(events),
                "last_24h": sum(1 for e in events if now - e.timestamp < DAY_SECONDS),
                "uptime_seconds": uptime,
                "counters": dict(self._counters),
                "success_rate": successes / len(events),
                "latency": {
                    "mean_ms": round(sum(latencies) / len(latencies), 1),
                    "min_ms": round(latencies[0], 1),
                    "max_ms": round(latencies[-1], 1),
                    "p50_ms": round(latencies[len(latencies) // 2], 1),
                    "p99_ms": round(latencies[int(len(latencies) * 0.99)], 1),
                },
                "tokens": {
                    "total_input": sum(e.tokens_in for e in events),
                    "total_output": sum(e.tokens_out for e in events),
                },
                "cost": {
                    "total": round(sum(e.cost for e in events), 6),
                },
                "backend_distribution": {
                    k.replace("backend_", "", 1): v
                    for k, v in self._counters.items()
                    if k.startswith("backend_")
                },
            }

    def clear(self) -> None:
        with self._lock:
            self._events.clear()
            self._counters.clear()
            self._start_time = time.time()
