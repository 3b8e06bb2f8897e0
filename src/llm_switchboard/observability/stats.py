"""Per-(backend, model) performance statistics used by the router."""

from __future__ import annotations

import dataclasses
import logging
import threading
import time

from ..router.types import BackendStats, CompletionResponse

logger = logging.getLogger(__name__)


class StatsTracker:
    """Thread-safe rolling counters keyed by ``backend:model``.

    The latency estimate is a two-point running mean: each new sample is
    averaged with the previous estimate, so older samples decay by half on
    every call. Success rate starts at 1.0 and is not decremented.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._stats: dict[str, BackendStats] = {}

    @staticmethod
    def _key(backend: str, model: str) -> str:
        return f"{backend}:{model}"

    def record(
        self,
        backend: str,
        model: str,
        response: CompletionResponse,
        latency_ms: float,
    ) -> None:
        try:
            tokens = response.usage.total_tokens
            cost = response.usage.cost
            now = time.time()
            key = self._key(backend, model)
            with self._lock:
                existing = self._stats.get(key)
                if existing is None:
                    self._stats[key] = BackendStats(
                        backend=backend,
                        model=model,
                        total_requests=1,
                        total_tokens=tokens,
                        total_cost=cost,
                        average_latency_ms=latency_ms,
                        success_rate=1.0,
                        last_used=now,
                    )
                else:
                    existing.total_requests += 1
                    existing.total_tokens += tokens
                    existing.total_cost += cost
                    existing.average_latency_ms = (existing.average_latency_ms + latency_ms) / 2
                    existing.last_used = now
        except Exception:
            logger.exception("Failed to record stats for %s/%s", backend, model)

    def get(self, backend: str, model: str) -> BackendStats | None:
        with self._lock:
            stats = self._stats.get(self._key(backend, model))
            return dataclasses.replace(stats) if stats else None

    def snapshot(self) -> list[BackendStats]:
        with self._lock:
            return [dataclasses.replace(s) for s in self._stats.values()]

    @property
    def size(self) -> int:
        with self._lock:
            return len(self._stats)

    def clear(self) -> None:
        with self._lock:
            self._stats.clear()
