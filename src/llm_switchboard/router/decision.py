"""Router: scores every available (backend, model) pair for a request.

Each pair gets a weighted sum of four factors, each roughly in [0, 1]:

- cost: ``1 - combined_price_per_1k / 0.2``, so free backends score 1 and
  anything at or above $0.20 per 1K tokens scores zero or below
- performance: ``min(1000 / average_latency_ms, 1)`` from recorded stats,
  0.5 for pairs never observed
- capability: 0.5 baseline, +0.3 for attachments on a document-capable
  backend, +0.2 for prompts mentioning "code" on a code-capable backend
- availability: 1.0 when the backend is configured

Pairs are ranked with a stable sort, so equal scores keep registry order
(backends in registration order, models in profile order).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from ..errors import NoBackendsAvailable
from .types import (
    FACTOR_WEIGHTS,
    BackendProfile,
    CompletionRequest,
    RoutingAlternative,
    RoutingDecision,
)

if TYPE_CHECKING:
    from ..observability.stats import StatsTracker
    from ..providers.registry import BackendRegistry

logger = logging.getLogger(__name__)

COST_CEILING = 0.2
NEUTRAL_PERFORMANCE = 0.5
REFERENCE_LATENCY_MS = 1000.0
MAX_ALTERNATIVES = 3


def cost_factor(profile: BackendProfile) -> float:
    return 1 - profile.pricing.combined / COST_CEILING


def performance_factor(average_latency_ms: float | None) -> float:
    if average_latency_ms is None:
        return NEUTRAL_PERFORMANCE
    if average_latency_ms <= 0:
        return 1.0
    return min(REFERENCE_LATENCY_MS / average_latency_ms, 1.0)


def capability_factor(request: CompletionRequest, profile: BackendProfile) -> float:
    score = 0.5
    if request.files and profile.capabilities.document_analysis:
        score += 0.3
    if "code" in request.prompt and profile.capabilities.code_generation:
        score += 0.2
    return score


def availability_factor(available: bool) -> float:
    return 1.0 if available else 0.0


@dataclass(frozen=True)
class ScoredCandidate:
    backend: str
    model: str
    score: float
    factors: dict[str, float]

    @property
    def reasoning(self) -> str:
        parts = ", ".join(
            f"{name}: {value * 100:.0f}%" for name, value in self.factors.items()
        )
        return f"{self.backend}/{self.model} - {parts}"


class Router:
    """Picks a backend and model for requests that do not name one."""

    def __init__(self, registry: BackendRegistry, stats: StatsTracker):
        self.registry = registry
        self.stats = stats

    def score(
        self, request: CompletionRequest, profile: BackendProfile, model: str
    ) -> ScoredCandidate:
        """Score a single (backend, model) pair."""
        stats = self.stats.get(profile.name, model)
        factors = {
            "cost": cost_factor(profile),
            "performance": performance_factor(
                stats.average_latency_ms if stats else None
            ),
            "capability": capability_factor(request, profile),
            "availability": availability_factor(
                self.registry.is_available(profile.name)
            ),
        }
        total = sum(FACTOR_WEIGHTS[name] * value for name, value in factors.items())
        return ScoredCandidate(profile.name, model, total, factors)

    def rank(self, request: CompletionRequest) -> list[ScoredCandidate]:
        """All available pairs, best first."""
        candidates = [
            self.score(request, profile, model)
            for profile in self.registry.available_profiles()
            for model in profile.models
        ]
        return sorted(candidates, key=lambda c: c.score, reverse=True)

    def route(self, request: CompletionRequest) -> RoutingDecision:
        ranked = self.rank(request)
        if not ranked:
            raise NoBackendsAvailable()

        best = ranked[0]
        alternatives = tuple(
            RoutingAlternative(c.backend, c.model, c.score, c.reasoning)
            for c in ranked[1:1 + MAX_ALTERNATIVES]
        )
        decision = RoutingDecision(
            backend=best.backend,
            model=best.model,
            reasoning=best.reasoning,
            confidence=min(max(best.score, 0.0), 1.0),
            alternatives=alternatives,
            factors=dict(FACTOR_WEIGHTS),
        )
        logger.info(
            "Smart routing selected: %s/%s (%s)",
            best.backend, best.model, best.reasoning,
            extra={"backend": best.backend, "model": best.model,
                   "request_id": request.id, "score": round(best.score, 4)},
        )
        return decision
