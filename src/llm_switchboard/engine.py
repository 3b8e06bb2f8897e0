"""Dispatch engine, the single entry point for completion requests.

Pipeline for one dispatch:
1. Auto-route when the request names no backend
2. Resolve the backend's adapter
3. Execute and time the backend call
4. Price the usage from the backend profile
5. Assemble the normalized response
6. Record statistics and a metrics event
7. Return the response, or raise the typed failure

No retry or fallback to another backend happens here; callers may
re-dispatch.
"""

from __future__ import annotations

import asyncio
import dataclasses
import logging
import time
import uuid
from typing import Sequence

from .config import SwitchboardConfig
from .errors import (
    BackendNotFound,
    ComparisonFailed,
    DispatchError,
    SwitchboardError,
)
from .observability.metrics import DispatchEvent, MetricsCollector
from .observability.stats import StatsTracker
from .pipeline.context import ContextStore, InMemoryContextStore
from .pipeline.presets import apply_preset
from .pipeline.quota import QuotaTracker
from .providers.registry import BackendRegistry, create_registry
from .router.decision import Router
from .router.types import (
    BackendStats,
    BackendStatus,
    CompletionRequest,
    CompletionResponse,
    ConversationMessage,
    MessageRole,
    Performance,
    Pricing,
    RawCompletion,
    RoutingDecision,
    Usage,
)

logger = logging.getLogger(__name__)


def calculate_cost(raw: RawCompletion, pricing: Pricing | None) -> float:
    """Price a completion; missing pricing costs nothing."""
    if pricing is None:
        return 0.0
    input_cost = (raw.prompt_tokens / 1000) * pricing.input_per_1k
    output_cost = (raw.completion_tokens / 1000) * pricing.output_per_1k
    return input_cost + output_cost


def calculate_throughput(total_tokens: int, latency_ms: float) -> float:
    if latency_ms <= 0:
        return 0.0
    return total_tokens / (latency_ms / 1000)


class DispatchEngine:
    """Routes, executes and accounts completion requests.

    All shared state (registry, statistics, metrics, context and quota
    stores) is owned by the engine instance; build a fresh engine per test.
    """

    def __init__(
        self,
        registry: BackendRegistry,
        stats: StatsTracker | None = None,
        metrics: MetricsCollector | None = None,
        contexts: ContextStore | None = None,
        quotas: QuotaTracker | None = None,
        config: SwitchboardConfig | None = None,
    ):
        self.config = config or SwitchboardConfig()
        self.registry = registry
        self.stats = stats or StatsTracker()
        self.metrics = metrics or MetricsCollector(
            max_events=self.config.observability.max_events
        )
        self.contexts = contexts if contexts is not None else InMemoryContextStore(
            ttl_seconds=self.config.context.ttl_seconds,
            max_messages=self.config.context.max_messages,
            max_conversations=self.config.context.max_conversations,
        )
        self.quotas = quotas or QuotaTracker(
            monthly_requests=self.config.quota.monthly_requests,
            max_tokens_per_request=self.config.quota.max_tokens_per_request,
            period_days=self.config.quota.period_days,
        )
        self.router = Router(self.registry, self.stats)

    @classmethod
    def from_config(cls, config: SwitchboardConfig) -> DispatchEngine:
        return cls(create_registry(config), config=config)

    # ── Single dispatch ──────────────────────────────────────────────

    async def dispatch(self, request: CompletionRequest) -> CompletionResponse:
        return await self._dispatch(request, "auto" if request.is_auto_routed else "explicit")

    async def _dispatch(self, request: CompletionRequest, source: str) -> CompletionResponse:
        routing: RoutingDecision | None = None
        if request.is_auto_routed:
            routing = self.router.route(request)
            backend, model = routing.backend, routing.model
        else:
            backend = request.backend
            model = request.model or self._default_model(backend)

        start = time.monotonic()
        try:
            adapter = self.registry.adapter(backend)
            raw = await adapter.execute(request, model)
        except DispatchError as e:
            latency = (time.monotonic() - start) * 1000
            self._record_failure(request, backend, model, source, latency, e)
            raise
        latency = (time.monotonic() - start) * 1000

        response = self._finalize(request, backend, model, raw, latency, routing)
        self.stats.record(backend, model, response, latency)
        self.metrics.record(DispatchEvent(
            timestamp=response.timestamp,
            backend=backend,
            model=model,
            source=source,
            latency_ms=latency,
            success=True,
            user_id=request.user_id,
            team_id=request.team_id,
            tokens_in=response.usage.prompt_tokens,
            tokens_out=response.usage.completion_tokens,
            cost=response.usage.cost,
        ))

        logger.info(
            "Dispatched request %s: backend=%s model=%s latency=%.0fms cost=%.6f",
            request.id, backend, model, latency, response.usage.cost,
            extra={"request_id": request.id, "backend": backend, "model": model,
                   "latency_ms": round(latency, 1), "cost": response.usage.cost,
                   "user_id": request.user_id, "source": source},
        )
        return response

    def _default_model(self, backend: str) -> str | None:
        try:
            return self.registry.profile(backend).default_model
        except BackendNotFound:
            return None

    def _finalize(
        self,
        request: CompletionRequest,
        backend: str,
        model: str,
        raw: RawCompletion,
        latency_ms: float,
        routing: RoutingDecision | None,
    ) -> CompletionResponse:
        pricing = self.registry.profile(backend).pricing
        usage = Usage(
            prompt_tokens=raw.prompt_tokens,
            completion_tokens=raw.completion_tokens,
            cost=calculate_cost(raw, pricing),
        )
        return CompletionResponse(
            request_id=request.id,
            backend=backend,
            model=model,
            content=raw.content,
            usage=usage,
            performance=Performance(
                latency_ms=latency_ms,
                throughput=calculate_throughput(usage.total_tokens, latency_ms),
                reliability=1.0,
            ),
            routing=routing,
        )

    def _record_failure(
        self,
        request: CompletionRequest,
        backend: str,
        model: str | None,
        source: str,
        latency_ms: float,
        error: SwitchboardError,
    ) -> None:
        logger.error(
            "%s request failed: %s", backend, error,
            extra={"request_id": request.id, "backend": backend, "model": model,
                   "latency_ms": round(latency_ms, 1), "user_id": request.user_id,
                   "status_code": getattr(error, "status_code", None)},
        )
        self.metrics.record(DispatchEvent(
            timestamp=time.time(),
            backend=backend,
            model=model or "",
            source=source,
            latency_ms=latency_ms,
            success=False,
            user_id=request.user_id,
            team_id=request.team_id,
            error_code=error.error_code,
        ))

    # ── Comparison mode ──────────────────────────────────────────────

    async def compare(
        self,
        request: CompletionRequest,
        targets: Sequence[tuple[str, str]] | None = None,
        timeout: float | None = None,
    ) -> list[CompletionResponse]:
        """Dispatch one prompt to several fixed (backend, model) targets at once.

        Failed or timed-out targets are logged and left out. Raises
        :class:`ComparisonFailed` only when no target succeeds.
        """
        targets = list(targets if targets is not None else self.config.compare.targets)
        if timeout is None:
            timeout = self.config.compare.timeout_seconds

        max_tokens = self.config.compare.max_tokens
        if request.options.max_tokens:
            max_tokens = min(max_tokens, request.options.max_tokens)
        options = dataclasses.replace(request.options, max_tokens=max_tokens)
        metadata = dataclasses.replace(request.metadata, command="compare")

        requests = [
            dataclasses.replace(
                request,
                id=f"comp_{uuid.uuid4().hex[:8]}_{i}",
                backend=backend,
                model=model,
                options=options,
                metadata=metadata,
            )
            for i, (backend, model) in enumerate(targets)
        ]
        results = await asyncio.gather(
            *(self._bounded(r, timeout) for r in requests),
            return_exceptions=True,
        )

        responses: list[CompletionResponse] = []
        failures: dict[str, Exception] = {}
        for (backend, model), result in zip(targets, results):
            if isinstance(result, CompletionResponse):
                responses.append(result)
            elif isinstance(result, Exception):
                logger.warning("Comparison failed for %s/%s: %s", backend, model, result,
                               extra={"backend": backend, "model": model})
                failures[f"{backend}/{model}"] = result
            else:
                # BaseException such as CancelledError
                raise result

        if not responses:
            raise ComparisonFailed(failures)
        return responses

    async def _bounded(
        self, request: CompletionRequest, timeout: float | None
    ) -> CompletionResponse:
        if timeout is None:
            return await self._dispatch(request, "compare")
        return await asyncio.wait_for(self._dispatch(request, "compare"), timeout)

    async def compare_for_user(
        self,
        request: CompletionRequest,
        targets: Sequence[tuple[str, str]] | None = None,
        timeout: float | None = None,
    ) -> list[CompletionResponse]:
        """Quota-checked comparison charged to the requesting user.

        One request is reserved up front; once the batch completes, every
        further successful target is charged as a request of its own, with
        the batch's tokens and cost. A batch where every target fails
        charges nothing.
        """
        subscription = self.quotas.reserve(request.user_id, request.team_id)
        max_tokens = subscription.max_tokens_per_request
        if request.options.max_tokens:
            max_tokens = min(max_tokens, request.options.max_tokens)
        request = dataclasses.replace(
            request, options=dataclasses.replace(request.options, max_tokens=max_tokens)
        )

        try:
            responses = await self.compare(request, targets, timeout)
        except BaseException:
            self.quotas.release(request.user_id, request.team_id)
            raise

        self.quotas.record_usage(
            request.user_id,
            request.team_id,
            requests=len(responses) - 1,
            tokens=sum(r.usage.total_tokens for r in responses),
            cost=sum(r.usage.cost for r in responses),
        )
        return responses

    # ── Conversation flow ────────────────────────────────────────────

    async def converse(
        self, request: CompletionRequest, channel_id: str
    ) -> CompletionResponse:
        """Quota-checked dispatch that carries the user's conversation context.

        A known ``metadata.command`` (ask, analyze, generate, summarize,
        translate, code) applies that task's preset first. One request is
        reserved against the user's quota before dispatch and handed back if
        the dispatch fails. On success the prompt and the reply are appended
        to the context store and the tokens and cost are charged.
        """
        request, preset = apply_preset(request, self.registry.is_available)
        subscription = self.quotas.reserve(request.user_id, request.team_id)

        max_tokens = subscription.max_tokens_per_request
        if request.options.max_tokens:
            max_tokens = min(max_tokens, request.options.max_tokens)
        context = None
        if preset is None or preset.uses_context:
            context = self.contexts.get_context(request.user_id, channel_id)
        metadata = request.metadata
        if metadata.channel is None:
            metadata = dataclasses.replace(metadata, channel=channel_id)
        request = dataclasses.replace(
            request,
            context=context,
            options=dataclasses.replace(request.options, max_tokens=max_tokens),
            metadata=metadata,
        )

        try:
            response = await self.dispatch(request)
        except BaseException:
            self.quotas.release(request.user_id, request.team_id)
            raise

        self.contexts.add_message(request.user_id, channel_id, ConversationMessage(
            role=MessageRole.USER,
            content=request.prompt,
            tokens=response.usage.prompt_tokens,
        ))
        self.contexts.add_message(request.user_id, channel_id, ConversationMessage(
            role=MessageRole.ASSISTANT,
            content=response.content,
            backend=response.backend,
            model=response.model,
            tokens=response.usage.completion_tokens,
        ))
        self.quotas.record_usage(
            request.user_id,
            request.team_id,
            requests=0,
            tokens=response.usage.total_tokens,
            cost=response.usage.cost,
        )
        return response

    # ── Observability ────────────────────────────────────────────────

    def list_backends(self) -> list[BackendStatus]:
        return self.registry.list_profiles()

    def list_stats(self) -> list[BackendStats]:
        return self.stats.snapshot()

    def metrics_summary(self) -> dict:
        return self.metrics.get_summary()

    async def close(self) -> None:
        """Clean up adapter connections."""
        await self.registry.close()

