"""Shared fixtures and test doubles."""

from __future__ import annotations

import asyncio

import pytest

from llm_switchboard.engine import DispatchEngine
from llm_switchboard.observability.stats import StatsTracker
from llm_switchboard.providers.base import LLMProvider
from llm_switchboard.providers.registry import BackendRegistry
from llm_switchboard.router.types import (
    BackendFamily,
    BackendProfile,
    Capabilities,
    CompletionRequest,
    RawCompletion,
    Pricing,
)


class FakeProvider(LLMProvider):
    """Adapter returning a scripted completion (or raising a scripted error)."""

    family = BackendFamily.CUSTOM

    def __init__(
        self,
        name: str,
        content: str = "ok",
        prompt_tokens: int = 0,
        completion_tokens: int = 0,
        error: Exception | None = None,
        delay: float = 0.0,
    ):
        super().__init__(name, "http://fake.invalid")
        self.content = content
        self.prompt_tokens = prompt_tokens
        self.completion_tokens = completion_tokens
        self.error = error
        self.delay = delay
        self.calls: list[tuple[CompletionRequest, str]] = []

    async def execute(self, request: CompletionRequest, model: str) -> RawCompletion:
        self.calls.append((request, model))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return RawCompletion(
            content=f"{self.content} from {self.name}/{model}",
            prompt_tokens=self.prompt_tokens,
            completion_tokens=self.completion_tokens,
        )


def make_profile(
    name: str,
    models: tuple[str, ...] = ("m1",),
    input_price: float = 0.0,
    output_price: float = 0.0,
    code: bool = False,
    documents: bool = False,
    family: BackendFamily = BackendFamily.CUSTOM,
) -> BackendProfile:
    return BackendProfile(
        name=name,
        family=family,
        models=models,
        pricing=Pricing(input_per_1k=input_price, output_per_1k=output_price),
        capabilities=Capabilities(code_generation=code, document_analysis=documents),
    )


@pytest.fixture
def local_and_cloud():
    """A free local backend and a priced cloud backend, both configured."""
    registry = BackendRegistry()
    local = FakeProvider("local", prompt_tokens=10, completion_tokens=20)
    cloud = FakeProvider("cloud", prompt_tokens=1000, completion_tokens=2000)
    registry.register(make_profile("local", ("llama2",)), local)
    registry.register(
        make_profile("cloud", ("gpt-4",), input_price=0.03, output_price=0.06),
        cloud,
    )
    return registry, local, cloud


@pytest.fixture
def engine(local_and_cloud):
    registry, _, _ = local_and_cloud
    return DispatchEngine(registry, stats=StatsTracker())
