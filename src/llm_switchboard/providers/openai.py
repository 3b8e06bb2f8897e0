"""OpenAI-compatible provider.

Serves any backend that speaks the OpenAI chat completion API: OpenAI itself,
Groq's OpenAI endpoint, and custom endpoints (vLLM, LM Studio, LiteLLM, ...).
"""

from __future__ import annotations

import logging

from ..router.types import BackendFamily, CompletionRequest, RawCompletion
from .base import (
    LLMProvider,
    build_messages,
    coerce_tokens,
    resolve_max_tokens,
    resolve_temperature,
)

logger = logging.getLogger(__name__)

OPENAI_API_BASE = "https://api.openai.com/v1"
GROQ_API_BASE = "https://api.groq.com/openai/v1"


class OpenAIProvider(LLMProvider):
    """Provider for OpenAI and OpenAI-compatible backends."""

    family = BackendFamily.OPENAI

    def __init__(self, *args, organization: str | None = None, **kwargs):
        super().__init__(*args, **kwargs)
        self.organization = organization

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        if self.organization:
            headers["OpenAI-Organization"] = self.organization
        return headers

    async def execute(self, request: CompletionRequest, model: str) -> RawCompletion:
        self._check_streaming(request)
        body = {
            "model": model,
            "messages": build_messages(request),
            "max_tokens": resolve_max_tokens(request),
            "temperature": resolve_temperature(request),
            "stream": False,
        }
        data = await self._post_json(
            f"{self.base_url}/chat/completions", model, body, headers=self._headers()
        )

        try:
            choices = data["choices"]
            content = choices[0]["message"].get("content") if choices else ""
            usage = data.get("usage") or {}
            return RawCompletion(
                content=content or "",
                prompt_tokens=coerce_tokens(usage.get("prompt_tokens")),
                completion_tokens=coerce_tokens(usage.get("completion_tokens")),
            )
        except (KeyError, IndexError, TypeError, ValueError, AttributeError) as e:
            raise self._malformed(model, e) from e


class GroqProvider(OpenAIProvider):
    """Groq serves the OpenAI protocol under its own base URL."""

    family = BackendFamily.GROQ


class CustomProvider(OpenAIProvider):
    """A user-supplied OpenAI-compatible endpoint."""

    family = BackendFamily.CUSTOM
