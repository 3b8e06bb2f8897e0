"""Anthropic Messages API provider.

The Messages API does not accept a system role inside the message list, so
the system instruction and any system turns from prior context travel
together in the top-level ``system`` field.
"""

from __future__ import annotations

import logging
from typing import Any

from ..router.types import BackendFamily, CompletionRequest, RawCompletion
from .base import (
    LLMProvider,
    build_messages,
    coerce_tokens,
    resolve_max_tokens,
    resolve_temperature,
    split_system,
)

logger = logging.getLogger(__name__)

ANTHROPIC_API_BASE = "https://api.anthropic.com"
ANTHROPIC_VERSION = "2023-06-01"


class AnthropicProvider(LLMProvider):
    """Provider for Anthropic's Claude models."""

    family = BackendFamily.ANTHROPIC

    def _headers(self) -> dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "anthropic-version": ANTHROPIC_VERSION,
        }
        if self.api_key:
            headers["x-api-key"] = self.api_key
        return headers

    async def execute(self, request: CompletionRequest, model: str) -> RawCompletion:
        self._check_streaming(request)
        system, turns = split_system(build_messages(request))

        body: dict[str, Any] = {
            "model": model,
            "messages": turns,
            "max_tokens": resolve_max_tokens(request),
            "temperature": resolve_temperature(request),
        }
        if system:
            body["system"] = system

        data = await self._post_json(
            f"{self.base_url}/v1/messages", model, body, headers=self._headers()
        )

        try:
            blocks = data["content"]
            text = ""
            if blocks and blocks[0].get("type") == "text":
                text = blocks[0].get("text", "")
            usage = data.get("usage") or {}
            return RawCompletion(
                content=text,
                prompt_tokens=coerce_tokens(usage.get("input_tokens")),
                completion_tokens=coerce_tokens(usage.get("output_tokens")),
            )
        except (KeyError, IndexError, TypeError, ValueError, AttributeError) as e:
            raise self._malformed(model, e) from e
