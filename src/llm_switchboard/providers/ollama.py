"""Ollama provider for locally hosted models."""

from __future__ import annotations

import logging

from ..router.types import BackendFamily, CompletionRequest, RawCompletion
from .base import LLMProvider, build_messages, resolve_max_tokens, resolve_temperature

logger = logging.getLogger(__name__)


class OllamaProvider(LLMProvider):
    """Provider for an Ollama server's native chat API.

    Local models are free and their token counts are not accounted, so every
    completion reports zero prompt and completion tokens.
    """

    family = BackendFamily.OLLAMA

    async def execute(self, request: CompletionRequest, model: str) -> RawCompletion:
        self._check_streaming(request)
        body = {
            "model": model,
            "messages": build_messages(request),
            "stream": False,
            "options": {
                "temperature": resolve_temperature(request),
                "num_predict": resolve_max_tokens(request),
            },
        }
        data = await self._post_json(f"{self.base_url}/api/chat", model, body)

        try:
            content = data["message"]["content"]
        except (KeyError, TypeError) as e:
            raise self._malformed(model, e) from e
        return RawCompletion(content=content or "")
