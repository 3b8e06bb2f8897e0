"""Google Gemini / AI Studio provider.

Translates the normalized message list into Gemini ``contents`` and reads
text and usage back out of ``generateContent`` responses.
"""

from __future__ import annotations

import logging
from typing import Any

from ..router.types import BackendFamily, CompletionRequest, MessageRole, RawCompletion
from .base import (
    LLMProvider,
    build_messages,
    coerce_tokens,
    resolve_max_tokens,
    resolve_temperature,
    split_system,
)

logger = logging.getLogger(__name__)

GEMINI_API_BASE = "https://generativelanguage.googleapis.com/v1beta"


def _to_gemini_contents(messages: list[dict[str, str]]) -> tuple[list[dict], str | None]:
    """Convert role/content messages to Gemini format.

    Gemini takes system turns as ``systemInstruction``, not as messages; all
    of them are joined in order.

    Returns:
        (gemini_contents, system_instruction)
    """
    system_instruction, turns = split_system(messages)
    contents = []
    for msg in turns:
        content = msg.get("content", "")
        gemini_role = "user" if msg.get("role") == MessageRole.USER.value else "model"
        if content:
            contents.append({"role": gemini_role, "parts": [{"text": content}]})

    return contents, system_instruction


def _extract_text(gemini_resp: dict[str, Any]) -> str:
    """Text of the first candidate, skipping thought parts when possible."""
    candidates = gemini_resp["candidates"]
    if not candidates:
        return ""
    parts = candidates[0].get("content", {}).get("parts", [])
    text = " ".join(
        p.get("text", "") for p in parts
        if "text" in p and not p.get("thought", False)
    )
    # If no non-thought text, include thought text as fallback
    if not text.strip():
        text = " ".join(p.get("text", "") for p in parts if "text" in p)
    return text


class GeminiProvider(LLMProvider):
    """Provider for Google Gemini via the AI Studio API."""

    family = BackendFamily.GEMINI

    async def execute(self, request: CompletionRequest, model: str) -> RawCompletion:
        self._check_streaming(request)

        # Strip provider prefix if present ("google/gemini-2.5-flash")
        gemini_model = model.split("/")[-1]
        url = f"{self.base_url}/models/{gemini_model}:generateContent"
        params = {"key": self.api_key} if self.api_key else None

        contents, system_instruction = _to_gemini_contents(build_messages(request))
        body: dict[str, Any] = {
            "contents": contents,
            "generationConfig": {
                "maxOutputTokens": resolve_max_tokens(request),
                "temperature": resolve_temperature(request),
            },
        }
        if system_instruction:
            body["systemInstruction"] = {"parts": [{"text": system_instruction}]}

        data = await self._post_json(url, model, body, params=params)

        try:
            text = _extract_text(data)
            usage = data.get("usageMetadata") or {}
            return RawCompletion(
                content=text,
                prompt_tokens=coerce_tokens(usage.get("promptTokenCount")),
                completion_tokens=coerce_tokens(usage.get("candidatesTokenCount")),
            )
        except (KeyError, IndexError, TypeError, ValueError, AttributeError) as e:
            raise self._malformed(model, e) from e
