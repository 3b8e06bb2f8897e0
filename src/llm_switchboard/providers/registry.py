"""Backend registry: profiles and adapters keyed by backend name."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass

import httpx

from ..config import BackendConfig, SwitchboardConfig
from ..errors import BackendNotFound, BackendUnavailable, ConfigurationError
from ..router.types import BackendFamily, BackendProfile, BackendStatus
from .anthropic import ANTHROPIC_API_BASE, AnthropicProvider
from .base import LLMProvider
from .gemini import GEMINI_API_BASE, GeminiProvider
from .ollama import OllamaProvider
from .openai import (
    GROQ_API_BASE,
    OPENAI_API_BASE,
    CustomProvider,
    GroqProvider,
    OpenAIProvider,
)

logger = logging.getLogger(__name__)

PROVIDER_CLASSES: dict[BackendFamily, type[LLMProvider]] = {
    BackendFamily.OPENAI: OpenAIProvider,
    BackendFamily.ANTHROPIC: AnthropicProvider,
    BackendFamily.GROQ: GroqProvider,
    BackendFamily.OLLAMA: OllamaProvider,
    BackendFamily.GEMINI: GeminiProvider,
    BackendFamily.CUSTOM: CustomProvider,
}

DEFAULT_BASE_URLS: dict[BackendFamily, str] = {
    BackendFamily.OPENAI: OPENAI_API_BASE,
    BackendFamily.ANTHROPIC: ANTHROPIC_API_BASE,
    BackendFamily.GROQ: GROQ_API_BASE,
    BackendFamily.GEMINI: GEMINI_API_BASE,
}


@dataclass(frozen=True)
class _Entry:
    profile: BackendProfile
    adapter: LLMProvider | None


class BackendRegistry:
    """Holds one profile and (when configured) one adapter per backend.

    Backends are registered once at startup. A backend without an adapter
    had no credentials: it is listed but never dispatched to. Iteration
    follows registration order, which the router relies on for tie-breaks.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._entries: dict[str, _Entry] = {}

    def register(self, profile: BackendProfile, adapter: LLMProvider | None = None) -> None:
        with self._lock:
            if profile.name in self._entries:
                raise ValueError(f"Backend already registered: {profile.name}")
            self._entries[profile.name] = _Entry(profile, adapter)
        if adapter is not None:
            logger.info("%s backend initialized", profile.display_name,
                        extra={"backend": profile.name})
        else:
            logger.debug("%s backend not configured", profile.display_name,
                         extra={"backend": profile.name})

    def is_available(self, name: str) -> bool:
        with self._lock:
            entry = self._entries.get(name)
        return entry is not None and entry.adapter is not None

    def profile(self, name: str) -> BackendProfile:
        with self._lock:
            entry = self._entries.get(name)
        if entry is None:
            raise BackendNotFound(name)
        return entry.profile

    def adapter(self, name: str) -> LLMProvider:
        with self._lock:
            entry = self._entries.get(name)
        if entry is None or entry.adapter is None:
            raise BackendUnavailable(name)
        return entry.adapter

    def list_profiles(self) -> list[BackendStatus]:
        with self._lock:
            entries = list(self._entries.values())
        return [BackendStatus(e.profile, e.adapter is not None) for e in entries]

    def available_profiles(self) -> list[BackendProfile]:
        with self._lock:
            entries = list(self._entries.values())
        return [e.profile for e in entries if e.adapter is not None]

    def __contains__(self, name: str) -> bool:
        with self._lock:
            return name in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    async def close(self) -> None:
        """Close every adapter's HTTP client."""
        with self._lock:
            adapters = [e.adapter for e in self._entries.values() if e.adapter]
        for adapter in adapters:
            await adapter.close()


def _create_adapter(
    backend: BackendConfig,
    timeout: float,
    transport: httpx.AsyncBaseTransport | None = None,
) -> LLMProvider:
    provider_cls = PROVIDER_CLASSES[backend.family]
    base_url = backend.base_url or DEFAULT_BASE_URLS.get(backend.family)
    if not base_url:
        raise ConfigurationError(
            f"No base URL for backend {backend.name!r}", {"backend": backend.name}
        )
    kwargs: dict = {}
    if issubclass(provider_cls, OpenAIProvider):
        kwargs["organization"] = backend.organization
    return provider_cls(
        backend.name,
        base_url,
        api_key=backend.api_key,
        timeout=timeout,
        transport=transport,
        **kwargs,
    )


def create_registry(
    config: SwitchboardConfig,
    transport: httpx.AsyncBaseTransport | None = None,
) -> BackendRegistry:
    """Register every configured backend; ones without credentials get no adapter."""
    registry = BackendRegistry()
    for backend in config.backends:
        adapter = None
        if backend.configured:
            adapter = _create_adapter(backend, config.request_timeout, transport)
        registry.register(backend.profile(), adapter)
    return registry
