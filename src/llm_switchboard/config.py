"""Configuration model for llm-switchboard.

A backend is activated by its credential: an unset or empty key (or base
URL for local and custom endpoints) leaves the backend listed but
unavailable for dispatch.
"""

from __future__ import annotations

import os
import re
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Mapping

import yaml

from .errors import ConfigurationError
from .router.types import (
    MAX_CONTEXT_MESSAGES,
    BackendFamily,
    BackendProfile,
    Capabilities,
    Limits,
    Pricing,
)

CUSTOM_PREFIX = "custom_"
CUSTOM_DEFAULT_MODEL = "default"

# Built-in catalog, in routing tie-break order
DEFAULT_PROFILES: dict[BackendFamily, BackendProfile] = {
    BackendFamily.OPENAI: BackendProfile(
        name="openai",
        display_name="OpenAI",
        family=BackendFamily.OPENAI,
        models=("gpt-4", "gpt-4-turbo", "gpt-3.5-turbo", "gpt-4o", "gpt-4o-mini"),
        pricing=Pricing(input_per_1k=0.03, output_per_1k=0.06),
        capabilities=Capabilities(
            text_generation=True, code_generation=True, image_analysis=True,
            document_analysis=True, function_calling=True, streaming=True,
        ),
        limits=Limits(max_tokens=128000, max_requests_per_minute=500,
                      max_requests_per_day=10000),
    ),
    BackendFamily.ANTHROPIC: BackendProfile(
        name="anthropic",
        display_name="Anthropic",
        family=BackendFamily.ANTHROPIC,
        models=("claude-3-5-sonnet-20241022", "claude-3-haiku-20240307",
                "claude-3-opus-20240229"),
        pricing=Pricing(input_per_1k=0.015, output_per_1k=0.075),
        capabilities=Capabilities(
            text_generation=True, code_generation=True, image_analysis=True,
            document_analysis=True, function_calling=True, streaming=True,
        ),
        limits=Limits(max_tokens=200000, max_requests_per_minute=50,
                      max_requests_per_day=1000),
    ),
    BackendFamily.GROQ: BackendProfile(
        name="groq",
        display_name="Groq",
        family=BackendFamily.GROQ,
        models=("llama-3.1-405b-reasoning", "llama-3.1-70b-versatile",
                "mixtral-8x7b-32768"),
        pricing=Pricing(input_per_1k=0.0005, output_per_1k=0.0008),
        capabilities=Capabilities(
            text_generation=True, code_generation=True, image_analysis=False,
            document_analysis=True, function_calling=True, streaming=True,
        ),
        limits=Limits(max_tokens=32768, max_requests_per_minute=30,
                      max_requests_per_day=14400),
    ),
    BackendFamily.OLLAMA: BackendProfile(
        name="ollama",
        display_name="Ollama",
        family=BackendFamily.OLLAMA,
        models=("llama2", "codellama", "mistral", "neural-chat"),
        pricing=Pricing(input_per_1k=0.0, output_per_1k=0.0),
        capabilities=Capabilities(
            text_generation=True, code_generation=True, image_analysis=False,
            document_analysis=True, function_calling=False, streaming=True,
        ),
        limits=Limits(max_tokens=4096, max_requests_per_minute=1000,
                      max_requests_per_day=100000),
    ),
    BackendFamily.GEMINI: BackendProfile(
        name="gemini",
        display_name="Google Gemini",
        family=BackendFamily.GEMINI,
        models=("gemini-2.5-flash", "gemini-2.5-pro"),
        pricing=Pricing(input_per_1k=0.00015, output_per_1k=0.0006),
        capabilities=Capabilities(
            text_generation=True, code_generation=True, image_analysis=True,
            document_analysis=True, function_calling=True, streaming=True,
        ),
        limits=Limits(max_tokens=1048576, max_requests_per_minute=60,
                      max_requests_per_day=1500),
    ),
}

CUSTOM_PROFILE_TEMPLATE = BackendProfile(
    name="custom",
    family=BackendFamily.CUSTOM,
    models=(CUSTOM_DEFAULT_MODEL,),
    capabilities=Capabilities(text_generation=True, code_generation=True),
)

# Environment variable carrying each family's credential
CREDENTIAL_ENV_VARS: dict[BackendFamily, str] = {
    BackendFamily.OPENAI: "OPENAI_API_KEY",
    BackendFamily.ANTHROPIC: "ANTHROPIC_API_KEY",
    BackendFamily.GROQ: "GROQ_API_KEY",
    BackendFamily.OLLAMA: "OLLAMA_BASE_URL",
    BackendFamily.GEMINI: "GEMINI_API_KEY",
}

# Families addressed by base URL rather than API key
URL_ACTIVATED = (BackendFamily.OLLAMA, BackendFamily.CUSTOM)


@dataclass
class BackendConfig:
    """Connection settings for one backend, plus optional catalog overrides."""

    name: str
    family: BackendFamily
    api_key: str | None = None
    base_url: str | None = None
    organization: str | None = None
    models: list[str] = field(default_factory=list)
    pricing: Pricing | None = None

    @property
    def configured(self) -> bool:
        if self.family in URL_ACTIVATED:
            return bool(self.base_url)
        return bool(self.api_key)

    def profile(self) -> BackendProfile:
        """The catalog profile for this backend with overrides applied."""
        if self.family == BackendFamily.CUSTOM:
            base = replace(
                CUSTOM_PROFILE_TEMPLATE,
                display_name=f"Custom ({self.name.removeprefix(CUSTOM_PREFIX)})",
            )
        else:
            base = DEFAULT_PROFILES[self.family]
        overrides: dict[str, Any] = {"name": self.name}
        if self.models:
            overrides["models"] = tuple(self.models)
        if self.pricing is not None:
            overrides["pricing"] = self.pricing
        return replace(base, **overrides)


@dataclass
class CompareConfig:
    """Targets and limits for comparison mode."""

    targets: list[tuple[str, str]] = field(default_factory=lambda: [
        ("openai", "gpt-4"),
        ("anthropic", "claude-3-5-sonnet-20241022"),
        ("groq", "llama-3.1-70b-versatile"),
    ])
    timeout_seconds: float | None = 60.0
    max_tokens: int = 500


@dataclass
class ContextConfig:
    """Conversation context retention."""

    max_messages: int = MAX_CONTEXT_MESSAGES
    ttl_seconds: float = 7 * 24 * 60 * 60
    max_conversations: int = 10000


@dataclass
class QuotaConfig:
    """Default (free tier) subscription limits."""

    monthly_requests: int = 100
    max_tokens_per_request: int = 4000
    period_days: int = 30


@dataclass
class ObservabilityConfig:
    log_level: str = "INFO"
    log_format: str = "json"
    max_events: int = 1000


_ENV_VAR_RE = re.compile(r"\$\{([^}]+)\}")


def _expand_env_vars(text: str) -> str:
    """Expand ``${VAR}`` and ``${VAR:-default}`` in a string."""
    def _replace(match: re.Match) -> str:
        expr = match.group(1)
        if ":-" in expr:
            var, default = expr.split(":-", 1)
            return os.environ.get(var, default)
        return os.environ.get(expr, match.group(0))
    return _ENV_VAR_RE.sub(_replace, text)


def _credential(value: Any) -> str | None:
    """Empty values and unresolved ``${VAR}`` references count as unset."""
    if value is None:
        return None
    value = str(value).strip()
    if not value or _ENV_VAR_RE.search(value):
        return None
    return value


def _normalize_url(url: str) -> str:
    return url if "://" in url else f"http://{url}"


def parse_custom_endpoints(value: str | None) -> list[BackendConfig]:
    """Parse ``name:url,name:url`` into custom backend configs.

    Each entry is split at its first colon, so URLs may carry a scheme and
    port (``local:http://localhost:1234/v1``).
    """
    backends: list[BackendConfig] = []
    if not value:
        return backends
    for entry in value.split(","):
        name, sep, url = entry.strip().partition(":")
        name, url = name.strip(), url.strip()
        if not sep or not name or not url:
            continue
        backends.append(BackendConfig(
            name=f"{CUSTOM_PREFIX}{name}",
            family=BackendFamily.CUSTOM,
            base_url=_normalize_url(url),
        ))
    return backends


def _parse_family(value: str, name: str) -> BackendFamily:
    try:
        return BackendFamily(value)
    except ValueError:
        raise ConfigurationError(
            f"Unknown backend family {value!r} for backend {name!r}",
            {"backend": name},
        ) from None


@dataclass
class SwitchboardConfig:
    """Top-level switchboard configuration."""

    host: str = "0.0.0.0"
    port: int = 8080
    request_timeout: float = 120.0
    backends: list[BackendConfig] = field(default_factory=list)
    compare: CompareConfig = field(default_factory=CompareConfig)
    context: ContextConfig = field(default_factory=ContextConfig)
    quota: QuotaConfig = field(default_factory=QuotaConfig)
    observability: ObservabilityConfig = field(default_factory=ObservabilityConfig)

    @staticmethod
    def backends_from_env(environ: Mapping[str, str] | None = None) -> list[BackendConfig]:
        """One entry per catalog family, then any custom endpoints."""
        env = os.environ if environ is None else environ
        backends = []
        for family, profile in DEFAULT_PROFILES.items():
            credential = _credential(env.get(CREDENTIAL_ENV_VARS[family]))
            backend = BackendConfig(name=profile.name, family=family)
            if family == BackendFamily.OLLAMA:
                backend.base_url = _normalize_url(credential) if credential else None
            else:
                backend.api_key = credential
            if family == BackendFamily.OPENAI:
                backend.organization = _credential(env.get("OPENAI_ORG_ID"))
            backends.append(backend)

        custom_key = _credential(env.get("CUSTOM_API_KEY"))
        for backend in parse_custom_endpoints(env.get("CUSTOM_LLM_ENDPOINTS")):
            backend.api_key = custom_key
            backends.append(backend)
        return backends

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> SwitchboardConfig:
        env = os.environ if environ is None else environ
        config = cls(backends=cls.backends_from_env(env))
        config.observability.log_level = env.get("LOG_LEVEL", config.observability.log_level)
        config.observability.log_format = env.get("LOG_FORMAT", config.observability.log_format)
        if env.get("PORT"):
            try:
                config.port = int(env["PORT"])
            except ValueError:
                raise ConfigurationError(
                    f"PORT must be an integer, got {env['PORT']!r}", {"port": env["PORT"]}
                ) from None
        return config

    @classmethod
    def from_yaml(cls, path: str | Path) -> SwitchboardConfig:
        """Load configuration from a YAML file.

        Supports ``${VAR}`` and ``${VAR:-default}`` syntax in string values,
        resolved from environment variables at load time. Without a
        ``backends`` section, backends are taken from the environment.
        """
        with open(path) as f:
            raw = f.read()
        raw = _expand_env_vars(raw)
        data = yaml.safe_load(raw) or {}
        return cls._from_dict(data)

    @classmethod
    def _from_dict(cls, data: dict[str, Any]) -> SwitchboardConfig:
        config = cls()
        config.host = data.get("host", config.host)
        config.port = data.get("port", config.port)
        config.request_timeout = data.get("request_timeout", config.request_timeout)

        if "backends" in data:
            seen: set[str] = set()
            for b in data["backends"] or []:
                backend = cls._backend_from_dict(b)
                if backend.name in seen:
                    raise ConfigurationError(
                        f"Duplicate backend {backend.name!r}", {"backend": backend.name}
                    )
                seen.add(backend.name)
                config.backends.append(backend)
        else:
            config.backends = cls.backends_from_env()

        cmp = data.get("compare", {})
        if cmp:
            if "targets" in cmp:
                config.compare.targets = [
                    (t["backend"], t["model"]) for t in cmp["targets"]
                ]
            config.compare.timeout_seconds = cmp.get(
                "timeout_seconds", config.compare.timeout_seconds
            )
            config.compare.max_tokens = cmp.get("max_tokens", config.compare.max_tokens)

        ctx = data.get("context", {})
        if ctx:
            max_messages = ctx.get("max_messages", MAX_CONTEXT_MESSAGES)
            if (not isinstance(max_messages, int) or isinstance(max_messages, bool)
                    or not 1 <= max_messages <= MAX_CONTEXT_MESSAGES):
                raise ConfigurationError(
                    f"context.max_messages must be between 1 and {MAX_CONTEXT_MESSAGES}, "
                    f"got {max_messages!r}",
                    {"max_messages": max_messages},
                )
            config.context.max_messages = max_messages
            config.context.ttl_seconds = ctx.get("ttl_seconds", config.context.ttl_seconds)
            config.context.max_conversations = ctx.get(
                "max_conversations", config.context.max_conversations
            )

        q = data.get("quota", {})
        if q:
            config.quota.monthly_requests = q.get("monthly_requests", 100)
            config.quota.max_tokens_per_request = q.get("max_tokens_per_request", 4000)
            config.quota.period_days = q.get("period_days", 30)

        obs = data.get("observability", {})
        if obs:
            config.observability.log_level = obs.get("log_level", "INFO")
            config.observability.log_format = obs.get("log_format", "json")
            config.observability.max_events = obs.get("max_events", 1000)

        return config

    @staticmethod
    def _backend_from_dict(b: dict[str, Any]) -> BackendConfig:
        if "name" not in b:
            raise ConfigurationError("Backend entry is missing 'name'")
        name = b["name"]
        family = _parse_family(b.get("family", name), name)
        pricing = None
        if "pricing" in b:
            pricing = Pricing(
                input_per_1k=float(b["pricing"].get("input_per_1k", 0.0)),
                output_per_1k=float(b["pricing"].get("output_per_1k", 0.0)),
            )
        base_url = _credential(b.get("base_url"))
        return BackendConfig(
            name=name,
            family=family,
            api_key=_credential(b.get("api_key")),
            base_url=_normalize_url(base_url) if base_url else None,
            organization=_credential(b.get("organization")),
            models=list(b.get("models", [])),
            pricing=pricing,
        )

    def get_backend(self, name: str) -> BackendConfig | None:
        """Look up a backend config by name."""
        for b in self.backends:
            if b.name == name:
                return b
        return None
