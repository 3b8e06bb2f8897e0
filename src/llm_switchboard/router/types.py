"""Core type definitions for routing and dispatch."""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field
from enum import Enum

AUTO_BACKEND = "auto"
MAX_CONTEXT_MESSAGES = 20

FACTOR_WEIGHTS: dict[str, float] = {
    "cost": 0.3,
    "performance": 0.4,
    "capability": 0.2,
    "availability": 0.1,
}


class BackendFamily(str, Enum):
    """Wire protocol family a backend speaks."""

    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    GROQ = "groq"
    OLLAMA = "ollama"
    GEMINI = "gemini"
    CUSTOM = "custom"


class Priority(str, Enum):
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    URGENT = "urgent"


class MessageRole(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


@dataclass(frozen=True)
class Pricing:
    """USD per 1000 tokens."""

    input_per_1k: float = 0.0
    output_per_1k: float = 0.0

    @property
    def combined(self) -> float:
        return self.input_per_1k + self.output_per_1k


@dataclass(frozen=True)
class Capabilities:
    text_generation: bool = True
    code_generation: bool = False
    image_analysis: bool = False
    document_analysis: bool = False
    function_calling: bool = False
    streaming: bool = False


@dataclass(frozen=True)
class Limits:
    max_tokens: int = 4096
    max_requests_per_minute: int = 60
    max_requests_per_day: int = 1000


@dataclass(frozen=True)
class BackendProfile:
    """Static description of one configured backend."""

    name: str
    family: BackendFamily
    models: tuple[str, ...]
    display_name: str = ""
    pricing: Pricing = field(default_factory=Pricing)
    capabilities: Capabilities = field(default_factory=Capabilities)
    limits: Limits = field(default_factory=Limits)

    def __post_init__(self):
        if not self.models:
            raise ValueError(f"Backend {self.name} must support at least one model")
        # Accept any iterable of model names but store a tuple
        object.__setattr__(self, "models", tuple(self.models))
        if not self.display_name:
            object.__setattr__(self, "display_name", self.name)

    @property
    def default_model(self) -> str:
        return self.models[0]


@dataclass(frozen=True)
class FileAttachment:
    id: str
    name: str
    kind: str = "document"  # pdf, image, text, code, document
    size: int = 0
    url: str = ""
    extracted_text: str | None = None


@dataclass(frozen=True)
class RequestOptions:
    max_tokens: int | None = None
    temperature: float | None = None
    stream: bool = False
    system_prompt: str | None = None


@dataclass(frozen=True)
class RequestMetadata:
    command: str | None = None
    channel: str | None = None
    timestamp: float = field(default_factory=time.time)


@dataclass
class ConversationMessage:
    """A single turn kept in a conversation context."""

    role: MessageRole
    content: str
    timestamp: float = field(default_factory=time.time)
    backend: str | None = None
    model: str | None = None
    tokens: int = 0


@dataclass
class ConversationContext:
    """Recent turns of a conversation, capped at ``max_messages``."""

    conversation_id: str
    messages: list[ConversationMessage] = field(default_factory=list)
    summary: str | None = None
    total_tokens: int = 0
    created_at: float = field(default_factory=time.time)
    last_updated_at: float = field(default_factory=time.time)
    max_messages: int = MAX_CONTEXT_MESSAGES

    def append(self, message: ConversationMessage) -> None:
        self.messages.append(message)
        self.total_tokens += message.tokens
        self.last_updated_at = time.time()
        if len(self.messages) > self.max_messages:
            del self.messages[: len(self.messages) - self.max_messages]


@dataclass(frozen=True)
class CompletionRequest:
    """Normalized request handed to the dispatch engine."""

    prompt: str
    user_id: str = ""
    team_id: str = ""
    backend: str | None = None
    model: str | None = None
    context: ConversationContext | None = None
    files: tuple[FileAttachment, ...] = ()
    options: RequestOptions = field(default_factory=RequestOptions)
    priority: Priority = Priority.NORMAL
    metadata: RequestMetadata = field(default_factory=RequestMetadata)
    id: str = field(default_factory=lambda: f"req_{uuid.uuid4().hex[:12]}")

    @property
    def is_auto_routed(self) -> bool:
        return not self.backend or self.backend == AUTO_BACKEND


@dataclass(frozen=True)
class RawCompletion:
    """What an adapter extracts from a backend response."""

    content: str
    prompt_tokens: int = 0
    completion_tokens: int = 0


@dataclass(frozen=True)
class Usage:
    prompt_tokens: int = 0
    completion_tokens: int = 0
    cost: float = 0.0

    @property
    def total_tokens(self) -> int:
        return self.prompt_tokens + self.completion_tokens


@dataclass(frozen=True)
class Performance:
    latency_ms: float = 0.0
    throughput: float = 0.0  # tokens/sec
    reliability: float = 1.0


@dataclass(frozen=True)
class RoutingAlternative:
    backend: str
    model: str
    score: float
    reasoning: str


@dataclass(frozen=True)
class RoutingDecision:
    """Outcome of auto-routing a single request."""

    backend: str
    model: str
    reasoning: str
    confidence: float
    alternatives: tuple[RoutingAlternative, ...] = ()
    factors: dict[str, float] = field(default_factory=lambda: dict(FACTOR_WEIGHTS))


@dataclass(frozen=True)
class CompletionResponse:
    request_id: str
    backend: str
    model: str
    content: str
    usage: Usage = field(default_factory=Usage)
    performance: Performance = field(default_factory=Performance)
    timestamp: float = field(default_factory=time.time)
    error: str | None = None
    routing: RoutingDecision | None = None
    id: str = field(default_factory=lambda: f"resp_{uuid.uuid4().hex[:12]}")


@dataclass
class BackendStats:
    """Rolling counters for one (backend, model) pair."""

    backend: str
    model: str
    total_requests: int = 0
    total_tokens: int = 0
    total_cost: float = 0.0
    average_latency_ms: float = 0.0
    success_rate: float = 1.0
    last_used: float = field(default_factory=time.time)


@dataclass(frozen=True)
class BackendStatus:
    """A profile together with whether it can currently be dispatched to."""

    profile: BackendProfile
    available: bool
