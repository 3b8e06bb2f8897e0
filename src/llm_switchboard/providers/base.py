"""Base adapter interface for completion backends."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any

import httpx

from ..errors import BackendTransportError, MalformedResponse
from ..router.types import (
    BackendFamily,
    CompletionRequest,
    MessageRole,
    RawCompletion,
)

logger = logging.getLogger(__name__)

DEFAULT_MAX_TOKENS = 1000
DEFAULT_TEMPERATURE = 0.7


class LLMProvider(ABC):
    """Translates normalized requests into one backend family's protocol.

    Subclasses implement :meth:`execute`. Transport failures surface as
    :class:`BackendTransportError` and unparseable bodies as
    :class:`MalformedResponse`; neither is retried here.
    """

    family: BackendFamily

    def __init__(
        self,
        name: str,
        base_url: str,
        api_key: str | None = None,
        timeout: float = 120.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.name = name
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout, connect=10.0),
                follow_redirects=True,
                transport=self._transport,
            )
        return self._client

    @abstractmethod
    async def execute(self, request: CompletionRequest, model: str) -> RawCompletion:
        """Run one completion against the backend."""
        ...

    async def _post_json(
        self,
        url: str,
        model: str,
        body: dict[str, Any],
        headers: dict[str, str] | None = None,
        params: dict[str, str] | None = None,
    ) -> dict[str, Any]:
        """POST a JSON body and return the decoded JSON response."""
        client = await self.get_client()
        try:
            resp = await client.post(url, json=body, headers=headers, params=params)
        except httpx.TimeoutException as e:
            logger.error("Timeout calling %s: %s", self.name, e,
                         extra={"backend": self.name, "model": model})
            raise BackendTransportError(
                f"{self.name} timeout: {e}", self.name, model, status_code=504
            ) from e
        except httpx.HTTPError as e:
            logger.error("Error calling %s: %s", self.name, e,
                         extra={"backend": self.name, "model": model})
            raise BackendTransportError(
                f"{self.name} error: {e}", self.name, model
            ) from e

        if resp.status_code >= 400:
            logger.error(
                "%s API error %d: %s", self.name, resp.status_code, resp.text[:500],
                extra={"backend": self.name, "model": model,
                       "status_code": resp.status_code},
            )
            raise BackendTransportError(
                f"{self.name} returned HTTP {resp.status_code}",
                self.name,
                model,
                status_code=resp.status_code,
            )

        try:
            data = resp.json()
        except ValueError as e:
            raise MalformedResponse(
                f"{self.name} returned invalid JSON", self.name, model,
                status_code=resp.status_code,
            ) from e
        if not isinstance(data, dict):
            raise MalformedResponse(
                f"{self.name} returned a non-object body", self.name, model,
                status_code=resp.status_code,
            )
        return data

    def _malformed(self, model: str, exc: Exception) -> MalformedResponse:
        return MalformedResponse(
            f"Could not parse {self.name} response: {exc!r}", self.name, model
        )

    def _check_streaming(self, request: CompletionRequest) -> None:
        # Streaming delivery is not supported; the full text is always buffered
        if request.options.stream:
            logger.debug("Buffering streamed request %s for %s", request.id, self.name)

    async def close(self) -> None:
        if self._client and not self._client.is_closed:
            await self._client.aclose()


def build_messages(request: CompletionRequest) -> list[dict[str, str]]:
    """System instruction, then prior context, then the prompt as the last user turn."""
    messages: list[dict[str, str]] = []
    if request.options.system_prompt:
        messages.append({"role": MessageRole.SYSTEM.value,
                         "content": request.options.system_prompt})
    if request.context is not None:
        for msg in request.context.messages:
            messages.append({"role": MessageRole(msg.role).value, "content": msg.content})
    messages.append({"role": MessageRole.USER.value, "content": request.prompt})
    return messages


def split_system(messages: list[dict[str, str]]) -> tuple[str | None, list[dict[str, str]]]:
    """Separate system turns for backends that take the instruction out-of-band.

    All system contents are kept, joined in message order.
    """
    system = [m["content"] for m in messages
              if m["role"] == MessageRole.SYSTEM.value and m["content"]]
    turns = [m for m in messages if m["role"] != MessageRole.SYSTEM.value]
    return ("\n\n".join(system) or None), turns


def resolve_max_tokens(request: CompletionRequest) -> int:
    if request.options.max_tokens:
        return request.options.max_tokens
    return DEFAULT_MAX_TOKENS


def resolve_temperature(request: CompletionRequest) -> float:
    if request.options.temperature is not None:
        return request.options.temperature
    return DEFAULT_TEMPERATURE


def coerce_tokens(value: Any) -> int:
    """Token counts missing or null in a response count as zero."""
    if value is None:
        return 0
    return int(value)
