"""HTTP JSON surface for the dispatch engine.

A thin transport over :class:`DispatchEngine`: request bodies are parsed
into :class:`CompletionRequest` objects, typed errors are mapped to status
codes, and the engine's observability queries are exposed read-only.
"""

from __future__ import annotations

import asyncio
import dataclasses
import json
import logging
import threading
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Any

from .config import SwitchboardConfig
from .engine import DispatchEngine
from .errors import (
    BackendNotFound,
    BackendTransportError,
    BackendUnavailable,
    ComparisonFailed,
    InvalidRequest,
    NoBackendsAvailable,
    QuotaExceeded,
    SubscriptionInactive,
    SwitchboardError,
)
from .observability.logging import setup_logging
from .router.types import (
    BackendStatus,
    CompletionRequest,
    CompletionResponse,
    ConversationContext,
    ConversationMessage,
    FileAttachment,
    MessageRole,
    Priority,
    RequestMetadata,
    RequestOptions,
)

logger = logging.getLogger(__name__)

ERROR_STATUS: list[tuple[type[SwitchboardError], int]] = [
    (QuotaExceeded, 429),
    (SubscriptionInactive, 402),
    (BackendNotFound, 404),
    (BackendUnavailable, 503),
    (NoBackendsAvailable, 503),
    (BackendTransportError, 502),
    (ComparisonFailed, 502),
    (InvalidRequest, 400),
]


class BadRequest(ValueError):
    """The request body could not be turned into a completion request."""


def parse_request(body: dict[str, Any]) -> CompletionRequest:
    """Parse a JSON completion request body."""
    prompt = body.get("prompt")
    if not isinstance(prompt, str) or not prompt.strip():
        raise BadRequest("'prompt' must be a non-empty string")

    opts = body.get("options") or {}
    try:
        options = RequestOptions(
            max_tokens=opts.get("max_tokens"),
            temperature=opts.get("temperature"),
            stream=bool(opts.get("stream", False)),
            system_prompt=opts.get("system_prompt"),
        )
        priority = Priority(body.get("priority", Priority.NORMAL.value))
        files = tuple(
            FileAttachment(
                id=f.get("id", f.get("name", "")),
                name=f.get("name", ""),
                kind=f.get("kind", "document"),
                size=f.get("size", 0),
                url=f.get("url", ""),
                extracted_text=f.get("extracted_text"),
            )
            for f in body.get("files") or []
        )
        context = None
        if body.get("context"):
            context = ConversationContext(conversation_id=body.get("id", "inline"))
            for m in body["context"]:
                context.append(ConversationMessage(
                    role=MessageRole(m.get("role", "user")),
                    content=m.get("content", ""),
                ))
    except (ValueError, AttributeError, TypeError) as e:
        raise BadRequest(str(e)) from e

    kwargs: dict[str, Any] = {}
    if body.get("id"):
        kwargs["id"] = body["id"]
    return CompletionRequest(
        prompt=prompt,
        user_id=body.get("user_id", ""),
        team_id=body.get("team_id", ""),
        backend=body.get("backend"),
        model=body.get("model"),
        context=context,
        files=files,
        options=options,
        priority=priority,
        metadata=RequestMetadata(
            command=body.get("command"),
            channel=body.get("channel"),
        ),
        **kwargs,
    )


def parse_targets(value: Any) -> list[tuple[str, str]] | None:
    """Parse the optional ``targets`` list of a comparison body."""
    if not value:
        return None
    if not isinstance(value, list):
        raise BadRequest("'targets' must be a list of {backend, model} objects")
    targets = []
    for t in value:
        if not isinstance(t, dict):
            raise BadRequest("Each target must be an object with 'backend' and 'model'")
        backend, model = t.get("backend"), t.get("model")
        if not isinstance(backend, str) or not backend:
            raise BadRequest("Each target needs a 'backend' string")
        if not isinstance(model, str) or not model:
            raise BadRequest(f"Target {backend} needs a 'model' string")
        targets.append((backend, model))
    return targets


def status_for(error: Exception) -> int:
    for error_type, status in ERROR_STATUS:
        if isinstance(error, error_type):
            return status
    if isinstance(error, BadRequest):
        return 400
    return 500


def error_body(error: Exception) -> dict[str, Any]:
    body: dict[str, Any] = {"message": str(error)}
    if isinstance(error, SwitchboardError):
        body["code"] = error.error_code
        body.update(error.context)
    backend = getattr(error, "backend", None)
    if backend:
        body["backend"] = backend
    return {"error": body}


def response_to_dict(response: CompletionResponse) -> dict[str, Any]:
    data = dataclasses.asdict(response)
    data["usage"]["total_tokens"] = response.usage.total_tokens
    return data


def status_to_dict(status: BackendStatus) -> dict[str, Any]:
    data = dataclasses.asdict(status.profile)
    data["family"] = status.profile.family.value
    data["models"] = list(status.profile.models)
    data["available"] = status.available
    return data


class SwitchboardHTTPHandler(BaseHTTPRequestHandler):
    """HTTP request handler for the switchboard.

    - POST /v1/completions: dispatch one request (auto-routed or explicit)
    - POST /v1/compare: dispatch a prompt to the comparison targets,
      charged to ``user_id`` when one is given
    - GET  /v1/backends: all backend profiles with availability
    - GET  /v1/stats: per-(backend, model) statistics
    - GET  /metrics: dispatch metrics summary
    """

    engine: DispatchEngine  # Set by the server factory
    loop: asyncio.AbstractEventLoop

    def log_message(self, format, *args):
        """Suppress default request logging (we use structured logging)."""
        pass

    def do_GET(self):
        if self.path == "/v1/backends":
            backends = [status_to_dict(s) for s in self.engine.list_backends()]
            self._send_json(200, {"object": "list", "data": backends})
        elif self.path == "/v1/stats":
            stats = [dataclasses.asdict(s) for s in self.engine.list_stats()]
            self._send_json(200, {"object": "list", "data": stats})
        elif self.path == "/metrics":
            self._send_json(200, self.engine.metrics_summary())
        else:
            self._send_json(404, {"error": {"message": "Not found"}})

    def do_POST(self):
        if self.path == "/v1/completions":
            self._handle_completion()
        elif self.path == "/v1/compare":
            self._handle_compare()
        else:
            self._send_json(404, {"error": {"message": "Not found"}})

    def _read_body(self) -> dict[str, Any] | None:
        try:
            content_length = int(self.headers.get("Content-Length", 0))
            if content_length < 0:
                raise ValueError(content_length)
        except ValueError:
            self._send_json(400, {"error": {"message": "Invalid Content-Length"}})
            return None
        body_bytes = self.rfile.read(content_length)
        try:
            body = json.loads(body_bytes)
        except ValueError:
            # JSONDecodeError and UnicodeDecodeError
            self._send_json(400, {"error": {"message": "Invalid JSON"}})
            return None
        if not isinstance(body, dict):
            self._send_json(400, {"error": {"message": "Body must be a JSON object"}})
            return None
        return body

    def _run(self, coro, timeout: float) -> Any:
        future = asyncio.run_coroutine_threadsafe(coro, self.loop)
        return future.result(timeout=timeout)

    def _handle_completion(self):
        body = self._read_body()
        if body is None:
            return
        timeout = self.engine.config.request_timeout + 5
        try:
            request = parse_request(body)
            if body.get("channel") and body.get("user_id"):
                coro = self.engine.converse(request, body["channel"])
            else:
                coro = self.engine.dispatch(request)
            response = self._run(coro, timeout)
        except (SwitchboardError, BadRequest) as e:
            self._send_json(status_for(e), error_body(e))
            return
        except TimeoutError:
            self._send_json(504, {"error": {"message": "Request timeout"}})
            return
        except Exception as e:
            logger.exception("Error dispatching request")
            self._send_json(500, {"error": {"message": str(e)}})
            return
        self._send_json(200, response_to_dict(response))

    def _handle_compare(self):
        body = self._read_body()
        if body is None:
            return
        compare_timeout = self.engine.config.compare.timeout_seconds
        timeout = (compare_timeout or self.engine.config.request_timeout) + 5
        try:
            request = parse_request(body)
            targets = parse_targets(body.get("targets"))
            if body.get("user_id"):
                coro = self.engine.compare_for_user(request, targets)
            else:
                coro = self.engine.compare(request, targets)
            responses = self._run(coro, timeout)
        except (SwitchboardError, BadRequest) as e:
            self._send_json(status_for(e), error_body(e))
            return
        except TimeoutError:
            self._send_json(504, {"error": {"message": "Request timeout"}})
            return
        except Exception as e:
            logger.exception("Error running comparison")
            self._send_json(500, {"error": {"message": str(e)}})
            return
        self._send_json(200, {
            "object": "list",
            "data": [response_to_dict(r) for r in responses],
        })

    def _send_json(self, status: int, body: dict):
        response_bytes = json.dumps(body, indent=2, default=str).encode()
        self.send_response(status)
        self.send_header("Content-Type", "application/json")
        self.send_header("Content-Length", str(len(response_bytes)))
        self.end_headers()
        self.wfile.write(response_bytes)


def create_server(
    config: SwitchboardConfig,
) -> tuple[ThreadingHTTPServer, DispatchEngine, asyncio.AbstractEventLoop]:
    """Create an HTTP server bound to a dispatch engine.

    Returns (server, engine, loop); the loop runs on a daemon thread.
    """
    setup_logging(
        level=config.observability.log_level,
        fmt=config.observability.log_format,
    )

    engine = DispatchEngine.from_config(config)

    loop = asyncio.new_event_loop()
    loop_thread = threading.Thread(target=loop.run_forever, daemon=True)
    loop_thread.start()

    handler = type("Handler", (SwitchboardHTTPHandler,), {
        "engine": engine,
        "loop": loop,
    })

    server = ThreadingHTTPServer((config.host, config.port), handler)
    available = [s.profile.name for s in engine.list_backends() if s.available]
    logger.info(
        "LLM switchboard starting on %s:%d with %d available backends",
        config.host, config.port, len(available),
    )
    for status in engine.list_backends():
        logger.info("  Backend: %s (%s) %s", status.profile.name,
                    status.profile.family.value,
                    "available" if status.available else "not configured")

    return server, engine, loop
