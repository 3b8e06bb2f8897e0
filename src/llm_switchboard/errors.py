"""Exception hierarchy for the switchboard.

Every failure surfaced to a caller is one of these. Dispatch failures carry
the backend they originated from so callers can decide whether to re-dispatch.
"""

from __future__ import annotations

from typing import Any


class SwitchboardError(Exception):
    """Base exception for all switchboard errors."""

    error_code = "SWITCHBOARD_ERROR"

    def __init__(self, message: str, context: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.context = context or {}


class ConfigurationError(SwitchboardError):
    """Raised when configuration cannot be loaded or is inconsistent."""

    error_code = "CONFIG_ERROR"


class InvalidRequest(SwitchboardError):
    """The request cannot be served as given, e.g. a task missing its input."""

    error_code = "INVALID_REQUEST"


class BackendNotFound(SwitchboardError, KeyError):
    """Raised when a profile lookup names a backend that was never registered."""

    error_code = "BACKEND_NOT_FOUND"

    def __init__(self, backend: str):
        super().__init__(f"Unknown backend: {backend}", {"backend": backend})
        self.backend = backend

    def __str__(self) -> str:
        return self.message


class NoBackendsAvailable(SwitchboardError):
    """Raised by the router when no configured backend can serve a request."""

    error_code = "NO_BACKENDS_AVAILABLE"

    def __init__(self, message: str = "No backends available for routing"):
        super().__init__(message)


class DispatchError(SwitchboardError):
    """A dispatch failed at a specific backend."""

    error_code = "DISPATCH_ERROR"

    def __init__(
        self,
        message: str,
        backend: str,
        model: str | None = None,
        context: dict[str, Any] | None = None,
    ):
        super().__init__(message, context)
        self.backend = backend
        self.model = model


class BackendUnavailable(DispatchError):
    """The chosen backend is not registered or has no credentials."""

    error_code = "BACKEND_UNAVAILABLE"

    def __init__(self, backend: str, model: str | None = None):
        super().__init__(f"Backend {backend} not available", backend, model)


class BackendTransportError(DispatchError):
    """Network, auth or rate-limit failure reported by a backend."""

    error_code = "BACKEND_TRANSPORT_ERROR"

    def __init__(
        self,
        message: str,
        backend: str,
        model: str | None = None,
        status_code: int | None = None,
    ):
        super().__init__(message, backend, model, {"status_code": status_code})
        self.status_code = status_code

    @property
    def is_rate_limited(self) -> bool:
        return self.status_code == 429

    @property
    def is_auth_failure(self) -> bool:
        return self.status_code in (401, 403)


class MalformedResponse(BackendTransportError):
    """The backend answered with a body the adapter could not parse."""

    error_code = "MALFORMED_RESPONSE"


class ComparisonFailed(SwitchboardError):
    """Every target in a comparison batch failed."""

    error_code = "COMPARISON_FAILED"

    def __init__(self, failures: dict[str, Exception]):
        targets = ", ".join(failures) or "none"
        super().__init__(
            f"No backend in the comparison succeeded ({targets})",
            {"targets": list(failures)},
        )
        self.failures = failures


class QuotaExceeded(SwitchboardError):
    """The user has used up the requests of the current billing period."""

    error_code = "QUOTA_EXCEEDED"

    def __init__(self, user_id: str, team_id: str, limit: int):
        super().__init__(
            f"Monthly limit of {limit} requests reached",
            {"user_id": user_id, "team_id": team_id, "limit": limit},
        )
        self.limit = limit


class SubscriptionInactive(SwitchboardError):
    """The user's subscription is not active."""

    error_code = "SUBSCRIPTION_INACTIVE"

    def __init__(self, user_id: str, team_id: str, status: str):
        super().__init__(
            f"Subscription is {status}",
            {"user_id": user_id, "team_id": team_id, "status": status},
        )
        self.status = status
