"""Project error hierarchy."""

from __future__ import annotations

from typing import Any


class GatewayError(Exception):
    """Base error. Subclasses fix the HTTP status and the stable client code."""

    status_code = 500
    code = "INTERNAL_ERROR"
    default_message = "Internal server error"

    def __init__(self, message: str | None = None, *, detail: dict[str, Any] | None = None) -> None:
        self.message = (message or "").strip() or self.default_message
        self.detail = detail or {}
        super().__init__(self.message)


class ValidationError(GatewayError):
    """Raised when the inbound body is missing or has a bad field."""

    status_code = 400
    code = "VALIDATION_ERROR"
    default_message = "Invalid request"


class AuthError(GatewayError):
    status_code = 401
    code = "UNAUTHORIZED"
    default_message = "Unauthorized"


class SignatureError(GatewayError):
    """Raised when a webhook signature is missing or does not match."""

    status_code = 403
    code = "INVALID_SIGNATURE"
    default_message = "Invalid webhook signature"


class RateLimitError(GatewayError):
    status_code = 429
    code = "RATE_LIMITED"
    default_message = "Rate limit exceeded. Please try again later."

    def __init__(
        self,
        message: str | None = None,
        *,
        retry_after: int | None = None,
        detail: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, detail=detail)
        self.retry_after = retry_after


class ConfigError(GatewayError):
    """Raised when a required setting (API key, URL, secret) is absent."""

    status_code = 503
    code = "CONFIG_ERROR"
    default_message = "Service not configured"


class UpstreamHttpError(GatewayError):
    status_code = 502
    code = "UPSTREAM_ERROR"
    default_message = "Upstream error"

    def __init__(self, message: str | None = None, *, upstream_status: int, detail: dict[str, Any] | None = None) -> None:
        super().__init__(message, detail=detail)
        self.upstream_status = upstream_status


class UpstreamTimeout(GatewayError):
    status_code = 504
    code = "TIMEOUT"
    default_message = "Upstream request timed out"


class UpstreamUnreachable(GatewayError):
    status_code = 503
    code = "UPSTREAM_UNREACHABLE"
    default_message = "Upstream service unreachable"


class InternalError(GatewayError):
    """Uncaught failure inside the gateway itself."""
