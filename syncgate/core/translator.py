"""Map upstream results and gateway errors onto the public response shapes."""

from __future__ import annotations

from typing import Any, Iterable, NoReturn

from fastapi.responses import JSONResponse, Response

from syncgate.core.errors import (
    GatewayError,
    RateLimitError,
    UpstreamHttpError,
    UpstreamTimeout,
    UpstreamUnreachable,
)
from syncgate.core.models import (
    UpstreamHttpFailure,
    UpstreamNetworkFailure,
    UpstreamResult,
    UpstreamStream,
    UpstreamStreamResult,
    UpstreamSuccess,
    UpstreamTimedOut,
)
from syncgate.util.logger import logger

DEFAULT_AUDIO_MEDIA_TYPE = "audio/mpeg"
CHAT_COMPLETION_FIELDS = ("id", "object", "created", "model", "choices", "usage")


def require_success(result: UpstreamResult) -> UpstreamSuccess:
    """Return the success variant or raise the matching GatewayError."""

    if isinstance(result, UpstreamSuccess):
        return result
    _raise_for_failure(result)


def require_stream(result: UpstreamStreamResult) -> UpstreamStream:
    if isinstance(result, UpstreamStream):
        return result
    _raise_for_failure(result)


def _raise_for_failure(result: Any) -> NoReturn:
    if isinstance(result, UpstreamHttpFailure):
        raise UpstreamHttpError(
            f"{result.service} upstream error (status {result.status_code})",
            upstream_status=result.status_code,
        )
    if isinstance(result, UpstreamTimedOut):
        raise UpstreamTimeout(f"{result.service} request timed out after {result.timeout_seconds:g}s")
    if isinstance(result, UpstreamNetworkFailure):
        raise UpstreamUnreachable(f"{result.service} service unreachable")
    raise TypeError(f"unknown upstream result: {type(result).__name__}")


def pick_fields(payload: dict[str, Any], fields: Iterable[str]) -> dict[str, Any]:
    return {name: payload[name] for name in fields if name in payload}


def error_body(exc: GatewayError, *, envelope: bool = False) -> dict[str, Any]:
    body: dict[str, Any] = {"error": exc.message, "code": exc.code}
    if isinstance(exc, UpstreamHttpError):
        body["upstreamStatus"] = exc.upstream_status
    if isinstance(exc, RateLimitError) and exc.retry_after is not None:
        body["retryAfter"] = exc.retry_after
    if envelope:
        body = {"success": False, **body}
    return body


def error_response(
    exc: GatewayError,
    *,
    endpoint: str,
    envelope: bool = False,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    upstream_status = getattr(exc, "upstream_status", None)
    log = logger.error if exc.status_code >= 500 else logger.warning
    log(
        "request failed endpoint=%s status=%s code=%s upstream_status=%s message=%s",
        endpoint,
        exc.status_code,
        exc.code,
        upstream_status,
        exc.message,
    )
    if isinstance(exc, RateLimitError) and exc.retry_after is not None:
        headers = {**(headers or {}), "Retry-After": str(exc.retry_after)}
    return JSONResponse(status_code=exc.status_code, content=error_body(exc, envelope=envelope), headers=headers)


def audio_response(success: UpstreamSuccess, fallback_media_type: str = DEFAULT_AUDIO_MEDIA_TYPE) -> Response:
    media_type = (success.content_type or "").strip() or fallback_media_type
    return Response(
        content=success.content,
        status_code=200,
        headers={
            "Content-Type": media_type,
            "Content-Length": str(len(success.content)),
            "Cache-Control": "no-store",
        },
    )
