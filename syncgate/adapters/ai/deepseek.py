"""DeepSeek chat-completions request building and reply reading."""

from __future__ import annotations

import json
from typing import Any

from syncgate.config.settings import Settings
from syncgate.core.errors import UpstreamHttpError
from syncgate.core.models import UpstreamRequest, UpstreamSuccess

SERVICE = "deepseek"


def build_completion(
    settings: Settings,
    messages: list[dict[str, str]],
    *,
    max_tokens: int | None = None,
    temperature: float | None = None,
    stream: bool = False,
) -> UpstreamRequest:
    settings.require("deepseek_api_key", "deepseek_base_url")
    payload = {
        "model": settings.deepseek_model,
        "messages": messages,
        "max_tokens": max_tokens if max_tokens is not None else settings.chat_max_tokens,
        "temperature": temperature if temperature is not None else settings.chat_temperature,
        "stream": stream,
    }
    return UpstreamRequest.json(
        service=SERVICE,
        url=f"{settings.deepseek_base_url.rstrip('/')}/chat/completions",
        payload=payload,
        timeout_seconds=settings.ai_timeout_seconds,
        headers={"Authorization": f"Bearer {settings.deepseek_api_key}"},
    )


def completion_json(success: UpstreamSuccess) -> dict[str, Any]:
    """The completion object; a 2xx with a non-object body is an upstream error."""

    try:
        payload = success.json()
    except ValueError:
        payload = None
    if not isinstance(payload, dict):
        raise UpstreamHttpError(f"{SERVICE} returned a malformed completion", upstream_status=success.status_code)
    return payload


def completion_text(payload: dict[str, Any]) -> str:
    choices = payload.get("choices")
    if not isinstance(choices, list) or not choices:
        return ""
    first = choices[0] if isinstance(choices[0], dict) else {}
    message = first.get("message") if isinstance(first.get("message"), dict) else {}
    content = message.get("content")
    return content if isinstance(content, str) else ""


def completion_model(payload: dict[str, Any], fallback: str) -> str:
    return str(payload.get("model") or fallback)


def delta_text(chunk: str) -> str:
    """Content token of one streamed chunk; empty for malformed or role-only chunks."""

    try:
        payload = json.loads(chunk)
    except ValueError:
        return ""
    if not isinstance(payload, dict):
        return ""
    choices = payload.get("choices")
    if not isinstance(choices, list) or not choices or not isinstance(choices[0], dict):
        return ""
    delta = choices[0].get("delta")
    content = delta.get("content") if isinstance(delta, dict) else None
    return content if isinstance(content, str) else ""
