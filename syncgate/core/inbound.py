"""Inbound body parsing shared by the gateway handlers."""

from __future__ import annotations

import json
from typing import Any, TypeVar

from fastapi import Request
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from syncgate.core.errors import ValidationError

BodyModel = TypeVar("BodyModel", bound=BaseModel)


async def read_json_body(request: Request) -> dict[str, Any]:
    raw = await request.body()
    if not raw.strip():
        return {}
    try:
        payload = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError):
        raise ValidationError("request body must be valid JSON") from None
    if not isinstance(payload, dict):
        raise ValidationError("request body must be a JSON object")
    return payload


def _describe(exc: PydanticValidationError) -> str:
    first = exc.errors()[0]
    message = str(first.get("msg") or "invalid value")
    if message.startswith("Value error, "):
        message = message[len("Value error, ") :]
    location = ".".join(str(part) for part in first.get("loc") or ())
    if location and location not in message:
        return f"{location}: {message}"
    return message


def parse_body(model: type[BodyModel], payload: dict[str, Any]) -> BodyModel:
    """Validate *payload* into *model*; the first failing field becomes a 400."""

    try:
        return model.model_validate(payload)
    except PydanticValidationError as exc:
        raise ValidationError(_describe(exc), detail={"fields": [".".join(map(str, e["loc"])) for e in exc.errors()]}) from None


def client_ip(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for", "")
    if forwarded.strip():
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"
