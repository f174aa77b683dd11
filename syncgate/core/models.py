"""Inbound bodies and upstream transport models."""

from __future__ import annotations

import asyncio
import json
import time
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Awaitable, Callable, Union
from urllib.parse import urlencode

import httpx
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from syncgate.core.errors import UpstreamTimeout, UpstreamUnreachable


class _InboundBody(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class ChatMessage(_InboundBody):
    role: str
    content: str


class ChatRequest(_InboundBody):
    message: str | None = None
    messages: list[ChatMessage] | None = None
    context: dict[str, Any] | str | None = None

    @model_validator(mode="after")
    def _require_input(self) -> "ChatRequest":
        has_message = bool((self.message or "").strip())
        if not has_message and not self.messages:
            raise ValueError("message or messages is required")
        return self


class InsightsRequest(_InboundBody):
    tasks: list[Any] = Field(default_factory=list)
    goals: list[Any] = Field(default_factory=list)
    time_range: str = Field(default="week", alias="timeRange")


class SuggestionsRequest(_InboundBody):
    context: dict[str, Any] | str | None = None
    tasks: list[Any] = Field(default_factory=list)
    goals: list[Any] = Field(default_factory=list)
    count: int = Field(default=5, ge=1, le=10)


class SpeechRequest(_InboundBody):
    text: str
    voice: str | None = None
    speed: float = Field(default=1.0, ge=0.25, le=4.0)

    @field_validator("text")
    @classmethod
    def _text_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("text is required")
        return value


class GuestChatRequest(_InboundBody):
    session_id: str = Field(alias="sessionId", min_length=1)
    messages: list[ChatMessage] = Field(min_length=1)
    stream: bool = False


@dataclass(slots=True)
class UpstreamRequest:
    service: str
    url: str
    headers: dict[str, str]
    body: bytes
    timeout_seconds: float
    method: str = "POST"

    @classmethod
    def json(
        cls,
        *,
        service: str,
        url: str,
        payload: Any,
        timeout_seconds: float,
        headers: dict[str, str] | None = None,
    ) -> "UpstreamRequest":
        merged = {"Content-Type": "application/json", **(headers or {})}
        body = json.dumps(payload, ensure_ascii=False).encode("utf-8")
        return cls(service=service, url=url, headers=merged, body=body, timeout_seconds=timeout_seconds)

    @classmethod
    def form(
        cls,
        *,
        service: str,
        url: str,
        fields: list[tuple[str, str]],
        timeout_seconds: float,
        headers: dict[str, str] | None = None,
    ) -> "UpstreamRequest":
        merged = {"Content-Type": "application/x-www-form-urlencoded", **(headers or {})}
        body = urlencode(fields).encode("utf-8")
        return cls(service=service, url=url, headers=merged, body=body, timeout_seconds=timeout_seconds)


@dataclass(slots=True)
class UpstreamSuccess:
    service: str
    status_code: int
    content: bytes
    headers: dict[str, str] = field(default_factory=dict)

    @property
    def content_type(self) -> str:
        return self.headers.get("content-type", "")

    @property
    def text(self) -> str:
        return self.content.decode("utf-8", errors="replace")

    def json(self) -> Any:
        """Decode the body as JSON; raises ValueError when it is not."""

        return json.loads(self.text)


@dataclass(slots=True)
class UpstreamHttpFailure:
    service: str
    status_code: int
    body_text: str


@dataclass(slots=True)
class UpstreamTimedOut:
    service: str
    timeout_seconds: float


@dataclass(slots=True)
class UpstreamNetworkFailure:
    service: str
    message: str


@dataclass(slots=True)
class UpstreamStream:
    """
    An open 2xx response whose body has not been read yet.

    The body shares the deadline of the request that opened it: reads past
    ``deadline_at`` raise ``UpstreamTimeout`` and transport failures raise
    ``UpstreamUnreachable``. Callers must ``aclose()`` it.
    """

    service: str
    status_code: int
    response: httpx.Response
    timeout_seconds: float
    deadline_at: float
    headers: dict[str, str] = field(default_factory=dict)

    @property
    def content_type(self) -> str:
        return self.headers.get("content-type", "")

    def _remaining(self) -> float:
        remaining = self.deadline_at - time.monotonic()
        if remaining <= 0:
            raise UpstreamTimeout(f"{self.service} stream timed out after {self.timeout_seconds:g}s")
        return remaining

    async def _bounded(self, start: Callable[[], Awaitable[Any]]) -> Any:
        remaining = self._remaining()
        try:
            return await asyncio.wait_for(start(), timeout=remaining)
        except (asyncio.TimeoutError, httpx.TimeoutException):
            raise UpstreamTimeout(f"{self.service} stream timed out after {self.timeout_seconds:g}s") from None
        except httpx.HTTPError as exc:
            raise UpstreamUnreachable(f"{self.service} stream interrupted: {exc.__class__.__name__}") from None

    async def lines(self) -> AsyncIterator[str]:
        iterator = self.response.aiter_lines().__aiter__()

        async def next_line() -> str | None:
            try:
                return await iterator.__anext__()
            except StopAsyncIteration:
                return None

        while True:
            line = await self._bounded(next_line)
            if line is None:
                return
            yield line

    async def aread(self) -> bytes:
        return await self._bounded(self.response.aread)

    async def aclose(self) -> None:
        await self.response.aclose()


UpstreamResult = Union[UpstreamSuccess, UpstreamHttpFailure, UpstreamTimedOut, UpstreamNetworkFailure]
UpstreamStreamResult = Union[UpstreamStream, UpstreamHttpFailure, UpstreamTimedOut, UpstreamNetworkFailure]
