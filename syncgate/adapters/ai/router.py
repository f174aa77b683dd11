"""AI proxy routes: chat, insights, suggestions and the anonymous guest chat."""

from __future__ import annotations

import json
from typing import Any, AsyncIterator

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse, Response

from syncgate.adapters.ai import deepseek, prompts
from syncgate.adapters.ai.guest_quota import GuestQuota
from syncgate.adapters.ai.stream_utils import (
    DONE_MARKER,
    build_streaming_response,
    extract_sse_data,
    sse_chunk,
    sse_done_chunk,
)
from syncgate.config.settings import Settings
from syncgate.core.auth import AuthGuard
from syncgate.core.dispatcher import UpstreamDispatcher
from syncgate.core.errors import GatewayError, RateLimitError
from syncgate.core.inbound import client_ip, parse_body, read_json_body
from syncgate.core.models import ChatRequest, GuestChatRequest, InsightsRequest, SuggestionsRequest, UpstreamStream
from syncgate.core.translator import (
    CHAT_COMPLETION_FIELDS,
    error_response,
    pick_fields,
    require_stream,
    require_success,
)
from syncgate.util.lenient_json import parse_lenient_json
from syncgate.util.logger import logger

_CONVERSATION_ROLES = frozenset({"user", "assistant"})
GUEST_RETRY_AFTER_SECONDS = 3600


class AIHandlers:
    def __init__(
        self,
        settings: Settings,
        dispatcher: UpstreamDispatcher,
        auth_guard: AuthGuard,
        guest_quota: GuestQuota | None = None,
    ) -> None:
        self._settings = settings
        self._dispatcher = dispatcher
        self._auth_guard = auth_guard
        self._guest_quota = guest_quota or GuestQuota(
            sessions_per_ip=settings.guest_sessions_per_ip_per_hour,
            messages_per_session=settings.guest_messages_per_session,
        )

    async def _authorize_public(self, request: Request) -> None:
        if self._settings.require_auth_for_public_ai:
            await self._auth_guard.authorize(request.headers)

    async def _complete(self, messages: list[dict[str, str]], **options: Any) -> dict[str, Any]:
        upstream = deepseek.build_completion(self._settings, messages, **options)
        success = require_success(await self._dispatcher.dispatch(upstream))
        return deepseek.completion_json(success)

    @staticmethod
    def _chat_messages(body: ChatRequest) -> list[dict[str, str]]:
        messages = [{"role": "system", "content": prompts.chat_system_message(body.context)}]
        for item in body.messages or []:
            if item.role in _CONVERSATION_ROLES:
                messages.append({"role": item.role, "content": item.content})
        if (body.message or "").strip():
            messages.append({"role": "user", "content": body.message.strip()})
        return messages

    async def chat(self, request: Request) -> JSONResponse:
        try:
            identity = await self._auth_guard.authorize(request.headers)
            body = parse_body(ChatRequest, await read_json_body(request))
            payload = await self._complete(self._chat_messages(body))
        except GatewayError as exc:
            return error_response(exc, endpoint="ai.chat")
        logger.info("ai chat completed user=%s model=%s", identity.user_id, payload.get("model"))
        return JSONResponse(status_code=200, content=pick_fields(payload, CHAT_COMPLETION_FIELDS))

    async def insights(self, request: Request) -> JSONResponse:
        try:
            await self._authorize_public(request)
            body = parse_body(InsightsRequest, await read_json_body(request))
            payload = await self._complete(
                [
                    {"role": "system", "content": prompts.INSIGHTS_SYSTEM_PROMPT},
                    {"role": "user", "content": prompts.insights_prompt(body.tasks, body.goals, body.time_range)},
                ],
                temperature=0.4,
            )
        except GatewayError as exc:
            return error_response(exc, endpoint="ai.insights", envelope=True)

        extracted = parse_lenient_json(deepseek.completion_text(payload), dict)
        if not extracted.ok:
            logger.warning("ai insights reply was not json; returning empty insights chars=%d", len(extracted.raw))
        model = deepseek.completion_model(payload, self._settings.deepseek_model)
        return JSONResponse(status_code=200, content={"success": True, "data": {"insights": extracted.value, "model": model}})

    async def suggestions(self, request: Request) -> JSONResponse:
        try:
            await self._authorize_public(request)
            body = parse_body(SuggestionsRequest, await read_json_body(request))
            payload = await self._complete(
                [
                    {"role": "system", "content": prompts.SUGGESTIONS_SYSTEM_PROMPT},
                    {
                        "role": "user",
                        "content": prompts.suggestions_prompt(body.context, body.tasks, body.goals, body.count),
                    },
                ],
                temperature=0.6,
            )
        except GatewayError as exc:
            return error_response(exc, endpoint="ai.suggestions", envelope=True)

        text = deepseek.completion_text(payload)
        extracted = parse_lenient_json(text, list)
        suggestions = extracted.value
        if not extracted.ok:
            # some replies wrap the array: {"suggestions": [...]}
            wrapped = parse_lenient_json(text, dict)
            nested = wrapped.value.get("suggestions") if wrapped.ok else None
            suggestions = nested if isinstance(nested, list) else []
            if not isinstance(nested, list):
                logger.warning("ai suggestions reply was not json; returning empty list chars=%d", len(text))
        model = deepseek.completion_model(payload, self._settings.deepseek_model)
        return JSONResponse(
            status_code=200,
            content={"success": True, "data": {"suggestions": suggestions[: body.count], "model": model}},
        )

    def _guest_conversation(self, body: GuestChatRequest) -> list[dict[str, str]]:
        conversation = [
            {"role": item.role, "content": item.content}
            for item in body.messages
            if item.role in _CONVERSATION_ROLES
        ][-self._settings.guest_max_input_messages :]
        return [{"role": "system", "content": prompts.GUEST_SYSTEM_PROMPT}, *conversation]

    async def _relay_guest_stream(self, stream: UpstreamStream) -> AsyncIterator[bytes]:
        tokens = 0
        try:
            if "text/event-stream" not in stream.content_type:
                # upstream answered with a whole completion instead of chunks
                raw = await stream.aread()
                try:
                    payload = json.loads(raw.decode("utf-8", errors="replace"))
                except ValueError:
                    payload = None
                text = deepseek.completion_text(payload) if isinstance(payload, dict) else ""
                logger.info("ai nexus_guest stream fallback content_type=%s chars=%d", stream.content_type, len(text))
                yield sse_chunk({"content": text})
            else:
                async for line in stream.lines():
                    data = extract_sse_data(line)
                    if data is None:
                        continue
                    if data == DONE_MARKER:
                        break
                    token = deepseek.delta_text(data)
                    if token:
                        tokens += 1
                        yield sse_chunk({"token": token})
        except GatewayError as exc:
            logger.warning("ai nexus_guest stream interrupted code=%s tokens=%d message=%s", exc.code, tokens, exc.message)
        finally:
            await stream.aclose()
        logger.debug("ai nexus_guest stream done tokens=%d", tokens)
        yield sse_done_chunk()

    async def guest_chat(self, request: Request) -> Response:
        self._guest_quota.tick()
        headers: dict[str, str] = {}
        try:
            body = parse_body(GuestChatRequest, await read_json_body(request))
            self._settings.require("deepseek_api_key", "deepseek_base_url")
            if len(body.messages) <= 1:
                allowed, remaining = self._guest_quota.acquire_session(client_ip(request))
                if not allowed:
                    raise RateLimitError(retry_after=GUEST_RETRY_AFTER_SECONDS)
                headers["X-RateLimit-Remaining"] = str(remaining)
            if not self._guest_quota.acquire_message(body.session_id):
                raise RateLimitError("This demo session has reached its message limit. Start a new call to continue!")

            upstream = deepseek.build_completion(
                self._settings,
                self._guest_conversation(body),
                max_tokens=150,
                temperature=0.5,
                stream=body.stream,
            )
            if body.stream:
                stream = require_stream(await self._dispatcher.open_stream(upstream))
                return build_streaming_response(self._relay_guest_stream(stream), headers=headers)
            payload = deepseek.completion_json(require_success(await self._dispatcher.dispatch(upstream)))
        except GatewayError as exc:
            return error_response(exc, endpoint="ai.nexus_guest", headers=headers or None)
        return JSONResponse(status_code=200, content={"content": deepseek.completion_text(payload)}, headers=headers)


def build_router(handlers: AIHandlers) -> APIRouter:
    router = APIRouter()
    router.add_api_route("/chat", handlers.chat, methods=["POST"], response_model=None)
    router.add_api_route("/insights", handlers.insights, methods=["POST"], response_model=None)
    router.add_api_route("/suggestions", handlers.suggestions, methods=["POST"], response_model=None)
    router.add_api_route("/nexus-guest", handlers.guest_chat, methods=["POST"], response_model=None)
    return router
