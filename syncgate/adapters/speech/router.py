"""Speech synthesis proxy to a Kokoro-compatible ``/v1/audio/speech`` server."""

from __future__ import annotations

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse, Response

from syncgate.config.settings import Settings
from syncgate.core.auth import AuthGuard
from syncgate.core.dispatcher import UpstreamDispatcher
from syncgate.core.errors import GatewayError, ValidationError
from syncgate.core.inbound import parse_body, read_json_body
from syncgate.core.models import SpeechRequest, UpstreamRequest
from syncgate.core.translator import audio_response, error_response, require_success
from syncgate.util.logger import logger

SERVICE = "tts"


class SpeechHandlers:
    def __init__(self, settings: Settings, dispatcher: UpstreamDispatcher, auth_guard: AuthGuard) -> None:
        self._settings = settings
        self._dispatcher = dispatcher
        self._auth_guard = auth_guard

    def _build_request(self, body: SpeechRequest) -> UpstreamRequest:
        self._settings.require("tts_base_url")
        headers: dict[str, str] = {}
        if self._settings.tts_api_key:
            headers["Authorization"] = f"Bearer {self._settings.tts_api_key}"
        return UpstreamRequest.json(
            service=SERVICE,
            url=f"{self._settings.tts_base_url.rstrip('/')}/v1/audio/speech",
            payload={
                "model": self._settings.tts_model,
                "input": body.text,
                "voice": (body.voice or "").strip() or self._settings.tts_default_voice,
                "speed": body.speed,
                "response_format": self._settings.tts_response_format,
            },
            timeout_seconds=self._settings.tts_timeout_seconds,
            headers=headers,
        )

    async def synthesize(self, request: Request) -> Response | JSONResponse:
        try:
            if self._settings.require_auth_for_public_ai:
                await self._auth_guard.authorize(request.headers)
            body = parse_body(SpeechRequest, await read_json_body(request))
            limit = self._settings.tts_max_chars
            if len(body.text) > limit:
                raise ValidationError(f"text exceeds the {limit}-character limit", detail={"length": len(body.text)})
            success = require_success(await self._dispatcher.dispatch(self._build_request(body)))
        except GatewayError as exc:
            return error_response(exc, endpoint="tts")
        logger.info("tts synthesized chars=%d audio_bytes=%d", len(body.text), len(success.content))
        return audio_response(success)


def build_router(handlers: SpeechHandlers) -> APIRouter:
    router = APIRouter()
    router.add_api_route("/tts", handlers.synthesize, methods=["POST"], response_model=None)
    return router
