"""
Twilio voice webhook: greetings, the speech -> AI -> speech loop, status callbacks.

Called by Twilio directly, so callers are authenticated by request signature
rather than a user session. Each turn is stateless: the reply depends only on
the current utterance and the call context carried in the query string.
"""

from __future__ import annotations

import re
from datetime import date

from fastapi import APIRouter, Request
from fastapi.responses import PlainTextResponse, Response
from starlette.exceptions import HTTPException
from starlette.formparsers import MultiPartException

from syncgate.adapters.ai import deepseek, prompts
from syncgate.adapters.phone import twilio, twiml
from syncgate.config.settings import Settings
from syncgate.core.dispatcher import UpstreamDispatcher
from syncgate.core.errors import GatewayError, SignatureError, ValidationError
from syncgate.core.translator import error_response, require_success
from syncgate.observability.logging import log_event
from syncgate.util.logger import logger
from syncgate.util.masking import mask_for_log

_MIN_CONFIDENCE = 0.3
_END_PHRASES = ("goodbye", "bye", "hang up", "end call", "that's all", "i'm done", "thanks bye")
_UNSPEAKABLE_RE = re.compile(r"[*_`#>\[\]]+")

_GREETINGS = {
    "morning-briefing": "Good morning! I'm your SyncScript AI. Let me give you a quick rundown of your day. What would you like to start with?",
    "evening-review": "Hey there! Time for your evening wrap-up. I can go over what you accomplished today and help you plan for tomorrow. What's on your mind?",
    "check-in": "Hey! Just checking in on you. How are things going? Need help with anything?",
    "urgent": "Hi, this is your SyncScript AI calling about something important. What do you need help with?",
    "outbound-briefing": "Hey! This is your SyncScript AI calling with a quick briefing. What would you like to go over?",
}
_DEFAULT_GREETING = "Hey! This is your SyncScript AI assistant. I'm here to help with your tasks, goals, or anything you need. What's up?"
_INBOUND_GREETING = "Welcome to SyncScript AI! I'm your personal productivity assistant. What can I help you with?"
_NO_INPUT_CLOSING = "I didn't hear anything. No worries, you can always reach me through the app. Talk soon!"
_REPROMPT = "Sorry, I didn't quite catch that. Could you say that again?"
_LOST_CONNECTION = "Looks like we lost connection. Feel free to call back anytime. Bye!"
_GOODBYE = "Great talking with you! Remember, I'm always here in the app if you need anything. Have an awesome day!"
_STILL_THERE = "Are you still there? I'll let you go for now. Talk to you soon!"
_EMPTY_REPLY = "I didn't quite catch that. What were you saying?"
_HICCUP = "Sorry, I'm having a technical hiccup. Bear with me."


def _xml(body: str) -> Response:
    return Response(content=body, status_code=200, media_type="text/xml")


def _speakable(text: str) -> str:
    return re.sub(r"\s+", " ", _UNSPEAKABLE_RE.sub("", text)).strip()


class PhoneHandlers:
    def __init__(self, settings: Settings, dispatcher: UpstreamDispatcher) -> None:
        self._settings = settings
        self._dispatcher = dispatcher

    def _candidate_urls(self, request: Request) -> list[str]:
        path = request.url.path
        if request.url.query:
            path = f"{path}?{request.url.query}"
        proto = (request.headers.get("x-forwarded-proto") or "").split(",")[0].strip() or request.url.scheme
        host = (request.headers.get("x-forwarded-host") or request.headers.get("host") or "").split(",")[0].strip()
        urls = [f"{self._settings.app_url.rstrip('/')}{path}"]
        if host:
            urls.append(f"{proto}://{host}{path}")
        return urls

    def _verify(self, request: Request, params: dict[str, str]) -> None:
        if not self._settings.validate_twilio_signature:
            return
        self._settings.require("twilio_auth_token")
        presented = request.headers.get("x-twilio-signature", "")
        if not twilio.verify_signature(self._settings.twilio_auth_token, presented, self._candidate_urls(request), params):
            raise SignatureError()

    @staticmethod
    async def _read_form(request: Request) -> dict[str, str]:
        try:
            form = await request.form()
        except (MultiPartException, HTTPException):
            raise ValidationError("Invalid form body") from None
        return {key: str(value) for key, value in form.items()}

    async def webhook(self, request: Request) -> Response:
        handler = request.query_params.get("handler") or "conversation"
        try:
            params = await self._read_form(request)
            self._verify(request, params)
            if handler == "conversation":
                return self._conversation(request)
            if handler == "inbound":
                return self._inbound(request)
            if handler == "respond":
                return await self._respond(request, params)
            if handler == "status-callback":
                return self._status_callback(params)
            raise ValidationError(f"Unknown handler: {handler}")
        except GatewayError as exc:
            return error_response(exc, endpoint=f"phone.{handler}")

    def _conversation(self, request: Request) -> Response:
        voice = twiml.resolve_voice(request.query_params.get("voice"))
        call_type = request.query_params.get("type") or "general"
        greeting = _GREETINGS.get(call_type, _DEFAULT_GREETING)
        action = twilio.respond_url(self._settings, voice, context=request.query_params.get("context", ""))
        return _xml(twiml.prompt_and_listen(greeting, action=action, voice=voice, closing=_NO_INPUT_CLOSING))

    def _inbound(self, request: Request) -> Response:
        voice = twiml.DEFAULT_VOICE
        action = twilio.respond_url(self._settings, voice)
        return _xml(
            twiml.prompt_and_listen(
                _INBOUND_GREETING,
                action=action,
                voice=voice,
                closing="I didn't hear anything. Call back anytime. Goodbye!",
            )
        )

    async def _respond(self, request: Request, params: dict[str, str]) -> Response:
        voice = twiml.resolve_voice(request.query_params.get("voice"))
        call_context = request.query_params.get("context", "")
        action = twilio.respond_url(self._settings, voice, context=call_context)
        speech = (params.get("SpeechResult") or "").strip()
        call_sid = params.get("CallSid") or "unknown"
        try:
            confidence = float(params.get("Confidence") or 0)
        except ValueError:
            confidence = 0.0

        if not speech or confidence < _MIN_CONFIDENCE:
            logger.info("phone respond reprompt call_sid=%s confidence=%.2f", call_sid, confidence)
            return _xml(twiml.prompt_and_listen(_REPROMPT, action=action, voice=voice, closing=_LOST_CONNECTION))

        lowered = speech.lower()
        if any(phrase in lowered for phrase in _END_PHRASES):
            logger.info("phone respond end_of_call call_sid=%s", call_sid)
            return _xml(twiml.document(twiml.say(_GOODBYE, voice) + twiml.hangup()))

        system_prompt = prompts.PHONE_SYSTEM_PROMPT.format(today=date.today().isoformat())
        if call_context:
            system_prompt = f"{system_prompt}\nCall purpose: {call_context}."
        try:
            upstream = deepseek.build_completion(
                self._settings,
                [{"role": "system", "content": system_prompt}, {"role": "user", "content": speech}],
                max_tokens=256,
                temperature=0.85,
            )
            success = require_success(await self._dispatcher.dispatch(upstream))
            spoken = _speakable(deepseek.completion_text(deepseek.completion_json(success))) or _EMPTY_REPLY
        except GatewayError as exc:
            # a failed turn is spoken, not dropped, so the caller stays on the line
            logger.warning("phone respond upstream failed call_sid=%s code=%s message=%s", call_sid, exc.code, exc.message)
            spoken = _HICCUP
        logger.info("phone respond call_sid=%s reply_chars=%d", call_sid, len(spoken))
        return _xml(twiml.prompt_and_listen(spoken, action=action, voice=voice, closing=_STILL_THERE, wait_seconds=3))

    def _status_callback(self, params: dict[str, str]) -> Response:
        log_event(
            "phone.status_callback",
            call_sid=params.get("CallSid", ""),
            status=params.get("CallStatus", ""),
            duration=params.get("CallDuration", ""),
            to=mask_for_log(params.get("To", "")),
        )
        return PlainTextResponse("OK")


def build_router(handlers: PhoneHandlers) -> APIRouter:
    router = APIRouter()
    router.add_api_route("/twiml", handlers.webhook, methods=["POST"], response_model=None)
    return router
