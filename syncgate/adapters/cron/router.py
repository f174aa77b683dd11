"""Scheduler-triggered jobs gated by the shared cron secret."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from syncgate.adapters.phone import twilio, twiml
from syncgate.config.settings import Settings
from syncgate.core.auth import CronSecretGuard
from syncgate.core.dispatcher import UpstreamDispatcher
from syncgate.core.errors import GatewayError
from syncgate.core.models import UpstreamRequest, UpstreamSuccess
from syncgate.core.translator import error_response, require_success
from syncgate.observability.logging import log_event
from syncgate.util.lenient_json import parse_lenient_json
from syncgate.util.masking import mask_for_log

EDGE_SERVICE = "edge_functions"
CLEANUP_PATH = "/auth/guest/cleanup"
EMAIL_QUEUE_PATH = "/email/process-queue"
WEEKLY_REPORT_PATH = "/growth/report/generate"

_WAKEUP_CLOSING = "I didn't hear anything. No worries, you can always reach me in the app. Have a great day!"


def _now_iso() -> str:
    return datetime.now(tz=timezone.utc).isoformat()


def _as_int(value: Any) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


def build_wakeup_twiml(settings: Settings) -> str:
    voice = twiml.resolve_voice(settings.wakeup_call_voice)
    return twiml.prompt_and_listen(
        settings.wakeup_call_greeting,
        action=twilio.respond_url(settings, voice, context="wake-up"),
        voice=voice,
        closing=_WAKEUP_CLOSING,
    )


class CronHandlers:
    def __init__(self, settings: Settings, dispatcher: UpstreamDispatcher, guard: CronSecretGuard) -> None:
        self._settings = settings
        self._dispatcher = dispatcher
        self._guard = guard

    def _edge_request(self, path: str) -> UpstreamRequest:
        self._settings.require("supabase_url", "supabase_service_role_key")
        base = f"{self._settings.supabase_url.rstrip('/')}/functions/v1/{self._settings.edge_function_name}"
        return UpstreamRequest.json(
            service=EDGE_SERVICE,
            url=f"{base}{path}",
            payload={"source": "cron"},
            timeout_seconds=self._settings.cron_timeout_seconds,
            headers={"Authorization": f"Bearer {self._settings.supabase_service_role_key}"},
        )

    async def _run_edge_job(self, request: Request, path: str) -> UpstreamSuccess:
        self._guard.verify(request.headers)
        return require_success(await self._dispatcher.dispatch(self._edge_request(path)))

    async def cleanup_guests(self, request: Request) -> JSONResponse:
        try:
            success = await self._run_edge_job(request, CLEANUP_PATH)
        except GatewayError as exc:
            return error_response(exc, endpoint="cron.cleanup_guests", envelope=True)
        upstream = parse_lenient_json(success.text, dict).value_or_raw()
        log_event("cron.cleanup_guests", status=success.status_code, message=upstream.get("message", ""))
        return JSONResponse(status_code=200, content={**upstream, "success": True})

    async def process_emails(self, request: Request) -> JSONResponse:
        try:
            success = await self._run_edge_job(request, EMAIL_QUEUE_PATH)
        except GatewayError as exc:
            return error_response(exc, endpoint="cron.process_emails", envelope=True)
        upstream = parse_lenient_json(success.text, dict)
        processed = _as_int(upstream.value.get("processed"))
        triggered_at = _now_iso()
        log_event("cron.process_emails", processed=processed, upstream_success=upstream.value.get("success"))
        return JSONResponse(status_code=200, content={"success": True, "processed": processed, "triggeredAt": triggered_at})

    async def weekly_report(self, request: Request) -> JSONResponse:
        try:
            success = await self._run_edge_job(request, WEEKLY_REPORT_PATH)
        except GatewayError as exc:
            return error_response(exc, endpoint="cron.weekly_report", envelope=True)
        upstream = parse_lenient_json(success.text, dict)
        report = upstream.value_or_raw()
        if upstream.ok and isinstance(upstream.value.get("report"), dict):
            report = upstream.value["report"]
        log_event("cron.weekly_report", report_id=report.get("id", ""), parsed=upstream.ok)
        return JSONResponse(status_code=200, content={"success": True, "report": report, "triggeredAt": _now_iso()})

    async def wakeup_call(self, request: Request) -> JSONResponse:
        to = self._settings.wakeup_call_to
        try:
            self._guard.verify(request.headers)
            self._settings.require("twilio_account_sid", "twilio_auth_token", "twilio_phone_number", "wakeup_call_to")
            upstream = twilio.build_create_call(self._settings, to=to, twiml=build_wakeup_twiml(self._settings))
            success = require_success(await self._dispatcher.dispatch(upstream))
        except GatewayError as exc:
            return error_response(exc, endpoint="cron.wakeup_call", envelope=True)
        call = parse_lenient_json(success.text, dict).value
        call_sid = str(call.get("sid") or "")
        log_event("cron.wakeup_call", call_sid=call_sid, to=mask_for_log(to))
        return JSONResponse(
            status_code=200,
            content={"success": True, "callSid": call_sid, "phoneNumber": to, "triggeredAt": _now_iso()},
        )


def build_router(handlers: CronHandlers) -> APIRouter:
    router = APIRouter()
    router.add_api_route("/cleanup-guests", handlers.cleanup_guests, methods=["POST"], response_model=None)
    router.add_api_route("/process-emails", handlers.process_emails, methods=["POST"], response_model=None)
    router.add_api_route("/wakeup-call", handlers.wakeup_call, methods=["POST"], response_model=None)
    router.add_api_route("/weekly-report", handlers.weekly_report, methods=["POST"], response_model=None)
    return router
