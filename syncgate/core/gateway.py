"""FastAPI app entry."""

from __future__ import annotations

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, Response

from syncgate.adapters.ai.router import AIHandlers, build_router as build_ai_router
from syncgate.adapters.cron.router import CronHandlers, build_router as build_cron_router
from syncgate.adapters.phone.router import PhoneHandlers, build_router as build_phone_router
from syncgate.adapters.speech.router import SpeechHandlers, build_router as build_speech_router
from syncgate.config.settings import Settings, settings as default_settings
from syncgate.core.auth import AuthGuard, CronSecretGuard, IdentityProvider, SupabaseIdentityProvider
from syncgate.core.dispatcher import UpstreamDispatcher
from syncgate.core.errors import InternalError
from syncgate.core.translator import error_body
from syncgate.util.logger import logger

_API_PREFIX = "/api/"
_ALLOWED_METHODS = "POST, OPTIONS"
_ALLOWED_HEADERS = "Content-Type, Authorization"


def _cors_headers(settings: Settings) -> dict[str, str]:
    return {
        "Access-Control-Allow-Origin": settings.cors_allow_origin,
        "Access-Control-Allow-Methods": _ALLOWED_METHODS,
        "Access-Control-Allow-Headers": _ALLOWED_HEADERS,
    }


def create_app(
    settings: Settings | None = None,
    *,
    dispatcher: UpstreamDispatcher | None = None,
    identity_provider: IdentityProvider | None = None,
) -> FastAPI:
    """Wire handlers, guards and the shared dispatcher into one app."""

    settings = settings or default_settings
    dispatcher = dispatcher or UpstreamDispatcher(
        max_connections=settings.upstream_max_connections,
        max_keepalive_connections=settings.upstream_max_keepalive_connections,
    )
    identity_provider = identity_provider or SupabaseIdentityProvider(settings)
    auth_guard = AuthGuard(identity_provider)
    cron_guard = CronSecretGuard(settings.cron_secret, required=settings.cron_secret_required)

    app = FastAPI(title=settings.app_name)
    app.state.settings = settings
    app.state.dispatcher = dispatcher
    app.include_router(build_ai_router(AIHandlers(settings, dispatcher, auth_guard)), prefix="/api/ai")
    app.include_router(build_speech_router(SpeechHandlers(settings, dispatcher, auth_guard)), prefix="/api")
    app.include_router(build_cron_router(CronHandlers(settings, dispatcher, cron_guard)), prefix="/api/cron")
    app.include_router(build_phone_router(PhoneHandlers(settings, dispatcher)), prefix="/api/phone")

    @app.middleware("http")
    async def method_gate_middleware(request: Request, call_next):
        if not request.url.path.startswith(_API_PREFIX):
            return await call_next(request)

        cors = _cors_headers(settings)
        method = request.method.upper()
        if method == "OPTIONS":
            return Response(status_code=204, headers=cors)
        if method != "POST":
            logger.info("method gate reject method=%s path=%s", method, request.url.path)
            return JSONResponse(
                status_code=405,
                content={"error": "Method not allowed", "code": "METHOD_NOT_ALLOWED"},
                headers={**cors, "Allow": _ALLOWED_METHODS},
            )

        try:
            response = await call_next(request)
        except Exception:
            logger.exception("gateway unhandled exception path=%s", request.url.path)
            return JSONResponse(status_code=500, content=error_body(InternalError()), headers=cors)
        for name, value in cors.items():
            response.headers[name] = value
        return response

    @app.get("/health")
    def health() -> dict:
        logger.debug("health check")
        return {"status": "ok"}

    @app.on_event("startup")
    async def report_configuration() -> None:
        logger.info("gateway starting app=%s env=%s", settings.app_name, settings.env)
        for integration, missing in settings.missing_integrations().items():
            logger.warning(
                "integration not configured integration=%s missing=%s",
                integration,
                ",".join(name.upper() for name in missing),
            )

    @app.on_event("shutdown")
    async def shutdown_cleanup() -> None:
        await dispatcher.aclose()
        await identity_provider.aclose()

    return app


app = create_app()
