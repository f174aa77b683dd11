"""
Single-shot upstream dispatch with an explicit deadline.

Every gateway handler sends exactly one outbound request through here and
receives a tagged result; nothing in this module raises for upstream
failures, so handlers decide how to translate them. ``open_stream`` is the
same contract for callers that relay the body as it arrives.
"""

from __future__ import annotations

import asyncio
import time

import httpx

from syncgate.core.errors import ConfigError
from syncgate.core.models import (
    UpstreamHttpFailure,
    UpstreamNetworkFailure,
    UpstreamRequest,
    UpstreamResult,
    UpstreamStream,
    UpstreamStreamResult,
    UpstreamSuccess,
    UpstreamTimedOut,
)
from syncgate.util.logger import logger
from syncgate.util.masking import redact_headers

_ERROR_BODY_MAX_CHARS = 600


class UpstreamDispatcher:
    """Owns the pooled httpx client shared by every handler."""

    def __init__(
        self,
        *,
        max_connections: int = 100,
        max_keepalive_connections: int = 20,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._limits = httpx.Limits(
            max_connections=max(10, int(max_connections)),
            max_keepalive_connections=max(5, int(max_keepalive_connections)),
        )
        self._client = client
        self._client_lock: asyncio.Lock | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is not None:
            return self._client
        if self._client_lock is None:
            self._client_lock = asyncio.Lock()
        async with self._client_lock:
            if self._client is None:
                self._client = httpx.AsyncClient(http2=False, limits=self._limits)
        return self._client

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def _send(self, client: httpx.AsyncClient, upstream: UpstreamRequest, deadline: float) -> httpx.Response:
        # client.request reads the full body, so the deadline covers connect, send and read
        return await client.request(
            upstream.method,
            upstream.url,
            content=upstream.body,
            headers=upstream.headers,
            timeout=deadline,
        )

    async def dispatch(self, upstream: UpstreamRequest) -> UpstreamResult:
        if not (upstream.url or "").strip():
            raise ConfigError(f"{upstream.service} upstream url is not configured")

        deadline = max(0.001, float(upstream.timeout_seconds))
        client = await self._get_client()
        started = time.perf_counter()
        logger.debug(
            "dispatch start service=%s url=%s headers=%s body_bytes=%d deadline=%.2fs",
            upstream.service,
            upstream.url,
            redact_headers(upstream.headers),
            len(upstream.body),
            deadline,
        )
        try:
            response = await asyncio.wait_for(self._send(client, upstream, deadline), timeout=deadline)
        except (asyncio.TimeoutError, httpx.TimeoutException):
            logger.warning("dispatch timeout service=%s deadline=%.2fs", upstream.service, deadline)
            return UpstreamTimedOut(service=upstream.service, timeout_seconds=deadline)
        except httpx.HTTPError as exc:
            detail = (str(exc) or "").strip() or exc.__class__.__name__
            logger.warning("dispatch network_failure service=%s error=%s", upstream.service, detail)
            return UpstreamNetworkFailure(service=upstream.service, message=detail)

        elapsed_ms = (time.perf_counter() - started) * 1000.0
        logger.debug(
            "dispatch done service=%s status=%s elapsed_ms=%.1f",
            upstream.service,
            response.status_code,
            elapsed_ms,
        )
        if not 200 <= response.status_code < 300:
            body_text = response.content.decode("utf-8", errors="replace")[:_ERROR_BODY_MAX_CHARS]
            logger.warning(
                "dispatch http_error service=%s status=%s body=%s",
                upstream.service,
                response.status_code,
                body_text,
            )
            return UpstreamHttpFailure(service=upstream.service, status_code=response.status_code, body_text=body_text)

        headers = {key.lower(): value for key, value in response.headers.items()}
        return UpstreamSuccess(
            service=upstream.service,
            status_code=response.status_code,
            content=response.content,
            headers=headers,
        )

    async def open_stream(self, upstream: UpstreamRequest) -> UpstreamStreamResult:
        """
        Send the request and stop once the response headers arrive.

        Non-2xx statuses are read, closed and reported like ``dispatch`` does.
        A 2xx comes back as an open ``UpstreamStream`` whose body reads share
        the same deadline.
        """

        if not (upstream.url or "").strip():
            raise ConfigError(f"{upstream.service} upstream url is not configured")

        deadline = max(0.001, float(upstream.timeout_seconds))
        client = await self._get_client()
        deadline_at = time.monotonic() + deadline
        logger.debug(
            "stream start service=%s url=%s headers=%s body_bytes=%d deadline=%.2fs",
            upstream.service,
            upstream.url,
            redact_headers(upstream.headers),
            len(upstream.body),
            deadline,
        )
        request = client.build_request(
            upstream.method,
            upstream.url,
            content=upstream.body,
            headers=upstream.headers,
            timeout=deadline,
        )
        try:
            response = await asyncio.wait_for(client.send(request, stream=True), timeout=deadline)
        except (asyncio.TimeoutError, httpx.TimeoutException):
            logger.warning("stream timeout service=%s deadline=%.2fs", upstream.service, deadline)
            return UpstreamTimedOut(service=upstream.service, timeout_seconds=deadline)
        except httpx.HTTPError as exc:
            detail = (str(exc) or "").strip() or exc.__class__.__name__
            logger.warning("stream network_failure service=%s error=%s", upstream.service, detail)
            return UpstreamNetworkFailure(service=upstream.service, message=detail)

        if not 200 <= response.status_code < 300:
            try:
                raw = await asyncio.wait_for(response.aread(), timeout=max(0.001, deadline_at - time.monotonic()))
            except (asyncio.TimeoutError, httpx.HTTPError):
                raw = b""
            finally:
                await response.aclose()
            body_text = raw.decode("utf-8", errors="replace")[:_ERROR_BODY_MAX_CHARS]
            logger.warning(
                "stream http_error service=%s status=%s body=%s",
                upstream.service,
                response.status_code,
                body_text,
            )
            return UpstreamHttpFailure(service=upstream.service, status_code=response.status_code, body_text=body_text)

        return UpstreamStream(
            service=upstream.service,
            status_code=response.status_code,
            response=response,
            timeout_seconds=deadline,
            deadline_at=deadline_at,
            headers={key.lower(): value for key, value in response.headers.items()},
        )
