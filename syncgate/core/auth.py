"""Caller authentication: user sessions via the identity provider, cron via shared secret."""

from __future__ import annotations

import asyncio
import hmac
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Mapping

import httpx

from syncgate.config.settings import Settings
from syncgate.core.errors import AuthError, ConfigError
from syncgate.util.logger import logger


@dataclass(slots=True, frozen=True)
class Identity:
    user_id: str
    email: str = ""


def bearer_token(headers: Mapping[str, str]) -> str:
    raw = (headers.get("authorization") or "").strip()
    scheme, _, token = raw.partition(" ")
    if scheme.lower() != "bearer":
        return ""
    return token.strip()


class IdentityProvider(ABC):
    @abstractmethod
    async def resolve(self, token: str) -> Identity | None:
        """Return the session owner, or None for any failure."""

    async def aclose(self) -> None:
        return None


class SupabaseIdentityProvider(IdentityProvider):
    """Resolves access tokens with ``GET {supabase_url}/auth/v1/user``."""

    def __init__(self, settings: Settings, client: httpx.AsyncClient | None = None) -> None:
        self._settings = settings
        self._client = client
        self._client_lock: asyncio.Lock | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is not None:
            return self._client
        if self._client_lock is None:
            self._client_lock = asyncio.Lock()
        async with self._client_lock:
            if self._client is None:
                self._client = httpx.AsyncClient(timeout=self._settings.identity_timeout_seconds)
        return self._client

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def resolve(self, token: str) -> Identity | None:
        self._settings.require("supabase_url", "supabase_anon_key")
        url = f"{self._settings.supabase_url.rstrip('/')}/auth/v1/user"
        client = await self._get_client()
        try:
            response = await client.get(
                url,
                headers={
                    "apikey": self._settings.supabase_anon_key,
                    "Authorization": f"Bearer {token}",
                },
                timeout=self._settings.identity_timeout_seconds,
            )
        except httpx.HTTPError as exc:
            logger.warning("identity lookup failed error=%s", exc.__class__.__name__)
            return None
        if response.status_code != 200:
            logger.debug("identity lookup rejected status=%s", response.status_code)
            return None
        try:
            payload = response.json()
        except ValueError:
            logger.warning("identity lookup returned non-json body")
            return None
        user_id = str(payload.get("id") or "").strip() if isinstance(payload, dict) else ""
        if not user_id:
            return None
        return Identity(user_id=user_id, email=str(payload.get("email") or ""))


class AuthGuard:
    """Admits a request only when its bearer token resolves to a user."""

    def __init__(self, provider: IdentityProvider) -> None:
        self._provider = provider

    async def authorize(self, headers: Mapping[str, str]) -> Identity:
        token = bearer_token(headers)
        if not token:
            raise AuthError()
        identity = await self._provider.resolve(token)
        if identity is None:
            raise AuthError()
        return identity


class CronSecretGuard:
    def __init__(self, secret: str, *, required: bool) -> None:
        self._secret = (secret or "").strip()
        self._required = required

    def verify(self, headers: Mapping[str, str]) -> None:
        if not self._secret:
            if self._required:
                raise ConfigError("cron secret is not configured")
            logger.warning("cron secret not configured; trigger accepted without authentication")
            return
        presented = (headers.get("authorization") or "").strip().encode("utf-8")
        expected = f"Bearer {self._secret}".encode("utf-8")
        if not hmac.compare_digest(presented, expected):
            raise AuthError()
