"""Twilio REST request building and webhook signature checks."""

from __future__ import annotations

import base64
import hashlib
import hmac
from typing import Mapping
from urllib.parse import urlencode

from syncgate.config.settings import Settings
from syncgate.core.models import UpstreamRequest

TWIML_PATH = "/api/phone/twiml"


def basic_auth_header(account_sid: str, auth_token: str) -> str:
    credentials = base64.b64encode(f"{account_sid}:{auth_token}".encode("utf-8")).decode("ascii")
    return f"Basic {credentials}"


def respond_url(settings: Settings, voice: str, **extra: str) -> str:
    params = {"handler": "respond", "voice": voice}
    params.update({key: value for key, value in extra.items() if value})
    return f"{settings.app_url.rstrip('/')}{TWIML_PATH}?{urlencode(params)}"


def build_create_call(settings: Settings, *, to: str, twiml: str) -> UpstreamRequest:
    """Outbound call with an inline TwiML document (no webhook round-trip for the greeting)."""

    url = f"{settings.twilio_api_base.rstrip('/')}/Accounts/{settings.twilio_account_sid}/Calls.json"
    fields = [
        ("To", to),
        ("From", settings.twilio_phone_number),
        ("Twiml", twiml),
        ("StatusCallback", f"{settings.app_url.rstrip('/')}{TWIML_PATH}?handler=status-callback"),
        ("StatusCallbackEvent", "completed"),
    ]
    return UpstreamRequest.form(
        service="twilio",
        url=url,
        fields=fields,
        timeout_seconds=settings.twilio_timeout_seconds,
        headers={"Authorization": basic_auth_header(settings.twilio_account_sid, settings.twilio_auth_token)},
    )


def compute_signature(auth_token: str, url: str, params: Mapping[str, str]) -> str:
    data = url + "".join(f"{key}{params[key]}" for key in sorted(params))
    digest = hmac.new(auth_token.encode("utf-8"), data.encode("utf-8"), hashlib.sha1).digest()
    return base64.b64encode(digest).decode("ascii")


def verify_signature(auth_token: str, presented: str, candidate_urls: list[str], params: Mapping[str, str]) -> bool:
    presented = (presented or "").strip()
    if not presented or not auth_token:
        return False
    seen: set[str] = set()
    for url in candidate_urls:
        if url in seen:
            continue
        seen.add(url)
        if hmac.compare_digest(compute_signature(auth_token, url, params), presented):
            return True
    return False
