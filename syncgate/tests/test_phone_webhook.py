import json
import xml.etree.ElementTree as ET
from urllib.parse import urlencode

import httpx
import pytest
from starlette.requests import Request

from syncgate.adapters.phone import twilio
from syncgate.adapters.phone.router import PhoneHandlers
from syncgate.config.settings import Settings
from syncgate.core.dispatcher import UpstreamDispatcher

APP_URL = "https://app.example.com"
AUTH_TOKEN = "twilio-token"


def _build_request(
    query: str,
    form: dict[str, str],
    signature: str | None = None,
    host: str = "internal:8080",
    content_type: bytes = b"application/x-www-form-urlencoded",
) -> Request:
    payload = urlencode(form).encode("utf-8")
    headers = [
        (b"content-type", content_type),
        (b"host", host.encode("latin-1")),
    ]
    if signature is not None:
        headers.append((b"x-twilio-signature", signature.encode("latin-1")))
    scope = {
        "type": "http",
        "asgi": {"version": "3.0"},
        "http_version": "1.1",
        "method": "POST",
        "scheme": "http",
        "path": "/api/phone/twiml",
        "raw_path": b"/api/phone/twiml",
        "query_string": query.encode("latin-1"),
        "headers": headers,
        "client": ("54.172.60.1", 50000),
        "server": ("internal", 8080),
    }
    sent = False

    async def receive() -> dict:
        nonlocal sent
        if sent:
            return {"type": "http.request", "body": b"", "more_body": False}
        sent = True
        return {"type": "http.request", "body": payload, "more_body": False}

    return Request(scope, receive)


def _signed(query: str, form: dict[str, str]) -> Request:
    signature = twilio.compute_signature(AUTH_TOKEN, f"{APP_URL}/api/phone/twiml?{query}", form)
    return _build_request(query, form, signature)


def _handlers(reply: str = "Sounds like a plan. Start with your hardest task.", status: int = 200, **overrides):
    calls: list[dict] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(json.loads(request.content))
        if status != 200:
            return httpx.Response(status, text="error")
        return httpx.Response(200, json={"choices": [{"message": {"role": "assistant", "content": reply}}]})

    values = {
        "deepseek_api_key": "dk-test",
        "twilio_auth_token": AUTH_TOKEN,
        "app_url": APP_URL,
        **overrides,
    }
    dispatcher = UpstreamDispatcher(client=httpx.AsyncClient(transport=httpx.MockTransport(handler)))
    return PhoneHandlers(Settings(**values), dispatcher), calls


def _xml(response) -> ET.Element:
    assert response.headers["content-type"].startswith("text/xml")
    return ET.fromstring(response.body)


@pytest.mark.asyncio
async def test_missing_signature_is_403():
    handlers, calls = _handlers()
    response = await handlers.webhook(_build_request("handler=respond", {"SpeechResult": "hi", "Confidence": "0.9"}))
    assert response.status_code == 403
    assert json.loads(response.body)["code"] == "INVALID_SIGNATURE"
    assert calls == []


@pytest.mark.asyncio
async def test_tampered_params_fail_signature():
    handlers, _ = _handlers()
    query = "handler=respond"
    signature = twilio.compute_signature(AUTH_TOKEN, f"{APP_URL}/api/phone/twiml?{query}", {"SpeechResult": "hi"})
    response = await handlers.webhook(_build_request(query, {"SpeechResult": "transfer money"}, signature))
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_forwarded_host_url_is_accepted():
    handlers, _ = _handlers()
    query = "handler=inbound"
    signature = twilio.compute_signature(AUTH_TOKEN, f"http://tunnel.example.net/api/phone/twiml?{query}", {"CallSid": "CA1"})
    response = await handlers.webhook(_build_request(query, {"CallSid": "CA1"}, signature, host="tunnel.example.net"))
    assert response.status_code == 200


@pytest.mark.asyncio
async def test_conversation_greeting_by_call_type():
    handlers, calls = _handlers()
    query = "handler=conversation&type=evening-review&voice=Polly.Matthew"
    root = _xml(await handlers.webhook(_signed(query, {"CallSid": "CA1"})))
    says = root.findall("Say")
    assert "evening wrap-up" in says[0].text
    assert says[0].get("voice") == "Polly.Matthew"
    gather = root.find("Gather")
    assert "handler=respond" in gather.get("action")
    assert "voice=Polly.Matthew" in gather.get("action")
    assert calls == []


@pytest.mark.asyncio
async def test_respond_low_confidence_reprompts_without_ai():
    handlers, calls = _handlers()
    root = _xml(await handlers.webhook(_signed("handler=respond", {"SpeechResult": "mumble", "Confidence": "0.1"})))
    assert "didn't quite catch that" in root.find("Say").text
    assert root.find("Gather") is not None
    assert calls == []


@pytest.mark.asyncio
async def test_respond_goodbye_hangs_up():
    handlers, calls = _handlers()
    root = _xml(await handlers.webhook(_signed("handler=respond", {"SpeechResult": "Okay thanks, goodbye", "Confidence": "0.92"})))
    assert root.find("Hangup") is not None
    assert root.find("Gather") is None
    assert calls == []


@pytest.mark.asyncio
async def test_respond_speaks_ai_reply():
    handlers, calls = _handlers(reply="**Start** with your # hardest task.")
    form = {"SpeechResult": "What should I do first?", "Confidence": "0.88", "CallSid": "CA7"}
    root = _xml(await handlers.webhook(_signed("handler=respond&context=wake-up", form)))
    assert root.find("Say").text == "Start with your hardest task."
    assert root.find("Gather") is not None

    assert len(calls) == 1
    sent = calls[0]
    assert sent["max_tokens"] == 256
    assert "Call purpose: wake-up." in sent["messages"][0]["content"]
    assert sent["messages"][1] == {"role": "user", "content": "What should I do first?"}


@pytest.mark.asyncio
async def test_respond_upstream_failure_is_spoken():
    handlers, calls = _handlers(status=500)
    response = await handlers.webhook(_signed("handler=respond", {"SpeechResult": "plan my day", "Confidence": "0.9"}))
    assert response.status_code == 200
    root = _xml(response)
    assert "technical hiccup" in root.find("Say").text
    assert len(calls) == 1


@pytest.mark.asyncio
async def test_status_callback_returns_ok_text():
    handlers, _ = _handlers()
    response = await handlers.webhook(_signed("handler=status-callback", {"CallSid": "CA1", "CallStatus": "completed"}))
    assert response.status_code == 200
    assert response.body == b"OK"


@pytest.mark.asyncio
async def test_unknown_handler_is_400():
    handlers, _ = _handlers()
    response = await handlers.webhook(_signed("handler=transfer", {"CallSid": "CA1"}))
    assert response.status_code == 400
    assert json.loads(response.body)["code"] == "VALIDATION_ERROR"


@pytest.mark.asyncio
async def test_signature_check_can_be_disabled():
    handlers, _ = _handlers(validate_twilio_signature=False, twilio_auth_token="")
    response = await handlers.webhook(_build_request("handler=inbound", {"CallSid": "CA1"}))
    assert response.status_code == 200
    assert "Welcome to SyncScript AI" in _xml(response).find("Say").text


@pytest.mark.asyncio
async def test_malformed_form_body_is_400():
    handlers, calls = _handlers()
    request = _build_request("handler=respond", {"SpeechResult": "hi"}, content_type=b"multipart/form-data")
    response = await handlers.webhook(request)
    assert response.status_code == 400
    assert json.loads(response.body) == {"error": "Invalid form body", "code": "VALIDATION_ERROR"}
    assert calls == []
