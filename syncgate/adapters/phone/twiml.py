"""TwiML voice-response builders. Every interpolated value is XML-escaped."""

from __future__ import annotations

DEFAULT_VOICE = "Polly.Joanna-Neural"

_XML_ENTITIES = (
    ("&", "&amp;"),
    ("<", "&lt;"),
    (">", "&gt;"),
    ('"', "&quot;"),
    ("'", "&apos;"),
)


def escape_xml(text: str) -> str:
    escaped = str(text)
    # & first so the entities added below are not re-escaped
    for char, entity in _XML_ENTITIES:
        escaped = escaped.replace(char, entity)
    return escaped


def resolve_voice(voice: str | None) -> str:
    candidate = (voice or "").strip()
    if not candidate or candidate in {"default", "undefined"}:
        return DEFAULT_VOICE
    return candidate


def document(inner_xml: str) -> str:
    return f'<?xml version="1.0" encoding="UTF-8"?>\n<Response>{inner_xml}</Response>'


def say(text: str, voice: str = DEFAULT_VOICE) -> str:
    return f'<Say voice="{escape_xml(voice)}">{escape_xml(text)}</Say>'


def pause(length: int = 1) -> str:
    return f'<Pause length="{int(length)}"/>'


def hangup() -> str:
    return "<Hangup/>"


def gather(
    action: str,
    *,
    input_mode: str = "speech",
    speech_timeout: str = "auto",
    language: str = "en-US",
    inner_xml: str = "",
) -> str:
    return (
        f'<Gather input="{escape_xml(input_mode)}" action="{escape_xml(action)}" '
        f'speechTimeout="{escape_xml(speech_timeout)}" language="{escape_xml(language)}" method="POST">'
        f"{inner_xml}</Gather>"
    )


def prompt_and_listen(text: str, *, action: str, voice: str, closing: str, wait_seconds: int = 2) -> str:
    """Say *text*, listen for speech posted to *action*, then say *closing* if nothing was heard."""

    return document(
        say(text, voice)
        + gather(action, inner_xml=pause(wait_seconds))
        + say(closing, voice)
    )
