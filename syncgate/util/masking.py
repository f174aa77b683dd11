"""Value masking for log output (phone numbers, tokens, secrets)."""

from __future__ import annotations

import re


def mask_for_log(value: str) -> str:
    """Return a partially-masked version of *value* safe for log output.

    Values of 10 chars or more keep their first 3 and last 2 chars; shorter
    values keep progressively fewer. Whitespace runs collapse first.
    """
    normalized = re.sub(r"\s+", " ", value or "").strip()
    length = len(normalized)
    if length <= 0:
        return ""
    if length == 1:
        return "*"
    if length <= 4:
        return f"{normalized[:1]}{'*' * (length - 2)}{normalized[-1:]}"

    head = 3 if length >= 10 else 2
    tail = 2
    if head + tail >= length:
        head, tail = 1, 1
    return f"{normalized[:head]}{'*' * (length - head - tail)}{normalized[-tail:]}"


def redact_headers(headers: dict[str, str]) -> dict[str, str]:
    """Replace credential-bearing header values with ``***``."""

    redacted: dict[str, str] = {}
    for key, value in headers.items():
        lowered = key.lower()
        if lowered in {"authorization", "apikey", "x-twilio-signature"} or "key" in lowered or "secret" in lowered or "token" in lowered:
            redacted[key] = "***"
        else:
            redacted[key] = value
    return redacted
