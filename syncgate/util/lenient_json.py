"""
Best-effort extraction of a JSON object/array embedded in free-form model output.

Models asked to "return JSON" wrap it in prose, code fences, or stop mid-way.
Callers get a typed container back in every case and decide whether the raw
text is worth surfacing.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import Any

_FENCE_RE = re.compile(r"```(?:json|JSON)?\s*(.*?)```", re.DOTALL)
_DELIMITERS: dict[type, tuple[str, str]] = {dict: ("{", "}"), list: ("[", "]")}


@dataclass(slots=True)
class LenientJsonResult:
    value: Any
    ok: bool
    raw: str

    def value_or_raw(self) -> Any:
        if self.ok:
            return self.value
        return {"raw": self.raw}


def _balanced_span(text: str, start: int, opener: str, closer: str) -> str | None:
    depth = 0
    in_string = False
    escaped = False
    for index in range(start, len(text)):
        char = text[index]
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            continue
        if char == '"':
            in_string = True
        elif char == opener:
            depth += 1
        elif char == closer:
            depth -= 1
            if depth == 0:
                return text[start : index + 1]
    return None


def _try_load(candidate: str | None, container: type) -> tuple[bool, Any]:
    if not candidate:
        return False, None
    try:
        parsed = json.loads(candidate)
    except (json.JSONDecodeError, ValueError):
        return False, None
    if not isinstance(parsed, container):
        return False, None
    return True, parsed


def _candidates(text: str, opener: str, closer: str) -> list[str]:
    stripped = text.strip()
    found: list[str] = [stripped]
    fenced = _FENCE_RE.search(text)
    if fenced:
        found.append(fenced.group(1).strip())

    start = text.find(opener)
    if start >= 0:
        balanced = _balanced_span(text, start, opener, closer)
        if balanced:
            found.append(balanced)
        end = text.rfind(closer)
        if end > start:
            found.append(text[start : end + 1])
    return found


def parse_lenient_json(text: str | None, container: type = dict) -> LenientJsonResult:
    """Extract the first JSON *container* (dict or list) from *text*.

    Never raises: on failure ``ok`` is False and ``value`` is an empty
    container of the requested type.
    """
    if container not in _DELIMITERS:
        raise TypeError("container must be dict or list")
    raw = text or ""
    opener, closer = _DELIMITERS[container]
    for candidate in _candidates(raw, opener, closer):
        ok, parsed = _try_load(candidate, container)
        if ok:
            return LenientJsonResult(value=parsed, ok=True, raw=raw)
    return LenientJsonResult(value=container(), ok=False, raw=raw)
