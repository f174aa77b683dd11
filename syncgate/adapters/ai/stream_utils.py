"""Server-sent event framing for the streamed guest chat."""

from __future__ import annotations

import json
from typing import Any, AsyncIterable

from fastapi.responses import StreamingResponse

DONE_MARKER = "[DONE]"


def sse_chunk(payload: dict[str, Any]) -> bytes:
    return f"data: {json.dumps(payload, ensure_ascii=False)}\n\n".encode("utf-8")


def sse_done_chunk() -> bytes:
    return b"data: [DONE]\n\n"


def extract_sse_data(line: str) -> str | None:
    stripped = (line or "").strip()
    if not stripped.startswith("data:"):
        return None
    return stripped[5:].strip()


def build_streaming_response(
    generator: AsyncIterable[bytes],
    headers: dict[str, str] | None = None,
) -> StreamingResponse:
    return StreamingResponse(
        generator,
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "X-Accel-Buffering": "no",
            **(headers or {}),
        },
    )
