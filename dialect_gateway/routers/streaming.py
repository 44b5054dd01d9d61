from __future__ import annotations

from typing import AsyncIterator

from fastapi.responses import StreamingResponse


def event_stream_response(
    frames: AsyncIterator[bytes],
    headers: dict[str, str],
) -> StreamingResponse:
    return StreamingResponse(
        frames,
        media_type="text/event-stream",
        headers={**headers, "Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )
