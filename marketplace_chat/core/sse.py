"""Server-sent event helpers for live delivery streams."""
from typing import AsyncGenerator, Optional

from fastapi.responses import StreamingResponse

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}

KEEPALIVE = ": keepalive\n\n"


def format_sse(data: str, event: Optional[str] = None) -> str:
    """Return a properly formatted SSE payload."""
    lines = []
    if event:
        lines.append(f"event: {event}")
    for chunk in data.splitlines() or [""]:
        lines.append(f"data: {chunk}")
    return "\n".join(lines) + "\n\n"


def stream(events: AsyncGenerator[str, None]) -> StreamingResponse:
    """Create a streaming response for an async generator of SSE payloads."""

    async def iterator() -> AsyncGenerator[bytes, None]:
        async for item in events:
            yield item.encode("utf-8")

    return StreamingResponse(iterator(), media_type="text/event-stream", headers=SSE_HEADERS)
