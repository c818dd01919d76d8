"""API for user-facing notices."""

import asyncio
import json

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import StreamingResponse

from ..observability.notifications import NotificationCenter
from .dependencies import get_notifier

router = APIRouter()


@router.get("/notifications")
async def recent_notifications(
    count: int = Query(default=50, ge=1, le=200),
    notifier: NotificationCenter = Depends(get_notifier),
):
    """Get the most recent notices, oldest first."""
    return [n.to_dict() for n in notifier.get_recent(count)]


@router.get("/notifications/stream")
async def stream_notifications(
    request: Request,
    notifier: NotificationCenter = Depends(get_notifier),
):
    """Stream notices via SSE."""
    queue = notifier.subscribe()

    async def event_generator():
        try:
            yield "event: connected\ndata: {}\n\n"

            while True:
                if await request.is_disconnected():
                    break

                try:
                    notice = await asyncio.wait_for(queue.get(), timeout=30.0)
                    data = json.dumps(notice.to_dict())
                    yield f"event: notice\ndata: {data}\n\n"
                except asyncio.TimeoutError:
                    yield ": keepalive\n\n"
        finally:
            notifier.unsubscribe(queue)

    return StreamingResponse(
        event_generator(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )
