"""SSE streaming endpoint for live poll updates (no authentication required)."""

import asyncio
import json
import logging
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session
from sse_starlette.sse import EventSourceResponse

from pollify.api.deps import get_db, get_optional_user
from pollify.models.user import User
from pollify.services.event_bus import get_event_bus
from pollify.services.poll import get_poll_by_slug

logger = logging.getLogger(__name__)
router = APIRouter()

DISCONNECT_CHECK_INTERVAL = 15  # seconds


async def _poll_event_generator(request: Request, slug: str) -> Any:
    """Yield SSE events for a poll until the client disconnects.

    Keepalive pings come from sse-starlette's ping task. The timeout on
    queue.get() lets the loop notice disconnects without blocking forever.
    """
    bus = get_event_bus()
    queue = bus.subscribe(slug)
    try:
        while True:
            if await request.is_disconnected():
                break
            try:
                message = await asyncio.wait_for(queue.get(), timeout=DISCONNECT_CHECK_INTERVAL)
            except TimeoutError:
                continue
            yield {
                "event": message["event"],
                "data": json.dumps(message["data"]),
            }
            if message["event"] == "poll_deleted":
                break
    finally:
        bus.unsubscribe(slug, queue)


@router.get("/polls/{slug}/stream")
async def poll_stream(
    slug: str,
    request: Request,
    db: Session = Depends(get_db),
    user: User | None = Depends(get_optional_user),
) -> EventSourceResponse:
    """Public SSE endpoint for live poll updates.

    Event types:
    - vote_cast: A ballot was recorded; carries the fresh results
    - comment_created / comment_deleted
    - poll_updated / poll_closed / poll_deleted
    """
    if get_poll_by_slug(db, slug, user) is None:
        raise HTTPException(status_code=404, detail="Poll not found")

    return EventSourceResponse(
        _poll_event_generator(request, slug),
        media_type="text/event-stream",
        headers={"X-Accel-Buffering": "no"},
    )
