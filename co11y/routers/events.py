"""Server-sent events endpoint for live dashboard updates."""
from __future__ import annotations

import logging

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import StreamingResponse

from co11y.live.hub import BroadcastHub

logger = logging.getLogger("co11y.events")

events_router = APIRouter(prefix="/api/events", tags=["events"])

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


def get_hub(request: Request) -> BroadcastHub:
    hub = getattr(request.app.state, "hub", None)
    if hub is None:
        raise HTTPException(status_code=503, detail="Broadcast hub not initialized")
    return hub


@events_router.get("")
async def stream_events(request: Request):
    """Stream heartbeat, hook backlog and live frames to one client.

    The client attaches when Starlette starts pulling the body and detaches
    when the hub's stream generator exits, so a response that is never sent
    leaves no client behind.
    """
    hub = get_hub(request)
    return StreamingResponse(
        hub.stream(),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )
