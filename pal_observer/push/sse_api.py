from __future__ import annotations

import json
from typing import Any, AsyncIterator, Dict

from fastapi import APIRouter, Request
from fastapi.responses import StreamingResponse

from pal_observer.push.hub import Subscriber

router = APIRouter(tags=["push-stream"])


def _sse(event: str, data: str | Dict[str, Any]) -> str:
    body = data if isinstance(data, str) else json.dumps(data)
    return f"event: {event}\ndata: {body}\n\n"


async def _stream(request: Request, sub: Subscriber) -> AsyncIterator[str]:
    hub = request.app.state.container.hub
    # registered on first iteration so the finally below always pairs with it
    hub.subscribe(sub)
    try:
        async for mtype, payload in sub.stream():
            yield _sse(mtype, payload)
    finally:
        hub.unsubscribe(sub)


@router.get("/events/stream")
async def events_stream(request: Request):
    """
    SSE rendition of the push channel (same messages as the WebSocket).
    """
    container = request.app.state.container
    client = request.client
    sub = Subscriber(
        backlog=container.config.subscriber_backlog,
        name=f"sse:{client.host}:{client.port}" if client else "sse",
    )
    return StreamingResponse(
        _stream(request, sub),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache"},
    )
