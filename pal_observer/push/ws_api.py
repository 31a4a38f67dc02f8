from __future__ import annotations

import logging

import anyio
from fastapi import APIRouter, WebSocket

from pal_observer.push.hub import Subscriber

logger = logging.getLogger(__name__)

router = APIRouter(tags=["push"])


async def _read_until_closed(websocket: WebSocket) -> None:
    # server-to-client only; inbound frames are ignored
    while True:
        msg = await websocket.receive()
        if msg.get("type") == "websocket.disconnect":
            return


@router.websocket("/")
async def push_socket(websocket: WebSocket):
    """
    Push channel: greeting on connect, then every emitted event.
    """
    container = websocket.app.state.container
    hub = container.hub

    await websocket.accept()
    client = websocket.client
    sub = Subscriber(
        websocket.send_text,
        backlog=container.config.subscriber_backlog,
        name=f"ws:{client.host}:{client.port}" if client else "ws",
    )
    hub.subscribe(sub)

    async def pump(scope: anyio.CancelScope) -> None:
        await sub.pump()
        # dropped by the hub (stalled or send failure)
        try:
            await websocket.close(code=1011)
        except Exception as e:
            logger.debug("Close after drop failed: %s", e)
        scope.cancel()

    async def read(scope: anyio.CancelScope) -> None:
        await _read_until_closed(websocket)
        scope.cancel()

    try:
        async with anyio.create_task_group() as tg:
            tg.start_soon(pump, tg.cancel_scope)
            tg.start_soon(read, tg.cancel_scope)
    except Exception as e:
        logger.error("WebSocket error: %s", e)
    finally:
        # sync, so it runs even when the handler itself is being cancelled
        hub.unsubscribe(sub)
