from __future__ import annotations

import asyncio
import logging
from typing import List, Optional

import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from pal_observer.api.middleware import PermissiveCORSMiddleware
from pal_observer.api.query_api import router as query_router
from pal_observer.config import ObserverConfig
from pal_observer.container import ObserverContainer
from pal_observer.push.sse_api import router as sse_router
from pal_observer.push.ws_api import router as ws_router

logger = logging.getLogger(__name__)

VERSION = "1.0.0"


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)


async def _http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    # unknown path or method: not found
    if exc.status_code in (404, 405):
        return JSONResponse({"error": "Not found"}, status_code=404)
    return JSONResponse({"error": str(exc.detail)}, status_code=exc.status_code)


def create_query_app(container: ObserverContainer) -> FastAPI:
    app = FastAPI(title="PAL-E Observer", version=VERSION, docs_url=None, redoc_url=None, openapi_url=None)
    app.state.container = container
    app.add_middleware(PermissiveCORSMiddleware)
    app.add_exception_handler(StarletteHTTPException, _http_error)

    app.include_router(query_router)
    app.include_router(sse_router)
    return app


def create_push_app(container: ObserverContainer) -> FastAPI:
    app = FastAPI(title="PAL-E Observer push", version=VERSION, docs_url=None, redoc_url=None, openapi_url=None)
    app.state.container = container
    app.include_router(ws_router)
    return app


async def _serve_all(servers: List[uvicorn.Server]) -> None:
    tasks = [asyncio.create_task(s.serve()) for s in servers]
    done, pending = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
    # one server stopping (signal or failure) stops the rest
    for s in servers:
        s.should_exit = True
    await asyncio.gather(*pending, return_exceptions=True)
    for t in done:
        t.result()


async def serve(config: ObserverConfig, container: Optional[ObserverContainer] = None) -> None:
    container = container or ObserverContainer(config)

    push = uvicorn.Server(
        uvicorn.Config(create_push_app(container), host=config.ws_host, port=config.ws_port, log_config=None)
    )
    query = uvicorn.Server(
        uvicorn.Config(create_query_app(container), host=config.http_host, port=config.http_port, log_config=None)
    )

    container.start()
    logger.info("WebSocket server: ws://%s:%d", config.ws_host, config.ws_port)
    logger.info("REST API: http://%s:%d", config.http_host, config.http_port)
    logger.info("  GET /status  - Current world state")
    logger.info("  GET /history - Recent events")
    logger.info("  GET /health  - Health check")
    logger.info("PAL-E Observer started")
    try:
        await _serve_all([push, query])
    finally:
        logger.info("Shutting down...")
        await container.stop()

    if not (push.started and query.started):
        # a listener never came up (address in use etc.)
        raise SystemExit(1)


def run() -> None:
    config = ObserverConfig.from_env()
    configure_logging(config.log_level)
    asyncio.run(serve(config))


if __name__ == "__main__":
    run()
