"""Bridge application factory.

Learn: create_app(bridge) binds one Bridge instance to the HTTP and
WebSocket routes through app.state — no module-level connection sets, so
tests can run several independent bridges in one process. Lifespan starts
the heartbeat sweep and closes every socket on shutdown.

Served by uvicorn via `rfidlive bridge` (or
`uvicorn rfidlive.realtime.app:create_app --factory`).
"""

from contextlib import asynccontextmanager
from typing import Optional

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from rfidlive import __version__
from rfidlive.config import Settings, settings as default_settings
from rfidlive.middleware.cors import CorsPreflightMiddleware
from rfidlive.middleware.request_id import RequestIdMiddleware
from rfidlive.realtime.bridge import Bridge

logger = structlog.get_logger()


async def _http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    # Unknown paths and wrong methods on known paths look the same to callers
    if exc.status_code in (404, 405):
        return JSONResponse(status_code=404, content={"error": "Not found"})
    return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})


def create_app(
    bridge: Optional[Bridge] = None,
    config: Optional[Settings] = None,
) -> FastAPI:
    """Build the bridge app around `bridge` (a fresh one if omitted)."""
    if bridge is None:
        bridge = Bridge(config or default_settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(
            "bridge.starting",
            version=__version__,
            flush_delay_ms=bridge.settings.flush_delay_ms,
            low_priority_cap=bridge.low_priority_cap,
        )
        bridge.start()

        yield

        logger.info("bridge.shutdown", clients=bridge.connection_count)
        await bridge.stop()

    app = FastAPI(
        title="RFID Live Updates Bridge",
        description="HTTP POST in, WebSocket fan-out out",
        version=__version__,
        lifespan=lifespan,
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )
    app.state.bridge = bridge

    # Request flow: RequestId → CORS preflight → handler
    app.add_middleware(
        CorsPreflightMiddleware,
        allow_origins=bridge.settings.cors_origins,
        allow_methods=["GET", "POST", "OPTIONS"],
    )
    app.add_middleware(RequestIdMiddleware)
    app.add_exception_handler(StarletteHTTPException, _http_error)

    from rfidlive.realtime.routes import router as http_router
    from rfidlive.realtime.websocket import router as ws_router

    app.include_router(http_router)
    app.include_router(ws_router)

    return app
