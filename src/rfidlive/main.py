"""Event source application factory.

Learn: App factory pattern — create_app() returns a configured FastAPI
instance. Lifespan creates the tables on startup and disposes of the
engine on shutdown. Middleware, CORS, and routers all registered here.

The broadcast bridge is a separate app (rfidlive.realtime.app) and a
separate process; this service only talks to it through BridgeNotifier.
"""

from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from rfidlive import __version__
from rfidlive.api import api_router
from rfidlive.config import settings

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown lifecycle.

    Learn: FastAPI lifespan replaces on_event("startup") / on_event("shutdown").
    Anything before `yield` runs at startup, after `yield` runs at shutdown.
    """
    from rfidlive.db.engine import engine, init_db

    logger.info(
        "rfidlive.starting",
        version=__version__,
        environment=settings.environment,
        port=settings.api_port,
        bridge_url=settings.bridge_url if settings.bridge_enabled else None,
    )
    await init_db()

    yield

    logger.info("rfidlive.shutdown")
    await engine.dispose()


def create_app() -> FastAPI:
    """Build and return the event source FastAPI application."""
    app = FastAPI(
        title="RFID Access Control API",
        description="Registered tags, scan log, and reader check-ins",
        version=__version__,
        lifespan=lifespan,
    )

    # ── Middleware stack ──────────────────────────────────────
    # Note: Starlette middleware executes in reverse order of registration.
    # Request flow: RequestId → CORS → handler

    from rfidlive.middleware.request_id import RequestIdMiddleware

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
        expose_headers=["ETag", "Last-Modified", "X-Request-ID"],
    )
    app.add_middleware(RequestIdMiddleware)

    app.include_router(api_router)

    return app


# Default app instance (used by uvicorn: rfidlive.main:app)
app = create_app()
