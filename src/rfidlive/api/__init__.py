"""Event source API route aggregation.

All routers registered here get mounted in main.py under /api.

Learn: No auth — the readers and the dashboard sit on the same closed
network as this service.
"""

from fastapi import APIRouter

from rfidlive.api.health import router as health_router
from rfidlive.api.logs import router as logs_router
from rfidlive.api.registered import router as registered_router
from rfidlive.api.scans import router as scans_router

api_router = APIRouter(prefix="/api")

api_router.include_router(health_router, tags=["health"])
api_router.include_router(scans_router, tags=["scans"])
api_router.include_router(logs_router, tags=["logs"])
api_router.include_router(registered_router, tags=["registry"])
