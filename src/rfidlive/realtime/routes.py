"""Bridge HTTP surface — event submission and health.

Learn: The event source POSTs one JSON event per state change. The route
only decodes and size-checks the body; queueing, batching and fan-out
belong to the Bridge. Responses never wait for delivery.
"""

import json

import structlog
from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from rfidlive.realtime.bridge import Bridge

logger = structlog.get_logger()
router = APIRouter()


def get_bridge(request: Request) -> Bridge:
    """FastAPI dependency — the Bridge bound to this app instance."""
    return request.app.state.bridge


@router.post("/broadcast")
async def broadcast(request: Request, bridge: Bridge = Depends(get_bridge)):
    """Queue an event for every connected subscriber.

    `delivered` is the number of subscribers connected right now, not a
    delivery receipt.
    """
    body = await request.body()
    if len(body) > bridge.settings.max_body_bytes:
        logger.warning("bridge.payload_too_large", size=len(body))
        return JSONResponse(
            status_code=413,
            content={"success": False, "error": "Payload too large"},
        )

    try:
        payload = json.loads(body or b"{}")
    except ValueError as e:
        logger.warning("bridge.invalid_payload", error=str(e))
        return JSONResponse(
            status_code=400,
            content={"success": False, "error": "Invalid JSON payload"},
        )

    delivered = bridge.submit(payload)
    return {"success": True, "delivered": delivered}


@router.get("/health")
async def health(bridge: Bridge = Depends(get_bridge)):
    """Liveness probe with the current subscriber count."""
    return {"status": "ok", "clients": bridge.connection_count}
