"""Reader endpoint — one call per tag presented to a reader.

Learn: The ESP32 readers are not picky clients. They send the UID as a
query parameter (GET), a form field (POST) or, from newer firmware, a
JSON body. All three land in ScanService.record_scan(). Missing UIDs get
a 200 with status 0, because the firmware only parses the body.
"""

import json

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from rfidlive.db.engine import get_db
from rfidlive.realtime.notifier import BridgeNotifier, get_notifier
from rfidlive.schemas.tags import ScanResult
from rfidlive.services.scan_service import ScanService

router = APIRouter()


def _scan_svc(
    db: AsyncSession = Depends(get_db),
    notifier: BridgeNotifier = Depends(get_notifier),
) -> ScanService:
    return ScanService(db, notifier)


async def _posted_uid(request: Request) -> str:
    content_type = request.headers.get("content-type", "")
    if content_type.startswith("application/json"):
        try:
            body = await request.json()
        except json.JSONDecodeError:
            return ""
        value = body.get("rfid_data") if isinstance(body, dict) else None
    else:
        form = await request.form()
        value = form.get("rfid_data")
    return value if isinstance(value, str) else ""


@router.api_route("/check_rfid", methods=["GET", "POST"], response_model=ScanResult)
async def check_rfid(request: Request, svc: ScanService = Depends(_scan_svc)):
    """Record a scan: toggle the tag if registered, log it, notify the bridge."""
    uid = request.query_params.get("rfid_data", "")
    if request.method == "POST":
        uid = await _posted_uid(request) or uid
    return await svc.record_scan(uid)
