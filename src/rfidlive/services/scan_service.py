"""Scan service — what happens when a reader sees a tag.

Learn: A scan is a toggle plus an audit row:
1. Look the UID up in the registry
2. Known tag → flip rfid_status (in ↔ out), bump updated_at
3. Unknown tag → status 0, "RFID NOT FOUND"
4. Append a row to the scan log either way
5. Commit, then publish an rfid-log event to the bridge

Publishing happens after the commit: a subscriber that reacts by polling
must find the row already there.
"""

from typing import Optional

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from rfidlive.clock import DB_FORMAT, local_now, to_naive_local
from rfidlive.db.models import ScanLog
from rfidlive.events.types import RFID_LOG
from rfidlive.realtime.notifier import BridgeNotifier
from rfidlive.schemas.tags import NOT_FOUND_TEXT, normalize_uid
from rfidlive.services.formatting import log_payload, status_text
from rfidlive.services.registry_service import RegistryService

logger = structlog.get_logger()


class ScanService:
    """Records reader hits."""

    def __init__(self, db: AsyncSession, notifier: Optional[BridgeNotifier] = None):
        self.db = db
        self.notifier = notifier
        self.registry = RegistryService(db)

    async def record_scan(self, raw_uid: str) -> dict:
        """Toggle (if registered), log, publish. Returns the reader response."""
        now = to_naive_local(local_now()).replace(microsecond=0)
        uid = normalize_uid(raw_uid or "")
        if not uid:
            return {
                "status": 0,
                "found": False,
                "message": "No RFID data provided",
                "rfid_data": "",
                "status_text": None,
                "timestamp": now.strftime(DB_FORMAT),
            }

        tag = await self.registry.get(rfid_data=uid)
        found = tag is not None
        if found:
            tag.rfid_status = not tag.rfid_status
            tag.updated_at = now
            status = bool(tag.rfid_status)
            text = status_text(status)
        else:
            status = False
            text = NOT_FOUND_TEXT

        log = ScanLog(time_log=now, rfid_data=uid, rfid_status=status)
        self.db.add(log)
        await self.db.commit()

        logger.info("scan.recorded", log_id=log.id, rfid_data=uid, found=found, status=status)

        if self.notifier is not None:
            payload = log_payload(log, found=found)
            payload.update(status=int(status), message=text)
            await self.notifier.publish(RFID_LOG, payload)

        return {
            "status": int(status),
            "found": found,
            "message": text,
            "rfid_data": uid,
            "status_text": text,
            "timestamp": now.strftime(DB_FORMAT),
        }
