"""Log service — the scan log as a cursor-paged, cache-validated feed.

Learn: Dashboards poll this every couple of seconds, so the common case
must be cheap:
- incremental: ?after_id=<newest id I have> returns only newer rows
- full: no cursor; the response carries an ETag and Last-Modified, and a
  matching If-None-Match / If-Modified-Since gets 304 with no body

Rows are joined against the registry at read time, so a log row for a
tag registered later still shows up as found. The validators therefore
cover the registry too: its fingerprint is folded into the ETag, and
Last-Modified is the later of the newest scan and the newest registry
write.
"""

from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from rfidlive.clock import DB_FORMAT
from rfidlive.db.models import RegisteredTag, ScanLog
from rfidlive.services.formatting import http_date, log_payload, make_etag
from rfidlive.services.registry_service import RegistryService

MAX_LIMIT = 500
DEFAULT_LIMIT = 50


class LogPage:
    """One page of the log plus its cache validators."""

    def __init__(
        self,
        logs: list[dict],
        after_id: int,
        latest_log=None,
        registry_etag: Optional[str] = None,
        registry_latest=None,
    ):
        self.logs = logs
        self.after_id = after_id
        self.latest_log = latest_log  # naive local datetime of the newest row
        self.latest_id = logs[0]["id"] if logs else after_id
        latest_text = latest_log.strftime(DB_FORMAT) if latest_log else None
        self.etag = make_etag(latest_text, self.latest_id, len(logs), registry_etag)
        self.last_modified_text = latest_text
        stamps = [t for t in (latest_log, registry_latest) if t is not None]
        self.modified_at = max(stamps) if stamps else None

    @property
    def last_modified_header(self) -> Optional[str]:
        return http_date(self.modified_at) if self.modified_at else None

    def body(self) -> dict:
        return {
            "success": True,
            "count": len(self.logs),
            "logs": self.logs,
            "cursor": {
                "latest_id": self.latest_id,
                "requested_after_id": self.after_id,
            },
            "last_modified": self.last_modified_text,
            "etag": self.etag.strip('"'),
        }


class LogService:
    """Read side of the scan log."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def page(self, limit: int = DEFAULT_LIMIT, after_id: int = 0) -> LogPage:
        """Newest-first page, optionally only rows with id > after_id."""
        limit = max(1, min(limit, MAX_LIMIT))
        after_id = max(0, after_id)

        query = (
            select(ScanLog, RegisteredTag.id)
            .outerjoin(RegisteredTag, RegisteredTag.rfid_data == ScanLog.rfid_data)
            .order_by(ScanLog.time_log.desc(), ScanLog.id.desc())
            .limit(limit)
        )
        if after_id > 0:
            query = query.where(ScanLog.id > after_id)

        rows = (await self.db.execute(query)).all()
        logs = [log_payload(log, found=tag_id is not None) for log, tag_id in rows]
        latest_log = rows[0][0].time_log if rows else None

        registry = RegistryService(self.db)
        registry_latest, _, _ = await registry.state()
        return LogPage(
            logs,
            after_id=after_id,
            latest_log=latest_log,
            registry_etag=await registry.etag(),
            registry_latest=registry_latest,
        )
