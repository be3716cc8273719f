"""Registry service — registered tags and their status.

Learn: The registry is small (one row per physical card) and read far
more often than written. Reads are made cheap for polling dashboards
with two validators:
- an ETag hashed over every row's (id, uid, status, updated_at), so a
  status flip inside the same second as the last write still changes it
- an updated_since cursor for incremental fetches.

The registry is small enough that hashing all rows per request is fine.

The cursor compares with >=, so rows changed within the cursor's second
come back again; clients merge by id, so repeats are harmless.
"""

from datetime import datetime
from typing import Optional

import structlog
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from rfidlive.clock import DB_FORMAT, local_now, parse_local, to_naive_local
from rfidlive.db.models import RegisteredTag
from rfidlive.events.types import RFID_STATUS
from rfidlive.realtime.notifier import BridgeNotifier
from rfidlive.services.formatting import make_etag, tag_payload

logger = structlog.get_logger()


class TagNotFoundError(Exception):
    """Raised when no registered tag matches the id or UID."""
    pass


class DuplicateTagError(Exception):
    """Raised when registering a UID that already exists."""
    pass


def _now() -> datetime:
    return to_naive_local(local_now()).replace(microsecond=0)


class RegistryService:
    """Business logic for the tag registry."""

    def __init__(self, db: AsyncSession, notifier: Optional[BridgeNotifier] = None):
        self.db = db
        self.notifier = notifier

    # ─── Lookups ─────────────────────────────────────────

    async def get(
        self, tag_id: Optional[int] = None, rfid_data: Optional[str] = None
    ) -> Optional[RegisteredTag]:
        if tag_id is not None:
            return await self.db.get(RegisteredTag, tag_id)
        if rfid_data:
            result = await self.db.execute(
                select(RegisteredTag).where(RegisteredTag.rfid_data == rfid_data)
            )
            return result.scalars().first()
        return None

    async def state(self) -> tuple[Optional[datetime], int, int]:
        """(latest updated_at, max id, count) — the registry's fingerprint."""
        result = await self.db.execute(
            select(
                func.max(RegisteredTag.updated_at),
                func.max(RegisteredTag.id),
                func.count(RegisteredTag.id),
            )
        )
        latest, max_id, count = result.one()
        return latest, max_id or 0, count or 0

    async def etag(self) -> str:
        result = await self.db.execute(
            select(
                RegisteredTag.id,
                RegisteredTag.rfid_data,
                RegisteredTag.rfid_status,
                RegisteredTag.updated_at,
            ).order_by(RegisteredTag.id.asc())
        )
        return make_etag(*(
            f"{tag_id}|{uid}|{int(bool(status))}|{updated.strftime(DB_FORMAT) if updated else ''}"
            for tag_id, uid, status, updated in result.all()
        ))

    async def list_tags(self, updated_since: Optional[str] = None) -> dict:
        """Registry listing, optionally only rows changed since a cursor.

        An unparseable cursor is ignored (full listing, filtered_since=False).
        """
        since: Optional[datetime] = None
        if updated_since:
            try:
                since = to_naive_local(parse_local(updated_since))
            except ValueError:
                logger.info("registry.bad_cursor", updated_since=updated_since)

        query = select(RegisteredTag).order_by(RegisteredTag.id.asc())
        if since is not None:
            query = query.where(RegisteredTag.updated_at >= since)
        result = await self.db.execute(query)
        tags = list(result.scalars().all())

        latest, _, _ = await self.state()
        return {
            "success": True,
            "count": len(tags),
            "registered": [tag_payload(t) for t in tags],
            "last_modified": latest.strftime(DB_FORMAT) if latest else None,
            "filtered_since": since is not None,
        }

    # ─── Writes ──────────────────────────────────────────

    async def register_tag(self, rfid_data: str, status: bool = False) -> RegisteredTag:
        if await self.get(rfid_data=rfid_data) is not None:
            raise DuplicateTagError(f"RFID {rfid_data} is already registered")
        now = _now()
        tag = RegisteredTag(
            rfid_data=rfid_data,
            rfid_status=status,
            created_at=now,
            updated_at=now,
        )
        self.db.add(tag)
        await self.db.commit()
        logger.info("registry.tag_registered", tag_id=tag.id, rfid_data=rfid_data)
        return tag

    async def set_status(
        self,
        status: bool,
        tag_id: Optional[int] = None,
        rfid_data: Optional[str] = None,
    ) -> RegisteredTag:
        """Set a tag's status and announce it as an rfid-status event."""
        tag = await self.get(tag_id=tag_id, rfid_data=rfid_data)
        if tag is None:
            raise TagNotFoundError("RFID not found")

        tag.rfid_status = status
        tag.updated_at = _now()
        await self.db.commit()
        logger.info("registry.status_set", tag_id=tag.id, status=status)

        if self.notifier is not None:
            await self.notifier.publish(RFID_STATUS, tag_payload(tag))
        return tag
