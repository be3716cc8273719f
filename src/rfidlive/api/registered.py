"""Registry routes — list tags, register a tag, set a tag's status.

Learn: Listing supports the same cheap-polling tricks as the log:
?updated_since=<last_modified from the previous response> and an ETag.
Status changes made here are pushed to the bridge as rfid-status
events; scans go through /check_rfid instead.
"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response
from sqlalchemy.ext.asyncio import AsyncSession

from rfidlive.db.engine import get_db
from rfidlive.realtime.notifier import BridgeNotifier, get_notifier
from rfidlive.schemas.tags import (
    StatusUpdate,
    TagChangeRead,
    TagCreate,
    TagListRead,
    TagRead,
)
from rfidlive.services.formatting import etag_matches, tag_payload
from rfidlive.services.registry_service import (
    DuplicateTagError,
    RegistryService,
    TagNotFoundError,
)

router = APIRouter()


def _registry_svc(
    db: AsyncSession = Depends(get_db),
    notifier: BridgeNotifier = Depends(get_notifier),
) -> RegistryService:
    return RegistryService(db, notifier)


@router.get("/registered", response_model=TagListRead)
async def list_registered(
    request: Request,
    response: Response,
    updated_since: Optional[str] = Query(None, description="Only tags changed at/after this time"),
    svc: RegistryService = Depends(_registry_svc),
):
    """All registered tags in id order (or only the recently changed ones)."""
    etag = await svc.etag()
    headers = {"ETag": etag, "Cache-Control": "no-cache, must-revalidate"}
    if etag_matches(request.headers.get("if-none-match", ""), etag):
        return Response(status_code=304, headers=headers)

    response.headers.update(headers)
    return await svc.list_tags(updated_since=updated_since)


@router.post("/registered", response_model=TagRead, status_code=201)
async def register_tag(
    body: TagCreate,
    svc: RegistryService = Depends(_registry_svc),
):
    """Add a card to the registry."""
    try:
        tag = await svc.register_tag(body.rfid_data, status=body.status)
    except DuplicateTagError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return tag_payload(tag)


@router.post("/registered/status", response_model=TagChangeRead)
async def update_status(
    body: StatusUpdate,
    svc: RegistryService = Depends(_registry_svc),
):
    """Set a tag's status by id or UID."""
    try:
        tag = await svc.set_status(body.status, tag_id=body.id, rfid_data=body.rfid_data)
    except TagNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return {
        "success": True,
        "message": "RFID status updated",
        "registered": tag_payload(tag),
    }
