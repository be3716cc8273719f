"""Scan log listing — the dashboard's polling endpoint.

Learn: Two ways to make polling cheap:
- ?after_id=N — only rows newer than the dashboard's newest row
- ETag / Last-Modified on cursor-less requests, answered with 304 when
  the client's validators still match

Validators are only honoured without a cursor: an incremental response
is already as small as it gets. Last-Modified has one-second resolution,
so the ETag is the validator to prefer.
"""

from fastapi import APIRouter, Depends, Query, Request, Response
from sqlalchemy.ext.asyncio import AsyncSession

from rfidlive.db.engine import get_db
from rfidlive.schemas.tags import LogListRead
from rfidlive.services.formatting import etag_matches, not_modified_since
from rfidlive.services.log_service import DEFAULT_LIMIT, LogService

router = APIRouter()


def _log_svc(db: AsyncSession = Depends(get_db)) -> LogService:
    return LogService(db)


@router.get("/logs", response_model=LogListRead)
async def list_logs(
    request: Request,
    response: Response,
    limit: int = Query(DEFAULT_LIMIT, description="Max rows (clamped to 1..500)"),
    after_id: int = Query(0, description="Only rows with a larger id"),
    svc: LogService = Depends(_log_svc),
):
    """Newest scans first, with cursor and cache validators."""
    page = await svc.page(limit=limit, after_id=after_id)

    headers = {"ETag": page.etag, "Cache-Control": "no-cache, must-revalidate"}
    if page.last_modified_header:
        headers["Last-Modified"] = page.last_modified_header

    if page.after_id == 0 and page.latest_log is not None:
        if_none_match = request.headers.get("if-none-match", "")
        if if_none_match:
            # If-Modified-Since is ignored whenever If-None-Match is sent
            if etag_matches(if_none_match, page.etag):
                return Response(status_code=304, headers=headers)
        else:
            since = request.headers.get("if-modified-since", "")
            if since and not_modified_since(since, page.modified_at):
                return Response(status_code=304, headers=headers)

    response.headers.update(headers)
    return page.body()
