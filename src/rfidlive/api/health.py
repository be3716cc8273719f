"""Health check endpoint.

Learn: Simple GET endpoint that verifies the server is running and the
database answers, with row counts for a quick sanity check.
"""

import time

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy import func, select, text
from sqlalchemy.ext.asyncio import AsyncSession

from rfidlive import __version__
from rfidlive.clock import DB_FORMAT, local_now
from rfidlive.db.engine import get_db
from rfidlive.db.models import RegisteredTag, ScanLog

router = APIRouter()


@router.get("/health")
async def health_check(db: AsyncSession = Depends(get_db)):
    """Check server health and database connectivity."""
    checks = {
        "status": "ok",
        "version": __version__,
        "timestamp": local_now().strftime(DB_FORMAT),
        "database": {"connected": False, "latency_ms": 0.0},
    }

    started = time.perf_counter()
    try:
        await db.execute(text("SELECT 1"))
        checks["database"]["connected"] = True
        checks["database"]["total_logs"] = await db.scalar(select(func.count(ScanLog.id)))
        checks["database"]["total_registered"] = await db.scalar(
            select(func.count(RegisteredTag.id))
        )
    except Exception as e:
        checks["status"] = "error"
        checks["database"]["error"] = str(e)
    checks["database"]["latency_ms"] = round((time.perf_counter() - started) * 1000, 2)

    if checks["status"] != "ok":
        return JSONResponse(status_code=500, content=checks)
    return checks
