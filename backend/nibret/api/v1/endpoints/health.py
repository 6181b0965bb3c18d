"""
Liveness and readiness checks.
"""

from typing import Any, Dict

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse
from redis.asyncio import Redis
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from nibret.core.database import get_db
from nibret.core.redis import get_redis
from nibret.services.activity_queue import activity_queue

router = APIRouter()


@router.get("/liveness", status_code=status.HTTP_200_OK)
async def liveness() -> Dict[str, str]:
    return {"status": "alive"}


@router.get("/readiness")
async def readiness(
    db: AsyncSession = Depends(get_db),
    redis: Redis = Depends(get_redis),
):
    """
    Ready when PostgreSQL and Redis answer. The activity writer is reported but
    never fails the check: losing analytics events does not stop the catalog.
    """
    checks: Dict[str, Dict[str, Any]] = {}
    ready = True

    try:
        await db.execute(text("SELECT 1"))
        checks["database"] = {"status": "pass"}
    except Exception as exc:
        checks["database"] = {"status": "fail", "reason": str(exc)}
        ready = False

    try:
        await redis.ping()
        checks["redis"] = {"status": "pass"}
    except Exception as exc:
        checks["redis"] = {"status": "fail", "reason": str(exc)}
        ready = False

    checks["activity_writer"] = {
        "status": "pass" if activity_queue.running else "warn",
        "queued": activity_queue.queue.qsize(),
    }

    return JSONResponse(
        status_code=status.HTTP_200_OK if ready else status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"status": "ready" if ready else "not_ready", "checks": checks},
    )
