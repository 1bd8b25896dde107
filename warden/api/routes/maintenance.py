"""Maintenance routes: access-log retention."""

from typing import Optional

from fastapi import APIRouter, Depends, Query

from ...dependencies import get_retention_manager, require_admin

router = APIRouter(
    prefix="/maintenance",
    tags=["maintenance"],
    dependencies=[Depends(require_admin)],
)


@router.post("/cleanup")
async def trigger_cleanup(retention_days: Optional[int] = Query(None)):
    """Trigger access-log retention cleanup. Retention is clamped to 7-365 days."""
    manager = get_retention_manager()
    summary = await manager.run_cleanup(retention_days)
    return {"status": "cleanup_complete", "summary": summary}


@router.get("/retention")
async def get_retention_config():
    manager = get_retention_manager()
    return manager.describe()
