"""Crawler routes: learned address ranges, log mining and lookups."""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field

from ...dependencies import get_protection_service, require_admin

router = APIRouter(
    prefix="/crawlers",
    tags=["crawlers"],
    dependencies=[Depends(require_admin)],
)


class RangeImportGroup(BaseModel):
    crawler_id: int = Field(..., ge=1)
    networks: list[str]


class RangeImport(BaseModel):
    groups: list[RangeImportGroup]


class MiningRequest(BaseModel):
    window_days: Optional[int] = Field(None, ge=1, le=365)
    min_hits: Optional[int] = Field(None, ge=1)


@router.get("/ranges")
async def list_ranges(crawler_id: Optional[int] = Query(None)):
    service = get_protection_service()
    ranges = await service.list_ranges(crawler_id)
    return {"ranges": [r.to_dict() for r in ranges], "count": len(ranges)}


@router.post("/ranges/import")
async def import_ranges(body: RangeImport):
    """Import crawler networks; existing (crawler, network) pairs are skipped."""
    service = get_protection_service()
    submitted = sum(len(group.networks) for group in body.groups)
    imported = await service.import_ranges(
        (group.crawler_id, group.networks) for group in body.groups
    )
    return {"imported": imported, "submitted": submitted}


@router.delete("/ranges/{range_id}")
async def delete_range(range_id: int):
    service = get_protection_service()
    if not await service.delete_range(range_id):
        raise HTTPException(status_code=404, detail="Crawler range not found")
    return {"status": "deleted", "id": range_id}


@router.delete("/ranges")
async def clear_ranges():
    service = get_protection_service()
    deleted = await service.clear_ranges()
    return {"status": "cleared", "deleted": deleted}


@router.post("/mine")
async def mine_logs(body: Optional[MiningRequest] = None):
    """Learn crawler ranges from recent access-log traffic."""
    body = body or MiningRequest()
    service = get_protection_service()
    report = await service.mine_logs(window_days=body.window_days, min_hits=body.min_hits)
    return report.to_dict()


@router.get("/lookup")
async def lookup(address: str = Query(...), user_agent: Optional[str] = Query(None)):
    service = get_protection_service()
    identity = service.lookup_crawler(address, user_agent)
    return {
        "address": address,
        "is_crawler": identity is not None,
        "crawler_id": identity.crawler_id if identity else None,
        "crawler_name": identity.crawler_name if identity else None,
    }
