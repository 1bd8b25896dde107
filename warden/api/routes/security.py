"""Security routes: access statistics, access log, blocked addresses, lists."""

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field

from ...dependencies import get_protection_service, require_admin
from ...engine.bypass_detector import BypassContext
from ...engine.events import AccessResult, ActionKind, LogFilters, to_utc_naive
from ...utils.ip_network import is_valid_ip

router = APIRouter(
    prefix="/security",
    tags=["security"],
    dependencies=[Depends(require_admin)],
)


class AccessListsUpdate(BaseModel):
    allow_list: str = ""
    deny_list: str = ""


class AccessEventReport(BaseModel):
    """An access event reported by the host application."""

    address: str
    action_kind: ActionKind
    result: AccessResult
    user_agent: str = ""
    referrer: str = ""
    request_path: str = ""
    subject_id: Optional[int] = None
    resource_id: Optional[int] = None
    bypassed: bool = False
    suspicious: bool = False
    headers: dict[str, str] = Field(default_factory=dict)
    query_params: dict[str, str] = Field(default_factory=dict)
    check_bypass: bool = False


@router.get("/stats")
async def get_stats(days: int = Query(7, ge=1, le=365)):
    """Access statistics for the trailing ``days`` days."""
    service = get_protection_service()
    stats = await service.get_stats_for_days(days)
    return {"days": days, **stats.to_dict()}


@router.get("/stats/period")
async def get_period_stats(
    since: datetime = Query(...),
    until: Optional[datetime] = Query(None),
):
    if until is not None and to_utc_naive(until) < to_utc_naive(since):
        raise HTTPException(status_code=400, detail="'until' must not be earlier than 'since'")
    service = get_protection_service()
    stats = await service.get_stats(since, until)
    return {
        "since": since.isoformat(),
        "until": until.isoformat() if until else None,
        **stats.to_dict(),
    }


@router.get("/stats/today")
async def get_today_stats():
    service = get_protection_service()
    stats = await service.get_today_stats()
    return stats.to_dict()


@router.get("/logs")
async def get_logs(
    address: Optional[str] = Query(None),
    action_kind: Optional[ActionKind] = Query(None),
    suspicious_only: bool = Query(False),
    is_crawler: Optional[bool] = Query(None),
    since: Optional[datetime] = Query(None),
    until: Optional[datetime] = Query(None),
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
):
    """Page through the access log, newest first."""
    service = get_protection_service()
    filters = LogFilters(
        address=address,
        action_kind=action_kind,
        suspicious_only=suspicious_only,
        is_crawler=is_crawler,
        since=since,
        until=until,
    )
    items = await service.get_logs(filters, limit=limit, offset=offset)
    total = await service.count_logs(filters)
    return {
        "items": [event.to_dict() for event in items],
        "total": total,
        "limit": limit,
        "offset": offset,
    }


@router.post("/events", status_code=201)
async def report_event(body: AccessEventReport):
    """Record a host-side access event, optionally checking it for bypass attempts."""
    if not is_valid_ip(body.address):
        raise HTTPException(status_code=400, detail=f"Invalid address: {body.address}")

    service = get_protection_service()
    event = service.build_event(
        body.address,
        body.action_kind,
        body.result,
        user_agent=body.user_agent,
        referrer=body.referrer,
        request_path=body.request_path,
        subject_id=body.subject_id,
        resource_id=body.resource_id,
        bypassed=body.bypassed,
        suspicious=body.suspicious,
    )
    logged = await service.log_event(event)

    suspicious = False
    if body.check_bypass:
        context = BypassContext(headers=body.headers, query_params=body.query_params)
        suspicious = await service.evaluate_bypass(event, context)

    return {"logged": logged, "is_crawler": event.is_crawler, "suspicious": suspicious}


@router.get("/blocked")
async def list_blocked():
    service = get_protection_service()
    blocked = service.blocked_addresses()
    return {"blocked": blocked, "count": len(blocked)}


@router.delete("/blocked/{address}")
async def unblock_address(address: str):
    service = get_protection_service()
    if not service.unblock(address):
        raise HTTPException(status_code=404, detail=f"Address not tracked: {address}")
    return {"status": "unblocked", "address": address}


@router.get("/lists")
async def get_lists():
    service = get_protection_service()
    return {
        "allow_list": list(service.lists.allow_entries),
        "deny_list": list(service.lists.deny_entries),
    }


@router.put("/lists")
async def update_lists(body: AccessListsUpdate):
    """Replace the allow and deny lists (one address or CIDR per line)."""
    service = get_protection_service()
    service.update_lists(body.allow_list, body.deny_list)
    return {
        "status": "updated",
        "allow_entries": len(service.lists.allow_entries),
        "deny_entries": len(service.lists.deny_entries),
    }
