"""Access log: append-only store of access events with reporting queries.

Logging is best effort: a storage failure is logged and turned into a
``False``/empty/zero result so it never reaches the request path.
"""

from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import and_, case, delete, distinct, func, select
from sqlalchemy.exc import SQLAlchemyError

from ..config import clamp_retention_days
from ..models.access_log import AccessLogEntry
from ..utils.logging import get_logger
from .events import (
    AccessEvent,
    AccessResult,
    AccessStats,
    ActionKind,
    LogFilters,
    to_utc_naive,
    utc_now,
)

logger = get_logger("engine.access_log")

MAX_QUERY_LIMIT = 500


def _row_to_event(row: AccessLogEntry) -> AccessEvent:
    return AccessEvent(
        address=row.address,
        action_kind=ActionKind(row.action_kind),
        result=AccessResult(row.result),
        timestamp=row.timestamp,
        subject_id=row.subject_id,
        resource_id=row.resource_id,
        bypassed=bool(row.bypassed),
        suspicious=bool(row.suspicious),
        is_crawler=bool(row.is_crawler),
        user_agent=row.user_agent or "",
        referrer=row.referrer or "",
        request_path=row.request_path or "",
    )


def _filter_conditions(filters: Optional[LogFilters]) -> list:
    if filters is None:
        return []
    conditions = []
    if filters.address:
        conditions.append(AccessLogEntry.address == filters.address)
    if filters.action_kind:
        conditions.append(AccessLogEntry.action_kind == ActionKind(filters.action_kind).value)
    if filters.suspicious_only:
        conditions.append(AccessLogEntry.suspicious.is_(True))
    if filters.is_crawler is not None:
        conditions.append(AccessLogEntry.is_crawler.is_(bool(filters.is_crawler)))
    if filters.since is not None:
        conditions.append(AccessLogEntry.timestamp >= to_utc_naive(filters.since))
    if filters.until is not None:
        conditions.append(AccessLogEntry.timestamp <= to_utc_naive(filters.until))
    return conditions


class AccessLog:
    def __init__(self, db_session_factory, max_query_limit: int = MAX_QUERY_LIMIT):
        self._session_factory = db_session_factory
        self._max_query_limit = max(1, min(max_query_limit, MAX_QUERY_LIMIT))

    async def append(self, event: AccessEvent) -> bool:
        """Store one event. Returns False instead of raising on storage errors."""
        try:
            async with self._session_factory() as session:
                session.add(AccessLogEntry(
                    timestamp=to_utc_naive(event.timestamp),
                    address=event.address,
                    subject_id=event.subject_id,
                    resource_id=event.resource_id,
                    action_kind=event.action_kind.value,
                    result=event.result.value,
                    bypassed=event.bypassed,
                    suspicious=event.suspicious,
                    is_crawler=event.is_crawler,
                    user_agent=event.user_agent or "",
                    referrer=event.referrer or "",
                    request_path=event.request_path or "",
                ))
                await session.commit()
            return True
        except SQLAlchemyError as e:
            logger.error("access_log_append_failed", ip=event.address, error=str(e))
            return False

    async def query(
        self,
        filters: Optional[LogFilters] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[AccessEvent]:
        """Return matching events, newest first. ``limit`` is capped."""
        limit = max(1, min(int(limit), self._max_query_limit))
        offset = max(0, int(offset))
        query = (
            select(AccessLogEntry)
            .where(*_filter_conditions(filters))
            .order_by(AccessLogEntry.timestamp.desc(), AccessLogEntry.id.desc())
            .limit(limit)
            .offset(offset)
        )
        try:
            async with self._session_factory() as session:
                result = await session.execute(query)
                return [_row_to_event(row) for row in result.scalars().all()]
        except SQLAlchemyError as e:
            logger.error("access_log_query_failed", error=str(e))
            return []

    async def count(self, filters: Optional[LogFilters] = None) -> int:
        query = select(func.count(AccessLogEntry.id)).where(*_filter_conditions(filters))
        try:
            async with self._session_factory() as session:
                return int((await session.execute(query)).scalar() or 0)
        except SQLAlchemyError as e:
            logger.error("access_log_count_failed", error=str(e))
            return 0

    async def aggregate(self, since: datetime, until: Optional[datetime] = None) -> AccessStats:
        """Compute window statistics in a single statement (bounds inclusive)."""
        until = until or utc_now()
        human = AccessLogEntry.is_crawler.is_not(True)
        query = select(
            func.count(AccessLogEntry.id),
            func.sum(case((AccessLogEntry.result == AccessResult.DENIED.value, 1), else_=0)),
            func.sum(case((AccessLogEntry.suspicious.is_(True), 1), else_=0)),
            func.sum(case((AccessLogEntry.bypassed.is_(True), 1), else_=0)),
            func.count(distinct(case(
                (AccessLogEntry.result == AccessResult.BLOCKED.value, AccessLogEntry.address),
            ))),
            func.sum(case((AccessLogEntry.is_crawler.is_(True), 1), else_=0)),
            func.sum(case((human, 1), else_=0)),
            func.sum(case(
                (and_(human, AccessLogEntry.subject_id.is_not(None), AccessLogEntry.subject_id > 0), 1),
                else_=0,
            )),
            func.count(distinct(AccessLogEntry.address)),
            func.count(distinct(case(
                (and_(AccessLogEntry.resource_id.is_not(None), AccessLogEntry.resource_id > 0),
                 AccessLogEntry.resource_id),
            ))),
        ).where(
            AccessLogEntry.timestamp >= to_utc_naive(since),
            AccessLogEntry.timestamp <= to_utc_naive(until),
        )

        try:
            async with self._session_factory() as session:
                row = (await session.execute(query)).one()
        except SQLAlchemyError as e:
            logger.error("access_log_aggregate_failed", error=str(e))
            return AccessStats()

        values = [int(v or 0) for v in row]
        return AccessStats(
            total=values[0],
            denied=values[1],
            suspicious=values[2],
            bypassed=values[3],
            blocked_unique_addresses=values[4],
            crawler_count=values[5],
            human_count=values[6],
            authenticated_human_count=values[7],
            unique_addresses=values[8],
            unique_resources=values[9],
        )

    async def prune(self, retention_days: int, now: Optional[datetime] = None) -> int:
        """Delete events strictly older than the retention cutoff.

        Retention is clamped to 7–365 days; events exactly at the cutoff
        are kept.
        """
        retention_days = clamp_retention_days(retention_days)
        cutoff = to_utc_naive(now or utc_now()) - timedelta(days=retention_days)
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    delete(AccessLogEntry).where(AccessLogEntry.timestamp < cutoff)
                )
                await session.commit()
        except SQLAlchemyError as e:
            logger.error("access_log_prune_failed", retention_days=retention_days, error=str(e))
            return 0

        deleted = result.rowcount or 0
        logger.info(
            "retention_cleanup",
            table="access_logs",
            deleted=deleted,
            cutoff_days=retention_days,
        )
        return deleted

    async def count_recent_for_resource(
        self,
        address: str,
        resource_id: Optional[int],
        seconds: int,
        now: Optional[datetime] = None,
    ) -> int:
        """Hits by ``address`` on ``resource_id`` in the trailing window."""
        if resource_id is None:
            return 0
        since = to_utc_naive(now or utc_now()) - timedelta(seconds=seconds)
        query = select(func.count(AccessLogEntry.id)).where(
            AccessLogEntry.address == address,
            AccessLogEntry.resource_id == resource_id,
            AccessLogEntry.timestamp > since,
        )
        return await self._scalar_count(query, "access_log_resource_count_failed")

    async def count_recent_api_access(
        self,
        address: str,
        seconds: int = 3600,
        now: Optional[datetime] = None,
    ) -> int:
        since = to_utc_naive(now or utc_now()) - timedelta(seconds=seconds)
        query = select(func.count(AccessLogEntry.id)).where(
            AccessLogEntry.address == address,
            AccessLogEntry.action_kind == ActionKind.API_ACCESS.value,
            AccessLogEntry.timestamp > since,
        )
        return await self._scalar_count(query, "access_log_api_count_failed")

    async def address_agent_hits(self, since: datetime, min_hits: int) -> list[tuple[str, str, int]]:
        """Group events since ``since`` by (address, user agent), busiest first."""
        hits = func.count(AccessLogEntry.id).label("hits")
        query = (
            select(AccessLogEntry.address, AccessLogEntry.user_agent, hits)
            .where(
                AccessLogEntry.timestamp >= to_utc_naive(since),
                AccessLogEntry.user_agent.is_not(None),
                AccessLogEntry.user_agent != "",
            )
            .group_by(AccessLogEntry.address, AccessLogEntry.user_agent)
            .having(hits >= max(1, min_hits))
            .order_by(hits.desc())
        )
        try:
            async with self._session_factory() as session:
                result = await session.execute(query)
                return [(row[0], row[1], int(row[2])) for row in result.all()]
        except SQLAlchemyError as e:
            logger.error("access_log_grouping_failed", error=str(e))
            return []

    async def _scalar_count(self, query, failure_event: str) -> int:
        try:
            async with self._session_factory() as session:
                return int((await session.execute(query)).scalar() or 0)
        except SQLAlchemyError as e:
            logger.error(failure_event, error=str(e))
            return 0
