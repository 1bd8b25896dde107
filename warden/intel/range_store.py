"""Crawler range store: persistent crawler networks with a lock-free read path.

Ranges live in the ``crawler_ranges`` table. Request handling never touches
the database: ``contains`` reads an immutable in-memory index that writers
rebuild and swap in after every change.
"""

import asyncio
from dataclasses import dataclass
from datetime import datetime
from itertools import chain
from typing import Iterable, Optional

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError

from ..models.crawler_range import CrawlerRange
from ..utils.ip_network import ip_in_network, parse_address, split_network
from ..utils.logging import get_logger
from .crawler_signatures import crawler_name_for

logger = get_logger("intel.range_store")


@dataclass(frozen=True)
class RangeRecord:
    id: int
    crawler_id: int
    crawler_name: str
    network: str
    created_at: Optional[datetime] = None

    @classmethod
    def from_row(cls, row: CrawlerRange) -> "RangeRecord":
        return cls(
            id=row.id,
            crawler_id=row.crawler_id,
            crawler_name=row.crawler_name or crawler_name_for(row.crawler_id),
            network=row.network,
            created_at=row.created_at,
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "crawler_id": self.crawler_id,
            "crawler_name": self.crawler_name,
            "network": self.network,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


def normalize_network(value: str) -> Optional[str]:
    """Validate a bare address or CIDR entry, returning it stripped or None."""
    if not isinstance(value, str):
        return None
    value = value.strip()
    if not value:
        return None
    if "/" in value:
        return value if split_network(value) is not None else None
    return value if parse_address(value) is not None else None


class _RangeIndex:
    """Immutable lookup structure over a set of ranges.

    Bare addresses are matched through a dict. Prefixed networks are
    bucketed by (family, leading byte); networks shorter than /8 span
    several leading bytes and are kept in a per-family list checked for
    every lookup.
    """

    def __init__(self, records: Iterable[RangeRecord] = ()):
        self.records: tuple[RangeRecord, ...] = tuple(records)
        self._exact: dict[str, RangeRecord] = {}
        self._buckets: dict[tuple[int, int], list[RangeRecord]] = {}
        self._wide: dict[int, list[RangeRecord]] = {4: [], 6: []}

        for record in self.records:
            if "/" not in record.network:
                self._exact.setdefault(record.network, record)
                continue
            parts = split_network(record.network)
            if parts is None:
                continue
            packed, prefix, version = parts
            if prefix >= 8:
                self._buckets.setdefault((version, packed[0]), []).append(record)
            else:
                self._wide[version].append(record)

    def lookup(self, address: str) -> Optional[RangeRecord]:
        record = self._exact.get(address)
        if record is not None:
            return record
        addr = parse_address(address)
        if addr is None:
            return None
        candidates = chain(
            self._buckets.get((addr.version, addr.packed[0]), ()),
            self._wide[addr.version],
        )
        for record in candidates:
            if ip_in_network(address, record.network):
                return record
        return None


class RangeStore:
    """Owns crawler ranges: import, delete, clear, list and membership lookup."""

    def __init__(self, db_session_factory):
        self._session_factory = db_session_factory
        self._index = _RangeIndex()
        self._write_lock = asyncio.Lock()

    # --- Read path ---

    def contains(self, address: str) -> Optional[RangeRecord]:
        """Return some stored range containing ``address``, or None."""
        if not address:
            return None
        return self._index.lookup(address)

    def snapshot(self) -> tuple[RangeRecord, ...]:
        return self._index.records

    def __len__(self) -> int:
        return len(self._index.records)

    async def reload(self) -> int:
        """Rebuild the in-memory index from the table.

        On storage failure the previous index stays in place.
        """
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    select(CrawlerRange).order_by(CrawlerRange.crawler_id, CrawlerRange.id)
                )
                records = [RangeRecord.from_row(row) for row in result.scalars().all()]
        except SQLAlchemyError as e:
            logger.error("crawler_ranges_reload_failed", error=str(e))
            return len(self._index.records)

        self._index = _RangeIndex(records)
        logger.debug("crawler_ranges_reloaded", count=len(records))
        return len(records)

    async def list_ranges(self, crawler_id: Optional[int] = None) -> list[RangeRecord]:
        """List stored ranges, optionally for one crawler, ordered by crawler then id."""
        try:
            async with self._session_factory() as session:
                query = select(CrawlerRange).order_by(CrawlerRange.crawler_id, CrawlerRange.id)
                if crawler_id is not None:
                    query = query.where(CrawlerRange.crawler_id == crawler_id)
                result = await session.execute(query)
                return [RangeRecord.from_row(row) for row in result.scalars().all()]
        except SQLAlchemyError as e:
            logger.error("crawler_ranges_list_failed", error=str(e))
            return [
                r for r in self._index.records
                if crawler_id is None or r.crawler_id == crawler_id
            ]

    # --- Write path ---

    async def import_ranges(self, entries: Iterable[tuple[int, Iterable[str]]]) -> int:
        """Import (crawler_id, [networks...]) groups, skipping existing pairs.

        Malformed networks are skipped one by one. Returns the number of
        ranges inserted.
        """
        pending: list[tuple[int, str]] = []
        seen: set[tuple[int, str]] = set()
        for crawler_id, networks in entries:
            crawler_id = int(crawler_id)
            for raw in networks:
                network = normalize_network(raw)
                if network is None:
                    logger.warning("crawler_range_invalid", crawler_id=crawler_id, network=raw)
                    continue
                if (crawler_id, network) in seen:
                    continue
                seen.add((crawler_id, network))
                pending.append((crawler_id, network))

        if not pending:
            return 0

        async with self._write_lock:
            inserted = 0
            try:
                async with self._session_factory() as session:
                    crawler_ids = {cid for cid, _ in pending}
                    result = await session.execute(
                        select(CrawlerRange.crawler_id, CrawlerRange.network).where(
                            CrawlerRange.crawler_id.in_(crawler_ids)
                        )
                    )
                    existing = {(row[0], row[1]) for row in result.all()}
                    for crawler_id, network in pending:
                        if (crawler_id, network) in existing:
                            continue
                        session.add(CrawlerRange(
                            crawler_id=crawler_id,
                            crawler_name=crawler_name_for(crawler_id),
                            network=network,
                        ))
                        inserted += 1
                    await session.commit()
            except SQLAlchemyError as e:
                logger.error("crawler_ranges_import_failed", error=str(e))
                return 0
            await self.reload()

        logger.info("crawler_ranges_imported", inserted=inserted, submitted=len(pending))
        return inserted

    async def add_range(self, crawler_id: int, crawler_name: str, network: str) -> bool:
        """Insert one range unless the (crawler_id, network) pair exists."""
        normalized = normalize_network(network)
        if normalized is None:
            logger.warning("crawler_range_invalid", crawler_id=crawler_id, network=network)
            return False

        async with self._write_lock:
            try:
                async with self._session_factory() as session:
                    result = await session.execute(
                        select(CrawlerRange.id).where(
                            CrawlerRange.crawler_id == crawler_id,
                            CrawlerRange.network == normalized,
                        )
                    )
                    if result.first() is not None:
                        return False
                    session.add(CrawlerRange(
                        crawler_id=crawler_id,
                        crawler_name=crawler_name,
                        network=normalized,
                    ))
                    await session.commit()
            except SQLAlchemyError as e:
                logger.error("crawler_range_add_failed", network=normalized, error=str(e))
                return False
            await self.reload()
        return True

    async def covers(self, crawler_id: int, address: str) -> bool:
        """Check whether any stored range of ``crawler_id`` contains ``address``."""
        for record in await self.list_ranges(crawler_id):
            if record.network == address or ip_in_network(address, record.network):
                return True
        return False

    async def supersede(self, crawler_id: int, network: str) -> int:
        """Delete narrower ranges of ``crawler_id`` that ``network`` now covers."""
        narrower = [
            record.id for record in await self.list_ranges(crawler_id)
            if record.network != network
            and _is_single_address(record.network)
            and ip_in_network(record.network.split("/")[0], network)
        ]
        if not narrower:
            return 0

        async with self._write_lock:
            try:
                async with self._session_factory() as session:
                    await session.execute(delete(CrawlerRange).where(CrawlerRange.id.in_(narrower)))
                    await session.commit()
            except SQLAlchemyError as e:
                logger.error("crawler_range_supersede_failed", network=network, error=str(e))
                return 0
            await self.reload()

        logger.info("crawler_ranges_superseded", crawler_id=crawler_id, network=network, removed=len(narrower))
        return len(narrower)

    async def delete(self, range_id: int) -> bool:
        async with self._write_lock:
            try:
                async with self._session_factory() as session:
                    result = await session.execute(
                        delete(CrawlerRange).where(CrawlerRange.id == range_id)
                    )
                    await session.commit()
            except SQLAlchemyError as e:
                logger.error("crawler_range_delete_failed", range_id=range_id, error=str(e))
                return False
            await self.reload()
        return result.rowcount > 0

    async def clear(self) -> int:
        async with self._write_lock:
            try:
                async with self._session_factory() as session:
                    result = await session.execute(delete(CrawlerRange))
                    await session.commit()
            except SQLAlchemyError as e:
                logger.error("crawler_ranges_clear_failed", error=str(e))
                return 0
            self._index = _RangeIndex()
        logger.info("crawler_ranges_cleared", deleted=result.rowcount)
        return result.rowcount


def _is_single_address(network: str) -> bool:
    if "/" not in network:
        return True
    parts = split_network(network)
    if parts is None:
        return False
    _, prefix, version = parts
    return prefix == (32 if version == 4 else 128)
