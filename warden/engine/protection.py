"""Protection service: the single entry point a host uses for gating,
logging, reporting and crawler-range administration.

One instance is constructed per process and passed to whoever needs it;
the components it owns keep no module-level state.
"""

import asyncio
from dataclasses import dataclass, replace
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Iterable, Mapping, Optional

from ..config import WardenConfig
from ..intel.classifier import AddressClassifier
from ..intel.crawler_signatures import CrawlerIdentity
from ..intel.range_store import RangeRecord, RangeStore
from ..utils.logging import get_logger
from ..utils.rate_limiter import Decision, RateLimiter
from .access_log import AccessLog
from .allow_deny import AllowDenyList, ListDecision
from .bypass_detector import API_ACTIONS, FEED_ACTIONS, BypassContext, BypassDetector
from .events import (
    AccessEvent,
    AccessResult,
    AccessStats,
    ActionKind,
    LogFilters,
    MiningReport,
    utc_now,
)
from .log_miner import LogMiner

logger = get_logger("engine.protection")


class GateDecision(str, Enum):
    ALLOW = "allow"
    DENY = "deny"
    BLOCK = "block"


@dataclass(frozen=True)
class GateResult:
    decision: GateDecision
    reason: str  # allow_list / deny_list / crawler / rate_limited / blocked / within_limit / error
    crawler: Optional[CrawlerIdentity] = None
    newly_blocked: bool = False


def _header(headers: Optional[Mapping[str, str]], name: str) -> Optional[str]:
    if not headers:
        return None
    for key, value in headers.items():
        if key.lower() == name:
            return value
    return None


class ProtectionService:
    """Composes allow/deny lists, crawler classification, rate limiting,
    bypass detection, the access log and range mining.
    """

    def __init__(self, config: WardenConfig, db_session_factory):
        self._config = config
        self.range_store = RangeStore(db_session_factory)
        self.classifier = AddressClassifier(self.range_store)
        self.rate_limiter = RateLimiter(
            rate_limit=config.rate_limit,
            window_seconds=config.rate_window_seconds,
            block_duration=config.block_duration_seconds,
            shards=config.rate_limiter_shards,
            max_tracked=config.rate_limiter_max_tracked,
        )
        self.lists = AllowDenyList(config.allow_list, config.deny_list)
        self.bypass_detector = BypassDetector(
            same_resource_threshold=config.bypass_same_resource_threshold,
            same_resource_window_seconds=config.bypass_same_resource_window_seconds,
            api_hourly_threshold=config.bypass_api_hourly_threshold,
        )
        self.access_log = AccessLog(db_session_factory, max_query_limit=config.log_query_max_limit)
        self.log_miner = LogMiner(self.access_log, self.range_store)
        self._pending: set[asyncio.Task] = set()

    @property
    def config(self) -> WardenConfig:
        return self._config

    async def start(self) -> None:
        """Load crawler ranges into memory."""
        count = await self.range_store.reload()
        logger.info("protection_service_started", crawler_ranges=count)

    async def stop(self) -> None:
        await self.flush()
        logger.info("protection_service_stopped")

    # --- Gating ---

    def evaluate_request(
        self,
        address: str,
        user_agent: Optional[str] = None,
        headers: Optional[Mapping[str, str]] = None,
        now: Optional[float] = None,
    ) -> GateResult:
        """Run the gate pipeline and explain the outcome. Never raises."""
        try:
            return self._evaluate(address, user_agent, headers, now)
        except Exception as e:
            # Fail open: a broken gate must not lock out every visitor
            logger.error("gate_evaluation_failed", ip=address, error=str(e), exc_info=True)
            return GateResult(GateDecision.ALLOW, "error")

    def classify_and_gate(
        self,
        address: str,
        user_agent: Optional[str] = None,
        headers: Optional[Mapping[str, str]] = None,
        now: Optional[float] = None,
    ) -> GateDecision:
        return self.evaluate_request(address, user_agent, headers, now).decision

    def _evaluate(self, address, user_agent, headers, now) -> GateResult:
        if user_agent is None:
            user_agent = _header(headers, "user-agent")

        listed = self.lists.decide(address)
        if listed is ListDecision.ALLOW:
            return GateResult(GateDecision.ALLOW, "allow_list")
        if listed is ListDecision.DENY:
            logger.info("gate_denied", ip=address, reason="deny_list")
            return GateResult(GateDecision.DENY, "deny_list")

        if self._config.crawler_exempt:
            crawler = self.classifier.lookup_crawler(address, user_agent)
            if crawler is not None:
                return GateResult(GateDecision.ALLOW, "crawler", crawler=crawler)

        verdict = self.rate_limiter.evaluate(address, now)
        if verdict.decision is Decision.BLOCK:
            reason = "rate_limited" if verdict.newly_blocked else "blocked"
            return GateResult(GateDecision.BLOCK, reason, newly_blocked=verdict.newly_blocked)
        return GateResult(GateDecision.ALLOW, "within_limit")

    def blocked_addresses(self) -> list[dict]:
        return self.rate_limiter.blocked_addresses()

    def unblock(self, address: str) -> bool:
        return self.rate_limiter.unblock(address)

    def update_lists(self, allow_text: str = "", deny_text: str = "") -> None:
        self.lists.update(allow_text, deny_text)
        logger.info(
            "access_lists_updated",
            allow_entries=len(self.lists.allow_entries),
            deny_entries=len(self.lists.deny_entries),
        )

    # --- Event logging ---

    def build_event(
        self,
        address: str,
        action_kind: ActionKind,
        result: AccessResult,
        *,
        user_agent: str = "",
        referrer: str = "",
        request_path: str = "",
        subject_id: Optional[int] = None,
        resource_id: Optional[int] = None,
        bypassed: bool = False,
        suspicious: bool = False,
        is_crawler: Optional[bool] = None,
        timestamp: Optional[datetime] = None,
    ) -> AccessEvent:
        """Create an event, classifying the client when ``is_crawler`` is unset."""
        if is_crawler is None:
            is_crawler = self.classifier.is_crawler(address, user_agent)
        return AccessEvent(
            address=address,
            action_kind=ActionKind(action_kind),
            result=AccessResult(result),
            timestamp=timestamp or utc_now(),
            subject_id=subject_id,
            resource_id=resource_id,
            bypassed=bypassed,
            suspicious=suspicious,
            is_crawler=is_crawler,
            user_agent=user_agent or "",
            referrer=referrer or "",
            request_path=request_path or "",
        )

    def record_event(self, *events: AccessEvent) -> None:
        """Schedule appends without waiting for them.

        Events passed together are written one after another, in order.
        """
        if not events:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            for event in events:
                logger.warning("access_log_no_event_loop", ip=event.address, action=event.action_kind.value)
            return
        task = loop.create_task(self._append_in_order(events))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _append_in_order(self, events: tuple[AccessEvent, ...]) -> None:
        for event in events:
            await self.access_log.append(event)

    async def log_event(self, event: AccessEvent) -> bool:
        return await self.access_log.append(event)

    async def flush(self) -> None:
        """Wait for every scheduled append to finish."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    # --- Bypass detection ---

    async def evaluate_bypass(self, event: AccessEvent, context: Optional[BypassContext] = None) -> bool:
        """Check a denied or flagged event and log a bypass attempt when suspicious.

        Counts missing from ``context`` are read from the access log.
        """
        context = replace(context) if context else BypassContext()

        if event.action_kind in FEED_ACTIONS:
            if not context.is_search_engine:
                context.is_search_engine = self.classifier.is_search_engine(event.user_agent)
            attempt_kind = ActionKind.RSS_BYPASS_ATTEMPT
        elif event.action_kind in API_ACTIONS:
            if context.hourly_api_count is None:
                context.hourly_api_count = await self.access_log.count_recent_api_access(
                    event.address, seconds=3600
                )
            attempt_kind = ActionKind.API_BYPASS_ATTEMPT
        else:
            if context.recent_same_resource_count is None:
                context.recent_same_resource_count = await self.access_log.count_recent_for_resource(
                    event.address,
                    event.resource_id,
                    seconds=self.bypass_detector.same_resource_window_seconds,
                )
            attempt_kind = ActionKind.BYPASS_ATTEMPT

        suspicious = self.bypass_detector.evaluate(event, context)
        if suspicious:
            await self.log_event(replace(
                event,
                action_kind=attempt_kind,
                result=AccessResult.DETECTED,
                suspicious=True,
                timestamp=utc_now(),
            ))
        return suspicious

    # --- Reporting ---

    async def get_stats(self, since: datetime, until: Optional[datetime] = None) -> AccessStats:
        return await self.access_log.aggregate(since, until)

    async def get_stats_for_days(self, days: int = 7) -> AccessStats:
        days = max(1, int(days))
        return await self.access_log.aggregate(utc_now() - timedelta(days=days))

    async def get_today_stats(self) -> AccessStats:
        midnight = datetime.now(timezone.utc).replace(hour=0, minute=0, second=0, microsecond=0)
        return await self.access_log.aggregate(midnight)

    async def get_logs(
        self,
        filters: Optional[LogFilters] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[AccessEvent]:
        return await self.access_log.query(filters, limit, offset)

    async def count_logs(self, filters: Optional[LogFilters] = None) -> int:
        return await self.access_log.count(filters)

    async def prune_logs(self, retention_days: Optional[int] = None) -> int:
        days = self._config.log_retention_days if retention_days is None else retention_days
        return await self.access_log.prune(days)

    # --- Crawler range administration ---

    async def import_ranges(self, data: Iterable[tuple[int, Iterable[str]]]) -> int:
        return await self.range_store.import_ranges(data)

    async def delete_range(self, range_id: int) -> bool:
        return await self.range_store.delete(range_id)

    async def clear_ranges(self) -> int:
        return await self.range_store.clear()

    async def list_ranges(self, crawler_id: Optional[int] = None) -> list[RangeRecord]:
        return await self.range_store.list_ranges(crawler_id)

    async def mine_logs(self, window_days: Optional[int] = None, min_hits: Optional[int] = None) -> MiningReport:
        return await self.log_miner.mine(
            window_days=self._config.mining_window_days if window_days is None else window_days,
            min_hits=self._config.mining_min_hits if min_hits is None else min_hits,
        )

    def lookup_crawler(self, address: str, user_agent: Optional[str] = None) -> Optional[CrawlerIdentity]:
        return self.classifier.lookup_crawler(address, user_agent)

    def health(self) -> dict:
        return {
            "tracked_addresses": self.rate_limiter.tracked_count(),
            "blocked_addresses": len(self.rate_limiter.blocked_addresses()),
            "crawler_ranges": len(self.range_store),
            "pending_log_writes": len(self._pending),
            "crawler_exempt": self._config.crawler_exempt,
        }
