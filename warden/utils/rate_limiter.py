"""Sliding-window rate limiter with temporary blocking, keyed by client address."""

import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import NamedTuple, Optional

from .cache import TTLCache
from .logging import get_logger

logger = get_logger("utils.rate_limiter")


class Decision(str, Enum):
    ALLOW = "allow"
    BLOCK = "block"


class RateVerdict(NamedTuple):
    decision: Decision
    newly_blocked: bool
    remaining: int


@dataclass
class _WindowState:
    hits: list[float] = field(default_factory=list)
    blocked_until: float = 0.0


class _Shard:
    __slots__ = ("lock", "states")

    def __init__(self, max_entries: int, default_ttl: float):
        self.lock = threading.Lock()
        self.states = TTLCache(default_ttl=default_ttl, max_entries=max_entries)


class RateLimiter:
    """Per-address sliding window: Idle -> Tracking -> Blocked -> Idle.

    State is spread over independent shards, each guarded by its own lock,
    so requests from different addresses rarely contend while the
    check-and-append for one address is atomic. Window state is a bounded
    TTL cache; an address whose state was evicted starts over as Idle.
    """

    def __init__(
        self,
        rate_limit: int = 10,
        window_seconds: float = 600,
        block_duration: float = 3600,
        shards: int = 64,
        max_tracked: int = 10000,
    ):
        self.rate_limit = max(1, int(rate_limit))
        self.window_seconds = max(1.0, float(window_seconds))
        self.block_duration = max(1.0, float(block_duration))
        shard_count = max(1, int(shards))
        per_shard = max(1, int(max_tracked) // shard_count)
        self._shards = [_Shard(per_shard, self.window_seconds) for _ in range(shard_count)]

    def _shard_for(self, address: str) -> _Shard:
        return self._shards[hash(address) % len(self._shards)]

    def evaluate(self, address: str, now: Optional[float] = None) -> RateVerdict:
        """Record one request from ``address`` and decide whether it may pass."""
        now = time.time() if now is None else now
        shard = self._shard_for(address)

        with shard.lock:
            state = shard.states.get(address)
            if state is None:
                state = _WindowState()

            if state.blocked_until and now < state.blocked_until:
                return RateVerdict(Decision.BLOCK, False, 0)
            state.blocked_until = 0.0

            cutoff = now - self.window_seconds
            state.hits = [t for t in state.hits if t > cutoff]

            if len(state.hits) + 1 > self.rate_limit:
                state.hits = []
                state.blocked_until = now + self.block_duration
                shard.states.set(address, state, ttl=self.block_duration)
                logger.warning(
                    "rate_limit_block",
                    ip=address,
                    limit=self.rate_limit,
                    window_seconds=self.window_seconds,
                    block_duration=self.block_duration,
                )
                return RateVerdict(Decision.BLOCK, True, 0)

            state.hits.append(now)
            shard.states.set(address, state, ttl=self.window_seconds)
            return RateVerdict(Decision.ALLOW, False, self.rate_limit - len(state.hits))

    def record_and_check(self, address: str, now: Optional[float] = None) -> Decision:
        return self.evaluate(address, now).decision

    def is_blocked(self, address: str, now: Optional[float] = None) -> bool:
        """Check for an active temporary block without recording a request."""
        now = time.time() if now is None else now
        shard = self._shard_for(address)
        with shard.lock:
            state = shard.states.get(address)
            return bool(state and state.blocked_until and now < state.blocked_until)

    def blocked_until(self, address: str) -> Optional[float]:
        shard = self._shard_for(address)
        with shard.lock:
            state = shard.states.get(address)
            if state is None or not state.blocked_until:
                return None
            return state.blocked_until

    def remaining(self, address: str, now: Optional[float] = None) -> int:
        """Requests still allowed in the current window."""
        now = time.time() if now is None else now
        shard = self._shard_for(address)
        with shard.lock:
            state = shard.states.get(address)
            if state is None:
                return self.rate_limit
            if state.blocked_until and now < state.blocked_until:
                return 0
            cutoff = now - self.window_seconds
            return max(0, self.rate_limit - sum(1 for t in state.hits if t > cutoff))

    def blocked_addresses(self, now: Optional[float] = None) -> list[dict]:
        """Return currently blocked addresses with their remaining block time."""
        now = time.time() if now is None else now
        blocked = []
        for shard in self._shards:
            with shard.lock:
                for address, state in shard.states.items():
                    if state.blocked_until and now < state.blocked_until:
                        blocked.append({
                            "ip": address,
                            "blocked_until": state.blocked_until,
                            "remaining_seconds": int(state.blocked_until - now),
                        })
        return sorted(blocked, key=lambda b: b["blocked_until"], reverse=True)

    def unblock(self, address: str) -> bool:
        """Drop all state for an address, lifting any active block."""
        shard = self._shard_for(address)
        with shard.lock:
            removed = shard.states.invalidate(address)
        if removed:
            logger.info("rate_limit_unblock", ip=address)
        return removed

    def reset(self) -> None:
        """Forget every tracked address."""
        for shard in self._shards:
            with shard.lock:
                shard.states.clear()

    def tracked_count(self) -> int:
        return sum(len(shard.states) for shard in self._shards)
