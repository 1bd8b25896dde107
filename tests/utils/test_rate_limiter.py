"""Tests for the sliding-window rate limiter."""

import threading

from warden.utils.rate_limiter import Decision, RateLimiter


class TestRateLimiterWindow:
    def setup_method(self):
        self.limiter = RateLimiter(rate_limit=10, window_seconds=600, block_duration=3600)

    def test_allows_up_to_limit(self):
        for i in range(10):
            verdict = self.limiter.evaluate("198.51.100.1", now=1000.0 + i)
            assert verdict.decision == Decision.ALLOW

    def test_eleventh_request_blocks(self):
        for i in range(10):
            self.limiter.evaluate("198.51.100.1", now=1000.0 + i)
        verdict = self.limiter.evaluate("198.51.100.1", now=1010.0)
        assert verdict.decision == Decision.BLOCK
        assert verdict.newly_blocked is True

    def test_block_persists_for_duration(self):
        for i in range(11):
            self.limiter.evaluate("198.51.100.1", now=1000.0 + i)
        verdict = self.limiter.evaluate("198.51.100.1", now=1010.0 + 3599)
        assert verdict.decision == Decision.BLOCK
        assert verdict.newly_blocked is False
        assert self.limiter.is_blocked("198.51.100.1", now=1010.0 + 3599) is True

    def test_block_lifts_after_duration(self):
        for i in range(11):
            self.limiter.evaluate("198.51.100.1", now=1000.0 + i)
        verdict = self.limiter.evaluate("198.51.100.1", now=1010.0 + 3601)
        assert verdict.decision == Decision.ALLOW

    def test_old_hits_leave_the_window(self):
        for i in range(10):
            self.limiter.evaluate("198.51.100.1", now=float(i))
        verdict = self.limiter.evaluate("198.51.100.1", now=601.0)
        assert verdict.decision == Decision.ALLOW

    def test_addresses_are_independent(self):
        for i in range(11):
            self.limiter.evaluate("198.51.100.1", now=1000.0 + i)
        verdict = self.limiter.evaluate("198.51.100.2", now=1011.0)
        assert verdict.decision == Decision.ALLOW

    def test_remaining_counts_down(self):
        assert self.limiter.remaining("198.51.100.1", now=1000.0) == 10
        for i in range(3):
            self.limiter.evaluate("198.51.100.1", now=1000.0 + i)
        assert self.limiter.remaining("198.51.100.1", now=1003.0) == 7

    def test_record_and_check_returns_decision(self):
        assert self.limiter.record_and_check("198.51.100.1", now=1.0) == Decision.ALLOW


class TestRateLimiterAdministration:
    def setup_method(self):
        self.limiter = RateLimiter(rate_limit=2, window_seconds=60, block_duration=300)

    def _block(self, address, now=100.0):
        for i in range(3):
            self.limiter.evaluate(address, now=now + i)

    def test_blocked_addresses_lists_active_blocks(self):
        self._block("198.51.100.1")
        blocked = self.limiter.blocked_addresses(now=150.0)
        assert len(blocked) == 1
        assert blocked[0]["ip"] == "198.51.100.1"
        assert blocked[0]["remaining_seconds"] == int(102.0 + 300 - 150.0)

    def test_blocked_addresses_skips_expired_blocks(self):
        self._block("198.51.100.1")
        assert self.limiter.blocked_addresses(now=1000.0) == []

    def test_unblock(self):
        self._block("198.51.100.1")
        assert self.limiter.unblock("198.51.100.1") is True
        assert self.limiter.evaluate("198.51.100.1", now=110.0).decision == Decision.ALLOW

    def test_unblock_unknown_address(self):
        assert self.limiter.unblock("198.51.100.9") is False

    def test_reset(self):
        self._block("198.51.100.1")
        self.limiter.reset()
        assert self.limiter.tracked_count() == 0

    def test_invalid_configuration_is_clamped(self):
        limiter = RateLimiter(rate_limit=0, window_seconds=-5, block_duration=0, shards=0, max_tracked=0)
        assert limiter.rate_limit == 1
        assert limiter.evaluate("198.51.100.1", now=1.0).decision == Decision.ALLOW
        assert limiter.evaluate("198.51.100.1", now=1.0).decision == Decision.BLOCK


class TestRateLimiterConcurrency:
    def test_same_address_never_exceeds_limit(self):
        limiter = RateLimiter(rate_limit=10, window_seconds=600, block_duration=3600)
        results = []
        results_lock = threading.Lock()
        start = threading.Barrier(40)

        def worker():
            start.wait()
            verdict = limiter.evaluate("198.51.100.50")
            with results_lock:
                results.append(verdict)

        threads = [threading.Thread(target=worker) for _ in range(40)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        allowed = [v for v in results if v.decision == Decision.ALLOW]
        newly_blocked = [v for v in results if v.newly_blocked]
        assert len(allowed) == 10
        assert len(newly_blocked) == 1
