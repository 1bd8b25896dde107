"""Integration tests: full API round-trips against an in-memory database."""

import pytest

from warden.dependencies import get_protection_service

pytestmark = pytest.mark.asyncio(loop_scope="session")

GOOGLEBOT_UA = "Mozilla/5.0 (compatible; Googlebot/2.1; +http://www.google.com/bot.html)"


# -----------------------------------------------------------------------
# Health and admin guard
# -----------------------------------------------------------------------

async def test_health(client):
    resp = await client.get("/health")
    assert resp.status_code == 200
    data = resp.json()
    assert data["status"] == "healthy"
    assert "tracked_addresses" in data["protection"]


async def test_request_id_is_echoed(client):
    resp = await client.get("/health", headers={"X-Request-ID": "req-123"})
    assert resp.headers["X-Request-ID"] == "req-123"


async def test_admin_routes_reject_missing_key(client):
    resp = await client.get("/api/v1/security/stats")
    assert resp.status_code == 401
    data = resp.json()
    assert data["error"] is True
    assert data["status_code"] == 401


async def test_admin_routes_reject_wrong_key(client):
    resp = await client.get("/api/v1/security/stats", headers={"X-Admin-Key": "nope"})
    assert resp.status_code == 401


async def test_validation_error_envelope(client, admin_headers):
    resp = await client.get("/api/v1/security/stats?days=0", headers=admin_headers)
    assert resp.status_code == 422
    assert resp.json()["detail"] == "Validation error"


# -----------------------------------------------------------------------
# Events, logs and statistics
# -----------------------------------------------------------------------

async def test_report_event_and_read_logs(client, admin_headers):
    resp = await client.post(
        "/api/v1/security/events",
        json={
            "address": "198.51.100.10",
            "action_kind": "content_view",
            "result": "denied",
            "resource_id": 77,
            "user_agent": "curl/8.4.0",
            "check_bypass": True,
        },
        headers=admin_headers,
    )
    assert resp.status_code == 201
    data = resp.json()
    assert data["logged"] is True
    assert data["suspicious"] is True

    resp = await client.get(
        "/api/v1/security/logs",
        params={"address": "198.51.100.10"},
        headers=admin_headers,
    )
    assert resp.status_code == 200
    logs = resp.json()
    assert logs["total"] == 2
    kinds = {item["action_kind"] for item in logs["items"]}
    assert kinds == {"content_view", "bypass_attempt"}


async def test_report_event_rejects_bad_address(client, admin_headers):
    resp = await client.post(
        "/api/v1/security/events",
        json={"address": "not-an-ip", "action_kind": "page_view", "result": "viewed"},
        headers=admin_headers,
    )
    assert resp.status_code == 400


async def test_stats_endpoints(client, admin_headers):
    await client.post(
        "/api/v1/security/events",
        json={"address": "198.51.100.11", "action_kind": "page_view", "result": "viewed"},
        headers=admin_headers,
    )

    resp = await client.get("/api/v1/security/stats", params={"days": 1}, headers=admin_headers)
    assert resp.status_code == 200
    stats = resp.json()
    assert stats["total"] >= 1
    assert stats["crawler_count"] + stats["human_count"] == stats["total"]

    resp = await client.get("/api/v1/security/stats/today", headers=admin_headers)
    assert resp.status_code == 200


async def test_period_stats_rejects_inverted_window(client, admin_headers):
    resp = await client.get(
        "/api/v1/security/stats/period",
        params={"since": "2026-02-01T00:00:00Z", "until": "2026-01-01T00:00:00Z"},
        headers=admin_headers,
    )
    assert resp.status_code == 400


async def test_period_stats_accepts_mixed_timezone_bounds(client, admin_headers):
    resp = await client.get(
        "/api/v1/security/stats/period",
        params={"since": "2026-01-01T00:00:00Z", "until": "2026-01-02T00:00:00"},
        headers=admin_headers,
    )
    assert resp.status_code == 200
    assert resp.json()["since"] == "2026-01-01T00:00:00+00:00"


async def test_period_stats_compares_mixed_bounds_in_utc(client, admin_headers):
    # 13:00+02:00 is 11:00 UTC, an hour before the naive (UTC) start
    resp = await client.get(
        "/api/v1/security/stats/period",
        params={"since": "2026-01-01T12:00:00", "until": "2026-01-01T13:00:00+02:00"},
        headers=admin_headers,
    )
    assert resp.status_code == 400


# -----------------------------------------------------------------------
# Lists and blocked addresses
# -----------------------------------------------------------------------

async def test_update_and_read_lists(client, admin_headers):
    resp = await client.put(
        "/api/v1/security/lists",
        json={"allow_list": "198.51.100.0/24\n# office", "deny_list": ""},
        headers=admin_headers,
    )
    assert resp.status_code == 200
    assert resp.json()["allow_entries"] == 1

    resp = await client.get("/api/v1/security/lists", headers=admin_headers)
    assert resp.json()["allow_list"] == ["198.51.100.0/24"]

    await client.put("/api/v1/security/lists", json={}, headers=admin_headers)


async def test_gated_page_is_blocked_and_listed(client, admin_headers):
    service = get_protection_service()
    headers = {"CF-Connecting-IP": "8.8.8.8"}
    codes = []
    for _ in range(4):
        codes.append((await client.get("/some-page", headers=headers)).status_code)
        await service.flush()
    assert codes[:3] == [404, 404, 404]
    assert codes[3] == 429

    resp = await client.get(
        "/api/v1/security/logs",
        params={"address": "8.8.8.8", "action_kind": "ip_blocked"},
        headers=admin_headers,
    )
    blocked_rows = resp.json()["items"]
    assert len(blocked_rows) == 1
    assert blocked_rows[0]["suspicious"] is True

    resp = await client.get("/api/v1/security/blocked", headers=admin_headers)
    assert "8.8.8.8" in [b["ip"] for b in resp.json()["blocked"]]

    resp = await client.delete("/api/v1/security/blocked/8.8.8.8", headers=admin_headers)
    assert resp.status_code == 200
    assert (await client.get("/some-page", headers=headers)).status_code == 404
    await service.flush()


async def test_unblock_unknown_address(client, admin_headers):
    resp = await client.delete("/api/v1/security/blocked/9.9.9.9", headers=admin_headers)
    assert resp.status_code == 404


# -----------------------------------------------------------------------
# Crawler ranges
# -----------------------------------------------------------------------

async def test_crawler_range_lifecycle(client, admin_headers):
    body = {"groups": [{"crawler_id": 12, "networks": ["66.249.64.0/19", "bogus"]}]}
    resp = await client.post("/api/v1/crawlers/ranges/import", json=body, headers=admin_headers)
    assert resp.status_code == 200
    assert resp.json() == {"imported": 1, "submitted": 2}

    resp = await client.post("/api/v1/crawlers/ranges/import", json=body, headers=admin_headers)
    assert resp.json()["imported"] == 0

    resp = await client.get("/api/v1/crawlers/lookup", params={"address": "66.249.66.1"}, headers=admin_headers)
    data = resp.json()
    assert data["is_crawler"] is True
    assert data["crawler_id"] == 12

    resp = await client.get("/api/v1/crawlers/ranges", params={"crawler_id": 12}, headers=admin_headers)
    ranges = resp.json()["ranges"]
    assert [r["network"] for r in ranges] == ["66.249.64.0/19"]

    resp = await client.delete(f"/api/v1/crawlers/ranges/{ranges[0]['id']}", headers=admin_headers)
    assert resp.status_code == 200
    resp = await client.delete(f"/api/v1/crawlers/ranges/{ranges[0]['id']}", headers=admin_headers)
    assert resp.status_code == 404


async def test_mine_and_clear(client, admin_headers):
    for i in range(1, 4):
        for _ in range(3):
            await client.post(
                "/api/v1/security/events",
                json={
                    "address": f"192.0.2.{i}",
                    "action_kind": "page_view",
                    "result": "viewed",
                    "user_agent": GOOGLEBOT_UA,
                },
                headers=admin_headers,
            )

    resp = await client.post("/api/v1/crawlers/mine", json={"window_days": 1, "min_hits": 3}, headers=admin_headers)
    assert resp.status_code == 200
    assert resp.json()["ranges_added"] >= 1

    resp = await client.get("/api/v1/crawlers/lookup", params={"address": "192.0.2.200"}, headers=admin_headers)
    assert resp.json()["crawler_id"] == 12

    resp = await client.delete("/api/v1/crawlers/ranges", headers=admin_headers)
    assert resp.status_code == 200
    assert resp.json()["deleted"] >= 1


# -----------------------------------------------------------------------
# Maintenance
# -----------------------------------------------------------------------

async def test_cleanup_and_retention(client, admin_headers):
    resp = await client.post("/api/v1/maintenance/cleanup", params={"retention_days": 1}, headers=admin_headers)
    assert resp.status_code == 200
    summary = resp.json()["summary"]
    assert summary["retention_days"] == 7

    resp = await client.get("/api/v1/maintenance/retention", headers=admin_headers)
    assert resp.status_code == 200
    data = resp.json()
    assert data["log_retention_days"] == 7
    assert data["last_summary"] == summary
