"""
tests/test_api_routes.py — FastAPI Route Integration Tests
============================================================

These tests verify:
- Bot API key, top.gg token, Polar signature and admin JWT guards
- Status code mapping of economy failures (402, 400, 404)
- Response shape (ids as strings, counters as numbers)
"""

from __future__ import annotations

import json
import time

import jwt
import pytest
from fastapi.testclient import TestClient

from tetobot.api.deps import JWT_ALGORITHM, JWT_SECRET, get_economy
from tetobot.api.signatures import sign

BOT_HEADERS = {"Authorization": "Bearer test-bot-api-key"}
TOPGG_HEADERS = {"Authorization": "test-topgg-token"}
SNOWFLAKE = 123456789012345678


@pytest.fixture
def client(economy):
    """TestClient whose economy is the parametrized test store."""
    from tetobot.api.main import app

    app.dependency_overrides[get_economy] = lambda: economy
    yield TestClient(app, raise_server_exceptions=False)
    app.dependency_overrides.clear()


@pytest.fixture
def non_admin_token():
    return jwt.encode(
        {"sub": "67890", "username": "RegularUser", "is_admin": False},
        JWT_SECRET,
        algorithm=JWT_ALGORITHM,
    )


def _auth(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


def _polar_headers(body: bytes, secret: str = "test-polar-secret") -> dict:
    ts = int(time.time())
    return {
        "webhook-id": "msg_test",
        "webhook-timestamp": str(ts),
        "webhook-signature": sign(secret, "msg_test", ts, body),
        "content-type": "application/json",
    }


# ===========================================================================
# Health
# ===========================================================================
class TestHealthEndpoint:
    def test_health_returns_ok(self, client):
        resp = client.get("/api/health")
        assert resp.status_code == 200
        assert resp.json() == {"status": "ok"}


# ===========================================================================
# Bot routes
# ===========================================================================
class TestBotAuth:
    @pytest.mark.parametrize(
        "headers",
        [
            {},
            {"Authorization": "Bearer wrong"},
            {"Authorization": "Bearer \u00e9".encode("latin-1")},
        ],
    )
    def test_rejects_bad_key(self, client, headers):
        resp = client.post(
            "/api/record-user-message", json={"userId": "1"}, headers=headers
        )
        assert resp.status_code == 401


class TestRecordUserMessage:
    def test_guild_message(self, client):
        resp = client.post(
            "/api/record-user-message",
            json={"userId": str(SNOWFLAKE), "guildId": "42"},
            headers=BOT_HEADERS,
        )
        assert resp.status_code == 200
        data = resp.json()["data"]
        assert data["user"]["userId"] == str(SNOWFLAKE)
        assert data["user"]["messageCredits"] == 29
        assert data["userGuild"]["guildId"] == "42"
        assert data["userGuild"]["intimacy"] == 1
        assert data["userGuild"]["dailyMessageCount"] == 1

    def test_dm_message(self, client):
        resp = client.post(
            "/api/record-user-message", json={"userId": "7"}, headers=BOT_HEADERS
        )
        assert resp.status_code == 200
        assert "userGuild" not in resp.json()["data"]

    def test_out_of_credits_is_402(self, client, economy):
        economy.repos.users.create(7, message_credits=0)
        resp = client.post(
            "/api/record-user-message", json={"userId": "7"}, headers=BOT_HEADERS
        )
        assert resp.status_code == 402

    def test_invalid_body_is_422(self, client):
        resp = client.post(
            "/api/record-user-message", json={"userId": "abc"}, headers=BOT_HEADERS
        )
        assert resp.status_code == 422

    @pytest.mark.parametrize(
        "body",
        [
            {"userId": str(2**63)},
            {"userId": "7", "guildId": str(2**63)},
        ],
    )
    def test_id_beyond_bigint_is_422(self, client, economy, body):
        resp = client.post("/api/record-user-message", json=body, headers=BOT_HEADERS)
        assert resp.status_code == 422
        assert economy.repos.users.find_all() == []


class TestEnsureUserGuildExists:
    def test_creates_relationship(self, client, economy):
        resp = client.post(
            "/api/ensure-user-guild-exists",
            json={"userId": "7", "guildId": "42", "role": "admin"},
            headers=BOT_HEADERS,
        )
        assert resp.status_code == 200
        data = resp.json()["data"]
        assert data["user"]["role"] == "admin"
        assert data["userGuild"]["intimacy"] == 0
        assert economy.repos.user_guilds.find_by_composite_key(7, 42) is not None

    def test_id_beyond_bigint_is_422(self, client):
        resp = client.post(
            "/api/ensure-user-guild-exists",
            json={"userId": str(2**63), "guildId": "42"},
            headers=BOT_HEADERS,
        )
        assert resp.status_code == 422


class TestLeaderboard:
    def test_ranked(self, client, economy):
        for user_id, intimacy in [(1, 50), (2, 10), (3, 30)]:
            economy.activity.ensure_user_guild_exists(user_id, 42)
            economy.tracker.adjust_intimacy(user_id, 42, intimacy)

        resp = client.get(
            "/api/leaderboard", params={"guildId": "42", "limit": 2}, headers=BOT_HEADERS
        )
        assert resp.status_code == 200
        rows = resp.json()["data"]["leaderboard"]
        assert [(r["userId"], r["intimacy"]) for r in rows] == [("1", 50), ("3", 30)]

    @pytest.mark.parametrize("limit", [0, 101])
    def test_limit_bounds(self, client, limit):
        resp = client.get(
            "/api/leaderboard", params={"guildId": "42", "limit": limit}, headers=BOT_HEADERS
        )
        assert resp.status_code == 422


class TestGetUser:
    def test_found(self, client, economy):
        economy.repos.users.create(SNOWFLAKE)
        resp = client.get(f"/api/users/{SNOWFLAKE}", headers=BOT_HEADERS)
        assert resp.status_code == 200
        assert resp.json()["data"]["user"]["userId"] == str(SNOWFLAKE)

    def test_missing(self, client):
        assert client.get("/api/users/404", headers=BOT_HEADERS).status_code == 404

    def test_id_beyond_bigint_is_422(self, client):
        assert client.get(f"/api/users/{2**63}", headers=BOT_HEADERS).status_code == 422


class TestUserGuilds:
    def test_get_one(self, client, economy):
        economy.activity.record_user_message(SNOWFLAKE, 42)
        resp = client.get(
            "/api/user-guilds",
            params={"userId": str(SNOWFLAKE), "guildId": "42"},
            headers=BOT_HEADERS,
        )
        assert resp.status_code == 200
        row = resp.json()["data"]["userGuild"]
        assert row["userId"] == str(SNOWFLAKE)
        assert row["dailyMessageCount"] == 1

    def test_get_all(self, client, economy):
        economy.activity.ensure_user_guild_exists(1, 42)
        economy.activity.ensure_user_guild_exists(2, 43)
        resp = client.get("/api/user-guilds", headers=BOT_HEADERS)
        assert resp.status_code == 200
        rows = resp.json()["data"]["userGuilds"]
        assert sorted((r["userId"], r["guildId"]) for r in rows) == [("1", "42"), ("2", "43")]

    def test_get_missing_is_404(self, client):
        resp = client.get(
            "/api/user-guilds", params={"userId": "1", "guildId": "42"}, headers=BOT_HEADERS
        )
        assert resp.status_code == 404

    def test_get_with_one_id_is_400(self, client):
        resp = client.get("/api/user-guilds", params={"userId": "1"}, headers=BOT_HEADERS)
        assert resp.status_code == 400

    def test_requires_bot_key(self, client):
        assert client.get("/api/user-guilds").status_code == 401

    def test_adjust_intimacy_is_floored(self, client, economy):
        economy.activity.ensure_user_guild_exists(1, 42)
        economy.tracker.adjust_intimacy(1, 42, 5)
        params = {"userId": "1", "guildId": "42"}

        resp = client.patch(
            "/api/user-guilds", params=params, json={"intimacyDelta": 3}, headers=BOT_HEADERS
        )
        assert resp.status_code == 200
        assert resp.json()["data"]["userGuild"]["intimacy"] == 8

        resp = client.patch(
            "/api/user-guilds", params=params, json={"intimacyDelta": -50}, headers=BOT_HEADERS
        )
        assert resp.json()["data"]["userGuild"]["intimacy"] == 0

    def test_fed_row_is_cleared_by_daily_reset(self, client, economy, admin_token):
        economy.activity.ensure_user_guild_exists(1, 42)
        params = {"userId": "1", "guildId": "42"}

        resp = client.patch(
            "/api/user-guilds", params=params, json={"fed": True}, headers=BOT_HEADERS
        )
        assert resp.status_code == 200
        assert resp.json()["data"]["userGuild"]["lastFeed"] is not None

        resp = client.post("/api/admin/daily-reset", headers=_auth(admin_token))
        assert resp.status_code == 200
        assert resp.json()["data"]["resetCount"] == 1
        assert economy.repos.user_guilds.find_by_composite_key(1, 42).last_feed is None

    def test_explicit_last_feed(self, client, economy):
        economy.activity.ensure_user_guild_exists(1, 42)
        resp = client.patch(
            "/api/user-guilds",
            params={"userId": "1", "guildId": "42"},
            json={"lastFeed": "2026-01-02T03:04:05+00:00"},
            headers=BOT_HEADERS,
        )
        assert resp.status_code == 200
        assert economy.repos.user_guilds.find_by_composite_key(1, 42).last_feed is not None

    def test_patch_missing_is_404(self, client):
        resp = client.patch(
            "/api/user-guilds",
            params={"userId": "1", "guildId": "42"},
            json={"fed": True},
            headers=BOT_HEADERS,
        )
        assert resp.status_code == 404

    def test_patch_empty_body_is_400(self, client, economy):
        economy.activity.ensure_user_guild_exists(1, 42)
        resp = client.patch(
            "/api/user-guilds",
            params={"userId": "1", "guildId": "42"},
            json={},
            headers=BOT_HEADERS,
        )
        assert resp.status_code == 400

    def test_id_beyond_bigint_is_422(self, client):
        resp = client.get(
            "/api/user-guilds",
            params={"userId": str(2**63), "guildId": "42"},
            headers=BOT_HEADERS,
        )
        assert resp.status_code == 422


# ===========================================================================
# top.gg vote webhook
# ===========================================================================
class TestVoteWebhook:
    def test_upvote(self, client, economy):
        economy.repos.users.create(7)
        resp = client.post(
            "/api/webhook",
            json={"bot": "1", "user": "7", "type": "upvote", "isWeekend": False},
            headers=TOPGG_HEADERS,
        )
        assert resp.status_code == 204
        assert economy.repos.users.find_by_id(7).message_credits == 60

    def test_test_vote(self, client, economy):
        economy.repos.users.create(7)
        resp = client.post(
            "/api/webhook", json={"user": "7", "type": "test"}, headers=TOPGG_HEADERS
        )
        assert resp.status_code == 204
        assert economy.repos.users.find_by_id(7).message_credits == 30

    @pytest.mark.parametrize(
        "headers",
        [{}, {"Authorization": "nope"}, {"Authorization": "t\u00e9st".encode("latin-1")}],
    )
    def test_bad_token_is_403(self, client, headers):
        resp = client.post("/api/webhook", json={"user": "7", "type": "upvote"}, headers=headers)
        assert resp.status_code == 403

    def test_malformed_body_is_400(self, client):
        resp = client.post(
            "/api/webhook",
            content=b"not json",
            headers={**TOPGG_HEADERS, "content-type": "application/json"},
        )
        assert resp.status_code == 400

    @pytest.mark.parametrize("user", ["abc", "\u00b2", str(2**63), str(2**64)])
    def test_bad_user_is_400(self, client, user):
        resp = client.post(
            "/api/webhook", json={"user": user, "type": "upvote"}, headers=TOPGG_HEADERS
        )
        assert resp.status_code == 400

    def test_unknown_voter_is_404(self, client):
        resp = client.post(
            "/api/webhook", json={"user": "404", "type": "upvote"}, headers=TOPGG_HEADERS
        )
        assert resp.status_code == 404


# ===========================================================================
# Polar purchase webhook
# ===========================================================================
class TestPolarWebhook:
    def _body(self, user="7", product="6aefc078-a0da-4998-ae9b-5ff94c18aad5", type_="order.paid"):
        return json.dumps({
            "type": type_,
            "data": {"product_id": product, "customer": {"external_id": user}},
        }).encode()

    def test_order_paid(self, client, economy):
        economy.repos.users.create(7)
        body = self._body()
        resp = client.post("/api/webhooks/polar", content=body, headers=_polar_headers(body))
        assert resp.status_code == 202
        assert resp.json() == {"awarded": True, "credits": 150}
        assert economy.repos.users.find_by_id(7).message_credits == 180

    def test_other_event_acknowledged(self, client, economy):
        body = self._body(type_="order.created")
        resp = client.post("/api/webhooks/polar", content=body, headers=_polar_headers(body))
        assert resp.status_code == 202
        assert resp.json()["awarded"] is False

    def test_bad_signature_is_401(self, client, economy):
        economy.repos.users.create(7)
        body = self._body()
        resp = client.post(
            "/api/webhooks/polar", content=body, headers=_polar_headers(body, "wrong")
        )
        assert resp.status_code == 401
        assert economy.repos.users.find_by_id(7).message_credits == 30

    def test_non_ascii_signature_is_401(self, client):
        body = self._body()
        headers = _polar_headers(body)
        headers["webhook-signature"] = "v1,\u00e9".encode("latin-1")
        resp = client.post("/api/webhooks/polar", content=body, headers=headers)
        assert resp.status_code == 401

    @pytest.mark.parametrize("user", ["\u00b2", str(2**64)])
    def test_bad_buyer_id_is_400(self, client, user):
        body = self._body(user=user)
        resp = client.post("/api/webhooks/polar", content=body, headers=_polar_headers(body))
        assert resp.status_code == 400

    def test_unknown_product_is_400(self, client, economy):
        economy.repos.users.create(7)
        body = self._body(product="nope")
        resp = client.post("/api/webhooks/polar", content=body, headers=_polar_headers(body))
        assert resp.status_code == 400


# ===========================================================================
# Admin routes
# ===========================================================================
class TestAdminRoutes:
    def test_requires_token(self, client):
        assert client.post("/api/admin/daily-reset").status_code == 401

    def test_rejects_invalid_token(self, client):
        resp = client.post("/api/admin/daily-reset", headers=_auth("garbage"))
        assert resp.status_code == 401

    def test_rejects_non_admin(self, client, non_admin_token):
        resp = client.post("/api/admin/daily-reset", headers=_auth(non_admin_token))
        assert resp.status_code == 403

    def test_daily_reset(self, client, economy, admin_token):
        economy.repos.users.create(1, message_credits=3)
        economy.activity.record_user_message(2, 42)

        resp = client.post("/api/admin/daily-reset", headers=_auth(admin_token))
        assert resp.status_code == 200
        data = resp.json()["data"]
        assert data["creditCount"] == 2
        assert data["resetCount"] == 1
        assert economy.repos.users.find_by_id(1).message_credits == 30

    def test_patch_user(self, client, economy, admin_token):
        economy.repos.users.create(1)
        resp = client.patch(
            "/api/admin/users/1",
            json={"role": "admin", "messageCredits": 500},
            headers=_auth(admin_token),
        )
        assert resp.status_code == 200
        user = resp.json()["data"]["user"]
        assert user["role"] == "admin"
        assert user["messageCredits"] == 500

    def test_patch_rejects_negative_credits(self, client, economy, admin_token):
        economy.repos.users.create(1)
        resp = client.patch(
            "/api/admin/users/1", json={"messageCredits": -1}, headers=_auth(admin_token)
        )
        assert resp.status_code == 422

    def test_patch_missing_user(self, client, admin_token):
        resp = client.patch(
            "/api/admin/users/404", json={"messageCredits": 1}, headers=_auth(admin_token)
        )
        assert resp.status_code == 404

    def test_delete_user_cascades(self, client, economy, admin_token):
        economy.activity.ensure_user_guild_exists(1, 42)
        resp = client.delete("/api/admin/users/1", headers=_auth(admin_token))
        assert resp.status_code == 200
        assert economy.repos.users.find_by_id(1) is None
        assert economy.repos.user_guilds.find_all() == []
        assert client.delete("/api/admin/users/1", headers=_auth(admin_token)).status_code == 404
