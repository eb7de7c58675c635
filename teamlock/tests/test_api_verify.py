"""Tests for POST /api/team-verify and GET /api/team-current."""

from __future__ import annotations

from fastapi.testclient import TestClient

DAY = 86400


def _verify(client, code, device="dev-1", **headers):
    return client.post(
        "/api/team-verify", json={"code": code, "deviceHint": device}, headers=headers
    )


class TestVerifyEndpoint:
    def test_valid_code(self, client):
        r = _verify(client, "ALPHA01")
        assert r.status_code == 200
        body = r.json()
        assert body["teamId"] == "TEAM_alpha"
        assert body["teamName"] == "Team Alpha"
        assert body["ttlSeconds"] == DAY
        assert body["lockToken"].startswith("tlk_")

    def test_unknown_code(self, client):
        r = _verify(client, "ZZZZ99")
        assert r.status_code == 401
        err = r.json()["error"]
        assert err["type"] == "TEAM_CODE_INVALID"
        assert err["request_id"] == r.headers["x-request-id"]

    def test_conflict_one_hour_later(self, client, clock):
        assert _verify(client, "ALPHA01").status_code == 200
        clock.advance(3600)
        r = _verify(client, "BETA02")
        assert r.status_code == 409
        err = r.json()["error"]
        assert err["type"] == "TEAM_LOCK_CONFLICT"
        assert err["remainingTtlSeconds"] == DAY - 3600
        assert "TEAM_alpha" not in r.text

    def test_different_devices_do_not_conflict(self, client):
        assert _verify(client, "ALPHA01", device="dev-1").status_code == 200
        assert _verify(client, "BETA02", device="dev-2").status_code == 200

    def test_connection_fallback_when_no_device_hint(self, client):
        ua = {"User-Agent": "phone-browser/1.0"}
        r1 = client.post("/api/team-verify", json={"code": "ALPHA01"}, headers=ua)
        assert r1.status_code == 200
        r2 = client.post("/api/team-verify", json={"code": "BETA02"}, headers=ua)
        assert r2.status_code == 409

    def test_whitespace_device_hints_do_not_share_a_lock(self, client):
        r1 = client.post(
            "/api/team-verify",
            json={"code": "ALPHA01", "deviceHint": " "},
            headers={"User-Agent": "phone-a/1.0"},
        )
        assert r1.status_code == 200
        r2 = client.post(
            "/api/team-verify",
            json={"code": "BETA02", "deviceHint": "   "},
            headers={"User-Agent": "phone-b/2.0"},
        )
        assert r2.status_code == 200

    def test_lowercase_code_accepted(self, client):
        assert _verify(client, "alpha01").json()["teamId"] == "TEAM_alpha"

    def test_missing_code_is_validation_error(self, client):
        r = client.post("/api/team-verify", json={"deviceHint": "dev-1"})
        assert r.status_code == 422
        assert r.json()["error"]["type"] == "VALIDATION_ERROR"

    def test_oversized_code_rejected(self, client):
        r = _verify(client, "A" * 65)
        assert r.status_code == 422

    def test_response_never_contains_device_hint(self, client):
        r = _verify(client, "ALPHA01", device="my-secret-device-id")
        assert "my-secret-device-id" not in r.text


class TestVerifyRateLimit:
    def test_429_after_limit(self, make_app):
        with TestClient(make_app(verify_rate_limit=3)) as client:
            for i in range(3):
                _verify(client, "ZZZZ99", device=f"dev-{i}")
            r = _verify(client, "ALPHA01", device="dev-9")
            assert r.status_code == 429
            err = r.json()["error"]
            assert err["type"] == "RATE_LIMITED"
            assert int(r.headers["Retry-After"]) == err["retryAfterSeconds"]
            assert 1 <= err["retryAfterSeconds"] <= 60

    def test_rate_limited_request_takes_no_lock(self, make_app, clock):
        with TestClient(make_app(verify_rate_limit=1)) as client:
            _verify(client, "ZZZZ99", device="dev-1")
            assert _verify(client, "ALPHA01", device="dev-1").status_code == 429
        # No lock for any derived hint: a different team still verifies later.
        clock.advance(120)
        with TestClient(make_app(verify_rate_limit=1)) as client:
            assert _verify(client, "BETA02", device="dev-1").status_code == 200

    def test_window_resets(self, make_app, clock):
        with TestClient(make_app(verify_rate_limit=1)) as client:
            assert _verify(client, "ALPHA01").status_code == 200
            assert _verify(client, "ALPHA01").status_code == 429
            clock.advance(60)
            assert _verify(client, "ALPHA01").status_code == 200

    def test_forwarded_for_ignored_without_trust_proxy(self, make_app):
        with TestClient(make_app(verify_rate_limit=1)) as client:
            assert _verify(client, "ALPHA01", **{"X-Forwarded-For": "1.1.1.1"}).status_code == 200
            r = _verify(client, "ALPHA01", **{"X-Forwarded-For": "2.2.2.2"})
            assert r.status_code == 429

    def test_forwarded_for_used_behind_trusted_proxy(self, make_app):
        with TestClient(make_app(verify_rate_limit=1, trust_proxy=True)) as client:
            assert _verify(client, "ALPHA01", **{"X-Forwarded-For": "1.1.1.1"}).status_code == 200
            r = _verify(client, "ALPHA01", **{"X-Forwarded-For": "2.2.2.2"})
            assert r.status_code == 200


class TestTeamCurrent:
    def test_current_team(self, client, clock):
        token = _verify(client, "ALPHA01").json()["lockToken"]
        clock.advance(60)
        r = client.get("/api/team-current", headers={"X-Team-Lock": token})
        assert r.status_code == 200
        body = r.json()
        assert body["teamId"] == "TEAM_alpha"
        assert body["teamName"] == "Team Alpha"
        assert body["remainingTtlSeconds"] == DAY - 60

    def test_missing_token(self, client):
        r = client.get("/api/team-current")
        assert r.status_code == 401
        assert r.json()["error"]["type"] == "INVALID_TOKEN"

    def test_expired_token(self, client, clock):
        token = _verify(client, "ALPHA01").json()["lockToken"]
        clock.advance(DAY + 1)
        r = client.get("/api/team-current", headers={"X-Team-Lock": token})
        assert r.status_code == 419
        assert r.json()["error"]["type"] == "TEAM_LOCK_EXPIRED"
