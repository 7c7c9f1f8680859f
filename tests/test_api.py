"""Tests for the engagement tracking API."""

import hashlib
import hmac
import json
import time

import pytest
from fastapi.testclient import TestClient

from engagement_engine.core.rules import Instrument
from engagement_engine.engine import EngagementEngine
from engagement_engine.storage import InMemoryStore
from engagement_engine.website_api.config import reset_settings
from engagement_engine.website_api.main import create_app
from engagement_engine.website_api.middleware.auth import sign_request

SECRET = "test-secret"

SUCCESS_GAP = {
    "id": "success-gap",
    "dimensions": [{"id": "clarity", "weight": 1.0}],
    "questions": [
        {"id": "q1", "dimension": "clarity", "scoring": {"type": "percentage", "maxPoints": 10}},
    ],
}


@pytest.fixture
def engine():
    engine = EngagementEngine(store=InMemoryStore())
    engine.register_instrument(Instrument.from_dict(SUCCESS_GAP))
    return engine


@pytest.fixture
def client(engine, monkeypatch):
    monkeypatch.setenv("EE_API_SECRET", SECRET)
    reset_settings()
    with TestClient(create_app(engine=engine)) as client:
        client.headers.update({"X-EE-Secret": SECRET})
        yield client
    reset_settings()


class TestHealthAndAuth:
    """Tests for health checks and request authentication."""

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_ready(self, client):
        assert client.get("/ready").json()["status"] == "ready"

    def test_missing_secret(self, client):
        response = client.get("/v1/scores/u1", headers={"X-EE-Secret": "wrong"})
        assert response.status_code == 401
        assert response.json()["detail"]["error"] == "auth_error"

    def _signed_post(self, client, path, body, signed_path=None, timestamp=None):
        timestamp = int(time.time()) if timestamp is None else timestamp
        signature = sign_request(SECRET, "POST", signed_path or path, body, timestamp)
        return client.post(
            path,
            content=body,
            headers={
                "X-EE-Secret": "",
                "X-EE-Signature": signature,
                "X-EE-Timestamp": str(timestamp),
                "Content-Type": "application/json",
            },
        )

    def test_signed_request(self, client):
        body = json.dumps({"kind": "cta_click", "data": {}}).encode()
        response = self._signed_post(client, "/v1/scores/u1/events", body)
        assert response.status_code == 200

    def test_signature_is_bound_to_path(self, client):
        body = json.dumps({"kind": "cta_click", "data": {}}).encode()
        response = self._signed_post(
            client, "/v1/scores/u2/events", body, signed_path="/v1/scores/u1/events"
        )
        assert response.status_code == 401
        assert client.get("/v1/scores/u2").json()["total_score"] == 0

    def test_stale_signature_rejected(self, client):
        body = json.dumps({"kind": "cta_click", "data": {}}).encode()
        response = self._signed_post(
            client, "/v1/scores/u1/events", body, timestamp=int(time.time()) - 3600
        )
        assert response.status_code == 401

    def test_body_only_signature_rejected(self, client):
        body = json.dumps({"kind": "cta_click", "data": {}}).encode()
        digest = hmac.new(SECRET.encode(), body, hashlib.sha256).hexdigest()
        response = client.post(
            "/v1/scores/u1/events",
            content=body,
            headers={"X-EE-Secret": "", "X-EE-Signature": digest, "Content-Type": "application/json"},
        )
        assert response.status_code == 401


class TestSessionRoutes:
    """Tests for the session lifecycle over HTTP."""

    def test_session_flow(self, client):
        response = client.post("/v1/sessions", json={
            "identity_id": "u1",
            "referrer": "https://www.google.com/",
            "utm": {"utm_source": "newsletter", "utm_medium": "email"},
        })
        assert response.status_code == 200
        session_id = response.json()["session_id"]

        response = client.post(f"/v1/sessions/{session_id}/activity", json={"kind": "cta_click", "data": {"cta_id": "hero"}})
        data = response.json()
        assert data["session"]["interaction_count"] == 1
        assert data["session"]["source"] == "newsletter"
        assert data["lead_score"]["total_score"] == 3

        response = client.post(f"/v1/sessions/{session_id}/end", json={"reason": "unload"})
        data = response.json()
        assert data["ended"] is True
        assert data["summary"]["end_reason"] == "unload"

        assert client.post(f"/v1/sessions/{session_id}/end").json()["ended"] is False

    def test_anonymous_activity_is_not_scored(self, client):
        session_id = client.post("/v1/sessions", json={}).json()["session_id"]
        data = client.post(f"/v1/sessions/{session_id}/activity", json={"kind": "page_view"}).json()
        assert data["session"]["page_view_count"] == 1
        assert data["lead_score"] is None

    def test_identify(self, client):
        session_id = client.post("/v1/sessions", json={}).json()["session_id"]
        data = client.post(f"/v1/sessions/{session_id}/identify", json={"identity_id": "u5"}).json()
        assert data["session"]["identity_id"] == "u5"

    def test_activity_on_unknown_session(self, client):
        response = client.post("/v1/sessions/nope/activity", json={"kind": "page_view"})
        assert response.status_code == 404
        assert response.json()["detail"]["error"] == "not_found"

    def test_unknown_action_kind(self, client):
        session_id = client.post("/v1/sessions", json={}).json()["session_id"]
        response = client.post(f"/v1/sessions/{session_id}/activity", json={"kind": "teleport"})
        assert response.status_code == 400

    def test_end_unknown_session(self, client):
        assert client.post("/v1/sessions/nope/end").json()["ended"] is False


class TestScoreRoutes:
    """Tests for score and assessment routes."""

    def test_events_and_tier_change(self, client):
        for _ in range(2):
            response = client.post("/v1/scores/u1/events", json={"kind": "webinar_register"})
            assert response.json()["transition"] is None

        data = client.post("/v1/scores/u1/events", json={"kind": "webinar_register"}).json()
        assert data["lead_score"]["tier"] == "engaged"
        assert data["transition"]["triggered_sequences"] == [
            "engaged_visitor_welcome",
            "tool_user_series_14_day",
        ]

        score = client.get("/v1/scores/u1").json()
        assert score["total_score"] == 30
        assert score["components"]["webinar_score"] == 30

        assert client.get("/v1/scores").json()["tiers"]["engaged"] == 1

    def test_bad_payload(self, client):
        response = client.post("/v1/scores/u1/events", json={"kind": "page_view", "data": {"colour": "red"}})
        assert response.status_code == 400
        assert response.json()["detail"]["error"] == "validation_error"

    def test_submit_assessment(self, client):
        data = client.post("/v1/assessments/u1", json={"tool_id": "success-gap", "responses": {"q1": 70}}).json()
        assert data["result"]["score"] == 70
        assert data["lead_score"]["components"]["tool_usage_score"] == 5

        result = client.get("/v1/assessments/u1/success-gap").json()
        assert result["dimension_scores"]["clarity"] == 70

    def test_unknown_tool(self, client):
        response = client.post("/v1/assessments/u1", json={"tool_id": "mystery", "responses": {}})
        assert response.status_code == 400

    def test_missing_assessment(self, client):
        assert client.get("/v1/assessments/u1/success-gap").status_code == 404


class TestCacheRoutes:
    """Tests for cache inspection routes."""

    def test_stats_and_invalidate(self, client):
        client.post("/v1/scores/u1/events", json={"kind": "cta_click"})
        client.get("/v1/scores/u1")

        stats = client.get("/v1/cache/stats").json()
        assert stats["size"] >= 1

        response = client.post("/v1/cache/invalidate/u1").json()
        assert response["removed"] >= 1
