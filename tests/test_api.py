"""Tests for craftmatch.api — routes, error mapping and middleware.

Uses a bare app with gateway and agent on ``app.state`` so the store is
never contacted.
"""

import random
from unittest.mock import MagicMock

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from craftmatch.adapters.gateway import ConnectionState, OperationResult, PersistenceGateway
from craftmatch.api.app import create_app
from craftmatch.api.middleware import LatencyMiddleware, _normalize_path
from craftmatch.api.routes import router
from craftmatch.api.run import build_parser
from craftmatch.core.environment import AgentConfig
from craftmatch.services.matching import SeekerMatchingAgent

from factories import make_provider, make_seeker


def _make_app(**state_overrides) -> FastAPI:
    """Create a test app backed by an in-memory gateway."""
    app = FastAPI()
    app.add_middleware(LatencyMiddleware)
    app.include_router(router)

    gateway = state_overrides.get("gateway") or PersistenceGateway(durable=None)
    agent = state_overrides.get("agent") or SeekerMatchingAgent(
        gateway=gateway,
        config=AgentConfig(batch_size=2),
        rng=random.Random(0),
    )
    app.state.gateway = gateway
    app.state.agent = agent
    return app


@pytest.fixture
def client():
    return TestClient(_make_app())


@pytest.fixture
def seeded_client(client):
    """Client with the Fez seeker and potter already registered."""
    assert client.post("/seekers", json=make_seeker().to_dict()).status_code == 201
    assert client.post("/providers", json=make_provider().to_dict()).status_code == 201
    return client


class TestHealthEndpoint:
    def test_degraded_store_still_serves(self, client):
        resp = client.get("/health")
        assert resp.status_code == 200
        data = resp.json()
        assert data["status"] == "degraded"
        assert data["store"] == "degraded"
        assert data["policy_version"] == 1
        assert data["providers"] == 0

    def test_healthy_when_durable(self):
        gateway = MagicMock()
        gateway.degraded = False
        gateway.state = ConnectionState.DURABLE
        agent = MagicMock(policy_version=4, providers=[])
        resp = TestClient(_make_app(gateway=gateway, agent=agent)).get("/health")
        data = resp.json()
        assert data["status"] == "healthy"
        assert data["store"] == "durable"
        assert data["policy_version"] == 4


class TestProfileEndpoints:
    def test_create_seeker(self, client):
        resp = client.post("/seekers", json={
            "seeker_id": "S7",
            "preferences": {"crafts": ["pottery"], "experience_types": ["hands-on-workshop"]},
            "budget": {"max": 300},
        })
        assert resp.status_code == 201
        assert resp.json() == {"seeker_id": "S7"}

    def test_bad_enum_is_422(self, client):
        resp = client.post("/seekers", json={
            "seeker_id": "S7",
            "preferences": {"cultural_depth": "bottomless"},
        })
        assert resp.status_code == 422
        assert "bottomless" in resp.json()["error"]

    def test_invalid_provider_is_422(self, client):
        data = make_provider().to_dict()
        data["availability"]["capacity"] = 0
        resp = client.post("/providers", json=data)
        assert resp.status_code == 422
        assert "capacity" in resp.json()["error"]

    def test_string_bool_is_422(self, client):
        data = make_provider().to_dict()
        data["cultural_knowledge"]["traditions"] = [{"topic": "zellige", "verified": "false"}]
        resp = client.post("/providers", json=data)
        assert resp.status_code == 422
        assert "verified" in resp.json()["error"]
        assert client.get("/health").json()["providers"] == 0

    def test_fractional_capacity_is_422(self, client):
        data = make_provider().to_dict()
        data["availability"]["capacity"] = 1.9
        resp = client.post("/providers", json=data)
        assert resp.status_code == 422
        assert "capacity" in resp.json()["error"]

    def test_create_provider(self, client):
        resp = client.post("/providers", json=make_provider("P5").to_dict())
        assert resp.status_code == 201
        assert client.get("/health").json()["providers"] == 1


class TestRecommendationEndpoints:
    def test_recommendations(self, seeded_client):
        resp = seeded_client.get("/recommendations/S1")
        assert resp.status_code == 200
        data = resp.json()
        assert data["seeker_id"] == "S1"
        (item,) = data["recommendations"]
        assert item["rank"] == 1
        assert item["provider_id"] == "P1"
        assert item["confidence"] == pytest.approx(0.95)
        assert item["experience_type"] == "hands-on-workshop"
        assert item["price"] == 450.0
        assert "Perfect craft match" in item["reasoning"]

    def test_unknown_seeker_is_empty(self, client):
        resp = client.get("/recommendations/nobody")
        assert resp.status_code == 200
        assert resp.json()["recommendations"] == []

    def test_interaction(self, seeded_client):
        item = seeded_client.get("/recommendations/S1").json()["recommendations"][0]
        resp = seeded_client.post(
            f"/recommendations/{item['recommendation_id']}/interactions",
            json={"kind": "complete", "rating": 0.8},
        )
        assert resp.status_code == 200
        data = resp.json()
        assert data["completed"] is True
        assert data["rating"] == 0.8

    def test_interaction_bad_kind(self, seeded_client):
        resp = seeded_client.post("/recommendations/rec_x/interactions", json={"kind": "share"})
        assert resp.status_code == 422

    def test_interaction_unknown_recommendation(self, seeded_client):
        resp = seeded_client.post("/recommendations/rec_x/interactions", json={"kind": "click"})
        assert resp.status_code == 422
        assert "rec_x" in resp.json()["error"]

    def test_backend_failure_is_503(self):
        agent = MagicMock()
        agent.record_interaction.return_value = OperationResult.failed("connection refused")
        client = TestClient(_make_app(agent=agent))
        resp = client.post("/recommendations/rec_x/interactions", json={"kind": "click"})
        assert resp.status_code == 503
        assert "unavailable" in resp.json()["error"]


class TestOutcomeAndBookingEndpoints:
    def test_outcome(self, seeded_client):
        resp = seeded_client.post("/outcomes", json={
            "seeker_id": "S1",
            "provider_id": "P1",
            "satisfaction": 0.9,
            "cultural_learning": 0.8,
            "economic_impact": 0.7,
        })
        assert resp.status_code == 201
        assert resp.json()["satisfaction"] == 0.9

    def test_outcome_out_of_range(self, seeded_client):
        resp = seeded_client.post("/outcomes", json={
            "seeker_id": "S1",
            "provider_id": "P1",
            "satisfaction": 1.9,
            "cultural_learning": 0.8,
            "economic_impact": 0.7,
        })
        assert resp.status_code == 422

    def test_booking_learns(self, seeded_client):
        body = {"seeker_id": "S1", "provider_id": "P1", "satisfaction": 0.9}
        first = seeded_client.post("/bookings", json=body)
        assert first.status_code == 200
        assert 0.0 <= first.json()["reward"] <= 1.0
        assert first.json()["policy_version"] == 1

        second = seeded_client.post("/bookings", json={**body, "date": "2026-05-01T10:00:00"})
        assert second.json()["policy_version"] == 2

        policy = seeded_client.get("/policy").json()
        assert policy["agent_type"] == "seeker-matching"
        assert policy["policy"]["version"] == 2
        assert policy["performance"]["experience_count"] == 2

    def test_rejected_booking_is_422(self):
        agent = MagicMock()
        agent.record_booking.return_value = None
        client = TestClient(_make_app(agent=agent))
        resp = client.post("/bookings", json={"seeker_id": "S1", "provider_id": "P1", "satisfaction": 0.5})
        assert resp.status_code == 422


class TestMetricsEndpoint:
    def test_exposes_prometheus_text(self, seeded_client):
        seeded_client.get("/recommendations/S1")
        resp = seeded_client.get("/metrics")
        assert resp.status_code == 200
        assert "craftmatch_requests_total" in resp.text
        assert "craftmatch_recommendations_served_total" in resp.text


class TestMiddleware:
    def test_headers(self, client):
        resp = client.get("/health")
        assert "x-request-id" in resp.headers
        assert float(resp.headers["x-response-time-ms"]) >= 0.0

    @pytest.mark.parametrize(
        "path,label",
        [
            ("/health", "/health"),
            ("/recommendations/S1", "/recommendations/{seeker_id}"),
            ("/recommendations/rec_1/interactions", "/recommendations/{id}/interactions"),
            ("/recommendations/S1/", "/recommendations/{seeker_id}"),
            ("/wp-admin", "unknown"),
        ],
    )
    def test_normalize_path(self, path, label):
        assert _normalize_path(path) == label


class TestAppFactory:
    def test_lifespan_without_store_url(self, monkeypatch):
        monkeypatch.setattr("craftmatch.adapters.gateway.STORE_URL", None)
        with TestClient(create_app()) as client:
            data = client.get("/health").json()
        assert data["store"] == "degraded"

    def test_in_memory_app_skips_store(self, monkeypatch):
        monkeypatch.setattr("craftmatch.adapters.gateway.STORE_URL", "http://qdrant.invalid:6333")
        with TestClient(create_app(use_store=False)) as client:
            data = client.get("/health").json()
        assert data["store"] == "degraded"
        assert data["policy_version"] == 1


class TestRunParser:
    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("PORT", raising=False)
        args = build_parser().parse_args([])
        assert args.port == 8000
        assert args.in_memory is False
        assert args.log_level == "info"

    def test_in_memory_flag(self):
        args = build_parser().parse_args(["--in-memory", "--port", "9000"])
        assert args.in_memory is True
        assert args.port == 9000

    def test_rejects_unknown_log_level(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["--log-level", "verbose"])
