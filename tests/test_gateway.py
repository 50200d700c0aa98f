"""Tests for craftmatch.adapters.gateway — typed CRUD and sticky degraded mode."""

import dataclasses
from datetime import timedelta
from unittest.mock import MagicMock, patch

import pytest

from craftmatch.adapters.gateway import ConnectionState, OperationResult, PersistenceGateway
from craftmatch.adapters.store import RecordStore
from craftmatch.core.models import (
    AgentPerformance,
    AgentType,
    Availability,
    Budget,
    InteractionKind,
    MatchingRecord,
    Policy,
    Recommendation,
    utcnow,
)

from factories import make_experience, make_provider, make_seeker


def _failing_client(**side_effects) -> MagicMock:
    """Qdrant client mock whose connectivity check succeeds but whose writes fail."""
    client = MagicMock()
    client.collection_exists.return_value = True
    client.upsert.side_effect = side_effects.get(
        "upsert", ValueError('relation "seeker_profiles" does not exist')
    )
    for name, effect in side_effects.items():
        getattr(client, name).side_effect = effect
    return client


def _recommendation(seeker_id="S1", provider_id="P1", confidence=0.9, **kwargs) -> Recommendation:
    return Recommendation(
        seeker_id=seeker_id,
        provider_id=provider_id,
        confidence=confidence,
        cultural_score=kwargs.pop("cultural_score", 0.8),
        economic_score=kwargs.pop("economic_score", 0.7),
        reasoning="test",
        expires_at=kwargs.pop("expires_at", utcnow() + timedelta(hours=24)),
        **kwargs,
    )


class TestOperationResult:
    def test_ok(self):
        result = OperationResult.ok(3)
        assert result.success and result.data == 3 and result.error is None

    def test_invalid(self):
        result = OperationResult.invalid("bad")
        assert not result.success
        assert result.error_kind == "validation"

    def test_failed(self):
        assert OperationResult.failed("down").error_kind == "backend"


class TestConnectionState:
    def test_no_durable_store_starts_degraded(self, memory_gateway):
        assert memory_gateway.state is ConnectionState.DEGRADED
        assert memory_gateway.degraded

    def test_reachable_store_starts_durable(self):
        client = MagicMock()
        gateway = PersistenceGateway(durable=RecordStore(client))
        assert gateway.state is ConnectionState.DURABLE
        client.get_collections.assert_called_once()

    def test_unreachable_store_starts_degraded(self):
        client = MagicMock()
        client.get_collections.side_effect = ConnectionError("refused")
        gateway = PersistenceGateway(durable=RecordStore(client))
        assert gateway.degraded

    def test_from_config_without_url(self, monkeypatch):
        monkeypatch.setattr("craftmatch.adapters.gateway.STORE_URL", None)
        assert PersistenceGateway.from_config().degraded

    def test_backend_error_degrades_and_retries(self):
        client = _failing_client()
        gateway = PersistenceGateway(durable=RecordStore(client))
        seeker = make_seeker()

        result = gateway.create_seeker_profile(seeker)

        assert result.success
        assert result.data == seeker
        assert gateway.state is ConnectionState.DEGRADED
        assert gateway.get_seeker_profile("S1").data == seeker

    def test_durable_store_never_used_again(self):
        client = _failing_client()
        gateway = PersistenceGateway(durable=RecordStore(client))

        gateway.create_seeker_profile(make_seeker())
        gateway.create_provider_profile(make_provider())
        gateway.get_seeker_profile("S1")
        gateway.list_provider_profiles()

        assert client.get_collections.call_count == 1
        assert client.upsert.call_count == 1
        client.retrieve.assert_not_called()
        client.scroll.assert_not_called()

    def test_flips_exactly_once(self, caplog):
        client = _failing_client(retrieve=TimeoutError("timed out"))
        gateway = PersistenceGateway(durable=RecordStore(client))

        with patch("craftmatch.adapters.gateway.record_gateway_event") as event:
            gateway.get_seeker_profile("S1")
            gateway.create_seeker_profile(make_seeker())
            gateway.get_seeker_profile("S1")

        degraded = [c for c in event.call_args_list if c.args == ("degraded",)]
        assert len(degraded) == 1
        assert caplog.text.count("switching to in-memory store") == 1

    def test_read_failure_retries_in_memory(self):
        client = _failing_client(retrieve=ValueError('relation "seeker_profiles" does not exist'))
        gateway = PersistenceGateway(durable=RecordStore(client))
        result = gateway.get_seeker_profile("S1")
        assert result.success
        assert result.data is None
        assert gateway.degraded

    def test_validation_error_does_not_degrade(self):
        client = _failing_client()
        gateway = PersistenceGateway(durable=RecordStore(client))
        bad = make_provider(availability=Availability(capacity=0))

        result = gateway.create_provider_profile(bad)

        assert not result.success
        assert result.error_kind == "validation"
        assert "capacity" in result.error
        assert gateway.state is ConnectionState.DURABLE
        client.upsert.assert_not_called()

    def test_memory_failure_reported_as_backend(self):
        memory = MagicMock()
        memory.get.side_effect = RuntimeError("boom")
        gateway = PersistenceGateway(durable=None, memory=memory)
        result = gateway.get_seeker_profile("S1")
        assert not result.success
        assert result.error_kind == "backend"


class TestProfiles:
    def test_seeker_round_trip(self, durable_gateway, seeker):
        assert durable_gateway.create_seeker_profile(seeker).success
        assert durable_gateway.get_seeker_profile(seeker.seeker_id).data == seeker

    def test_unknown_seeker_is_none(self, durable_gateway):
        result = durable_gateway.get_seeker_profile("nobody")
        assert result.success
        assert result.data is None

    def test_update_supersedes(self, durable_gateway, seeker):
        durable_gateway.create_seeker_profile(seeker)
        updated = make_seeker(crafts=["weaving"])
        durable_gateway.update_seeker_profile(updated)
        stored = durable_gateway.get_seeker_profile("S1").data
        assert stored.preferences.crafts == ["weaving"]

    def test_invalid_budget_rejected(self, durable_gateway):
        result = durable_gateway.create_seeker_profile(make_seeker(budget=Budget(min=200, max=100)))
        assert result.error_kind == "validation"

    def test_list_providers_filtered(self, durable_gateway):
        durable_gateway.create_provider_profile(make_provider("P2"))
        durable_gateway.create_provider_profile(make_provider("P1"))
        durable_gateway.create_provider_profile(make_provider("P3", craft="weaving"))

        all_ids = [p.provider_id for p in durable_gateway.list_provider_profiles().data]
        assert all_ids == ["P1", "P2", "P3"]

        pottery = durable_gateway.list_provider_profiles(craft="pottery").data
        assert [p.provider_id for p in pottery] == ["P1", "P2"]

        assert durable_gateway.get_provider_profile("P3").data.craft == "weaving"


class TestExperiences:
    def test_record_and_fetch(self, durable_gateway):
        exp = make_experience()
        assert durable_gateway.record_experience(exp).success
        stored = durable_gateway.get_experiences(AgentType.SEEKER_MATCHING).data
        assert [e.experience_id for e in stored] == [exp.experience_id]
        assert stored[0].reward == exp.reward

    def test_tampered_reward_rejected(self, durable_gateway):
        exp = make_experience()
        result = durable_gateway.record_experience(dataclasses.replace(exp, reward=0.0))
        assert result.error_kind == "validation"
        assert durable_gateway.get_experiences(AgentType.SEEKER_MATCHING).data == []

    def test_most_recent_oldest_first(self, durable_gateway):
        start = utcnow()
        experiences = [
            make_experience(recorded_at=start + timedelta(seconds=i)) for i in range(5)
        ]
        for exp in reversed(experiences):
            durable_gateway.record_experience(exp)

        stored = durable_gateway.get_experiences(AgentType.SEEKER_MATCHING, limit=3).data
        assert [e.experience_id for e in stored] == [e.experience_id for e in experiences[2:]]

    def test_filtered_by_agent_type(self, durable_gateway):
        durable_gateway.record_experience(make_experience(agent_type=AgentType.CONTENT_CREATION))
        assert durable_gateway.get_experiences(AgentType.SEEKER_MATCHING).data == []


class TestRecommendations:
    def test_unknown_seeker_save_is_validation_error(self, durable_gateway):
        result = durable_gateway.save_recommendation(_recommendation())
        assert result.error_kind == "validation"
        assert durable_gateway.state is ConnectionState.DURABLE

    def test_unknown_seeker_lookup_is_empty(self, durable_gateway):
        result = durable_gateway.get_recommendations("nobody")
        assert result.success
        assert result.data == []

    def test_sorted_and_limited(self, durable_gateway, seeker):
        durable_gateway.create_seeker_profile(seeker)
        for i in range(7):
            durable_gateway.save_recommendation(
                _recommendation(provider_id=f"P{i}", confidence=0.6 + i * 0.05)
            )
        recs = durable_gateway.get_recommendations("S1", limit=5).data
        assert len(recs) == 5
        assert [r.provider_id for r in recs] == ["P6", "P5", "P4", "P3", "P2"]

    def test_expired_filtered(self, durable_gateway, seeker):
        durable_gateway.create_seeker_profile(seeker)
        rec = _recommendation(expires_at=utcnow() + timedelta(hours=1))
        durable_gateway.save_recommendation(rec)

        assert len(durable_gateway.get_recommendations("S1").data) == 1
        later = utcnow() + timedelta(hours=2)
        assert durable_gateway.get_recommendations("S1", now=later).data == []

    def test_invalid_expiry_rejected(self, durable_gateway, seeker):
        durable_gateway.create_seeker_profile(seeker)
        rec = _recommendation()
        rec.expires_at = rec.created_at
        assert durable_gateway.save_recommendation(rec).error_kind == "validation"


class TestInteractions:
    @pytest.fixture
    def saved(self, durable_gateway, seeker):
        durable_gateway.create_seeker_profile(seeker)
        rec = _recommendation()
        durable_gateway.save_recommendation(rec)
        return rec

    def test_click(self, durable_gateway, saved):
        result = durable_gateway.record_interaction(saved.recommendation_id, "click")
        assert result.success
        stored = durable_gateway.get_recommendation(saved.recommendation_id).data
        assert stored.presented and stored.clicked
        assert not stored.booked

    def test_complete_with_rating(self, durable_gateway, saved):
        durable_gateway.record_interaction(saved.recommendation_id, InteractionKind.BOOK)
        durable_gateway.record_interaction(saved.recommendation_id, "complete", rating=0.9)
        stored = durable_gateway.get_recommendation(saved.recommendation_id).data
        assert stored.booked and stored.completed
        assert stored.rating == 0.9

    def test_unknown_kind(self, durable_gateway, saved):
        result = durable_gateway.record_interaction(saved.recommendation_id, "share")
        assert result.error_kind == "validation"

    def test_rating_out_of_range(self, durable_gateway, saved):
        result = durable_gateway.record_interaction(saved.recommendation_id, "complete", 4.0)
        assert result.error_kind == "validation"

    def test_unknown_recommendation(self, durable_gateway):
        result = durable_gateway.record_interaction("rec_missing", "click")
        assert result.error_kind == "validation"
        assert durable_gateway.state is ConnectionState.DURABLE


class TestMatchingRecords:
    def test_save_and_filter(self, durable_gateway):
        for provider_id in ("P1", "P2"):
            durable_gateway.save_matching_record(MatchingRecord(
                seeker_id="S1",
                provider_id=provider_id,
                satisfaction=0.8,
                cultural_learning=0.7,
                economic_impact=0.6,
            ))
        assert len(durable_gateway.get_matching_records("S1").data) == 2
        only_p2 = durable_gateway.get_matching_records("S1", provider_id="P2").data
        assert [r.provider_id for r in only_p2] == ["P2"]

    def test_out_of_range_rejected(self, durable_gateway):
        record = MatchingRecord(
            seeker_id="S1",
            provider_id="P1",
            satisfaction=1.2,
            cultural_learning=0.7,
            economic_impact=0.6,
        )
        assert durable_gateway.save_matching_record(record).error_kind == "validation"


class TestPolicies:
    def test_latest_version_wins(self, durable_gateway):
        for version in (1, 3, 2):
            policy = Policy(weights={"cultural": 0.4}, thresholds={}, version=version)
            durable_gateway.save_policy(policy, AgentType.SEEKER_MATCHING)
        latest = durable_gateway.get_latest_policy(AgentType.SEEKER_MATCHING).data
        assert latest.version == 3

    def test_no_policy(self, durable_gateway):
        assert durable_gateway.get_latest_policy(AgentType.SEEKER_MATCHING).data is None

    def test_negative_weight_rejected(self, durable_gateway):
        policy = Policy(weights={"cultural": -0.1}, thresholds={})
        result = durable_gateway.save_policy(policy, AgentType.SEEKER_MATCHING)
        assert result.error_kind == "validation"

    def test_agent_performance_overwritten(self, durable_gateway):
        for version in (1, 2):
            durable_gateway.update_agent_performance(AgentPerformance(
                agent_type=AgentType.SEEKER_MATCHING,
                experience_count=10 * version,
                cultural_score=0.9,
                economic_score=0.6,
                satisfaction_score=0.3,
                policy_version=version,
                learning_rate=0.01,
                exploration_rate=0.1,
            ))
        perf = durable_gateway.get_agent_performance(AgentType.SEEKER_MATCHING).data
        assert perf.policy_version == 2
        assert perf.overall_performance == pytest.approx(0.6)
