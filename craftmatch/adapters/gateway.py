"""
Persistence gateway with sticky degraded-mode fallback.

Every operation returns an ``OperationResult`` instead of raising:

- Input errors (malformed records, unknown references) come back with
  ``error_kind="validation"`` and never affect the connection state.
- Backend errors (missing collections, auth, timeouts, anything the client
  raises) are caught here. The first one flips the gateway from DURABLE to
  DEGRADED and the same operation is retried once against an in-process
  store with the same collections and keys. A degraded gateway never goes
  back to the durable store.

All writes are keyed upserts, so retrying one is safe.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Generic, TypeVar

from craftmatch.adapters.store import RecordKind, RecordStore, get_client, memory_client
from craftmatch.api.metrics import record_gateway_event
from craftmatch.config import (
    COLLECTION_PREFIX,
    STORE_AUTO_CREATE,
    STORE_URL,
    get_logger,
)
from craftmatch.core.errors import RecordValidationError
from craftmatch.core.models import (
    AgentPerformance,
    AgentType,
    Experience,
    InteractionKind,
    MatchingRecord,
    Policy,
    ProviderProfile,
    Recommendation,
    SeekerProfile,
    parse_enum,
    utcnow,
)
from craftmatch.core.reward import RewardFunction
from craftmatch.core.validation import (
    validate_experience,
    validate_matching_record,
    validate_policy,
    validate_provider_profile,
    validate_recommendation,
    validate_seeker_profile,
)

logger = get_logger(__name__)

T = TypeVar("T")


class ConnectionState(Enum):
    DURABLE = "durable"
    DEGRADED = "degraded"


@dataclass
class OperationResult(Generic[T]):
    """Outcome of one gateway call."""

    success: bool
    data: T | None = None
    error: str | None = None
    error_kind: str | None = None  # "validation" or "backend"

    @classmethod
    def ok(cls, data: T | None = None) -> OperationResult[T]:
        return cls(success=True, data=data)

    @classmethod
    def invalid(cls, error: str) -> OperationResult[T]:
        return cls(success=False, error=error, error_kind="validation")

    @classmethod
    def failed(cls, error: str) -> OperationResult[T]:
        return cls(success=False, error=error, error_kind="backend")


def _experience_vector(exp: Experience) -> list[float]:
    return [
        exp.reward,
        exp.cultural_validation.score,
        exp.economic_outcome.sustainability_impact,
        exp.next_state.engagement.satisfaction,
        1.0 if exp.cultural_validation.expert_approval else 0.0,
    ]


def _recommendation_vector(rec: Recommendation) -> list[float]:
    return [rec.confidence, rec.cultural_score, rec.economic_score]


class PersistenceGateway:
    """
    Typed CRUD over the record store.

    Args:
        durable: Store backed by the remote Qdrant deployment, or None to
            start degraded.
        memory: In-process fallback store. Created on first use if omitted.
        state: Force the starting state and skip the startup connectivity check.
        reward_fn: Used to re-check cached rewards on experiences.
    """

    def __init__(
        self,
        durable: RecordStore | None = None,
        memory: RecordStore | None = None,
        state: ConnectionState | None = None,
        reward_fn: RewardFunction | None = None,
    ):
        self._durable = durable
        self._memory = memory
        self._lock = threading.RLock()
        self.reward_fn = reward_fn or RewardFunction()

        if durable is None:
            self._state = ConnectionState.DEGRADED
            logger.warning("No durable store configured; starting in degraded mode")
        elif state is not None:
            self._state = state
        else:
            self._state = self._check_connection(durable)

    @classmethod
    def from_config(cls) -> PersistenceGateway:
        """Build a gateway from the package configuration."""
        durable = None
        if STORE_URL:
            durable = RecordStore(
                get_client(),
                prefix=COLLECTION_PREFIX,
                auto_create=STORE_AUTO_CREATE,
                create_indexes=True,
            )
        return cls(durable=durable)

    @staticmethod
    def _check_connection(store: RecordStore) -> ConnectionState:
        try:
            store.ping()
        except Exception:
            logger.warning("Durable store unreachable at startup; starting in degraded mode", exc_info=True)
            record_gateway_event("degraded")
            return ConnectionState.DEGRADED
        logger.info("Durable store reachable")
        return ConnectionState.DURABLE

    # ------------------------------------------------------------------
    # Connection state
    # ------------------------------------------------------------------

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def degraded(self) -> bool:
        return self._state is ConnectionState.DEGRADED

    def _memory_store(self) -> RecordStore:
        with self._lock:
            if self._memory is None:
                prefix = self._durable.prefix if self._durable else COLLECTION_PREFIX
                self._memory = RecordStore(memory_client(), prefix=prefix)
            return self._memory

    def _active_store(self) -> tuple[ConnectionState, RecordStore]:
        with self._lock:
            if self._state is ConnectionState.DURABLE:
                return self._state, self._durable
        return ConnectionState.DEGRADED, self._memory_store()

    def _degrade(self, operation: str, error: Exception) -> None:
        with self._lock:
            if self._state is ConnectionState.DEGRADED:
                return
            self._state = ConnectionState.DEGRADED
        logger.warning(
            "Durable store failed during %s (%s); switching to in-memory store",
            operation,
            error,
            exc_info=error,
        )
        record_gateway_event("degraded")

    def _run(self, operation: str, fn: Callable[[RecordStore], T]) -> OperationResult[T]:
        state, store = self._active_store()
        try:
            return OperationResult.ok(fn(store))
        except RecordValidationError as e:
            record_gateway_event("validation_error")
            return OperationResult.invalid(str(e))
        except Exception as e:
            if state is ConnectionState.DEGRADED:
                logger.exception("In-memory store failed during %s", operation)
                record_gateway_event("backend_error")
                return OperationResult.failed(str(e))
            self._degrade(operation, e)

        logger.warning("Retrying %s against in-memory store", operation)
        try:
            return OperationResult.ok(fn(self._memory_store()))
        except RecordValidationError as e:
            record_gateway_event("validation_error")
            return OperationResult.invalid(str(e))
        except Exception as e:
            logger.exception("Retry of %s failed", operation)
            record_gateway_event("backend_error")
            return OperationResult.failed(str(e))

    @staticmethod
    def _check(validator: Callable[..., None], *args: Any) -> str | None:
        try:
            validator(*args)
        except RecordValidationError as e:
            record_gateway_event("validation_error")
            return str(e)
        return None

    # ------------------------------------------------------------------
    # Seeker profiles
    # ------------------------------------------------------------------

    def create_seeker_profile(self, profile: SeekerProfile) -> OperationResult[SeekerProfile]:
        if error := self._check(validate_seeker_profile, profile):
            return OperationResult.invalid(error)

        def write(store: RecordStore) -> SeekerProfile:
            store.put(RecordKind.SEEKER_PROFILE, profile.seeker_id, profile.to_dict())
            return profile

        return self._run("create_seeker_profile", write)

    def update_seeker_profile(self, profile: SeekerProfile) -> OperationResult[SeekerProfile]:
        """Supersede the stored profile. Profiles are never deleted."""
        if error := self._check(validate_seeker_profile, profile):
            return OperationResult.invalid(error)

        def write(store: RecordStore) -> SeekerProfile:
            store.put(RecordKind.SEEKER_PROFILE, profile.seeker_id, profile.to_dict())
            return profile

        return self._run("update_seeker_profile", write)

    def get_seeker_profile(self, seeker_id: str) -> OperationResult[SeekerProfile | None]:
        def read(store: RecordStore) -> SeekerProfile | None:
            data = store.get(RecordKind.SEEKER_PROFILE, seeker_id)
            return SeekerProfile.from_dict(data) if data else None

        return self._run("get_seeker_profile", read)

    # ------------------------------------------------------------------
    # Provider profiles
    # ------------------------------------------------------------------

    def create_provider_profile(self, profile: ProviderProfile) -> OperationResult[ProviderProfile]:
        if error := self._check(validate_provider_profile, profile):
            return OperationResult.invalid(error)

        def write(store: RecordStore) -> ProviderProfile:
            store.put(
                RecordKind.PROVIDER_PROFILE,
                profile.provider_id,
                profile.to_dict(),
                index={"craft": profile.craft, "region": profile.region},
            )
            return profile

        return self._run("create_provider_profile", write)

    def get_provider_profile(self, provider_id: str) -> OperationResult[ProviderProfile | None]:
        def read(store: RecordStore) -> ProviderProfile | None:
            data = store.get(RecordKind.PROVIDER_PROFILE, provider_id)
            return ProviderProfile.from_dict(data) if data else None

        return self._run("get_provider_profile", read)

    def list_provider_profiles(self, **match: str) -> OperationResult[list[ProviderProfile]]:
        """All providers, optionally filtered by ``craft`` and/or ``region``."""

        def read(store: RecordStore) -> list[ProviderProfile]:
            profiles = [
                ProviderProfile.from_dict(d)
                for d in store.find(RecordKind.PROVIDER_PROFILE, **match)
            ]
            return sorted(profiles, key=lambda p: p.provider_id)

        return self._run("list_provider_profiles", read)

    # ------------------------------------------------------------------
    # Experiences
    # ------------------------------------------------------------------

    def record_experience(self, experience: Experience) -> OperationResult[Experience]:
        """Store an experience after re-checking its cached reward."""
        if error := self._check(validate_experience, experience, self.reward_fn):
            return OperationResult.invalid(error)

        def write(store: RecordStore) -> Experience:
            store.put(
                RecordKind.EXPERIENCE,
                experience.experience_id,
                experience.to_dict(),
                index={"agent_type": experience.agent_type.value},
                vector=_experience_vector(experience),
            )
            return experience

        return self._run("record_experience", write)

    def get_experiences(
        self, agent_type: AgentType, limit: int | None = 50
    ) -> OperationResult[list[Experience]]:
        """The most recent experiences for ``agent_type``, oldest first."""

        def read(store: RecordStore) -> list[Experience]:
            experiences = [
                Experience.from_dict(d)
                for d in store.find(RecordKind.EXPERIENCE, agent_type=agent_type.value)
            ]
            experiences.sort(key=lambda e: e.recorded_at)
            if limit is not None:
                experiences = experiences[-limit:] if limit > 0 else []
            return experiences

        return self._run("get_experiences", read)

    # ------------------------------------------------------------------
    # Recommendations
    # ------------------------------------------------------------------

    def save_recommendation(self, rec: Recommendation) -> OperationResult[Recommendation]:
        """Persist a recommendation. The seeker must already be stored."""
        if error := self._check(validate_recommendation, rec):
            return OperationResult.invalid(error)

        def write(store: RecordStore) -> Recommendation:
            if store.get(RecordKind.SEEKER_PROFILE, rec.seeker_id) is None:
                raise RecordValidationError(
                    f"unknown seeker '{rec.seeker_id}'", field="seeker_id"
                )
            store.put(
                RecordKind.RECOMMENDATION,
                rec.recommendation_id,
                rec.to_dict(),
                index={"seeker_id": rec.seeker_id},
                vector=_recommendation_vector(rec),
            )
            return rec

        return self._run("save_recommendation", write)

    def get_recommendations(
        self,
        seeker_id: str,
        limit: int = 5,
        now: datetime | None = None,
    ) -> OperationResult[list[Recommendation]]:
        """
        Unexpired recommendations for a seeker, best first.

        A seeker with no stored profile yields an empty, successful result.
        """

        def read(store: RecordStore) -> list[Recommendation]:
            if store.get(RecordKind.SEEKER_PROFILE, seeker_id) is None:
                return []
            at = now or utcnow()
            recs = [
                Recommendation.from_dict(d)
                for d in store.find(RecordKind.RECOMMENDATION, seeker_id=seeker_id)
            ]
            live = [r for r in recs if not r.is_expired(at)]
            live.sort(key=lambda r: r.overall_score, reverse=True)
            return live[:limit]

        return self._run("get_recommendations", read)

    def get_recommendation(self, recommendation_id: str) -> OperationResult[Recommendation | None]:
        def read(store: RecordStore) -> Recommendation | None:
            data = store.get(RecordKind.RECOMMENDATION, recommendation_id)
            return Recommendation.from_dict(data) if data else None

        return self._run("get_recommendation", read)

    def record_interaction(
        self,
        recommendation_id: str,
        kind: InteractionKind | str,
        rating: float | None = None,
    ) -> OperationResult[Recommendation]:
        """Mark a recommendation clicked, booked or completed."""
        try:
            kind = parse_enum(InteractionKind, kind, "kind")
            if rating is not None and not 0.0 <= rating <= 1.0:
                raise RecordValidationError(f"rating must be in [0, 1], got {rating!r}", field="rating")
        except RecordValidationError as e:
            record_gateway_event("validation_error")
            return OperationResult.invalid(str(e))

        def write(store: RecordStore) -> Recommendation:
            data = store.get(RecordKind.RECOMMENDATION, recommendation_id)
            if data is None:
                raise RecordValidationError(
                    f"unknown recommendation '{recommendation_id}'", field="recommendation_id"
                )
            rec = Recommendation.from_dict(data)
            rec.presented = True
            if kind is InteractionKind.CLICK:
                rec.clicked = True
            elif kind is InteractionKind.BOOK:
                rec.booked = True
            else:
                rec.completed = True
            if rating is not None:
                rec.rating = rating
            store.put(
                RecordKind.RECOMMENDATION,
                rec.recommendation_id,
                rec.to_dict(),
                index={"seeker_id": rec.seeker_id},
                vector=_recommendation_vector(rec),
            )
            return rec

        return self._run("record_interaction", write)

    # ------------------------------------------------------------------
    # Matching records
    # ------------------------------------------------------------------

    def save_matching_record(self, record: MatchingRecord) -> OperationResult[MatchingRecord]:
        if error := self._check(validate_matching_record, record):
            return OperationResult.invalid(error)

        def write(store: RecordStore) -> MatchingRecord:
            store.put(
                RecordKind.MATCHING_RECORD,
                record.record_id,
                record.to_dict(),
                index={"seeker_id": record.seeker_id, "provider_id": record.provider_id},
            )
            return record

        return self._run("save_matching_record", write)

    def get_matching_records(
        self, seeker_id: str, provider_id: str | None = None
    ) -> OperationResult[list[MatchingRecord]]:
        match = {"seeker_id": seeker_id}
        if provider_id is not None:
            match["provider_id"] = provider_id

        def read(store: RecordStore) -> list[MatchingRecord]:
            records = [
                MatchingRecord.from_dict(d)
                for d in store.find(RecordKind.MATCHING_RECORD, **match)
            ]
            return sorted(records, key=lambda r: r.timestamp)

        return self._run("get_matching_records", read)

    # ------------------------------------------------------------------
    # Policy snapshots and agent performance
    # ------------------------------------------------------------------

    def save_policy(self, policy: Policy, agent_type: AgentType) -> OperationResult[Policy]:
        """Archive a policy version under ``(agent_type, version)``."""
        if error := self._check(validate_policy, policy):
            return OperationResult.invalid(error)

        def write(store: RecordStore) -> Policy:
            store.put(
                RecordKind.POLICY_SNAPSHOT,
                f"{agent_type.value}:{policy.version}",
                policy.to_dict(),
                index={"agent_type": agent_type.value},
            )
            return policy

        return self._run("save_policy", write)

    def get_latest_policy(self, agent_type: AgentType) -> OperationResult[Policy | None]:
        def read(store: RecordStore) -> Policy | None:
            policies = [
                Policy.from_dict(d)
                for d in store.find(RecordKind.POLICY_SNAPSHOT, agent_type=agent_type.value)
            ]
            if not policies:
                return None
            return max(policies, key=lambda p: p.version)

        return self._run("get_latest_policy", read)

    def update_agent_performance(
        self, performance: AgentPerformance
    ) -> OperationResult[AgentPerformance]:
        def write(store: RecordStore) -> AgentPerformance:
            store.put(
                RecordKind.AGENT_PERFORMANCE,
                performance.agent_type.value,
                performance.to_dict(),
                index={"agent_type": performance.agent_type.value},
            )
            return performance

        return self._run("update_agent_performance", write)

    def get_agent_performance(
        self, agent_type: AgentType
    ) -> OperationResult[AgentPerformance | None]:
        def read(store: RecordStore) -> AgentPerformance | None:
            data = store.get(RecordKind.AGENT_PERFORMANCE, agent_type.value)
            return AgentPerformance.from_dict(data) if data else None

        return self._run("get_agent_performance", read)
