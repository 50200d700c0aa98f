"""
Seeker matching agent.

Concrete policy agent that pairs seekers with providers. Recommendations
are served from the store while they are fresh; otherwise every known
provider is scored against the seeker with a snapshot of the current
policy, and the survivors are persisted and returned.

Completed bookings flow back in as experiences and drive the batched
policy update inherited from ``BasePolicyAgent``.
"""

from __future__ import annotations

import threading
from collections.abc import Sequence

from craftmatch.adapters.gateway import OperationResult, PersistenceGateway
from craftmatch.api.metrics import observe_recommendation_duration, record_recommendation_event
from craftmatch.config import BOOTSTRAP_EXPERIENCE_LIMIT, get_logger
from craftmatch.core.environment import default_state
from craftmatch.core.errors import IncompleteStateError, RecordValidationError
from craftmatch.core.models import (
    Action,
    ActionType,
    AgentType,
    BookingEvent,
    CulturalValidation,
    EconomicOutcome,
    EngagementMetrics,
    Experience,
    InteractionKind,
    MatchingRecord,
    ProviderProfile,
    Recommendation,
    SeekerProfile,
    State,
)
from craftmatch.core.scoring import (
    CandidateSettings,
    cultural_score,
    economic_score,
    match_score,
    rank_candidates,
    select_experience_type,
)
from craftmatch.core.validation import validate_matching_record
from craftmatch.services.agent import BasePolicyAgent
from craftmatch.utils import clamp, timed_operation

logger = get_logger(__name__)

BOOKING_COST_EFFICIENCY = 0.5


class SeekerMatchingAgent(BasePolicyAgent):
    """
    Recommendation agent for seekers.

    Args:
        gateway: Persistence gateway. Defaults to an in-memory one.
        settings: Candidate threshold, limit and recommendation TTL.
        **kwargs: Forwarded to ``BasePolicyAgent`` (config, rng, ...).
    """

    def __init__(
        self,
        gateway: PersistenceGateway | None = None,
        settings: CandidateSettings | None = None,
        **kwargs,
    ):
        super().__init__(
            AgentType.SEEKER_MATCHING,
            gateway=gateway or PersistenceGateway(),
            **kwargs,
        )
        self.settings = settings or CandidateSettings()
        self._seekers: dict[str, SeekerProfile] = {}
        self._providers: dict[str, ProviderProfile] = {}
        self._history: dict[str, list[MatchingRecord]] = {}
        self._history_lock = threading.Lock()

    # ------------------------------------------------------------------
    # Startup
    # ------------------------------------------------------------------

    def initialize_from_store(self) -> None:
        """Load providers, the latest policy and recent experiences.

        Seeds a baseline performance record when the store has none.
        """
        providers = self.gateway.list_provider_profiles()
        if providers.success:
            for profile in providers.data:
                self._providers[profile.provider_id] = profile
        else:
            logger.warning("Could not load providers: %s", providers.error)

        policy = self.gateway.get_latest_policy(self.agent_type)
        if policy.success and policy.data is not None:
            self.restore_policy(policy.data)
        self.seed_performance()

        experiences = self.gateway.get_experiences(
            self.agent_type, limit=BOOTSTRAP_EXPERIENCE_LIMIT
        )
        replayed = experiences.data if experiences.success else []
        if replayed:
            # Already stored; skip the persist step in self.learn
            BasePolicyAgent.learn(self, replayed)

        logger.info(
            "Seeker matching agent initialized with %d providers and %d experiences",
            len(self._providers),
            len(replayed),
        )

    # ------------------------------------------------------------------
    # Profiles
    # ------------------------------------------------------------------

    def add_seeker_profile(self, profile: SeekerProfile) -> OperationResult[SeekerProfile]:
        result = self.gateway.create_seeker_profile(profile)
        if result.success:
            self._seekers[profile.seeker_id] = profile
        return result

    def update_seeker_profile(self, profile: SeekerProfile) -> OperationResult[SeekerProfile]:
        result = self.gateway.update_seeker_profile(profile)
        if result.success:
            self._seekers[profile.seeker_id] = profile
        return result

    def add_provider_profile(self, profile: ProviderProfile) -> OperationResult[ProviderProfile]:
        result = self.gateway.create_provider_profile(profile)
        if result.success:
            self._providers[profile.provider_id] = profile
        return result

    @property
    def providers(self) -> list[ProviderProfile]:
        return list(self._providers.values())

    def _resolve_seeker(self, seeker_id: str) -> SeekerProfile | None:
        if seeker_id in self._seekers:
            return self._seekers[seeker_id]
        result = self.gateway.get_seeker_profile(seeker_id)
        if result.success and result.data is not None:
            self._seekers[seeker_id] = result.data
            return result.data
        return None

    def _load_history(self, seeker_id: str) -> list[MatchingRecord]:
        """
        Cached outcome history for ``seeker_id``, fetched on first use.

        Must be called with ``_history_lock`` released. The fetch runs
        unlocked; whatever it returns is merged (by ``record_id``) into any
        entry a concurrent caller created meanwhile, so outcomes recorded
        during the fetch are never dropped.
        """
        with self._history_lock:
            if seeker_id in self._history:
                return self._history[seeker_id]

        result = self.gateway.get_matching_records(seeker_id)
        fetched = result.data if result.success else []

        with self._history_lock:
            history = self._history.setdefault(seeker_id, [])
            known = {r.record_id for r in history}
            history.extend(r for r in fetched if r.record_id not in known)
            return history

    def _seeker_history(self, seeker_id: str) -> list[MatchingRecord]:
        history = self._load_history(seeker_id)
        with self._history_lock:
            return list(history)

    # ------------------------------------------------------------------
    # Recommendations
    # ------------------------------------------------------------------

    def get_recommendations(self, seeker_id: str) -> list[Recommendation]:
        """
        Ranked recommendations for one seeker (at most ``settings.limit``).

        Fresh stored recommendations are served as-is. An unknown seeker or
        no provider above the threshold yields an empty list.
        """
        cached = self.gateway.get_recommendations(seeker_id, limit=self.settings.limit)
        if cached.success and cached.data:
            record_recommendation_event("cached")
            return cached.data

        seeker = self._resolve_seeker(seeker_id)
        if seeker is None:
            logger.info("No profile for seeker %s; nothing to recommend", seeker_id)
            record_recommendation_event("empty")
            return []

        recommendations = self.generate_recommendations(seeker)
        for rec in recommendations:
            saved = self.gateway.save_recommendation(rec)
            if not saved.success:
                logger.warning(
                    "Recommendation %s not saved: %s", rec.recommendation_id, saved.error
                )

        record_recommendation_event("generated" if recommendations else "empty")
        return recommendations

    def generate_recommendations(self, seeker: SeekerProfile) -> list[Recommendation]:
        """Score every known provider for ``seeker`` without touching the store."""
        policy = self.policy_snapshot()
        with timed_operation(
            "Recommendation generation", logger, observe_recommendation_duration
        ):
            recommendations = rank_candidates(
                seeker,
                self.providers,
                weights=policy.weights,
                history=self._seeker_history(seeker.seeker_id),
                policy_version=policy.version,
                agent_type=self.agent_type,
                settings=self.settings,
            )
        logger.info(
            "Generated %d recommendations for seeker %s from %d providers",
            len(recommendations),
            seeker.seeker_id,
            len(self._providers),
        )
        return recommendations

    def record_interaction(
        self,
        recommendation_id: str,
        kind: InteractionKind | str,
        rating: float | None = None,
    ) -> OperationResult[Recommendation]:
        return self.gateway.record_interaction(recommendation_id, kind, rating)

    # ------------------------------------------------------------------
    # Outcomes
    # ------------------------------------------------------------------

    def record_outcome(
        self,
        seeker_id: str,
        provider_id: str,
        satisfaction: float,
        cultural_learning: float,
        economic_impact: float,
    ) -> MatchingRecord:
        """
        Record a seeker/provider outcome for historical-success scoring.

        Raises:
            RecordValidationError: If any score is outside [0, 1].
        """
        record = MatchingRecord(
            seeker_id=seeker_id,
            provider_id=provider_id,
            satisfaction=satisfaction,
            cultural_learning=cultural_learning,
            economic_impact=economic_impact,
        )
        validate_matching_record(record)

        history = self._load_history(seeker_id)
        with self._history_lock:
            history.append(record)
        result = self.gateway.save_matching_record(record)
        if not result.success:
            logger.warning("Matching record not saved: %s", result.error)
        return record

    def record_booking(self, event: BookingEvent) -> Experience | None:
        """
        Turn a completed booking into an experience and learn from it.

        Returns None when the event is malformed or the experience is
        rejected by the store.
        """
        try:
            experience = self.experience_from_booking(event)
            self.record_outcome(
                event.seeker_id,
                event.provider_id,
                event.satisfaction,
                experience.cultural_validation.score,
                experience.economic_outcome.artisan_revenue,
            )
        except RecordValidationError as e:
            logger.warning("Ignoring booking %s: %s", event.booking_id, e)
            return None

        accepted = self.learn([experience])
        return experience if accepted else None

    def experience_from_booking(self, event: BookingEvent) -> Experience:
        """
        Build an experience from a booking event.

        Missing observations default as follows: cultural learning and
        economic impact fall back to the satisfaction rating, expert approval
        to False. Satisfaction also stands in for community consensus,
        respect, market response and the engagement metrics it drives. Cost
        efficiency is not observed on bookings and is fixed at 0.5.
        """
        for name in ("seeker_id", "provider_id"):
            if not getattr(event, name):
                raise RecordValidationError(f"{name} is required", field=name)
        if not 0.0 <= event.satisfaction <= 1.0:
            raise RecordValidationError(
                f"satisfaction must be in [0, 1], got {event.satisfaction!r}",
                field="satisfaction",
            )

        satisfaction = event.satisfaction
        learning = satisfaction if event.cultural_learning is None else event.cultural_learning
        impact = satisfaction if event.economic_impact is None else event.economic_impact
        learning, impact = clamp(learning), clamp(impact)

        state = default_state()
        state.timestamp = event.date
        state.seeker_id = event.seeker_id
        state.provider_id = event.provider_id
        state.seeker = self._resolve_seeker(event.seeker_id)
        state.provider = self._providers.get(event.provider_id)

        action = self._booking_action(state, event)

        next_state = State(
            timestamp=event.date,
            seeker_id=event.seeker_id,
            provider_id=event.provider_id,
            cultural=state.cultural,
            economic=state.economic,
            engagement=EngagementMetrics(
                satisfaction=satisfaction,
                learning_outcome=learning,
                cultural_appreciation=learning,
                repeat_visit_probability=satisfaction,
                recommendation_likelihood=satisfaction,
            ),
        )

        cultural_validation = CulturalValidation(
            score=learning,
            expert_approval=bool(event.expert_approval),
            community_consensus=satisfaction,
            traditional_accuracy=learning,
            respect_level=satisfaction,
        )
        economic_outcome = EconomicOutcome(
            artisan_revenue=impact,
            community_benefit=impact,
            sustainability_impact=impact,
            market_response=satisfaction,
            cost_efficiency=BOOKING_COST_EFFICIENCY,
        )
        return self.build_experience(
            state, action, next_state, cultural_validation, economic_outcome
        )

    def _booking_action(self, state: State, event: BookingEvent) -> Action:
        try:
            action = self.select_action(state)
        except IncompleteStateError:
            action = Action(action_type=ActionType.RECOMMEND_EXPERIENCE)
        action.parameters.update({"booking_id": event.booking_id, "provider_id": event.provider_id})
        return action

    # ------------------------------------------------------------------
    # Agent hooks
    # ------------------------------------------------------------------

    def select_action(self, state: State) -> Action:
        seeker, provider = state.seeker, state.provider
        if seeker is None or provider is None:
            raise IncompleteStateError("state is missing the seeker or provider profile")

        with self._lock:
            weights = dict(self.policy.weights)
        score = match_score(seeker, provider, weights, self._seeker_history(seeker.seeker_id))
        return Action(
            action_type=ActionType.RECOMMEND_EXPERIENCE,
            parameters={
                "provider_id": provider.provider_id,
                "match_score": score,
                "experience_type": select_experience_type(seeker, provider).value,
            },
            confidence=score,
            cultural_impact=cultural_score(seeker, provider),
            economic_impact=economic_score(seeker, provider),
        )

    def learn(self, experiences: Sequence[Experience]) -> list[Experience]:
        """
        Persist experiences, then learn from the ones the store accepted.

        Experiences rejected as invalid (e.g. a cached reward that does not
        match its sub-fields) never reach the buffer.
        """
        accepted = []
        for experience in experiences:
            result = self.gateway.record_experience(experience)
            if result.success or result.error_kind != "validation":
                accepted.append(experience)
            else:
                logger.warning(
                    "Rejected experience %s: %s", experience.experience_id, result.error
                )
        super().learn(accepted)
        return accepted
