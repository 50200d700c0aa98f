"""
Policy agent base: epsilon-greedy action selection and batched learning.

The learner is deliberately simple. Experiences accumulate in a bounded
replay buffer; once the buffer holds a batch, a bounded heuristic nudges
the policy's named weights and thresholds and the policy version is bumped.
There is no gradient step and no value function.

Lifecycle: Idle -> Learning -> Idle (``is_learning``). Buffer and policy
mutations are serialized by a per-agent re-entrant lock.
"""

from __future__ import annotations

import copy
import random
import threading
from abc import ABC, abstractmethod
from collections.abc import Sequence
from typing import TYPE_CHECKING

import numpy as np

from craftmatch.api.metrics import observe_policy_update_duration, record_policy_update
from craftmatch.config import (
    ALIGNMENT_BONUS,
    ALIGNMENT_FLOOR,
    ALIGNMENT_PENALTY,
    CULTURAL_THRESHOLD_CAP,
    DEFAULT_SCORING_WEIGHTS,
    DEFAULT_THRESHOLDS,
    ECONOMIC_THRESHOLD_CAP,
    EXPLORATION_CONFIDENCE,
    LOW_CULTURAL_MEAN,
    LOW_ECONOMIC_MEAN,
    MAX_WEIGHT_ADJUSTMENT,
    PERFORMANCE_WINDOW,
    THRESHOLD_STEP,
    get_logger,
)
from craftmatch.core.environment import AgentConfig, Environment, create_default_environment
from craftmatch.core.errors import IncompleteStateError
from craftmatch.core.models import (
    Action,
    AgentPerformance,
    AgentType,
    CulturalValidation,
    EconomicOutcome,
    Experience,
    PerformanceMetrics,
    Policy,
    RewardWeights,
    State,
    utcnow,
)
from craftmatch.core.reward import RewardFunction
from craftmatch.utils import timed_operation

if TYPE_CHECKING:
    from craftmatch.adapters.gateway import PersistenceGateway

logger = get_logger(__name__)

# Neutral scores recorded for an agent type before it has learned anything.
BASELINE_PERFORMANCE_SCORE = 0.5


def initial_policy(config: AgentConfig) -> Policy:
    return Policy(
        weights={
            "cultural": config.cultural_weight,
            "economic": config.economic_weight,
            "satisfaction": config.satisfaction_weight,
            **DEFAULT_SCORING_WEIGHTS,
        },
        thresholds=dict(DEFAULT_THRESHOLDS),
    )


# ---------------------------------------------------------------------------
# Update strategy
# ---------------------------------------------------------------------------


class BoundedHeuristicAdjustment:
    """
    Heuristic policy update, bounded per call.

    - Each named weight is scaled by ``1 + max_adjustment * (2f - 1)`` where
      ``f`` is the share of the batch that scored well on that dimension.
    - A low mean cultural (economic) score raises the matching threshold by
      one step, up to its cap.
    - More expert rejections than approvals lowers ``cultural_alignment``;
      otherwise it recovers slightly.
    """

    def __init__(self, max_adjustment: float = MAX_WEIGHT_ADJUSTMENT):
        self.max_adjustment = max_adjustment

    @staticmethod
    def success_fractions(batch: Sequence[Experience]) -> dict[str, float]:
        n = len(batch)
        return {
            "cultural": sum(e.cultural_validation.score > 0.8 for e in batch) / n,
            "economic": sum(
                e.economic_outcome.artisan_revenue > e.economic_outcome.cost_efficiency
                for e in batch
            ) / n,
            "satisfaction": sum(e.next_state.engagement.satisfaction > 0.8 for e in batch) / n,
        }

    def apply(self, policy: Policy, batch: Sequence[Experience]) -> None:
        if not batch:
            return

        for name, fraction in self.success_fractions(batch).items():
            if name in policy.weights:
                factor = 1 + self.max_adjustment * (2 * fraction - 1)
                policy.weights[name] = max(policy.weights[name] * factor, 0.0)

        cultural_mean = float(np.mean([e.cultural_validation.score for e in batch]))
        if cultural_mean < LOW_CULTURAL_MEAN:
            policy.thresholds["min_cultural_score"] = min(
                policy.thresholds.get("min_cultural_score", 0.0) + THRESHOLD_STEP,
                CULTURAL_THRESHOLD_CAP,
            )

        economic_mean = float(np.mean([e.economic_outcome.sustainability_impact for e in batch]))
        if economic_mean < LOW_ECONOMIC_MEAN:
            policy.thresholds["min_economic_score"] = min(
                policy.thresholds.get("min_economic_score", 0.0) + THRESHOLD_STEP,
                ECONOMIC_THRESHOLD_CAP,
            )

        approvals = sum(e.cultural_validation.expert_approval for e in batch)
        rejections = len(batch) - approvals
        if rejections > approvals:
            policy.cultural_alignment = max(
                policy.cultural_alignment - ALIGNMENT_PENALTY, ALIGNMENT_FLOOR
            )
        else:
            policy.cultural_alignment = min(policy.cultural_alignment + ALIGNMENT_BONUS, 1.0)

        for name, value in policy.weights.items():
            policy.weights[name] = max(value, 0.0)


# ---------------------------------------------------------------------------
# Agent
# ---------------------------------------------------------------------------


class BasePolicyAgent(ABC):
    """
    One agent per agent type: one buffer, one policy, one lock.

    Args:
        agent_type: Which policy this agent owns.
        gateway: Where policy snapshots and performance are persisted.
            None keeps everything in memory.
        config: Learning hyperparameters and reward weights.
        environment: Exploration catalogue. Defaults per agent type.
        reward_fn: Reward function for experiences built by this agent.
        strategy: Policy update strategy.
        rng: Random source for exploration (seed it for reproducible tests).
    """

    def __init__(
        self,
        agent_type: AgentType,
        gateway: PersistenceGateway | None = None,
        config: AgentConfig | None = None,
        environment: Environment | None = None,
        reward_fn: RewardFunction | None = None,
        strategy: BoundedHeuristicAdjustment | None = None,
        rng: random.Random | None = None,
    ):
        self.agent_type = agent_type
        self.gateway = gateway
        self.config = config or AgentConfig()
        self.environment = environment or create_default_environment(agent_type)
        self.reward_fn = reward_fn or RewardFunction()
        self.strategy = strategy or BoundedHeuristicAdjustment()
        self.policy = initial_policy(self.config)

        self._rng = rng or random.Random()
        self._buffer: list[Experience] = []
        self._lock = threading.RLock()
        self._learning = False

    # ------------------------------------------------------------------
    # Hooks
    # ------------------------------------------------------------------

    @abstractmethod
    def select_action(self, state: State) -> Action:
        """Exploit rule. Raise IncompleteStateError when ``state`` is unusable."""

    def update_policy(self, batch: Sequence[Experience]) -> None:
        self.strategy.apply(self.policy, batch)

    # ------------------------------------------------------------------
    # Acting
    # ------------------------------------------------------------------

    def act(self, state: State) -> Action:
        """
        Epsilon-greedy: explore with probability ``exploration_rate``.

        Only the draw holds the agent lock. ``select_action`` runs unlocked
        and reads its own copy of the weights, so gateway I/O it performs
        never stalls ``learn``.
        """
        with self._lock:
            explore = self._rng.random() < self.config.exploration_rate
        if explore:
            return self.explore_action(state)
        try:
            return self.select_action(state)
        except IncompleteStateError as e:
            logger.debug("Exploit rule unavailable (%s); exploring instead", e)
            return self.explore_action(state)

    def explore_action(self, state: State) -> Action:
        with self._lock:
            template = self._rng.choice(self.environment.available_actions)
        return Action(
            action_type=template.action_type,
            parameters=copy.deepcopy(template.parameters),
            confidence=EXPLORATION_CONFIDENCE,
            cultural_impact=0.0,
            economic_impact=0.0,
            exploratory=True,
        )

    # ------------------------------------------------------------------
    # Learning
    # ------------------------------------------------------------------

    @property
    def reward_weights(self) -> RewardWeights:
        weights = self.policy.weights
        return RewardWeights(
            cultural=weights.get("cultural", self.config.cultural_weight),
            economic=weights.get("economic", self.config.economic_weight),
            satisfaction=weights.get("satisfaction", self.config.satisfaction_weight),
        )

    def build_experience(
        self,
        state: State,
        action: Action,
        next_state: State,
        cultural_validation: CulturalValidation,
        economic_outcome: EconomicOutcome,
    ) -> Experience:
        """Assemble an experience with its reward computed under the current weights."""
        with self._lock:
            weights = self.reward_weights
        reward = self.reward_fn.compute(cultural_validation, economic_outcome, next_state, weights)
        return Experience(
            state=state,
            action=action,
            reward=reward,
            next_state=next_state,
            cultural_validation=cultural_validation,
            economic_outcome=economic_outcome,
            reward_weights=weights,
            agent_type=self.agent_type,
        )

    def learn(self, experiences: Sequence[Experience]) -> None:
        """
        Buffer experiences and update the policy once a batch is available.

        An empty list changes nothing, the policy version included.
        """
        if not experiences:
            return

        batch_size = self.config.batch_size
        with self._lock:
            self._learning = True
            try:
                self._buffer.extend(experiences)
                if len(self._buffer) > batch_size * 10:
                    self._buffer = self._buffer[-batch_size * 5:]

                updated = False
                if len(self._buffer) >= batch_size:
                    with timed_operation("Policy update", logger, observe_policy_update_duration):
                        self.update_policy(list(self._buffer))
                    self.policy.version += 1
                    self.policy.updated_at = utcnow()
                    updated = True

                self._update_performance_metrics()
            finally:
                self._learning = False

            if updated:
                record_policy_update(self.agent_type.value)
                logger.info(
                    "Policy updated: agent=%s version=%d buffer=%d",
                    self.agent_type.value,
                    self.policy.version,
                    len(self._buffer),
                )
                self._persist_update()

    def _update_performance_metrics(self) -> None:
        if not self._buffer:
            return
        recent = self._buffer[-PERFORMANCE_WINDOW:]
        self.policy.performance = PerformanceMetrics(
            average_reward=float(np.mean([e.reward for e in recent])),
            cultural_score=float(np.mean([e.cultural_validation.score for e in recent])),
            economic_score=float(
                np.mean([e.economic_outcome.sustainability_impact for e in recent])
            ),
            satisfaction_score=float(
                np.mean([e.next_state.engagement.satisfaction for e in recent])
            ),
            validation_score=float(
                np.mean([1.0 if e.cultural_validation.expert_approval else 0.0 for e in recent])
            ),
        )

    def seed_performance(self) -> None:
        """Store a neutral performance record for this agent type unless one exists."""
        if self.gateway is None:
            return

        existing = self.gateway.get_agent_performance(self.agent_type)
        if not existing.success or existing.data is not None:
            return

        baseline = self.performance_snapshot()
        baseline.experience_count = 0
        baseline.cultural_score = BASELINE_PERFORMANCE_SCORE
        baseline.economic_score = BASELINE_PERFORMANCE_SCORE
        baseline.satisfaction_score = BASELINE_PERFORMANCE_SCORE
        result = self.gateway.update_agent_performance(baseline)
        if result.success:
            logger.info("Seeded baseline performance for %s", self.agent_type.value)
        else:
            logger.warning("Baseline performance not saved: %s", result.error)

    def _persist_update(self) -> None:
        if self.gateway is None:
            return

        result = self.gateway.save_policy(self.policy.snapshot(), self.agent_type)
        if not result.success:
            logger.warning("Policy snapshot not saved: %s", result.error)

        result = self.gateway.update_agent_performance(self.performance_snapshot())
        if not result.success:
            logger.warning("Agent performance not saved: %s", result.error)

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    def policy_snapshot(self) -> Policy:
        with self._lock:
            return self.policy.snapshot()

    def restore_policy(self, policy: Policy) -> None:
        """Adopt a persisted policy, e.g. the latest snapshot at startup."""
        with self._lock:
            self.policy = policy.snapshot()

    def performance_snapshot(self) -> AgentPerformance:
        with self._lock:
            perf = self.policy.performance
            return AgentPerformance(
                agent_type=self.agent_type,
                experience_count=len(self._buffer),
                cultural_score=perf.cultural_score,
                economic_score=perf.economic_score,
                satisfaction_score=perf.satisfaction_score,
                policy_version=self.policy.version,
                learning_rate=self.config.learning_rate,
                exploration_rate=self.config.exploration_rate,
                is_learning=self._learning,
                config={**self.config.to_dict(), "environment": self.environment.environment_type},
            )

    @property
    def is_learning(self) -> bool:
        return self._learning

    @property
    def experience_count(self) -> int:
        return len(self._buffer)

    @property
    def policy_version(self) -> int:
        return self.policy.version

    @property
    def buffer(self) -> list[Experience]:
        return list(self._buffer)
