"""
Agent environment defaults.

Each agent type gets a small catalogue of actions it may take when
exploring, a baseline observation state, and an ``AgentConfig`` built from
the package configuration.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field

from craftmatch.config import (
    BATCH_SIZE,
    CULTURAL_WEIGHT,
    DISCOUNT_FACTOR,
    ECONOMIC_WEIGHT,
    EXPLORATION_RATE,
    LEARNING_RATE,
    SATISFACTION_WEIGHT,
)
from craftmatch.core.models import (
    Action,
    ActionType,
    AgentType,
    CulturalMetrics,
    EconomicMetrics,
    EngagementMetrics,
    State,
)


@dataclass
class AgentConfig:
    learning_rate: float = LEARNING_RATE
    discount_factor: float = DISCOUNT_FACTOR
    exploration_rate: float = EXPLORATION_RATE
    batch_size: int = BATCH_SIZE
    cultural_weight: float = CULTURAL_WEIGHT
    economic_weight: float = ECONOMIC_WEIGHT
    satisfaction_weight: float = SATISFACTION_WEIGHT

    def __post_init__(self):
        if not 0.0 <= self.exploration_rate <= 1.0:
            raise ValueError(f"exploration_rate must be in [0, 1], got {self.exploration_rate}")
        if self.batch_size < 1:
            raise ValueError(f"batch_size must be >= 1, got {self.batch_size}")

    def to_dict(self) -> dict:
        return asdict(self)


# Environment each agent type operates in.
ENVIRONMENT_TYPES = {
    AgentType.SEEKER_MATCHING: "cultural-tourism",
    AgentType.PROVIDER_DEVELOPMENT: "artisan-workshop",
    AgentType.CONTENT_CREATION: "content-creation",
    AgentType.CULTURAL_VALIDATION: "validation-network",
    AgentType.ECONOMIC_OPTIMIZATION: "economic-ecosystem",
}


def default_state() -> State:
    """Baseline observation used when no measured metrics exist yet."""
    return State(
        cultural=CulturalMetrics(
            authenticity=0.8,
            preservation_impact=0.7,
            cultural_respect=0.9,
            traditional_accuracy=0.8,
            innovation_balance=0.6,
        ),
        economic=EconomicMetrics(
            artisan_income=0.7,
            community_benefit=0.6,
            sustainability=0.8,
            market_demand=0.7,
            price_optimization=0.6,
        ),
        engagement=EngagementMetrics(
            satisfaction=0.8,
            learning_outcome=0.7,
            cultural_appreciation=0.9,
            repeat_visit_probability=0.6,
            recommendation_likelihood=0.8,
        ),
    )


def default_actions(agent_type: AgentType) -> list[Action]:
    """Exploration catalogue for ``agent_type``."""
    if agent_type == AgentType.SEEKER_MATCHING:
        return [
            Action(
                action_type=ActionType.RECOMMEND_EXPERIENCE,
                confidence=0.5,
                cultural_impact=0.5,
                economic_impact=0.5,
            ),
            Action(
                action_type=ActionType.RECOMMEND_EXPERIENCE,
                parameters={"experience_type": "cultural-immersion"},
                confidence=0.7,
                cultural_impact=0.8,
                economic_impact=0.6,
            ),
        ]
    if agent_type == AgentType.PROVIDER_DEVELOPMENT:
        return [Action(
            action_type=ActionType.SUGGEST_SKILL_PATH,
            parameters={"skill_level": "intermediate"},
            confidence=0.6,
            cultural_impact=0.7,
            economic_impact=0.8,
        )]
    if agent_type == AgentType.CONTENT_CREATION:
        return [Action(
            action_type=ActionType.CREATE_CONTENT,
            parameters={"content_type": "story"},
            confidence=0.6,
            cultural_impact=0.8,
            economic_impact=0.5,
        )]
    if agent_type == AgentType.CULTURAL_VALIDATION:
        return [Action(
            action_type=ActionType.VALIDATE_AUTHENTICITY,
            parameters={"validation_type": "technique"},
            confidence=0.8,
            cultural_impact=0.9,
            economic_impact=0.4,
        )]
    return [Action(
        action_type=ActionType.OPTIMIZE_PRICING,
        parameters={"strategy": "value-based"},
        confidence=0.7,
        cultural_impact=0.3,
        economic_impact=0.9,
    )]


@dataclass
class Environment:
    agent_type: AgentType
    available_actions: list[Action] = field(default_factory=list)
    state: State = field(default_factory=default_state)

    @property
    def environment_type(self) -> str:
        return ENVIRONMENT_TYPES[self.agent_type]


def create_default_environment(agent_type: AgentType) -> Environment:
    return Environment(agent_type=agent_type, available_actions=default_actions(agent_type))
