"""
Craftmatch core domain layer.

Pure domain logic with no external service dependencies.
Contains models, validation, the reward function, scoring and agent
environment defaults.
"""

# Models (all dataclasses)
from craftmatch.core.models import (
    # Enumerations
    ActionType,
    AgentType,
    CulturalDepth,
    ExperienceType,
    GroupSize,
    InteractionKind,
    LearningModality,
    SkillLevel,
    TeachingApproach,
    TimeUnit,
    # Profiles
    Budget,
    CulturalKnowledge,
    KnowledgeArea,
    LearningStyle,
    PastExperience,
    ProviderProfile,
    SeekerPreferences,
    SeekerProfile,
    TeachingStyle,
    Technique,
    TimeAvailable,
    Availability,
    # Learning
    Action,
    AgentPerformance,
    CulturalValidation,
    EconomicOutcome,
    Experience,
    PerformanceMetrics,
    Policy,
    RewardWeights,
    State,
    # Recommendation
    BookingEvent,
    ExperienceTemplate,
    MatchingRecord,
    Recommendation,
)

from craftmatch.core.errors import RecordValidationError

# Reward
from craftmatch.core.reward import (
    RewardBreakdown,
    RewardFunction,
    normalize_weights,
)

# Scoring
from craftmatch.core.scoring import (
    cultural_score,
    economic_score,
    estimate_cost,
    match_score,
    rank_candidates,
)

# Environment
from craftmatch.core.environment import (
    AgentConfig,
    Environment,
    create_default_environment,
    default_actions,
    default_state,
)

__all__ = [
    # Enumerations
    "ActionType",
    "AgentType",
    "CulturalDepth",
    "ExperienceType",
    "GroupSize",
    "InteractionKind",
    "LearningModality",
    "SkillLevel",
    "TeachingApproach",
    "TimeUnit",
    # Profiles
    "Availability",
    "Budget",
    "CulturalKnowledge",
    "KnowledgeArea",
    "LearningStyle",
    "PastExperience",
    "ProviderProfile",
    "SeekerPreferences",
    "SeekerProfile",
    "TeachingStyle",
    "Technique",
    "TimeAvailable",
    # Learning
    "Action",
    "AgentPerformance",
    "CulturalValidation",
    "EconomicOutcome",
    "Experience",
    "PerformanceMetrics",
    "Policy",
    "RewardWeights",
    "State",
    # Recommendation
    "BookingEvent",
    "ExperienceTemplate",
    "MatchingRecord",
    "Recommendation",
    # Errors
    "RecordValidationError",
    # Reward
    "RewardBreakdown",
    "RewardFunction",
    "normalize_weights",
    # Scoring
    "cultural_score",
    "economic_score",
    "estimate_cost",
    "match_score",
    "rank_candidates",
    # Environment
    "AgentConfig",
    "Environment",
    "create_default_environment",
    "default_actions",
    "default_state",
]
