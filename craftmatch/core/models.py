"""
Core domain models for the Craftmatch engine.

All dataclasses are consolidated here for:
- Single source of truth for type definitions
- Easy imports across modules
- One storage codec (``to_dict`` / ``from_dict``) shared by every record

Models are organized by domain area. They carry data and invariants only;
scoring, reward and learning behavior live in their own modules.
"""

from __future__ import annotations

import copy
import json
from dataclasses import dataclass, field, fields, is_dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from functools import lru_cache
from typing import Annotated, Any
from uuid import uuid4

from pydantic import AfterValidator, ConfigDict, TypeAdapter, ValidationError

from craftmatch.core.errors import RecordValidationError


def utcnow() -> datetime:
    """Timezone-aware current UTC time."""
    return datetime.now(timezone.utc)


def new_id(prefix: str) -> str:
    """Generate a short prefixed identifier, e.g. ``rec_3f9a0c1b2d4e``."""
    return f"{prefix}_{uuid4().hex[:12]}"


# ============================================================================
# STORAGE CODEC
# ============================================================================


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


# Stored and accepted timestamps are always aware UTC.
Timestamp = Annotated[datetime, AfterValidator(_as_utc)]


def parse_enum(enum_cls: type[Enum], value: Any, field_name: str | None = None) -> Enum:
    """Coerce a raw value (or an existing member) into ``enum_cls``."""
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except ValueError:
        allowed = ", ".join(m.value for m in enum_cls)
        raise RecordValidationError(
            f"{field_name or enum_cls.__name__}: {value!r} is not one of [{allowed}]",
            field=field_name,
        ) from None


def parse_datetime(value: Any, field_name: str | None = None) -> datetime:
    """Parse an ISO-8601 string (or datetime) into an aware UTC datetime."""
    try:
        return _timestamp_adapter().validate_python(value)
    except ValidationError as e:
        raise _validation_error(e, field_name or "timestamp", field_name) from None


def _encode(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return value.isoformat()
    if is_dataclass(value) and not isinstance(value, type):
        return value.to_dict()
    if isinstance(value, (list, tuple)):
        return [_encode(v) for v in value]
    if isinstance(value, dict):
        return {k: _encode(v) for k, v in value.items()}
    return value


@lru_cache(maxsize=None)
def _adapter(cls: type) -> TypeAdapter:
    return TypeAdapter(cls)


@lru_cache(maxsize=1)
def _timestamp_adapter() -> TypeAdapter:
    return TypeAdapter(Timestamp)


def _validation_error(
    error: ValidationError, owner: str, field_name: str | None = None
) -> RecordValidationError:
    """Collapse a pydantic error into one RecordValidationError on the first bad field."""
    first = error.errors()[0]
    names = [part for part in first["loc"] if isinstance(part, str)]
    path = ".".join(str(part) for part in first["loc"]) or owner
    message = f"{path}: {first['msg']}"
    if first["type"] != "missing":
        message = f"{message}, got {first['input']!r}"
    if error.error_count() > 1:
        message = f"{message} (+{error.error_count() - 1} more)"
    return RecordValidationError(message, field=names[-1] if names else field_name)


class Record:
    """Mixin giving dataclasses a JSON-safe dict codec.

    Decoding validates the payload as a JSON document in pydantic strict
    mode: enum values and ISO timestamps are accepted, but nothing is
    coerced across types (no ``"false"`` for a bool, no ``1.9`` for an int).

    Fields marked ``metadata={"persist": False}`` are skipped on encode and
    left at their default on decode.
    """

    __pydantic_config__ = ConfigDict(strict=True, allow_inf_nan=False)

    def to_dict(self) -> dict:
        return {
            f.name: _encode(getattr(self, f.name))
            for f in fields(self)
            if f.metadata.get("persist", True)
        }

    @classmethod
    def from_dict(cls, data: dict):
        if not isinstance(data, dict):
            raise RecordValidationError(f"{cls.__name__}: expected a mapping")
        payload = {
            f.name: data[f.name]
            for f in fields(cls)
            if f.init and f.metadata.get("persist", True) and f.name in data
        }
        try:
            document = json.dumps(_encode(payload), allow_nan=False)
        except (TypeError, ValueError) as e:
            raise RecordValidationError(f"{cls.__name__}: not a JSON document ({e})") from None
        try:
            return _adapter(cls).validate_json(document)
        except ValidationError as e:
            raise _validation_error(e, cls.__name__) from None


# ============================================================================
# ENUMERATIONS
# ============================================================================


class CulturalDepth(Enum):
    """How deep a seeker wants to go into the cultural background."""

    SURFACE = "surface"
    MODERATE = "moderate"
    DEEP = "deep"

    @property
    def level(self) -> int:
        return {"surface": 1, "moderate": 2, "deep": 3}[self.value]


class GroupSize(Enum):
    SOLO = "solo"
    COUPLE = "couple"
    SMALL_GROUP = "small-group"
    LARGE_GROUP = "large-group"

    @property
    def people(self) -> int:
        return {"solo": 1, "couple": 2, "small-group": 4, "large-group": 8}[self.value]


class ExperienceType(Enum):
    HANDS_ON_WORKSHOP = "hands-on-workshop"
    CULTURAL_IMMERSION = "cultural-immersion"
    HISTORICAL_TOUR = "historical-tour"
    ARTISAN_MEETING = "artisan-meeting"
    TECHNIQUE_LEARNING = "technique-learning"
    CULTURAL_EXCHANGE = "cultural-exchange"


class LearningModality(Enum):
    VISUAL = "visual"
    AUDITORY = "auditory"
    KINESTHETIC = "kinesthetic"
    MIXED = "mixed"


class LearningPace(Enum):
    SLOW = "slow"
    MODERATE = "moderate"
    FAST = "fast"


class GroupPreference(Enum):
    INDIVIDUAL = "individual"
    SMALL_GROUP = "small-group"
    LARGE_GROUP = "large-group"


class FeedbackStyle(Enum):
    IMMEDIATE = "immediate"
    PERIODIC = "periodic"
    FINAL = "final"


class TimeUnit(Enum):
    HOURS = "hours"
    DAYS = "days"
    WEEKS = "weeks"

    @property
    def hours(self) -> float:
        """Working hours per unit (8-hour day, 40-hour week)."""
        return {"hours": 1.0, "days": 8.0, "weeks": 40.0}[self.value]


class SkillLevel(Enum):
    BEGINNER = "beginner"
    INTERMEDIATE = "intermediate"
    ADVANCED = "advanced"
    MASTER = "master"
    GRANDMASTER = "grandmaster"

    @property
    def rank(self) -> int:
        return list(SkillLevel).index(self) + 1

    @property
    def is_master(self) -> bool:
        """True for master and grandmaster."""
        return self.rank >= SkillLevel.MASTER.rank


class TeachingApproach(Enum):
    TRADITIONAL = "traditional"
    MODERN = "modern"
    HYBRID = "hybrid"


class ActionType(Enum):
    """Discrete operations an agent can take."""

    RECOMMEND_EXPERIENCE = "recommend-experience"
    SUGGEST_SKILL_PATH = "suggest-skill-path"
    CREATE_CONTENT = "create-content"
    VALIDATE_AUTHENTICITY = "validate-authenticity"
    OPTIMIZE_PRICING = "optimize-pricing"


class AgentType(Enum):
    """One agent instance (and one Policy) exists per agent type."""

    SEEKER_MATCHING = "seeker-matching"
    PROVIDER_DEVELOPMENT = "provider-development"
    CONTENT_CREATION = "content-creation"
    CULTURAL_VALIDATION = "cultural-validation"
    ECONOMIC_OPTIMIZATION = "economic-optimization"


class InteractionKind(Enum):
    """Downstream interactions recorded against a recommendation."""

    CLICK = "click"
    BOOK = "book"
    COMPLETE = "complete"


# ============================================================================
# SEEKER PROFILE
# ============================================================================


@dataclass
class SeekerPreferences(Record):
    crafts: list[str] = field(default_factory=list)
    regions: list[str] = field(default_factory=list)
    experience_types: list[ExperienceType] = field(default_factory=list)
    cultural_depth: CulturalDepth = CulturalDepth.MODERATE
    group_size: GroupSize = GroupSize.COUPLE
    languages: list[str] = field(default_factory=list)


@dataclass
class LearningStyle(Record):
    modality: LearningModality = LearningModality.MIXED
    pace: LearningPace = LearningPace.MODERATE
    group_preference: GroupPreference = GroupPreference.SMALL_GROUP
    feedback_style: FeedbackStyle = FeedbackStyle.PERIODIC


@dataclass
class Budget(Record):
    """Spending range. ``flexibility`` is the tolerated overshoot ratio of ``max``."""

    min: float = 0.0
    max: float = 0.0
    currency: str = "USD"
    flexibility: float = 0.0


@dataclass
class TimeAvailable(Record):
    duration: float = 3.0
    unit: TimeUnit = TimeUnit.HOURS
    flexibility: float = 0.0
    preferred_times: list[str] = field(default_factory=list)

    @property
    def duration_hours(self) -> float:
        return self.duration * self.unit.hours


@dataclass
class PastExperience(Record):
    """One past outcome in a seeker's history."""

    provider_id: str
    satisfaction: float
    date: Timestamp | None = None
    experience_id: str | None = None
    cultural_learning: float = 0.0
    skills_acquired: list[str] = field(default_factory=list)
    feedback: str = ""
    would_recommend: bool = False


@dataclass
class CulturalInterest(Record):
    category: str
    level: float = 0.0
    specific_areas: list[str] = field(default_factory=list)
    learning_goals: list[str] = field(default_factory=list)


@dataclass
class SeekerProfile(Record):
    """
    A tourist looking for a craft experience.

    Created on first verified contact; superseded (never deleted) when
    preferences or history change.
    """

    seeker_id: str
    preferences: SeekerPreferences = field(default_factory=SeekerPreferences)
    learning_style: LearningStyle = field(default_factory=LearningStyle)
    budget: Budget = field(default_factory=Budget)
    time_available: TimeAvailable = field(default_factory=TimeAvailable)
    experience_history: list[PastExperience] = field(default_factory=list)
    cultural_interests: list[CulturalInterest] = field(default_factory=list)

    @property
    def group_size(self) -> int:
        return self.preferences.group_size.people

    @property
    def average_satisfaction(self) -> float:
        if not self.experience_history:
            return 0.0
        return sum(e.satisfaction for e in self.experience_history) / len(
            self.experience_history
        )


# ============================================================================
# PROVIDER PROFILE
# ============================================================================


@dataclass
class Technique(Record):
    name: str
    difficulty: float = 0.5
    cultural_significance: float = 0.5
    time_to_learn: float = 0.0  # hours
    prerequisites: list[str] = field(default_factory=list)


@dataclass
class KnowledgeArea(Record):
    topic: str
    depth: float = 0.5
    sources: list[str] = field(default_factory=list)
    verified: bool = False


@dataclass
class CulturalKnowledge(Record):
    """Four knowledge areas plus the languages the knowledge is held in."""

    traditions: list[KnowledgeArea] = field(default_factory=list)
    history: list[KnowledgeArea] = field(default_factory=list)
    techniques: list[KnowledgeArea] = field(default_factory=list)
    stories: list[KnowledgeArea] = field(default_factory=list)
    languages: list[str] = field(default_factory=list)


@dataclass
class TeachingStyle(Record):
    approach: TeachingApproach = TeachingApproach.TRADITIONAL
    patience: float = 0.5
    adaptability: float = 0.5
    cultural_sensitivity: float = 0.5
    languages: list[str] = field(default_factory=list)


@dataclass
class TimeSlot(Record):
    day_of_week: int  # 0 = Monday
    start_time: str  # "09:00"
    end_time: str
    available: bool = True


@dataclass
class SeasonalAvailability(Record):
    season: str
    availability: float = 1.0
    special_events: list[str] = field(default_factory=list)


@dataclass
class Availability(Record):
    capacity: int = 1
    schedule: list[TimeSlot] = field(default_factory=list)
    seasonal_variations: list[SeasonalAvailability] = field(default_factory=list)
    advance_booking_days: int = 1


@dataclass
class EconomicGoals(Record):
    monthly_target: float = 0.0
    yearly_target: float = 0.0
    growth_rate: float = 0.0
    diversification_goals: list[str] = field(default_factory=list)


@dataclass
class ProviderProfile(Record):
    """An artisan offering experiences. Invariant: ``availability.capacity >= 1``."""

    provider_id: str
    name: str
    craft: str
    region: str
    skill_level: SkillLevel = SkillLevel.INTERMEDIATE
    techniques: list[Technique] = field(default_factory=list)
    cultural_knowledge: CulturalKnowledge = field(default_factory=CulturalKnowledge)
    teaching_style: TeachingStyle = field(default_factory=TeachingStyle)
    availability: Availability = field(default_factory=Availability)
    economic_goals: EconomicGoals = field(default_factory=EconomicGoals)

    @property
    def average_difficulty(self) -> float:
        if not self.techniques:
            return 0.5
        return sum(t.difficulty for t in self.techniques) / len(self.techniques)


# ============================================================================
# STATE, ACTION, EXPERIENCE
# ============================================================================


@dataclass
class CulturalMetrics(Record):
    authenticity: float = 0.0
    preservation_impact: float = 0.0
    cultural_respect: float = 0.0
    traditional_accuracy: float = 0.0
    innovation_balance: float = 0.0


@dataclass
class EconomicMetrics(Record):
    artisan_income: float = 0.0
    community_benefit: float = 0.0
    sustainability: float = 0.0
    market_demand: float = 0.0
    price_optimization: float = 0.0


@dataclass
class EngagementMetrics(Record):
    satisfaction: float = 0.0
    learning_outcome: float = 0.0
    cultural_appreciation: float = 0.0
    repeat_visit_probability: float = 0.0
    recommendation_likelihood: float = 0.0


@dataclass
class State(Record):
    """
    Observation the agent acts on.

    Profiles are attached in memory for action selection but are not
    persisted with the state; only their ids are.
    """

    timestamp: Timestamp = field(default_factory=utcnow)
    seeker_id: str | None = None
    provider_id: str | None = None
    cultural: CulturalMetrics = field(default_factory=CulturalMetrics)
    economic: EconomicMetrics = field(default_factory=EconomicMetrics)
    engagement: EngagementMetrics = field(default_factory=EngagementMetrics)
    seeker: SeekerProfile | None = field(default=None, metadata={"persist": False})
    provider: ProviderProfile | None = field(default=None, metadata={"persist": False})


@dataclass
class Action(Record):
    action_type: ActionType
    parameters: dict[str, Any] = field(default_factory=dict)
    confidence: float = 0.5
    cultural_impact: float = 0.0
    economic_impact: float = 0.0
    action_id: str = field(default_factory=lambda: new_id("act"))
    exploratory: bool = False


@dataclass
class CulturalValidation(Record):
    score: float
    expert_approval: bool
    community_consensus: float
    traditional_accuracy: float
    respect_level: float
    suggestions: list[str] = field(default_factory=list)


@dataclass
class EconomicOutcome(Record):
    artisan_revenue: float = 0.0
    community_benefit: float = 0.0
    sustainability_impact: float = 0.0
    market_response: float = 0.0
    cost_efficiency: float = 0.0


@dataclass
class RewardWeights(Record):
    """Weights of the three named reward dimensions used for one experience."""

    cultural: float = 0.4
    economic: float = 0.3
    satisfaction: float = 0.3


@dataclass(frozen=True)
class Experience(Record):
    """
    One observed (state, action, reward, next_state) tuple.

    ``reward`` is a cache: it must equal the Reward Function applied to the
    validation/outcome sub-fields under ``reward_weights``.
    """

    state: State
    action: Action
    reward: float
    next_state: State
    cultural_validation: CulturalValidation
    economic_outcome: EconomicOutcome
    reward_weights: RewardWeights = field(default_factory=RewardWeights)
    agent_type: AgentType = AgentType.SEEKER_MATCHING
    experience_id: str = field(default_factory=lambda: new_id("exp"))
    recorded_at: Timestamp = field(default_factory=utcnow)


# ============================================================================
# POLICY
# ============================================================================


@dataclass
class PerformanceMetrics(Record):
    average_reward: float = 0.0
    cultural_score: float = 0.0
    economic_score: float = 0.0
    satisfaction_score: float = 0.0
    validation_score: float = 0.0  # Fraction of expert-approved experiences


@dataclass
class Policy(Record):
    """
    Versioned scoring weights and thresholds.

    Invariants: ``version`` strictly increases on every update and no
    weight is ever negative.
    """

    weights: dict[str, float]
    thresholds: dict[str, float]
    version: int = 1
    policy_id: str = field(default_factory=lambda: new_id("pol"))
    performance: PerformanceMetrics = field(default_factory=PerformanceMetrics)
    cultural_alignment: float = 1.0
    updated_at: Timestamp = field(default_factory=utcnow)

    def snapshot(self) -> Policy:
        """Deep copy, safe to read while the agent keeps learning."""
        return copy.deepcopy(self)


@dataclass
class AgentPerformance(Record):
    """Persisted summary of an agent's learning state."""

    agent_type: AgentType
    experience_count: int
    cultural_score: float
    economic_score: float
    satisfaction_score: float
    policy_version: int
    learning_rate: float
    exploration_rate: float
    is_learning: bool = False
    config: dict[str, Any] = field(default_factory=dict)
    updated_at: Timestamp = field(default_factory=utcnow)

    @property
    def overall_performance(self) -> float:
        return (self.cultural_score + self.economic_score + self.satisfaction_score) / 3


# ============================================================================
# RECOMMENDATION MODELS
# ============================================================================


@dataclass
class ExperienceTemplate(Record):
    """The concrete experience a recommendation proposes."""

    title: str
    description: str
    duration_hours: float
    difficulty: float
    cultural_depth: int
    max_participants: int
    price: float
    location: str
    requirements: list[str] = field(default_factory=list)


@dataclass
class Recommendation(Record):
    """
    A ranked provider pairing for one seeker.

    Persisted with a fixed time-to-live; only the interaction fields change
    after creation.
    """

    seeker_id: str
    provider_id: str
    confidence: float
    cultural_score: float
    economic_score: float
    reasoning: str
    expires_at: Timestamp
    template: ExperienceTemplate | None = None
    experience_type: ExperienceType | None = None
    policy_version: int = 1
    agent_type: AgentType = AgentType.SEEKER_MATCHING
    recommendation_id: str = field(default_factory=lambda: new_id("rec"))
    created_at: Timestamp = field(default_factory=utcnow)
    presented: bool = False
    clicked: bool = False
    booked: bool = False
    completed: bool = False
    rating: float | None = None

    @property
    def overall_score(self) -> float:
        """Ranking key: confidence + cultural + economic."""
        return self.confidence + self.cultural_score + self.economic_score

    def is_expired(self, now: datetime | None = None) -> bool:
        return (now or utcnow()) >= self.expires_at


def expiry_from_now(hours: float) -> datetime:
    return utcnow() + timedelta(hours=hours)


@dataclass
class MatchingRecord(Record):
    """A recorded seeker/provider outcome, consumed by historical-success scoring."""

    seeker_id: str
    provider_id: str
    satisfaction: float
    cultural_learning: float
    economic_impact: float
    timestamp: Timestamp = field(default_factory=utcnow)
    record_id: str = field(default_factory=lambda: new_id("match"))


@dataclass
class BookingEvent(Record):
    """
    Completed-booking event supplied by the booking flow.

    Optional observations default when absent: cultural learning and
    economic impact fall back to the satisfaction rating, and expert
    approval is False (no expert has reviewed the session).
    """

    seeker_id: str
    provider_id: str
    satisfaction: float
    date: Timestamp = field(default_factory=utcnow)
    cultural_learning: float | None = None
    economic_impact: float | None = None
    expert_approval: bool | None = None
    booking_id: str = field(default_factory=lambda: new_id("book"))
