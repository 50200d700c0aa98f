"""
Record validation at the persistence boundary.

Every check raises RecordValidationError with the offending field name.
The gateway calls these before any write so malformed records never reach
storage or the learning loop.
"""

from __future__ import annotations

import math

from craftmatch.core.errors import RecordValidationError
from craftmatch.core.models import (
    Experience,
    MatchingRecord,
    Policy,
    ProviderProfile,
    Recommendation,
    SeekerProfile,
)
from craftmatch.core.reward import RewardFunction


REWARD_TOLERANCE = 1e-6


def _require_id(value: str | None, name: str) -> None:
    if not isinstance(value, str) or not value.strip():
        raise RecordValidationError(f"{name} must be a non-empty string", field=name)


def _require_unit(value: float, name: str) -> None:
    if value is None or not math.isfinite(value) or not 0.0 <= value <= 1.0:
        raise RecordValidationError(f"{name} must be in [0, 1], got {value!r}", field=name)


def _require_non_negative(value: float, name: str) -> None:
    if value is None or not math.isfinite(value) or value < 0:
        raise RecordValidationError(f"{name} must be >= 0, got {value!r}", field=name)


def validate_seeker_profile(profile: SeekerProfile) -> None:
    _require_id(profile.seeker_id, "seeker_id")

    budget = profile.budget
    _require_non_negative(budget.min, "budget.min")
    _require_non_negative(budget.max, "budget.max")
    _require_non_negative(budget.flexibility, "budget.flexibility")
    if budget.max < budget.min:
        raise RecordValidationError("budget.max must be >= budget.min", field="budget.max")

    if profile.time_available.duration <= 0:
        raise RecordValidationError(
            "time_available.duration must be positive", field="time_available.duration"
        )

    for past in profile.experience_history:
        _require_id(past.provider_id, "experience_history.provider_id")
        _require_unit(past.satisfaction, "experience_history.satisfaction")
        _require_unit(past.cultural_learning, "experience_history.cultural_learning")


def validate_provider_profile(profile: ProviderProfile) -> None:
    _require_id(profile.provider_id, "provider_id")
    _require_id(profile.craft, "craft")
    _require_id(profile.region, "region")

    if profile.availability.capacity < 1:
        raise RecordValidationError(
            f"availability.capacity must be >= 1, got {profile.availability.capacity}",
            field="availability.capacity",
        )

    for technique in profile.techniques:
        _require_unit(technique.difficulty, "techniques.difficulty")
        _require_unit(technique.cultural_significance, "techniques.cultural_significance")

    style = profile.teaching_style
    _require_unit(style.patience, "teaching_style.patience")
    _require_unit(style.adaptability, "teaching_style.adaptability")
    _require_unit(style.cultural_sensitivity, "teaching_style.cultural_sensitivity")

    knowledge = profile.cultural_knowledge
    for area in knowledge.traditions + knowledge.history + knowledge.techniques + knowledge.stories:
        _require_unit(area.depth, "cultural_knowledge.depth")


def validate_experience(
    experience: Experience, reward_fn: RewardFunction | None = None
) -> None:
    """Reject experiences whose cached reward disagrees with a recomputation."""
    cv = experience.cultural_validation
    for name in ("score", "community_consensus", "traditional_accuracy", "respect_level"):
        _require_unit(getattr(cv, name), f"cultural_validation.{name}")

    if not math.isfinite(experience.reward):
        raise RecordValidationError("reward must be finite", field="reward")

    weights = experience.reward_weights
    for name in ("cultural", "economic", "satisfaction"):
        _require_non_negative(getattr(weights, name), f"reward_weights.{name}")

    expected = (reward_fn or RewardFunction()).reward(experience)
    if abs(expected - experience.reward) > REWARD_TOLERANCE:
        raise RecordValidationError(
            f"cached reward {experience.reward:.6f} does not match recomputed {expected:.6f}",
            field="reward",
        )


def validate_recommendation(rec: Recommendation) -> None:
    _require_id(rec.recommendation_id, "recommendation_id")
    _require_id(rec.seeker_id, "seeker_id")
    _require_id(rec.provider_id, "provider_id")
    _require_unit(rec.confidence, "confidence")
    _require_unit(rec.cultural_score, "cultural_score")
    _require_unit(rec.economic_score, "economic_score")
    if rec.expires_at <= rec.created_at:
        raise RecordValidationError("expires_at must be after created_at", field="expires_at")
    if rec.rating is not None:
        _require_unit(rec.rating, "rating")


def validate_matching_record(record: MatchingRecord) -> None:
    _require_id(record.seeker_id, "seeker_id")
    _require_id(record.provider_id, "provider_id")
    _require_unit(record.satisfaction, "satisfaction")
    _require_unit(record.cultural_learning, "cultural_learning")
    _require_unit(record.economic_impact, "economic_impact")


def validate_policy(policy: Policy) -> None:
    if policy.version < 1:
        raise RecordValidationError("version must be >= 1", field="version")
    for name, value in policy.weights.items():
        _require_non_negative(value, f"weights.{name}")
