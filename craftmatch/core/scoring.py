"""
Seeker/provider scoring engine.

Pure functions: every score is derived from the two profiles, the policy's
scoring weights and the recorded outcome history. Nothing here performs I/O
or mutates its inputs.

Match score is a weighted sum of five alignment signals, each in [0, 1]:

    craft       1.0 if the provider's craft is wanted, else 0.3
    region      1.0 if the provider's region is wanted, else 0.5
    experience  experience-type fit (base 0.5, capped at 1.0)
    learning    learning-style fit (base 0.5, capped at 1.0)
    history     mean past satisfaction with this provider, 0.5 if none
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass

import numpy as np

from craftmatch.config import (
    BASE_DURATION_HOURS,
    BASE_EXPERIENCE_RATE,
    DEFAULT_SCORING_WEIGHTS,
    MATCH_THRESHOLD,
    MAX_RECOMMENDATIONS,
    MIN_EXPERIENCE_HOURS,
    RECOMMENDATION_TTL_HOURS,
)
from craftmatch.core.models import (
    AgentType,
    CulturalDepth,
    ExperienceTemplate,
    ExperienceType,
    LearningModality,
    MatchingRecord,
    ProviderProfile,
    Recommendation,
    SeekerProfile,
    TeachingApproach,
    expiry_from_now,
)
from craftmatch.utils import clamp


# ---------------------------------------------------------------------------
# Alignment signals
# ---------------------------------------------------------------------------


def craft_alignment(seeker: SeekerProfile, provider: ProviderProfile) -> float:
    return 1.0 if provider.craft in seeker.preferences.crafts else 0.3


def region_alignment(seeker: SeekerProfile, provider: ProviderProfile) -> float:
    return 1.0 if provider.region in seeker.preferences.regions else 0.5


def experience_alignment(seeker: SeekerProfile, provider: ProviderProfile) -> float:
    wanted = seeker.preferences.experience_types
    alignment = 0.5

    if (
        ExperienceType.HANDS_ON_WORKSHOP in wanted
        and provider.teaching_style.approach != TeachingApproach.MODERN
    ):
        alignment += 0.3
    if (
        ExperienceType.CULTURAL_IMMERSION in wanted
        and len(provider.cultural_knowledge.traditions) > 2
    ):
        alignment += 0.2
    if ExperienceType.TECHNIQUE_LEARNING in wanted and provider.skill_level.is_master:
        alignment += 0.3

    return min(alignment, 1.0)


def shares_language(seeker: SeekerProfile, provider: ProviderProfile) -> bool:
    return bool(set(seeker.preferences.languages) & set(provider.teaching_style.languages))


def learning_alignment(seeker: SeekerProfile, provider: ProviderProfile) -> float:
    modality = seeker.learning_style.modality
    alignment = 0.5

    if (
        modality == LearningModality.KINESTHETIC
        and provider.teaching_style.approach == TeachingApproach.TRADITIONAL
    ):
        alignment += 0.2
    if modality == LearningModality.VISUAL and any(
        t.difficulty > 0.7 for t in provider.techniques
    ):
        alignment += 0.1
    if provider.availability.capacity >= seeker.group_size:
        alignment += 0.2
    if shares_language(seeker, provider):
        alignment += 0.1

    return min(alignment, 1.0)


def historical_success(
    seeker: SeekerProfile,
    provider: ProviderProfile,
    history: Iterable[MatchingRecord] = (),
) -> float:
    """Mean satisfaction of this seeker's past outcomes with this provider."""
    satisfactions = [
        past.satisfaction
        for past in seeker.experience_history
        if past.provider_id == provider.provider_id
    ]
    satisfactions.extend(
        record.satisfaction
        for record in history
        if record.seeker_id == seeker.seeker_id and record.provider_id == provider.provider_id
    )
    if not satisfactions:
        return 0.5
    return float(np.mean(satisfactions))


def match_score(
    seeker: SeekerProfile,
    provider: ProviderProfile,
    weights: Mapping[str, float] | None = None,
    history: Iterable[MatchingRecord] = (),
) -> float:
    """Weighted match score in [0, 1]."""
    w = {**DEFAULT_SCORING_WEIGHTS, **(weights or {})}
    score = (
        craft_alignment(seeker, provider) * w["craft"]
        + region_alignment(seeker, provider) * w["region"]
        + experience_alignment(seeker, provider) * w["experience"]
        + learning_alignment(seeker, provider) * w["learning"]
        + historical_success(seeker, provider, history) * w["history"]
    )
    return clamp(score)


# ---------------------------------------------------------------------------
# Cultural sub-score
# ---------------------------------------------------------------------------


def cultural_depth_fit(seeker: SeekerProfile, provider: ProviderProfile) -> float:
    """How well the provider's knowledge covers the depth the seeker wants."""
    depth = seeker.preferences.cultural_depth
    knowledge = provider.cultural_knowledge
    areas = len(knowledge.traditions) + len(knowledge.history)

    if depth == CulturalDepth.SURFACE and areas >= 2:
        return 0.8
    if depth == CulturalDepth.MODERATE and areas >= 3:
        return 1.0
    if depth == CulturalDepth.DEEP and areas >= 5:
        return 1.0
    return 0.5


def cultural_score(seeker: SeekerProfile, provider: ProviderProfile) -> float:
    knowledge = provider.cultural_knowledge
    knowledge_bonus = min(
        0.1 * (len(knowledge.traditions) + len(knowledge.history) + len(knowledge.techniques)),
        0.3,
    )
    score = (
        0.5
        + cultural_depth_fit(seeker, provider) * 0.4
        + knowledge_bonus
        + provider.teaching_style.cultural_sensitivity * 0.3
    )
    return clamp(score)


# ---------------------------------------------------------------------------
# Economic sub-score
# ---------------------------------------------------------------------------


def estimate_cost(seeker: SeekerProfile, provider: ProviderProfile) -> float:
    """Base rate x skill multiplier x duration ratio x group size."""
    skill_multiplier = 1.5 if provider.skill_level.is_master else 1.2
    duration_ratio = seeker.time_available.duration_hours / BASE_DURATION_HOURS
    return BASE_EXPERIENCE_RATE * skill_multiplier * duration_ratio * seeker.group_size


def budget_compatibility(seeker: SeekerProfile, provider: ProviderProfile) -> float:
    cost = estimate_cost(seeker, provider)
    budget = seeker.budget
    if cost <= budget.max:
        return 1.0
    if cost <= budget.max * (1 + budget.flexibility):
        return 0.7
    return 0.3


def economic_impact(seeker: SeekerProfile, provider: ProviderProfile) -> float:
    traditional_bonus = (
        0.2 if provider.teaching_style.approach == TeachingApproach.TRADITIONAL else 0.1
    )
    return min(seeker.group_size * 0.2 + traditional_bonus, 1.0)


def economic_score(seeker: SeekerProfile, provider: ProviderProfile) -> float:
    return (
        budget_compatibility(seeker, provider) * 0.6
        + economic_impact(seeker, provider) * 0.4
    )


# ---------------------------------------------------------------------------
# Experience shaping
# ---------------------------------------------------------------------------


def optimal_duration(seeker: SeekerProfile, provider: ProviderProfile) -> float:
    """Session length in hours, never below the minimum bookable slot."""
    available = seeker.time_available.duration_hours
    if seeker.preferences.cultural_depth == CulturalDepth.SURFACE:
        available *= 0.8
    return max(available, MIN_EXPERIENCE_HOURS)


def select_experience_type(
    seeker: SeekerProfile, provider: ProviderProfile
) -> ExperienceType:
    wanted = seeker.preferences.experience_types

    if (
        ExperienceType.HANDS_ON_WORKSHOP in wanted
        and provider.teaching_style.approach != TeachingApproach.MODERN
    ):
        return ExperienceType.HANDS_ON_WORKSHOP
    if (
        ExperienceType.CULTURAL_IMMERSION in wanted
        and len(provider.cultural_knowledge.traditions) > 3
    ):
        return ExperienceType.CULTURAL_IMMERSION
    if ExperienceType.TECHNIQUE_LEARNING in wanted and provider.skill_level.is_master:
        return ExperienceType.TECHNIQUE_LEARNING

    return wanted[0] if wanted else ExperienceType.ARTISAN_MEETING


def matching_reasoning(
    seeker: SeekerProfile, provider: ProviderProfile, score: float
) -> str:
    reasons = []
    if provider.craft in seeker.preferences.crafts:
        reasons.append(f"Perfect craft match: {provider.craft}")
    if provider.region in seeker.preferences.regions:
        reasons.append(f"Regional preference: {provider.region}")
    if provider.skill_level.is_master:
        reasons.append(f"Expert level artisan: {provider.skill_level.value}")
    if score > 0.8:
        reasons.append("Exceptional compatibility based on learning history")

    if not reasons:
        return "Good overall compatibility based on preferences and availability."
    return ". ".join(reasons)


def build_template(seeker: SeekerProfile, provider: ProviderProfile) -> ExperienceTemplate:
    return ExperienceTemplate(
        title=f"{provider.craft} Experience with {provider.name}",
        description=(
            f"Learn traditional {provider.craft} techniques from "
            f"{provider.skill_level.value} artisan {provider.name} in {provider.region}"
        ),
        duration_hours=optimal_duration(seeker, provider),
        difficulty=provider.average_difficulty,
        cultural_depth=seeker.preferences.cultural_depth.level,
        max_participants=provider.availability.capacity,
        price=round(estimate_cost(seeker, provider), 2),
        location=provider.region,
        requirements=[f"Interest in {provider.craft}", "Basic cultural respect"],
    )


# ---------------------------------------------------------------------------
# Candidate ranking
# ---------------------------------------------------------------------------


@dataclass
class CandidateSettings:
    threshold: float = MATCH_THRESHOLD
    limit: int = MAX_RECOMMENDATIONS
    ttl_hours: float = RECOMMENDATION_TTL_HOURS


def rank_candidates(
    seeker: SeekerProfile,
    providers: Sequence[ProviderProfile],
    weights: Mapping[str, float] | None = None,
    history: Iterable[MatchingRecord] = (),
    policy_version: int = 1,
    agent_type: AgentType = AgentType.SEEKER_MATCHING,
    settings: CandidateSettings | None = None,
) -> list[Recommendation]:
    """
    Score every provider for one seeker and keep the best matches.

    Only pairs whose match score clears the threshold are emitted. The
    survivors are ranked by confidence + cultural + economic, descending,
    and truncated to the limit. Zero survivors is an empty list.
    """
    settings = settings or CandidateSettings()
    history = list(history)
    weights = dict(weights or {})

    candidates = []
    for provider in providers:
        score = match_score(seeker, provider, weights, history)
        if score <= settings.threshold:
            continue
        candidates.append(Recommendation(
            seeker_id=seeker.seeker_id,
            provider_id=provider.provider_id,
            confidence=score,
            cultural_score=cultural_score(seeker, provider),
            economic_score=economic_score(seeker, provider),
            reasoning=matching_reasoning(seeker, provider, score),
            expires_at=expiry_from_now(settings.ttl_hours),
            template=build_template(seeker, provider),
            experience_type=select_experience_type(seeker, provider),
            policy_version=policy_version,
            agent_type=agent_type,
        ))

    candidates.sort(key=lambda r: r.overall_score, reverse=True)
    return candidates[: settings.limit]
