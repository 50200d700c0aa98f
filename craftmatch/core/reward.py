"""
Multi-objective reward function.

Five pure components, each computable on its own:

    cultural      = 0.4*preservation + 0.3*authenticity + 0.2*knowledge + 0.1*respect
    economic      = 0.3*sustainability + 0.3*community + 0.2*revenue
                    + 0.1*market + 0.1*cost_efficiency
    satisfaction  = 0.4*satisfaction + 0.3*appreciation + 0.2*learning + 0.1*recommend
    expert        = 0.3*accuracy + 0.3*alignment + 0.2*acceptance + 0.2*contribution
    community     = 0.3*economic_benefit + 0.3*cultural_strengthening
                    + 0.2*sustainability + 0.2*participation

Combined reward:

    wc*cultural + we*economic + ws*satisfaction + 0.15*expert + 0.15*community

The three named weights share the 0.70 left over by the two fixed terms.
When wc + we + ws exceeds 0.70 they are scaled down proportionally, so the
combined reward stays in [0, 1] whenever the components do.
"""

from __future__ import annotations

from dataclasses import dataclass

from craftmatch.config import (
    COMMUNITY_REWARD_WEIGHT,
    CULTURAL_WEIGHT,
    ECONOMIC_WEIGHT,
    EXPERT_REWARD_WEIGHT,
    SATISFACTION_WEIGHT,
)
from craftmatch.core.models import (
    CulturalValidation,
    EconomicOutcome,
    Experience,
    RewardWeights,
    State,
)

NAMED_WEIGHT_BUDGET = 1.0 - EXPERT_REWARD_WEIGHT - COMMUNITY_REWARD_WEIGHT


# ---------------------------------------------------------------------------
# Component inputs
# ---------------------------------------------------------------------------


@dataclass
class CulturalOutcome:
    preservation_score: float
    authenticity_maintained: bool
    knowledge_transferred: float
    respect_level: float


@dataclass
class SatisfactionOutcome:
    satisfaction_score: float
    learning_achieved: float
    cultural_appreciation: float
    recommendation_likelihood: float


@dataclass
class ExpertOutcome:
    validation_accuracy: float
    cultural_alignment: float
    community_acceptance: float
    knowledge_contribution: float


@dataclass
class CommunityOutcome:
    economic_benefit: float
    cultural_strengthening: float
    participation_increase: float
    sustainability_improvement: float


@dataclass
class RewardBreakdown:
    """Per-component rewards plus the weighted total."""

    cultural: float
    economic: float
    satisfaction: float
    expert: float
    community: float
    total: float = 0.0


# ---------------------------------------------------------------------------
# Weight handling
# ---------------------------------------------------------------------------


def default_reward_weights() -> RewardWeights:
    return RewardWeights(
        cultural=CULTURAL_WEIGHT,
        economic=ECONOMIC_WEIGHT,
        satisfaction=SATISFACTION_WEIGHT,
    )


def normalize_weights(weights: RewardWeights) -> tuple[float, float, float]:
    """Scale the named weights into the 0.70 budget when they exceed it."""
    wc = max(weights.cultural, 0.0)
    we = max(weights.economic, 0.0)
    ws = max(weights.satisfaction, 0.0)
    total = wc + we + ws
    if total > NAMED_WEIGHT_BUDGET:
        scale = NAMED_WEIGHT_BUDGET / total
        return wc * scale, we * scale, ws * scale
    return wc, we, ws


# ---------------------------------------------------------------------------
# Reward function
# ---------------------------------------------------------------------------


class RewardFunction:
    """Stateless; one instance can be shared by every agent."""

    @staticmethod
    def cultural_preservation(outcome: CulturalOutcome) -> float:
        return (
            outcome.preservation_score * 0.4
            + (0.3 if outcome.authenticity_maintained else 0.0)
            + outcome.knowledge_transferred * 0.2
            + outcome.respect_level * 0.1
        )

    @staticmethod
    def economic_sustainability(outcome: EconomicOutcome) -> float:
        return (
            outcome.sustainability_impact * 0.3
            + outcome.community_benefit * 0.3
            + outcome.artisan_revenue * 0.2
            + outcome.market_response * 0.1
            + outcome.cost_efficiency * 0.1
        )

    @staticmethod
    def seeker_satisfaction(outcome: SatisfactionOutcome) -> float:
        return (
            outcome.satisfaction_score * 0.4
            + outcome.cultural_appreciation * 0.3
            + outcome.learning_achieved * 0.2
            + outcome.recommendation_likelihood * 0.1
        )

    @staticmethod
    def expert_validation(outcome: ExpertOutcome) -> float:
        return (
            outcome.validation_accuracy * 0.3
            + outcome.cultural_alignment * 0.3
            + outcome.community_acceptance * 0.2
            + outcome.knowledge_contribution * 0.2
        )

    @staticmethod
    def community_impact(outcome: CommunityOutcome) -> float:
        return (
            outcome.economic_benefit * 0.3
            + outcome.cultural_strengthening * 0.3
            + outcome.sustainability_improvement * 0.2
            + outcome.participation_increase * 0.2
        )

    def breakdown(
        self,
        cultural_validation: CulturalValidation,
        economic_outcome: EconomicOutcome,
        next_state: State,
        weights: RewardWeights | None = None,
    ) -> RewardBreakdown:
        """Derive every component from an experience's observed sub-fields."""
        cv = cultural_validation
        engagement = next_state.engagement

        parts = RewardBreakdown(
            cultural=self.cultural_preservation(CulturalOutcome(
                preservation_score=cv.score,
                authenticity_maintained=cv.expert_approval,
                knowledge_transferred=cv.traditional_accuracy,
                respect_level=cv.respect_level,
            )),
            economic=self.economic_sustainability(economic_outcome),
            satisfaction=self.seeker_satisfaction(SatisfactionOutcome(
                satisfaction_score=engagement.satisfaction,
                learning_achieved=engagement.learning_outcome,
                cultural_appreciation=engagement.cultural_appreciation,
                recommendation_likelihood=engagement.recommendation_likelihood,
            )),
            expert=self.expert_validation(ExpertOutcome(
                validation_accuracy=cv.score,
                cultural_alignment=cv.traditional_accuracy,
                community_acceptance=cv.community_consensus,
                knowledge_contribution=cv.respect_level,
            )),
            community=self.community_impact(CommunityOutcome(
                economic_benefit=economic_outcome.community_benefit,
                cultural_strengthening=cv.score,
                participation_increase=engagement.satisfaction,
                sustainability_improvement=economic_outcome.sustainability_impact,
            )),
        )
        parts.total = self.combine(parts, weights or default_reward_weights())
        return parts

    @staticmethod
    def combine(parts: RewardBreakdown, weights: RewardWeights) -> float:
        wc, we, ws = normalize_weights(weights)
        return (
            parts.cultural * wc
            + parts.economic * we
            + parts.satisfaction * ws
            + parts.expert * EXPERT_REWARD_WEIGHT
            + parts.community * COMMUNITY_REWARD_WEIGHT
        )

    def compute(
        self,
        cultural_validation: CulturalValidation,
        economic_outcome: EconomicOutcome,
        next_state: State,
        weights: RewardWeights | None = None,
    ) -> float:
        return self.breakdown(cultural_validation, economic_outcome, next_state, weights).total

    def reward(self, experience: Experience) -> float:
        """Recompute an experience's reward from its stored sub-fields."""
        return self.compute(
            experience.cultural_validation,
            experience.economic_outcome,
            experience.next_state,
            experience.reward_weights,
        )
