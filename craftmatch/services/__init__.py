"""
Craftmatch services layer.

Orchestration logic that coordinates the core domain with the persistence
gateway: the policy agent base and the seeker matching agent.
"""

# Policy agent
from craftmatch.services.agent import (
    BasePolicyAgent,
    BoundedHeuristicAdjustment,
    initial_policy,
)

# Seeker matching
from craftmatch.services.matching import SeekerMatchingAgent

__all__ = [
    # Policy agent
    "BasePolicyAgent",
    "BoundedHeuristicAdjustment",
    "initial_policy",
    # Seeker matching
    "SeekerMatchingAgent",
]
