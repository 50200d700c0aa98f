"""
Craftmatch: multi-objective matching and policy learning

Pairs seekers (tourists) with providers (artisans), scores each pair on
cultural, economic and satisfaction dimensions, and nudges its scoring
weights from recorded outcomes.

Architecture:
    craftmatch.core       - Pure domain logic (models, reward, scoring)
    craftmatch.adapters   - Qdrant record store and persistence gateway
    craftmatch.services   - Policy agents (learning loop, seeker matching)
    craftmatch.api        - FastAPI surface and Prometheus metrics
    craftmatch.config     - Configuration settings and logging
"""

__version__ = "0.1.0"

# Expose key public API for convenience imports
from craftmatch.core import (
    # Models
    BookingEvent,
    Experience,
    MatchingRecord,
    Policy,
    ProviderProfile,
    Recommendation,
    SeekerProfile,
    # Functions
    RewardFunction,
    match_score,
    rank_candidates,
)

from craftmatch.adapters import (
    ConnectionState,
    OperationResult,
    PersistenceGateway,
)

from craftmatch.services import (
    BasePolicyAgent,
    BoundedHeuristicAdjustment,
    SeekerMatchingAgent,
)

__all__ = [
    # Version
    "__version__",
    # Models
    "BookingEvent",
    "Experience",
    "MatchingRecord",
    "Policy",
    "ProviderProfile",
    "Recommendation",
    "SeekerProfile",
    # Core functions
    "RewardFunction",
    "match_score",
    "rank_candidates",
    # Persistence
    "ConnectionState",
    "OperationResult",
    "PersistenceGateway",
    # Agents
    "BasePolicyAgent",
    "BoundedHeuristicAdjustment",
    "SeekerMatchingAgent",
]
