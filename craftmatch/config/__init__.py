"""
Craftmatch configuration module.

Central configuration for the matching and policy-learning engine.
Loads settings from environment variables with sensible defaults.
"""

import os

from dotenv import load_dotenv

load_dotenv()


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


# ---------------------------------------------------------------------------
# Persistence (Qdrant record store)
# ---------------------------------------------------------------------------

# Unset URL means the gateway starts in degraded (in-memory) mode.
STORE_URL = os.getenv("CRAFTMATCH_STORE_URL")
STORE_API_KEY = os.getenv("CRAFTMATCH_STORE_API_KEY")
STORE_TIMEOUT = int(os.getenv("CRAFTMATCH_STORE_TIMEOUT", "10"))
COLLECTION_PREFIX = os.getenv("CRAFTMATCH_COLLECTION_PREFIX", "craftmatch")
STORE_AUTO_CREATE = _env_bool("CRAFTMATCH_STORE_AUTO_CREATE", True)

# Every record is stored with a small feature vector; no similarity search
# is performed on it.
RECORD_VECTOR_DIM = 5


# ---------------------------------------------------------------------------
# Agent Settings
# ---------------------------------------------------------------------------

LEARNING_RATE = float(os.getenv("CRAFTMATCH_LEARNING_RATE", "0.01"))
DISCOUNT_FACTOR = float(os.getenv("CRAFTMATCH_DISCOUNT_FACTOR", "0.95"))
EXPLORATION_RATE = float(os.getenv("CRAFTMATCH_EXPLORATION_RATE", "0.1"))
BATCH_SIZE = int(os.getenv("CRAFTMATCH_BATCH_SIZE", "32"))

EXPLORATION_CONFIDENCE = 0.1
PERFORMANCE_WINDOW = 100  # Most recent experiences used for rolling metrics
BOOTSTRAP_EXPERIENCE_LIMIT = 50  # Experiences replayed when an agent starts


# ---------------------------------------------------------------------------
# Reward Weights
# ---------------------------------------------------------------------------

CULTURAL_WEIGHT = float(os.getenv("CRAFTMATCH_CULTURAL_WEIGHT", "0.4"))
ECONOMIC_WEIGHT = float(os.getenv("CRAFTMATCH_ECONOMIC_WEIGHT", "0.3"))
SATISFACTION_WEIGHT = float(os.getenv("CRAFTMATCH_SATISFACTION_WEIGHT", "0.3"))

# Fixed terms; the three weights above are scaled into the remaining 0.70.
EXPERT_REWARD_WEIGHT = 0.15
COMMUNITY_REWARD_WEIGHT = 0.15


# ---------------------------------------------------------------------------
# Policy Defaults
# ---------------------------------------------------------------------------

DEFAULT_SCORING_WEIGHTS = {
    "craft": 0.30,
    "region": 0.20,
    "experience": 0.25,
    "learning": 0.15,
    "history": 0.10,
}

DEFAULT_THRESHOLDS = {
    "min_cultural_score": 0.7,
    "min_economic_score": 0.6,
    "min_satisfaction_score": 0.8,
}

MAX_WEIGHT_ADJUSTMENT = 0.10  # Per-update multiplicative bound (+/-10%)
THRESHOLD_STEP = 0.05
CULTURAL_THRESHOLD_CAP = 0.9
ECONOMIC_THRESHOLD_CAP = 0.8
LOW_CULTURAL_MEAN = 0.7
LOW_ECONOMIC_MEAN = 0.6
ALIGNMENT_PENALTY = 0.05
ALIGNMENT_BONUS = 0.02
ALIGNMENT_FLOOR = 0.5


# ---------------------------------------------------------------------------
# Scoring & Recommendation
# ---------------------------------------------------------------------------

MATCH_THRESHOLD = float(os.getenv("CRAFTMATCH_MATCH_THRESHOLD", "0.6"))
MAX_RECOMMENDATIONS = 5
BASE_EXPERIENCE_RATE = float(os.getenv("CRAFTMATCH_BASE_RATE", "150"))  # USD
BASE_DURATION_HOURS = 3.0
MIN_EXPERIENCE_HOURS = 2.0
RECOMMENDATION_TTL_HOURS = float(os.getenv("CRAFTMATCH_RECOMMENDATION_TTL_HOURS", "24"))


# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

from craftmatch.config.logging import (  # noqa: E402
    get_logger,
    configure_logging,
    LOG_LEVEL,
    LOG_FORMAT,
)


# ---------------------------------------------------------------------------
# All exports
# ---------------------------------------------------------------------------

__all__ = [
    # Store
    "STORE_URL",
    "STORE_API_KEY",
    "STORE_TIMEOUT",
    "COLLECTION_PREFIX",
    "STORE_AUTO_CREATE",
    "RECORD_VECTOR_DIM",
    # Agent
    "LEARNING_RATE",
    "DISCOUNT_FACTOR",
    "EXPLORATION_RATE",
    "BATCH_SIZE",
    "EXPLORATION_CONFIDENCE",
    "PERFORMANCE_WINDOW",
    "BOOTSTRAP_EXPERIENCE_LIMIT",
    # Reward
    "CULTURAL_WEIGHT",
    "ECONOMIC_WEIGHT",
    "SATISFACTION_WEIGHT",
    "EXPERT_REWARD_WEIGHT",
    "COMMUNITY_REWARD_WEIGHT",
    # Policy
    "DEFAULT_SCORING_WEIGHTS",
    "DEFAULT_THRESHOLDS",
    "MAX_WEIGHT_ADJUSTMENT",
    "THRESHOLD_STEP",
    "CULTURAL_THRESHOLD_CAP",
    "ECONOMIC_THRESHOLD_CAP",
    "LOW_CULTURAL_MEAN",
    "LOW_ECONOMIC_MEAN",
    "ALIGNMENT_PENALTY",
    "ALIGNMENT_BONUS",
    "ALIGNMENT_FLOOR",
    # Scoring
    "MATCH_THRESHOLD",
    "MAX_RECOMMENDATIONS",
    "BASE_EXPERIENCE_RATE",
    "BASE_DURATION_HOURS",
    "MIN_EXPERIENCE_HOURS",
    "RECOMMENDATION_TTL_HOURS",
    # Logging
    "get_logger",
    "configure_logging",
    "LOG_LEVEL",
    "LOG_FORMAT",
]
