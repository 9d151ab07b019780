"""
Gamification Domain Layer
=========================

Scoring configuration, the score calculator and leaderboard entities.
"""

from resolvehub.gamification.domain.value_objects import (
    BadgeTier,
    ScoringConfig,
    ScoreCalculator,
)
from resolvehub.gamification.domain.entities import StaffStanding, GamificationStats

__all__ = [
    "BadgeTier",
    "ScoringConfig",
    "ScoreCalculator",
    "StaffStanding",
    "GamificationStats",
]
