"""
Gamification Application Layer
==============================

The resolution scorer and the on-demand leaderboard aggregation.
"""

from resolvehub.gamification.application.services import GamificationScorer, aggregate
from resolvehub.gamification.application.dto import (
    BadgeResponse,
    StandingResponse,
    StatsResponse,
    LeaderboardResponse,
)

__all__ = [
    "GamificationScorer",
    "aggregate",
    "BadgeResponse",
    "StandingResponse",
    "StatsResponse",
    "LeaderboardResponse",
]
