"""
Gamification DTOs
=================

camelCase response models for leaderboard and statistics endpoints.
"""

from typing import Dict, List, Optional

from resolvehub.complaints.application.dto import CamelModel
from resolvehub.gamification.domain import BadgeTier, GamificationStats, StaffStanding


class BadgeResponse(CamelModel):
    name: str
    min_points: int
    icon: str
    color: str

    @classmethod
    def from_tier(cls, tier: BadgeTier) -> "BadgeResponse":
        return cls(name=tier.name, min_points=tier.min_points, icon=tier.icon, color=tier.color)


class StandingResponse(CamelModel):
    """One leaderboard row."""
    rank: int
    staff_id: str
    name: str
    city: Optional[str] = None
    department: Optional[str] = None
    points: int
    resolved_count: int
    badge: Optional[BadgeResponse] = None

    @classmethod
    def from_standing(cls, standing: StaffStanding) -> "StandingResponse":
        return cls(
            rank=standing.rank,
            staff_id=standing.staff_id,
            name=standing.name,
            city=standing.city,
            department=standing.department,
            points=standing.points,
            resolved_count=standing.resolved_count,
            badge=BadgeResponse.from_tier(standing.badge) if standing.badge else None,
        )


class StatsResponse(CamelModel):
    """Per-staff aggregate read model."""
    total_staff: int
    total_points: int
    average_points: float
    top_performer: Optional[StandingResponse] = None
    badge_distribution: Dict[str, int]
    available_badges: List[BadgeResponse]

    @classmethod
    def from_stats(cls, stats: GamificationStats) -> "StatsResponse":
        return cls(
            total_staff=stats.total_staff,
            total_points=stats.total_points,
            average_points=stats.average_points,
            top_performer=(
                StandingResponse.from_standing(stats.top_performer)
                if stats.top_performer else None
            ),
            badge_distribution=stats.badge_distribution,
            available_badges=[BadgeResponse.from_tier(b) for b in stats.available_badges],
        )


class LeaderboardResponse(CamelModel):
    leaderboard: List[StandingResponse]
