"""
Gamification Domain Entities
============================

Read-side results of the scorer: per-staff standings and the aggregate
statistics shown on the leaderboard.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional

from resolvehub.gamification.domain.value_objects import BadgeTier


@dataclass
class StaffStanding:
    """One leaderboard row."""
    staff_id: str
    name: str
    city: Optional[str]
    department: Optional[str]
    points: int
    resolved_count: int
    badge: Optional[BadgeTier] = None
    rank: int = 0


@dataclass
class GamificationStats:
    """Aggregate statistics over a set of staff members."""
    total_staff: int
    total_points: int
    average_points: float
    top_performer: Optional[StaffStanding]
    badge_distribution: Dict[str, int] = field(default_factory=dict)
    available_badges: List[BadgeTier] = field(default_factory=list)
    leaderboard: List[StaffStanding] = field(default_factory=list)
