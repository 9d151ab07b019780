"""
Gamification Value Objects
==========================

Declarative scoring and badge configuration, and the pure calculator that
turns a resolved complaint (and its citizen feedback) into points.
"""

from typing import Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

from resolvehub.complaints.domain.entities import Complaint
from resolvehub.complaints.domain.value_objects import normalize_key


class BadgeTier(BaseModel):
    """A badge awarded once a staff member reaches ``min_points``."""
    name: str = Field(..., min_length=1)
    min_points: int = Field(..., ge=0)
    icon: str = ""
    color: str = "#6b7280"


class ScoringConfig(BaseModel):
    """
    Points table.

    ``base_points`` is keyed by category then priority, with the same
    fallback rules as SLA durations (category ``default``, then
    ``default_base_points``).
    """
    base_points: Dict[str, Dict[str, int]] = Field(default_factory=dict)
    default_base_points: int = Field(default=7, ge=0)
    speed_bonus: int = Field(default=3, ge=0, description="Awarded when resolved before the deadline")
    breach_penalty: int = Field(default=3, ge=0, description="Deducted when the SLA was breached")
    feedback_bonus: int = Field(default=15, ge=0, description="Awarded for positive citizen feedback")
    feedback_min_rating: int = Field(default=4, ge=1, le=5, description="Lowest rating that earns the feedback bonus")
    badges: List[BadgeTier] = Field(
        default_factory=lambda: [
            BadgeTier(name="Rookie", min_points=10, icon="🌱", color="#22c55e"),
            BadgeTier(name="Problem Solver", min_points=100, icon="🔧", color="#3b82f6"),
            BadgeTier(name="Expert Fixer", min_points=250, icon="⭐", color="#a855f7"),
            BadgeTier(name="City Champion", min_points=500, icon="🏆", color="#f59e0b"),
            BadgeTier(name="Municipal Legend", min_points=1000, icon="👑", color="#ef4444"),
        ]
    )

    @field_validator("base_points")
    @classmethod
    def validate_base_points(cls, v: Dict[str, Dict[str, int]]) -> Dict[str, Dict[str, int]]:
        """Normalize keys and reject negative values."""
        normalized = {}
        for category, by_priority in v.items():
            entries = {}
            for priority, points in (by_priority or {}).items():
                if points < 0:
                    raise ValueError(f"base points for {category}/{priority} cannot be negative")
                entries[normalize_key(priority)] = points
            normalized[normalize_key(category)] = entries
        return normalized

    @field_validator("badges")
    @classmethod
    def validate_badges(cls, v: List[BadgeTier]) -> List[BadgeTier]:
        """Badge names must be unique; keep them sorted by threshold."""
        names = [badge.name for badge in v]
        if len(names) != len(set(names)):
            raise ValueError("badge names must be unique")
        return sorted(v, key=lambda badge: badge.min_points)

    def base_points_for(self, category: Optional[str], priority: Optional[str]) -> int:
        by_priority = self.base_points.get(normalize_key(category), {})
        points = by_priority.get(normalize_key(priority))
        if points is None:
            points = by_priority.get("default", self.default_base_points)
        return points


class ScoreCalculator:
    """Pure scoring rules shared by live awards and on-demand aggregation."""

    def __init__(self, config: ScoringConfig):
        self._config = config

    @property
    def badges(self) -> List[BadgeTier]:
        return self._config.badges

    def points_for(self, complaint: Complaint) -> int:
        """
        base + speed bonus (resolved by the deadline) - breach penalty
        (SLA breached), floored at zero.
        """
        points = self._config.base_points_for(complaint.category, complaint.priority)
        if complaint.resolved_before_deadline():
            points += self._config.speed_bonus
        if complaint.sla.breached_at is not None:
            points -= self._config.breach_penalty
        return max(0, points)

    def feedback_points_for(self, complaint: Complaint) -> int:
        rating = complaint.feedback_rating
        if rating is None or rating < self._config.feedback_min_rating:
            return 0
        return self._config.feedback_bonus

    def badge_for(self, points: int) -> Optional[BadgeTier]:
        """Highest threshold met wins; None below every threshold."""
        earned = None
        for badge in self._config.badges:
            if points >= badge.min_points:
                earned = badge
        return earned
