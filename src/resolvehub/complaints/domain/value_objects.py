"""
Complaint Value Objects
=======================

Configuration value objects and the stateless domain services built on
them: the department router, the SLA clock and the escalation policy.

Value objects are defined by their attributes rather than an identity.
They are immutable once loaded and can be freely shared.
"""

from datetime import datetime, timedelta
from typing import Callable, Dict, List, Literal, Optional, Set, Tuple

from pydantic import BaseModel, Field, field_validator

from resolvehub.config import (
    Department, EscalationLevel, Role, ROUTABLE_DEPARTMENTS
)
from resolvehub.core import UnknownCategoryException
from resolvehub.complaints.domain.entities import (
    Complaint, SLAEvaluation, EscalationStep
)
from resolvehub.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)

DEFAULT_CATEGORY_MAP = {
    "structural": Department.STRUCTURAL,
    "plumbing": Department.PLUMBING,
    "sanitation": Department.SANITATION,
    "electrical": Department.ELECTRICAL,
}


def normalize_key(value: Optional[str]) -> str:
    """Lowercase and trim a category/priority key."""
    return (value or "").strip().lower()


def format_hours(hours: float) -> str:
    """Render an hour threshold the way escalation reasons spell it (6h, 1.5h)."""
    return f"{hours:g}h"


# ========== Department routing ==========

class DepartmentConfig(BaseModel):
    """
    Category -> department routing table.

    Keys are matched case-insensitively. Targets must be real departments;
    the Unassigned sentinel is reserved for unknown categories.
    """
    categories: Dict[str, Department] = Field(
        default_factory=lambda: dict(DEFAULT_CATEGORY_MAP),
        description="Category name -> department"
    )

    @field_validator("categories")
    @classmethod
    def validate_categories(cls, v: Dict[str, Department]) -> Dict[str, Department]:
        """Normalize keys and reject routes to the Unassigned sentinel."""
        normalized = {}
        for category, department in v.items():
            key = normalize_key(category)
            if not key:
                raise ValueError("category names cannot be empty")
            if department not in ROUTABLE_DEPARTMENTS:
                raise ValueError(f"category {category!r} cannot route to {department.value}")
            normalized[key] = department
        return normalized


class DepartmentRouter:
    """Maps a complaint category to its canonical department."""

    def __init__(self, config: DepartmentConfig):
        self._config = config

    def resolve(self, category: Optional[str], strict: bool = False) -> Department:
        """
        Resolve a category to a department.

        Unknown categories return ``Department.UNASSIGNED`` and are logged
        for operator review, unless ``strict`` is set.

        Raises:
            UnknownCategoryException: only when ``strict`` is True
        """
        department = self._config.categories.get(normalize_key(category))
        if department is not None:
            return department

        if strict:
            raise UnknownCategoryException(category)

        logger.warning(
            "Unknown complaint category, routing to Unassigned",
            extra={"category": category, "error_type": "UnknownCategory"}
        )
        return Department.UNASSIGNED

    def is_known(self, category: Optional[str]) -> bool:
        return normalize_key(category) in self._config.categories


# ========== SLA clock ==========

class SLAConfig(BaseModel):
    """
    Resolution SLA durations in hours, keyed by category then priority.

    Lookup order: ``durations[category][priority]``, then
    ``durations[category]["default"]``, then ``default_hours``.
    """
    durations: Dict[str, Dict[str, float]] = Field(
        default_factory=lambda: {
            "electrical": {"default": 12, "high": 6, "critical": 4},
            "sanitation": {"default": 24, "high": 12, "critical": 6},
            "plumbing": {"default": 48, "high": 24, "critical": 12},
            "structural": {"default": 72, "high": 48, "critical": 24},
        },
        description="SLA hours by category and priority"
    )
    default_hours: float = Field(default=24, gt=0, description="Fallback SLA hours")
    priorities: List[str] = Field(
        default_factory=lambda: ["critical", "high", "medium", "low"],
        description="Priorities complaints may be filed with; duration keys are accepted too"
    )

    @field_validator("priorities")
    @classmethod
    def validate_priorities(cls, v: List[str]) -> List[str]:
        normalized = [normalize_key(p) for p in v]
        if not all(normalized):
            raise ValueError("priority names cannot be empty")
        return normalized

    @field_validator("durations")
    @classmethod
    def validate_durations(cls, v: Dict[str, Dict[str, float]]) -> Dict[str, Dict[str, float]]:
        """Normalize keys and require positive durations."""
        normalized = {}
        for category, by_priority in v.items():
            entries = {}
            for priority, hours in (by_priority or {}).items():
                if hours <= 0:
                    raise ValueError(f"SLA hours for {category}/{priority} must be positive")
                entries[normalize_key(priority)] = hours
            normalized[normalize_key(category)] = entries
        return normalized

    def known_priorities(self) -> Set[str]:
        """Configured priorities plus every priority named in the duration table."""
        known = set(self.priorities)
        for by_priority in self.durations.values():
            known.update(p for p in by_priority if p != "default")
        return known

    def hours_for(self, category: Optional[str], priority: Optional[str]) -> float:
        by_priority = self.durations.get(normalize_key(category), {})
        hours = by_priority.get(normalize_key(priority))
        if hours is None:
            hours = by_priority.get("default", self.default_hours)
        return hours

    def duration_for(self, category: Optional[str], priority: Optional[str]) -> timedelta:
        """Get the SLA duration for a category/priority pair."""
        return timedelta(hours=self.hours_for(category, priority))


class SLAClock:
    """
    Computes deadlines and overdue facts.

    Stateless apart from its configuration; ``evaluate`` never mutates the
    complaint, it returns what the caller should persist.
    """

    def __init__(self, config: SLAConfig):
        self._config = config

    def deadline(self, complaint: Complaint) -> datetime:
        """Deadline = created_at + configured duration."""
        return complaint.created_at + self._config.duration_for(
            complaint.category, complaint.priority
        )

    def evaluate(self, complaint: Complaint, now: datetime) -> SLAEvaluation:
        """
        Evaluate a complaint at ``now``.

        Terminal complaints report ``is_overdue=False`` and the remaining
        time frozen at their last evaluation.
        """
        deadline = complaint.sla.deadline or self.deadline(complaint)

        if complaint.is_terminal:
            if complaint.sla.time_remaining_seconds is not None:
                frozen = timedelta(seconds=complaint.sla.time_remaining_seconds)
            else:
                reference = (complaint.resolved_at or complaint.closed_at
                             or complaint.sla.evaluated_at or complaint.created_at)
                frozen = deadline - reference
            return SLAEvaluation(
                deadline=deadline,
                time_remaining=frozen,
                is_overdue=False,
                breached_at=complaint.sla.breached_at,
            )

        is_overdue = now > deadline
        breached_at = complaint.sla.breached_at
        newly_breached = False
        if is_overdue and breached_at is None:
            breached_at = now
            newly_breached = True

        return SLAEvaluation(
            deadline=deadline,
            time_remaining=deadline - now,
            is_overdue=is_overdue,
            breached_at=breached_at,
            overdue_for=max(now - deadline, timedelta(0)),
            newly_breached=newly_breached,
        )


# ========== Escalation ==========

AuthorityScope = Literal["department", "city", "global"]

SCOPE_FALLBACK: Dict[str, List[str]] = {
    "department": ["department", "city", "global"],
    "city": ["city", "global"],
    "global": ["global"],
}


class AuthorityConfig(BaseModel):
    """Who receives a complaint at a given escalation level."""
    level: int = Field(ge=1, le=3, description="Escalation level")
    role: Role = Field(default=Role.ADMIN, description="Role of the escalation target")
    scope: AuthorityScope = Field(default="city", description="Search scope for the target")


class EscalationConfig(BaseModel):
    """
    Escalation thresholds (hours) and authority targets per level.

    Overdue thresholds are measured from the SLA deadline.
    """
    warning_window_hours: float = Field(default=6, ge=0)
    critical_after_hours: float = Field(default=2, ge=0)
    final_after_hours: float = Field(default=24, ge=0)
    authorities: List[AuthorityConfig] = Field(
        default_factory=lambda: [
            AuthorityConfig(level=1, scope="department"),
            AuthorityConfig(level=2, scope="city"),
            AuthorityConfig(level=3, scope="global"),
        ]
    )

    @field_validator("final_after_hours")
    @classmethod
    def validate_final_after_critical(cls, v: float, info) -> float:
        critical = info.data.get("critical_after_hours")
        if critical is not None and v < critical:
            raise ValueError("final_after_hours must not be below critical_after_hours")
        return v

    def authority_for(self, level: int) -> AuthorityConfig:
        for authority in self.authorities:
            if authority.level == level:
                return authority
        return AuthorityConfig(level=level)


Guard = Callable[[SLAEvaluation], Optional[str]]


class EscalationPolicy:
    """
    Escalation state machine.

    The transition table maps each non-final level to its successor and
    the guard deciding whether the advance happens. A guard returns the
    escalation reason, or None to stay put. ``decide`` consults only the
    current level's entry, so a complaint climbs at most one tier per
    evaluation.
    """

    def __init__(self, config: EscalationConfig):
        self._config = config
        self._transitions: Dict[EscalationLevel, Tuple[EscalationLevel, Guard]] = {
            EscalationLevel.NORMAL: (EscalationLevel.WARNING, self._warning_guard),
            EscalationLevel.WARNING: (EscalationLevel.CRITICAL, self._critical_guard),
            EscalationLevel.CRITICAL: (EscalationLevel.FINAL, self._final_guard),
        }

    @property
    def config(self) -> EscalationConfig:
        return self._config

    def decide(
        self,
        complaint: Complaint,
        evaluation: SLAEvaluation
    ) -> Optional[EscalationStep]:
        """Return the next escalation step, or None when the level holds."""
        if complaint.is_terminal:
            return None

        current = EscalationLevel(complaint.escalation.level)
        transition = self._transitions.get(current)
        if transition is None:
            return None

        next_level, guard = transition
        reason = guard(evaluation)
        if reason is None:
            return None
        return EscalationStep(from_level=current, to_level=next_level, reason=reason)

    def _warning_guard(self, evaluation: SLAEvaluation) -> Optional[str]:
        if evaluation.is_overdue:
            return "SLA_BREACHED: deadline passed"
        window = timedelta(hours=self._config.warning_window_hours)
        if evaluation.time_remaining <= window:
            return f"SLA_AT_RISK: time remaining <= {format_hours(self._config.warning_window_hours)}"
        return None

    def _critical_guard(self, evaluation: SLAEvaluation) -> Optional[str]:
        threshold = timedelta(hours=self._config.critical_after_hours)
        if evaluation.is_overdue and evaluation.overdue_for > threshold:
            return f"SLA_CRITICAL: overdue > {format_hours(self._config.critical_after_hours)}"
        return None

    def _final_guard(self, evaluation: SLAEvaluation) -> Optional[str]:
        threshold = timedelta(hours=self._config.final_after_hours)
        if evaluation.is_overdue and evaluation.overdue_for > threshold:
            return f"SLA_FINAL: overdue > {format_hours(self._config.final_after_hours)}"
        return None
