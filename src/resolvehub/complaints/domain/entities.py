"""
Complaint Domain Entities
=========================

Pure Python domain entities for complaint tracking.

Following Domain-Driven Design principles, these entities contain
business logic and are free of infrastructure concerns.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Optional, List

from resolvehub.config import (
    ComplaintStatus, Department, EscalationLevel, Role,
    ACTIVE_STATUSES, TERMINAL_STATUSES, STATUS_ORDER
)
from resolvehub.core import InvalidStatusTransitionException


@dataclass
class SLARecord:
    """SLA fields persisted on a complaint."""
    deadline: Optional[datetime] = None
    breached_at: Optional[datetime] = None
    time_remaining_seconds: Optional[float] = None
    evaluated_at: Optional[datetime] = None


@dataclass
class EscalationRecord:
    """Escalation fields persisted on a complaint."""
    level: EscalationLevel = EscalationLevel.NORMAL
    escalated_at: Optional[datetime] = None
    escalation_reason: Optional[str] = None
    escalated_to: Optional[str] = None


@dataclass
class Complaint:
    """
    Complaint entity.

    Carries routing, ownership, SLA and escalation state. The ``version``
    counter is bumped by the repository on every write and is what
    conditional updates compare against.
    """

    # Core attributes
    id: str
    category: Optional[str]
    city: str
    priority: str
    status: ComplaintStatus
    created_at: datetime

    title: str = ""
    description: str = ""
    submitted_by: Optional[str] = None
    department: Optional[str] = None

    # Ownership
    assigned_to: Optional[str] = None
    assigned_users: List[str] = field(default_factory=list)

    sla: SLARecord = field(default_factory=SLARecord)
    escalation: EscalationRecord = field(default_factory=EscalationRecord)

    resolved_at: Optional[datetime] = None
    closed_at: Optional[datetime] = None
    flagged_for_review: bool = False
    points_awarded: Optional[int] = None

    # Citizen feedback, recorded once after resolution
    feedback_rating: Optional[int] = None
    feedback_comment: Optional[str] = None

    version: int = 0

    @property
    def is_active(self) -> bool:
        """Check if the complaint is still subject to SLA evaluation."""
        return self.status in ACTIVE_STATUSES

    @property
    def is_terminal(self) -> bool:
        """Check if the complaint is resolved or closed."""
        return self.status in TERMINAL_STATUSES

    @property
    def has_department(self) -> bool:
        """True when a department value is present (the Unassigned sentinel counts)."""
        return bool(self.department and self.department.strip())

    @property
    def is_routed(self) -> bool:
        """True when the complaint sits in a real department."""
        return self.has_department and self.department != Department.UNASSIGNED.value

    def can_transition_to(self, status: ComplaintStatus) -> bool:
        """Statuses only move forward."""
        return STATUS_ORDER.index(status) > STATUS_ORDER.index(self.status)

    def transition_to(self, status: ComplaintStatus, timestamp: datetime) -> None:
        """
        Move the complaint forward in its lifecycle.

        Raises:
            InvalidStatusTransitionException: for same or backward moves
        """
        if not self.can_transition_to(status):
            raise InvalidStatusTransitionException(self.id, self.status.value, status.value)

        self.status = status
        if status in TERMINAL_STATUSES and self.resolved_at is None:
            self.resolved_at = timestamp
        if status == ComplaintStatus.CLOSED:
            self.closed_at = timestamp

    def grant_access(self, staff_id: str) -> bool:
        """Add a staff member to assigned_users; returns False if already present."""
        if staff_id in self.assigned_users:
            return False
        self.assigned_users.append(staff_id)
        return True

    def assign_owner(self, staff_id: str) -> bool:
        """Set the primary owner; returns True if anything changed."""
        changed = self.assigned_to != staff_id
        self.assigned_to = staff_id
        return self.grant_access(staff_id) or changed

    def resolved_before_deadline(self) -> bool:
        """True when the complaint was resolved no later than its deadline."""
        if self.resolved_at is None or self.sla.deadline is None:
            return False
        return self.resolved_at <= self.sla.deadline

    def to_record(self) -> dict:
        """
        Flatten into the persisted field names.

        These keys are what repositories accept in filters, expected-state
        guards and patches.
        """
        return {
            "id": self.id,
            "category": self.category,
            "department": self.department,
            "city": self.city,
            "priority": self.priority,
            "status": self.status.value,
            "title": self.title,
            "description": self.description,
            "submitted_by": self.submitted_by,
            "created_at": self.created_at,
            "assigned_to": self.assigned_to,
            "assigned_users": list(self.assigned_users),
            "sla_deadline": self.sla.deadline,
            "sla_breached_at": self.sla.breached_at,
            "sla_time_remaining_seconds": self.sla.time_remaining_seconds,
            "sla_evaluated_at": self.sla.evaluated_at,
            "escalation_level": int(self.escalation.level),
            "escalated_at": self.escalation.escalated_at,
            "escalation_reason": self.escalation.escalation_reason,
            "escalated_to": self.escalation.escalated_to,
            "resolved_at": self.resolved_at,
            "closed_at": self.closed_at,
            "flagged_for_review": self.flagged_for_review,
            "points_awarded": self.points_awarded,
            "feedback_rating": self.feedback_rating,
            "feedback_comment": self.feedback_comment,
            "version": self.version,
        }

    @classmethod
    def from_record(cls, record: dict) -> "Complaint":
        """Rebuild a complaint from persisted field names."""
        return cls(
            id=record["id"],
            category=record.get("category"),
            department=record.get("department"),
            city=record["city"],
            priority=record.get("priority") or "medium",
            status=ComplaintStatus(record["status"]),
            title=record.get("title") or "",
            description=record.get("description") or "",
            submitted_by=record.get("submitted_by"),
            created_at=record["created_at"],
            assigned_to=record.get("assigned_to"),
            assigned_users=list(record.get("assigned_users") or []),
            sla=SLARecord(
                deadline=record.get("sla_deadline"),
                breached_at=record.get("sla_breached_at"),
                time_remaining_seconds=record.get("sla_time_remaining_seconds"),
                evaluated_at=record.get("sla_evaluated_at"),
            ),
            escalation=EscalationRecord(
                level=EscalationLevel(record.get("escalation_level") or 0),
                escalated_at=record.get("escalated_at"),
                escalation_reason=record.get("escalation_reason"),
                escalated_to=record.get("escalated_to"),
            ),
            resolved_at=record.get("resolved_at"),
            closed_at=record.get("closed_at"),
            flagged_for_review=bool(record.get("flagged_for_review")),
            points_awarded=record.get("points_awarded"),
            feedback_rating=record.get("feedback_rating"),
            feedback_comment=record.get("feedback_comment"),
            version=record.get("version") or 0,
        )


@dataclass
class Staff:
    """
    Staff (or admin) identity as supplied by the identity provider,
    plus the gamification counters kept on the same record.
    """
    id: str
    name: str
    role: Role
    department: Optional[str]
    city: Optional[str]
    points: int = 0
    resolution_streak: int = 0
    badge: Optional[str] = None

    def __post_init__(self):
        if self.points < 0:
            raise ValueError("points cannot be negative")

    def to_record(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "role": self.role.value,
            "department": self.department,
            "city": self.city,
            "points": self.points,
            "resolution_streak": self.resolution_streak,
            "badge": self.badge,
        }

    @classmethod
    def from_record(cls, record: dict) -> "Staff":
        return cls(
            id=record["id"],
            name=record.get("name") or "",
            role=Role(record["role"]),
            department=record.get("department"),
            city=record.get("city"),
            points=record.get("points") or 0,
            resolution_streak=record.get("resolution_streak") or 0,
            badge=record.get("badge"),
        )

    def is_eligible_for(self, city: str, department: str) -> bool:
        """Check if this staff member may own complaints in the scope."""
        return (
            self.role == Role.STAFF
            and self.city == city
            and self.department == department
        )


@dataclass(frozen=True)
class SLAEvaluation:
    """
    Result of evaluating a complaint against its deadline at a point in time.

    ``overdue_for`` is how far past the deadline the complaint is (zero
    when not overdue); ``newly_breached`` marks the evaluation that set
    ``breached_at``.
    """
    deadline: datetime
    time_remaining: timedelta
    is_overdue: bool
    breached_at: Optional[datetime]
    overdue_for: timedelta = timedelta(0)
    newly_breached: bool = False

    @property
    def time_remaining_seconds(self) -> float:
        return self.time_remaining.total_seconds()


@dataclass(frozen=True)
class EscalationStep:
    """A single-tier escalation decided by the escalation policy."""
    from_level: EscalationLevel
    to_level: EscalationLevel
    reason: str
