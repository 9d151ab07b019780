"""
Complaint Application DTOs
==========================

Data Transfer Objects for the complaint API layer.

Responses use camelCase field names (the read model presentation layers
consume); requests accept either camelCase or snake_case.
"""

from datetime import datetime, timezone
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from resolvehub.config import ComplaintStatus


class CamelModel(BaseModel):
    """Base model serializing to camelCase."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ========== Request DTOs ==========

class ComplaintCreateDTO(CamelModel):
    """DTO for filing a complaint."""
    id: str = Field(..., min_length=1, description="Unique complaint ID")
    title: str = Field(..., min_length=1, description="Short summary")
    description: str = Field(default="", description="Complaint details")
    category: Optional[str] = Field(None, description="Reported category")
    city: str = Field(..., min_length=1, description="City the complaint belongs to")
    priority: str = Field(default="medium", min_length=1, description="Complaint priority (one of the configured priorities)")
    submitted_by: Optional[str] = Field(None, description="Citizen user ID")
    department: Optional[str] = Field(None, description="Manual department override")
    created_at: Optional[datetime] = Field(None, description="Filing time (defaults to now)")

    @field_validator("created_at")
    @classmethod
    def validate_created_at(cls, v: Optional[datetime]) -> Optional[datetime]:
        """Timestamps without an offset are taken as UTC."""
        if v is not None and v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v


class StatusUpdateDTO(CamelModel):
    """DTO for a status transition."""
    status: ComplaintStatus = Field(..., description="Target status")


class FeedbackDTO(CamelModel):
    """DTO for a citizen rating a finished complaint."""
    rating: int = Field(..., description="Rating from 1 to 5")
    comment: Optional[str] = Field(None, max_length=2000, description="Free-text feedback")


class AssignmentRequestDTO(CamelModel):
    """DTO for an assignment run."""
    city: str = Field(..., min_length=1)
    department: str = Field(..., min_length=1)
    statuses: List[ComplaintStatus] = Field(
        default_factory=lambda: [ComplaintStatus.OPEN, ComplaintStatus.IN_PROGRESS],
        description="Statuses eligible for assignment"
    )


# ========== Response DTOs ==========

class SLAView(CamelModel):
    """SLA block of the read model. ``time_remaining`` is in seconds."""
    deadline: datetime
    time_remaining: float
    is_overdue: bool
    breached_at: Optional[datetime] = None


class EscalationTarget(CamelModel):
    id: str
    name: str
    role: str


class EscalationView(CamelModel):
    """Escalation block of the read model."""
    level: int
    escalated_at: Optional[datetime] = None
    escalation_reason: Optional[str] = None
    escalated_to: Optional[EscalationTarget] = None


class ComplaintResponse(CamelModel):
    """Complaint state returned by intake and status updates."""
    id: str
    title: str
    category: Optional[str] = None
    department: Optional[str] = None
    city: str
    priority: str
    status: ComplaintStatus
    created_at: datetime
    assigned_to: Optional[str] = None
    assigned_users: List[str] = Field(default_factory=list)
    flagged_for_review: bool = False
    resolved_at: Optional[datetime] = None
    closed_at: Optional[datetime] = None
    points_awarded: Optional[int] = None
    feedback_rating: Optional[int] = None
    feedback_comment: Optional[str] = None
    sla: Optional[SLAView] = None
    escalation: EscalationView


class ComplaintSLAResponse(CamelModel):
    """Per-complaint read model."""
    complaint_id: str
    status: ComplaintStatus
    sla: SLAView
    escalation: EscalationView


class SweepSummaryResponse(CamelModel):
    """Counters for a sweep."""
    started_at: datetime
    evaluated: int
    breached: int
    escalated: int
    assigned: int
    deferred: int
    failed: int
    skipped: bool
    aborted: bool
    error: Optional[str] = None


class CorrectionResponse(CamelModel):
    scanned: int
    corrected: int
    unresolved: int
    conflicts: int


class AssignmentResponse(CamelModel):
    updated_count: int
    staff_id: Optional[str] = None
    no_eligible_staff: bool
    conflicts: int


class SchedulerStatusResponse(CamelModel):
    """Scheduler state and the last sweep."""
    running: bool
    interval_seconds: int
    next_run_at: Optional[datetime] = None
    sweep_in_progress: bool
    last_sweep: Optional[SweepSummaryResponse] = None
