"""
Complaint Domain Layer
======================

Contains:
- Entities: Complaint, Staff, SLA/escalation records and evaluation results
- Value Objects: routing, SLA and escalation configuration
- Domain Services: DepartmentRouter, SLAClock, EscalationPolicy

This layer has no dependencies on infrastructure - pure Python business logic.
"""

from resolvehub.complaints.domain.entities import (
    Complaint,
    Staff,
    SLARecord,
    EscalationRecord,
    SLAEvaluation,
    EscalationStep,
)
from resolvehub.complaints.domain.value_objects import (
    DepartmentConfig,
    DepartmentRouter,
    SLAConfig,
    SLAClock,
    AuthorityConfig,
    EscalationConfig,
    EscalationPolicy,
    SCOPE_FALLBACK,
)

__all__ = [
    # Entities
    "Complaint",
    "Staff",
    "SLARecord",
    "EscalationRecord",
    "SLAEvaluation",
    "EscalationStep",
    # Value Objects & Services
    "DepartmentConfig",
    "DepartmentRouter",
    "SLAConfig",
    "SLAClock",
    "AuthorityConfig",
    "EscalationConfig",
    "EscalationPolicy",
    "SCOPE_FALLBACK",
]
