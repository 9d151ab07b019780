"""
Complaints Application Layer
============================

Application layer for the complaint engine.

Contains:
- Services: routing correction, assignment, escalation, the SLA sweep and
  the complaint lifecycle
- DTOs: camelCase request/response models for the API

This layer depends on the domain layer and repository interfaces,
but not on concrete infrastructure implementations.
"""

from resolvehub.complaints.application.dto import (
    ComplaintCreateDTO,
    StatusUpdateDTO,
    FeedbackDTO,
    AssignmentRequestDTO,
    SLAView,
    EscalationTarget,
    EscalationView,
    ComplaintResponse,
    ComplaintSLAResponse,
    SweepSummaryResponse,
    CorrectionResponse,
    AssignmentResponse,
    SchedulerStatusResponse,
)
from resolvehub.complaints.application.services import (
    IComplaintRepository,
    IStaffRepository,
    INotificationDispatcher,
    IEngineConfigProvider,
    IResolutionListener,
    ConditionalWriter,
    BackgroundNotificationDispatcher,
    dispatch_notification,
    CorrectionResult,
    DepartmentRoutingService,
    AssignmentResult,
    AssignmentResolver,
    EscalationEngine,
    SweepSummary,
    SweepService,
    ComplaintSLAView,
    ComplaintService,
)

__all__ = [
    # DTOs
    "ComplaintCreateDTO",
    "StatusUpdateDTO",
    "FeedbackDTO",
    "AssignmentRequestDTO",
    "SLAView",
    "EscalationTarget",
    "EscalationView",
    "ComplaintResponse",
    "ComplaintSLAResponse",
    "SweepSummaryResponse",
    "CorrectionResponse",
    "AssignmentResponse",
    "SchedulerStatusResponse",
    # Repository Interfaces
    "IComplaintRepository",
    "IStaffRepository",
    "INotificationDispatcher",
    "IEngineConfigProvider",
    "IResolutionListener",
    # Services
    "ConditionalWriter",
    "BackgroundNotificationDispatcher",
    "dispatch_notification",
    "CorrectionResult",
    "DepartmentRoutingService",
    "AssignmentResult",
    "AssignmentResolver",
    "EscalationEngine",
    "SweepSummary",
    "SweepService",
    "ComplaintSLAView",
    "ComplaintService",
]
