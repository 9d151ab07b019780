"""
Complaint Controllers (API Routes)
==================================

FastAPI routes for complaint intake, status changes, the SLA read model
and operator actions (sweep trigger, department correction, assignment).

Controllers are thin - they delegate to application services.
"""

from typing import Optional

from fastapi import APIRouter, Depends, status

from resolvehub.complaints.application import (
    ComplaintCreateDTO, StatusUpdateDTO, FeedbackDTO, AssignmentRequestDTO,
    ComplaintResponse, ComplaintSLAResponse, SLAView, EscalationView, EscalationTarget,
    SweepSummaryResponse, CorrectionResponse, AssignmentResponse, SchedulerStatusResponse,
    ComplaintSLAView, SweepSummary
)
from resolvehub.complaints.domain import Complaint, SLAEvaluation, Staff
from resolvehub.complaints.interfaces.dependencies import EngineServices, get_services
from resolvehub.config import ComplaintStatus, ROUTABLE_DEPARTMENTS
from resolvehub.core import ValidationException
from resolvehub.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)
complaints_router = APIRouter(prefix="/complaints", tags=["Complaints"])
admin_router = APIRouter(prefix="/admin", tags=["Operations"])


# ========== Example payloads for Swagger ==========

COMPLAINT_CREATE_EXAMPLE = {
    "id": "CMP-1001",
    "title": "Water pipe burst near market",
    "description": "Main supply line leaking since morning",
    "category": "plumbing",
    "city": "Prayagraj",
    "priority": "medium",
    "submittedBy": "citizen-42",
}


# ========== Mapping helpers ==========

def _sla_view(evaluation: SLAEvaluation) -> SLAView:
    return SLAView(
        deadline=evaluation.deadline,
        time_remaining=evaluation.time_remaining_seconds,
        is_overdue=evaluation.is_overdue,
        breached_at=evaluation.breached_at,
    )


def _escalation_view(complaint: Complaint, target: Optional[Staff] = None) -> EscalationView:
    escalated_to = None
    if target is not None:
        escalated_to = EscalationTarget(id=target.id, name=target.name, role=target.role.value)
    return EscalationView(
        level=int(complaint.escalation.level),
        escalated_at=complaint.escalation.escalated_at,
        escalation_reason=complaint.escalation.escalation_reason,
        escalated_to=escalated_to,
    )


def _complaint_response(complaint: Complaint, services: EngineServices) -> ComplaintResponse:
    evaluation = services.complaints.evaluate(complaint, services.clock())
    return ComplaintResponse(
        id=complaint.id,
        title=complaint.title,
        category=complaint.category,
        department=complaint.department,
        city=complaint.city,
        priority=complaint.priority,
        status=complaint.status,
        created_at=complaint.created_at,
        assigned_to=complaint.assigned_to,
        assigned_users=list(complaint.assigned_users),
        flagged_for_review=complaint.flagged_for_review,
        resolved_at=complaint.resolved_at,
        closed_at=complaint.closed_at,
        points_awarded=complaint.points_awarded,
        feedback_rating=complaint.feedback_rating,
        feedback_comment=complaint.feedback_comment,
        sla=_sla_view(evaluation),
        escalation=_escalation_view(complaint),
    )


def _sla_response(view: ComplaintSLAView) -> ComplaintSLAResponse:
    return ComplaintSLAResponse(
        complaint_id=view.complaint.id,
        status=view.complaint.status,
        sla=_sla_view(view.evaluation),
        escalation=_escalation_view(view.complaint, view.escalated_to),
    )


def _sweep_response(summary: SweepSummary) -> SweepSummaryResponse:
    return SweepSummaryResponse(
        started_at=summary.started_at,
        evaluated=summary.evaluated,
        breached=summary.breached,
        escalated=summary.escalated,
        assigned=summary.assigned,
        deferred=summary.deferred,
        failed=summary.failed,
        skipped=summary.skipped,
        aborted=summary.aborted,
        error=summary.error,
    )


# ========== Complaint routes ==========

@complaints_router.post(
    "",
    response_model=ComplaintResponse,
    response_model_by_alias=True,
    status_code=status.HTTP_201_CREATED,
    summary="File a complaint",
    description="Routes the category to a department, sets the SLA deadline and binds staff.",
    openapi_extra={"requestBody": {"content": {"application/json": {"example": COMPLAINT_CREATE_EXAMPLE}}}},
)
async def create_complaint(
    payload: ComplaintCreateDTO,
    services: EngineServices = Depends(get_services)
) -> ComplaintResponse:
    complaint = Complaint(
        id=payload.id,
        title=payload.title,
        description=payload.description,
        category=payload.category,
        city=payload.city,
        priority=payload.priority,
        status=ComplaintStatus.OPEN,
        created_at=payload.created_at or services.clock(),
        submitted_by=payload.submitted_by,
        department=payload.department,
    )
    created = await services.complaints.register(complaint)
    return _complaint_response(created, services)


@complaints_router.get(
    "/{complaint_id}/sla",
    response_model=ComplaintSLAResponse,
    response_model_by_alias=True,
    summary="SLA and escalation state of a complaint",
)
async def get_complaint_sla(
    complaint_id: str,
    services: EngineServices = Depends(get_services)
) -> ComplaintSLAResponse:
    view = await services.complaints.get_sla_view(complaint_id, services.clock())
    return _sla_response(view)


@complaints_router.put(
    "/{complaint_id}/status",
    response_model=ComplaintResponse,
    response_model_by_alias=True,
    summary="Move a complaint forward",
    description="Statuses only move forward. Resolving credits the owning staff member.",
)
async def update_complaint_status(
    complaint_id: str,
    payload: StatusUpdateDTO,
    services: EngineServices = Depends(get_services)
) -> ComplaintResponse:
    updated = await services.complaints.update_status(complaint_id, payload.status, services.clock())
    return _complaint_response(updated, services)


@complaints_router.post(
    "/{complaint_id}/feedback",
    response_model=ComplaintResponse,
    response_model_by_alias=True,
    summary="Rate a resolved complaint",
    description="Accepted once per resolved or closed complaint. High ratings earn the owner a bonus.",
)
async def submit_feedback(
    complaint_id: str,
    payload: FeedbackDTO,
    services: EngineServices = Depends(get_services)
) -> ComplaintResponse:
    updated = await services.complaints.record_feedback(complaint_id, payload.rating, payload.comment)
    return _complaint_response(updated, services)


# ========== Operator routes ==========

@admin_router.post(
    "/sla/sweep",
    response_model=SweepSummaryResponse,
    response_model_by_alias=True,
    summary="Run an SLA sweep now",
)
async def trigger_sweep(services: EngineServices = Depends(get_services)) -> SweepSummaryResponse:
    if services.scheduler is not None:
        summary = await services.scheduler.trigger_now()
    else:
        summary = await services.sweep.tick(services.clock())
    return _sweep_response(summary)


@admin_router.get(
    "/sla/scheduler",
    response_model=SchedulerStatusResponse,
    response_model_by_alias=True,
    summary="Scheduler state and last sweep",
)
async def scheduler_status(services: EngineServices = Depends(get_services)) -> SchedulerStatusResponse:
    scheduler = services.scheduler
    last = services.sweep.last_summary
    return SchedulerStatusResponse(
        running=bool(scheduler and scheduler.is_running),
        interval_seconds=scheduler.interval_seconds if scheduler else 0,
        next_run_at=scheduler.next_run_at if scheduler else None,
        sweep_in_progress=services.sweep.is_running,
        last_sweep=_sweep_response(last) if last else None,
    )


@admin_router.post(
    "/departments/correct",
    response_model=CorrectionResponse,
    response_model_by_alias=True,
    summary="Fill in missing departments",
)
async def correct_departments(services: EngineServices = Depends(get_services)) -> CorrectionResponse:
    result = await services.routing.correct_missing_departments()
    return CorrectionResponse(
        scanned=result.scanned,
        corrected=result.corrected,
        unresolved=result.unresolved,
        conflicts=result.conflicts,
    )


@admin_router.post(
    "/assignments",
    response_model=AssignmentResponse,
    response_model_by_alias=True,
    summary="Assign staff to a city/department scope",
)
async def run_assignment(
    payload: AssignmentRequestDTO,
    services: EngineServices = Depends(get_services)
) -> AssignmentResponse:
    if payload.department not in {d.value for d in ROUTABLE_DEPARTMENTS}:
        raise ValidationException(
            f"Staff cannot be assigned to department {payload.department!r}",
            {"department": payload.department}
        )
    result = await services.resolver.assign(payload.city, payload.department, payload.statuses)
    logger.info(
        "Assignment run completed",
        extra={
            "city": payload.city,
            "department": payload.department,
            "updated_count": result.updated_count,
            "no_eligible_staff": result.no_eligible_staff
        }
    )
    return AssignmentResponse(
        updated_count=result.updated_count,
        staff_id=result.staff_id,
        no_eligible_staff=result.no_eligible_staff,
        conflicts=result.conflicts,
    )
