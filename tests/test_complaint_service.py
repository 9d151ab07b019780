"""Tests for complaint intake, status transitions and the SLA read model."""

from __future__ import annotations

import pytest

from conftest import T0, hours, make_complaint
from resolvehub.config import ComplaintStatus, EscalationLevel, NotificationEvent
from resolvehub.core import (
    DomainException,
    InvalidStatusTransitionException,
    ResourceNotFoundException,
    ValidationException,
)


class TestRegister:
    async def test_routes_sets_deadline_and_assigns(self, services, complaint_repo, notifier) -> None:
        complaint = make_complaint("c-1", department=None, submitted_by="citizen-1")

        created = await services.complaints.register(complaint)

        assert created.department == "Structural"
        assert created.sla.deadline == T0 + hours(48)
        assert created.assigned_to == "staff-1"
        assert created.flagged_for_review is False
        assert complaint_repo.stored("c-1").assigned_users == ["staff-1"]
        await services.notifier.drain()
        assert notifier.events(NotificationEvent.ASSIGNED)[0][0] == "staff-1"

    async def test_unknown_category_is_flagged(self, services, complaint_repo) -> None:
        complaint = make_complaint("c-1", category="graffiti", department=None)

        created = await services.complaints.register(complaint)

        assert created.department == "Unassigned"
        assert created.flagged_for_review is True
        assert created.assigned_to is None, "unassigned complaints have no department staff"

    async def test_manual_department_is_kept(self, services) -> None:
        complaint = make_complaint("c-1", category="plumbing", department="Structural")

        created = await services.complaints.register(complaint)

        assert created.department == "Structural"
        assert created.sla.deadline == T0 + hours(24), "plumbing/high SLA still applies"

    async def test_no_staff_leaves_complaint_unassigned(self, services, staff_repo) -> None:
        staff_repo.records.pop("staff-1")

        created = await services.complaints.register(make_complaint("c-1", department=None))

        assert created.assigned_to is None
        assert created.department == "Structural"

    async def test_priority_is_normalized(self, services) -> None:
        created = await services.complaints.register(make_complaint("c-1", priority=" High "))

        assert created.priority == "high"
        assert created.sla.deadline == T0 + hours(48)

    async def test_unknown_priority_rejected(self, services, complaint_repo) -> None:
        with pytest.raises(ValidationException):
            await services.complaints.register(make_complaint("c-1", priority="someday"))

        assert "c-1" not in complaint_repo.records


class TestUpdateStatus:
    async def test_forward_transition(self, services, complaint_repo, notifier) -> None:
        await services.complaints.register(make_complaint("c-1", submitted_by="citizen-1"))

        updated = await services.complaints.update_status("c-1", ComplaintStatus.IN_PROGRESS, T0 + hours(1))

        assert updated.status == ComplaintStatus.IN_PROGRESS
        await services.notifier.drain()
        events = notifier.events(NotificationEvent.STATUS_CHANGED)
        assert events[0][0] == "citizen-1"
        assert events[0][2]["previous_status"] == "OPEN"

    async def test_skipping_forward_is_allowed(self, services) -> None:
        await services.complaints.register(make_complaint("c-1"))
        updated = await services.complaints.update_status("c-1", ComplaintStatus.RESOLVED, T0 + hours(2))
        assert updated.resolved_at == T0 + hours(2)

    @pytest.mark.parametrize(
        "start, target",
        [
            (ComplaintStatus.IN_PROGRESS, ComplaintStatus.OPEN),
            (ComplaintStatus.RESOLVED, ComplaintStatus.IN_PROGRESS),
            (ComplaintStatus.OPEN, ComplaintStatus.OPEN),
        ],
    )
    async def test_backward_or_same_transition_rejected(self, services, complaint_repo, start, target) -> None:
        await complaint_repo.create(make_complaint("c-1", status=start))

        with pytest.raises(InvalidStatusTransitionException):
            await services.complaints.update_status("c-1", target, T0 + hours(1))

        assert complaint_repo.stored("c-1").status == start

    async def test_unknown_complaint(self, services) -> None:
        with pytest.raises(ResourceNotFoundException):
            await services.complaints.update_status("missing", ComplaintStatus.RESOLVED, T0)

    async def test_resolution_freezes_sla(self, services, complaint_repo) -> None:
        await services.complaints.register(make_complaint("c-1"))

        await services.complaints.update_status("c-1", ComplaintStatus.RESOLVED, T0 + hours(50))

        stored = complaint_repo.stored("c-1")
        assert stored.sla.breached_at == T0 + hours(50), "final evaluation records a late resolution"
        assert stored.sla.time_remaining_seconds == -hours(2).total_seconds()

        view = await services.complaints.get_sla_view("c-1", T0 + hours(400))
        assert view.evaluation.is_overdue is False
        assert view.evaluation.time_remaining == -hours(2)

    async def test_closing_after_resolution_keeps_resolved_at(self, services, complaint_repo) -> None:
        await services.complaints.register(make_complaint("c-1"))
        await services.complaints.update_status("c-1", ComplaintStatus.RESOLVED, T0 + hours(5))

        closed = await services.complaints.update_status("c-1", ComplaintStatus.CLOSED, T0 + hours(9))

        assert closed.resolved_at == T0 + hours(5)
        assert closed.closed_at == T0 + hours(9)

    async def test_resolution_credits_owner_once(self, services, staff_repo) -> None:
        await services.complaints.register(make_complaint("c-1"))

        await services.complaints.update_status("c-1", ComplaintStatus.RESOLVED, T0 + hours(5))
        await services.complaints.update_status("c-1", ComplaintStatus.CLOSED, T0 + hours(6))

        staff = staff_repo.stored("staff-1")
        assert staff.points == 10, "base 7 + speed bonus 3, credited once"
        assert staff.resolution_streak == 1


class TestSLAView:
    async def test_view_reports_escalation_target(self, services, complaint_repo) -> None:
        await services.complaints.register(make_complaint("c-1"))
        await services.sweep.tick(T0 + hours(44))

        view = await services.complaints.get_sla_view("c-1", T0 + hours(45))

        assert view.evaluation.time_remaining == hours(3)
        assert view.evaluation.is_overdue is False
        assert view.complaint.escalation.level == EscalationLevel.WARNING
        assert view.escalated_to.id == "head-1"
        assert view.escalated_to.name == "Staff head-1"

    async def test_view_is_read_only(self, services, complaint_repo) -> None:
        await services.complaints.register(make_complaint("c-1"))
        writes = len(complaint_repo.update_calls)

        view = await services.complaints.get_sla_view("c-1", T0 + hours(60))

        assert view.evaluation.is_overdue is True
        assert len(complaint_repo.update_calls) == writes
        assert complaint_repo.stored("c-1").sla.breached_at is None


class TestRecordFeedback:
    async def _resolved(self, services, complaint_repo) -> None:
        await complaint_repo.create(make_complaint(
            "c-1", submitted_by="citizen-1", assigned_to="staff-1", assigned_users=["staff-1"]
        ))
        await services.complaints.update_status("c-1", ComplaintStatus.RESOLVED, T0 + hours(5))

    async def test_rating_is_stored(self, services, complaint_repo) -> None:
        await self._resolved(services, complaint_repo)

        rated = await services.complaints.record_feedback("c-1", 4, "Thanks")

        assert rated.feedback_rating == 4
        assert complaint_repo.stored("c-1").feedback_comment == "Thanks"

    async def test_feedback_only_once(self, services, complaint_repo, staff_repo) -> None:
        await self._resolved(services, complaint_repo)
        await services.complaints.record_feedback("c-1", 5)

        with pytest.raises(DomainException):
            await services.complaints.record_feedback("c-1", 5)

        assert complaint_repo.stored("c-1").feedback_rating == 5
        assert staff_repo.stored("staff-1").points == 25

    async def test_concurrent_rating_is_not_overwritten(self, services, complaint_repo) -> None:
        await self._resolved(services, complaint_repo)
        original_update_if = complaint_repo.update_if

        async def racing_update_if(complaint_id, expected, patch):
            if "feedback_rating" in patch:
                complaint_repo.tamper(complaint_id, feedback_rating=1)
            return await original_update_if(complaint_id, expected, patch)

        complaint_repo.update_if = racing_update_if
        with pytest.raises(DomainException):
            await services.complaints.record_feedback("c-1", 5)

        assert complaint_repo.stored("c-1").feedback_rating == 1

    async def test_open_complaint_cannot_be_rated(self, services, complaint_repo) -> None:
        await complaint_repo.create(make_complaint("c-1"))

        with pytest.raises(DomainException):
            await services.complaints.record_feedback("c-1", 5)

    @pytest.mark.parametrize("rating", [0, 6, -1])
    async def test_rating_out_of_range(self, services, complaint_repo, rating) -> None:
        await self._resolved(services, complaint_repo)

        with pytest.raises(ValidationException):
            await services.complaints.record_feedback("c-1", rating)
        assert complaint_repo.stored("c-1").feedback_rating is None

    async def test_low_rating_alerts_final_authority(self, services, complaint_repo, notifier) -> None:
        await self._resolved(services, complaint_repo)

        await services.complaints.record_feedback("c-1", 1, "Still leaking")
        await services.notifier.drain()

        alerts = notifier.events(NotificationEvent.LOW_FEEDBACK)
        assert [recipient for recipient, _, _ in alerts] == ["global-1"]
        assert alerts[0][2]["rating"] == 1
        assert alerts[0][2]["comment"] == "Still leaking"

    async def test_unknown_complaint(self, services) -> None:
        with pytest.raises(ResourceNotFoundException):
            await services.complaints.record_feedback("missing", 5)
