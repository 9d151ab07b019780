"""Tests for the periodic SLA sweep: isolation, overlap, aborts and notifications."""

from __future__ import annotations

import asyncio

from conftest import T0, FakeComplaintRepository, FakeNotifier, hours, make_complaint
from resolvehub.complaints.interfaces import build_services
from resolvehub.config import ComplaintStatus, EscalationLevel, NotificationEvent


class TestSweepBasics:
    async def test_only_active_complaints_are_evaluated(self, services, complaint_repo) -> None:
        await complaint_repo.create(make_complaint("open", assigned_to="staff-1", assigned_users=["staff-1"]))
        await complaint_repo.create(make_complaint(
            "wip", status=ComplaintStatus.IN_PROGRESS, assigned_to="staff-1", assigned_users=["staff-1"]
        ))
        await complaint_repo.create(make_complaint("done", status=ComplaintStatus.RESOLVED))
        await complaint_repo.create(make_complaint("closed", status=ComplaintStatus.CLOSED))

        summary = await services.sweep.tick(T0 + hours(1))

        assert summary.evaluated == 2
        touched = {call[0] for call in complaint_repo.update_calls}
        assert touched == {"open", "wip"}

    async def test_sweep_persists_sla_snapshot(self, services, complaint_repo) -> None:
        await complaint_repo.create(make_complaint("c-1", assigned_to="staff-1", assigned_users=["staff-1"]))

        await services.sweep.tick(T0 + hours(10))

        stored = complaint_repo.stored("c-1")
        assert stored.sla.deadline == T0 + hours(48)
        assert stored.sla.time_remaining_seconds == hours(38).total_seconds()
        assert stored.sla.evaluated_at == T0 + hours(10)
        assert stored.escalation.level == EscalationLevel.NORMAL

    async def test_summary_counts_breaches_and_escalations(self, services, complaint_repo) -> None:
        await complaint_repo.create(make_complaint("late", assigned_to="staff-1", assigned_users=["staff-1"]))
        await complaint_repo.create(make_complaint(
            "fresh", created_at=T0 + hours(40), assigned_to="staff-1", assigned_users=["staff-1"]
        ))

        summary = await services.sweep.tick(T0 + hours(49))

        assert summary.breached == 1
        assert summary.escalated == 1
        assert summary.escalations[0]["complaint_id"] == "late"
        assert services.sweep.last_summary is summary

    async def test_unowned_complaints_are_assigned_before_evaluation(self, services, complaint_repo, notifier) -> None:
        await complaint_repo.create(make_complaint("c-1"))

        summary = await services.sweep.tick(T0 + hours(1))

        assert summary.assigned == 1
        assert complaint_repo.stored("c-1").assigned_to == "staff-1"
        await services.notifier.drain()
        assert len(notifier.events(NotificationEvent.ASSIGNED)) == 1

    async def test_unassigned_department_is_not_assigned(self, services, complaint_repo) -> None:
        await complaint_repo.create(make_complaint("c-1", category="graffiti", department="Unassigned"))

        summary = await services.sweep.tick(T0 + hours(1))

        assert summary.assigned == 0
        assert summary.evaluated == 1, "unrouted complaints still get SLA tracking"


class TestSweepFailures:
    async def test_one_failure_does_not_stop_the_others(self, services, complaint_repo) -> None:
        for complaint_id in ("c-1", "c-2", "c-3"):
            await complaint_repo.create(make_complaint(
                complaint_id, assigned_to="staff-1", assigned_users=["staff-1"]
            ))
        complaint_repo.broken_ids.add("c-2")

        summary = await services.sweep.tick(T0 + hours(44))

        assert summary.failed == 1
        assert summary.evaluated == 2
        assert complaint_repo.stored("c-1").escalation.level == EscalationLevel.WARNING
        assert complaint_repo.stored("c-3").escalation.level == EscalationLevel.WARNING

    async def test_conflicting_complaint_is_deferred(self, services, complaint_repo) -> None:
        await complaint_repo.create(make_complaint("c-1", assigned_to="staff-1", assigned_users=["staff-1"]))
        complaint_repo.reject_updates = 2

        summary = await services.sweep.tick(T0 + hours(44))
        assert summary.deferred == 1
        assert complaint_repo.stored("c-1").escalation.level == EscalationLevel.NORMAL

        retry = await services.sweep.tick(T0 + hours(44))
        assert retry.deferred == 0
        assert complaint_repo.stored("c-1").escalation.level == EscalationLevel.WARNING, (
            "a deferred complaint is picked up by the next sweep"
        )

    async def test_single_rejection_is_retried_within_the_sweep(self, services, complaint_repo) -> None:
        await complaint_repo.create(make_complaint("c-1", assigned_to="staff-1", assigned_users=["staff-1"]))
        complaint_repo.reject_updates = 1

        summary = await services.sweep.tick(T0 + hours(44))

        assert summary.deferred == 0
        assert complaint_repo.stored("c-1").escalation.level == EscalationLevel.WARNING

    async def test_persistence_outage_aborts_the_sweep(self, services, complaint_repo) -> None:
        await complaint_repo.create(make_complaint("c-1", assigned_to="staff-1", assigned_users=["staff-1"]))
        complaint_repo.unavailable = True

        summary = await services.sweep.tick(T0 + hours(44))

        assert summary.aborted is True
        assert summary.error
        complaint_repo.unavailable = False
        assert complaint_repo.stored("c-1").escalation.level == EscalationLevel.NORMAL

        recovered = await services.sweep.tick(T0 + hours(44))
        assert recovered.aborted is False
        assert complaint_repo.stored("c-1").escalation.level == EscalationLevel.WARNING

    async def test_outage_mid_sweep_keeps_committed_writes(self, services, complaint_repo) -> None:
        class FlakyRepository(FakeComplaintRepository):
            writes = 0

            async def update_if(self, complaint_id, expected, patch):
                self.writes += 1
                if self.writes > 1:
                    self.unavailable = True
                return await super().update_if(complaint_id, expected, patch)

        repo = FlakyRepository()
        for complaint_id in ("c-1", "c-2"):
            await repo.create(make_complaint(complaint_id, assigned_to="staff-1", assigned_users=["staff-1"]))
        flaky_services = build_services(repo, services.staff_repository, services.config_provider)

        summary = await flaky_services.sweep.tick(T0 + hours(44))

        assert summary.aborted is True
        assert summary.evaluated == 1
        assert repo.records["c-1"]["escalation_level"] == 1
        assert repo.records["c-2"]["escalation_level"] == 0

    async def test_notification_failure_does_not_revert_state(
        self, complaint_repo, staff_repo, config_provider
    ) -> None:
        failing = build_services(
            complaint_repo, staff_repo, config_provider, notifier=FakeNotifier(fail=True)
        )
        await complaint_repo.create(make_complaint("c-1", assigned_to="staff-1", assigned_users=["staff-1"]))

        summary = await failing.sweep.tick(T0 + hours(44))
        await failing.notifier.drain()

        assert summary.failed == 0
        assert summary.escalated == 1
        assert complaint_repo.stored("c-1").escalation.level == EscalationLevel.WARNING

    async def test_slow_delivery_does_not_hold_the_sweep(
        self, complaint_repo, staff_repo, config_provider
    ) -> None:
        release = asyncio.Event()

        class SlowNotifier(FakeNotifier):
            async def send(self, recipient, event_type, payload):
                await release.wait()
                return await super().send(recipient, event_type, payload)

        notifier = SlowNotifier()
        slow = build_services(complaint_repo, staff_repo, config_provider, notifier=notifier)
        await complaint_repo.create(make_complaint("c-1", assigned_to="staff-1", assigned_users=["staff-1"]))

        summary = await asyncio.wait_for(slow.sweep.tick(T0 + hours(44)), timeout=1)

        assert summary.escalated == 1
        assert slow.notifier.pending == 2
        assert notifier.sent == []

        release.set()
        await slow.notifier.drain()

        assert slow.notifier.pending == 0
        assert {r for r, _, _ in notifier.events(NotificationEvent.ESCALATED)} == {"head-1", "staff-1"}


class TestSweepOverlap:
    async def test_overlapping_tick_is_skipped(self, services, complaint_repo) -> None:
        release = asyncio.Event()
        entered = asyncio.Event()

        class SlowRepository(FakeComplaintRepository):
            async def query_by_filter(self, filters):
                entered.set()
                await release.wait()
                return await super().query_by_filter(filters)

        slow = SlowRepository((make_complaint("c-1", assigned_to="staff-1", assigned_users=["staff-1"]),))
        slow_services = build_services(slow, services.staff_repository, services.config_provider)

        first = asyncio.create_task(slow_services.sweep.tick(T0 + hours(44)))
        await entered.wait()
        assert slow_services.sweep.is_running is True

        skipped = await slow_services.sweep.tick(T0 + hours(45))
        release.set()
        completed = await first

        assert skipped.skipped is True
        assert skipped.evaluated == 0
        assert completed.skipped is False
        assert completed.evaluated == 1
        assert slow.stored("c-1").escalation.escalated_at == T0 + hours(44), "the skipped tick wrote nothing"
