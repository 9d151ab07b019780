"""Tests for SLA deadlines and overdue evaluation."""

from __future__ import annotations

from datetime import timedelta

import pytest
from pydantic import ValidationError

from conftest import T0, hours, make_complaint
from resolvehub.complaints.domain import SLAClock, SLAConfig
from resolvehub.config import ComplaintStatus


@pytest.fixture
def clock() -> SLAClock:
    return SLAClock(SLAConfig())


class TestSLAConfig:
    def test_priority_specific_duration(self) -> None:
        assert SLAConfig().hours_for("structural", "high") == 48

    def test_falls_back_to_category_default(self) -> None:
        assert SLAConfig().hours_for("plumbing", "low") == 48

    def test_falls_back_to_global_default(self) -> None:
        config = SLAConfig(default_hours=36)
        assert config.hours_for("potholes", "high") == 36

    def test_keys_are_normalized(self) -> None:
        config = SLAConfig(durations={"Electrical": {"HIGH": 3}})
        assert config.hours_for("electrical", "high") == 3

    def test_rejects_non_positive_hours(self) -> None:
        with pytest.raises(ValidationError):
            SLAConfig(durations={"electrical": {"high": 0}})


class TestDeadline:
    def test_deadline_is_created_at_plus_duration(self, clock: SLAClock) -> None:
        complaint = make_complaint("c-1", category="structural", priority="high")
        assert clock.deadline(complaint) == T0 + hours(48)

    def test_stored_deadline_is_used(self, clock: SLAClock) -> None:
        complaint = make_complaint("c-1")
        complaint.sla.deadline = T0 + hours(10)
        evaluation = clock.evaluate(complaint, T0)
        assert evaluation.deadline == T0 + hours(10), "an already computed deadline is not recomputed"


class TestEvaluate:
    def test_before_deadline(self, clock: SLAClock) -> None:
        complaint = make_complaint("c-1")
        evaluation = clock.evaluate(complaint, T0 + hours(44))

        assert evaluation.time_remaining == hours(4)
        assert evaluation.is_overdue is False
        assert evaluation.breached_at is None
        assert evaluation.overdue_for == timedelta(0)

    def test_exactly_at_deadline_is_not_overdue(self, clock: SLAClock) -> None:
        complaint = make_complaint("c-1")
        evaluation = clock.evaluate(complaint, T0 + hours(48))
        assert evaluation.is_overdue is False, "overdue means strictly past the deadline"

    def test_first_overdue_evaluation_sets_breached_at(self, clock: SLAClock) -> None:
        complaint = make_complaint("c-1")
        now = T0 + hours(51)
        evaluation = clock.evaluate(complaint, now)

        assert evaluation.is_overdue is True
        assert evaluation.time_remaining == -hours(3), "time remaining goes negative past the deadline"
        assert evaluation.breached_at == now
        assert evaluation.newly_breached is True
        assert evaluation.overdue_for == hours(3)

    def test_breached_at_never_changes(self, clock: SLAClock) -> None:
        complaint = make_complaint("c-1")
        complaint.sla.breached_at = T0 + hours(49)
        evaluation = clock.evaluate(complaint, T0 + hours(80))

        assert evaluation.breached_at == T0 + hours(49)
        assert evaluation.newly_breached is False

    @pytest.mark.parametrize("status", [ComplaintStatus.RESOLVED, ComplaintStatus.CLOSED])
    def test_terminal_complaints_report_frozen_values(self, clock: SLAClock, status) -> None:
        complaint = make_complaint("c-1", status=status)
        complaint.sla.deadline = T0 + hours(48)
        complaint.sla.time_remaining_seconds = hours(5).total_seconds()

        evaluation = clock.evaluate(complaint, T0 + hours(500))

        assert evaluation.is_overdue is False
        assert evaluation.time_remaining == hours(5), "terminal complaints are not re-evaluated"

    def test_terminal_without_snapshot_uses_resolution_time(self, clock: SLAClock) -> None:
        complaint = make_complaint("c-1", status=ComplaintStatus.RESOLVED, resolved_at=T0 + hours(40))
        evaluation = clock.evaluate(complaint, T0 + hours(100))
        assert evaluation.time_remaining == hours(8)
