"""Tests for category routing and the missing-department correction pass."""

from __future__ import annotations

import logging

import pytest
from pydantic import ValidationError

from conftest import FakeComplaintRepository, StaticConfigProvider, make_complaint
from resolvehub.complaints.application import DepartmentRoutingService
from resolvehub.complaints.domain import DepartmentConfig, DepartmentRouter
from resolvehub.config import Department
from resolvehub.core import UnknownCategoryException


# -----------------------------------------------------------------------
# DepartmentRouter
# -----------------------------------------------------------------------


class TestDepartmentRouter:
    """Category lookups against the routing table."""

    @pytest.mark.parametrize(
        "category, expected",
        [
            ("structural", Department.STRUCTURAL),
            ("plumbing", Department.PLUMBING),
            ("sanitation", Department.SANITATION),
            ("electrical", Department.ELECTRICAL),
        ],
    )
    def test_known_categories(self, category: str, expected: Department) -> None:
        router = DepartmentRouter(DepartmentConfig())
        assert router.resolve(category) == expected

    def test_lookup_ignores_case_and_whitespace(self) -> None:
        router = DepartmentRouter(DepartmentConfig())
        assert router.resolve("  Plumbing ") == Department.PLUMBING

    def test_unknown_category_routes_to_unassigned(self, caplog) -> None:
        router = DepartmentRouter(DepartmentConfig())
        with caplog.at_level(logging.WARNING):
            result = router.resolve("potholes")

        assert result == Department.UNASSIGNED, "unknown categories must not be fatal"
        assert any(
            getattr(record, "error_type", None) == "UnknownCategory" for record in caplog.records
        ), "unknown category should be logged for operator review"

    def test_missing_category_routes_to_unassigned(self) -> None:
        router = DepartmentRouter(DepartmentConfig())
        assert router.resolve(None) == Department.UNASSIGNED

    def test_strict_mode_raises(self) -> None:
        router = DepartmentRouter(DepartmentConfig())
        with pytest.raises(UnknownCategoryException):
            router.resolve("potholes", strict=True)

    def test_custom_table_is_normalized(self) -> None:
        config = DepartmentConfig(categories={"Street Light": "Electrical"})
        router = DepartmentRouter(config)
        assert router.resolve("street light") == Department.ELECTRICAL
        assert not router.is_known("plumbing"), "a custom table replaces the defaults"

    def test_table_cannot_target_unassigned(self) -> None:
        with pytest.raises(ValidationError):
            DepartmentConfig(categories={"misc": "Unassigned"})


# -----------------------------------------------------------------------
# Correction pass
# -----------------------------------------------------------------------


def _correction_repo() -> FakeComplaintRepository:
    return FakeComplaintRepository((
        make_complaint("c-null", category="plumbing", department=None),
        make_complaint("c-empty", category="electrical", department=""),
        make_complaint("c-override", category="plumbing", department="Sanitation"),
        make_complaint("c-unassigned", category="plumbing", department="Unassigned"),
        make_complaint("c-unknown", category="graffiti", department=None),
    ))


class TestCorrectMissingDepartments:
    async def test_fills_only_missing_departments(self) -> None:
        repo = _correction_repo()
        service = DepartmentRoutingService(repo, StaticConfigProvider())

        result = await service.correct_missing_departments()

        assert result.scanned == 3
        assert result.corrected == 2
        assert result.unresolved == 1
        assert repo.stored("c-null").department == "Plumbing"
        assert repo.stored("c-empty").department == "Electrical"
        assert repo.stored("c-override").department == "Sanitation", "manual overrides are never touched"
        assert repo.stored("c-unassigned").department == "Unassigned"
        assert repo.stored("c-unknown").department is None

    async def test_second_run_changes_nothing(self) -> None:
        repo = _correction_repo()
        service = DepartmentRoutingService(repo, StaticConfigProvider())

        await service.correct_missing_departments()
        writes_after_first = len(repo.update_calls)
        result = await service.correct_missing_departments()

        assert result.corrected == 0
        assert len(repo.update_calls) == writes_after_first, "idempotent pass must not write again"

    async def test_concurrent_department_change_wins(self) -> None:
        class RacingRepository(FakeComplaintRepository):
            raced = False

            async def update_if(self, complaint_id, expected, patch):
                if not self.raced:
                    self.raced = True
                    self.tamper(complaint_id, department="Sanitation")
                return await super().update_if(complaint_id, expected, patch)

        repo = RacingRepository((make_complaint("c-1", category="plumbing", department=None),))
        service = DepartmentRoutingService(repo, StaticConfigProvider())

        result = await service.correct_missing_departments()

        assert result.corrected == 0
        assert repo.stored("c-1").department == "Sanitation", "a concurrent write must not be clobbered"
