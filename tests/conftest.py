"""Shared fixtures: in-memory repositories, a recording notifier and service wiring."""

from __future__ import annotations

import copy
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Set, Tuple

import pytest

from resolvehub.complaints.application import (
    IComplaintRepository,
    IEngineConfigProvider,
    INotificationDispatcher,
    IStaffRepository,
)
from resolvehub.complaints.domain import Complaint, Staff
from resolvehub.complaints.interfaces import build_services
from resolvehub.config import ComplaintStatus, Role
from resolvehub.config.engine import EngineConfig
from resolvehub.core import (
    NotificationFailureException,
    PersistenceUnavailableException,
    ResourceConflictException,
)

T0 = datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc)


def hours(n: float) -> timedelta:
    return timedelta(hours=n)


def _matches(record: dict, filters: dict) -> bool:
    """Same semantics as the SQL repositories: list = membership, None = NULL."""
    for key, expected in filters.items():
        actual = record.get(key)
        if isinstance(expected, (list, tuple, set)):
            if actual not in expected:
                return False
        elif actual != expected:
            return False
    return True


def make_complaint(
    complaint_id: str,
    category: Optional[str] = "structural",
    city: str = "Prayagraj",
    priority: str = "high",
    status: ComplaintStatus = ComplaintStatus.OPEN,
    created_at: datetime = T0,
    department: Optional[str] = "Structural",
    **kwargs,
) -> Complaint:
    return Complaint(
        id=complaint_id,
        category=category,
        city=city,
        priority=priority,
        status=status,
        created_at=created_at,
        department=department,
        title=kwargs.pop("title", f"Complaint {complaint_id}"),
        **kwargs,
    )


def make_staff(
    staff_id: str,
    department: Optional[str] = "Structural",
    city: Optional[str] = "Prayagraj",
    role: Role = Role.STAFF,
    **kwargs,
) -> Staff:
    return Staff(
        id=staff_id,
        name=kwargs.pop("name", f"Staff {staff_id}"),
        role=role,
        department=department,
        city=city,
        **kwargs,
    )


# -----------------------------------------------------------------------
# Fakes
# -----------------------------------------------------------------------


class FakeComplaintRepository(IComplaintRepository):
    """Dict-backed complaint store with conditional writes and failure knobs."""

    def __init__(self, complaints: Tuple[Complaint, ...] = ()) -> None:
        self.records: Dict[str, dict] = {}
        self.update_calls: List[Tuple[str, dict, dict]] = []
        self.reject_updates = 0
        self.unavailable = False
        self.broken_ids: Set[str] = set()
        for complaint in complaints:
            self.records[complaint.id] = copy.deepcopy(complaint.to_record())

    def _check(self) -> None:
        if self.unavailable:
            raise PersistenceUnavailableException("database down")

    def stored(self, complaint_id: str) -> Complaint:
        return Complaint.from_record(copy.deepcopy(self.records[complaint_id]))

    def tamper(self, complaint_id: str, **changes) -> None:
        """Simulate a concurrent writer."""
        self.records[complaint_id].update(changes)
        self.records[complaint_id]["version"] += 1

    async def query_by_filter(self, filters: dict) -> List[Complaint]:
        self._check()
        rows = sorted(self.records.values(), key=lambda r: (r["created_at"], r["id"]))
        return [Complaint.from_record(copy.deepcopy(r)) for r in rows if _matches(r, filters)]

    async def find_one(self, filters: dict) -> Optional[Complaint]:
        rows = await self.query_by_filter(filters)
        return rows[0] if rows else None

    async def get_by_id(self, complaint_id: str) -> Optional[Complaint]:
        self._check()
        record = self.records.get(complaint_id)
        return Complaint.from_record(copy.deepcopy(record)) if record else None

    async def create(self, complaint: Complaint) -> Complaint:
        self._check()
        if complaint.id in self.records:
            raise ResourceConflictException(f"Complaint {complaint.id} already exists")
        complaint.version = 0
        self.records[complaint.id] = copy.deepcopy(complaint.to_record())
        return complaint

    async def update_if(self, complaint_id: str, expected: dict, patch: dict) -> bool:
        self._check()
        self.update_calls.append((complaint_id, dict(expected), dict(patch)))
        if complaint_id in self.broken_ids:
            raise RuntimeError(f"corrupt record {complaint_id}")
        if self.reject_updates > 0:
            self.reject_updates -= 1
            return False
        record = self.records.get(complaint_id)
        if record is None or not _matches(record, expected):
            return False
        record.update(copy.deepcopy(patch))
        record["version"] += 1
        return True


class FakeStaffRepository(IStaffRepository):
    """Dict-backed staff directory."""

    def __init__(self, staff: Tuple[Staff, ...] = ()) -> None:
        self.records: Dict[str, dict] = {s.id: s.to_record() for s in staff}

    def stored(self, staff_id: str) -> Staff:
        return Staff.from_record(dict(self.records[staff_id]))

    async def query_by_filter(self, filters: dict) -> List[Staff]:
        rows = sorted(self.records.values(), key=lambda r: r["id"])
        return [Staff.from_record(dict(r)) for r in rows if _matches(r, filters)]

    async def find_one(self, filters: dict) -> Optional[Staff]:
        rows = await self.query_by_filter(filters)
        return rows[0] if rows else None

    async def get_by_id(self, staff_id: str) -> Optional[Staff]:
        record = self.records.get(staff_id)
        return Staff.from_record(dict(record)) if record else None

    async def add_points(self, staff_id: str, points: int, streak_increment: int = 1) -> Optional[Staff]:
        record = self.records.get(staff_id)
        if record is None:
            return None
        record["points"] += points
        record["resolution_streak"] += streak_increment
        return Staff.from_record(dict(record))

    async def set_badge(self, staff_id: str, badge: Optional[str]) -> None:
        self.records[staff_id]["badge"] = badge


class FakeNotifier(INotificationDispatcher):
    """Records every event; can be switched to fail."""

    def __init__(self, fail: bool = False) -> None:
        self.sent: List[Tuple[str, str, dict]] = []
        self.fail = fail

    async def send(self, recipient: str, event_type: str, payload: dict) -> bool:
        if self.fail:
            raise NotificationFailureException("webhook down")
        self.sent.append((recipient, event_type, payload))
        return True

    def events(self, event_type: str) -> List[Tuple[str, str, dict]]:
        return [e for e in self.sent if e[1] == event_type]


class StaticConfigProvider(IEngineConfigProvider):
    def __init__(self, config: Optional[EngineConfig] = None) -> None:
        self.config = config or EngineConfig()

    def get_config(self) -> EngineConfig:
        return self.config


# -----------------------------------------------------------------------
# Fixtures
# -----------------------------------------------------------------------


@pytest.fixture
def config_provider() -> StaticConfigProvider:
    return StaticConfigProvider()


@pytest.fixture
def complaint_repo() -> FakeComplaintRepository:
    return FakeComplaintRepository()


@pytest.fixture
def staff_repo() -> FakeStaffRepository:
    return FakeStaffRepository((
        make_staff("staff-1"),
        make_staff("head-1", role=Role.ADMIN),
        make_staff("cityadmin-1", department=None, role=Role.ADMIN),
        make_staff("global-1", department=None, city="Global", role=Role.ADMIN),
    ))


@pytest.fixture
def notifier() -> FakeNotifier:
    return FakeNotifier()


@pytest.fixture
async def services(complaint_repo, staff_repo, config_provider, notifier):
    services = build_services(
        complaint_repo, staff_repo, config_provider,
        notifier=notifier, clock=lambda: T0, global_city="Global",
    )
    yield services
    await services.notifier.drain()
