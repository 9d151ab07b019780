"""
Complaint Infrastructure Repositories
=====================================

Concrete implementations of the repository interfaces using SQLAlchemy.

Repositories hold a session factory and open one short session per call.
Conditional updates are a single ``UPDATE ... WHERE id = :id AND <guards>``
whose rowcount tells whether the write won.
"""

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, AsyncGenerator, List, Optional, Type

from sqlalchemy import and_, false, or_, select, update
from sqlalchemy.exc import DBAPIError, IntegrityError, InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from resolvehub.complaints.application import IComplaintRepository, IStaffRepository
from resolvehub.complaints.domain import Complaint, Staff
from resolvehub.complaints.infrastructure.models import ComplaintModel, StaffModel
from resolvehub.core import (
    PersistenceUnavailableException, RepositoryException, ResourceConflictException
)
from resolvehub.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)

COMPLAINT_DATETIME_FIELDS = (
    "created_at", "sla_deadline", "sla_breached_at", "sla_evaluated_at",
    "escalated_at", "resolved_at", "closed_at",
)


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Drivers without timezone support hand back naive UTC values."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def build_conditions(model: Type[Any], filters: dict) -> list:
    """
    Translate a filter dict into SQLAlchemy conditions.

    A scalar means equality, ``None`` means IS NULL and a list/tuple/set
    means membership (a ``None`` member also matches NULL).
    """
    conditions = []
    for key, value in filters.items():
        column = getattr(model, key, None)
        if column is None:
            raise RepositoryException(f"Unknown filter field: {key}", {"field": key})

        if isinstance(value, (list, tuple, set)):
            values = [v for v in value if v is not None]
            parts = []
            if values:
                parts.append(column.in_(values))
            if len(values) != len(value):
                parts.append(column.is_(None))
            conditions.append(or_(*parts) if parts else false())
        elif value is None:
            conditions.append(column.is_(None))
        else:
            conditions.append(column == value)
    return conditions


class SQLAlchemyRepository:
    """Session handling and error translation shared by the repositories."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    @asynccontextmanager
    async def _session(self) -> AsyncGenerator[AsyncSession, None]:
        try:
            async with self._session_factory() as session:
                yield session
        except IntegrityError as e:
            raise ResourceConflictException("Integrity constraint violated", {"error": str(e.orig)})
        except (OperationalError, InterfaceError) as e:
            logger.error(
                "Database unavailable",
                extra={"error": str(e), "error_type": "PersistenceUnavailable"}
            )
            raise PersistenceUnavailableException("Database unavailable", {"error": str(e)})
        except DBAPIError as e:
            if e.connection_invalidated:
                raise PersistenceUnavailableException("Database connection lost", {"error": str(e)})
            raise RepositoryException("Database error", {"error": str(e)})
        except OSError as e:
            raise PersistenceUnavailableException("Database unreachable", {"error": str(e)})


class SQLAlchemyComplaintRepository(SQLAlchemyRepository, IComplaintRepository):
    """
    SQLAlchemy implementation of the complaint repository.
    """

    def _to_entity(self, model: ComplaintModel) -> Complaint:
        record = {c.key: getattr(model, c.key) for c in ComplaintModel.__table__.columns}
        for name in COMPLAINT_DATETIME_FIELDS:
            record[name] = _as_utc(record[name])
        return Complaint.from_record(record)

    async def query_by_filter(self, filters: dict) -> List[Complaint]:
        """List complaints matching filters, oldest first."""
        stmt = select(ComplaintModel)
        conditions = build_conditions(ComplaintModel, filters)
        if conditions:
            stmt = stmt.where(and_(*conditions))
        stmt = stmt.order_by(ComplaintModel.created_at.asc(), ComplaintModel.id.asc())

        async with self._session() as session:
            result = await session.execute(stmt)
            return [self._to_entity(m) for m in result.scalars().all()]

    async def find_one(self, filters: dict) -> Optional[Complaint]:
        stmt = select(ComplaintModel).where(*build_conditions(ComplaintModel, filters))
        stmt = stmt.order_by(ComplaintModel.id.asc()).limit(1)

        async with self._session() as session:
            result = await session.execute(stmt)
            model = result.scalar_one_or_none()
            return self._to_entity(model) if model else None

    async def get_by_id(self, complaint_id: str) -> Optional[Complaint]:
        async with self._session() as session:
            model = await session.get(ComplaintModel, complaint_id)
            return self._to_entity(model) if model else None

    async def create(self, complaint: Complaint) -> Complaint:
        """Insert a new complaint at version 0."""
        record = complaint.to_record()
        record["version"] = 0

        async with self._session() as session:
            session.add(ComplaintModel(**record))
            await session.commit()

        complaint.version = 0
        return complaint

    async def update_if(self, complaint_id: str, expected: dict, patch: dict) -> bool:
        """Conditionally patch a complaint and bump its version."""
        if "version" in patch:
            raise RepositoryException("version is managed by the repository")

        stmt = (
            update(ComplaintModel)
            .where(ComplaintModel.id == complaint_id, *build_conditions(ComplaintModel, expected))
            .values(**patch, version=ComplaintModel.version + 1)
            .execution_options(synchronize_session=False)
        )

        async with self._session() as session:
            result = await session.execute(stmt)
            await session.commit()
            return result.rowcount == 1


class SQLAlchemyStaffRepository(SQLAlchemyRepository, IStaffRepository):
    """
    SQLAlchemy implementation of the staff repository.

    Identity fields are read-only here; only the gamification counters
    are written.
    """

    def _to_entity(self, model: StaffModel) -> Staff:
        return Staff.from_record({c.key: getattr(model, c.key) for c in StaffModel.__table__.columns})

    async def query_by_filter(self, filters: dict) -> List[Staff]:
        stmt = select(StaffModel)
        conditions = build_conditions(StaffModel, filters)
        if conditions:
            stmt = stmt.where(and_(*conditions))
        stmt = stmt.order_by(StaffModel.id.asc())

        async with self._session() as session:
            result = await session.execute(stmt)
            return [self._to_entity(m) for m in result.scalars().all()]

    async def find_one(self, filters: dict) -> Optional[Staff]:
        stmt = select(StaffModel).where(*build_conditions(StaffModel, filters))
        stmt = stmt.order_by(StaffModel.id.asc()).limit(1)

        async with self._session() as session:
            result = await session.execute(stmt)
            model = result.scalar_one_or_none()
            return self._to_entity(model) if model else None

    async def get_by_id(self, staff_id: str) -> Optional[Staff]:
        async with self._session() as session:
            model = await session.get(StaffModel, staff_id)
            return self._to_entity(model) if model else None

    async def create(self, staff: Staff) -> Staff:
        """Insert a staff identity (provisioning and tests)."""
        async with self._session() as session:
            session.add(StaffModel(**staff.to_record()))
            await session.commit()
        return staff

    async def add_points(self, staff_id: str, points: int, streak_increment: int = 1) -> Optional[Staff]:
        """Increment points and streak in one UPDATE; returns the new totals."""
        stmt = (
            update(StaffModel)
            .where(StaffModel.id == staff_id)
            .values(
                points=StaffModel.points + points,
                resolution_streak=StaffModel.resolution_streak + streak_increment,
            )
            .execution_options(synchronize_session=False)
        )

        async with self._session() as session:
            result = await session.execute(stmt)
            if result.rowcount == 0:
                await session.rollback()
                return None
            refreshed = await session.execute(select(StaffModel).where(StaffModel.id == staff_id))
            model = refreshed.scalar_one()
            await session.commit()
            return self._to_entity(model)

    async def set_badge(self, staff_id: str, badge: Optional[str]) -> None:
        stmt = (
            update(StaffModel)
            .where(StaffModel.id == staff_id)
            .values(badge=badge)
            .execution_options(synchronize_session=False)
        )
        async with self._session() as session:
            await session.execute(stmt)
            await session.commit()
