"""
Complaint Infrastructure Models
===============================

SQLAlchemy ORM models for the complaint engine.

Column names match the flat record keys produced by
``Complaint.to_record()`` / ``Staff.to_record()``, so repository filters,
guards and patches map one-to-one onto columns.
"""

from datetime import datetime
from typing import List, Optional

from sqlalchemy import JSON, Boolean, DateTime, Float, Integer, String, Text, Index
from sqlalchemy.orm import Mapped, mapped_column

from resolvehub.infrastructure.database import Base
from resolvehub.config import ComplaintStatus, Role


class ComplaintModel(Base):
    """
    Database model for the Complaint entity.

    Maps to the 'complaints' table.
    """
    __tablename__ = "complaints"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)

    # Routing
    category: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    department: Mapped[Optional[str]] = mapped_column(String(50), nullable=True, index=True)
    city: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    priority: Mapped[str] = mapped_column(String(20), nullable=False, default="medium")
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=ComplaintStatus.OPEN.value, index=True
    )

    # Content
    title: Mapped[str] = mapped_column(String(500), nullable=False, default="")
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    submitted_by: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    # Ownership
    assigned_to: Mapped[Optional[str]] = mapped_column(String(64), nullable=True, index=True)
    assigned_users: Mapped[List[str]] = mapped_column(JSON, nullable=False, default=list)

    # SLA
    sla_deadline: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    sla_breached_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    sla_time_remaining_seconds: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    sla_evaluated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    # Escalation
    escalation_level: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    escalated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    escalation_reason: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    escalated_to: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    # Lifecycle
    resolved_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    closed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    flagged_for_review: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    points_awarded: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    feedback_rating: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    feedback_comment: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Optimistic concurrency
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    __table_args__ = (
        Index("ix_complaints_scope", "city", "department", "status"),
    )


class StaffModel(Base):
    """
    Database model for staff/admin identities and their gamification counters.

    Maps to the 'staff' table.
    """
    __tablename__ = "staff"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    role: Mapped[str] = mapped_column(String(20), nullable=False, default=Role.STAFF.value, index=True)
    department: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    city: Mapped[Optional[str]] = mapped_column(String(100), nullable=True, index=True)

    points: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    resolution_streak: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    badge: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
