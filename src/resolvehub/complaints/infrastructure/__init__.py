"""
Complaints Infrastructure Layer
===============================

Infrastructure implementations for the complaint engine:
- Models: SQLAlchemy ORM models
- Repositories: conditional-write data access
- External: engine config watcher, notification webhook, sweep scheduler
"""

from resolvehub.complaints.infrastructure.models import ComplaintModel, StaffModel
from resolvehub.complaints.infrastructure.repositories import (
    SQLAlchemyComplaintRepository,
    SQLAlchemyStaffRepository,
    build_conditions,
)
from resolvehub.complaints.infrastructure.external import (
    EngineConfigManager,
    CircuitBreaker,
    CircuitState,
    WebhookNotificationDispatcher,
    SLAScheduler,
)

__all__ = [
    "ComplaintModel",
    "StaffModel",
    "SQLAlchemyComplaintRepository",
    "SQLAlchemyStaffRepository",
    "build_conditions",
    "EngineConfigManager",
    "CircuitBreaker",
    "CircuitState",
    "WebhookNotificationDispatcher",
    "SLAScheduler",
]
