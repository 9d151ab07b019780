"""
Complaints Interfaces Layer
===========================

FastAPI routers for complaint intake, the SLA read model and operator
actions, plus the service wiring they depend on.
"""

from resolvehub.complaints.interfaces.controllers import complaints_router, admin_router
from resolvehub.complaints.interfaces.dependencies import (
    EngineServices,
    build_services,
    get_services,
)

__all__ = [
    "complaints_router",
    "admin_router",
    "EngineServices",
    "build_services",
    "get_services",
]
