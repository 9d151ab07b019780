"""
Service Wiring
==============

Builds the engine's service graph from its ports and exposes it to
FastAPI route handlers through ``app.state``.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from fastapi import Request

from resolvehub.complaints.application import (
    IComplaintRepository, IStaffRepository, IEngineConfigProvider, INotificationDispatcher,
    BackgroundNotificationDispatcher, DepartmentRoutingService, AssignmentResolver, EscalationEngine, SweepService,
    ComplaintService
)
from resolvehub.complaints.infrastructure.external import SLAScheduler, utc_now
from resolvehub.gamification.application import GamificationScorer


@dataclass
class EngineServices:
    """Everything a request handler or the scheduler needs."""
    config_provider: IEngineConfigProvider
    complaint_repository: IComplaintRepository
    staff_repository: IStaffRepository
    notifier: Optional[BackgroundNotificationDispatcher]
    routing: DepartmentRoutingService
    resolver: AssignmentResolver
    escalation: EscalationEngine
    sweep: SweepService
    complaints: ComplaintService
    scorer: GamificationScorer
    clock: Callable[[], datetime] = utc_now
    scheduler: Optional[SLAScheduler] = None


def build_services(
    complaint_repository: IComplaintRepository,
    staff_repository: IStaffRepository,
    config_provider: IEngineConfigProvider,
    notifier: Optional[INotificationDispatcher] = None,
    clock: Callable[[], datetime] = utc_now,
    global_city: Optional[str] = None
) -> EngineServices:
    """
    Wire the application services around the given ports.

    Notifications go through a background dispatcher so no caller waits
    on delivery; drain ``services.notifier`` before closing the transport.
    """
    background = BackgroundNotificationDispatcher(notifier) if notifier is not None else None
    routing = DepartmentRoutingService(complaint_repository, config_provider)
    resolver = AssignmentResolver(
        complaint_repository, staff_repository, config_provider,
        notifier=background, global_city=global_city
    )
    escalation = EscalationEngine(resolver, config_provider)
    sweep = SweepService(
        complaint_repository, resolver, escalation, config_provider, notifier=background
    )
    scorer = GamificationScorer(complaint_repository, staff_repository, config_provider)
    complaints = ComplaintService(
        complaint_repository, staff_repository, routing, resolver, config_provider,
        notifier=background, resolution_listener=scorer
    )
    return EngineServices(
        config_provider=config_provider,
        complaint_repository=complaint_repository,
        staff_repository=staff_repository,
        notifier=background,
        routing=routing,
        resolver=resolver,
        escalation=escalation,
        sweep=sweep,
        complaints=complaints,
        scorer=scorer,
        clock=clock,
    )


def get_services(request: Request) -> EngineServices:
    """FastAPI dependency returning the services stored on the app."""
    services = getattr(request.app.state, "services", None)
    if services is None:
        raise RuntimeError("Engine services not initialized")
    return services
