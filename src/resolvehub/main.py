"""
ResolveHub Engine - Main Application
====================================

Complaint SLA & escalation engine for municipal grievance handling.

Modules:
- Complaints: routing, assignment, SLA clock, escalation sweep
- Gamification: resolution scoring, badges and leaderboard

Clean Architecture Layers:
- Interfaces: FastAPI controllers
- Application: Services and DTOs
- Domain: Entities and value objects
- Infrastructure: Database, config watcher, webhook, scheduler
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.exc import SQLAlchemyError

from resolvehub.config import settings
from resolvehub.infrastructure.database import (
    init_database, close_database, create_tables, get_session_factory
)
from resolvehub.complaints.infrastructure import (
    EngineConfigManager, SQLAlchemyComplaintRepository, SQLAlchemyStaffRepository,
    WebhookNotificationDispatcher, SLAScheduler
)
from resolvehub.complaints.interfaces import complaints_router, admin_router, build_services
from resolvehub.gamification.interfaces import gamification_router
from resolvehub.shared.api import install_middleware
from resolvehub.shared.infrastructure.logging import setup_logging, get_logger

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    """
    Application lifespan manager.

    STARTUP:
    1. Setup structured logging
    2. Initialize database and create tables
    3. Load engine configuration and watch it
    4. Wire services
    5. Start the SLA sweep scheduler

    SHUTDOWN:
    1. Stop scheduler and config watcher
    2. Close the notification client
    3. Close database connections
    """
    # === STARTUP ===
    setup_logging(settings.log_level, settings.environment)
    logger.info("Starting ResolveHub engine", extra={
        "version": settings.app_version,
        "environment": settings.environment
    })

    engine = init_database()
    try:
        await create_tables(engine)
    except (OSError, SQLAlchemyError) as e:
        logger.warning("Database not available - running in degraded mode", extra={"error": str(e)})

    config_manager = EngineConfigManager()
    config_manager.load(settings.engine_config_path)
    config_manager.start_watching()

    session_factory = get_session_factory()
    notifier = WebhookNotificationDispatcher()
    services = build_services(
        SQLAlchemyComplaintRepository(session_factory),
        SQLAlchemyStaffRepository(session_factory),
        config_manager,
        notifier=notifier,
        global_city=settings.global_city,
    )

    scheduler = SLAScheduler(services.sweep.tick, settings.sweep_interval_seconds, clock=services.clock)
    await scheduler.start()
    services.scheduler = scheduler

    app.state.services = services
    app.state.settings = settings
    logger.info("ResolveHub engine started")

    yield

    # === SHUTDOWN ===
    logger.info("Shutting down ResolveHub engine")
    await scheduler.stop()
    config_manager.stop_watching()
    if services.notifier is not None:
        await services.notifier.drain()
    await notifier.close()
    await close_database()
    logger.info("ResolveHub engine shutdown complete")


def create_app() -> FastAPI:
    """Build the FastAPI application."""
    app = FastAPI(
        title="ResolveHub Engine API",
        description="Complaint routing, SLA tracking, escalation and staff gamification.",
        version=settings.app_version,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    install_middleware(app)

    app.include_router(complaints_router)
    app.include_router(admin_router)
    app.include_router(gamification_router)

    @app.get("/health", tags=["Health"])
    async def health_check(request: Request):
        """Health check for load balancers and orchestrators."""
        services = getattr(request.app.state, "services", None)
        scheduler = services.scheduler if services else None
        checks = {
            "engine_config": "loaded" if services else "not_loaded",
            "sla_scheduler": "running" if scheduler and scheduler.is_running else "stopped",
            "notifications": "configured" if settings.notification_webhook_url else "not_configured",
        }
        return {
            "status": "healthy" if services else "starting",
            "version": settings.app_version,
            "environment": settings.environment,
            "checks": checks
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "resolvehub.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.environment == "development",
        log_level="info"
    )
