"""
clinicdesk - Main Application
=============================

Service-desk ticket tracker for a network of clinics.

Clean Architecture Layers:
- Interfaces: FastAPI controllers
- Application: Services and DTOs
- Domain: Business calendar, SLA policy, ticket lifecycle
- Infrastructure: SLA configuration file, SQLAlchemy ticket store, audit log sink
"""

from contextlib import asynccontextmanager
from datetime import datetime
from typing import AsyncGenerator, Callable, Optional

from fastapi import FastAPI, Request
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from clinicdesk.config import settings
from clinicdesk.infrastructure.database import (
    init_database,
    close_database,
    create_tables,
    get_session_maker,
)
from clinicdesk.shared.api.middleware import (
    CorrelationIDMiddleware,
    LoggingMiddleware,
    register_exception_handlers,
)
from clinicdesk.shared.infrastructure.logging import setup_logging, get_logger
from clinicdesk.sla.application import ISLAConfigProvider, TicketService
from clinicdesk.sla.infrastructure import (
    SLAConfigManager,
    SQLAlchemyTicketRepository,
    LoggingAuditSink,
    ConfigCategoryRepository,
)
from clinicdesk.sla.interfaces import tickets_router

logger = get_logger(__name__)


def build_ticket_service(
    config_provider: ISLAConfigProvider,
    session_maker: async_sessionmaker[AsyncSession],
) -> TicketService:
    """Wire the ticket service with the database-backed stores."""
    return TicketService(
        ticket_repository=SQLAlchemyTicketRepository(session_maker),
        category_repository=ConfigCategoryRepository(config_provider),
        audit_sink=LoggingAuditSink(),
        config_provider=config_provider,
    )


def create_app(
    ticket_service: Optional[TicketService] = None,
    clock: Optional[Callable[[], datetime]] = None,
) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        ticket_service: Pre-wired service; when omitted the lifespan loads the
            SLA configuration file, opens the database and builds one
        clock: Source of the current instant; wall clock (UTC) when omitted
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator:
        config_manager = None

        if app.state.ticket_service is None:
            setup_logging(settings.log_level, settings.environment)
            logger.info("Starting clinicdesk", extra={
                "version": settings.app_version,
                "environment": settings.environment
            })

            logger.info("Loading SLA configuration")
            config_manager = SLAConfigManager()
            config_manager.load(settings.sla_config_path)
            if settings.sla_config_watch:
                config_manager.start_watching()

            logger.info("Initializing database")
            init_database(settings.database_url)
            await create_tables()

            app.state.ticket_service = build_ticket_service(config_manager, get_session_maker())

        yield

        if config_manager is not None:
            config_manager.stop_watching()
            await close_database()
        logger.info("clinicdesk shutdown complete")

    app = FastAPI(
        title="clinicdesk API",
        description="Clinic service desk: tickets with business-hours SLA tracking.",
        version=settings.app_version,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.ticket_service = ticket_service
    app.state.clock = clock

    app.add_middleware(LoggingMiddleware)
    app.add_middleware(CorrelationIDMiddleware)
    register_exception_handlers(app)

    app.include_router(tickets_router)

    @app.get("/health", tags=["Health"])
    async def health_check(request: Request):
        """Health check endpoint for load balancers and orchestrators."""
        return {
            "status": "healthy",
            "version": settings.app_version,
            "environment": settings.environment,
            "checks": {
                "ticket_service": "ready" if request.app.state.ticket_service else "not_ready",
            }
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "clinicdesk.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.environment == "development",
        log_level="info"
    )
