"""
SLA Infrastructure Layer
=========================

Infrastructure implementations for the SLA module:
- Models: SQLAlchemy tables for tickets and their messages
- Repositories: SQLAlchemy and in-process ticket stores, category stores, audit sinks
- External: YAML configuration manager with file watching
"""

from clinicdesk.sla.infrastructure.models import (
    TicketModel,
    TicketMessageModel,
)
from clinicdesk.sla.infrastructure.repositories import (
    SQLAlchemyTicketRepository,
    LoggingAuditSink,
    InMemoryTicketRepository,
    InMemoryCategoryRepository,
    ConfigCategoryRepository,
    InMemoryAuditSink,
    StaticConfigProvider,
)
from clinicdesk.sla.infrastructure.external import SLAConfigManager, ConfigFileHandler

__all__ = [
    "TicketModel",
    "TicketMessageModel",
    "SQLAlchemyTicketRepository",
    "LoggingAuditSink",
    "InMemoryTicketRepository",
    "InMemoryCategoryRepository",
    "ConfigCategoryRepository",
    "InMemoryAuditSink",
    "StaticConfigProvider",
    "SLAConfigManager",
    "ConfigFileHandler",
]
