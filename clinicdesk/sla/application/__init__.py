"""
SLA Application Layer
======================

Application layer for the SLA / ticket lifecycle module.

Contains:
- Services: Load snapshots, run the lifecycle, store partial updates, publish audit events
- DTOs: Data transfer objects for API serialization

This layer depends on the domain layer and repository interfaces,
but not on concrete infrastructure implementations.
"""

from clinicdesk.sla.application.dto import (
    TicketCreateDTO,
    TicketUpdateDTO,
    ResolutionDTO,
    MessageCreateDTO,
    MessageResponse,
    TicketResponse,
    TicketUpdateResponse,
    AuditEventResponse,
    SLAStatusResponse,
    TicketSLAResponse,
)
from clinicdesk.sla.application.services import (
    TicketService,
    ITicketRepository,
    ICategoryRepository,
    IAuditSink,
    ISLAConfigProvider,
)

__all__ = [
    # DTOs
    "TicketCreateDTO",
    "TicketUpdateDTO",
    "ResolutionDTO",
    "MessageCreateDTO",
    "MessageResponse",
    "TicketResponse",
    "TicketUpdateResponse",
    "AuditEventResponse",
    "SLAStatusResponse",
    "TicketSLAResponse",
    # Services
    "TicketService",
    # Repository Interfaces
    "ITicketRepository",
    "ICategoryRepository",
    "IAuditSink",
    "ISLAConfigProvider",
]
