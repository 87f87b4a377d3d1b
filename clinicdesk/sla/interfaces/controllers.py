"""
Ticket Controllers (API Routes)
================================

FastAPI routes for ticket lifecycle endpoints.

Controllers are thin - they delegate to the application service. The actor
is taken from request headers set by the authenticating gateway, and the
current instant is read here, at the boundary, never inside the engine.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, List, Optional

from fastapi import APIRouter, Depends, Header, Query, Request, status

from clinicdesk.config import VALID_ROLES
from clinicdesk.core.exceptions import ForbiddenException
from clinicdesk.shared.infrastructure.logging import get_logger
from clinicdesk.sla.application import (
    TicketService,
    TicketCreateDTO, TicketUpdateDTO, MessageCreateDTO,
    TicketResponse, TicketUpdateResponse, TicketSLAResponse, MessageResponse,
)
from clinicdesk.sla.application.dto import PriorityStr, TicketStatusStr

logger = get_logger(__name__)
router = APIRouter(prefix="/tickets", tags=["Tickets"])


@dataclass(frozen=True)
class Actor:
    id: str
    role: str


# ========== Dependencies ==========

def get_ticket_service(request: Request) -> TicketService:
    """Get the ticket service wired at startup."""
    return request.app.state.ticket_service


def get_clock(request: Request) -> Callable[[], datetime]:
    return getattr(request.app.state, "clock", None) or (lambda: datetime.now(timezone.utc))


async def get_actor(
    x_actor_id: str = Header(..., description="Authenticated user id"),
    x_actor_role: str = Header(..., description="Authenticated user role"),
) -> Actor:
    if x_actor_role not in VALID_ROLES:
        raise ForbiddenException(f"unknown role {x_actor_role!r}", role=x_actor_role)
    return Actor(id=x_actor_id, role=x_actor_role)


# ========== Route Handlers ==========

@router.post(
    "",
    response_model=TicketResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Open a ticket",
)
async def create_ticket(
    request: TicketCreateDTO,
    actor: Actor = Depends(get_actor),
    service: TicketService = Depends(get_ticket_service),
    clock: Callable[[], datetime] = Depends(get_clock),
):
    """
    Open a ticket in a category.

    Response and resolution due dates are computed in business minutes from
    the category's priority (or the explicit one) and, when the category has
    one, its resolution override.
    """
    ticket = await service.create_ticket(
        category_id=request.category_id,
        actor_id=actor.id,
        now=clock(),
        priority=request.priority,
        ticket_id=request.id,
    )
    return TicketResponse.from_entity(ticket)


@router.get("", response_model=List[TicketResponse], summary="List tickets")
async def list_tickets(
    status_filter: Optional[TicketStatusStr] = Query(None, alias="status"),
    priority: Optional[PriorityStr] = None,
    category_id: Optional[str] = None,
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    service: TicketService = Depends(get_ticket_service),
):
    filters = {"status": status_filter, "priority": priority, "category_id": category_id}
    tickets = await service.list_tickets(filters, limit=limit, offset=offset)
    return [TicketResponse.from_entity(t) for t in tickets]


@router.get("/{ticket_id}", response_model=TicketResponse, summary="Get a ticket")
async def get_ticket(
    ticket_id: str,
    service: TicketService = Depends(get_ticket_service),
):
    return TicketResponse.from_entity(await service.get_ticket(ticket_id))


@router.patch(
    "/{ticket_id}",
    response_model=TicketUpdateResponse,
    summary="Change status, priority or resolution",
)
async def update_ticket(
    ticket_id: str,
    request: TicketUpdateDTO,
    actor: Actor = Depends(get_actor),
    service: TicketService = Depends(get_ticket_service),
    clock: Callable[[], datetime] = Depends(get_clock),
):
    """
    Apply a change to a ticket.

    **Resolving** (`RESOLVED` / `CLOSED`) requires a resolving role and a
    resolution code. `WAITING` pauses the resolution clock until the ticket
    leaves it.

    Errors: 403 when the role may not resolve, 422 on missing or
    contradictory resolution fields, 404 for unknown tickets. A rejected
    change leaves the ticket untouched.
    """
    update = await service.update_ticket(
        ticket_id=ticket_id,
        change=request.to_change(),
        now=clock(),
        actor_id=actor.id,
        actor_role=actor.role,
    )
    return TicketUpdateResponse.from_update(update)


@router.post(
    "/{ticket_id}/messages",
    response_model=TicketUpdateResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Post a message",
)
async def post_message(
    ticket_id: str,
    request: MessageCreateDTO,
    actor: Actor = Depends(get_actor),
    service: TicketService = Depends(get_ticket_service),
    clock: Callable[[], datetime] = Depends(get_clock),
):
    """
    Post a message on the ticket thread.

    The first message from a technician stops the response clock. Only
    technicians and admins may post `INTERNAL` notes; other actors'
    messages are stored as `PUBLIC`.
    """
    update = await service.post_message(
        ticket_id=ticket_id,
        body=request.body,
        now=clock(),
        actor_id=actor.id,
        actor_role=actor.role,
        visibility=request.visibility,
    )
    return TicketUpdateResponse.from_update(update)


@router.get(
    "/{ticket_id}/messages",
    response_model=List[MessageResponse],
    summary="List the messages of a ticket",
)
async def list_messages(
    ticket_id: str,
    actor: Actor = Depends(get_actor),
    service: TicketService = Depends(get_ticket_service),
):
    """Oldest first. Internal notes are only listed for technicians and admins."""
    messages = await service.list_messages(ticket_id, actor.role)
    return [MessageResponse.from_entity(m) for m in messages]


@router.get("/{ticket_id}/sla", response_model=TicketSLAResponse, summary="Get ticket SLA status")
async def get_ticket_sla(
    ticket_id: str,
    service: TicketService = Depends(get_ticket_service),
    clock: Callable[[], datetime] = Depends(get_clock),
):
    metrics = await service.get_sla_metrics(ticket_id, clock())
    return TicketSLAResponse.from_metrics(metrics)
