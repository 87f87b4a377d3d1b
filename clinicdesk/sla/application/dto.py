"""
SLA Application DTOs
=====================

Data Transfer Objects for the ticket API layer.

These Pydantic models handle serialization/deserialization and validation
for API requests and responses, and convert to and from domain entities.
"""

from datetime import date, datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field

from clinicdesk.sla.domain import (
    Ticket, TicketChange, TicketUpdate, TicketMessage, ResolutionPayload, AuditEvent, SLAMetrics
)


# ========== Type Aliases for Literals ==========
PriorityStr = Literal["URGENT", "HIGH", "MEDIUM", "LOW"]
TicketStatusStr = Literal["OPEN", "IN_PROGRESS", "WAITING", "RESOLVED", "CLOSED"]
VisibilityStr = Literal["PUBLIC", "INTERNAL"]
SLAStateStr = Literal["on_track", "at_risk", "breached", "met"]


# ========== Request DTOs ==========

class TicketCreateDTO(BaseModel):
    """DTO for opening a ticket."""
    category_id: str = Field(..., min_length=1, description="Category the ticket is filed under")
    priority: Optional[PriorityStr] = Field(None, description="Defaults to the category priority")
    id: Optional[str] = Field(None, min_length=1, description="Explicit ticket ID")


class ResolutionDTO(BaseModel):
    """Resolution code plus supporting fields."""
    code: str = Field(..., description="Resolution code")
    parts_used: Optional[str] = Field(None, description="Parts used (part replacement)")
    replacement_date: Optional[date] = Field(None, description="Date of the part replacement")
    asset_tag: Optional[str] = Field(None, description="Equipment asset tag")
    justification: Optional[str] = Field(None, description="Why the equipment was condemned")
    recommended_action: Optional[str] = Field(None, description="Recommended follow-up action")

    def to_domain(self) -> ResolutionPayload:
        return ResolutionPayload(
            code=self.code.strip(),
            parts_used=(self.parts_used or "").strip() or None,
            replacement_date=self.replacement_date,
            asset_tag=(self.asset_tag or "").strip() or None,
            justification=(self.justification or "").strip() or None,
            recommended_action=(self.recommended_action or "").strip() or None,
        )

    @classmethod
    def from_domain(cls, payload: ResolutionPayload) -> "ResolutionDTO":
        return cls(
            code=payload.code,
            parts_used=payload.parts_used,
            replacement_date=payload.replacement_date,
            asset_tag=payload.asset_tag,
            justification=payload.justification,
            recommended_action=payload.recommended_action,
        )


class TicketUpdateDTO(BaseModel):
    """DTO for a status / priority / resolution change."""
    status: Optional[TicketStatusStr] = None
    priority: Optional[PriorityStr] = None
    resolution: Optional[ResolutionDTO] = None

    def to_change(self) -> TicketChange:
        return TicketChange(
            status=self.status,
            priority=self.priority,
            resolution=self.resolution.to_domain() if self.resolution else None,
        )


class MessageCreateDTO(BaseModel):
    """DTO for posting a message on a ticket."""
    body: str = Field(..., min_length=1)
    visibility: VisibilityStr = "PUBLIC"


# ========== Response DTOs ==========

class TicketResponse(BaseModel):
    """Ticket snapshot as returned by the API."""
    id: str
    status: TicketStatusStr
    priority: PriorityStr
    category_id: Optional[str] = None
    created_at: datetime
    first_response_at: Optional[datetime] = None
    response_due_at: datetime
    response_breached_at: Optional[datetime] = None
    resolved_at: Optional[datetime] = None
    resolution_due_at: datetime
    resolution_breached_at: Optional[datetime] = None
    sla_paused_at: Optional[datetime] = None
    sla_paused_total_min: int = 0
    resolution: Optional[ResolutionDTO] = None

    @classmethod
    def from_entity(cls, ticket: Ticket) -> "TicketResponse":
        return cls(
            id=ticket.id,
            status=ticket.status,
            priority=ticket.priority,
            category_id=ticket.category_id,
            created_at=ticket.created_at,
            first_response_at=ticket.first_response_at,
            response_due_at=ticket.response_due_at,
            response_breached_at=ticket.response_breached_at,
            resolved_at=ticket.resolved_at,
            resolution_due_at=ticket.resolution_due_at,
            resolution_breached_at=ticket.resolution_breached_at,
            sla_paused_at=ticket.sla_paused_at,
            sla_paused_total_min=ticket.sla_paused_total_min,
            resolution=ResolutionDTO.from_domain(ticket.resolution) if ticket.resolution else None,
        )


class AuditEventResponse(BaseModel):
    """Audit event emitted by an operation."""
    action: str
    actor_id: Optional[str] = None
    entity_type: str = "Ticket"
    entity_id: str
    occurred_at: datetime
    payload: Dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_entity(cls, event: AuditEvent) -> "AuditEventResponse":
        return cls(
            action=event.action,
            actor_id=event.actor_id,
            entity_type=event.entity_type,
            entity_id=event.entity_id,
            occurred_at=event.occurred_at,
            payload=event.payload,
        )


class MessageResponse(BaseModel):
    """Message on a ticket thread."""
    id: str
    ticket_id: str
    author_id: Optional[str] = None
    visibility: VisibilityStr
    body: str
    created_at: datetime

    @classmethod
    def from_entity(cls, message: TicketMessage) -> "MessageResponse":
        return cls(
            id=message.id,
            ticket_id=message.ticket_id,
            author_id=message.author_id,
            visibility=message.visibility,
            body=message.body,
            created_at=message.created_at,
        )


class TicketUpdateResponse(BaseModel):
    """Result of an update: new snapshot plus the events it produced."""
    ticket: TicketResponse
    changed_fields: List[str] = Field(default_factory=list)
    events: List[AuditEventResponse] = Field(default_factory=list)
    message: Optional[MessageResponse] = None

    @classmethod
    def from_update(cls, update: TicketUpdate) -> "TicketUpdateResponse":
        return cls(
            ticket=TicketResponse.from_entity(update.ticket),
            changed_fields=sorted(update.changes),
            events=[AuditEventResponse.from_entity(e) for e in update.events],
            message=MessageResponse.from_entity(update.message) if update.message else None,
        )


class SLAStatusResponse(BaseModel):
    """Response model for SLA status of a single clock."""
    deadline: datetime = Field(..., description="SLA deadline")
    remaining_minutes: int = Field(..., description="Business minutes remaining (0 if breached/met)")
    is_breached: bool = Field(..., description="Whether SLA is breached")
    state: SLAStateStr = Field(..., description="Current SLA state")
    met_at: Optional[datetime] = Field(None, description="When SLA was met")


class TicketSLAResponse(BaseModel):
    """Response model for ticket SLA information."""
    ticket_id: str
    evaluated_at: datetime
    is_paused: bool
    response_sla: SLAStatusResponse
    resolution_sla: SLAStatusResponse
    overall_state: SLAStateStr

    @classmethod
    def from_metrics(cls, metrics: SLAMetrics) -> "TicketSLAResponse":
        return cls(
            ticket_id=metrics.ticket_id,
            evaluated_at=metrics.evaluated_at,
            is_paused=metrics.is_paused,
            response_sla=SLAStatusResponse(
                deadline=metrics.response_deadline,
                remaining_minutes=metrics.response_remaining_minutes,
                is_breached=metrics.response_is_breached,
                state=metrics.response_state,
                met_at=metrics.response_met_at,
            ),
            resolution_sla=SLAStatusResponse(
                deadline=metrics.resolution_deadline,
                remaining_minutes=metrics.resolution_remaining_minutes,
                is_breached=metrics.resolution_is_breached,
                state=metrics.resolution_state,
                met_at=metrics.resolution_met_at,
            ),
            overall_state=metrics.most_urgent_state,
        )
