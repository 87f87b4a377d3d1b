"""
SLA Domain Entities
====================

Pure Python domain entities for the ticket lifecycle.

A ``Ticket`` is an immutable snapshot: the lifecycle never mutates it, it
returns a new snapshot together with the partial update that produced it.
Entities contain no infrastructure concerns.
"""

from dataclasses import dataclass, field, asdict
from datetime import datetime, date
from typing import Optional, List, Dict, Any

from clinicdesk.config import SLAState, TicketStatus


@dataclass(frozen=True)
class ResolutionPayload:
    """Resolution code plus the supporting fields some codes require."""

    code: str
    parts_used: Optional[str] = None
    replacement_date: Optional[date] = None
    asset_tag: Optional[str] = None
    justification: Optional[str] = None
    recommended_action: Optional[str] = None


@dataclass(frozen=True)
class Ticket:
    """
    Ticket snapshot the SLA engine operates on.

    Breach markers are set at most once and never cleared.
    ``sla_paused_at`` is present exactly while the status is pause-inducing.
    """

    id: str
    status: str
    priority: str
    created_at: datetime
    response_due_at: datetime
    resolution_due_at: datetime

    category_id: Optional[str] = None
    resolution_override_hours: Optional[float] = None

    first_response_at: Optional[datetime] = None
    response_breached_at: Optional[datetime] = None
    resolved_at: Optional[datetime] = None
    resolution_breached_at: Optional[datetime] = None

    sla_paused_at: Optional[datetime] = None
    sla_paused_total_min: int = 0

    resolution: Optional[ResolutionPayload] = None

    def __post_init__(self):
        if self.sla_paused_total_min < 0:
            raise ValueError("sla_paused_total_min cannot be negative")
        if self.first_response_at and self.first_response_at < self.created_at:
            raise ValueError("first_response_at cannot be before created_at")
        if self.resolved_at and self.resolved_at < self.created_at:
            raise ValueError("resolved_at cannot be before created_at")

    @property
    def is_paused(self) -> bool:
        return self.sla_paused_at is not None

    @property
    def is_resolved(self) -> bool:
        return self.status in (TicketStatus.RESOLVED, TicketStatus.CLOSED)

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class TicketChange:
    """Requested change: any combination of status, priority and resolution."""

    status: Optional[str] = None
    priority: Optional[str] = None
    resolution: Optional[ResolutionPayload] = None


@dataclass(frozen=True)
class TicketMessage:
    """Message posted on a ticket thread."""

    id: str
    ticket_id: str
    author_id: Optional[str]
    visibility: str
    body: str
    created_at: datetime


@dataclass(frozen=True)
class AuditEvent:
    """Entry handed to the external append-only audit log."""

    actor_id: Optional[str]
    action: str
    entity_id: str
    occurred_at: datetime
    payload: Dict[str, Any] = field(default_factory=dict)
    entity_type: str = "Ticket"


@dataclass(frozen=True)
class TicketUpdate:
    """
    Outcome of a lifecycle operation.

    ``changes`` is the partial update the store must apply atomically;
    ``ticket`` is the snapshot after applying it.
    """

    ticket: Ticket
    changes: Dict[str, Any] = field(default_factory=dict)
    events: List[AuditEvent] = field(default_factory=list)
    message: Optional[TicketMessage] = None

    @property
    def is_noop(self) -> bool:
        return not self.changes and not self.events


@dataclass
class SLAMetrics:
    """
    SLA metrics for a ticket at a given instant.

    Remaining time is expressed in business minutes.
    """

    ticket_id: str
    evaluated_at: datetime

    # Response SLA
    response_deadline: datetime
    response_remaining_minutes: int
    response_is_breached: bool
    response_state: str

    # Resolution SLA
    resolution_deadline: datetime
    resolution_remaining_minutes: int
    resolution_is_breached: bool
    resolution_state: str

    is_paused: bool = False
    response_met_at: Optional[datetime] = None
    resolution_met_at: Optional[datetime] = None

    is_any_breached: bool = field(init=False)

    def __post_init__(self):
        self.is_any_breached = self.response_is_breached or self.resolution_is_breached

    @property
    def most_urgent_state(self) -> str:
        """Get the most urgent SLA state."""
        if self.is_any_breached:
            return SLAState.BREACHED
        if SLAState.AT_RISK in (self.response_state, self.resolution_state):
            return SLAState.AT_RISK
        if self.response_state == SLAState.MET and self.resolution_state == SLAState.MET:
            return SLAState.MET
        return SLAState.ON_TRACK

    def to_dict(self) -> dict:
        """Convert to dictionary for API responses."""
        return {
            "ticket_id": self.ticket_id,
            "evaluated_at": self.evaluated_at.isoformat(),
            "is_paused": self.is_paused,
            "response": {
                "deadline": self.response_deadline.isoformat(),
                "remaining_minutes": self.response_remaining_minutes,
                "is_breached": self.response_is_breached,
                "state": self.response_state,
                "met_at": self.response_met_at.isoformat() if self.response_met_at else None
            },
            "resolution": {
                "deadline": self.resolution_deadline.isoformat(),
                "remaining_minutes": self.resolution_remaining_minutes,
                "is_breached": self.resolution_is_breached,
                "state": self.resolution_state,
                "met_at": self.resolution_met_at.isoformat() if self.resolution_met_at else None
            },
            "overall": {
                "state": self.most_urgent_state,
                "is_any_breached": self.is_any_breached
            }
        }
