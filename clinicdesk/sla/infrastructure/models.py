"""
SLA Infrastructure Models
==========================

SQLAlchemy ORM models for the SLA module.

These are the database representations of our domain entities.
They belong in the infrastructure layer, not the domain layer.
"""

from datetime import date, datetime
from typing import Any, Dict, Optional

from sqlalchemy import Date, Float, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.types import TypeDecorator

from clinicdesk.config import MessageVisibility
from clinicdesk.infrastructure.database import Base
from clinicdesk.sla.domain import ResolutionPayload, Ticket, TicketMessage


class IsoDateTime(TypeDecorator):
    """
    Instant stored as ISO-8601 text.

    Naive wall-clock values come back naive and aware values keep their
    offset on every backend. SQLite's DATETIME would drop the offset.
    """
    impl = String(40)
    cache_ok = True

    def process_bind_param(self, value: Optional[datetime], dialect) -> Optional[str]:
        return value.isoformat() if value is not None else None

    def process_result_value(self, value: Optional[str], dialect) -> Optional[datetime]:
        return datetime.fromisoformat(value) if value is not None else None


# Ticket fields that map one-to-one onto columns
TICKET_COLUMNS = (
    "id", "status", "priority", "category_id", "resolution_override_hours",
    "created_at", "response_due_at", "resolution_due_at",
    "first_response_at", "response_breached_at", "resolved_at", "resolution_breached_at",
    "sla_paused_at", "sla_paused_total_min",
)


class TicketModel(Base):
    """
    Database model for Ticket entity.

    Maps to the 'tickets' table. The resolution payload is flattened into
    ``resolution_*`` columns.
    """
    __tablename__ = "tickets"

    # Primary key
    id: Mapped[str] = mapped_column(String(64), primary_key=True)

    status: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    priority: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    category_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True, index=True)
    resolution_override_hours: Mapped[Optional[float]] = mapped_column(Float, nullable=True)

    # Timestamps and due dates
    created_at: Mapped[datetime] = mapped_column(IsoDateTime, nullable=False, index=True)
    response_due_at: Mapped[datetime] = mapped_column(IsoDateTime, nullable=False)
    resolution_due_at: Mapped[datetime] = mapped_column(IsoDateTime, nullable=False)

    # SLA tracking
    first_response_at: Mapped[Optional[datetime]] = mapped_column(IsoDateTime, nullable=True)
    response_breached_at: Mapped[Optional[datetime]] = mapped_column(IsoDateTime, nullable=True)
    resolved_at: Mapped[Optional[datetime]] = mapped_column(IsoDateTime, nullable=True)
    resolution_breached_at: Mapped[Optional[datetime]] = mapped_column(IsoDateTime, nullable=True)
    sla_paused_at: Mapped[Optional[datetime]] = mapped_column(IsoDateTime, nullable=True)
    sla_paused_total_min: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Resolution payload
    resolution_code: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    resolution_parts_used: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    resolution_replacement_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    resolution_asset_tag: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    resolution_justification: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    resolution_recommended_action: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    @classmethod
    def from_entity(cls, ticket: Ticket) -> "TicketModel":
        model = cls(**{column: getattr(ticket, column) for column in TICKET_COLUMNS})
        model._set_resolution(ticket.resolution)
        return model

    def apply_changes(self, changes: Dict[str, Any]) -> None:
        """Copy a partial ticket update onto the row."""
        for key, value in changes.items():
            if key == "resolution":
                self._set_resolution(value)
            elif key in TICKET_COLUMNS:
                setattr(self, key, value)
            else:
                raise KeyError(f"not a ticket field: {key}")

    def _set_resolution(self, resolution: Optional[ResolutionPayload]) -> None:
        self.resolution_code = resolution.code if resolution else None
        self.resolution_parts_used = resolution.parts_used if resolution else None
        self.resolution_replacement_date = resolution.replacement_date if resolution else None
        self.resolution_asset_tag = resolution.asset_tag if resolution else None
        self.resolution_justification = resolution.justification if resolution else None
        self.resolution_recommended_action = resolution.recommended_action if resolution else None

    def to_entity(self) -> Ticket:
        resolution = None
        if self.resolution_code is not None:
            resolution = ResolutionPayload(
                code=self.resolution_code,
                parts_used=self.resolution_parts_used,
                replacement_date=self.resolution_replacement_date,
                asset_tag=self.resolution_asset_tag,
                justification=self.resolution_justification,
                recommended_action=self.resolution_recommended_action,
            )
        return Ticket(
            resolution=resolution,
            **{column: getattr(self, column) for column in TICKET_COLUMNS},
        )


class TicketMessageModel(Base):
    """
    Database model for a message on a ticket thread.

    Maps to the 'ticket_messages' table.
    """
    __tablename__ = "ticket_messages"

    # Insertion order is thread order
    seq: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    id: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    ticket_id: Mapped[str] = mapped_column(ForeignKey("tickets.id"), nullable=False, index=True)
    author_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    visibility: Mapped[str] = mapped_column(String(20), nullable=False, default=MessageVisibility.PUBLIC)
    body: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(IsoDateTime, nullable=False)

    @classmethod
    def from_entity(cls, message: TicketMessage) -> "TicketMessageModel":
        return cls(
            id=message.id,
            ticket_id=message.ticket_id,
            author_id=message.author_id,
            visibility=message.visibility,
            body=message.body,
            created_at=message.created_at,
        )

    def to_entity(self) -> TicketMessage:
        return TicketMessage(
            id=self.id,
            ticket_id=self.ticket_id,
            author_id=self.author_id,
            visibility=self.visibility,
            body=self.body,
            created_at=self.created_at,
        )
