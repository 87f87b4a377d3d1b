"""
SLA Repositories
================

Concrete implementations of the application interfaces.

The SQLAlchemy store is what the service runs on. The in-memory store
applies each partial update as a single replacement of the stored
snapshot and backs the test-suite and embedded use.
"""

import asyncio
from dataclasses import replace
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import and_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from clinicdesk.core.exceptions import AlreadyExistsException, ResourceNotFoundException
from clinicdesk.shared.infrastructure.logging import get_logger
from clinicdesk.sla.application.services import (
    ITicketRepository, ICategoryRepository, IAuditSink, ISLAConfigProvider
)
from clinicdesk.sla.domain import Ticket, TicketMessage, Category, AuditEvent, SLAConfig
from clinicdesk.sla.infrastructure.models import TicketMessageModel, TicketModel

logger = get_logger(__name__)


class InMemoryTicketRepository(ITicketRepository):
    """Ticket store keyed by ticket id."""

    def __init__(self):
        self._tickets: Dict[str, Ticket] = {}
        self._messages: Dict[str, List[TicketMessage]] = {}
        self._lock = asyncio.Lock()

    async def get_by_id(self, ticket_id: str) -> Optional[Ticket]:
        return self._tickets.get(ticket_id)

    async def add(self, ticket: Ticket) -> Ticket:
        async with self._lock:
            if ticket.id in self._tickets:
                raise AlreadyExistsException("Ticket", ticket.id)
            self._tickets[ticket.id] = ticket
        return ticket

    async def apply_update(self, ticket_id: str, changes: Dict[str, Any]) -> Ticket:
        async with self._lock:
            current = self._tickets.get(ticket_id)
            if current is None:
                raise ResourceNotFoundException("Ticket", ticket_id)
            updated = replace(current, **changes) if changes else current
            self._tickets[ticket_id] = updated
        return updated

    async def list(self, filters: dict, limit: int = 100, offset: int = 0) -> List[Ticket]:
        """
        List tickets with filters.

        Supported filters: ``status`` and ``priority`` (a value or a list of
        values), ``category_id``.
        """
        def matches(ticket: Ticket) -> bool:
            for key in ("status", "priority", "category_id"):
                wanted = filters.get(key)
                if wanted is None:
                    continue
                values = wanted if isinstance(wanted, (list, tuple, set)) else [wanted]
                if getattr(ticket, key) not in values:
                    return False
            return True

        selected = sorted(
            (t for t in self._tickets.values() if matches(t)),
            key=lambda t: t.created_at,
        )
        return selected[offset:offset + limit]

    async def add_message(self, message: TicketMessage) -> TicketMessage:
        async with self._lock:
            if message.ticket_id not in self._tickets:
                raise ResourceNotFoundException("Ticket", message.ticket_id)
            self._messages.setdefault(message.ticket_id, []).append(message)
        return message

    async def list_messages(self, ticket_id: str, visibilities: Optional[List[str]] = None) -> List[TicketMessage]:
        return [
            m for m in self._messages.get(ticket_id, [])
            if visibilities is None or m.visibility in visibilities
        ]


class InMemoryCategoryRepository(ICategoryRepository):
    """Read-only category table, usually seeded from the SLA configuration."""

    def __init__(self, categories: Iterable[Category] = ()):
        self._categories = {c.id: c for c in categories}

    async def get_by_id(self, category_id: str) -> Optional[Category]:
        return self._categories.get(category_id)


class ConfigCategoryRepository(ICategoryRepository):
    """Categories read from whatever configuration the provider currently holds."""

    def __init__(self, config_provider: ISLAConfigProvider):
        self._config_provider = config_provider

    async def get_by_id(self, category_id: str) -> Optional[Category]:
        for category in self._config_provider.get_config().build_categories():
            if category.id == category_id:
                return category
        return None


class InMemoryAuditSink(IAuditSink):
    """Append-only list of events."""

    def __init__(self):
        self.events: List[AuditEvent] = []

    async def record(self, event: AuditEvent) -> None:
        self.events.append(event)

    def actions(self, ticket_id: Optional[str] = None) -> List[str]:
        return [e.action for e in self.events if ticket_id is None or e.entity_id == ticket_id]


class SQLAlchemyTicketRepository(ITicketRepository):
    """
    SQLAlchemy implementation of the ticket repository.

    Every call runs in its own session; a partial update is read, applied
    and committed in one transaction.
    """

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]):
        self._session_maker = session_maker

    async def get_by_id(self, ticket_id: str) -> Optional[Ticket]:
        async with self._session_maker() as session:
            model = await session.get(TicketModel, ticket_id)
            return model.to_entity() if model else None

    async def add(self, ticket: Ticket) -> Ticket:
        try:
            async with self._session_maker() as session, session.begin():
                session.add(TicketModel.from_entity(ticket))
        except IntegrityError as e:
            raise AlreadyExistsException("Ticket", ticket.id) from e
        return ticket

    async def apply_update(self, ticket_id: str, changes: Dict[str, Any]) -> Ticket:
        async with self._session_maker() as session, session.begin():
            model = await session.get(TicketModel, ticket_id, with_for_update=True)
            if model is None:
                raise ResourceNotFoundException("Ticket", ticket_id)
            model.apply_changes(changes)
            await session.flush()
            return model.to_entity()

    async def list(self, filters: dict, limit: int = 100, offset: int = 0) -> List[Ticket]:
        """List tickets with filters, oldest first."""
        stmt = select(TicketModel)

        conditions = []
        for key in ("status", "priority", "category_id"):
            wanted = filters.get(key)
            if wanted is None:
                continue
            column = getattr(TicketModel, key)
            if isinstance(wanted, (list, tuple, set)):
                conditions.append(column.in_(list(wanted)))
            else:
                conditions.append(column == wanted)

        if conditions:
            stmt = stmt.where(and_(*conditions))

        stmt = stmt.order_by(TicketModel.created_at, TicketModel.id).limit(limit).offset(offset)

        async with self._session_maker() as session:
            result = await session.execute(stmt)
            return [model.to_entity() for model in result.scalars().all()]

    async def add_message(self, message: TicketMessage) -> TicketMessage:
        async with self._session_maker() as session, session.begin():
            if await session.get(TicketModel, message.ticket_id) is None:
                raise ResourceNotFoundException("Ticket", message.ticket_id)
            session.add(TicketMessageModel.from_entity(message))
        return message

    async def list_messages(self, ticket_id: str, visibilities: Optional[List[str]] = None) -> List[TicketMessage]:
        stmt = select(TicketMessageModel).where(TicketMessageModel.ticket_id == ticket_id)
        if visibilities is not None:
            stmt = stmt.where(TicketMessageModel.visibility.in_(visibilities))
        stmt = stmt.order_by(TicketMessageModel.seq)

        async with self._session_maker() as session:
            result = await session.execute(stmt)
            return [model.to_entity() for model in result.scalars().all()]


class LoggingAuditSink(IAuditSink):
    """Writes each event to the structured log for the external audit store to collect."""

    async def record(self, event: AuditEvent) -> None:
        logger.info(
            "Audit event",
            extra={
                "audit_action": event.action,
                "actor_id": event.actor_id,
                "entity_type": event.entity_type,
                "entity_id": event.entity_id,
                "occurred_at": event.occurred_at.isoformat(),
                "payload": event.payload,
            }
        )


class StaticConfigProvider(ISLAConfigProvider):
    """Fixed configuration, for tests and embedded use."""

    def __init__(self, config: Optional[SLAConfig] = None):
        self._config = config or SLAConfig()

    def get_config(self) -> SLAConfig:
        return self._config
