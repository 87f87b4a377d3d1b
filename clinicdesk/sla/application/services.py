"""
SLA Application Services
=========================

Application services orchestrate business logic and coordinate between
domain entities and repositories.

Following SOLID principles:
- Single Responsibility: the lifecycle computes, the service loads, stores and publishes
- Dependency Inversion: depend on abstractions (repositories, audit sink), not implementations

The lifecycle itself is pure. Read-modify-write over a stored ticket is not,
so updates to one ticket id are serialised here; different tickets never
share a lock.
"""

import asyncio
import weakref
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import uuid4

from clinicdesk.config import ActorRole, AuditAction, MessageVisibility
from clinicdesk.core.exceptions import ResourceNotFoundException, ValidationException
from clinicdesk.shared.infrastructure.logging import get_logger, log_latency
from clinicdesk.sla.domain import (
    Ticket, TicketChange, TicketUpdate, TicketMessage, AuditEvent, SLAMetrics,
    Category, SLAConfig, SLAStatusEvaluator, TicketLifecycle
)

logger = get_logger(__name__)

STAFF_ROLES = (ActorRole.TECH, ActorRole.ADMIN)


# ========== Repository Interfaces (Dependency Inversion) ==========

class ITicketRepository(ABC):
    """Interface for ticket data access."""

    @abstractmethod
    async def get_by_id(self, ticket_id: str) -> Optional[Ticket]:
        """Get ticket snapshot by ID."""

    @abstractmethod
    async def add(self, ticket: Ticket) -> Ticket:
        """Store a new ticket."""

    @abstractmethod
    async def apply_update(self, ticket_id: str, changes: Dict[str, Any]) -> Ticket:
        """Apply a partial update atomically and return the stored snapshot."""

    @abstractmethod
    async def list(self, filters: dict, limit: int = 100, offset: int = 0) -> List[Ticket]:
        """List tickets with filters."""

    @abstractmethod
    async def add_message(self, message: TicketMessage) -> TicketMessage:
        """Append a message to a ticket thread."""

    @abstractmethod
    async def list_messages(self, ticket_id: str, visibilities: Optional[List[str]] = None) -> List[TicketMessage]:
        """Messages of one ticket, oldest first, optionally restricted by visibility."""


class ICategoryRepository(ABC):
    """Interface for category lookup."""

    @abstractmethod
    async def get_by_id(self, category_id: str) -> Optional[Category]:
        """Get category by ID."""


class IAuditSink(ABC):
    """Append-only audit log."""

    @abstractmethod
    async def record(self, event: AuditEvent) -> None:
        """Append one event."""


class ISLAConfigProvider(ABC):
    """Interface for SLA configuration access."""

    @abstractmethod
    def get_config(self) -> SLAConfig:
        """Get current SLA configuration."""


# ========== Application Services ==========

class TicketService:
    """
    Service for ticket creation, updates and first-response capture.

    Coordinates between the lifecycle and data access. The engine is rebuilt
    whenever the config provider hands out a new configuration, so a
    hot-reloaded calendar or policy applies to the next operation.
    """

    def __init__(
        self,
        ticket_repository: ITicketRepository,
        category_repository: ICategoryRepository,
        audit_sink: IAuditSink,
        config_provider: ISLAConfigProvider
    ):
        self._ticket_repo = ticket_repository
        self._category_repo = category_repository
        self._audit_sink = audit_sink
        self._config_provider = config_provider

        # Entries vanish once no coroutine holds or waits on the lock
        self._locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()
        self._config: Optional[SLAConfig] = None
        self._lifecycle: Optional[TicketLifecycle] = None
        self._evaluator: Optional[SLAStatusEvaluator] = None

    def _engine(self) -> TicketLifecycle:
        config = self._config_provider.get_config()
        if config is not self._config:
            self._lifecycle = TicketLifecycle.from_config(config)
            self._evaluator = SLAStatusEvaluator(
                self._lifecycle.calculator, config.warning_threshold_percent
            )
            self._config = config
        return self._lifecycle

    def _lock_for(self, ticket_id: str) -> asyncio.Lock:
        lock = self._locks.get(ticket_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[ticket_id] = lock
        return lock

    async def _require_ticket(self, ticket_id: str) -> Ticket:
        ticket = await self._ticket_repo.get_by_id(ticket_id)
        if ticket is None:
            raise ResourceNotFoundException("Ticket", ticket_id)
        return ticket

    async def create_ticket(
        self,
        category_id: str,
        actor_id: str,
        now: datetime,
        priority: Optional[str] = None,
        ticket_id: Optional[str] = None
    ) -> Ticket:
        """
        Open a ticket in a category.

        Args:
            category_id: Category the ticket is filed under
            actor_id: Requester
            now: Creation instant
            priority: Explicit priority; defaults to the category's
            ticket_id: Explicit identity; a UUID is generated when omitted

        Returns:
            The stored ticket with its initial due dates
        """
        category = await self._category_repo.get_by_id(category_id)
        if category is None:
            raise ResourceNotFoundException("Category", category_id)

        result = self._engine().open_ticket(
            ticket_id=ticket_id or str(uuid4()),
            created_at=now,
            category=category,
            actor_id=actor_id,
            priority=priority,
        )
        ticket = await self._ticket_repo.add(result.ticket)
        await self._publish(result.events)

        logger.info(
            "Ticket created",
            extra={"ticket_id": ticket.id, "category_id": category_id, "priority": ticket.priority}
        )
        return ticket

    async def update_ticket(
        self,
        ticket_id: str,
        change: TicketChange,
        now: datetime,
        actor_id: str,
        actor_role: str
    ) -> TicketUpdate:
        """
        Apply a status / priority / resolution change to a stored ticket.

        Raises:
            ResourceNotFoundException: unknown ticket
            ForbiddenException: actor may not resolve/close
            ValidationException: invalid change; nothing is stored
        """
        # Unknown ids never get a lock entry
        await self._require_ticket(ticket_id)
        async with self._lock_for(ticket_id):
            ticket = await self._require_ticket(ticket_id)
            with log_latency(logger, "ticket_update", ticket_id=ticket_id):
                result = self._engine().apply_update(ticket, change, now, actor_role, actor_id)
            stored = await self._ticket_repo.apply_update(ticket_id, result.changes)
            await self._publish(result.events)

        return TicketUpdate(ticket=stored, changes=result.changes, events=result.events)

    async def post_message(
        self,
        ticket_id: str,
        body: str,
        now: datetime,
        actor_id: str,
        actor_role: str,
        visibility: str = MessageVisibility.PUBLIC
    ) -> TicketUpdate:
        """
        Store a message on a ticket thread.

        A qualifying actor's first message stops the response clock. Only
        staff may post internal notes; anything else is published.

        Returns:
            The ticket after the first-response stamp, the stored message
            and the audit events
        """
        body = (body or "").strip()
        if not body:
            raise ValidationException("message body is required", field="body")
        if actor_role not in STAFF_ROLES or \
                visibility not in (MessageVisibility.PUBLIC, MessageVisibility.INTERNAL):
            visibility = MessageVisibility.PUBLIC

        await self._require_ticket(ticket_id)
        async with self._lock_for(ticket_id):
            ticket = await self._require_ticket(ticket_id)
            result = self._engine().record_first_response(ticket, now, actor_role, actor_id)
            message = await self._ticket_repo.add_message(TicketMessage(
                id=str(uuid4()),
                ticket_id=ticket_id,
                author_id=actor_id,
                visibility=visibility,
                body=body,
                created_at=now,
            ))
            if result.changes:
                ticket = await self._ticket_repo.apply_update(ticket_id, result.changes)

            events = list(result.events)
            events.append(AuditEvent(
                actor_id=actor_id,
                action=AuditAction.MESSAGE_CREATE,
                entity_id=ticket_id,
                occurred_at=now,
                payload={"visibility": visibility},
            ))
            await self._publish(events)

        return TicketUpdate(ticket=ticket, changes=result.changes, events=events, message=message)

    async def list_messages(self, ticket_id: str, actor_role: str) -> List[TicketMessage]:
        """Thread of a ticket as the actor may see it; internal notes are staff-only."""
        await self._require_ticket(ticket_id)
        visibilities = None if actor_role in STAFF_ROLES else [MessageVisibility.PUBLIC]
        return await self._ticket_repo.list_messages(ticket_id, visibilities)

    async def get_ticket(self, ticket_id: str) -> Ticket:
        return await self._require_ticket(ticket_id)

    async def list_tickets(self, filters: Optional[dict] = None, limit: int = 100, offset: int = 0) -> List[Ticket]:
        return await self._ticket_repo.list(filters or {}, limit=limit, offset=offset)

    async def get_sla_metrics(self, ticket_id: str, now: datetime) -> SLAMetrics:
        """Calculate SLA metrics for a ticket at ``now``."""
        ticket = await self._require_ticket(ticket_id)
        self._engine()
        return self._evaluator.evaluate(ticket, now)

    async def _publish(self, events: List[AuditEvent]) -> None:
        # Audit is best-effort: a failing sink never undoes a stored update
        for event in events:
            try:
                await self._audit_sink.record(event)
            except Exception as e:
                logger.warning(
                    f"Audit delivery failed: {e}",
                    extra={"ticket_id": event.entity_id, "action": event.action},
                )
