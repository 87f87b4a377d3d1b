"""
Ticket Lifecycle
================

Status transitions, first-response capture, SLA pause/resume accounting and
breach stamping.

Every operation takes a ticket snapshot, the requested change and the current
instant, and returns a ``TicketUpdate``: the partial update, the resulting
snapshot and the audit events, in emission order. Guard failures raise before
anything is produced, so a rejected operation leaves the caller's snapshot
exactly as it was.
"""

from dataclasses import replace
from datetime import datetime
from typing import Dict, FrozenSet, Iterable, List, Optional, Tuple

from clinicdesk.config import (
    TicketStatus, ResolutionCode, AuditAction,
    VALID_STATUSES, VALID_RESOLUTION_CODES,
    RESOLVING_STATUSES, PAUSE_STATUSES,
)
from clinicdesk.core.exceptions import ValidationException, ForbiddenException
from clinicdesk.shared.infrastructure.logging import get_logger
from clinicdesk.sla.domain.business_time import BusinessTimeCalculator
from clinicdesk.sla.domain.entities import (
    Ticket, TicketChange, TicketUpdate, AuditEvent, ResolutionPayload
)
from clinicdesk.sla.domain.value_objects import (
    Category, DeadlineCalculator, SLAConfig, ensure_priority
)

logger = get_logger(__name__)

# Guards attached to a transition
MAY_RESOLVE = "may_resolve"
RESOLUTION_CODE = "resolution_code"


def _build_transitions() -> Dict[Tuple[str, str], FrozenSet[str]]:
    # Every status may follow every other one (CLOSED -> OPEN included);
    # only the guards differ by target.
    table = {}
    for source in VALID_STATUSES:
        for target in VALID_STATUSES:
            if target in RESOLVING_STATUSES:
                table[(source, target)] = frozenset({MAY_RESOLVE, RESOLUTION_CODE})
            else:
                table[(source, target)] = frozenset()
    return table


TRANSITIONS: Dict[Tuple[str, str], FrozenSet[str]] = _build_transitions()


class TicketLifecycle:
    """
    Ticket lifecycle state machine.

    Args:
        deadlines: Deadline calculator for initial and priority-driven due dates
        calculator: Business-time arithmetic used for pause accounting
        resolving_roles: Roles allowed to move a ticket to RESOLVED/CLOSED
        first_response_roles: Roles whose first message stops the response clock
    """

    def __init__(
        self,
        deadlines: DeadlineCalculator,
        calculator: BusinessTimeCalculator,
        resolving_roles: Iterable[str],
        first_response_roles: Iterable[str],
    ):
        self._deadlines = deadlines
        self._calculator = calculator
        self._resolving_roles = frozenset(resolving_roles)
        self._first_response_roles = frozenset(first_response_roles)

    @classmethod
    def from_config(cls, config: SLAConfig) -> "TicketLifecycle":
        calculator = BusinessTimeCalculator(config.build_calendar())
        return cls(
            deadlines=DeadlineCalculator(config.build_policy(), calculator),
            calculator=calculator,
            resolving_roles=config.resolving_roles,
            first_response_roles=config.first_response_roles,
        )

    @property
    def calculator(self) -> BusinessTimeCalculator:
        return self._calculator

    def may_resolve(self, actor_role: str) -> bool:
        return actor_role in self._resolving_roles

    # ========== Creation ==========

    def open_ticket(
        self,
        ticket_id: str,
        created_at: datetime,
        category: Category,
        actor_id: Optional[str] = None,
        priority: Optional[str] = None,
    ) -> TicketUpdate:
        """Create an OPEN ticket with its initial due dates."""
        if not category.active:
            raise ValidationException(
                f"category {category.id!r} is inactive", field="category_id"
            )

        priority = ensure_priority(priority or category.default_priority)
        due = self._deadlines.initial_due_dates(
            created_at, priority, category.resolution_override_hours
        )
        ticket = Ticket(
            id=ticket_id,
            status=TicketStatus.OPEN,
            priority=priority,
            created_at=created_at,
            response_due_at=due.response_due_at,
            resolution_due_at=due.resolution_due_at,
            category_id=category.id,
            resolution_override_hours=category.resolution_override_hours,
        )
        event = AuditEvent(
            actor_id=actor_id,
            action=AuditAction.TICKET_CREATE,
            entity_id=ticket_id,
            occurred_at=created_at,
            payload={"categoryId": category.id, "priority": priority},
        )
        return TicketUpdate(ticket=ticket, changes=ticket.to_dict(), events=[event])

    # ========== Updates ==========

    def apply_update(
        self,
        ticket: Ticket,
        change: TicketChange,
        now: datetime,
        actor_role: str,
        actor_id: Optional[str] = None,
    ) -> TicketUpdate:
        """
        Apply a status / priority / resolution change.

        Steps run in a fixed order and each one sees the result of the
        previous ones: guards, priority recompute, pause/resume accounting,
        resolution stamping, resolution payload, then status and priority.

        Raises:
            ForbiddenException: actor may not resolve/close
            ValidationException: unknown values or missing resolution fields
        """
        target_status = change.status if change.status is not None else ticket.status
        target_priority = change.priority if change.priority is not None else ticket.priority
        resolution = change.resolution if change.resolution and change.resolution.code else None

        self._validate_values(target_status, target_priority, resolution)

        requested = change.status is not None
        guards = TRANSITIONS[(ticket.status, target_status)] if requested else frozenset()
        resolving = requested and target_status in RESOLVING_STATUSES

        # 1. authorization
        if MAY_RESOLVE in guards and not self.may_resolve(actor_role):
            raise ForbiddenException(
                f"role {actor_role!r} may not set status {target_status}", role=actor_role
            )

        # 2. resolution code guards
        if RESOLUTION_CODE in guards:
            self._check_resolution(resolution)

        working = ticket
        changes: dict = {}
        events: List[AuditEvent] = []

        def merge(partial: dict) -> None:
            nonlocal working
            changes.update(partial)
            working = replace(working, **partial)

        def emit(action: str, payload: dict) -> None:
            events.append(AuditEvent(
                actor_id=actor_id,
                action=action,
                entity_id=ticket.id,
                occurred_at=now,
                payload=payload,
            ))

        # 3. priority change
        if target_priority != ticket.priority:
            merge(self._deadlines.recompute_on_priority_change(working, target_priority))
            emit(AuditAction.PRIORITY_CHANGE, {"from": ticket.priority, "to": target_priority})

        # 4. pause / resume
        was_paused = ticket.status in PAUSE_STATUSES
        will_pause = target_status in PAUSE_STATUSES

        if not was_paused and will_pause:
            merge({"sla_paused_at": now})
            emit(AuditAction.SLA_PAUSE, {"status": target_status})

        if was_paused and not will_pause and working.sla_paused_at is not None:
            paused_min = self._calculator.business_minutes_between(working.sla_paused_at, now)
            merge({
                "sla_paused_at": None,
                "sla_paused_total_min": working.sla_paused_total_min + paused_min,
                "resolution_due_at": self._calculator.add_minutes(
                    working.resolution_due_at, paused_min
                ),
            })
            emit(AuditAction.SLA_RESUME, {"pausedMin": paused_min})

        # 5. resolution clock stops
        if resolving and ticket.resolved_at is None:
            stamp = {"resolved_at": now}
            if now > working.resolution_due_at and working.resolution_breached_at is None:
                stamp["resolution_breached_at"] = now
                logger.info(
                    "Resolution SLA breached",
                    extra={"ticket_id": ticket.id, "due_at": working.resolution_due_at.isoformat()},
                )
            merge(stamp)
            emit(AuditAction.SLA_RESOLUTION_DONE, {"at": now.isoformat()})

        # 6. resolution payload, resolving or not
        if resolution is not None:
            merge({"resolution": resolution})

        # 7. status and priority
        merge({"status": target_status, "priority": target_priority})
        emit(AuditAction.STATUS_CHANGE, {"from": ticket.status, "to": target_status})

        logger.debug(
            "Ticket update computed",
            extra={"ticket_id": ticket.id, "fields": sorted(changes), "events": len(events)},
        )
        return TicketUpdate(ticket=working, changes=changes, events=events)

    def record_first_response(
        self,
        ticket: Ticket,
        now: datetime,
        actor_role: str,
        actor_id: Optional[str] = None,
    ) -> TicketUpdate:
        """
        Stop the response clock on the first qualifying message.

        Idempotent: once ``first_response_at`` is set, later messages change
        nothing and emit nothing.
        """
        if actor_role not in self._first_response_roles or ticket.first_response_at is not None:
            return TicketUpdate(ticket=ticket)

        changes = {"first_response_at": now}
        if now > ticket.response_due_at and ticket.response_breached_at is None:
            changes["response_breached_at"] = now
            logger.info(
                "Response SLA breached",
                extra={"ticket_id": ticket.id, "due_at": ticket.response_due_at.isoformat()},
            )

        event = AuditEvent(
            actor_id=actor_id,
            action=AuditAction.SLA_FIRST_RESPONSE,
            entity_id=ticket.id,
            occurred_at=now,
            payload={"at": now.isoformat()},
        )
        return TicketUpdate(ticket=replace(ticket, **changes), changes=changes, events=[event])

    # ========== Guards ==========

    @staticmethod
    def _validate_values(
        status: str,
        priority: str,
        resolution: Optional[ResolutionPayload],
    ) -> None:
        if status not in VALID_STATUSES:
            raise ValidationException(f"invalid status: {status!r}", field="status")
        ensure_priority(priority)
        if resolution is not None and resolution.code not in VALID_RESOLUTION_CODES:
            raise ValidationException(
                f"invalid resolution code: {resolution.code!r}", field="resolution"
            )

    @staticmethod
    def _check_resolution(resolution: Optional[ResolutionPayload]) -> None:
        if resolution is None:
            raise ValidationException("resolution required", field="resolution")

        if resolution.code == ResolutionCode.RESOLVED_WITH_PART_REPLACEMENT:
            if not resolution.parts_used or resolution.replacement_date is None:
                raise ValidationException(
                    "parts used and replacement date required for part replacement",
                    field="parts_used" if not resolution.parts_used else "replacement_date",
                )

        if resolution.code == ResolutionCode.CONDEMNED_NO_REPAIR:
            if not resolution.justification or not resolution.recommended_action:
                raise ValidationException(
                    "justification and recommended action required for condemned equipment",
                    field="justification" if not resolution.justification else "recommended_action",
                )

        if resolution.code == ResolutionCode.AWAITING_PART_NO_STOCK:
            raise ValidationException("cannot close while awaiting stock", field="resolution")
