"""
SLA Domain Layer
================

Domain layer for the SLA / ticket lifecycle module.

Contains:
- Business time: working-time calendar and business-minute arithmetic
- Entities: Ticket snapshot, change requests, audit events, SLA metrics
- Value Objects: SLA policy, categories, due dates, configuration schema
- Domain Services: DeadlineCalculator, SLAStatusEvaluator, TicketLifecycle

This layer has no dependencies on infrastructure - pure Python business logic.
"""

from clinicdesk.sla.domain.business_time import BusinessCalendar, BusinessTimeCalculator
from clinicdesk.sla.domain.entities import (
    Ticket,
    TicketChange,
    TicketUpdate,
    TicketMessage,
    ResolutionPayload,
    AuditEvent,
    SLAMetrics,
)
from clinicdesk.sla.domain.value_objects import (
    SLATarget,
    SLAPolicy,
    Category,
    DueDates,
    DeadlineCalculator,
    SLAStatusEvaluator,
    SLAConfig,
)
from clinicdesk.sla.domain.lifecycle import TicketLifecycle, TRANSITIONS

__all__ = [
    # Business time
    "BusinessCalendar",
    "BusinessTimeCalculator",
    # Entities
    "Ticket",
    "TicketChange",
    "TicketUpdate",
    "TicketMessage",
    "ResolutionPayload",
    "AuditEvent",
    "SLAMetrics",
    # Value Objects & Services
    "SLATarget",
    "SLAPolicy",
    "Category",
    "DueDates",
    "DeadlineCalculator",
    "SLAStatusEvaluator",
    "SLAConfig",
    "TicketLifecycle",
    "TRANSITIONS",
]
