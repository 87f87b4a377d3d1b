"""
SLA Value Objects
==================

Immutable value objects for the SLA domain.

Value objects are defined by their attributes rather than an identity.
They are immutable and can be freely shared between requests, which is what
lets every deployment (and every test) run the engine on its own calendar and
policy instead of on module-level constants.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Dict, List, Optional, Union
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, ConfigDict, Field, field_validator

from clinicdesk.config import (
    Priority, ActorRole, SLAState,
    VALID_PRIORITIES, VALID_ROLES
)
from clinicdesk.core.exceptions import ConfigurationException, ValidationException
from clinicdesk.sla.domain.business_time import BusinessCalendar, BusinessTimeCalculator
from clinicdesk.sla.domain.entities import Ticket, SLAMetrics

DEFAULT_SLA_TARGETS = {
    Priority.URGENT: {"response_minutes": 15, "resolution_minutes": 120},
    Priority.HIGH: {"response_minutes": 30, "resolution_minutes": 240},
    Priority.MEDIUM: {"response_minutes": 60, "resolution_minutes": 480},
    Priority.LOW: {"response_minutes": 120, "resolution_minutes": 1440},
}

WEEKDAY_NAMES = {
    "mon": 0, "tue": 1, "wed": 2, "thu": 3, "fri": 4, "sat": 5, "sun": 6,
}


def ensure_priority(priority: str) -> str:
    """Reject anything outside the four priority levels."""
    if priority not in VALID_PRIORITIES:
        raise ValidationException(f"invalid priority: {priority!r}", field="priority")
    return priority


class SLATarget(BaseModel):
    """Response and resolution budget for one priority, in business minutes."""
    model_config = ConfigDict(frozen=True)

    response_minutes: int = Field(ge=0)
    resolution_minutes: int = Field(ge=0)


class SLAPolicy(BaseModel):
    """
    Priority to SLA target table.

    Missing priorities fall back to the default table so a partial YAML file
    still yields a complete policy.
    """
    model_config = ConfigDict(frozen=True)

    targets: Dict[str, SLATarget] = Field(default_factory=dict, validate_default=True)

    @field_validator("targets", mode="before")
    @classmethod
    def fill_missing_priorities(cls, v: Optional[dict]) -> dict:
        v = dict(v or {})
        unknown = set(v) - set(VALID_PRIORITIES)
        if unknown:
            raise ValueError(f"unknown priorities in SLA targets: {sorted(unknown)}")
        for priority in VALID_PRIORITIES:
            if priority not in v:
                v[priority] = DEFAULT_SLA_TARGETS[priority]
        return v

    def response_target_minutes(self, priority: str) -> int:
        return self.targets[ensure_priority(priority)].response_minutes

    def resolution_target_minutes(
        self,
        priority: str,
        override_hours: Optional[float] = None
    ) -> int:
        """
        Resolution budget in business minutes.

        A category override replaces the priority-derived value; the response
        target is never affected by it.
        """
        ensure_priority(priority)
        if override_hours is not None:
            return int(override_hours * 60)
        return self.targets[priority].resolution_minutes


@dataclass(frozen=True)
class Category:
    """Ticket category as consumed (read-only) by the deadline calculator."""

    id: str
    name: str
    default_priority: str = Priority.MEDIUM
    resolution_override_hours: Optional[float] = None
    active: bool = True


@dataclass(frozen=True)
class DueDates:
    response_due_at: datetime
    resolution_due_at: datetime


class DeadlineCalculator:
    """Combines an ``SLAPolicy`` with business-time arithmetic to set due dates."""

    def __init__(self, policy: SLAPolicy, calculator: BusinessTimeCalculator):
        self._policy = policy
        self._calculator = calculator

    def initial_due_dates(
        self,
        created_at: datetime,
        priority: str,
        override_hours: Optional[float] = None
    ) -> DueDates:
        """
        Calculate the due dates of a new ticket.

        Args:
            created_at: When ticket was created
            priority: Ticket priority
            override_hours: Category resolution override, if any
        """
        return DueDates(
            response_due_at=self._calculator.add_business_minutes(
                created_at, self._policy.response_target_minutes(priority)
            ),
            resolution_due_at=self._calculator.add_business_minutes(
                created_at,
                self._policy.resolution_target_minutes(priority, override_hours)
            ),
        )

    def recompute_on_priority_change(self, ticket: Ticket, new_priority: str) -> dict:
        """
        Partial update for a priority change.

        Only clocks that are still running are touched. The response due date
        is a full reset from ``created_at``; the resolution due date is rebuilt
        from ``created_at`` and then shifted by the pause time already
        accrued.
        """
        due = self.initial_due_dates(
            ticket.created_at, new_priority, ticket.resolution_override_hours
        )
        changes = {}
        if ticket.first_response_at is None:
            changes["response_due_at"] = due.response_due_at
        if ticket.resolved_at is None:
            changes["resolution_due_at"] = self._calculator.add_minutes(
                due.resolution_due_at, ticket.sla_paused_total_min
            )
        return changes


class SLAStatusEvaluator:
    """
    Read-only SLA status of a ticket at a given instant.

    Stateless apart from the calendar; never stamps anything.
    """

    def __init__(self, calculator: BusinessTimeCalculator, warning_threshold_percent: int = 15):
        self._calculator = calculator
        self._warning_threshold = warning_threshold_percent

    def evaluate(self, ticket: Ticket, now: datetime) -> SLAMetrics:
        response_remaining, response_breached, response_state = self._clock(
            start=ticket.created_at,
            deadline=ticket.response_due_at,
            reference=now,
            met_at=ticket.first_response_at,
            breached_at=ticket.response_breached_at,
        )

        # A paused resolution clock is frozen at the pause instant
        reference = ticket.sla_paused_at if ticket.is_paused else now
        resolution_remaining, resolution_breached, resolution_state = self._clock(
            start=ticket.created_at,
            deadline=ticket.resolution_due_at,
            reference=reference,
            met_at=ticket.resolved_at,
            breached_at=ticket.resolution_breached_at,
        )

        return SLAMetrics(
            ticket_id=ticket.id,
            evaluated_at=now,
            response_deadline=ticket.response_due_at,
            response_remaining_minutes=response_remaining,
            response_is_breached=response_breached,
            response_state=response_state,
            resolution_deadline=ticket.resolution_due_at,
            resolution_remaining_minutes=resolution_remaining,
            resolution_is_breached=resolution_breached,
            resolution_state=resolution_state,
            is_paused=ticket.is_paused,
            response_met_at=ticket.first_response_at,
            resolution_met_at=ticket.resolved_at,
        )

    def _clock(
        self,
        start: datetime,
        deadline: datetime,
        reference: datetime,
        met_at: Optional[datetime],
        breached_at: Optional[datetime],
    ) -> tuple[int, bool, str]:
        if met_at is not None:
            if breached_at is not None:
                return 0, True, SLAState.BREACHED
            return 0, False, SLAState.MET

        if breached_at is not None or reference > deadline:
            return 0, True, SLAState.BREACHED

        remaining = self._calculator.business_minutes_between(reference, deadline)
        total = self._calculator.business_minutes_between(start, deadline)
        if total > 0 and remaining * 100 <= total * self._warning_threshold:
            return remaining, False, SLAState.AT_RISK
        return remaining, False, SLAState.ON_TRACK


# ========== Configuration schema (YAML) ==========

class CalendarConfig(BaseModel):
    """Working-time section of the SLA configuration file."""
    timezone: Optional[str] = Field(default=None, description="IANA zone name, e.g. America/Belem")
    work_days: List[Union[int, str]] = Field(
        default_factory=lambda: ["mon", "tue", "wed", "thu", "fri"],
        validate_default=True,
    )
    start_hour: int = Field(default=8, ge=0, le=24)
    end_hour: int = Field(default=17, ge=0, le=24)

    @field_validator("work_days")
    @classmethod
    def normalise_work_days(cls, v: List[Union[int, str]]) -> List[int]:
        days = []
        for day in v:
            if isinstance(day, str):
                key = day.strip().lower()[:3]
                if key not in WEEKDAY_NAMES:
                    raise ValueError(f"unknown weekday: {day!r}")
                days.append(WEEKDAY_NAMES[key])
            else:
                days.append(day)
        return days


class CategoryConfig(BaseModel):
    id: str
    name: str
    default_priority: str = Priority.MEDIUM
    resolution_override_hours: Optional[float] = Field(default=None, gt=0)
    active: bool = True

    @field_validator("default_priority")
    @classmethod
    def validate_priority(cls, v: str) -> str:
        if v not in VALID_PRIORITIES:
            raise ValueError(f"invalid priority: {v!r}")
        return v


class SLAConfig(BaseModel):
    """
    SLA configuration loaded from YAML.

    Holds everything the engine needs: the business calendar, the priority
    target table, the roles allowed to resolve or to count as a first
    response, and the category table.
    """
    calendar: CalendarConfig = Field(default_factory=CalendarConfig)
    sla_targets: Dict[str, SLATarget] = Field(default_factory=dict)
    resolving_roles: List[str] = Field(default_factory=lambda: [ActorRole.TECH])
    first_response_roles: List[str] = Field(default_factory=lambda: [ActorRole.TECH])
    warning_threshold_percent: int = Field(default=15, ge=0, le=100)
    categories: List[CategoryConfig] = Field(default_factory=list)

    @field_validator("sla_targets")
    @classmethod
    def validate_target_priorities(cls, v: Dict[str, SLATarget]) -> Dict[str, SLATarget]:
        unknown = set(v) - set(VALID_PRIORITIES)
        if unknown:
            raise ValueError(f"unknown priorities in SLA targets: {sorted(unknown)}")
        return v

    @field_validator("resolving_roles", "first_response_roles")
    @classmethod
    def validate_roles(cls, v: List[str]) -> List[str]:
        unknown = [role for role in v if role not in VALID_ROLES]
        if unknown:
            raise ValueError(f"unknown roles: {unknown}")
        return v

    def build_calendar(self) -> BusinessCalendar:
        tz = None
        if self.calendar.timezone:
            try:
                tz = ZoneInfo(self.calendar.timezone)
            except ZoneInfoNotFoundError as e:
                raise ConfigurationException(
                    f"Unknown timezone: {self.calendar.timezone}"
                ) from e
        return BusinessCalendar(
            work_days=frozenset(self.calendar.work_days),
            start_hour=self.calendar.start_hour,
            end_hour=self.calendar.end_hour,
            tz=tz,
        )

    def build_policy(self) -> SLAPolicy:
        return SLAPolicy(targets=self.sla_targets)

    def build_categories(self) -> List[Category]:
        return [Category(**c.model_dump()) for c in self.categories]
