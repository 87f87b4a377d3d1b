"""
Shared fixtures for the clinicdesk test-suite.

Calendar used throughout: Monday to Friday, 08:00-17:00, naive wall-clock
instants. 2024-01-08 is a Monday.
"""
from dataclasses import replace
from datetime import datetime

import pytest

from clinicdesk.config import ActorRole, Priority
from clinicdesk.sla.domain import (
    BusinessCalendar,
    BusinessTimeCalculator,
    Category,
    DeadlineCalculator,
    SLAConfig,
    SLAPolicy,
    SLAStatusEvaluator,
    TicketLifecycle,
)
from clinicdesk.infrastructure.database import (
    close_database,
    create_tables,
    get_session_maker,
    init_database,
)
from clinicdesk.sla.application import TicketService
from clinicdesk.sla.infrastructure import (
    SQLAlchemyTicketRepository,
    InMemoryTicketRepository,
    InMemoryCategoryRepository,
    InMemoryAuditSink,
    StaticConfigProvider,
)

MONDAY = datetime(2024, 1, 8)


def at(day: int, hour: int, minute: int = 0, second: int = 0) -> datetime:
    """Instant on 2024-01-<day>."""
    return datetime(2024, 1, day, hour, minute, second)


@pytest.fixture
def calendar():
    return BusinessCalendar()


@pytest.fixture
def calculator(calendar):
    return BusinessTimeCalculator(calendar)


@pytest.fixture
def policy():
    return SLAPolicy()


@pytest.fixture
def deadlines(policy, calculator):
    return DeadlineCalculator(policy, calculator)


@pytest.fixture
def lifecycle(deadlines, calculator):
    return TicketLifecycle(
        deadlines=deadlines,
        calculator=calculator,
        resolving_roles=[ActorRole.TECH],
        first_response_roles=[ActorRole.TECH],
    )


@pytest.fixture
def evaluator(calculator):
    return SLAStatusEvaluator(calculator, warning_threshold_percent=15)


@pytest.fixture
def email_category():
    return Category(id="email", name="E-mail", default_priority=Priority.MEDIUM)


@pytest.fixture
def hardware_category():
    return Category(
        id="hardware",
        name="Hardware",
        default_priority=Priority.MEDIUM,
        resolution_override_hours=24,
    )


@pytest.fixture
def make_ticket(lifecycle, email_category):
    """Open a ticket through the lifecycle, then overlay any stored fields."""

    def _make(created_at=None, priority=None, category=None, ticket_id="T-1", **fields):
        opened = lifecycle.open_ticket(
            ticket_id=ticket_id,
            created_at=created_at or at(8, 9),
            category=category or email_category,
            actor_id="requester-1",
            priority=priority,
        ).ticket
        return replace(opened, **fields) if fields else opened

    return _make


# ========== Service fixtures ==========

@pytest.fixture
def sla_config():
    return SLAConfig(
        categories=[
            {"id": "email", "name": "E-mail", "default_priority": "MEDIUM"},
            {"id": "network", "name": "Network", "default_priority": "HIGH"},
            {"id": "hardware", "name": "Hardware", "resolution_override_hours": 24},
            {"id": "legacy", "name": "Legacy", "active": False},
        ]
    )


@pytest.fixture
def config_provider(sla_config):
    return StaticConfigProvider(sla_config)


@pytest.fixture
def ticket_repository():
    return InMemoryTicketRepository()


@pytest.fixture
def audit_sink():
    return InMemoryAuditSink()


@pytest.fixture
def ticket_service(ticket_repository, audit_sink, config_provider, sla_config):
    return TicketService(
        ticket_repository=ticket_repository,
        category_repository=InMemoryCategoryRepository(sla_config.build_categories()),
        audit_sink=audit_sink,
        config_provider=config_provider,
    )


# ========== Database fixtures ==========

@pytest.fixture
async def session_maker(tmp_path):
    """Fresh SQLite file database with the schema created."""
    init_database(f"sqlite+aiosqlite:///{tmp_path / 'clinicdesk.db'}")
    await create_tables()
    yield get_session_maker()
    await close_database()


@pytest.fixture
def sql_ticket_repository(session_maker):
    return SQLAlchemyTicketRepository(session_maker)
