"""
Tests for the ticket lifecycle: transitions, guards, pause/resume and breach
stamping.
"""
from dataclasses import replace
from datetime import date

import pytest

from clinicdesk.config import (
    ActorRole, AuditAction, Priority, ResolutionCode, TicketStatus, VALID_STATUSES
)
from clinicdesk.core.exceptions import ForbiddenException, ValidationException
from clinicdesk.sla.domain import TRANSITIONS, Category, ResolutionPayload, TicketChange
from tests.conftest import at

FIXED = ResolutionPayload(code=ResolutionCode.RESOLVED_NO_PART_REPLACEMENT)


def actions(update):
    return [e.action for e in update.events]


class TestOpenTicket:

    def test_new_ticket_is_open_with_due_dates(self, lifecycle, email_category):
        result = lifecycle.open_ticket("T-9", at(8, 9), email_category, actor_id="u-1")

        ticket = result.ticket
        assert ticket.status == TicketStatus.OPEN
        assert ticket.priority == Priority.MEDIUM
        assert ticket.category_id == "email"
        assert ticket.response_due_at == at(8, 10)
        assert ticket.resolution_due_at == at(8, 17)
        assert ticket.sla_paused_total_min == 0
        assert result.changes["id"] == "T-9"

    def test_creation_is_audited(self, lifecycle, email_category):
        result = lifecycle.open_ticket("T-9", at(8, 9), email_category, actor_id="u-1")

        (event,) = result.events
        assert event.action == AuditAction.TICKET_CREATE
        assert event.actor_id == "u-1"
        assert event.payload == {"categoryId": "email", "priority": Priority.MEDIUM}

    def test_explicit_priority_wins_over_category_default(self, lifecycle, email_category):
        ticket = lifecycle.open_ticket("T-9", at(8, 9), email_category, priority=Priority.URGENT).ticket

        assert ticket.priority == Priority.URGENT
        assert ticket.response_due_at == at(8, 9, 15)

    def test_inactive_category_is_rejected(self, lifecycle):
        retired = Category(id="fax", name="Fax", active=False)

        with pytest.raises(ValidationException):
            lifecycle.open_ticket("T-9", at(8, 9), retired)

    def test_unknown_priority_is_rejected(self, lifecycle, email_category):
        with pytest.raises(ValidationException):
            lifecycle.open_ticket("T-9", at(8, 9), email_category, priority="ASAP")


class TestTransitionTable:

    def test_every_pair_is_listed(self):
        assert len(TRANSITIONS) == len(VALID_STATUSES) ** 2

    @pytest.mark.parametrize("source", VALID_STATUSES)
    def test_resolving_targets_are_guarded(self, source):
        assert TRANSITIONS[(source, TicketStatus.RESOLVED)]
        assert TRANSITIONS[(source, TicketStatus.CLOSED)]
        assert not TRANSITIONS[(source, TicketStatus.IN_PROGRESS)]

    def test_closed_ticket_may_be_reopened(self, lifecycle, make_ticket):
        closed = make_ticket(
            status=TicketStatus.CLOSED, resolved_at=at(8, 12), resolution=FIXED
        )

        result = lifecycle.apply_update(
            closed, TicketChange(status=TicketStatus.OPEN), at(9, 9), ActorRole.REQUESTER
        )

        assert result.ticket.status == TicketStatus.OPEN
        assert result.ticket.resolved_at == at(8, 12)
        assert actions(result) == [AuditAction.STATUS_CHANGE]


class TestResolutionGuards:

    @pytest.mark.parametrize("role", [ActorRole.ADMIN, ActorRole.COORDINATOR, ActorRole.REQUESTER])
    def test_only_technicians_resolve(self, lifecycle, make_ticket, role):
        ticket = make_ticket()

        with pytest.raises(ForbiddenException):
            lifecycle.apply_update(
                ticket, TicketChange(status=TicketStatus.RESOLVED, resolution=FIXED), at(8, 10), role
            )

    def test_authorization_is_checked_before_resolution_fields(self, lifecycle, make_ticket):
        with pytest.raises(ForbiddenException):
            lifecycle.apply_update(
                make_ticket(), TicketChange(status=TicketStatus.CLOSED), at(8, 10), ActorRole.ADMIN
            )

    def test_resolution_required(self, lifecycle, make_ticket):
        with pytest.raises(ValidationException, match="resolution required"):
            lifecycle.apply_update(
                make_ticket(), TicketChange(status=TicketStatus.RESOLVED), at(8, 10), ActorRole.TECH
            )

    def test_empty_code_counts_as_missing(self, lifecycle, make_ticket):
        change = TicketChange(status=TicketStatus.RESOLVED, resolution=ResolutionPayload(code=""))

        with pytest.raises(ValidationException, match="resolution required"):
            lifecycle.apply_update(make_ticket(), change, at(8, 10), ActorRole.TECH)

    @pytest.mark.parametrize("payload,field", [
        (ResolutionPayload(code=ResolutionCode.RESOLVED_WITH_PART_REPLACEMENT,
                           replacement_date=date(2024, 1, 8)), "parts_used"),
        (ResolutionPayload(code=ResolutionCode.RESOLVED_WITH_PART_REPLACEMENT,
                           parts_used="PSU 450W"), "replacement_date"),
        (ResolutionPayload(code=ResolutionCode.CONDEMNED_NO_REPAIR,
                           recommended_action="Replace unit"), "justification"),
        (ResolutionPayload(code=ResolutionCode.CONDEMNED_NO_REPAIR,
                           justification="Board burnt"), "recommended_action"),
    ])
    def test_code_specific_fields_are_required(self, lifecycle, make_ticket, payload, field):
        change = TicketChange(status=TicketStatus.RESOLVED, resolution=payload)

        with pytest.raises(ValidationException) as exc_info:
            lifecycle.apply_update(make_ticket(), change, at(8, 10), ActorRole.TECH)
        assert exc_info.value.field == field

    @pytest.mark.parametrize("status", [TicketStatus.RESOLVED, TicketStatus.CLOSED])
    def test_cannot_close_while_awaiting_stock(self, lifecycle, make_ticket, status):
        change = TicketChange(
            status=status,
            resolution=ResolutionPayload(code=ResolutionCode.AWAITING_PART_NO_STOCK),
        )

        with pytest.raises(ValidationException, match="cannot close while awaiting stock"):
            lifecycle.apply_update(make_ticket(), change, at(8, 10), ActorRole.TECH)

    def test_awaiting_stock_is_kept_on_a_non_resolving_status(self, lifecycle, make_ticket):
        awaiting = ResolutionPayload(code=ResolutionCode.AWAITING_PART_NO_STOCK, asset_tag="PAT-0042")
        change = TicketChange(status=TicketStatus.IN_PROGRESS, resolution=awaiting)

        result = lifecycle.apply_update(make_ticket(), change, at(8, 10), ActorRole.TECH)

        assert result.ticket.resolution == awaiting
        assert result.ticket.resolved_at is None
        assert AuditAction.SLA_RESOLUTION_DONE not in actions(result)

    def test_part_replacement_with_all_fields(self, lifecycle, make_ticket):
        payload = ResolutionPayload(
            code=ResolutionCode.RESOLVED_WITH_PART_REPLACEMENT,
            parts_used="PSU 450W",
            replacement_date=date(2024, 1, 8),
        )

        result = lifecycle.apply_update(
            make_ticket(), TicketChange(status=TicketStatus.RESOLVED, resolution=payload),
            at(8, 11), ActorRole.TECH,
        )

        assert result.ticket.status == TicketStatus.RESOLVED
        assert result.ticket.resolution == payload

    def test_rejected_update_leaves_ticket_untouched(self, lifecycle, make_ticket):
        ticket = make_ticket(status=TicketStatus.WAITING, sla_paused_at=at(8, 9, 30))
        snapshot = replace(ticket)
        change = TicketChange(status=TicketStatus.RESOLVED, priority=Priority.URGENT)

        with pytest.raises(ValidationException):
            lifecycle.apply_update(ticket, change, at(9, 10), ActorRole.TECH)

        assert ticket == snapshot


class TestValueValidation:

    def test_unknown_status(self, lifecycle, make_ticket):
        with pytest.raises(ValidationException) as exc_info:
            lifecycle.apply_update(make_ticket(), TicketChange(status="DONE"), at(8, 10), ActorRole.TECH)
        assert exc_info.value.field == "status"

    def test_unknown_priority(self, lifecycle, make_ticket):
        with pytest.raises(ValidationException):
            lifecycle.apply_update(make_ticket(), TicketChange(priority="P1"), at(8, 10), ActorRole.TECH)

    def test_unknown_resolution_code(self, lifecycle, make_ticket):
        change = TicketChange(status=TicketStatus.RESOLVED, resolution=ResolutionPayload(code="FIXED_IT"))

        with pytest.raises(ValidationException) as exc_info:
            lifecycle.apply_update(make_ticket(), change, at(8, 10), ActorRole.TECH)
        assert exc_info.value.field == "resolution"


class TestResolution:

    def test_on_time_resolution(self, lifecycle, make_ticket):
        change = TicketChange(status=TicketStatus.RESOLVED, resolution=FIXED)

        result = lifecycle.apply_update(make_ticket(), change, at(8, 12), ActorRole.TECH, actor_id="tech-1")

        assert result.ticket.resolved_at == at(8, 12)
        assert result.ticket.resolution_breached_at is None
        assert actions(result) == [AuditAction.SLA_RESOLUTION_DONE, AuditAction.STATUS_CHANGE]
        assert result.events[0].payload == {"at": at(8, 12).isoformat()}
        assert all(e.actor_id == "tech-1" for e in result.events)

    def test_late_resolution_is_stamped_breached(self, lifecycle, make_ticket):
        change = TicketChange(status=TicketStatus.RESOLVED, resolution=FIXED)

        result = lifecycle.apply_update(make_ticket(), change, at(9, 9), ActorRole.TECH)

        assert result.ticket.resolution_breached_at == at(9, 9)
        assert result.changes["resolution_breached_at"] == at(9, 9)

    def test_closing_a_resolved_ticket_keeps_first_stamp(self, lifecycle, make_ticket):
        resolved = make_ticket(status=TicketStatus.RESOLVED, resolved_at=at(8, 12), resolution=FIXED)

        result = lifecycle.apply_update(
            resolved, TicketChange(status=TicketStatus.CLOSED, resolution=FIXED), at(9, 9), ActorRole.TECH
        )

        assert result.ticket.status == TicketStatus.CLOSED
        assert result.ticket.is_resolved
        assert result.ticket.resolved_at == at(8, 12)
        assert "resolved_at" not in result.changes
        assert actions(result) == [AuditAction.STATUS_CHANGE]

    def test_breach_markers_are_sticky(self, lifecycle, make_ticket):
        ticket = make_ticket(resolution_breached_at=at(9, 9))

        result = lifecycle.apply_update(
            ticket, TicketChange(status=TicketStatus.RESOLVED, resolution=FIXED), at(9, 12), ActorRole.TECH
        )

        assert result.ticket.resolution_breached_at == at(9, 9)


class TestPriorityChange:

    def test_priority_change_recomputes_and_emits_in_order(self, lifecycle, make_ticket):
        result = lifecycle.apply_update(
            make_ticket(), TicketChange(priority=Priority.URGENT), at(8, 9, 5), ActorRole.COORDINATOR
        )

        assert result.ticket.priority == Priority.URGENT
        assert result.ticket.response_due_at == at(8, 9, 15)
        assert result.ticket.resolution_due_at == at(8, 11)
        assert actions(result) == [AuditAction.PRIORITY_CHANGE, AuditAction.STATUS_CHANGE]
        assert result.events[0].payload == {"from": Priority.MEDIUM, "to": Priority.URGENT}
        assert result.events[1].payload == {"from": TicketStatus.OPEN, "to": TicketStatus.OPEN}

    def test_priority_only_change_on_resolved_ticket_needs_no_code(self, lifecycle, make_ticket):
        resolved = make_ticket(status=TicketStatus.RESOLVED, resolved_at=at(8, 12))

        result = lifecycle.apply_update(
            resolved, TicketChange(priority=Priority.LOW), at(8, 13), ActorRole.COORDINATOR
        )

        assert result.ticket.status == TicketStatus.RESOLVED
        assert result.ticket.resolution_due_at == resolved.resolution_due_at

    def test_response_breach_survives_priority_change(self, lifecycle, make_ticket):
        ticket = make_ticket(first_response_at=at(8, 11), response_breached_at=at(8, 11))

        result = lifecycle.apply_update(
            ticket, TicketChange(priority=Priority.LOW), at(8, 12), ActorRole.COORDINATOR
        )

        assert result.ticket.response_breached_at == at(8, 11)
        assert result.ticket.response_due_at == ticket.response_due_at

    def test_same_priority_emits_no_priority_event(self, lifecycle, make_ticket):
        result = lifecycle.apply_update(
            make_ticket(), TicketChange(priority=Priority.MEDIUM), at(8, 10), ActorRole.TECH
        )

        assert actions(result) == [AuditAction.STATUS_CHANGE]


class TestPauseResume:

    def test_entering_waiting_pauses(self, lifecycle, make_ticket):
        ticket = make_ticket()

        result = lifecycle.apply_update(
            ticket, TicketChange(status=TicketStatus.WAITING), at(8, 10), ActorRole.TECH
        )

        assert result.ticket.sla_paused_at == at(8, 10)
        assert result.ticket.is_paused
        assert result.ticket.resolution_due_at == ticket.resolution_due_at
        assert actions(result) == [AuditAction.SLA_PAUSE, AuditAction.STATUS_CHANGE]
        assert result.events[0].payload == {"status": TicketStatus.WAITING}

    def test_staying_in_waiting_changes_nothing(self, lifecycle, make_ticket):
        ticket = make_ticket(status=TicketStatus.WAITING, sla_paused_at=at(8, 10))

        result = lifecycle.apply_update(
            ticket, TicketChange(status=TicketStatus.WAITING), at(8, 15), ActorRole.TECH
        )

        assert result.ticket.sla_paused_at == at(8, 10)
        assert actions(result) == [AuditAction.STATUS_CHANGE]

    def test_full_work_day_pause(self, lifecycle, make_ticket):
        ticket = make_ticket(status=TicketStatus.WAITING, sla_paused_at=at(8, 17))

        result = lifecycle.apply_update(
            ticket, TicketChange(status=TicketStatus.IN_PROGRESS), at(9, 17), ActorRole.TECH
        )

        assert result.ticket.sla_paused_total_min == 540
        assert result.ticket.sla_paused_at is None
        assert result.ticket.resolution_due_at == at(9, 2)
        assert actions(result) == [AuditAction.SLA_RESUME, AuditAction.STATUS_CHANGE]
        assert result.events[0].payload == {"pausedMin": 540}

    def test_pause_across_a_night(self, lifecycle, make_ticket, calculator):
        ticket = make_ticket(
            status=TicketStatus.WAITING, sla_paused_at=at(8, 10), sla_paused_total_min=15
        )

        result = lifecycle.apply_update(
            ticket, TicketChange(status=TicketStatus.OPEN), at(9, 11, 30), ActorRole.REQUESTER
        )

        paused = calculator.business_minutes_between(at(8, 10), at(9, 11, 30))
        assert paused == 630
        assert result.ticket.sla_paused_total_min == 645
        assert result.ticket.resolution_due_at == calculator.add_minutes(ticket.resolution_due_at, 630)

    def test_resolving_out_of_waiting_uses_shifted_due_date(self, lifecycle, make_ticket):
        ticket = make_ticket(
            created_at=at(8, 8),
            priority=Priority.URGENT,
            status=TicketStatus.WAITING,
            sla_paused_at=at(8, 9),
        )
        assert ticket.resolution_due_at == at(8, 10)

        result = lifecycle.apply_update(
            ticket, TicketChange(status=TicketStatus.RESOLVED, resolution=FIXED), at(8, 11), ActorRole.TECH
        )

        assert result.ticket.resolution_due_at == at(8, 12)
        assert result.ticket.resolution_breached_at is None
        assert actions(result) == [
            AuditAction.SLA_RESUME, AuditAction.SLA_RESOLUTION_DONE, AuditAction.STATUS_CHANGE
        ]

    def test_resolving_without_pause_is_late(self, lifecycle, make_ticket):
        ticket = make_ticket(created_at=at(8, 8), priority=Priority.URGENT)

        result = lifecycle.apply_update(
            ticket, TicketChange(status=TicketStatus.RESOLVED, resolution=FIXED), at(8, 11), ActorRole.TECH
        )

        assert result.ticket.resolution_breached_at == at(8, 11)

    def test_priority_change_while_leaving_waiting(self, lifecycle, make_ticket):
        ticket = make_ticket(status=TicketStatus.WAITING, sla_paused_at=at(8, 10))

        result = lifecycle.apply_update(
            ticket,
            TicketChange(status=TicketStatus.IN_PROGRESS, priority=Priority.URGENT),
            at(8, 11),
            ActorRole.TECH,
        )

        # URGENT from 09:00 is 11:00, then the hour spent waiting
        assert result.ticket.resolution_due_at == at(8, 12)
        assert result.ticket.sla_paused_total_min == 60
        assert actions(result) == [
            AuditAction.PRIORITY_CHANGE, AuditAction.SLA_RESUME, AuditAction.STATUS_CHANGE
        ]
