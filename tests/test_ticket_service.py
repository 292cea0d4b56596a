"""Tests for the ticket service"""
from datetime import timedelta

import pytest

from ticketflow.domain.enums import ActionType, ChangeType, Priority, TicketStatus
from ticketflow.domain.errors import (
    ConcurrencyError, DepartmentNotFoundError, InvalidTransitionError,
    StoreUnavailableError, TicketNotFoundError, TicketTypeNotFoundError, ValidationError,
)
from ticketflow.domain.models import Sla

from .conftest import MONDAY


async def new_ticket(system, client_name="Jane Client", **kwargs):
    return await system.tickets.create_ticket("Maintenance", "Repair", client_name, **kwargs)


class TestCreate:
    @pytest.mark.asyncio
    async def test_defaults_from_ticket_type(self, seeded):
        ticket = await new_ticket(seeded, ticket_owner="owner@example.com")

        assert ticket.ticket_id == "TKT-0001"
        assert ticket.sla == Sla(value=5)
        assert ticket.due_date == MONDAY + timedelta(days=7)
        assert ticket.priority == Priority.MEDIUM
        assert ticket.ticket_owner == "owner@example.com"
        assert ticket.version == 1
        assert (await seeded.tickets.get_ticket("TKT-0001")) == ticket

    @pytest.mark.asyncio
    async def test_unknown_department(self, seeded):
        with pytest.raises(DepartmentNotFoundError):
            await seeded.tickets.create_ticket("Nowhere", "Repair", "Jane")

    @pytest.mark.asyncio
    async def test_unknown_ticket_type(self, seeded):
        with pytest.raises(TicketTypeNotFoundError):
            await seeded.tickets.create_ticket("Finance", "Repair", "Jane")

    @pytest.mark.asyncio
    async def test_client_name_required(self, seeded):
        with pytest.raises(ValidationError):
            await new_ticket(seeded, client_name=" ")


class TestList:
    @pytest.mark.asyncio
    async def test_filters_and_order(self, seeded, clock):
        first = await new_ticket(seeded, client_name="Acme Towers", priority=Priority.HIGH)
        clock.advance(hours=1)
        second = await new_ticket(seeded, client_name="Beacon Lofts")

        listed = await seeded.tickets.list_tickets()
        assert [t.ticket_id for t in listed] == [second.ticket_id, first.ticket_id]

        assert [t.ticket_id for t in await seeded.tickets.list_tickets(priority=Priority.HIGH)] == [first.ticket_id]
        assert [t.ticket_id for t in await seeded.tickets.list_tickets(search="beacon")] == [second.ticket_id]
        assert len(await seeded.tickets.list_tickets(search="repair")) == 2
        assert await seeded.tickets.list_tickets(department="Finance") == []

    @pytest.mark.asyncio
    async def test_listing_promotes_overdue(self, seeded, clock):
        ticket = await new_ticket(seeded)
        clock.advance(days=30)

        listed = await seeded.tickets.list_tickets(status=TicketStatus.OVERDUE)

        assert [t.ticket_id for t in listed] == [ticket.ticket_id]

    @pytest.mark.asyncio
    async def test_listing_without_promotion(self, seeded, clock):
        await new_ticket(seeded)
        clock.advance(days=30)

        listed = await seeded.tickets.list_tickets(promote_overdue=False)

        assert listed[0].status == TicketStatus.OPEN


class TestUpdate:
    @pytest.mark.asyncio
    async def test_records_history(self, seeded):
        ticket = await new_ticket(seeded)

        updated = await seeded.tickets.update_ticket(
            ticket.ticket_id, {"priority": "High", "description": "Leak"}, changed_by="admin"
        )

        assert updated.priority == Priority.HIGH
        assert updated.version == 2
        history = await seeded.tickets.get_ticket_history(ticket.ticket_id)
        assert history[0].change_type == ChangeType.UPDATE
        assert {c.field for c in history[0].changes} == {"priority", "description"}

    @pytest.mark.asyncio
    async def test_identical_values_produce_no_history(self, seeded):
        ticket = await new_ticket(seeded)

        updated = await seeded.tickets.update_ticket(
            ticket.ticket_id, {"client_name": ticket.client_name, "priority": ticket.priority}
        )

        assert updated.version == ticket.version
        assert await seeded.tickets.get_ticket_history(ticket.ticket_id) == []

    @pytest.mark.asyncio
    async def test_sla_change_recomputes_due_date(self, seeded):
        ticket = await new_ticket(seeded)

        updated = await seeded.tickets.update_ticket(ticket.ticket_id, {"sla": {"value": 1, "unit": "days"}})

        assert updated.sla == Sla(value=1)
        assert updated.due_date == MONDAY + timedelta(days=1)

    @pytest.mark.asyncio
    async def test_none_sla_leaves_sla_and_due_date(self, seeded):
        ticket = await new_ticket(seeded)

        updated = await seeded.tickets.update_ticket(
            ticket.ticket_id, {"sla": None, "description": "Leak"}
        )

        assert updated.sla == ticket.sla
        assert updated.due_date == ticket.due_date
        history = await seeded.tickets.get_ticket_history(ticket.ticket_id)
        assert [c.field for c in history[0].changes] == ["description"]

    @pytest.mark.asyncio
    async def test_engine_owned_fields_rejected(self, seeded):
        ticket = await new_ticket(seeded)
        with pytest.raises(ValidationError):
            await seeded.tickets.update_ticket(ticket.ticket_id, {"current_workflow_step": 3})

    @pytest.mark.asyncio
    async def test_workflow_cannot_be_swapped(self, seeded):
        ticket = await new_ticket(seeded)
        legal_only = await seeded.workflows.create_workflow(
            name="Legal only", steps=[{"department_name": "Legal"}]
        )

        for workflow_id in (legal_only.workflow_id, "WF-missing"):
            with pytest.raises(ValidationError):
                await seeded.tickets.update_ticket(ticket.ticket_id, {"workflow_id": workflow_id})

        ticket = await seeded.engine.add_department_action(
            ticket.ticket_id, 1, ActionType.COMPLETED, "done", True
        )
        assert ticket.workflow_id != legal_only.workflow_id
        assert ticket.status == TicketStatus.IN_PROGRESS
        assert not ticket.is_fully_resolved
        assert [s.department_name for s in ticket.workflow_status] == ["Maintenance", "Finance", "Legal"]

    @pytest.mark.asyncio
    async def test_unknown_fields_rejected(self, seeded):
        ticket = await new_ticket(seeded)
        with pytest.raises(ValidationError):
            await seeded.tickets.update_ticket(ticket.ticket_id, {"colour": "red"})

    @pytest.mark.asyncio
    async def test_invalid_values_rejected(self, seeded):
        ticket = await new_ticket(seeded)
        with pytest.raises(ValidationError):
            await seeded.tickets.update_ticket(ticket.ticket_id, {"priority": "Urgent-ish"})

    @pytest.mark.asyncio
    async def test_resolved_blocked_while_steps_open(self, seeded):
        ticket = await new_ticket(seeded)
        with pytest.raises(InvalidTransitionError):
            await seeded.tickets.update_ticket(ticket.ticket_id, {"status": "Resolved"})

    @pytest.mark.asyncio
    async def test_rejected_allowed(self, seeded):
        ticket = await new_ticket(seeded)
        updated = await seeded.tickets.update_ticket(ticket.ticket_id, {"status": "Rejected"})
        assert updated.status == TicketStatus.REJECTED

    @pytest.mark.asyncio
    async def test_closed_via_update_rejected(self, seeded):
        ticket = await new_ticket(seeded)
        with pytest.raises(InvalidTransitionError):
            await seeded.tickets.update_ticket(ticket.ticket_id, {"status": "Closed"})


class TestCloseAndDelete:
    @pytest.mark.asyncio
    async def test_close(self, seeded, clock):
        ticket = await new_ticket(seeded)
        clock.advance(days=1)

        closed = await seeded.tickets.close_ticket(ticket.ticket_id, closed_by="admin")

        assert closed.status == TicketStatus.CLOSED
        assert closed.closed_at == clock.now
        history = await seeded.tickets.get_ticket_history(ticket.ticket_id)
        assert history[0].change_type == ChangeType.CLOSE

        with pytest.raises(InvalidTransitionError):
            await seeded.tickets.close_ticket(ticket.ticket_id)
        with pytest.raises(InvalidTransitionError):
            await seeded.tickets.update_ticket(ticket.ticket_id, {"priority": "Low"})

    @pytest.mark.asyncio
    async def test_delete(self, seeded):
        ticket = await new_ticket(seeded)
        await seeded.tickets.delete_ticket(ticket.ticket_id)

        with pytest.raises(TicketNotFoundError):
            await seeded.tickets.get_ticket(ticket.ticket_id)
        with pytest.raises(TicketNotFoundError):
            await seeded.tickets.delete_ticket(ticket.ticket_id)


class TestHistory:
    @pytest.mark.asyncio
    async def test_all_history_newest_first(self, seeded, clock):
        first = await new_ticket(seeded)
        second = await new_ticket(seeded)
        await seeded.tickets.update_ticket(first.ticket_id, {"description": "a"})
        clock.advance(minutes=5)
        await seeded.tickets.update_ticket(second.ticket_id, {"description": "b"})

        history = await seeded.tickets.get_all_ticket_history()

        assert [h.ticket_id for h in history] == [second.ticket_id, first.ticket_id]


class TestPromoteOverdue:
    @pytest.mark.asyncio
    async def test_idempotent(self, seeded, clock):
        ticket = await new_ticket(seeded)
        later = clock.advance(days=30)

        promoted = await seeded.tickets.promote_overdue()
        assert [t.ticket_id for t in promoted] == [ticket.ticket_id]
        assert promoted[0].status == TicketStatus.OVERDUE
        assert await seeded.tickets.promote_overdue(now=later) == []

        history = await seeded.tickets.get_ticket_history(ticket.ticket_id)
        assert [h.change_type for h in history] == [ChangeType.OVERDUE]
        assert history[0].changed_by == "system"

    @pytest.mark.asyncio
    async def test_resolved_tickets_are_exempt(self, seeded, clock):
        ticket = await new_ticket(seeded)
        for step_number in (1, 2, 3):
            await seeded.engine.add_department_action(
                ticket.ticket_id, step_number, ActionType.COMPLETED, "done", True
            )
        clock.advance(days=30)

        assert await seeded.tickets.promote_overdue() == []

    @pytest.mark.asyncio
    async def test_overdue_ticket_keeps_progressing(self, seeded, clock):
        ticket = await new_ticket(seeded)
        clock.advance(days=30)
        await seeded.tickets.promote_overdue()

        ticket = await seeded.engine.add_department_action(
            ticket.ticket_id, 1, ActionType.COMPLETED, "late", True
        )
        assert ticket.status == TicketStatus.OVERDUE
        assert ticket.current_workflow_step == 2

    @pytest.mark.asyncio
    async def test_stale_version_is_detected(self, seeded):
        ticket = await new_ticket(seeded)
        await seeded.tickets.update_ticket(ticket.ticket_id, {"description": "changed"})

        with pytest.raises(ConcurrencyError):
            await seeded.tickets.ticket_repo.update(
                ticket.ticket_id, {"status": TicketStatus.OVERDUE}, expected_version=ticket.version
            )

    @pytest.mark.asyncio
    async def test_lost_race_is_skipped(self, seeded, clock, monkeypatch):
        ticket = await new_ticket(seeded)
        clock.advance(days=30)
        repo = seeded.tickets.ticket_repo
        original = repo.list_tickets

        async def stale_listing(**kwargs):
            listed = await original(**kwargs)
            # Another writer touches the ticket after it was read
            await repo.update(ticket.ticket_id, {"description": "concurrent edit"}, expected_version=ticket.version)
            return listed

        monkeypatch.setattr(repo, "list_tickets", stale_listing)

        assert await seeded.tickets.promote_overdue() == []
        assert (await seeded.tickets.get_ticket(ticket.ticket_id)).status == TicketStatus.OPEN


class TestUnavailableStore:
    @pytest.mark.asyncio
    async def test_reads_empty_writes_rejected(self, seeded):
        ticket = await new_ticket(seeded)
        seeded.store.mark_unavailable("maintenance window")

        assert await seeded.tickets.list_tickets() == []
        assert await seeded.tickets.get_all_ticket_history() == []
        with pytest.raises(StoreUnavailableError):
            await seeded.tickets.ticket_repo.create_ticket(ticket.model_copy(update={"ticket_id": "TKT-new"}))
        with pytest.raises(StoreUnavailableError):
            await seeded.tickets.ticket_repo.update(ticket.ticket_id, {"description": "x"})
