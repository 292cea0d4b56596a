"""Tests for versioned schema migrations"""
import pytest

from ticketflow.repositories.migrations import MIGRATIONS, migrate
from ticketflow.repositories.store import Collections
from ticketflow.repositories.ticket_repo import TicketRepository

from .conftest import MONDAY


def legacy_ticket(ticket_id: str, status: str = "Open", working_days: int = 3) -> dict:
    """Ticket as stored before workflows and SLA objects existed"""
    return {
        "ticket_id": ticket_id,
        "department": "Maintenance",
        "ticket_type": "Repair",
        "client_name": "Legacy Client",
        "priority": "Medium",
        "status": status,
        "working_days": working_days,
        "created_at": MONDAY,
        "updated_at": MONDAY,
    }


class TestMigrate:
    @pytest.mark.asyncio
    async def test_additive_steps_backfill_legacy_tickets(self, store, clock):
        await store.create(Collections.TICKETS, legacy_ticket("T1"))
        await store.create(Collections.TICKETS, legacy_ticket("T2", status="Resolved"))

        version = await migrate(store)

        assert version == 3
        assert await store.get_schema_version() == 3

        repo = TicketRepository(store, clock)
        open_ticket = await repo.get_or_raise("T1")
        assert open_ticket.sla.value == 3
        assert len(open_ticket.workflow_status) == 1
        assert open_ticket.workflow_status[0].department_name == "Maintenance"
        assert open_ticket.current_department == "Maintenance"
        assert not open_ticket.is_fully_resolved

        resolved = await repo.get_or_raise("T2")
        assert resolved.is_fully_resolved
        assert resolved.workflow_status[0].status.value == "completed"

    @pytest.mark.asyncio
    async def test_destructive_step_needs_opt_in(self, store):
        await store.create(Collections.TICKETS, legacy_ticket("T1"))

        await migrate(store)
        assert "working_days" in await store.get_by_id(Collections.TICKETS, "T1")

        version = await migrate(store, allow_destructive=True)
        assert version == MIGRATIONS[-1].version
        doc = await store.get_by_id(Collections.TICKETS, "T1")
        assert "working_days" not in doc
        assert doc["sla"]["value"] == 3

    @pytest.mark.asyncio
    async def test_idempotent(self, store):
        await store.create(Collections.TICKETS, legacy_ticket("T1"))
        await migrate(store)
        before = await store.get_by_id(Collections.TICKETS, "T1")

        assert await migrate(store) == 3
        assert await store.get_by_id(Collections.TICKETS, "T1") == before

    @pytest.mark.asyncio
    async def test_target_version(self, store):
        await store.create(Collections.TICKETS, legacy_ticket("T1"))

        assert await migrate(store, target=2) == 2
        doc = await store.get_by_id(Collections.TICKETS, "T1")
        assert doc["workflow_status"]
        assert "sla" not in doc

    def test_steps_are_ordered_and_only_pruning_is_destructive(self):
        assert [step.version for step in MIGRATIONS] == [2, 3, 4]
        assert [step.destructive for step in MIGRATIONS] == [False, False, True]
