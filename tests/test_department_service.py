"""Tests for departments, ticket types and users"""
import pytest

from ticketflow.domain.enums import ActionType, Priority
from ticketflow.domain.errors import (
    AlreadyExistsError, ConflictError, DepartmentNotFoundError,
    TicketTypeNotFoundError, ValidationError, WorkflowNotFoundError,
)


class TestDepartments:
    @pytest.mark.asyncio
    async def test_unique_names(self, seeded):
        with pytest.raises(AlreadyExistsError):
            await seeded.departments.create_department("Finance")

    @pytest.mark.asyncio
    async def test_list_ordered_by_name(self, seeded):
        names = [d.name for d in await seeded.departments.list_departments()]
        assert names == ["Finance", "Legal", "Maintenance"]

    @pytest.mark.asyncio
    async def test_rename(self, seeded):
        legal = await seeded.departments.get_department_by_name("Legal")
        renamed = await seeded.departments.rename_department(legal.department_id, "Compliance")
        assert renamed.name == "Compliance"
        with pytest.raises(AlreadyExistsError):
            await seeded.departments.rename_department(legal.department_id, "Finance")

    @pytest.mark.asyncio
    async def test_rename_carries_through_workflows_and_users(self, seeded):
        legal = await seeded.departments.get_department_by_name("Legal")
        await seeded.departments.add_user("Lee", "Legal")

        await seeded.departments.rename_department(legal.department_id, "Compliance")

        workflow = await seeded.workflows.get_default_workflow()
        assert [s.department_name for s in workflow.steps] == ["Maintenance", "Finance", "Compliance"]
        assert [u.name for u in await seeded.departments.get_users_by_department("Compliance")] == ["Lee"]
        assert await seeded.departments.get_users_by_department("Legal") == []

        ticket = await seeded.tickets.create_ticket("Maintenance", "Repair", "Jane Client")
        for step_number in (1, 2):
            ticket = await seeded.engine.add_department_action(
                ticket.ticket_id, step_number, ActionType.COMPLETED, "done", True
            )
        assert ticket.current_department == "Compliance"

    @pytest.mark.asyncio
    async def test_delete_refused_while_in_workflow(self, seeded):
        legal = await seeded.departments.get_department_by_name("Legal")
        with pytest.raises(ConflictError):
            await seeded.departments.delete_department(legal.department_id)

    @pytest.mark.asyncio
    async def test_delete_unused(self, seeded):
        hr = await seeded.departments.create_department("HR")
        await seeded.departments.delete_department(hr.department_id)
        assert await seeded.departments.get_department_by_name("HR") is None


class TestTicketTypes:
    @pytest.mark.asyncio
    async def test_add_update_delete(self, seeded):
        finance = await seeded.departments.get_department_by_name("Finance")

        added = await seeded.departments.add_ticket_type(
            finance.department_id, "Refund", default_working_days=2, priority=Priority.HIGH
        )
        updated = await seeded.departments.update_ticket_type(
            finance.department_id, added.ticket_type_id, default_working_days=3
        )
        assert updated.default_working_days == 3
        assert updated.priority == Priority.HIGH
        types = await seeded.departments.get_ticket_types(finance.department_id)
        assert [t.name for t in types] == ["Refund"]

        await seeded.departments.delete_ticket_type(finance.department_id, added.ticket_type_id)
        assert await seeded.departments.get_ticket_types(finance.department_id) == []
        with pytest.raises(TicketTypeNotFoundError):
            await seeded.departments.delete_ticket_type(finance.department_id, added.ticket_type_id)

    @pytest.mark.asyncio
    async def test_duplicate_name(self, seeded):
        maintenance = await seeded.departments.get_department_by_name("Maintenance")
        with pytest.raises(AlreadyExistsError):
            await seeded.departments.add_ticket_type(maintenance.department_id, "Repair")

    @pytest.mark.asyncio
    async def test_unknown_workflow(self, seeded):
        finance = await seeded.departments.get_department_by_name("Finance")
        with pytest.raises(WorkflowNotFoundError):
            await seeded.departments.add_ticket_type(finance.department_id, "Refund", workflow_id="WF-x")

    @pytest.mark.asyncio
    async def test_unknown_field(self, seeded):
        maintenance = await seeded.departments.get_department_by_name("Maintenance")
        repair = maintenance.ticket_types[0]
        with pytest.raises(ValidationError):
            await seeded.departments.update_ticket_type(maintenance.department_id, repair.ticket_type_id, colour="red")

    @pytest.mark.asyncio
    async def test_ticket_type_workflow_is_used(self, seeded):
        finance = await seeded.departments.get_department_by_name("Finance")
        billing = await seeded.workflows.create_workflow("Billing", [{"department_name": "Finance"}])
        await seeded.departments.add_ticket_type(finance.department_id, "Refund", workflow_id=billing.workflow_id)

        ticket = await seeded.tickets.create_ticket("Finance", "Refund", "Jane")

        assert ticket.workflow_id == billing.workflow_id
        assert len(ticket.workflow_status) == 1


class TestSubCategories:
    @pytest.mark.asyncio
    async def test_add_and_remove(self, seeded):
        maintenance = await seeded.departments.get_department_by_name("Maintenance")

        updated = await seeded.departments.add_sub_category(maintenance.department_id, "Electrical")
        assert updated.sub_categories == ["Plumbing", "Electrical"]
        again = await seeded.departments.add_sub_category(maintenance.department_id, "Electrical")
        assert again.sub_categories == ["Plumbing", "Electrical"]

        removed = await seeded.departments.remove_sub_category(maintenance.department_id, "Plumbing")
        assert removed.sub_categories == ["Electrical"]


class TestUsers:
    @pytest.mark.asyncio
    async def test_users_by_department(self, seeded):
        await seeded.departments.add_user("Zoe", "Finance")
        await seeded.departments.add_user("Adam", "Finance", email="adam@example.com")
        await seeded.departments.add_user("Lee", "Legal")

        users = await seeded.departments.get_users_by_department("Finance")

        assert [u.name for u in users] == ["Adam", "Zoe"]

    @pytest.mark.asyncio
    async def test_unknown_department(self, seeded):
        with pytest.raises(DepartmentNotFoundError):
            await seeded.departments.add_user("Zoe", "Marketing")
