"""Tests for ticket status transitions"""
from datetime import timedelta

import pytest

from ticketflow.domain.enums import StepStatus, TicketStatus
from ticketflow.domain.errors import InvalidTransitionError, ValidationError
from ticketflow.domain.models import WorkflowStepStatus
from ticketflow.engine.lifecycle import TicketLifecycle, all_completed, current_step

from .conftest import MONDAY, make_ticket


def steps(*statuses):
    return [
        WorkflowStepStatus(step_number=i, department_name=f"D{i}", status=status)
        for i, status in enumerate(statuses, start=1)
    ]


@pytest.fixture
def lifecycle() -> TicketLifecycle:
    return TicketLifecycle()


class TestCurrentStep:
    def test_first_non_completed(self):
        current = current_step(steps(StepStatus.COMPLETED, StepStatus.PENDING, StepStatus.PENDING))
        assert current.step_number == 2

    def test_last_when_all_completed(self):
        current = current_step(steps(StepStatus.COMPLETED, StepStatus.COMPLETED))
        assert current.step_number == 2

    def test_empty(self):
        assert current_step([]) is None
        assert not all_completed([])

    def test_pointers(self, lifecycle):
        assert lifecycle.pointers(steps(StepStatus.COMPLETED, StepStatus.IN_PROGRESS)) == (2, "D2")
        assert lifecycle.pointers([]) == (1, None)


class TestEngineTransitions:
    def test_start_promotes_open(self, lifecycle):
        assert lifecycle.after_step_started(make_ticket()) == TicketStatus.IN_PROGRESS

    def test_start_keeps_overdue(self, lifecycle):
        ticket = make_ticket(status=TicketStatus.OVERDUE)
        assert lifecycle.after_step_started(ticket) == TicketStatus.OVERDUE

    def test_final_completion_resolves(self, lifecycle):
        ticket = make_ticket(status=TicketStatus.OVERDUE)
        assert lifecycle.after_step_completed(ticket, workflow_done=True) == TicketStatus.RESOLVED

    def test_intermediate_completion(self, lifecycle):
        assert lifecycle.after_step_completed(make_ticket(), False) == TicketStatus.IN_PROGRESS

    def test_revert(self, lifecycle):
        ticket = make_ticket(status=TicketStatus.RESOLVED)
        assert lifecycle.after_revert(ticket) == TicketStatus.IN_PROGRESS

    def test_closed_is_terminal(self, lifecycle):
        with pytest.raises(InvalidTransitionError):
            lifecycle.ensure_not_closed(make_ticket(status=TicketStatus.CLOSED))
        with pytest.raises(InvalidTransitionError):
            lifecycle.validate_close(make_ticket(status=TicketStatus.CLOSED))


class TestOverdueEligibility:
    def test_past_due_active_ticket(self, lifecycle):
        ticket = make_ticket(due_date=MONDAY)
        assert lifecycle.is_overdue_eligible(ticket, MONDAY + timedelta(days=1))

    def test_not_before_due_date_ends(self, lifecycle):
        ticket = make_ticket(due_date=MONDAY)
        assert not lifecycle.is_overdue_eligible(ticket, MONDAY.replace(hour=23))

    @pytest.mark.parametrize("status", [
        TicketStatus.RESOLVED, TicketStatus.REJECTED, TicketStatus.OVERDUE, TicketStatus.CLOSED,
    ])
    def test_exempt_statuses(self, lifecycle, status):
        ticket = make_ticket(due_date=MONDAY, status=status)
        assert not lifecycle.is_overdue_eligible(ticket, MONDAY + timedelta(days=5))


class TestManualStatus:
    def test_rejected_allowed(self, lifecycle):
        lifecycle.validate_manual_status(make_ticket(), TicketStatus.REJECTED)

    @pytest.mark.parametrize("status", [TicketStatus.OVERDUE, TicketStatus.CLOSED])
    def test_derived_statuses_rejected(self, lifecycle, status):
        with pytest.raises(InvalidTransitionError):
            lifecycle.validate_manual_status(make_ticket(), status)

    def test_resolved_requires_completed_steps(self, lifecycle):
        ticket = make_ticket(workflow_status=steps(StepStatus.COMPLETED, StepStatus.IN_PROGRESS))
        with pytest.raises(InvalidTransitionError):
            lifecycle.validate_manual_status(ticket, TicketStatus.RESOLVED)

    def test_resolved_allowed_when_steps_done(self, lifecycle):
        ticket = make_ticket(workflow_status=steps(StepStatus.COMPLETED, StepStatus.COMPLETED))
        lifecycle.validate_manual_status(ticket, TicketStatus.RESOLVED)

    def test_engine_owned_fields(self, lifecycle):
        lifecycle.validate_editable_fields(["assignee", "priority"])
        with pytest.raises(ValidationError) as exc:
            lifecycle.validate_editable_fields(["assignee", "workflow_status", "due_date"])
        assert exc.value.details["fields"] == ["due_date", "workflow_status"]
