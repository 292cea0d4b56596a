"""Ticket Lifecycle - status transitions and current-step pointers"""
from datetime import datetime
from typing import List, Optional, Tuple

from ..domain.models import Ticket, WorkflowStepStatus
from ..domain.enums import TicketStatus, StepStatus
from ..domain.errors import InvalidTransitionError, ValidationError
from .calendar import is_overdue

# Statuses the overdue pass never touches
OVERDUE_EXEMPT = frozenset({
    TicketStatus.RESOLVED, TicketStatus.REJECTED, TicketStatus.OVERDUE, TicketStatus.CLOSED,
})

# Statuses a direct ticket edit may set
MANUAL_STATUSES = frozenset({
    TicketStatus.OPEN, TicketStatus.IN_PROGRESS, TicketStatus.RESOLVED, TicketStatus.REJECTED,
})

# Fields only the engine may write
ENGINE_OWNED_FIELDS = frozenset({
    "ticket_id", "workflow_id", "workflow_status", "current_workflow_step", "current_department",
    "is_fully_resolved", "due_date", "created_at", "updated_at", "closed_at",
    "version", "schema_version",
})


def current_step(steps: List[WorkflowStepStatus]) -> Optional[WorkflowStepStatus]:
    """First step that is not completed, or the last step when all are"""
    if not steps:
        return None
    for step in steps:
        if step.status != StepStatus.COMPLETED:
            return step
    return steps[-1]


def all_completed(steps: List[WorkflowStepStatus]) -> bool:
    return bool(steps) and all(step.status == StepStatus.COMPLETED for step in steps)


class TicketLifecycle:
    """
    Owns ticket status transitions

    Open -> In Progress -> Resolved / Rejected, with Overdue derived from the
    due date and Closed reachable from anything but itself.
    """

    @staticmethod
    def ensure_not_closed(ticket: Ticket) -> None:
        if ticket.status == TicketStatus.CLOSED:
            raise InvalidTransitionError(
                f"Ticket {ticket.ticket_id} is closed",
                details={"ticket_id": ticket.ticket_id, "status": ticket.status.value}
            )

    @staticmethod
    def pointers(steps: List[WorkflowStepStatus]) -> Tuple[int, Optional[str]]:
        """(current_workflow_step, current_department) derived from step statuses"""
        step = current_step(steps)
        if step is None:
            return 1, None
        return step.step_number, step.department_name

    # =========================================================================
    # Engine-driven transitions
    # =========================================================================

    @staticmethod
    def after_step_started(ticket: Ticket) -> TicketStatus:
        if ticket.status == TicketStatus.OPEN:
            return TicketStatus.IN_PROGRESS
        return ticket.status

    @staticmethod
    def after_step_completed(ticket: Ticket, workflow_done: bool) -> TicketStatus:
        if workflow_done:
            return TicketStatus.RESOLVED
        if ticket.status == TicketStatus.OPEN:
            return TicketStatus.IN_PROGRESS
        return ticket.status

    @staticmethod
    def after_revert(ticket: Ticket) -> TicketStatus:
        return TicketStatus.IN_PROGRESS

    # =========================================================================
    # Derived and manual transitions
    # =========================================================================

    @staticmethod
    def is_overdue_eligible(ticket: Ticket, now: datetime) -> bool:
        """Due date has passed and the status is still an active one"""
        return ticket.status not in OVERDUE_EXEMPT and is_overdue(ticket.due_date, now)

    def validate_close(self, ticket: Ticket) -> None:
        self.ensure_not_closed(ticket)

    def validate_manual_status(self, ticket: Ticket, new_status: TicketStatus) -> None:
        """
        Direct status edits

        Overdue is derived and Closed has its own operation. Resolved is only
        accepted once every workflow step is completed, so a manual edit can
        never leave the step statuses behind the ticket status.
        """
        if new_status == ticket.status:
            return
        self.ensure_not_closed(ticket)
        if new_status not in MANUAL_STATUSES:
            raise InvalidTransitionError(
                f"Status {new_status.value} cannot be set directly",
                details={"ticket_id": ticket.ticket_id, "status": new_status.value}
            )
        if new_status == TicketStatus.RESOLVED and not all_completed(ticket.workflow_status):
            raise InvalidTransitionError(
                f"Ticket {ticket.ticket_id} still has open workflow steps",
                details={
                    "ticket_id": ticket.ticket_id,
                    "current_workflow_step": ticket.current_workflow_step,
                }
            )

    @staticmethod
    def validate_editable_fields(fields: List[str]) -> None:
        owned = sorted(set(fields) & ENGINE_OWNED_FIELDS)
        if owned:
            raise ValidationError(
                f"Fields managed by the workflow engine cannot be edited: {', '.join(owned)}",
                details={"fields": owned}
            )
