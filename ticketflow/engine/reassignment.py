"""Reassignment and revert - moving a ticket between people and departments"""
from typing import Optional

from ..config.settings import Settings, get_settings
from ..domain.models import Ticket, WorkflowResolution
from ..domain.enums import StepStatus, ChangeType
from ..domain.errors import ValidationError, InvalidTransitionError
from ..repositories.ticket_repo import TicketRepository
from ..repositories.workflow_repo import WorkflowRepository
from ..repositories.history_repo import ResolutionRepository
from ..utils.idgen import IdFactory, generate_id, RESOLUTION_PREFIX
from ..utils.time import Clock, utc_now
from ..utils.logger import get_logger
from .history import ChangeHistoryRecorder, diff
from .lifecycle import TicketLifecycle
from .workflow_engine import load_canonical_workflow

logger = get_logger(__name__)


class ReassignmentHandler:
    """Assignee changes and reverts to the previous department"""

    def __init__(
        self,
        ticket_repo: TicketRepository,
        workflow_repo: WorkflowRepository,
        resolution_repo: ResolutionRepository,
        history: ChangeHistoryRecorder,
        lifecycle: Optional[TicketLifecycle] = None,
        settings: Optional[Settings] = None,
        clock: Clock = utc_now,
        id_factory: IdFactory = generate_id
    ):
        self.settings = settings or get_settings()
        self.ticket_repo = ticket_repo
        self.workflow_repo = workflow_repo
        self.resolution_repo = resolution_repo
        self.history = history
        self.lifecycle = lifecycle or TicketLifecycle()
        self.clock = clock
        self.id_factory = id_factory

    async def reassign(
        self,
        ticket_id: str,
        new_assignee: str,
        reassigned_by: Optional[str] = None,
        reason: Optional[str] = None
    ) -> Ticket:
        """
        Change the ticket's assignee

        Reassigning to the current assignee writes nothing.
        """
        if not new_assignee or not new_assignee.strip():
            raise ValidationError("Assignee is required", details={"ticket_id": ticket_id})

        ticket = await self.ticket_repo.get_or_raise(ticket_id)
        self.lifecycle.ensure_not_closed(ticket)

        updates = {"assignee": new_assignee.strip()}
        changes = diff(ticket, updates)
        if not changes:
            return ticket

        now = self.clock()
        updated = await self.ticket_repo.update(ticket_id, updates, expected_version=ticket.version)
        await self.history.record(
            ticket_id=ticket_id,
            changes=changes,
            change_type=ChangeType.REASSIGNMENT,
            changed_by=reassigned_by,
            reason=reason,
            changed_at=now
        )
        logger.info(
            f"Reassigned ticket from {ticket.assignee} to {updated.assignee}",
            extra={"ticket_id": ticket_id, "actor": reassigned_by}
        )
        return updated

    async def revert(
        self,
        ticket_id: str,
        target_department: str,
        reason: str,
        reverted_by: Optional[str] = None
    ) -> Ticket:
        """
        Send the ticket back one workflow step

        The previous step is reopened and every later step returns to
        pending. A revert resolution records the move.

        Args:
            ticket_id: Ticket to revert
            target_department: Department that receives the ticket
            reason: Why the ticket is sent back (required)
            reverted_by: Acting user

        Raises:
            ValidationError: Missing reason or target department
            InvalidTransitionError: Ticket closed, or the target is not the
                previous step's department while strict targets are enforced
        """
        if not reason or not reason.strip():
            raise ValidationError("A revert reason is required", details={"ticket_id": ticket_id})
        if not target_department or not target_department.strip():
            raise ValidationError("A target department is required", details={"ticket_id": ticket_id})

        now = self.clock()
        ticket = await self.ticket_repo.get_or_raise(ticket_id)
        self.lifecycle.ensure_not_closed(ticket)
        workflow = await load_canonical_workflow(ticket, self.workflow_repo)

        current = ticket.current_workflow_step
        new_step = max(1, current - 1)

        if self.settings.strict_revert_targets:
            expected = self._department_of_step(ticket, workflow, new_step)
            if expected is not None and expected != target_department:
                raise InvalidTransitionError(
                    f"Ticket can only be reverted to {expected}",
                    details={
                        "ticket_id": ticket_id,
                        "target_department": target_department,
                        "expected_department": expected,
                    }
                )

        steps = [step.model_copy(deep=True) for step in ticket.workflow_status]
        for step in steps:
            if step.step_number == new_step:
                step.status = StepStatus.IN_PROGRESS
                step.completed_at = None
                step.started_at = now
            elif step.step_number > new_step:
                step.status = StepStatus.PENDING
                step.completed_at = None

        updates = {
            "current_department": target_department,
            "current_workflow_step": new_step,
            "status": self.lifecycle.after_revert(ticket),
            "is_fully_resolved": False,
            "workflow_status": steps,
        }
        resolution = WorkflowResolution(
            resolution_id=self.id_factory(RESOLUTION_PREFIX),
            ticket_id=ticket_id,
            step_number=current - 1,
            from_department=ticket.current_department or ticket.department,
            to_department=target_department,
            resolved_by=reverted_by,
            resolution=reason,
            resolved_at=now,
            is_final_resolution=False,
            is_revert=True,
        )

        changes = diff(ticket, updates)
        updated = await self.ticket_repo.update(ticket_id, updates, expected_version=ticket.version)
        await self.resolution_repo.append(resolution)
        await self.history.record(
            ticket_id=ticket_id,
            changes=changes,
            change_type=ChangeType.REVERT,
            changed_by=reverted_by,
            reason=reason,
            changed_at=now
        )

        logger.info(
            f"Reverted ticket from step {current} to step {new_step}",
            extra={"ticket_id": ticket_id, "department": target_department, "step_number": new_step}
        )
        return updated

    @staticmethod
    def _department_of_step(ticket: Ticket, workflow, step_number: int) -> Optional[str]:
        if workflow is not None:
            step = workflow.get_step(step_number)
            return step.department_name if step else None
        for status in ticket.workflow_status:
            if status.step_number == step_number:
                return status.department_name
        return ticket.department
