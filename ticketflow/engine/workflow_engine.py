"""
Workflow Execution Engine

Advances tickets through the department steps of their workflow.

Every operation follows the same shape:

1. Read the ticket and, once, its canonical workflow (assigned, else the
   default). The canonical step count is fixed for the rest of the call.
2. Compute the new step statuses and ticket fields in memory.
3. Write the ticket as a compare-and-swap on its version, then the
   resolution, then the history entry.

A lookup that fails in step 1 aborts before anything is written.
"""
from typing import List, Optional, Tuple

from ..config.settings import Settings, get_settings
from ..domain.models import (
    Ticket, Workflow, WorkflowStepStatus, DepartmentAction, WorkflowResolution, FileAttachment
)
from ..domain.enums import ActionType, StepStatus, ChangeType
from ..domain.errors import (
    StepNotFoundError, InvalidTransitionError, AttachmentTooLargeError, InvalidMimeTypeError
)
from ..repositories.ticket_repo import TicketRepository
from ..repositories.workflow_repo import WorkflowRepository
from ..repositories.history_repo import ResolutionRepository
from ..utils.idgen import IdFactory, generate_id, ACTION_PREFIX, RESOLUTION_PREFIX
from ..utils.time import Clock, utc_now
from ..utils.logger import get_logger
from .history import ChangeHistoryRecorder, diff
from .lifecycle import TicketLifecycle, current_step, all_completed
from .sla import SlaEvaluator

logger = get_logger(__name__)


async def load_canonical_workflow(
    ticket: Ticket,
    workflow_repo: WorkflowRepository
) -> Optional[Workflow]:
    """
    The workflow a ticket runs against

    The assigned workflow must exist; without one the current default is
    used. None means the ticket runs on its single-step pseudo-workflow.
    """
    if ticket.workflow_id:
        return await workflow_repo.get_or_raise(ticket.workflow_id)
    return await workflow_repo.get_default()


def build_step_statuses(
    workflow: Optional[Workflow],
    department_name: str,
    started_at,
    department_id: Optional[str] = None
) -> List[WorkflowStepStatus]:
    """Fresh step statuses: step 1 in progress, the rest pending"""
    if workflow is None:
        return [WorkflowStepStatus(
            step_number=1,
            department_id=department_id,
            department_name=department_name,
            status=StepStatus.IN_PROGRESS,
            started_at=started_at,
        )]

    return [
        WorkflowStepStatus(
            step_number=step.step_number,
            department_id=step.department_id,
            department_name=step.department_name,
            status=StepStatus.IN_PROGRESS if step.step_number == 1 else StepStatus.PENDING,
            started_at=started_at if step.step_number == 1 else None,
        )
        for step in workflow.steps
    ]


class WorkflowEngine:
    """Department-step state machine for tickets"""

    def __init__(
        self,
        ticket_repo: TicketRepository,
        workflow_repo: WorkflowRepository,
        resolution_repo: ResolutionRepository,
        history: ChangeHistoryRecorder,
        sla_evaluator: Optional[SlaEvaluator] = None,
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
        self.sla_evaluator = sla_evaluator or SlaEvaluator(self.settings)
        self.lifecycle = lifecycle or TicketLifecycle()
        self.clock = clock
        self.id_factory = id_factory

    # =========================================================================
    # Initialization
    # =========================================================================

    async def initialize_workflow_status(
        self,
        ticket: Ticket,
        workflow_id: Optional[str] = None,
        department_id: Optional[str] = None
    ) -> Tuple[Optional[Workflow], List[WorkflowStepStatus]]:
        """
        Step statuses for a new ticket

        Args:
            ticket: The ticket being created
            workflow_id: Explicit workflow; must exist
            department_id: Id of the ticket's department, for the
                single-step fallback

        Returns:
            (workflow used or None for the fallback, step statuses)
        """
        if workflow_id:
            workflow = await self.workflow_repo.get_or_raise(workflow_id)
        else:
            workflow = await self.workflow_repo.get_default()

        statuses = build_step_statuses(workflow, ticket.department, ticket.created_at, department_id)
        if workflow is None:
            logger.info(
                "No workflow available, using single-step fallback",
                extra={"ticket_id": ticket.ticket_id, "department": ticket.department}
            )
        return workflow, statuses

    @staticmethod
    def get_current_workflow_step(ticket: Ticket) -> Optional[WorkflowStepStatus]:
        """The step that accepts new actions"""
        return current_step(ticket.workflow_status)

    # =========================================================================
    # Department actions
    # =========================================================================

    async def add_department_action(
        self,
        ticket_id: str,
        step_number: int,
        action_type: ActionType,
        notes: str,
        is_complete: bool,
        performed_by: Optional[str] = None,
        new_assignee: Optional[str] = None
    ) -> Ticket:
        """
        Record a department action against a workflow step

        Completing a step moves the ticket to the next one; completing the
        last step resolves the ticket.

        Raises:
            TicketNotFoundError: Unknown ticket
            WorkflowNotFoundError: The assigned workflow no longer exists
            StepNotFoundError: Step number outside the workflow
            InvalidTransitionError: Ticket closed, or step is not the current one
            ConcurrencyError: Ticket changed while the action was computed
        """
        ticket, _ = await self._apply_action(
            ticket_id=ticket_id,
            step_number=step_number,
            action_type=action_type,
            notes=notes,
            is_complete=is_complete,
            performed_by=performed_by,
            new_assignee=new_assignee,
        )
        return ticket

    async def resolve_ticket_for_department(
        self,
        ticket_id: str,
        resolution: str,
        resolved_by: Optional[str] = None,
        attachments: Optional[List[FileAttachment]] = None
    ) -> Tuple[Ticket, WorkflowResolution]:
        """
        Resolve the ticket's current department step

        Completes the current step with the resolution text as notes. The
        resolution's SLA is judged against the ticket-level SLA, measured from
        ticket creation.
        """
        ticket = await self.ticket_repo.get_or_raise(ticket_id)
        step = current_step(ticket.workflow_status)
        step_number = step.step_number if step else 1

        updated, stored = await self._apply_action(
            ticket_id=ticket_id,
            step_number=step_number,
            action_type=ActionType.COMPLETED,
            notes=resolution,
            is_complete=True,
            performed_by=resolved_by,
            attachments=attachments or [],
            ticket_level_sla=True,
        )
        return updated, stored

    # =========================================================================
    # Internals
    # =========================================================================

    def _validate_attachments(self, attachments: List[FileAttachment]) -> None:
        allowed = self.settings.allowed_mime_types_list
        for attachment in attachments:
            if attachment.size > self.settings.attachments_max_bytes:
                raise AttachmentTooLargeError(
                    f"Attachment {attachment.name} exceeds {self.settings.attachments_max_mb}MB",
                    details={"name": attachment.name, "size": attachment.size}
                )
            if allowed and attachment.mime_type not in allowed:
                raise InvalidMimeTypeError(
                    f"File type {attachment.mime_type} is not allowed",
                    details={"name": attachment.name, "mime_type": attachment.mime_type}
                )

    @staticmethod
    def _extend_steps(
        steps: List[WorkflowStepStatus],
        workflow: Optional[Workflow]
    ) -> List[WorkflowStepStatus]:
        """Pad the status list with pending steps so it covers the whole workflow"""
        if workflow is None:
            return steps
        for number in range(len(steps) + 1, workflow.total_steps + 1):
            step = workflow.get_step(number)
            steps.append(WorkflowStepStatus(
                step_number=number,
                department_id=step.department_id,
                department_name=step.department_name,
                status=StepStatus.PENDING,
            ))
        return steps

    async def _apply_action(
        self,
        ticket_id: str,
        step_number: int,
        action_type: ActionType,
        notes: str,
        is_complete: bool,
        performed_by: Optional[str] = None,
        new_assignee: Optional[str] = None,
        attachments: Optional[List[FileAttachment]] = None,
        ticket_level_sla: bool = False
    ) -> Tuple[Ticket, Optional[WorkflowResolution]]:
        now = self.clock()
        attachments = attachments or []
        self._validate_attachments(attachments)

        # 1. Reads
        ticket = await self.ticket_repo.get_or_raise(ticket_id)
        self.lifecycle.ensure_not_closed(ticket)

        workflow = await load_canonical_workflow(ticket, self.workflow_repo)
        steps = [step.model_copy(deep=True) for step in ticket.workflow_status]
        if not steps:
            steps = build_step_statuses(workflow, ticket.department, ticket.created_at)
        steps = self._extend_steps(steps, workflow)
        total_steps = workflow.total_steps if workflow else len(steps)

        # 2. Validation
        if step_number < 1 or step_number > total_steps:
            raise StepNotFoundError(
                f"Step {step_number} does not exist on ticket {ticket_id}",
                details={"ticket_id": ticket_id, "step_number": step_number, "total_steps": total_steps}
            )

        canonical = steps[:total_steps]
        active = current_step(canonical)
        step = canonical[step_number - 1]
        if step.status == StepStatus.COMPLETED or active is None or active.step_number != step_number:
            raise InvalidTransitionError(
                f"Step {step_number} is not the current step of ticket {ticket_id}",
                details={
                    "ticket_id": ticket_id,
                    "step_number": step_number,
                    "current_step": active.step_number if active else None,
                }
            )

        # 3. Step statuses
        step.actions.append(DepartmentAction(
            action_id=self.id_factory(ACTION_PREFIX),
            action_type=action_type,
            notes=notes,
            timestamp=now,
            is_complete=is_complete,
            performed_by=performed_by,
            new_assignee=new_assignee,
        ))
        if step.started_at is None:
            step.started_at = now
        step_started_at = step.started_at

        if is_complete:
            step.status = StepStatus.COMPLETED
            step.completed_at = now
            for later in canonical[step_number:]:
                later.status = StepStatus.PENDING
                later.completed_at = None
            if step_number < total_steps:
                canonical[step_number].started_at = now
        else:
            step.status = StepStatus.IN_PROGRESS

        # 4. Ticket fields
        is_last = step_number == total_steps
        workflow_done = is_complete and is_last and all_completed(canonical)
        if is_complete:
            status = self.lifecycle.after_step_completed(ticket, workflow_done)
        else:
            status = self.lifecycle.after_step_started(ticket)
        pointer_step, pointer_department = self.lifecycle.pointers(canonical)

        updates = {
            "workflow_status": steps,
            "status": status,
            "current_workflow_step": pointer_step,
            "current_department": pointer_department,
        }
        if workflow_done:
            updates["is_fully_resolved"] = True
        if new_assignee:
            updates["assignee"] = new_assignee

        resolution = None
        if is_complete:
            if ticket_level_sla:
                sla, started_at = ticket.sla, ticket.created_at
            else:
                workflow_step = workflow.get_step(step_number) if workflow else None
                sla = self.sla_evaluator.step_sla(workflow_step) if workflow_step else ticket.sla
                started_at = step_started_at
            evaluation = self.sla_evaluator.evaluate(sla, started_at, now, step_number)
            resolution = WorkflowResolution(
                resolution_id=self.id_factory(RESOLUTION_PREFIX),
                ticket_id=ticket_id,
                step_number=step_number,
                from_department=step.department_name,
                to_department=None if is_last else canonical[step_number].department_name,
                resolved_by=performed_by,
                resolution=notes,
                attachments=attachments,
                resolved_at=now,
                is_final_resolution=workflow_done,
                is_revert=False,
                expected_sla=evaluation.expected_sla,
                actual_time_taken=evaluation.actual_time_taken,
                sla_status=evaluation.sla_status,
                step_started_at=started_at,
            )

        # 5. Writes
        changes = diff(ticket, updates)
        updated = await self.ticket_repo.update(ticket_id, updates, expected_version=ticket.version)
        if resolution is not None:
            await self.resolution_repo.append(resolution)
        await self.history.record(
            ticket_id=ticket_id,
            changes=changes,
            change_type=ChangeType.RESOLUTION if ticket_level_sla else ChangeType.DEPARTMENT_ACTION,
            changed_by=performed_by,
            changed_at=now
        )

        logger.info(
            f"Department action on step {step_number}/{total_steps}: "
            f"{'completed' if is_complete else 'in progress'}",
            extra={
                "ticket_id": ticket_id,
                "step_number": step_number,
                "status": updated.status.value,
                "workflow_id": ticket.workflow_id,
            }
        )
        return updated, resolution
