"""Workflow Service - Workflow definition management"""
from typing import Any, Dict, List, Optional

from pydantic import ValidationError as PydanticValidationError

from ..config.settings import Settings, get_settings
from ..domain.models import Workflow, WorkflowStep, Sla
from ..domain.enums import TicketStatus
from ..domain.errors import WorkflowValidationError, ConflictError
from ..repositories.workflow_repo import WorkflowRepository
from ..repositories.department_repo import DepartmentRepository
from ..repositories.ticket_repo import TicketRepository
from ..engine.calendar import workflow_sla
from ..utils.idgen import IdFactory, generate_id, WORKFLOW_PREFIX, STEP_PREFIX
from ..utils.time import Clock, utc_now
from ..utils.logger import get_logger

logger = get_logger(__name__)

# Statuses of tickets that still depend on their workflow
_ACTIVE_STATUSES = [TicketStatus.OPEN, TicketStatus.IN_PROGRESS, TicketStatus.OVERDUE]


class WorkflowService:
    """
    Service for workflow operations

    At most one workflow is the default. Every write that marks a workflow
    as default clears the flag on all others first.
    """

    def __init__(
        self,
        repo: WorkflowRepository,
        department_repo: DepartmentRepository,
        ticket_repo: TicketRepository,
        settings: Optional[Settings] = None,
        clock: Clock = utc_now,
        id_factory: IdFactory = generate_id
    ):
        self.settings = settings or get_settings()
        self.repo = repo
        self.department_repo = department_repo
        self.ticket_repo = ticket_repo
        self.clock = clock
        self.id_factory = id_factory

    async def create_workflow(
        self,
        name: str,
        steps: List[Dict[str, Any]],
        description: Optional[str] = None,
        is_default: bool = False
    ) -> Workflow:
        """
        Create a workflow

        Args:
            name: Display name
            steps: Ordered step specs; each names a department by
                `department_id` or `department_name` and may carry
                `estimated_duration`, `duration_unit` and `step_number`
            description: Optional description
            is_default: Make this the default workflow

        Raises:
            WorkflowValidationError: Empty steps, unknown departments or
                non-contiguous step numbers
        """
        if not name or not name.strip():
            raise WorkflowValidationError("Workflow name is required")

        now = self.clock()
        workflow = self._build(
            workflow_id=self.id_factory(WORKFLOW_PREFIX),
            name=name.strip(),
            description=description,
            steps=await self._resolve_steps(steps),
            is_default=is_default,
            created_at=now,
            updated_at=now,
        )

        if is_default:
            await self._clear_defaults()
        await self.repo.create_workflow(workflow)
        return workflow

    async def get_workflow(self, workflow_id: str) -> Workflow:
        """Get workflow by ID"""
        return await self.repo.get_or_raise(workflow_id)

    async def list_workflows(self) -> List[Workflow]:
        """List workflows ordered by name"""
        return await self.repo.list_workflows()

    async def update_workflow(
        self,
        workflow_id: str,
        name: Optional[str] = None,
        description: Optional[str] = None,
        steps: Optional[List[Dict[str, Any]]] = None,
        is_default: Optional[bool] = None
    ) -> Workflow:
        """
        Update a workflow

        Tickets already running keep their step statuses; the new step list
        applies to their remaining steps.
        """
        existing = await self.repo.get_or_raise(workflow_id)

        updates: Dict[str, Any] = {}
        if name is not None:
            if not name.strip():
                raise WorkflowValidationError("Workflow name is required")
            updates["name"] = name.strip()
        if description is not None:
            updates["description"] = description
        if steps is not None:
            updates["steps"] = await self._resolve_steps(steps)
        if is_default is not None:
            updates["is_default"] = is_default

        # Validate the merged definition before writing anything
        self._build(**{**existing.model_dump(), **updates})

        if is_default:
            await self._clear_defaults(except_id=workflow_id)
        updated = await self.repo.update(workflow_id, updates)

        logger.info(
            f"Updated workflow: {workflow_id}",
            extra={"workflow_id": workflow_id}
        )
        return updated

    async def delete_workflow(self, workflow_id: str) -> None:
        """
        Delete a workflow

        Refused while active tickets still run on it.
        """
        workflow = await self.repo.get_or_raise(workflow_id)

        active = [
            t for t in await self.ticket_repo.list_tickets(statuses=_ACTIVE_STATUSES)
            if t.workflow_id == workflow_id
        ]
        if active:
            raise ConflictError(
                f"Workflow {workflow_id} is used by {len(active)} active ticket(s)",
                details={"workflow_id": workflow_id, "ticket_ids": [t.ticket_id for t in active]}
            )

        if workflow.is_default:
            logger.warning(
                "Deleting the default workflow; new tickets fall back to single-step handling",
                extra={"workflow_id": workflow_id}
            )
        await self.repo.delete(workflow_id)
        logger.info(f"Deleted workflow: {workflow_id}", extra={"workflow_id": workflow_id})

    # =========================================================================
    # Default workflow
    # =========================================================================

    async def get_default_workflow(self) -> Optional[Workflow]:
        """The default workflow, or None"""
        return await self.repo.get_default()

    async def set_default_workflow(self, workflow_id: str) -> Workflow:
        """Make a workflow the single default"""
        await self.repo.get_or_raise(workflow_id)
        await self._clear_defaults(except_id=workflow_id)
        updated = await self.repo.update(workflow_id, {"is_default": True})
        logger.info("Default workflow changed", extra={"workflow_id": workflow_id})
        return updated

    async def get_workflow_sla(self, workflow_id: str) -> Sla:
        """Aggregate SLA of a workflow in working days"""
        workflow = await self.repo.get_or_raise(workflow_id)
        return workflow_sla(workflow, self.settings.hours_per_working_day)

    # =========================================================================
    # Internals
    # =========================================================================

    async def _clear_defaults(self, except_id: Optional[str] = None) -> None:
        for workflow in await self.repo.list({"is_default": True}):
            if workflow.workflow_id != except_id:
                await self.repo.update(workflow.workflow_id, {"is_default": False})

    async def _resolve_steps(self, steps: List[Dict[str, Any]]) -> List[WorkflowStep]:
        """Turn step specs into WorkflowSteps, checking each department exists"""
        if not steps:
            raise WorkflowValidationError("A workflow needs at least one step")

        resolved: List[WorkflowStep] = []
        errors: List[str] = []
        for index, spec in enumerate(steps, start=1):
            department = None
            if spec.get("department_id"):
                department = await self.department_repo.get(spec["department_id"])
            elif spec.get("department_name"):
                department = await self.department_repo.get_by_name(spec["department_name"])

            if department is None:
                label = spec.get("department_id") or spec.get("department_name") or "<missing>"
                errors.append(f"Step {index}: department {label} not found")
                continue

            try:
                resolved.append(WorkflowStep(
                    step_id=spec.get("step_id") or self.id_factory(STEP_PREFIX),
                    department_id=department.department_id,
                    department_name=department.name,
                    step_number=spec.get("step_number", index),
                    estimated_duration=spec.get("estimated_duration", 1),
                    duration_unit=spec.get("duration_unit", "days"),
                ))
            except PydanticValidationError as e:
                errors.append(f"Step {index}: {e.errors()[0]['msg']}")

        if errors:
            raise WorkflowValidationError(
                f"Invalid workflow steps: {len(errors)} error(s)",
                details={"errors": errors}
            )
        return resolved

    @staticmethod
    def _build(**fields: Any) -> Workflow:
        try:
            return Workflow.model_validate(fields)
        except PydanticValidationError as e:
            raise WorkflowValidationError(
                "Invalid workflow definition",
                details={"errors": [err["msg"] for err in e.errors()]}
            )
