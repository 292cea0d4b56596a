"""Ticket Service - Ticket management business logic"""
import base64
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from pydantic import ValidationError as PydanticValidationError

from ..config.settings import Settings, get_settings
from ..domain.models import (
    Ticket, Sla, TicketHistory, WorkflowResolution, FileAttachment
)
from ..domain.enums import TicketStatus, Priority, ActionType, ChangeType, DurationUnit
from ..domain.errors import (
    ValidationError, ConcurrencyError, DepartmentNotFoundError, TicketTypeNotFoundError
)
from ..repositories.ticket_repo import TicketRepository
from ..repositories.department_repo import DepartmentRepository
from ..repositories.history_repo import HistoryRepository, ResolutionRepository
from ..engine.workflow_engine import WorkflowEngine
from ..engine.reassignment import ReassignmentHandler
from ..engine.history import ChangeHistoryRecorder, diff
from ..engine.lifecycle import TicketLifecycle
from ..engine.calendar import due_date_for_sla
from ..utils.idgen import IdFactory, generate_id, TICKET_PREFIX, ATTACHMENT_PREFIX
from ..utils.time import Clock, utc_now
from ..utils.logger import get_logger

logger = get_logger(__name__)

SYSTEM_ACTOR = "system"


class TicketService:
    """Service for ticket operations"""

    def __init__(
        self,
        ticket_repo: TicketRepository,
        department_repo: DepartmentRepository,
        history_repo: HistoryRepository,
        resolution_repo: ResolutionRepository,
        engine: WorkflowEngine,
        reassignment: ReassignmentHandler,
        history: ChangeHistoryRecorder,
        lifecycle: Optional[TicketLifecycle] = None,
        settings: Optional[Settings] = None,
        clock: Clock = utc_now,
        id_factory: IdFactory = generate_id
    ):
        self.settings = settings or get_settings()
        self.ticket_repo = ticket_repo
        self.department_repo = department_repo
        self.history_repo = history_repo
        self.resolution_repo = resolution_repo
        self.engine = engine
        self.reassignment = reassignment
        self.history = history
        self.lifecycle = lifecycle or TicketLifecycle()
        self.clock = clock
        self.id_factory = id_factory

    # =========================================================================
    # Create / read
    # =========================================================================

    async def create_ticket(
        self,
        department: str,
        ticket_type: str,
        client_name: str,
        unit_id: Optional[str] = None,
        priority: Optional[Priority] = None,
        description: Optional[str] = None,
        sub_category: Optional[str] = None,
        assignee: Optional[str] = None,
        ticket_owner: Optional[str] = None,
        workflow_id: Optional[str] = None,
        sla: Optional[Sla] = None
    ) -> Ticket:
        """
        Create a new ticket

        The workflow is the explicit one, else the ticket type's, else the
        default. The SLA is the explicit one, else the ticket type's default
        working days; the due date is derived from it.

        Raises:
            DepartmentNotFoundError: Unknown department
            TicketTypeNotFoundError: Ticket type not owned by the department
            WorkflowNotFoundError: Explicit or ticket-type workflow missing
        """
        if not client_name or not client_name.strip():
            raise ValidationError("Client name is required")

        dept = await self.department_repo.get_by_name(department)
        if dept is None:
            raise DepartmentNotFoundError(
                f"Department {department} not found",
                details={"department": department}
            )
        type_def = next((t for t in dept.ticket_types if t.name == ticket_type), None)
        if type_def is None:
            raise TicketTypeNotFoundError(
                f"Ticket type {ticket_type} not found in {department}",
                details={"department": department, "ticket_type": ticket_type}
            )

        now = self.clock()
        ticket_sla = sla or Sla(value=type_def.default_working_days, unit=DurationUnit.DAYS)
        ticket = Ticket(
            ticket_id=self.id_factory(TICKET_PREFIX),
            department=dept.name,
            ticket_type=type_def.name,
            sub_category=sub_category or type_def.sub_category,
            client_name=client_name.strip(),
            unit_id=unit_id,
            priority=priority or type_def.priority,
            description=description,
            status=TicketStatus.OPEN,
            assignee=assignee,
            ticket_owner=ticket_owner,
            sla=ticket_sla,
            created_at=now,
            updated_at=now,
            due_date=due_date_for_sla(now, ticket_sla),
        )

        workflow, statuses = await self.engine.initialize_workflow_status(
            ticket,
            workflow_id=workflow_id or type_def.workflow_id,
            department_id=dept.department_id
        )
        pointer_step, pointer_department = self.lifecycle.pointers(statuses)
        ticket = ticket.model_copy(update={
            "workflow_id": workflow.workflow_id if workflow else None,
            "workflow_status": statuses,
            "current_workflow_step": pointer_step,
            "current_department": pointer_department,
        })

        await self.ticket_repo.create_ticket(ticket)
        logger.info(
            f"Ticket created with {len(statuses)} workflow step(s), due {ticket.due_date.isoformat()}",
            extra={"ticket_id": ticket.ticket_id, "workflow_id": ticket.workflow_id, "department": ticket.department}
        )
        return ticket

    async def get_ticket(self, ticket_id: str) -> Ticket:
        """Get ticket by ID"""
        return await self.ticket_repo.get_or_raise(ticket_id)

    async def list_tickets(
        self,
        department: Optional[str] = None,
        status: Optional[TicketStatus] = None,
        priority: Optional[Priority] = None,
        search: Optional[str] = None,
        promote_overdue: bool = True
    ) -> List[Ticket]:
        """
        List tickets, newest first

        With `promote_overdue` the overdue pass runs before the read, so
        listed statuses reflect the current date.
        """
        if promote_overdue:
            await self.promote_overdue()
        return await self.ticket_repo.list_tickets(
            department=department,
            status=status,
            priority=priority,
            search=search
        )

    # =========================================================================
    # Direct edits
    # =========================================================================

    async def update_ticket(
        self,
        ticket_id: str,
        updates: Dict[str, Any],
        changed_by: Optional[str] = None,
        reason: Optional[str] = None
    ) -> Ticket:
        """
        Edit ticket fields directly

        Workflow-managed fields are rejected; status edits follow the
        lifecycle rules. Changing the SLA recomputes the due date.

        Raises:
            ValidationError: Unknown, engine-owned or invalid fields
            InvalidTransitionError: Disallowed status change or closed ticket
        """
        unknown = sorted(set(updates) - set(Ticket.model_fields))
        if unknown:
            raise ValidationError(
                f"Unknown ticket fields: {', '.join(unknown)}",
                details={"fields": unknown}
            )
        self.lifecycle.validate_editable_fields(list(updates))

        ticket = await self.ticket_repo.get_or_raise(ticket_id)
        self.lifecycle.ensure_not_closed(ticket)

        try:
            merged = Ticket.model_validate({**ticket.model_dump(), **updates})
        except PydanticValidationError as e:
            raise ValidationError(
                f"Invalid ticket update: {e.error_count()} error(s)",
                details={"errors": e.errors(include_url=False, include_context=False)}
            )

        if "status" in updates:
            self.lifecycle.validate_manual_status(ticket, merged.status)

        # Typed values from the validated model; None leaves a field unchanged
        typed = {field: getattr(merged, field) for field in updates if updates[field] is not None}
        if "sla" in updates and merged.sla is not None:
            typed["due_date"] = due_date_for_sla(ticket.created_at, merged.sla)

        changes = diff(ticket, typed)
        if not changes:
            return ticket

        now = self.clock()
        updated = await self.ticket_repo.update(ticket_id, typed, expected_version=ticket.version)
        await self.history.record(
            ticket_id=ticket_id,
            changes=changes,
            change_type=ChangeType.UPDATE,
            changed_by=changed_by,
            reason=reason,
            changed_at=now
        )
        logger.info(
            f"Ticket updated: {', '.join(c.field for c in changes)}",
            extra={"ticket_id": ticket_id, "actor": changed_by}
        )
        return updated

    async def close_ticket(
        self,
        ticket_id: str,
        closed_by: Optional[str] = None,
        reason: Optional[str] = None
    ) -> Ticket:
        """Close a ticket (terminal)"""
        ticket = await self.ticket_repo.get_or_raise(ticket_id)
        self.lifecycle.validate_close(ticket)

        now = self.clock()
        updates = {"status": TicketStatus.CLOSED, "closed_at": now}
        changes = diff(ticket, updates)
        updated = await self.ticket_repo.update(ticket_id, updates, expected_version=ticket.version)
        await self.history.record(
            ticket_id=ticket_id,
            changes=changes,
            change_type=ChangeType.CLOSE,
            changed_by=closed_by,
            reason=reason,
            changed_at=now
        )
        logger.info("Ticket closed", extra={"ticket_id": ticket_id, "actor": closed_by})
        return updated

    async def delete_ticket(self, ticket_id: str) -> None:
        """Delete a ticket; its history and resolutions are kept"""
        await self.ticket_repo.get_or_raise(ticket_id)
        await self.ticket_repo.delete(ticket_id)
        logger.info("Ticket deleted", extra={"ticket_id": ticket_id})

    # =========================================================================
    # Workflow operations
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
        return await self.engine.add_department_action(
            ticket_id=ticket_id,
            step_number=step_number,
            action_type=action_type,
            notes=notes,
            is_complete=is_complete,
            performed_by=performed_by,
            new_assignee=new_assignee
        )

    async def resolve_ticket(
        self,
        ticket_id: str,
        resolution: str,
        resolved_by: Optional[str] = None,
        attachments: Optional[List[FileAttachment]] = None
    ) -> Tuple[Ticket, WorkflowResolution]:
        return await self.engine.resolve_ticket_for_department(
            ticket_id, resolution, resolved_by, attachments
        )

    async def reassign_ticket(
        self,
        ticket_id: str,
        new_assignee: str,
        reassigned_by: Optional[str] = None,
        reason: Optional[str] = None
    ) -> Ticket:
        return await self.reassignment.reassign(ticket_id, new_assignee, reassigned_by, reason)

    async def revert_ticket(
        self,
        ticket_id: str,
        target_department: str,
        reason: str,
        reverted_by: Optional[str] = None
    ) -> Ticket:
        return await self.reassignment.revert(ticket_id, target_department, reason, reverted_by)

    def build_attachment(
        self,
        name: str,
        mime_type: str,
        payload: bytes
    ) -> FileAttachment:
        """Wrap raw bytes as a resolution attachment (validated on resolve)"""
        return FileAttachment(
            attachment_id=self.id_factory(ATTACHMENT_PREFIX),
            name=name,
            size=len(payload),
            mime_type=mime_type,
            data=base64.b64encode(payload).decode("ascii"),
            uploaded_at=self.clock()
        )

    # =========================================================================
    # History
    # =========================================================================

    async def get_ticket_history(self, ticket_id: str) -> List[TicketHistory]:
        """History of one ticket, newest first"""
        return await self.history_repo.get_for_ticket(ticket_id)

    async def get_all_ticket_history(self) -> List[TicketHistory]:
        """History of every ticket, newest first"""
        return await self.history_repo.get_all_history()

    async def get_workflow_resolutions(self, ticket_id: str) -> List[WorkflowResolution]:
        """Resolutions of one ticket ordered by step number"""
        return await self.resolution_repo.get_for_ticket(ticket_id)

    # =========================================================================
    # Overdue
    # =========================================================================

    async def promote_overdue(self, now: Optional[datetime] = None) -> List[Ticket]:
        """
        Mark past-due active tickets as Overdue

        Idempotent. Each promotion is a compare-and-swap on status and
        version; a ticket that changed in the meantime is skipped.

        Returns:
            The tickets promoted by this pass
        """
        now = now or self.clock()
        promoted: List[Ticket] = []

        for ticket in await self.ticket_repo.list_tickets():
            if not self.lifecycle.is_overdue_eligible(ticket, now):
                continue

            updates = {"status": TicketStatus.OVERDUE}
            try:
                updated = await self.ticket_repo.update(
                    ticket.ticket_id,
                    updates,
                    expected_version=ticket.version,
                    expected={"status": ticket.status}
                )
            except ConcurrencyError:
                logger.warning(
                    "Skipped overdue promotion, ticket changed concurrently",
                    extra={"ticket_id": ticket.ticket_id}
                )
                continue

            await self.history.record(
                ticket_id=ticket.ticket_id,
                changes=diff(ticket, updates),
                change_type=ChangeType.OVERDUE,
                changed_by=SYSTEM_ACTOR,
                changed_at=now
            )
            promoted.append(updated)

        if promoted:
            logger.info(f"Promoted {len(promoted)} ticket(s) to Overdue")
        return promoted
