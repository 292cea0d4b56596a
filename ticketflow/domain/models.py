"""Domain Models - Pydantic schemas for all entities"""
from datetime import datetime
from typing import Any, List, Optional
from pydantic import BaseModel, Field, ConfigDict, model_validator

from .enums import (
    TicketStatus, StepStatus, ActionType, DurationUnit, SlaStatus, Priority, ChangeType
)


SCHEMA_VERSION = 3  # Written on new tickets; see repositories.migrations


# ============================================================================
# SLA
# ============================================================================

class Sla(BaseModel):
    """Expected turnaround as a value + unit"""
    model_config = ConfigDict(frozen=True)

    value: float = Field(..., ge=0, description="Duration amount")
    unit: DurationUnit = Field(default=DurationUnit.DAYS)


# ============================================================================
# Departments & Ticket Types
# ============================================================================

class TicketType(BaseModel):
    """Ticket type owned by exactly one department"""
    model_config = ConfigDict(extra="ignore")

    ticket_type_id: str
    name: str
    default_working_days: int = Field(default=5, ge=0)
    priority: Priority = Field(default=Priority.MEDIUM)
    sub_category: Optional[str] = None
    workflow_id: Optional[str] = Field(None, description="Workflow assigned to tickets of this type")
    description: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class Department(BaseModel):
    """Department with its ordered ticket types"""
    model_config = ConfigDict(extra="ignore")

    department_id: str
    name: str
    ticket_types: List[TicketType] = Field(default_factory=list)
    sub_categories: List[str] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime


class User(BaseModel):
    """Staff member, used for the users-by-department lookup"""
    model_config = ConfigDict(extra="ignore")

    user_id: str
    name: str
    email: Optional[str] = None
    department: str


# ============================================================================
# Workflow Definition
# ============================================================================

class WorkflowStep(BaseModel):
    """One department's position in a workflow"""
    model_config = ConfigDict(extra="ignore")

    step_id: str
    department_id: str
    department_name: str
    step_number: int = Field(..., ge=1)
    estimated_duration: float = Field(default=1, ge=0)
    duration_unit: DurationUnit = Field(default=DurationUnit.DAYS)
    required: bool = True


class Workflow(BaseModel):
    """Ordered template of department steps"""
    model_config = ConfigDict(extra="ignore")

    workflow_id: str
    name: str
    description: Optional[str] = None
    steps: List[WorkflowStep] = Field(default_factory=list)
    is_default: bool = False
    created_at: datetime
    updated_at: datetime

    @model_validator(mode="after")
    def _check_step_numbers(self) -> "Workflow":
        if not self.steps:
            raise ValueError("A workflow needs at least one step")
        numbers = [step.step_number for step in self.steps]
        if numbers != list(range(1, len(numbers) + 1)):
            raise ValueError(f"Step numbers must be 1-based and contiguous, got {numbers}")
        return self

    @property
    def total_steps(self) -> int:
        return len(self.steps)

    def get_step(self, step_number: int) -> Optional[WorkflowStep]:
        """Get a step by its 1-based number"""
        if 1 <= step_number <= len(self.steps):
            return self.steps[step_number - 1]
        return None


# ============================================================================
# Ticket Runtime State
# ============================================================================

class DepartmentAction(BaseModel):
    """Timestamped note recorded against a workflow step"""
    model_config = ConfigDict(extra="ignore")

    action_id: str
    action_type: ActionType
    notes: str = ""
    timestamp: datetime
    is_complete: bool = False
    performed_by: Optional[str] = None
    new_assignee: Optional[str] = None


class WorkflowStepStatus(BaseModel):
    """Live progress of one workflow step on a ticket"""
    model_config = ConfigDict(extra="ignore")

    step_number: int = Field(..., ge=1)
    department_id: Optional[str] = None
    department_name: str
    status: StepStatus = Field(default=StepStatus.PENDING)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    actions: List[DepartmentAction] = Field(default_factory=list)


class Ticket(BaseModel):
    """Ticket instance (runtime)"""
    model_config = ConfigDict(extra="ignore")

    ticket_id: str
    department: str
    ticket_type: str
    sub_category: Optional[str] = None
    client_name: str
    unit_id: Optional[str] = None
    priority: Priority = Field(default=Priority.MEDIUM)
    description: Optional[str] = None
    status: TicketStatus = Field(default=TicketStatus.OPEN)
    assignee: Optional[str] = Field(None, description="Current handler")
    ticket_owner: Optional[str] = Field(None, description="Creator / requestor")
    workflow_id: Optional[str] = None
    current_workflow_step: int = Field(default=1, ge=1)
    current_department: Optional[str] = None
    is_fully_resolved: bool = False
    workflow_status: List[WorkflowStepStatus] = Field(default_factory=list)
    sla: Optional[Sla] = None
    created_at: datetime
    updated_at: datetime
    due_date: Optional[datetime] = None
    closed_at: Optional[datetime] = None
    version: int = Field(default=1, description="Optimistic concurrency version")
    schema_version: int = Field(default=SCHEMA_VERSION)


# ============================================================================
# Resolutions & Attachments
# ============================================================================

class FileAttachment(BaseModel):
    """File attached to a resolution (immutable)"""
    model_config = ConfigDict(extra="ignore", frozen=True)

    attachment_id: str
    name: str
    size: int = Field(..., ge=0)
    mime_type: str
    data: str = Field(..., description="Base64 encoded payload")
    uploaded_at: datetime


class WorkflowResolution(BaseModel):
    """One resolve / revert event on a ticket (immutable)"""
    model_config = ConfigDict(extra="ignore", frozen=True)

    resolution_id: str
    ticket_id: str
    step_number: int = Field(..., ge=0)
    from_department: Optional[str] = None
    to_department: Optional[str] = None
    resolved_by: Optional[str] = None
    resolution: str = ""
    attachments: List[FileAttachment] = Field(default_factory=list)
    resolved_at: datetime
    is_final_resolution: bool = False
    is_revert: bool = False
    expected_sla: Optional[float] = Field(None, description="Expected duration in days")
    actual_time_taken: Optional[float] = Field(None, description="Elapsed days, 2 decimals")
    sla_status: Optional[SlaStatus] = None
    step_started_at: Optional[datetime] = None


# ============================================================================
# History
# ============================================================================

class FieldChange(BaseModel):
    """A single field diff"""
    field: str
    old_value: Any = None
    new_value: Any = None


class TicketHistory(BaseModel):
    """History entry (append-only)"""
    model_config = ConfigDict(extra="ignore")

    history_id: str
    ticket_id: str
    change_type: ChangeType = Field(default=ChangeType.UPDATE)
    changes: List[FieldChange] = Field(default_factory=list)
    changed_at: datetime
    changed_by: Optional[str] = None
    reason: Optional[str] = None
