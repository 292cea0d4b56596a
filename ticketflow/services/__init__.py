"""Service modules - Business logic layer"""
from .ticket_service import TicketService
from .workflow_service import WorkflowService
from .department_service import DepartmentService

__all__ = [
    "TicketService",
    "WorkflowService",
    "DepartmentService",
]
