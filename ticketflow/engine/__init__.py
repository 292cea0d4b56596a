"""Workflow Engine - department steps, SLA and ticket status"""
from .workflow_engine import WorkflowEngine
from .reassignment import ReassignmentHandler
from .lifecycle import TicketLifecycle
from .history import ChangeHistoryRecorder
from .sla import SlaEvaluator, SlaEvaluation

__all__ = [
    "WorkflowEngine",
    "ReassignmentHandler",
    "TicketLifecycle",
    "ChangeHistoryRecorder",
    "SlaEvaluator",
    "SlaEvaluation",
]
