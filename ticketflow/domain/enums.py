"""Domain Enumerations - All status and type definitions"""
from enum import Enum


class TicketStatus(str, Enum):
    """Global ticket status"""
    OPEN = "Open"
    IN_PROGRESS = "In Progress"
    RESOLVED = "Resolved"
    REJECTED = "Rejected"
    OVERDUE = "Overdue"  # Derived by the overdue pass, never set by hand
    CLOSED = "Closed"  # Terminal


class StepStatus(str, Enum):
    """Runtime state of one workflow step on a ticket"""
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class ActionType(str, Enum):
    """Department action kinds"""
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class DurationUnit(str, Enum):
    """SLA / step duration units"""
    HOURS = "hours"
    DAYS = "days"
    WEEKS = "weeks"


class SlaStatus(str, Enum):
    """Outcome of an SLA evaluation"""
    MET = "met"
    MISSED = "missed"
    EXCEEDED = "exceeded"  # Finished well ahead of schedule


class Priority(str, Enum):
    """Ticket priority"""
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"
    CRITICAL = "Critical"


class ChangeType(str, Enum):
    """Kinds of ticket history entries"""
    UPDATE = "update"
    REASSIGNMENT = "reassignment"
    DEPARTMENT_ACTION = "department_action"
    RESOLUTION = "resolution"
    REVERT = "revert"
    OVERDUE = "overdue"
    CLOSE = "close"
