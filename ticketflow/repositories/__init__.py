"""Repository modules - Data access layer"""
from .store import RecordStore, Collections
from .memory_store import InMemoryRecordStore
from .mongo_store import MongoRecordStore
from .ticket_repo import TicketRepository
from .workflow_repo import WorkflowRepository
from .department_repo import DepartmentRepository, UserRepository
from .history_repo import HistoryRepository, ResolutionRepository
from .migrations import migrate, MIGRATIONS

__all__ = [
    "RecordStore",
    "Collections",
    "InMemoryRecordStore",
    "MongoRecordStore",
    "TicketRepository",
    "WorkflowRepository",
    "DepartmentRepository",
    "UserRepository",
    "HistoryRepository",
    "ResolutionRepository",
    "migrate",
    "MIGRATIONS",
]
