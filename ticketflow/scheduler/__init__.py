"""Background jobs"""
from .overdue_scheduler import OverdueScheduler

__all__ = ["OverdueScheduler"]
