"""ticketflow - ticket workflow and SLA engine"""
from .container import TicketingSystem, build_system

__version__ = "0.1.0"

__all__ = ["TicketingSystem", "build_system", "__version__"]
