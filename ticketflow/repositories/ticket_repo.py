"""Ticket Repository - Data access for tickets"""
from typing import List, Optional, Sequence

from .base_repo import BaseRepository
from .store import Collections, Filters
from ..domain.models import Ticket
from ..domain.enums import TicketStatus, Priority
from ..domain.errors import TicketNotFoundError
from ..utils.logger import get_logger

logger = get_logger(__name__)


class TicketRepository(BaseRepository[Ticket]):
    """Repository for ticket operations"""

    collection = Collections.TICKETS
    model = Ticket
    not_found_error = TicketNotFoundError
    entity_name = "Ticket"

    async def create_ticket(self, ticket: Ticket) -> Ticket:
        """Create a new ticket"""
        await self.create(ticket)
        logger.info(f"Created ticket: {ticket.ticket_id}", extra={"ticket_id": ticket.ticket_id})
        return ticket

    async def list_tickets(
        self,
        department: Optional[str] = None,
        status: Optional[TicketStatus] = None,
        statuses: Optional[Sequence[TicketStatus]] = None,
        priority: Optional[Priority] = None,
        search: Optional[str] = None
    ) -> List[Ticket]:
        """List tickets with filters, newest first. Supports single status or multiple statuses."""
        filters: Filters = {}
        if department:
            filters["department"] = department
        if statuses:
            filters["status"] = [s.value for s in statuses]
        elif status:
            filters["status"] = status.value
        if priority:
            filters["priority"] = priority.value

        tickets = await self.list(filters or None)

        if search:
            needle = search.lower()
            tickets = [
                t for t in tickets
                if needle in t.client_name.lower()
                or needle in t.ticket_id.lower()
                or needle in t.ticket_type.lower()
            ]

        tickets.sort(key=lambda t: t.created_at, reverse=True)
        return tickets
