"""History Repository - Data access for ticket history and workflow resolutions"""
from typing import List

from .base_repo import BaseRepository
from .store import Collections
from ..domain.models import TicketHistory, WorkflowResolution
from ..utils.logger import get_logger

logger = get_logger(__name__)


class HistoryRepository(BaseRepository[TicketHistory]):
    """Repository for ticket history (append-only)"""

    collection = Collections.TICKET_HISTORY
    model = TicketHistory
    entity_name = "History entry"
    tracks_updates = False

    async def append(self, entry: TicketHistory) -> TicketHistory:
        """Append a history entry"""
        await self.create(entry)
        logger.info(
            f"Recorded {entry.change_type.value} history: {len(entry.changes)} field(s)",
            extra={"ticket_id": entry.ticket_id, "change_type": entry.change_type.value}
        )
        return entry

    async def get_for_ticket(self, ticket_id: str) -> List[TicketHistory]:
        """History of one ticket, newest first"""
        entries = await self.list({"ticket_id": ticket_id})
        entries.sort(key=lambda e: e.changed_at, reverse=True)
        return entries

    async def get_all_history(self) -> List[TicketHistory]:
        """History of every ticket, newest first"""
        entries = await self.list()
        entries.sort(key=lambda e: e.changed_at, reverse=True)
        return entries


class ResolutionRepository(BaseRepository[WorkflowResolution]):
    """Repository for workflow resolutions (immutable)"""

    collection = Collections.WORKFLOW_RESOLUTIONS
    model = WorkflowResolution
    entity_name = "Workflow resolution"
    tracks_updates = False

    async def append(self, resolution: WorkflowResolution) -> WorkflowResolution:
        """Store a resolution"""
        await self.create(resolution)
        logger.info(
            f"Recorded resolution for step {resolution.step_number}",
            extra={"ticket_id": resolution.ticket_id, "step_number": resolution.step_number}
        )
        return resolution

    async def get_for_ticket(self, ticket_id: str) -> List[WorkflowResolution]:
        """Resolutions of one ticket ordered by step number, then time"""
        resolutions = await self.list({"ticket_id": ticket_id})
        resolutions.sort(key=lambda r: (r.step_number, r.resolved_at))
        return resolutions
