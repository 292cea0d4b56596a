"""Change History Recorder - append-only field diffs"""
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel

from ..domain.models import Ticket, TicketHistory, FieldChange
from ..domain.enums import ChangeType
from ..repositories.history_repo import HistoryRepository
from ..utils.idgen import IdFactory, generate_id, HISTORY_PREFIX
from ..utils.time import Clock, utc_now, format_iso
from ..utils.logger import get_logger

logger = get_logger(__name__)

# Bookkeeping fields that change on every write
IGNORED_FIELDS = frozenset({"updated_at", "version"})


def normalize(value: Any) -> Any:
    """JSON-friendly form used both for comparison and for storage"""
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return format_iso(value)
    if isinstance(value, dict):
        return {key: normalize(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [normalize(item) for item in value]
    return value


def diff(existing: Ticket, updates: Dict[str, Any]) -> List[FieldChange]:
    """
    Field-by-field diff of a partial update against the stored ticket

    A field counts as changed when its new value is not None and differs
    from the old one.
    """
    changes: List[FieldChange] = []
    for field, new_value in updates.items():
        if field in IGNORED_FIELDS or new_value is None:
            continue
        old = normalize(getattr(existing, field, None))
        new = normalize(new_value)
        if old != new:
            changes.append(FieldChange(field=field, old_value=old, new_value=new))
    return changes


class ChangeHistoryRecorder:
    """
    Write ticket history entries (append-only)

    One entry per mutating call, and only when at least one field changed.
    """

    def __init__(
        self,
        repo: HistoryRepository,
        clock: Clock = utc_now,
        id_factory: IdFactory = generate_id
    ):
        self.repo = repo
        self.clock = clock
        self.id_factory = id_factory

    async def record(
        self,
        ticket_id: str,
        changes: List[FieldChange],
        change_type: ChangeType = ChangeType.UPDATE,
        changed_by: Optional[str] = None,
        reason: Optional[str] = None,
        changed_at: Optional[datetime] = None
    ) -> Optional[TicketHistory]:
        """Append an entry for precomputed changes; no-op when there are none"""
        if not changes:
            return None

        entry = TicketHistory(
            history_id=self.id_factory(HISTORY_PREFIX),
            ticket_id=ticket_id,
            change_type=change_type,
            changes=changes,
            changed_at=changed_at or self.clock(),
            changed_by=changed_by,
            reason=reason
        )
        return await self.repo.append(entry)

    async def record_update(
        self,
        existing: Ticket,
        updates: Dict[str, Any],
        change_type: ChangeType = ChangeType.UPDATE,
        changed_by: Optional[str] = None,
        reason: Optional[str] = None,
        changed_at: Optional[datetime] = None
    ) -> Optional[TicketHistory]:
        """Diff and record in one call"""
        return await self.record(
            ticket_id=existing.ticket_id,
            changes=diff(existing, updates),
            change_type=change_type,
            changed_by=changed_by,
            reason=reason,
            changed_at=changed_at
        )
