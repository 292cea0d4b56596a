"""Schema Migrations - versioned, additive upgrades of stored records

Each step moves the store from `version - 1` to `version`. Additive steps
only add or derive fields and are safe to run on every start. Destructive
steps remove data and run only when the caller opts in.
"""
from typing import Any, Awaitable, Callable, Dict, List, Optional

from pydantic import BaseModel, ConfigDict

from .store import RecordStore, Collections, Document
from ..domain.enums import StepStatus, TicketStatus, DurationUnit
from ..utils.logger import get_logger

logger = get_logger(__name__)

LEGACY_TICKET_FIELDS = ("working_days",)


class MigrationStep(BaseModel):
    """One schema upgrade"""
    model_config = ConfigDict(frozen=True)

    version: int
    description: str
    apply: Callable[[RecordStore], Awaitable[int]]
    destructive: bool = False


def _legacy_workflow_status(doc: Document) -> List[Dict[str, Any]]:
    resolved = doc.get("status") in (TicketStatus.RESOLVED.value, TicketStatus.CLOSED.value)
    return [{
        "step_number": 1,
        "department_id": None,
        "department_name": doc.get("department", ""),
        "status": StepStatus.COMPLETED.value if resolved else StepStatus.IN_PROGRESS.value,
        "started_at": doc.get("created_at"),
        "completed_at": doc.get("updated_at") if resolved else None,
        "actions": [],
    }]


async def backfill_workflow_fields(store: RecordStore) -> int:
    """v2: tickets created before workflows existed get a single-step workflow status"""
    migrated = 0
    for doc in await store.get_all(Collections.TICKETS):
        if doc.get("workflow_status"):
            continue
        partial = {
            "workflow_id": doc.get("workflow_id"),
            "workflow_status": _legacy_workflow_status(doc),
            "current_workflow_step": 1,
            "current_department": doc.get("department"),
            "is_fully_resolved": doc.get("status") == TicketStatus.RESOLVED.value,
            "version": doc.get("version", 1),
            "schema_version": 2,
        }
        await store.update(Collections.TICKETS, doc["ticket_id"], partial)
        migrated += 1
    return migrated


async def convert_working_days_to_sla(store: RecordStore) -> int:
    """v3: legacy integer `working_days` becomes an `sla` value object"""
    migrated = 0
    for doc in await store.get_all(Collections.TICKETS):
        if doc.get("sla") is not None or doc.get("working_days") is None:
            continue
        partial = {
            "sla": {"value": doc["working_days"], "unit": DurationUnit.DAYS.value},
            "schema_version": 3,
        }
        await store.update(Collections.TICKETS, doc["ticket_id"], partial)
        migrated += 1
    return migrated


async def prune_legacy_fields(store: RecordStore) -> int:
    """v4: drop fields superseded by v3"""
    migrated = 0
    for doc in await store.get_all(Collections.TICKETS):
        present = [field for field in LEGACY_TICKET_FIELDS if field in doc]
        if not present:
            continue
        await store.unset_fields(Collections.TICKETS, doc["ticket_id"], present)
        await store.update(Collections.TICKETS, doc["ticket_id"], {"schema_version": 4})
        migrated += 1
    return migrated


MIGRATIONS: List[MigrationStep] = [
    MigrationStep(
        version=2,
        description="Back-fill workflow fields on legacy tickets",
        apply=backfill_workflow_fields,
    ),
    MigrationStep(
        version=3,
        description="Convert working_days to sla",
        apply=convert_working_days_to_sla,
    ),
    MigrationStep(
        version=4,
        description="Remove legacy working_days field",
        apply=prune_legacy_fields,
        destructive=True,
    ),
]


async def migrate(
    store: RecordStore,
    allow_destructive: bool = False,
    target: Optional[int] = None
) -> int:
    """
    Bring the store up to date

    Args:
        store: Record store
        allow_destructive: Run steps that remove data
        target: Stop at this version (default: last available)

    Returns:
        The schema version the store is at afterwards
    """
    current = await store.get_schema_version()
    if current == 0:
        current = 1  # Fresh or pre-versioning store

    for step in MIGRATIONS:
        if step.version <= current:
            continue
        if target is not None and step.version > target:
            break
        if step.destructive and not allow_destructive:
            logger.warning(
                f"Stopping at schema v{current}: v{step.version} ({step.description}) is destructive",
                extra={"schema_version": current}
            )
            break

        migrated = await step.apply(store)
        await store.set_schema_version(step.version)
        current = step.version
        log = logger.warning if step.destructive else logger.info
        log(
            f"Applied migration v{step.version}: {step.description} ({migrated} record(s))",
            extra={"schema_version": step.version}
        )

    return current
