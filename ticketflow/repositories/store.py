"""Record Store - async contract over a durable key/value store

Every repository talks to one of these. Implementations only provide the
underscore-prefixed primitives; availability handling lives here so that an
unavailable backend degrades the same way whatever the technology:
reads return empty results, writes raise StoreUnavailableError.
"""
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Tuple

from pydantic import BaseModel

from ..domain.errors import StoreUnavailableError
from ..utils.logger import get_logger

logger = get_logger(__name__)

Document = Dict[str, Any]
Filters = Dict[str, Any]


class Collections:
    """Logical collection names"""
    DEPARTMENTS = "departments"
    TICKETS = "tickets"
    WORKFLOWS = "workflows"
    WORKFLOW_RESOLUTIONS = "workflow_resolutions"
    TICKET_HISTORY = "ticket_history"
    USERS = "users"


# Primary key field of each collection
PRIMARY_KEYS: Dict[str, str] = {
    Collections.DEPARTMENTS: "department_id",
    Collections.TICKETS: "ticket_id",
    Collections.WORKFLOWS: "workflow_id",
    Collections.WORKFLOW_RESOLUTIONS: "resolution_id",
    Collections.TICKET_HISTORY: "history_id",
    Collections.USERS: "user_id",
}

# Secondary indexes: (field, unique)
INDEXES: Dict[str, List[Tuple[str, bool]]] = {
    Collections.DEPARTMENTS: [("name", True)],
    Collections.TICKETS: [
        ("department", False),
        ("status", False),
        ("priority", False),
        ("created_at", False),
        ("due_date", False),
        ("workflow_id", False),
    ],
    Collections.WORKFLOWS: [("is_default", False)],
    Collections.WORKFLOW_RESOLUTIONS: [("ticket_id", False)],
    Collections.TICKET_HISTORY: [("ticket_id", False), ("changed_at", False)],
    Collections.USERS: [("department", False)],
}


def _plain(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {key: _plain(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_plain(item) for item in value]
    return value


def to_document(model: BaseModel) -> Document:
    """Dump a model for storage: enums become plain values, datetimes stay datetimes"""
    return _plain(model.model_dump())


def to_plain(values: Dict[str, Any]) -> Document:
    """Normalize a partial update the same way as a full document"""
    plain: Document = {}
    for key, value in values.items():
        if isinstance(value, BaseModel):
            plain[key] = to_document(value)
        elif isinstance(value, list):
            plain[key] = [
                to_document(item) if isinstance(item, BaseModel) else _plain(item)
                for item in value
            ]
        else:
            plain[key] = _plain(value)
    return plain


def matches(doc: Document, filters: Optional[Filters]) -> bool:
    """Equality filter; a list/tuple/set value means "field is one of"."""
    if not filters:
        return True
    for field, expected in filters.items():
        actual = doc.get(field)
        if isinstance(expected, (list, tuple, set, frozenset)):
            if actual not in expected:
                return False
        elif actual != expected:
            return False
    return True


class RecordStore(ABC):
    """Async record store contract"""

    def __init__(self) -> None:
        self._available = True
        self._unavailable_reason: Optional[str] = None

    # =========================================================================
    # Availability
    # =========================================================================

    @property
    def available(self) -> bool:
        return self._available

    def mark_unavailable(self, reason: str) -> None:
        """Degrade: reads return nothing, writes are rejected"""
        self._available = False
        self._unavailable_reason = reason
        logger.error(f"Record store unavailable: {reason}")

    def _ensure_writable(self, collection: str) -> None:
        if not self._available:
            raise StoreUnavailableError(
                f"Cannot write to {collection}: store unavailable",
                details={"collection": collection, "reason": self._unavailable_reason}
            )

    @staticmethod
    def primary_key(collection: str) -> str:
        return PRIMARY_KEYS[collection]

    # =========================================================================
    # Public contract
    # =========================================================================

    async def create(self, collection: str, doc: Document) -> str:
        """Insert a record; returns its id"""
        self._ensure_writable(collection)
        return await self._create(collection, doc)

    async def get_by_id(self, collection: str, record_id: str) -> Optional[Document]:
        """Get a record by id, None if missing"""
        if not self._available:
            return None
        return await self._get_by_id(collection, record_id)

    async def get_all(self, collection: str, filters: Optional[Filters] = None) -> List[Document]:
        """Get all records matching the equality filters"""
        if not self._available:
            return []
        return await self._get_all(collection, filters)

    async def update(
        self,
        collection: str,
        record_id: str,
        partial: Document,
        expected: Optional[Filters] = None
    ) -> Optional[Document]:
        """
        Merge `partial` into a record

        Args:
            collection: Collection name
            record_id: Record id
            partial: Fields to set
            expected: Field values the stored record must still hold
                (compare-and-swap); None skips the check

        Returns:
            The updated record, or None when no record matched
        """
        self._ensure_writable(collection)
        return await self._update(collection, record_id, partial, expected)

    async def unset_fields(self, collection: str, record_id: str, fields: Iterable[str]) -> None:
        """Remove fields from a record (used by destructive migrations)"""
        self._ensure_writable(collection)
        await self._unset_fields(collection, record_id, list(fields))

    async def delete(self, collection: str, record_id: str) -> None:
        """Delete a record (missing ids are ignored)"""
        self._ensure_writable(collection)
        await self._delete(collection, record_id)

    async def get_schema_version(self) -> int:
        """Stored schema version (0 for a fresh store)"""
        if not self._available:
            return 0
        return await self._get_schema_version()

    async def set_schema_version(self, version: int) -> None:
        self._ensure_writable("schema_meta")
        await self._set_schema_version(version)

    async def close(self) -> None:
        """Release backend resources"""

    # =========================================================================
    # Backend primitives
    # =========================================================================

    @abstractmethod
    async def _create(self, collection: str, doc: Document) -> str: ...

    @abstractmethod
    async def _get_by_id(self, collection: str, record_id: str) -> Optional[Document]: ...

    @abstractmethod
    async def _get_all(self, collection: str, filters: Optional[Filters]) -> List[Document]: ...

    @abstractmethod
    async def _update(
        self,
        collection: str,
        record_id: str,
        partial: Document,
        expected: Optional[Filters]
    ) -> Optional[Document]: ...

    @abstractmethod
    async def _unset_fields(self, collection: str, record_id: str, fields: List[str]) -> None: ...

    @abstractmethod
    async def _delete(self, collection: str, record_id: str) -> None: ...

    @abstractmethod
    async def _get_schema_version(self) -> int: ...

    @abstractmethod
    async def _set_schema_version(self, version: int) -> None: ...
