"""Base Repository - typed access to one store collection"""
from typing import Any, Dict, Generic, List, Optional, Type, TypeVar

from pydantic import BaseModel, ValidationError as PydanticValidationError

from .store import RecordStore, Filters, to_document, to_plain
from ..domain.errors import ConcurrencyError, NotFoundError
from ..utils.time import Clock, utc_now
from ..utils.logger import get_logger

logger = get_logger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


class BaseRepository(Generic[ModelT]):
    """CRUD over a collection, converting documents to and from models"""

    collection: str
    model: Type[ModelT]
    not_found_error: Type[NotFoundError] = NotFoundError
    entity_name: str = "Record"
    # Stamp updated_at on every update
    tracks_updates: bool = True

    def __init__(self, store: RecordStore, clock: Clock = utc_now):
        self.store = store
        self.clock = clock

    @property
    def key(self) -> str:
        return self.store.primary_key(self.collection)

    def _to_model(self, doc: Dict[str, Any]) -> Optional[ModelT]:
        try:
            return self.model.model_validate(doc)
        except PydanticValidationError as e:
            logger.error(
                f"Corrupted {self.collection} record {doc.get(self.key)}: {str(e)[:300]}",
                extra={"collection": self.collection}
            )
            return None

    # =========================================================================
    # CRUD
    # =========================================================================

    async def create(self, entity: ModelT) -> ModelT:
        """Insert a new record"""
        await self.store.create(self.collection, to_document(entity))
        return entity

    async def get(self, record_id: str) -> Optional[ModelT]:
        """Get by id"""
        doc = await self.store.get_by_id(self.collection, record_id)
        return self._to_model(doc) if doc is not None else None

    async def get_or_raise(self, record_id: str) -> ModelT:
        """Get by id or raise the collection's NotFound error"""
        entity = await self.get(record_id)
        if entity is None:
            raise self.not_found_error(
                f"{self.entity_name} {record_id} not found",
                details={self.key: record_id}
            )
        return entity

    async def list(self, filters: Optional[Filters] = None) -> List[ModelT]:
        """List records matching equality filters"""
        docs = await self.store.get_all(self.collection, filters)
        entities = [self._to_model(doc) for doc in docs]
        return [entity for entity in entities if entity is not None]

    async def update(
        self,
        record_id: str,
        updates: Dict[str, Any],
        expected_version: Optional[int] = None,
        expected: Optional[Filters] = None
    ) -> ModelT:
        """
        Update a record, optionally as a compare-and-swap

        Args:
            record_id: Record id
            updates: Fields to set (models are dumped for storage)
            expected_version: Version the stored record must still have;
                bumps the version on success
            expected: Extra field values the stored record must still hold

        Raises:
            ConcurrencyError: The record exists but no longer matches
            NotFoundError: The record does not exist
        """
        updates = to_plain(updates)
        if self.tracks_updates:
            updates["updated_at"] = self.clock()

        filter_query: Dict[str, Any] = dict(to_plain(expected or {}))
        if expected_version is not None:
            filter_query["version"] = expected_version
            updates["version"] = expected_version + 1

        result = await self.store.update(self.collection, record_id, updates, filter_query or None)

        if result is None:
            if filter_query:
                exists = await self.store.get_by_id(self.collection, record_id)
                if exists:
                    raise ConcurrencyError(
                        f"{self.entity_name} {record_id} was modified concurrently",
                        details={self.key: record_id, "expected": {k: str(v) for k, v in filter_query.items()}}
                    )
            raise self.not_found_error(
                f"{self.entity_name} {record_id} not found",
                details={self.key: record_id}
            )

        entity = self._to_model(result)
        if entity is None:
            raise self.not_found_error(f"{self.entity_name} {record_id} could not be loaded")
        return entity

    async def delete(self, record_id: str) -> None:
        """Delete by id"""
        await self.store.delete(self.collection, record_id)
