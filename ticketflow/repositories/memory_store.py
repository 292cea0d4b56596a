"""In-memory Record Store - dict backed, with secondary index maps"""
import copy
from collections import defaultdict
from typing import Any, Dict, List, Optional, Set

from .store import RecordStore, Document, Filters, INDEXES, matches
from ..domain.errors import AlreadyExistsError
from ..utils.logger import get_logger

logger = get_logger(__name__)


class InMemoryRecordStore(RecordStore):
    """
    Record store kept in process memory

    Used by the test suite and for embedding the engine without MongoDB.
    Documents are deep-copied on the way in and out so callers never share
    state with the store.
    """

    def __init__(self) -> None:
        super().__init__()
        self._data: Dict[str, Dict[str, Document]] = defaultdict(dict)
        # collection -> field -> value -> ids
        self._indexes: Dict[str, Dict[str, Dict[Any, Set[str]]]] = defaultdict(
            lambda: defaultdict(lambda: defaultdict(set))
        )
        self._schema_version = 0

    # =========================================================================
    # Index maintenance
    # =========================================================================

    @staticmethod
    def _index_key(value: Any) -> Any:
        try:
            hash(value)
            return value
        except TypeError:
            return repr(value)

    def _index(self, collection: str, record_id: str, doc: Document) -> None:
        for field, _unique in INDEXES.get(collection, []):
            self._indexes[collection][field][self._index_key(doc.get(field))].add(record_id)

    def _unindex(self, collection: str, record_id: str, doc: Document) -> None:
        for field, _unique in INDEXES.get(collection, []):
            self._indexes[collection][field][self._index_key(doc.get(field))].discard(record_id)

    def _check_unique(self, collection: str, record_id: str, doc: Document) -> None:
        for field, unique in INDEXES.get(collection, []):
            if not unique or doc.get(field) is None:
                continue
            holders = self._indexes[collection][field].get(self._index_key(doc.get(field)), set())
            if holders - {record_id}:
                raise AlreadyExistsError(
                    f"Duplicate {field} '{doc.get(field)}' in {collection}",
                    details={"collection": collection, "field": field}
                )

    def _candidate_ids(self, collection: str, filters: Optional[Filters]) -> Optional[Set[str]]:
        """Narrow by the first indexed filter field; None means full scan"""
        if not filters:
            return None
        indexed = {field for field, _unique in INDEXES.get(collection, [])}
        for field, expected in filters.items():
            if field not in indexed:
                continue
            values = expected if isinstance(expected, (list, tuple, set, frozenset)) else [expected]
            ids: Set[str] = set()
            for value in values:
                ids |= self._indexes[collection][field].get(self._index_key(value), set())
            return ids
        return None

    # =========================================================================
    # Primitives
    # =========================================================================

    async def _create(self, collection: str, doc: Document) -> str:
        record_id = doc[self.primary_key(collection)]
        if record_id in self._data[collection]:
            raise AlreadyExistsError(f"{collection} record {record_id} already exists")
        self._check_unique(collection, record_id, doc)
        stored = copy.deepcopy(doc)
        self._data[collection][record_id] = stored
        self._index(collection, record_id, stored)
        return record_id

    async def _get_by_id(self, collection: str, record_id: str) -> Optional[Document]:
        doc = self._data[collection].get(record_id)
        return copy.deepcopy(doc) if doc is not None else None

    async def _get_all(self, collection: str, filters: Optional[Filters]) -> List[Document]:
        records = self._data[collection]
        candidate_ids = self._candidate_ids(collection, filters)
        if candidate_ids is None:
            docs = list(records.values())
        else:
            docs = [records[record_id] for record_id in candidate_ids if record_id in records]
        return [copy.deepcopy(doc) for doc in docs if matches(doc, filters)]

    async def _update(
        self,
        collection: str,
        record_id: str,
        partial: Document,
        expected: Optional[Filters]
    ) -> Optional[Document]:
        current = self._data[collection].get(record_id)
        if current is None or not matches(current, expected):
            return None

        updated = {**current, **copy.deepcopy(partial)}
        self._check_unique(collection, record_id, updated)
        self._unindex(collection, record_id, current)
        self._data[collection][record_id] = updated
        self._index(collection, record_id, updated)
        return copy.deepcopy(updated)

    async def _unset_fields(self, collection: str, record_id: str, fields: List[str]) -> None:
        current = self._data[collection].get(record_id)
        if current is None:
            return
        self._unindex(collection, record_id, current)
        for field in fields:
            current.pop(field, None)
        self._index(collection, record_id, current)

    async def _delete(self, collection: str, record_id: str) -> None:
        current = self._data[collection].pop(record_id, None)
        if current is not None:
            self._unindex(collection, record_id, current)

    async def _get_schema_version(self) -> int:
        return self._schema_version

    async def _set_schema_version(self, version: int) -> None:
        self._schema_version = version
