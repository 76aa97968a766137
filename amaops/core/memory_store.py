from __future__ import annotations

import copy
import uuid
from datetime import datetime, timezone
from functools import cmp_to_key
from threading import Lock
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from .documents import (
    DELETE_FIELD,
    DESCENDING,
    DOCUMENT_ID,
    MAX_BATCH_WRITES,
    SERVER_TIMESTAMP,
    Document,
    DocumentNotFound,
    DocumentStore,
    Filter,
    Increment,
    Query,
    StoreError,
    join_path,
)


_MISSING = object()
_RANGE_OPERATORS = {"<", "<=", ">", ">="}


def _type_rank(value: Any) -> int:
    # Mirrors the cross-type ordering of the managed database.
    if value is None:
        return 0
    if isinstance(value, bool):
        return 1
    if isinstance(value, (int, float)):
        return 2
    if isinstance(value, datetime):
        return 3
    if isinstance(value, str):
        return 4
    if isinstance(value, bytes):
        return 5
    if isinstance(value, (list, tuple)):
        return 8
    if isinstance(value, dict):
        return 9
    return 10


def _normalize_datetime(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _compare_values(left: Any, right: Any) -> int:
    left_rank = _type_rank(left)
    right_rank = _type_rank(right)
    if left_rank != right_rank:
        return -1 if left_rank < right_rank else 1
    if left_rank == 0:
        return 0
    if left_rank == 3:
        left = _normalize_datetime(left)
        right = _normalize_datetime(right)
    if left_rank == 8:
        for a, b in zip(left, right):
            result = _compare_values(a, b)
            if result:
                return result
        return (len(left) > len(right)) - (len(left) < len(right))
    if left_rank == 9:
        return _compare_values(sorted(left.items()), sorted(right.items()))
    if left_rank == 10:
        left, right = str(left), str(right)
    return (left > right) - (left < right)


def _field_value(doc: Document, field_name: str) -> Any:
    if field_name == DOCUMENT_ID:
        return doc.id
    current: Any = doc.data
    for part in field_name.split("."):
        if not isinstance(current, dict) or part not in current:
            return _MISSING
        current = current[part]
    return current


def _matches(doc: Document, flt: Filter) -> bool:
    actual = _field_value(doc, flt.field)
    if actual is _MISSING:
        return False
    if flt.op == "in":
        return any(
            _type_rank(actual) == _type_rank(candidate) and _compare_values(actual, candidate) == 0
            for candidate in flt.value
        )
    if flt.op == "==":
        return _type_rank(actual) == _type_rank(flt.value) and _compare_values(actual, flt.value) == 0
    if flt.op == "!=":
        return actual is not None and not (
            _type_rank(actual) == _type_rank(flt.value) and _compare_values(actual, flt.value) == 0
        )
    if _type_rank(actual) != _type_rank(flt.value):
        return False
    result = _compare_values(actual, flt.value)
    if flt.op == "<":
        return result < 0
    if flt.op == "<=":
        return result <= 0
    if flt.op == ">":
        return result > 0
    return result >= 0


class MemoryDocumentStore(DocumentStore):
    """
    In-process document store with the managed database's query semantics.

    Filters skip documents that lack the filtered field, range filters only
    match values of the same type, ordering excludes documents missing the
    ordered field, and every ordering is tie-broken by document id.
    """

    def __init__(self, name: str = "memory", clock: Optional[Callable[[], datetime]] = None) -> None:
        self.name = name
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._documents: Dict[str, Dict[str, Any]] = {}
        self._lock = Lock()

    # --- helpers -----------------------------------------------------------

    @staticmethod
    def _split(path: str) -> Tuple[str, str]:
        parts = path.strip("/").split("/")
        if len(parts) % 2:
            raise StoreError(f"Not a document path: {path}")
        return "/".join(parts[:-1]), parts[-1]

    def _resolve(self, data: Dict[str, Any], base: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        resolved = copy.deepcopy(base) if base else {}
        for key, value in data.items():
            if value is DELETE_FIELD:
                resolved.pop(key, None)
            elif value is SERVER_TIMESTAMP:
                resolved[key] = self._clock()
            elif isinstance(value, Increment):
                current = resolved.get(key)
                if isinstance(current, (int, float)) and not isinstance(current, bool):
                    resolved[key] = current + value.amount
                else:
                    resolved[key] = value.amount
            elif isinstance(value, datetime):
                resolved[key] = _normalize_datetime(value)
            else:
                resolved[key] = copy.deepcopy(value)
        return resolved

    def _documents_in(self, collection_path: str) -> List[Document]:
        prefix = collection_path.strip("/") + "/"
        docs = []
        for path, data in self._documents.items():
            if not path.startswith(prefix):
                continue
            doc_id = path[len(prefix):]
            if "/" in doc_id:
                continue
            docs.append(Document(id=doc_id, path=path, data=copy.deepcopy(data)))
        return docs

    @staticmethod
    def _effective_order(query: Query) -> List[Tuple[str, str]]:
        order = list(query.order_by)
        if not order:
            inequality = next((f.field for f in query.filters if f.op in _RANGE_OPERATORS | {"!="}), None)
            if inequality and inequality != DOCUMENT_ID:
                order.append((inequality, "asc"))
        if not any(field_name == DOCUMENT_ID for field_name, _ in order):
            direction = order[-1][1] if order else "asc"
            order.append((DOCUMENT_ID, direction))
        return order

    def _run(self, query: Query, apply_window: bool = True) -> List[Document]:
        docs = [doc for doc in self._documents_in(query.collection) if all(_matches(doc, f) for f in query.filters)]
        order = self._effective_order(query)
        docs = [doc for doc in docs if all(_field_value(doc, name) is not _MISSING for name, _ in order)]

        def _cmp(a: Document, b: Document) -> int:
            for name, direction in order:
                result = _compare_values(_field_value(a, name), _field_value(b, name))
                if result:
                    return -result if direction == DESCENDING else result
            return 0

        docs.sort(key=cmp_to_key(_cmp))

        if query.start_after is not None:
            cursor = list(query.start_after)

            def _after_cursor(doc: Document) -> bool:
                for (name, direction), value in zip(order, cursor):
                    result = _compare_values(_field_value(doc, name), value)
                    if result:
                        return result < 0 if direction == DESCENDING else result > 0
                return False

            docs = [doc for doc in docs if _after_cursor(doc)]

        if apply_window:
            if query.offset:
                docs = docs[query.offset:]
            if query.limit is not None:
                docs = docs[: query.limit]

        if query.select is not None:
            for doc in docs:
                doc.data = {key: doc.data[key] for key in query.select if key in doc.data}
        return docs

    # --- DocumentStore -----------------------------------------------------

    def get(self, path: str) -> Optional[Document]:
        self._split(path)
        with self._lock:
            data = self._documents.get(path.strip("/"))
            if data is None:
                return None
            _, doc_id = self._split(path)
            return Document(id=doc_id, path=path.strip("/"), data=copy.deepcopy(data))

    def stream(self, query: Query) -> List[Document]:
        with self._lock:
            return self._run(query)

    def count(self, query: Query) -> int:
        with self._lock:
            docs = self._run(query, apply_window=False)
        if query.limit is not None:
            return min(len(docs), query.limit)
        return len(docs)

    def add(self, collection_path: str, data: Dict[str, Any]) -> str:
        doc_id = uuid.uuid4().hex[:20]
        self.set(join_path(collection_path, doc_id), data)
        return doc_id

    def set(self, path: str, data: Dict[str, Any]) -> None:
        self._split(path)
        with self._lock:
            self._documents[path.strip("/")] = self._resolve(data)

    def update(self, path: str, data: Dict[str, Any]) -> None:
        self._split(path)
        key = path.strip("/")
        with self._lock:
            if key not in self._documents:
                raise DocumentNotFound(key)
            self._documents[key] = self._resolve(data, self._documents[key])

    def delete(self, path: str) -> None:
        self._split(path)
        with self._lock:
            self._documents.pop(path.strip("/"), None)

    def batch_update(self, updates: Sequence[Tuple[str, Dict[str, Any]]]) -> None:
        if len(updates) > MAX_BATCH_WRITES:
            raise StoreError(f"Batch of {len(updates)} writes exceeds {MAX_BATCH_WRITES}")
        keys = [path.strip("/") for path, _ in updates]
        with self._lock:
            for key in keys:
                self._split(key)
                if key not in self._documents:
                    raise DocumentNotFound(key)
            staged = {}
            for key, (_, data) in zip(keys, updates):
                staged[key] = self._resolve(data, staged.get(key, self._documents[key]))
            self._documents.update(staged)

    def ping(self) -> bool:
        return True

    # --- seeding -------------------------------------------------------------

    def seed(self, collection_path: str, documents: Dict[str, Dict[str, Any]]) -> None:
        for doc_id, data in documents.items():
            self.set(join_path(collection_path, doc_id), data)
