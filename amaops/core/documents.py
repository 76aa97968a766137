"""
Document store seam shared by every service.

Handlers describe reads as :class:`Query` values and writes as plain dicts
that may carry the sentinels below. Two backends honour the same contract:
``FirestoreDocumentStore`` (managed database through ``firebase-admin``) and
``MemoryDocumentStore`` (local development and tests).
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple


DOCUMENT_ID = "__name__"
ASCENDING = "asc"
DESCENDING = "desc"

FILTER_OPERATORS = {"==", "!=", "<", "<=", ">", ">=", "in"}

# Private-use code point that sorts after ordinary text; closes a prefix range.
PREFIX_SENTINEL = "\uf8ff"

# Firestore rejects batches with more writes than this.
MAX_BATCH_WRITES = 500


class StoreError(RuntimeError):
    """Raised when the backing store rejects or fails an operation."""


class DocumentNotFound(StoreError):
    def __init__(self, path: str) -> None:
        super().__init__(f"Document not found: {path}")
        self.path = path


class _Sentinel:
    def __init__(self, name: str) -> None:
        self.name = name

    def __repr__(self) -> str:
        return f"<{self.name}>"


SERVER_TIMESTAMP = _Sentinel("SERVER_TIMESTAMP")
DELETE_FIELD = _Sentinel("DELETE_FIELD")


@dataclass(frozen=True)
class Increment:
    amount: int | float


@dataclass(frozen=True)
class Filter:
    field: str
    op: str
    value: Any

    def __post_init__(self) -> None:
        if self.op not in FILTER_OPERATORS:
            raise ValueError(f"Unsupported filter operator: {self.op}")


@dataclass(frozen=True)
class Query:
    collection: str
    filters: Tuple[Filter, ...] = ()
    order_by: Tuple[Tuple[str, str], ...] = ()
    limit: Optional[int] = None
    offset: Optional[int] = None
    start_after: Optional[Tuple[Any, ...]] = None
    select: Optional[Tuple[str, ...]] = None

    def where(self, field_name: str, op: str, value: Any) -> "Query":
        return replace(self, filters=self.filters + (Filter(field_name, op, value),))

    def prefix(self, field_name: str, text: str) -> "Query":
        return self.where(field_name, ">=", text).where(field_name, "<=", text + PREFIX_SENTINEL)

    def order(self, field_name: str, direction: str = ASCENDING) -> "Query":
        if direction not in (ASCENDING, DESCENDING):
            raise ValueError(f"Unsupported order direction: {direction}")
        return replace(self, order_by=self.order_by + ((field_name, direction),))

    def take(self, count: int) -> "Query":
        return replace(self, limit=count)

    def skip(self, count: int) -> "Query":
        return replace(self, offset=count)

    def after(self, *values: Any) -> "Query":
        return replace(self, start_after=tuple(values))

    def fields(self, *names: str) -> "Query":
        return replace(self, select=tuple(names))


def collection(path: str) -> Query:
    return Query(collection=path)


@dataclass
class Document:
    id: str
    path: str
    data: Dict[str, Any] = field(default_factory=dict)

    def get(self, key: str, default: Any = None) -> Any:
        return self.data.get(key, default)


def join_path(*parts: str) -> str:
    return "/".join(str(part).strip("/") for part in parts if part)


class DocumentStore(ABC):
    """
    Interface for document persistence.

    Paths are slash separated (``ama_leads/abc/history``). Collection paths
    have an odd number of segments and document paths an even number.
    """

    name = "store"

    @abstractmethod
    def get(self, path: str) -> Optional[Document]:
        pass

    @abstractmethod
    def stream(self, query: Query) -> List[Document]:
        pass

    @abstractmethod
    def count(self, query: Query) -> int:
        pass

    @abstractmethod
    def add(self, collection_path: str, data: Dict[str, Any]) -> str:
        pass

    @abstractmethod
    def set(self, path: str, data: Dict[str, Any]) -> None:
        pass

    @abstractmethod
    def update(self, path: str, data: Dict[str, Any]) -> None:
        pass

    @abstractmethod
    def delete(self, path: str) -> None:
        pass

    @abstractmethod
    def batch_update(self, updates: Sequence[Tuple[str, Dict[str, Any]]]) -> None:
        pass

    def ping(self) -> bool:
        self.stream(collection("_healthz").take(1))
        return True

    def get_all(self, paths: Iterable[str]) -> List[Optional[Document]]:
        return [self.get(path) for path in paths]
