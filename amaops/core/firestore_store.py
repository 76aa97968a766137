from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence, Tuple

from firebase_admin import firestore
from google.api_core import exceptions as gcp_exceptions
from google.cloud.firestore import FieldFilter
from google.cloud.firestore_v1.field_path import FieldPath

from .documents import (
    DELETE_FIELD,
    DESCENDING,
    DOCUMENT_ID,
    MAX_BATCH_WRITES,
    SERVER_TIMESTAMP,
    Document,
    DocumentNotFound,
    DocumentStore,
    Increment,
    Query,
    StoreError,
)
from .logging import get_logger


logger = get_logger(__name__)


def _field_path(name: str) -> Any:
    if name == DOCUMENT_ID:
        return FieldPath.document_id()
    return name


def _translate(data: Dict[str, Any]) -> Dict[str, Any]:
    translated: Dict[str, Any] = {}
    for key, value in data.items():
        if value is SERVER_TIMESTAMP:
            translated[key] = firestore.SERVER_TIMESTAMP
        elif value is DELETE_FIELD:
            translated[key] = firestore.DELETE_FIELD
        elif isinstance(value, Increment):
            translated[key] = firestore.Increment(value.amount)
        else:
            translated[key] = value
    return translated


def _to_document(snapshot: Any) -> Document:
    return Document(id=snapshot.id, path=snapshot.reference.path, data=snapshot.to_dict() or {})


class FirestoreDocumentStore(DocumentStore):
    """Document store backed by a ``firebase_admin`` Firestore client."""

    def __init__(self, client: Any, name: str = "firestore") -> None:
        self._client = client
        self.name = name

    def _build(self, query: Query) -> Any:
        ref = self._client.collection(query.collection)
        for flt in query.filters:
            value = flt.value
            if flt.field == DOCUMENT_ID and isinstance(value, str):
                value = self._client.collection(query.collection).document(value)
            ref = ref.where(filter=FieldFilter(_field_path(flt.field), flt.op, value))
        for name, direction in query.order_by:
            ref = ref.order_by(
                _field_path(name),
                direction=firestore.Query.DESCENDING if direction == DESCENDING else firestore.Query.ASCENDING,
            )
        if query.select is not None:
            ref = ref.select(list(query.select))
        if query.start_after is not None:
            ref = ref.start_after(list(query.start_after))
        if query.offset:
            ref = ref.offset(query.offset)
        if query.limit is not None:
            ref = ref.limit(query.limit)
        return ref

    def _fail(self, action: str, target: str, exc: Exception) -> StoreError:
        logger.warning(
            "Firestore operation failed.",
            extra={"store": self.name, "action": action, "target": target, "error": str(exc)},
        )
        return StoreError(f"{action} failed for {target}: {exc}")

    def get(self, path: str) -> Optional[Document]:
        try:
            snapshot = self._client.document(path).get()
        except gcp_exceptions.GoogleAPICallError as exc:
            raise self._fail("get", path, exc) from exc
        if not snapshot.exists:
            return None
        return _to_document(snapshot)

    def get_all(self, paths) -> List[Optional[Document]]:
        paths = list(paths)
        if not paths:
            return []
        refs = [self._client.document(path) for path in paths]
        try:
            snapshots = {snap.reference.path: snap for snap in self._client.get_all(refs)}
        except gcp_exceptions.GoogleAPICallError as exc:
            raise self._fail("get_all", paths[0], exc) from exc
        result: List[Optional[Document]] = []
        for ref in refs:
            snap = snapshots.get(ref.path)
            result.append(_to_document(snap) if snap is not None and snap.exists else None)
        return result

    def stream(self, query: Query) -> List[Document]:
        try:
            return [_to_document(snapshot) for snapshot in self._build(query).stream()]
        except gcp_exceptions.GoogleAPICallError as exc:
            raise self._fail("stream", query.collection, exc) from exc

    def count(self, query: Query) -> int:
        try:
            results = self._build(query).count().get()
        except gcp_exceptions.GoogleAPICallError as exc:
            raise self._fail("count", query.collection, exc) from exc
        if results and results[0]:
            return int(results[0][0].value)
        return 0

    def add(self, collection_path: str, data: Dict[str, Any]) -> str:
        try:
            _, ref = self._client.collection(collection_path).add(_translate(data))
        except gcp_exceptions.GoogleAPICallError as exc:
            raise self._fail("add", collection_path, exc) from exc
        return ref.id

    def set(self, path: str, data: Dict[str, Any]) -> None:
        try:
            self._client.document(path).set(_translate(data))
        except gcp_exceptions.GoogleAPICallError as exc:
            raise self._fail("set", path, exc) from exc

    def update(self, path: str, data: Dict[str, Any]) -> None:
        try:
            self._client.document(path).update(_translate(data))
        except gcp_exceptions.NotFound as exc:
            raise DocumentNotFound(path) from exc
        except gcp_exceptions.GoogleAPICallError as exc:
            raise self._fail("update", path, exc) from exc

    def delete(self, path: str) -> None:
        try:
            self._client.document(path).delete()
        except gcp_exceptions.GoogleAPICallError as exc:
            raise self._fail("delete", path, exc) from exc

    def batch_update(self, updates: Sequence[Tuple[str, Dict[str, Any]]]) -> None:
        if not updates:
            return
        if len(updates) > MAX_BATCH_WRITES:
            raise StoreError(f"Batch of {len(updates)} writes exceeds {MAX_BATCH_WRITES}")
        batch = self._client.batch()
        for path, data in updates:
            batch.update(self._client.document(path), _translate(data))
        try:
            batch.commit()
        except gcp_exceptions.NotFound as exc:
            raise DocumentNotFound(updates[0][0]) from exc
        except gcp_exceptions.GoogleAPICallError as exc:
            raise self._fail("batch_update", updates[0][0], exc) from exc
