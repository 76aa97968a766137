from __future__ import annotations

from datetime import datetime, timezone

import pytest

from amaops.core.documents import (
    DELETE_FIELD,
    DESCENDING,
    DOCUMENT_ID,
    SERVER_TIMESTAMP,
    DocumentNotFound,
    DocumentStore,
    Increment,
    StoreError,
    collection,
)
from amaops.core.memory_store import MemoryDocumentStore


NOW = datetime(2025, 3, 10, 6, 30, tzinfo=timezone.utc)


@pytest.fixture
def store():
    store = MemoryDocumentStore(name="test", clock=lambda: NOW)
    store.seed(
        "leads",
        {
            "a": {"name": "Asha", "score": 3, "status": "new"},
            "b": {"name": "Bala", "score": 1, "status": "won"},
            "c": {"name": "Chitra", "score": 3},
            "d": {"name": "Dev", "score": "3", "status": None},
        },
    )
    return store


def _ids(docs):
    return [doc.id for doc in docs]


def test_order_skips_documents_missing_the_field_and_breaks_ties_by_id(store):
    store.seed("leads", {"e": {"name": "Eshan"}})

    docs = store.stream(collection("leads").order("score", DESCENDING))
    # Strings sort after numbers.
    assert _ids(docs) == ["d", "c", "a", "b"]


def test_range_filters_only_match_values_of_the_same_type(store):
    assert _ids(store.stream(collection("leads").where("score", ">=", 3))) == ["a", "c"]
    assert _ids(store.stream(collection("leads").where("score", "==", "3"))) == ["d"]


def test_in_filter_matches_null_but_not_missing(store):
    docs = store.stream(collection("leads").where("status", "in", ["new", None]))
    assert _ids(docs) == ["a", "d"]


def test_prefix_query(store):
    store.seed("leads", {"f": {"name": "Ashok"}})
    assert _ids(store.stream(collection("leads").prefix("name", "As"))) == ["a", "f"]


def test_cursor_limit_offset_and_count(store):
    query = collection("leads").where("score", ">=", 0).order("score", DESCENDING).order(DOCUMENT_ID, DESCENDING)
    assert _ids(store.stream(query.take(2))) == ["c", "a"]
    assert _ids(store.stream(query.after(3, "c"))) == ["a", "b"]
    assert _ids(store.stream(query.skip(1).take(1))) == ["a"]
    assert store.count(query) == 3
    assert store.count(query.take(2)) == 2


def test_field_projection(store):
    doc = store.stream(collection("leads").where(DOCUMENT_ID, "==", "a").fields("name"))[0]
    assert doc.data == {"name": "Asha"}


def test_write_sentinels(store):
    store.update("leads/a", {"score": Increment(2), "seen": SERVER_TIMESTAMP, "status": DELETE_FIELD})
    data = store.get("leads/a").data
    assert data["score"] == 5
    assert data["seen"] == NOW
    assert "status" not in data

    store.update("leads/c", {"visits": Increment(1)})
    assert store.get("leads/c").data["visits"] == 1


def test_subcollections_are_separate_from_parents(store):
    doc_id = store.add("leads/a/history", {"content": "called"})
    assert store.get(f"leads/a/history/{doc_id}").data == {"content": "called"}
    assert "a" in _ids(store.stream(collection("leads")))
    assert len(store.stream(collection("leads"))) == 4
    assert store.get("leads/zz") is None


def test_update_of_missing_document_raises(store):
    with pytest.raises(DocumentNotFound) as excinfo:
        store.update("leads/zz", {"name": "Ghost"})
    assert excinfo.value.path == "leads/zz"


def test_batch_update_is_all_or_nothing(store):
    with pytest.raises(DocumentNotFound):
        store.batch_update([("leads/a", {"status": "won"}), ("leads/zz", {"status": "won"})])
    assert store.get("leads/a").data["status"] == "new"

    store.batch_update([("leads/a", {"status": "won"}), ("leads/a", {"score": Increment(1)})])
    data = store.get("leads/a").data
    assert data["status"] == "won"
    assert data["score"] == 4


def test_batch_update_rejects_oversized_batches(store):
    with pytest.raises(StoreError):
        store.batch_update([("leads/a", {"score": Increment(1)})] * 501)
    assert store.get("leads/a").data["score"] == 3


def test_invalid_paths_are_rejected(store):
    with pytest.raises(StoreError):
        store.get("leads")
    with pytest.raises(ValueError):
        collection("leads").where("score", "~", 1)


def test_document_store_interface_is_abstract():
    with pytest.raises(TypeError):
        DocumentStore()
