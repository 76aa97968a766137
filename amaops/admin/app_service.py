from __future__ import annotations

from typing import Any, Dict, List, Optional

from fastapi import HTTPException

from ..core.documents import (
    DESCENDING,
    DOCUMENT_ID,
    SERVER_TIMESTAMP,
    Document,
    DocumentStore,
    Query,
    collection,
    join_path,
)
from ..core.logging import get_logger
from ..core.models import APP_USER_FIELDS, NO_STATUS, ActorInfo
from ..core.timeutils import display_date, epoch_seconds, isoformat, normalize_display_date, now_utc, serialize, to_datetime


logger = get_logger(__name__)

APP_LEADS_COLLECTION = "leads"
QUERIES_COLLECTION = "allQueries"
DISPUTES_COLLECTION = "file_disputes"
APP_USERS_COLLECTION = "login_users"

APP_NO_STATUS_VALUES = [NO_STATUS, "", None]
UNKNOWN_ACTOR = "Unknown User"


def _cursor(value: Optional[str]) -> Optional[int]:
    if value is None:
        return None
    try:
        return int(value)
    except ValueError:
        return None


def _history_entry(content: Any, user: Optional[ActorInfo]) -> Dict[str, Any]:
    return {
        "content": content,
        "createdBy": (user.name if user else None) or UNKNOWN_ACTOR,
        "createdById": (user.uid if user else None) or "",
        "createdAt": SERVER_TIMESTAMP,
        "displayDate": display_date(now_utc()),
    }


def _serialize_history(doc: Document) -> Dict[str, Any]:
    data = doc.data
    created_at = data.get("createdAt")
    entry = {"id": doc.id, **serialize(data)}
    moment = to_datetime(created_at)
    entry["createdAt"] = isoformat(moment) if moment else created_at
    entry["displayDate"] = normalize_display_date(data.get("displayDate"), created_at)
    return entry


def _with_status(query: Query, status: Optional[str]) -> Query:
    if not status or status == "all":
        return query
    if status == NO_STATUS:
        return query.where("status", "in", APP_NO_STATUS_VALUES)
    return query.where("status", "==", status)


def _keyset_page(query: Query, sort_field: str, limit: int, last_value: Optional[str], last_id: Optional[str]) -> Query:
    query = query.order(sort_field, DESCENDING).order(DOCUMENT_ID, DESCENDING).take(limit)
    cursor = _cursor(last_value)
    if cursor is not None and last_id:
        query = query.after(cursor, last_id)
    return query


# --- app leads ------------------------------------------------------------------------


def list_app_leads(
    store: DocumentStore,
    *,
    limit: int = 50,
    last_created_at: Optional[str] = None,
    last_id: Optional[str] = None,
    search: Optional[str] = None,
    status: Optional[str] = None,
) -> Dict[str, Any]:
    base = _with_status(collection(APP_LEADS_COLLECTION), status)
    total = 0
    term = (search or "").strip()
    if term:
        field_name = "phone" if term.isdigit() else "name"
        query = base.prefix(field_name, term).take(limit)
    else:
        total = store.count(base)
        query = _keyset_page(base, "created_at", limit, last_created_at, last_id)

    leads = []
    for doc in store.stream(query):
        data = doc.data
        leads.append(
            {
                "id": doc.id,
                "created_at": serialize(data.get("created_at")),
                "email": data.get("email"),
                "name": data.get("name"),
                "phone": data.get("phone"),
                "query": data.get("query"),
                "source": data.get("source"),
                "state": data.get("state"),
                "status": data.get("status") or NO_STATUS,
                "remarks": data.get("remarks") or "",
            }
        )
    return {"leads": leads, "total": len(leads) if term else total, "hasMore": len(leads) == limit}


def update_app_lead(
    store: DocumentStore,
    lead_id: Optional[str],
    updates: Dict[str, Any],
    user: Optional[ActorInfo] = None,
) -> Dict[str, Any]:
    if not lead_id:
        raise HTTPException(status_code=400, detail="Lead ID is required")

    path = join_path(APP_LEADS_COLLECTION, lead_id)
    if store.get(path) is None:
        raise HTTPException(status_code=404, detail="Lead not found")
    if "remarks" in updates:
        store.add(join_path(path, "history"), _history_entry(updates["remarks"], user))
    store.update(path, updates)
    logger.info("App lead updated.", extra={"lead_id": lead_id, "fields": sorted(updates)})
    return {"success": True}


def app_lead_history(store: DocumentStore, lead_id: str) -> List[Dict[str, Any]]:
    path = join_path(APP_LEADS_COLLECTION, lead_id, "history")
    return [_serialize_history(doc) for doc in store.stream(collection(path).order("createdAt", DESCENDING))]


# --- app queries ----------------------------------------------------------------------


def _serialize_query(doc: Document) -> Dict[str, Any]:
    data = doc.data
    status = data.get("status")
    if data.get("resolved_at") and status != "resolved":
        status = "resolved"
    return {
        "id": doc.id,
        "queryId": data.get("queryId"),
        "query": data.get("query"),
        "status": status,
        "role": data.get("role"),
        "phone": data.get("phone"),
        "posted_by": data.get("posted_by"),
        "submitted_at": serialize(data.get("submitted_at")),
        "resolved_at": serialize(data.get("resolved_at")),
        "resolved_by": data.get("resolved_by"),
        "alloc_adv": data.get("alloc_adv"),
        "alloc_adv_secondary": data.get("alloc_adv_secondary"),
        "parentDocId": data.get("parentDocId"),
        "remarks": data.get("remarks"),
    }


def list_app_queries(
    store: DocumentStore,
    *,
    limit: int = 50,
    last_submitted_at: Optional[str] = None,
    last_id: Optional[str] = None,
    search: Optional[str] = None,
    status: Optional[str] = None,
) -> Dict[str, Any]:
    base = collection(QUERIES_COLLECTION)
    term = (search or "").strip()
    filtered = bool(status and status != "all")
    total = 0
    if term:
        field_name = "phone" if term.isdigit() else "query"
        query = base.prefix(field_name, term).take(limit)
    elif filtered:
        query = _keyset_page(base.where("status", "==", status), "submitted_at", limit, last_submitted_at, last_id)
    else:
        total = store.count(base)
        query = _keyset_page(base, "submitted_at", limit, last_submitted_at, last_id)

    queries = [_serialize_query(doc) for doc in store.stream(query)]
    return {
        "queries": queries,
        "total": len(queries) if term or filtered else total,
        "hasMore": len(queries) == limit,
    }


def update_app_query(
    store: DocumentStore,
    query_id: Optional[str],
    *,
    status: Optional[str] = None,
    remarks: Optional[str] = None,
    resolved_by: Optional[str] = None,
) -> Dict[str, Any]:
    if not query_id:
        raise HTTPException(status_code=400, detail="Missing id")

    updates: Dict[str, Any] = {}
    if status:
        updates["status"] = status
    if remarks is not None:
        updates["remarks"] = remarks
    if resolved_by:
        updates["resolved_by"] = resolved_by
        if status == "resolved":
            updates["resolved_at"] = epoch_seconds()
    if not updates:
        raise HTTPException(status_code=400, detail="No fields to update")

    store.update(join_path(QUERIES_COLLECTION, query_id), updates)
    logger.info("App query updated.", extra={"query_id": query_id, "fields": sorted(updates)})
    return {"success": True, "updatedFields": updates}


# --- disputes -------------------------------------------------------------------------


def _submitted_at(item: Dict[str, Any]) -> float:
    value = item.get("submittedAt")
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return value
    moment = to_datetime(value)
    return moment.timestamp() if moment else 0


def _flatten_disputes(store: DocumentStore) -> List[Dict[str, Any]]:
    items = []
    for doc in store.stream(collection(DISPUTES_COLLECTION)):
        disputes = doc.get("disputes")
        if not isinstance(disputes, list):
            continue
        for index, dispute in enumerate(disputes):
            if not isinstance(dispute, dict):
                continue
            items.append(
                {
                    **serialize(dispute),
                    "parentDocId": doc.id,
                    "arrayIndex": index,
                    "id": f"{doc.id}_{index}",
                    "status": dispute.get("status") or NO_STATUS,
                    "remarks": dispute.get("remarks") or "",
                    "_sort": _submitted_at(dispute),
                }
            )
    return items


def list_disputes(
    store: DocumentStore,
    *,
    limit: int = 50,
    last_submitted_at: Optional[str] = None,
    last_id: Optional[str] = None,
    search: Optional[str] = None,
    status: Optional[str] = None,
) -> Dict[str, Any]:
    items = _flatten_disputes(store)

    term = (search or "").strip()
    if term:
        lowered = term.lower()
        items = [
            item
            for item in items
            if lowered in str(item.get("name") or "").lower() or term in str(item.get("phone") or "")
        ]

    if status and status != "all":
        if status == NO_STATUS:
            items = [item for item in items if item["status"] in APP_NO_STATUS_VALUES]
        else:
            items = [item for item in items if item["status"] == status]

    items.sort(key=lambda item: item["_sort"], reverse=True)
    total = len(items)

    start = 0
    cursor = _cursor(last_submitted_at)
    if cursor is not None and last_id:
        for index, item in enumerate(items):
            if item["id"] == last_id and item["_sort"] == cursor:
                start = index + 1
                break

    page = [{key: value for key, value in item.items() if key != "_sort"} for item in items[start : start + limit]]
    return {"disputes": page, "total": total, "hasMore": start + limit < total}


def _split_dispute_id(dispute_id: str):
    parent_id, _, index = dispute_id.rpartition("_")
    if not parent_id or not index.isdigit():
        raise HTTPException(status_code=400, detail="Invalid Dispute ID format")
    return parent_id, int(index)


def update_dispute(
    store: DocumentStore,
    dispute_id: Optional[str],
    updates: Dict[str, Any],
    user: Optional[ActorInfo] = None,
) -> Dict[str, Any]:
    if not dispute_id:
        raise HTTPException(status_code=400, detail="Dispute ID is required")
    parent_id, index = _split_dispute_id(dispute_id)

    path = join_path(DISPUTES_COLLECTION, parent_id)
    doc = store.get(path)
    if doc is None:
        raise HTTPException(status_code=404, detail="Parent document not found")
    disputes = doc.get("disputes")
    if not isinstance(disputes, list) or index >= len(disputes) or not disputes[index]:
        raise HTTPException(status_code=404, detail="Dispute not found in array")

    disputes = list(disputes)
    dispute = {**disputes[index], **updates}
    disputes[index] = dispute

    if "remarks" in updates:
        entry = _history_entry(updates["remarks"], user)
        entry.update({"disputeId": dispute_id, "submittedAt": dispute.get("submittedAt")})
        store.add(join_path(path, "dispute_history"), entry)

    store.update(path, {"disputes": disputes})
    logger.info("Dispute updated.", extra={"dispute_id": dispute_id, "fields": sorted(updates)})
    return {"success": True}


def dispute_history(store: DocumentStore, dispute_id: str) -> List[Dict[str, Any]]:
    parent_id, _ = _split_dispute_id(dispute_id)
    query = (
        collection(join_path(DISPUTES_COLLECTION, parent_id, "dispute_history"))
        .where("disputeId", "==", dispute_id)
        .order("createdAt", DESCENDING)
    )
    return [_serialize_history(doc) for doc in store.stream(query)]


# --- app users ------------------------------------------------------------------------


def update_app_user(store: DocumentStore, user_id: Optional[str], fields: Dict[str, Any]) -> Dict[str, Any]:
    if not user_id:
        raise HTTPException(status_code=400, detail="Missing id")

    updates = {name: fields[name] for name in APP_USER_FIELDS if name in fields}
    if not updates:
        raise HTTPException(status_code=400, detail="No valid fields to update")
    updates["updated_at"] = epoch_seconds()

    store.update(join_path(APP_USERS_COLLECTION, user_id), updates)
    logger.info("App user updated.", extra={"user_id": user_id, "fields": sorted(updates)})
    return {"success": True, "updatedFields": updates}
