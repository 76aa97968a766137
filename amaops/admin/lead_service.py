from __future__ import annotations

import math
import re
from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import HTTPException

from ..core.documents import (
    DELETE_FIELD,
    DESCENDING,
    MAX_BATCH_WRITES,
    SERVER_TIMESTAMP,
    Document,
    DocumentStore,
    Increment,
    Query,
    collection,
    join_path,
)
from ..core.logging import get_logger
from ..core.models import (
    CALLBACK,
    CONVERTED,
    LANGUAGE_BARRIER,
    LEAD_ACTIONS,
    NO_STATUS,
    NO_STATUS_VALUES,
    SALES_ROLES,
    UNASSIGNED_VALUES,
)
from ..core.timeutils import (
    ist_day_bounds,
    ist_day_end,
    ist_day_start,
    ist_today,
    isoformat,
    month_doc_id,
    normalize_display_date,
    now_utc,
    parse_day,
    serialize,
    serialize_date,
)


logger = get_logger(__name__)

LEADS_COLLECTION = "ama_leads"
USERS_COLLECTION = "users"
TARGETS_COLLECTION = "targets"

STATUS_HISTORY_LIMIT = 5
SEARCH_RESULT_LIMIT = 50
PHONE_FIELDS = ("mobile", "phone", "number")
PHONE_DIGITS = 10


def _day(value: Optional[str], param: str):
    try:
        return parse_day(value)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=f"{param} must be YYYY-MM-DD.") from exc


def _filtered_query(
    *,
    tab: str,
    status: Optional[str],
    source: Optional[str],
    salesperson_id: Optional[str],
    start_date: Optional[str],
    end_date: Optional[str],
) -> Query:
    query = collection(LEADS_COLLECTION)

    if tab == "callback":
        query = query.where("status", "==", CALLBACK)
    elif tab == "today":
        start, end = ist_day_bounds(ist_today())
        query = query.where("synced_at", ">=", start).where("synced_at", "<=", end)

    if status and status != "all":
        if status == NO_STATUS:
            query = query.where("status", "in", NO_STATUS_VALUES)
        else:
            query = query.where("status", "==", status)

    if source and source != "all":
        query = query.where("source", "==", source)

    if salesperson_id and salesperson_id != "all":
        if salesperson_id == "unassigned":
            query = query.where("assigned_to", "in", UNASSIGNED_VALUES)
        else:
            query = query.where("assigned_to", "==", salesperson_id)

    if start_date:
        query = query.where("synced_at", ">=", ist_day_start(_day(start_date, "startDate")))
    if end_date:
        query = query.where("synced_at", "<=", ist_day_end(_day(end_date, "endDate")))
    return query


def _phone_search_queries(base: Query, digits: str) -> List[Query]:
    queries: List[Query] = []
    number = int(digits)
    for field_name in PHONE_FIELDS:
        queries.append(base.where(field_name, "==", number).take(SEARCH_RESULT_LIMIT))
    if len(digits) < PHONE_DIGITS:
        # "81783" covers 8178300000..8178399999 when numbers are stored as ints
        pad = 10 ** (PHONE_DIGITS - len(digits))
        low = number * pad
        high = low + pad - 1
        for field_name in PHONE_FIELDS:
            queries.append(
                base.where(field_name, ">=", low).where(field_name, "<=", high).take(SEARCH_RESULT_LIMIT)
            )
    for field_name in PHONE_FIELDS:
        queries.append(base.prefix(field_name, digits).take(SEARCH_RESULT_LIMIT))
    return queries


def _latest_callback_info(store: DocumentStore, lead_id: str) -> Optional[Dict[str, Any]]:
    path = join_path(LEADS_COLLECTION, lead_id, "callback_info")
    docs = store.stream(collection(path).order("scheduled_dt", DESCENDING).take(1))
    return docs[0].data if docs else None


def _serialize_lead(store: DocumentStore, doc: Document, tab: str) -> Dict[str, Any]:
    data = doc.data
    callback_info = data.get("callbackInfo")
    if tab == "callback" and not callback_info:
        try:
            callback_info = _latest_callback_info(store, doc.id)
        except Exception:
            logger.exception("Failed to load callback info.", extra={"lead_id": doc.id})
            callback_info = None

    lead = {"id": doc.id, **serialize(data)}
    lead.update(
        {
            "date": serialize_date(data.get("date")),
            "synced_at": serialize_date(data.get("synced_at")),
            "convertedAt": serialize_date(data.get("convertedAt")),
            "mobile": str(data.get("mobile") or data.get("phone") or ""),
            "assignedTo": data.get("assigned_to") or data.get("assignedTo") or "",
            "assignedToId": data.get("assignedToId") or data.get("assigned_to_id") or "",
            "callbackInfo": serialize(callback_info) if callback_info else None,
        }
    )
    return lead


def list_leads(
    store: DocumentStore,
    *,
    page: int = 1,
    limit: int = 50,
    status: Optional[str] = None,
    source: Optional[str] = None,
    salesperson_id: Optional[str] = None,
    search: str = "",
    sort: str = "synced_at",
    order: str = "desc",
    tab: str = "all",
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
) -> Dict[str, Any]:
    page = max(1, page)
    limit = max(1, limit)
    offset = (page - 1) * limit
    query = _filtered_query(
        tab=tab,
        status=status,
        source=source,
        salesperson_id=salesperson_id,
        start_date=start_date,
        end_date=end_date,
    )

    search = (search or "").strip()
    if search:
        digits = re.sub(r"\D", "", search.lower())
        if len(digits) >= 4:
            merged: Dict[str, Document] = {}
            for phone_query in _phone_search_queries(query, digits):
                for doc in store.stream(phone_query):
                    merged.setdefault(doc.id, doc)
            docs = list(merged.values())
            total = len(docs)
            logger.info(
                "Lead phone search merged results.",
                extra={"digits": digits, "merged": total},
            )
            return {
                "leads": [_serialize_lead(store, doc, tab) for doc in docs[offset : offset + limit]],
                "meta": {"total": total, "page": page, "limit": limit, "totalPages": math.ceil(total / limit)},
            }
        query = query.prefix("name", search)
    else:
        query = query.order(sort or "synced_at", "asc" if order == "asc" else DESCENDING)

    total = store.count(query)
    docs = store.stream(query.take(limit).skip(offset))
    logger.info(
        "Leads fetched.",
        extra={"search": search, "total": total, "returned": len(docs), "offset": offset, "limit": limit},
    )
    return {
        "leads": [_serialize_lead(store, doc, tab) for doc in docs],
        "meta": {"total": total, "page": page, "limit": limit, "totalPages": math.ceil(total / limit)},
    }


def lead_stats(
    store: DocumentStore,
    *,
    status: Optional[str] = None,
    source: Optional[str] = None,
    salesperson_id: Optional[str] = None,
) -> Dict[str, int]:
    filtered = collection(LEADS_COLLECTION)
    if status and status != "all":
        filtered = filtered.where("status", "==", status)
    if source and source != "all":
        filtered = filtered.where("source", "==", source)
    if salesperson_id and salesperson_id != "all":
        filtered = filtered.where("assignedToId", "==", salesperson_id)

    start, end = ist_day_bounds(ist_today())
    return {
        "total": store.count(filtered),
        "callback": store.count(collection(LEADS_COLLECTION).where("status", "==", CALLBACK)),
        "today": store.count(
            collection(LEADS_COLLECTION).where("synced_at", ">=", start).where("synced_at", "<=", end)
        ),
    }


def _status_update(
    data: Dict[str, Any],
    status: str,
    payload: Dict[str, Any],
) -> Dict[str, Any]:
    update: Dict[str, Any] = {"status": status, "lastModified": SERVER_TIMESTAMP}
    if status == CONVERTED:
        update["convertedAt"] = SERVER_TIMESTAMP
        update["convertedToClient"] = True
    else:
        update["convertedAt"] = DELETE_FIELD
        update["convertedToClient"] = DELETE_FIELD

    if status == LANGUAGE_BARRIER and payload.get("language"):
        update["language"] = payload["language"]

    history = list(data.get("statusHistory") or [])
    history.append(
        {
            "status": status,
            "timestamp": isoformat(now_utc()),
            "updatedBy": payload.get("updatedBy") or "api",
        }
    )
    update["statusHistory"] = history[-STATUS_HISTORY_LIMIT:]
    return update


def _target_change(data: Dict[str, Any], status: str) -> Optional[Dict[str, Any]]:
    current = data.get("status")
    if status == CONVERTED and current != CONVERTED:
        change = 1
    elif status != CONVERTED and current == CONVERTED:
        change = -1
    else:
        return None

    user_id = data.get("assigned_to_id") or data.get("assignedToId") or data.get("userId")
    user_name = data.get("assigned_to") or data.get("assignedTo") or "Unknown"
    if user_id:
        return {"userId": user_id, "userName": user_name, "change": change}
    if user_name != "Unknown":
        return {"userId": "", "userName": user_name, "change": change}
    return None


def apply_target_updates(store: DocumentStore, updates: List[Dict[str, Any]]) -> None:
    """Adjust this month's ``convertedLeads`` per salesperson; never raises."""
    if not updates:
        return
    rows_path = join_path(TARGETS_COLLECTION, month_doc_id(), "sales_targets")
    try:
        for update in updates:
            query = collection(rows_path).take(1)
            if update["userId"]:
                query = query.where("userId", "==", update["userId"])
            else:
                query = query.where("userName", "==", update["userName"])
            existing = store.stream(query)
            if existing:
                store.update(
                    existing[0].path,
                    {"convertedLeads": Increment(update["change"]), "updatedAt": SERVER_TIMESTAMP},
                )
            elif update["change"] > 0:
                store.add(
                    rows_path,
                    {
                        "userId": update["userId"] or "",
                        "userName": update["userName"] or "Unknown",
                        "convertedLeads": update["change"],
                        "convertedLeadsTarget": 0,
                        "amountCollected": 0,
                        "amountCollectedTarget": 0,
                        "createdAt": SERVER_TIMESTAMP,
                        "updatedAt": SERVER_TIMESTAMP,
                        "createdBy": "api",
                    },
                )
    except Exception:
        logger.exception("Failed to apply sales target updates.", extra={"targets_path": rows_path})


def apply_lead_action(
    store: DocumentStore,
    action: Optional[str],
    lead_ids: Optional[List[str]],
    payload: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    if not lead_ids:
        raise HTTPException(status_code=400, detail="No lead IDs provided")
    if len(lead_ids) > MAX_BATCH_WRITES:
        raise HTTPException(status_code=400, detail=f"At most {MAX_BATCH_WRITES} leads can be updated at once")
    if action not in LEAD_ACTIONS:
        raise HTTPException(status_code=400, detail="Invalid action")
    payload = payload or {}

    updates = []
    target_updates: List[Dict[str, Any]] = []

    if action == "assign":
        assigned_to = payload.get("assignedTo")
        assigned_to_id = payload.get("assignedToId")
        if not assigned_to or not assigned_to_id:
            raise HTTPException(status_code=400, detail="Missing assignment details")
        for lead_id in lead_ids:
            updates.append(
                (
                    join_path(LEADS_COLLECTION, lead_id),
                    {
                        "assignedTo": assigned_to,
                        "assignedToId": assigned_to_id,
                        "assigned_to": assigned_to,
                        "assigned_to_id": assigned_to_id,
                        "assignedAt": SERVER_TIMESTAMP,
                        "lastModified": SERVER_TIMESTAMP,
                    },
                )
            )

    elif action == "unassign":
        for lead_id in lead_ids:
            updates.append(
                (
                    join_path(LEADS_COLLECTION, lead_id),
                    {
                        "assignedTo": DELETE_FIELD,
                        "assignedToId": DELETE_FIELD,
                        "assigned_to": DELETE_FIELD,
                        "assigned_to_id": DELETE_FIELD,
                        "assignedAt": DELETE_FIELD,
                        "lastModified": SERVER_TIMESTAMP,
                    },
                )
            )

    elif action == "update_status":
        status = payload.get("status")
        if not status:
            raise HTTPException(status_code=400, detail="Missing status")
        docs = store.get_all(join_path(LEADS_COLLECTION, lead_id) for lead_id in lead_ids)
        for doc in docs:
            if doc is None:
                continue
            updates.append((doc.path, _status_update(doc.data, status, payload)))
            change = _target_change(doc.data, status)
            if change:
                target_updates.append(change)

    else:
        if "salesNotes" not in payload:
            raise HTTPException(status_code=400, detail="Missing salesNotes")
        for lead_id in lead_ids:
            updates.append(
                (
                    join_path(LEADS_COLLECTION, lead_id),
                    {"salesNotes": payload["salesNotes"], "lastModified": SERVER_TIMESTAMP},
                )
            )

    store.batch_update(updates)
    apply_target_updates(store, target_updates)
    logger.info(
        "Lead action applied.",
        extra={"action": action, "lead_count": len(lead_ids), "target_updates": len(target_updates)},
    )
    return {"success": True, "count": len(lead_ids)}


def lead_history(store: DocumentStore, lead_id: str) -> List[Dict[str, Any]]:
    path = join_path(LEADS_COLLECTION, lead_id, "history")
    entries = []
    for doc in store.stream(collection(path).order("createdAt", DESCENDING)):
        data = doc.data
        created_at = data.get("createdAt")
        entry = {"id": doc.id, **serialize(data)}
        entry["createdAt"] = isoformat(created_at) if isinstance(created_at, datetime) else None
        entry["displayDate"] = normalize_display_date(data.get("displayDate"), created_at)
        entries.append(entry)
    return entries


def list_salespersons(store: DocumentStore) -> List[Dict[str, Any]]:
    result = []
    for doc in store.stream(collection(USERS_COLLECTION).where("role", "in", SALES_ROLES)):
        data = doc.data
        if str(data.get("status") or "").lower() != "active":
            continue
        full_name = f"{data.get('firstName') or ''} {data.get('lastName') or ''}".strip()
        result.append(
            {
                "id": doc.id,
                "uid": data.get("uid"),
                "name": full_name or data.get("name") or data.get("email") or "Unknown",
                "email": data.get("email"),
                "phoneNumber": data.get("phoneNumber"),
                "role": data.get("role"),
                "status": data.get("status"),
            }
        )
    return result
