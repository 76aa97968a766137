from __future__ import annotations

from typing import Any, Dict, List, Optional, Tuple

from ..core.documents import SERVER_TIMESTAMP, Document, DocumentStore, collection, join_path
from ..core.logging import get_logger
from ..core.models import RETARGETING


logger = get_logger(__name__)

INTEREST_TRIGGERS = ("yes", "ok", "okay")
WEBHOOK_AUTHOR = "System (Wati Webhook)"

# collection -> (status field, sync field, notes subcollection)
LEAD_SOURCES = {
    "ama_leads": ("status", "synced_at", "history"),
    "billcutLeads": ("category", "synced_date", "salesNotes"),
}


def _first(store: DocumentStore, collection_name: str, field_name: str, value: str) -> Optional[Document]:
    docs = store.stream(collection(collection_name).where(field_name, "==", value).take(1))
    return docs[0] if docs else None


def _find_in_collection(store: DocumentStore, collection_name: str, phone: str) -> Optional[Document]:
    doc = _first(store, collection_name, "mobile", phone)
    if doc is None and phone.startswith("91"):
        doc = _first(store, collection_name, "mobile", phone[2:])
    if doc is None:
        doc = _first(store, collection_name, "phone", phone)
    return doc


def find_lead_by_phone(store: DocumentStore, phone: str) -> Optional[Tuple[str, Document]]:
    for collection_name in LEAD_SOURCES:
        doc = _find_in_collection(store, collection_name, phone)
        if doc is not None:
            return collection_name, doc
    return None


def _process_message(store: DocumentStore, message: Dict[str, Any]) -> Dict[str, Any]:
    text = str(message.get("text") or message.get("content") or "").lower().strip()
    phone = str(message.get("waId") or message.get("senderNumber") or message.get("mobile") or "")
    if not text or not phone:
        return {"outcome": "skipped", "reason": "missing text or phone"}

    if not any(trigger in text for trigger in INTEREST_TRIGGERS):
        return {"outcome": "ignored", "phone": phone}

    logger.info("WATI interest detected.", extra={"phone": phone, "text": text})
    match = find_lead_by_phone(store, phone)
    if match is None:
        logger.info("WATI lead not found.", extra={"phone": phone})
        return {"outcome": "not_found", "phone": phone}

    collection_name, doc = match
    status_field, sync_field, notes = LEAD_SOURCES[collection_name]
    raw_status = doc.get(status_field) or ""
    if str(raw_status).strip().lower() == "converted":
        logger.info(
            "WATI trigger ignored for converted lead.",
            extra={"lead_id": doc.id, "collection": collection_name},
        )
        return {"outcome": "converted", "leadId": doc.id, "collection": collection_name}

    store.update(
        doc.path,
        {status_field: RETARGETING, sync_field: SERVER_TIMESTAMP, "lastModified": SERVER_TIMESTAMP},
    )
    store.add(
        join_path(doc.path, notes),
        {
            "content": f'Auto-moved to Retargeting via Wati interest response ("{text}")',
            "createdAt": SERVER_TIMESTAMP,
            "createdBy": WEBHOOK_AUTHOR,
            "type": "system",
        },
    )
    logger.info("Lead moved to retargeting.", extra={"lead_id": doc.id, "collection": collection_name})
    return {"outcome": "retargeted", "leadId": doc.id, "collection": collection_name}


def handle_wati_payload(store: DocumentStore, body: Any) -> Dict[str, Any]:
    messages: List[Any] = body if isinstance(body, list) else [body]
    results = []
    for message in messages:
        if not isinstance(message, dict):
            results.append({"outcome": "skipped", "reason": "not an object"})
            continue
        results.append(_process_message(store, message))
    return {"success": True, "results": results}
