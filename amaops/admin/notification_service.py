from __future__ import annotations

from typing import Any, Dict, List, Optional, Union

from fastapi import HTTPException

from ..core.documents import DESCENDING, DocumentStore, collection, join_path
from ..core.logging import get_logger
from ..core.timeutils import epoch_seconds, isoformat, serialize, to_datetime
from ..push.base import PushError, PushGateway, PushMessage


logger = get_logger(__name__)

# Broadcast topic -> notifications/{role}/messages
ROLE_TOPICS = (
    ("all_clients", "client"),
    ("all_advocates", "advocate"),
    ("all_users", "user"),
)
WEEKLY_ROLE = "client"
EMAIL_HISTORY_COLLECTION = "emailHistory"


class NotificationFailed(Exception):
    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


def _topics(topic: Union[str, List[str]]) -> List[str]:
    return list(topic) if isinstance(topic, list) else [topic]


def send_notification(
    store: DocumentStore,
    gateway: PushGateway,
    *,
    user_id: Optional[str],
    topic: Optional[Union[str, List[str]]],
    title: Optional[str],
    body: Optional[str],
    send_weekly: bool = False,
) -> Dict[str, Any]:
    """
    Push one message per topic and record it.

    Weekly sends must reach every topic. Broadcast sends tolerate partial
    failure and only raise when no topic was delivered.
    """
    if not user_id or not topic or not title or not body:
        raise HTTPException(status_code=400, detail="user_id, topic, n_title and n_body are required")

    topics = _topics(topic)
    sent_at = epoch_seconds()
    history = {
        "n_title": title,
        "n_body": body,
        "timestamp": sent_at,
        "sent_by": user_id,
        "topics": topics,
        "send_weekly": bool(send_weekly),
    }

    if send_weekly:
        try:
            for name in topics:
                gateway.send(PushMessage(topic=name, title=title, body=body))
        except PushError as exc:
            raise NotificationFailed(str(exc)) from exc

        store.add(
            join_path("notifications", WEEKLY_ROLE, "messages"),
            {
                "n_title": title,
                "n_body": body,
                "timestamp": sent_at,
                "sent_by": user_id,
                "topics": topics,
                "week_notification": True,
            },
        )
        store.add(join_path("notification_history", user_id, "messages"), {**history, "week_notification": True})
        logger.info("Weekly notification sent.", extra={"topics": topics, "sent_by": user_id})
        return {"success": True, "message": f"Weekly notification sent to topic(s): {', '.join(topics)}"}

    failures: List[PushError] = []
    for name in topics:
        try:
            gateway.send(PushMessage(topic=name, title=title, body=body))
        except PushError as exc:
            failures.append(exc)
    if len(failures) == len(topics):
        raise NotificationFailed(f"All notifications failed. First error: {failures[0]}")
    if failures:
        logger.warning(
            "Notification partially delivered.",
            extra={"failed_topics": [failure.topic for failure in failures]},
        )

    message_doc = {"n_title": title, "n_body": body, "timestamp": sent_at, "sent_by": user_id, "topics": topics}
    for broadcast_topic, role in ROLE_TOPICS:
        if broadcast_topic in topics:
            store.add(join_path("notifications", role, "messages"), message_doc)
    store.add(join_path("notification_history", user_id, "messages"), history)
    logger.info("Notification sent.", extra={"topics": topics, "sent_by": user_id})
    return {"success": True, "message": f"Notification sent to topic(s): {', '.join(topics)}"}


def _matches(data: Dict[str, Any], needle: str) -> bool:
    def _has(value: Any) -> bool:
        return isinstance(value, str) and needle in value.lower()

    if _has(data.get("subject")) or _has(data.get("leadEmail")) or _has(data.get("leadName")):
        return True
    for recipient in data.get("recipients") or []:
        if isinstance(recipient, dict) and (_has(recipient.get("email")) or _has(recipient.get("name"))):
            return True
    return False


def email_history(
    store: DocumentStore,
    *,
    page: int = 1,
    page_size: int = 30,
    search: str = "",
) -> Dict[str, Any]:
    query = collection(EMAIL_HISTORY_COLLECTION).order("sentAt", DESCENDING).take(page_size + 1)
    if page > 1:
        query = query.skip((page - 1) * page_size)
    docs = store.stream(query)
    has_more = len(docs) > page_size

    needle = search.lower()
    skipped = 0
    rows = []
    for doc in docs[:page_size]:
        data = doc.data
        if data.get("emailType") == "agreement":
            skipped += 1
            continue
        if needle and not _matches(data, needle):
            continue
        sent_at = to_datetime(data.get("sentAt"))
        rows.append({"id": doc.id, **serialize(data), "sentAt": isoformat(sent_at) if sent_at else None})

    logger.info(
        "Email history fetched.",
        extra={"page": page, "returned": len(rows), "agreements_skipped": skipped},
    )
    return {
        "success": True,
        "data": rows,
        "pagination": {
            "currentPage": page,
            "pageSize": page_size,
            "hasMore": has_more,
            "totalRecords": len(rows),
        },
    }
