from typing import Any, Dict, List, Optional

from fastapi import HTTPException

from ..core.documents import DESCENDING, DOCUMENT_ID, DocumentStore, collection, join_path
from ..core.logging import get_logger
from ..core.timeutils import serialize, to_datetime


logger = get_logger(__name__)

QUESTIONS_COLLECTION = "questions"
FEEDBACK_COLLECTION = "feedback"


def _feedback_cursor(value: str) -> Any:
    """Feedback timestamps are stored as epoch numbers or as timestamps."""
    text = value.strip()
    if text.lstrip("-").isdigit():
        return int(text)
    return to_datetime(text) or text


def list_questions(
    store: DocumentStore,
    *,
    limit: int = 20,
    last_timestamp: Optional[str] = None,
    last_id: Optional[str] = None,
) -> Dict[str, Any]:
    base = collection(QUESTIONS_COLLECTION)
    total = store.count(base)

    query = base.order("timestamp", DESCENDING).order(DOCUMENT_ID, DESCENDING).take(limit)
    if last_timestamp and last_id:
        try:
            query = query.after(int(last_timestamp), last_id)
        except ValueError:
            pass

    questions = []
    for doc in store.stream(query):
        data = doc.data
        questions.append(
            {
                "id": doc.id,
                "answer": data.get("answer"),
                "commentsCount": data.get("commentsCount") or 0,
                "content": data.get("content"),
                "phone": data.get("phone"),
                "profileImgUrl": data.get("profileImgUrl"),
                "timestamp": serialize(data.get("timestamp")),
                "userId": data.get("userId"),
                "userName": data.get("userName"),
                "userRole": data.get("userRole"),
            }
        )
    return {"questions": questions, "total": total, "hasMore": len(questions) == limit}


def answer_question(store: DocumentStore, question_id: Optional[str], answer: Optional[str]) -> Dict[str, Any]:
    if not question_id or not answer:
        raise HTTPException(status_code=400, detail="Missing id or answer")
    store.update(join_path(QUESTIONS_COLLECTION, question_id), {"answer": answer})
    logger.info("Question answered.", extra={"question_id": question_id})
    return {"success": True}


def delete_question(store: DocumentStore, question_id: str) -> Dict[str, Any]:
    if not question_id:
        raise HTTPException(status_code=400, detail="Question ID is required")
    store.delete(join_path(QUESTIONS_COLLECTION, question_id))
    logger.info("Question deleted.", extra={"question_id": question_id})
    return {"success": True}


def question_comments(store: DocumentStore, question_id: str) -> Dict[str, List[Dict[str, Any]]]:
    path = join_path(QUESTIONS_COLLECTION, question_id, "comments")
    comments = []
    for doc in store.stream(collection(path).order("timestamp")):
        data = doc.data
        comments.append(
            {
                "id": doc.id,
                "commentedBy": data.get("commentedBy"),
                "content": data.get("content"),
                "phone": data.get("phone"),
                "profileImgUrl": data.get("profileImgUrl"),
                "timestamp": serialize(data.get("timestamp")),
                "userRole": data.get("userRole"),
            }
        )
    return {"comments": comments}


def list_feedback(
    store: DocumentStore,
    *,
    limit: int = 50,
    last_submitted_at: Optional[str] = None,
    last_id: Optional[str] = None,
) -> Dict[str, Any]:
    base = collection(FEEDBACK_COLLECTION)
    total = store.count(base)

    query = base.order("submittedAt", DESCENDING).order(DOCUMENT_ID, DESCENDING).take(limit)
    if last_submitted_at and last_id:
        query = query.after(_feedback_cursor(last_submitted_at), last_id)

    feedbacks = [
        {
            "id": doc.id,
            "feedback": doc.get("feedback"),
            "rate": doc.get("rate"),
            "submittedAt": serialize(doc.get("submittedAt")),
        }
        for doc in store.stream(query)
    ]
    return {"feedbacks": feedbacks, "total": total, "hasMore": len(feedbacks) == limit}
