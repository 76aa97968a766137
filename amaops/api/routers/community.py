from typing import Optional

from fastapi import APIRouter, Depends, Query, Response

from ...admin import community_service
from ...core.database import get_app_store
from ...core.documents import DocumentStore
from ...core.models import AnswerRequest


router = APIRouter(tags=["Community"])

NO_STORE = "no-store, max-age=0"


@router.get("/ama-questions")
def get_questions(
    response: Response,
    limit: int = Query(20, ge=1, le=200),
    last_timestamp: Optional[str] = Query(None, alias="lastTimestamp"),
    last_id: Optional[str] = Query(None, alias="lastId"),
    store: DocumentStore = Depends(get_app_store),
):
    response.headers["Cache-Control"] = NO_STORE
    return community_service.list_questions(store, limit=limit, last_timestamp=last_timestamp, last_id=last_id)


@router.patch("/ama-questions")
def patch_question(body: AnswerRequest, store: DocumentStore = Depends(get_app_store)):
    return community_service.answer_question(store, body.id, body.answer)


@router.delete("/ama-questions/{question_id}")
def delete_question(question_id: str, store: DocumentStore = Depends(get_app_store)):
    return community_service.delete_question(store, question_id)


@router.get("/ama-questions/{question_id}/comments")
def get_question_comments(question_id: str, response: Response, store: DocumentStore = Depends(get_app_store)):
    response.headers["Cache-Control"] = NO_STORE
    return community_service.question_comments(store, question_id)


@router.get("/feedback")
def get_feedback(
    response: Response,
    limit: int = Query(50, ge=1, le=500),
    last_submitted_at: Optional[str] = Query(None, alias="lastSubmittedAt"),
    last_id: Optional[str] = Query(None, alias="lastId"),
    store: DocumentStore = Depends(get_app_store),
):
    response.headers["Cache-Control"] = NO_STORE
    return community_service.list_feedback(
        store,
        limit=limit,
        last_submitted_at=last_submitted_at,
        last_id=last_id,
    )
