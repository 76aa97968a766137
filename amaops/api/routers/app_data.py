from typing import Optional

from fastapi import APIRouter, Depends, Query, Response

from ...admin import app_service
from ...core.database import get_app_store
from ...core.documents import DocumentStore
from ...core.models import AppUserPatchRequest, QueryPatchRequest, RecordPatchRequest


router = APIRouter(tags=["Mobile App"])

NO_STORE = "no-store, max-age=0"


@router.get("/app-leads")
def get_app_leads(
    response: Response,
    limit: int = Query(50, ge=1, le=500),
    last_created_at: Optional[str] = Query(None, alias="lastCreatedAt"),
    last_id: Optional[str] = Query(None, alias="lastId"),
    search: Optional[str] = None,
    status: Optional[str] = None,
    store: DocumentStore = Depends(get_app_store),
):
    response.headers["Cache-Control"] = NO_STORE
    return app_service.list_app_leads(
        store,
        limit=limit,
        last_created_at=last_created_at,
        last_id=last_id,
        search=search,
        status=status,
    )


@router.patch("/app-leads")
def patch_app_lead(body: RecordPatchRequest, store: DocumentStore = Depends(get_app_store)):
    return app_service.update_app_lead(store, body.id, body.updates(), body.user)


@router.get("/app-leads/{lead_id}/history")
def get_app_lead_history(lead_id: str, response: Response, store: DocumentStore = Depends(get_app_store)):
    response.headers["Cache-Control"] = NO_STORE
    return app_service.app_lead_history(store, lead_id)


@router.get("/app-queries")
def get_app_queries(
    response: Response,
    limit: int = Query(50, ge=1, le=500),
    last_submitted_at: Optional[str] = Query(None, alias="lastSubmittedAt"),
    last_id: Optional[str] = Query(None, alias="lastId"),
    search: Optional[str] = None,
    status: Optional[str] = None,
    store: DocumentStore = Depends(get_app_store),
):
    response.headers["Cache-Control"] = NO_STORE
    return app_service.list_app_queries(
        store,
        limit=limit,
        last_submitted_at=last_submitted_at,
        last_id=last_id,
        search=search,
        status=status,
    )


@router.patch("/app-queries")
def patch_app_query(body: QueryPatchRequest, store: DocumentStore = Depends(get_app_store)):
    return app_service.update_app_query(
        store,
        body.id,
        status=body.status,
        remarks=body.remarks,
        resolved_by=body.resolved_by,
    )


@router.get("/disputes")
def get_disputes(
    response: Response,
    limit: int = Query(50, ge=1, le=500),
    last_submitted_at: Optional[str] = Query(None, alias="lastSubmittedAt"),
    last_id: Optional[str] = Query(None, alias="lastId"),
    search: Optional[str] = None,
    status: Optional[str] = None,
    store: DocumentStore = Depends(get_app_store),
):
    response.headers["Cache-Control"] = NO_STORE
    return app_service.list_disputes(
        store,
        limit=limit,
        last_submitted_at=last_submitted_at,
        last_id=last_id,
        search=search,
        status=status,
    )


@router.patch("/disputes")
def patch_dispute(body: RecordPatchRequest, store: DocumentStore = Depends(get_app_store)):
    return app_service.update_dispute(store, body.id, body.updates(), body.user)


@router.get("/disputes/{dispute_id}/history")
def get_dispute_history(dispute_id: str, response: Response, store: DocumentStore = Depends(get_app_store)):
    response.headers["Cache-Control"] = NO_STORE
    return app_service.dispute_history(store, dispute_id)


@router.patch("/app-users")
def patch_app_user(body: AppUserPatchRequest, store: DocumentStore = Depends(get_app_store)):
    return app_service.update_app_user(store, body.id, dict(body.model_extra or {}))
