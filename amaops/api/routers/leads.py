from typing import Optional

from fastapi import APIRouter, Depends, Query, Response

from ...admin import lead_service
from ...core.database import get_crm_store
from ...core.documents import DocumentStore
from ...core.models import LeadActionRequest


router = APIRouter(tags=["Leads"])

NO_STORE = "no-store, max-age=0"


@router.get("/leads")
def get_leads(
    response: Response,
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=500),
    status: Optional[str] = None,
    source: Optional[str] = None,
    salesperson_id: Optional[str] = Query(None, alias="salespersonId"),
    search: str = "",
    sort: str = "synced_at",
    order: str = "desc",
    tab: str = "all",
    start_date: Optional[str] = Query(None, alias="startDate"),
    end_date: Optional[str] = Query(None, alias="endDate"),
    store: DocumentStore = Depends(get_crm_store),
):
    response.headers["Cache-Control"] = NO_STORE
    return lead_service.list_leads(
        store,
        page=page,
        limit=limit,
        status=status,
        source=source,
        salesperson_id=salesperson_id,
        search=search,
        sort=sort,
        order=order,
        tab=tab,
        start_date=start_date,
        end_date=end_date,
    )


@router.get("/leads/stats")
def get_lead_stats(
    response: Response,
    status: Optional[str] = None,
    source: Optional[str] = None,
    salesperson_id: Optional[str] = Query(None, alias="salespersonId"),
    store: DocumentStore = Depends(get_crm_store),
):
    response.headers["Cache-Control"] = NO_STORE
    return lead_service.lead_stats(store, status=status, source=source, salesperson_id=salesperson_id)


@router.post("/leads/actions")
def post_lead_action(body: LeadActionRequest, store: DocumentStore = Depends(get_crm_store)):
    return lead_service.apply_lead_action(store, body.action, body.leadIds, body.payload)


@router.get("/leads/{lead_id}/history")
def get_lead_history(lead_id: str, response: Response, store: DocumentStore = Depends(get_crm_store)):
    response.headers["Cache-Control"] = NO_STORE
    return lead_service.lead_history(store, lead_id)


@router.get("/users/salespersons")
def get_salespersons(store: DocumentStore = Depends(get_crm_store)):
    return lead_service.list_salespersons(store)
