from typing import Optional

from fastapi import APIRouter, Depends, Query, Response

from ...admin import dashboard_service
from ...core.database import get_crm_store
from ...core.documents import DocumentStore
from ...core.timeutils import IST, MONTH_NAMES, now_utc


router = APIRouter(prefix="/dashboard", tags=["Dashboard"])

SHARED_CACHE = "public, s-maxage=60, stale-while-revalidate=300"


@router.get("/superadmin/sales")
def get_sales_analytics(
    response: Response,
    month: Optional[int] = None,
    year: Optional[int] = None,
    salesperson: Optional[str] = None,
    store: DocumentStore = Depends(get_crm_store),
):
    response.headers["Cache-Control"] = SHARED_CACHE
    return dashboard_service.superadmin_sales(store, month=month, year=year, salesperson=salesperson)


@router.get("/superadmin/ops-payments")
def get_ops_payments_analytics(
    response: Response,
    month: Optional[int] = None,
    year: Optional[int] = None,
    salesperson: Optional[str] = None,
    store: DocumentStore = Depends(get_crm_store),
):
    response.headers["Cache-Control"] = SHARED_CACHE
    return dashboard_service.superadmin_ops_payments(store, month=month, year=year, salesperson=salesperson)


@router.get("/superadmin/leads")
def get_lead_analytics(
    response: Response,
    start_date: Optional[str] = Query(None, alias="startDate"),
    end_date: Optional[str] = Query(None, alias="endDate"),
    salesperson: Optional[str] = Query(None, alias="selectedLeadsSalesperson"),
    is_filter_applied: bool = Query(False, alias="isFilterApplied"),
    store: DocumentStore = Depends(get_crm_store),
):
    response.headers["Cache-Control"] = SHARED_CACHE
    return dashboard_service.superadmin_leads(
        store,
        start_date=start_date,
        end_date=end_date,
        salesperson=salesperson,
        is_filter_applied=is_filter_applied,
    )


@router.get("/superadmin/clients")
def get_client_analytics(response: Response, store: DocumentStore = Depends(get_crm_store)):
    response.headers["Cache-Control"] = SHARED_CACHE
    return dashboard_service.superadmin_clients(store)


@router.get("/superadmin/payments")
def get_payment_analytics(response: Response, store: DocumentStore = Depends(get_crm_store)):
    response.headers["Cache-Control"] = SHARED_CACHE
    return dashboard_service.superadmin_payments(store)


@router.get("/admin")
def get_admin_dashboard(
    response: Response,
    month: Optional[str] = None,
    year: Optional[int] = None,
    store: DocumentStore = Depends(get_crm_store),
):
    current = now_utc().astimezone(IST)
    response.headers["Cache-Control"] = SHARED_CACHE
    return dashboard_service.admin_dashboard(
        store,
        month=month or MONTH_NAMES[current.month - 1],
        year=year or current.year,
    )


@router.get("/history")
def get_dashboard_history(
    response: Response,
    month: Optional[str] = None,
    year: Optional[int] = None,
    store: DocumentStore = Depends(get_crm_store),
):
    response.headers["Cache-Control"] = SHARED_CACHE
    return dashboard_service.dashboard_history(store, month=month, year=year)


@router.get("/ops-revenue-history")
def get_ops_revenue_history(response: Response, store: DocumentStore = Depends(get_crm_store)):
    response.headers["Cache-Control"] = SHARED_CACHE
    return dashboard_service.ops_revenue_history(store)
