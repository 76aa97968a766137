from typing import Optional

from fastapi import APIRouter, Depends, Query, Response

from ...admin.report_service import ReportCache, billcut_report, get_report_cache, sales_report
from ...core.database import get_crm_store
from ...core.documents import DocumentStore


router = APIRouter(prefix="/reports", tags=["Reports"])

REPORT_CACHE_CONTROL = "private, max-age=120"


@router.get("/sales-report")
def get_sales_report(
    response: Response,
    report_type: Optional[str] = Query(None, alias="type"),
    start_date: Optional[str] = Query(None, alias="startDate"),
    end_date: Optional[str] = Query(None, alias="endDate"),
    range_name: str = Query("today", alias="range"),
    custom_start: Optional[str] = Query(None, alias="customStart"),
    custom_end: Optional[str] = Query(None, alias="customEnd"),
    store: DocumentStore = Depends(get_crm_store),
    cache: ReportCache = Depends(get_report_cache),
):
    response.headers["Cache-Control"] = REPORT_CACHE_CONTROL
    return sales_report(
        store,
        cache,
        report_type=report_type,
        start_date=start_date,
        end_date=end_date,
        range_name=range_name,
        custom_start=custom_start,
        custom_end=custom_end,
    )


@router.get("/billcut-leads")
def get_billcut_report(
    response: Response,
    report_type: Optional[str] = Query(None, alias="type"),
    start_date: Optional[str] = Query(None, alias="startDate"),
    end_date: Optional[str] = Query(None, alias="endDate"),
    range_name: str = Query("today", alias="range"),
    custom_start: Optional[str] = Query(None, alias="customStart"),
    custom_end: Optional[str] = Query(None, alias="customEnd"),
    store: DocumentStore = Depends(get_crm_store),
    cache: ReportCache = Depends(get_report_cache),
):
    response.headers["Cache-Control"] = REPORT_CACHE_CONTROL
    return billcut_report(
        store,
        cache,
        report_type=report_type,
        start_date=start_date,
        end_date=end_date,
        range_name=range_name,
        custom_start=custom_start,
        custom_end=custom_end,
    )
