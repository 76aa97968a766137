from fastapi import APIRouter, Depends, HTTPException, Query, Response
from fastapi.responses import JSONResponse

from ...admin.notification_service import NotificationFailed, email_history, send_notification
from ...core.database import get_app_store, get_crm_store
from ...core.documents import DocumentStore
from ...core.logging import get_logger
from ...core.models import NotificationRequest
from ...push.base import PushGateway
from ...push.factory import get_push_gateway


router = APIRouter(tags=["Notifications"])
logger = get_logger(__name__)


@router.post("/app-notifications")
def post_notification(
    body: NotificationRequest,
    store: DocumentStore = Depends(get_app_store),
    gateway: PushGateway = Depends(get_push_gateway),
):
    try:
        return send_notification(
            store,
            gateway,
            user_id=body.user_id,
            topic=body.topic,
            title=body.n_title,
            body=body.n_body,
            send_weekly=body.send_weekly,
        )
    except HTTPException as exc:
        return JSONResponse(status_code=exc.status_code, content={"success": False, "message": exc.detail})
    except NotificationFailed as exc:
        logger.error("Notification send failed.", extra={"error": exc.message, "sent_by": body.user_id})
        return JSONResponse(
            status_code=500,
            content={"success": False, "message": "Failed to send notification", "error": exc.message},
        )


@router.get("/email-history")
def get_email_history(
    response: Response,
    page: int = Query(1, ge=1),
    page_size: int = Query(30, ge=1, le=200, alias="pageSize"),
    search: str = "",
    store: DocumentStore = Depends(get_crm_store),
):
    response.headers["Cache-Control"] = "no-store, max-age=0"
    return email_history(store, page=page, page_size=page_size, search=search)
