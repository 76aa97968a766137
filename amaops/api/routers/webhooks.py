from typing import Any

from fastapi import APIRouter, Body, Depends

from ...admin.webhook_service import handle_wati_payload
from ...core.database import get_crm_store
from ...core.documents import DocumentStore


router = APIRouter(prefix="/webhooks", tags=["Webhooks"])


@router.post("/wati")
def wati_webhook(body: Any = Body(...), store: DocumentStore = Depends(get_crm_store)):
    return handle_wati_payload(store, body)
