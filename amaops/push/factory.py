from __future__ import annotations

from threading import Lock
from typing import Optional

from ..config import Config
from ..core.logging import get_logger
from .base import PushGateway
from .recording import RecordingPushGateway


logger = get_logger(__name__)

_gateway: Optional[PushGateway] = None
_lock = Lock()


def create_push_gateway() -> PushGateway:
    if not Config.use_firestore():
        logger.info("Push delivery is recorded in memory.", extra={"store_backend": Config.STORE_BACKEND})
        return RecordingPushGateway()

    from ..core.database import AMA_APP_NAME, get_firebase_app
    from .fcm import FCMPushGateway

    return FCMPushGateway(get_firebase_app(AMA_APP_NAME))


def get_push_gateway() -> PushGateway:
    global _gateway
    with _lock:
        if _gateway is None:
            _gateway = create_push_gateway()
        return _gateway


def reset_push_gateway() -> None:
    global _gateway
    with _lock:
        _gateway = None
