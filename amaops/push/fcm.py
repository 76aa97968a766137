from firebase_admin import App, messaging
from firebase_admin.exceptions import FirebaseError

from ..core.logging import get_logger
from .base import APNS_TOPIC, PushError, PushGateway, PushMessage


logger = get_logger(__name__)


def build_message(message: PushMessage) -> messaging.Message:
    return messaging.Message(
        topic=message.topic,
        notification=messaging.Notification(title=message.title, body=message.body),
        data=dict(message.data),
        android=messaging.AndroidConfig(
            priority="high",
            notification=messaging.AndroidNotification(sound="default", priority="high"),
        ),
        apns=messaging.APNSConfig(
            headers={
                "apns-priority": "10",
                "apns-push-type": "alert",
                "apns-topic": APNS_TOPIC,
            },
            payload=messaging.APNSPayload(
                aps=messaging.Aps(
                    alert=messaging.ApsAlert(title=message.title, body=message.body),
                    sound="default",
                    badge=1,
                    content_available=True,
                )
            ),
        ),
    )


class FCMPushGateway(PushGateway):
    """Firebase Cloud Messaging delivery through the mobile-app project."""

    def __init__(self, app: App):
        self.app = app

    def send(self, message: PushMessage) -> str:
        try:
            message_id = messaging.send(build_message(message), app=self.app)
        except FirebaseError as exc:
            logger.warning(
                "FCM send failed.",
                extra={"topic": message.topic, "code": getattr(exc, "code", None)},
            )
            raise PushError(message.topic, str(exc)) from exc
        logger.info("FCM message sent.", extra={"topic": message.topic, "message_id": message_id})
        return message_id
