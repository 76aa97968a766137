from typing import Iterable, List, Optional

from .base import PushError, PushGateway, PushMessage


class RecordingPushGateway(PushGateway):
    """Keeps sent messages in memory; used by the memory backend and in tests."""

    def __init__(self, failing_topics: Optional[Iterable[str]] = None):
        self.sent: List[PushMessage] = []
        self.failing_topics = set(failing_topics or ())

    def send(self, message: PushMessage) -> str:
        if message.topic in self.failing_topics:
            raise PushError(message.topic, f"Delivery to topic {message.topic} failed")
        self.sent.append(message)
        return f"recorded-{len(self.sent)}"
