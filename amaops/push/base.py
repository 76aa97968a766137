from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Dict


APNS_TOPIC = "com.ama.amaLegalSolutions"
CLICK_ACTION = "FLUTTER_NOTIFICATION_CLICK"


class PushError(RuntimeError):
    def __init__(self, topic: str, message: str):
        super().__init__(message)
        self.topic = topic


@dataclass
class PushMessage:
    topic: str
    title: str
    body: str
    data: Dict[str, str] = field(default_factory=lambda: {"click_action": CLICK_ACTION})


class PushGateway(ABC):
    @abstractmethod
    def send(self, message: PushMessage) -> str:
        """Delivers one topic message and returns the provider message id."""
        pass
