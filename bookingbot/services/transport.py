"""Chat transport contract consumed by the supervisor and the message handler."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from bookingbot.logging_config import get_logger

logger = get_logger("transport")

# Close code the gateway reports when the paired device was logged out.
LOGGED_OUT_STATUS = 401

GROUP_SUFFIX = "@g.us"


class ConnectionStatus(str, Enum):
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSED = "closed"


@dataclass(frozen=True)
class InboundMessage:
    chat_id: str
    from_me: bool = False
    text: str = ""
    has_image: bool = False
    location: Optional[dict] = None
    media: Optional[dict] = None
    message_id: Optional[str] = None
    sender: Optional[str] = None

    @property
    def is_group(self) -> bool:
        return GROUP_SUFFIX in self.chat_id

    @property
    def has_location(self) -> bool:
        return self.location is not None

    @property
    def user_id(self) -> str:
        return self.chat_id.split("@")[0]

    @property
    def has_payload(self) -> bool:
        return bool((self.text or "").strip()) or self.has_image or self.has_location


@dataclass(frozen=True)
class ConnectionUpdate:
    status: Optional[ConnectionStatus] = None
    status_code: Optional[int] = None
    qr: Optional[str] = None

    @property
    def logged_out(self) -> bool:
        return self.status == ConnectionStatus.CLOSED and self.status_code == LOGGED_OUT_STATUS


MessageCallback = Callable[[InboundMessage], None]
UpdateCallback = Callable[[ConnectionUpdate], None]


class Connection(ABC):
    """One transport session. Callbacks fire synchronously in registration order."""

    def __init__(self):
        self._message_callbacks: list[MessageCallback] = []
        self._update_callbacks: list[UpdateCallback] = []

    def on_message(self, callback: MessageCallback) -> None:
        self._message_callbacks.append(callback)

    def on_connection_update(self, callback: UpdateCallback) -> None:
        self._update_callbacks.append(callback)

    def emit_message(self, message: InboundMessage) -> None:
        for callback in list(self._message_callbacks):
            callback(message)

    def emit_update(self, update: ConnectionUpdate) -> None:
        logger.debug(
            "Connection update",
            extra={"context": {"status": update.status, "status_code": update.status_code, "qr": bool(update.qr)}},
        )
        for callback in list(self._update_callbacks):
            callback(update)

    @abstractmethod
    def open(self) -> None:
        """Start the session; progress is reported through connection updates."""
        pass

    @abstractmethod
    def close(self) -> None:
        pass

    @abstractmethod
    def send_text(self, chat_id: str, text: str) -> None:
        """Deliver a text message. Raises SendFailure."""
        pass

    @abstractmethod
    def send_image(self, chat_id: str, image: bytes, caption: str) -> None:
        """Deliver an image with caption. Raises SendFailure."""
        pass
