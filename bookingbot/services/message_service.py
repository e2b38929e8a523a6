from typing import Optional

from bookingbot.logging_config import chat_logger, get_logger
from bookingbot.services.alert_service import alert_warning
from bookingbot.services.conversation_router import ConversationRouter, Dispatch
from bookingbot.services.errors import CompletionFailure
from bookingbot.services.flow_catalog import InboundEvent
from bookingbot.services.order_service import OrderCompletionCoordinator
from bookingbot.services.session_store import SessionStore
from bookingbot.services.state_machine import UniversalState
from bookingbot.services.transport import Connection, InboundMessage

logger = get_logger("message_service")

APOLOGY_TEXT = "⚠️ An error occurred. Please type MENU to restart."


def skip_reason(message: InboundMessage) -> Optional[str]:
    """Why an inbound message is ignored, or None when it should be routed."""
    if not message.has_payload:
        return "empty"
    if message.from_me:
        return "from_me"
    if message.is_group:
        return "group"
    return None


def to_event(message: InboundMessage) -> InboundEvent:
    return InboundEvent(
        text=message.text,
        has_image=message.has_image,
        has_location=message.has_location,
        location=message.location,
        media=message.media,
    )


class MessageHandler:
    """Inbound message → session → router → replies → completion.

    The session is persisted before any reply is sent, and reset to IDLE only
    after a completion has fully succeeded.
    """

    def __init__(self, store: SessionStore, router: ConversationRouter, coordinator: OrderCompletionCoordinator):
        self.store = store
        self.router = router
        self.coordinator = coordinator

    def handle(self, connection: Connection, message: InboundMessage) -> Optional[Dispatch]:
        logger.info(
            "📨 Message received",
            extra={
                "context": {
                    "chat_id": message.chat_id,
                    "from_me": message.from_me,
                    "has_image": message.has_image,
                    "has_location": message.has_location,
                    "message_id": message.message_id,
                }
            },
        )

        reason = skip_reason(message)
        if reason:
            logger.info(f"⏭️ Skipping message: {reason}", extra={"context": {"chat_id": message.chat_id}})
            return None

        try:
            return self._process(connection, message)
        except CompletionFailure as e:
            logger.exception(f"Order completion failed for {message.chat_id}: {e}")
            alert_warning(
                "Order completion failed",
                {"chat_id": message.chat_id, "order": e.order_number, "stage": e.stage, "reason": e.reason},
            )
        except Exception as e:
            logger.exception(f"Error handling message from {message.chat_id}: {e}")
        try:
            connection.send_text(message.chat_id, APOLOGY_TEXT)
        except Exception as send_error:
            logger.error(f"Failed to send error message to {message.chat_id}: {send_error}")
        return None

    def _process(self, connection: Connection, message: InboundMessage) -> Dispatch:
        user_id = message.user_id
        log = chat_logger("message_service", user_id)

        session = self.store.get_or_create(user_id)
        session = self.store.reset_if_expired(session)
        log.debug(f"State for {user_id} is {session.state}")

        dispatch = self.router.dispatch(session, to_event(message))
        if dispatch.mutates:
            session = self.store.update(user_id, dispatch.state or session.state, dispatch.data)

        for text in dispatch.messages:
            connection.send_text(message.chat_id, text)

        if dispatch.completion:
            order = self.coordinator.complete(connection, session, dispatch.completion, message.chat_id)
            self.store.update(user_id, UniversalState.IDLE.value)
            log.info(f"Order {order.order_number} completed", context={"flow": dispatch.completion})

        return dispatch
