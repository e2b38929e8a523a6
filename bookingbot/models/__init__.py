from bookingbot.models.chat_session import ChatSession

__all__ = [
    "ChatSession",
]
