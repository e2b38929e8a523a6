from bookingbot.services.conversation_router import ConversationRouter, Dispatch
from bookingbot.services.message_service import MessageHandler
from bookingbot.services.session_store import (
    InMemorySessionStore,
    JsonFileSessionStore,
    SessionStore,
    SqlSessionStore,
    UserSession,
    create_session_store,
)
from bookingbot.services.state_machine import (
    UniversalState,
    UnknownStateError,
    is_global_reset,
    needs_name,
)
