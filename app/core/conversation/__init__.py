"""
Chat booking conversation.

Usage:
    from app.core.conversation import ConversationEngine, SessionStore

    engine = ConversationEngine(session_store, transport, deps)
    session = await session_store.find_or_create(phone, organization_id)
    await engine.handle_message(session, "1")
"""

from app.core.conversation.deps import (
    AppointmentDeps,
    MessageTransport,
    SqlAppointmentDeps,
)
from app.core.conversation.engine import ConversationEngine
from app.core.conversation.session import SessionData, SessionStore, SqlSessionDb
from app.core.conversation.states import (
    Completed,
    Confirm,
    ConversationState,
    SelectDate,
    SelectService,
    SelectTime,
    ServiceOption,
    Welcome,
    decode_state,
    encode_state,
)

__all__ = [
    # Engine
    "ConversationEngine",
    "AppointmentDeps",
    "MessageTransport",
    "SqlAppointmentDeps",
    # Sessions
    "SessionData",
    "SessionStore",
    "SqlSessionDb",
    # States
    "ConversationState",
    "Welcome",
    "SelectService",
    "SelectDate",
    "SelectTime",
    "Confirm",
    "Completed",
    "ServiceOption",
    "encode_state",
    "decode_state",
]
