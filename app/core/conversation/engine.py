"""
Conversation Engine.

Runs one inbound chat message through the flow: decodes the persisted
state, performs the effect the flow asks for, persists the resulting state
and sends the replies.
"""

import logging
from typing import Union

from app.core.conversation.deps import AppointmentDeps, MessageTransport
from app.core.conversation.flow import (
    Effect,
    EffectOutcome,
    FetchServices,
    FetchSlots,
    Transition,
    resume,
    step,
)
from app.core.conversation.session import SessionData, SessionStore
from app.core.conversation.states import (
    ConversationState,
    decode_state,
    encode_state,
)
from app.core.scheduling.timeutils import format_utc, get_zone

logger = logging.getLogger(__name__)


class ConversationEngine:
    """
    Drives the chat booking conversation for one session at a time.

    Every turn re-persists the session, including turns that stay on the
    same step, so updated_at always reflects the last message.
    """

    def __init__(
        self,
        session_store: SessionStore,
        transport: MessageTransport,
        deps: AppointmentDeps,
    ):
        """Initialize engine.

        Args:
            session_store: Chat session persistence
            transport: Outbound message channel
            deps: Booking facade
        """
        self._sessions = session_store
        self._transport = transport
        self._deps = deps

    async def handle_message(self, session: SessionData, body: str) -> ConversationState:
        """Process one message and return the state the session moved to.

        Args:
            session: Live session of the sender
            body: Raw message text

        Returns:
            The new conversation state
        """
        state = decode_state(session.current_step, session.context)
        text = body.strip()
        tz = get_zone(await self._deps.get_timezone(session.organization_id))

        result: Union[Transition, Effect] = step(state, text, tz)
        if isinstance(result, Transition):
            transition = result
        else:
            outcome = await self._perform(session, result)
            transition = resume(state, result, outcome, tz)

        current_step, context = encode_state(transition.state)
        await self._sessions.update(session.id, current_step, context)

        for message in transition.messages:
            await self._transport.send_text(session.phone_number, message)

        logger.debug(
            f"Chat turn | Session: {session.id} | "
            f"{session.current_step} -> {current_step}"
        )
        return transition.state

    async def _perform(self, session: SessionData, effect: Effect) -> EffectOutcome:
        if isinstance(effect, FetchServices):
            return await self._deps.list_services(session.organization_id)

        if isinstance(effect, FetchSlots):
            slots = await self._deps.list_available_slots(
                effect.service_id, effect.iso_date, session.organization_id
            )
            return [format_utc(slot.start_time) for slot in slots]

        # Reserve: any failure sends the user back to date selection
        try:
            result = await self._deps.create_appointment(
                organization_id=session.organization_id,
                service_id=effect.service_id,
                start_time=effect.start_time,
                customer_phone=session.phone_number,
            )
        except Exception as e:
            logger.error(
                f"Chat appointment creation failed | Session: {session.id} | "
                f"Error: {type(e).__name__}"
            )
            return None

        if not result.success or result.appointment is None:
            logger.info(
                f"Chat reservation rejected | Session: {session.id} | "
                f"Code: {result.error_code.value if result.error_code else 'unknown'}"
            )
            return None
        return str(result.appointment.id)
