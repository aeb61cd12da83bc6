"""
Inbound Dispatcher.

Turns one authenticated webhook batch into conversation turns. Messages are
handled strictly in batch order; a failing message is logged with its id and
does not stop the rest of the batch.
"""

import logging
import uuid
from dataclasses import dataclass
from typing import Optional, Protocol

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.conversation.deps import MessageTransport
from app.core.conversation.engine import ConversationEngine
from app.core.conversation.session import SessionStore
from app.core.messaging.payloads import (
    ExtractedMessage,
    WebhookPayload,
    extract_messages,
    extract_statuses,
)
from app.models.database import Organization

logger = logging.getLogger(__name__)


class OrganizationResolver(Protocol):
    """Maps a receiving phone number id to the organization it serves."""

    async def resolve(self, phone_number_id: Optional[str]) -> Optional[uuid.UUID]:
        ...


class SqlOrganizationResolver:
    """
    Resolves organizations from organizations.whatsapp_phone_number_id.

    Falls back to the configured default organization, then to the first
    organization created.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        default_organization_id: Optional[str] = None,
    ):
        self._session_factory = session_factory
        self._default = uuid.UUID(default_organization_id) if default_organization_id else None

    async def resolve(self, phone_number_id: Optional[str]) -> Optional[uuid.UUID]:
        async with self._session_factory() as db:
            if phone_number_id:
                result = await db.execute(
                    select(Organization.id).where(
                        Organization.whatsapp_phone_number_id == phone_number_id
                    )
                )
                organization_id = result.scalar_one_or_none()
                if organization_id is not None:
                    return organization_id

            if self._default is not None:
                return self._default

            result = await db.execute(
                select(Organization.id).order_by(Organization.created_at).limit(1)
            )
            return result.scalar_one_or_none()


@dataclass
class DispatchReport:
    """Counts for one processed batch."""

    received: int = 0
    handled: int = 0
    failed: int = 0
    skipped: int = 0
    statuses: int = 0


class InboundDispatcher:
    """Routes each inbound message to its session and the conversation engine."""

    def __init__(
        self,
        session_store: SessionStore,
        engine: ConversationEngine,
        transport: MessageTransport,
        resolver: OrganizationResolver,
    ):
        """Initialize dispatcher.

        Args:
            session_store: Chat session persistence
            engine: Conversation engine
            transport: Used for best-effort read receipts
            resolver: Receiving phone number id -> organization
        """
        self._sessions = session_store
        self._engine = engine
        self._transport = transport
        self._resolver = resolver

    async def dispatch(self, payload: WebhookPayload) -> DispatchReport:
        """Process a whole batch.

        Args:
            payload: Parsed, signature-verified webhook batch

        Returns:
            DispatchReport with per-outcome counts
        """
        messages = extract_messages(payload)
        statuses = extract_statuses(payload)
        report = DispatchReport(received=len(messages), statuses=len(statuses))

        if messages:
            logger.info(f"WhatsApp webhook received | Messages: {len(messages)}")

        for status in statuses:
            logger.info(f"WhatsApp delivery status | Message: {status.id} | Status: {status.status}")

        for message in messages:
            outcome = await self._handle(message)
            if outcome is True:
                report.handled += 1
            elif outcome is False:
                report.failed += 1
            else:
                report.skipped += 1

        return report

    async def _handle(self, message: ExtractedMessage) -> Optional[bool]:
        """Handle one message. True handled, False failed, None skipped."""
        try:
            await self._transport.mark_as_read(message.message_id)

            organization_id = await self._resolver.resolve(message.phone_number_id)
            if organization_id is None:
                logger.warning(
                    f"No organization for inbound message | Message: {message.message_id}"
                )
                return None

            session = await self._sessions.find(message.sender, organization_id)
            if session is None:
                session = await self._sessions.create(message.sender, organization_id)
                logger.info(f"Chat session created | Session: {session.id} | Step: welcome")

            await self._engine.handle_message(session, message.body)
            return True

        except Exception as e:
            logger.error(
                f"Chat message handling failed | Message: {message.message_id} | "
                f"Error: {type(e).__name__}"
            )
            return False
