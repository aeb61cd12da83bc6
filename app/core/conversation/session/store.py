"""
Chat session store with idle-TTL semantics.

A session is live while its updated_at lies within the TTL window. Expired
rows stay readable in storage until sweep() removes them, but find() never
returns them.
"""

import logging
import uuid
from datetime import datetime, timedelta
from typing import Any, Callable, Optional, Protocol

from app.config import settings
from .models import SessionData, _utcnow

logger = logging.getLogger(__name__)


class SessionDb(Protocol):
    """Storage operations the session store depends on."""

    async def find_active_by_phone(
        self,
        phone_number: str,
        organization_id: uuid.UUID,
        ttl_threshold: datetime,
    ) -> Optional[SessionData]:
        ...

    async def create(self, phone_number: str, organization_id: uuid.UUID) -> SessionData:
        ...

    async def update(
        self,
        session_id: uuid.UUID,
        current_step: str,
        context: dict[str, Any],
    ) -> Optional[SessionData]:
        ...

    async def delete_expired(self, ttl_threshold: datetime) -> int:
        ...


class SessionStore:
    """
    Finds, creates and persists chat sessions.

    update() is a full replace of step and context and is the only way a
    session's TTL is renewed.
    """

    def __init__(
        self,
        db: SessionDb,
        ttl_minutes: Optional[int] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        """Initialize store.

        Args:
            db: Session storage
            ttl_minutes: Idle window (defaults to settings, 30 minutes)
            clock: Returns the current UTC instant
        """
        self._db = db
        self._ttl = timedelta(minutes=ttl_minutes or settings.chat_session_ttl_minutes)
        self._clock = clock or _utcnow

    def ttl_threshold(self) -> datetime:
        """Oldest updated_at still considered live."""
        return self._clock() - self._ttl

    async def find(
        self,
        phone_number: str,
        organization_id: uuid.UUID,
    ) -> Optional[SessionData]:
        """Get the live session for a phone number, if any."""
        return await self._db.find_active_by_phone(
            phone_number, organization_id, self.ttl_threshold()
        )

    async def create(self, phone_number: str, organization_id: uuid.UUID) -> SessionData:
        """Start a new session at the welcome step with empty context."""
        session = await self._db.create(phone_number, organization_id)
        logger.debug(f"Chat session created: {session.id}")
        return session

    async def find_or_create(
        self,
        phone_number: str,
        organization_id: uuid.UUID,
    ) -> SessionData:
        """Resolve the live session or start a new one."""
        session = await self.find(phone_number, organization_id)
        if session is None:
            session = await self.create(phone_number, organization_id)
        return session

    async def update(
        self,
        session_id: uuid.UUID,
        current_step: str,
        context: dict[str, Any],
    ) -> Optional[SessionData]:
        """Replace step and context and refresh updated_at."""
        updated = await self._db.update(session_id, current_step, context)
        if updated is None:
            logger.warning(f"Chat session vanished before update: {session_id}")
        return updated

    async def sweep(self) -> int:
        """Delete sessions idle longer than the TTL.

        Returns:
            Number of deleted sessions
        """
        deleted = await self._db.delete_expired(self.ttl_threshold())
        if deleted:
            logger.info(f"Swept {deleted} expired chat sessions")
        return deleted
