"""SQLAlchemy implementation of SessionDb."""

import uuid
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.models.database import ChatSession, ChatStep
from .models import SessionData, _utcnow


class SqlSessionDb:
    """Stores chat sessions in the whatsapp_sessions table."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def find_active_by_phone(
        self,
        phone_number: str,
        organization_id: uuid.UUID,
        ttl_threshold: datetime,
    ) -> Optional[SessionData]:
        """Most recently updated session newer than the threshold."""
        async with self._session_factory() as db:
            result = await db.execute(
                select(ChatSession)
                .where(
                    ChatSession.phone_number == phone_number,
                    ChatSession.organization_id == organization_id,
                    ChatSession.updated_at > ttl_threshold,
                )
                .order_by(ChatSession.updated_at.desc())
                .limit(1)
            )
            row = result.scalar_one_or_none()
            return SessionData.from_row(row) if row else None

    async def create(self, phone_number: str, organization_id: uuid.UUID) -> SessionData:
        now = _utcnow()
        row = ChatSession(
            id=uuid.uuid4(),
            phone_number=phone_number,
            organization_id=organization_id,
            current_step=ChatStep.WELCOME.value,
            context={},
            created_at=now,
            updated_at=now,
        )
        async with self._session_factory() as db:
            db.add(row)
            await db.commit()
        return SessionData.from_row(row)

    async def update(
        self,
        session_id: uuid.UUID,
        current_step: str,
        context: dict[str, Any],
    ) -> Optional[SessionData]:
        async with self._session_factory() as db:
            result = await db.execute(
                update(ChatSession)
                .where(ChatSession.id == session_id)
                .values(current_step=current_step, context=context, updated_at=_utcnow())
                .returning(ChatSession)
            )
            row = result.scalar_one_or_none()
            await db.commit()
            return SessionData.from_row(row) if row else None

    async def delete_expired(self, ttl_threshold: datetime) -> int:
        async with self._session_factory() as db:
            result = await db.execute(
                delete(ChatSession).where(ChatSession.updated_at <= ttl_threshold)
            )
            await db.commit()
            return result.rowcount or 0
