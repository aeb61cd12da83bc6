"""Chat session record."""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from app.models.database import ChatSession, ChatStep


def _utcnow() -> datetime:
    """Get current UTC time as timezone-aware datetime."""
    return datetime.now(timezone.utc)


@dataclass
class SessionData:
    """
    One chat conversation between a phone number and an organization.

    current_step and context together form the persisted conversation
    state; see app.core.conversation.states for their shape.
    """

    id: uuid.UUID
    phone_number: str
    organization_id: uuid.UUID
    current_step: str = ChatStep.WELCOME.value
    context: dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=_utcnow)
    updated_at: datetime = field(default_factory=_utcnow)

    @classmethod
    def from_row(cls, row: ChatSession) -> "SessionData":
        """Create from a database row."""
        return cls(
            id=row.id,
            phone_number=row.phone_number,
            organization_id=row.organization_id,
            current_step=row.current_step,
            context=dict(row.context or {}),
            created_at=row.created_at,
            updated_at=row.updated_at,
        )

