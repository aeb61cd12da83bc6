"""
FastAPI dependencies wiring the core components.

Every component is built from the process-wide session factory, so tests can
swap the factory (or any component) through app.dependency_overrides.
"""

import uuid
from typing import Optional

from fastapi import Depends, Header
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.api.errors import ApiError
from app.config import settings
from app.core.conversation import (
    ConversationEngine,
    SessionStore,
    SqlAppointmentDeps,
    SqlSessionDb,
)
from app.core.messaging import InboundDispatcher, SqlOrganizationResolver
from app.core.scheduling import (
    AvailabilityCalculator,
    ReservationTransactor,
    SqlAppointmentStore,
)
from app.infra.database import get_db, get_session_factory
from app.infra.notifications import get_notification_outbox
from app.infra.whatsapp import get_whatsapp_client
from app.models.database import Organization


def get_availability_calculator(
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
) -> AvailabilityCalculator:
    return AvailabilityCalculator(session_factory)


def get_reservation_transactor(
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
) -> ReservationTransactor:
    return ReservationTransactor(
        SqlAppointmentStore(session_factory),
        outbox=get_notification_outbox(),
    )


def build_session_store(session_factory: async_sessionmaker[AsyncSession]) -> SessionStore:
    return SessionStore(SqlSessionDb(session_factory))


def build_inbound_dispatcher(
    session_factory: async_sessionmaker[AsyncSession],
) -> InboundDispatcher:
    """Assemble the chat pipeline on top of one session factory."""
    sessions = build_session_store(session_factory)
    transport = get_whatsapp_client()
    deps = SqlAppointmentDeps(
        session_factory,
        calculator=AvailabilityCalculator(session_factory),
        transactor=ReservationTransactor(
            SqlAppointmentStore(session_factory),
            outbox=get_notification_outbox(),
        ),
    )
    return InboundDispatcher(
        session_store=sessions,
        engine=ConversationEngine(sessions, transport, deps),
        transport=transport,
        resolver=SqlOrganizationResolver(
            session_factory,
            default_organization_id=settings.whatsapp_default_organization_id,
        ),
    )


def get_inbound_dispatcher(
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
) -> InboundDispatcher:
    return build_inbound_dispatcher(session_factory)


async def get_organization_by_slug(
    slug: str,
    db: AsyncSession = Depends(get_db),
) -> Organization:
    """Resolve the {slug} path parameter or raise 404."""
    result = await db.execute(select(Organization).where(Organization.slug == slug))
    organization = result.scalar_one_or_none()
    if organization is None:
        raise ApiError.not_found("Organization not found")
    return organization


async def get_organization_id(
    x_organization_id: Optional[str] = Header(default=None),
) -> uuid.UUID:
    """
    Organization scope of back-office requests.

    Authentication happens in front of this service; the gateway forwards
    the caller's organization in X-Organization-ID.
    """
    if not x_organization_id:
        raise ApiError(401, "UNAUTHORIZED", "Missing X-Organization-ID header")
    try:
        return uuid.UUID(x_organization_id)
    except ValueError:
        raise ApiError.invalid_request("Invalid X-Organization-ID header")
