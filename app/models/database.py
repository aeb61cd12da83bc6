"""
Database Models

SQLAlchemy ORM models for the multi-tenant booking system.
"""

import uuid
from datetime import date, datetime, time
from enum import Enum
from typing import Optional, List

from sqlalchemy import (
    Boolean, Date, DateTime, ForeignKey, Index, Integer, String, Text, Time,
    Enum as SQLEnum, text
)
from sqlalchemy.dialects.postgresql import UUID, JSON
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    """Base class for all database models."""
    pass


class TimestampMixin:
    """Mixin that adds created_at and updated_at timestamp columns."""

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=text("CURRENT_TIMESTAMP"),
        nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=text("CURRENT_TIMESTAMP"),
        nullable=False
    )


class AppointmentStatus(str, Enum):
    """Appointment status enumeration."""
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    COMPLETED = "completed"
    NO_SHOW = "no_show"


class ChatStep(str, Enum):
    """Persisted step of a chat booking conversation."""
    WELCOME = "welcome"
    SELECT_SERVICE = "select_service"
    SELECT_DATE = "select_date"
    SELECT_TIME = "select_time"
    CONFIRM = "confirm"
    COMPLETED = "completed"


class Organization(Base, TimestampMixin):
    """
    Organization model (Tenant).

    Each organization owns its services, time blocks, appointments and
    chat sessions. Its timezone drives every local-time computation.
    """

    __tablename__ = "organizations"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    slug: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    timezone: Mapped[str] = mapped_column(String(64), default="America/Sao_Paulo")
    language: Mapped[str] = mapped_column(String(10), default="en")
    whatsapp_phone_number_id: Mapped[Optional[str]] = mapped_column(
        String(64),
        unique=True,
        nullable=True,
        doc="Receiving WhatsApp phone number id routed to this organization"
    )

    # Relationships
    services: Mapped[List["Service"]] = relationship(
        "Service",
        back_populates="organization"
    )

    def __repr__(self) -> str:
        return f"<Organization(id={self.id}, slug='{self.slug}')>"


class Service(Base, TimestampMixin):
    """
    Service model.

    A bookable offering with a fixed duration. Price is stored in cents.
    """

    __tablename__ = "services"
    __table_args__ = (
        Index("idx_service_organization", "organization_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4
    )
    organization_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    duration_minutes: Mapped[int] = mapped_column(Integer, nullable=False)
    price: Mapped[int] = mapped_column(Integer, default=0)
    active: Mapped[bool] = mapped_column(Boolean, default=True)

    # Relationships
    organization: Mapped["Organization"] = relationship(
        "Organization",
        back_populates="services"
    )
    schedules: Mapped[List["Schedule"]] = relationship(
        "Schedule",
        back_populates="service"
    )

    def __repr__(self) -> str:
        return f"<Service(id={self.id}, name='{self.name}', duration={self.duration_minutes})>"


class Schedule(Base):
    """
    Weekly schedule of a service for one weekday.

    day_of_week follows 0 = Sunday through 6 = Saturday.
    """

    __tablename__ = "schedules"
    __table_args__ = (
        Index("idx_schedule_service_day", "service_id", "day_of_week"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4
    )
    service_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("services.id", ondelete="CASCADE"),
        nullable=False
    )
    day_of_week: Mapped[int] = mapped_column(Integer, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    # Relationships
    service: Mapped["Service"] = relationship("Service", back_populates="schedules")
    periods: Mapped[List["SchedulePeriod"]] = relationship(
        "SchedulePeriod",
        back_populates="schedule",
        order_by="SchedulePeriod.start_time"
    )


class SchedulePeriod(Base):
    """Bookable window of local time inside a schedule."""

    __tablename__ = "schedule_periods"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4
    )
    schedule_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("schedules.id", ondelete="CASCADE"),
        nullable=False
    )
    start_time: Mapped[time] = mapped_column(Time, nullable=False)
    end_time: Mapped[time] = mapped_column(Time, nullable=False)

    schedule: Mapped["Schedule"] = relationship("Schedule", back_populates="periods")


class TimeBlock(Base, TimestampMixin):
    """
    Organization-wide unavailability on a single local date.

    Applies to every service of the organization.
    """

    __tablename__ = "time_blocks"
    __table_args__ = (
        Index("idx_time_block_organization_date", "organization_id", "date"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4
    )
    organization_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False
    )
    date: Mapped[date] = mapped_column(Date, nullable=False)
    start_time: Mapped[time] = mapped_column(Time, nullable=False)
    end_time: Mapped[time] = mapped_column(Time, nullable=False)
    reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)


class Appointment(Base, TimestampMixin):
    """
    Appointment model.

    start_datetime/end_datetime are UTC instants; end always equals start
    plus the service duration at booking time.
    """

    __tablename__ = "appointments"
    __table_args__ = (
        Index("idx_appointment_organization", "organization_id"),
        Index("idx_appointment_service_start", "service_id", "start_datetime"),
        Index("idx_appointment_status", "organization_id", "status"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4
    )
    organization_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False
    )
    service_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("services.id", ondelete="CASCADE"),
        nullable=False
    )
    start_datetime: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False
    )
    end_datetime: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False
    )
    status: Mapped[AppointmentStatus] = mapped_column(
        SQLEnum(AppointmentStatus),
        default=AppointmentStatus.PENDING
    )
    customer_name: Mapped[str] = mapped_column(String(255), nullable=False)
    customer_email: Mapped[str] = mapped_column(String(255), default="")
    customer_phone: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    language: Mapped[str] = mapped_column(String(10), default="en")
    management_token: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        unique=True,
        nullable=False,
        default=uuid.uuid4
    )
    reminder_sent_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True
    )

    # Relationships
    service: Mapped["Service"] = relationship("Service")

    def __repr__(self) -> str:
        return (
            f"<Appointment(id={self.id}, service_id={self.service_id}, "
            f"start={self.start_datetime}, status={self.status.value})>"
        )


class ChatSession(Base, TimestampMixin):
    """
    Chat session model.

    One live conversation per (phone_number, organization_id). updated_at
    drives the idle TTL; context holds the versioned conversation record.
    """

    __tablename__ = "whatsapp_sessions"
    __table_args__ = (
        Index("idx_chat_session_phone_org", "phone_number", "organization_id"),
        Index("idx_chat_session_updated", "updated_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4
    )
    phone_number: Mapped[str] = mapped_column(String(50), nullable=False)
    organization_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False
    )
    current_step: Mapped[str] = mapped_column(
        String(32),
        default=ChatStep.WELCOME.value,
        nullable=False
    )
    context: Mapped[dict] = mapped_column(JSON, default=dict)

    def __repr__(self) -> str:
        return f"<ChatSession(id={self.id}, step='{self.current_step}')>"
