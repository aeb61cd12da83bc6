"""
Public Booking Endpoints

Backs the public booking page: organization profile and services, slot
availability, appointment creation and management by token. Every response
is wrapped in {"data": ...}.
"""

import logging
import re
import uuid
from datetime import date, datetime, timedelta
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.dependencies import (
    get_availability_calculator,
    get_organization_by_slug,
    get_reservation_transactor,
)
from app.api.errors import ApiError
from app.api.middleware.rate_limit import require_rate_limit
from app.config import settings
from app.core.scheduling import (
    AvailabilityCalculator,
    CustomerInfo,
    ReservationError,
    ReservationTransactor,
)
from app.core.scheduling.timeutils import _utcnow, format_utc, get_zone, parse_instant
from app.infra.database import get_db
from app.models.database import Appointment, Organization, Service

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/booking",
    tags=["Booking"],
    dependencies=[Depends(require_rate_limit)],
)

DATE_PATTERN = re.compile(r"[0-9]{4}-[0-9]{2}-[0-9]{2}")

# Management endpoints report past appointments as 422
MANAGE_STATUS_OVERRIDES = {
    ReservationError.PAST_APPOINTMENT: status.HTTP_422_UNPROCESSABLE_ENTITY,
}


# =============================================================================
# Schemas
# =============================================================================


class ServiceResponse(BaseModel):
    id: str
    name: str
    description: Optional[str] = None
    duration_minutes: int
    price: str


class OrganizationResponse(BaseModel):
    name: str
    slug: str
    timezone: str
    language: str
    services: list[ServiceResponse]


class SlotResponse(BaseModel):
    start_time: str
    end_time: str


class AppointmentResponse(BaseModel):
    """Appointment as exposed over the API. Times are UTC ISO-8601."""

    id: str
    service_id: str
    start_time: str
    end_time: str
    status: str
    customer_name: str
    customer_email: str
    customer_phone: Optional[str] = None
    notes: Optional[str] = None
    management_token: Optional[str] = None

    @classmethod
    def from_appointment(
        cls,
        appointment: Appointment,
        include_token: bool = False,
    ) -> "AppointmentResponse":
        return cls(
            id=str(appointment.id),
            service_id=str(appointment.service_id),
            start_time=format_utc(appointment.start_datetime),
            end_time=format_utc(appointment.end_datetime),
            status=appointment.status.value,
            customer_name=appointment.customer_name,
            customer_email=appointment.customer_email,
            customer_phone=appointment.customer_phone,
            notes=appointment.notes,
            management_token=str(appointment.management_token) if include_token else None,
        )


class CreateAppointmentRequest(BaseModel):
    """Booking page submission."""

    service_id: uuid.UUID
    start_time: str = Field(
        ...,
        description="UTC instant with offset",
        examples=["2025-06-02T12:00:00Z"],
    )
    customer_name: str = Field(..., min_length=1, max_length=255)
    customer_email: str = Field(..., min_length=3, max_length=255)
    customer_phone: Optional[str] = Field(default=None, max_length=50)
    notes: Optional[str] = Field(default=None, max_length=2000)
    language: str = Field(default="en", max_length=10)


class RescheduleRequest(BaseModel):
    start_time: str = Field(..., examples=["2025-06-03T13:00:00Z"])


def format_price(cents: int) -> str:
    """Cents to a two-decimal string."""
    return f"{cents / 100:.2f}"


def parse_start_time(value: str) -> datetime:
    try:
        return parse_instant(value)
    except ValueError:
        raise ApiError.invalid_request("start_time must be an ISO-8601 instant with offset")


def parse_booking_date(value: str, organization: Organization) -> date:
    """
    Validate the ?date= parameter against the organization's calendar.

    The date must be well formed, not before today and at most
    booking_max_future_days ahead, all in the organization's timezone.
    """
    if not DATE_PATTERN.fullmatch(value):
        raise ApiError.invalid_request("date must be YYYY-MM-DD")
    try:
        day = date.fromisoformat(value)
    except ValueError:
        raise ApiError.invalid_request("date must be YYYY-MM-DD")

    today = _utcnow().astimezone(get_zone(organization.timezone)).date()
    if day < today:
        raise ApiError.invalid_request("date cannot be in the past")
    if day > today + timedelta(days=settings.booking_max_future_days):
        raise ApiError.invalid_request(
            f"date cannot be more than {settings.booking_max_future_days} days ahead"
        )
    return day


# =============================================================================
# Routes
# =============================================================================


@router.get("/{slug}", summary="Organization booking profile")
async def get_booking_page(
    organization: Organization = Depends(get_organization_by_slug),
    db: AsyncSession = Depends(get_db),
) -> dict:
    """Organization details and its active services."""
    result = await db.execute(
        select(Service)
        .where(Service.organization_id == organization.id, Service.active.is_(True))
        .order_by(Service.name)
    )
    services = [
        ServiceResponse(
            id=str(service.id),
            name=service.name,
            description=service.description,
            duration_minutes=service.duration_minutes,
            price=format_price(service.price),
        )
        for service in result.scalars().all()
    ]
    page = OrganizationResponse(
        name=organization.name,
        slug=organization.slug,
        timezone=organization.timezone,
        language=organization.language,
        services=services,
    )
    return {"data": page.model_dump()}


@router.get("/{slug}/services/{service_id}/slots", summary="Available slots")
async def get_slots(
    service_id: uuid.UUID,
    date_param: str = Query(..., alias="date", description="YYYY-MM-DD"),
    organization: Organization = Depends(get_organization_by_slug),
    calculator: AvailabilityCalculator = Depends(get_availability_calculator),
) -> dict:
    """
    Bookable slots of a service on a date.

    An unknown or inactive service yields an empty list.
    """
    day = parse_booking_date(date_param, organization)
    slots = await calculator.calculate(service_id, day, organization.id)
    return {
        "data": [
            SlotResponse(
                start_time=format_utc(slot.start_time),
                end_time=format_utc(slot.end_time),
            ).model_dump()
            for slot in slots
        ]
    }


@router.post(
    "/{slug}/appointments",
    status_code=status.HTTP_201_CREATED,
    summary="Book an appointment",
    responses={
        201: {"description": "Appointment created"},
        400: {"description": "Invalid request or past start time"},
        404: {"description": "Organization or service not found"},
        409: {"description": "Slot no longer available"},
    },
)
async def create_appointment(
    request: CreateAppointmentRequest,
    organization: Organization = Depends(get_organization_by_slug),
    transactor: ReservationTransactor = Depends(get_reservation_transactor),
) -> dict:
    """Reserve a slot. The returned management token is shown only here."""
    start_time = parse_start_time(request.start_time)

    result = await transactor.create(
        organization_id=organization.id,
        service_id=request.service_id,
        start_time=start_time,
        customer=CustomerInfo(
            name=request.customer_name,
            email=request.customer_email,
            phone=request.customer_phone,
            notes=request.notes,
            language=request.language,
        ),
    )
    if not result.success:
        raise ApiError.from_reservation(result)

    return {
        "data": AppointmentResponse.from_appointment(
            result.appointment, include_token=True
        ).model_dump()
    }


@router.get("/{slug}/manage/{token}", summary="View a booking by token")
async def get_managed_appointment(
    token: uuid.UUID,
    organization: Organization = Depends(get_organization_by_slug),
    transactor: ReservationTransactor = Depends(get_reservation_transactor),
) -> dict:
    appointment = await transactor.find_by_token(organization.id, token)
    if appointment is None:
        raise ApiError.not_found("Appointment not found")
    return {"data": AppointmentResponse.from_appointment(appointment).model_dump()}


@router.post("/{slug}/manage/{token}/cancel", summary="Cancel a booking by token")
async def cancel_managed_appointment(
    token: uuid.UUID,
    organization: Organization = Depends(get_organization_by_slug),
    transactor: ReservationTransactor = Depends(get_reservation_transactor),
) -> dict:
    result = await transactor.cancel_by_token(organization.id, token)
    if not result.success:
        raise ApiError.from_reservation(result, MANAGE_STATUS_OVERRIDES)
    return {"data": AppointmentResponse.from_appointment(result.appointment).model_dump()}


@router.post("/{slug}/manage/{token}/reschedule", summary="Reschedule a booking by token")
async def reschedule_managed_appointment(
    token: uuid.UUID,
    request: RescheduleRequest,
    organization: Organization = Depends(get_organization_by_slug),
    transactor: ReservationTransactor = Depends(get_reservation_transactor),
) -> dict:
    new_start = parse_start_time(request.start_time)

    result = await transactor.reschedule_by_token(organization.id, token, new_start)
    if not result.success:
        raise ApiError.from_reservation(result, MANAGE_STATUS_OVERRIDES)
    return {"data": AppointmentResponse.from_appointment(result.appointment).model_dump()}
