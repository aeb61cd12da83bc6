"""
Back-office Appointment Endpoints

Status transitions and listing for organization staff. Requests are scoped
by the X-Organization-ID header set by the upstream gateway.
"""

import logging
import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.dependencies import get_organization_id, get_reservation_transactor
from app.api.errors import ApiError
from app.api.routes.booking import AppointmentResponse
from app.core.scheduling import ReservationTransactor
from app.core.scheduling.timeutils import parse_instant
from app.infra.database import get_db
from app.models.database import Appointment, AppointmentStatus

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/appointments", tags=["Appointments"])

# Path action -> target status
STATUS_ACTIONS: dict[str, AppointmentStatus] = {
    "confirm": AppointmentStatus.CONFIRMED,
    "complete": AppointmentStatus.COMPLETED,
    "no-show": AppointmentStatus.NO_SHOW,
    "cancel": AppointmentStatus.CANCELLED,
}


@router.get("", summary="List appointments")
async def list_appointments(
    status_filter: Optional[AppointmentStatus] = Query(default=None, alias="status"),
    from_time: Optional[str] = Query(default=None, alias="from"),
    to_time: Optional[str] = Query(default=None, alias="to"),
    organization_id: uuid.UUID = Depends(get_organization_id),
    db: AsyncSession = Depends(get_db),
) -> dict:
    """Appointments of the organization, ordered by start time."""
    query = select(Appointment).where(Appointment.organization_id == organization_id)

    if status_filter is not None:
        query = query.where(Appointment.status == status_filter)
    try:
        if from_time:
            query = query.where(Appointment.start_datetime >= parse_instant(from_time))
        if to_time:
            query = query.where(Appointment.start_datetime < parse_instant(to_time))
    except ValueError:
        raise ApiError.invalid_request("from/to must be ISO-8601 instants with offset")

    result = await db.execute(query.order_by(Appointment.start_datetime))
    return {
        "data": [
            AppointmentResponse.from_appointment(appointment).model_dump()
            for appointment in result.scalars().all()
        ]
    }


@router.post("/{appointment_id}/{action}", summary="Change appointment status")
async def change_status(
    appointment_id: uuid.UUID,
    action: str,
    organization_id: uuid.UUID = Depends(get_organization_id),
    transactor: ReservationTransactor = Depends(get_reservation_transactor),
) -> dict:
    """
    Apply confirm, complete, no-show or cancel.

    Transitions outside the status graph return 422 INVALID_TRANSITION and
    leave the appointment unchanged.
    """
    target = STATUS_ACTIONS.get(action)
    if target is None:
        raise ApiError.not_found(f"Unknown action: {action}")

    result = await transactor.transition_status(appointment_id, organization_id, target)
    if not result.success:
        raise ApiError.from_reservation(result)

    return {"data": AppointmentResponse.from_appointment(result.appointment).model_dump()}
