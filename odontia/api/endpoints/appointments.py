"""
Appointment API endpoints
"""

from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_async_session
from odontia.core.auth import CurrentUser, require_staff
from odontia.models import Appointment, AppointmentStatus, AppointmentType
from odontia.schemas.appointment import (
    AppointmentCreate, AppointmentReschedule, AppointmentResponse, AppointmentUpdate,
    AppointmentStatusUpdate, CalendarBlock,
)
from odontia.services import appointment_service

router = APIRouter(tags=["Appointments"])


def to_appointment_response(appointment: Appointment, overlapping_ids: Optional[List[int]] = None) -> AppointmentResponse:
    response = AppointmentResponse.model_validate(appointment)
    response.patient_name = appointment.patient.full_name if appointment.patient else None
    response.overlapping_ids = overlapping_ids or []
    return response


@router.get("/appointments", response_model=List[AppointmentResponse])
async def list_appointments(
    start: Optional[datetime] = Query(None, description="Window start"),
    end: Optional[datetime] = Query(None, description="Window end"),
    dentist_id: Optional[int] = Query(None, description="Filter by dentist"),
    status_filter: Optional[AppointmentStatus] = Query(None, alias="status"),
    appointment_type: Optional[AppointmentType] = Query(None, alias="type"),
    current_user: CurrentUser = Depends(require_staff),
    db: AsyncSession = Depends(get_async_session),
):
    appointments = await appointment_service.list_appointments(
        db, current_user.tenant_id, start, end, dentist_id, status_filter, appointment_type
    )
    return [to_appointment_response(a) for a in appointments]


@router.get("/appointments/calendar", response_model=List[CalendarBlock])
async def get_calendar(
    start: Optional[datetime] = Query(None, description="Window start"),
    end: Optional[datetime] = Query(None, description="Window end"),
    dentist_id: Optional[int] = Query(None, description="Filter by dentist"),
    status_filter: Optional[AppointmentStatus] = Query(None, alias="status"),
    appointment_type: Optional[AppointmentType] = Query(None, alias="type"),
    current_user: CurrentUser = Depends(require_staff),
    db: AsyncSession = Depends(get_async_session),
):
    """
    Appointments as calendar blocks, colored by status
    """
    appointments = await appointment_service.list_appointments(
        db, current_user.tenant_id, start, end, dentist_id, status_filter, appointment_type
    )
    return appointment_service.calendar_blocks(appointments)


@router.get("/appointments/{appointment_id}", response_model=AppointmentResponse)
async def get_appointment(
    appointment_id: int,
    current_user: CurrentUser = Depends(require_staff),
    db: AsyncSession = Depends(get_async_session),
):
    appointment = await appointment_service.get_appointment(db, current_user.tenant_id, appointment_id)
    return to_appointment_response(appointment)


@router.post("/appointments", response_model=AppointmentResponse, status_code=status.HTTP_201_CREATED)
async def create_appointment(
    appointment_in: AppointmentCreate,
    current_user: CurrentUser = Depends(require_staff),
    db: AsyncSession = Depends(get_async_session),
):
    dentist_id = appointment_in.dentist_id or current_user.user_id
    appointment, overlapping = await appointment_service.create_appointment(
        db, current_user.tenant_id, appointment_in, dentist_id
    )
    return to_appointment_response(appointment, overlapping)


@router.post("/appointments/{appointment_id}/reschedule", response_model=AppointmentResponse)
async def reschedule_appointment(
    appointment_id: int,
    reschedule_in: AppointmentReschedule,
    current_user: CurrentUser = Depends(require_staff),
    db: AsyncSession = Depends(get_async_session),
):
    """
    Move an appointment (calendar drag and drop)

    Overlapping appointments are listed in overlapping_ids and only rejected
    with 409 when overlap enforcement is enabled.
    """
    appointment, overlapping = await appointment_service.reschedule_appointment(
        db,
        current_user.tenant_id,
        appointment_id,
        reschedule_in.start_time,
        reschedule_in.end_time,
        user_id=current_user.user_id,
    )
    return to_appointment_response(appointment, overlapping)


@router.patch("/appointments/{appointment_id}/status", response_model=AppointmentResponse)
async def update_appointment_status(
    appointment_id: int,
    status_in: AppointmentStatusUpdate,
    current_user: CurrentUser = Depends(require_staff),
    db: AsyncSession = Depends(get_async_session),
):
    appointment = await appointment_service.set_appointment_status(
        db, current_user.tenant_id, appointment_id, status_in.status
    )
    return to_appointment_response(appointment)


@router.put("/appointments/{appointment_id}", response_model=AppointmentResponse)
async def update_appointment(
    appointment_id: int,
    appointment_in: AppointmentUpdate,
    current_user: CurrentUser = Depends(require_staff),
    db: AsyncSession = Depends(get_async_session),
):
    appointment = await appointment_service.update_appointment_details(
        db, current_user.tenant_id, appointment_id, appointment_in
    )
    return to_appointment_response(appointment)


@router.delete("/appointments/{appointment_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_appointment(
    appointment_id: int,
    current_user: CurrentUser = Depends(require_staff),
    db: AsyncSession = Depends(get_async_session),
):
    """
    Remove an appointment entirely; use the CANCELLED status to keep it on record
    """
    await appointment_service.delete_appointment(
        db, current_user.tenant_id, appointment_id, user_id=current_user.user_id
    )
    return None
