"""
Appointment Service
Stores booked time ranges and turns them into calendar blocks. Overlapping
bookings for the same dentist are reported on every write; they are only
refused when ENFORCE_APPOINTMENT_OVERLAP is enabled.
"""

import logging
from datetime import datetime, timezone
from typing import List, Optional, Sequence, Tuple

from sqlalchemy import select, and_
from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from odontia.core.exceptions import ConflictError, NotFoundError, ValidationError
from odontia.core.logging import audit_logger
from odontia.models import Appointment, AppointmentStatus, AppointmentType
from odontia.schemas.appointment import AppointmentCreate, AppointmentUpdate, CalendarBlock
from odontia.services.patient_service import get_patient

logger = logging.getLogger(__name__)

# Appointments in these statuses no longer hold their slot
INACTIVE_STATUSES = (AppointmentStatus.CANCELLED, AppointmentStatus.NO_SHOW)

STATUS_COLORS = {
    AppointmentStatus.SCHEDULED: "#3b82f6",
    AppointmentStatus.CONFIRMED: "#10b981",
    AppointmentStatus.IN_PROGRESS: "#f59e0b",
    AppointmentStatus.COMPLETED: "#6b7280",
    AppointmentStatus.CANCELLED: "#ef4444",
    AppointmentStatus.NO_SHOW: "#dc2626",
}
DEFAULT_COLOR = "#6b7280"


def as_utc(value: datetime) -> datetime:
    """Naive datetimes are taken as UTC"""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def validate_time_range(start_time: datetime, end_time: datetime) -> Tuple[datetime, datetime]:
    start_time, end_time = as_utc(start_time), as_utc(end_time)
    if end_time <= start_time:
        raise ValidationError("End time must be after start time")
    return start_time, end_time


async def find_overlaps(
    db: AsyncSession,
    tenant_id: int,
    dentist_id: int,
    start_time: datetime,
    end_time: datetime,
    exclude_id: Optional[int] = None,
) -> List[int]:
    """IDs of the dentist's active appointments intersecting [start_time, end_time)"""
    query = select(Appointment.id).filter(
        and_(
            Appointment.tenant_id == tenant_id,
            Appointment.dentist_id == dentist_id,
            Appointment.status.notin_(INACTIVE_STATUSES),
            Appointment.start_time < end_time,
            Appointment.end_time > start_time,
        )
    )
    if exclude_id is not None:
        query = query.filter(Appointment.id != exclude_id)
    result = await db.execute(query.order_by(Appointment.start_time))
    return list(result.scalars().all())


async def _check_slot(
    db: AsyncSession,
    tenant_id: int,
    dentist_id: int,
    start_time: datetime,
    end_time: datetime,
    exclude_id: Optional[int] = None,
) -> List[int]:
    overlapping = await find_overlaps(db, tenant_id, dentist_id, start_time, end_time, exclude_id)
    if overlapping:
        if settings.ENFORCE_APPOINTMENT_OVERLAP:
            raise ConflictError("Time slot conflicts with an existing appointment")
        logger.warning(
            f"Dentist {dentist_id} double-booked in tenant {tenant_id}: overlaps appointments {overlapping}"
        )
    return overlapping


async def get_appointment(db: AsyncSession, tenant_id: int, appointment_id: int) -> Appointment:
    result = await db.execute(
        select(Appointment).filter(
            and_(
                Appointment.id == appointment_id,
                Appointment.tenant_id == tenant_id
            )
        )
    )
    appointment = result.unique().scalar_one_or_none()
    if not appointment:
        raise NotFoundError("Appointment", appointment_id)
    return appointment


async def create_appointment(
    db: AsyncSession,
    tenant_id: int,
    data: AppointmentCreate,
    dentist_id: int,
) -> Tuple[Appointment, List[int]]:
    """
    Book a SCHEDULED appointment.

    Returns the appointment and the IDs of the appointments it overlaps.

    Raises:
        ValidationError: end time not after start time
        NotFoundError: patient not in the tenant
        ConflictError: slot taken and overlap enforcement is on
    """
    start_time, end_time = validate_time_range(data.start_time, data.end_time)
    patient = await get_patient(db, tenant_id, data.patient_id)
    overlapping = await _check_slot(db, tenant_id, dentist_id, start_time, end_time)

    appointment = Appointment(
        tenant_id=tenant_id,
        patient_id=patient.id,
        dentist_id=dentist_id,
        start_time=start_time,
        end_time=end_time,
        status=AppointmentStatus.SCHEDULED,
        appointment_type=data.appointment_type,
        notes=data.notes,
    )
    appointment.patient = patient
    db.add(appointment)
    await db.flush()
    return appointment, overlapping


async def reschedule_appointment(
    db: AsyncSession,
    tenant_id: int,
    appointment_id: int,
    start_time: datetime,
    end_time: datetime,
    user_id: Optional[int] = None,
) -> Tuple[Appointment, List[int]]:
    """Move an appointment to a new time range, same rules as booking"""
    start_time, end_time = validate_time_range(start_time, end_time)
    appointment = await get_appointment(db, tenant_id, appointment_id)
    overlapping = await _check_slot(
        db, tenant_id, appointment.dentist_id, start_time, end_time, exclude_id=appointment.id
    )

    appointment.start_time = start_time
    appointment.end_time = end_time
    await db.flush()

    audit_logger.log_appointment_rescheduled(
        tenant_id=tenant_id,
        user_id=user_id,
        appointment_id=appointment.id,
        start_time=start_time,
        end_time=end_time,
        overlaps=len(overlapping),
    )
    return appointment, overlapping


async def set_appointment_status(
    db: AsyncSession,
    tenant_id: int,
    appointment_id: int,
    status: AppointmentStatus,
) -> Appointment:
    appointment = await get_appointment(db, tenant_id, appointment_id)
    appointment.status = AppointmentStatus(status)
    await db.flush()
    return appointment


async def update_appointment_details(
    db: AsyncSession,
    tenant_id: int,
    appointment_id: int,
    data: AppointmentUpdate,
) -> Appointment:
    """Change the type or notes; times go through reschedule and status has its own endpoint"""
    appointment = await get_appointment(db, tenant_id, appointment_id)

    update_data = data.model_dump(exclude_unset=True)
    if "appointment_type" in update_data and update_data["appointment_type"] is None:
        raise ValidationError("Appointment type is required")

    for field, value in update_data.items():
        setattr(appointment, field, value)

    await db.flush()
    return appointment


async def delete_appointment(
    db: AsyncSession,
    tenant_id: int,
    appointment_id: int,
    user_id: Optional[int] = None,
) -> None:
    appointment = await get_appointment(db, tenant_id, appointment_id)
    start_time = appointment.start_time
    await db.delete(appointment)
    await db.flush()

    audit_logger.log_event(
        "appointment_deleted",
        f"Appointment {appointment_id} deleted",
        severity="INFO",
        tenant_id=tenant_id,
        user_id=user_id,
        additional_data={"appointment_id": appointment_id, "start_time": start_time},
    )


async def list_appointments(
    db: AsyncSession,
    tenant_id: int,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    dentist_id: Optional[int] = None,
    status: Optional[AppointmentStatus] = None,
    appointment_type: Optional[AppointmentType] = None,
) -> List[Appointment]:
    """Appointments intersecting the optional window, earliest first"""
    query = select(Appointment).filter(Appointment.tenant_id == tenant_id)
    if start:
        query = query.filter(Appointment.end_time > as_utc(start))
    if end:
        query = query.filter(Appointment.start_time < as_utc(end))
    if dentist_id:
        query = query.filter(Appointment.dentist_id == dentist_id)
    if status:
        query = query.filter(Appointment.status == status)
    if appointment_type:
        query = query.filter(Appointment.appointment_type == appointment_type)
    result = await db.execute(query.order_by(Appointment.start_time, Appointment.id))
    return list(result.unique().scalars().all())


def calendar_block(appointment: Appointment) -> CalendarBlock:
    status = AppointmentStatus(appointment.status)
    patient = appointment.patient
    return CalendarBlock(
        id=appointment.id,
        title=patient.full_name if patient else "Unassigned patient",
        start=appointment.start_time,
        end=appointment.end_time,
        status=status,
        type=appointment.appointment_type,
        dentist_id=appointment.dentist_id,
        patient_id=appointment.patient_id,
        color=STATUS_COLORS.get(status, DEFAULT_COLOR),
    )


def calendar_blocks(appointments: Sequence[Appointment]) -> List[CalendarBlock]:
    return [calendar_block(a) for a in appointments]
