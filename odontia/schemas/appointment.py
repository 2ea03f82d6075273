"""
Appointment Pydantic schemas for request/response validation
"""
import datetime
from typing import Optional
from pydantic import BaseModel
from odontia.models import AppointmentStatus, AppointmentType


class AppointmentCreate(BaseModel):
    patient_id: int
    dentist_id: Optional[int] = None  # defaults to the caller
    start_time: datetime.datetime
    end_time: datetime.datetime
    appointment_type: AppointmentType = AppointmentType.CHECKUP
    notes: Optional[str] = None


class AppointmentReschedule(BaseModel):
    start_time: datetime.datetime
    end_time: datetime.datetime


class AppointmentUpdate(BaseModel):
    appointment_type: Optional[AppointmentType] = None
    notes: Optional[str] = None


class AppointmentStatusUpdate(BaseModel):
    status: AppointmentStatus


class AppointmentResponse(BaseModel):
    id: int
    patient_id: int
    dentist_id: int
    start_time: datetime.datetime
    end_time: datetime.datetime
    status: AppointmentStatus
    appointment_type: AppointmentType
    notes: Optional[str]
    created_at: datetime.datetime
    updated_at: Optional[datetime.datetime]

    patient_name: Optional[str] = None
    # Other active appointments of the same dentist overlapping this one
    overlapping_ids: list[int] = []

    class Config:
        from_attributes = True


class CalendarBlock(BaseModel):
    """One appointment as the calendar widget draws it"""
    id: int
    title: str
    start: datetime.datetime
    end: datetime.datetime
    status: AppointmentStatus
    type: AppointmentType
    dentist_id: int
    patient_id: int
    color: str
