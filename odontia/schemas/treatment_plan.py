"""
Treatment plan Pydantic schemas for request/response validation
"""
import datetime
from decimal import Decimal
from typing import List, Optional
from pydantic import BaseModel, Field
from odontia.models import TreatmentPlanStatus, TreatmentItemStatus


class TreatmentPlanItemCreate(BaseModel):
    tooth: Optional[str] = Field(None, max_length=10)
    surface: Optional[str] = Field(None, max_length=20)
    procedure_code: str = Field(..., max_length=20)
    procedure_name: str = Field(..., max_length=200)
    description: Optional[str] = None
    estimated_cost: Decimal
    priority: int = 1
    estimated_duration: Optional[int] = Field(None, ge=0, description="Minutes")
    notes: Optional[str] = None


class TreatmentPlanCreate(BaseModel):
    patient_id: int
    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    diagnosis: Optional[str] = None
    status: TreatmentPlanStatus = TreatmentPlanStatus.DRAFT
    start_date: Optional[datetime.date] = None
    end_date: Optional[datetime.date] = None
    notes: Optional[str] = None
    items: List[TreatmentPlanItemCreate] = []


class TreatmentPlanUpdate(BaseModel):
    """Descriptive fields only; items and status have their own endpoints"""
    title: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = None
    diagnosis: Optional[str] = None
    start_date: Optional[datetime.date] = None
    end_date: Optional[datetime.date] = None
    notes: Optional[str] = None


class TreatmentPlanStatusUpdate(BaseModel):
    status: TreatmentPlanStatus


class TreatmentItemUpdate(BaseModel):
    status: TreatmentItemStatus
    actual_cost: Optional[Decimal] = None


class TreatmentPlanItemResponse(BaseModel):
    id: int
    position: int
    tooth: Optional[str]
    surface: Optional[str]
    procedure_code: str
    procedure_name: str
    description: Optional[str]
    estimated_cost: Decimal
    actual_cost: Optional[Decimal]
    priority: int
    estimated_duration: Optional[int]
    status: TreatmentItemStatus
    notes: Optional[str]

    class Config:
        from_attributes = True


class TreatmentPlanResponse(BaseModel):
    id: int
    patient_id: int
    dentist_id: Optional[int]
    title: str
    description: Optional[str]
    diagnosis: Optional[str]
    status: TreatmentPlanStatus
    total_cost: Decimal
    start_date: Optional[datetime.date]
    end_date: Optional[datetime.date]
    notes: Optional[str]
    created_at: datetime.datetime
    updated_at: Optional[datetime.datetime]
    items: List[TreatmentPlanItemResponse] = []

    # Derived on read
    completion_percentage: int = 0
    patient_name: Optional[str] = None

    class Config:
        from_attributes = True
