"""
Treatment plan database models
"""

import enum
from sqlalchemy import (
    Column, Integer, String, Text, Numeric, Date, DateTime,
    ForeignKey, Enum as SQLEnum
)
from sqlalchemy.orm import relationship

from . import BaseModel, utcnow
from database import Base


class TreatmentPlanStatus(str, enum.Enum):
    """Treatment plan status, set by the dentist"""
    DRAFT = "DRAFT"
    PROPOSED = "PROPOSED"
    ACCEPTED = "ACCEPTED"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class TreatmentItemStatus(str, enum.Enum):
    """Progress of a single planned procedure"""
    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"


class TreatmentPlan(BaseModel):
    """Ordered set of procedures proposed for a patient"""
    __tablename__ = "treatment_plans"

    tenant_id = Column(Integer, ForeignKey("tenants.id"), nullable=False, index=True)
    patient_id = Column(Integer, ForeignKey("patients.id"), nullable=False, index=True)
    dentist_id = Column(Integer, nullable=True)
    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    diagnosis = Column(Text, nullable=True)
    status = Column(SQLEnum(TreatmentPlanStatus), nullable=False, default=TreatmentPlanStatus.DRAFT)
    total_cost = Column(Numeric(12, 2), nullable=False, default=0)
    start_date = Column(Date, nullable=True)
    end_date = Column(Date, nullable=True)
    notes = Column(Text, nullable=True)

    # Relationships
    patient = relationship("Patient", back_populates="treatment_plans", lazy="joined")
    items = relationship(
        "TreatmentPlanItem",
        back_populates="treatment_plan",
        cascade="all, delete-orphan",
        order_by="TreatmentPlanItem.position",
        lazy="selectin",
    )
    # Deleting a plan is refused while invoices reference it
    invoices = relationship("Invoice", back_populates="treatment_plan", passive_deletes=True)

    def __repr__(self):
        return f"<TreatmentPlan(id={self.id}, title='{self.title}', status={self.status})>"


class TreatmentPlanItem(Base):
    """A planned procedure; priority is advisory and does not change ordering"""
    __tablename__ = "treatment_plan_items"

    id = Column(Integer, primary_key=True, index=True)
    treatment_plan_id = Column(Integer, ForeignKey("treatment_plans.id"), nullable=False, index=True)
    position = Column(Integer, nullable=False)
    tooth = Column(String(10), nullable=True)
    surface = Column(String(20), nullable=True)
    procedure_code = Column(String(20), nullable=False)
    procedure_name = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    estimated_cost = Column(Numeric(12, 2), nullable=False)
    actual_cost = Column(Numeric(12, 2), nullable=True)
    priority = Column(Integer, nullable=False, default=1)  # 1-5
    estimated_duration = Column(Integer, nullable=True)  # minutes
    status = Column(SQLEnum(TreatmentItemStatus), nullable=False, default=TreatmentItemStatus.PENDING)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), onupdate=utcnow)

    # Relationships
    treatment_plan = relationship("TreatmentPlan", back_populates="items")

    def __repr__(self):
        return f"<TreatmentPlanItem(id={self.id}, procedure='{self.procedure_code}', status={self.status})>"
