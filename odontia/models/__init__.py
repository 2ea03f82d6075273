"""
Odontia Database Models
SQLAlchemy ORM models for the dental clinic platform
"""

from datetime import datetime, timezone
from sqlalchemy import (
    Column, Integer, String, DateTime, Text,
    ForeignKey, Enum as SQLEnum, Index
)
from sqlalchemy.orm import relationship
from database import Base
import enum


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ==================== Enums ====================

class UserRole(str, enum.Enum):
    """User role enumeration"""
    SUPER_ADMIN = "SUPER_ADMIN"
    ADMIN = "ADMIN"
    DENTIST = "DENTIST"
    ASSISTANT = "ASSISTANT"
    PATIENT = "PATIENT"


class SubscriptionTier(str, enum.Enum):
    """Tenant subscription tier"""
    STARTER = "STARTER"
    PROFESSIONAL = "PROFESSIONAL"
    ENTERPRISE = "ENTERPRISE"


class SubscriptionStatus(str, enum.Enum):
    """Tenant subscription status"""
    TRIAL = "TRIAL"
    ACTIVE = "ACTIVE"
    PAST_DUE = "PAST_DUE"
    CANCELLED = "CANCELLED"


class AppointmentStatus(str, enum.Enum):
    """Appointment status enumeration"""
    SCHEDULED = "SCHEDULED"
    CONFIRMED = "CONFIRMED"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    NO_SHOW = "NO_SHOW"


class AppointmentType(str, enum.Enum):
    """Procedure category booked for an appointment"""
    CHECKUP = "CHECKUP"
    CLEANING = "CLEANING"
    FILLING = "FILLING"
    EXTRACTION = "EXTRACTION"
    ROOT_CANAL = "ROOT_CANAL"
    CROWN = "CROWN"
    IMPLANT = "IMPLANT"
    ORTHODONTICS = "ORTHODONTICS"
    WHITENING = "WHITENING"
    SURGERY = "SURGERY"
    EMERGENCY = "EMERGENCY"
    OTHER = "OTHER"


# ==================== Base Model ====================

class BaseModel(Base):
    """Base model with common fields"""
    __abstract__ = True

    id = Column(Integer, primary_key=True, index=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), onupdate=utcnow)


# ==================== Models ====================

class Tenant(BaseModel):
    """
    Tenant Model
    An isolated clinic account; every patient, invoice and appointment row
    belongs to exactly one tenant
    """
    __tablename__ = "tenants"

    name = Column(String(200), nullable=False, index=True)
    subscription_tier = Column(SQLEnum(SubscriptionTier), nullable=False, default=SubscriptionTier.STARTER)
    subscription_status = Column(SQLEnum(SubscriptionStatus), nullable=False, default=SubscriptionStatus.TRIAL)

    # Relationships
    patients = relationship("Patient", back_populates="tenant", cascade="all, delete-orphan")
    appointments = relationship("Appointment", back_populates="tenant", cascade="all, delete-orphan")
    invoices = relationship("Invoice", back_populates="tenant", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<Tenant(id={self.id}, name='{self.name}', tier={self.subscription_tier})>"


class Patient(BaseModel):
    """
    Patient Model
    Demographics are owned by the patient records module; billing only
    needs the identity and the tenant scope
    """
    __tablename__ = "patients"

    tenant_id = Column(Integer, ForeignKey("tenants.id"), nullable=False, index=True)
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)
    document_id = Column(String(50), nullable=True, index=True)
    email = Column(String(100), nullable=True)
    phone = Column(String(30), nullable=True)

    # Relationships
    tenant = relationship("Tenant", back_populates="patients")
    appointments = relationship("Appointment", back_populates="patient")
    invoices = relationship("Invoice", back_populates="patient")
    treatment_plans = relationship("TreatmentPlan", back_populates="patient")

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"

    def __repr__(self):
        return f"<Patient(id={self.id}, name='{self.full_name}')>"


class Appointment(BaseModel):
    """
    Appointment Model
    A booked time range for one patient with one dentist
    """
    __tablename__ = "appointments"
    __table_args__ = (
        Index("ix_appointments_dentist_time", "tenant_id", "dentist_id", "start_time"),
    )

    tenant_id = Column(Integer, ForeignKey("tenants.id"), nullable=False, index=True)
    patient_id = Column(Integer, ForeignKey("patients.id"), nullable=False, index=True)
    dentist_id = Column(Integer, nullable=False)  # user id in the identity service
    start_time = Column(DateTime(timezone=True), nullable=False)
    end_time = Column(DateTime(timezone=True), nullable=False)
    status = Column(SQLEnum(AppointmentStatus), nullable=False, default=AppointmentStatus.SCHEDULED)
    appointment_type = Column(SQLEnum(AppointmentType), nullable=False, default=AppointmentType.CHECKUP)
    notes = Column(Text, nullable=True)

    # Relationships
    tenant = relationship("Tenant", back_populates="appointments")
    patient = relationship("Patient", back_populates="appointments", lazy="joined")

    def __repr__(self):
        return f"<Appointment(id={self.id}, start={self.start_time}, status={self.status})>"


# Import financial models
from odontia.models.financial import (  # noqa: E402
    Invoice, InvoiceItem, InvoiceStatus,
    Payment, PaymentMethod, PaymentStatus,
)

# Import treatment plan models
from odontia.models.treatment import (  # noqa: E402
    TreatmentPlan, TreatmentPlanItem, TreatmentPlanStatus, TreatmentItemStatus,
)

# Export all models
__all__ = [
    "Base",
    "BaseModel",
    "utcnow",
    "UserRole",
    "SubscriptionTier",
    "SubscriptionStatus",
    "AppointmentStatus",
    "AppointmentType",
    "Tenant",
    "Patient",
    "Appointment",
    "Invoice",
    "InvoiceItem",
    "InvoiceStatus",
    "Payment",
    "PaymentMethod",
    "PaymentStatus",
    "TreatmentPlan",
    "TreatmentPlanItem",
    "TreatmentPlanStatus",
    "TreatmentItemStatus",
]
