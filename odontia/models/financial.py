"""
Financial module database models
"""

import enum
from sqlalchemy import (
    Column, Integer, String, Text, Numeric, Date, DateTime,
    ForeignKey, Enum as SQLEnum, UniqueConstraint
)
from sqlalchemy.orm import relationship

from . import BaseModel, utcnow
from database import Base


class InvoiceStatus(str, enum.Enum):
    """Invoice status enumeration"""
    DRAFT = "DRAFT"
    SENT = "SENT"
    PAID = "PAID"
    OVERDUE = "OVERDUE"
    CANCELLED = "CANCELLED"


class PaymentMethod(str, enum.Enum):
    """Payment method enumeration"""
    CASH = "CASH"
    CREDIT_CARD = "CREDIT_CARD"
    DEBIT_CARD = "DEBIT_CARD"
    BANK_TRANSFER = "BANK_TRANSFER"
    CHECK = "CHECK"
    OTHER = "OTHER"

    @classmethod
    def _missing_(cls, value):
        # Older clients send TRANSFER and lowercase names
        if isinstance(value, str):
            normalized = value.strip().upper()
            if normalized == "TRANSFER":
                return cls.BANK_TRANSFER
            for member in cls:
                if member.value == normalized:
                    return member
        return None


class PaymentStatus(str, enum.Enum):
    """Payment status enumeration"""
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class Invoice(BaseModel):
    """
    Patient invoices.
    Money columns are derived from the items and rates; only the invoicing
    service writes them.
    """
    __tablename__ = "invoices"
    __table_args__ = (
        UniqueConstraint("tenant_id", "invoice_number", name="uq_invoices_tenant_number"),
    )

    tenant_id = Column(Integer, ForeignKey("tenants.id"), nullable=False, index=True)
    patient_id = Column(Integer, ForeignKey("patients.id"), nullable=False, index=True)
    treatment_plan_id = Column(Integer, ForeignKey("treatment_plans.id"), nullable=True)
    created_by = Column(Integer, nullable=True)
    invoice_number = Column(String(30), nullable=False)
    status = Column(SQLEnum(InvoiceStatus), nullable=False, default=InvoiceStatus.DRAFT)
    issue_date = Column(Date, nullable=False)
    due_date = Column(Date, nullable=False)

    tax_rate = Column(Numeric(5, 2), nullable=False, default=0)  # percent
    discount_rate = Column(Numeric(5, 2), nullable=False, default=0)  # percent
    subtotal = Column(Numeric(12, 2), nullable=False, default=0)
    tax_amount = Column(Numeric(12, 2), nullable=False, default=0)
    discount_amount = Column(Numeric(12, 2), nullable=False, default=0)
    total = Column(Numeric(12, 2), nullable=False, default=0)
    amount_paid = Column(Numeric(12, 2), nullable=False, default=0)
    balance = Column(Numeric(12, 2), nullable=False, default=0)

    notes = Column(Text, nullable=True)
    terms = Column(Text, nullable=True)

    # Bumped on every UPDATE; a concurrent writer that read an older
    # version fails with StaleDataError instead of overwriting the balance
    version = Column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    # Relationships
    tenant = relationship("Tenant", back_populates="invoices")
    patient = relationship("Patient", back_populates="invoices", lazy="joined")
    treatment_plan = relationship("TreatmentPlan", back_populates="invoices")
    items = relationship(
        "InvoiceItem",
        back_populates="invoice",
        cascade="all, delete-orphan",
        order_by="InvoiceItem.position",
        lazy="selectin",
    )
    # Ledger reads go through payment_service.list_payments
    payments = relationship(
        "Payment",
        back_populates="invoice",
        cascade="all, delete-orphan",
        order_by=lambda: [Payment.payment_date.desc(), Payment.id.desc()],
        lazy="raise",
        passive_deletes=True,
    )

    def __repr__(self):
        return f"<Invoice(id={self.id}, number='{self.invoice_number}', status={self.status}, balance={self.balance})>"


class InvoiceItem(Base):
    """Individual line items on an invoice"""
    __tablename__ = "invoice_items"

    id = Column(Integer, primary_key=True, index=True)
    invoice_id = Column(Integer, ForeignKey("invoices.id"), nullable=False, index=True)
    position = Column(Integer, nullable=False)
    description = Column(String(500), nullable=False)
    quantity = Column(Numeric(10, 2), nullable=False, default=1)
    unit_price = Column(Numeric(12, 2), nullable=False)
    line_total = Column(Numeric(12, 2), nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    # Relationships
    invoice = relationship("Invoice", back_populates="items")


class Payment(BaseModel):
    """Payment records for invoices. Append-only: rows are never updated or deleted."""
    __tablename__ = "payments"

    tenant_id = Column(Integer, ForeignKey("tenants.id"), nullable=False, index=True)
    invoice_id = Column(Integer, ForeignKey("invoices.id"), nullable=False, index=True)
    patient_id = Column(Integer, ForeignKey("patients.id"), nullable=False, index=True)
    amount = Column(Numeric(12, 2), nullable=False)
    payment_method = Column(SQLEnum(PaymentMethod), nullable=False)
    status = Column(SQLEnum(PaymentStatus), nullable=False, default=PaymentStatus.COMPLETED)
    payment_date = Column(DateTime(timezone=True), nullable=False)
    transaction_id = Column(String(100), nullable=True)
    reference = Column(String(100), nullable=True)
    notes = Column(Text, nullable=True)
    created_by = Column(Integer, nullable=True)

    # Relationships
    invoice = relationship("Invoice", back_populates="payments")

    def __repr__(self):
        return f"<Payment(id={self.id}, invoice_id={self.invoice_id}, amount={self.amount})>"
