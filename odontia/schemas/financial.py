"""
Financial module Pydantic schemas
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Optional, List, Dict
from pydantic import BaseModel, Field

from odontia.models import InvoiceStatus, PaymentMethod, PaymentStatus


# ==================== Invoices ====================

class InvoiceItemCreate(BaseModel):
    """Schema for an invoice line; sign and range checks happen in the calculator"""
    description: str = Field(..., min_length=1, max_length=500, description="Line description")
    quantity: Decimal = Field(default=Decimal("1"), description="Quantity")
    unit_price: Decimal = Field(..., description="Unit price")


class InvoiceItemResponse(BaseModel):
    """Schema for invoice line responses"""
    id: int
    position: int
    description: str
    quantity: Decimal
    unit_price: Decimal
    line_total: Decimal

    class Config:
        from_attributes = True


class InvoiceCreate(BaseModel):
    """Schema for creating an invoice"""
    patient_id: int = Field(..., description="Patient ID")
    treatment_plan_id: Optional[int] = Field(None, description="Related treatment plan ID")
    issue_date: date = Field(..., description="Issue date")
    due_date: date = Field(..., description="Payment due date")
    tax_rate: Decimal = Field(default=Decimal("0"), description="Tax percentage (0-100)")
    discount_rate: Decimal = Field(default=Decimal("0"), description="Discount percentage (0-100)")
    notes: Optional[str] = Field(None, description="Invoice notes")
    terms: Optional[str] = Field(None, description="Payment terms")
    items: List[InvoiceItemCreate] = Field(..., description="Billed lines")


class InvoiceUpdate(BaseModel):
    """Schema for updating an invoice; items and amounts are fixed at creation"""
    due_date: Optional[date] = None
    notes: Optional[str] = None
    terms: Optional[str] = None


class InvoiceStatusUpdate(BaseModel):
    """Operator status change"""
    status: InvoiceStatus


class InvoiceResponse(BaseModel):
    """Schema for invoice responses"""
    id: int
    invoice_number: str
    patient_id: int
    treatment_plan_id: Optional[int] = None
    status: InvoiceStatus
    issue_date: date
    due_date: date
    tax_rate: Decimal
    discount_rate: Decimal
    subtotal: Decimal
    tax_amount: Decimal
    discount_amount: Decimal
    total: Decimal
    amount_paid: Decimal
    balance: Decimal
    notes: Optional[str] = None
    terms: Optional[str] = None
    created_at: datetime
    updated_at: Optional[datetime] = None
    items: List[InvoiceItemResponse] = []

    # Read-time projections
    is_overdue: bool = False
    display_status: Optional[InvoiceStatus] = None
    patient_name: Optional[str] = None

    class Config:
        from_attributes = True


# ==================== Payments ====================

class PaymentCreate(BaseModel):
    """Schema for creating a payment"""
    invoice_id: int = Field(..., description="Invoice ID")
    amount: Decimal = Field(..., description="Payment amount")
    payment_method: PaymentMethod = Field(..., description="Payment method")
    payment_date: datetime = Field(..., description="When the money was received")
    transaction_id: Optional[str] = Field(None, max_length=100, description="Processor transaction id")
    reference: Optional[str] = Field(None, max_length=100, description="Receipt or check reference")
    notes: Optional[str] = Field(None, description="Payment notes")


class PaymentResponse(BaseModel):
    """Schema for payment responses"""
    id: int
    invoice_id: int
    patient_id: int
    amount: Decimal
    payment_method: PaymentMethod
    status: PaymentStatus
    payment_date: datetime
    transaction_id: Optional[str] = None
    reference: Optional[str] = None
    notes: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True


# ==================== Reports ====================

class MonthlyInvoiceStats(BaseModel):
    invoiced: Decimal
    paid: Decimal
    count: int


class InvoiceStatsResponse(BaseModel):
    """Accounts receivable summary for one clinic"""
    total_invoiced: Decimal
    total_paid: Decimal
    total_pending: Decimal
    total_overdue: Decimal
    invoice_count: int
    paid_count: int
    pending_count: int
    overdue_count: int
    cancelled_count: int
    monthly_stats: Dict[str, MonthlyInvoiceStats] = {}
