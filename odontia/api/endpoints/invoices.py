"""
Invoice API endpoints
"""

from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_async_session
from odontia.core.auth import CurrentUser, require_staff
from odontia.models import Invoice, InvoiceStatus
from odontia.schemas.financial import (
    InvoiceCreate, InvoiceUpdate, InvoiceStatusUpdate, InvoiceResponse,
    InvoiceStatsResponse, PaymentResponse,
)
from odontia.services import invoice_service, payment_service, reporting

router = APIRouter(tags=["Invoices"])


def to_invoice_response(invoice: Invoice) -> InvoiceResponse:
    """Serialize an invoice with its read-time overdue projection"""
    today = invoice_service.today_utc()
    response = InvoiceResponse.model_validate(invoice)
    response.is_overdue = invoice_service.is_overdue(invoice, today)
    response.display_status = invoice_service.effective_status(invoice, today)
    response.patient_name = invoice.patient.full_name if invoice.patient else None
    return response


@router.get("/invoices", response_model=List[InvoiceResponse])
async def list_invoices(
    patient_id: Optional[int] = Query(None, description="Filter by patient"),
    status_filter: Optional[InvoiceStatus] = Query(None, alias="status", description="Filter by stored status"),
    current_user: CurrentUser = Depends(require_staff),
    db: AsyncSession = Depends(get_async_session),
):
    invoices = await invoice_service.list_invoices(db, current_user.tenant_id, patient_id, status_filter)
    return [to_invoice_response(invoice) for invoice in invoices]


@router.get("/invoices/stats", response_model=InvoiceStatsResponse)
async def get_invoice_stats(
    start_date: Optional[date] = Query(None, description="Issued on or after"),
    end_date: Optional[date] = Query(None, description="Issued on or before"),
    current_user: CurrentUser = Depends(require_staff),
    db: AsyncSession = Depends(get_async_session),
):
    """
    Invoice totals and per-status counts for the clinic, plus the last six months
    """
    return await reporting.invoice_stats(db, current_user.tenant_id, start_date, end_date)


@router.get("/invoices/{invoice_id}", response_model=InvoiceResponse)
async def get_invoice(
    invoice_id: int,
    current_user: CurrentUser = Depends(require_staff),
    db: AsyncSession = Depends(get_async_session),
):
    invoice = await invoice_service.get_invoice(db, current_user.tenant_id, invoice_id)
    return to_invoice_response(invoice)


@router.post("/invoices", response_model=InvoiceResponse, status_code=status.HTTP_201_CREATED)
async def create_invoice(
    invoice_in: InvoiceCreate,
    current_user: CurrentUser = Depends(require_staff),
    db: AsyncSession = Depends(get_async_session),
):
    """
    Create a DRAFT invoice. Line totals, tax, discount and balance are
    computed server side; any totals sent by the client are ignored.
    """
    invoice = await invoice_service.create_invoice(
        db, current_user.tenant_id, invoice_in, created_by=current_user.user_id
    )
    return to_invoice_response(invoice)


@router.put("/invoices/{invoice_id}", response_model=InvoiceResponse)
async def update_invoice(
    invoice_id: int,
    invoice_in: InvoiceUpdate,
    current_user: CurrentUser = Depends(require_staff),
    db: AsyncSession = Depends(get_async_session),
):
    invoice = await invoice_service.update_invoice_details(db, current_user.tenant_id, invoice_id, invoice_in)
    return to_invoice_response(invoice)


@router.patch("/invoices/{invoice_id}/status", response_model=InvoiceResponse)
async def update_invoice_status(
    invoice_id: int,
    status_in: InvoiceStatusUpdate,
    current_user: CurrentUser = Depends(require_staff),
    db: AsyncSession = Depends(get_async_session),
):
    invoice = await invoice_service.change_invoice_status(
        db, current_user.tenant_id, invoice_id, status_in.status, user_id=current_user.user_id
    )
    return to_invoice_response(invoice)


@router.get("/invoices/{invoice_id}/payments", response_model=List[PaymentResponse])
async def get_invoice_payments(
    invoice_id: int,
    current_user: CurrentUser = Depends(require_staff),
    db: AsyncSession = Depends(get_async_session),
):
    """Payments of an invoice, most recent first"""
    return await payment_service.list_payments(db, current_user.tenant_id, invoice_id)


@router.delete("/invoices/{invoice_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_invoice(
    invoice_id: int,
    current_user: CurrentUser = Depends(require_staff),
    db: AsyncSession = Depends(get_async_session),
):
    """
    Delete a draft invoice without payments
    Issued invoices must be cancelled instead
    """
    await invoice_service.delete_invoice(db, current_user.tenant_id, invoice_id, user_id=current_user.user_id)
    return None
