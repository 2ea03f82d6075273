"""
Invoice Service
Owns invoice totals, balance and status. Every mutation of an invoice goes
through this module so derived columns are recomputed in one place.
"""

import logging
import re
from datetime import date, datetime, timezone
from typing import Dict, FrozenSet, List, Optional

from sqlalchemy import select, and_, func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from config import settings
from odontia.core.exceptions import (
    ConflictError, InsufficientBalanceError, InvalidStatusTransitionError,
    NotFoundError, ValidationError,
)
from odontia.core.logging import audit_logger
from odontia.models import Invoice, InvoiceItem, InvoiceStatus, Payment, TreatmentPlan
from odontia.schemas.financial import InvoiceCreate, InvoiceUpdate
from odontia.services import money
from odontia.services.patient_service import get_patient

logger = logging.getLogger(__name__)

# Operator-driven edges. PAID and CANCELLED are terminal.
ALLOWED_TRANSITIONS: Dict[InvoiceStatus, FrozenSet[InvoiceStatus]] = {
    InvoiceStatus.DRAFT: frozenset({InvoiceStatus.SENT, InvoiceStatus.CANCELLED}),
    InvoiceStatus.SENT: frozenset({InvoiceStatus.PAID, InvoiceStatus.OVERDUE, InvoiceStatus.CANCELLED}),
    InvoiceStatus.OVERDUE: frozenset({InvoiceStatus.PAID, InvoiceStatus.CANCELLED}),
    InvoiceStatus.PAID: frozenset(),
    InvoiceStatus.CANCELLED: frozenset(),
}

# Statuses from which a settling payment moves the invoice to PAID
SETTLEABLE_STATUSES = frozenset({InvoiceStatus.DRAFT, InvoiceStatus.SENT, InvoiceStatus.OVERDUE})

_NUMBER_PATTERN = re.compile(r"(\d+)$")


def today_utc() -> date:
    return datetime.now(timezone.utc).date()


# ==================== Aggregate rules ====================

def recalculate(invoice: Invoice) -> None:
    """Re-derive line totals, invoice totals and balance from items, rates and amount paid"""
    totals = money.calculate_totals(
        ((item.quantity, item.unit_price) for item in invoice.items),
        invoice.tax_rate,
        invoice.discount_rate,
    )
    for item in invoice.items:
        item.line_total = money.line_total(item.quantity, item.unit_price)

    amount_paid = money.to_money(invoice.amount_paid or 0)
    invoice.subtotal = totals.subtotal
    invoice.tax_amount = totals.tax_amount
    invoice.discount_amount = totals.discount_amount
    invoice.total = totals.total
    invoice.amount_paid = amount_paid
    invoice.balance = totals.total - amount_paid


def build_invoice(
    tenant_id: int,
    data: InvoiceCreate,
    invoice_number: str,
    created_by: Optional[int] = None,
) -> Invoice:
    """
    Build a DRAFT invoice with computed totals and no payments.

    Raises:
        ValidationError: no items, due date before issue date, negative amounts or rates
    """
    if not data.items:
        raise ValidationError("Invoice must have at least one item")
    if data.due_date < data.issue_date:
        raise ValidationError("Due date cannot be before issue date")

    invoice = Invoice(
        tenant_id=tenant_id,
        patient_id=data.patient_id,
        treatment_plan_id=data.treatment_plan_id,
        created_by=created_by,
        invoice_number=invoice_number,
        status=InvoiceStatus.DRAFT,
        issue_date=data.issue_date,
        due_date=data.due_date,
        tax_rate=money.validate_rate(data.tax_rate, "tax_rate"),
        discount_rate=money.validate_rate(data.discount_rate, "discount_rate"),
        amount_paid=money.ZERO,
        notes=data.notes,
        terms=data.terms,
        items=[
            InvoiceItem(
                position=position,
                description=item.description,
                quantity=money.to_quantity(item.quantity),
                unit_price=money.to_money(item.unit_price, "unit_price"),
            )
            for position, item in enumerate(data.items, start=1)
        ],
    )
    recalculate(invoice)
    return invoice


def transition_status(invoice: Invoice, new_status: InvoiceStatus) -> InvoiceStatus:
    """
    Move the invoice along an allowed edge and return the previous status.

    Raises:
        InvalidStatusTransitionError: same status or edge not in ALLOWED_TRANSITIONS
    """
    new_status = InvoiceStatus(new_status)
    current = InvoiceStatus(invoice.status)
    if new_status == current or new_status not in ALLOWED_TRANSITIONS[current]:
        raise InvalidStatusTransitionError("invoice", current, new_status)
    invoice.status = new_status
    return current


def apply_payment(invoice: Invoice, amount: money.Number) -> bool:
    """
    Add a payment to the running totals. Returns True when it settles the invoice.

    Invoice state is untouched when a check fails.

    Raises:
        ValidationError: non-positive amount, invoice already paid or cancelled
        InsufficientBalanceError: amount exceeds the remaining balance
    """
    amount = money.positive_money(amount)
    status = InvoiceStatus(invoice.status)
    if status == InvoiceStatus.PAID:
        raise ValidationError("Invoice is already paid")
    if status == InvoiceStatus.CANCELLED:
        raise ValidationError("Cannot add payment to cancelled invoice")

    balance = money.to_money(invoice.balance)
    if amount > balance:
        raise InsufficientBalanceError(amount, balance)

    invoice.amount_paid = money.to_money(invoice.amount_paid) + amount
    invoice.balance = money.to_money(invoice.total) - invoice.amount_paid

    if invoice.balance == money.ZERO and status in SETTLEABLE_STATUSES:
        invoice.status = InvoiceStatus.PAID
        return True
    return False


def is_overdue(invoice: Invoice, today: Optional[date] = None) -> bool:
    """A SENT invoice whose due date is strictly in the past"""
    today = today or today_utc()
    return InvoiceStatus(invoice.status) == InvoiceStatus.SENT and invoice.due_date < today


def effective_status(invoice: Invoice, today: Optional[date] = None) -> InvoiceStatus:
    """
    Status shown to users.

    A persisted OVERDUE (manual override) is always shown as OVERDUE, even if
    the due date was later moved forward. Otherwise a past-due SENT invoice
    reads as OVERDUE without being written back.
    """
    status = InvoiceStatus(invoice.status)
    if status == InvoiceStatus.SENT and is_overdue(invoice, today):
        return InvoiceStatus.OVERDUE
    return status


# ==================== Persistence ====================

def format_invoice_number(sequence: int) -> str:
    return f"{settings.INVOICE_NUMBER_PREFIX}-{sequence:06d}"


async def next_invoice_number(db: AsyncSession, tenant_id: int) -> str:
    """Next number in the tenant's sequence (INV-000001, INV-000002, ...)"""
    result = await db.execute(
        select(Invoice.invoice_number)
        .filter(Invoice.tenant_id == tenant_id)
        .order_by(Invoice.id.desc())
        .limit(1)
    )
    last_number = result.scalar_one_or_none()
    sequence = 1
    if last_number:
        match = _NUMBER_PATTERN.search(last_number)
        if match:
            sequence = int(match.group(1)) + 1
        else:
            logger.warning(f"Tenant {tenant_id} has unnumbered invoice '{last_number}', restarting sequence")
    return format_invoice_number(sequence)


async def flush_invoice(db: AsyncSession) -> None:
    """Flush pending invoice writes; a concurrent update of the same row becomes ConflictError"""
    try:
        await db.flush()
    except StaleDataError:
        raise ConflictError("Invoice was modified by another request, please retry")


async def get_invoice(
    db: AsyncSession,
    tenant_id: int,
    invoice_id: int,
    for_update: bool = False,
) -> Invoice:
    """
    Load an invoice inside the tenant.

    for_update takes a row lock (SELECT ... FOR UPDATE) and reloads the
    row even if it is already in the session.
    """
    query = select(Invoice).filter(
        and_(
            Invoice.id == invoice_id,
            Invoice.tenant_id == tenant_id
        )
    )
    if for_update:
        query = query.with_for_update(of=Invoice).execution_options(populate_existing=True)
    result = await db.execute(query)
    invoice = result.unique().scalar_one_or_none()
    if not invoice:
        raise NotFoundError("Invoice", invoice_id)
    return invoice


async def list_invoices(
    db: AsyncSession,
    tenant_id: int,
    patient_id: Optional[int] = None,
    status: Optional[InvoiceStatus] = None,
) -> List[Invoice]:
    """Invoices of a tenant, newest issue date first"""
    query = select(Invoice).filter(Invoice.tenant_id == tenant_id)
    if patient_id:
        query = query.filter(Invoice.patient_id == patient_id)
    if status:
        query = query.filter(Invoice.status == status)
    result = await db.execute(query.order_by(Invoice.issue_date.desc(), Invoice.id.desc()))
    return list(result.unique().scalars().all())


async def create_invoice(
    db: AsyncSession,
    tenant_id: int,
    data: InvoiceCreate,
    created_by: Optional[int] = None,
) -> Invoice:
    """
    Create a DRAFT invoice for a patient of the tenant

    Raises:
        NotFoundError: patient or treatment plan not in the tenant
        ValidationError: see build_invoice
    """
    patient = await get_patient(db, tenant_id, data.patient_id)

    if data.treatment_plan_id:
        plan_result = await db.execute(
            select(TreatmentPlan.id).filter(
                and_(
                    TreatmentPlan.id == data.treatment_plan_id,
                    TreatmentPlan.tenant_id == tenant_id,
                    TreatmentPlan.patient_id == data.patient_id,
                )
            )
        )
        if plan_result.scalar_one_or_none() is None:
            raise NotFoundError("Treatment plan", data.treatment_plan_id)

    invoice_number = await next_invoice_number(db, tenant_id)
    invoice = build_invoice(tenant_id, data, invoice_number, created_by)
    invoice.patient = patient
    db.add(invoice)
    await flush_invoice(db)

    audit_logger.log_invoice_created(
        tenant_id=tenant_id,
        user_id=created_by,
        invoice_id=invoice.id,
        invoice_number=invoice.invoice_number,
        total=invoice.total,
    )
    return invoice


async def update_invoice_details(
    db: AsyncSession,
    tenant_id: int,
    invoice_id: int,
    data: InvoiceUpdate,
) -> Invoice:
    """Edit due date, notes and terms. Items and amounts cannot change after creation."""
    invoice = await get_invoice(db, tenant_id, invoice_id, for_update=True)

    update_data = data.model_dump(exclude_unset=True)
    if "due_date" in update_data:
        due_date = update_data["due_date"]
        if due_date is None:
            raise ValidationError("Due date is required")
        if due_date < invoice.issue_date:
            raise ValidationError("Due date cannot be before issue date")

    for field, value in update_data.items():
        setattr(invoice, field, value)

    await flush_invoice(db)
    return invoice


async def change_invoice_status(
    db: AsyncSession,
    tenant_id: int,
    invoice_id: int,
    new_status: InvoiceStatus,
    user_id: Optional[int] = None,
) -> Invoice:
    """Operator status change through the transition table"""
    invoice = await get_invoice(db, tenant_id, invoice_id, for_update=True)
    old_status = transition_status(invoice, new_status)
    await flush_invoice(db)

    audit_logger.log_invoice_status_change(
        tenant_id=tenant_id,
        user_id=user_id,
        invoice_id=invoice.id,
        old_status=old_status,
        new_status=invoice.status,
    )
    return invoice


async def delete_invoice(
    db: AsyncSession,
    tenant_id: int,
    invoice_id: int,
    user_id: Optional[int] = None,
) -> None:
    """
    Delete a DRAFT invoice that has no payments. Issued invoices are
    cancelled instead so the numbering and the ledger stay intact.

    Raises:
        NotFoundError: invoice not in the tenant
        ValidationError: invoice is not a DRAFT or has payments
    """
    invoice = await get_invoice(db, tenant_id, invoice_id, for_update=True)
    if InvoiceStatus(invoice.status) != InvoiceStatus.DRAFT:
        raise ValidationError("Only draft invoices can be deleted, cancel it instead")

    payment_count = await db.execute(
        select(func.count(Payment.id)).filter(Payment.invoice_id == invoice.id)
    )
    if payment_count.scalar():
        raise ValidationError("Invoice has payments and cannot be deleted")

    invoice_number = invoice.invoice_number
    await db.delete(invoice)
    await flush_invoice(db)

    audit_logger.log_event(
        "invoice_deleted",
        f"Draft invoice {invoice_number} deleted",
        severity="INFO",
        tenant_id=tenant_id,
        user_id=user_id,
        additional_data={"invoice_id": invoice_id},
    )
