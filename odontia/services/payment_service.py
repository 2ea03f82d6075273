"""
Payment Service
Append-only ledger of payments against invoices. Recording a payment and
updating the invoice balance happen in the same transaction.
"""

from typing import List, Optional

from sqlalchemy import select, and_
from sqlalchemy.ext.asyncio import AsyncSession

from odontia.core.exceptions import NotFoundError, OdontiaError
from odontia.core.logging import audit_logger
from odontia.models import InvoiceStatus, Payment, PaymentStatus
from odontia.schemas.financial import PaymentCreate
from odontia.services import invoice_service, money


async def record_payment(
    db: AsyncSession,
    tenant_id: int,
    data: PaymentCreate,
    created_by: Optional[int] = None,
) -> Payment:
    """
    Record a payment and apply it to the invoice balance

    The invoice row is locked for the rest of the transaction and the
    balance update is guarded by the invoice version, so two concurrent
    payments cannot both pass the balance check.

    Args:
        db: Database session
        tenant_id: Caller's tenant
        data: Payment details
        created_by: ID of the user recording the payment

    Returns:
        The stored payment

    Raises:
        ValidationError: non-positive amount, invoice paid or cancelled
        InsufficientBalanceError: amount exceeds the remaining balance
        NotFoundError: invoice not in the tenant
        ConflictError: invoice changed concurrently
    """
    amount = money.positive_money(data.amount)
    invoice = await invoice_service.get_invoice(db, tenant_id, data.invoice_id, for_update=True)
    old_status = InvoiceStatus(invoice.status)

    try:
        settled = invoice_service.apply_payment(invoice, amount)
    except OdontiaError as e:
        audit_logger.log_payment_rejected(
            tenant_id=tenant_id,
            user_id=created_by,
            invoice_id=invoice.id,
            amount=amount,
            reason=e.message,
        )
        raise

    payment = Payment(
        tenant_id=tenant_id,
        invoice_id=invoice.id,
        patient_id=invoice.patient_id,
        amount=amount,
        payment_method=data.payment_method,
        status=PaymentStatus.COMPLETED,
        payment_date=data.payment_date,
        transaction_id=data.transaction_id,
        reference=data.reference,
        notes=data.notes,
        created_by=created_by,
    )
    db.add(payment)
    await invoice_service.flush_invoice(db)

    audit_logger.log_payment_recorded(
        tenant_id=tenant_id,
        user_id=created_by,
        invoice_id=invoice.id,
        payment_id=payment.id,
        amount=amount,
        balance=invoice.balance,
    )
    if settled:
        audit_logger.log_invoice_status_change(
            tenant_id=tenant_id,
            user_id=created_by,
            invoice_id=invoice.id,
            old_status=old_status,
            new_status=invoice.status,
            reason="settled",
        )
    return payment


async def list_payments(db: AsyncSession, tenant_id: int, invoice_id: int) -> List[Payment]:
    """
    Payments of one invoice, most recent payment date first

    Raises:
        NotFoundError: invoice not in the tenant
    """
    await invoice_service.get_invoice(db, tenant_id, invoice_id)
    result = await db.execute(
        select(Payment)
        .filter(
            and_(
                Payment.invoice_id == invoice_id,
                Payment.tenant_id == tenant_id
            )
        )
        .order_by(Payment.payment_date.desc(), Payment.id.desc())
    )
    return list(result.scalars().all())


async def list_tenant_payments(
    db: AsyncSession,
    tenant_id: int,
    patient_id: Optional[int] = None,
) -> List[Payment]:
    """All payments of a tenant, optionally for one patient"""
    query = select(Payment).filter(Payment.tenant_id == tenant_id)
    if patient_id:
        query = query.filter(Payment.patient_id == patient_id)
    result = await db.execute(query.order_by(Payment.payment_date.desc(), Payment.id.desc()))
    return list(result.scalars().all())


async def get_payment(db: AsyncSession, tenant_id: int, payment_id: int) -> Payment:
    result = await db.execute(
        select(Payment).filter(
            and_(
                Payment.id == payment_id,
                Payment.tenant_id == tenant_id
            )
        )
    )
    payment = result.scalar_one_or_none()
    if not payment:
        raise NotFoundError("Payment", payment_id)
    return payment


async def total_paid(db: AsyncSession, tenant_id: int, invoice_id: int):
    """Sum of completed payments, recomputed from the ledger"""
    payments = await list_payments(db, tenant_id, invoice_id)
    return money.sum_money(p.amount for p in payments if p.status == PaymentStatus.COMPLETED)
