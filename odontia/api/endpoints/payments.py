"""
Payment API endpoints
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_async_session
from odontia.core.auth import CurrentUser, require_staff
from odontia.schemas.financial import PaymentCreate, PaymentResponse
from odontia.services import payment_service

router = APIRouter(tags=["Payments"])


@router.post("/payments", response_model=PaymentResponse, status_code=status.HTTP_201_CREATED)
async def create_payment(
    payment_in: PaymentCreate,
    current_user: CurrentUser = Depends(require_staff),
    db: AsyncSession = Depends(get_async_session),
):
    """
    Record a payment against an invoice

    The amount must be positive and no larger than the invoice balance.
    A payment that clears the balance marks the invoice PAID.
    """
    return await payment_service.record_payment(
        db, current_user.tenant_id, payment_in, created_by=current_user.user_id
    )


@router.get("/payments", response_model=List[PaymentResponse])
async def list_payments(
    patient_id: Optional[int] = Query(None, description="Filter by patient"),
    current_user: CurrentUser = Depends(require_staff),
    db: AsyncSession = Depends(get_async_session),
):
    return await payment_service.list_tenant_payments(db, current_user.tenant_id, patient_id)


@router.get("/payments/{payment_id}", response_model=PaymentResponse)
async def get_payment(
    payment_id: int,
    current_user: CurrentUser = Depends(require_staff),
    db: AsyncSession = Depends(get_async_session),
):
    return await payment_service.get_payment(db, current_user.tenant_id, payment_id)
