"""
Treatment plan API endpoints
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_async_session
from odontia.core.auth import CurrentUser, require_staff
from odontia.models import TreatmentPlan, UserRole
from odontia.schemas.treatment_plan import (
    TreatmentPlanCreate, TreatmentPlanUpdate, TreatmentPlanResponse, TreatmentPlanStatusUpdate,
    TreatmentItemUpdate,
)
from odontia.services import treatment_plan_service

router = APIRouter(tags=["Treatment Plans"])


def to_plan_response(plan: TreatmentPlan) -> TreatmentPlanResponse:
    response = TreatmentPlanResponse.model_validate(plan)
    response.completion_percentage = treatment_plan_service.completion_percentage(plan)
    response.patient_name = plan.patient.full_name if plan.patient else None
    return response


@router.get("/treatment-plans", response_model=List[TreatmentPlanResponse])
async def list_treatment_plans(
    patient_id: Optional[int] = Query(None, description="Filter by patient"),
    current_user: CurrentUser = Depends(require_staff),
    db: AsyncSession = Depends(get_async_session),
):
    plans = await treatment_plan_service.list_treatment_plans(db, current_user.tenant_id, patient_id)
    return [to_plan_response(plan) for plan in plans]


@router.get("/treatment-plans/{plan_id}", response_model=TreatmentPlanResponse)
async def get_treatment_plan(
    plan_id: int,
    current_user: CurrentUser = Depends(require_staff),
    db: AsyncSession = Depends(get_async_session),
):
    plan = await treatment_plan_service.get_treatment_plan(db, current_user.tenant_id, plan_id)
    return to_plan_response(plan)


@router.post("/treatment-plans", response_model=TreatmentPlanResponse, status_code=status.HTTP_201_CREATED)
async def create_treatment_plan(
    plan_in: TreatmentPlanCreate,
    current_user: CurrentUser = Depends(require_staff),
    db: AsyncSession = Depends(get_async_session),
):
    # Plans created by a dentist are assigned to them
    dentist_id = current_user.user_id if current_user.role == UserRole.DENTIST else None
    plan = await treatment_plan_service.create_treatment_plan(
        db, current_user.tenant_id, plan_in, dentist_id=dentist_id
    )
    return to_plan_response(plan)


@router.put("/treatment-plans/{plan_id}", response_model=TreatmentPlanResponse)
async def update_treatment_plan(
    plan_id: int,
    plan_in: TreatmentPlanUpdate,
    current_user: CurrentUser = Depends(require_staff),
    db: AsyncSession = Depends(get_async_session),
):
    """
    Update the plan description; items and status are changed through their own endpoints
    """
    plan = await treatment_plan_service.update_treatment_plan_details(db, current_user.tenant_id, plan_id, plan_in)
    return to_plan_response(plan)


@router.delete("/treatment-plans/{plan_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_treatment_plan(
    plan_id: int,
    current_user: CurrentUser = Depends(require_staff),
    db: AsyncSession = Depends(get_async_session),
):
    await treatment_plan_service.delete_treatment_plan(
        db, current_user.tenant_id, plan_id, user_id=current_user.user_id
    )
    return None


@router.patch("/treatment-plans/{plan_id}/status", response_model=TreatmentPlanResponse)
async def update_treatment_plan_status(
    plan_id: int,
    status_in: TreatmentPlanStatusUpdate,
    current_user: CurrentUser = Depends(require_staff),
    db: AsyncSession = Depends(get_async_session),
):
    plan = await treatment_plan_service.update_plan_status(db, current_user.tenant_id, plan_id, status_in.status)
    return to_plan_response(plan)


@router.patch("/treatment-plans/{plan_id}/items/{item_id}", response_model=TreatmentPlanResponse)
async def update_treatment_item(
    plan_id: int,
    item_id: int,
    item_in: TreatmentItemUpdate,
    current_user: CurrentUser = Depends(require_staff),
    db: AsyncSession = Depends(get_async_session),
):
    """
    Update one procedure's status; the response carries the recomputed completion
    """
    plan = await treatment_plan_service.update_item_status(
        db,
        current_user.tenant_id,
        plan_id,
        item_id,
        item_in.status,
        actual_cost=item_in.actual_cost,
        user_id=current_user.user_id,
    )
    return to_plan_response(plan)
