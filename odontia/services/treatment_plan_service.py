"""
Treatment Plan Service
Plans own an ordered list of procedures. Total cost and completion are
derived from the items; plan status is set by the dentist and never
changes as a side effect of item progress.
"""

from typing import List, Optional

from sqlalchemy import select, and_, func
from sqlalchemy.ext.asyncio import AsyncSession

from odontia.core.exceptions import NotFoundError, ValidationError
from odontia.core.logging import audit_logger
from odontia.models import (
    Invoice, TreatmentPlan, TreatmentPlanItem, TreatmentPlanStatus, TreatmentItemStatus,
)
from odontia.schemas.treatment_plan import TreatmentPlanCreate, TreatmentPlanUpdate
from odontia.services import money
from odontia.services.patient_service import get_patient

MIN_PRIORITY = 1
MAX_PRIORITY = 5


def completion_percentage(plan: TreatmentPlan) -> int:
    """Share of COMPLETED items as a whole percent (0 for an empty plan)"""
    items = list(plan.items)
    completed = sum(1 for item in items if TreatmentItemStatus(item.status) == TreatmentItemStatus.COMPLETED)
    return money.round_percentage(completed, len(items))


def recalculate_total_cost(plan: TreatmentPlan) -> None:
    plan.total_cost = money.sum_money(item.estimated_cost for item in plan.items)


def build_treatment_plan(
    tenant_id: int,
    data: TreatmentPlanCreate,
    dentist_id: Optional[int] = None,
) -> TreatmentPlan:
    """
    Build a plan with items in the order given

    Raises:
        ValidationError: priority outside 1-5, negative cost, end date before start date
    """
    if data.start_date and data.end_date and data.end_date < data.start_date:
        raise ValidationError("End date cannot be before start date")

    items = []
    for position, item in enumerate(data.items, start=1):
        if not MIN_PRIORITY <= item.priority <= MAX_PRIORITY:
            raise ValidationError(f"Priority must be between {MIN_PRIORITY} and {MAX_PRIORITY}")
        cost = money.to_money(item.estimated_cost, "estimated_cost")
        if cost < 0:
            raise ValidationError("estimated_cost cannot be negative")
        items.append(
            TreatmentPlanItem(
                position=position,
                tooth=item.tooth,
                surface=item.surface,
                procedure_code=item.procedure_code,
                procedure_name=item.procedure_name,
                description=item.description,
                estimated_cost=cost,
                priority=item.priority,
                estimated_duration=item.estimated_duration,
                status=TreatmentItemStatus.PENDING,
                notes=item.notes,
            )
        )

    plan = TreatmentPlan(
        tenant_id=tenant_id,
        patient_id=data.patient_id,
        dentist_id=dentist_id,
        title=data.title,
        description=data.description,
        diagnosis=data.diagnosis,
        status=data.status or TreatmentPlanStatus.DRAFT,
        start_date=data.start_date,
        end_date=data.end_date,
        notes=data.notes,
        items=items,
    )
    recalculate_total_cost(plan)
    return plan


async def create_treatment_plan(
    db: AsyncSession,
    tenant_id: int,
    data: TreatmentPlanCreate,
    dentist_id: Optional[int] = None,
) -> TreatmentPlan:
    patient = await get_patient(db, tenant_id, data.patient_id)
    plan = build_treatment_plan(tenant_id, data, dentist_id)
    plan.patient = patient
    db.add(plan)
    await db.flush()
    return plan


async def get_treatment_plan(db: AsyncSession, tenant_id: int, plan_id: int) -> TreatmentPlan:
    result = await db.execute(
        select(TreatmentPlan).filter(
            and_(
                TreatmentPlan.id == plan_id,
                TreatmentPlan.tenant_id == tenant_id
            )
        )
    )
    plan = result.unique().scalar_one_or_none()
    if not plan:
        raise NotFoundError("Treatment plan", plan_id)
    return plan


async def list_treatment_plans(
    db: AsyncSession,
    tenant_id: int,
    patient_id: Optional[int] = None,
) -> List[TreatmentPlan]:
    query = select(TreatmentPlan).filter(TreatmentPlan.tenant_id == tenant_id)
    if patient_id:
        query = query.filter(TreatmentPlan.patient_id == patient_id)
    result = await db.execute(query.order_by(TreatmentPlan.created_at.desc(), TreatmentPlan.id.desc()))
    return list(result.unique().scalars().all())


async def update_plan_status(
    db: AsyncSession,
    tenant_id: int,
    plan_id: int,
    status: TreatmentPlanStatus,
) -> TreatmentPlan:
    """Dentist-controlled status; any value of the enum is accepted"""
    plan = await get_treatment_plan(db, tenant_id, plan_id)
    plan.status = TreatmentPlanStatus(status)
    await db.flush()
    return plan


async def update_item_status(
    db: AsyncSession,
    tenant_id: int,
    plan_id: int,
    item_id: int,
    status: TreatmentItemStatus,
    actual_cost=None,
    user_id: Optional[int] = None,
) -> TreatmentPlan:
    """
    Set one item's progress (and optionally its actual cost)

    The plan status is left alone even when every item is COMPLETED.

    Raises:
        NotFoundError: plan not in the tenant or item not in the plan
        ValidationError: negative actual cost
    """
    plan = await get_treatment_plan(db, tenant_id, plan_id)
    item = next((i for i in plan.items if i.id == item_id), None)
    if item is None:
        raise NotFoundError("Treatment plan item", item_id)

    if actual_cost is not None:
        cost = money.to_money(actual_cost, "actual_cost")
        if cost < 0:
            raise ValidationError("actual_cost cannot be negative")
        item.actual_cost = cost

    old_status = item.status
    item.status = TreatmentItemStatus(status)
    await db.flush()

    audit_logger.log_treatment_item_update(
        tenant_id=tenant_id,
        user_id=user_id,
        plan_id=plan.id,
        item_id=item.id,
        old_status=old_status,
        new_status=item.status,
    )
    return plan


async def update_treatment_plan_details(
    db: AsyncSession,
    tenant_id: int,
    plan_id: int,
    data: TreatmentPlanUpdate,
) -> TreatmentPlan:
    """
    Edit title, description, diagnosis, dates and notes.

    Items, total cost and status are not touched here.

    Raises:
        NotFoundError: plan not in the tenant
        ValidationError: empty title, end date before start date
    """
    plan = await get_treatment_plan(db, tenant_id, plan_id)

    update_data = data.model_dump(exclude_unset=True)
    if "title" in update_data and not update_data["title"]:
        raise ValidationError("Title is required")

    start_date = update_data.get("start_date", plan.start_date)
    end_date = update_data.get("end_date", plan.end_date)
    if start_date and end_date and end_date < start_date:
        raise ValidationError("End date cannot be before start date")

    for field, value in update_data.items():
        setattr(plan, field, value)

    await db.flush()
    return plan


async def delete_treatment_plan(
    db: AsyncSession,
    tenant_id: int,
    plan_id: int,
    user_id: Optional[int] = None,
) -> None:
    """
    Delete a plan and its items

    Raises:
        NotFoundError: plan not in the tenant
        ValidationError: the plan is referenced by invoices
    """
    plan = await get_treatment_plan(db, tenant_id, plan_id)

    invoice_count = await db.execute(
        select(func.count(Invoice.id)).filter(Invoice.treatment_plan_id == plan.id)
    )
    if invoice_count.scalar():
        raise ValidationError("Treatment plan is referenced by invoices and cannot be deleted")

    title, item_count = plan.title, len(plan.items)
    await db.delete(plan)
    await db.flush()

    audit_logger.log_event(
        "treatment_plan_deleted",
        f"Treatment plan '{title}' deleted",
        severity="INFO",
        tenant_id=tenant_id,
        user_id=user_id,
        additional_data={"plan_id": plan_id, "items": item_count},
    )
