from datetime import timedelta
from decimal import Decimal

import pytest
from sqlalchemy import func, select

from conftest import TODAY, make_invoice_data
from odontia.core.exceptions import NotFoundError, ValidationError
from odontia.models import TreatmentItemStatus, TreatmentPlanItem, TreatmentPlanStatus
from odontia.schemas.treatment_plan import TreatmentPlanCreate, TreatmentPlanItemCreate, TreatmentPlanUpdate
from odontia.services import invoice_service, treatment_plan_service


def plan_data(patient_id: int, item_count: int = 4, **overrides) -> TreatmentPlanCreate:
    items = [
        TreatmentPlanItemCreate(
            tooth=str(11 + i),
            procedure_code=f"D{2140 + i}",
            procedure_name=f"Filling {i + 1}",
            estimated_cost=Decimal("120.00"),
        )
        for i in range(item_count)
    ]
    data = {"patient_id": patient_id, "title": "Restorative work", "items": items}
    data.update(overrides)
    return TreatmentPlanCreate(**data)


def test_empty_plan_is_zero_percent():
    plan = treatment_plan_service.build_treatment_plan(1, plan_data(1, item_count=0))
    assert treatment_plan_service.completion_percentage(plan) == 0
    assert plan.total_cost == Decimal("0.00")


def test_build_plan_orders_items_and_sums_cost():
    plan = treatment_plan_service.build_treatment_plan(1, plan_data(1, item_count=3), dentist_id=7)

    assert [item.position for item in plan.items] == [1, 2, 3]
    assert all(item.status == TreatmentItemStatus.PENDING for item in plan.items)
    assert plan.total_cost == Decimal("360.00")
    assert plan.dentist_id == 7
    assert plan.status == TreatmentPlanStatus.DRAFT


def test_completion_counts_only_completed_items():
    plan = treatment_plan_service.build_treatment_plan(1, plan_data(1))
    plan.items[0].status = TreatmentItemStatus.COMPLETED
    plan.items[1].status = TreatmentItemStatus.IN_PROGRESS

    assert treatment_plan_service.completion_percentage(plan) == 25


def test_completion_rounds_half_up():
    plan = treatment_plan_service.build_treatment_plan(1, plan_data(1, item_count=3))
    plan.items[0].status = TreatmentItemStatus.COMPLETED
    assert treatment_plan_service.completion_percentage(plan) == 33

    plan.items[1].status = TreatmentItemStatus.COMPLETED
    assert treatment_plan_service.completion_percentage(plan) == 67


@pytest.mark.parametrize("priority", [0, 6])
def test_priority_out_of_range_rejected(priority):
    data = plan_data(1, item_count=1)
    data.items[0].priority = priority
    with pytest.raises(ValidationError):
        treatment_plan_service.build_treatment_plan(1, data)


def test_negative_cost_rejected():
    data = plan_data(1, item_count=1)
    data.items[0].estimated_cost = Decimal("-1")
    with pytest.raises(ValidationError):
        treatment_plan_service.build_treatment_plan(1, data)


def test_end_before_start_rejected():
    with pytest.raises(ValidationError):
        treatment_plan_service.build_treatment_plan(
            1, plan_data(1, start_date=TODAY, end_date=TODAY - timedelta(days=1))
        )


async def test_item_progress_updates_completion_without_touching_plan_status(db, tenant, patient):
    plan = await treatment_plan_service.create_treatment_plan(
        db, tenant.id, plan_data(patient.id, status=TreatmentPlanStatus.IN_PROGRESS)
    )
    await db.commit()
    item_ids = [item.id for item in plan.items]

    plan = await treatment_plan_service.update_item_status(
        db, tenant.id, plan.id, item_ids[0], TreatmentItemStatus.COMPLETED, actual_cost=Decimal("110")
    )
    assert treatment_plan_service.completion_percentage(plan) == 25
    assert plan.items[0].actual_cost == Decimal("110.00")

    for item_id in item_ids[1:]:
        plan = await treatment_plan_service.update_item_status(
            db, tenant.id, plan.id, item_id, TreatmentItemStatus.COMPLETED
        )
    await db.commit()

    assert treatment_plan_service.completion_percentage(plan) == 100
    # Finishing every procedure does not close the plan
    assert plan.status == TreatmentPlanStatus.IN_PROGRESS


async def test_plan_status_is_operator_controlled(db, tenant, patient):
    plan = await treatment_plan_service.create_treatment_plan(db, tenant.id, plan_data(patient.id))

    plan = await treatment_plan_service.update_plan_status(db, tenant.id, plan.id, TreatmentPlanStatus.COMPLETED)
    assert plan.status == TreatmentPlanStatus.COMPLETED
    assert treatment_plan_service.completion_percentage(plan) == 0


async def test_item_must_belong_to_plan(db, tenant, patient):
    first = await treatment_plan_service.create_treatment_plan(db, tenant.id, plan_data(patient.id, item_count=1))
    second = await treatment_plan_service.create_treatment_plan(db, tenant.id, plan_data(patient.id, item_count=1))
    await db.commit()

    with pytest.raises(NotFoundError):
        await treatment_plan_service.update_item_status(
            db, tenant.id, first.id, second.items[0].id, TreatmentItemStatus.COMPLETED
        )


async def test_negative_actual_cost_rejected(db, tenant, patient):
    plan = await treatment_plan_service.create_treatment_plan(db, tenant.id, plan_data(patient.id, item_count=1))

    with pytest.raises(ValidationError):
        await treatment_plan_service.update_item_status(
            db, tenant.id, plan.id, plan.items[0].id, TreatmentItemStatus.COMPLETED, actual_cost=Decimal("-5")
        )


async def test_plans_are_tenant_scoped(db, tenant, other_tenant, patient):
    plan = await treatment_plan_service.create_treatment_plan(db, tenant.id, plan_data(patient.id))
    await db.commit()

    with pytest.raises(NotFoundError):
        await treatment_plan_service.get_treatment_plan(db, other_tenant.id, plan.id)
    with pytest.raises(NotFoundError):
        await treatment_plan_service.create_treatment_plan(db, other_tenant.id, plan_data(patient.id))
    assert [p.id for p in await treatment_plan_service.list_treatment_plans(db, tenant.id, patient.id)] == [plan.id]


async def test_update_details_leaves_items_and_status(db, tenant, patient):
    plan = await treatment_plan_service.create_treatment_plan(
        db, tenant.id, plan_data(patient.id, status=TreatmentPlanStatus.ACCEPTED)
    )
    item_ids = [item.id for item in plan.items]

    plan = await treatment_plan_service.update_treatment_plan_details(
        db, tenant.id, plan.id,
        TreatmentPlanUpdate(title="Upper arch restoration", diagnosis="Caries 11-14", end_date=TODAY),
    )

    assert plan.title == "Upper arch restoration"
    assert plan.diagnosis == "Caries 11-14"
    assert plan.end_date == TODAY
    assert plan.description is None
    assert plan.status == TreatmentPlanStatus.ACCEPTED
    assert [item.id for item in plan.items] == item_ids
    assert plan.total_cost == Decimal("480.00")


async def test_update_details_checks_dates_against_stored_values(db, tenant, patient):
    plan = await treatment_plan_service.create_treatment_plan(
        db, tenant.id, plan_data(patient.id, start_date=TODAY)
    )

    with pytest.raises(ValidationError):
        await treatment_plan_service.update_treatment_plan_details(
            db, tenant.id, plan.id, TreatmentPlanUpdate(end_date=TODAY - timedelta(days=1))
        )


async def test_delete_plan_removes_items(db, tenant, patient):
    plan = await treatment_plan_service.create_treatment_plan(db, tenant.id, plan_data(patient.id))
    await db.commit()

    await treatment_plan_service.delete_treatment_plan(db, tenant.id, plan.id)
    await db.commit()

    with pytest.raises(NotFoundError):
        await treatment_plan_service.get_treatment_plan(db, tenant.id, plan.id)
    remaining = await db.execute(select(func.count(TreatmentPlanItem.id)))
    assert remaining.scalar() == 0


async def test_delete_plan_referenced_by_invoice_rejected(db, tenant, patient):
    plan = await treatment_plan_service.create_treatment_plan(db, tenant.id, plan_data(patient.id))
    await invoice_service.create_invoice(db, tenant.id, make_invoice_data(patient.id, treatment_plan_id=plan.id))

    with pytest.raises(ValidationError, match="invoices"):
        await treatment_plan_service.delete_treatment_plan(db, tenant.id, plan.id)
