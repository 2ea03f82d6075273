from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

from conftest import TODAY, make_invoice_data
from odontia.models import (
    Appointment, InvoiceStatus, PaymentMethod, SubscriptionStatus,
    SubscriptionTier, Tenant,
)
from odontia.schemas.financial import PaymentCreate
from odontia.services import invoice_service, payment_service, reporting


def test_months_back_crosses_year():
    assert reporting.months_back(date(2026, 2, 15), 0) == date(2026, 2, 1)
    assert reporting.months_back(date(2026, 2, 15), 5) == date(2025, 9, 1)
    assert reporting.months_back(date(2026, 1, 31), 12) == date(2025, 1, 1)


async def test_revenue_metrics_counts_active_tenants_only(db, tenant, other_tenant):
    db.add_all([
        Tenant(name="Enterprise Clinic", subscription_tier=SubscriptionTier.ENTERPRISE,
               subscription_status=SubscriptionStatus.ACTIVE),
        Tenant(name="Lapsed Clinic", subscription_tier=SubscriptionTier.ENTERPRISE,
               subscription_status=SubscriptionStatus.CANCELLED),
    ])
    await db.commit()

    metrics = await reporting.revenue_metrics(db)

    # One ACTIVE PROFESSIONAL (79) plus one ACTIVE ENTERPRISE (199)
    assert metrics.mrr == Decimal("278.00")
    assert metrics.arr == Decimal("3336.00")
    assert metrics.new_tenants_this_month == 2
    by_tier = {entry.tier: entry for entry in metrics.revenue_by_tier}
    assert by_tier[SubscriptionTier.STARTER].count == 0
    assert by_tier[SubscriptionTier.PROFESSIONAL].revenue == Decimal("79.00")
    assert by_tier[SubscriptionTier.ENTERPRISE].count == 1


async def test_platform_stats(db, tenant, other_tenant, patient):
    now = datetime.now(timezone.utc)
    db.add_all([
        Appointment(tenant_id=tenant.id, patient_id=patient.id, dentist_id=7,
                    start_time=now + timedelta(minutes=5), end_time=now + timedelta(minutes=65)),
        Appointment(tenant_id=tenant.id, patient_id=patient.id, dentist_id=7,
                    start_time=now - timedelta(days=70), end_time=now - timedelta(days=70, minutes=-30)),
    ])
    await db.commit()

    stats = await reporting.platform_stats(db)

    assert stats.total_tenants == 2
    assert stats.active_tenants == 1
    assert stats.total_appointments == 2
    assert stats.appointments_this_month == 1
    assert stats.tenants_by_tier == {"STARTER": 1, "PROFESSIONAL": 1, "ENTERPRISE": 0}
    assert stats.tenants_by_status["TRIAL"] == 1
    assert stats.tenants_by_status["ACTIVE"] == 1


async def test_tenant_activity_ranks_by_recent_bookings(db, tenant, other_tenant, patient):
    start = datetime.now(timezone.utc) + timedelta(days=1)
    for offset in range(3):
        db.add(Appointment(tenant_id=tenant.id, patient_id=patient.id, dentist_id=7,
                           start_time=start + timedelta(hours=offset),
                           end_time=start + timedelta(hours=offset, minutes=30)))
    db.add(Appointment(tenant_id=other_tenant.id, patient_id=patient.id, dentist_id=9,
                       start_time=start, end_time=start + timedelta(minutes=30)))
    await db.commit()

    activity = await reporting.tenant_activity(db, days=30, limit=10)

    assert [(a.tenant_id, a.appointment_count) for a in activity] == [(tenant.id, 3), (other_tenant.id, 1)]
    assert activity[0].tenant_name == "Bright Smile Dental"
    assert len(await reporting.tenant_activity(db, days=30, limit=1)) == 1


async def test_invoice_stats(db, tenant, patient):
    paid = await invoice_service.create_invoice(db, tenant.id, make_invoice_data(patient.id))
    await invoice_service.change_invoice_status(db, tenant.id, paid.id, InvoiceStatus.SENT)
    await payment_service.record_payment(
        db, tenant.id,
        PaymentCreate(invoice_id=paid.id, amount=Decimal("136.50"), payment_method=PaymentMethod.CREDIT_CARD,
                      payment_date=datetime.now(timezone.utc)),
    )

    # SENT and past due: counted as overdue without being written back
    late = await invoice_service.create_invoice(
        db, tenant.id,
        make_invoice_data(patient.id, issue_date=TODAY - timedelta(days=20), due_date=TODAY - timedelta(days=5)),
    )
    await invoice_service.change_invoice_status(db, tenant.id, late.id, InvoiceStatus.SENT)

    await invoice_service.create_invoice(db, tenant.id, make_invoice_data(patient.id))

    cancelled = await invoice_service.create_invoice(db, tenant.id, make_invoice_data(patient.id))
    await invoice_service.change_invoice_status(db, tenant.id, cancelled.id, InvoiceStatus.CANCELLED)
    await db.commit()

    stats = await reporting.invoice_stats(db, tenant.id, today=TODAY)

    assert stats.invoice_count == 4
    assert stats.paid_count == 1
    assert stats.overdue_count == 1
    assert stats.pending_count == 1
    assert stats.cancelled_count == 1
    assert stats.total_invoiced == Decimal("409.50")
    assert stats.total_paid == Decimal("136.50")
    assert stats.total_pending == Decimal("273.00")
    assert stats.total_overdue == Decimal("136.50")
    assert late.status == InvoiceStatus.SENT

    assert len(stats.monthly_stats) == 6
    current = stats.monthly_stats[reporting.month_key(TODAY)]
    assert current.count >= 2
    assert sum(bucket.count for bucket in stats.monthly_stats.values()) == 3


async def test_invoice_stats_date_filter(db, tenant, patient):
    await invoice_service.create_invoice(
        db, tenant.id,
        make_invoice_data(patient.id, issue_date=TODAY - timedelta(days=400), due_date=TODAY - timedelta(days=370)),
    )
    await invoice_service.create_invoice(db, tenant.id, make_invoice_data(patient.id))
    await db.commit()

    stats = await reporting.invoice_stats(db, tenant.id, start_date=TODAY - timedelta(days=30), today=TODAY)
    assert stats.invoice_count == 1

    stats = await reporting.invoice_stats(db, tenant.id, end_date=TODAY - timedelta(days=30), today=TODAY)
    assert stats.invoice_count == 1
    assert stats.pending_count == 1
    assert sum(bucket.count for bucket in stats.monthly_stats.values()) == 1
