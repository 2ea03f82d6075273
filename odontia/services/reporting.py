"""
Reporting services: read-only projections over tenants, appointments and invoices.
Nothing here writes to the database.
"""

from collections import OrderedDict
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from typing import Dict, List, Optional

from sqlalchemy import select, func, and_
from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from odontia.models import (
    Appointment, Invoice, InvoiceStatus, SubscriptionStatus, SubscriptionTier, Tenant,
)
from odontia.schemas.admin import (
    PlatformStatsResponse, RevenueMetricsResponse, TenantActivityResponse, TierRevenue,
)
from odontia.schemas.financial import InvoiceStatsResponse, MonthlyInvoiceStats
from odontia.services import money
from odontia.services.invoice_service import effective_status, today_utc

MONTHLY_STATS_MONTHS = 6


def month_start(now: Optional[datetime] = None) -> datetime:
    now = now or datetime.now(timezone.utc)
    return now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)


def months_back(day: date, months: int) -> date:
    """First day of the month `months` before the month of `day`"""
    year, month = day.year, day.month - months
    while month <= 0:
        month += 12
        year -= 1
    return date(year, month, 1)


def month_key(day: date) -> str:
    return f"{day.year}-{day.month:02d}"


async def _count(db: AsyncSession, query) -> int:
    result = await db.execute(query)
    return result.scalar() or 0


# ==================== Platform (super admin) ====================

async def platform_stats(db: AsyncSession) -> PlatformStatsResponse:
    this_month_start = month_start()

    total_tenants = await _count(db, select(func.count(Tenant.id)))
    active_tenants = await _count(
        db, select(func.count(Tenant.id)).filter(Tenant.subscription_status == SubscriptionStatus.ACTIVE)
    )
    total_appointments = await _count(db, select(func.count(Appointment.id)))
    appointments_this_month = await _count(
        db, select(func.count(Appointment.id)).filter(Appointment.start_time >= this_month_start)
    )

    tenants_by_tier = {tier.value: 0 for tier in SubscriptionTier}
    tier_result = await db.execute(
        select(Tenant.subscription_tier, func.count(Tenant.id)).group_by(Tenant.subscription_tier)
    )
    for tier, count in tier_result.all():
        tenants_by_tier[SubscriptionTier(tier).value] = count

    tenants_by_status = {s.value: 0 for s in SubscriptionStatus}
    status_result = await db.execute(
        select(Tenant.subscription_status, func.count(Tenant.id)).group_by(Tenant.subscription_status)
    )
    for subscription_status, count in status_result.all():
        tenants_by_status[SubscriptionStatus(subscription_status).value] = count

    return PlatformStatsResponse(
        total_tenants=total_tenants,
        active_tenants=active_tenants,
        total_appointments=total_appointments,
        appointments_this_month=appointments_this_month,
        tenants_by_tier=tenants_by_tier,
        tenants_by_status=tenants_by_status,
    )


async def revenue_metrics(db: AsyncSession) -> RevenueMetricsResponse:
    """
    Monthly and annual recurring revenue from ACTIVE tenants at list price.
    Trial, past-due and cancelled tenants contribute nothing.
    """
    pricing = settings.tier_pricing()
    active = Tenant.subscription_status == SubscriptionStatus.ACTIVE

    result = await db.execute(
        select(Tenant.subscription_tier, func.count(Tenant.id))
        .filter(active)
        .group_by(Tenant.subscription_tier)
    )
    counts: Dict[str, int] = {tier.value: 0 for tier in SubscriptionTier}
    for tier, count in result.all():
        counts[SubscriptionTier(tier).value] = count

    revenue_by_tier = [
        TierRevenue(
            tier=tier,
            count=counts[tier.value],
            revenue=money.to_money(counts[tier.value] * Decimal(pricing.get(tier.value, 0))),
        )
        for tier in SubscriptionTier
    ]
    mrr = money.sum_money(entry.revenue for entry in revenue_by_tier)

    new_tenants_this_month = await _count(
        db,
        select(func.count(Tenant.id)).filter(and_(active, Tenant.created_at >= month_start())),
    )

    return RevenueMetricsResponse(
        mrr=mrr,
        arr=money.to_money(mrr * 12),
        new_tenants_this_month=new_tenants_this_month,
        revenue_by_tier=revenue_by_tier,
    )


async def tenant_activity(db: AsyncSession, days: int = 30, limit: int = 10) -> List[TenantActivityResponse]:
    """Tenants ranked by appointments booked in the last `days` days"""
    since = datetime.now(timezone.utc) - timedelta(days=days)
    appointment_count = func.count(Appointment.id).label("appointment_count")
    result = await db.execute(
        select(Tenant.id, Tenant.name, Tenant.subscription_tier, appointment_count)
        .join(Appointment, Appointment.tenant_id == Tenant.id)
        .filter(Appointment.created_at >= since)
        .group_by(Tenant.id, Tenant.name, Tenant.subscription_tier)
        .order_by(appointment_count.desc(), Tenant.id)
        .limit(limit)
    )
    return [
        TenantActivityResponse(
            tenant_id=row.id,
            tenant_name=row.name,
            subscription_tier=row.subscription_tier,
            appointment_count=row.appointment_count,
        )
        for row in result.all()
    ]


# ==================== Tenant invoice statistics ====================

def _empty_months(today: date) -> "OrderedDict[str, MonthlyInvoiceStats]":
    buckets = OrderedDict()
    for offset in range(MONTHLY_STATS_MONTHS - 1, -1, -1):
        key = month_key(months_back(today, offset))
        buckets[key] = MonthlyInvoiceStats(invoiced=money.ZERO, paid=money.ZERO, count=0)
    return buckets


async def invoice_stats(
    db: AsyncSession,
    tenant_id: int,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    today: Optional[date] = None,
) -> InvoiceStatsResponse:
    """
    Invoice totals and counts for a tenant, by issue date.

    Overdue follows effective_status, so past-due SENT invoices count as
    overdue. Cancelled invoices are counted but excluded from the amounts.
    Monthly buckets cover the current month and the five before it,
    regardless of the date filter.
    """
    today = today or today_utc()
    columns = (
        Invoice.status, Invoice.due_date, Invoice.issue_date,
        Invoice.total, Invoice.amount_paid, Invoice.balance,
    )

    query = select(*columns).filter(Invoice.tenant_id == tenant_id)
    if start_date:
        query = query.filter(Invoice.issue_date >= start_date)
    if end_date:
        query = query.filter(Invoice.issue_date <= end_date)
    rows = (await db.execute(query)).all()

    total_invoiced = total_paid = total_pending = total_overdue = money.ZERO
    paid_count = pending_count = overdue_count = cancelled_count = 0

    for row in rows:
        status = effective_status(row, today)
        if status == InvoiceStatus.CANCELLED:
            cancelled_count += 1
            continue

        total_invoiced += money.to_money(row.total)
        total_paid += money.to_money(row.amount_paid)
        total_pending += money.to_money(row.balance)

        if status == InvoiceStatus.PAID:
            paid_count += 1
        elif status == InvoiceStatus.OVERDUE:
            overdue_count += 1
            total_overdue += money.to_money(row.balance)
        else:
            pending_count += 1

    monthly_stats = _empty_months(today)
    monthly_rows = (
        await db.execute(
            select(*columns).filter(
                and_(
                    Invoice.tenant_id == tenant_id,
                    Invoice.issue_date >= months_back(today, MONTHLY_STATS_MONTHS - 1),
                    Invoice.status != InvoiceStatus.CANCELLED,
                )
            )
        )
    ).all()
    for row in monthly_rows:
        bucket = monthly_stats.get(month_key(row.issue_date))
        if bucket is None:
            # issued after today
            continue
        bucket.invoiced = money.to_money(bucket.invoiced + row.total)
        bucket.paid = money.to_money(bucket.paid + row.amount_paid)
        bucket.count += 1

    return InvoiceStatsResponse(
        total_invoiced=total_invoiced,
        total_paid=total_paid,
        total_pending=total_pending,
        total_overdue=total_overdue,
        invoice_count=len(rows),
        paid_count=paid_count,
        pending_count=pending_count,
        overdue_count=overdue_count,
        cancelled_count=cancelled_count,
        monthly_stats=dict(monthly_stats),
    )
