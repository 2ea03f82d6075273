"""
Platform administration endpoints (super admin only)
"""

from typing import List

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_async_session
from odontia.core.auth import CurrentUser, require_super_admin
from odontia.schemas.admin import PlatformStatsResponse, RevenueMetricsResponse, TenantActivityResponse
from odontia.services import reporting

router = APIRouter(prefix="/admin", tags=["Admin"])


@router.get("/stats", response_model=PlatformStatsResponse)
async def get_platform_stats(
    current_user: CurrentUser = Depends(require_super_admin),
    db: AsyncSession = Depends(get_async_session),
):
    """
    Tenant and appointment counts across the platform
    """
    return await reporting.platform_stats(db)


@router.get("/revenue", response_model=RevenueMetricsResponse)
async def get_revenue_metrics(
    current_user: CurrentUser = Depends(require_super_admin),
    db: AsyncSession = Depends(get_async_session),
):
    return await reporting.revenue_metrics(db)


@router.get("/tenant-activity", response_model=List[TenantActivityResponse])
async def get_tenant_activity(
    days: int = Query(30, ge=1, le=365, description="Look-back window in days"),
    limit: int = Query(10, ge=1, le=100),
    current_user: CurrentUser = Depends(require_super_admin),
    db: AsyncSession = Depends(get_async_session),
):
    return await reporting.tenant_activity(db, days=days, limit=limit)
