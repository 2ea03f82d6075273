"""
Platform administration schemas
"""
from decimal import Decimal
from typing import Dict, List, Optional
from pydantic import BaseModel

from odontia.models import SubscriptionTier


class PlatformStatsResponse(BaseModel):
    total_tenants: int
    active_tenants: int
    total_appointments: int
    appointments_this_month: int
    tenants_by_tier: Dict[str, int]
    tenants_by_status: Dict[str, int]


class TierRevenue(BaseModel):
    tier: SubscriptionTier
    count: int
    revenue: Decimal


class RevenueMetricsResponse(BaseModel):
    """Recurring subscription revenue of ACTIVE tenants"""
    mrr: Decimal
    arr: Decimal
    new_tenants_this_month: int
    revenue_by_tier: List[TierRevenue]


class TenantActivityResponse(BaseModel):
    tenant_id: int
    tenant_name: Optional[str]
    subscription_tier: Optional[SubscriptionTier]
    appointment_count: int
