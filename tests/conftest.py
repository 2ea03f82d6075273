import os

# Point the app at an in-memory database before config/database are imported
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["SECRET_KEY"] = "test-secret-key"
os.environ["ENVIRONMENT"] = "test"

from datetime import timedelta
from decimal import Decimal

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from database import get_db
from main import app
from odontia.core.auth import create_access_token
from odontia.models import (
    Base, Patient, SubscriptionStatus, SubscriptionTier, Tenant, UserRole,
)
from odontia.schemas.financial import InvoiceCreate, InvoiceItemCreate
from odontia.services.invoice_service import today_utc

TODAY = today_utc()


@pytest_asyncio.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def tenant(db):
    tenant = Tenant(
        name="Bright Smile Dental",
        subscription_tier=SubscriptionTier.PROFESSIONAL,
        subscription_status=SubscriptionStatus.ACTIVE,
    )
    db.add(tenant)
    await db.commit()
    return tenant


@pytest_asyncio.fixture
async def other_tenant(db):
    tenant = Tenant(
        name="Downtown Orthodontics",
        subscription_tier=SubscriptionTier.STARTER,
        subscription_status=SubscriptionStatus.TRIAL,
    )
    db.add(tenant)
    await db.commit()
    return tenant


@pytest_asyncio.fixture
async def patient(db, tenant):
    patient = Patient(tenant_id=tenant.id, first_name="Ana", last_name="Lopez", email="ana@example.com")
    db.add(patient)
    await db.commit()
    return patient


def make_invoice_data(patient_id: int, items=None, tax_rate="10", discount_rate="5", **overrides) -> InvoiceCreate:
    """Two cleanings at 50 plus an X-ray at 30: subtotal 130, tax 13, discount 6.50, total 136.50"""
    if items is None:
        items = [
            InvoiceItemCreate(description="Cleaning", quantity=Decimal("2"), unit_price=Decimal("50")),
            InvoiceItemCreate(description="X-ray", quantity=Decimal("1"), unit_price=Decimal("30")),
        ]
    data = {
        "patient_id": patient_id,
        "issue_date": TODAY,
        "due_date": TODAY + timedelta(days=30),
        "tax_rate": Decimal(tax_rate),
        "discount_rate": Decimal(discount_rate),
        "items": items,
    }
    data.update(overrides)
    return InvoiceCreate(**data)


def auth_headers(tenant_id=None, user_id: int = 7, role: UserRole = UserRole.DENTIST) -> dict:
    claims = {"user_id": user_id, "role": role.value}
    if tenant_id is not None:
        claims["tenant_id"] = tenant_id
    return {"Authorization": f"Bearer {create_access_token(claims)}"}


@pytest_asyncio.fixture
async def client(session_factory):
    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest.fixture
def staff_headers(tenant):
    return auth_headers(tenant.id)


@pytest.fixture
def admin_headers():
    return auth_headers(user_id=1, role=UserRole.SUPER_ADMIN)
