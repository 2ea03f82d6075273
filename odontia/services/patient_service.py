"""
Patient lookups shared by billing, planning and scheduling
"""

from sqlalchemy import select, and_
from sqlalchemy.ext.asyncio import AsyncSession

from odontia.core.exceptions import NotFoundError
from odontia.models import Patient


async def get_patient(db: AsyncSession, tenant_id: int, patient_id: int) -> Patient:
    """Patient inside the tenant, or NotFoundError"""
    result = await db.execute(
        select(Patient).filter(
            and_(
                Patient.id == patient_id,
                Patient.tenant_id == tenant_id
            )
        )
    )
    patient = result.scalar_one_or_none()
    if not patient:
        raise NotFoundError("Patient", patient_id)
    return patient
