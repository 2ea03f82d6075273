from datetime import datetime, timedelta, timezone

import pytest

from config import settings
from odontia.core.exceptions import ConflictError, NotFoundError, ValidationError
from odontia.models import AppointmentStatus, AppointmentType
from odontia.schemas.appointment import AppointmentCreate, AppointmentUpdate
from odontia.services import appointment_service

NINE = datetime(2026, 5, 4, 9, 0, tzinfo=timezone.utc)
DENTIST = 7


def booking(patient_id: int, start: datetime, minutes: int = 60, **overrides) -> AppointmentCreate:
    data = {
        "patient_id": patient_id,
        "start_time": start,
        "end_time": start + timedelta(minutes=minutes),
        "appointment_type": AppointmentType.CLEANING,
    }
    data.update(overrides)
    return AppointmentCreate(**data)


async def book(db, tenant, patient, start: datetime, minutes: int = 60, dentist_id: int = DENTIST):
    appointment, overlapping = await appointment_service.create_appointment(
        db, tenant.id, booking(patient.id, start, minutes), dentist_id
    )
    return appointment, overlapping


async def test_create_appointment(db, tenant, patient):
    appointment, overlapping = await book(db, tenant, patient, NINE)

    assert appointment.status == AppointmentStatus.SCHEDULED
    assert appointment.dentist_id == DENTIST
    assert appointment.patient.full_name == "Ana Lopez"
    assert overlapping == []


@pytest.mark.parametrize("minutes", [0, -30])
async def test_end_must_be_after_start(db, tenant, patient, minutes):
    with pytest.raises(ValidationError):
        await book(db, tenant, patient, NINE, minutes=minutes)


async def test_unknown_patient(db, tenant):
    with pytest.raises(NotFoundError):
        await appointment_service.create_appointment(db, tenant.id, booking(999, NINE), DENTIST)


async def test_overlap_is_accepted_by_default(db, tenant, patient, monkeypatch):
    """Known gap: double bookings are stored unless enforcement is switched on"""
    monkeypatch.setattr(settings, "ENFORCE_APPOINTMENT_OVERLAP", False)
    first, _ = await book(db, tenant, patient, NINE)

    second, overlapping = await book(db, tenant, patient, NINE + timedelta(minutes=30))

    assert second.id is not None
    assert overlapping == [first.id]


async def test_reschedule_onto_taken_slot_is_accepted_by_default(db, tenant, patient, monkeypatch):
    monkeypatch.setattr(settings, "ENFORCE_APPOINTMENT_OVERLAP", False)
    first, _ = await book(db, tenant, patient, NINE)
    second, _ = await book(db, tenant, patient, NINE + timedelta(hours=2))

    moved, overlapping = await appointment_service.reschedule_appointment(
        db, tenant.id, second.id, NINE + timedelta(minutes=15), NINE + timedelta(minutes=45)
    )

    assert overlapping == [first.id]
    assert moved.id == second.id


async def test_overlap_rejected_when_enforced(db, tenant, patient, monkeypatch):
    monkeypatch.setattr(settings, "ENFORCE_APPOINTMENT_OVERLAP", True)
    await book(db, tenant, patient, NINE)

    with pytest.raises(ConflictError):
        await book(db, tenant, patient, NINE + timedelta(minutes=59))


async def test_reschedule_rejected_when_enforced(db, tenant, patient, monkeypatch):
    monkeypatch.setattr(settings, "ENFORCE_APPOINTMENT_OVERLAP", True)
    await book(db, tenant, patient, NINE)
    second, _ = await book(db, tenant, patient, NINE + timedelta(hours=2))

    with pytest.raises(ConflictError):
        await appointment_service.reschedule_appointment(
            db, tenant.id, second.id, NINE + timedelta(minutes=30), NINE + timedelta(minutes=90)
        )


async def test_adjacent_other_dentist_and_inactive_do_not_overlap(db, tenant, patient, monkeypatch):
    monkeypatch.setattr(settings, "ENFORCE_APPOINTMENT_OVERLAP", True)
    first, _ = await book(db, tenant, patient, NINE)

    # Back to back
    _, overlapping = await book(db, tenant, patient, NINE + timedelta(hours=1))
    assert overlapping == []

    # Same time, different dentist
    _, overlapping = await book(db, tenant, patient, NINE, dentist_id=DENTIST + 1)
    assert overlapping == []

    # A cancelled booking frees the slot
    await appointment_service.set_appointment_status(db, tenant.id, first.id, AppointmentStatus.CANCELLED)
    _, overlapping = await book(db, tenant, patient, NINE + timedelta(minutes=15), minutes=30)
    assert overlapping == []


async def test_reschedule_within_own_slot(db, tenant, patient, monkeypatch):
    monkeypatch.setattr(settings, "ENFORCE_APPOINTMENT_OVERLAP", True)
    appointment, _ = await book(db, tenant, patient, NINE)

    moved, overlapping = await appointment_service.reschedule_appointment(
        db, tenant.id, appointment.id, NINE + timedelta(minutes=30), NINE + timedelta(minutes=90)
    )
    assert overlapping == []
    assert moved.end_time == NINE + timedelta(minutes=90)


async def test_reschedule_validates_range(db, tenant, patient):
    appointment, _ = await book(db, tenant, patient, NINE)
    with pytest.raises(ValidationError):
        await appointment_service.reschedule_appointment(db, tenant.id, appointment.id, NINE, NINE)


async def test_list_appointments_window_and_dentist(db, tenant, patient):
    morning, _ = await book(db, tenant, patient, NINE)
    afternoon, _ = await book(db, tenant, patient, NINE + timedelta(hours=5), dentist_id=DENTIST + 1)
    await book(db, tenant, patient, NINE + timedelta(days=3))
    await db.commit()

    day = await appointment_service.list_appointments(
        db, tenant.id, start=NINE - timedelta(hours=9), end=NINE + timedelta(hours=15)
    )
    assert [a.id for a in day] == [morning.id, afternoon.id]

    mine = await appointment_service.list_appointments(
        db, tenant.id, start=NINE - timedelta(hours=9), end=NINE + timedelta(hours=15), dentist_id=DENTIST
    )
    assert [a.id for a in mine] == [morning.id]


async def test_calendar_blocks(db, tenant, patient):
    appointment, _ = await book(db, tenant, patient, NINE)
    await appointment_service.set_appointment_status(db, tenant.id, appointment.id, AppointmentStatus.CONFIRMED)

    blocks = appointment_service.calendar_blocks([appointment])

    assert len(blocks) == 1
    block = blocks[0]
    assert block.id == appointment.id
    assert block.title == "Ana Lopez"
    assert block.status == AppointmentStatus.CONFIRMED
    assert block.type == AppointmentType.CLEANING
    assert block.color == appointment_service.STATUS_COLORS[AppointmentStatus.CONFIRMED]


async def test_appointments_are_tenant_scoped(db, tenant, other_tenant, patient):
    appointment, _ = await book(db, tenant, patient, NINE)
    with pytest.raises(NotFoundError):
        await appointment_service.get_appointment(db, other_tenant.id, appointment.id)


async def test_update_details_changes_type_and_notes_only(db, tenant, patient):
    appointment, _ = await book(db, tenant, patient, NINE)

    updated = await appointment_service.update_appointment_details(
        db, tenant.id, appointment.id,
        AppointmentUpdate(appointment_type=AppointmentType.ROOT_CANAL, notes="Bring previous X-rays"),
    )

    assert updated.appointment_type == AppointmentType.ROOT_CANAL
    assert updated.notes == "Bring previous X-rays"
    assert updated.status == AppointmentStatus.SCHEDULED
    assert updated.dentist_id == DENTIST


async def test_update_details_requires_type(db, tenant, patient):
    appointment, _ = await book(db, tenant, patient, NINE)

    with pytest.raises(ValidationError):
        await appointment_service.update_appointment_details(
            db, tenant.id, appointment.id, AppointmentUpdate(appointment_type=None)
        )


async def test_delete_appointment_frees_slot(db, tenant, patient, monkeypatch):
    monkeypatch.setattr(settings, "ENFORCE_APPOINTMENT_OVERLAP", True)
    appointment, _ = await book(db, tenant, patient, NINE)

    with pytest.raises(NotFoundError):
        await appointment_service.delete_appointment(db, tenant.id + 100, appointment.id)

    await appointment_service.delete_appointment(db, tenant.id, appointment.id)

    with pytest.raises(NotFoundError):
        await appointment_service.get_appointment(db, tenant.id, appointment.id)
    _, overlapping = await book(db, tenant, patient, NINE)
    assert overlapping == []
