"""Tests for persistence and use cases on an in-memory SQLite database."""

import logging
from datetime import datetime, timedelta

import pytest

from clinic_backend import services
from clinic_backend.db import db_session
from clinic_backend.domain import AppointmentDraft, RecurrenceType, Status, WorkingWindow
from clinic_backend.errors import NotFound, SlotConflict, StaleAppointment, ValidationError
from clinic_backend.models import AppointmentRow
from clinic_backend.repository import load_snapshot, save_snapshot
from clinic_backend.seed import seed_base

from conftest import MONDAY, STANDARD_WINDOWS, fixed_clock

pytestmark = pytest.mark.usefixtures("memory_db")


@pytest.fixture
def ids():
    psy = services.create_psychologist("Dott.ssa Giulia Conti", STANDARD_WINDOWS)
    patient = services.create_patient("Anna Verdi", phone="333 1234567")
    return psy, patient


def make_draft(psy: str, patient: str, **overrides) -> AppointmentDraft:
    fields = dict(patient_id=patient, psychologist_id=psy, date=MONDAY, start_time="10:00", end_time="11:00", value=150.0)
    fields.update(overrides)
    return AppointmentDraft(**fields)


class TestSeed:
    """Tests for seed_base."""

    def test_idempotent(self):
        seed_base()
        seed_base()
        assert len(services.list_psychologists_flat()) == 2
        assert len(services.list_rooms_flat()) == 2
        assert len(services.list_patients_flat()) == 2

    def test_standard_week(self):
        seed_base()
        psy = services.list_psychologists_flat()[0]
        assert len(psy["working_hours"]) == 10
        assert {w["day_of_week"] for w in psy["working_hours"]} == {1, 2, 3, 4, 5}


class TestBookingUseCases:
    """Tests for booking through the database."""

    def test_book_persists(self, ids):
        psy, patient = ids
        appointment, events = services.book_appointment(make_draft(psy, patient))
        assert appointment.status is Status.PENDING
        assert events[0].title == "Appuntamento creato"

        agenda = services.daily_agenda_flat(psy, MONDAY)
        assert [(a["start_time"], a["status"]) for a in agenda] == [("10:00", "pending")]

    def test_double_booking_refused(self, ids):
        psy, patient = ids
        services.book_appointment(make_draft(psy, patient))
        with pytest.raises(SlotConflict):
            services.book_appointment(make_draft(psy, patient, start_time="10:30", end_time="11:30"))
        assert len(services.patient_history_flat(patient)) == 1

    def test_unknown_references(self, ids):
        psy, patient = ids
        with pytest.raises(NotFound):
            services.book_appointment(make_draft(psy, "manca"))
        with pytest.raises(NotFound):
            services.book_appointment(make_draft("manca", patient))
        with pytest.raises(NotFound):
            services.book_appointment(make_draft(psy, patient, room_id="manca"))

    def test_status_and_reschedule(self, ids):
        psy, patient = ids
        appointment, _ = services.book_appointment(make_draft(psy, patient))
        confirmed, _ = services.change_status(appointment.id, Status.CONFIRMED)
        assert confirmed.version == 2

        moved, events = services.reschedule_appointment(appointment.id, MONDAY + timedelta(days=1), "15:00", "16:00")
        assert moved.status is Status.PENDING
        assert events[0].title == "Appuntamento spostato"
        assert services.daily_agenda_flat(psy, MONDAY) == []

    def test_recurring_and_batch(self, ids):
        psy, patient = ids
        series = services.book_recurring(make_draft(psy, patient), RecurrenceType.WEEKLY, 4)
        assert len(series.created) == 4

        batch = services.book_many_dates(make_draft(psy, patient), [MONDAY, MONDAY + timedelta(days=1)])
        assert len(batch.created) == 1
        assert len(batch.failures) == 1
        assert len(services.patient_history_flat(patient)) == 5

    def test_delete_appointment(self, ids):
        psy, patient = ids
        appointment, _ = services.book_appointment(make_draft(psy, patient))
        services.delete_appointment(appointment.id)
        assert services.patient_history_flat(patient) == []
        with pytest.raises(NotFound):
            services.delete_appointment(appointment.id)


class TestAvailabilityUseCases:
    """Tests for slot search through the database."""

    def test_next_slot_skips_booked(self, ids):
        psy, patient = ids
        services.book_appointment(make_draft(psy, patient, start_time="09:00", end_time="10:00"))
        slot = services.next_available_slot(psy, clock=fixed_clock(datetime(2026, 1, 12, 8, 0)))
        assert (slot.date, slot.start_time) == (MONDAY, "10:00")

    def test_next_slot_unknown_psychologist(self, ids):
        assert services.next_available_slot("manca", clock=fixed_clock(datetime(2026, 1, 12, 8, 0))) is None

    def test_time_options(self, ids):
        psy, _ = ids
        options = services.time_options_for(psy)
        assert options[0] == "09:00" and options[-1] == "18:00"
        with pytest.raises(NotFound):
            services.time_options_for("manca")

    def test_invalid_window_is_refused(self):
        with pytest.raises(ValidationError):
            services.create_psychologist("Dott. Notturno", [WorkingWindow(1, "22:00", "02:00")])

    def test_weekly_availability(self, ids):
        days = services.weekly_availability_flat(MONDAY)
        assert days[0]["day_name"] == "Lunedì"
        assert days[0]["slots"][0]["appointment_type"] == "presential"


class TestPatientUseCases:
    """Tests for patient lifecycle through the database."""

    def test_deactivate_and_reactivate(self, ids):
        psy, patient = ids
        future, _ = services.book_appointment(make_draft(psy, patient, date=MONDAY + timedelta(days=2)))
        clock = fixed_clock(datetime(2026, 1, 12, 8, 0))

        result = services.deactivate_patient(patient, "Trasferito", clock=clock)
        assert [a.id for a in result.cancelled] == [future.id]
        assert services.list_patients_flat() == []
        assert services.patient_history_flat(patient)[0]["status"] == "cancelled"

        services.reactivate_patient(patient)
        assert services.list_patients_flat()[0]["active"] is True
        assert services.patient_history_flat(patient)[0]["status"] == "cancelled"

    def test_pending_confirmations(self, ids):
        psy, patient = ids
        services.book_appointment(make_draft(psy, patient))
        groups = services.pending_confirmations_flat(MONDAY)
        assert groups == [
            {
                "date": MONDAY.isoformat(),
                "patients": [
                    {
                        "appointment_id": services.patient_history_flat(patient)[0]["id"],
                        "name": "Anna Verdi",
                        "phone": "333 1234567",
                        "email": "",
                        "cpf": "",
                        "psychologist_name": "Dott.ssa Giulia Conti",
                        "start_time": "10:00",
                    }
                ],
            }
        ]
        clock = fixed_clock(datetime(2026, 1, 12, 8, 0))
        assert services.pending_count_for_patient(patient, clock=clock) == 1

    def test_delete_guards(self, ids):
        psy, patient = ids
        room = services.create_room("Sala 3")
        services.book_appointment(make_draft(psy, patient, room_id=room))
        with pytest.raises(ValidationError):
            services.delete_patient(patient)
        with pytest.raises(ValidationError):
            services.delete_room(room)

        other = services.create_patient("Luca Neri")
        services.delete_patient(other)
        assert [p["name"] for p in services.list_patients_flat()] == ["Anna Verdi"]


class TestNotificationLogging:
    """Tests for notification logging around the commit."""

    def test_logged_after_successful_write(self, ids, caplog):
        psy, patient = ids
        with caplog.at_level(logging.INFO, logger="clinic_backend.services"):
            services.book_appointment(make_draft(psy, patient))
        assert "Appuntamento creato" in caplog.text

    def test_not_logged_when_save_fails(self, ids, caplog, monkeypatch):
        psy, patient = ids

        def stale(s, snapshot):
            raise StaleAppointment("Appuntamento modificato da un'altra sessione.")

        monkeypatch.setattr(services, "save_snapshot", stale)
        with caplog.at_level(logging.INFO, logger="clinic_backend.services"):
            with pytest.raises(StaleAppointment):
                services.book_appointment(make_draft(psy, patient))
        assert "Appuntamento creato" not in caplog.text
        monkeypatch.undo()
        assert services.patient_history_flat(patient) == []


class TestOptimisticConcurrency:
    """Tests for the version check on save."""

    def test_concurrent_change_is_detected(self, ids):
        psy, patient = ids
        appointment, _ = services.book_appointment(make_draft(psy, patient))

        with db_session() as s:
            snapshot = load_snapshot(s)

        # un'altra sessione conferma nel frattempo
        services.change_status(appointment.id, Status.CONFIRMED)

        snapshot.store.set_status(appointment.id, Status.CANCELLED)
        with pytest.raises(StaleAppointment):
            with db_session() as s:
                save_snapshot(s, snapshot)

        with db_session() as s:
            assert s.get(AppointmentRow, appointment.id).status is Status.CONFIRMED
