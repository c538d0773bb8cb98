from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from dataclasses import asdict
from datetime import date, datetime
from typing import Callable, Iterable, Iterator

from .availability import SlotFinder, validate_window, weekly_availability
from .db import db_session, init_db  # noqa: F401  init_db riesportato per api/cli
from .domain import (
    Appointment,
    AppointmentDraft,
    BatchResult,
    Notification,
    RecurrenceType,
    Slot,
    Status,
    WorkingWindow,
)
from .errors import NotFound
from .models import PsychologistRow, WorkingHourRow
from .patients import LifecycleResult, PatientLifecycle
from .repository import Snapshot, load_index, load_snapshot, save_snapshot
from .timeslots import time_options

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]

# un solo writer per processo: load -> mutazione -> save non si intrecciano
_write_lock = threading.Lock()


@contextmanager
def _snapshot(*, write: bool = False) -> Iterator[Snapshot]:
    if not write:
        with db_session() as s:
            yield load_snapshot(s)
        return

    # le notifiche si loggano solo dopo il commit
    events: list[Notification] = []
    with _write_lock, db_session() as s:
        snapshot = load_snapshot(s)
        snapshot.store.subscribe(events.append)
        yield snapshot
        save_snapshot(s, snapshot)
    for event in events:
        _log_notification(event)


def _log_notification(event: Notification) -> None:
    logger.info("[%s] %s: %s", event.severity.value, event.title, event.description)


def _check_refs(snap: Snapshot, draft: AppointmentDraft) -> None:
    snap.registry.get_patient(draft.patient_id)
    if draft.psychologist_id not in snap.psychologist_names:
        raise NotFound(f"Psicologo {draft.psychologist_id} non trovato.")
    if draft.room_id is not None:
        snap.registry.get_room(draft.room_id)


# =========================
# Serializzazione "flat" (safe per API/CLI)
# =========================
def appointment_flat(a: Appointment) -> dict:
    d = asdict(a)
    for key in ("status", "payment_method", "appointment_type", "recurrence_type"):
        d[key] = d[key].value if d[key] is not None else None
    d["date"] = a.date.isoformat()
    return d


def slot_flat(slot: Slot) -> dict:
    return {"date": slot.date.isoformat(), "start_time": slot.start_time, "end_time": slot.end_time}


def notifications_flat(events: Iterable[Notification]) -> list[dict]:
    return [{"title": e.title, "description": e.description, "severity": e.severity.value} for e in events]


def batch_flat(result: BatchResult) -> dict:
    return {
        "created": [appointment_flat(a) for a in result.created],
        "failures": [{"date": d.isoformat(), "detail": msg} for d, msg in result.failures],
        "notifications": notifications_flat(result.events),
    }


# =========================
# Anagrafiche
# =========================
def create_psychologist(name: str, windows: Iterable[WorkingWindow] = (), email: str | None = None) -> str:
    with db_session() as s:
        p = PsychologistRow(name=name.strip(), email=email)
        p.working_hours = [
            WorkingHourRow(
                day_of_week=w.day_of_week,
                start_time=w.start_time,
                end_time=w.end_time,
                appointment_type=w.appointment_type,
            )
            for w in map(validate_window, windows)
        ]
        s.add(p)
        s.flush()
        return p.id


def list_psychologists_flat() -> list[dict]:
    with db_session() as s:
        index, names = load_index(s)
    return [
        {
            "id": pid,
            "name": name,
            "working_hours": [
                {
                    "day_of_week": w.day_of_week,
                    "start_time": w.start_time,
                    "end_time": w.end_time,
                    "appointment_type": w.appointment_type.value,
                }
                for w in index.all_windows(pid)
            ],
        }
        for pid, name in names.items()
    ]


def list_rooms_flat() -> list[dict]:
    with _snapshot() as snap:
        return [{"id": r.id, "name": r.name, "description": r.description} for r in snap.registry.rooms]


def create_room(name: str, description: str | None = None) -> str:
    with _snapshot(write=True) as snap:
        return snap.registry.add_room(name, description).id


def delete_room(room_id: str) -> None:
    with _snapshot(write=True) as snap:
        snap.registry.delete_room(room_id)


def list_patients_flat(term: str = "", include_inactive: bool = False) -> list[dict]:
    with _snapshot() as snap:
        return [asdict(p) for p in snap.registry.search(term, include_inactive=include_inactive)]


def create_patient(name: str, cpf: str = "", phone: str = "", email: str = "") -> str:
    with _snapshot(write=True) as snap:
        return snap.registry.add_patient(name, cpf, phone, email).id


def delete_patient(patient_id: str) -> None:
    with _snapshot(write=True) as snap:
        snap.registry.delete_patient(patient_id)


# =========================
# Disponibilità
# =========================
def next_available_slot(psychologist_id: str, clock: Clock = datetime.now) -> Slot | None:
    with _snapshot() as snap:
        return SlotFinder(snap.index, snap.store, clock=clock).find_next_available_slot(psychologist_id)


def free_slots_on(psychologist_id: str, day: date, clock: Clock = datetime.now) -> list[Slot]:
    with _snapshot() as snap:
        return SlotFinder(snap.index, snap.store, clock=clock).free_slots_on(psychologist_id, day)


def weekly_availability_flat(week_start: date) -> list[dict]:
    with _snapshot() as snap:
        days = weekly_availability(snap.index, snap.store, week_start, snap.psychologist_names)
    out = []
    for d in days:
        row = asdict(d)
        row["date"] = d.date.isoformat()
        for slot in row["slots"]:
            slot["appointment_type"] = slot["appointment_type"].value
        out.append(row)
    return out


def daily_agenda_flat(psychologist_id: str, day: date) -> list[dict]:
    with _snapshot() as snap:
        booked = [a for a in snap.store.on_date(psychologist_id, day) if a.status is not Status.CANCELLED]
    return [appointment_flat(a) for a in sorted(booked, key=lambda a: a.start_time)]


def time_options_for(psychologist_id: str) -> list[str]:
    """Orari di inizio proposti dal form di prenotazione per uno psicologo."""
    with db_session() as s:
        index, names = load_index(s)
    if psychologist_id not in names:
        raise NotFound(f"Psicologo {psychologist_id} non trovato.")
    return time_options(index.all_windows(psychologist_id))


# =========================
# Prenotazione (use case core)
# =========================
def book_appointment(draft: AppointmentDraft) -> tuple[Appointment, list[Notification]]:
    """
    Use case: Prenotare appuntamento.
    - valida i campi
    - rifiuta se lo psicologo è già occupato nell'intervallo (SlotConflict)
    - stato iniziale pending
    """
    with _snapshot(write=True) as snap:
        _check_refs(snap, draft)
        result = snap.store.book(draft)
    return result.appointment, result.events


def book_many_dates(draft: AppointmentDraft, dates: Iterable[date]) -> BatchResult:
    with _snapshot(write=True) as snap:
        _check_refs(snap, draft)
        return snap.store.book_many(draft, dates)


def book_recurring(draft: AppointmentDraft, recurrence_type: RecurrenceType, occurrences: int) -> BatchResult:
    with _snapshot(write=True) as snap:
        _check_refs(snap, draft)
        return snap.store.book_recurring(draft, recurrence_type, occurrences)


def change_status(appointment_id: str, status: Status) -> tuple[Appointment, list[Notification]]:
    with _snapshot(write=True) as snap:
        result = snap.store.set_status(appointment_id, status)
    return result.appointment, result.events


def reschedule_appointment(
    appointment_id: str, new_date: date, start_time: str, end_time: str
) -> tuple[Appointment, list[Notification]]:
    with _snapshot(write=True) as snap:
        result = snap.store.reschedule(appointment_id, new_date, start_time, end_time)
    return result.appointment, result.events


def delete_appointment(appointment_id: str) -> list[Notification]:
    with _snapshot(write=True) as snap:
        return snap.store.remove(appointment_id).events


def pending_confirmations_flat(since: date | None = None) -> list[dict]:
    """Appuntamenti da confermare, raggruppati per giorno, con i contatti del paziente."""
    with _snapshot() as snap:
        groups = snap.store.pending_by_date(since)
        patients = {p.id: p for p in snap.registry.patients}
        names = snap.psychologist_names

    out = []
    for day, appointments in groups.items():
        rows = []
        for a in appointments:
            p = patients.get(a.patient_id)
            rows.append(
                {
                    "appointment_id": a.id,
                    "name": p.name if p else "",
                    "phone": p.phone if p else "",
                    "email": p.email if p else "",
                    "cpf": p.cpf if p else "",
                    "psychologist_name": names.get(a.psychologist_id, ""),
                    "start_time": a.start_time,
                }
            )
        out.append({"date": day.isoformat(), "patients": rows})
    return out


# =========================
# Pazienti
# =========================
def patient_history_flat(patient_id: str) -> list[dict]:
    with _snapshot() as snap:
        snap.registry.get_patient(patient_id)
        return [appointment_flat(a) for a in snap.store.for_patient(patient_id)]


def pending_count_for_patient(patient_id: str, clock: Clock = datetime.now) -> int:
    with _snapshot() as snap:
        snap.registry.get_patient(patient_id)
        return snap.store.pending_count_for_patient(patient_id, clock().date())


def deactivate_patient(patient_id: str, reason: str, clock: Clock = datetime.now) -> LifecycleResult:
    with _snapshot(write=True) as snap:
        return PatientLifecycle(snap.registry, clock=clock).deactivate(patient_id, reason)


def reactivate_patient(patient_id: str) -> LifecycleResult:
    with _snapshot(write=True) as snap:
        return PatientLifecycle(snap.registry).reactivate(patient_id)
