"""
Ponte tra il database e il motore in memoria.

Carica uno snapshot (appuntamenti, pazienti, sale, orari di lavoro) e
riscrive le mutazioni. Le versioni lette al caricamento servono da controllo
ottimistico: se nel frattempo un altro processo ha modificato una riga, il
salvataggio fallisce con StaleAppointment.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field

from sqlalchemy import select
from sqlalchemy.orm import Session

from .availability import AvailabilityIndex
from .domain import Appointment, Patient, Room, WorkingWindow
from .errors import StaleAppointment
from .models import AppointmentRow, PatientRow, PsychologistRow, RoomRow, WorkingHourRow
from .patients import PatientRegistry
from .store import AppointmentStore

logger = logging.getLogger(__name__)

APPOINTMENT_FIELDS = (
    "patient_id",
    "psychologist_id",
    "room_id",
    "date",
    "start_time",
    "end_time",
    "status",
    "payment_method",
    "insurance_type",
    "value",
    "appointment_type",
    "is_recurring",
    "recurrence_type",
    "recurrence_group_id",
    "version",
)
PATIENT_FIELDS = ("name", "cpf", "phone", "email", "active", "deactivation_reason", "deactivation_date")


@dataclass
class Snapshot:
    store: AppointmentStore
    registry: PatientRegistry
    index: AvailabilityIndex
    psychologist_names: dict[str, str]
    loaded_versions: dict[str, int] = field(default_factory=dict)
    loaded_patients: set[str] = field(default_factory=set)
    loaded_rooms: set[str] = field(default_factory=set)


def _to_appointment(r: AppointmentRow) -> Appointment:
    return Appointment(id=r.id, **{name: getattr(r, name) for name in APPOINTMENT_FIELDS})


def _to_patient(r: PatientRow) -> Patient:
    return Patient(id=r.id, **{name: getattr(r, name) for name in PATIENT_FIELDS})


def load_index(s: Session) -> tuple[AvailabilityIndex, dict[str, str]]:
    """Anagrafica staff: psicologi attivi e relative finestre di lavoro."""
    rows = s.scalars(select(PsychologistRow).where(PsychologistRow.active.is_(True)).order_by(PsychologistRow.name))
    index = AvailabilityIndex()
    names: dict[str, str] = {}
    for p in rows:
        names[p.id] = p.name
        index.replace(
            p.id,
            [
                WorkingWindow(wh.day_of_week, wh.start_time, wh.end_time, wh.appointment_type)
                for wh in sorted(p.working_hours, key=lambda wh: (wh.day_of_week, wh.start_time))
            ],
        )
    return index, names


def load_snapshot(s: Session) -> Snapshot:
    appointments = [_to_appointment(r) for r in s.scalars(select(AppointmentRow).order_by(AppointmentRow.date))]
    patients = [_to_patient(r) for r in s.scalars(select(PatientRow).order_by(PatientRow.name))]
    rooms = [Room(id=r.id, name=r.name, description=r.description) for r in s.scalars(select(RoomRow))]

    store = AppointmentStore(appointments)
    index, names = load_index(s)
    return Snapshot(
        store=store,
        registry=PatientRegistry(store, patients, rooms),
        index=index,
        psychologist_names=names,
        loaded_versions={a.id: a.version for a in appointments},
        loaded_patients={p.id for p in patients},
        loaded_rooms={r.id for r in rooms},
    )


def save_snapshot(s: Session, snapshot: Snapshot) -> None:
    """Scrive appuntamenti, pazienti e sale; rimuove gli appuntamenti eliminati."""
    current_ids = set()
    for a in snapshot.store.appointments:
        current_ids.add(a.id)
        row = s.get(AppointmentRow, a.id, populate_existing=True)
        if row is None:
            row = AppointmentRow(id=a.id)
            s.add(row)
        elif row.version != snapshot.loaded_versions.get(a.id):
            raise StaleAppointment(f"Appuntamento {a.id} modificato da un'altra sessione.")
        for name in APPOINTMENT_FIELDS:
            setattr(row, name, getattr(a, name))

    for appointment_id in set(snapshot.loaded_versions) - current_ids:
        row = s.get(AppointmentRow, appointment_id)
        if row is not None:
            s.delete(row)

    for p in snapshot.registry.patients:
        row = s.get(PatientRow, p.id) or PatientRow(id=p.id)
        for name in PATIENT_FIELDS:
            setattr(row, name, getattr(p, name))
        s.add(row)
    for patient_id in snapshot.loaded_patients - {p.id for p in snapshot.registry.patients}:
        row = s.get(PatientRow, patient_id)
        if row is not None:
            s.delete(row)

    for r in snapshot.registry.rooms:
        row = s.get(RoomRow, r.id) or RoomRow(id=r.id)
        row.name, row.description = r.name, r.description
        s.add(row)
    for room_id in snapshot.loaded_rooms - {r.id for r in snapshot.registry.rooms}:
        row = s.get(RoomRow, room_id)
        if row is not None:
            s.delete(row)

    s.flush()
    logger.debug("Snapshot salvato: %d appuntamenti", len(current_ids))
