"""
Anagrafica pazienti/sale e ciclo di vita del paziente.

La disattivazione di un paziente annulla a cascata i suoi appuntamenti futuri
non terminali; la riattivazione non li ripristina.
"""
from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field, replace
from datetime import date, datetime
from typing import Callable, Iterable

from .domain import Appointment, Notification, Patient, Room, Severity, new_id
from .errors import NotFound, ValidationError
from .store import AppointmentStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LifecycleResult:
    patient: Patient
    cancelled: tuple[Appointment, ...] = ()
    events: list[Notification] = field(default_factory=list)


class PatientRegistry:
    """Pazienti e sale in memoria, con i vincoli di eliminazione della console."""

    def __init__(
        self,
        store: AppointmentStore,
        patients: Iterable[Patient] = (),
        rooms: Iterable[Room] = (),
    ) -> None:
        self.store = store
        self._patients: dict[str, Patient] = {p.id: p for p in patients}
        self._rooms: dict[str, Room] = {r.id: r for r in rooms}
        self.lock = threading.RLock()

    # -------------------------
    # Pazienti
    # -------------------------
    @property
    def patients(self) -> list[Patient]:
        return list(self._patients.values())

    def get_patient(self, patient_id: str) -> Patient:
        try:
            return self._patients[patient_id]
        except KeyError:
            raise NotFound(f"Paziente {patient_id} non trovato.") from None

    def add_patient(self, name: str, cpf: str = "", phone: str = "", email: str = "") -> Patient:
        if not name.strip():
            raise ValidationError("Il nome del paziente è obbligatorio.")
        patient = Patient(id=new_id(), name=name.strip(), cpf=cpf, phone=phone, email=email)
        with self.lock:
            self._patients[patient.id] = patient
        return patient

    def save_patient(self, patient: Patient) -> Patient:
        with self.lock:
            self.get_patient(patient.id)
            self._patients[patient.id] = patient
        return patient

    def delete_patient(self, patient_id: str) -> Patient:
        with self.lock:
            patient = self.get_patient(patient_id)
            if self.store.for_patient(patient_id):
                raise ValidationError(f"Il paziente {patient.name} ha appuntamenti registrati.")
            del self._patients[patient_id]
        return patient

    def search(self, term: str = "", *, include_inactive: bool = False) -> list[Patient]:
        """Ricerca per nome/email (senza maiuscole) o per cpf/telefono."""
        needle = term.lower()
        return [
            p
            for p in self._patients.values()
            if (include_inactive or p.active)
            and (needle in p.name.lower() or needle in p.email.lower() or term in p.cpf or term in p.phone)
        ]

    # -------------------------
    # Sale
    # -------------------------
    @property
    def rooms(self) -> list[Room]:
        return list(self._rooms.values())

    def get_room(self, room_id: str) -> Room:
        try:
            return self._rooms[room_id]
        except KeyError:
            raise NotFound(f"Sala {room_id} non trovata.") from None

    def add_room(self, name: str, description: str | None = None) -> Room:
        if not name.strip():
            raise ValidationError("Il nome della sala è obbligatorio.")
        room = Room(id=new_id(), name=name.strip(), description=description)
        with self.lock:
            self._rooms[room.id] = room
        return room

    def delete_room(self, room_id: str) -> Room:
        with self.lock:
            room = self.get_room(room_id)
            if any(a.room_id == room_id for a in self.store.appointments):
                raise ValidationError(f"La sala {room.name} ha appuntamenti programmati.")
            del self._rooms[room_id]
        return room


class PatientLifecycle:
    def __init__(self, registry: PatientRegistry, *, clock: Callable[[], datetime] = datetime.now) -> None:
        self.registry = registry
        self.store = registry.store
        self.clock = clock

    def deactivate(self, patient_id: str, reason: str) -> LifecycleResult:
        """
        Use case: Disattivare paziente.
        - motivo obbligatorio
        - marca il paziente inattivo con data odierna
        - annulla gli appuntamenti da oggi in poi ancora aperti (confronto sulla sola data)
        """
        if not reason or not reason.strip():
            raise ValidationError("Il motivo della disattivazione è obbligatorio.")

        today: date = self.clock().date()
        with self.registry.lock:
            patient = self.registry.get_patient(patient_id)
            patient = self.registry.save_patient(
                replace(patient, active=False, deactivation_reason=reason.strip(), deactivation_date=today)
            )
            cancelled = self.store.cancel_future_for_patient(patient_id, today)

        logger.info(
            "Paziente %s disattivato (%s): %d appuntamenti annullati", patient_id, reason.strip(), len(cancelled)
        )
        events = [
            Notification(
                "Appuntamenti annullati",
                f"{len(cancelled)} appuntamento/i futuro/i annullato/i.",
                Severity.WARNING if cancelled else Severity.INFO,
            ),
            Notification("Paziente disattivato", f"Il paziente {patient.name} è stato disattivato."),
        ]
        self.store.emit(events)
        return LifecycleResult(patient=patient, cancelled=tuple(cancelled), events=events)

    def reactivate(self, patient_id: str) -> LifecycleResult:
        with self.registry.lock:
            patient = self.registry.get_patient(patient_id)
            patient = self.registry.save_patient(
                replace(patient, active=True, deactivation_reason=None, deactivation_date=None)
            )
        logger.info("Paziente %s riattivato", patient_id)
        events = [Notification("Paziente riattivato", f"Il paziente {patient.name} è di nuovo attivo.")]
        self.store.emit(events)
        return LifecycleResult(patient=patient, events=events)
