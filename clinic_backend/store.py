"""
Store in memoria degli appuntamenti.

Tutte le mutazioni passano da qui, una alla volta (lock di istanza), e
restituiscono un MutationResult con gli eventi di notifica generati.
Gli eventi vengono anche inoltrati ai listener registrati: un listener che
fallisce viene loggato e non interrompe l'operazione.
"""
from __future__ import annotations

import logging
import threading
from collections import defaultdict
from dataclasses import asdict, replace
from datetime import date, timedelta
from typing import Callable, Iterable

from .domain import (
    Appointment,
    AppointmentDraft,
    BatchResult,
    MutationResult,
    Notification,
    PaymentMethod,
    RecurrenceType,
    Severity,
    Status,
    new_id,
)
from .errors import InvalidTransition, NotFound, SchedulingError, SlotConflict, StaleAppointment, ValidationError
from .timeslots import is_overlapping, time_to_minutes

logger = logging.getLogger(__name__)

Listener = Callable[[Notification], None]


# =========================
# Macchina a stati
# =========================
ALLOWED_TRANSITIONS: dict[Status, frozenset[Status]] = {
    Status.PENDING: frozenset({Status.CONFIRMED, Status.CANCELLED, Status.COMPLETED}),
    Status.SCHEDULED: frozenset({Status.PENDING, Status.CONFIRMED, Status.CANCELLED, Status.COMPLETED}),
    Status.CONFIRMED: frozenset({Status.CANCELLED, Status.COMPLETED}),
    Status.COMPLETED: frozenset(),
    Status.CANCELLED: frozenset(),
}


def check_transition(current: Status, new: Status) -> None:
    if new not in ALLOWED_TRANSITIONS[current]:
        raise InvalidTransition(f"Transizione di stato non consentita: {current.value} -> {new.value}.")


def _label(a: Appointment | AppointmentDraft) -> str:
    return f"del {a.date.strftime('%d/%m/%Y')} alle {a.start_time}"


def validate_fields(a: Appointment | AppointmentDraft) -> None:
    """Controlli minimi sui campi di un appuntamento (ValidationError)."""
    if not a.patient_id:
        raise ValidationError("Il paziente è obbligatorio.")
    if not a.psychologist_id:
        raise ValidationError("Lo psicologo è obbligatorio.")
    if time_to_minutes(a.start_time) >= time_to_minutes(a.end_time):
        raise ValidationError(f"Orario {a.start_time}-{a.end_time}: l'inizio deve precedere la fine.")
    if a.value <= 0:
        raise ValidationError("Il valore deve essere maggiore di zero.")
    if a.payment_method is PaymentMethod.INSURANCE and not a.insurance_type:
        raise ValidationError("Per il pagamento con convenzione serve il tipo di convenzione.")


class AppointmentStore:
    def __init__(
        self,
        appointments: Iterable[Appointment] = (),
        *,
        id_factory: Callable[[], str] = new_id,
    ) -> None:
        self._items: dict[str, Appointment] = {a.id: a for a in appointments}
        self._id_factory = id_factory
        self._lock = threading.RLock()
        self._listeners: list[Listener] = []

    # -------------------------
    # Eventi
    # -------------------------
    def subscribe(self, listener: Listener) -> None:
        self._listeners.append(listener)

    def emit(self, events: list[Notification]) -> None:
        for event in events:
            for listener in self._listeners:
                try:
                    listener(event)
                except Exception:
                    logger.exception("Listener di notifica fallito per %r", event.title)

    def _result(self, appointment: Appointment | None, events: list[Notification]) -> MutationResult:
        self.emit(events)
        return MutationResult(appointment=appointment, appointments=self.appointments, events=events)

    # -------------------------
    # Query
    # -------------------------
    @property
    def appointments(self) -> tuple[Appointment, ...]:
        with self._lock:
            return tuple(self._items.values())

    def __len__(self) -> int:
        return len(self._items)

    def get(self, appointment_id: str) -> Appointment:
        try:
            return self._items[appointment_id]
        except KeyError:
            raise NotFound(f"Appuntamento {appointment_id} non trovato.") from None

    def for_psychologist(self, psychologist_id: str) -> list[Appointment]:
        return [a for a in self.appointments if a.psychologist_id == psychologist_id]

    def for_patient(self, patient_id: str) -> list[Appointment]:
        return sorted(
            (a for a in self.appointments if a.patient_id == patient_id),
            key=lambda a: (a.date, time_to_minutes(a.start_time)),
        )

    def on_date(self, psychologist_id: str, day: date) -> list[Appointment]:
        return [a for a in self.appointments if a.psychologist_id == psychologist_id and a.date == day]

    def find_overlapping(
        self,
        psychologist_id: str,
        day: date,
        start_time: str,
        end_time: str,
        *,
        ignore_cancelled: bool = False,
        exclude_id: str | None = None,
    ) -> list[Appointment]:
        return [
            a
            for a in self.on_date(psychologist_id, day)
            if a.id != exclude_id
            and not (ignore_cancelled and a.status is Status.CANCELLED)
            and is_overlapping(a.start_time, a.end_time, start_time, end_time)
        ]

    def pending_by_date(self, since: date | None = None) -> dict[date, list[Appointment]]:
        """Appuntamenti da confermare raggruppati per giorno (ordinati per data e ora)."""
        groups: dict[date, list[Appointment]] = defaultdict(list)
        for a in sorted(self.appointments, key=lambda a: (a.date, time_to_minutes(a.start_time))):
            if a.status.is_pending and (since is None or a.date >= since):
                groups[a.date].append(a)
        return dict(groups)

    def pending_count_for_patient(self, patient_id: str, today: date) -> int:
        return sum(1 for a in self.for_patient(patient_id) if a.status.is_pending and a.date >= today)

    # -------------------------
    # Mutazioni (sotto lock)
    # -------------------------
    def _insert(self, draft: AppointmentDraft, *, check_conflicts: bool) -> Appointment:
        validate_fields(draft)
        if check_conflicts:
            clashes = self.find_overlapping(
                draft.psychologist_id, draft.date, draft.start_time, draft.end_time, ignore_cancelled=True
            )
            if clashes:
                raise SlotConflict(
                    f"Lo psicologo ha già un appuntamento {_label(clashes[0])} "
                    f"({clashes[0].start_time}-{clashes[0].end_time})."
                )

        fields = asdict(draft)
        fields["status"] = draft.status or Status.PENDING
        appointment = Appointment(id=self._id_factory(), **fields)
        self._items[appointment.id] = appointment
        logger.info(
            "Appuntamento %s creato (psicologo=%s, %s %s-%s)",
            appointment.id,
            appointment.psychologist_id,
            appointment.date.isoformat(),
            appointment.start_time,
            appointment.end_time,
        )
        return appointment

    def _store(self, current: Appointment, new: Appointment) -> Appointment:
        stored = replace(new, version=current.version + 1)
        self._items[stored.id] = stored
        return stored

    def add(self, draft: AppointmentDraft) -> MutationResult:
        with self._lock:
            appointment = self._insert(draft, check_conflicts=False)
        event = Notification("Appuntamento creato", f"Appuntamento {_label(appointment)} programmato.")
        return self._result(appointment, [event])

    def book(self, draft: AppointmentDraft) -> MutationResult:
        """Come add, ma rifiuta (SlotConflict) se l'intervallo è già occupato."""
        with self._lock:
            appointment = self._insert(draft, check_conflicts=True)
        event = Notification("Appuntamento creato", f"Appuntamento {_label(appointment)} programmato.")
        return self._result(appointment, [event])

    def update(self, appointment: Appointment) -> MutationResult:
        with self._lock:
            current = self.get(appointment.id)
            if appointment.version != current.version:
                logger.warning(
                    "Aggiornamento rifiutato per %s: versione %d, attesa %d",
                    appointment.id,
                    appointment.version,
                    current.version,
                )
                raise StaleAppointment(
                    f"Appuntamento {appointment.id} modificato nel frattempo "
                    f"(versione {appointment.version}, attuale {current.version})."
                )
            if appointment.status is not current.status:
                check_transition(current.status, appointment.status)
            moved = (appointment.date, appointment.start_time, appointment.end_time) != (
                current.date,
                current.start_time,
                current.end_time,
            )
            if moved and current.status.is_terminal:
                raise InvalidTransition(
                    f"Impossibile spostare un appuntamento in stato {current.status.value}."
                )
            validate_fields(appointment)
            stored = self._store(current, appointment)

        event = Notification("Appuntamento aggiornato", f"Appuntamento {_label(stored)} aggiornato.")
        return self._result(stored, [event])

    def remove(self, appointment_id: str) -> MutationResult:
        with self._lock:
            removed = self._items.pop(appointment_id, None)
        if removed is None:
            raise NotFound(f"Appuntamento {appointment_id} non trovato.")
        logger.info("Appuntamento %s eliminato", appointment_id)
        event = Notification("Appuntamento eliminato", f"Appuntamento {_label(removed)} rimosso.")
        return self._result(removed, [event])

    def set_status(self, appointment_id: str, status: Status, *, notify: bool = True) -> MutationResult:
        with self._lock:
            current = self.get(appointment_id)
            try:
                check_transition(current.status, status)
            except InvalidTransition:
                logger.warning(
                    "Stato non aggiornato per %s: %s -> %s", appointment_id, current.status.value, status.value
                )
                raise
            stored = self._store(current, replace(current, status=status))
        logger.info("Appuntamento %s: %s -> %s", appointment_id, current.status.value, status.value)

        severity = Severity.WARNING if status is Status.CANCELLED else Severity.SUCCESS
        event = Notification(
            "Stato aggiornato",
            f"Appuntamento {_label(stored)}: stato {status.value}.",
            severity,
        )
        if not notify:
            return MutationResult(appointment=stored, appointments=self.appointments, events=[])
        return self._result(stored, [event])

    def reschedule(self, appointment_id: str, new_date: date, start_time: str, end_time: str) -> MutationResult:
        """Sposta l'appuntamento e lo rimette in attesa di conferma."""
        with self._lock:
            current = self.get(appointment_id)
            if current.status.is_terminal:
                raise InvalidTransition(
                    f"Impossibile spostare un appuntamento in stato {current.status.value}."
                )
            moved = replace(current, date=new_date, start_time=start_time, end_time=end_time, status=Status.PENDING)
            validate_fields(moved)
            clashes = self.find_overlapping(
                moved.psychologist_id, new_date, start_time, end_time, ignore_cancelled=True, exclude_id=current.id
            )
            if clashes:
                raise SlotConflict(f"Lo psicologo ha già un appuntamento {_label(clashes[0])}.")
            stored = self._store(current, moved)
        logger.info("Appuntamento %s spostato al %s %s-%s", appointment_id, new_date.isoformat(), start_time, end_time)

        event = Notification("Appuntamento spostato", f"Nuova data: {_label(stored)}. In attesa di conferma.")
        return self._result(stored, [event])

    # -------------------------
    # Prenotazioni multiple
    # -------------------------
    def book_many(self, draft: AppointmentDraft, dates: Iterable[date]) -> BatchResult:
        """
        Prenota lo stesso orario su più date. Gli errori sulle singole date
        vengono raccolti, non interrompono le altre.
        """
        created: list[Appointment] = []
        failures: list[tuple[date, str]] = []
        with self._lock:
            for day in dates:
                try:
                    created.append(self._insert(replace(draft, date=day), check_conflicts=True))
                except SchedulingError as exc:
                    logger.warning("Prenotazione del %s non riuscita: %s", day.isoformat(), exc.message)
                    failures.append((day, exc.message))

        if created and failures:
            event = Notification(
                "Prenotazione parziale",
                f"{len(created)} appuntamento/i creato/i con successo. {len(failures)} errore/i.",
                Severity.WARNING,
            )
        elif created:
            event = Notification("Prenotazione completata", f"{len(created)} appuntamento/i creato/i con successo!")
        else:
            event = Notification("Prenotazione non riuscita", "Nessun appuntamento creato.", Severity.ERROR)

        self.emit([event])
        return BatchResult(created=tuple(created), failures=tuple(failures), events=[event])

    def book_recurring(
        self, draft: AppointmentDraft, recurrence_type: RecurrenceType, occurrences: int
    ) -> BatchResult:
        if occurrences < 1:
            raise ValidationError("Il numero di ricorrenze deve essere almeno 1.")
        series = replace(
            draft,
            is_recurring=True,
            recurrence_type=recurrence_type,
            recurrence_group_id=draft.recurrence_group_id or new_id(),
        )
        dates = [draft.date + timedelta(days=recurrence_type.step_days * i) for i in range(occurrences)]
        return self.book_many(series, dates)

    def cancel_future_for_patient(self, patient_id: str, today: date) -> list[Appointment]:
        """Annulla gli appuntamenti non terminali del paziente da oggi in poi (confronto solo sulla data)."""
        cancelled: list[Appointment] = []
        with self._lock:
            targets = [
                a.id
                for a in self.for_patient(patient_id)
                if a.date >= today and (a.status.is_pending or a.status is Status.CONFIRMED)
            ]
            for appointment_id in targets:
                cancelled.append(self.set_status(appointment_id, Status.CANCELLED, notify=False).appointment)
        return cancelled
