"""
Disponibilità settimanale degli psicologi e ricerca del primo slot libero.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Callable, Iterable

from .config import get_settings
from .domain import AppointmentType, Psychologist, Slot, WorkingWindow
from .errors import ValidationError
from .store import AppointmentStore
from .timeslots import combine, day_of_week, generate_slots, is_overlapping, time_to_minutes

logger = logging.getLogger(__name__)

MINUTES_PER_DAY = 24 * 60

DAY_NAMES = {
    0: "Domenica",
    1: "Lunedì",
    2: "Martedì",
    3: "Mercoledì",
    4: "Giovedì",
    5: "Venerdì",
    6: "Sabato",
}


def validate_window(window: WorkingWindow) -> WorkingWindow:
    """Rifiuta giorni fuori range e finestre vuote o a cavallo della mezzanotte."""
    if window.day_of_week not in DAY_NAMES:
        raise ValidationError(f"Giorno della settimana non valido: {window.day_of_week}.")
    start = time_to_minutes(window.start_time)
    end = time_to_minutes(window.end_time)
    if start >= end:
        raise ValidationError(
            f"Finestra {window.start_time}-{window.end_time}: l'inizio deve precedere la fine."
        )
    if end > MINUTES_PER_DAY:
        raise ValidationError(f"Finestra {window.start_time}-{window.end_time} oltre la mezzanotte.")
    return window


# =========================
# Indice disponibilità
# =========================
class AvailabilityIndex:
    """psychologist_id -> finestre di lavoro settimanali."""

    def __init__(self, windows: dict[str, Iterable[WorkingWindow]] | None = None) -> None:
        self._windows: dict[str, list[WorkingWindow]] = {}
        for psychologist_id, ws in (windows or {}).items():
            self.replace(psychologist_id, ws)

    @classmethod
    def from_psychologists(cls, psychologists: Iterable[Psychologist]) -> AvailabilityIndex:
        return cls({p.id: p.working_windows for p in psychologists})

    def add(self, psychologist_id: str, window: WorkingWindow) -> None:
        self._windows.setdefault(psychologist_id, []).append(validate_window(window))

    def replace(self, psychologist_id: str, windows: Iterable[WorkingWindow]) -> None:
        self._windows[psychologist_id] = [validate_window(w) for w in windows]

    def windows_for(self, psychologist_id: str, dow: int) -> list[WorkingWindow]:
        return [w for w in self._windows.get(psychologist_id, []) if w.day_of_week == dow]

    def all_windows(self, psychologist_id: str) -> list[WorkingWindow]:
        return list(self._windows.get(psychologist_id, []))

    def has_windows(self, psychologist_id: str) -> bool:
        return bool(self._windows.get(psychologist_id))

    def works_on(self, psychologist_id: str, day: date) -> bool:
        return bool(self.windows_for(psychologist_id, day_of_week(day)))

    def psychologists(self) -> list[str]:
        return list(self._windows)


# =========================
# Ricerca slot
# =========================
class SlotFinder:
    """
    Cerca il primo slot libero di uno psicologo scorrendo i giorni in avanti.
    Sola lettura su indice e store; "nessuno slot" è None, non un errore.
    """

    def __init__(
        self,
        index: AvailabilityIndex,
        store: AppointmentStore,
        *,
        clock: Callable[[], datetime] = datetime.now,
        duration_minutes: int | None = None,
        step_minutes: int | None = None,
        horizon_days: int | None = None,
    ) -> None:
        settings = get_settings()
        self.index = index
        self.store = store
        self.clock = clock
        self.duration_minutes = duration_minutes or settings.slot_duration_minutes
        self.step_minutes = step_minutes or settings.slot_step_minutes
        self.horizon_days = horizon_days or settings.search_horizon_days

    def _free_slots(self, psychologist_id: str, day: date, now: datetime) -> Iterable[Slot]:
        for window in self.index.windows_for(psychologist_id, day_of_week(day)):
            for start, end in generate_slots(
                window.start_time, window.end_time, self.duration_minutes, self.step_minutes
            ):
                # anche gli annullati occupano l'intervallo; book/reschedule invece li ignorano
                booked = self.store.on_date(psychologist_id, day)
                if any(is_overlapping(a.start_time, a.end_time, start, end) for a in booked):
                    continue
                if combine(day, start) <= now:
                    continue
                yield Slot(date=day, start_time=start, end_time=end)

    def find_next_available_slot(self, psychologist_id: str) -> Slot | None:
        if not self.index.has_windows(psychologist_id):
            logger.info("Nessuna finestra di lavoro per lo psicologo %s", psychologist_id)
            return None

        now = self.clock()
        today = now.date()
        for offset in range(self.horizon_days):
            day = today + timedelta(days=offset)
            slot = next(iter(self._free_slots(psychologist_id, day, now)), None)
            if slot is not None:
                return slot

        logger.info(
            "Nessuno slot libero per lo psicologo %s nei prossimi %d giorni",
            psychologist_id,
            self.horizon_days,
        )
        return None

    def free_slots_on(self, psychologist_id: str, day: date) -> list[Slot]:
        """Tutti gli slot liberi (e non ancora passati) di una giornata."""
        return list(self._free_slots(psychologist_id, day, self.clock()))


# =========================
# Cruscotto disponibilità settimanale
# =========================
@dataclass(frozen=True)
class HourlySlot:
    psychologist_id: str
    psychologist_name: str
    start_time: str
    end_time: str
    is_available: bool
    appointment_count: int
    appointment_type: AppointmentType


@dataclass
class DayAvailability:
    day_of_week: int
    day_name: str
    date: date
    total_slots: int = 0
    available_slots: int = 0
    occupied_slots: int = 0
    slots: list[HourlySlot] = field(default_factory=list)


def weekly_availability(
    index: AvailabilityIndex,
    store: AppointmentStore,
    week_start: date,
    names: dict[str, str] | None = None,
) -> list[DayAvailability]:
    """
    Riepilogo a slot orari per la settimana che parte dal lunedì `week_start`.
    Uno slot è occupato se un appuntamento inizia esattamente a quell'ora.
    """
    names = names or {}
    result: list[DayAvailability] = []

    for offset in range(7):
        day = week_start + timedelta(days=offset)
        dow = day_of_week(day)
        summary = DayAvailability(day_of_week=dow, day_name=DAY_NAMES[dow], date=day)

        for psychologist_id in index.psychologists():
            booked = store.on_date(psychologist_id, day)
            for window in index.windows_for(psychologist_id, dow):
                start_hour = time_to_minutes(window.start_time) // 60
                end_hour = time_to_minutes(window.end_time) // 60
                for hour in range(start_hour, end_hour):
                    start = f"{hour:02d}:00"
                    count = sum(1 for a in booked if a.start_time == start)
                    summary.slots.append(
                        HourlySlot(
                            psychologist_id=psychologist_id,
                            psychologist_name=names.get(psychologist_id, psychologist_id),
                            start_time=start,
                            end_time=f"{hour + 1:02d}:00",
                            is_available=count == 0,
                            appointment_count=count,
                            appointment_type=window.appointment_type,
                        )
                    )
                    summary.total_slots += 1
                    if count == 0:
                        summary.available_slots += 1
                    else:
                        summary.occupied_slots += 1

        if summary.total_slots:
            result.append(summary)

    # lunedì -> domenica, come il cruscotto
    result.sort(key=lambda d: (d.day_of_week - 1) % 7)
    return result
