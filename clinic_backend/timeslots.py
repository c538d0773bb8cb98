from __future__ import annotations

from datetime import date, datetime, timedelta
from typing import Iterable, Iterator

from .domain import WorkingWindow
from .errors import InvalidTimeFormat

DEFAULT_STEP_MINUTES = 30


# =========================
# Aritmetica orari "HH:MM"
# =========================
def time_to_minutes(value: str) -> int:
    """Minuti trascorsi dalla mezzanotte per un orario "HH:MM"."""
    parts = value.split(":") if isinstance(value, str) else []
    if len(parts) != 2 or not all(p.strip().isdecimal() for p in parts):
        raise InvalidTimeFormat(f"Orario non valido: {value!r} (atteso HH:MM).")
    hours, minutes = (int(p) for p in parts)
    return hours * 60 + minutes


def minutes_to_time(minutes: int) -> str:
    # nessun wraparound: 1500 -> "25:00"
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def _as_minutes(value: str | int) -> int:
    return value if isinstance(value, int) else time_to_minutes(value)


# =========================
# Sovrapposizione intervalli
# =========================
def is_overlapping(
    existing_start: str | int,
    existing_end: str | int,
    candidate_start: str | int,
    candidate_end: str | int,
) -> bool:
    """
    Vero se il candidato interseca l'intervallo esistente [start, end).
    Tre casi: inizio dentro, fine dentro, contenimento totale.
    """
    es, ee = _as_minutes(existing_start), _as_minutes(existing_end)
    cs, ce = _as_minutes(candidate_start), _as_minutes(candidate_end)

    starts_inside = es <= cs < ee
    ends_inside = es < ce <= ee
    contains = cs <= es and ce >= ee
    return starts_inside or ends_inside or contains


# =========================
# Generazione slot
# =========================
def generate_slots(
    start_time: str,
    end_time: str,
    duration_minutes: int,
    step_minutes: int = DEFAULT_STEP_MINUTES,
) -> Iterator[tuple[str, str]]:
    """
    Genera coppie (inizio, fine) di durata fissa ogni `step_minutes`,
    finché lo slot resta dentro la finestra.
    """
    cursor = time_to_minutes(start_time)
    limit = time_to_minutes(end_time)
    while cursor + duration_minutes <= limit:
        yield minutes_to_time(cursor), minutes_to_time(cursor + duration_minutes)
        cursor += step_minutes


def time_options(windows: Iterable[WorkingWindow]) -> list[str]:
    """
    Orari di inizio proposti dal form di prenotazione: ore piene da inizio a fine
    finestra, più la mezz'ora di ogni ora tranne l'ultima.
    """
    options: set[str] = set()
    for w in windows:
        start_hour = time_to_minutes(w.start_time) // 60
        end_hour = time_to_minutes(w.end_time) // 60
        for hour in range(start_hour, end_hour + 1):
            options.add(f"{hour:02d}:00")
            if hour < end_hour:
                options.add(f"{hour:02d}:30")
    return sorted(options)


# =========================
# Date
# =========================
def day_of_week(day: date) -> int:
    """0=domenica ... 6=sabato."""
    return (day.weekday() + 1) % 7


def is_business_day(day: date) -> bool:
    return day.weekday() < 5


def next_business_day(today: date | None = None) -> date:
    """Il giorno dopo; se oggi è sabato salta la domenica e va al lunedì."""
    today = today or date.today()
    if today.weekday() == 5:
        return today + timedelta(days=2)
    return today + timedelta(days=1)


def format_date_for_display(value: str) -> str:
    try:
        return date.fromisoformat(value[:10]).strftime("%d/%m/%Y")
    except ValueError:
        return value


def combine(day: date, hhmm: str) -> datetime:
    """Data + "HH:MM" -> datetime naive (orario locale)."""
    minutes = time_to_minutes(hhmm)
    return datetime.combine(day, datetime.min.time()) + timedelta(minutes=minutes)
