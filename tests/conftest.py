"""Fixture condivise: orologio fisso, store in memoria, DB SQLite in memoria."""

import itertools
from datetime import date, datetime
from typing import Callable, Generator

import pytest

from clinic_backend import db
from clinic_backend.availability import AvailabilityIndex
from clinic_backend.domain import AppointmentDraft, Patient, WorkingWindow
from clinic_backend.patients import PatientRegistry
from clinic_backend.store import AppointmentStore

# 2026-01-12 è un lunedì
MONDAY = date(2026, 1, 12)
PSY = "psy-1"
PATIENT = "pat-1"

STANDARD_WINDOWS = [
    WorkingWindow(day, start, end) for day in range(1, 6) for start, end in (("09:00", "13:00"), ("14:00", "18:00"))
]


def fixed_clock(value: datetime) -> Callable[[], datetime]:
    return lambda: value


@pytest.fixture
def clock() -> Callable[[], datetime]:
    """Lunedì 12/01/2026 alle 08:00."""
    return fixed_clock(datetime(2026, 1, 12, 8, 0))


@pytest.fixture
def index() -> AvailabilityIndex:
    return AvailabilityIndex({PSY: STANDARD_WINDOWS})


@pytest.fixture
def store() -> AppointmentStore:
    counter = itertools.count(1)
    return AppointmentStore(id_factory=lambda: f"a{next(counter)}")


@pytest.fixture
def draft() -> AppointmentDraft:
    return AppointmentDraft(
        patient_id=PATIENT,
        psychologist_id=PSY,
        date=MONDAY,
        start_time="10:00",
        end_time="11:00",
        value=150.0,
    )


@pytest.fixture
def registry(store: AppointmentStore) -> PatientRegistry:
    return PatientRegistry(store, [Patient(id=PATIENT, name="Anna Verdi", phone="333 1234567")])


@pytest.fixture
def memory_db() -> Generator[None, None, None]:
    """Database SQLite in memoria con le tabelle create."""
    db.configure("sqlite://")
    db.init_db()
    yield
    db.Base.metadata.drop_all(bind=db.engine)
