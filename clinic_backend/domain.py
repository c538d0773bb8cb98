"""
Tipi di dominio del motore di agenda.

Sono dataclass immutabili: ogni modifica produce una nuova istanza
(`dataclasses.replace`), così lo store può sostituire i record in blocco.
"""
from __future__ import annotations

import enum
import uuid
from dataclasses import dataclass, field
from datetime import date


def new_id() -> str:
    return str(uuid.uuid4())


class Status(enum.Enum):
    PENDING = "pending"
    SCHEDULED = "scheduled"  # alias storico di PENDING
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

    @property
    def is_pending(self) -> bool:
        return self in (Status.PENDING, Status.SCHEDULED)

    @property
    def is_terminal(self) -> bool:
        return self in (Status.COMPLETED, Status.CANCELLED)


class AppointmentType(enum.Enum):
    PRESENTIAL = "presential"
    ONLINE = "online"


class PaymentMethod(enum.Enum):
    PRIVATE = "private"
    INSURANCE = "insurance"


class RecurrenceType(enum.Enum):
    WEEKLY = "weekly"
    BIWEEKLY = "biweekly"

    @property
    def step_days(self) -> int:
        return 7 if self is RecurrenceType.WEEKLY else 14


class Severity(enum.Enum):
    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


@dataclass(frozen=True)
class WorkingWindow:
    # 0=domenica ... 6=sabato (convenzione dell'anagrafica staff)
    day_of_week: int
    start_time: str
    end_time: str
    appointment_type: AppointmentType = AppointmentType.PRESENTIAL


@dataclass(frozen=True)
class Slot:
    date: date
    start_time: str
    end_time: str


@dataclass(frozen=True)
class Appointment:
    id: str
    patient_id: str
    psychologist_id: str
    date: date
    start_time: str
    end_time: str
    status: Status = Status.PENDING
    room_id: str | None = None
    payment_method: PaymentMethod = PaymentMethod.PRIVATE
    insurance_type: str | None = None
    value: float = 0.0
    appointment_type: AppointmentType = AppointmentType.PRESENTIAL
    is_recurring: bool = False
    recurrence_type: RecurrenceType | None = None
    recurrence_group_id: str | None = None
    version: int = 1


@dataclass(frozen=True)
class AppointmentDraft:
    """Richiesta di prenotazione: un Appointment senza id né versione."""

    patient_id: str
    psychologist_id: str
    date: date
    start_time: str
    end_time: str
    status: Status | None = None
    room_id: str | None = None
    payment_method: PaymentMethod = PaymentMethod.PRIVATE
    insurance_type: str | None = None
    value: float = 0.0
    appointment_type: AppointmentType = AppointmentType.PRESENTIAL
    is_recurring: bool = False
    recurrence_type: RecurrenceType | None = None
    recurrence_group_id: str | None = None


@dataclass(frozen=True)
class Patient:
    id: str
    name: str
    cpf: str = ""
    phone: str = ""
    email: str = ""
    active: bool = True
    deactivation_reason: str | None = None
    deactivation_date: date | None = None


@dataclass(frozen=True)
class Room:
    id: str
    name: str
    description: str | None = None


@dataclass(frozen=True)
class Psychologist:
    id: str
    name: str
    working_windows: tuple[WorkingWindow, ...] = ()


@dataclass(frozen=True)
class Notification:
    title: str
    description: str
    severity: Severity = Severity.SUCCESS


@dataclass(frozen=True)
class MutationResult:
    """Esito di una mutazione: record toccato, collezione aggiornata, eventi."""

    appointment: Appointment | None
    appointments: tuple[Appointment, ...]
    events: list[Notification] = field(default_factory=list)


@dataclass(frozen=True)
class BatchResult:
    created: tuple[Appointment, ...]
    failures: tuple[tuple[date, str], ...]
    events: list[Notification] = field(default_factory=list)
