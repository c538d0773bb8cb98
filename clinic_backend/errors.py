from __future__ import annotations


class SchedulingError(Exception):
    """
    Base di tutti gli errori del motore di agenda.
    Ogni sottoclasse espone un `kind` stabile, usato da API e CLI.
    """

    kind = "scheduling_error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict[str, str]:
        return {"kind": self.kind, "detail": self.message}


class InvalidTimeFormat(SchedulingError, ValueError):
    kind = "invalid_time_format"


class ValidationError(SchedulingError, ValueError):
    kind = "validation_error"


class InvalidTransition(SchedulingError):
    kind = "invalid_transition"


class NotFound(SchedulingError, LookupError):
    kind = "not_found"


class SlotConflict(SchedulingError):
    """Lo psicologo ha già un appuntamento che si sovrappone all'intervallo richiesto."""

    kind = "slot_conflict"


class StaleAppointment(SchedulingError):
    """Aggiornamento su una versione non più corrente dell'appuntamento."""

    kind = "stale_appointment"
