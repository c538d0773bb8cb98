from __future__ import annotations

import datetime as dt
from typing import Any

from fastapi import FastAPI, Query, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from .config import configure_logging
from .domain import AppointmentDraft, AppointmentType, PaymentMethod, RecurrenceType, Status
from .errors import SchedulingError
from .seed import seed_base
from .services import (
    appointment_flat,
    batch_flat,
    book_appointment,
    book_many_dates,
    book_recurring,
    change_status,
    create_patient,
    create_room,
    daily_agenda_flat,
    deactivate_patient,
    delete_appointment,
    delete_patient,
    delete_room,
    free_slots_on,
    init_db,
    list_patients_flat,
    list_psychologists_flat,
    list_rooms_flat,
    next_available_slot,
    notifications_flat,
    patient_history_flat,
    pending_confirmations_flat,
    pending_count_for_patient,
    reactivate_patient,
    reschedule_appointment,
    slot_flat,
    time_options_for,
    weekly_availability_flat,
)

app = FastAPI(title="Agenda Studio API", version="1.0.0")

HTTP_STATUS_BY_KIND = {
    "not_found": 404,
    "validation_error": 422,
    "invalid_time_format": 422,
    "invalid_transition": 409,
    "slot_conflict": 409,
    "stale_appointment": 409,
}


# Startup

@app.on_event("startup")
def startup() -> None:
    configure_logging()
    init_db()
    seed_base()


@app.exception_handler(SchedulingError)
def scheduling_error_handler(request: Request, exc: SchedulingError) -> JSONResponse:
    return JSONResponse(status_code=HTTP_STATUS_BY_KIND.get(exc.kind, 400), content=exc.to_dict())


# Schemi

class PatientCreateIn(BaseModel):
    name: str = Field(..., min_length=1)
    cpf: str = ""
    phone: str = ""
    email: str = ""


class RoomCreateIn(BaseModel):
    name: str = Field(..., min_length=1)
    description: str | None = None


class BookingFieldsIn(BaseModel):
    patient_id: str
    psychologist_id: str
    start_time: str
    end_time: str
    room_id: str | None = None
    payment_method: PaymentMethod = PaymentMethod.PRIVATE
    insurance_type: str | None = None
    value: float
    appointment_type: AppointmentType = AppointmentType.PRESENTIAL

    def to_draft(self, day: dt.date) -> AppointmentDraft:
        return AppointmentDraft(date=day, **self.model_dump(include=set(BookingFieldsIn.model_fields)))


class AppointmentIn(BookingFieldsIn):
    date: dt.date


class BatchBookingIn(BookingFieldsIn):
    dates: list[dt.date] = Field(..., min_length=1)


class RecurringBookingIn(AppointmentIn):
    recurrence_type: RecurrenceType
    occurrences: int = Field(..., ge=1)


class StatusIn(BaseModel):
    status: Status


class RescheduleIn(BaseModel):
    date: dt.date
    start_time: str
    end_time: str


class DeactivateIn(BaseModel):
    reason: str


def _mutation_out(appointment, events) -> dict[str, Any]:
    return {"appointment": appointment_flat(appointment), "notifications": notifications_flat(events)}


# Anagrafiche

@app.get("/api/psychologists")
def api_psychologists() -> list[dict]:
    return list_psychologists_flat()


@app.get("/api/rooms")
def api_rooms() -> list[dict]:
    return list_rooms_flat()


@app.post("/api/rooms", status_code=201)
def api_create_room(payload: RoomCreateIn) -> dict[str, Any]:
    return {"ok": True, "room_id": create_room(payload.name, payload.description)}


@app.delete("/api/rooms/{room_id}")
def api_delete_room(room_id: str) -> dict[str, Any]:
    delete_room(room_id)
    return {"ok": True}


@app.get("/api/patients")
def api_patients(q: str = "", include_inactive: bool = False) -> list[dict]:
    return list_patients_flat(q, include_inactive=include_inactive)


@app.post("/api/patients", status_code=201)
def api_create_patient(payload: PatientCreateIn) -> dict[str, Any]:
    pid = create_patient(payload.name, payload.cpf, payload.phone, payload.email)
    return {"ok": True, "patient_id": pid}


@app.delete("/api/patients/{patient_id}")
def api_delete_patient(patient_id: str) -> dict[str, Any]:
    delete_patient(patient_id)
    return {"ok": True}


@app.get("/api/patients/{patient_id}/appointments")
def api_patient_history(patient_id: str) -> list[dict]:
    return patient_history_flat(patient_id)


@app.get("/api/patients/{patient_id}/pending-count")
def api_patient_pending_count(patient_id: str) -> dict[str, Any]:
    return {"patient_id": patient_id, "pending": pending_count_for_patient(patient_id)}


@app.post("/api/patients/{patient_id}/deactivate")
def api_deactivate_patient(patient_id: str, payload: DeactivateIn) -> dict[str, Any]:
    result = deactivate_patient(patient_id, payload.reason)
    return {
        "ok": True,
        "cancelled": [appointment_flat(a) for a in result.cancelled],
        "notifications": notifications_flat(result.events),
    }


@app.post("/api/patients/{patient_id}/reactivate")
def api_reactivate_patient(patient_id: str) -> dict[str, Any]:
    result = reactivate_patient(patient_id)
    return {"ok": True, "notifications": notifications_flat(result.events)}


# Disponibilità

@app.get("/api/psychologists/{psychologist_id}/next-slot")
def api_next_slot(psychologist_id: str) -> dict[str, Any]:
    slot = next_available_slot(psychologist_id)
    return {"slot": slot_flat(slot) if slot else None}


@app.get("/api/psychologists/{psychologist_id}/slots")
def api_day_slots(psychologist_id: str, day: dt.date = Query(...)) -> list[dict]:
    return [slot_flat(s) for s in free_slots_on(psychologist_id, day)]


@app.get("/api/psychologists/{psychologist_id}/time-options")
def api_time_options(psychologist_id: str) -> list[str]:
    return time_options_for(psychologist_id)


@app.get("/api/availability/week")
def api_weekly_availability(week_start: dt.date = Query(...)) -> list[dict]:
    return weekly_availability_flat(week_start)


@app.get("/api/agenda")
def api_agenda(psychologist_id: str = Query(...), day: dt.date = Query(...)) -> list[dict]:
    return daily_agenda_flat(psychologist_id, day)


# Appuntamenti

@app.post("/api/appointments", status_code=201)
def api_book(payload: AppointmentIn) -> dict[str, Any]:
    appointment, events = book_appointment(payload.to_draft(payload.date))
    return _mutation_out(appointment, events)


@app.post("/api/appointments/batch")
def api_book_many(payload: BatchBookingIn) -> dict[str, Any]:
    draft = payload.to_draft(payload.dates[0])
    return batch_flat(book_many_dates(draft, payload.dates))


@app.post("/api/appointments/recurring")
def api_book_recurring(payload: RecurringBookingIn) -> dict[str, Any]:
    draft = payload.to_draft(payload.date)
    return batch_flat(book_recurring(draft, payload.recurrence_type, payload.occurrences))


@app.patch("/api/appointments/{appointment_id}/status")
def api_change_status(appointment_id: str, payload: StatusIn) -> dict[str, Any]:
    appointment, events = change_status(appointment_id, payload.status)
    return _mutation_out(appointment, events)


@app.post("/api/appointments/{appointment_id}/reschedule")
def api_reschedule(appointment_id: str, payload: RescheduleIn) -> dict[str, Any]:
    appointment, events = reschedule_appointment(appointment_id, payload.date, payload.start_time, payload.end_time)
    return _mutation_out(appointment, events)


@app.delete("/api/appointments/{appointment_id}")
def api_delete_appointment(appointment_id: str) -> dict[str, Any]:
    return {"ok": True, "notifications": notifications_flat(delete_appointment(appointment_id))}


@app.get("/api/pending")
def api_pending(since: dt.date | None = None) -> list[dict]:
    return pending_confirmations_flat(since)
