from __future__ import annotations

from sqlalchemy import select

from .db import db_session
from .domain import AppointmentType
from .models import PatientRow, PsychologistRow, RoomRow, WorkingHourRow

# lun-ven, mattina e pomeriggio
STANDARD_WEEK = [(day, start, end) for day in range(1, 6) for start, end in (("09:00", "13:00"), ("14:00", "18:00"))]


def seed_base() -> None:
    """
    Popola dati minimi (idempotente):
    - psicologi con orari di lavoro
    - sale
    - pazienti di esempio
    """
    with db_session() as s:
        # Sale
        for nome, descrizione in [("Sala 1", "Piano terra"), ("Sala 2", "Primo piano")]:
            if s.execute(select(RoomRow).where(RoomRow.name == nome)).scalar_one_or_none() is None:
                s.add(RoomRow(name=nome, description=descrizione))

        # Psicologi
        psicologi = [
            ("Dott.ssa Giulia Conti", "g.conti@studio.local", AppointmentType.PRESENTIAL),
            ("Dott. Marco Ferri", "m.ferri@studio.local", AppointmentType.ONLINE),
        ]
        for nome, email, tipo in psicologi:
            if s.execute(select(PsychologistRow).where(PsychologistRow.name == nome)).scalar_one_or_none() is None:
                p = PsychologistRow(name=nome, email=email)
                p.working_hours = [
                    WorkingHourRow(day_of_week=day, start_time=start, end_time=end, appointment_type=tipo)
                    for day, start, end in STANDARD_WEEK
                ]
                s.add(p)

        # Pazienti
        pazienti = [
            ("Anna Verdi", "123.456.789-00", "333 1234567", "anna.verdi@example.com"),
            ("Luca Neri", "987.654.321-00", "333 7654321", "luca.neri@example.com"),
        ]
        for nome, cpf, telefono, email in pazienti:
            if s.execute(select(PatientRow).where(PatientRow.name == nome)).scalar_one_or_none() is None:
                s.add(PatientRow(name=nome, cpf=cpf, phone=telefono, email=email))
