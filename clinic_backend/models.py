from __future__ import annotations

import datetime as dt

from sqlalchemy import Boolean, Date, DateTime, Enum, Float, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .db import Base
from .domain import AppointmentType, PaymentMethod, RecurrenceType, Status, new_id


class PsychologistRow(Base):
    __tablename__ = "psychologists"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    email: Mapped[str | None] = mapped_column(String(120), nullable=True)
    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    working_hours: Mapped[list["WorkingHourRow"]] = relationship(
        back_populates="psychologist", cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return f"PsychologistRow({self.name})"


class WorkingHourRow(Base):
    __tablename__ = "working_hours"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    psychologist_id: Mapped[str] = mapped_column(ForeignKey("psychologists.id"), nullable=False)
    # 0=domenica ... 6=sabato
    day_of_week: Mapped[int] = mapped_column(Integer, nullable=False)
    start_time: Mapped[str] = mapped_column(String(5), nullable=False)
    end_time: Mapped[str] = mapped_column(String(5), nullable=False)
    appointment_type: Mapped[AppointmentType] = mapped_column(
        Enum(AppointmentType), default=AppointmentType.PRESENTIAL, nullable=False
    )

    psychologist: Mapped["PsychologistRow"] = relationship(back_populates="working_hours")


class PatientRow(Base):
    __tablename__ = "patients"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    name: Mapped[str] = mapped_column(String(160), nullable=False)
    cpf: Mapped[str] = mapped_column(String(14), nullable=False, default="")
    phone: Mapped[str] = mapped_column(String(30), nullable=False, default="")
    email: Mapped[str] = mapped_column(String(120), nullable=False, default="")
    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    deactivation_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    deactivation_date: Mapped[dt.date | None] = mapped_column(Date, nullable=True)
    created_at: Mapped[dt.datetime] = mapped_column(DateTime, default=dt.datetime.utcnow, nullable=False)


class RoomRow(Base):
    __tablename__ = "rooms"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    name: Mapped[str] = mapped_column(String(80), nullable=False, unique=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)


class AppointmentRow(Base):
    __tablename__ = "appointments"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)

    patient_id: Mapped[str] = mapped_column(ForeignKey("patients.id"), nullable=False)
    psychologist_id: Mapped[str] = mapped_column(ForeignKey("psychologists.id"), nullable=False)
    # null per online o presenziale senza sala assegnata
    room_id: Mapped[str | None] = mapped_column(ForeignKey("rooms.id"), nullable=True)

    date: Mapped[dt.date] = mapped_column(Date, nullable=False)
    start_time: Mapped[str] = mapped_column(String(5), nullable=False)
    end_time: Mapped[str] = mapped_column(String(5), nullable=False)

    status: Mapped[Status] = mapped_column(Enum(Status), default=Status.PENDING, nullable=False)
    payment_method: Mapped[PaymentMethod] = mapped_column(Enum(PaymentMethod), nullable=False)
    insurance_type: Mapped[str | None] = mapped_column(String(60), nullable=True)
    value: Mapped[float] = mapped_column(Float, nullable=False)
    appointment_type: Mapped[AppointmentType] = mapped_column(Enum(AppointmentType), nullable=False)

    is_recurring: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    recurrence_type: Mapped[RecurrenceType | None] = mapped_column(Enum(RecurrenceType), nullable=True)
    recurrence_group_id: Mapped[str | None] = mapped_column(String(36), nullable=True)

    version: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
