from __future__ import annotations

import argparse
import sys
from datetime import date

from .config import configure_logging
from .db import configure
from .domain import AppointmentDraft, AppointmentType, PaymentMethod, RecurrenceType, Status
from .errors import SchedulingError
from .seed import seed_base
from .services import (
    book_appointment,
    book_many_dates,
    book_recurring,
    change_status,
    deactivate_patient,
    init_db,
    list_patients_flat,
    list_psychologists_flat,
    list_rooms_flat,
    next_available_slot,
    pending_confirmations_flat,
    reactivate_patient,
    reschedule_appointment,
)
from .timeslots import format_date_for_display, next_business_day


def cmd_init(args: argparse.Namespace) -> None:
    init_db()
    seed_base()
    print("DB inizializzato e seed completato.")


def cmd_list(args: argparse.Namespace) -> None:
    if args.entity == "psicologi":
        for p in list_psychologists_flat():
            print(f"{p['id']} | {p['name']} | {len(p['working_hours'])} finestre")
    elif args.entity == "pazienti":
        for p in list_patients_flat(include_inactive=True):
            stato = "attivo" if p["active"] else "inattivo"
            print(f"{p['id']} | {p['name']} | {p['phone'] or '-'} | {stato}")
    elif args.entity == "sale":
        for r in list_rooms_flat():
            print(f"{r['id']} | {r['name']}")


def cmd_next_slot(args: argparse.Namespace) -> None:
    slot = next_available_slot(args.psychologist_id)
    if slot is None:
        print("Nessuno slot libero nel periodo di ricerca.")
        return
    print(f"{format_date_for_display(slot.date.isoformat())} {slot.start_time}-{slot.end_time}")


def cmd_book(args: argparse.Namespace) -> None:
    draft = AppointmentDraft(
        patient_id=args.patient_id,
        psychologist_id=args.psychologist_id,
        date=args.date[0],
        start_time=args.start,
        end_time=args.end,
        room_id=args.room_id,
        payment_method=PaymentMethod(args.payment),
        insurance_type=args.insurance_type,
        value=args.value,
        appointment_type=AppointmentType(args.type),
    )

    if args.recurring:
        result = book_recurring(draft, RecurrenceType(args.recurring), args.occurrences)
    elif len(args.date) > 1:
        result = book_many_dates(draft, args.date)
    else:
        appointment, events = book_appointment(draft)
        for e in events:
            print(e.description)
        print(f"Appuntamento ID: {appointment.id}")
        return

    for day, message in result.failures:
        print(f"{format_date_for_display(day.isoformat())}: {message}")
    for e in result.events:
        print(e.description)
    for a in result.created:
        print(f"Appuntamento ID: {a.id} ({format_date_for_display(a.date.isoformat())})")


def cmd_status(args: argparse.Namespace) -> None:
    _, events = change_status(args.appointment_id, Status(args.status))
    for e in events:
        print(e.description)


def cmd_reschedule(args: argparse.Namespace) -> None:
    _, events = reschedule_appointment(args.appointment_id, args.date, args.start, args.end)
    for e in events:
        print(e.description)


def cmd_deactivate(args: argparse.Namespace) -> None:
    result = deactivate_patient(args.patient_id, args.reason)
    for e in result.events:
        print(e.description)


def cmd_reactivate(args: argparse.Namespace) -> None:
    for e in reactivate_patient(args.patient_id).events:
        print(e.description)


def cmd_pending(args: argparse.Namespace) -> None:
    """
    Simula il giro di telefonate di conferma:
    elenca gli appuntamenti in attesa, raggruppati per giorno.
    """
    since = next_business_day() if args.next_business_day else args.since
    groups = pending_confirmations_flat(since)
    if not groups:
        print("Nessun appuntamento da confermare.")
        return

    for group in groups:
        print(f"== {format_date_for_display(group['date'])} ==")
        for row in group["patients"]:
            print(f"{row['start_time']} | {row['name']} | {row['phone'] or '-'} | {row['psychologist_name']}")


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="clinic_cli", description="CLI agenda studio (console operativa)")
    p.add_argument("--db", default=None, help="URL database SQLAlchemy (default: DATABASE_URL o file locale)")
    sub = p.add_subparsers(required=True)

    p_init = sub.add_parser("init", help="Crea DB e carica seed")
    p_init.set_defaults(func=cmd_init)

    p_list = sub.add_parser("list", help="Lista entità")
    p_list.add_argument("entity", choices=["psicologi", "pazienti", "sale"])
    p_list.set_defaults(func=cmd_list)

    p_next = sub.add_parser("next-slot", help="Primo slot libero di uno psicologo")
    p_next.add_argument("--psychologist-id", required=True)
    p_next.set_defaults(func=cmd_next_slot)

    p_book = sub.add_parser("book", help="Prenota appuntamento (una o più date, o serie ricorrente)")
    p_book.add_argument("--patient-id", required=True)
    p_book.add_argument("--psychologist-id", required=True)
    p_book.add_argument("--date", type=date.fromisoformat, nargs="+", required=True, help="es: 2026-01-14")
    p_book.add_argument("--start", required=True, help="HH:MM")
    p_book.add_argument("--end", required=True, help="HH:MM")
    p_book.add_argument("--value", type=float, required=True)
    p_book.add_argument("--room-id", default=None)
    p_book.add_argument("--payment", choices=[m.value for m in PaymentMethod], default=PaymentMethod.PRIVATE.value)
    p_book.add_argument("--insurance-type", default=None)
    p_book.add_argument("--type", choices=[t.value for t in AppointmentType], default=AppointmentType.PRESENTIAL.value)
    p_book.add_argument("--recurring", choices=[r.value for r in RecurrenceType], default=None)
    p_book.add_argument("--occurrences", type=int, default=4)
    p_book.set_defaults(func=cmd_book)

    p_status = sub.add_parser("status", help="Cambia stato di un appuntamento")
    p_status.add_argument("--appointment-id", required=True)
    p_status.add_argument("--status", choices=[s.value for s in Status], required=True)
    p_status.set_defaults(func=cmd_status)

    p_resched = sub.add_parser("reschedule", help="Sposta un appuntamento")
    p_resched.add_argument("--appointment-id", required=True)
    p_resched.add_argument("--date", type=date.fromisoformat, required=True)
    p_resched.add_argument("--start", required=True)
    p_resched.add_argument("--end", required=True)
    p_resched.set_defaults(func=cmd_reschedule)

    p_deact = sub.add_parser("deactivate", help="Disattiva paziente e annulla i suoi appuntamenti futuri")
    p_deact.add_argument("--patient-id", required=True)
    p_deact.add_argument("--reason", required=True)
    p_deact.set_defaults(func=cmd_deactivate)

    p_react = sub.add_parser("reactivate", help="Riattiva paziente")
    p_react.add_argument("--patient-id", required=True)
    p_react.set_defaults(func=cmd_reactivate)

    p_pending = sub.add_parser("pending", help="Appuntamenti da confermare")
    p_pending.add_argument("--since", type=date.fromisoformat, default=None)
    p_pending.add_argument("--next-business-day", action="store_true", help="Parti dal prossimo giorno lavorativo")
    p_pending.set_defaults(func=cmd_pending)

    return p


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging()
    if args.db:
        configure(args.db)
    init_db()  # garantisce tabelle
    try:
        args.func(args)
    except SchedulingError as exc:
        print(f"Errore ({exc.kind}): {exc.message}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
