"""Tests for the operator CLI."""

from datetime import date, timedelta

import pytest

from clinic_backend import services
from clinic_backend.cli import build_parser, main

NEXT_MONDAY = date.today() + timedelta(days=7 - date.today().weekday())

pytestmark = pytest.mark.usefixtures("memory_db")


@pytest.fixture
def seeded(capsys):
    assert main(["init"]) == 0
    capsys.readouterr()
    psy = services.list_psychologists_flat()[0]["id"]
    patient = services.list_patients_flat("anna")[0]["id"]
    return psy, patient


def book_args(psy: str, patient: str, *extra: str) -> list[str]:
    return [
        "book",
        "--patient-id", patient,
        "--psychologist-id", psy,
        "--date", NEXT_MONDAY.isoformat(),
        "--start", "10:00",
        "--end", "11:00",
        "--value", "120",
        *extra,
    ]


class TestParser:
    """Tests for argument parsing."""

    def test_book_accepts_many_dates(self):
        args = build_parser().parse_args(
            ["book", "--patient-id", "p", "--psychologist-id", "s", "--date", "2026-01-12", "2026-01-13",
             "--start", "10:00", "--end", "11:00", "--value", "100"]
        )
        assert args.date == [date(2026, 1, 12), date(2026, 1, 13)]
        assert args.payment == "private"

    def test_command_is_required(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args([])


class TestCommands:
    """Tests for CLI commands end to end."""

    def test_init_is_idempotent(self, seeded, capsys):
        assert main(["init"]) == 0
        assert "seed completato" in capsys.readouterr().out
        assert len(services.list_psychologists_flat()) == 2

    def test_book_then_pending(self, seeded, capsys):
        psy, patient = seeded
        assert main(book_args(psy, patient)) == 0
        assert "Appuntamento ID:" in capsys.readouterr().out

        assert main(["pending", "--since", NEXT_MONDAY.isoformat()]) == 0
        out = capsys.readouterr().out
        assert NEXT_MONDAY.strftime("%d/%m/%Y") in out
        assert "Anna Verdi" in out

    def test_conflict_exits_with_error(self, seeded, capsys):
        psy, patient = seeded
        main(book_args(psy, patient))
        capsys.readouterr()
        assert main(book_args(psy, patient)) == 1
        assert "slot_conflict" in capsys.readouterr().err

    def test_recurring_series(self, seeded, capsys):
        psy, patient = seeded
        assert main(book_args(psy, patient, "--recurring", "biweekly", "--occurrences", "2")) == 0
        out = capsys.readouterr().out
        assert out.count("Appuntamento ID:") == 2

    def test_status_and_reschedule(self, seeded, capsys):
        psy, patient = seeded
        main(book_args(psy, patient))
        appointment_id = services.patient_history_flat(patient)[0]["id"]

        assert main(["status", "--appointment-id", appointment_id, "--status", "confirmed"]) == 0
        new_day = (NEXT_MONDAY + timedelta(days=1)).isoformat()
        assert main(
            ["reschedule", "--appointment-id", appointment_id, "--date", new_day, "--start", "16:00", "--end", "17:00"]
        ) == 0
        history = services.patient_history_flat(patient)
        assert (history[0]["date"], history[0]["status"]) == (new_day, "pending")

    def test_next_slot(self, seeded, capsys):
        psy, _ = seeded
        assert main(["next-slot", "--psychologist-id", psy]) == 0
        assert "-" in capsys.readouterr().out

    def test_deactivate_and_reactivate(self, seeded, capsys):
        psy, patient = seeded
        main(book_args(psy, patient))
        capsys.readouterr()

        assert main(["deactivate", "--patient-id", patient, "--reason", "Trasferito"]) == 0
        assert "1 appuntamento/i futuro/i annullato/i." in capsys.readouterr().out
        assert main(["reactivate", "--patient-id", patient]) == 0
        assert main(["deactivate", "--patient-id", "manca", "--reason", "x"]) == 1

    def test_list(self, seeded, capsys):
        assert main(["list", "sale"]) == 0
        assert "Sala 1" in capsys.readouterr().out
