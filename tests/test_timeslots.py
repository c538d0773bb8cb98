"""Tests for time arithmetic, interval overlap and slot generation."""

from datetime import date, datetime

import pytest

from clinic_backend.domain import WorkingWindow
from clinic_backend.errors import InvalidTimeFormat
from clinic_backend.timeslots import (
    combine,
    day_of_week,
    format_date_for_display,
    generate_slots,
    is_business_day,
    is_overlapping,
    minutes_to_time,
    next_business_day,
    time_options,
    time_to_minutes,
)


class TestTimeArithmetic:
    """Tests for time_to_minutes / minutes_to_time."""

    def test_parses_hours_and_minutes(self):
        """'09:30' is 570 minutes after midnight."""
        assert time_to_minutes("09:30") == 570
        assert time_to_minutes("00:00") == 0

    @pytest.mark.parametrize("value", ["0930", "9:30:00", "ab:cd", "", "12:", "²:00"])
    def test_rejects_malformed_values(self, value):
        """Anything that is not two numeric components fails."""
        with pytest.raises(InvalidTimeFormat) as exc:
            time_to_minutes(value)
        assert exc.value.kind == "invalid_time_format"

    def test_formats_zero_padded(self):
        """Minutes are rendered as HH:MM."""
        assert minutes_to_time(545) == "09:05"

    def test_no_day_wraparound(self):
        """Past midnight the hour keeps growing."""
        assert minutes_to_time(1500) == "25:00"

    def test_round_trip_within_day(self):
        """Formatting then parsing returns the same minute count."""
        for m in (0, 59, 600, 1439):
            assert time_to_minutes(minutes_to_time(m)) == m


class TestIsOverlapping:
    """Tests for half-open interval overlap."""

    def test_candidate_starts_inside(self):
        assert is_overlapping("09:00", "10:00", "09:30", "10:30")

    def test_candidate_ends_inside(self):
        assert is_overlapping("09:00", "10:00", "08:30", "09:30")

    def test_candidate_contains_existing(self):
        assert is_overlapping("09:00", "10:00", "08:00", "11:00")

    def test_identical_intervals(self):
        assert is_overlapping("09:00", "10:00", "09:00", "10:00")

    def test_touching_boundaries_do_not_overlap(self):
        """[09:00,10:00) and [10:00,11:00) only touch."""
        assert not is_overlapping("09:00", "10:00", "10:00", "11:00")
        assert not is_overlapping("10:00", "11:00", "09:00", "10:00")

    def test_disjoint(self):
        assert not is_overlapping("09:00", "10:00", "14:00", "15:00")

    def test_accepts_minutes(self):
        """Integer minutes are accepted as well as HH:MM strings."""
        assert is_overlapping(540, 600, "09:30", 630)


class TestGenerateSlots:
    """Tests for generate_slots."""

    def test_thirty_minute_stride(self):
        """Hour-long slots every half hour, all inside the window."""
        slots = list(generate_slots("09:00", "11:00", 60))
        assert slots == [("09:00", "10:00"), ("09:30", "10:30"), ("10:00", "11:00")]

    def test_window_shorter_than_duration(self):
        """No slot fits in a 30 minute window."""
        assert list(generate_slots("12:00", "12:30", 60)) == []

    def test_three_hour_window(self):
        """Five hour-long candidates fit in 09:00-12:00."""
        assert list(generate_slots("09:00", "12:00", 60)) == [
            ("09:00", "10:00"),
            ("09:30", "10:30"),
            ("10:00", "11:00"),
            ("10:30", "11:30"),
            ("11:00", "12:00"),
        ]

    def test_exact_fit(self):
        assert list(generate_slots("09:00", "10:00", 60)) == [("09:00", "10:00")]

    def test_custom_step(self):
        slots = list(generate_slots("09:00", "10:00", 30, step_minutes=15))
        assert [s for s, _ in slots] == ["09:00", "09:15", "09:30"]

    def test_generator_is_not_restartable(self):
        """A consumed generator stays empty; a fresh call starts over."""
        gen = generate_slots("09:00", "10:00", 60)
        assert list(gen) == [("09:00", "10:00")]
        assert list(gen) == []
        assert list(generate_slots("09:00", "10:00", 60)) == [("09:00", "10:00")]


class TestTimeOptions:
    """Tests for the booking form start times."""

    def test_half_hours_except_last_hour(self):
        options = time_options([WorkingWindow(1, "09:00", "11:00")])
        assert options == ["09:00", "09:30", "10:00", "10:30", "11:00"]

    def test_merges_windows_sorted(self):
        options = time_options([WorkingWindow(1, "14:00", "15:00"), WorkingWindow(2, "09:00", "10:00")])
        assert options == ["09:00", "09:30", "10:00", "14:00", "14:30", "15:00"]


class TestDates:
    """Tests for date helpers."""

    def test_day_of_week_sunday_is_zero(self):
        assert day_of_week(date(2026, 1, 11)) == 0
        assert day_of_week(date(2026, 1, 12)) == 1
        assert day_of_week(date(2026, 1, 17)) == 6

    def test_business_days(self):
        assert is_business_day(date(2026, 1, 16))
        assert not is_business_day(date(2026, 1, 17))

    def test_next_business_day_skips_sunday_from_saturday(self):
        assert next_business_day(date(2026, 1, 17)) == date(2026, 1, 19)

    def test_next_business_day_is_tomorrow_otherwise(self):
        assert next_business_day(date(2026, 1, 12)) == date(2026, 1, 13)

    def test_format_date_for_display(self):
        assert format_date_for_display("2026-01-12") == "12/01/2026"
        assert format_date_for_display("2026-01-12T10:00:00") == "12/01/2026"
        assert format_date_for_display("domani") == "domani"

    def test_combine(self):
        assert combine(date(2026, 1, 12), "09:30") == datetime(2026, 1, 12, 9, 30)
