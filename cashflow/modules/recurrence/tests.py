"""
Tests para el calendario de recurrencias
"""

import pytest
from datetime import date

from cashflow.core.exceptions import UnknownFrequencyError
from cashflow.modules.recurrence import Frequency, nth_occurrence, occurrences_until, parse_frequency


class TestNthOccurrence:

    @pytest.mark.parametrize("frequency,n,expected", [
        (Frequency.WEEKLY, 3, date(2024, 1, 22)),
        (Frequency.BIWEEKLY, 2, date(2024, 1, 29)),
        (Frequency.MONTHLY, 1, date(2024, 2, 1)),
        (Frequency.BIMONTHLY, 1, date(2024, 3, 1)),
        (Frequency.QUARTERLY, 2, date(2024, 7, 1)),
        (Frequency.SEMIANNUAL, 1, date(2024, 7, 1)),
        (Frequency.ANNUAL, 1, date(2025, 1, 1)),
    ])
    def test_frequency_steps(self, frequency, n, expected):
        assert nth_occurrence(date(2024, 1, 1), frequency, n=n) == expected

    def test_zero_is_anchor(self):
        assert nth_occurrence(date(2024, 3, 10), Frequency.MONTHLY, n=0) == date(2024, 3, 10)

    def test_day_of_charge_31_in_february_leap_year(self):
        assert nth_occurrence(date(2024, 1, 31), Frequency.MONTHLY, day_of_charge=31, n=1) == date(2024, 2, 29)

    def test_day_of_charge_31_in_february(self):
        assert nth_occurrence(date(2023, 1, 31), Frequency.MONTHLY, day_of_charge=31, n=1) == date(2023, 2, 28)

    def test_month_end_does_not_drift(self):
        anchor = date(2024, 1, 31)
        assert nth_occurrence(anchor, Frequency.MONTHLY, n=1) == date(2024, 2, 29)
        assert nth_occurrence(anchor, Frequency.MONTHLY, n=2) == date(2024, 3, 31)
        assert nth_occurrence(anchor, Frequency.MONTHLY, day_of_charge=31, n=3) == date(2024, 4, 30)

    def test_quarterly_clips_to_month_end(self):
        assert nth_occurrence(date(2024, 11, 30), Frequency.QUARTERLY, n=1) == date(2025, 2, 28)

    def test_annual_from_leap_day(self):
        assert nth_occurrence(date(2024, 2, 29), Frequency.ANNUAL, n=1) == date(2025, 2, 28)
        assert nth_occurrence(date(2024, 2, 29), Frequency.ANNUAL, n=4) == date(2028, 2, 29)

    def test_day_of_charge_replaces_day(self):
        assert nth_occurrence(date(2024, 1, 1), Frequency.MONTHLY, day_of_charge=15, n=2) == date(2024, 3, 15)

    def test_day_of_charge_ignored_for_weekly(self):
        assert nth_occurrence(date(2024, 1, 1), Frequency.WEEKLY, day_of_charge=15, n=1) == date(2024, 1, 8)

    def test_large_n_is_valid(self):
        assert nth_occurrence(date(2024, 1, 31), Frequency.MONTHLY, day_of_charge=31, n=1200) == date(2124, 1, 31)

    def test_negative_n_raises(self):
        with pytest.raises(ValueError):
            nth_occurrence(date(2024, 1, 1), Frequency.MONTHLY, n=-1)

    def test_accepts_spanish_label(self):
        assert nth_occurrence(date(2024, 1, 1), "Trimestral", n=1) == date(2024, 4, 1)


class TestParseFrequency:

    @pytest.mark.parametrize("value,expected", [
        ("monthly", Frequency.MONTHLY),
        ("Semanal", Frequency.WEEKLY),
        ("Quincenal", Frequency.BIWEEKLY),
        ("Mensual", Frequency.MONTHLY),
        ("Bimensual", Frequency.BIMONTHLY),
        ("  TRIMESTRAL ", Frequency.QUARTERLY),
        ("Semestral", Frequency.SEMIANNUAL),
        ("Anual", Frequency.ANNUAL),
        ("yearly", Frequency.ANNUAL),
        (Frequency.WEEKLY, Frequency.WEEKLY),
    ])
    def test_known_values(self, value, expected):
        assert parse_frequency(value) == expected

    @pytest.mark.parametrize("value", ["Diaria", "", "every month", None, 30])
    def test_unknown_values(self, value):
        with pytest.raises(UnknownFrequencyError):
            parse_frequency(value)


def test_occurrences_until_is_inclusive():
    result = list(occurrences_until(date(2024, 1, 15), Frequency.MONTHLY, date(2024, 3, 15)))
    assert result == [
        (0, date(2024, 1, 15)),
        (1, date(2024, 2, 15)),
        (2, date(2024, 3, 15)),
    ]


def test_occurrences_until_before_anchor_is_empty():
    assert list(occurrences_until(date(2024, 1, 15), Frequency.WEEKLY, date(2024, 1, 1))) == []


def test_occurrences_until_from_later_period():
    result = list(occurrences_until(date(2024, 1, 31), Frequency.MONTHLY, date(2024, 5, 1), start=2))
    # sigue anclado al 31: marzo 31 y abril 30
    assert result == [(2, date(2024, 3, 31)), (3, date(2024, 4, 30))]
