from datetime import date

import pytest

from frequency import (
    InvalidFrequency,
    add_months,
    monthly_factor,
    next_occurrence,
    occurrences_between,
)
from models import Frequency


@pytest.mark.parametrize("frequency", list(Frequency))
def test_next_occurrence_is_strictly_later(frequency):
    for start in (date(2024, 1, 31), date(2024, 2, 29), date(2023, 12, 31), date(2024, 6, 15)):
        assert next_occurrence(frequency, start) > start


def test_day_based_steps():
    start = date(2024, 5, 1)
    assert next_occurrence(Frequency.daily, start) == date(2024, 5, 2)
    assert next_occurrence(Frequency.weekly, start) == date(2024, 5, 8)
    assert next_occurrence(Frequency.biweekly, start) == date(2024, 5, 15)


def test_monthly_clamps_to_month_end():
    assert next_occurrence(Frequency.monthly, date(2024, 1, 31)) == date(2024, 2, 29)
    assert next_occurrence(Frequency.monthly, date(2023, 1, 31)) == date(2023, 2, 28)
    assert next_occurrence(Frequency.quarterly, date(2024, 11, 30)) == date(2025, 2, 28)


def test_yearly_from_leap_day():
    assert next_occurrence(Frequency.yearly, date(2024, 2, 29)) == date(2025, 2, 28)


def test_add_months_crosses_year_boundary():
    assert add_months(date(2024, 12, 15), 1) == date(2025, 1, 15)
    assert add_months(date(2024, 10, 31), 4) == date(2025, 2, 28)


def test_string_frequency_is_accepted():
    assert next_occurrence("weekly", date(2024, 5, 1)) == date(2024, 5, 8)


def test_unknown_frequency_raises():
    with pytest.raises(InvalidFrequency):
        next_occurrence("fortnightly", date(2024, 5, 1))
    with pytest.raises(ValueError):
        monthly_factor("hourly")


def test_occurrences_return_to_anchor_day_after_short_month():
    dates = list(
        occurrences_between(
            Frequency.monthly, date(2024, 1, 31), date(2024, 1, 1), date(2024, 4, 30)
        )
    )
    assert dates == [
        date(2024, 1, 31),
        date(2024, 2, 29),
        date(2024, 3, 31),
        date(2024, 4, 30),
    ]


def test_occurrences_skip_dates_before_window():
    dates = list(
        occurrences_between(
            Frequency.weekly, date(2024, 1, 1), date(2024, 1, 10), date(2024, 1, 31)
        )
    )
    assert dates == [date(2024, 1, 15), date(2024, 1, 22), date(2024, 1, 29)]


def test_monthly_factor():
    assert monthly_factor(Frequency.monthly) == 1.0
    assert monthly_factor(Frequency.yearly) == pytest.approx(1 / 12)
