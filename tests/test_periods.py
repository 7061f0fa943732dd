from datetime import date

import pytest

from periods import month_bounds, resolve_period

TODAY = date(2024, 3, 15)


def test_default_is_this_month():
    period = resolve_period(None, None, None, today=TODAY)
    assert (period.slug, period.start, period.end) == (
        "this_month",
        date(2024, 3, 1),
        date(2024, 3, 31),
    )


def test_last_month_crosses_year():
    period = resolve_period("last_month", None, None, today=date(2024, 1, 10))
    assert (period.start, period.end) == (date(2023, 12, 1), date(2023, 12, 31))


def test_rolling_windows_include_today():
    period = resolve_period("last_7_days", None, None, today=TODAY)
    assert (period.start, period.end) == (date(2024, 3, 9), TODAY)


def test_custom_period_validation():
    period = resolve_period("custom", "2024-01-01", "2024-01-31", today=TODAY)
    assert period.end == date(2024, 1, 31)
    with pytest.raises(ValueError):
        resolve_period("custom", "2024-02-01", "2024-01-01", today=TODAY)
    with pytest.raises(ValueError):
        resolve_period("custom", None, "2024-01-01", today=TODAY)


def test_unknown_period_rejected():
    with pytest.raises(ValueError, match="Unknown period"):
        resolve_period("fortnight", None, None, today=TODAY)


def test_month_bounds_for_february():
    assert month_bounds(date(2024, 2, 10)) == (date(2024, 2, 1), date(2024, 2, 29))
