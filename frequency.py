from datetime import date, timedelta
from typing import Iterator, Union

from models import Frequency

DAY_STEPS = {
    Frequency.daily: 1,
    Frequency.weekly: 7,
    Frequency.biweekly: 14,
}

MONTH_STEPS = {
    Frequency.monthly: 1,
    Frequency.quarterly: 3,
    Frequency.yearly: 12,
}

# Average occurrences per calendar month.
MONTHLY_FACTORS = {
    Frequency.daily: 30.44,
    Frequency.weekly: 4.35,
    Frequency.biweekly: 2.175,
    Frequency.monthly: 1.0,
    Frequency.quarterly: 1 / 3,
    Frequency.yearly: 1 / 12,
}


class InvalidFrequency(ValueError):
    pass


def coerce_frequency(value: Union[Frequency, str]) -> Frequency:
    if isinstance(value, Frequency):
        return value
    try:
        return Frequency(value)
    except ValueError as exc:
        raise InvalidFrequency(f"Unknown frequency: {value!r}") from exc


def days_in_month(year: int, month: int) -> int:
    if month == 12:
        next_month = date(year + 1, 1, 1)
    else:
        next_month = date(year, month + 1, 1)
    return (next_month - date(year, month, 1)).days


def add_months(base: date, months: int) -> date:
    """Shift ``base`` by whole calendar months, clamping to the month's last day."""
    total_months = base.month - 1 + months
    year = base.year + total_months // 12
    month = total_months % 12 + 1
    day = min(base.day, days_in_month(year, month))
    return date(year, month, day)


def next_occurrence(frequency: Union[Frequency, str], from_date: date) -> date:
    freq = coerce_frequency(frequency)
    if freq in DAY_STEPS:
        return from_date + timedelta(days=DAY_STEPS[freq])
    return add_months(from_date, MONTH_STEPS[freq])


def occurrences_between(
    frequency: Union[Frequency, str],
    anchor: date,
    start: date,
    end: date,
) -> Iterator[date]:
    """Yield the projected dates of a schedule anchored at ``anchor`` within [start, end].

    Month-based schedules are stepped from the anchor each time rather than
    from the previous result, so a 31st anchor returns to the 31st after
    passing through a short month.
    """
    freq = coerce_frequency(frequency)
    if end < start:
        return
    if freq in DAY_STEPS:
        step = DAY_STEPS[freq]
        current = anchor
        if current < start:
            skipped = (start - current).days // step
            current += timedelta(days=skipped * step)
        while current <= end:
            if current >= start:
                yield current
            current += timedelta(days=step)
        return

    step = MONTH_STEPS[freq]
    index = 0
    current = anchor
    while current <= end:
        if current >= start:
            yield current
        index += 1
        current = add_months(anchor, step * index)


def monthly_factor(frequency: Union[Frequency, str]) -> float:
    return MONTHLY_FACTORS[coerce_frequency(frequency)]
