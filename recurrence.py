from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from typing import Iterable, Optional, Union
from zoneinfo import ZoneInfo

from config import get_settings
from frequency import next_occurrence, occurrences_between
from models import Frequency
from schemas import RecurringRuleRecord

DUE_TODAY_DAYS = 1
DUE_SOON_DAYS = 3
DUE_THIS_WEEK_DAYS = 7


class DueStatus(str, Enum):
    inactive = "inactive"
    overdue = "overdue"
    due_today = "due_today"
    due_soon = "due_soon"
    due_this_week = "due_this_week"
    upcoming = "upcoming"


@dataclass(frozen=True)
class RuleProjection:
    rule_id: str
    next_due_date: date
    days_until_due: int
    is_active: bool
    is_overdue: bool
    is_due_today: bool
    is_due_soon: bool
    is_due_this_week: bool
    status: DueStatus


def local_today() -> date:
    settings = get_settings()
    tz = ZoneInfo(settings.timezone)
    return datetime.now(tz).date()


def initial_next_due_date(frequency: Union[Frequency, str], start_date: date) -> date:
    return next_occurrence(frequency, start_date)


def advance(rule: RecurringRuleRecord) -> date:
    return next_occurrence(rule.frequency, rule.next_due_date)


def is_effectively_active(rule: RecurringRuleRecord, today: date) -> bool:
    if not rule.is_active:
        return False
    if rule.end_date is not None and rule.end_date < today:
        return False
    return True


def project_rule(rule: RecurringRuleRecord, today: Optional[date] = None) -> RuleProjection:
    today = today or local_today()
    active = is_effectively_active(rule, today)
    days = (rule.next_due_date - today).days

    if not active:
        return RuleProjection(
            rule_id=rule.id,
            next_due_date=rule.next_due_date,
            days_until_due=days,
            is_active=False,
            is_overdue=False,
            is_due_today=False,
            is_due_soon=False,
            is_due_this_week=False,
            status=DueStatus.inactive,
        )

    overdue = days < 0
    due_today = not overdue and days <= DUE_TODAY_DAYS
    due_soon = not overdue and days <= DUE_SOON_DAYS
    this_week = not overdue and days <= DUE_THIS_WEEK_DAYS

    if overdue:
        status = DueStatus.overdue
    elif due_today:
        status = DueStatus.due_today
    elif due_soon:
        status = DueStatus.due_soon
    elif this_week:
        status = DueStatus.due_this_week
    else:
        status = DueStatus.upcoming

    return RuleProjection(
        rule_id=rule.id,
        next_due_date=rule.next_due_date,
        days_until_due=days,
        is_active=True,
        is_overdue=overdue,
        is_due_today=due_today,
        is_due_soon=due_soon,
        is_due_this_week=this_week,
        status=status,
    )


def upcoming_projections(
    rules: Iterable[RecurringRuleRecord],
    today: Optional[date] = None,
    *,
    horizon_days: Optional[int] = None,
) -> list[RuleProjection]:
    """Projections for active rules, overdue first, then by due date."""
    today = today or local_today()
    projections = []
    for rule in rules:
        projection = project_rule(rule, today)
        if not projection.is_active:
            continue
        if horizon_days is not None and projection.days_until_due > horizon_days:
            continue
        projections.append(projection)
    projections.sort(key=lambda p: (not p.is_overdue, p.next_due_date, p.rule_id))
    return projections


def scheduled_dates(
    rule: RecurringRuleRecord, start: date, end: date
) -> list[date]:
    """Dates on or after the rule's next due date that fall inside [start, end]."""
    last = end
    if rule.end_date is not None and rule.end_date < last:
        last = rule.end_date
    first = max(start, rule.next_due_date)
    return list(occurrences_between(rule.frequency, rule.next_due_date, first, last))
