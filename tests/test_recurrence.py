from datetime import date, timedelta

from models import Frequency, TransactionType
from recurrence import (
    DueStatus,
    advance,
    initial_next_due_date,
    project_rule,
    scheduled_dates,
    upcoming_projections,
)
from schemas import RecurringRuleRecord

TODAY = date(2024, 5, 20)


def _rule(
    rule_id: str = "r1",
    next_due: date = TODAY,
    *,
    active: bool = True,
    end_date=None,
    frequency: Frequency = Frequency.monthly,
) -> RecurringRuleRecord:
    return RecurringRuleRecord(
        id=rule_id,
        title="Rent",
        amount_cents=1500000,
        category="Housing",
        transaction_type=TransactionType.expense,
        frequency=frequency,
        start_date=date(2024, 1, 1),
        end_date=end_date,
        next_due_date=next_due,
        is_active=active,
    )


def test_initial_due_date_is_one_step_after_start():
    assert initial_next_due_date(Frequency.monthly, date(2024, 1, 31)) == date(2024, 2, 29)


def test_advance_steps_from_current_due_date():
    rule = _rule(next_due=date(2024, 2, 29))
    assert advance(rule) == date(2024, 3, 29)


def test_rule_due_yesterday_is_overdue():
    projection = project_rule(_rule(next_due=TODAY - timedelta(days=1)), TODAY)
    assert projection.is_overdue
    assert projection.status == DueStatus.overdue
    assert projection.days_until_due == -1
    assert not projection.is_due_soon


def test_inactive_rule_is_never_overdue():
    projection = project_rule(_rule(next_due=TODAY - timedelta(days=1), active=False), TODAY)
    assert not projection.is_active
    assert not projection.is_overdue
    assert projection.status == DueStatus.inactive


def test_rule_past_end_date_counts_as_inactive():
    rule = _rule(next_due=TODAY - timedelta(days=3), end_date=TODAY - timedelta(days=1))
    projection = project_rule(rule, TODAY)
    assert projection.status == DueStatus.inactive
    assert not projection.is_overdue


def test_due_windows_nest():
    tomorrow = project_rule(_rule(next_due=TODAY + timedelta(days=1)), TODAY)
    assert tomorrow.is_due_today and tomorrow.is_due_soon and tomorrow.is_due_this_week
    assert tomorrow.status == DueStatus.due_today

    three = project_rule(_rule(next_due=TODAY + timedelta(days=3)), TODAY)
    assert not three.is_due_today
    assert three.is_due_soon
    assert three.status == DueStatus.due_soon

    week = project_rule(_rule(next_due=TODAY + timedelta(days=7)), TODAY)
    assert week.status == DueStatus.due_this_week

    later = project_rule(_rule(next_due=TODAY + timedelta(days=8)), TODAY)
    assert later.status == DueStatus.upcoming
    assert not later.is_due_this_week


def test_upcoming_lists_overdue_first_and_drops_inactive():
    rules = [
        _rule("later", TODAY + timedelta(days=10)),
        _rule("paused", TODAY + timedelta(days=1), active=False),
        _rule("soon", TODAY + timedelta(days=2)),
        _rule("late", TODAY - timedelta(days=4)),
    ]
    projections = upcoming_projections(rules, TODAY)
    assert [p.rule_id for p in projections] == ["late", "soon", "later"]


def test_upcoming_respects_horizon():
    rules = [_rule("a", TODAY + timedelta(days=5)), _rule("b", TODAY + timedelta(days=40))]
    projections = upcoming_projections(rules, TODAY, horizon_days=30)
    assert [p.rule_id for p in projections] == ["a"]


def test_scheduled_dates_stop_at_end_date():
    rule = _rule(
        next_due=date(2024, 6, 1),
        end_date=date(2024, 6, 20),
        frequency=Frequency.weekly,
    )
    dates = scheduled_dates(rule, date(2024, 5, 1), date(2024, 7, 31))
    assert dates == [date(2024, 6, 1), date(2024, 6, 8), date(2024, 6, 15)]
