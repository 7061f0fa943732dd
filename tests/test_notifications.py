from datetime import date, datetime, timedelta

from models import Frequency, NotificationType, TransactionType
from notifications import (
    BudgetThresholds,
    TriggerContext,
    budget_key,
    evaluate,
    evaluate_budget,
    evaluate_due_reminders,
    evaluate_milestone,
    summarize_upcoming,
)
from schemas import RecurringRuleRecord, SavingsGoalRecord

TODAY = date(2024, 5, 20)
THRESHOLDS = BudgetThresholds(warning_cents=3000000, critical_cents=4000000)


def _goal(saved: int, last: int = 0) -> SavingsGoalRecord:
    return SavingsGoalRecord(
        id="g1",
        goal_name="Laptop",
        target_amount_cents=100000,
        saved_amount_cents=saved,
        created_at=datetime(2024, 1, 1),
        last_notified_milestone=last,
    )


def _rule(rule_id: str, days: int, kind=TransactionType.expense, active=True):
    return RecurringRuleRecord(
        id=rule_id,
        title=f"Rule {rule_id}",
        amount_cents=120000,
        transaction_type=kind,
        frequency=Frequency.monthly,
        start_date=date(2024, 1, 1),
        next_due_date=TODAY + timedelta(days=days),
        is_active=active,
    )


def test_budget_below_warning_is_silent():
    assert evaluate_budget(2999999, THRESHOLDS, TODAY) is None


def test_budget_warning_and_critical():
    warning = evaluate_budget(3500000, THRESHOLDS, TODAY)
    assert warning.type == NotificationType.warning
    assert warning.dedupe_key == "budget:2024-05:warning"
    assert "35,000.00" in warning.message

    critical = evaluate_budget(4000000, THRESHOLDS, TODAY)
    assert critical.type == NotificationType.error
    assert critical.title == "Budget Exceeded!"
    assert critical.action_url == "/analytics"


def test_budget_warning_not_repeated_in_same_month():
    existing = {budget_key(TODAY, NotificationType.warning)}
    context = TriggerContext(
        today=TODAY,
        month_expense_cents=3600000,
        thresholds=THRESHOLDS,
        existing_keys=existing,
    )
    assert evaluate(context) == []


def test_crossing_into_critical_after_warning_still_alerts():
    context = TriggerContext(
        today=TODAY,
        month_expense_cents=4200000,
        thresholds=THRESHOLDS,
        existing_keys={"budget:2024-05:warning"},
    )
    (draft,) = evaluate(context)
    assert draft.type == NotificationType.error


def test_new_month_alerts_again():
    context = TriggerContext(
        today=date(2024, 6, 2),
        month_expense_cents=3100000,
        thresholds=THRESHOLDS,
        existing_keys={"budget:2024-05:warning"},
    )
    assert [d.dedupe_key for d in evaluate(context)] == ["budget:2024-06:warning"]


def test_milestone_reports_highest_new_threshold():
    draft = evaluate_milestone(_goal(80000))
    assert draft.title == "Almost There!"
    assert draft.dedupe_key == "goal:g1:75"
    assert draft.type == NotificationType.success


def test_milestone_not_repeated():
    assert evaluate_milestone(_goal(55000, last=50)) is None
    assert evaluate_milestone(_goal(10000)) is None
    assert evaluate_milestone(_goal(0)) is None


def test_completed_goal_milestone():
    draft = evaluate_milestone(_goal(100000, last=75))
    assert draft.title == "Goal Achieved!"
    assert '"Laptop"' in draft.message


def test_due_reminders_cover_one_and_two_days():
    rules = [
        _rule("today", 0),
        _rule("tomorrow", 1),
        _rule("two", 2, kind=TransactionType.income),
        _rule("three", 3),
        _rule("paused", 1, active=False),
    ]
    drafts = evaluate_due_reminders(rules, TODAY)
    assert [d.dedupe_key for d in drafts] == [
        "recurring:tomorrow:2024-05-21",
        "recurring:two:2024-05-22",
    ]
    assert drafts[0].title == "Upcoming Recurring Bill"
    assert "tomorrow" in drafts[0].message
    assert drafts[1].type == NotificationType.info
    assert "in 2 days" in drafts[1].message


def test_upcoming_summary_counts_by_type():
    rules = [
        _rule("a", 5),
        _rule("b", 12),
        _rule("c", 20, kind=TransactionType.income),
        _rule("d", 45),
    ]
    draft = summarize_upcoming(rules, TODAY)
    assert draft.dedupe_key == "upcoming:2024-05-20"
    assert "3 scheduled transactions" in draft.message
    assert "- 1 income transactions: 1,200.00" in draft.message
    assert "- 2 expense transactions: 2,400.00" in draft.message


def test_summary_skipped_when_nothing_upcoming():
    assert summarize_upcoming([_rule("far", 60)], TODAY) is None


def test_evaluate_combines_and_dedupes():
    context = TriggerContext(
        today=TODAY,
        month_expense_cents=3100000,
        thresholds=THRESHOLDS,
        goals=[_goal(30000)],
        rules=[_rule("r", 1)],
        existing_keys={"recurring:r:2024-05-21"},
        include_upcoming_summary=True,
    )
    keys = [d.dedupe_key for d in evaluate(context)]
    assert keys == ["budget:2024-05:warning", "goal:g1:25", "upcoming:2024-05-20"]


def test_no_warning_after_month_already_exceeded():
    context = TriggerContext(
        today=TODAY,
        month_expense_cents=3200000,
        thresholds=THRESHOLDS,
        existing_keys={budget_key(TODAY, NotificationType.error)},
    )
    assert evaluate(context) == []
