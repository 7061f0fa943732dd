from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Iterable, Optional

from goals import progress_percent, reached_milestone
from models import NotificationType, TransactionType
from recurrence import is_effectively_active
from schemas import RecurringRuleRecord, SavingsGoalRecord

REMINDER_MIN_DAYS = 1
REMINDER_MAX_DAYS = 2
UPCOMING_HORIZON_DAYS = 30


@dataclass(frozen=True)
class NotificationDraft:
    title: str
    message: str
    type: NotificationType
    dedupe_key: str
    action_url: Optional[str] = None


@dataclass(frozen=True)
class BudgetThresholds:
    warning_cents: int
    critical_cents: int


@dataclass
class TriggerContext:
    today: date
    month_expense_cents: Optional[int] = None
    thresholds: Optional[BudgetThresholds] = None
    goals: list[SavingsGoalRecord] = field(default_factory=list)
    rules: list[RecurringRuleRecord] = field(default_factory=list)
    existing_keys: set[str] = field(default_factory=set)
    include_upcoming_summary: bool = False


def format_amount(cents: int) -> str:
    return f"{cents / 100:,.2f}"


def budget_key(month: date, kind: NotificationType) -> str:
    return f"budget:{month.strftime('%Y-%m')}:{kind.value}"


def evaluate_budget(
    month_expense_cents: int, thresholds: BudgetThresholds, month: date
) -> Optional[NotificationDraft]:
    spent = format_amount(month_expense_cents)
    if thresholds.critical_cents > 0 and month_expense_cents >= thresholds.critical_cents:
        return NotificationDraft(
            title="Budget Exceeded!",
            message=(
                f"You've spent {spent} this month, exceeding your budget limit. "
                "Consider reviewing your expenses."
            ),
            type=NotificationType.error,
            dedupe_key=budget_key(month, NotificationType.error),
            action_url="/analytics",
        )
    if thresholds.warning_cents > 0 and month_expense_cents >= thresholds.warning_cents:
        return NotificationDraft(
            title="Budget Warning",
            message=f"You've spent {spent} this month. Consider reviewing your expenses.",
            type=NotificationType.warning,
            dedupe_key=budget_key(month, NotificationType.warning),
            action_url="/analytics",
        )
    return None


_MILESTONE_COPY = {
    100: (
        "Goal Achieved!",
        "Congratulations! You've reached 100% of your \"{name}\" goal!",
        NotificationType.success,
    ),
    75: (
        "Almost There!",
        "You've saved 75% of your \"{name}\" goal. Keep it up!",
        NotificationType.success,
    ),
    50: (
        "Halfway There!",
        "Great progress! You've saved 50% of your \"{name}\" goal.",
        NotificationType.info,
    ),
    25: (
        "Good Start!",
        "You've saved 25% of your \"{name}\" goal. Keep going!",
        NotificationType.info,
    ),
}


def evaluate_milestone(goal: SavingsGoalRecord) -> Optional[NotificationDraft]:
    """Draft for the highest milestone reached since the last one notified."""
    if goal.saved_amount_cents <= 0:
        return None
    milestone = reached_milestone(
        progress_percent(goal.saved_amount_cents, goal.target_amount_cents)
    )
    if milestone <= goal.last_notified_milestone:
        return None
    title, template, kind = _MILESTONE_COPY[milestone]
    return NotificationDraft(
        title=title,
        message=template.format(name=goal.goal_name),
        type=kind,
        dedupe_key=f"goal:{goal.id}:{milestone}",
        action_url="/savings",
    )


def evaluate_due_reminders(
    rules: Iterable[RecurringRuleRecord], today: date
) -> list[NotificationDraft]:
    drafts = []
    for rule in rules:
        if not is_effectively_active(rule, today):
            continue
        days = (rule.next_due_date - today).days
        if not REMINDER_MIN_DAYS <= days <= REMINDER_MAX_DAYS:
            continue
        when = "tomorrow" if days == 1 else f"in {days} days"
        amount = format_amount(rule.amount_cents)
        if rule.transaction_type == TransactionType.expense:
            drafts.append(
                NotificationDraft(
                    title="Upcoming Recurring Bill",
                    message=f'Your recurring bill "{rule.title}" ({amount}) is due {when}.',
                    type=NotificationType.warning,
                    dedupe_key=f"recurring:{rule.id}:{rule.next_due_date.isoformat()}",
                    action_url="/recurring",
                )
            )
        else:
            drafts.append(
                NotificationDraft(
                    title="Upcoming Recurring Income",
                    message=f'Your recurring income "{rule.title}" ({amount}) is expected {when}.',
                    type=NotificationType.info,
                    dedupe_key=f"recurring:{rule.id}:{rule.next_due_date.isoformat()}",
                    action_url="/recurring",
                )
            )
    return drafts


def summarize_upcoming(
    rules: Iterable[RecurringRuleRecord],
    today: date,
    horizon_days: int = UPCOMING_HORIZON_DAYS,
) -> Optional[NotificationDraft]:
    horizon = today + timedelta(days=horizon_days)
    upcoming = [
        rule
        for rule in rules
        if is_effectively_active(rule, today) and today <= rule.next_due_date <= horizon
    ]
    if not upcoming:
        return None

    income = [r for r in upcoming if r.transaction_type == TransactionType.income]
    expenses = [r for r in upcoming if r.transaction_type == TransactionType.expense]
    lines = [
        f"You have {len(upcoming)} scheduled transactions coming up "
        f"in the next {horizon_days} days:"
    ]
    if income:
        total = format_amount(sum(r.amount_cents for r in income))
        lines.append(f"- {len(income)} income transactions: {total}")
    if expenses:
        total = format_amount(sum(r.amount_cents for r in expenses))
        lines.append(f"- {len(expenses)} expense transactions: {total}")
    return NotificationDraft(
        title="Upcoming Scheduled Transactions",
        message="\n".join(lines),
        type=NotificationType.info,
        dedupe_key=f"upcoming:{today.isoformat()}",
        action_url="/recurring",
    )


def evaluate(context: TriggerContext) -> list[NotificationDraft]:
    drafts: list[NotificationDraft] = []
    if context.month_expense_cents is not None and context.thresholds is not None:
        draft = evaluate_budget(
            context.month_expense_cents, context.thresholds, context.today
        )
        # once a month is over budget, falling back under it stays quiet
        exceeded = budget_key(context.today, NotificationType.error) in context.existing_keys
        if draft and not (draft.type == NotificationType.warning and exceeded):
            drafts.append(draft)
    for goal in context.goals:
        draft = evaluate_milestone(goal)
        if draft:
            drafts.append(draft)
    drafts.extend(evaluate_due_reminders(context.rules, context.today))
    if context.include_upcoming_summary:
        summary = summarize_upcoming(context.rules, context.today)
        if summary:
            drafts.append(summary)

    seen = set(context.existing_keys)
    fresh = []
    for draft in drafts:
        if draft.dedupe_key in seen:
            continue
        seen.add(draft.dedupe_key)
        fresh.append(draft)
    return fresh
