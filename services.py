from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Callable, Optional

from rapidfuzz.distance import Levenshtein
from sqlalchemy import and_, func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from config import get_settings
from csv_utils import amount_to_cents, parse_csv, parse_transactions_json
from email_service import (
    EmailMessage,
    EmailService,
    budget_warning,
    deliver,
    recurring_bill_reminder,
)
from frequency import monthly_factor
from goals import GoalProgress, evaluate_goal
from metrics import FinancialMetrics, aggregate
from models import (
    Contribution,
    GoalPriority,
    Notification,
    NotificationType,
    Profile,
    RecurringRule,
    SavingsGoal,
    Transaction,
    TransactionType,
)
from notifications import (
    BudgetThresholds,
    NotificationDraft,
    TriggerContext,
    evaluate,
)
from periods import Period, month_bounds
from recurrence import (
    RuleProjection,
    is_effectively_active,
    advance,
    initial_next_due_date,
    local_today,
    upcoming_projections,
)
from schemas import (
    UNCATEGORIZED,
    ContributionIn,
    ImportedTransaction,
    ProfileIn,
    RecurringRuleIn,
    RecurringRuleRecord,
    SavingsGoalIn,
    SavingsGoalRecord,
    TransactionIn,
    TransactionRecord,
)

logger = logging.getLogger(__name__)

DEDUPE_LOOKBACK_DAYS = 7
PRIORITY_ORDER = {GoalPriority.high: 0, GoalPriority.medium: 1, GoalPriority.low: 2}


def get_current_user_id() -> int:
    return 1


def run_side_effect(session: Session, label: str, func: Callable[[], object]) -> None:
    """Run a follow-up of a committed write; failures are logged and discarded."""
    try:
        func()
    except Exception:
        session.rollback()
        logger.exception(f"side_effect_failed: {label}")


def _effective_date_between(start: date, end: date):
    return or_(
        Transaction.transaction_date.between(start, end),
        and_(
            Transaction.transaction_date.is_(None),
            func.date(Transaction.created_at).between(start.isoformat(), end.isoformat()),
        ),
    )


@dataclass
class TransactionFilters:
    type: Optional[TransactionType] = None
    category: Optional[str] = None
    query: Optional[str] = None


class TransactionService:
    def __init__(self, session: Session, user_id: Optional[int] = None) -> None:
        self.session = session
        self.user_id = user_id or get_current_user_id()
        self.outbox: list[EmailMessage] = []

    def create(self, data: TransactionIn) -> Transaction:
        txn = Transaction(
            user_id=self.user_id,
            title=data.title,
            amount_cents=data.amount_cents,
            category=data.category,
            transaction_type=data.transaction_type,
            transaction_date=data.transaction_date,
        )
        if data.repeat and data.repeat.enabled:
            rule = RecurringRule(
                user_id=self.user_id,
                title=data.title,
                amount_cents=data.amount_cents,
                category=data.category,
                transaction_type=data.transaction_type,
                frequency=data.repeat.frequency,
                start_date=data.transaction_date,
                end_date=data.repeat.end_date,
                next_due_date=initial_next_due_date(
                    data.repeat.frequency, data.transaction_date
                ),
                is_active=True,
            )
            self.session.add(rule)
            txn.origin_rule = rule
        self.session.add(txn)
        self.session.commit()
        self.session.refresh(txn)
        self._after_mutation(txn)
        return txn

    def get(self, transaction_id: str) -> Transaction:
        txn = self.session.get(Transaction, transaction_id)
        if not txn or txn.user_id != self.user_id:
            raise ValueError("Transaction not found")
        return txn

    def update(self, transaction_id: str, data: TransactionIn) -> Transaction:
        txn = self.get(transaction_id)
        txn.title = data.title
        txn.amount_cents = data.amount_cents
        txn.category = data.category
        txn.transaction_type = data.transaction_type
        txn.transaction_date = data.transaction_date
        self.session.commit()
        self.session.refresh(txn)
        self._after_mutation(txn)
        return txn

    def delete(self, transaction_id: str) -> None:
        txn = self.get(transaction_id)
        self.session.delete(txn)
        self.session.commit()

    def _after_mutation(self, txn: Transaction) -> None:
        if txn.transaction_type != TransactionType.expense:
            return
        notifications = NotificationService(self.session, self.user_id, outbox=self.outbox)
        run_side_effect(self.session, "budget_check", notifications.check_budget)

    def _filtered(self, period: Optional[Period], filters: Optional[TransactionFilters]):
        stmt = select(Transaction).where(Transaction.user_id == self.user_id)
        if period:
            stmt = stmt.where(_effective_date_between(period.start, period.end))
        if filters:
            if filters.type:
                stmt = stmt.where(Transaction.transaction_type == filters.type)
            if filters.category:
                wanted = filters.category.strip().lower()
                if wanted == UNCATEGORIZED.lower():
                    stmt = stmt.where(
                        or_(
                            Transaction.category.is_(None),
                            func.lower(Transaction.category) == wanted,
                        )
                    )
                else:
                    stmt = stmt.where(func.lower(Transaction.category) == wanted)
            if filters.query:
                like = f"%{filters.query.strip()}%"
                stmt = stmt.where(
                    or_(Transaction.title.ilike(like), Transaction.category.ilike(like))
                )
        return stmt.order_by(
            func.coalesce(Transaction.transaction_date, func.date(Transaction.created_at)).desc(),
            Transaction.created_at.desc(),
        )

    def list(
        self,
        period: Optional[Period] = None,
        filters: Optional[TransactionFilters] = None,
        *,
        limit: int = 50,
        offset: int = 0,
    ) -> list[Transaction]:
        stmt = self._filtered(period, filters).limit(limit).offset(offset)
        return self.session.scalars(stmt).all()

    def all_for_period(
        self, period: Optional[Period], filters: Optional[TransactionFilters] = None
    ) -> list[Transaction]:
        return self.session.scalars(self._filtered(period, filters)).all()

    def records_for_period(self, period: Optional[Period]) -> list[TransactionRecord]:
        return [
            TransactionRecord.model_validate(row)
            for row in self.all_for_period(period)
        ]

    def earliest_date(self) -> Optional[date]:
        rows = self.session.execute(
            select(Transaction.transaction_date, Transaction.created_at).where(
                Transaction.user_id == self.user_id
            )
        ).all()
        dates = [row.transaction_date or row.created_at.date() for row in rows]
        return min(dates) if dates else None

    def month_expense_cents(self, today: date) -> int:
        start, end = month_bounds(today)
        total = self.session.execute(
            select(func.coalesce(func.sum(Transaction.amount_cents), 0)).where(
                Transaction.user_id == self.user_id,
                Transaction.transaction_type == TransactionType.expense,
                _effective_date_between(start, end),
            )
        ).scalar_one()
        return int(total or 0)

    def categories(self) -> list[str]:
        rows = self.session.execute(
            select(Transaction.category)
            .where(Transaction.user_id == self.user_id)
            .distinct()
        ).all()
        names = {(row.category or "").strip() or UNCATEGORIZED for row in rows}
        return sorted(names, key=str.lower)


class RecurringRuleService:
    def __init__(self, session: Session, user_id: Optional[int] = None) -> None:
        self.session = session
        self.user_id = user_id or get_current_user_id()
        self.outbox: list[EmailMessage] = []

    def get(self, rule_id: str) -> RecurringRule:
        rule = self.session.get(RecurringRule, rule_id)
        if not rule or rule.user_id != self.user_id:
            raise ValueError("Rule not found")
        return rule

    def list(self, *, active_only: bool = False) -> list[RecurringRule]:
        stmt = (
            select(RecurringRule)
            .where(RecurringRule.user_id == self.user_id)
            .order_by(RecurringRule.next_due_date, RecurringRule.title)
        )
        if active_only:
            stmt = stmt.where(RecurringRule.is_active.is_(True))
        return self.session.scalars(stmt).all()

    def records(self, *, active_only: bool = False) -> list[RecurringRuleRecord]:
        return [
            RecurringRuleRecord.model_validate(rule)
            for rule in self.list(active_only=active_only)
        ]

    def create(self, data: RecurringRuleIn) -> RecurringRule:
        rule = RecurringRule(
            user_id=self.user_id,
            title=data.title,
            amount_cents=data.amount_cents,
            category=data.category,
            transaction_type=data.transaction_type,
            frequency=data.frequency,
            start_date=data.start_date,
            end_date=data.end_date,
            next_due_date=initial_next_due_date(data.frequency, data.start_date),
            is_active=data.is_active,
        )
        self.session.add(rule)
        self.session.commit()
        self.session.refresh(rule)
        return rule

    def update(self, rule_id: str, data: RecurringRuleIn) -> RecurringRule:
        rule = self.get(rule_id)
        reschedule = (
            rule.frequency != data.frequency or rule.start_date != data.start_date
        )
        for name, value in data.model_dump().items():
            setattr(rule, name, value)
        if reschedule:
            rule.next_due_date = initial_next_due_date(data.frequency, data.start_date)
        self.session.commit()
        self.session.refresh(rule)
        return rule

    def toggle_active(self, rule_id: str, is_active: bool) -> RecurringRule:
        rule = self.get(rule_id)
        rule.is_active = is_active
        self.session.commit()
        return rule

    def delete(self, rule_id: str) -> None:
        rule = self.get(rule_id)
        self.session.delete(rule)
        self.session.commit()

    def record_occurrence(self, rule_id: str) -> Transaction:
        """Book the rule's current due date as a transaction and step the rule forward once."""
        rule = self.get(rule_id)
        if not rule.is_active:
            raise ValueError("Rule is paused")
        if rule.end_date is not None and rule.next_due_date > rule.end_date:
            raise ValueError("Rule has ended")
        record = RecurringRuleRecord.model_validate(rule)
        txn = Transaction(
            user_id=self.user_id,
            title=rule.title,
            amount_cents=rule.amount_cents,
            category=rule.category,
            transaction_type=rule.transaction_type,
            transaction_date=rule.next_due_date,
            origin_rule_id=rule.id,
        )
        self.session.add(txn)
        rule.next_due_date = advance(record)
        self.session.commit()
        self.session.refresh(txn)
        logger.info(
            f"recurring_occurrence: rule={rule.id} booked={txn.transaction_date} next={rule.next_due_date}"
        )
        if txn.transaction_type == TransactionType.expense:
            notifications = NotificationService(self.session, self.user_id, outbox=self.outbox)
            run_side_effect(self.session, "budget_check", notifications.check_budget)
        return txn

    def upcoming(
        self, today: Optional[date] = None, *, horizon_days: Optional[int] = None
    ) -> list[tuple[RecurringRule, RuleProjection]]:
        today = today or local_today()
        rules = {rule.id: rule for rule in self.list()}
        projections = upcoming_projections(
            (RecurringRuleRecord.model_validate(r) for r in rules.values()),
            today,
            horizon_days=horizon_days,
        )
        return [(rules[p.rule_id], p) for p in projections]

    def statistics(self, today: Optional[date] = None) -> dict[str, object]:
        today = today or local_today()
        total_income = 0
        total_expenses = 0
        income_by_category: dict[str, int] = defaultdict(int)
        expense_by_category: dict[str, int] = defaultdict(int)
        income_count = 0
        expense_count = 0

        for record in self.records():
            if not is_effectively_active(record, today):
                continue
            monthly = round(record.amount_cents * monthly_factor(record.frequency))
            if record.transaction_type == TransactionType.income:
                total_income += monthly
                income_count += 1
                income_by_category[record.category] += monthly
            else:
                total_expenses += monthly
                expense_count += 1
                expense_by_category[record.category] += monthly

        coverage_ratio = (
            (total_income / total_expenses * 100) if total_expenses > 0 else 100.0
        )

        def build_breakdown(by_category: dict[str, int], total: int) -> list[dict]:
            if total == 0:
                return []
            items = sorted(by_category.items(), key=lambda x: x[1], reverse=True)
            return [
                {"name": name, "amount_cents": amount, "percent": amount / total * 100}
                for name, amount in items
            ]

        return {
            "total_monthly_income": total_income,
            "total_monthly_expenses": total_expenses,
            "net_monthly": total_income - total_expenses,
            "coverage_ratio": coverage_ratio,
            "expense_breakdown": build_breakdown(expense_by_category, total_expenses),
            "income_breakdown": build_breakdown(income_by_category, total_income),
            "rule_counts": {
                "income": income_count,
                "expense": expense_count,
                "total": income_count + expense_count,
            },
        }


class SavingsGoalService:
    def __init__(self, session: Session, user_id: Optional[int] = None) -> None:
        self.session = session
        self.user_id = user_id or get_current_user_id()

    def get(self, goal_id: str) -> SavingsGoal:
        goal = self.session.get(SavingsGoal, goal_id)
        if not goal or goal.user_id != self.user_id:
            raise ValueError("Goal not found")
        return goal

    def list(self) -> list[SavingsGoal]:
        goals = self.session.scalars(
            select(SavingsGoal)
            .where(SavingsGoal.user_id == self.user_id)
            .order_by(SavingsGoal.created_at.desc())
        ).all()
        return sorted(goals, key=lambda g: PRIORITY_ORDER[g.priority])

    def create(self, data: SavingsGoalIn) -> SavingsGoal:
        goal = SavingsGoal(user_id=self.user_id, last_notified_milestone=0, **data.model_dump())
        self.session.add(goal)
        self.session.commit()
        self.session.refresh(goal)
        self._after_mutation(goal)
        return goal

    def update(self, goal_id: str, data: SavingsGoalIn) -> SavingsGoal:
        goal = self.get(goal_id)
        for name, value in data.model_dump().items():
            setattr(goal, name, value)
        self.session.commit()
        self.session.refresh(goal)
        self._after_mutation(goal)
        return goal

    def delete(self, goal_id: str) -> None:
        goal = self.get(goal_id)
        self.session.delete(goal)
        self.session.commit()

    def add_contribution(self, goal_id: str, data: ContributionIn) -> Contribution:
        goal = self.get(goal_id)
        contribution = Contribution(
            goal_id=goal.id,
            user_id=self.user_id,
            amount_cents=data.amount_cents,
            contribution_date=data.contribution_date,
            note=data.note,
        )
        self.session.add(contribution)
        goal.saved_amount_cents = goal.saved_amount_cents + data.amount_cents
        self.session.commit()
        self.session.refresh(contribution)
        self._after_mutation(goal)
        return contribution

    def contributions(self, goal_id: str) -> list[Contribution]:
        goal = self.get(goal_id)
        return self.session.scalars(
            select(Contribution)
            .where(Contribution.goal_id == goal.id)
            .order_by(Contribution.contribution_date.desc(), Contribution.created_at.desc())
        ).all()

    def reconcile(self, goal_id: str) -> dict[str, int]:
        goal = self.get(goal_id)
        ledger = self.session.execute(
            select(func.coalesce(func.sum(Contribution.amount_cents), 0)).where(
                Contribution.goal_id == goal.id
            )
        ).scalar_one()
        ledger = int(ledger or 0)
        return {
            "saved_amount_cents": goal.saved_amount_cents,
            "contributions_cents": ledger,
            "untracked_cents": goal.saved_amount_cents - ledger,
        }

    def progress(
        self, today: Optional[date] = None
    ) -> list[tuple[SavingsGoal, GoalProgress]]:
        today = today or local_today()
        return [
            (goal, evaluate_goal(SavingsGoalRecord.model_validate(goal), today))
            for goal in self.list()
        ]

    def _after_mutation(self, goal: SavingsGoal) -> None:
        notifications = NotificationService(self.session, self.user_id)
        run_side_effect(
            self.session,
            "milestone_check",
            lambda: notifications.check_goal_milestone(goal),
        )


class ProfileService:
    def __init__(self, session: Session, user_id: Optional[int] = None) -> None:
        self.session = session
        self.user_id = user_id or get_current_user_id()

    def get_or_create(self) -> Profile:
        profile = self.session.scalar(
            select(Profile).where(Profile.user_id == self.user_id)
        )
        if profile:
            return profile
        profile = Profile(user_id=self.user_id, currency_code="INR")
        self.session.add(profile)
        self.session.commit()
        self.session.refresh(profile)
        return profile

    def update(self, data: ProfileIn) -> Profile:
        profile = self.get_or_create()
        for name, value in data.model_dump().items():
            setattr(profile, name, value)
        self.session.commit()
        self.session.refresh(profile)
        return profile

    def thresholds(self) -> BudgetThresholds:
        settings = get_settings()
        profile = self.get_or_create()
        warning = profile.monthly_budget_warning_cents
        critical = profile.monthly_budget_critical_cents
        return BudgetThresholds(
            warning_cents=settings.budget_warning_cents if warning is None else warning,
            critical_cents=settings.budget_critical_cents if critical is None else critical,
        )


class NotificationService:
    def __init__(
        self,
        session: Session,
        user_id: Optional[int] = None,
        email_service: Optional[EmailService] = None,
        outbox: Optional[list[EmailMessage]] = None,
    ) -> None:
        self.session = session
        self.user_id = user_id or get_current_user_id()
        self.email = email_service
        # emails wait here until the caller hands them to deliver()
        self.outbox = outbox if outbox is not None else []

    def list(self, *, limit: int = 50, unread_only: bool = False) -> list[Notification]:
        stmt = (
            select(Notification)
            .where(Notification.user_id == self.user_id)
            .order_by(Notification.created_at.desc())
            .limit(limit)
        )
        if unread_only:
            stmt = stmt.where(Notification.read.is_(False))
        return self.session.scalars(stmt).all()

    def unread_count(self) -> int:
        return int(
            self.session.execute(
                select(func.count(Notification.id)).where(
                    Notification.user_id == self.user_id,
                    Notification.read.is_(False),
                )
            ).scalar_one()
        )

    def get(self, notification_id: str) -> Notification:
        notification = self.session.get(Notification, notification_id)
        if not notification or notification.user_id != self.user_id:
            raise ValueError("Notification not found")
        return notification

    def mark_read(self, notification_id: str) -> Notification:
        notification = self.get(notification_id)
        notification.read = True
        self.session.commit()
        return notification

    def mark_all_read(self) -> int:
        result = self.session.execute(
            update(Notification)
            .where(Notification.user_id == self.user_id, Notification.read.is_(False))
            .values(read=True)
        )
        self.session.commit()
        return result.rowcount or 0

    def delete(self, notification_id: str) -> None:
        notification = self.get(notification_id)
        self.session.delete(notification)
        self.session.commit()

    def flush_outbox(self) -> int:
        messages = list(self.outbox)
        self.outbox.clear()
        return deliver(messages, self.email)

    def existing_keys(self, today: date) -> set[str]:
        month_start, _ = month_bounds(today)
        since = min(month_start, today - timedelta(days=DEDUPE_LOOKBACK_DAYS))
        rows = self.session.execute(
            select(Notification.dedupe_key).where(
                Notification.user_id == self.user_id,
                Notification.dedupe_key.is_not(None),
                Notification.created_at >= datetime.combine(since, datetime.min.time()),
            )
        ).all()
        return {row.dedupe_key for row in rows}

    def _stage(self, drafts: list[NotificationDraft]) -> list[Notification]:
        created = []
        for draft in drafts:
            notification = Notification(
                user_id=self.user_id,
                title=draft.title,
                message=draft.message,
                type=draft.type,
                action_url=draft.action_url,
                dedupe_key=draft.dedupe_key,
                read=False,
            )
            self.session.add(notification)
            created.append(notification)
        return created

    def _commit_staged(self, created: list[Notification]) -> bool:
        """Commit staged rows; a concurrent insert of the same dedupe key wins."""
        keys = ",".join(n.dedupe_key or "" for n in created)
        try:
            self.session.commit()
        except IntegrityError:
            self.session.rollback()
            logger.info(f"notification_duplicate: user={self.user_id} keys={keys}")
            return False
        return True

    def _email_recipient(self) -> Optional[str]:
        profile = ProfileService(self.session, self.user_id).get_or_create()
        if profile.email_notifications and profile.email:
            return profile.email
        return None

    def check_budget(self, today: Optional[date] = None) -> Optional[Notification]:
        today = today or local_today()
        thresholds = ProfileService(self.session, self.user_id).thresholds()
        spent = TransactionService(self.session, self.user_id).month_expense_cents(today)
        drafts = evaluate(
            TriggerContext(
                today=today,
                month_expense_cents=spent,
                thresholds=thresholds,
                existing_keys=self.existing_keys(today),
            )
        )
        if not drafts:
            return None
        (notification,) = self._stage(drafts)
        if not self._commit_staged([notification]):
            return None
        logger.info(
            f"budget_notification: user={self.user_id} type={notification.type.value} spent_cents={spent}"
        )

        recipient = self._email_recipient()
        if recipient:
            limit = (
                thresholds.critical_cents
                if notification.type == NotificationType.error
                else thresholds.warning_cents
            )
            self.outbox.append(budget_warning(recipient, spent, limit))
        return notification

    def check_goal_milestone(self, goal: SavingsGoal) -> Optional[Notification]:
        record = SavingsGoalRecord.model_validate(goal)
        drafts = evaluate(TriggerContext(today=local_today(), goals=[record]))
        if not drafts:
            return None
        (notification,) = self._stage(drafts)
        milestone = int(drafts[0].dedupe_key.rsplit(":", 1)[1])
        goal.last_notified_milestone = milestone
        if not self._commit_staged([notification]):
            # already announced elsewhere; only the marker needs to catch up
            goal.last_notified_milestone = milestone
            self.session.commit()
            return None
        logger.info(
            f"milestone_notification: goal={goal.id} milestone={goal.last_notified_milestone}"
        )
        return notification

    def check_upcoming_recurring(
        self, today: Optional[date] = None, *, include_summary: bool = True
    ) -> list[Notification]:
        today = today or local_today()
        rules = RecurringRuleService(self.session, self.user_id).records(active_only=True)
        drafts = evaluate(
            TriggerContext(
                today=today,
                rules=rules,
                existing_keys=self.existing_keys(today),
                include_upcoming_summary=include_summary,
            )
        )
        if not drafts:
            return []
        created = self._stage(drafts)
        if not self._commit_staged(created):
            return []

        recipient = self._email_recipient()
        if recipient:
            by_key = {f"recurring:{r.id}:{r.next_due_date.isoformat()}": r for r in rules}
            for draft in drafts:
                rule = by_key.get(draft.dedupe_key)
                if rule and rule.transaction_type == TransactionType.expense:
                    self.outbox.append(
                        recurring_bill_reminder(
                            recipient, rule.title, rule.amount_cents, rule.next_due_date
                        )
                    )
        return created

    def run_all_checks(self, today: Optional[date] = None) -> int:
        today = today or local_today()
        created = 0
        for label, check in (
            ("recurring_check", lambda: self.check_upcoming_recurring(today)),
            ("budget_check", lambda: self.check_budget(today)),
        ):
            try:
                result = check()
            except Exception:
                self.session.rollback()
                logger.exception(f"notification_check_failed: user={self.user_id} check={label}")
                continue
            if isinstance(result, list):
                created += len(result)
            elif result is not None:
                created += 1
        return created


class MetricsService:
    def __init__(self, session: Session, user_id: Optional[int] = None) -> None:
        self.session = session
        self.user_id = user_id or get_current_user_id()
        self.transactions = TransactionService(session, self.user_id)

    def analytics(self, period: Period, category: Optional[str] = None) -> FinancialMetrics:
        start = period.start
        if period.slug == "all":
            start = self.transactions.earliest_date() or period.end
        window = Period(period.slug, start, period.end)
        records = self.transactions.records_for_period(window)
        return aggregate(records, window.start, window.end, category)


@dataclass
class ImportResult:
    imported: int = 0
    warnings: list[str] = field(default_factory=list)


class ImportService:
    def __init__(self, session: Session, user_id: Optional[int] = None) -> None:
        self.session = session
        self.user_id = user_id or get_current_user_id()
        self.outbox: list[EmailMessage] = []

    def import_json(self, content: str) -> ImportResult:
        rows, warnings = parse_transactions_json(content)
        return self._commit(rows, warnings)

    def import_csv(self, content: str) -> ImportResult:
        rows, warnings = parse_csv(content)
        return self._commit(rows, warnings)

    def canonical_category(self, name: str, known: list[str]) -> str:
        """Map ``name`` onto an existing label when it is the same word or one edit away."""
        lowered = name.strip().lower()
        for label in known:
            if label.lower() == lowered:
                return label
        best_distance: Optional[int] = None
        best: list[str] = []
        for label in known:
            dist = int(Levenshtein.distance(lowered, label.lower()))
            if best_distance is None or dist < best_distance:
                best_distance = dist
                best = [label]
            elif dist == best_distance:
                best.append(label)
        if best_distance is not None and best_distance <= 1 and len(best) == 1:
            return best[0]
        return name.strip()

    def _commit(self, rows: list[ImportedTransaction], warnings: list[str]) -> ImportResult:
        if not rows:
            raise ValueError("No valid transactions found in file")
        known = TransactionService(self.session, self.user_id).categories()
        for row in rows:
            category = self.canonical_category(row.category, known)
            if category not in known:
                known.append(category)
            title = (row.title or row.note or category).strip()
            self.session.add(
                Transaction(
                    user_id=self.user_id,
                    title=title[:200],
                    amount_cents=amount_to_cents(row.amount),
                    category=None if category == UNCATEGORIZED else category,
                    transaction_type=row.type,
                    transaction_date=row.date,
                )
            )
        self.session.commit()
        logger.info(f"import_committed: user={self.user_id} rows={len(rows)} skipped={len(warnings)}")
        if any(row.type == TransactionType.expense for row in rows):
            notifications = NotificationService(self.session, self.user_id, outbox=self.outbox)
            run_side_effect(self.session, "budget_check", notifications.check_budget)
        return ImportResult(imported=len(rows), warnings=list(warnings))
