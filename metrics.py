from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Iterable, Optional

from models import TransactionType
from schemas import TransactionRecord

DAILY_BUCKET_MAX_DAYS = 7
DAY_BUCKETS = "day"
MONTH_BUCKETS = "month"
BUDGET_BASELINE_POINTS = 30


@dataclass(frozen=True)
class CategoryShare:
    category: str
    amount_cents: int
    percent: float


@dataclass(frozen=True)
class TrendPoint:
    period: str
    income_cents: int
    expense_cents: int

    @property
    def net_cents(self) -> int:
        return self.income_cents - self.expense_cents


@dataclass(frozen=True)
class FinancialHealth:
    score: int
    savings_rate_points: int
    ratio_points: int
    baseline_points: int
    expense_ratio: float

    @property
    def rating(self) -> str:
        if self.score >= 80:
            return "Excellent"
        if self.score >= 60:
            return "Good"
        return "Needs Improvement"


@dataclass(frozen=True)
class FinancialMetrics:
    window_start: date
    window_end: date
    category: Optional[str]
    transaction_count: int
    income_cents: int
    expense_cents: int
    net_flow_cents: int
    savings_rate: float
    category_breakdown: list[CategoryShare] = field(default_factory=list)
    trend: list[TrendPoint] = field(default_factory=list)
    health: Optional[FinancialHealth] = None


def percent_of(part: int, whole: int) -> float:
    if whole <= 0:
        return 0.0
    return part * 100 / whole


def savings_rate(income_cents: int, expense_cents: int) -> float:
    return percent_of(income_cents - expense_cents, income_cents)


def category_breakdown(transactions: Iterable[TransactionRecord]) -> list[CategoryShare]:
    totals: dict[str, int] = defaultdict(int)
    for txn in transactions:
        if txn.transaction_type == TransactionType.expense:
            totals[txn.category] += txn.amount_cents
    total = sum(totals.values())
    items = sorted(totals.items(), key=lambda item: (-item[1], item[0]))
    return [
        CategoryShare(category=name, amount_cents=amount, percent=percent_of(amount, total))
        for name, amount in items
    ]


def _month_start(d: date) -> date:
    return d.replace(day=1)


def _add_months(d: date, count: int) -> date:
    month_index = (d.year * 12) + (d.month - 1) + count
    return date(month_index // 12, (month_index % 12) + 1, 1)


def trend_buckets(window_start: date, window_end: date) -> tuple[str, list[str]]:
    """Granularity (`day` or `month`) and the ordered bucket keys for the window."""
    if window_end < window_start:
        return MONTH_BUCKETS, []
    if (window_end - window_start).days < DAILY_BUCKET_MAX_DAYS:
        days = (window_end - window_start).days + 1
        return DAY_BUCKETS, [
            (window_start + timedelta(days=i)).isoformat() for i in range(days)
        ]
    keys = []
    current = _month_start(window_start)
    last = _month_start(window_end)
    while current <= last:
        keys.append(current.strftime("%Y-%m"))
        current = _add_months(current, 1)
    return MONTH_BUCKETS, keys


def trend_series(
    transactions: Iterable[TransactionRecord], window_start: date, window_end: date
) -> list[TrendPoint]:
    granularity, keys = trend_buckets(window_start, window_end)
    daily = granularity == DAY_BUCKETS
    income: dict[str, int] = {key: 0 for key in keys}
    expenses: dict[str, int] = {key: 0 for key in keys}
    for txn in transactions:
        key = (
            txn.transaction_date.isoformat()
            if daily
            else txn.transaction_date.strftime("%Y-%m")
        )
        if key not in income:
            continue
        if txn.transaction_type == TransactionType.income:
            income[key] += txn.amount_cents
        else:
            expenses[key] += txn.amount_cents
    return [
        TrendPoint(period=key, income_cents=income[key], expense_cents=expenses[key])
        for key in keys
    ]


def financial_health(income_cents: int, expense_cents: int) -> FinancialHealth:
    rate = savings_rate(income_cents, expense_cents)
    if rate >= 20:
        rate_points = 40
    elif rate >= 10:
        rate_points = 30
    elif rate >= 5:
        rate_points = 20
    elif rate > 0:
        rate_points = 10
    else:
        rate_points = 0

    if income_cents > expense_cents:
        ratio_points = 30
    elif income_cents > 0.8 * expense_cents:
        ratio_points = 20
    elif income_cents > 0.6 * expense_cents:
        ratio_points = 10
    else:
        ratio_points = 0

    # Budget adherence is not measured yet; every user gets the full baseline.
    score = rate_points + ratio_points + BUDGET_BASELINE_POINTS
    return FinancialHealth(
        score=max(0, min(100, score)),
        savings_rate_points=rate_points,
        ratio_points=ratio_points,
        baseline_points=BUDGET_BASELINE_POINTS,
        expense_ratio=percent_of(expense_cents, income_cents),
    )


def filter_window(
    transactions: Iterable[TransactionRecord],
    window_start: date,
    window_end: date,
    category: Optional[str] = None,
) -> list[TransactionRecord]:
    wanted = category.strip().lower() if category else None
    return [
        txn
        for txn in transactions
        if window_start <= txn.transaction_date <= window_end
        and (wanted is None or txn.category.lower() == wanted)
    ]


def aggregate(
    transactions: Iterable[TransactionRecord],
    window_start: date,
    window_end: date,
    category: Optional[str] = None,
) -> FinancialMetrics:
    selected = filter_window(transactions, window_start, window_end, category)
    income = sum(
        t.amount_cents for t in selected if t.transaction_type == TransactionType.income
    )
    expenses = sum(
        t.amount_cents for t in selected if t.transaction_type == TransactionType.expense
    )
    return FinancialMetrics(
        window_start=window_start,
        window_end=window_end,
        category=category,
        transaction_count=len(selected),
        income_cents=income,
        expense_cents=expenses,
        net_flow_cents=income - expenses,
        savings_rate=savings_rate(income, expenses),
        category_breakdown=category_breakdown(selected),
        trend=trend_series(selected, window_start, window_end),
        health=financial_health(income, expenses),
    )
