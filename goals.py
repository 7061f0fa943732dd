import math
from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Optional

from schemas import SavingsGoalRecord

MILESTONES = (25, 50, 75, 100)
ON_TRACK_RATIO = 0.9
SLIGHTLY_BEHIND_RATIO = 0.7
DAYS_PER_MONTH = 30
MIN_MONTHLY_CONTRIBUTION_CENTS = 100


class GoalStatus(str, Enum):
    on_track = "On Track"
    slightly_behind = "Slightly Behind"
    at_risk = "At Risk"
    completed = "Completed"


@dataclass(frozen=True)
class GoalProgress:
    goal_id: str
    percent: float
    status: GoalStatus
    expected_progress: Optional[float]
    remaining_cents: int
    days_remaining: Optional[int]
    months_remaining: Optional[int]
    required_monthly_contribution_cents: int
    milestone: int


def progress_percent(saved_cents: int, target_cents: int) -> float:
    if target_cents <= 0:
        return 0.0
    return saved_cents * 100 / target_cents


def reached_milestone(percent: float) -> int:
    reached = 0
    for milestone in MILESTONES:
        if percent >= milestone:
            reached = milestone
    return reached


def expected_progress(created_on: date, target_date: date, today: date) -> float:
    total_days = (target_date - created_on).days
    if total_days <= 0:
        return 100.0
    elapsed_days = max(0, (today - created_on).days)
    return min(100.0, elapsed_days * 100 / total_days)


def classify(percent: float, expected: float) -> GoalStatus:
    if percent >= expected * ON_TRACK_RATIO:
        return GoalStatus.on_track
    if percent >= expected * SLIGHTLY_BEHIND_RATIO:
        return GoalStatus.slightly_behind
    return GoalStatus.at_risk


def evaluate_goal(goal: SavingsGoalRecord, today: date) -> GoalProgress:
    percent = progress_percent(goal.saved_amount_cents, goal.target_amount_cents)
    remaining = max(0, goal.target_amount_cents - goal.saved_amount_cents)
    milestone = reached_milestone(percent)

    if percent >= 100:
        return GoalProgress(
            goal_id=goal.id,
            percent=percent,
            status=GoalStatus.completed,
            expected_progress=None,
            remaining_cents=0,
            days_remaining=None,
            months_remaining=None,
            required_monthly_contribution_cents=0,
            milestone=milestone,
        )

    if goal.target_date is None:
        return GoalProgress(
            goal_id=goal.id,
            percent=percent,
            status=GoalStatus.on_track,
            expected_progress=None,
            remaining_cents=remaining,
            days_remaining=None,
            months_remaining=None,
            required_monthly_contribution_cents=0,
            milestone=milestone,
        )

    expected = expected_progress(goal.created_at.date(), goal.target_date, today)
    days_remaining = (goal.target_date - today).days
    months_remaining = max(1, math.ceil(days_remaining / DAYS_PER_MONTH))
    required = max(
        MIN_MONTHLY_CONTRIBUTION_CENTS, math.ceil(remaining / months_remaining)
    )
    return GoalProgress(
        goal_id=goal.id,
        percent=percent,
        status=classify(percent, expected),
        expected_progress=expected,
        remaining_cents=remaining,
        days_remaining=days_remaining,
        months_remaining=months_remaining,
        required_monthly_contribution_cents=required,
        milestone=milestone,
    )


def motivational_tip(goal: SavingsGoalRecord) -> str:
    saved = goal.saved_amount_cents
    target = goal.target_amount_cents
    if saved >= target:
        return "Congratulations! You've achieved your goal!"

    remaining = target - saved
    for milestone in (25, 50, 75, 90):
        to_milestone = math.ceil(target * milestone / 100) - saved
        if 0 < to_milestone <= remaining * 0.3:
            return f"Just {to_milestone / 100:,.2f} more to hit {milestone}%"

    if remaining <= target * 0.1:
        return f"You're almost there! Only {remaining / 100:,.2f} remaining!"
    return "Keep going! Every contribution brings you closer to your goal."
