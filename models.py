import uuid
from datetime import date, datetime
from enum import Enum
from typing import Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    Enum as SAEnum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from database import Base


class TransactionType(str, Enum):
    income = "income"
    expense = "expense"


class Frequency(str, Enum):
    daily = "daily"
    weekly = "weekly"
    biweekly = "biweekly"
    monthly = "monthly"
    quarterly = "quarterly"
    yearly = "yearly"


class GoalPriority(str, Enum):
    high = "High"
    medium = "Medium"
    low = "Low"


class NotificationType(str, Enum):
    info = "info"
    success = "success"
    warning = "warning"
    error = "error"


def _values(enum_cls) -> list[str]:
    return [member.value for member in enum_cls]


GOAL_PRIORITY_ENUM = SAEnum(
    GoalPriority, name="goalpriority", values_callable=_values
)


def new_id() -> str:
    return str(uuid.uuid4())


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )


class Profile(Base, TimestampMixin):
    __tablename__ = "profiles"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, unique=True)
    display_name: Mapped[Optional[str]] = mapped_column(String(120))
    email: Mapped[Optional[str]] = mapped_column(String(254))
    currency_code: Mapped[str] = mapped_column(
        String(3), nullable=False, default="INR"
    )
    monthly_budget_warning_cents: Mapped[Optional[int]] = mapped_column(Integer)
    monthly_budget_critical_cents: Mapped[Optional[int]] = mapped_column(Integer)
    email_notifications: Mapped[bool] = mapped_column(
        Boolean, default=False, nullable=False
    )


class Transaction(Base, TimestampMixin):
    __tablename__ = "expenses"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    category: Mapped[Optional[str]] = mapped_column(String(100))
    transaction_type: Mapped[TransactionType] = mapped_column(
        SAEnum(TransactionType), nullable=False
    )
    transaction_date: Mapped[Optional[date]] = mapped_column(Date)
    origin_rule_id: Mapped[Optional[str]] = mapped_column(
        ForeignKey("recurring_transactions.id", ondelete="SET NULL")
    )

    origin_rule: Mapped[Optional["RecurringRule"]] = relationship(
        "RecurringRule", back_populates="transactions"
    )

    __table_args__ = (
        Index("ix_expenses_user_date", "user_id", "transaction_date"),
        Index("ix_expenses_user_type_date", "user_id", "transaction_type", "transaction_date"),
        CheckConstraint("amount_cents >= 0", name="amount_positive"),
    )


class RecurringRule(Base, TimestampMixin):
    __tablename__ = "recurring_transactions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    category: Mapped[Optional[str]] = mapped_column(String(100))
    transaction_type: Mapped[TransactionType] = mapped_column(
        SAEnum(TransactionType), nullable=False
    )
    frequency: Mapped[Frequency] = mapped_column(SAEnum(Frequency), nullable=False)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[Optional[date]] = mapped_column(Date)
    next_due_date: Mapped[date] = mapped_column(Date, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    transactions: Mapped[list["Transaction"]] = relationship(
        "Transaction", back_populates="origin_rule"
    )

    __table_args__ = (
        Index("ix_recurring_user_next_due", "user_id", "next_due_date"),
        CheckConstraint("amount_cents >= 0", name="amount_positive"),
        CheckConstraint("next_due_date >= start_date", name="next_due_after_start"),
    )


class SavingsGoal(Base, TimestampMixin):
    __tablename__ = "savings"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    goal_name: Mapped[str] = mapped_column(String(120), nullable=False)
    target_amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    saved_amount_cents: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0
    )
    target_date: Mapped[Optional[date]] = mapped_column(Date)
    priority: Mapped[GoalPriority] = mapped_column(
        GOAL_PRIORITY_ENUM, nullable=False, default=GoalPriority.medium
    )
    description: Mapped[Optional[str]] = mapped_column(Text)
    last_notified_milestone: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0
    )

    contributions: Mapped[list["Contribution"]] = relationship(
        "Contribution",
        back_populates="goal",
        cascade="all, delete-orphan",
        order_by="Contribution.contribution_date.desc()",
    )

    __table_args__ = (
        CheckConstraint("target_amount_cents > 0", name="target_positive"),
        CheckConstraint("saved_amount_cents >= 0", name="saved_non_negative"),
    )


class Contribution(Base):
    __tablename__ = "goal_contributions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    goal_id: Mapped[str] = mapped_column(
        ForeignKey("savings.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    contribution_date: Mapped[date] = mapped_column(Date, nullable=False)
    note: Mapped[Optional[str]] = mapped_column(String(200))
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )

    goal: Mapped["SavingsGoal"] = relationship(
        "SavingsGoal", back_populates="contributions"
    )

    __table_args__ = (
        Index("ix_goal_contributions_goal_date", "goal_id", "contribution_date"),
        CheckConstraint("amount_cents > 0", name="amount_positive"),
    )


class Notification(Base):
    __tablename__ = "notifications"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    type: Mapped[NotificationType] = mapped_column(
        SAEnum(NotificationType), nullable=False, default=NotificationType.info
    )
    action_url: Mapped[Optional[str]] = mapped_column(String(200))
    read: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    dedupe_key: Mapped[Optional[str]] = mapped_column(String(120))
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )

    __table_args__ = (
        Index("ix_notifications_user_created", "user_id", "created_at"),
        Index("ix_notifications_user_dedupe", "user_id", "dedupe_key", unique=True),
    )
