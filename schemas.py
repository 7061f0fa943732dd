import datetime as dt
from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from models import Frequency, GoalPriority, TransactionType

UNCATEGORIZED = "Uncategorized"


def _clean_category(value: object) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


class RepeatIn(BaseModel):
    enabled: bool = False
    frequency: Optional[Frequency] = None
    end_date: Optional[date] = None

    @model_validator(mode="after")
    def _frequency_required(self) -> "RepeatIn":
        if self.enabled and self.frequency is None:
            raise ValueError("Frequency is required when repeat is enabled")
        return self


class TransactionIn(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    amount_cents: int = Field(..., gt=0)
    category: Optional[str] = Field(default=None, max_length=100)
    transaction_type: TransactionType
    transaction_date: date
    repeat: Optional[RepeatIn] = None

    @field_validator("category", mode="before")
    @classmethod
    def _normalize_category(cls, value: object) -> Optional[str]:
        return _clean_category(value)

    @model_validator(mode="after")
    def _repeat_ends_after_start(self) -> "TransactionIn":
        repeat = self.repeat
        if (
            repeat is not None
            and repeat.enabled
            and repeat.end_date is not None
            and repeat.end_date < self.transaction_date
        ):
            raise ValueError("End date must not be before start date")
        return self


class RecurringRuleIn(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    amount_cents: int = Field(..., gt=0)
    category: Optional[str] = Field(default=None, max_length=100)
    transaction_type: TransactionType
    frequency: Frequency
    start_date: date
    end_date: Optional[date] = None
    is_active: bool = True

    @field_validator("category", mode="before")
    @classmethod
    def _normalize_category(cls, value: object) -> Optional[str]:
        return _clean_category(value)

    @model_validator(mode="after")
    def _end_after_start(self) -> "RecurringRuleIn":
        if self.end_date is not None and self.end_date < self.start_date:
            raise ValueError("End date must not be before start date")
        return self


class RuleToggleIn(BaseModel):
    is_active: bool


class SavingsGoalIn(BaseModel):
    goal_name: str = Field(..., min_length=1, max_length=120)
    target_amount_cents: int = Field(..., gt=0)
    saved_amount_cents: int = Field(default=0, ge=0)
    target_date: Optional[date] = None
    priority: GoalPriority = GoalPriority.medium
    description: Optional[str] = Field(default=None, max_length=500)


class ContributionIn(BaseModel):
    amount_cents: int = Field(..., gt=0)
    contribution_date: date
    note: Optional[str] = Field(default=None, max_length=200)


class ProfileIn(BaseModel):
    display_name: Optional[str] = Field(default=None, max_length=120)
    email: Optional[str] = Field(default=None, max_length=254)
    currency_code: str = Field(default="INR", min_length=3, max_length=3)
    monthly_budget_warning_cents: Optional[int] = Field(default=None, ge=0)
    monthly_budget_critical_cents: Optional[int] = Field(default=None, ge=0)
    email_notifications: bool = False

    @model_validator(mode="after")
    def _thresholds_ordered(self) -> "ProfileIn":
        warning = self.monthly_budget_warning_cents
        critical = self.monthly_budget_critical_cents
        if warning is not None and critical is not None and warning > critical:
            raise ValueError("Warning threshold must not exceed critical threshold")
        return self


class ImportedTransaction(BaseModel):
    """One item of the JSON import contract."""

    model_config = ConfigDict(extra="ignore")

    id: Optional[str] = None
    title: Optional[str] = None
    note: Optional[str] = None
    amount: float = Field(..., ge=0)
    category: str = Field(..., min_length=1, max_length=100)
    type: TransactionType
    date: dt.date

    @field_validator("amount", mode="before")
    @classmethod
    def _amount_is_number(cls, value: object) -> object:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ValueError("amount must be a number")
        return value

    @field_validator("category", mode="before")
    @classmethod
    def _strip_category(cls, value: object) -> object:
        return value.strip() if isinstance(value, str) else value

    @field_validator("date", mode="before")
    @classmethod
    def _iso_date_only(cls, value: object) -> object:
        if not isinstance(value, str) or len(value) != 10:
            raise ValueError("date must be YYYY-MM-DD")
        return value


# Decoded store rows. Everything the pure core consumes passes through these.


class TransactionRecord(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    title: str = ""
    amount_cents: int = Field(..., ge=0)
    category: str = UNCATEGORIZED
    transaction_type: TransactionType
    transaction_date: Optional[date] = None
    created_at: Optional[datetime] = None

    @field_validator("category", mode="before")
    @classmethod
    def _default_category(cls, value: object) -> object:
        return _clean_category(value) or UNCATEGORIZED

    @model_validator(mode="after")
    def _fallback_date(self) -> "TransactionRecord":
        if self.transaction_date is None:
            if self.created_at is None:
                raise ValueError("transaction_date or created_at is required")
            self.transaction_date = self.created_at.date()
        return self


class RecurringRuleRecord(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    title: str
    amount_cents: int = Field(..., ge=0)
    category: str = UNCATEGORIZED
    transaction_type: TransactionType
    frequency: Frequency
    start_date: date
    end_date: Optional[date] = None
    next_due_date: date
    is_active: bool = True

    @field_validator("category", mode="before")
    @classmethod
    def _default_category(cls, value: object) -> object:
        return _clean_category(value) or UNCATEGORIZED


class SavingsGoalRecord(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    goal_name: str
    target_amount_cents: int = Field(..., gt=0)
    saved_amount_cents: int = Field(default=0, ge=0)
    target_date: Optional[date] = None
    priority: GoalPriority = GoalPriority.medium
    created_at: datetime
    last_notified_milestone: int = 0

    @field_validator("saved_amount_cents", mode="before")
    @classmethod
    def _none_is_zero(cls, value: object) -> object:
        return 0 if value is None else value
