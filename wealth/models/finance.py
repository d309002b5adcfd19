"""
Core Data Models for Wealth

These models define the strict schemas for all data flowing through the system.
They are designed to:
1. Enforce type safety at runtime
2. Provide clear validation error messages
3. Be serializable for the HTTP API and the UI
4. Support the audit trail

DESIGN DECISION: Money is held as Decimal everywhere and only becomes a
float at the JSON boundary. Balances are never computed with floats.
"""

import calendar
from collections import defaultdict
from datetime import datetime, timedelta
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Annotated, Any, Iterable, Optional
from uuid import UUID, uuid4

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    PlainSerializer,
    field_validator,
    model_validator,
)


# Decimal in Python, number in JSON.
Money = Annotated[
    Decimal,
    PlainSerializer(float, return_type=float, when_used="json"),
]

MONTH_NAMES = list(calendar.month_name)[1:]


def _utcnow() -> datetime:
    return datetime.utcnow()


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class AccountType(str, Enum):
    """Kinds of bank account a user can track."""
    CURRENT = "CURRENT"
    SAVINGS = "SAVINGS"


class TransactionType(str, Enum):
    """
    Direction of a transaction.

    The balance effect of a transaction is derived from its type:
    expenses take money out of the account, income puts it in.
    """
    INCOME = "INCOME"
    EXPENSE = "EXPENSE"

    def balance_effect(self, amount: Decimal) -> Decimal:
        """Signed change this transaction applies to its account."""
        return -amount if self is TransactionType.EXPENSE else amount


class TransactionStatus(str, Enum):
    """Processing status of a transaction."""
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class RecurringInterval(str, Enum):
    """How often a recurring transaction repeats."""
    DAILY = "DAILY"
    WEEKLY = "WEEKLY"
    MONTHLY = "MONTHLY"
    YEARLY = "YEARLY"

    def next_date(self, start: datetime) -> datetime:
        """
        Date of the next occurrence after `start`.

        Month and year steps clamp to the last day of the target month
        (Jan 31 -> Feb 28, Feb 29 -> Feb 28 of a non-leap year).
        """
        if self is RecurringInterval.DAILY:
            return start + timedelta(days=1)
        if self is RecurringInterval.WEEKLY:
            return start + timedelta(weeks=1)
        if self is RecurringInterval.MONTHLY:
            year = start.year + start.month // 12
            month = start.month % 12 + 1
        else:
            year = start.year + 1
            month = start.month
        day = min(start.day, calendar.monthrange(year, month)[1])
        return start.replace(year=year, month=month, day=day)


# =============================================================================
# CORE ENTITIES
# =============================================================================

class User(BaseModel):
    """
    Local mirror of a Clerk user.

    The Clerk user id is the only link between the identity provider
    and the rows this app owns.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    clerk_user_id: str = Field(..., min_length=1, max_length=100)
    email: str = Field(..., min_length=3, max_length=255)
    name: Optional[str] = Field(default=None, max_length=200)
    image_url: Optional[str] = None
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)


class Account(BaseModel):
    """A user-owned balance bucket."""
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    user_id: UUID
    name: str = Field(..., min_length=1, max_length=100)
    type: AccountType
    balance: Money = Field(default=Decimal("0.00"), decimal_places=2)
    is_default: bool = False
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)


class Transaction(BaseModel):
    """
    A recorded income or expense row affecting one account's balance.

    Recurring transactions act as templates: the scheduler copies them
    into new, non-recurring rows on every due date.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    user_id: UUID
    account_id: UUID
    type: TransactionType
    amount: Money = Field(..., gt=0, decimal_places=2)
    description: Optional[str] = Field(default=None, max_length=500)
    date: datetime
    category: str = Field(..., min_length=1, max_length=50)
    receipt_url: Optional[str] = None

    is_recurring: bool = False
    recurring_interval: Optional[RecurringInterval] = None
    next_recurring_date: Optional[datetime] = None
    last_processed: Optional[datetime] = None
    status: TransactionStatus = TransactionStatus.COMPLETED

    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    @property
    def balance_effect(self) -> Decimal:
        return self.type.balance_effect(self.amount)

    @model_validator(mode='after')
    def validate_recurrence(self) -> 'Transaction':
        if self.is_recurring and self.recurring_interval is None:
            raise ValueError("Recurring interval is required for recurring transactions")
        return self


def reversal_changes(transactions: Iterable[Transaction]) -> dict[UUID, Decimal]:
    """
    Per-account balance change that undoes the given transactions.

    Removing an expense gives the money back; removing income takes it
    away again.
    """
    changes: dict[UUID, Decimal] = defaultdict(lambda: Decimal("0.00"))
    for transaction in transactions:
        changes[transaction.account_id] -= transaction.balance_effect
    return dict(changes)


class Budget(BaseModel):
    """Monthly spending limit for a user's default account."""

    id: UUID = Field(default_factory=uuid4)
    user_id: UUID
    amount: Money = Field(..., gt=0, decimal_places=2)
    last_alert_sent: Optional[datetime] = None
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)


class FinancialInsight(BaseModel):
    """
    Cached, AI-generated summary of one month's spending.

    At most one insight exists per (user, month, year); regenerating
    overwrites it.
    """

    id: UUID = Field(default_factory=uuid4)
    user_id: Optional[UUID] = None
    month: str
    year: int = Field(..., ge=1900, le=9999)
    total_income: Money = Decimal("0.00")
    total_expenses: Money = Decimal("0.00")
    net_income: Money = Decimal("0.00")
    savings_rate: float = 0.0
    categories: dict[str, float] = Field(default_factory=dict)
    insights: list[str] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    @field_validator('month')
    @classmethod
    def validate_month(cls, v: str) -> str:
        """Months are stored as English month names."""
        for name in MONTH_NAMES:
            if v.strip().lower() == name.lower():
                return name
        raise ValueError(f"Unknown month: {v}")

    @property
    def month_number(self) -> int:
        return MONTH_NAMES.index(self.month) + 1


# =============================================================================
# INPUT MODELS - what forms and API clients send
# =============================================================================

class AccountInput(BaseModel):
    """Payload for creating an account."""
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(..., min_length=1, max_length=100, description="Name is required")
    type: AccountType
    balance: Money = Field(..., decimal_places=2, description="Initial balance is required")
    is_default: bool = False


class AccountUpdate(BaseModel):
    """Payload for editing an account. Only name, type and balance are editable."""
    model_config = ConfigDict(str_strip_whitespace=True)

    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    type: Optional[AccountType] = None
    balance: Optional[Money] = Field(default=None, decimal_places=2)


class TransactionInput(BaseModel):
    """
    Payload for creating or editing a transaction.

    Mirrors the transaction form: recurring transactions must say how
    often they repeat.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    type: TransactionType
    amount: Money = Field(..., gt=0, decimal_places=2)
    description: Optional[str] = Field(default=None, max_length=500)
    date: datetime
    account_id: UUID
    category: str = Field(..., min_length=1, max_length=50, description="Category is required")
    receipt_url: Optional[str] = None
    is_recurring: bool = False
    recurring_interval: Optional[RecurringInterval] = None

    @field_validator('amount', mode='before')
    @classmethod
    def parse_amount_text(cls, v: Any) -> Any:
        """Forms submit amounts as text."""
        if isinstance(v, str):
            try:
                return Decimal(v.strip())
            except InvalidOperation:
                raise ValueError("Amount must be a number")
        return v

    @model_validator(mode='after')
    def validate_recurrence(self) -> 'TransactionInput':
        if self.is_recurring and self.recurring_interval is None:
            raise ValueError("Recurring interval is required for recurring transactions")
        return self


class BudgetInput(BaseModel):
    """Payload for setting the monthly budget."""

    amount: Money = Field(..., gt=0, decimal_places=2)


class InsightRequest(BaseModel):
    """
    Monthly figures sent to the insight generator.

    `categories` maps category id to the month's spend in that category.
    """

    month: Optional[str] = None
    year: Optional[int] = None
    total_income: float = 0.0
    total_expenses: float = 0.0
    categories: dict[str, float] = Field(default_factory=dict)


# =============================================================================
# RESULT MODELS
# =============================================================================

class ActionResult(BaseModel):
    """
    Uniform result of every action.

    Actions never raise for business failures; they report them here.
    Authentication failures are the exception and do raise.
    """

    success: bool
    data: Any = None
    error: Optional[str] = None
    message: Optional[str] = None

    @classmethod
    def ok(cls, data: Any = None, message: Optional[str] = None) -> "ActionResult":
        return cls(success=True, data=data, message=message)

    @classmethod
    def fail(cls, error: str) -> "ActionResult":
        return cls(success=False, error=error)


class AccountWithTransactions(Account):
    """An account together with its transactions, newest first."""

    transactions: list[Transaction] = Field(default_factory=list)
    transaction_count: int = Field(default=0, ge=0)


class CurrentBudget(BaseModel):
    """Budget plus what has been spent against it this month."""

    budget: Optional[Budget] = None
    current_expenses: Money = Decimal("0.00")

    @property
    def percent_used(self) -> Optional[float]:
        if self.budget is None:
            return None
        return float(self.current_expenses / self.budget.amount * 100)


class MonthlyStats(BaseModel):
    """Income and expense totals for one calendar month."""

    total_income: Money = Decimal("0.00")
    total_expenses: Money = Decimal("0.00")
    by_category: dict[str, float] = Field(default_factory=dict)
    transaction_count: int = 0

    @property
    def net_income(self) -> Decimal:
        return self.total_income - self.total_expenses


class ParsedReceipt(BaseModel):
    """
    Best-effort extraction from a receipt image.

    CRITICAL: This is PROPOSED data. Every field may be missing and the
    user reviews it in the transaction form before anything is saved.
    Field names on the wire are camelCase to match the receipt prompt.
    """
    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True)

    amount: Optional[float] = None
    merchant_name: Optional[str] = Field(default=None, alias="merchantName")
    description: Optional[str] = None
    category: Optional[str] = None
    date: Optional[str] = None

    @field_validator('amount', mode='before')
    @classmethod
    def coerce_amount(cls, v: Any) -> Any:
        """Models sometimes return "$12.50" instead of 12.50."""
        if v is None or isinstance(v, (int, float)):
            return v
        cleaned = "".join(ch for ch in str(v) if ch.isdigit() or ch in ".-")
        try:
            return float(cleaned)
        except ValueError:
            return None

    @field_validator('merchant_name', 'description', 'category', 'date', mode='before')
    @classmethod
    def coerce_text(cls, v: Any) -> Any:
        if v is None:
            return None
        return str(v)

    @classmethod
    def unreadable(cls, description: str) -> "ParsedReceipt":
        """Null-filled result carrying an explanation for the user."""
        return cls(description=description)

    def to_response(self) -> dict:
        return self.model_dump(by_alias=True)


class Category(BaseModel):
    """A transaction category shown in the form."""

    id: str
    name: str
    type: TransactionType
    color: str = "#94a3b8"
    icon: Optional[str] = None
    subcategories: list[str] = Field(default_factory=list)
