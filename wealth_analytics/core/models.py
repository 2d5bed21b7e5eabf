"""
Core data types shared by every analytics component.

Transactions are immutable; amounts are always Decimal. Result containers
follow the same pattern as the rest of the engine: dataclasses with a
``to_dict()`` that renders Decimals as strings and dates as ISO strings.
"""
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Mapping, Optional

from wealth_analytics.core.error_taxonomy import InvalidDataError, InvalidQueryError
from wealth_analytics.core.periods import DateLike, to_date
from wealth_analytics.tools.calculator import to_decimal


class TransactionType(Enum):
    """Direction of money flow."""
    INCOME = "income"
    EXPENSE = "expense"


class MetricKind(Enum):
    """Primitive metrics computable over any transaction set."""
    INCOME = "income"
    EXPENSES = "expenses"
    NET = "net"
    COUNT = "count"

    @classmethod
    def parse(cls, value: Any) -> "MetricKind":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).lower())
        except ValueError:
            raise InvalidQueryError(
                f"Unknown metric '{value}'. Available: {[m.value for m in cls]}"
            ) from None


class Trend(Enum):
    UP = "up"
    DOWN = "down"
    STABLE = "stable"


@dataclass(frozen=True)
class Transaction:
    """A single dated money movement."""
    id: str
    date: date
    amount: Decimal
    type: TransactionType
    account_id: str
    category: Optional[str] = None
    description: str = ""

    def __post_init__(self):
        try:
            amount = to_decimal(self.amount)
        except (ArithmeticError, TypeError, ValueError) as e:
            raise InvalidDataError(
                f"Transaction {self.id} has an invalid amount: {self.amount!r}",
                context={"transaction_id": self.id},
            ) from e
        if not amount.is_finite():
            raise InvalidDataError(
                f"Transaction {self.id} has a non-finite amount",
                context={"transaction_id": self.id},
            )
        object.__setattr__(self, "amount", amount)
        object.__setattr__(self, "date", to_date(self.date))
        if not isinstance(self.type, TransactionType):
            try:
                object.__setattr__(self, "type", TransactionType(str(self.type).lower()))
            except ValueError as e:
                raise InvalidDataError(
                    f"Transaction {self.id} has an unknown type: {self.type!r}",
                    context={"transaction_id": self.id},
                ) from e

    @property
    def magnitude(self) -> Decimal:
        return abs(self.amount)

    @property
    def is_expense(self) -> bool:
        return self.type == TransactionType.EXPENSE

    @property
    def is_income(self) -> bool:
        return self.type == TransactionType.INCOME

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Transaction":
        """Build a transaction from a plain mapping (camelCase or snake_case keys)."""
        try:
            return cls(
                id=str(data["id"]),
                date=data["date"],
                amount=data["amount"],
                type=data["type"],
                account_id=str(data.get("account_id", data.get("accountId", ""))),
                category=data.get("category"),
                description=data.get("description") or "",
            )
        except KeyError as e:
            raise InvalidDataError(f"Transaction record missing field {e}") from e

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "date": self.date.isoformat(),
            "amount": str(self.amount),
            "type": self.type.value,
            "account_id": self.account_id,
            "category": self.category,
            "description": self.description,
        }


@dataclass(frozen=True)
class TimeRange:
    """An inclusive calendar-date range."""
    start: date
    end: date
    label: Optional[str] = None

    def __post_init__(self):
        object.__setattr__(self, "start", to_date(self.start))
        object.__setattr__(self, "end", to_date(self.end))
        if self.start > self.end:
            raise InvalidQueryError(
                f"Time range start {self.start} is after end {self.end}"
            )

    @property
    def days(self) -> int:
        """Number of days in the range."""
        return (self.end - self.start).days + 1

    def contains(self, d: DateLike) -> bool:
        """Check if a date falls within this range."""
        return self.start <= to_date(d) <= self.end

    def to_dict(self) -> Dict[str, Any]:
        return {
            "start": self.start.isoformat(),
            "end": self.end.isoformat(),
            "label": self.label,
            "days": self.days,
        }


@dataclass
class MetricValue:
    """A metric compared against a previous value."""
    value: Decimal
    change: Optional[Decimal] = None
    change_percent: Optional[Decimal] = None
    trend: Trend = Trend.STABLE

    def to_dict(self) -> Dict[str, Any]:
        return {
            "value": str(self.value),
            "change": str(self.change) if self.change is not None else None,
            "change_percent": str(self.change_percent) if self.change_percent is not None else None,
            "trend": self.trend.value,
        }


@dataclass
class PeriodValue:
    """One bucket of an aggregated series."""
    key: str
    start: date
    value: Decimal
    count: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "key": self.key,
            "start": self.start.isoformat(),
            "value": str(self.value),
            "count": self.count,
        }
