"""Shared fixtures for the analytics test suite."""
import itertools
from datetime import date
from decimal import Decimal

import pytest

from wealth_analytics.core.models import Transaction, TransactionType


@pytest.fixture
def make_txn():
    """Factory for transactions with sequential ids."""
    counter = itertools.count(1)

    def _make(day: date, amount, kind: str = "expense", category="General",
              account: str = "acct-1", description: str = "") -> Transaction:
        return Transaction(
            id=f"t{next(counter)}",
            date=day,
            amount=Decimal(str(amount)),
            type=TransactionType(kind),
            account_id=account,
            category=category,
            description=description,
        )

    return _make
