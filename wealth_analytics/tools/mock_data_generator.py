"""
Mock Transaction Generator

Generates a realistic household ledger (salary, rent, utilities, groceries,
dining, subscriptions) so the engine can be exercised without real
financial data.

Usage:
    transactions = generate_mock_transactions(months=18, as_of=date(2026, 10, 15), seed=7)

Output is deterministic for a given seed. A random.Random instance is
created per call, so the module keeps no state.
"""
import random
import logging
from datetime import date
from decimal import Decimal
from typing import List, Optional, Tuple

from wealth_analytics.core.models import Transaction, TransactionType
from wealth_analytics.core.periods import add_months, end_of_month
from wealth_analytics.tools.calculator import quantize_currency

logger = logging.getLogger(__name__)

MOCK_ACCOUNTS = ["checking-001", "credit-002", "savings-003"]

# (category, account, day of month, base amount, relative noise)
RECURRING_EXPENSES: List[Tuple[str, str, int, float, float]] = [
    ("Rent", "checking-001", 1, 1850.00, 0.0),
    ("Utilities", "checking-001", 12, 100.00, 0.03),
    ("Internet", "credit-002", 18, 65.00, 0.0),
    ("Insurance", "checking-001", 22, 140.00, 0.02),
]

VARIABLE_EXPENSES: List[Tuple[str, str, float, float, int]] = [
    # (category, account, low, high, occurrences per month)
    ("Groceries", "credit-002", 45.0, 160.0, 4),
    ("Dining", "credit-002", 18.0, 85.0, 3),
    ("Transportation", "credit-002", 25.0, 70.0, 2),
    ("Shopping", "credit-002", 20.0, 220.0, 1),
]

MOCK_MERCHANTS = {
    "Rent": ["Property Management LLC"],
    "Utilities": ["City Power & Water"],
    "Internet": ["FiberNet Monthly"],
    "Insurance": ["Acme Insurance"],
    "Groceries": ["Fresh Market", "Corner Grocer", "Bulk Foods Co"],
    "Dining": ["Pizza Place", "Noodle Bar", "Cafe Central"],
    "Transportation": ["Metro Transit", "Fuel Stop"],
    "Shopping": ["Online Store", "Department Store"],
}


def _amount(rng: random.Random, base: float, noise: float) -> Decimal:
    return quantize_currency(base * (1 + rng.uniform(-noise, noise)))


def generate_mock_transactions(
    months: int = 18,
    as_of: Optional[date] = None,
    seed: Optional[int] = None,
    monthly_salary: float = 5200.00,
    salary_growth: float = 0.01,
    include_spikes: bool = True,
) -> List[Transaction]:
    """
    Generate a household ledger ending at ``as_of``.

    Args:
        months: Number of calendar months of history
        as_of: Last date of the ledger (defaults to today)
        seed: Random seed for reproducible output
        monthly_salary: Salary in the first month
        salary_growth: Month-over-month salary growth rate
        include_spikes: Add a few unusual expenses in the most recent month

    Returns:
        Transactions sorted by date
    """
    rng = random.Random(seed)
    as_of = as_of or date.today()
    first_month = add_months(date(as_of.year, as_of.month, 1), -(months - 1))

    transactions: List[Transaction] = []
    counter = 0

    def add(day: date, amount: Decimal, kind: TransactionType, category: str, account: str, description: str):
        nonlocal counter
        if day > as_of:
            return
        counter += 1
        transactions.append(Transaction(
            id=f"txn-{counter:05d}",
            date=day,
            amount=amount,
            type=kind,
            account_id=account,
            category=category,
            description=description,
        ))

    for m in range(months):
        month_start = add_months(first_month, m)
        last_day = end_of_month(month_start).day

        salary = quantize_currency(monthly_salary * (1 + salary_growth) ** m)
        add(month_start.replace(day=min(15, last_day)), salary, TransactionType.INCOME,
            "Salary", "checking-001", "Payroll deposit")

        for category, account, day, base, noise in RECURRING_EXPENSES:
            add(month_start.replace(day=min(day, last_day)), _amount(rng, base, noise),
                TransactionType.EXPENSE, category, account, MOCK_MERCHANTS[category][0])

        for category, account, low, high, per_month in VARIABLE_EXPENSES:
            for _ in range(per_month):
                add(month_start.replace(day=rng.randint(1, last_day)),
                    quantize_currency(rng.uniform(low, high)),
                    TransactionType.EXPENSE, category, account,
                    rng.choice(MOCK_MERCHANTS[category]))

        if rng.random() < 0.25:
            add(month_start.replace(day=rng.randint(1, last_day)),
                quantize_currency(rng.uniform(50.0, 400.0)),
                TransactionType.INCOME, "Freelance", "savings-003", "Freelance invoice")

    if include_spikes and months > 1:
        spike_day = max(first_month, date(as_of.year, as_of.month, 1))
        add(spike_day, Decimal("310.00"), TransactionType.EXPENSE,
            "Utilities", "checking-001", "Emergency plumbing repair")
        add(spike_day, Decimal("1299.00"), TransactionType.EXPENSE,
            "Shopping", "credit-002", "Annual software subscription")

    transactions.sort(key=lambda t: (t.date, t.id))
    logger.info(f"Generated {len(transactions)} mock transactions over {months} months")
    return transactions
