from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Iterable

from .models import ClosingBreakdown, FinancialSummary, PaymentMethod, Transaction, TransactionType

ZERO = Decimal("0.00")

_BREAKDOWN_BUCKETS = {
    PaymentMethod.PIX: "pix",
    PaymentMethod.CASH: "cash",
    PaymentMethod.CREDIT: "card",
    PaymentMethod.DEBIT: "card",
}


@dataclass(frozen=True)
class ClosingTotals:
    total_revenue: Decimal
    total_expense: Decimal
    balance: Decimal
    breakdown: ClosingBreakdown


def financial_summary(transactions: Iterable[Transaction]) -> FinancialSummary:
    revenue = ZERO
    expenses = ZERO
    for tx in transactions:
        if tx.type == TransactionType.INCOME:
            revenue += tx.amount
        else:
            expenses += tx.amount
    return FinancialSummary(revenue=revenue, expenses=expenses, profit=revenue - expenses)


def transaction_day(tx: Transaction) -> date | None:
    try:
        return datetime.fromisoformat(tx.date.replace("Z", "+00:00")).date()
    except ValueError:
        return None


def closing_totals(transactions: Iterable[Transaction], day: date) -> ClosingTotals:
    """Revenue, expense and payment-method breakdown for one calendar day."""
    buckets = {"pix": ZERO, "cash": ZERO, "card": ZERO, "other": ZERO}
    revenue = ZERO
    expense = ZERO
    for tx in transactions:
        if transaction_day(tx) != day:
            continue
        if tx.type == TransactionType.INCOME:
            revenue += tx.amount
            bucket = _BREAKDOWN_BUCKETS.get(tx.payment_method, "other") if tx.payment_method else "other"
            buckets[bucket] += tx.amount
        else:
            expense += tx.amount
    return ClosingTotals(
        total_revenue=revenue,
        total_expense=expense,
        balance=revenue - expense,
        breakdown=ClosingBreakdown(**buckets),
    )
