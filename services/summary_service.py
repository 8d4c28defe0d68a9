"""Month filtering and dashboard totals."""
from collections import defaultdict
from typing import List, Optional, Sequence

from models.finance import Budget, CategoryTotal, MonthlyTotal, MonthSummary
from models.transaction import Transaction
from utils.date_helpers import add_months, months_between

BUDGET_ALERT_RATIO = 0.9


def filter_month(transactions: Sequence[Transaction], year: int, month: int) -> List[Transaction]:
    return [t for t in transactions if t.date.year == year and t.date.month == month]


def filter_type(transactions: Sequence[Transaction], type_: Optional[str]) -> List[Transaction]:
    if not type_ or type_ == 'all':
        return list(transactions)
    return [t for t in transactions if t.type == type_]


def budget_alerts(budgets: Sequence[Budget]) -> List[Budget]:
    """Budgets that have used more than 90% of their limit."""
    return [b for b in budgets if b.spent > b.limit * BUDGET_ALERT_RATIO]


def summarize_month(
    transactions: Sequence[Transaction],
    year: int,
    month: int,
    budgets: Sequence[Budget] = (),
) -> MonthSummary:
    """
    Paid totals drive the balance; pending occurrences are reported apart.
    Category totals include pending expenses so upcoming installments count against budgets.
    """
    summary = MonthSummary(year=year, month=month)
    by_category = defaultdict(float)
    for t in filter_month(transactions, year, month):
        if t.type == 'income':
            if t.is_paid:
                summary.income += t.amount
            else:
                summary.pending_income += t.amount
        else:
            if t.is_paid:
                summary.expense += t.amount
            else:
                summary.pending_expense += t.amount
            by_category[t.category] += t.amount

    summary.balance = summary.income - summary.expense
    summary.expenses_by_category = [
        CategoryTotal(category=category, total=round(total, 2))
        for category, total in sorted(by_category.items(), key=lambda item: item[1], reverse=True)
    ]
    summary.budget_alerts = budget_alerts(budgets)
    return summary


def monthly_report(transactions: Sequence[Transaction]) -> List[MonthlyTotal]:
    """
    Income and expense per month, oldest first, from the earliest to the latest transaction.
    Months without transactions are included with zero totals.
    """
    if not transactions:
        return []
    first = min(t.date for t in transactions).replace(day=1)
    last = max(t.date for t in transactions).replace(day=1)
    report = []
    for offset in range(months_between(first, last) + 1):
        month_start = add_months(first, offset)
        report.append(MonthlyTotal(year=month_start.year, month=month_start.month))
    for t in transactions:
        row = report[months_between(first, t.date)]
        if t.type == 'income':
            row.income += t.amount
        else:
            row.expense += t.amount
    for row in report:
        row.income = round(row.income, 2)
        row.expense = round(row.expense, 2)
        row.net = round(row.income - row.expense, 2)
    return report
