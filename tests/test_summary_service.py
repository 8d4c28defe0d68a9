from datetime import date

from conftest import make_transaction
from models.finance import Budget
from services.summary_service import budget_alerts, filter_month, filter_type, monthly_report, summarize_month


def sample():
    return [
        make_transaction(id="1", type="income", category="Salário", amount=5000, date=date(2024, 3, 5)),
        make_transaction(id="2", type="income", category="Freela", amount=800, date=date(2024, 3, 20), is_paid=False),
        make_transaction(id="3", category="Mercado", amount=600, date=date(2024, 3, 10)),
        make_transaction(id="4", category="Compras", amount=100, date=date(2024, 3, 15), is_paid=False),
        make_transaction(id="5", category="Mercado", amount=200, date=date(2024, 3, 25), is_paid=False),
        make_transaction(id="6", category="Mercado", amount=999, date=date(2024, 4, 1)),
    ]


def test_filter_month_and_type():
    assert [t.id for t in filter_month(sample(), 2024, 4)] == ["6"]
    assert [t.id for t in filter_type(sample(), "income")] == ["1", "2"]
    assert len(filter_type(sample(), "all")) == 6


def test_summarize_month():
    summary = summarize_month(sample(), 2024, 3)

    assert summary.income == 5000
    assert summary.pending_income == 800
    assert summary.expense == 600
    assert summary.pending_expense == 300
    assert summary.balance == 4400
    assert [(c.category, c.total) for c in summary.expenses_by_category] == [("Mercado", 800), ("Compras", 100)]


def test_budget_alerts():
    budgets = [
        Budget(category="Lazer", limit=100, spent=95),
        Budget(category="Mercado", limit=1000, spent=900),
    ]

    assert [b.category for b in budget_alerts(budgets)] == ["Lazer"]
    assert [b.category for b in summarize_month([], 2024, 1, budgets=budgets).budget_alerts] == ["Lazer"]


def test_monthly_report_fills_gaps():
    transactions = [
        make_transaction(id="1", type="income", amount=3000, date=date(2023, 11, 5)),
        make_transaction(id="2", amount=250.5, date=date(2023, 11, 20), is_paid=False),
        make_transaction(id="3", amount=100, date=date(2024, 2, 1)),
    ]

    report = monthly_report(transactions)

    assert [(row.year, row.month) for row in report] == [(2023, 11), (2023, 12), (2024, 1), (2024, 2)]
    assert (report[0].income, report[0].expense, report[0].net) == (3000, 250.5, 2749.5)
    assert (report[1].income, report[1].expense, report[1].net) == (0, 0, 0)
    assert report[3].net == -100


def test_monthly_report_empty():
    assert monthly_report([]) == []
