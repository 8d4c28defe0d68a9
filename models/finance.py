"""Pydantic models for budgets, goals, dashboard summaries and AI insights"""
from pydantic import BaseModel, Field
from datetime import date
from typing import List, Literal, Optional

InsightType = Literal['opportunity', 'warning', 'debt', 'info']


class Budget(BaseModel):
    id: Optional[str] = None
    category: str
    limit: float
    spent: float = 0.0
    cumulative: bool = False  # carry-over

    class Config:
        populate_by_name = True
        from_attributes = True


class Goal(BaseModel):
    id: Optional[str] = None
    name: str
    target_amount: float
    current_amount: float = 0.0
    deadline: date

    class Config:
        populate_by_name = True
        from_attributes = True


class Insight(BaseModel):
    id: str
    title: str
    description: str
    type: InsightType
    action_plan: List[str] = Field(default_factory=list)


class GoalStrategy(BaseModel):
    monthly_required: float
    months_remaining: int
    suggestion: str
    alternative_scenario: str


class CategoryTotal(BaseModel):
    category: str
    total: float


class MonthSummary(BaseModel):
    """Dashboard totals for one calendar month."""
    year: int
    month: int
    income: float = 0.0
    expense: float = 0.0
    balance: float = 0.0
    pending_income: float = 0.0
    pending_expense: float = 0.0
    expenses_by_category: List[CategoryTotal] = Field(default_factory=list)
    budget_alerts: List[Budget] = Field(default_factory=list)


class MonthlyTotal(BaseModel):
    """Income and expense of one month in the month-by-month report."""
    year: int
    month: int
    income: float = 0.0
    expense: float = 0.0
    net: float = 0.0
