"""API Routes for transactions, summaries and insights"""
import os
import logging
from datetime import date
from typing import Annotated, Any, Dict, List, Optional

from fastapi import APIRouter, Body, Depends, Header, HTTPException, Query, Request, Response
from slowapi import Limiter
from slowapi.util import get_remote_address

from models.finance import GoalStrategy, Insight, MonthlyTotal, MonthSummary
from models.transaction import Transaction, TransactionEntry, TransactionUpdate
from services import summary_service, transactions_service
from services.ledger import LedgerRegistry, TransactionLedger
from services.persistence import DEFAULT_TIMEOUT_SECONDS, FailureReason, TransactionStore
from services.series_resolver import find_siblings, is_series_member
from utils import openai_agent
from utils.date_helpers import parse_month

router = APIRouter()
logger = logging.getLogger(__name__)

PERSISTENCE_TIMEOUT_SECONDS = float(os.getenv("PERSISTENCE_TIMEOUT_SECONDS", DEFAULT_TIMEOUT_SECONDS))
DEFAULT_RATE_LIMIT = os.getenv("DEFAULT_RATE_LIMIT", "30/minute")  # applied to the AI endpoints
RATE_LIMIT_ENABLED = os.getenv("RATE_LIMIT_ENABLED", "true").lower() == "true"

limiter = Limiter(key_func=get_remote_address, enabled=RATE_LIMIT_ENABLED)

# --- Dependency Functions ---

def get_user_id(x_user_id: Annotated[Optional[str], Header()] = None) -> str:
    """Caller identity, set by the authentication gateway in front of the API."""
    if not x_user_id:
        raise HTTPException(status_code=401, detail="User not authenticated.")
    return x_user_id


def get_ledgers(request: Request) -> LedgerRegistry:
    ledgers = getattr(request.state, "ledgers", None)
    if ledgers is None:
        logger.error("Ledger registry not found in application state.")
        raise HTTPException(status_code=503, detail="Service not ready.")
    return ledgers


def get_store(request: Request, user_id: Annotated[str, Depends(get_user_id)]) -> Optional[TransactionStore]:
    """The user's persistence store, or None when running without a database (local mode)."""
    db = getattr(request.state, "db", None)
    if db is None:
        return None
    return TransactionStore(db, user_id, timeout=PERSISTENCE_TIMEOUT_SECONDS)


StoreDep = Annotated[Optional[TransactionStore], Depends(get_store)]


async def get_ledger(
    user_id: Annotated[str, Depends(get_user_id)],
    ledgers: Annotated[LedgerRegistry, Depends(get_ledgers)],
    store: StoreDep,
) -> TransactionLedger:
    ledger = ledgers.get(user_id)
    result = await transactions_service.ensure_loaded(ledger, store)
    if result["status"] != "success":
        logger.warning(f"Serving unloaded ledger for user {user_id}: {result.get('message')}")
    return ledger


LedgerDep = Annotated[TransactionLedger, Depends(get_ledger)]


def raise_for_failure(result: Dict[str, Any], action: str) -> None:
    """Maps a failed service result to an HTTP error."""
    failure = result.get("failure")
    if failure == FailureReason.NOT_AUTHENTICATED.value:
        raise HTTPException(status_code=401, detail="User not authenticated.")
    if failure == FailureReason.NOT_FOUND.value:
        raise HTTPException(status_code=404, detail=f"Transaction not found ({action}).")
    raise HTTPException(status_code=502, detail={"status": "error", "message": f"Failed to {action}.", "reason": result.get("message", "")})


def resolve_month(month: Optional[str]):
    if month is None:
        today = date.today()
        return today.year, today.month
    parsed = parse_month(month)
    if parsed is None:
        raise HTTPException(status_code=400, detail="Invalid month. Use YYYY-MM.")
    return parsed

# --- Transactions ---

@router.get("/transactions", response_model=List[Transaction], summary="List Transactions", description="Returns the user's transactions, newest first, optionally filtered by month and type.")
async def list_transactions(
    ledger: LedgerDep,
    month: Optional[str] = Query(None, description="Month filter in YYYY-MM format."),
    type: Optional[str] = Query(None, description="'income', 'expense' or 'all'."),
) -> List[Transaction]:
    logger.info(f"GET /transactions called. month={month} type={type}")
    if type not in (None, 'all', 'income', 'expense'):
        raise HTTPException(status_code=400, detail="Invalid type. Allowed: income, expense, all.")
    transactions = ledger.snapshot()
    if month is not None:
        year, month_number = resolve_month(month)
        transactions = summary_service.filter_month(transactions, year, month_number)
    return summary_service.filter_type(transactions, type)


@router.post("/transactions", status_code=201, summary="Create Transaction", description="Creates a single transaction, an installment plan or a twelve-month recurring series from one entry.")
async def create_transaction(ledger: LedgerDep, store: StoreDep, entry: Annotated[TransactionEntry, Body(...)]):
    logger.info(f"POST /transactions called: {entry.type} '{entry.description}' x{entry.installments} recurring={entry.is_recurring}")
    try:
        result = await transactions_service.create_from_entry(ledger, store, entry)
    except ValueError as ve:
        logger.error(f"Invalid entry: {ve}")
        raise HTTPException(status_code=400, detail=str(ve))
    if result["status"] != "success":
        raise_for_failure(result, "save transaction")
    return result


@router.patch("/transactions/{transaction_id}", summary="Edit Transaction", description="Edits one occurrence, or every occurrence of its series when propagate is true.")
async def edit_transaction(
    transaction_id: str,
    ledger: LedgerDep,
    store: StoreDep,
    response: Response,
    update: Annotated[TransactionUpdate, Body(...)],
    propagate: bool = Query(False, description="Apply the shared fields to the whole series."),
):
    logger.info(f"PATCH /transactions/{transaction_id} called. propagate={propagate} fields={sorted(update.model_fields_set)}")
    result = await transactions_service.edit_transaction(ledger, store, transaction_id, update, propagate=propagate)
    if result["status"] == "error":
        raise_for_failure(result, "update transaction")
    if result["status"] == "partial_success":
        response.status_code = 207
    return result


@router.get("/transactions/{transaction_id}/series", summary="Transaction Series", description="Opens an occurrence for editing and reports whether it belongs to a series.")
async def get_transaction_series(transaction_id: str, ledger: LedgerDep):
    transaction = ledger.get(transaction_id)
    if transaction is None:
        raise HTTPException(status_code=404, detail="Transaction not found.")
    ledger.select(transaction_id)
    in_series = is_series_member(transaction)
    siblings = find_siblings(transaction, ledger.snapshot()) if in_series else [transaction]
    return {
        "transaction": transaction.model_dump(mode='json'),
        "is_series": in_series,
        "siblings": [t.model_dump(mode='json') for t in siblings],
    }


@router.post("/transactions/{transaction_id}/toggle-paid", summary="Toggle Paid Status")
async def toggle_transaction_paid(transaction_id: str, ledger: LedgerDep, store: StoreDep):
    result = await transactions_service.toggle_paid(ledger, store, transaction_id)
    if result["status"] == "not_found":
        raise HTTPException(status_code=404, detail="Transaction not found.")
    if result["status"] != "success":
        raise_for_failure(result, "update paid status")
    return result


@router.delete("/transactions/{transaction_id}", status_code=204, summary="Delete Transaction", description="Deletes one occurrence. Other occurrences of the same series are kept.")
async def delete_transaction(transaction_id: str, ledger: LedgerDep, store: StoreDep):
    logger.info(f"DELETE /transactions/{transaction_id} called.")
    result = await transactions_service.delete_transaction(ledger, store, transaction_id)
    if result["status"] == "not_found":
        raise HTTPException(status_code=404, detail="Transaction not found.")
    if result["status"] != "success":
        raise_for_failure(result, "delete transaction")
    return Response(status_code=204)

# --- Summary and AI ---

@router.get("/summary", response_model=MonthSummary, summary="Month Summary", description="Paid and pending totals, expenses by category and budget alerts for one month.")
async def get_summary(ledger: LedgerDep, store: StoreDep, month: Optional[str] = Query(None, description="YYYY-MM, defaults to the current month.")):
    year, month_number = resolve_month(month)
    budgets = []
    if store is not None:
        budgets = (await store.list_budgets()).value or []
    return summary_service.summarize_month(ledger.snapshot(), year, month_number, budgets=budgets)


@router.get("/reports/monthly", response_model=List[MonthlyTotal], summary="Monthly Report", description="Income, expense and net per month across the whole history, oldest first.")
async def get_monthly_report(ledger: LedgerDep) -> List[MonthlyTotal]:
    return summary_service.monthly_report(ledger.snapshot())


@router.get("/insights", response_model=List[Insight], summary="AI Insights")
@limiter.limit(DEFAULT_RATE_LIMIT)
async def get_insights(request: Request, ledger: LedgerDep, store: StoreDep):
    budgets, goals = [], []
    if store is not None:
        budgets = (await store.list_budgets()).value or []
        goals = (await store.list_goals()).value or []
    return await openai_agent.generate_insights(ledger.snapshot(), budgets, goals)


@router.get("/goals/{goal_id}/strategy", response_model=GoalStrategy, summary="Goal Strategy")
@limiter.limit(DEFAULT_RATE_LIMIT)
async def get_goal_strategy(request: Request, goal_id: str, ledger: LedgerDep, store: StoreDep):
    goals = []
    if store is not None:
        goals = (await store.list_goals()).value or []
    goal = next((g for g in goals if g.id == goal_id), None)
    if goal is None:
        raise HTTPException(status_code=404, detail="Goal not found.")
    strategy = await openai_agent.analyze_goal_strategy(goal, ledger.snapshot())
    if strategy is None:
        raise HTTPException(status_code=404, detail="No strategy available for this goal.")
    return strategy
