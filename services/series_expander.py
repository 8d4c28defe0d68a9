"""Expands one user entry into the concrete occurrences to persist."""
import logging
import uuid
from decimal import Decimal, ROUND_HALF_UP
from typing import List

from models.transaction import Transaction, TransactionEntry
from utils.date_helpers import add_months
from utils.description_suffix import installment_suffix

logger = logging.getLogger(__name__)

RECURRENCE_HORIZON_MONTHS = 12  # recurring entries are generated one year ahead
CENT = Decimal("0.01")


def new_group_id() -> str:
    return f"grp_{uuid.uuid4().hex}"


def installment_share(amount: float, installments: int) -> float:
    """Per-installment amount, rounded half-up to cents. Rounding drift on the total is accepted."""
    share = Decimal(str(amount)) / Decimal(installments)
    return float(share.quantize(CENT, rounding=ROUND_HALF_UP))


def is_installment_entry(entry: TransactionEntry) -> bool:
    return entry.type == 'expense' and entry.installments > 1


def expand_entry(entry: TransactionEntry) -> List[Transaction]:
    """
    Builds the occurrences for an entry, in this order of precedence:
    - installment plan (expense with installments > 1): amount split evenly, one occurrence per
      remaining installment from `start_installment` to `installments`, suffixed "(i/total)";
    - recurring series: twelve monthly occurrences carrying the full amount;
    - single occurrence with the entry fields verbatim.
    Only the first occurrence of a series keeps the entry's paid flag; later ones are pending.
    Returned records have no id yet.
    """
    if is_installment_entry(entry):
        return _expand_installments(entry)
    if entry.is_recurring:
        return _expand_recurring(entry)
    return [
        Transaction(
            amount=entry.amount,
            category=entry.category,
            account=entry.account,
            date=entry.date,
            description=entry.description,
            type=entry.type,
            is_recurring=entry.is_recurring,
            is_paid=entry.is_paid,
        )
    ]


def _expand_installments(entry: TransactionEntry) -> List[Transaction]:
    if entry.start_installment > entry.installments:
        raise ValueError(
            f"Current installment ({entry.start_installment}) cannot be greater than the total ({entry.installments})."
        )
    group_id = new_group_id()
    share = installment_share(entry.amount, entry.installments)
    occurrences = []
    for number in range(entry.start_installment, entry.installments + 1):
        offset = number - entry.start_installment
        occurrences.append(
            Transaction(
                group_id=group_id,
                amount=share,
                category=entry.category,
                account=entry.account,
                date=add_months(entry.date, offset),
                description=f"{entry.description}{installment_suffix(number, entry.installments)}",
                type='expense',
                is_recurring=False,
                is_paid=entry.is_paid if offset == 0 else False,
            )
        )
    logger.debug(f"Expanded entry '{entry.description}' into {len(occurrences)} installments (group {group_id}).")
    return occurrences


def _expand_recurring(entry: TransactionEntry) -> List[Transaction]:
    group_id = new_group_id()
    occurrences = [
        Transaction(
            group_id=group_id,
            amount=entry.amount,
            category=entry.category,
            account=entry.account,
            date=add_months(entry.date, offset),
            description=entry.description,
            type=entry.type,
            is_recurring=True,
            is_paid=entry.is_paid if offset == 0 else False,
        )
        for offset in range(RECURRENCE_HORIZON_MONTHS)
    ]
    logger.debug(f"Expanded recurring entry '{entry.description}' into {len(occurrences)} months (group {group_id}).")
    return occurrences
