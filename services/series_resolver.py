"""Resolves the series an occurrence belongs to and plans series-wide edits."""
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from models.transaction import Transaction, TransactionUpdate
from utils.description_suffix import parse_suffix, reattach_suffix, strip_suffix

logger = logging.getLogger(__name__)


@dataclass
class PlannedUpdate:
    """Fields to write on one occurrence."""
    transaction_id: str
    changes: Dict[str, Any] = field(default_factory=dict)


def find_transaction(transaction_id: str, transactions: Sequence[Transaction]) -> Optional[Transaction]:
    return next((t for t in transactions if t.id == transaction_id), None)


def is_series_member(transaction: Transaction) -> bool:
    """True when the occurrence looks like part of a series (group id, recurring flag or suffix)."""
    return bool(transaction.group_id) or transaction.is_recurring or parse_suffix(transaction.description) is not None


def legacy_siblings(target: Transaction, transactions: Sequence[Transaction]) -> List[Transaction]:
    """
    Best-effort match for rows created before group ids existed: same type, same category and a
    description containing the target's base description.

    This is a heuristic. It can over-match (an unrelated "TV stand" matches the base "TV", and an
    empty base matches every row of the category) and under-match (a sibling whose description
    was edited on its own no longer contains the base). Rows that already carry a group id
    belong to their own series and are never matched.
    """
    base = strip_suffix(target.description)
    return [
        t for t in transactions
        if not t.group_id and t.type == target.type and t.category == target.category and base in t.description
    ]


def find_siblings(target: Transaction, transactions: Sequence[Transaction]) -> List[Transaction]:
    """All occurrences of the target's series, the target included."""
    if target.group_id:
        return [t for t in transactions if t.group_id == target.group_id]
    return legacy_siblings(target, transactions)


def plan_updates(
    target_id: str,
    update: TransactionUpdate,
    transactions: Sequence[Transaction],
    propagate: bool = False,
) -> List[PlannedUpdate]:
    """
    Computes one PlannedUpdate per occurrence an edit must touch.

    Without `propagate` only the target is updated, with the caller's fields unchanged.
    With `propagate` every sibling receives the shared fields; each keeps its own suffix
    on the new description, and only the target takes the new date and paid status.
    An unknown target yields no updates.
    """
    changes = update.changes()
    if not propagate:
        return [PlannedUpdate(transaction_id=target_id, changes=changes)]

    target = find_transaction(target_id, transactions)
    if target is None:
        logger.warning(f"Series edit aborted: transaction {target_id} not found in local state.")
        return []

    siblings = find_siblings(target, transactions)
    logger.info(
        f"Propagating edit of {target_id} to {len(siblings)} occurrence(s) "
        f"({'group ' + target.group_id if target.group_id else 'legacy match'})."
    )

    planned = []
    for sibling in siblings:
        sibling_changes = {k: v for k, v in changes.items() if k not in ('date', 'is_paid')}
        if 'description' in changes:
            # each sibling carries its own position suffix
            sibling_changes['description'] = reattach_suffix(strip_suffix(changes['description']), sibling.description)
        if sibling.id == target_id:
            for name in ('date', 'is_paid'):
                if name in changes:
                    sibling_changes[name] = changes[name]
        else:
            sibling_changes['date'] = sibling.date
            sibling_changes['is_paid'] = sibling.is_paid
        planned.append(PlannedUpdate(transaction_id=sibling.id, changes=sibling_changes))
    return planned
