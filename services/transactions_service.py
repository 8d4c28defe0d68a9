"""Service layer for creating, editing, toggling and deleting transactions."""
import asyncio
import logging
import uuid
from typing import Any, Dict, List, Optional

from models.transaction import Transaction, TransactionEntry, TransactionUpdate
from services.ledger import TransactionLedger
from services.persistence import FailureReason, StoreResult, TransactionStore
from services.series_expander import expand_entry
from services.series_resolver import PlannedUpdate, plan_updates

logger = logging.getLogger(__name__)


def new_local_id() -> str:
    # uuid4 keeps ids unique even for records created within the same millisecond
    return uuid.uuid4().hex


def _failure_fields(result: StoreResult) -> Dict[str, Any]:
    return {
        "failure": result.failure.value if result.failure else None,
        "message": result.message,
    }


async def ensure_loaded(ledger: TransactionLedger, store: Optional[TransactionStore]) -> Dict[str, Any]:
    """Fills the ledger from persistence the first time it is used."""
    if ledger.loaded:
        return {"status": "success", "count": len(ledger)}
    if store is None:
        ledger.replace_all([])
        return {"status": "success", "count": 0}

    async with ledger.lock:
        if ledger.loaded:
            return {"status": "success", "count": len(ledger)}
        result = await store.list_transactions()
        if not result.ok:
            logger.error(f"Could not load transactions for user {ledger.user_id}: {result.message}")
            return {"status": "error", "count": 0, **_failure_fields(result)}
        ledger.replace_all(result.value)
    logger.info(f"Loaded {len(ledger)} transactions for user {ledger.user_id}.")
    return {"status": "success", "count": len(ledger)}


async def create_from_entry(
    ledger: TransactionLedger,
    store: Optional[TransactionStore],
    entry: TransactionEntry,
) -> Dict[str, Any]:
    """
    Expands an entry into its occurrences, inserts them as one batch and adds them to the ledger.
    On a failed insert the ledger is left untouched. Without a store, ids are assigned locally.
    Raises ValueError for entries that cannot be expanded.
    """
    occurrences = expand_entry(entry)
    logger.info(f"Creating {len(occurrences)} occurrence(s) from entry '{entry.description}' (save to DB: {store is not None}).")

    async with ledger.lock:
        if store is None:
            added = [occurrence.model_copy(update={"id": new_local_id()}) for occurrence in occurrences]
        else:
            result = await store.insert_transactions(occurrences)
            if not result.ok:
                logger.error(f"Insert failed ({result.failure.value}): {result.message}")
                return {"status": "error", "added_count": 0, "transactions": [], **_failure_fields(result)}
            added = result.value
        ledger.prepend(added)

    return {
        "status": "success",
        "added_count": len(added),
        "transactions": [t.model_dump(mode='json') for t in added],
    }


def _apply_locally(ledger: TransactionLedger, planned: List[PlannedUpdate]) -> List[Transaction]:
    updated = []
    for item in planned:
        existing = ledger.get(item.transaction_id)
        if existing is not None:
            updated.append(existing.model_copy(update=item.changes))
    return updated


async def edit_transaction(
    ledger: TransactionLedger,
    store: Optional[TransactionStore],
    transaction_id: str,
    update: TransactionUpdate,
    propagate: bool = False,
) -> Dict[str, Any]:
    """
    Applies an edit to one occurrence or, with `propagate`, to its whole series.

    All updates of one edit run concurrently and are merged into the ledger once every call
    has settled. Occurrences whose update failed keep their previous local values; nothing is
    rolled back. The editing selection is cleared in every case.
    """
    async with ledger.lock:
        try:
            planned = plan_updates(transaction_id, update, ledger.snapshot(), propagate=propagate)
            if not planned:
                return {"status": "not_found", "updated_ids": [], "failed_ids": [], "transactions": []}

            if store is None:
                updated = _apply_locally(ledger, planned)
                failures: Dict[str, FailureReason] = {}
                updated_ids = {t.id for t in updated}
                for item in planned:
                    if item.transaction_id not in updated_ids:
                        failures[item.transaction_id] = FailureReason.NOT_FOUND
            else:
                logger.info(f"Dispatching {len(planned)} update(s) for edit of {transaction_id} (propagate: {propagate}).")
                results = await asyncio.gather(
                    *(store.update_transaction(item.transaction_id, item.changes) for item in planned)
                )
                updated = [result.value for result in results if result.ok]
                failures = {
                    item.transaction_id: result.failure
                    for item, result in zip(planned, results)
                    if not result.ok
                }
            ledger.merge(updated)
        finally:
            ledger.clear_selection()

    if failures:
        logger.warning(f"{len(failures)} of {len(planned)} update(s) failed for edit of {transaction_id}: {sorted(failures)}")
    if not updated:
        status = "error"
    elif failures:
        status = "partial_success"
    else:
        status = "success"
    return {
        "status": status,
        "updated_ids": [t.id for t in updated],
        "failed_ids": list(failures),
        "failure": next(iter(failures.values())).value if failures else None,
        "transactions": [t.model_dump(mode='json') for t in updated],
    }


async def toggle_paid(
    ledger: TransactionLedger,
    store: Optional[TransactionStore],
    transaction_id: str,
) -> Dict[str, Any]:
    """Flips the paid status locally first, then persists it. A failed write restores the old status."""
    async with ledger.lock:
        existing = ledger.get(transaction_id)
        if existing is None:
            return {"status": "not_found"}
        new_status = not existing.is_paid
        ledger.merge([existing.model_copy(update={"is_paid": new_status})])
        if store is None:
            return {"status": "success", "is_paid": new_status}

        result = await store.update_transaction(transaction_id, {"is_paid": new_status})
        if not result.ok:
            logger.error(f"Could not persist paid status of {transaction_id}: {result.message}")
            ledger.merge([existing])
            return {"status": "error", "is_paid": existing.is_paid, **_failure_fields(result)}
        ledger.merge([result.value])
    return {"status": "success", "is_paid": new_status}


async def delete_transaction(
    ledger: TransactionLedger,
    store: Optional[TransactionStore],
    transaction_id: str,
) -> Dict[str, Any]:
    """Deletes one occurrence. Other occurrences of its series are kept."""
    async with ledger.lock:
        if store is not None:
            result = await store.delete_transaction(transaction_id)
            if not result.ok:
                return {"status": "error", **_failure_fields(result)}
        removed = ledger.remove(transaction_id)
    if store is None and not removed:
        return {"status": "not_found"}
    return {"status": "success"}
