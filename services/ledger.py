"""In-memory transaction collection, one per user, mutated only through its own methods."""
import asyncio
import logging
from typing import Dict, Iterable, List, Optional

from models.transaction import Transaction

logger = logging.getLogger(__name__)


class TransactionLedger:
    """
    Owns the local copy of a user's occurrences, kept newest date first.

    Mutating operations on one ledger are sequenced through `lock`; callers hold it for the
    whole create/edit/delete operation, persistence round-trips included.
    """

    def __init__(self, user_id: str, transactions: Optional[Iterable[Transaction]] = None):
        self.user_id = user_id
        self.lock = asyncio.Lock()
        self.loaded = transactions is not None
        self.editing_id: Optional[str] = None
        self._transactions: List[Transaction] = []
        if transactions is not None:
            self.replace_all(transactions)

    def __len__(self) -> int:
        return len(self._transactions)

    def snapshot(self) -> List[Transaction]:
        return [t.model_copy() for t in self._transactions]

    def get(self, transaction_id: str) -> Optional[Transaction]:
        return next((t for t in self._transactions if t.id == transaction_id), None)

    def replace_all(self, transactions: Iterable[Transaction]) -> None:
        self._transactions = sorted(transactions, key=lambda t: t.date, reverse=True)
        self.loaded = True

    def prepend(self, transactions: Iterable[Transaction]) -> None:
        """Adds newly created occurrences; on equal dates they come before existing ones."""
        self._transactions = sorted(list(transactions) + self._transactions, key=lambda t: t.date, reverse=True)

    def merge(self, transactions: Iterable[Transaction]) -> None:
        """Insert-or-replace by id, then re-sort the whole collection by date, newest first."""
        by_id: Dict[str, Transaction] = {t.id: t for t in self._transactions}
        for transaction in transactions:
            by_id[transaction.id] = transaction
        self._transactions = sorted(by_id.values(), key=lambda t: t.date, reverse=True)

    def remove(self, transaction_id: str) -> bool:
        before = len(self._transactions)
        self._transactions = [t for t in self._transactions if t.id != transaction_id]
        return len(self._transactions) != before

    def select(self, transaction_id: Optional[str]) -> None:
        self.editing_id = transaction_id

    def clear_selection(self) -> None:
        self.editing_id = None


class LedgerRegistry:
    """Hands out one ledger per user."""

    def __init__(self):
        self._ledgers: Dict[str, TransactionLedger] = {}

    def get(self, user_id: str) -> TransactionLedger:
        ledger = self._ledgers.get(user_id)
        if ledger is None:
            logger.debug(f"Creating ledger for user {user_id}.")
            ledger = self._ledgers[user_id] = TransactionLedger(user_id)
        return ledger

    def drop(self, user_id: str) -> None:
        self._ledgers.pop(user_id, None)
