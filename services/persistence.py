"""MongoDB persistence for transactions, budgets and goals.

Every call returns a StoreResult instead of raising, so callers always check the outcome.
"""
import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Generic, Iterable, List, Optional, TypeVar

from bson import ObjectId
from bson.errors import InvalidId
from motor.motor_asyncio import AsyncIOMotorDatabase
from pydantic import ValidationError
from pymongo import ReturnDocument
from pymongo.errors import PyMongoError

from models.finance import Budget, Goal
from models.transaction import DEFAULT_ACCOUNT, Transaction
from utils.date_helpers import to_datetime

logger = logging.getLogger(__name__)

T = TypeVar("T")

TRANSACTIONS_COLLECTION = "transactions"
BUDGETS_COLLECTION = "budgets"
GOALS_COLLECTION = "goals"
DEFAULT_TIMEOUT_SECONDS = 10.0

# Fields added after the first deployments; a collection validator may still reject them.
OPTIONAL_FIELDS = ("is_paid", "is_recurring", "group_id", "account")


class FailureReason(str, Enum):
    ERROR = "error"
    SCHEMA_MISMATCH = "schema_mismatch"
    NOT_AUTHENTICATED = "not_authenticated"
    NOT_FOUND = "not_found"


@dataclass
class StoreResult(Generic[T]):
    value: Optional[T] = None
    failure: Optional[FailureReason] = None
    message: str = ""
    field: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.failure is None

    @classmethod
    def success(cls, value: T) -> "StoreResult[T]":
        return cls(value=value)

    @classmethod
    def failed(cls, reason: FailureReason, message: str = "", field: Optional[str] = None) -> "StoreResult[T]":
        return cls(failure=reason, message=message, field=field)


# --- Document translation ---

def transaction_to_document(fields: Dict[str, Any]) -> Dict[str, Any]:
    """Maps transaction fields to their stored form. Unset optional fields are left out."""
    document = {k: v for k, v in fields.items() if k != 'id' and v is not None}
    if 'date' in document:
        document['date'] = to_datetime(document['date'])
    return document


def transaction_from_document(document: Dict[str, Any]) -> Transaction:
    data = dict(document)
    if '_id' in data:
        data['id'] = str(data.pop('_id'))
    data.pop('user_id', None)
    if isinstance(data.get('date'), datetime):
        data['date'] = data['date'].date()
    if data.get('amount') is not None:
        data['amount'] = float(data['amount'])
    if data.get('is_paid') is None:
        data['is_paid'] = True
    if data.get('account') is None:
        data['account'] = DEFAULT_ACCOUNT
    return Transaction(**data)


def _with_string_id(document: Dict[str, Any]) -> Dict[str, Any]:
    data = dict(document)
    if '_id' in data:
        data['id'] = str(data.pop('_id'))
    data.pop('user_id', None)
    if isinstance(data.get('deadline'), datetime):
        data['deadline'] = data['deadline'].date()
    return data


def rejected_optional_field(error: Exception) -> Optional[str]:
    """Names the optional field a validation failure complains about, if any."""
    text = f"{error} {getattr(error, 'details', '') or ''}"
    if "validation" not in text.lower() and "unknown field" not in text.lower():
        return None
    return next((name for name in OPTIONAL_FIELDS if name in text), None)


class TransactionStore:
    """
    Persistence collaborator scoped to one user.

    A store built without a user id refuses every operation with NOT_AUTHENTICATED.
    """

    def __init__(self, db: AsyncIOMotorDatabase, user_id: Optional[str], timeout: float = DEFAULT_TIMEOUT_SECONDS):
        self.db = db
        self.user_id = user_id
        self.timeout = timeout
        self.transactions = db.get_collection(TRANSACTIONS_COLLECTION)

    def _owner_filter(self, **extra: Any) -> Dict[str, Any]:
        return {"user_id": self.user_id, **extra}

    def _unauthenticated(self, operation: str) -> StoreResult:
        logger.error(f"{operation} refused: user not authenticated.")
        return StoreResult.failed(FailureReason.NOT_AUTHENTICATED, "User not authenticated")

    async def _bounded(self, awaitable):
        return await asyncio.wait_for(awaitable, timeout=self.timeout)

    async def _fetch_all(self, collection, sort_by: Optional[str] = None) -> List[Dict[str, Any]]:
        cursor = collection.find(self._owner_filter())
        if sort_by:
            cursor = cursor.sort(sort_by, -1)
        return [doc async for doc in cursor]

    # --- Transactions ---

    async def list_transactions(self) -> StoreResult[List[Transaction]]:
        """All of the user's transactions, newest date first. Failures come with an empty list."""
        if not self.user_id:
            result = self._unauthenticated("list_transactions")
            result.value = []
            return result
        try:
            documents = await self._bounded(self._fetch_all(self.transactions, sort_by="date"))
        except (PyMongoError, asyncio.TimeoutError) as e:
            logger.error(f"Database error fetching transactions: {e}")
            return StoreResult(value=[], failure=FailureReason.ERROR, message=str(e))

        transactions = []
        for document in documents:
            try:
                transactions.append(transaction_from_document(document))
            except ValidationError as e:
                logger.error(f"Data validation error for document ID {document.get('_id', 'N/A')}: {e}")
                continue
        logger.info(f"Fetched {len(transactions)} transactions for user {self.user_id}.")
        return StoreResult.success(transactions)

    async def insert_transactions(self, records: Iterable[Transaction]) -> StoreResult[List[Transaction]]:
        """Batch insert. Returns the inserted records with their new ids."""
        if not self.user_id:
            return self._unauthenticated("insert_transactions")
        documents = [
            {**transaction_to_document(record.model_dump()), "user_id": self.user_id}
            for record in records
        ]
        if not documents:
            return StoreResult.success([])

        result = await self._insert_documents(documents)
        if result.failure == FailureReason.SCHEMA_MISMATCH:
            logger.warning(f"Column '{result.field}' rejected by the database, retrying insert without it.")
            for document in documents:
                document.pop(result.field, None)
            result = await self._insert_documents(documents)
        return result

    async def _insert_documents(self, documents: List[Dict[str, Any]]) -> StoreResult[List[Transaction]]:
        try:
            # insert_many sets _id on each document in place
            payload = [dict(document) for document in documents]
            await self._bounded(self.transactions.insert_many(payload, ordered=True))
        except asyncio.TimeoutError:
            logger.error("Timed out inserting transactions.")
            return StoreResult.failed(FailureReason.ERROR, "Timed out inserting transactions")
        except PyMongoError as e:
            field = rejected_optional_field(e)
            if field:
                return StoreResult.failed(FailureReason.SCHEMA_MISMATCH, str(e), field=field)
            logger.error(f"Database error during bulk insert: {e}")
            return StoreResult.failed(FailureReason.ERROR, str(e))
        inserted = [transaction_from_document(document) for document in payload]
        logger.info(f"Inserted {len(inserted)} transactions for user {self.user_id}.")
        return StoreResult.success(inserted)

    async def update_transaction(self, transaction_id: str, fields: Dict[str, Any]) -> StoreResult[Transaction]:
        """Writes only the given fields and returns the updated record."""
        if not self.user_id:
            return self._unauthenticated("update_transaction")
        try:
            object_id = ObjectId(transaction_id)
        except (InvalidId, TypeError):
            return StoreResult.failed(FailureReason.NOT_FOUND, f"Invalid transaction id {transaction_id}")

        changes = transaction_to_document(fields)
        result = await self._update_document(object_id, changes)
        if result.failure == FailureReason.SCHEMA_MISMATCH:
            logger.warning(f"Column '{result.field}' rejected by the database, retrying update of {transaction_id} without it.")
            changes.pop(result.field, None)
            result = await self._update_document(object_id, changes)
        return result

    async def _update_document(self, object_id: ObjectId, changes: Dict[str, Any]) -> StoreResult[Transaction]:
        try:
            if changes:
                document = await self._bounded(
                    self.transactions.find_one_and_update(
                        self._owner_filter(_id=object_id),
                        {"$set": changes},
                        return_document=ReturnDocument.AFTER,
                    )
                )
            else:
                document = await self._bounded(self.transactions.find_one(self._owner_filter(_id=object_id)))
        except asyncio.TimeoutError:
            logger.error(f"Timed out updating transaction {object_id}.")
            return StoreResult.failed(FailureReason.ERROR, "Timed out updating transaction")
        except PyMongoError as e:
            field = rejected_optional_field(e)
            if field:
                return StoreResult.failed(FailureReason.SCHEMA_MISMATCH, str(e), field=field)
            logger.error(f"Error updating transaction {object_id}: {e}")
            return StoreResult.failed(FailureReason.ERROR, str(e))

        if document is None:
            return StoreResult.failed(FailureReason.NOT_FOUND, f"Transaction {object_id} not found")
        try:
            return StoreResult.success(transaction_from_document(document))
        except ValidationError as e:
            logger.error(f"Updated transaction {object_id} failed validation: {e}")
            return StoreResult.failed(FailureReason.ERROR, str(e))

    async def delete_transaction(self, transaction_id: str) -> StoreResult[bool]:
        if not self.user_id:
            return self._unauthenticated("delete_transaction")
        try:
            object_id = ObjectId(transaction_id)
        except (InvalidId, TypeError):
            return StoreResult.failed(FailureReason.NOT_FOUND, f"Invalid transaction id {transaction_id}")
        try:
            result = await self._bounded(self.transactions.delete_one(self._owner_filter(_id=object_id)))
        except (PyMongoError, asyncio.TimeoutError) as e:
            logger.error(f"Error deleting transaction {transaction_id}: {e}")
            return StoreResult.failed(FailureReason.ERROR, str(e))
        if result.deleted_count == 0:
            return StoreResult.failed(FailureReason.NOT_FOUND, f"Transaction {transaction_id} not found")
        logger.info(f"Deleted transaction {transaction_id}.")
        return StoreResult.success(True)

    # --- Budgets and goals (read-only) ---

    async def list_budgets(self) -> StoreResult[List[Budget]]:
        return await self._list_models(BUDGETS_COLLECTION, Budget)

    async def list_goals(self) -> StoreResult[List[Goal]]:
        return await self._list_models(GOALS_COLLECTION, Goal)

    async def _list_models(self, collection_name: str, model):
        if not self.user_id:
            result = self._unauthenticated(f"list {collection_name}")
            result.value = []
            return result
        try:
            documents = await self._bounded(self._fetch_all(self.db.get_collection(collection_name)))
        except (PyMongoError, asyncio.TimeoutError) as e:
            logger.error(f"Error fetching {collection_name}: {e}")
            return StoreResult(value=[], failure=FailureReason.ERROR, message=str(e))
        items = []
        for document in documents:
            try:
                items.append(model(**_with_string_id(document)))
            except ValidationError as e:
                logger.error(f"Data validation error in {collection_name} document {document.get('_id', 'N/A')}: {e}")
        return StoreResult.success(items)
