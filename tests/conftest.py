"""Shared fixtures: an in-memory stand-in for the motor database used by the store."""
from datetime import date
from types import SimpleNamespace

import pytest
from bson import ObjectId
from pymongo.errors import PyMongoError, WriteError

from models.transaction import Transaction
from services.ledger import TransactionLedger
from services.persistence import TransactionStore

USER_ID = "user-1"


class FakeCursor:
    def __init__(self, documents):
        self._documents = list(documents)

    def sort(self, key, direction):
        self._documents.sort(key=lambda d: (d.get(key) is not None, d.get(key) or 0), reverse=direction == -1)
        return self

    def __aiter__(self):
        self._iter = iter(self._documents)
        return self

    async def __anext__(self):
        try:
            return next(self._iter)
        except StopIteration:
            raise StopAsyncIteration


class FakeCollection:
    """
    Keeps documents in a dict. `rejected_fields` makes writes containing those fields fail
    the way a collection validator does; `failing_ids` makes updates of those ids fail.
    """

    def __init__(self, name):
        self.name = name
        self.documents = {}
        self.rejected_fields = set()
        self.failing_ids = set()
        self.fail_all = False
        self.calls = []

    def _matches(self, document, query):
        return all(document.get(key) == value for key, value in query.items())

    def _check_write(self, fields):
        if self.fail_all:
            raise PyMongoError("connection reset")
        for name in self.rejected_fields:
            if name in fields:
                raise WriteError(
                    "Document failed validation",
                    121,
                    {"errInfo": {"details": {"schemaRulesNotSatisfied": [{"additionalProperties": [name]}]}}},
                )

    def find(self, query=None):
        if self.fail_all:
            raise PyMongoError("connection reset")
        return FakeCursor(dict(d) for d in self.documents.values() if self._matches(d, query or {}))

    async def find_one(self, query):
        return next((dict(d) for d in self.documents.values() if self._matches(d, query)), None)

    async def insert_many(self, documents, ordered=True):
        self.calls.append(("insert_many", [dict(d) for d in documents]))
        for document in documents:
            self._check_write(document)
        for document in documents:
            document.setdefault("_id", ObjectId())
            self.documents[document["_id"]] = dict(document)
        return SimpleNamespace(inserted_ids=[d["_id"] for d in documents])

    async def find_one_and_update(self, query, update, return_document=None):
        changes = update["$set"]
        self.calls.append(("update", query.get("_id"), dict(changes)))
        if query.get("_id") in self.failing_ids:
            raise PyMongoError("update timed out")
        self._check_write(changes)
        for key, document in self.documents.items():
            if self._matches(document, query):
                document.update(changes)
                return dict(document)
        return None

    async def delete_one(self, query):
        if self.fail_all:
            raise PyMongoError("connection reset")
        for key, document in list(self.documents.items()):
            if self._matches(document, query):
                del self.documents[key]
                return SimpleNamespace(deleted_count=1)
        return SimpleNamespace(deleted_count=0)


class FakeDatabase:
    def __init__(self):
        self.collections = {}

    def get_collection(self, name):
        if name not in self.collections:
            self.collections[name] = FakeCollection(name)
        return self.collections[name]

    def __getitem__(self, name):
        return self.get_collection(name)


@pytest.fixture
def fake_db():
    return FakeDatabase()


@pytest.fixture
def store(fake_db):
    return TransactionStore(fake_db, USER_ID, timeout=1.0)


@pytest.fixture
def ledger():
    return TransactionLedger(USER_ID, [])


def make_transaction(**overrides):
    fields = dict(
        id=None,
        amount=100.0,
        category="Compras",
        date=date(2024, 1, 15),
        description="TV",
        type="expense",
    )
    fields.update(overrides)
    return Transaction(**fields)


@pytest.fixture
def tv_series():
    """Three installments of one plan, as stored after creation."""
    return [
        make_transaction(id="a1", group_id="grp_tv", description="TV (1/3)", date=date(2024, 1, 15), is_paid=True),
        make_transaction(id="a2", group_id="grp_tv", description="TV (2/3)", date=date(2024, 2, 15), is_paid=False),
        make_transaction(id="a3", group_id="grp_tv", description="TV (3/3)", date=date(2024, 3, 15), is_paid=False),
    ]
