from datetime import date, datetime

from bson import ObjectId
from pymongo.errors import PyMongoError

from conftest import USER_ID, make_transaction
from services.persistence import (
    FailureReason,
    TransactionStore,
    rejected_optional_field,
    transaction_from_document,
    transaction_to_document,
)


def test_document_translation():
    document = transaction_to_document(make_transaction(id="x", group_id=None).model_dump())

    assert "id" not in document
    assert "group_id" not in document
    assert document["date"] == datetime(2024, 1, 15)


def test_legacy_documents_get_defaults():
    oid = ObjectId()
    transaction = transaction_from_document({
        "_id": oid, "user_id": USER_ID, "amount": "49.9", "category": "Lazer",
        "date": datetime(2023, 5, 2), "description": "Cinema", "type": "expense",
    })

    assert transaction.id == str(oid)
    assert transaction.amount == 49.9
    assert transaction.date == date(2023, 5, 2)
    assert transaction.is_paid is True
    assert transaction.account == "Carteira"


async def test_insert_and_list(store, fake_db):
    inserted = await store.insert_transactions([
        make_transaction(date=date(2024, 1, 1)),
        make_transaction(date=date(2024, 3, 1), description="Notebook"),
    ])
    assert inserted.ok
    assert all(t.id for t in inserted.value)

    listed = await store.list_transactions()
    assert listed.ok
    assert [t.description for t in listed.value] == ["Notebook", "TV"]
    stored = next(iter(fake_db["transactions"].documents.values()))
    assert stored["user_id"] == USER_ID


async def test_list_only_returns_own_rows(store, fake_db):
    other = TransactionStore(fake_db, "someone-else")
    await other.insert_transactions([make_transaction()])

    listed = await store.list_transactions()

    assert listed.value == []


async def test_invalid_documents_are_skipped(store, fake_db):
    fake_db["transactions"].documents[ObjectId()] = {"user_id": USER_ID, "description": "broken"}
    await store.insert_transactions([make_transaction()])

    listed = await store.list_transactions()

    assert len(listed.value) == 1


async def test_list_failure_returns_empty_list(store, fake_db):
    fake_db["transactions"].fail_all = True

    listed = await store.list_transactions()

    assert not listed.ok
    assert listed.failure == FailureReason.ERROR
    assert listed.value == []


async def test_missing_user_is_not_authenticated(fake_db):
    store = TransactionStore(fake_db, None)

    assert (await store.insert_transactions([make_transaction()])).failure == FailureReason.NOT_AUTHENTICATED
    assert (await store.update_transaction(str(ObjectId()), {"amount": 1})).failure == FailureReason.NOT_AUTHENTICATED
    assert (await store.delete_transaction(str(ObjectId()))).failure == FailureReason.NOT_AUTHENTICATED
    assert fake_db["transactions"].calls == []


async def test_insert_retries_without_rejected_column(store, fake_db):
    fake_db["transactions"].rejected_fields = {"is_paid"}

    inserted = await store.insert_transactions([make_transaction(is_paid=False)])

    assert inserted.ok
    assert [call[0] for call in fake_db["transactions"].calls] == ["insert_many", "insert_many"]
    stored = next(iter(fake_db["transactions"].documents.values()))
    assert "is_paid" not in stored
    assert inserted.value[0].is_paid is True


async def test_insert_gives_up_after_one_retry(store, fake_db):
    fake_db["transactions"].rejected_fields = {"is_paid", "group_id"}

    inserted = await store.insert_transactions([make_transaction(group_id="grp_1")])

    assert not inserted.ok
    assert inserted.failure == FailureReason.SCHEMA_MISMATCH
    assert len(fake_db["transactions"].calls) == 2


async def test_update_writes_only_given_fields(store):
    created = (await store.insert_transactions([make_transaction()])).value[0]

    updated = await store.update_transaction(created.id, {"category": "Casa", "date": date(2024, 2, 1)})

    assert updated.ok
    assert updated.value.category == "Casa"
    assert updated.value.date == date(2024, 2, 1)
    assert updated.value.description == "TV"


async def test_update_retries_without_rejected_column(store, fake_db):
    created = (await store.insert_transactions([make_transaction()])).value[0]
    fake_db["transactions"].rejected_fields = {"is_paid"}

    updated = await store.update_transaction(created.id, {"is_paid": False, "amount": 10.0})

    assert updated.ok
    assert updated.value.amount == 10.0
    assert fake_db["transactions"].calls[-1] == ("update", ObjectId(created.id), {"amount": 10.0})


async def test_update_missing_or_invalid_id(store):
    assert (await store.update_transaction(str(ObjectId()), {"amount": 1.0})).failure == FailureReason.NOT_FOUND
    assert (await store.update_transaction("not-an-id", {"amount": 1.0})).failure == FailureReason.NOT_FOUND


async def test_update_error(store, fake_db):
    created = (await store.insert_transactions([make_transaction()])).value[0]
    fake_db["transactions"].failing_ids = {ObjectId(created.id)}

    result = await store.update_transaction(created.id, {"amount": 1.0})

    assert result.failure == FailureReason.ERROR


async def test_delete(store, fake_db):
    created = (await store.insert_transactions([make_transaction()])).value[0]

    assert (await store.delete_transaction(created.id)).ok
    assert (await store.delete_transaction(created.id)).failure == FailureReason.NOT_FOUND
    assert fake_db["transactions"].documents == {}


async def test_budgets_and_goals(store, fake_db):
    budget_id, goal_id = ObjectId(), ObjectId()
    fake_db["budgets"].documents[budget_id] = {"_id": budget_id, "user_id": USER_ID, "category": "Lazer", "limit": 300, "spent": 290}
    fake_db["goals"].documents[goal_id] = {
        "_id": goal_id, "user_id": USER_ID, "name": "Viagem", "target_amount": 5000, "current_amount": 1000,
        "deadline": datetime(2025, 12, 1),
    }

    budgets = await store.list_budgets()
    goals = await store.list_goals()

    assert budgets.value[0].category == "Lazer"
    assert goals.value[0].deadline == date(2025, 12, 1)
    assert goals.value[0].id == str(goal_id)


def test_rejected_optional_field_ignores_other_errors():
    assert rejected_optional_field(PyMongoError("connection reset")) is None
    assert rejected_optional_field(PyMongoError("Document failed validation: is_recurring")) == "is_recurring"
