"""
MongoDB store: query shapes sent to motor, DuplicateKeyError reissue and
PyMongoError -> CollaboratorUnavailable.
"""
from unittest.mock import AsyncMock, MagicMock

import pytest
from pymongo import ASCENDING
from pymongo.errors import DuplicateKeyError, ServerSelectionTimeoutError

from conftest import FIXED_NOW
from services.subscription_store import SubscriptionStore
from services.webhook_errors import CollaboratorUnavailable

FIELDS = {"is_subscribed": True, "plan": "annual", "last_event_id": "evt_001"}


def _db():
    db = MagicMock()
    db.users = MagicMock()
    db.users.find_one = AsyncMock(return_value={"company_id": "co-1"})
    db.subscriptions = MagicMock()
    db.subscriptions.update_one = AsyncMock(return_value=MagicMock(matched_count=1))
    return db


@pytest.mark.asyncio
async def test_find_company_id_query_shape():
    db = _db()
    store = SubscriptionStore(lambda: db)

    assert await store.find_company_id_by_email("a@b.com") == "co-1"

    db.users.find_one.assert_awaited_once_with(
        {"email": "a@b.com"},
        {"_id": 0, "company_id": 1},
        sort=[("_id", ASCENDING)],
    )


@pytest.mark.asyncio
async def test_find_company_id_no_user():
    db = _db()
    db.users.find_one.return_value = None
    store = SubscriptionStore(lambda: db)
    assert await store.find_company_id_by_email("x@b.com") is None


@pytest.mark.asyncio
async def test_find_company_id_store_failure():
    db = _db()
    db.users.find_one.side_effect = ServerSelectionTimeoutError("no servers")
    store = SubscriptionStore(lambda: db)
    with pytest.raises(CollaboratorUnavailable) as exc_info:
        await store.find_company_id_by_email("a@b.com")
    assert exc_info.value.collaborator == "mongodb"


@pytest.mark.asyncio
async def test_upsert_update_shape():
    db = _db()
    store = SubscriptionStore(lambda: db)

    await store.upsert_subscription("co-1", FIELDS, FIXED_NOW)

    db.subscriptions.update_one.assert_awaited_once_with(
        {"company_id": "co-1"},
        {
            "$set": FIELDS,
            "$max": {"updated_at": FIXED_NOW},
            "$setOnInsert": {"company_id": "co-1", "created_at": FIXED_NOW},
        },
        upsert=True,
    )


@pytest.mark.asyncio
async def test_upsert_reissued_once_after_insert_race():
    db = _db()
    db.subscriptions.update_one.side_effect = [
        DuplicateKeyError("E11000 duplicate key error collection: subscriptions index: company_id_1"),
        MagicMock(matched_count=1),
    ]
    store = SubscriptionStore(lambda: db)

    await store.upsert_subscription("co-1", FIELDS, FIXED_NOW)

    assert db.subscriptions.update_one.await_count == 2
    first, second = db.subscriptions.update_one.await_args_list
    assert first == second


@pytest.mark.asyncio
async def test_upsert_second_duplicate_key_is_collaborator_failure():
    db = _db()
    db.subscriptions.update_one.side_effect = DuplicateKeyError("E11000 duplicate key")
    store = SubscriptionStore(lambda: db)
    with pytest.raises(CollaboratorUnavailable):
        await store.upsert_subscription("co-1", FIELDS, FIXED_NOW)
    assert db.subscriptions.update_one.await_count == 2


@pytest.mark.asyncio
async def test_no_database_is_collaborator_failure():
    store = SubscriptionStore(lambda: None)
    with pytest.raises(CollaboratorUnavailable):
        await store.find_company_id_by_email("a@b.com")
    with pytest.raises(CollaboratorUnavailable):
        await store.upsert_subscription("co-1", FIELDS, FIXED_NOW)
