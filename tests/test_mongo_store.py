"""MongoDB store: the lock-based commit protocol, sessions, change streams and setup."""

import asyncio
from datetime import timedelta

import pytest
from mongomock_motor import AsyncMongoMockClient
from pymongo.errors import PyMongoError

import app.database as database
from app.config import settings
from app.database import Database, get_store
from app.features.patients.models import PATIENT_COLLECTION
from app.features.patients.occupancy import OccupancyManager
from app.features.patients.schemas import UpdatePatientRequest
from app.features.wards.models import WARD_COLLECTION
from app.shared.exceptions import ConflictError
from app.shared.models import utcnow
from app.store import MongoDocumentStore
from app.store.mongo import LOCK_EXPIRES_FIELD, LOCK_FIELD

from conftest import admit, assert_occupancy_matches, load_patient, load_ward, make_ward


async def raw(store: MongoDocumentStore, collection: str, doc_id: str):
    return await store.db[collection].find_one({"_id": doc_id})


async def locked_documents(store: MongoDocumentStore) -> int:
    total = 0
    for collection in (WARD_COLLECTION, PATIENT_COLLECTION):
        total += await store.db[collection].count_documents({LOCK_FIELD: {"$exists": True}})
    return total


# ==================== Lock-based commits ====================

async def test_commit_that_loses_a_race_writes_nothing(mongo_store, monkeypatch):
    ward_a = await make_ward("Ward A", total_beds=2)
    ward_b = await make_ward("Ward B", total_beds=2)
    moving = await admit(ward_a, name="Moving")
    ward_a_before = await raw(mongo_store, WARD_COLLECTION, ward_a)
    original_lock = mongo_store._lock

    async def lock_after_ward_b_changes(owner, transaction, collection, doc_id):
        if doc_id == ward_b:
            await mongo_store.update(WARD_COLLECTION, ward_b, {"department": "Surgery"})
        await original_lock(owner, transaction, collection, doc_id)

    monkeypatch.setattr(mongo_store, "_lock", lock_after_ward_b_changes)

    with pytest.raises(ConflictError):
        await OccupancyManager.update_patient(moving, UpdatePatientRequest(ward_id=ward_b))

    assert await raw(mongo_store, WARD_COLLECTION, ward_a) == ward_a_before
    assert (await load_patient(moving)).ward_id == ward_a
    assert (await load_ward(ward_b)).occupied_beds == 0
    assert await locked_documents(mongo_store) == 0
    await assert_occupancy_matches()


async def test_admission_during_failed_transfer_keeps_both_beds(mongo_store, monkeypatch):
    ward_a = await make_ward("Ward A", total_beds=2)
    ward_b = await make_ward("Ward B", total_beds=2)
    moving = await admit(ward_a, name="Moving")
    original_lock = mongo_store._lock
    arrivals = []

    async def lock_while_others_write(owner, transaction, collection, doc_id):
        if doc_id == ward_b and not arrivals:
            # Ward B changes under the transfer while a new patient heads for ward A
            await mongo_store.update(WARD_COLLECTION, ward_b, {"department": "Surgery"})
            arrivals.append(asyncio.create_task(admit(ward_a, name="Arriving")))
            await asyncio.sleep(0)
        await original_lock(owner, transaction, collection, doc_id)

    monkeypatch.setattr(mongo_store, "_lock", lock_while_others_write)

    await OccupancyManager.update_patient(moving, UpdatePatientRequest(ward_id=ward_b))
    arriving = await arrivals[0]

    assert (await load_patient(moving)).ward_id == ward_b
    assert (await load_patient(arriving)).ward_id == ward_a
    assert (await load_ward(ward_a)).occupied_beds == 1
    assert (await load_ward(ward_b)).occupied_beds == 1
    assert await locked_documents(mongo_store) == 0
    await assert_occupancy_matches()


async def test_cancelled_transfer_is_applied_whole(mongo_store, monkeypatch):
    ward_a = await make_ward("Ward A", total_beds=2)
    ward_b = await make_ward("Ward B", total_beds=2)
    moving = await admit(ward_a, name="Moving")
    original_apply = mongo_store._apply_locked
    applying = asyncio.Event()

    async def slow_apply(owner, transaction):
        applying.set()
        await asyncio.sleep(0.05)
        await original_apply(owner, transaction)

    monkeypatch.setattr(mongo_store, "_apply_locked", slow_apply)
    caller = asyncio.create_task(
        OccupancyManager.update_patient(moving, UpdatePatientRequest(ward_id=ward_b))
    )
    await applying.wait()
    caller.cancel()

    with pytest.raises(asyncio.CancelledError):
        await caller
    await asyncio.sleep(0.1)

    assert (await load_patient(moving)).ward_id == ward_b
    assert (await load_ward(ward_a)).occupied_beds == 0
    assert (await load_ward(ward_b)).occupied_beds == 1
    assert await locked_documents(mongo_store) == 0


async def test_plain_write_waits_for_commit_lock(mongo_store):
    doc_id = await mongo_store.insert("things", {"count": 0})
    await mongo_store.db["things"].update_one(
        {"_id": doc_id},
        {"$set": {LOCK_FIELD: "other-commit", LOCK_EXPIRES_FIELD: utcnow() + timedelta(seconds=30)}},
    )

    assert LOCK_FIELD not in await mongo_store.get("things", doc_id)

    write = asyncio.create_task(mongo_store.update("things", doc_id, {"count": 1}))
    await asyncio.sleep(0.05)
    assert not write.done()

    await mongo_store.db["things"].update_one(
        {"_id": doc_id}, {"$unset": {LOCK_FIELD: "", LOCK_EXPIRES_FIELD: ""}}
    )
    assert await asyncio.wait_for(write, timeout=1)
    assert (await mongo_store.get("things", doc_id))["count"] == 1


async def test_abandoned_lock_is_taken_over_after_its_lease(mongo_store):
    ward_id = await make_ward(total_beds=2)
    await mongo_store.db[WARD_COLLECTION].update_one(
        {"_id": ward_id},
        {"$set": {LOCK_FIELD: "crashed-commit", LOCK_EXPIRES_FIELD: utcnow() - timedelta(seconds=1)}},
    )

    await admit(ward_id)

    assert (await load_ward(ward_id)).occupied_beds == 1
    assert await locked_documents(mongo_store) == 0


# ==================== Sessions and change streams ====================

class SessionlessClient:
    """Client whose sessions fail with a given driver error."""

    def __init__(self, error: PyMongoError):
        self.error = error
        self._mock = AsyncMongoMockClient()

    def __getitem__(self, name):
        return self._mock[name]

    async def start_session(self):
        raise self.error

    def close(self):
        self._mock.close()


@pytest.mark.parametrize("label", ["TransientTransactionError", "UnknownTransactionCommitResult"])
async def test_retryable_session_errors_become_conflicts(label):
    error = PyMongoError("write conflict", error_labels=[label])
    store = MongoDocumentStore(SessionlessClient(error), "sessions", max_attempts=2, backoff=0)
    attempts = []

    async def apply(tx):
        attempts.append(1)
        tx.insert("things", {})

    with pytest.raises(ConflictError):
        await store.run_transaction(apply)

    assert len(attempts) == 2
    await store.close()


async def test_other_session_errors_propagate():
    store = MongoDocumentStore(SessionlessClient(PyMongoError("disk full")), "sessions", backoff=0)
    attempts = []

    async def apply(tx):
        attempts.append(1)
        tx.insert("things", {})

    with pytest.raises(PyMongoError):
        await store.run_transaction(apply)

    assert len(attempts) == 1
    await store.close()


class ChangeFeed:
    def __init__(self, changes):
        self._changes = list(changes)

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        return False

    def __aiter__(self):
        return self

    async def __anext__(self):
        if self._changes:
            return self._changes.pop(0)
        await asyncio.Event().wait()


class WatchedClient:
    """Client whose wards collection reports a fixed list of changes."""

    def __init__(self, changes):
        self.changes = changes

    def __getitem__(self, name):
        return {WARD_COLLECTION: self}

    def watch(self):
        return ChangeFeed(self.changes)

    def close(self):
        pass


async def test_change_stream_feeds_listeners():
    store = MongoDocumentStore(WatchedClient([{"operationType": "insert"}, {"operationType": "update"}]), "feed")
    seen = []

    async def listener(collection):
        seen.append(collection)

    store.add_listener(WARD_COLLECTION, listener)
    for _ in range(50):
        if len(seen) == 2:
            break
        await asyncio.sleep(0.01)

    assert seen == [WARD_COLLECTION, WARD_COLLECTION]
    await store.close()


# ==================== Setup ====================

async def test_connect_db_prepares_collections(monkeypatch):
    monkeypatch.setattr(settings, "STORE_BACKEND", "mongo")
    monkeypatch.setattr(settings, "MONGODB_TRANSACTIONS", False)
    monkeypatch.setattr(database, "AsyncIOMotorClient", lambda url, **kwargs: AsyncMongoMockClient())

    await Database.connect_db()
    try:
        store = get_store()
        assert isinstance(store, MongoDocumentStore)
        assert not store.use_transactions

        assert "name_1" in await store.db[WARD_COLLECTION].index_information()
        patient_indexes = await store.db[PATIENT_COLLECTION].index_information()
        assert {"created_at_-1", "ward_id_1_status_1"} <= set(patient_indexes)
    finally:
        await Database.close_db()
