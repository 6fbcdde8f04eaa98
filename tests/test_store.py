"""Document store transactions, change listeners and date normalization."""

import asyncio
from datetime import date, datetime, timedelta, timezone

import pytest

from app.features.wards.models import WARD_COLLECTION
from app.shared.exceptions import CapacityError, ConflictError
from app.shared.models import normalize_datetime
from app.store import InMemoryDocumentStore, REVISION_FIELD, Transaction
from app.store.subscriptions import Subscription

from conftest import admit, assert_occupancy_matches, load_ward, make_ward


# ==================== Transactions ====================

async def test_writes_bump_revision(store):
    doc_id = await store.insert("things", {"count": 0})
    assert (await store.get("things", doc_id))[REVISION_FIELD] == 1

    await store.update("things", doc_id, {"count": 1})
    assert (await store.get("things", doc_id))[REVISION_FIELD] == 2


async def test_transaction_commits_all_writes(store):
    first = await store.insert("things", {"count": 0})

    async def apply(tx: Transaction):
        document = await tx.get("things", first)
        tx.update("things", first, {"count": document["count"] + 1})
        return tx.insert("things", {"count": 10})

    second = await store.run_transaction(apply)

    assert (await store.get("things", first))["count"] == 1
    assert (await store.get("things", second))["count"] == 10


async def test_error_inside_transaction_writes_nothing(store):
    doc_id = await store.insert("things", {"count": 0})

    async def apply(tx: Transaction):
        await tx.get("things", doc_id)
        tx.update("things", doc_id, {"count": 99})
        raise ValueError("boom")

    with pytest.raises(ValueError):
        await store.run_transaction(apply)

    assert (await store.get("things", doc_id))["count"] == 0


async def test_conflicting_write_retries_against_fresh_state(store):
    doc_id = await store.insert("things", {"count": 0})
    attempts = []

    async def apply(tx: Transaction):
        document = await tx.get("things", doc_id)
        attempts.append(document["count"])
        if len(attempts) == 1:
            # Someone else writes between our read and our commit
            await store.update("things", doc_id, {"count": 5})
        tx.update("things", doc_id, {"count": document["count"] + 1})

    await store.run_transaction(apply)

    assert attempts == [0, 5]
    assert (await store.get("things", doc_id))["count"] == 6


async def test_retry_budget_exhaustion_raises_conflict():
    store = InMemoryDocumentStore(max_attempts=3, backoff=0)
    doc_id = await store.insert("things", {"count": 0})
    attempts = []

    async def apply(tx: Transaction):
        document = await tx.get("things", doc_id)
        attempts.append(1)
        await store.update("things", doc_id, {"count": document["count"] + 100})
        tx.update("things", doc_id, {"count": -1})

    with pytest.raises(ConflictError) as excinfo:
        await store.run_transaction(apply, description="contended write")

    assert excinfo.value.status_code == 409
    assert len(attempts) == 3
    assert (await store.get("things", doc_id))["count"] == 300


async def test_slow_transaction_times_out_as_conflict():
    store = InMemoryDocumentStore(timeout=0.05)

    async def apply(tx: Transaction):
        await asyncio.sleep(1)

    with pytest.raises(ConflictError):
        await store.run_transaction(apply)


async def test_reads_after_writes_are_rejected(store):
    doc_id = await store.insert("things", {"count": 0})

    async def apply(tx: Transaction):
        tx.update("things", doc_id, {"count": 1})
        await tx.get("things", doc_id)

    with pytest.raises(RuntimeError):
        await store.run_transaction(apply)


async def test_document_created_after_read_as_missing_conflicts(store):
    attempts = []

    async def apply(tx: Transaction):
        document = await tx.get("things", "fixed-id")
        attempts.append(document)
        if document is None and len(attempts) == 1:
            await store.seed("things", {"_id": "fixed-id", "count": 1})
        tx.insert("other", {"seen": document is not None})

    await store.run_transaction(apply)

    assert len(attempts) == 2
    assert attempts[1]["count"] == 1


async def test_append_pushes_and_sets_fields(store):
    doc_id = await store.insert("things", {"items": []})

    assert await store.append("things", doc_id, "items", {"n": 1}, {"touched": True})
    assert await store.append("things", doc_id, "items", {"n": 2})
    assert not await store.append("things", "missing", "items", {"n": 3})

    document = await store.get("things", doc_id)
    assert document["items"] == [{"n": 1}, {"n": 2}]
    assert document["touched"] is True


async def test_list_orders_missing_fields_first_ascending(store):
    await store.seed("things", {"_id": "a", "rank": 2})
    await store.seed("things", {"_id": "b"})
    await store.seed("things", {"_id": "c", "rank": 1})

    ascending = [d["_id"] for d in await store.list("things", order_by="rank")]
    descending = [d["_id"] for d in await store.list("things", order_by="rank", descending=True)]

    assert ascending == ["b", "c", "a"]
    assert descending == ["a", "c", "b"]


async def test_document_without_revision_is_still_guarded(store, monkeypatch):
    ward_id = await store.seed(WARD_COLLECTION, {
        "name": "Legacy", "department": "Surgery", "ward_type": "surgery",
        "total_beds": 1, "occupied_beds": 0,
    })
    original_get = store.get
    raced = []

    async def get_then_race(collection, doc_id):
        document = await original_get(collection, doc_id)
        if collection == WARD_COLLECTION and not raced:
            raced.append(collection)
            # Another admission takes the last bed after our read
            await admit(ward_id, name="Second")
        return document

    monkeypatch.setattr(store, "get", get_then_race)

    with pytest.raises(CapacityError):
        await admit(ward_id, name="First")

    ward = await store.get(WARD_COLLECTION, ward_id)
    assert ward["occupied_beds"] == 1
    assert ward[REVISION_FIELD] == 1
    await assert_occupancy_matches()


async def test_commit_outlasting_time_budget_still_completes(store, monkeypatch):
    ward_id = await make_ward(total_beds=2)
    original_commit = store._commit

    async def slow_commit(transaction):
        await asyncio.sleep(0.1)
        await original_commit(transaction)

    monkeypatch.setattr(store, "_commit", slow_commit)
    monkeypatch.setattr(store, "timeout", 0.05)

    patient_id = await admit(ward_id, name="Slow Commit")

    assert (await load_ward(ward_id)).occupied_beds == 1
    assert await store.get("patients", patient_id) is not None


async def test_cancelled_caller_does_not_cut_commit_short(store, monkeypatch):
    ward_id = await make_ward(total_beds=2)
    original_commit = store._commit
    committing = asyncio.Event()

    async def slow_commit(transaction):
        committing.set()
        await asyncio.sleep(0.05)
        await original_commit(transaction)

    monkeypatch.setattr(store, "_commit", slow_commit)
    caller = asyncio.create_task(admit(ward_id, name="Abandoned"))
    await committing.wait()
    caller.cancel()

    with pytest.raises(asyncio.CancelledError):
        await caller
    await asyncio.sleep(0.1)

    assert (await load_ward(ward_id)).occupied_beds == 1
    await assert_occupancy_matches()


# ==================== Subscriptions ====================

async def test_subscription_pushes_snapshot_on_start_and_change(store):
    snapshots = []

    async def loader():
        return await store.list("things")

    subscription = await Subscription(store, "things", loader, snapshots.append).start()
    await store.insert("things", {"n": 1})
    await store.flush()
    await store.insert("things", {"n": 2})
    await store.flush()

    assert [len(s) for s in snapshots] == [0, 1, 2]

    subscription.close()
    await store.insert("things", {"n": 3})
    await store.flush()
    assert len(snapshots) == 3


async def test_subscription_survives_failing_callback_and_loader(store):
    calls = []
    healthy = []
    fail_loader = {"on": False}

    def failing_callback(snapshot):
        calls.append(len(snapshot))
        raise RuntimeError("subscriber bug")

    async def loader():
        if fail_loader["on"]:
            raise ConnectionError("store unavailable")
        return await store.list("things")

    await Subscription(store, "things", loader, failing_callback).start()
    await Subscription(store, "things", loader, healthy.append).start()

    await store.insert("things", {"n": 1})
    await store.flush()
    fail_loader["on"] = True
    await store.insert("things", {"n": 2})
    await store.flush()
    fail_loader["on"] = False
    await store.insert("things", {"n": 3})
    await store.flush()

    assert calls == [0, 1, 3]
    assert [len(s) for s in healthy] == [0, 1, 3]


async def test_transaction_notifies_each_touched_collection_once(store):
    seen = []

    async def listener(collection):
        seen.append(collection)

    store.add_listener("a", listener)
    store.add_listener("b", listener)

    async def apply(tx: Transaction):
        tx.insert("a", {})
        tx.insert("a", {})
        tx.insert("b", {})

    await store.run_transaction(apply)
    await store.flush()

    assert seen == ["a", "b"]


async def test_slow_listener_does_not_hold_up_writes(store):
    release = asyncio.Event()
    seen = []

    async def listener(collection):
        await release.wait()
        seen.append(collection)

    store.add_listener("things", listener)

    doc_id = await asyncio.wait_for(store.insert("things", {"n": 1}), timeout=1)
    assert await asyncio.wait_for(store.update("things", doc_id, {"n": 2}), timeout=1)
    assert seen == []

    release.set()
    await store.flush()
    assert seen == ["things", "things"]


# ==================== Date Normalization ====================

def test_normalize_datetime_shapes():
    expected = datetime(2024, 3, 1, 12, 0, 0)
    epoch = expected.replace(tzinfo=timezone.utc).timestamp()

    assert normalize_datetime(expected) == expected
    assert normalize_datetime(expected.replace(tzinfo=timezone(timedelta(hours=1))) + timedelta(hours=1)) == expected
    assert normalize_datetime("2024-03-01T12:00:00Z") == expected
    assert normalize_datetime("2024-03-01T13:00:00+01:00") == expected
    assert normalize_datetime(epoch) == expected
    assert normalize_datetime(int(epoch * 1000)) == expected
    assert normalize_datetime({"seconds": int(epoch), "nanoseconds": 0}) == expected
    assert normalize_datetime({"_seconds": int(epoch), "_nanoseconds": 0}) == expected
    assert normalize_datetime(date(2024, 3, 1)) == datetime(2024, 3, 1)


def test_normalize_datetime_empty_and_invalid():
    assert normalize_datetime(None) is None
    assert normalize_datetime("") is None

    with pytest.raises(ValueError):
        normalize_datetime(True)
    with pytest.raises(ValueError):
        normalize_datetime({"minutes": 3})
    with pytest.raises(ValueError):
        normalize_datetime("not a date")
