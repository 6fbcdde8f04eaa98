"""MongoDB document store on top of Motor."""

import asyncio
from datetime import timedelta
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Set, Tuple

from motor.motor_asyncio import AsyncIOMotorClient
from pymongo import ASCENDING, DESCENDING
from pymongo.errors import PyMongoError

from app.config import settings
from app.core.logging import logger
from app.shared.exceptions import ConflictError
from app.shared.models import utcnow
from app.store.base import (
    REVISION_FIELD,
    DocumentStore,
    Transaction,
    TransactionConflict,
    Write,
    new_id,
    revision_of,
)


# Commit lock kept on a document while a commit without a session holds it
LOCK_FIELD = "_lock"
LOCK_EXPIRES_FIELD = "_lock_expires"
LOCK_POLL_SECONDS = 0.01

HIDDEN_FIELDS = {LOCK_FIELD: 0, LOCK_EXPIRES_FIELD: 0}


class MongoDocumentStore(DocumentStore):
    """
    Document store backed by a MongoDB database.

    With use_transactions (replica set or sharded cluster) a commit runs in
    one multi-document transaction, and change streams feed the listeners so
    changes made by other processes are seen too.

    Without it, a commit first locks every document it read or is about to
    change. Each lock is one atomic update guarded by the revision the
    transaction saw, so a miss is a conflict raised before anything was
    written. The writes then land under the locks and the locks are
    released. Plain writes wait while a document is locked; a lock whose
    lease ran out counts as abandoned.
    """

    def __init__(
        self,
        client: AsyncIOMotorClient,
        database_name: str,
        use_transactions: bool = True,
        lock_lease: Optional[float] = None,
        **kwargs,
    ):
        super().__init__(**kwargs)
        self.client = client
        self.db = client[database_name]
        self.use_transactions = use_transactions
        self.lock_lease = lock_lease or settings.TRANSACTION_LOCK_LEASE_SECONDS
        self._watch_tasks: Dict[str, asyncio.Task] = {}

    # ============== Lifecycle ==============

    async def create_indexes(self, collection: str, indexes: Sequence[List[Tuple[str, int]]]) -> None:
        for keys in indexes:
            await self.db[collection].create_index(keys)

    async def start(self) -> None:
        if not self.use_transactions:
            return
        for collection in list(self._listeners):
            self._ensure_watch(collection)

    async def close(self) -> None:
        await super().close()
        tasks = list(self._watch_tasks.values())
        self._watch_tasks.clear()
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self.client.close()

    def add_listener(self, collection, listener):
        remove = super().add_listener(collection, listener)
        if self.use_transactions:
            self._ensure_watch(collection)
        return remove

    def _ensure_watch(self, collection: str) -> None:
        task = self._watch_tasks.get(collection)
        if task is None or task.done():
            try:
                self._watch_tasks[collection] = asyncio.get_running_loop().create_task(
                    self._watch(collection)
                )
            except RuntimeError:
                # No running loop yet; start() picks it up
                pass

    async def _watch(self, collection: str) -> None:
        while True:
            try:
                async with self.db[collection].watch() as stream:
                    logger.info(f"Watching change stream on {collection}")
                    async for _change in stream:
                        await self._notify({collection})
            except asyncio.CancelledError:
                raise
            except PyMongoError as e:
                logger.error(f"Change stream on {collection} failed: {e}; reconnecting")
                await asyncio.sleep(1)

    def _changed(self, collections: Set[str]) -> None:
        # Change streams report our own writes as well
        if not self.use_transactions:
            self._schedule_notify(collections)

    # ============== Single-document operations ==============

    async def get(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        return await self.db[collection].find_one({"_id": doc_id}, HIDDEN_FIELDS)

    async def list(
        self,
        collection: str,
        order_by: Optional[str] = None,
        descending: bool = False,
    ) -> List[Dict[str, Any]]:
        cursor = self.db[collection].find({}, HIDDEN_FIELDS)
        if order_by:
            cursor = cursor.sort(order_by, DESCENDING if descending else ASCENDING)
        return await cursor.to_list(length=None)

    async def find(self, collection: str, **equals: Any) -> List[Dict[str, Any]]:
        return await self.db[collection].find(equals, HIDDEN_FIELDS).to_list(length=None)

    async def insert(self, collection: str, data: Dict[str, Any]) -> str:
        doc_id = new_id()
        await self.db[collection].insert_one({**data, "_id": doc_id, REVISION_FIELD: 1})
        self._changed({collection})
        return doc_id

    async def update(self, collection: str, doc_id: str, fields: Dict[str, Any]) -> bool:
        async def write(query):
            result = await self.db[collection].update_one(query, self._update_spec(fields))
            return result.matched_count

        return await self._write_unlocked(collection, doc_id, write)

    async def delete(self, collection: str, doc_id: str) -> bool:
        async def write(query):
            result = await self.db[collection].delete_one(query)
            return result.deleted_count

        return await self._write_unlocked(collection, doc_id, write)

    async def append(
        self,
        collection: str,
        doc_id: str,
        array_field: str,
        item: Dict[str, Any],
        fields: Optional[Dict[str, Any]] = None,
    ) -> bool:
        update = self._update_spec(fields)
        update["$push"] = {array_field: item}

        async def write(query):
            result = await self.db[collection].update_one(query, update)
            return result.matched_count

        return await self._write_unlocked(collection, doc_id, write)

    async def seed(self, collection: str, document: Dict[str, Any]) -> str:
        document = dict(document)
        doc_id = str(document.setdefault("_id", new_id()))
        document["_id"] = doc_id
        await self.db[collection].insert_one(document)
        self._changed({collection})
        return doc_id

    async def _write_unlocked(
        self,
        collection: str,
        doc_id: str,
        write: Callable[[Dict[str, Any]], Awaitable[int]],
    ) -> bool:
        """Run a single-document write once no commit holds the document."""
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.timeout

        while not await write({"_id": doc_id, **self._unlocked()}):
            if await self.db[collection].find_one({"_id": doc_id}, {"_id": 1}) is None:
                return False
            if loop.time() >= deadline:
                logger.error(f"{collection}/{doc_id} stayed locked for {self.timeout}s")
                raise ConflictError(f"{collection}/{doc_id} is busy, please retry")
            await asyncio.sleep(LOCK_POLL_SECONDS)

        self._changed({collection})
        return True

    @staticmethod
    def _update_spec(fields: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        update: Dict[str, Any] = {"$inc": {REVISION_FIELD: 1}}
        if fields:
            update["$set"] = fields
        return update

    @staticmethod
    def _unlocked() -> Dict[str, Any]:
        return {"$or": [{LOCK_FIELD: {"$exists": False}}, {LOCK_EXPIRES_FIELD: {"$lt": utcnow()}}]}

    @staticmethod
    def _revision_guard(expected: Optional[int]) -> Dict[str, Any]:
        if expected is None:
            return {}
        if expected == 0:
            # Written before revisions existed
            return {REVISION_FIELD: {"$exists": False}}
        return {REVISION_FIELD: expected}

    # ============== Commit ==============

    async def _commit(self, transaction: Transaction) -> None:
        if self.use_transactions:
            await self._commit_in_session(transaction)
        else:
            await self._commit_with_locks(transaction)

    async def _commit_in_session(self, transaction: Transaction) -> None:
        try:
            async with await self.client.start_session() as session:
                async with session.start_transaction():
                    await self._check_unwritten_reads(transaction, session)
                    for write in transaction.writes:
                        await self._apply(transaction, write, session)
        except PyMongoError as e:
            if e.has_error_label("TransientTransactionError") or e.has_error_label(
                "UnknownTransactionCommitResult"
            ):
                raise TransactionConflict(str(e)) from e
            logger.error(f"MongoDB commit failed: {type(e).__name__}: {e}")
            raise

    async def _check_unwritten_reads(self, transaction: Transaction, session) -> None:
        # Written documents are checked by the revision guard on the write itself
        written = {(write.collection, write.doc_id) for write in transaction.writes}
        for (collection, doc_id), revision in transaction.reads.items():
            if (collection, doc_id) in written and revision is not None:
                continue
            current = await self.db[collection].find_one(
                {"_id": doc_id}, {REVISION_FIELD: 1}, session=session
            )
            current_revision = revision_of(current)
            if current_revision != revision:
                raise TransactionConflict(
                    f"{collection}/{doc_id} changed (revision {revision} -> {current_revision})"
                )

    async def _apply(self, transaction: Transaction, write: Write, session) -> None:
        collection = self.db[write.collection]
        if write.op == "insert":
            await collection.insert_one(
                {**write.data, "_id": write.doc_id, REVISION_FIELD: 1}, session=session
            )
            return

        query = {
            "_id": write.doc_id,
            **self._revision_guard(transaction.expected_revision(write.collection, write.doc_id)),
        }
        if write.op == "update":
            result = await collection.update_one(query, self._update_spec(write.data), session=session)
            matched = result.matched_count
        else:
            result = await collection.delete_one(query, session=session)
            matched = result.deleted_count

        if matched == 0:
            raise TransactionConflict(f"{write.collection}/{write.doc_id} changed before commit")

    async def _commit_with_locks(self, transaction: Transaction) -> None:
        owner = new_id()
        locked: List[Tuple[str, str]] = []
        try:
            for collection, doc_id in self._lock_targets(transaction):
                await self._lock(owner, transaction, collection, doc_id)
                locked.append((collection, doc_id))
            await self._check_missing_reads(transaction)
            await self._apply_locked(owner, transaction)
        finally:
            await self._unlock(owner, locked)

    @staticmethod
    def _lock_targets(transaction: Transaction) -> List[Tuple[str, str]]:
        targets = {key for key, revision in transaction.reads.items() if revision is not None}
        targets.update(
            (write.collection, write.doc_id) for write in transaction.writes if write.op != "insert"
        )
        # One global order keeps two commits from each holding what the other needs
        return sorted(targets)

    async def _lock(self, owner: str, transaction: Transaction, collection: str, doc_id: str) -> None:
        query: Dict[str, Any] = {"_id": doc_id, **self._unlocked()}
        if transaction.has_read(collection, doc_id):
            expected = transaction.expected_revision(collection, doc_id)
            if expected is None:
                raise TransactionConflict(f"{collection}/{doc_id} did not exist when it was read")
            query.update(self._revision_guard(expected))

        expires = utcnow() + timedelta(seconds=self.lock_lease)
        result = await self.db[collection].update_one(
            query, {"$set": {LOCK_FIELD: owner, LOCK_EXPIRES_FIELD: expires}}
        )
        if result.matched_count == 0:
            raise TransactionConflict(f"{collection}/{doc_id} changed or is locked by another commit")

    async def _check_missing_reads(self, transaction: Transaction) -> None:
        for (collection, doc_id), revision in transaction.reads.items():
            if revision is not None:
                continue
            if await self.db[collection].find_one({"_id": doc_id}, {"_id": 1}) is not None:
                raise TransactionConflict(f"{collection}/{doc_id} was created after it was read")

    async def _apply_locked(self, owner: str, transaction: Transaction) -> None:
        # Inserts go last so a lost lock leaves no orphaned documents behind
        order = {"update": 0, "delete": 1, "insert": 2}
        for write in sorted(transaction.writes, key=lambda write: order[write.op]):
            collection = self.db[write.collection]
            if write.op == "insert":
                await collection.insert_one({**write.data, "_id": write.doc_id, REVISION_FIELD: 1})
                continue

            query = {"_id": write.doc_id, LOCK_FIELD: owner}
            if write.op == "update":
                result = await collection.update_one(query, self._update_spec(write.data))
                matched = result.matched_count
            else:
                result = await collection.delete_one(query)
                matched = result.deleted_count

            if matched == 0:
                # Only possible once the lease ran out and another writer took over
                logger.error(
                    f"Commit lost its lock on {write.collection}/{write.doc_id} after "
                    f"{self.lock_lease}s; earlier writes of this commit were applied"
                )
                raise ConflictError("The change took too long to apply and was only partly saved")

    async def _unlock(self, owner: str, locked: List[Tuple[str, str]]) -> None:
        for collection, doc_id in locked:
            await self.db[collection].update_one(
                {"_id": doc_id, LOCK_FIELD: owner},
                {"$unset": {LOCK_FIELD: "", LOCK_EXPIRES_FIELD: ""}},
            )
