"""Document store interface and the optimistic transaction runner."""

import asyncio
import inspect
import random
from abc import ABC, abstractmethod
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set, Tuple, TypeVar

from bson import ObjectId

from app.config import settings
from app.core.logging import logger
from app.shared.exceptions import ConflictError


# Revision counter kept on every stored document, bumped on each write
REVISION_FIELD = "_rev"

T = TypeVar("T")
Listener = Callable[[str], Awaitable[None]]


def new_id() -> str:
    """Generate a store-assigned document id."""
    return str(ObjectId())


class TransactionConflict(Exception):
    """A document read by a transaction changed before it could commit."""


@dataclass
class Write:
    """A buffered transactional write."""
    op: str  # insert, update, delete
    collection: str
    doc_id: str
    data: Dict[str, Any] = field(default_factory=dict)


class Transaction:
    """
    One attempt of an optimistic transaction.

    Reads go straight to the store and record the revision they saw: None for
    a missing document, 0 for a document written before revisions existed.
    Writes are buffered and only reach the store when the attempt commits, at
    which point every recorded revision is checked again. All reads must
    happen before the first write.
    """

    def __init__(self, store: "DocumentStore"):
        self._store = store
        self.reads: Dict[Tuple[str, str], Optional[int]] = {}
        self.writes: List[Write] = []

    async def get(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        if self.writes:
            raise RuntimeError("Transaction reads must happen before writes")

        document = await self._store.get(collection, doc_id)
        self.reads[(collection, doc_id)] = revision_of(document)
        return document

    def insert(self, collection: str, data: Dict[str, Any]) -> str:
        doc_id = new_id()
        self.writes.append(Write("insert", collection, doc_id, dict(data)))
        return doc_id

    def update(self, collection: str, doc_id: str, fields: Dict[str, Any]) -> None:
        self.writes.append(Write("update", collection, doc_id, dict(fields)))

    def delete(self, collection: str, doc_id: str) -> None:
        self.writes.append(Write("delete", collection, doc_id))

    def has_read(self, collection: str, doc_id: str) -> bool:
        return (collection, doc_id) in self.reads

    def expected_revision(self, collection: str, doc_id: str) -> Optional[int]:
        return self.reads.get((collection, doc_id))

    @property
    def collections(self) -> Set[str]:
        return {write.collection for write in self.writes}


def revision_of(document: Optional[Dict[str, Any]]) -> Optional[int]:
    """Revision of a stored document, None when it does not exist."""
    if document is None:
        return None
    return document.get(REVISION_FIELD, 0)


class DocumentStore(ABC):
    """
    Versioned document store.

    Documents are dicts keyed by "_id". Plain writes (insert, update, delete,
    append) are atomic per document; multi-document consistency goes through
    run_transaction().

    Change listeners never run inside a write. Each change schedules one
    notification task; tasks are delivered in the order they were scheduled
    and flush() waits for all of them.
    """

    def __init__(
        self,
        max_attempts: Optional[int] = None,
        timeout: Optional[float] = None,
        backoff: Optional[float] = None,
    ):
        self.max_attempts = max_attempts or settings.TRANSACTION_MAX_ATTEMPTS
        self.timeout = timeout or settings.TRANSACTION_TIMEOUT_SECONDS
        self.backoff = settings.TRANSACTION_BACKOFF_SECONDS if backoff is None else backoff
        self._listeners: Dict[str, List[Listener]] = defaultdict(list)
        self._pending: Set[asyncio.Task] = set()
        self._delivery_lock = asyncio.Lock()

    # ============== Lifecycle ==============

    async def start(self) -> None:
        """Start background work such as change feeds."""

    async def close(self) -> None:
        """Deliver outstanding notifications and release resources."""
        await self.flush()

    # ============== Single-document operations ==============

    @abstractmethod
    async def get(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        ...

    @abstractmethod
    async def list(
        self,
        collection: str,
        order_by: Optional[str] = None,
        descending: bool = False,
    ) -> List[Dict[str, Any]]:
        ...

    @abstractmethod
    async def find(self, collection: str, **equals: Any) -> List[Dict[str, Any]]:
        """Return documents whose fields equal every given value."""

    @abstractmethod
    async def insert(self, collection: str, data: Dict[str, Any]) -> str:
        ...

    @abstractmethod
    async def update(self, collection: str, doc_id: str, fields: Dict[str, Any]) -> bool:
        """Set the given fields. Returns False when the document is missing."""

    @abstractmethod
    async def delete(self, collection: str, doc_id: str) -> bool:
        ...

    @abstractmethod
    async def append(
        self,
        collection: str,
        doc_id: str,
        array_field: str,
        item: Dict[str, Any],
        fields: Optional[Dict[str, Any]] = None,
    ) -> bool:
        """Atomically push an item onto an array field, setting extra fields alongside."""

    @abstractmethod
    async def seed(self, collection: str, document: Dict[str, Any]) -> str:
        """Place a raw document as-is, bypassing all checks (test fixtures, imports)."""

    @abstractmethod
    async def _commit(self, transaction: Transaction) -> None:
        """Validate the transaction's reads and apply its writes as one unit."""

    # ============== Transactions ==============

    async def run_transaction(
        self,
        fn: Callable[[Transaction], Awaitable[T]],
        description: str = "transaction",
    ) -> T:
        """
        Run fn inside an optimistic transaction, retrying on conflicts.

        Errors raised by fn abort the attempt before anything is written and
        propagate unchanged. The time budget covers fn and the pauses between
        attempts; a commit that has started always runs to its end, even when
        the caller is cancelled. Exhausting either budget raises ConflictError.
        """
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.timeout

        for attempt in range(1, self.max_attempts + 1):
            transaction = Transaction(self)
            try:
                result = await asyncio.wait_for(fn(transaction), timeout=deadline - loop.time())
            except asyncio.TimeoutError:
                logger.error(f"{description} timed out after {self.timeout}s")
                raise ConflictError(f"Timed out while applying {description}, please retry")

            try:
                await self._commit_detached(transaction, description)
            except TransactionConflict as e:
                logger.warning(
                    f"{description} conflicted on attempt {attempt}/{self.max_attempts}: {e}"
                )
                if attempt < self.max_attempts:
                    pause = random.uniform(0, self.backoff * attempt)
                    if loop.time() + pause >= deadline:
                        logger.error(f"{description} timed out after {self.timeout}s")
                        raise ConflictError(f"Timed out while applying {description}, please retry")
                    await asyncio.sleep(pause)
                continue

            self._changed(transaction.collections)
            return result

        logger.error(f"{description} gave up after {self.max_attempts} conflicting attempts")
        raise ConflictError(f"Too much contention while applying {description}, please retry")

    async def _commit_detached(self, transaction: Transaction, description: str) -> None:
        commit = asyncio.ensure_future(self._commit(transaction))
        try:
            await asyncio.shield(commit)
        except asyncio.CancelledError:
            if not commit.done():
                logger.warning(f"{description} cancelled mid-commit; letting the commit finish")
                commit.add_done_callback(
                    lambda task: self._finish_detached(task, transaction, description)
                )
            raise

    def _finish_detached(self, task: asyncio.Task, transaction: Transaction, description: str) -> None:
        if task.cancelled():
            return
        error = task.exception()
        if error is None:
            self._changed(transaction.collections)
        else:
            logger.warning(f"Detached commit of {description} failed: {type(error).__name__}: {error}")

    # ============== Change listeners ==============

    def add_listener(self, collection: str, listener: Listener) -> Callable[[], None]:
        """Register a coroutine called with the collection name after each change."""
        self._listeners[collection].append(listener)

        def remove():
            if listener in self._listeners[collection]:
                self._listeners[collection].remove(listener)

        return remove

    def _changed(self, collections: Set[str]) -> None:
        """Hook called after this process changes the given collections."""
        self._schedule_notify(collections)

    def _schedule_notify(self, collections: Set[str]) -> None:
        if not any(self._listeners.get(collection) for collection in collections):
            return
        task = asyncio.get_running_loop().create_task(self._deliver(set(collections)))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _deliver(self, collections: Set[str]) -> None:
        # The lock hands out turns in arrival order, keeping deliveries ordered
        async with self._delivery_lock:
            await self._notify(collections)

    async def flush(self) -> None:
        """Wait until every scheduled change notification has been delivered."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def _notify(self, collections: Set[str]) -> None:
        for collection in sorted(collections):
            for listener in list(self._listeners.get(collection, [])):
                try:
                    result = listener(collection)
                    if inspect.isawaitable(result):
                        await result
                except Exception as e:
                    logger.error(f"Change listener for {collection} failed: {type(e).__name__}: {e}")
