"""In-process document store used for tests and local runs."""

import asyncio
import copy
from typing import Any, Dict, List, Optional

from app.store.base import REVISION_FIELD, DocumentStore, Transaction, TransactionConflict, new_id, revision_of


class InMemoryDocumentStore(DocumentStore):
    """
    Dict-backed store with the same revision and commit semantics as the
    MongoDB store. Every read yields to the event loop first so concurrent
    tasks interleave the way they would against a remote store.
    """

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self._collections: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self._lock = asyncio.Lock()

    def _collection(self, name: str) -> Dict[str, Dict[str, Any]]:
        return self._collections.setdefault(name, {})

    async def get(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        await asyncio.sleep(0)
        document = self._collection(collection).get(doc_id)
        return copy.deepcopy(document) if document is not None else None

    async def list(
        self,
        collection: str,
        order_by: Optional[str] = None,
        descending: bool = False,
    ) -> List[Dict[str, Any]]:
        await asyncio.sleep(0)
        documents = [copy.deepcopy(doc) for doc in self._collection(collection).values()]
        if order_by:
            # Documents without the field sort first ascending, like MongoDB
            present = [doc for doc in documents if doc.get(order_by) is not None]
            missing = [doc for doc in documents if doc.get(order_by) is None]
            present.sort(key=lambda doc: doc[order_by], reverse=descending)
            documents = present + missing if descending else missing + present
        return documents

    async def find(self, collection: str, **equals: Any) -> List[Dict[str, Any]]:
        await asyncio.sleep(0)
        return [
            copy.deepcopy(doc)
            for doc in self._collection(collection).values()
            if all(doc.get(key) == value for key, value in equals.items())
        ]

    async def insert(self, collection: str, data: Dict[str, Any]) -> str:
        doc_id = new_id()
        async with self._lock:
            self._collection(collection)[doc_id] = self._new_document(doc_id, data)
        self._changed({collection})
        return doc_id

    async def update(self, collection: str, doc_id: str, fields: Dict[str, Any]) -> bool:
        async with self._lock:
            document = self._collection(collection).get(doc_id)
            if document is None:
                return False
            document.update(copy.deepcopy(fields))
            document[REVISION_FIELD] = document.get(REVISION_FIELD, 0) + 1
        self._changed({collection})
        return True

    async def delete(self, collection: str, doc_id: str) -> bool:
        async with self._lock:
            removed = self._collection(collection).pop(doc_id, None)
        if removed is None:
            return False
        self._changed({collection})
        return True

    async def append(
        self,
        collection: str,
        doc_id: str,
        array_field: str,
        item: Dict[str, Any],
        fields: Optional[Dict[str, Any]] = None,
    ) -> bool:
        async with self._lock:
            document = self._collection(collection).get(doc_id)
            if document is None:
                return False
            items = document.get(array_field)
            if items is None:
                items = document[array_field] = []
            items.append(copy.deepcopy(item))
            document.update(copy.deepcopy(fields or {}))
            document[REVISION_FIELD] = document.get(REVISION_FIELD, 0) + 1
        self._changed({collection})
        return True

    async def _commit(self, transaction: Transaction) -> None:
        async with self._lock:
            for (collection, doc_id), revision in transaction.reads.items():
                current_revision = revision_of(self._collection(collection).get(doc_id))
                if current_revision != revision:
                    raise TransactionConflict(
                        f"{collection}/{doc_id} changed (revision {revision} -> {current_revision})"
                    )

            for write in transaction.writes:
                if write.op != "insert" and write.doc_id not in self._collection(write.collection):
                    raise TransactionConflict(f"{write.collection}/{write.doc_id} no longer exists")

            for write in transaction.writes:
                documents = self._collection(write.collection)
                if write.op == "insert":
                    documents[write.doc_id] = self._new_document(write.doc_id, write.data)
                elif write.op == "update":
                    document = documents[write.doc_id]
                    document.update(copy.deepcopy(write.data))
                    document[REVISION_FIELD] = document.get(REVISION_FIELD, 0) + 1
                elif write.op == "delete":
                    del documents[write.doc_id]

    def _new_document(self, doc_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
        document = copy.deepcopy(data)
        document["_id"] = doc_id
        document[REVISION_FIELD] = 1
        return document

    async def seed(self, collection: str, document: Dict[str, Any]) -> str:
        document = copy.deepcopy(document)
        doc_id = str(document.setdefault("_id", new_id()))
        document["_id"] = doc_id
        async with self._lock:
            self._collection(collection)[doc_id] = document
        self._changed({collection})
        return doc_id
