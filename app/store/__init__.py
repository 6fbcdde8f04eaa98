# Document Store

from app.store.base import DocumentStore, Transaction, TransactionConflict, REVISION_FIELD, new_id
from app.store.memory import InMemoryDocumentStore
from app.store.mongo import MongoDocumentStore

__all__ = [
    "DocumentStore",
    "Transaction",
    "TransactionConflict",
    "REVISION_FIELD",
    "new_id",
    "InMemoryDocumentStore",
    "MongoDocumentStore",
]
