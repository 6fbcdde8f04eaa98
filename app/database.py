"""Document store connection manager."""

from motor.motor_asyncio import AsyncIOMotorClient
from typing import Optional

from app.config import settings
from app.core.logging import logger
from app.store import DocumentStore, InMemoryDocumentStore, MongoDocumentStore


class Database:
    """Holds the process-wide document store."""

    store: Optional[DocumentStore] = None

    @classmethod
    async def connect_db(cls):
        """Create the configured store and prepare its collections."""
        if settings.STORE_BACKEND == "memory":
            cls.store = InMemoryDocumentStore()
            logger.info("Using in-memory document store")
            return

        client = AsyncIOMotorClient(settings.MONGODB_URL, uuidRepresentation="standard")
        store = MongoDocumentStore(
            client,
            settings.DATABASE_NAME,
            use_transactions=settings.MONGODB_TRANSACTIONS,
        )

        from app.features.wards.models import WARD_COLLECTION, WARD_INDEXES
        from app.features.patients.models import PATIENT_COLLECTION, PATIENT_INDEXES

        await store.create_indexes(WARD_COLLECTION, WARD_INDEXES)
        await store.create_indexes(PATIENT_COLLECTION, PATIENT_INDEXES)

        await store.start()
        cls.store = store

        logger.info(
            f"Connected to MongoDB database: {settings.DATABASE_NAME} "
            f"(transactions={'on' if settings.MONGODB_TRANSACTIONS else 'off'})"
        )

    @classmethod
    async def close_db(cls):
        """Close the store."""
        if cls.store:
            await cls.store.close()
            cls.store = None
            logger.info("Closed document store")


def get_store() -> DocumentStore:
    """Return the connected store."""
    if Database.store is None:
        raise RuntimeError("Database is not connected")
    return Database.store
