"""Live snapshot subscriptions over store collections."""

import inspect
from typing import Any, Awaitable, Callable, List, Optional

from app.core.logging import logger
from app.store.base import DocumentStore


class Subscription:
    """
    Pushes the full current snapshot of a collection to a callback.

    The callback fires once when the subscription starts and again after
    every change to the collection. Each call receives a complete list, never
    a diff. Failures while loading the snapshot or inside the callback are
    logged and the subscription keeps running.
    """

    def __init__(
        self,
        store: DocumentStore,
        collection: str,
        loader: Callable[[], Awaitable[List[Any]]],
        callback: Callable[[List[Any]], Any],
    ):
        self.store = store
        self.collection = collection
        self._loader = loader
        self._callback = callback
        self._remove: Optional[Callable[[], None]] = None
        self.closed = False

    async def start(self) -> "Subscription":
        self._remove = self.store.add_listener(self.collection, self._on_change)
        await self.refresh()
        return self

    async def _on_change(self, collection: str) -> None:
        await self.refresh()

    async def refresh(self) -> None:
        if self.closed:
            return

        try:
            snapshot = await self._loader()
        except Exception as e:
            logger.error(f"Error in {self.collection} subscription: {type(e).__name__}: {e}")
            return

        try:
            result = self._callback(snapshot)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            logger.error(f"{self.collection} subscriber raised {type(e).__name__}: {e}")

    def close(self) -> None:
        self.closed = True
        if self._remove:
            self._remove()
            self._remove = None
