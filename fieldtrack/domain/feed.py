"""
Live snapshot feed for the product and task collections.

A subscriber registers for one collection with a scope (everything for
admins, own records otherwise) and receives the full scoped list once on
subscribe and again after every successful write to that collection.
"""

import asyncio
import itertools
import logging
import threading
from collections.abc import AsyncIterator, Callable
from dataclasses import dataclass
from typing import Optional

from ..errors import FieldTrackError, PersistenceError

logger = logging.getLogger(__name__)

COLLECTIONS = ("products", "tasks")


@dataclass(frozen=True)
class FeedScope:
    """owner_id None means every record in the collection"""

    owner_id: Optional[int] = None

    @classmethod
    def for_actor(cls, actor) -> "FeedScope":
        if getattr(actor, "is_admin", False):
            return cls()
        return cls(owner_id=actor.id)


Loader = Callable[[FeedScope], list]


@dataclass
class _Subscription:
    collection: str
    scope: FeedScope
    on_update: Callable[[list], None]
    on_error: Optional[Callable[[Exception], None]]


class SnapshotFeed:
    def __init__(self, loaders: Optional[dict[str, Loader]] = None):
        self._loaders: dict[str, Loader] = dict(loaders or {})
        self._subscriptions: dict[int, _Subscription] = {}
        self._ids = itertools.count(1)
        self._lock = threading.Lock()

    def register_loader(self, collection: str, loader: Loader) -> None:
        if collection not in COLLECTIONS:
            raise ValueError(f"Unknown collection: {collection}")
        self._loaders[collection] = loader

    @property
    def subscriber_count(self) -> int:
        return len(self._subscriptions)

    def subscribe(
        self,
        collection: str,
        scope: FeedScope,
        on_update: Callable[[list], None],
        on_error: Optional[Callable[[Exception], None]] = None,
    ) -> Callable[[], None]:
        """Register a listener and deliver the current snapshot; returns unsubscribe."""
        if collection not in self._loaders:
            raise ValueError(f"No loader registered for collection: {collection}")

        sub_id = next(self._ids)
        subscription = _Subscription(collection, scope, on_update, on_error)
        with self._lock:
            self._subscriptions[sub_id] = subscription
        logger.debug(f"📡 Subscribed #{sub_id} to {collection} (owner={scope.owner_id})")

        self._deliver(sub_id, subscription, {})

        def unsubscribe() -> None:
            with self._lock:
                removed = self._subscriptions.pop(sub_id, None)
            if removed is not None:
                logger.debug(f"📴 Unsubscribed #{sub_id} from {collection}")

        return unsubscribe

    def publish(self, collection: str) -> None:
        """Push a fresh snapshot to every subscriber of `collection`."""
        with self._lock:
            targets = [
                (sub_id, sub) for sub_id, sub in self._subscriptions.items() if sub.collection == collection
            ]
        # Subscribers sharing a scope share one load
        cache: dict[FeedScope, list] = {}
        for sub_id, subscription in targets:
            self._deliver(sub_id, subscription, cache)

    def _load(self, subscription: _Subscription, cache: dict) -> list:
        if subscription.scope in cache:
            return cache[subscription.scope]
        loader = self._loaders[subscription.collection]
        try:
            snapshot = loader(subscription.scope)
        except FieldTrackError:
            raise
        except Exception as e:
            raise PersistenceError(f"Failed to load {subscription.collection}") from e
        cache[subscription.scope] = snapshot
        return snapshot

    def _deliver(self, sub_id: int, subscription: _Subscription, cache: dict) -> None:
        try:
            snapshot = self._load(subscription, cache)
        except FieldTrackError as e:
            logger.error(f"❌ Snapshot load failed for {subscription.collection}: {e}")
            if subscription.on_error is not None:
                try:
                    subscription.on_error(e)
                except Exception as callback_error:
                    logger.error(f"❌ Error callback #{sub_id} failed: {callback_error}")
            return

        try:
            subscription.on_update(list(snapshot))
        except Exception as e:
            # One broken listener must not starve the others
            logger.error(f"❌ Subscriber #{sub_id} failed on {subscription.collection} update: {e}")

    async def stream(
        self, collection: str, scope: FeedScope, transform: Optional[Callable[[list], object]] = None
    ) -> AsyncIterator:
        """
        Yield snapshots as they are published, starting with the current one.

        `transform` runs at publish time (while the records are still
        loaded) and its result is what gets yielded. Load failures are
        yielded as PersistenceError instances so the consumer can report
        them and keep listening.
        """
        loop = asyncio.get_running_loop()
        queue: asyncio.Queue = asyncio.Queue()

        def on_update(snapshot: list) -> None:
            item = transform(snapshot) if transform else snapshot
            loop.call_soon_threadsafe(queue.put_nowait, item)

        def on_error(error: Exception) -> None:
            loop.call_soon_threadsafe(queue.put_nowait, error)

        unsubscribe = self.subscribe(collection, scope, on_update, on_error)
        try:
            while True:
                yield await queue.get()
        finally:
            unsubscribe()


def session_loader(list_visible: Callable, session_factory) -> Loader:
    """Loader running `list_visible(db, owner_id)` in its own short-lived session."""

    def load(scope: FeedScope) -> list:
        db = session_factory()
        try:
            return list_visible(db, scope.owner_id)
        finally:
            db.close()

    return load


_feed: Optional[SnapshotFeed] = None


def get_feed() -> SnapshotFeed:
    global _feed
    if _feed is None:
        _feed = SnapshotFeed()
    return _feed
