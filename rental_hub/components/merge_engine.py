"""
Upsert/merge engine.

Merges normalised listings into the store: inserts unseen listings with a
seeded price history, refreshes known ones, appends to the history only on
a genuine price change, and hands price changes to the dispatcher once the
write has committed.
"""

import asyncio
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Callable, Dict, Hashable, Optional, Tuple

from ..interfaces import IPriceChangeDispatcher
from ..models.listing import Listing, UpsertResult
from ..services.listing_store import ListingStore
from ..utils.error_handling import (
    ErrorCategory,
    ErrorSeverity,
    PersistenceConflict,
    get_error_tracker,
)
from ..utils.logging import get_logger


class KeyedLock:
    """One asyncio.Lock per key, dropped once nobody holds or awaits it."""

    def __init__(self):
        self._locks: Dict[Hashable, Tuple[asyncio.Lock, int]] = {}

    @asynccontextmanager
    async def hold(self, key: Hashable):
        lock, waiters = self._locks.get(key, (None, 0))
        if lock is None:
            lock = asyncio.Lock()
        self._locks[key] = (lock, waiters + 1)
        try:
            async with lock:
                yield
        finally:
            lock, waiters = self._locks[key]
            if waiters <= 1:
                del self._locks[key]
            else:
                self._locks[key] = (lock, waiters - 1)

    def __len__(self) -> int:
        return len(self._locks)


class MergeEngine:
    """Single writer per (source, source_id) over the listing store."""

    def __init__(
        self,
        store: ListingStore,
        dispatcher: Optional[IPriceChangeDispatcher] = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.store = store
        self.dispatcher = dispatcher
        self.clock = clock
        self.locks = KeyedLock()
        self.logger = get_logger("merge.engine")

    async def upsert(self, listing: Listing) -> UpsertResult:
        """
        Insert or refresh one listing.

        Repeating the same input leaves the store unchanged apart from the
        last-seen time. Dispatcher failures are logged and never undo the
        write.
        """
        listing.validate()

        async with self.locks.hold(listing.key):
            result = self._write(listing)

        if result.price_changed:
            await self._dispatch(listing, result)

        return result

    def _write(self, listing: Listing) -> UpsertResult:
        now = self.clock()
        existing = self.store.find_by_key(listing.source, listing.source_id)

        if existing is None:
            try:
                created = self.store.insert_listing(listing, now)
                self.logger.info(
                    "Inserted new listing",
                    {"listing_id": created.id, "source": listing.source, "source_id": listing.source_id},
                )
                return UpsertResult(listing_id=created.id, is_new=True, price_changed=False, new_price=listing.price)
            except PersistenceConflict:
                # another writer inserted the same key first
                self.logger.info(
                    "Insert raced with another writer, retrying as update",
                    {"source": listing.source, "source_id": listing.source_id},
                )
                existing = self.store.find_by_key(listing.source, listing.source_id)
                if existing is None:
                    raise

        old_price = self.store.latest_price(existing.id)
        price_changed = old_price is not None and old_price != listing.price
        append_price = listing.price if (price_changed or old_price is None) else None

        self.store.update_listing(existing.id, listing, now, append_price=append_price)

        if price_changed:
            self.logger.info(
                "Listing price changed",
                {"listing_id": existing.id, "old_price": old_price, "new_price": listing.price},
            )

        return UpsertResult(
            listing_id=existing.id,
            is_new=False,
            price_changed=price_changed,
            old_price=old_price,
            new_price=listing.price,
        )

    async def _dispatch(self, listing: Listing, result: UpsertResult):
        if self.dispatcher is None:
            return

        listing.id = result.listing_id
        try:
            fan_out = await self.dispatcher.notify_price_change(listing, result.old_price, result.new_price)
            self.logger.info(
                "Price change dispatched",
                {"listing_id": result.listing_id, "recipients": fan_out.recipients, "failed": fan_out.failed},
            )
        except Exception as e:
            get_error_tracker().record_error(
                component="merge.engine",
                category=ErrorCategory.NOTIFICATION,
                severity=ErrorSeverity.LOW,
                message=f"Price change dispatch failed for listing {result.listing_id}: {e}",
                exception=e,
                context={"listing_id": result.listing_id},
            )
