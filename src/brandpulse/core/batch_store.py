"""
batch_store.py - authoritative, address-by-id collection of batch items.

The store is the only component that writes item status, result or error.
Every mutation runs under one lock and replaces the frozen BatchItem record,
so readers see either the state before a transition or the state after it.

Single-flight: ``begin_processing`` claims an item for analysis and refuses a
second claim until ``complete`` or ``fail`` releases it. Writes addressed to an
id that no longer exists are dropped.
"""

import threading
from dataclasses import replace
from typing import Callable, Dict, Iterable, List, Optional, Set, Tuple

from .models import AnalysisResult, BatchItem, ItemStatus
from ..utils.log_utils import get_logger

logger = get_logger(__name__)


class BatchItemStore:
    """Items in display order (newest first) plus the payload side store."""

    def __init__(self):
        self._lock = threading.RLock()
        self._order: List[str] = []
        self._items: Dict[str, BatchItem] = {}
        self._payloads: Dict[str, bytes] = {}
        self._in_flight: Set[str] = set()
        self.on_change: Optional[Callable[[BatchItem], None]] = None

    def __len__(self) -> int:
        with self._lock:
            return len(self._order)

    def __contains__(self, item_id: str) -> bool:
        with self._lock:
            return item_id in self._items

    def get(self, item_id: str) -> Optional[BatchItem]:
        with self._lock:
            return self._items.get(item_id)

    def payload(self, item_id: str) -> Optional[bytes]:
        with self._lock:
            return self._payloads.get(item_id)

    def snapshot(self) -> Tuple[BatchItem, ...]:
        """Point-in-time copy of all items, newest first."""
        with self._lock:
            return tuple(self._items[item_id] for item_id in self._order)

    def eligible_ids(self) -> List[str]:
        """Ids of pending/error items that are not currently claimed, in display order."""
        with self._lock:
            return [
                item_id for item_id in self._order
                if self._items[item_id].status.eligible and item_id not in self._in_flight
            ]

    def prepend(self, entries: Iterable[Tuple[BatchItem, bytes]]) -> List[str]:
        """Insert new items ahead of existing ones as one atomic batch, keeping their order."""
        entries = list(entries)
        with self._lock:
            for item, _ in entries:
                if item.id in self._items:
                    raise ValueError(f"duplicate item id {item.id}")
            for item, payload in entries:
                self._items[item.id] = item
                self._payloads[item.id] = payload
            ids = [item.id for item, _ in entries]
            self._order[0:0] = ids
        logger.debug("Added %d item(s) to batch", len(ids))
        return ids

    def begin_processing(self, item_id: str) -> bool:
        """
        Claim an item for analysis: status -> processing, previous error cleared.

        Returns False when the item is gone, already claimed, or not eligible
        (completed items are terminal).
        """
        with self._lock:
            item = self._items.get(item_id)
            if item is None:
                logger.debug("Item %s no longer exists; not processing", item_id)
                return False
            if item_id in self._in_flight:
                logger.debug("Item %s already has an analysis in flight", item_id)
                return False
            if not item.status.eligible:
                logger.debug("Item %s is %s; not eligible", item_id, item.status.value)
                return False
            self._in_flight.add(item_id)
            updated = self._write(item, status=ItemStatus.PROCESSING, result=None, error=None)
        self._notify(updated)
        return True

    def complete(self, item_id: str, result: AnalysisResult) -> bool:
        return self._finish(item_id, status=ItemStatus.COMPLETED, result=result, error=None)

    def fail(self, item_id: str, message: str) -> bool:
        return self._finish(item_id, status=ItemStatus.ERROR, result=None, error=message or "Unknown error")

    def remove(self, item_id: str) -> bool:
        """Remove an item, dropping its payload and releasing its preview."""
        with self._lock:
            item = self._items.pop(item_id, None)
            if item is None:
                return False
            self._order.remove(item_id)
            self._payloads.pop(item_id, None)
            self._in_flight.discard(item_id)
        item.preview.release()
        logger.debug("Removed item %s", item_id)
        return True

    def clear(self) -> List[str]:
        """Remove every item; returns the removed ids."""
        with self._lock:
            items = [self._items[item_id] for item_id in self._order]
            self._order.clear()
            self._items.clear()
            self._payloads.clear()
            self._in_flight.clear()
        for item in items:
            item.preview.release()
        logger.debug("Cleared %d item(s)", len(items))
        return [item.id for item in items]

    def _finish(self, item_id: str, **changes) -> bool:
        with self._lock:
            item = self._items.get(item_id)
            if item is None or item_id not in self._in_flight:
                # removed (or cleared) while the provider call was running
                logger.debug("Dropping %s write for removed item %s", changes["status"].value, item_id)
                return False
            self._in_flight.discard(item_id)
            updated = self._write(item, **changes)
        self._notify(updated)
        return True

    def _write(self, item: BatchItem, **changes) -> BatchItem:
        updated = replace(item, **changes)
        self._items[item.id] = updated
        logger.debug("Item %s: %s -> %s", item.id, item.status.value, updated.status.value)
        return updated

    def _notify(self, item: BatchItem) -> None:
        if self.on_change:
            self.on_change(item)
