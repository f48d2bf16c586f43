#!/usr/bin/env python3
"""
engine.py: Batch processing engine for image marketing metadata.

Provides BatchEngine, the boundary the presentation layer talks to: it
normalizes submitted images into pending items, drives bounded-concurrency
analysis through an AsyncWorkerPool, and keeps the per-item keyword selection.
Optional callbacks can be attached to observe rejections and item updates.
"""

import asyncio
import uuid
from typing import Callable, Dict, FrozenSet, List, Optional, Sequence, Tuple

from .batch_store import BatchItemStore
from .config import EngineConfig
from .errors import IntakeError
from .image_encoder import NormalizedImage, RawImage, normalize_capture, normalize_image
from .keywords import KeywordSelection, combined_keywords, format_keywords
from .models import BatchItem, ItemStatus
from .workers import AnalysisProvider, AsyncWorkerPool
from ..utils.log_utils import get_logger

logger = get_logger(__name__)


def new_item_id() -> str:
    return uuid.uuid4().hex


class BatchEngine:
    """
    Core engine: intake, scheduling and keyword selection for one batch.
    """

    def __init__(self, provider: AnalysisProvider, config: Optional[EngineConfig] = None):
        self.config = config or EngineConfig()
        self.store = BatchItemStore()
        self.selection = KeywordSelection()
        self.pool = AsyncWorkerPool(self.store, provider, self.config.concurrency_limit)
        # on_rejected(image, error) for inputs that did not become items
        self.on_rejected: Optional[Callable[[RawImage, IntakeError], None]] = None
        # on_item_changed(item) after every status transition
        self.on_item_changed: Optional[Callable[[BatchItem], None]] = None
        self.store.on_change = self._item_changed

    @property
    def processing_all(self) -> bool:
        return self.pool.running

    def _item_changed(self, item: BatchItem) -> None:
        if self.on_item_changed:
            self.on_item_changed(item)

    # Intake

    def _normalize(self, image: RawImage) -> NormalizedImage:
        return normalize_image(
            image,
            quality=self.config.batch_quality,
            max_dimension=self.config.max_dimension,
            preview_size=self.config.preview_size,
        )

    async def submit(self, images: Sequence[RawImage]) -> List[str]:
        """
        Normalize images concurrently and add the accepted ones as pending items.

        Accepted items are prepended in submission order as one atomic insert.
        Rejected inputs (non-image or undecodable) create no item and are
        reported through ``on_rejected``.

        Returns:
            Ids of the created items, in submission order.
        """
        if not images:
            return []
        loop = asyncio.get_running_loop()
        outcomes = await asyncio.gather(
            *(loop.run_in_executor(None, self._normalize, image) for image in images),
            return_exceptions=True,
        )

        unexpected = next(
            (o for o in outcomes if isinstance(o, BaseException) and not isinstance(o, IntakeError)),
            None,
        )
        if unexpected is not None:
            for outcome in outcomes:
                if isinstance(outcome, NormalizedImage):
                    outcome.preview.release()
            raise unexpected

        entries: List[Tuple[BatchItem, bytes]] = []
        for image, outcome in zip(images, outcomes):
            if isinstance(outcome, IntakeError):
                logger.warning("Rejected %s: %s", image.name or "input", outcome)
                if self.on_rejected:
                    self.on_rejected(image, outcome)
                continue
            entries.append((BatchItem(id=new_item_id(), preview=outcome.preview, name=image.name), outcome.payload))

        ids = self.store.prepend(entries)
        logger.info("Added %d of %d submitted image(s)", len(ids), len(images))
        return ids

    async def submit_capture(self, frame: bytes, name: str = "capture.jpg") -> str:
        """Add a single live-capture frame as a pending item."""
        loop = asyncio.get_running_loop()
        normalized = await loop.run_in_executor(
            None,
            normalize_capture,
            frame,
            self.config.capture_quality,
            self.config.max_dimension,
            self.config.preview_size,
        )
        item = BatchItem(id=new_item_id(), preview=normalized.preview, name=name)
        self.store.prepend([(item, normalized.payload)])
        return item.id

    # Analysis

    async def analyze_one(self, item_id: str) -> None:
        """(Re-)analyze one pending or errored item."""
        await self.pool.analyze_one(item_id)

    async def process_all(self) -> bool:
        """Analyze every eligible item with bounded concurrency; see AsyncWorkerPool.analyze_all."""
        return await self.pool.analyze_all()

    # Removal

    def remove(self, item_id: str) -> None:
        """Remove an item with its payload, preview and keyword selection."""
        if self.store.remove(item_id):
            self.selection.discard(item_id)

    def clear_all(self) -> None:
        self.store.clear()
        self.selection.clear()

    # Keyword selection

    def _known_words(self, item_id: str) -> Optional[FrozenSet[str]]:
        item = self.store.get(item_id)
        if item is None:
            logger.debug("Ignoring keyword selection for unknown item %s", item_id)
            return None
        if item.result is None:
            return frozenset()
        return frozenset(item.result.keyword_words)

    def toggle_keyword(self, item_id: str, word: str) -> None:
        known = self._known_words(item_id)
        if known is None:
            return
        if word not in known:
            logger.warning("Keyword %r is not part of the result for %s", word, item_id)
            return
        self.selection.toggle(item_id, word)

    def select_all(self, item_id: str, words: Sequence[str]) -> None:
        """Replace the item's selection with ``words`` (typically a filtered view)."""
        known = self._known_words(item_id)
        if known is None:
            return
        unknown = [w for w in words if w not in known]
        if unknown:
            logger.warning("Ignoring %d keyword(s) not in the result for %s", len(unknown), item_id)
        self.selection.select_all(item_id, (w for w in words if w in known))

    def selected_keywords(self, item_id: str) -> FrozenSet[str]:
        return self.selection.selected(item_id)

    def copy_text(self, item_id: str) -> str:
        """Selected keywords for the item, or all of its keywords if none are selected."""
        item = self.store.get(item_id)
        if item is None or item.result is None:
            return ""
        selected = self.selection.selected(item_id)
        if selected:
            # keep provider order for a stable clipboard string
            return format_keywords(w for w in item.result.keyword_words if w in selected)
        return format_keywords(item.result.keyword_words)

    def combined_keywords(self) -> List[str]:
        return combined_keywords(self.store.snapshot())

    # Views

    def snapshot(self) -> Tuple[BatchItem, ...]:
        return self.store.snapshot()

    def stats(self) -> Dict[str, float]:
        """Counts per status, total, and completed percentage."""
        items = self.store.snapshot()
        counts: Dict[str, float] = {status.value: 0 for status in ItemStatus}
        for item in items:
            counts[item.status.value] += 1
        counts["total"] = len(items)
        counts["progress"] = (counts[ItemStatus.COMPLETED.value] / len(items) * 100) if items else 0.0
        return counts
