import asyncio
import time
from typing import Optional, Protocol

from .batch_store import BatchItemStore
from .config import CONCURRENCY_LIMIT
from .errors import PayloadLostError, ProviderError
from .models import AnalysisResult
from ..utils.log_utils import get_logger

logger = get_logger(__name__)

CANCELLED_MESSAGE = "Analysis cancelled"


class AnalysisProvider(Protocol):
    async def analyze_async(self, payload: bytes) -> AnalysisResult:
        ...


class AsyncWorkerPool:
    """
    Bounded-concurrency scheduler driving provider calls for batch items.

    A batch run snapshots the eligible items into one shared queue and starts
    ``min(max_concurrent, len(queue))`` workers; each worker takes one item at
    a time and runs it to completion before taking the next. Provider failures
    are recorded on the item and never abort sibling work.
    """

    def __init__(
        self,
        store: BatchItemStore,
        provider: AnalysisProvider,
        max_concurrent: int = CONCURRENCY_LIMIT,
    ) -> None:
        if max_concurrent < 1:
            raise ValueError("max_concurrent must be at least 1")
        self.store = store
        self.provider = provider
        self.max_concurrent = max_concurrent
        self._running = False
        self.completed_count = 0
        self.total_count = 0

    @property
    def running(self) -> bool:
        """True while a batch run is in progress."""
        return self._running

    async def analyze_one(self, item_id: str) -> bool:
        """
        Analyze a single item and write the outcome back to the store.

        Does nothing and returns False if the item is gone, already in flight,
        or completed.
        """
        if not self.store.begin_processing(item_id):
            return False

        start_time = time.time()
        try:
            payload = self.store.payload(item_id)
            if payload is None:
                raise PayloadLostError(item_id)
            result = await self.provider.analyze_async(payload)
        except asyncio.CancelledError:
            # release the claim so the item can be re-run
            self.store.fail(item_id, CANCELLED_MESSAGE)
            raise
        except (ProviderError, PayloadLostError) as e:
            logger.warning("Analysis of %s failed: %s", item_id, e)
            self.store.fail(item_id, str(e))
        except Exception as e:
            logger.exception("Unexpected error analyzing %s", item_id)
            self.store.fail(item_id, str(e) or type(e).__name__)
        else:
            self.store.complete(item_id, result)
            logger.debug("Completed %s in %.2fs", item_id, time.time() - start_time)
        return True

    async def analyze_all(self) -> bool:
        """
        Process every pending/error item present when the run starts.

        Returns False without doing anything if a run is already in progress or
        nothing is eligible.
        """
        if self._running:
            logger.warning("Batch run already in progress; ignoring request")
            return False
        ids = self.store.eligible_ids()
        if not ids:
            return False

        self._running = True
        queue: asyncio.Queue = asyncio.Queue()
        for item_id in ids:
            queue.put_nowait(item_id)
        self.completed_count = 0
        self.total_count = len(ids)
        worker_count = min(self.max_concurrent, len(ids))
        logger.info("Starting analysis of %d items with %d workers", len(ids), worker_count)
        try:
            async with asyncio.TaskGroup() as tg:
                for _ in range(worker_count):
                    tg.create_task(self._worker(queue))
        finally:
            self._running = False
        logger.info("Completed analysis of %d/%d items", self.completed_count, self.total_count)
        return True

    async def _worker(self, queue: asyncio.Queue) -> None:
        while True:
            try:
                item_id = queue.get_nowait()
            except asyncio.QueueEmpty:
                return
            if await self.analyze_one(item_id):
                self.completed_count += 1
