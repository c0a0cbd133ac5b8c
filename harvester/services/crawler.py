from dataclasses import dataclass, field
from enum import Enum
import asyncio
import logging
import math
import time
from typing import Any, Awaitable, Callable, Optional

from harvester.providers.base import FetchError, PriceHistoryProvider
from harvester.services.aggregation import weighted_average_summary
from harvester.services.storage import CheckpointStore, ResultStore

logger = logging.getLogger(__name__)


class EmptyCatalogError(ValueError):
    pass


class StopReason(str, Enum):
    EXHAUSTED = "exhausted"
    BUDGET = "budget"
    THROTTLED = "throttled"


@dataclass
class CrawlState:
    cursor: int
    started_at: float
    throttled: bool = False
    results: dict[str, Any] = field(default_factory=dict)
    processed: int = 0
    stop_reason: Optional[StopReason] = None


class CrawlScheduler:
    """Walks the catalog from the saved cursor in rate-limited batches.

    Every batch is fetched concurrently and fully joined before its checkpoint
    is written. The time budget and the throttling flag are only checked between
    batches. Whatever summaries were gathered are merged into the result store
    however the run ends.
    """

    def __init__(
        self,
        provider: PriceHistoryProvider,
        checkpoints: CheckpointStore,
        results: ResultStore,
        batch_size: int = 1,
        requests_per_minute: float = 20,
        max_duration_seconds: float = 3600 * 5.9,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        if requests_per_minute <= 0:
            raise ValueError("requests_per_minute must be positive")
        self.provider = provider
        self.checkpoints = checkpoints
        self.results = results
        self.batch_size = batch_size
        self.requests_per_minute = requests_per_minute
        self.max_duration_seconds = max_duration_seconds
        self.clock = clock
        self.sleep = sleep

    @property
    def delay_per_batch(self) -> float:
        return (60 / self.requests_per_minute) * self.batch_size

    async def _process_item(self, name: str, state: CrawlState) -> None:
        try:
            fetched = await self.provider.fetch_history(name)
        except FetchError as exc:
            logger.warning("Error processing %s: %s", name, exc)
            return

        if fetched.throttled:
            state.throttled = True
            return
        if not fetched.series:
            return

        state.results[name] = {"steam": weighted_average_summary(fetched.series, fetched.last_ever).model_dump()}
        try:
            await asyncio.to_thread(self.results.save_raw_series, name, fetched.series)
        except OSError as exc:
            logger.warning("Error writing history for %s: %s", name, exc)

    async def _process_batch(self, batch: list[str], state: CrawlState) -> None:
        await asyncio.gather(*(self._process_item(name, state) for name in batch))

    def _checkpoint(self, state: CrawlState, cursor: int) -> None:
        state.cursor = cursor
        self.checkpoints.save(cursor)

    async def run(self, items: list[str], started_at: Optional[float] = None) -> CrawlState:
        if not items:
            raise EmptyCatalogError("cannot crawl an empty catalog")

        state = CrawlState(
            cursor=self.checkpoints.load(),
            started_at=self.clock() if started_at is None else started_at,
        )
        start_index = state.cursor % len(items)
        work = items[start_index:]
        total_batches = math.ceil(len(work) / self.batch_size)
        logger.info("Processing %s items from index %s.", len(work), start_index)

        try:
            for offset in range(0, len(work), self.batch_size):
                if self.clock() - state.started_at >= self.max_duration_seconds:
                    logger.info("Max duration reached. Stopping the process.")
                    self._checkpoint(state, start_index + offset)
                    state.stop_reason = StopReason.BUDGET
                    break

                batch = work[offset:offset + self.batch_size]
                await self._process_batch(batch, state)
                state.processed += len(batch)
                self._checkpoint(state, start_index + offset + len(batch))

                if state.throttled:
                    logger.error("Rate limited by upstream. Stopping the process.")
                    state.stop_reason = StopReason.THROTTLED
                    break

                logger.info("Processed batch %s/%s", offset // self.batch_size + 1, total_batches)

                if offset + self.batch_size < len(work):
                    logger.info("Waiting for %s seconds to respect rate limit...", self.delay_per_batch)
                    await self.sleep(self.delay_per_batch)
            else:
                state.stop_reason = StopReason.EXHAUSTED
        finally:
            merged = self.results.merge_and_save(state.results)
            logger.info("Saved %s new summaries (%s total).", len(state.results), len(merged))

        return state
