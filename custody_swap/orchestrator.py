"""
Batch orchestrator.

Runs `iterations` batches of `batch_size` strictly sequential swaps, pausing
between iterations. A failed swap is logged and recorded, then the next swap
starts; nothing short of cancellation stops the run. Latency percentiles
are cumulative over every successful swap so far.
"""

import asyncio
import logging
import time
from enum import Enum
from typing import Awaitable, Callable, List, Optional

from .events import EventKind, EventSink, NullEventSink
from .models import SwapOutcome, SwapRequest
from .stats import LatencyTracker, Percentiles, RunSummary

logger = logging.getLogger(__name__)

SwapRunner = Callable[[SwapRequest], Awaitable[SwapOutcome]]
RequestFactory = Callable[[], SwapRequest]


class RunState(str, Enum):
    IDLE = "idle"
    ITERATING = "iterating"
    COMPLETED = "completed"


class BatchOrchestrator:

    def __init__(
        self,
        run_swap: SwapRunner,
        request_factory: RequestFactory,
        iterations: int = 10,
        batch_size: int = 3,
        delay_seconds: float = 1.0,
        tracker: Optional[LatencyTracker] = None,
        events: Optional[EventSink] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        if iterations < 1 or batch_size < 1:
            raise ValueError("iterations and batch_size must be >= 1")

        self.run_swap = run_swap
        self.request_factory = request_factory
        self.iterations = iterations
        self.batch_size = batch_size
        self.delay_seconds = delay_seconds
        self.tracker = tracker or LatencyTracker()
        self.events = events or NullEventSink()
        self._sleep = sleep
        self._clock = clock

        self.state = RunState.IDLE
        self.iterations_completed = 0
        self.failures = 0

    def _elapsed_ms(self, started: float) -> int:
        return int((self._clock() - started) * 1000)

    async def run_one(self) -> Optional[int]:
        """Run a single swap; returns its duration, or None if it failed."""
        request = self.request_factory()
        started = self._clock()
        await self.events.emit(EventKind.SWAP_STARTED, "Started individual swap")

        try:
            outcome = await self.run_swap(request)
        except Exception as e:
            duration = self._elapsed_ms(started)
            self.failures += 1
            logger.error(f"Swap failed after {duration}ms: {e}")
            await self.events.emit(
                EventKind.SWAP_FAILED,
                f"Error in individual swap: {e} (duration: {duration}ms)",
            )
            return None

        duration = self._elapsed_ms(started)
        outcome.duration_ms = duration
        self.tracker.record(duration)
        await self.events.emit(
            EventKind.SWAP_COMPLETED,
            f"Completed individual swap (tx-id: {outcome.submission.transaction_id}, "
            f"via: {outcome.broadcast_via}, duration: {duration}ms)",
        )
        return duration

    async def run_batch(self) -> List[Optional[int]]:
        started = self._clock()
        durations = [await self.run_one() for _ in range(self.batch_size)]

        elapsed = self._elapsed_ms(started)
        shown = ", ".join("failed" if d is None else f"{d}ms" for d in durations)
        logger.info(f"Batch completed in {elapsed}ms (individual durations: {shown})")
        await self.events.emit(
            EventKind.BATCH_COMPLETED,
            f"Batch completed in {elapsed}ms (individual durations: {shown})",
        )

        p = self.tracker.percentiles()
        snapshot = (
            f"Current percentiles ({self.tracker.count} swaps): "
            f"p50={p.p50}ms, p90={p.p90}ms, p99={p.p99}ms"
        )
        logger.info(snapshot)
        await self.events.emit(EventKind.PERCENTILES, snapshot)
        return durations

    async def run(self) -> RunSummary:
        if self.state is not RunState.IDLE:
            raise RuntimeError(f"Orchestrator already {self.state.value}")

        self.state = RunState.ITERATING
        logger.info(
            f"Starting {self.iterations} iterations of {self.batch_size} sequential swaps "
            f"(sleep {self.delay_seconds}s between iterations)"
        )
        await self.events.emit(
            EventKind.RUN_STARTED,
            f"iterations={self.iterations}, batch_size={self.batch_size}",
        )

        for i in range(1, self.iterations + 1):
            logger.info(f"Swap Iteration {i}/{self.iterations}")
            await self.events.emit(EventKind.ITERATION_STARTED, f"=== Swap Iteration {i}/{self.iterations} ===")

            await self.run_batch()
            self.iterations_completed = i

            if i < self.iterations:
                await self.events.emit(EventKind.SLEEPING, f"Sleeping for {self.delay_seconds} seconds")
                await self._sleep(self.delay_seconds)

        summary = self.tracker.summary()
        self.state = RunState.COMPLETED

        logger.info(f"=== FINAL STATISTICS ===\n{summary.format()}\nFailed swaps: {self.failures}")
        await self.events.emit(
            EventKind.RUN_COMPLETED,
            f"FINAL STATISTICS: {summary.format()}, Failed swaps: {self.failures}",
        )
        return summary

    @property
    def percentiles(self) -> Percentiles:
        return self.tracker.percentiles()


__all__ = ["BatchOrchestrator", "RunState", "SwapRunner", "RequestFactory"]
