import asyncio
from itertools import count

import pytest

from conftest import POOL, SOL_MINT, RecordingEventSink
from custody_swap.exceptions import NetworkError
from custody_swap.models import SubmissionResult, SwapOutcome, SwapRequest
from custody_swap.orchestrator import BatchOrchestrator, RunState


def _request():
    return SwapRequest(
        pool_address=POOL,
        input_mint=SOL_MINT,
        input_amount=1000,
        fee_payer=POOL,
    )


class FakeClock:
    """Advances 0.125s on every read."""

    def __init__(self):
        self._ticks = count()

    def __call__(self):
        return next(self._ticks) * 0.125


class ScriptedSwaps:
    def __init__(self, fail_on=()):
        self.fail_on = set(fail_on)
        self.calls = 0
        self.active = 0
        self.max_active = 0

    async def __call__(self, request):
        self.calls += 1
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            await asyncio.sleep(0)
            if self.calls in self.fail_on:
                raise NetworkError("Network error occurred: connection reset")
            return SwapOutcome(request=request, submission=SubmissionResult(transaction_id=f"tx-{self.calls}"))
        finally:
            self.active -= 1


class RecordingSleep:
    def __init__(self):
        self.calls = []

    async def __call__(self, seconds):
        self.calls.append(seconds)


def _orchestrator(swaps, events=None, sleep=None, **kwargs):
    return BatchOrchestrator(
        swaps,
        _request,
        events=events,
        sleep=sleep or RecordingSleep(),
        clock=FakeClock(),
        **kwargs,
    )


def test_full_run_with_one_failure():
    swaps = ScriptedSwaps(fail_on={11})
    events = RecordingEventSink()
    sleep = RecordingSleep()
    orchestrator = _orchestrator(swaps, events=events, sleep=sleep)

    summary = asyncio.run(orchestrator.run())

    assert swaps.calls == 30
    assert summary.count == 29
    assert orchestrator.tracker.count == 29
    assert orchestrator.failures == 1
    assert orchestrator.iterations_completed == 10
    assert orchestrator.state is RunState.COMPLETED
    assert sleep.calls == [1.0] * 9
    assert events.kinds().count("swap_failed") == 1
    assert events.kinds().count("swap_completed") == 29
    assert events.kinds().count("batch_completed") == 10
    assert events.kinds()[-1] == "run_completed"


def test_swaps_never_overlap():
    swaps = ScriptedSwaps()

    asyncio.run(_orchestrator(swaps, iterations=3, batch_size=4).run())

    assert swaps.max_active == 1
    assert swaps.calls == 12


def test_no_sleep_after_last_iteration():
    sleep = RecordingSleep()
    events = RecordingEventSink()

    asyncio.run(_orchestrator(ScriptedSwaps(), events=events, sleep=sleep, iterations=2, batch_size=1).run())

    kinds = events.kinds()
    second_iteration = [i for i, k in enumerate(kinds) if k == "iteration_started"][1]
    assert sleep.calls == [1.0]
    assert kinds.count("sleeping") == 1
    assert kinds.index("sleeping") < second_iteration


def test_single_iteration_never_sleeps():
    sleep = RecordingSleep()

    asyncio.run(_orchestrator(ScriptedSwaps(), sleep=sleep, iterations=1).run())

    assert sleep.calls == []


def test_durations_come_from_the_clock():
    orchestrator = _orchestrator(ScriptedSwaps(), iterations=1, batch_size=2)

    asyncio.run(orchestrator.run())

    # Each swap reads the clock twice, one tick apart.
    assert orchestrator.tracker.samples == [125, 125]


def test_failed_swaps_are_not_sampled():
    orchestrator = _orchestrator(ScriptedSwaps(fail_on={1, 2, 3}), iterations=1)

    summary = asyncio.run(orchestrator.run())

    assert summary.count == 0
    assert summary.p50 == summary.p90 == summary.p99 == 0
    assert orchestrator.failures == 3


def test_run_only_once():
    orchestrator = _orchestrator(ScriptedSwaps(), iterations=1, batch_size=1)
    asyncio.run(orchestrator.run())

    with pytest.raises(RuntimeError):
        asyncio.run(orchestrator.run())


def test_invalid_shape():
    with pytest.raises(ValueError):
        _orchestrator(ScriptedSwaps(), iterations=0)


def test_cancellation_stops_the_run():
    started = asyncio.Event()

    async def slow_swap(request):
        started.set()
        await asyncio.sleep(10)

    async def runner():
        task = asyncio.create_task(_orchestrator(slow_swap).run())
        await started.wait()
        task.cancel()
        await task

    with pytest.raises(asyncio.CancelledError):
        asyncio.run(runner())
