"""Tests for the debounced resize scheduler."""

import asyncio

import pytest

from ecolens.errors import DecodeError
from ecolens.results import EncodedPayload
from ecolens.scheduler import RESIZE_DEBOUNCE_SECONDS, ResizeScheduler, SchedulerState
from ecolens.settings import OutputFormat, ResizeOptions


DELAY = 0.02


def _payload_for(options: ResizeOptions) -> EncodedPayload:
    return EncodedPayload(
        data=b"x" * options.width,
        format=options.format,
        quality=options.quality,
        width=options.width,
        height=options.height,
    )


class Recorder:
    def __init__(self):
        self.runs = []
        self.results = []
        self.errors = []
        self.busy = []

    async def run(self, options):
        self.runs.append(options)
        return _payload_for(options)


def _make(rec: Recorder, run=None, delay=DELAY) -> ResizeScheduler:
    return ResizeScheduler(
        run=run or rec.run,
        on_result=rec.results.append,
        on_error=rec.errors.append,
        on_busy=rec.busy.append,
        delay=delay,
    )


def test_default_quiescence_delay():
    assert RESIZE_DEBOUNCE_SECONDS == 0.4


@pytest.mark.asyncio
async def test_single_request_runs_after_delay():
    rec = Recorder()
    sched = _make(rec)

    sched.request(ResizeOptions(width=10, height=10))
    assert sched.state is SchedulerState.PENDING
    assert sched.busy
    assert rec.runs == []

    await sched.wait_idle()

    assert len(rec.runs) == 1
    assert rec.results[0].width == 10
    assert sched.state is SchedulerState.IDLE
    assert rec.busy == [True, False]


@pytest.mark.asyncio
async def test_rapid_changes_coalesce_into_one_run():
    rec = Recorder()
    sched = _make(rec)

    sched.request(ResizeOptions(width=10, height=10))
    await asyncio.sleep(DELAY / 4)
    sched.request(ResizeOptions(width=20, height=20))
    sched.request(ResizeOptions(width=30, height=30, format=OutputFormat.PNG))

    await sched.wait_idle()

    assert len(rec.runs) == 1
    assert rec.runs[0].width == 30
    assert rec.runs[0].format is OutputFormat.PNG
    assert [p.width for p in rec.results] == [30]


@pytest.mark.asyncio
async def test_generation_increases_per_request():
    rec = Recorder()
    sched = _make(rec)

    g1 = sched.request(ResizeOptions(width=1, height=1))
    g2 = sched.request(ResizeOptions(width=2, height=2))

    assert g2 == g1 + 1 == sched.generation
    await sched.wait_idle()


@pytest.mark.asyncio
async def test_stale_result_is_discarded():
    rec = Recorder()
    release_first = asyncio.Event()
    started = asyncio.Event()

    async def run(options):
        rec.runs.append(options)
        if options.width == 1:
            started.set()
            await release_first.wait()
        return _payload_for(options)

    sched = _make(rec, run=run)

    sched.request(ResizeOptions(width=1, height=1))
    await started.wait()
    assert sched.state is SchedulerState.RUNNING

    # newer request while the first run is in flight
    sched.request(ResizeOptions(width=2, height=2))
    assert sched.state is SchedulerState.PENDING

    # let the second finish first, then release the stale one
    while len(rec.results) < 1:
        await asyncio.sleep(DELAY / 4)
    release_first.set()
    await sched.wait_idle()

    assert [o.width for o in rec.runs] == [1, 2]
    assert [p.width for p in rec.results] == [2]


@pytest.mark.asyncio
async def test_stale_result_dropped_when_it_finishes_first():
    rec = Recorder()
    release_first = asyncio.Event()
    started = asyncio.Event()

    async def run(options):
        rec.runs.append(options)
        if options.width == 1:
            started.set()
            await release_first.wait()
        else:
            await asyncio.sleep(DELAY * 5)
        return _payload_for(options)

    sched = _make(rec, run=run)

    sched.request(ResizeOptions(width=1, height=1))
    await started.wait()
    sched.request(ResizeOptions(width=2, height=2))

    # the old run completes before the new one
    release_first.set()
    await sched.wait_idle()

    assert [p.width for p in rec.results] == [2]


@pytest.mark.asyncio
async def test_errors_are_reported_for_current_run():
    rec = Recorder()

    async def run(options):
        raise DecodeError("bad")

    sched = _make(rec, run=run)
    sched.request(ResizeOptions(width=5, height=5))
    await sched.wait_idle()

    assert rec.results == []
    assert len(rec.errors) == 1
    assert isinstance(rec.errors[0], DecodeError)
    assert sched.state is SchedulerState.IDLE


@pytest.mark.asyncio
async def test_cancel_drops_pending_run():
    rec = Recorder()
    sched = _make(rec)

    sched.request(ResizeOptions(width=5, height=5))
    sched.cancel()
    assert sched.state is SchedulerState.IDLE

    await asyncio.sleep(DELAY * 3)
    await sched.wait_idle()

    assert rec.runs == []
    assert rec.busy == [True, False]


def test_request_requires_running_loop():
    rec = Recorder()
    sched = _make(rec)

    with pytest.raises(RuntimeError):
        sched.request(ResizeOptions(width=1, height=1))
