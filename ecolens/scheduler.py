from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Awaitable, Callable, Optional, Set

from .errors import ResizeError
from .results import EncodedPayload
from .settings import ResizeOptions


log = logging.getLogger(__name__)

# Quiet period after the last change before we re-render.
RESIZE_DEBOUNCE_SECONDS = 0.4


class SchedulerState(str, Enum):
    IDLE = "idle"
    PENDING = "pending"
    RUNNING = "running"


class ResizeScheduler:
    """
    Coalesces bursts of option changes into a single pipeline run.

    Every request() bumps a generation counter and restarts the quiet-period
    timer. When the timer fires the pipeline runs with the options of that
    request. A run that finishes after a newer request was made is stale:
    its result (or error) is dropped, so the newest request always wins no
    matter which run completes first.

    Runs cannot be interrupted once started, only ignored.

    Must be used from inside a running asyncio event loop.
    """

    def __init__(
        self,
        run: Callable[[ResizeOptions], Awaitable[EncodedPayload]],
        on_result: Callable[[EncodedPayload], None],
        on_error: Optional[Callable[[ResizeError], None]] = None,
        on_busy: Optional[Callable[[bool], None]] = None,
        delay: float = RESIZE_DEBOUNCE_SECONDS,
    ) -> None:
        self._run = run
        self._on_result = on_result
        self._on_error = on_error
        self._on_busy = on_busy
        self.delay = delay

        self._generation = 0
        self._timer: Optional[asyncio.TimerHandle] = None
        self._tasks: Set[asyncio.Task] = set()
        self._busy = False
        self._idle = asyncio.Event()
        self._idle.set()

    # ---------------- state ----------------
    @property
    def generation(self) -> int:
        return self._generation

    @property
    def state(self) -> SchedulerState:
        if self._timer is not None:
            return SchedulerState.PENDING
        if self._tasks:
            return SchedulerState.RUNNING
        return SchedulerState.IDLE

    @property
    def busy(self) -> bool:
        return self.state is not SchedulerState.IDLE

    # ---------------- control ----------------
    def request(self, options: ResizeOptions) -> int:
        """Schedule a run for options, replacing any pending one. Returns its generation."""
        loop = asyncio.get_running_loop()

        self._cancel_timer()
        self._generation += 1
        gen = self._generation

        self._timer = loop.call_later(self.delay, self._fire, gen, options)
        log.debug("resize #%d scheduled in %.3fs", gen, self.delay)
        self._update_busy()
        return gen

    def cancel(self) -> None:
        """Drop the pending run and invalidate whatever is in flight."""
        self._cancel_timer()
        self._generation += 1
        self._update_busy()

    async def wait_idle(self) -> None:
        """Resolve once nothing is pending or running."""
        while not self._idle.is_set():
            await self._idle.wait()

    # ---------------- internals ----------------
    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _fire(self, gen: int, options: ResizeOptions) -> None:
        self._timer = None
        task = asyncio.get_running_loop().create_task(self._execute(gen, options))
        self._tasks.add(task)
        task.add_done_callback(self._task_done)
        self._update_busy()

    async def _execute(self, gen: int, options: ResizeOptions) -> None:
        try:
            payload = await self._run(options)
        except ResizeError as ex:
            if gen != self._generation:
                log.debug("resize #%d failed but was superseded: %s", gen, ex)
                return
            log.warning("resize #%d failed: %s", gen, ex)
            if self._on_error:
                self._on_error(ex)
            return

        if gen != self._generation:
            log.debug("resize #%d finished but #%d is current, dropping", gen, self._generation)
            return

        self._on_result(payload)

    def _task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            log.error("resize run crashed", exc_info=task.exception())
        self._update_busy()

    def _update_busy(self) -> None:
        busy = self.busy
        if busy:
            self._idle.clear()
        else:
            self._idle.set()

        if busy != self._busy:
            self._busy = busy
            if self._on_busy:
                self._on_busy(busy)
