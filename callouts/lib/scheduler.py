"""Schedulers: run a unit of work now or at a later time.

A unit of work is any callable plus its arguments. Dispatchers hand batches
and deferred retries to a scheduler instead of blocking the calling thread.

- ThreadPoolScheduler runs units on a worker pool; delayed units wait on a
  timer, not on a worker.
- ManualScheduler only queues units; tests drive it step by step on a
  virtual clock.
"""

from __future__ import annotations

import heapq
import itertools
import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional, Protocol, Set, Tuple

logger = logging.getLogger(__name__)

__all__ = ["Scheduler", "ThreadPoolScheduler", "ManualScheduler", "ScheduledUnit"]


class Scheduler(Protocol):
    def schedule(self, fn: Callable[..., Any], *args: Any, delay: float = 0.0) -> None:
        ...


class ThreadPoolScheduler:
    """Runs scheduled units on a ThreadPoolExecutor.

    Example:
        scheduler = ThreadPoolScheduler(max_workers=4)
        dispatcher = AsyncDispatcher(wrapper, scheduler)
        dispatcher.submit(items)
        scheduler.shutdown(wait=True)  # waits for remainders and deferred retries too
    """

    def __init__(self, max_workers: int = 4) -> None:
        if max_workers <= 0:
            max_workers = 1
        self.max_workers = max_workers
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="callout-unit"
        )
        self._timers: Set[threading.Timer] = set()
        self._futures: Set[Future] = set()
        self._idle = threading.Condition()
        self._closed = False
        self.failed_units = 0

    def schedule(self, fn: Callable[..., Any], *args: Any, delay: float = 0.0) -> None:
        with self._idle:
            if self._closed:
                raise RuntimeError("Scheduler has been shut down")
            if delay > 0:
                def fire() -> None:
                    self._fire(fn, args, timer)

                timer = threading.Timer(delay, fire)
                timer.daemon = True
                self._timers.add(timer)
                timer.start()
                return
            self._submit_locked(fn, args)

    def _fire(self, fn: Callable[..., Any], args: Tuple[Any, ...], timer: threading.Timer) -> None:
        with self._idle:
            self._timers.discard(timer)
            if self._closed:
                logger.warning("Dropping delayed unit %s: scheduler shut down", _name(fn))
                self._idle.notify_all()
                return
            self._submit_locked(fn, args)

    def _submit_locked(self, fn: Callable[..., Any], args: Tuple[Any, ...]) -> None:
        future = self._executor.submit(fn, *args)
        self._futures.add(future)
        future.add_done_callback(self._on_done)

    def _on_done(self, future: Future) -> None:
        exc = future.exception()
        if exc is not None:
            self.failed_units += 1
            logger.error("Scheduled unit failed: %s", exc, exc_info=exc)
        with self._idle:
            self._futures.discard(future)
            self._idle.notify_all()

    @property
    def pending(self) -> int:
        with self._idle:
            return len(self._timers) + len(self._futures)

    def wait_idle(self, timeout: Optional[float] = None) -> bool:
        """Block until no unit is queued, delayed or running."""
        with self._idle:
            return self._idle.wait_for(
                lambda: not self._timers and not self._futures, timeout=timeout
            )

    def shutdown(self, wait: bool = True) -> None:
        if wait:
            self.wait_idle()
        with self._idle:
            self._closed = True
            for timer in list(self._timers):
                timer.cancel()
            if self._timers:
                logger.warning("Cancelled %d delayed units at shutdown", len(self._timers))
            self._timers.clear()
        self._executor.shutdown(wait=wait)


@dataclass(order=True)
class ScheduledUnit:
    due: float
    seq: int
    fn: Callable[..., Any] = field(compare=False)
    args: Tuple[Any, ...] = field(compare=False, default=())
    delay: float = field(compare=False, default=0.0)


class ManualScheduler:
    """Queue-only scheduler on a virtual clock, for deterministic tests.

    Units run in due-time order, FIFO among units due at the same time.
    Exceptions from units propagate to the caller of ``run_*``.
    """

    def __init__(self) -> None:
        self.now = 0.0
        self._queue: List[ScheduledUnit] = []
        self._seq = itertools.count()
        self.delays: List[float] = []
        self.executed = 0

    def schedule(self, fn: Callable[..., Any], *args: Any, delay: float = 0.0) -> None:
        heapq.heappush(
            self._queue,
            ScheduledUnit(self.now + delay, next(self._seq), fn, args, delay),
        )
        self.delays.append(delay)

    @property
    def pending(self) -> int:
        return len(self._queue)

    def run_next(self) -> bool:
        """Advance the clock to the next unit and run it."""
        if not self._queue:
            return False
        unit = heapq.heappop(self._queue)
        self.now = max(self.now, unit.due)
        self.executed += 1
        unit.fn(*unit.args)
        return True

    def run_pending(self) -> int:
        """Run units already due, without advancing the clock."""
        count = 0
        while self._queue and self._queue[0].due <= self.now:
            self.run_next()
            count += 1
        return count

    def run_all(self, max_units: int = 10000) -> int:
        """Run until the queue drains (including units scheduled along the way)."""
        count = 0
        while self.run_next():
            count += 1
            if count >= max_units:
                raise RuntimeError(f"ManualScheduler did not drain after {max_units} units")
        return count


def _name(fn: Callable[..., Any]) -> str:
    return getattr(fn, "__qualname__", repr(fn))
