"""Coalescing work queue feeding a bounded pool of reconcile workers.

A key is queued at most once. A key added while a worker holds it is marked
dirty and queued again when the worker is done, so one key is never
reconciled by two workers at the same time and events that arrive meanwhile
collapse into a single follow-up pass.
"""

import time
import asyncio
import logging
from typing import Awaitable, Callable, Dict, List, Optional, Set
from ramen.reconciler.context import ReconcileResult

logger = logging.getLogger(__name__)

ReconcileFunc = Callable[[str], Awaitable[ReconcileResult]]


class WorkQueue:
    """Work queue with per-key failure backoff."""

    def __init__(
        self,
        reconcile: ReconcileFunc,
        workers: int,
        failure_base_delay: float = 0.005,
        failure_max_delay: float = 300.0,
        sensor=None,
    ):
        self.reconcile = reconcile
        self.workers = workers
        self.failure_base_delay = failure_base_delay
        self.failure_max_delay = failure_max_delay
        self.sensor = sensor
        self._queue: asyncio.Queue = asyncio.Queue()
        self._dirty: Set[str] = set()
        self._processing: Set[str] = set()
        self._failures: Dict[str, int] = {}
        self._queued_at: Dict[str, float] = {}
        self._timers: Dict[str, asyncio.TimerHandle] = {}
        self._tasks: List[asyncio.Task] = []
        self._shutting_down = False

    def __len__(self) -> int:
        return self._queue.qsize()

    @property
    def shutting_down(self) -> bool:
        return self._shutting_down

    def add(self, key: str) -> None:
        """Queue `key` unless it is already waiting."""
        if self._shutting_down or key in self._dirty:
            return
        self._dirty.add(key)
        self._queued_at.setdefault(key, time.monotonic())
        if key in self._processing:
            return
        self._queue.put_nowait(key)
        if self.sensor:
            self.sensor.on_reconcile_queued(key, self._queue.qsize())

    def add_after(self, key: str, delay: float) -> None:
        """Queue `key` after `delay` seconds; an earlier pending timer wins."""
        if self._shutting_down:
            return
        if delay <= 0:
            self.add(key)
            return
        loop = asyncio.get_running_loop()
        handle = self._timers.get(key)
        due = loop.time() + delay
        if handle is not None and not handle.cancelled() and handle.when() <= due:
            return
        if handle is not None:
            handle.cancel()
        self._timers[key] = loop.call_at(due, self._fire, key)

    def _fire(self, key: str) -> None:
        self._timers.pop(key, None)
        self.add(key)

    def failure_delay(self, key: str) -> float:
        failures = self._failures.get(key, 0)
        if failures == 0:
            return 0.0
        return min(self.failure_base_delay * (2 ** (failures - 1)), self.failure_max_delay)

    def add_rate_limited(self, key: str) -> None:
        """Queue `key` again after its exponential failure backoff."""
        self._failures[key] = self._failures.get(key, 0) + 1
        self.add_after(key, self.failure_delay(key))

    def forget(self, key: str) -> None:
        """Reset the failure backoff of `key`."""
        self._failures.pop(key, None)

    def num_requeues(self, key: str) -> int:
        return self._failures.get(key, 0)

    async def get(self) -> str:
        key = await self._queue.get()
        self._processing.add(key)
        self._dirty.discard(key)
        queued_at = self._queued_at.pop(key, None)
        if self.sensor and queued_at is not None:
            self.sensor.on_reconcile_dequeued(key, time.monotonic() - queued_at)
        return key

    def done(self, key: str) -> None:
        self._processing.discard(key)
        if key in self._dirty:
            self._queue.put_nowait(key)

    def handle_result(self, key: str, result: ReconcileResult) -> None:
        if result.requeue:
            self.add_rate_limited(key)
        elif result.requeue_after is not None:
            self.forget(key)
            self.add_after(key, result.requeue_after)
        else:
            self.forget(key)

    async def process_next(self) -> None:
        key = await self.get()
        try:
            result = await self.reconcile(key)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"Reconciler error for {key}: {e}")
            logger.exception(e)
            self.add_rate_limited(key)
        else:
            self.handle_result(key, result)
        finally:
            self.done(key)

    async def _worker(self, index: int) -> None:
        logger.debug(f"Reconcile worker {index} started")
        while not self._shutting_down:
            await self.process_next()

    def start(self) -> None:
        logger.info(f"Starting {self.workers} reconcile workers")
        for i in range(self.workers):
            self._tasks.append(asyncio.create_task(self._worker(i)))

    async def stop(self, timeout: Optional[float] = None) -> None:
        """Stop accepting keys and cancel the workers."""
        self._shutting_down = True
        for handle in self._timers.values():
            handle.cancel()
        self._timers.clear()
        for task in self._tasks:
            task.cancel()
        if self._tasks:
            await asyncio.wait(self._tasks, timeout=timeout)
        self._tasks.clear()
        logger.info("Reconcile workers stopped")
