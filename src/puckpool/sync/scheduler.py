"""Paced task runner for upstream calls."""

from __future__ import annotations

import threading
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from typing import Callable, Generic, Iterable, Iterator, Optional, TypeVar


T = TypeVar("T")
R = TypeVar("R")


@dataclass(frozen=True)
class TaskOutcome(Generic[T, R]):
    item: T
    result: Optional[R] = None
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class RateLimitedScheduler:
    """Run tasks with bounded concurrency and a minimum gap between task starts.

    ``min_interval`` is a budget shared by all workers, so the request rate is the
    same whether one worker or several drain the queue.
    """

    def __init__(
        self,
        min_interval: float,
        max_workers: int = 1,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        if min_interval < 0:
            raise ValueError("min_interval must be >= 0")
        if max_workers < 1:
            raise ValueError("max_workers must be >= 1")
        self.min_interval = min_interval
        self.max_workers = max_workers
        self._clock = clock
        self._sleep = sleep
        self._lock = threading.Lock()
        self._next_slot: float | None = None

    def wait_turn(self) -> None:
        with self._lock:
            now = self._clock()
            start = now if self._next_slot is None else max(now, self._next_slot)
            self._next_slot = start + self.min_interval
        delay = start - now
        if delay > 0:
            self._sleep(delay)

    def _run_one(self, fn: Callable[[T], R], item: T) -> TaskOutcome[T, R]:
        self.wait_turn()
        try:
            return TaskOutcome(item=item, result=fn(item))
        except Exception as exc:
            return TaskOutcome(item=item, error=exc)

    def map(self, fn: Callable[[T], R], items: Iterable[T]) -> Iterator[TaskOutcome[T, R]]:
        """Yield one outcome per item; task exceptions are captured, not raised.

        Sequential runs yield in input order, pooled runs in completion order.
        """

        if self.max_workers == 1:
            for item in items:
                yield self._run_one(fn, item)
            return

        with ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="puckpool-sync") as pool:
            futures = [pool.submit(self._run_one, fn, item) for item in items]
            for future in as_completed(futures):
                yield future.result()
