"""Cancellation and bounded fan-out shared by every analysis component.

Every public entry point accepts a CancellationToken. Work is split into
independent items (one rule, one resource, one record) and fanned out over a
bounded thread pool. On cancellation no new item is started; items already
running finish and their results are kept, and the caller gets a partial flag
instead of nothing.
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable, Sequence
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from typing import Generic, TypeVar

from kubescout.observability.logging import get_logger

_logger = get_logger("execution")

_ItemT = TypeVar("_ItemT")
_ResultT = TypeVar("_ResultT")

# In-flight futures per worker; bounds memory on very large candidate lists.
_QUEUE_DEPTH_PER_WORKER = 2


class CancellationToken:
    """Caller-controlled cancellation signal with an optional deadline.

    Thread-safe. ``timeout`` is measured from construction.
    """

    def __init__(
        self,
        timeout: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._event = threading.Event()
        self._clock = clock
        self._deadline = clock() + timeout if timeout else None
        self._timed_out = False

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        if self._event.is_set():
            return True
        if self._deadline is not None and self._clock() >= self._deadline:
            self._timed_out = True
            self._event.set()
            return True
        return False

    @property
    def timed_out(self) -> bool:
        return self._timed_out


@dataclass
class FanOutResult(Generic[_ResultT]):
    """Results of a fan-out, ordered by the index of the input item."""

    results: list[tuple[int, _ResultT]] = field(default_factory=list)
    total: int = 0

    @property
    def completed(self) -> int:
        return len(self.results)

    @property
    def partial(self) -> bool:
        return self.completed < self.total

    def values(self) -> list[_ResultT]:
        return [value for _, value in self.results]


def fan_out(
    items: Sequence[_ItemT],
    fn: Callable[[_ItemT], _ResultT],
    *,
    token: CancellationToken | None = None,
    workers: int = 1,
    component: str = "",
) -> FanOutResult[_ResultT]:
    """Apply *fn* to every item, at most *workers* at a time.

    ``workers <= 1`` runs inline in the calling thread, checking the token
    once before each item. Exceptions raised by *fn* propagate: item
    functions are expected to contain their own data errors.
    """
    token = token or CancellationToken()
    outcome: FanOutResult[_ResultT] = FanOutResult(total=len(items))

    if workers <= 1 or len(items) <= 1:
        for index, item in enumerate(items):
            if token.cancelled:
                break
            outcome.results.append((index, fn(item)))
    else:
        _fan_out_pooled(items, fn, token, workers, outcome)

    outcome.results.sort(key=lambda pair: pair[0])
    if outcome.partial:
        _logger.warning(
            "fan_out_cancelled",
            fan_out_component=component,
            completed=outcome.completed,
            total=outcome.total,
            timed_out=token.timed_out,
        )
    return outcome


def _fan_out_pooled(
    items: Sequence[_ItemT],
    fn: Callable[[_ItemT], _ResultT],
    token: CancellationToken,
    workers: int,
    outcome: FanOutResult[_ResultT],
) -> None:
    max_in_flight = workers * _QUEUE_DEPTH_PER_WORKER
    pending: dict[Future[_ResultT], int] = {}
    source = iter(enumerate(items))
    exhausted = False

    with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="kubescout") as pool:
        while True:
            while not exhausted and len(pending) < max_in_flight:
                if token.cancelled:
                    exhausted = True
                    break
                nxt = next(source, None)
                if nxt is None:
                    exhausted = True
                    break
                index, item = nxt
                pending[pool.submit(fn, item)] = index

            if not pending:
                break

            done, _ = wait(pending, return_when=FIRST_COMPLETED)
            for future in done:
                index = pending.pop(future)
                outcome.results.append((index, future.result()))
