"""Trailing-edge debounced aggregation of notification payloads."""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from typing import Protocol

LOGGER = logging.getLogger(__name__)

DEFAULT_QUIET_PERIOD_S = 0.3


class Cancellable(Protocol):
    def cancel(self) -> None:
        """Prevent the scheduled callback from running if it has not started."""


class Scheduler(Protocol):
    def call_later(self, delay_s: float, callback: Callable[[], None]) -> Cancellable:
        """Run callback once after delay_s seconds."""


class ThreadingScheduler:
    """Runs each callback on its own daemon timer thread."""

    def call_later(self, delay_s: float, callback: Callable[[], None]) -> Cancellable:
        timer = threading.Timer(delay_s, callback)
        timer.daemon = True
        timer.name = "gattcheck-flush"
        timer.start()
        return timer


class AggregationBuffer:
    """Queue payloads and flush them as one batch after a quiet period.

    Every append cancels the pending timer and arms a new one, so a burst is
    flushed ``quiet_period_s`` after its last payload. The pending timer is
    armed exactly when the queue is non-empty. All mutation happens under
    ``lock``, which the owning session shares. ``on_flush`` runs outside that
    lock; a separate flush lock keeps batches in order.
    """

    def __init__(
        self,
        scheduler: Scheduler,
        on_flush: Callable[[list[bytes]], None],
        *,
        quiet_period_s: float = DEFAULT_QUIET_PERIOD_S,
        lock: threading.RLock | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._scheduler = scheduler
        self._on_flush = on_flush
        self.quiet_period_s = quiet_period_s
        self._lock = lock or threading.RLock()
        self._flush_lock = threading.Lock()
        self._clock = clock
        self._queue: list[bytes] = []
        self._timer: Cancellable | None = None
        self._generation = 0
        self.last_arrival: float | None = None

    @property
    def pending(self) -> tuple[bytes, ...]:
        with self._lock:
            return tuple(self._queue)

    @property
    def armed(self) -> bool:
        with self._lock:
            return self._timer is not None

    def append(self, payload: bytes, arrived_at: float | None = None) -> None:
        with self._lock:
            self._queue.append(bytes(payload))
            self.last_arrival = self._clock() if arrived_at is None else arrived_at
            self._disarm()
            self._generation += 1
            generation = self._generation
            self._timer = self._scheduler.call_later(
                self.quiet_period_s,
                lambda: self._fire(generation),
            )

    def _fire(self, generation: int) -> None:
        with self._flush_lock:
            with self._lock:
                # A newer append rearmed while this timer was already running.
                if generation != self._generation or self._timer is None:
                    return
                self._timer = None
                batch, self._queue = self._queue, []
            LOGGER.debug("Quiet period elapsed, flushing %d payload(s)", len(batch))
            if batch:
                self._on_flush(batch)

    def flush(self) -> list[bytes]:
        """Flush the queue now. Must not be called while holding ``lock``."""
        with self._flush_lock:
            with self._lock:
                self._disarm()
                batch, self._queue = self._queue, []
            if batch:
                self._on_flush(batch)
            return batch

    def cancel(self) -> None:
        with self._lock:
            self._disarm()
            self._queue = []

    def _disarm(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
