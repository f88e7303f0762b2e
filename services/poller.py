"""Background polling that emits rolling glucose averages."""

from __future__ import annotations

import logging
import math
import time
from concurrent.futures import Future
from enum import Enum
from threading import Event, RLock, Thread
from typing import Callable, List, Optional

from models.records import GlucoseReading, ReadResult
from services.aggregator import AverageAccumulator, Aggregator
from services.errors import TRANSIENT_ERRORS, LibreLinkUpError

logger = logging.getLogger(__name__)

AverageCallback = Callable[[GlucoseReading, List[GlucoseReading], List[GlucoseReading]], None]
ErrorCallback = Callable[[LibreLinkUpError], None]


class PollerState(str, Enum):
    idle = "idle"
    running = "running"
    cancelled = "cancelled"


class AveragingPoller:
    """Fetches on a fixed schedule and reports the average of every ``amount`` readings.

    A single worker thread runs the loop, so at most one fetch is in flight.
    ``cancel()`` is cooperative: a fetch already under way completes, its
    result is dropped, and no callback starts once ``cancel()`` has returned.
    """

    def __init__(
        self,
        fetch: Callable[[], ReadResult],
        amount: int,
        callback: AverageCallback,
        interval: float,
        on_error: Optional[ErrorCallback] = None,
        dedupe: bool = False,
        aggregator: Optional[Aggregator] = None,
    ) -> None:
        if interval <= 0:
            raise ValueError("interval must be positive")
        self._fetch = fetch
        self._accumulator = AverageAccumulator(amount=amount, dedupe=dedupe)
        self._aggregator = aggregator or Aggregator()
        self._callback = callback
        self._on_error = on_error
        self._interval = interval
        self._state = PollerState.idle
        self._error: Optional[LibreLinkUpError] = None
        self._cancelled = Event()
        # Reentrant so callbacks may call cancel() from the worker thread.
        self._delivery_lock = RLock()
        self._future: Optional[Future[None]] = None

    @property
    def state(self) -> PollerState:
        return self._state

    @property
    def error(self) -> Optional[LibreLinkUpError]:
        """The fatal error that stopped the poller, if any."""
        return self._error

    @property
    def pending(self) -> int:
        return len(self._accumulator)

    def start(self) -> "AveragingPoller":
        with self._delivery_lock:
            if self._state is not PollerState.idle:
                raise RuntimeError(f"Poller cannot start from state {self._state.value!r}.")
            self._state = PollerState.running

        self._future = Future()
        # Daemon so an uncancelled poller never blocks interpreter exit.
        Thread(
            target=self._work,
            args=(self._future,),
            name="averaging-poller",
            daemon=True,
        ).start()
        logger.info(
            "Averaging poller started",
            extra={"amount": self._accumulator.amount},
        )
        return self

    def cancel(self) -> None:
        with self._delivery_lock:
            self._cancelled.set()
            self._state = PollerState.cancelled

    def wait(self, timeout: Optional[float] = None) -> None:
        """Block until the loop ends; re-raises an exception from a user callback."""
        if self._future is None:
            return
        self._future.result(timeout=timeout)

    def _work(self, future: Future[None]) -> None:
        future.set_running_or_notify_cancel()
        try:
            self._run()
        except Exception as exc:
            future.set_exception(exc)
        else:
            future.set_result(None)

    def _run(self) -> None:
        scheduled = time.monotonic()
        try:
            while not self._cancelled.is_set():
                self._tick()
                scheduled = self._next_tick(scheduled)
                if self._cancelled.wait(max(0.0, scheduled - time.monotonic())):
                    break
        except Exception:
            logger.exception("Averaging poller crashed")
            raise
        finally:
            with self._delivery_lock:
                self._cancelled.set()
                self._state = PollerState.cancelled
            logger.info("Averaging poller stopped")

    def _next_tick(self, previous: float) -> float:
        scheduled = previous + self._interval
        now = time.monotonic()
        if scheduled < now:
            scheduled += math.ceil((now - scheduled) / self._interval) * self._interval
        return scheduled

    def _tick(self) -> None:
        try:
            result = self._fetch()
        except TRANSIENT_ERRORS as exc:
            self._report_transient(exc)
            return
        except LibreLinkUpError as exc:
            self._fail(exc)
            return

        with self._delivery_lock:
            if self._cancelled.is_set():
                logger.debug("Dropping reading fetched after cancellation")
                return
            batch = self._accumulator.add(result.current)
            if batch is None:
                return
            average = self._aggregator.aggregate(batch, result.target_range)
            logger.debug(
                "Average computed",
                extra={"readings": len(batch)},
            )
            self._callback(average, batch, result.history)

    def _report_transient(self, exc: LibreLinkUpError) -> None:
        logger.warning(
            "Poll failed, retrying on next tick",
            extra={"reason": str(exc)},
        )
        with self._delivery_lock:
            if self._cancelled.is_set() or self._on_error is None:
                return
            self._on_error(exc)

    def _fail(self, exc: LibreLinkUpError) -> None:
        with self._delivery_lock:
            if self._cancelled.is_set():
                return
            self._error = exc
            self._cancelled.set()
            self._state = PollerState.cancelled
            logger.error(
                "Averaging poller stopped by fatal error",
                extra={"reason": str(exc)},
            )
            if self._on_error is not None:
                self._on_error(exc)
