"""Sequence-tagged background requests polled from the UI loop."""
from __future__ import annotations

import logging
import time
from concurrent.futures import Executor, Future, ThreadPoolExecutor
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Iterator, List, Optional

LOGGER = logging.getLogger(__name__)


class RequestKind(str, Enum):
    DATE_LIST = "date-list"
    IMAGE = "image"
    STATISTICS = "statistics"
    SAMPLE = "sample"


@dataclass
class PendingRequest:
    seq: int
    kind: RequestKind
    future: Future
    issued_at: float
    token: int = 0
    payload: Any = None

    def done(self) -> bool:
        return self.future.done()


class RequestTracker:
    """Runs backend calls on worker threads and hands results back on poll.

    Results are never applied from the worker: the owning controller drains
    :meth:`completed` from its own thread, so all state mutation stays
    single-threaded.
    """

    def __init__(
        self,
        *,
        executor: Optional[Executor] = None,
        max_workers: int = 2,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._owns_executor = executor is None
        self._executor = executor or ThreadPoolExecutor(
            max_workers=max(1, max_workers), thread_name_prefix="thermal-fetch"
        )
        self._clock = clock
        self._pending: List[PendingRequest] = []

    def submit(
        self,
        seq: int,
        kind: RequestKind,
        fn: Callable[..., Any],
        *args: Any,
        token: int = 0,
        payload: Any = None,
    ) -> PendingRequest:
        future = self._executor.submit(fn, *args)
        request = PendingRequest(
            seq=seq,
            kind=kind,
            future=future,
            issued_at=self._clock(),
            token=token,
            payload=payload,
        )
        self._pending.append(request)
        LOGGER.debug("Issued %s request #%d", kind.value, seq)
        return request

    def completed(self) -> Iterator[PendingRequest]:
        """Yield finished requests in issue order, removing them."""
        # One done() check per request; workers may finish mid-scan.
        finished: List[PendingRequest] = []
        still_running: List[PendingRequest] = []
        for request in self._pending:
            (finished if request.done() else still_running).append(request)
        if not finished:
            return
        self._pending = still_running
        for request in finished:
            if request.future.cancelled():
                continue
            yield request

    def expired(self, seq: int, timeout_s: float) -> List[PendingRequest]:
        """Remove and return in-flight requests of ``seq`` older than the timeout."""
        if timeout_s <= 0:
            return []
        now = self._clock()
        stale = [
            request
            for request in self._pending
            if request.seq == seq and not request.done() and now - request.issued_at > timeout_s
        ]
        for request in stale:
            request.future.cancel()
            self._pending.remove(request)
        return stale

    def cancel_superseded(self, current_seq: int) -> int:
        """Cancel queued work older than ``current_seq``; running work is left to the gate."""
        cancelled = 0
        for request in self._pending:
            if request.seq < current_seq and request.future.cancel():
                cancelled += 1
        if cancelled:
            LOGGER.debug("Cancelled %d superseded request(s)", cancelled)
        return cancelled

    def in_flight(self, seq: Optional[int] = None) -> int:
        return sum(1 for request in self._pending if seq is None or request.seq == seq)

    def shutdown(self) -> None:
        for request in self._pending:
            request.future.cancel()
        self._pending.clear()
        if self._owns_executor:
            self._executor.shutdown(wait=False, cancel_futures=True)
