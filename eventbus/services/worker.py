"""Single-thread worker behind ``EventBus.publish_async``.

Jobs go through one FIFO queue consumed by one daemon thread, so async
publishes are delivered in the order they were submitted. Nothing is ordered
relative to synchronous publishes running on other threads.
"""

from __future__ import annotations

import logging
import queue
import threading
from concurrent.futures import Future
from typing import Any, Callable

from eventbus.config import OverflowPolicy
from eventbus.domain.errors import AsyncQueueFull, BusClosed

logger = logging.getLogger("eventbus.worker")

_Job = tuple[Any, Future]


class AsyncDispatcher:
    """Queue plus one worker thread replaying ``deliver`` for each event.

    The thread starts on the first submit. With ``maxsize=0`` the queue is
    unbounded; otherwise *overflow* decides between waiting for room and
    raising ``AsyncQueueFull``.
    """

    def __init__(
        self,
        deliver: Callable[[Any], Any],
        maxsize: int = 0,
        overflow: OverflowPolicy = OverflowPolicy.BLOCK,
        name: str = "event-dispatcher",
        join_timeout: float = 5.0,
    ) -> None:
        self._deliver = deliver
        self._maxsize = maxsize
        self._overflow = overflow
        self._name = name
        self._join_timeout = join_timeout
        self._queue: queue.Queue[_Job | None] = queue.Queue(maxsize)
        self._lock = threading.Lock()
        self._thread: threading.Thread | None = None
        self._closed = False

    def submit(self, event: Any) -> Future:
        future: Future = Future()
        # The worker never takes this lock, so a blocking put cannot deadlock.
        with self._lock:
            if self._closed:
                raise BusClosed("publish asynchronously")
            self._ensure_started()
            if self._overflow == OverflowPolicy.DROP:
                try:
                    self._queue.put_nowait((event, future))
                except queue.Full:
                    raise AsyncQueueFull(self._maxsize) from None
            else:
                self._queue.put((event, future))
        return future

    def close(self, drain: bool = True) -> None:
        """Stop accepting jobs and stop the worker.

        With *drain*, jobs already queued are delivered first; otherwise
        their futures are cancelled.
        """
        with self._lock:
            if self._closed:
                return
            self._closed = True
            thread = self._thread

        if not drain:
            self._cancel_pending()
        if thread is None:
            return

        if thread is threading.current_thread():
            # called from a listener on the worker; it stops once the queue is empty
            return
        try:
            self._queue.put(None, timeout=self._join_timeout)
        except queue.Full:
            logger.warning(
                "Worker %s queue still full after %.1fs; not waiting for it",
                self._name,
                self._join_timeout,
            )
            return
        thread.join(timeout=self._join_timeout)
        if thread.is_alive():
            logger.warning(
                "Worker %s still busy after %.1fs; leaving it to finish",
                self._name,
                self._join_timeout,
            )
        logger.debug("Worker %s stopped", self._name)

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    @property
    def closed(self) -> bool:
        return self._closed

    def _ensure_started(self) -> None:
        if self._thread is not None:
            return
        self._thread = threading.Thread(target=self._run, name=self._name, daemon=True)
        self._thread.start()
        logger.debug("Worker %s started", self._name)

    def _cancel_pending(self) -> None:
        while True:
            try:
                job = self._queue.get_nowait()
            except queue.Empty:
                return
            if job is not None:
                job[1].cancel()

    def _run(self) -> None:
        while True:
            job = self._queue.get()
            if job is None:
                return
            event, future = job
            if future.set_running_or_notify_cancel():
                self._execute(event, future)
            if self._closed and self._queue.empty():
                return

    def _execute(self, event: Any, future: Future) -> None:
        try:
            result = self._deliver(event)
        except Exception as exc:
            logger.exception("Async delivery of %s failed", type(event).__qualname__)
            future.set_exception(exc)
        else:
            future.set_result(result)
