"""Cancellation tokens and the job event stream."""

import logging
import queue
import threading
from typing import Iterator, List, Optional

from ..exceptions import JobCancelled
from ..models.job import JobEvent


logger = logging.getLogger(__name__)


class CancellationToken:
    """Cooperative cancellation flag for one job.

    Cancelling never interrupts an in-flight external call; the next
    checkpoint (``raise_if_cancelled``) observes the flag and aborts.
    """

    def __init__(self, job_id: Optional[str] = None):
        self.job_id = job_id
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise JobCancelled(self.job_id)


class EventStream:
    """Fans job events out to subscriber queues.

    Publishers never block: each subscriber owns an unbounded queue and
    drains it at its own pace.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._subscribers: List["queue.Queue[JobEvent]"] = []

    def subscribe(self) -> "queue.Queue[JobEvent]":
        subscriber: "queue.Queue[JobEvent]" = queue.Queue()
        with self._lock:
            self._subscribers.append(subscriber)
        return subscriber

    def unsubscribe(self, subscriber: "queue.Queue[JobEvent]") -> None:
        with self._lock:
            if subscriber in self._subscribers:
                self._subscribers.remove(subscriber)

    def publish(self, event: JobEvent) -> None:
        with self._lock:
            subscribers = list(self._subscribers)
        for subscriber in subscribers:
            subscriber.put(event)

    @staticmethod
    def drain(subscriber: "queue.Queue[JobEvent]", timeout: Optional[float] = None) -> Iterator[JobEvent]:
        """Yield queued events until none arrives within ``timeout`` seconds."""
        while True:
            try:
                yield subscriber.get(timeout=timeout) if timeout else subscriber.get_nowait()
            except queue.Empty:
                return
