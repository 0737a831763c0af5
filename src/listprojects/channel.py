# =============================================================================
# Bounded Item Channel (discovery threads -> selector)
# =============================================================================

import queue
import threading

# How often blocked senders and receivers re-check the closed flag
POLL_INTERVAL = 0.05


class ItemChannel:
    """
    Bounded queue with a close flag and a producer count.

    ``send`` blocks while the queue is full (backpressure) but gives up as
    soon as the receiver closes the channel, returning False. Iteration ends
    when the channel is closed, or once every registered producer has
    finished and the queue is drained.
    """

    def __init__(self, capacity: int = 100):
        self._queue: queue.Queue = queue.Queue(maxsize=max(1, int(capacity)))
        self._closed = threading.Event()
        self._lock = threading.Lock()
        self._producers = 0

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def register_producer(self) -> None:
        with self._lock:
            self._producers += 1

    def producer_finished(self) -> None:
        with self._lock:
            self._producers = max(0, self._producers - 1)

    @property
    def active_producers(self) -> int:
        with self._lock:
            return self._producers

    def close(self) -> None:
        """Receiver is gone: wake blocked senders and make further sends no-ops."""
        self._closed.set()

    def send(self, item) -> bool:
        while not self._closed.is_set():
            try:
                self._queue.put(item, timeout=POLL_INTERVAL)
                return True
            except queue.Full:
                continue
        return False

    def __iter__(self):
        while True:
            try:
                item = self._queue.get(timeout=POLL_INTERVAL)
            except queue.Empty:
                if self._closed.is_set():
                    return
                if self.active_producers == 0 and self._queue.empty():
                    return
                continue
            yield item
