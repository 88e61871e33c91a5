"""
Closable blocking queue used between pipeline stages.

Any number of producers and consumers. A consumer sees ChannelClosed only
after the channel was closed and every queued item was taken, so closing
never loses in-flight work.
"""

import queue
import threading
from typing import Any, Iterator, Optional


class ChannelClosed(Exception):
    """Raised by get() on a closed, drained channel and by put() after close()."""


class Channel:
    """queue.Queue with end-of-stream semantics."""

    def __init__(self, maxsize: int = 0, name: str = "", poll_interval: float = 0.1):
        self.name = name
        self.poll_interval = poll_interval
        self._queue: queue.Queue = queue.Queue(maxsize=maxsize)
        self._closed = threading.Event()

    def put(self, item: Any) -> None:
        if self._closed.is_set():
            raise ChannelClosed(self.name)
        self._queue.put(item)

    def get(self, timeout: Optional[float] = None) -> Any:
        """
        Take the next item.

        Raises ChannelClosed once closed and empty, or queue.Empty if
        `timeout` elapses first.
        """
        waited = 0.0
        while True:
            try:
                return self._queue.get(timeout=self.poll_interval)
            except queue.Empty:
                if self._closed.is_set() and self._queue.empty():
                    raise ChannelClosed(self.name)
                waited += self.poll_interval
                if timeout is not None and waited >= timeout:
                    raise

    def close(self) -> None:
        self._closed.set()

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def qsize(self) -> int:
        return self._queue.qsize()

    def __iter__(self) -> Iterator[Any]:
        while True:
            try:
                yield self.get()
            except ChannelClosed:
                return
