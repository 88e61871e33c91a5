"""
Capture ring buffer between the real-time audio thread and the segmenter.

Single producer, single consumer. Writes never block on a full buffer:
the oldest unread samples are overwritten instead.
"""

import threading
from typing import Optional

import numpy as np

from .types import CanonicalFrame, SAMPLE_RATE


class CaptureBuffer:
    """
    Fixed-capacity ring buffer for canonical float32 audio.

    Holds at most `capacity` unread samples. The write side keeps an
    absolute sample counter so the reader can tell when samples were
    evicted between two drains.
    """

    def __init__(self, capacity_samples: int):
        """
        Initialize capture buffer.

        Args:
            capacity_samples: Maximum number of unread samples to hold.
        """
        if capacity_samples <= 0:
            raise ValueError("capacity_samples must be > 0")
        self.capacity = capacity_samples
        self.data = np.zeros(capacity_samples, dtype=np.float32)
        self.write_pos = 0
        self.size = 0
        self.total_written = 0
        self.evicted_samples = 0

        self._lock = threading.Lock()
        self._available = threading.Event()
        self._closed = False

    @classmethod
    def from_seconds(cls, seconds: float, sr: int = SAMPLE_RATE) -> "CaptureBuffer":
        return cls(max(1, int(seconds * sr)))

    def push(self, frame: CanonicalFrame) -> None:
        """
        Append samples to the buffer.

        If the new data exceeds capacity, oldest unread samples are evicted.
        """
        x = np.asarray(frame.samples, dtype=np.float32).reshape(-1)
        n = len(x)
        if n == 0:
            return

        with self._lock:
            if self._closed:
                return
            overflow = max(0, self.size + n - self.capacity)
            self.evicted_samples += overflow
            self.total_written += n

            if n >= self.capacity:
                self.data[:] = x[-self.capacity:]
                self.write_pos = 0
                self.size = self.capacity
            else:
                end_pos = self.write_pos + n
                if end_pos <= self.capacity:
                    self.data[self.write_pos:end_pos] = x
                else:
                    first_part = self.capacity - self.write_pos
                    self.data[self.write_pos:] = x[:first_part]
                    self.data[:n - first_part] = x[first_part:]
                self.write_pos = end_pos % self.capacity
                self.size = min(self.size + n, self.capacity)

        self._available.set()

    def drain_available(self) -> CanonicalFrame:
        """Remove and return every unread sample, oldest first."""
        with self._lock:
            n = self.size
            start_sample = self.total_written - n
            if n == 0:
                audio = np.array([], dtype=np.float32)
            else:
                start_pos = (self.write_pos - n) % self.capacity
                if start_pos + n <= self.capacity:
                    audio = self.data[start_pos:start_pos + n].copy()
                else:
                    first_part = self.capacity - start_pos
                    audio = np.concatenate([
                        self.data[start_pos:],
                        self.data[:n - first_part]
                    ])
            self.size = 0
            if not self._closed:
                self._available.clear()

        return CanonicalFrame(samples=audio, start_sample=start_sample)

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until samples are available or the buffer is closed."""
        return self._available.wait(timeout)

    def close(self) -> None:
        """Mark end of stream. Remaining samples can still be drained."""
        with self._lock:
            self._closed = True
        self._available.set()

    @property
    def closed(self) -> bool:
        return self._closed

    def get_size(self) -> int:
        """Return current number of unread samples."""
        return self.size

    def __len__(self) -> int:
        return self.size
