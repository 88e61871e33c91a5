"""
Ordered emission of translated utterances.

Workers finish out of order; the emitter holds completed records until
every lower sequence number has been delivered, then releases them in
sequence order. Exactly one record per sequence reaches the sink.
"""

import logging
import queue
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, List, Optional, Set

from .core.channel import Channel, ChannelClosed
from .core.errors import BackpressureStall
from .core.types import ErrorKind, TranslatedUtterance

logger = logging.getLogger(__name__)


class StallPolicy(str, Enum):
    """What to do when the next expected sequence is overdue."""
    WAIT = "wait"  # keep waiting, report once
    SKIP = "skip"  # emit an error record in its place and move on


@dataclass
class EmitterStats:
    emitted: int = 0
    discarded: int = 0
    skipped: int = 0
    max_held: int = 0


class OrderedEmitter:
    """
    Reorders records by sequence number before they reach the sink.

    A stall is declared when more than `max_pending` records are held, or
    when the head of line has been missing for `stall_timeout_s` while
    later records wait. Under WAIT the stall is only reported; under SKIP
    the missing sequence is replaced by a backpressure_stall error record.
    """

    def __init__(
        self,
        deliver: Callable[[TranslatedUtterance], None],
        max_pending: int = 64,
        stall_policy: StallPolicy = StallPolicy.WAIT,
        stall_timeout_s: Optional[float] = 30.0,
        start_sequence: int = 0,
        clock: Callable[[], float] = time.monotonic,
        on_stall: Optional[Callable[[BackpressureStall], None]] = None,
    ):
        if max_pending < 1:
            raise ValueError("max_pending must be >= 1")
        self.deliver = deliver
        self.max_pending = max_pending
        self.stall_policy = StallPolicy(stall_policy)
        self.stall_timeout_s = stall_timeout_s
        self.clock = clock
        self.on_stall = on_stall
        self.stats = EmitterStats()

        self._next_seq = start_sequence
        self._held: Dict[int, TranslatedUtterance] = {}
        self._skipped: Set[int] = set()
        self._reported: Set[int] = set()
        self._waiting_since: Optional[float] = None
        self._last_end_time = 0.0

    @property
    def next_sequence(self) -> int:
        return self._next_seq

    @property
    def held(self) -> int:
        return len(self._held)

    def offer(self, record: TranslatedUtterance) -> List[TranslatedUtterance]:
        """Accept one record; return whatever became emittable, in order."""
        seq = record.sequence

        if seq < self._next_seq:
            if seq in self._skipped:
                self._skipped.discard(seq)
                logger.warning("Discarding late record for skipped sequence %d", seq)
            else:
                logger.warning("Discarding duplicate record for sequence %d", seq)
            self.stats.discarded += 1
            return []
        if seq in self._held:
            logger.warning("Discarding duplicate record for sequence %d", seq)
            self.stats.discarded += 1
            return []

        if not self._held:
            self._waiting_since = self.clock()
        self._held[seq] = record
        self.stats.max_held = max(self.stats.max_held, len(self._held))

        emitted = self._release()
        emitted.extend(self.check_stall())
        return emitted

    def check_stall(self) -> List[TranslatedUtterance]:
        """
        Apply the stall policy to the current head of line.

        Called on every arrival and periodically while idle.
        """
        emitted: List[TranslatedUtterance] = []
        while self._held:
            now = self.clock()
            since = self._waiting_since if self._waiting_since is not None else now
            waited = now - since
            over_bound = len(self._held) > self.max_pending
            timed_out = self.stall_timeout_s is not None and waited >= self.stall_timeout_s
            if not (over_bound or timed_out):
                break

            stall = BackpressureStall(self._next_seq, len(self._held), waited)
            if self.stall_policy is StallPolicy.WAIT:
                if self._next_seq not in self._reported:
                    self._reported.add(self._next_seq)
                    self._report(stall)
                break

            self._report(stall)
            placeholder = TranslatedUtterance(
                sequence=self._next_seq,
                start_time=self._last_end_time,
                end_time=self._last_end_time,
                error=ErrorKind.BACKPRESSURE_STALL,
                detail=str(stall),
            )
            self._skipped.add(self._next_seq)
            self.stats.skipped += 1
            self._held[self._next_seq] = placeholder
            emitted.extend(self._release())
        return emitted

    def finish(self) -> List[TranslatedUtterance]:
        """
        End of stream: nothing else will arrive.

        Any gap still open is filled with a backpressure_stall record so the
        held records behind it are not lost.
        """
        emitted: List[TranslatedUtterance] = []
        while self._held:
            if self._next_seq not in self._held:
                logger.error("Sequence %d never arrived before end of stream", self._next_seq)
                self._held[self._next_seq] = TranslatedUtterance(
                    sequence=self._next_seq,
                    start_time=self._last_end_time,
                    end_time=self._last_end_time,
                    error=ErrorKind.BACKPRESSURE_STALL,
                    detail="missing at end of stream",
                )
                self.stats.skipped += 1
            emitted.extend(self._release())
        return emitted

    def run(self, inbox: Channel, poll_interval: float = 0.1) -> None:
        """Consume `inbox` until it is closed and drained."""
        while True:
            try:
                record = inbox.get(timeout=poll_interval)
            except queue.Empty:
                self.check_stall()
                continue
            except ChannelClosed:
                break
            self.offer(record)
        self.finish()

    def _release(self) -> List[TranslatedUtterance]:
        emitted: List[TranslatedUtterance] = []
        while self._next_seq in self._held:
            seq = self._next_seq
            record = self._held[seq]
            try:
                self.deliver(record)
            except Exception:
                logger.error("Sink rejected sequence %d; it stays held", seq)
                raise
            del self._held[seq]
            self._reported.discard(seq)
            self._next_seq += 1
            self._last_end_time = max(self._last_end_time, record.end_time)
            self.stats.emitted += 1
            emitted.append(record)
        if emitted:
            self._waiting_since = self.clock() if self._held else None
        return emitted

    def _report(self, stall: BackpressureStall) -> None:
        logger.warning("Backpressure stall: %s", stall)
        if self.on_stall is not None:
            self.on_stall(stall)
