"""
Recognition and translation worker pools.

Each stage pulls from its inbox channel with a fixed number of long-lived
threads and pushes exactly one result per input to its outbox, keeping
the input's sequence number. Results may leave out of order. When the
inbox is closed and drained, the last worker to finish closes the outbox.
"""

import logging
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, List, Optional

from .core.channel import Channel, ChannelClosed
from .core.types import (
    ErrorKind,
    RecognizedUtterance,
    TranslatedUtterance,
    Utterance,
    SAMPLE_RATE,
)

logger = logging.getLogger(__name__)


@dataclass
class StageStats:
    processed: int = 0
    failed: int = 0
    busy_s: float = 0.0


class WorkerStage(ABC):
    """
    Fixed-size pool of worker threads between two channels.

    `model_factory` is called once per worker in start(), so every worker
    owns its own model handle and load errors surface before any thread runs.
    """

    name = "stage"

    def __init__(
        self,
        model_factory: Callable[[], Any],
        inbox: Channel,
        outbox: Channel,
        num_workers: int = 1,
    ):
        if num_workers < 1:
            raise ValueError("num_workers must be >= 1")
        self.model_factory = model_factory
        self.inbox = inbox
        self.outbox = outbox
        self.num_workers = num_workers
        self.stats = StageStats()

        self._threads: List[threading.Thread] = []
        self._lock = threading.Lock()
        self._running_workers = 0

    @abstractmethod
    def process(self, model: Any, item: Any) -> Any:
        """Handle one input. May raise; on_error builds the record then."""
        raise NotImplementedError()

    @abstractmethod
    def on_error(self, item: Any, exc: BaseException) -> Any:
        """Build the error record for an input whose processing raised."""
        raise NotImplementedError()

    def start(self) -> None:
        models = [self.model_factory() for _ in range(self.num_workers)]
        self._running_workers = self.num_workers
        for idx, model in enumerate(models):
            thread = threading.Thread(
                target=self._worker_loop,
                args=(model,),
                name=f"{self.name}-{idx}",
                daemon=True,
            )
            self._threads.append(thread)
            thread.start()
        logger.info("%s stage started with %d worker(s)", self.name, self.num_workers)

    def join(self, timeout: Optional[float] = None) -> None:
        for thread in self._threads:
            thread.join(timeout)

    @property
    def alive(self) -> bool:
        return any(t.is_alive() for t in self._threads)

    def _worker_loop(self, model: Any) -> None:
        try:
            while True:
                try:
                    item = self.inbox.get()
                except ChannelClosed:
                    break

                started = time.perf_counter()
                try:
                    result = self.process(model, item)
                except Exception as e:
                    logger.warning(
                        "%s failed for sequence %s: %s",
                        self.name,
                        getattr(item, "sequence", "?"),
                        e,
                    )
                    result = self.on_error(item, e)
                    with self._lock:
                        self.stats.failed += 1
                elapsed = time.perf_counter() - started

                with self._lock:
                    self.stats.processed += 1
                    self.stats.busy_s += elapsed

                self.outbox.put(result)
        finally:
            with self._lock:
                self._running_workers -= 1
                last = self._running_workers == 0
            if last:
                self.outbox.close()
                logger.debug("%s stage drained, output closed", self.name)


class RecognitionStage(WorkerStage):
    """Utterance -> RecognizedUtterance via the recognition capability."""

    name = "asr"

    def __init__(self, *args, sr: int = SAMPLE_RATE, **kwargs):
        super().__init__(*args, **kwargs)
        self.sr = sr

    def process(self, model: Any, item: Utterance) -> RecognizedUtterance:
        text = model.recognize(item.pcm, sr=self.sr)
        logger.debug("ASR #%d: %r", item.sequence, text)
        return RecognizedUtterance(
            sequence=item.sequence,
            start_time=item.start_time,
            end_time=item.end_time,
            text=text,
        )

    def on_error(self, item: Utterance, exc: BaseException) -> RecognizedUtterance:
        return RecognizedUtterance(
            sequence=item.sequence,
            start_time=item.start_time,
            end_time=item.end_time,
            error=ErrorKind.RECOGNITION,
            detail=str(exc),
        )


class TranslationStage(WorkerStage):
    """
    RecognizedUtterance -> TranslatedUtterance via the translation capability.

    Silence and upstream error records pass through without a translate call.
    """

    name = "mt"

    def process(self, model: Any, item: RecognizedUtterance) -> TranslatedUtterance:
        if item.error is not None or item.text is None:
            return TranslatedUtterance(
                sequence=item.sequence,
                start_time=item.start_time,
                end_time=item.end_time,
                source_text=item.text,
                error=item.error,
                detail=item.detail,
            )

        translated = model.translate(item.text)
        logger.debug("MT #%d: %r", item.sequence, translated)
        return TranslatedUtterance(
            sequence=item.sequence,
            start_time=item.start_time,
            end_time=item.end_time,
            source_text=item.text,
            translated_text=translated,
        )

    def on_error(self, item: RecognizedUtterance, exc: BaseException) -> TranslatedUtterance:
        return TranslatedUtterance(
            sequence=item.sequence,
            start_time=item.start_time,
            end_time=item.end_time,
            source_text=item.text,
            error=ErrorKind.TRANSLATION,
            detail=str(exc),
        )
