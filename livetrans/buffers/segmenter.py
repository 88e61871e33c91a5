"""
Utterance segmentation for the live pipeline.

Splits the continuous canonical stream into utterances using short-time
energy: an utterance opens on the first high-energy window, closes after
a run of low-energy windows, and is cut unconditionally at a maximum
duration. Utterances below a minimum duration are discarded and never
receive a sequence number.
"""

import logging
from typing import List, Optional

import numpy as np

from ..core.types import (
    CanonicalFrame,
    Utterance,
    SAMPLE_RATE,
    DEFAULT_WINDOW_MS,
    DEFAULT_SILENCE_MS,
    DEFAULT_MIN_MS,
    DEFAULT_MAX_MS,
)
from ..sources.gate import SpeechGate, RMSGate

logger = logging.getLogger(__name__)


class UtteranceSegmenter:
    """
    Silence-terminated segmenter with hard maximum length.

    Sequence numbers start at `start_sequence` and increase by one for
    every utterance that is emitted.
    """

    def __init__(
        self,
        sr: int = SAMPLE_RATE,
        window_ms: int = DEFAULT_WINDOW_MS,
        silence_ms: int = DEFAULT_SILENCE_MS,
        min_ms: int = DEFAULT_MIN_MS,
        max_ms: int = DEFAULT_MAX_MS,
        gate: Optional[SpeechGate] = None,
        start_sequence: int = 0,
    ):
        self.sr = sr
        self.window_samples = max(1, int(window_ms * sr / 1000))
        self.silence_samples = max(1, int(silence_ms * sr / 1000))
        self.min_samples = int(min_ms * sr / 1000)
        self.max_samples = int(max_ms * sr / 1000)
        if self.max_samples <= 0 or self.max_samples < self.min_samples:
            raise ValueError("max_ms must be > 0 and >= min_ms")
        self.gate = gate or RMSGate()

        self._next_sequence = start_sequence
        self.discarded = 0

        # Samples not yet forming a full analysis window
        self._started = False
        self._pending = np.zeros(0, dtype=np.float32)
        self._pending_start = 0

        # Current utterance
        self._active = False
        self._parts: List[np.ndarray] = []
        self._utt_start = 0
        self._utt_samples = 0
        self._speech_end = 0
        self._trailing_silence = 0

    @property
    def next_sequence(self) -> int:
        return self._next_sequence

    @property
    def cursor(self) -> int:
        """Absolute index of the next expected sample."""
        return self._pending_start + len(self._pending)

    def push(self, frame: CanonicalFrame) -> List[Utterance]:
        """Consume canonical audio and return any utterances it closed."""
        samples = np.asarray(frame.samples, dtype=np.float32).reshape(-1)
        utterances: List[Utterance] = []

        if not self._started:
            self._started = True
            self._pending_start = frame.start_sample
        elif frame.start_sample > self.cursor:
            lost = frame.start_sample - self.cursor
            logger.warning(
                "Capture overrun: %d samples (%.2fs) lost before %.2fs",
                lost,
                lost / self.sr,
                frame.start_sample / self.sr,
            )
            if len(self._pending):
                utterances.extend(self._process_window(self._pending, self._pending_start))
            if self._active:
                utterances.extend(self._emit(self._utt_samples, "overrun"))
            self._pending = np.zeros(0, dtype=np.float32)
            self._pending_start = frame.start_sample
        elif frame.start_sample < self.cursor:
            overlap = self.cursor - frame.start_sample
            logger.warning("Dropping %d already-seen samples", overlap)
            samples = samples[overlap:]

        if len(samples) == 0:
            return utterances

        pending = np.concatenate([self._pending, samples])
        w = self.window_samples
        n_full = len(pending) // w
        for i in range(n_full):
            utterances.extend(
                self._process_window(pending[i * w:(i + 1) * w], self._pending_start + i * w)
            )
        self._pending = pending[n_full * w:].copy()
        self._pending_start += n_full * w

        return utterances

    def flush(self) -> List[Utterance]:
        """Close whatever is accumulated at end of stream."""
        utterances: List[Utterance] = []
        if len(self._pending):
            utterances.extend(self._process_window(self._pending, self._pending_start))
            self._pending_start += len(self._pending)
            self._pending = np.zeros(0, dtype=np.float32)
        if self._active:
            utterances.extend(self._emit(self._utt_samples, "flush"))
        return utterances

    def reset(self) -> None:
        """Drop all audio state. Sequence numbering continues."""
        self._started = False
        self._pending = np.zeros(0, dtype=np.float32)
        self._pending_start = 0
        self._reset_active_segment()
        self.gate.reset()

    def _process_window(self, window: np.ndarray, start: int) -> List[Utterance]:
        utterances: List[Utterance] = []
        is_speech = self.gate.is_speech(window)

        if not self._active:
            if not is_speech:
                return utterances
            self._open(start)

        offset = 0
        while offset < len(window):
            room = self.max_samples - self._utt_samples
            piece = window[offset:offset + room]
            self._append(piece, is_speech)
            offset += len(piece)

            if self._utt_samples >= self.max_samples:
                utterances.extend(self._emit(self._utt_samples, "max_duration"))
                if offset < len(window):
                    if not is_speech:
                        break
                    self._open(start + offset)

        if self._active and self._trailing_silence >= self.silence_samples:
            utterances.extend(self._emit(self._speech_end, "silence_end"))

        return utterances

    def _open(self, start: int) -> None:
        self._active = True
        self._parts = []
        self._utt_start = start
        self._utt_samples = 0
        self._speech_end = 0
        self._trailing_silence = 0

    def _append(self, piece: np.ndarray, is_speech: bool) -> None:
        self._parts.append(piece)
        self._utt_samples += len(piece)
        if is_speech:
            self._speech_end = self._utt_samples
            self._trailing_silence = 0
        else:
            self._trailing_silence += len(piece)

    def _emit(self, keep_samples: int, reason: str) -> List[Utterance]:
        audio = np.concatenate(self._parts)[:keep_samples] if self._parts else np.zeros(0, np.float32)
        start = self._utt_start
        self._reset_active_segment()

        if len(audio) < self.min_samples or len(audio) == 0:
            self.discarded += 1
            logger.debug(
                "Discarding %.2fs utterance at %.2fs (%s)",
                len(audio) / self.sr,
                start / self.sr,
                reason,
            )
            return []

        utterance = Utterance(
            sequence=self._next_sequence,
            pcm=audio.astype(np.float32, copy=False),
            start_sample=start,
            end_sample=start + len(audio),
            reason=reason,
        )
        self._next_sequence += 1
        logger.debug(
            "Utterance #%d %.2fs-%.2fs (%s)",
            utterance.sequence,
            utterance.start_time,
            utterance.end_time,
            reason,
        )
        return [utterance]

    def _reset_active_segment(self) -> None:
        self._active = False
        self._parts = []
        self._utt_start = 0
        self._utt_samples = 0
        self._speech_end = 0
        self._trailing_silence = 0
