"""
Real-time translation pipeline.

Thread "capture":   source -> resample -> CaptureBuffer (never blocks on the buffer)
Thread "segmenter": CaptureBuffer -> UtteranceSegmenter -> utterance channel
Threads "asr-N":    utterance channel -> recognition -> recognized channel
Threads "mt-N":     recognized channel -> translation -> translated channel
Caller's thread:    translated channel -> OrderedEmitter -> sink

Shutdown is ordered: stopping capture closes the buffer, which lets the
segmenter flush and close its channel, which drains each stage in turn.
Every utterance that was segmented reaches the sink.
"""

import functools
import logging
import threading
from typing import Any, Callable, Dict, Optional

from .buffers.segmenter import UtteranceSegmenter
from .core.channel import Channel
from .core.config import PipelineConfig, get_model_cache_path
from .core.errors import DeviceError, ResampleError
from .core.ringbuffer import CaptureBuffer
from .emitter import OrderedEmitter, StallPolicy
from .resample import Resampler
from .sinks import RecordSink, create_sink
from .sources.gate import create_gate
from .sources.source import SampleSource, create_source
from .stages import RecognitionStage, TranslationStage

logger = logging.getLogger(__name__)


class CaptureListener:
    """Pull frames from the source, convert them, push into the capture buffer."""

    def __init__(self, source: SampleSource, resampler: Resampler, buffer: CaptureBuffer):
        self.source = source
        self.resampler = resampler
        self.buffer = buffer

        self.running = False
        self.thread: Optional[threading.Thread] = None
        self.error: Optional[DeviceError] = None

        self.frames_read = 0
        self.frames_dropped = 0

    def _capture_loop(self) -> None:
        try:
            for frame in self.source.frames(stop_requested=lambda: not self.running):
                try:
                    canonical = self.resampler.resample(frame)
                except ResampleError as e:
                    self.frames_dropped += 1
                    logger.warning("Dropping malformed frame: %s", e)
                    continue
                self.buffer.push(canonical)
                self.frames_read += 1
        except DeviceError as e:
            logger.error("Audio device failed: %s", e)
            self.error = e
        except Exception as e:
            logger.exception("Audio capture failed")
            self.error = DeviceError(str(e))
        finally:
            self.running = False
            self.source.close()
            self.buffer.close()
            logger.info(
                "Capture stopped. Frames: %d, dropped: %d, evicted samples: %d",
                self.frames_read,
                self.frames_dropped,
                self.buffer.evicted_samples,
            )

    def start(self) -> None:
        self.running = True
        self.thread = threading.Thread(target=self._capture_loop, name="capture", daemon=True)
        self.thread.start()

    def stop(self) -> None:
        self.running = False

    def join(self, timeout: Optional[float] = None) -> None:
        if self.thread:
            self.thread.join(timeout)


class SegmenterLoop:
    """Drain the capture buffer into the segmenter and forward utterances."""

    def __init__(
        self,
        buffer: CaptureBuffer,
        segmenter: UtteranceSegmenter,
        outbox: Channel,
        poll_interval: float = 0.1,
    ):
        self.buffer = buffer
        self.segmenter = segmenter
        self.outbox = outbox
        self.poll_interval = poll_interval

        self.thread: Optional[threading.Thread] = None
        self.utterances_emitted = 0

    def _forward(self, utterances) -> None:
        for utterance in utterances:
            self.outbox.put(utterance)
            self.utterances_emitted += 1

    def _segment_loop(self) -> None:
        try:
            while True:
                self.buffer.wait(self.poll_interval)
                # Read closed before draining so nothing pushed earlier is missed
                closed = self.buffer.closed
                frame = self.buffer.drain_available()
                if len(frame):
                    self._forward(self.segmenter.push(frame))
                if closed:
                    break
            self._forward(self.segmenter.flush())
        except Exception:
            logger.exception("Segmenter failed")
        finally:
            self.outbox.close()
            logger.info(
                "Segmenter stopped. Utterances: %d, discarded: %d",
                self.utterances_emitted,
                self.segmenter.discarded,
            )

    def start(self) -> None:
        self.thread = threading.Thread(target=self._segment_loop, name="segmenter", daemon=True)
        self.thread.start()

    def join(self, timeout: Optional[float] = None) -> None:
        if self.thread:
            self.thread.join(timeout)


class RealtimeTranslationPipeline:
    """Wires capture, segmentation, both worker pools and the ordered emitter."""

    def __init__(
        self,
        config: PipelineConfig,
        source: SampleSource,
        recognizer_factory: Callable[[], Any],
        translator_factory: Callable[[], Any],
        sink: RecordSink,
        on_stall: Optional[Callable] = None,
    ):
        self.config = config
        self.source = source
        self.sink = sink

        seg = config.segmenter
        rt = config.runtime

        self.buffer = CaptureBuffer.from_seconds(config.audio.capture_seconds, config.audio.sample_rate)
        self.resampler = Resampler(target_sr=config.audio.sample_rate, mix=config.resample.mix)
        self.segmenter = UtteranceSegmenter(
            sr=config.audio.sample_rate,
            window_ms=seg.window_ms,
            silence_ms=seg.silence_ms,
            min_ms=seg.min_ms,
            max_ms=seg.max_ms,
            gate=create_gate(seg.gate, seg.threshold),
        )

        self.utterances = Channel(rt.queue_size, "utterances", rt.poll_interval_s)
        self.recognized = Channel(rt.queue_size, "recognized", rt.poll_interval_s)
        self.translated = Channel(rt.queue_size, "translated", rt.poll_interval_s)

        self.listener = CaptureListener(source, self.resampler, self.buffer)
        self.segmenter_loop = SegmenterLoop(
            self.buffer, self.segmenter, self.utterances, rt.poll_interval_s
        )
        self.asr_stage = RecognitionStage(
            recognizer_factory,
            self.utterances,
            self.recognized,
            num_workers=config.asr.num_workers,
            sr=config.audio.sample_rate,
        )
        self.mt_stage = TranslationStage(
            translator_factory,
            self.recognized,
            self.translated,
            num_workers=config.mt.num_workers,
        )
        self.emitter = OrderedEmitter(
            sink.on_record,
            max_pending=config.emitter.max_pending,
            stall_policy=StallPolicy(config.emitter.stall_policy),
            stall_timeout_s=config.emitter.stall_timeout_s,
            on_stall=on_stall,
        )

    def start(self) -> None:
        """Load models and start every background thread."""
        try:
            self.mt_stage.start()
            self.asr_stage.start()
        except Exception:
            self.utterances.close()
            self.recognized.close()
            raise
        self.segmenter_loop.start()
        self.listener.start()

    def stop(self) -> None:
        """Request end of capture. Already-captured audio is still processed."""
        self.listener.stop()

    def run(self) -> Dict[str, Any]:
        """
        Run until the source ends or stop()/Ctrl+C, then drain.

        Re-raises the DeviceError that ended capture, if any, after every
        segmented utterance has been delivered.
        """
        self.start()
        poll = self.config.runtime.poll_interval_s
        try:
            try:
                self.emitter.run(self.translated, poll_interval=poll)
            except KeyboardInterrupt:
                logger.info("Keyboard interrupt received. Draining...")
                self.stop()
                self.emitter.run(self.translated, poll_interval=poll)
        finally:
            self.stop()
            self.listener.join(timeout=2.0)
            self.segmenter_loop.join(timeout=2.0)
            self.asr_stage.join(timeout=2.0)
            self.mt_stage.join(timeout=2.0)
            self.sink.close()

        stats = self.stats()
        logger.info("Pipeline finished: %s", stats)

        if self.listener.error is not None:
            raise self.listener.error
        return stats

    def stats(self) -> Dict[str, Any]:
        return {
            "frames_read": self.listener.frames_read,
            "frames_dropped": self.listener.frames_dropped,
            "evicted_samples": self.buffer.evicted_samples,
            "utterances": self.segmenter_loop.utterances_emitted,
            "discarded_utterances": self.segmenter.discarded,
            "asr_failed": self.asr_stage.stats.failed,
            "mt_failed": self.mt_stage.stats.failed,
            "emitted": self.emitter.stats.emitted,
            "skipped": self.emitter.stats.skipped,
            "max_held": self.emitter.stats.max_held,
        }


def build_pipeline(
    config: PipelineConfig,
    source: Optional[SampleSource] = None,
    sink: Optional[RecordSink] = None,
) -> RealtimeTranslationPipeline:
    """Build a pipeline with model-backed stages from configuration."""
    from .asr import create_asr_model
    from .mt import create_mt_model

    config.validate()
    cache_dir = get_model_cache_path(config)
    offline = config.runtime.offline

    recognizer_factory = functools.partial(
        create_asr_model,
        model_id=config.asr.model_id,
        device=config.asr.device,
        offline=offline,
        cache_dir=cache_dir,
        language=config.asr.language,
        task=config.asr.task,
        max_new_tokens=config.asr.max_new_tokens,
    )
    translator_factory = functools.partial(
        create_mt_model,
        model_id=config.mt.model_id,
        device=config.mt.device,
        src_lang=config.mt.src_lang,
        tgt_lang=config.mt.tgt_lang,
        offline=offline,
        cache_dir=cache_dir,
        max_length=config.mt.max_length,
        num_beams=config.mt.num_beams,
        skip_non_english=config.mt.skip_non_english,
    )

    return RealtimeTranslationPipeline(
        config=config,
        source=source if source is not None else create_source(config),
        recognizer_factory=recognizer_factory,
        translator_factory=translator_factory,
        sink=sink if sink is not None else create_sink(config.output),
    )


__all__ = [
    "CaptureListener",
    "SegmenterLoop",
    "RealtimeTranslationPipeline",
    "build_pipeline",
]
