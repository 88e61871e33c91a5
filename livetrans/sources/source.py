"""
Audio sources.

A source reports its native sample rate and channel count and yields
interleaved SampleFrames until it is exhausted or asked to stop. Device
failures surface as DeviceError.
"""

from __future__ import annotations

import logging
import queue
import subprocess
import time
from abc import ABC, abstractmethod
from typing import Callable, Iterator, List, Optional

import numpy as np
import soundfile as sf

from ..core.errors import DeviceError
from ..core.types import SampleFrame

logger = logging.getLogger(__name__)

StopCheck = Optional[Callable[[], bool]]


class SampleSource(ABC):
    """Abstract interface for native-format audio producers."""

    sample_rate: int
    channels: int

    @abstractmethod
    def frames(self, stop_requested: StopCheck = None) -> Iterator[SampleFrame]:
        """Yield frames in capture order."""
        raise NotImplementedError()

    def close(self) -> None:
        """Release the device."""


class ArraySource(SampleSource):
    """Replay an in-memory interleaved array in fixed-size chunks."""

    def __init__(
        self,
        samples: np.ndarray,
        sample_rate: int,
        channels: int = 1,
        chunk_ms: int = 100,
        realtime_simulation: bool = False,
    ):
        self.samples = np.asarray(samples).reshape(-1)
        self.sample_rate = sample_rate
        self.channels = channels
        self.chunk_ms = chunk_ms
        self.realtime_simulation = realtime_simulation
        self.chunk_frames = max(1, int(sample_rate * chunk_ms / 1000))

    def frames(self, stop_requested: StopCheck = None) -> Iterator[SampleFrame]:
        step = self.chunk_frames * self.channels
        for i in range(0, len(self.samples), step):
            if stop_requested is not None and stop_requested():
                break
            yield SampleFrame(
                samples=self.samples[i:i + step],
                sample_rate=self.sample_rate,
                channels=self.channels,
            )
            if self.realtime_simulation:
                time.sleep(self.chunk_ms / 1000.0)


class WavFileSource(SampleSource):
    """Stream an audio file (WAV, FLAC, ...) at its native rate and channel count."""

    def __init__(self, path: str, chunk_ms: int = 100, realtime_simulation: bool = True):
        self.path = path
        self.chunk_ms = chunk_ms
        self.realtime_simulation = realtime_simulation
        try:
            info = sf.info(path)
        except (RuntimeError, OSError) as e:
            raise DeviceError(f"cannot open {path}: {e}") from e
        self.sample_rate = info.samplerate
        self.channels = info.channels
        self.chunk_frames = max(1, int(self.sample_rate * chunk_ms / 1000))

    def frames(self, stop_requested: StopCheck = None) -> Iterator[SampleFrame]:
        try:
            with sf.SoundFile(self.path, "r") as f:
                for block in f.blocks(blocksize=self.chunk_frames, dtype="float32", always_2d=True):
                    if stop_requested is not None and stop_requested():
                        break
                    yield SampleFrame(
                        samples=block.reshape(-1),
                        sample_rate=self.sample_rate,
                        channels=self.channels,
                    )
                    if self.realtime_simulation:
                        time.sleep(self.chunk_ms / 1000.0)
        except (RuntimeError, OSError) as e:
            raise DeviceError(f"error reading {self.path}: {e}") from e


class FFmpegSource(SampleSource):
    """Capture PCM16 from an FFmpeg subprocess (pulse, dshow, avfoundation, ...)."""

    def __init__(
        self,
        device: Optional[str] = None,
        input_format: str = "pulse",
        sample_rate: int = 48000,
        channels: int = 2,
        chunk_ms: int = 100,
        ffmpeg_bin: str = "ffmpeg",
    ):
        self.device = device or "default"
        self.input_format = input_format
        self.sample_rate = sample_rate
        self.channels = channels
        self.chunk_ms = chunk_ms
        self.ffmpeg_bin = ffmpeg_bin
        self.frame_bytes = int(sample_rate * chunk_ms / 1000) * channels * 2
        self._process: Optional[subprocess.Popen] = None

    def build_cmd(self) -> List[str]:
        device = self.device
        if self.input_format == "dshow" and not device.startswith("audio="):
            device = f"audio={device}"
        return [
            self.ffmpeg_bin,
            "-loglevel", "error",
            "-f", self.input_format,
            "-i", device,
            "-ac", str(self.channels),
            "-ar", str(self.sample_rate),
            "-f", "s16le",
            "pipe:1",
        ]

    def frames(self, stop_requested: StopCheck = None) -> Iterator[SampleFrame]:
        cmd = self.build_cmd()
        logger.info("Starting FFmpeg capture: %s", " ".join(cmd))
        try:
            self._process = subprocess.Popen(cmd, stdout=subprocess.PIPE, stderr=subprocess.PIPE)
        except FileNotFoundError as e:
            raise DeviceError(f"FFmpeg executable not found: {self.ffmpeg_bin}") from e

        process = self._process
        align = self.channels * 2
        try:
            while True:
                if stop_requested is not None and stop_requested():
                    break
                raw = process.stdout.read(self.frame_bytes)
                if not raw:
                    if process.poll() not in (None, 0):
                        err = process.stderr.read().decode("utf-8", errors="ignore")
                        raise DeviceError(f"FFmpeg capture failed: {err.strip()}")
                    break
                raw = raw[:len(raw) - len(raw) % align]
                if not raw:
                    continue
                yield SampleFrame(
                    samples=np.frombuffer(raw, dtype=np.int16),
                    sample_rate=self.sample_rate,
                    channels=self.channels,
                )
        finally:
            self.close()

    def close(self) -> None:
        process, self._process = self._process, None
        if process is None:
            return
        process.terminate()
        try:
            process.wait(timeout=2)
        except subprocess.TimeoutExpired:
            process.kill()


class SoundDeviceSource(SampleSource):
    """
    PortAudio input stream via sounddevice.

    The stream callback only copies the block into a queue; the capture
    thread drains the queue.
    """

    def __init__(self, device: Optional[str] = None, chunk_ms: int = 100):
        import sounddevice as sd

        self._sd = sd
        self.device = _parse_device(device)
        self.chunk_ms = chunk_ms
        try:
            info = sd.query_devices(self.device, "input")
        except (ValueError, sd.PortAudioError) as e:
            raise DeviceError(f"no usable input device {device!r}: {e}") from e
        self.device_name = info["name"]
        self.sample_rate = int(info["default_samplerate"])
        self.channels = max(1, int(info["max_input_channels"]))
        self.blocksize = max(1, int(self.sample_rate * chunk_ms / 1000))
        self._queue: "queue.Queue[np.ndarray]" = queue.Queue()
        self.overflows = 0

    def _callback(self, indata, frames, time_info, status) -> None:
        if status.input_overflow:
            self.overflows += 1
        self._queue.put(indata.copy())

    def frames(self, stop_requested: StopCheck = None) -> Iterator[SampleFrame]:
        sd = self._sd
        logger.info(
            "Opening input device %r (%d Hz, %d ch)",
            self.device_name,
            self.sample_rate,
            self.channels,
        )
        try:
            stream = sd.InputStream(
                device=self.device,
                samplerate=self.sample_rate,
                channels=self.channels,
                dtype="float32",
                blocksize=self.blocksize,
                callback=self._callback,
            )
        except sd.PortAudioError as e:
            raise DeviceError(f"cannot open input stream: {e}") from e

        with stream:
            while True:
                if stop_requested is not None and stop_requested():
                    break
                try:
                    block = self._queue.get(timeout=0.1)
                except queue.Empty:
                    if not stream.active:
                        raise DeviceError("input stream stopped unexpectedly")
                    continue
                yield SampleFrame(
                    samples=block.reshape(-1),
                    sample_rate=self.sample_rate,
                    channels=self.channels,
                )

        if self.overflows:
            logger.warning("Input device reported %d overflow(s)", self.overflows)


def _parse_device(device: Optional[str]):
    if device is None or device == "":
        return None
    return int(device) if str(device).isdigit() else device


def list_devices() -> str:
    """Human-readable list of PortAudio devices."""
    import sounddevice as sd

    return str(sd.query_devices())


def create_source(config) -> SampleSource:
    """Build the source described by a PipelineConfig."""
    src = config.source
    if src.type == "wav":
        return WavFileSource(
            src.wav_path,
            chunk_ms=src.chunk_ms,
            realtime_simulation=src.realtime_simulation,
        )
    if src.type == "ffmpeg":
        return FFmpegSource(
            device=src.device,
            input_format=src.ffmpeg_input_format,
            sample_rate=src.sample_rate,
            channels=src.channels,
            chunk_ms=src.chunk_ms,
            ffmpeg_bin=src.ffmpeg_bin,
        )
    if src.type == "sounddevice":
        return SoundDeviceSource(device=src.device, chunk_ms=src.chunk_ms)
    raise ValueError(f"Unknown source type: {src.type}")
