"""
Configuration management for the live pipeline.

Provides dataclasses for configuration and YAML loading utilities.
"""

from dataclasses import dataclass, field, asdict
from pathlib import Path
from typing import Dict, Any, Optional, Union
import yaml

from .errors import ConfigError
from .types import (
    SAMPLE_RATE,
    DEFAULT_WINDOW_MS,
    DEFAULT_SILENCE_MS,
    DEFAULT_MIN_MS,
    DEFAULT_MAX_MS,
    DEFAULT_CAPTURE_S,
    DEFAULT_SPEECH_THRESHOLD,
)


# Project paths
PROJECT_ROOT = Path(__file__).parent.parent.parent
CONFIG_DIR = PROJECT_ROOT / "configs"
MODEL_CACHE_DIR = PROJECT_ROOT / "model_cache"

# Whisper encodes at most 30 s of audio per call
WHISPER_MAX_MS = 30000


@dataclass
class AudioConfig:
    """Canonical audio and capture buffer configuration."""
    sample_rate: int = SAMPLE_RATE
    capture_seconds: float = DEFAULT_CAPTURE_S

    @property
    def capture_samples(self) -> int:
        return int(self.sample_rate * self.capture_seconds)


@dataclass
class SourceConfig:
    """Audio source configuration."""
    type: str = "sounddevice"  # sounddevice, ffmpeg, wav
    device: Optional[str] = None
    wav_path: Optional[str] = None
    chunk_ms: int = 100
    realtime_simulation: bool = False
    # Native format requested from FFmpeg; sounddevice and wav report their own
    sample_rate: int = 48000
    channels: int = 2
    ffmpeg_bin: str = "ffmpeg"
    ffmpeg_input_format: str = "pulse"  # dshow on Windows, avfoundation on macOS


@dataclass
class ResampleConfig:
    """Resampler configuration."""
    mix: str = "average"  # average, first


@dataclass
class SegmenterConfig:
    """Utterance segmentation policy."""
    window_ms: int = DEFAULT_WINDOW_MS
    silence_ms: int = DEFAULT_SILENCE_MS
    min_ms: int = DEFAULT_MIN_MS
    max_ms: int = DEFAULT_MAX_MS
    gate: str = "rms"  # rms, adaptive
    threshold: float = DEFAULT_SPEECH_THRESHOLD


@dataclass
class ASRConfig:
    """ASR model configuration."""
    model_id: str = "openai/whisper-base"
    language: Optional[str] = "en"
    task: str = "transcribe"
    device: str = "auto"  # auto, cpu, cuda
    max_new_tokens: int = 128
    num_workers: int = 1


@dataclass
class MTConfig:
    """MT model configuration."""
    model_id: str = "Helsinki-NLP/opus-mt-en-zh"
    src_lang: Optional[str] = None
    tgt_lang: Optional[str] = None
    device: str = "auto"
    max_length: int = 512
    num_beams: int = 4
    skip_non_english: bool = True
    num_workers: int = 1


@dataclass
class EmitterConfig:
    """Ordered emitter configuration."""
    max_pending: int = 64
    stall_policy: str = "wait"  # wait, skip
    stall_timeout_s: float = 30.0


@dataclass
class OutputConfig:
    """Output configuration."""
    console: bool = True
    color: bool = True
    show_errors: bool = True
    jsonl: bool = False
    jsonl_path: Optional[str] = None


@dataclass
class RuntimeConfig:
    """Threading and model cache settings."""
    queue_size: int = 0  # 0 = unbounded stage queues
    poll_interval_s: float = 0.1
    cache_dir: Optional[str] = None
    offline: bool = False


@dataclass
class PipelineConfig:
    """
    Complete pipeline configuration.

    Can be loaded from YAML or constructed programmatically.
    """
    audio: AudioConfig = field(default_factory=AudioConfig)
    source: SourceConfig = field(default_factory=SourceConfig)
    resample: ResampleConfig = field(default_factory=ResampleConfig)
    segmenter: SegmenterConfig = field(default_factory=SegmenterConfig)
    asr: ASRConfig = field(default_factory=ASRConfig)
    mt: MTConfig = field(default_factory=MTConfig)
    emitter: EmitterConfig = field(default_factory=EmitterConfig)
    output: OutputConfig = field(default_factory=OutputConfig)
    runtime: RuntimeConfig = field(default_factory=RuntimeConfig)

    log_level: str = "INFO"

    @classmethod
    def from_yaml(cls, yaml_path: Union[str, Path]) -> "PipelineConfig":
        """Load configuration from YAML file."""
        yaml_path = Path(yaml_path)
        with open(yaml_path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise ConfigError(f"config must be a mapping: {yaml_path}")
        return cls.from_dict(data)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PipelineConfig":
        """Create configuration from dictionary."""
        config = cls()

        try:
            if "audio" in data:
                config.audio = AudioConfig(**data["audio"])
            if "source" in data:
                config.source = SourceConfig(**data["source"])
            if "resample" in data:
                config.resample = ResampleConfig(**data["resample"])
            if "segmenter" in data:
                config.segmenter = SegmenterConfig(**data["segmenter"])
            if "asr" in data:
                config.asr = ASRConfig(**data["asr"])
            if "mt" in data:
                config.mt = MTConfig(**data["mt"])
            if "emitter" in data:
                config.emitter = EmitterConfig(**data["emitter"])
            if "output" in data:
                config.output = OutputConfig(**data["output"])
            if "runtime" in data:
                config.runtime = RuntimeConfig(**data["runtime"])
        except TypeError as e:
            raise ConfigError(f"unknown config key: {e}") from e

        if "log_level" in data:
            config.log_level = data["log_level"]

        return config

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to dictionary."""
        return asdict(self)

    def save_yaml(self, yaml_path: Union[str, Path]) -> None:
        """Save configuration to YAML file."""
        yaml_path = Path(yaml_path)
        yaml_path.parent.mkdir(parents=True, exist_ok=True)
        with open(yaml_path, "w", encoding="utf-8") as f:
            yaml.dump(self.to_dict(), f, default_flow_style=False)

    def validate(self) -> "PipelineConfig":
        """Check cross-field consistency. Returns self for chaining."""
        seg = self.segmenter
        if self.audio.sample_rate != SAMPLE_RATE:
            raise ConfigError(f"audio.sample_rate must be {SAMPLE_RATE}")
        if self.audio.capture_seconds <= 0:
            raise ConfigError("audio.capture_seconds must be > 0")
        if seg.window_ms <= 0:
            raise ConfigError("segmenter.window_ms must be > 0")
        if seg.min_ms < 0 or seg.silence_ms <= 0:
            raise ConfigError("segmenter.min_ms must be >= 0 and silence_ms > 0")
        if seg.max_ms <= seg.min_ms:
            raise ConfigError("segmenter.max_ms must be greater than min_ms")
        if "whisper" in self.asr.model_id.lower() and seg.max_ms > WHISPER_MAX_MS:
            raise ConfigError(f"segmenter.max_ms must be <= {WHISPER_MAX_MS} for Whisper models")
        if seg.gate not in ("rms", "adaptive"):
            raise ConfigError(f"unknown segmenter.gate: {seg.gate}")
        if self.audio.capture_seconds * 1000 < seg.window_ms:
            raise ConfigError("audio.capture_seconds must hold at least one analysis window")
        if self.resample.mix not in ("average", "first"):
            raise ConfigError(f"unknown resample.mix: {self.resample.mix}")
        if self.source.type not in ("sounddevice", "ffmpeg", "wav"):
            raise ConfigError(f"unknown source.type: {self.source.type}")
        if self.source.type == "wav" and not self.source.wav_path:
            raise ConfigError("source.wav_path is required for wav source")
        if self.asr.num_workers < 1 or self.mt.num_workers < 1:
            raise ConfigError("num_workers must be >= 1")
        if self.emitter.stall_policy not in ("wait", "skip"):
            raise ConfigError(f"unknown emitter.stall_policy: {self.emitter.stall_policy}")
        if self.emitter.max_pending < 1:
            raise ConfigError("emitter.max_pending must be >= 1")
        if self.output.jsonl and not self.output.jsonl_path:
            raise ConfigError("output.jsonl_path is required when output.jsonl is set")
        return self


def load_config(
    config_path: Optional[Union[str, Path]] = None,
    overrides: Optional[Dict[str, Any]] = None,
) -> PipelineConfig:
    """
    Load configuration with optional overrides.
    """
    if config_path is None:
        config_path = CONFIG_DIR / "default.yaml"
    else:
        config_path = Path(config_path)
        if not config_path.exists():
            raise ConfigError(f"config file not found: {config_path}")

    config_path = Path(config_path)

    if config_path.exists():
        config = PipelineConfig.from_yaml(config_path)
    else:
        config = PipelineConfig()

    if overrides:
        config = _apply_overrides(config, overrides)

    return config


def _apply_overrides(config: PipelineConfig, overrides: Dict[str, Any]) -> PipelineConfig:
    """Apply nested overrides to configuration."""
    for key, value in overrides.items():
        if value is None:
            continue
        if "." in key:
            parts = key.split(".")
            obj = config
            for part in parts[:-1]:
                if not hasattr(obj, part):
                    raise ConfigError(f"unknown config key: {key}")
                obj = getattr(obj, part)
            if not hasattr(obj, parts[-1]):
                raise ConfigError(f"unknown config key: {key}")
            setattr(obj, parts[-1], value)
        elif hasattr(config, key):
            setattr(config, key, value)
        else:
            raise ConfigError(f"unknown config key: {key}")

    return config


def get_model_cache_path(config: Optional[PipelineConfig] = None) -> Path:
    """Get the model snapshot cache directory."""
    if config is not None and config.runtime.cache_dir:
        path = Path(config.runtime.cache_dir)
    else:
        path = MODEL_CACHE_DIR / "hf_snapshots"
    path.mkdir(parents=True, exist_ok=True)
    return path
