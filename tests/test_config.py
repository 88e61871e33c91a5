import pytest

from livetrans.core.config import (
    CONFIG_DIR,
    PipelineConfig,
    get_model_cache_path,
    load_config,
)
from livetrans.core.errors import ConfigError


def test_default_yaml_matches_defaults() -> None:
    config = load_config()
    assert (CONFIG_DIR / "default.yaml").exists()
    assert config.asr.model_id == "openai/whisper-base"
    assert config.mt.model_id == "Helsinki-NLP/opus-mt-en-zh"
    assert config.segmenter.max_ms == 20000
    assert config.emitter.stall_policy == "wait"
    config.validate()


def test_from_dict_partial_sections() -> None:
    config = PipelineConfig.from_dict({"asr": {"num_workers": 3}, "log_level": "DEBUG"})
    assert config.asr.num_workers == 3
    assert config.asr.model_id == "openai/whisper-base"
    assert config.mt.num_workers == 1
    assert config.log_level == "DEBUG"


def test_unknown_key_is_config_error() -> None:
    with pytest.raises(ConfigError):
        PipelineConfig.from_dict({"segmenter": {"silence_seconds": 1}})


def test_yaml_round_trip(tmp_path) -> None:
    config = PipelineConfig()
    config.emitter.stall_policy = "skip"
    config.segmenter.gate = "adaptive"
    path = tmp_path / "cfg" / "pipeline.yaml"
    config.save_yaml(path)

    loaded = PipelineConfig.from_yaml(path)
    assert loaded.to_dict() == config.to_dict()


def test_non_mapping_yaml_rejected(tmp_path) -> None:
    path = tmp_path / "bad.yaml"
    path.write_text("- just\n- a list\n", encoding="utf-8")
    with pytest.raises(ConfigError):
        PipelineConfig.from_yaml(path)


def test_overrides_use_dotted_keys_and_skip_none(tmp_path) -> None:
    path = tmp_path / "c.yaml"
    path.write_text("asr:\n  num_workers: 2\n", encoding="utf-8")

    config = load_config(path, {"asr.num_workers": None, "mt.num_workers": 4, "log_level": "WARNING"})
    assert config.asr.num_workers == 2
    assert config.mt.num_workers == 4
    assert config.log_level == "WARNING"

    with pytest.raises(ConfigError):
        load_config(path, {"asr.beam_width": 3})
    with pytest.raises(ConfigError):
        load_config(path, {"foo.bar": 1})
    with pytest.raises(ConfigError):
        load_config(path, {"asr.num_workers.extra": 1})


def test_missing_explicit_config_file(tmp_path) -> None:
    with pytest.raises(ConfigError):
        load_config(tmp_path / "nope.yaml")


@pytest.mark.parametrize(
    "section, key, value",
    [
        ("segmenter", "max_ms", 100),
        ("segmenter", "gate", "webrtc"),
        ("emitter", "stall_policy", "drop"),
        ("emitter", "max_pending", 0),
        ("asr", "num_workers", 0),
        ("source", "type", "alsa"),
        ("resample", "mix", "sum"),
        ("audio", "sample_rate", 44100),
    ],
)
def test_validate_rejects_inconsistent_values(section, key, value) -> None:
    config = PipelineConfig()
    setattr(getattr(config, section), key, value)
    with pytest.raises(ConfigError):
        config.validate()


def test_wav_source_requires_path() -> None:
    config = PipelineConfig()
    config.source.type = "wav"
    with pytest.raises(ConfigError):
        config.validate()
    config.source.wav_path = "talk.wav"
    assert config.validate() is config



def test_whisper_segment_limit() -> None:
    config = PipelineConfig()
    config.segmenter.max_ms = 30000
    assert config.validate() is config

    config.segmenter.max_ms = 31000
    with pytest.raises(ConfigError):
        config.validate()

    config.asr.model_id = "dummy"
    assert config.validate() is config

def test_model_cache_path_honors_config(tmp_path) -> None:
    config = PipelineConfig()
    config.runtime.cache_dir = str(tmp_path / "models")
    path = get_model_cache_path(config)
    assert path == tmp_path / "models"
    assert path.is_dir()
