import numpy as np
import soundfile as sf

from livetrans import cli
from livetrans.core.errors import DeviceError


def test_missing_config_exits_with_2(tmp_path) -> None:
    assert cli.main(["--config", str(tmp_path / "missing.yaml")]) == 2


def test_invalid_config_exits_with_2(tmp_path) -> None:
    path = tmp_path / "bad.yaml"
    path.write_text("emitter:\n  stall_policy: sometimes\n", encoding="utf-8")
    assert cli.main(["--config", str(path)]) == 2


def test_device_error_exits_with_1(monkeypatch) -> None:
    class _Pipeline:
        def run(self):
            raise DeviceError("no microphone")

    monkeypatch.setattr("livetrans.realtime.build_pipeline", lambda config: _Pipeline())
    assert cli.main(["--asr-model", "dummy", "--mt-model", "dummy"]) == 1


def test_overrides_from_flags() -> None:
    args = cli.parse_args(["--wav", "a.wav", "--asr-workers", "3", "--jsonl", "o.jsonl", "--offline"])
    overrides = cli._overrides(args)
    assert overrides["source.type"] == "wav"
    assert overrides["source.wav_path"] == "a.wav"
    assert overrides["asr.num_workers"] == 3
    assert overrides["output.jsonl"] is True
    assert overrides["runtime.offline"] is True
    assert overrides["mt.num_workers"] is None


def test_wav_replay_with_dummy_models(tmp_path, capsys) -> None:
    sr = 16000
    audio = np.concatenate([
        np.zeros(int(0.2 * sr)),
        np.full(int(0.5 * sr), 0.1),
        np.zeros(sr),
    ]).astype(np.float32)
    wav = tmp_path / "talk.wav"
    sf.write(str(wav), audio, sr)
    out = tmp_path / "records.jsonl"

    code = cli.main([
        "--wav", str(wav),
        "--asr-model", "dummy",
        "--mt-model", "dummy",
        "--jsonl", str(out),
    ])

    assert code == 0
    assert "Hello world" in capsys.readouterr().out
    assert len(out.read_text(encoding="utf-8").splitlines()) == 1
