"""Command-line entry point for the live translation pipeline."""

from __future__ import annotations

import argparse
import logging
import sys
from typing import List, Optional

from .core.config import load_config
from .core.errors import ConfigError, DeviceError

_LOGGER = logging.getLogger(__name__)


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="livetrans",
        description="Live speech transcription and translation",
    )
    parser.add_argument("--config", default=None, help="Config YAML path")
    parser.add_argument("--list-devices", action="store_true", help="List audio devices and exit")
    parser.add_argument(
        "--source",
        choices=["sounddevice", "ffmpeg", "wav"],
        default=None,
        help="Audio source (overrides config)",
    )
    parser.add_argument("--wav", default=None, help="Audio file to replay (implies --source wav)")
    parser.add_argument("--device", default=None, help="Input device name or index")
    parser.add_argument("--asr-model", default=None, help="ASR model id, or 'dummy'")
    parser.add_argument("--mt-model", default=None, help="MT model id, or 'dummy'")
    parser.add_argument("--asr-workers", type=int, default=None, help="Recognition worker threads")
    parser.add_argument("--mt-workers", type=int, default=None, help="Translation worker threads")
    parser.add_argument(
        "--stall-policy",
        choices=["wait", "skip"],
        default=None,
        help="What to do when an utterance is overdue",
    )
    parser.add_argument("--jsonl", default=None, help="Also write records to this JSONL file")
    parser.add_argument("--offline", action="store_true", help="Never download models")
    parser.add_argument("--log-level", default=None, help="DEBUG, INFO, WARNING, ERROR")
    return parser.parse_args(argv)


def _overrides(args: argparse.Namespace) -> dict:
    overrides = {
        "source.type": "wav" if args.wav else args.source,
        "source.wav_path": args.wav,
        "source.device": args.device,
        "asr.model_id": args.asr_model,
        "mt.model_id": args.mt_model,
        "asr.num_workers": args.asr_workers,
        "mt.num_workers": args.mt_workers,
        "emitter.stall_policy": args.stall_policy,
        "log_level": args.log_level,
    }
    if args.jsonl:
        overrides["output.jsonl"] = True
        overrides["output.jsonl_path"] = args.jsonl
    if args.offline:
        overrides["runtime.offline"] = True
    return overrides


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)

    if args.list_devices:
        from .sources.source import list_devices

        print(list_devices())
        return 0

    try:
        config = load_config(args.config, _overrides(args)).validate()
    except ConfigError as e:
        print(f"[ERROR] Invalid configuration: {e}", file=sys.stderr)
        return 2

    logging.basicConfig(
        level=getattr(logging, str(config.log_level).upper(), logging.INFO),
        format="[%(levelname)s] %(message)s",
    )

    from .realtime import build_pipeline

    try:
        pipeline = build_pipeline(config)
        _LOGGER.info(
            "ASR: %s x%d | MT: %s x%d | source: %s",
            config.asr.model_id,
            config.asr.num_workers,
            config.mt.model_id,
            config.mt.num_workers,
            config.source.type,
        )
        _LOGGER.info("Press Ctrl+C to stop")
        pipeline.run()
    except ConfigError as e:
        _LOGGER.error("Invalid configuration: %s", e)
        return 2
    except DeviceError as e:
        _LOGGER.error("Audio device error: %s", e)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
