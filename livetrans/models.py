"""
Model acquisition and loading.

Snapshots are fetched from the HuggingFace Hub into a project cache and
loaded from there with local_files_only, so a warm cache works offline.
Loaded weights are cached per process and shared between workers.
"""

from __future__ import annotations

import logging
import os
import threading
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

os.environ.setdefault("HF_HUB_DISABLE_SYMLINKS_WARNING", "1")

import torch
from huggingface_hub import snapshot_download

from .core.config import get_model_cache_path

logger = logging.getLogger(__name__)

_HF_LOADED_ASR: Dict[str, Tuple[Any, Any]] = {}
_HF_LOADED_MT: Dict[str, Tuple[Any, Any]] = {}
_LOAD_LOCK = threading.Lock()


def resolve_device(device: Optional[str] = "auto") -> str:
    """Pick the inference device once, at startup."""
    if device in (None, "", "auto"):
        return "cuda" if torch.cuda.is_available() else "cpu"
    if device.startswith("cuda") and not torch.cuda.is_available():
        logger.warning("CUDA requested but not available, using CPU")
        return "cpu"
    return device


def ensure_hf_snapshot(
    repo_id: str,
    *,
    revision: Optional[str] = None,
    offline: bool = False,
    cache_dir: Optional[Path] = None,
) -> Path:
    """Ensure the full HF repo snapshot is present in our project cache."""
    cache = Path(cache_dir) if cache_dir else get_model_cache_path()
    cache.mkdir(parents=True, exist_ok=True)

    try:
        local_dir = snapshot_download(
            repo_id=repo_id,
            revision=revision,
            cache_dir=str(cache),
            local_files_only=True,
        )
        logger.debug("Using cached snapshot for %s", repo_id)
    except Exception:
        if offline:
            raise
        logger.info("Downloading %s into %s", repo_id, cache)
        local_dir = snapshot_download(
            repo_id=repo_id,
            revision=revision,
            cache_dir=str(cache),
        )
    return Path(local_dir)


def load_asr_model_and_processor(
    repo_id: str,
    *,
    revision: Optional[str] = None,
    offline: bool = False,
    cache_dir: Optional[Path] = None,
) -> Tuple[Any, Any]:
    """Load Whisper model + processor from local snapshot directory."""
    key = f"{repo_id}@{revision or 'default'}"
    with _LOAD_LOCK:
        if key in _HF_LOADED_ASR:
            return _HF_LOADED_ASR[key]

        local_dir = ensure_hf_snapshot(
            repo_id,
            revision=revision,
            offline=offline,
            cache_dir=cache_dir,
        )

        from transformers import WhisperProcessor, WhisperForConditionalGeneration
        processor = WhisperProcessor.from_pretrained(str(local_dir), local_files_only=True)
        model = WhisperForConditionalGeneration.from_pretrained(str(local_dir), local_files_only=True)

        _HF_LOADED_ASR[key] = (model, processor)
        return model, processor


def load_mt_model_and_tokenizer(
    repo_id: str,
    *,
    revision: Optional[str] = None,
    offline: bool = False,
    cache_dir: Optional[Path] = None,
) -> Tuple[Any, Any]:
    """Load MT model + tokenizer from local snapshot directory."""
    key = f"{repo_id}@{revision or 'default'}"
    with _LOAD_LOCK:
        if key in _HF_LOADED_MT:
            return _HF_LOADED_MT[key]

        local_dir = ensure_hf_snapshot(
            repo_id,
            revision=revision,
            offline=offline,
            cache_dir=cache_dir,
        )

        if "m2m100" in repo_id.lower():
            from transformers import M2M100ForConditionalGeneration, M2M100Tokenizer
            tokenizer = M2M100Tokenizer.from_pretrained(str(local_dir), local_files_only=True)
            model = M2M100ForConditionalGeneration.from_pretrained(str(local_dir), local_files_only=True)
        elif "nllb" in repo_id.lower():
            from transformers import AutoModelForSeq2SeqLM, AutoTokenizer
            tokenizer = AutoTokenizer.from_pretrained(str(local_dir), local_files_only=True)
            model = AutoModelForSeq2SeqLM.from_pretrained(str(local_dir), local_files_only=True)
        else:
            from transformers import MarianMTModel, MarianTokenizer
            tokenizer = MarianTokenizer.from_pretrained(str(local_dir), local_files_only=True)
            model = MarianMTModel.from_pretrained(str(local_dir), local_files_only=True)

        _HF_LOADED_MT[key] = (model, tokenizer)
        return model, tokenizer

