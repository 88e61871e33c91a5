"""
Speech recognition backends.

Every backend implements the same capability: given canonical PCM,
return the recognized text, None when there is no speech, or raise
RecognitionError. The inference device is chosen once at construction.
"""

import logging
import re
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional
import numpy as np

import torch

from ..core.errors import RecognitionError
from ..core.types import SAMPLE_RATE
from ..models import load_asr_model_and_processor, resolve_device

logger = logging.getLogger(__name__)

# Whisper emits these for non-speech input, e.g. "[BLANK_AUDIO]" or "(music)"
_NON_SPEECH = re.compile(r"^\s*[\[\(][^\]\)]*[\]\)]\s*$")


def normalize_transcript(text: Optional[str]) -> Optional[str]:
    """Join decoder lines and map blank or non-speech output to None."""
    if text is None:
        return None
    joined = " ".join(line.strip() for line in text.splitlines() if line.strip())
    if not joined or _NON_SPEECH.match(joined):
        return None
    return joined


class ASRModel(ABC):
    """Abstract interface for ASR models."""

    @abstractmethod
    def recognize(self, pcm: np.ndarray, sr: int = SAMPLE_RATE) -> Optional[str]:
        """Transcribe audio to text; None means no speech detected."""
        raise NotImplementedError()


class WhisperASR(ASRModel):
    """Whisper through HuggingFace transformers, from a local snapshot."""

    def __init__(
        self,
        model_id: str = "openai/whisper-base",
        device: str = "auto",
        language: Optional[str] = "en",
        task: str = "transcribe",
        max_new_tokens: int = 128,
        offline: bool = False,
        cache_dir: Optional[Path] = None,
    ):
        self.model_id = model_id
        self.language = language
        self.task = task
        self.max_new_tokens = max_new_tokens
        self.device = torch.device(resolve_device(device))

        model, self.processor = load_asr_model_and_processor(
            model_id, offline=offline, cache_dir=cache_dir
        )
        self.model = model.to(self.device)
        self.model.eval()

        logger.info("ASR model ready: %s on %s", model_id, self.device)

    @torch.inference_mode()
    def recognize(self, pcm: np.ndarray, sr: int = SAMPLE_RATE) -> Optional[str]:
        if pcm.ndim != 1:
            raise RecognitionError("audio must be mono (1D array)")
        if len(pcm) == 0:
            return None

        try:
            inputs = self.processor(
                pcm,
                sampling_rate=sr,
                return_tensors="pt",
                return_attention_mask=True,
            )
            inputs = {k: v.to(self.device) for k, v in inputs.items()}

            generate_kwargs = {
                "max_new_tokens": self.max_new_tokens,
                "task": self.task,
                "do_sample": False,
            }
            if self.language:
                generate_kwargs["language"] = self.language

            predicted_ids = self.model.generate(**inputs, **generate_kwargs)
            text = self.processor.batch_decode(predicted_ids, skip_special_tokens=True)[0]
        except Exception as e:
            raise RecognitionError(f"{self.model_id}: {e}") from e

        return normalize_transcript(text)


class DummyASR(ASRModel):
    """Dummy ASR for testing. Returns a fixed string."""

    def __init__(self, fixed_text: Optional[str] = "Hello world"):
        self.fixed_text = fixed_text

    def recognize(self, pcm: np.ndarray, sr: int = SAMPLE_RATE) -> Optional[str]:
        return normalize_transcript(self.fixed_text)


def create_asr_model(
    model_id: str = "openai/whisper-base",
    device: str = "auto",
    offline: bool = False,
    cache_dir: Optional[Path] = None,
    **kwargs,
) -> ASRModel:
    """Factory function to create ASR model from config."""
    if model_id == "dummy":
        return DummyASR(kwargs.get("fixed_text", "Hello world"))

    return WhisperASR(
        model_id=model_id,
        device=device,
        offline=offline,
        cache_dir=cache_dir,
        **kwargs,
    )
