"""
Machine translation backends.

Same capability shape as recognition: text in, text out, or
TranslationError.
"""

import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional

import torch

from ..core.errors import TranslationError
from ..models import load_mt_model_and_tokenizer, resolve_device

logger = logging.getLogger(__name__)


def is_english(text: str) -> bool:
    """True when more than half of the non-space characters are ASCII letters."""
    letters = sum(1 for c in text if c.isascii() and c.isalpha())
    total = sum(1 for c in text if not c.isspace())
    if total == 0:
        return False
    return letters / total > 0.5


class MTModel(ABC):
    """Abstract interface for machine translation models."""

    @abstractmethod
    def translate(self, text: str) -> str:
        """Translate text from source to target language."""
        raise NotImplementedError()


class PipelineMT(MTModel):
    """Seq2seq MT (Marian, M2M100, NLLB) from a local snapshot."""

    def __init__(
        self,
        model_id: str = "Helsinki-NLP/opus-mt-en-zh",
        device: str = "auto",
        src_lang: Optional[str] = None,
        tgt_lang: Optional[str] = None,
        max_length: int = 512,
        num_beams: int = 4,
        skip_non_english: bool = True,
        offline: bool = False,
        cache_dir: Optional[Path] = None,
    ):
        self.model_id = model_id
        self.src_lang = src_lang
        self.tgt_lang = tgt_lang
        self.max_length = max_length
        self.num_beams = num_beams
        self.skip_non_english = skip_non_english
        self.device = torch.device(resolve_device(device))

        model, self.tokenizer = load_mt_model_and_tokenizer(
            model_id, offline=offline, cache_dir=cache_dir
        )
        self.model = model.to(self.device)
        self.model.eval()

        if src_lang and hasattr(self.tokenizer, "src_lang"):
            self.tokenizer.src_lang = src_lang

        logger.info("MT model ready: %s on %s", model_id, self.device)

    @torch.inference_mode()
    def translate(self, text: str) -> str:
        if not text or not text.strip():
            return ""
        if self.skip_non_english and not is_english(text):
            logger.debug("Passing through non-English text: %r", text)
            return text

        try:
            inputs = self.tokenizer(
                [text],
                return_tensors="pt",
                truncation=True,
                padding=True,
                max_length=self.max_length,
            )
            inputs = {k: v.to(self.device) for k, v in inputs.items()}

            generate_kwargs = {
                "max_new_tokens": self.max_length,
                "num_beams": self.num_beams,
            }

            if self.tgt_lang and hasattr(self.tokenizer, "get_lang_id"):
                generate_kwargs["forced_bos_token_id"] = self.tokenizer.get_lang_id(self.tgt_lang)
            elif self.tgt_lang and hasattr(self.tokenizer, "convert_tokens_to_ids"):
                generate_kwargs["forced_bos_token_id"] = self.tokenizer.convert_tokens_to_ids(
                    self.tgt_lang
                )

            output_ids = self.model.generate(**inputs, **generate_kwargs)
            output_text = self.tokenizer.batch_decode(output_ids, skip_special_tokens=True)[0]
        except Exception as e:
            raise TranslationError(f"{self.model_id}: {e}") from e

        return output_text.strip()


class DummyMT(MTModel):
    """Dummy MT for testing. Returns input with a prefix."""

    def __init__(self, prefix: str = "[MT] "):
        self.prefix = prefix

    def translate(self, text: str) -> str:
        return f"{self.prefix}{text}"


def create_mt_model(
    model_id: str = "Helsinki-NLP/opus-mt-en-zh",
    device: str = "auto",
    src_lang: Optional[str] = None,
    tgt_lang: Optional[str] = None,
    offline: bool = False,
    cache_dir: Optional[Path] = None,
    **kwargs,
) -> MTModel:
    """Factory function to create MT model from config."""
    if model_id == "dummy":
        return DummyMT(kwargs.get("prefix", "[MT] "))

    return PipelineMT(
        model_id=model_id,
        device=device,
        src_lang=src_lang,
        tgt_lang=tgt_lang,
        offline=offline,
        cache_dir=cache_dir,
        **kwargs,
    )
