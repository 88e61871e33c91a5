"""Utterance segmentation."""

from .segmenter import UtteranceSegmenter

__all__ = [
    "UtteranceSegmenter",
]
