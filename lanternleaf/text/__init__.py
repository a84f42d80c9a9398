"""Text pipeline: sentence segmentation, pagination and TTS normalization."""

from lanternleaf.text.normalizer import NormalizerConfig, TextNormalizer
from lanternleaf.text.paginator import paginate
from lanternleaf.text.segmenter import SentenceSegmenter

__all__ = ["NormalizerConfig", "SentenceSegmenter", "TextNormalizer", "paginate"]
