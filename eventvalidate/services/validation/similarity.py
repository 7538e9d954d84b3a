# eventvalidate/services/validation/similarity.py
"""
Photo similarity scoring.

The gateway depends only on ``SimilarityScorer``; any model that maps two
images to a score in [0, 1] can be plugged in. The default scorer is a
lightweight perceptual comparison (average hash plus grayscale histogram)
that needs nothing beyond Pillow and numpy.
"""

import io
import logging
from dataclasses import dataclass
from typing import Optional, Protocol

import numpy as np
from PIL import Image, ImageOps, UnidentifiedImageError

from eventvalidate.core.config import settings
from eventvalidate.core.exceptions import InputValidationError
from eventvalidate.schemas.enums import SimilarityBand

logger = logging.getLogger(__name__)


class SimilarityScorer(Protocol):
    def score(self, reference: bytes, live: bytes) -> float:
        """Return a similarity score in [0, 1]; higher means more alike."""
        ...


@dataclass(frozen=True)
class Thresholds:
    auto_approve: float
    manual_review: float

    def __post_init__(self):
        if not 0 <= self.manual_review <= self.auto_approve <= 1:
            raise ValueError(
                f"Invalid similarity thresholds: manual_review={self.manual_review}, "
                f"auto_approve={self.auto_approve}"
            )

    @classmethod
    def default(cls) -> "Thresholds":
        return cls(
            auto_approve=settings.SIMILARITY_AUTO_APPROVE,
            manual_review=settings.SIMILARITY_MANUAL_REVIEW,
        )

    @classmethod
    def for_event(cls, event) -> "Thresholds":
        """Per-event overrides, falling back to the configured defaults."""
        base = cls.default()
        overrides = getattr(event, "similarity_thresholds", None) or {}
        return cls(
            auto_approve=overrides.get("auto_approve", base.auto_approve),
            manual_review=overrides.get("manual_review", base.manual_review),
        )


def classify(score: float, thresholds: Optional[Thresholds] = None) -> SimilarityBand:
    thresholds = thresholds or Thresholds.default()
    if score >= thresholds.auto_approve:
        return SimilarityBand.AUTO_APPROVE
    if score >= thresholds.manual_review:
        return SimilarityBand.MANUAL_REVIEW
    return SimilarityBand.LIKELY_MISMATCH


class PerceptualHashScorer:
    def __init__(self, hash_size: int = 16, bins: int = 32, hash_weight: float = 0.6):
        self.hash_size = hash_size
        self.bins = bins
        self.hash_weight = hash_weight

    @staticmethod
    def _load(data: bytes) -> Image.Image:
        try:
            image = Image.open(io.BytesIO(data))
            image = ImageOps.exif_transpose(image)
            return image.convert("L")
        except (UnidentifiedImageError, OSError) as e:
            raise InputValidationError(
                "Photo could not be decoded as an image", reason="unreadable_photo"
            ) from e

    def _average_hash(self, image: Image.Image) -> np.ndarray:
        small = image.resize((self.hash_size, self.hash_size), Image.Resampling.LANCZOS)
        pixels = np.asarray(small, dtype=np.float64)
        return pixels > pixels.mean()

    def _histogram(self, image: Image.Image) -> np.ndarray:
        pixels = np.asarray(image, dtype=np.uint8)
        hist, _ = np.histogram(pixels, bins=self.bins, range=(0, 256))
        total = hist.sum()
        return hist / total if total else hist.astype(np.float64)

    def score(self, reference: bytes, live: bytes) -> float:
        ref_img = self._load(reference)
        live_img = self._load(live)

        ref_hash = self._average_hash(ref_img)
        live_hash = self._average_hash(live_img)
        hash_similarity = 1.0 - np.count_nonzero(ref_hash != live_hash) / ref_hash.size

        hist_similarity = float(
            np.minimum(self._histogram(ref_img), self._histogram(live_img)).sum()
        )

        combined = self.hash_weight * hash_similarity + (1 - self.hash_weight) * hist_similarity
        result = round(min(max(combined, 0.0), 1.0), 4)
        logger.debug(
            f"Similarity hash={hash_similarity:.3f} hist={hist_similarity:.3f} -> {result}"
        )
        return result
