# core/similarity_scorer.py

from collections import OrderedDict
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from config import SignalWeights
from core.image_signals import (
    ImageFeatures,
    decode_image,
    prepare_image,
    luminance_histogram_similarity,
    structural_similarity,
    mean_color_similarity,
    shape_similarity,
    pattern_similarity,
    color_histogram_similarity,
    texture_similarity,
    symmetry_similarity,
    PATTERN_GRID,
)

SIGNALS: Dict[str, Callable[[ImageFeatures, ImageFeatures], Optional[float]]] = OrderedDict([
    ('luminance_histogram', luminance_histogram_similarity),
    ('structural', structural_similarity),
    ('mean_color', mean_color_similarity),
    ('shape', shape_similarity),
    ('pattern', pattern_similarity),
    ('color_histogram', color_histogram_similarity),
    ('texture', texture_similarity),
    ('symmetry', symmetry_similarity),
])


@dataclass
class SimilarityBreakdown:
    """Combined score plus the individual signals that produced it"""
    score: float
    signals: Dict[str, Optional[float]]


class SimilarityScorer:
    """
    Heuristic visual similarity between two photos

    Both images are resampled to the same square working resolution, scored
    by several independent signals, and the signals are folded into one
    number in [0, 1]: a weighted mean of the signals that have evidence,
    lifted to rescue_factor times the strongest signal when that is higher.
    """

    def __init__(self,
                 weights: SignalWeights = None,
                 working_size: int = 64,
                 rescue_factor: float = 0.7):
        self.weights = weights or SignalWeights()
        self.working_size = working_size
        self.rescue_factor = rescue_factor
        self._validate()

    def _validate(self):
        if self.working_size < PATTERN_GRID * 2 or self.working_size % PATTERN_GRID:
            raise ValueError(
                f"working_size must be a multiple of {PATTERN_GRID} "
                f"and at least {PATTERN_GRID * 2}, got {self.working_size}"
            )

        weights = self.weights.as_dict()
        unknown = set(weights) - set(SIGNALS)
        if unknown:
            raise ValueError(f"Unknown signal weights: {sorted(unknown)}")
        if any(w < 0 for w in weights.values()):
            raise ValueError("Signal weights must be non-negative")
        if sum(weights.values()) <= 0:
            raise ValueError("At least one signal weight must be positive")
        if not 0.0 <= self.rescue_factor <= 1.0:
            raise ValueError("rescue_factor must be within [0, 1]")

    def prepare(self, image_bytes: bytes) -> ImageFeatures:
        """Decode and extract features; raises ImageDecodeError"""
        return prepare_image(decode_image(image_bytes), self.working_size)

    def signals(self, a: ImageFeatures, b: ImageFeatures) -> Dict[str, Optional[float]]:
        """Evaluate every signal with a positive weight"""
        weights = self.weights.as_dict()
        return OrderedDict(
            (name, func(a, b))
            for name, func in SIGNALS.items()
            if weights[name] > 0
        )

    def combine(self, signals: Dict[str, Optional[float]]) -> float:
        """Fold individual signals into a single clamped score"""
        weights = self.weights.as_dict()
        contributing = {
            name: value for name, value in signals.items()
            if value is not None and weights.get(name, 0) > 0
        }
        if not contributing:
            return 0.0

        total_weight = sum(weights[name] for name in contributing)
        weighted = sum(weights[name] * value
                       for name, value in contributing.items()) / total_weight

        # A single strong signal should not be drowned out by weak ones
        rescued = self.rescue_factor * max(contributing.values())

        return float(min(1.0, max(0.0, max(weighted, rescued))))

    def score(self, a: ImageFeatures, b: ImageFeatures) -> float:
        """Similarity score for two prepared images"""
        return self.combine(self.signals(a, b))

    def compare(self, image_a: bytes, image_b: bytes) -> SimilarityBreakdown:
        """Score two encoded images and report each signal"""
        a = self.prepare(image_a)
        b = self.prepare(image_b)
        signals = self.signals(a, b)
        return SimilarityBreakdown(score=self.combine(signals), signals=dict(signals))
