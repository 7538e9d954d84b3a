from .similarity import (
    PerceptualHashScorer,
    SimilarityScorer,
    Thresholds,
    classify,
)
