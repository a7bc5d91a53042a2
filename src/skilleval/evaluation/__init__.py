"""Evaluation package: activation and quality scoring."""

from __future__ import annotations

from skilleval.evaluation.scorer import QualityScore, score_activation, score_quality

__all__ = [
    "QualityScore",
    "score_activation",
    "score_quality",
]
