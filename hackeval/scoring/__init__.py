"""Scoring of submissions against weighted criteria."""

from .normalizer import NormalizedTotal, ScoreEntry, compute_total
from .engine import EvaluationEngine, EvaluationOutcome

__all__ = [
    "EvaluationEngine",
    "EvaluationOutcome",
    "NormalizedTotal",
    "ScoreEntry",
    "compute_total",
]
