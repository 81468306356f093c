"""
Similarity scoring between two embeddings.

cosine(a, b) = dot(a, b) / (|a| * |b|), range [-1, 1]
score        = round_half_up(((cosine + 1) / 2) * 100), range [0, 100]
"""
from __future__ import annotations
import math
from typing import Sequence
import numpy as np
from .errors import DimensionMismatch


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """
    Cosine similarity of two equal-length vectors.
    Raises DimensionMismatch on unequal lengths; a zero-magnitude vector scores 0.
    """
    if len(a) != len(b):
        raise DimensionMismatch(len(a), len(b))

    va = np.asarray(a, dtype=np.float64)
    vb = np.asarray(b, dtype=np.float64)
    norm_a = float(np.linalg.norm(va))
    norm_b = float(np.linalg.norm(vb))
    if norm_a == 0.0 or norm_b == 0.0:
        return 0.0
    return float(np.dot(va, vb) / (norm_a * norm_b))


def to_percentage(similarity: float) -> int:
    """Map cosine range [-1, 1] onto [0, 100], rounding halves up."""
    scaled = ((similarity + 1) / 2) * 100
    return min(100, max(0, math.floor(scaled + 0.5)))


def score(a: Sequence[float], b: Sequence[float]) -> int:
    return to_percentage(cosine_similarity(a, b))
