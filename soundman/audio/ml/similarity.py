"""Bounded similarity between a feature vector and a set of reference vectors."""
import numpy as np
from typing import Sequence
from soundman.audio.models import FeatureVector
from soundman.core.logging import logger


def vector_similarity(vector: FeatureVector, reference: FeatureVector) -> float:
    """
    Mean per-dimension similarity 1 / (1 + |difference|).

    Each term lies in (0, 1], so the score needs no feature normalization and a
    single outlying dimension can pull the mean down by at most 1/len(vector).

    Args:
        vector: Query feature vector
        reference: Reference vector of the same length

    Returns:
        Similarity in (0, 1]
    """
    diff = np.abs(np.asarray(vector, dtype=np.float64) - np.asarray(reference, dtype=np.float64))
    return float(np.mean(1.0 / (1.0 + diff)))


def similarity(vector: FeatureVector, references: Sequence[FeatureVector]) -> float:
    """
    Average similarity of `vector` against every reference in the set.

    References whose length differs from `vector` are skipped (they still count
    towards the divisor). An empty set scores 0.

    Args:
        vector: Query feature vector
        references: Reference vectors (e.g. a pattern collection or cluster buffer)

    Returns:
        Score clamped to [0, 1]
    """
    if references is None or len(references) == 0:
        return 0.0

    vector = np.asarray(vector, dtype=np.float64)
    if vector.size == 0:
        return 0.0

    total = 0.0
    for reference in references:
        reference = np.asarray(reference, dtype=np.float64)
        if reference.shape != vector.shape:
            logger.debug(f"Skipping reference with {reference.size} dimensions (expected {vector.size})")
            continue
        total += vector_similarity(vector, reference)

    score = total / len(references)
    if not np.isfinite(score):
        return 0.0
    return float(min(1.0, max(0.0, score)))
