"""
Vector math shared by the retriever and the semantic cache.
"""

from typing import Sequence, Union

import numpy as np


VectorLike = Union[Sequence[float], np.ndarray]


def normalize(vector: VectorLike) -> np.ndarray:
    """L2-normalize a vector. Zero vectors are returned unchanged."""
    array = np.asarray(vector, dtype=np.float32)
    norm = np.linalg.norm(array)
    if norm == 0:
        return array
    return array / norm


def cosine_similarity(vec_a: VectorLike, vec_b: VectorLike) -> float:
    """
    Cosine similarity in [-1, 1].

    Missing vectors, mismatched dimensions and zero vectors score 0
    instead of raising.
    """
    if vec_a is None or vec_b is None:
        return 0.0

    a = np.asarray(vec_a, dtype=np.float64)
    b = np.asarray(vec_b, dtype=np.float64)
    if a.shape != b.shape or a.size == 0:
        return 0.0

    norm_a = np.linalg.norm(a)
    norm_b = np.linalg.norm(b)
    if norm_a == 0 or norm_b == 0:
        return 0.0

    similarity = float(np.dot(a, b) / (norm_a * norm_b))
    # Clamp floating point drift
    return max(-1.0, min(1.0, similarity))


def cosine_similarities(query: VectorLike, matrix: np.ndarray) -> np.ndarray:
    """Cosine similarity of one query against each row of a matrix."""
    if matrix.size == 0:
        return np.zeros(0, dtype=np.float64)

    q = np.asarray(query, dtype=np.float64)
    m = np.asarray(matrix, dtype=np.float64)
    q_norm = np.linalg.norm(q)
    row_norms = np.linalg.norm(m, axis=1)
    denom = row_norms * q_norm

    scores = np.zeros(m.shape[0], dtype=np.float64)
    valid = denom > 0
    scores[valid] = (m[valid] @ q) / denom[valid]
    return np.clip(scores, -1.0, 1.0)
