"""
Vector helpers used by fusion and ranking: cosine similarity, L2 normalization
and cheap dimension alignment.

Vectors enter and leave as plain ``List[float]``; numpy is only used for the
arithmetic.
"""

import math
from typing import List, Sequence

import numpy as np

from ..exceptions import DimensionMismatchError, ValidationError


def _as_array(vector: Sequence[float]) -> np.ndarray:
    return np.asarray(vector, dtype=np.float64)


def l2_norm(vector: Sequence[float]) -> float:
    """Euclidean length of ``vector``."""
    return float(np.linalg.norm(_as_array(vector)))


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine similarity between two equal-length vectors.

    Args:
        a: First vector
        b: Second vector

    Returns:
        Similarity in [-1, 1], or 0.0 when either vector has zero norm

    Raises:
        DimensionMismatchError: If the vectors differ in length
    """
    if len(a) != len(b):
        raise DimensionMismatchError(f'Cannot compare vectors of dimension {len(a)} and {len(b)}')

    vec_a = _as_array(a)
    vec_b = _as_array(b)
    norm_a = np.linalg.norm(vec_a)
    norm_b = np.linalg.norm(vec_b)
    if norm_a == 0 or norm_b == 0:
        return 0.0

    similarity = float(np.dot(vec_a, vec_b) / (norm_a * norm_b))
    # Rounding can push identical vectors marginally past 1
    return max(-1.0, min(1.0, similarity))


def normalize(vector: Sequence[float]) -> List[float]:
    """Scale ``vector`` to unit length; a zero vector is returned unchanged."""
    arr = _as_array(vector)
    norm = np.linalg.norm(arr)
    if norm == 0:
        return list(vector)
    return (arr / norm).tolist()


def project_to_dimension(vector: Sequence[float], target_dim: int) -> List[float]:
    """Align ``vector`` to ``target_dim`` entries.

    Shorter vectors are zero-padded. Longer vectors are split into contiguous
    chunks of ``ceil(len / target_dim)`` values and each chunk is averaged, so
    the output always has exactly ``target_dim`` entries. This is a lossy
    downsample, not a learned projection.

    Args:
        vector: Input vector
        target_dim: Desired output length

    Returns:
        Vector of length ``target_dim``

    Raises:
        ValidationError: If target_dim is smaller than 1
    """
    if target_dim < 1:
        raise ValidationError(f'target_dim must be at least 1, got {target_dim}')

    length = len(vector)
    if length == target_dim:
        return list(vector)

    arr = _as_array(vector)
    if length < target_dim:
        return np.concatenate([arr, np.zeros(target_dim - length)]).tolist()

    chunk_size = math.ceil(length / target_dim)
    projected = np.zeros(target_dim)
    for i in range(target_dim):
        start = i * chunk_size
        end = min(start + chunk_size, length)
        # Trailing chunks can start past the end when length is not a multiple of chunk_size
        if start < end:
            projected[i] = arr[start:end].mean()
    return projected.tolist()


def average_vectors(vectors: Sequence[Sequence[float]]) -> List[float]:
    """Element-wise mean of equal-length vectors.

    Raises:
        ValidationError: If no vectors are given
        DimensionMismatchError: If the vectors differ in length
    """
    if not vectors:
        raise ValidationError('Cannot average an empty list of vectors')

    dimension = len(vectors[0])
    for vector in vectors:
        if len(vector) != dimension:
            raise DimensionMismatchError(f'Cannot average vectors of dimension {dimension} and {len(vector)}')

    return np.mean(np.vstack([_as_array(v) for v in vectors]), axis=0).tolist()
