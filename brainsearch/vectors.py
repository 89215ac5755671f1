"""
Vector math for embedding comparison.
"""

import math
from typing import Sequence

from .errors import ValidationError


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """
    Cosine similarity ``dot(a, b) / (|a| * |b|)``.

    Similarity is a best-effort ranking signal: a zero-magnitude vector or a
    non-finite result yields ``0.0`` instead of NaN. The result is not
    clamped; callers treat negative values as "no match".

    Raises:
        ValidationError: If either vector is empty or their lengths differ.
    """
    if not a or not b:
        raise ValidationError("Cannot compare empty vectors")
    if len(a) != len(b):
        raise ValidationError(
            f"Vector dimension mismatch: {len(a)} != {len(b)}"
        )

    dot = sum(x * y for x, y in zip(a, b))
    norm_a = math.sqrt(sum(x * x for x in a))
    norm_b = math.sqrt(sum(x * x for x in b))
    if norm_a == 0 or norm_b == 0:
        return 0.0

    similarity = dot / (norm_a * norm_b)
    if not math.isfinite(similarity):
        return 0.0
    return similarity


def is_valid_vector(vector, dimension: int | None = None) -> bool:
    """Check that ``vector`` is a non-empty sequence of finite numbers.

    When ``dimension`` is given the length must match it exactly.
    """
    if vector is None or isinstance(vector, (str, bytes)):
        return False
    try:
        values = list(vector)
    except TypeError:
        return False
    if not values:
        return False
    if dimension is not None and len(values) != dimension:
        return False
    for v in values:
        if isinstance(v, bool) or not isinstance(v, (int, float)):
            return False
        if not math.isfinite(v):
            return False
    return True
