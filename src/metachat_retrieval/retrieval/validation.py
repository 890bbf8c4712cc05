"""
Input validation shared by every search entry point.

All checks run before any storage access so a rejected request performs no
partial work.
"""

from __future__ import annotations

import math
from typing import List, Optional, Sequence

from ..config import settings
from ..core.errors import InvalidInput


def resolve_top_k(top_k: Optional[int], maximum: Optional[int] = None) -> int:
    """
    Apply the platform default and bounds to a requested result count.
    """
    if top_k is None:
        return settings.default_top_k
    if isinstance(top_k, bool) or not isinstance(top_k, int):
        raise InvalidInput(f"top_k must be an integer, got {type(top_k).__name__}")
    if top_k < 1:
        raise InvalidInput(f"top_k must be >= 1, got {top_k}")
    if maximum is not None and top_k > maximum:
        raise InvalidInput(f"top_k must be <= {maximum}, got {top_k}")
    return top_k


def resolve_min_similarity(min_similarity: Optional[float]) -> float:
    if min_similarity is None:
        return settings.default_min_similarity
    if isinstance(min_similarity, bool) or not isinstance(min_similarity, (int, float)):
        raise InvalidInput("min_similarity must be a number")
    if not 0.0 <= float(min_similarity) <= 1.0:
        raise InvalidInput(f"min_similarity must be within [0, 1], got {min_similarity}")
    return float(min_similarity)


def validate_embedding(
    embedding: Optional[Sequence[float]],
    dimension: Optional[int] = None,
) -> List[float]:
    """
    Return the embedding as a list of floats.

    Raises
    ------
    InvalidInput
        If the vector is missing, has the wrong dimensionality or contains
        non-finite values.
    """
    expected = dimension or settings.embedding_dimension

    if embedding is None or isinstance(embedding, (str, bytes)):
        raise InvalidInput("query_embedding must be a sequence of numbers")

    try:
        values = [float(x) for x in embedding]
    except (TypeError, ValueError) as exc:
        raise InvalidInput("query_embedding must be a sequence of numbers") from exc

    if len(values) != expected:
        raise InvalidInput(
            f"query_embedding has dimension {len(values)}, expected {expected}"
        )

    if not all(math.isfinite(x) for x in values):
        raise InvalidInput("query_embedding contains non-finite values")

    return values


def validate_query_text(query_text: Optional[str]) -> str:
    if not isinstance(query_text, str) or not query_text.strip():
        raise InvalidInput("query_text must be a non-empty string")
    return query_text.strip()
