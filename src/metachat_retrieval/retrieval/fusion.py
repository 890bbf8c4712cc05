"""
Hybrid Ranker

Fuses vector and keyword result lists into one deduplicated ranking.

Algorithm
---------
1. Min-max normalise each input list on its own to [0, 1]. A list whose
   scores are all equal (including a single-element list) maps to 1.0.
2. combined = wv * norm_vector + wk * norm_keyword, a missing contribution
   counting as 0, with wv + wk = 1.
3. Deduplicate by chunk id, order by combined desc then chunk id asc,
   truncate to top_k.

A chunk found by both modalities is typed `hybrid`; otherwise it keeps the
type of the list it came from.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence

from ..config import settings
from ..core.errors import InvalidInput
from .models import DocumentChunk, RetrievalResult, RetrievalType, ranking_key


_WEIGHT_TOLERANCE = 1e-9


@dataclass
class _Candidate:
    chunk: DocumentChunk
    vector: Optional[float] = None
    keyword: Optional[float] = None


def resolve_weights(
    vector_weight: Optional[float] = None,
    keyword_weight: Optional[float] = None,
) -> tuple[float, float]:
    """
    Fill in missing weights and check they form a convex combination.

    Supplying only one weight derives the other as its complement.
    """
    if vector_weight is None and keyword_weight is None:
        return settings.vector_weight, settings.keyword_weight
    if vector_weight is None:
        vector_weight = 1.0 - keyword_weight
    if keyword_weight is None:
        keyword_weight = 1.0 - vector_weight

    if vector_weight < 0 or keyword_weight < 0:
        raise InvalidInput("fusion weights must be non-negative")
    if abs(vector_weight + keyword_weight - 1.0) > _WEIGHT_TOLERANCE:
        raise InvalidInput(
            f"fusion weights must sum to 1, got {vector_weight} + {keyword_weight}"
        )
    return float(vector_weight), float(keyword_weight)


def normalize_scores(results: Sequence[RetrievalResult]) -> Dict[str, float]:
    """
    Min-max normalise one list's scores, keyed by chunk id.

    Duplicate ids keep their best raw score.
    """
    best: Dict[str, float] = {}
    for r in results:
        cid = r.chunk.id
        if cid not in best or r.score > best[cid]:
            best[cid] = r.score

    if not best:
        return {}

    low = min(best.values())
    high = max(best.values())
    span = high - low

    if span == 0:
        return {cid: 1.0 for cid in best}

    return {cid: (score - low) / span for cid, score in best.items()}


def fuse(
    vector_results: Sequence[RetrievalResult],
    keyword_results: Sequence[RetrievalResult],
    top_k: int,
    vector_weight: Optional[float] = None,
    keyword_weight: Optional[float] = None,
) -> List[RetrievalResult]:
    """
    Merge the two modality lists into a single ranked list.

    Parameters
    ----------
    vector_results, keyword_results : Sequence[RetrievalResult]
        Raw modality outputs; either may be empty.
    top_k : int
        Maximum length of the output; must be >= 1.
    vector_weight, keyword_weight : Optional[float]
        Override the configured weights.

    Returns
    -------
    List[RetrievalResult]
        Scores are the combined values in [0, 1].
    """
    if isinstance(top_k, bool) or not isinstance(top_k, int) or top_k < 1:
        raise InvalidInput(f"top_k must be an integer >= 1, got {top_k!r}")

    wv, wk = resolve_weights(vector_weight, keyword_weight)

    norm_vector = normalize_scores(vector_results)
    norm_keyword = normalize_scores(keyword_results)

    candidates: Dict[str, _Candidate] = {}
    for r in vector_results:
        cand = candidates.setdefault(r.chunk.id, _Candidate(chunk=r.chunk))
        cand.vector = norm_vector[r.chunk.id]
    for r in keyword_results:
        cand = candidates.setdefault(r.chunk.id, _Candidate(chunk=r.chunk))
        cand.keyword = norm_keyword[r.chunk.id]

    fused: List[RetrievalResult] = []
    for cand in candidates.values():
        if cand.vector is not None and cand.keyword is not None:
            kind = RetrievalType.HYBRID
        elif cand.vector is not None:
            kind = RetrievalType.VECTOR
        else:
            kind = RetrievalType.KEYWORD

        combined = wv * (cand.vector or 0.0) + wk * (cand.keyword or 0.0)
        fused.append(RetrievalResult(chunk=cand.chunk, score=combined, type=kind))

    fused.sort(key=ranking_key)
    return fused[:top_k]
