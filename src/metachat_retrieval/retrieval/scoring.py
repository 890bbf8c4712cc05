"""
Scoring functions for the exact (brute-force) search baseline.
"""

import math
import re
from collections import Counter
from typing import Dict, List, Sequence

import numpy as np


_TOKEN_RE = re.compile(r"[^\W_]+", re.UNICODE)


def tokenize(text: str) -> List[str]:
    """Casefold and split into word tokens, dropping punctuation."""
    return _TOKEN_RE.findall(text.casefold())


def cosine_similarities(query: Sequence[float], matrix: np.ndarray) -> np.ndarray:
    """
    Cosine similarity of one query against every row of ``matrix``.

    Rows with zero norm score 0.
    """
    q = np.asarray(query, dtype=np.float64)
    q_norm = np.linalg.norm(q)
    if q_norm == 0 or matrix.size == 0:
        return np.zeros(matrix.shape[0], dtype=np.float64)

    row_norms = np.linalg.norm(matrix, axis=1)
    dots = matrix @ q
    with np.errstate(divide="ignore", invalid="ignore"):
        sims = dots / (row_norms * q_norm)
    return np.where(row_norms == 0, 0.0, sims)


def tfidf_scores(
    query_text: str,
    documents: Dict[str, str],
) -> Dict[str, float]:
    """
    Score each document against the query.

    score(d) = sum over distinct query terms t of tf(t, d) * ln(1 + N / df(t))

    Only documents sharing at least one term with the query are returned.
    """
    query_terms = set(tokenize(query_text))
    if not query_terms or not documents:
        return {}

    term_counts = {doc_id: Counter(tokenize(text)) for doc_id, text in documents.items()}
    total = len(documents)

    df: Dict[str, int] = {}
    for counts in term_counts.values():
        for term in query_terms:
            if term in counts:
                df[term] = df.get(term, 0) + 1

    scores: Dict[str, float] = {}
    for doc_id, counts in term_counts.items():
        score = 0.0
        for term in query_terms:
            tf = counts.get(term, 0)
            if tf:
                score += tf * math.log(1.0 + total / df[term])
        if score > 0:
            scores[doc_id] = score

    return scores
