import math

import numpy as np

from metachat_retrieval.retrieval.scoring import cosine_similarities, tfidf_scores, tokenize


def test_tokenize_casefolds_and_drops_punctuation():
    assert tokenize("Refund-Policy, REFUNDS!") == ["refund", "policy", "refunds"]


def test_cosine_similarities_against_matrix():
    matrix = np.array([[1.0, 0.0], [0.0, 2.0], [1.0, 1.0]])

    sims = cosine_similarities([1.0, 0.0], matrix)

    assert np.allclose(sims, [1.0, 0.0, 1 / math.sqrt(2)])


def test_zero_norm_rows_and_queries_score_zero():
    matrix = np.array([[0.0, 0.0], [3.0, 4.0]])

    assert np.allclose(cosine_similarities([3.0, 4.0], matrix), [0.0, 1.0])
    assert np.allclose(cosine_similarities([0.0, 0.0], matrix), [0.0, 0.0])


def test_tfidf_prefers_rarer_terms():
    scores = tfidf_scores(
        "refund shipping",
        {"a": "refund policy", "b": "shipping policy", "c": "shipping times", "d": "contact"},
    )

    assert set(scores) == {"a", "b", "c"}
    assert scores["a"] == math.log(1 + 4 / 1)
    assert scores["b"] == scores["c"] == math.log(1 + 4 / 2)
    assert scores["a"] > scores["b"]


def test_tfidf_without_query_terms():
    assert tfidf_scores("  ...  ", {"a": "refund"}) == {}
