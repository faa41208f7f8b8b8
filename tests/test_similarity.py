"""Tests for vector math."""

import numpy as np
import pytest

from rag.similarity import cosine_similarities, cosine_similarity, normalize


def test_identical_vectors_score_one():
    assert cosine_similarity([1.0, 2.0, 3.0], [1.0, 2.0, 3.0]) == pytest.approx(1.0)


def test_orthogonal_and_opposite_vectors():
    assert cosine_similarity([1.0, 0.0], [0.0, 1.0]) == pytest.approx(0.0)
    assert cosine_similarity([1.0, 0.0], [-1.0, 0.0]) == pytest.approx(-1.0)


def test_degenerate_inputs_score_zero():
    assert cosine_similarity([0.0, 0.0], [1.0, 1.0]) == 0.0
    assert cosine_similarity([1.0, 0.0], [1.0, 0.0, 0.0]) == 0.0
    assert cosine_similarity(None, [1.0]) == 0.0
    assert cosine_similarity([], []) == 0.0


def test_similarity_is_symmetric_and_bounded():
    rng = np.random.default_rng(7)
    for _ in range(50):
        a = rng.normal(size=16)
        b = rng.normal(size=16)
        forward = cosine_similarity(a, b)
        assert forward == pytest.approx(cosine_similarity(b, a), abs=1e-12)
        assert -1.0 <= forward <= 1.0


def test_batch_similarities_match_pairwise():
    rng = np.random.default_rng(3)
    query = rng.normal(size=8)
    matrix = rng.normal(size=(5, 8))
    matrix[2] = 0.0

    scores = cosine_similarities(query, matrix)

    assert scores[2] == 0.0
    for i in range(5):
        assert scores[i] == pytest.approx(cosine_similarity(query, matrix[i]), abs=1e-9)


def test_batch_similarities_empty_matrix():
    assert cosine_similarities([1.0, 0.0], np.zeros((0, 2))).shape == (0,)


def test_normalize():
    assert np.linalg.norm(normalize([3.0, 4.0])) == pytest.approx(1.0)
    assert normalize([0.0, 0.0]).tolist() == [0.0, 0.0]
