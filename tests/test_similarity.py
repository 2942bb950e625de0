"""Unit tests for pattern similarity scoring."""
import numpy as np
from soundman.audio.ml.features import extract_features
from soundman.audio.ml.similarity import similarity, vector_similarity


def test_identical_vectors_score_one():
    v = np.array([0.1, 0.2, 30.0, 0.5, 0.0, 0.1, 0.4])
    assert similarity(v, [v, v.copy()]) == 1.0


def test_empty_reference_set_scores_zero():
    v = np.ones(7)
    assert similarity(v, []) == 0.0
    assert similarity(v, None) == 0.0


def test_per_dimension_formula():
    """Each dimension contributes 1 / (1 + |difference|)."""
    assert np.isclose(vector_similarity(np.zeros(7), np.ones(7)), 0.5)
    assert np.isclose(vector_similarity(np.zeros(2), np.array([1.0, 3.0])), (0.5 + 0.25) / 2)


def test_mismatched_reference_is_skipped_but_counted():
    """A reference of the wrong length adds nothing but still divides."""
    v = np.ones(7)
    assert np.isclose(similarity(v, [v, np.zeros(3)]), 0.5)


def test_score_is_bounded():
    rng = np.random.default_rng(0)
    v = rng.normal(size=7) * 100
    refs = [rng.normal(size=7) * 100 for _ in range(10)]
    score = similarity(v, refs)
    assert 0.0 <= score <= 1.0


def test_non_finite_score_is_zero():
    assert similarity(np.full(7, np.nan), [np.zeros(7)]) == 0.0


def make_click(amplitude=12000, seed=7):
    rng = np.random.default_rng(seed)
    frame = np.zeros(1024, dtype=np.float64)
    envelope = np.exp(-np.arange(256) / 40.0)
    frame[:256] = rng.uniform(-1.0, 1.0, 256) * envelope * amplitude
    return frame.astype(np.int16)


def test_silence_never_fully_matches_a_sound():
    silence = extract_features(np.zeros(1024, dtype=np.int16))
    click = extract_features(make_click())
    assert similarity(silence, [click]) < 1.0


def test_similarity_is_symmetric():
    a = extract_features(make_click())
    b = extract_features(np.full(1024, 30000, dtype=np.int16))
    assert similarity(a, [b]) == similarity(b, [a])
