"""Unit tests for unknown sound clustering."""
import re
import pytest
import numpy as np
from soundman.audio.clusters import ClusterManager, SIMILARITY_STRATEGY, SUMMARY_STRATEGY
from soundman.audio.ml.features import extract_features
from soundman.audio.patterns import PatternStore


def fixed_clock():
    return 1000.0


def test_similar_vectors_share_a_cluster():
    manager = ClusterManager(strategy=SIMILARITY_STRATEGY)
    first = manager.assign(np.zeros(7))
    second = manager.assign(np.full(7, 0.01))

    assert first == second
    assert len(manager) == 1
    assert re.fullmatch(r"cluster_\d+_\d+", first)


def test_distinct_vector_starts_new_cluster():
    manager = ClusterManager(strategy=SIMILARITY_STRATEGY)
    first = manager.assign(np.zeros(7))
    second = manager.assign(np.full(7, 10.0))

    assert first != second
    assert len(manager) == 2


def test_similarity_picks_best_cluster():
    manager = ClusterManager(strategy=SIMILARITY_STRATEGY, similarity_threshold=0.3)
    low = manager.assign(np.zeros(7))
    high = manager.assign(np.full(7, 5.0))
    assert low != high

    assert manager.assign(np.full(7, 4.5)) == high


def test_cluster_buffer_is_bounded():
    manager = ClusterManager(strategy=SIMILARITY_STRATEGY, capacity=5)
    for _ in range(8):
        cluster_id = manager.assign(np.zeros(7))

    cluster = manager.get(cluster_id)
    assert len(cluster.samples) == 5
    assert cluster.frame_count == 8


def test_summary_strategy_groups_by_frequency_and_duration():
    manager = ClusterManager(strategy=SUMMARY_STRATEGY, clock=fixed_clock)
    first = manager.assign(np.zeros(7), frequency=440.0, duration_ms=100)
    assert first == "cluster_1000000_440_100"

    # 20 / 460 < 10% and 10 / 110 < 20%
    assert manager.assign(np.ones(7), frequency=460.0, duration_ms=110) == first
    assert manager.get(first).frame_count == 2

    other = manager.assign(np.zeros(7), frequency=600.0, duration_ms=100)
    assert other != first
    assert len(manager) == 2


def test_summary_strategy_duration_tolerance():
    manager = ClusterManager(strategy=SUMMARY_STRATEGY, clock=fixed_clock)
    first = manager.assign(np.zeros(7), frequency=440.0, duration_ms=100)
    assert manager.assign(np.zeros(7), frequency=440.0, duration_ms=200) != first


def test_clusters_sorted_by_frequency():
    manager = ClusterManager(strategy=SUMMARY_STRATEGY, clock=fixed_clock)
    manager.assign(np.zeros(7), frequency=900.0, duration_ms=100)
    manager.assign(np.zeros(7), frequency=100.0, duration_ms=100)
    manager.assign(np.zeros(7), frequency=400.0, duration_ms=100)

    assert [c.frequency for c in manager.clusters()] == [100.0, 400.0, 900.0]


def test_promote_moves_samples_and_retires_cluster():
    manager = ClusterManager(strategy=SIMILARITY_STRATEGY)
    store = PatternStore()
    for _ in range(3):
        cluster_id = manager.assign(np.zeros(7))

    assert manager.promote(cluster_id, "door_slam", store) == 3
    assert cluster_id not in manager
    assert len(store.patterns("door_slam")) == 3


def test_promote_retired_cluster_is_noop():
    manager = ClusterManager(strategy=SIMILARITY_STRATEGY)
    store = PatternStore()
    cluster_id = manager.assign(np.zeros(7))
    manager.promote(cluster_id, "door_slam", store)

    assert manager.promote(cluster_id, "door_slam", store) == 0
    assert manager.promote("cluster_missing", "door_slam", store) == 0
    assert len(store.patterns("door_slam")) == 1


def test_promote_learns_historical_frames():
    manager = ClusterManager(strategy=SIMILARITY_STRATEGY)
    store = PatternStore()
    frames = [
        np.array([100, -200, 300], dtype=np.int16).tobytes(),
        np.array([50, 60, -70], dtype=np.int16).tobytes(),
    ]
    cluster_id = manager.assign(extract_features(frames[0]))

    assert manager.promote(cluster_id, "tap", store, historical_frames=frames) == 2
    learned = store.patterns("tap")
    assert np.array_equal(learned[1], extract_features(frames[1]))


def test_retired_ids_are_not_reissued():
    """A new cluster with the same summary never reuses a promoted cluster's id."""
    manager = ClusterManager(strategy=SUMMARY_STRATEGY, clock=fixed_clock)
    store = PatternStore()
    first = manager.assign(np.zeros(7), frequency=440.0, duration_ms=100)
    manager.promote(first, "beep", store)

    second = manager.assign(np.zeros(7), frequency=440.0, duration_ms=100)
    assert second != first
    assert second.startswith(first)


def test_invalid_strategy():
    with pytest.raises(ValueError):
        ClusterManager(strategy="kmeans")
