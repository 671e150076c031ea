import numpy as np
import pytest

from metrics import (
    best_match_accuracy, calinski_harabasz_score, compute_inertia, davies_bouldin_score,
    dunn_index, fowlkes_mallows_index, jaccard_index, rand_index, silhouette_score,
)


@pytest.fixture
def blobs(two_gaussians):
    return two_gaussians.numeric_matrix(), two_gaussians.categories


def test_internal_indices_prefer_true_labels(blobs):
    X, labels = blobs
    shuffled = np.random.default_rng(0).permutation(labels)
    assert silhouette_score(X, labels) > 0.8
    assert silhouette_score(X, labels) > silhouette_score(X, shuffled)
    assert calinski_harabasz_score(X, labels) > calinski_harabasz_score(X, shuffled)
    assert davies_bouldin_score(X, labels) < davies_bouldin_score(X, shuffled)
    assert dunn_index(X, labels) > 1.0


def test_single_cluster_scores_zero(blobs):
    X, _ = blobs
    one = np.zeros(len(X), dtype=int)
    assert silhouette_score(X, one) == 0.0
    assert calinski_harabasz_score(X, one) == 0.0
    assert davies_bouldin_score(X, one) == 0.0


def test_inertia():
    X = np.array([[0.0, 0.0], [2.0, 0.0], [10.0, 10.0]])
    labels = np.array([0, 0, 1])
    assert compute_inertia(X, labels) == pytest.approx(2.0)
    assert compute_inertia(X, labels, centroids=np.array([[0.0, 0.0], [10.0, 10.0]])) == pytest.approx(4.0)


def test_external_indices_ignore_label_names():
    truth = np.array([0, 0, 1, 1, 2, 2])
    renamed = np.array([5, 5, 3, 3, 9, 9])
    assert rand_index(truth, renamed) == 1.0
    assert jaccard_index(truth, renamed) == 1.0
    assert fowlkes_mallows_index(truth, renamed) == pytest.approx(1.0)
    assert best_match_accuracy(truth, renamed) == 1.0


def test_external_indices_on_partial_match():
    truth = np.array([0, 0, 0, 1, 1, 1])
    pred = np.array([0, 0, 1, 1, 1, 1])
    # pairs: same/same 4, same only in truth 2, same only in pred 3, different in both 6
    assert rand_index(truth, pred) == pytest.approx(10 / 15)
    assert jaccard_index(truth, pred) == pytest.approx(4 / 9)
    assert fowlkes_mallows_index(truth, pred) == pytest.approx(4 / np.sqrt(7 * 6))
    assert best_match_accuracy(truth, pred) == pytest.approx(5 / 6)


def test_mismatched_label_lengths():
    with pytest.raises(ValueError):
        rand_index([0, 1], [0, 1, 1])
