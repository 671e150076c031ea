import numpy as np
import pytest

from clusters import EmptyClusterError, UnableToFinishError
from dataset import DataSet
from ghpc import GHPC
from metrics import best_match_accuracy
from neighbors import NeighborSetFinder


def test_recovers_two_gaussians(two_gaussians):
    ghpc = GHPC(two_gaussians, 2, k=10, seed=1).cluster()
    assert best_match_accuracy(two_gaussians.categories, ghpc.cluster_associations) >= 0.99


def test_hubs_belong_to_their_clusters(five_gaussians):
    ghpc = GHPC(five_gaussians, 5, seed=2).cluster()
    assoc = ghpc.cluster_associations
    assert len(set(ghpc.hubs.tolist())) == 5
    np.testing.assert_array_equal(assoc[ghpc.hubs], np.arange(5))
    assert np.bincount(assoc, minlength=5).min() > 0
    np.testing.assert_allclose(ghpc.centroids, five_gaussians.numeric_matrix()[ghpc.hubs])


def test_points_go_to_nearest_hub(five_gaussians):
    ghpc = GHPC(five_gaussians, 5, seed=4).cluster()
    D = ghpc.nsf.distances
    nearest = D[ghpc.hubs].min(axis=0)
    assigned = D[ghpc.hubs[ghpc.cluster_associations], np.arange(five_gaussians.size())]
    np.testing.assert_allclose(assigned, nearest)


def test_minimizing_error_is_tracked(five_gaussians):
    ghpc = GHPC(five_gaussians, 5, seed=6).cluster()
    assert ghpc.minimal_error <= ghpc.iteration_error
    D = ghpc.nsf.distances
    best = ghpc.minimizing_associations
    recomputed = (D[ghpc.minimizing_hubs[best], np.arange(best.size)] ** 2).sum()
    assert recomputed == pytest.approx(ghpc.minimal_error)
    clusters = ghpc.get_minimizing_clusters()
    assert sum(c.size() for c in clusters) == five_gaussians.size()


def test_history_records_every_iteration(five_gaussians):
    ghpc = GHPC(five_gaussians, 5, keep_history=True, seed=3).cluster()
    assert len(ghpc.hub_history) == ghpc.num_iterations + 1
    np.testing.assert_array_equal(ghpc.hub_history[-1], ghpc.hubs)
    assert all(h.shape == (5,) for h in ghpc.hub_history)

    quiet = GHPC(five_gaussians, 5, seed=3).cluster()
    assert quiet.hub_history is None


def test_same_seed_same_result(five_gaussians):
    a = GHPC(five_gaussians, 5, seed=8).cluster()
    b = GHPC(five_gaussians, 5, seed=8).cluster()
    np.testing.assert_array_equal(a.cluster_associations, b.cluster_associations)
    np.testing.assert_array_equal(a.hubs, b.hubs)


def test_deterministic_phase_picks_top_hubs(five_gaussians):
    # without a probabilistic phase every new hub is the highest-occurrence member
    ghpc = GHPC(five_gaussians, 5, probabilistic_iterations=0, keep_history=True, seed=5).cluster()
    D = ghpc.nsf.distances
    initial = ghpc.hub_history[0]
    assoc = np.argmin(D[initial], axis=0)
    assoc[initial] = np.arange(5)
    for c in range(5):
        members = np.flatnonzero(assoc == c)
        assert ghpc.hub_history[1][c] == members[np.argmax(ghpc.hubness[members])]


def test_larger_neighbor_sets_are_reduced(five_gaussians):
    nsf = NeighborSetFinder(five_gaussians).calculate_neighbor_sets(15)
    ghpc = GHPC(five_gaussians, 5, k=10, nsf=nsf, seed=0).cluster()
    assert ghpc.nsf.k == 10
    np.testing.assert_array_equal(ghpc.hubness, nsf.get_neighbor_occ_frequencies(10))


def test_supervised_mode_weights_occurrences_by_goodness(five_gaussians):
    nsf = NeighborSetFinder(five_gaussians).calculate_neighbor_sets(10)
    ghpc = GHPC(five_gaussians, 5, nsf=nsf, hubness_mode="supervised", seed=0).cluster()
    expected = nsf.neighbor_frequencies * nsf.goodness_proportional_weights()
    np.testing.assert_allclose(ghpc.hubness, expected)
    assert ((ghpc.hubness >= 0) & (ghpc.hubness <= nsf.neighbor_frequencies)).all()
    assert np.unique(ghpc.cluster_associations).size == 5


def test_supplied_hubness(two_gaussians):
    flat = np.zeros(two_gaussians.size())
    ghpc = GHPC(two_gaussians, 2, hubness=flat, seed=0).cluster()
    assert best_match_accuracy(two_gaussians.categories, ghpc.cluster_associations) >= 0.99
    with pytest.raises(ValueError):
        GHPC(two_gaussians, 2, hubness=np.zeros(5)).cluster()


def test_invalid_configuration(two_gaussians):
    with pytest.raises(ValueError):
        GHPC(two_gaussians, 2, hubness_mode="both")
    with pytest.raises(ValueError):
        GHPC(two_gaussians, 0).cluster()
    with pytest.raises(ValueError):
        GHPC(two_gaussians, 2, k=200).cluster()


def test_trivial_single_cluster(two_gaussians):
    ghpc = GHPC(two_gaussians, 1).cluster()
    assert (ghpc.cluster_associations == 0).all()
    assert ghpc.hubs.tolist() == [0]


def test_gives_up_after_max_retries(two_gaussians):
    class Failing(GHPC):
        def _assign_to_hubs(self, D, hubs):
            raise EmptyClusterError(0)

    with pytest.raises(UnableToFinishError):
        Failing(two_gaussians, 2, max_retries=2, seed=0).cluster()


def test_duplicate_points_do_not_break_hub_selection():
    X = np.vstack([np.zeros((20, 2)), np.full((20, 2), 5.0)])
    ds = DataSet.from_arrays(float_attr=X, categories=[0] * 20 + [1] * 20)
    ghpc = GHPC(ds, 2, k=5, seed=0).cluster()
    assert best_match_accuracy(ds.categories, ghpc.cluster_associations) == 1.0
