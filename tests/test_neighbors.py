import numpy as np
import pytest

from dataset import DataSet
from distances import EUCLIDEAN
from neighbors import NeighborSetFinder


@pytest.fixture
def nsf(five_gaussians):
    return NeighborSetFinder(five_gaussians).calculate_neighbor_sets(10)


def test_neighbor_sets_are_sorted_and_exclude_self(nsf):
    n = nsf.dataset.size()
    assert nsf.neighbors.shape == (n, 10)
    assert nsf.neighbor_distances.shape == (n, 10)
    assert (np.diff(nsf.neighbor_distances, axis=1) >= 0).all()
    assert not (nsf.neighbors == np.arange(n)[:, None]).any()
    for row in nsf.neighbors:
        assert len(set(row.tolist())) == 10


def test_occurrence_counts_are_consistent(nsf):
    n = nsf.dataset.size()
    np.testing.assert_array_equal(nsf.good_frequencies + nsf.bad_frequencies,
                                  nsf.neighbor_frequencies)
    assert nsf.neighbor_frequencies.sum() == n * 10
    for j in (0, 42, 600):
        assert len(nsf.reverse_neighbors[j]) == nsf.neighbor_frequencies[j]
        for i in nsf.reverse_neighbors[j]:
            assert j in nsf.neighbors[i]


def test_unlabeled_occurrences_are_never_good():
    ds = DataSet.from_arrays(float_attr=[[0.0], [1.0], [2.0], [10.0], [11.0], [12.0]],
                             categories=[-1, -1, 0, 1, 1, -1])
    nsf = NeighborSetFinder(ds).calculate_neighbor_sets(1)
    np.testing.assert_array_equal(nsf.neighbors[:, 0], [1, 0, 1, 4, 3, 4])
    np.testing.assert_array_equal(nsf.neighbor_frequencies, [1, 2, 0, 1, 2, 0])
    np.testing.assert_array_equal(nsf.good_frequencies, [0, 0, 0, 1, 1, 0])
    np.testing.assert_array_equal(nsf.bad_frequencies, [1, 2, 0, 0, 1, 0])
    np.testing.assert_array_equal(nsf.good_frequencies + nsf.bad_frequencies,
                                  nsf.neighbor_frequencies)

    counts = nsf.class_occurrence_counts()
    assert counts.shape == (2, 6)
    np.testing.assert_array_equal(counts[0], [0, 1, 0, 0, 0, 0])
    np.testing.assert_array_equal(counts[1], [0, 0, 0, 1, 1, 0])


def test_goodness_proportional_weights():
    ds = DataSet.from_arrays(float_attr=[[0.0], [1.0], [2.0], [10.0], [11.0], [12.0]],
                             categories=[0, 0, 1, 1, 1, 1])
    nsf = NeighborSetFinder(ds).calculate_neighbor_sets(1)
    # Instance 1 is a neighbor of one instance from each class, so it scores lowest.
    np.testing.assert_allclose(nsf.goodness_proportional_weights(),
                               [0.5, 0.0, 1 / 3, 0.5, 1.0, 1 / 3])


def test_goodness_proportional_weights_on_unlabeled_data():
    ds = DataSet.from_arrays(float_attr=[[0.0], [1.0], [5.0]])
    nsf = NeighborSetFinder(ds).calculate_neighbor_sets(1)
    assert nsf.class_occurrence_counts().shape == (0, 3)
    # No class-pure occurrences, so the most frequent neighbor gets the lowest weight.
    np.testing.assert_allclose(nsf.goodness_proportional_weights(), [0.75, 0.0, 1.0])


@pytest.mark.parametrize("k", [0, -1, 750, 1000, 2.5, True, "3"])
def test_invalid_k_raises_and_keeps_previous_result(nsf, k):
    before = nsf.neighbors.copy()
    with pytest.raises(ValueError):
        nsf.calculate_neighbor_sets(k)
    assert nsf.k == 10
    np.testing.assert_array_equal(nsf.neighbors, before)


def test_equal_distances_prefer_lower_index():
    ds = DataSet.from_arrays(float_attr=[[0.0], [1.0], [2.0], [3.0]])
    nsf = NeighborSetFinder(ds).calculate_neighbor_sets(1)
    # point 1 is equally far from 0 and 2, point 2 from 1 and 3
    assert nsf.neighbors[:, 0].tolist() == [1, 0, 1, 2]
    nsf.calculate_neighbor_sets(2)
    assert nsf.neighbors[1].tolist() == [0, 2]


def test_kdtree_search_matches_brute_force(random_points):
    brute = NeighborSetFinder(random_points).calculate_neighbor_sets(7)
    indexed = NeighborSetFinder(random_points).calculate_neighbor_sets(7, use_kdtree=True)
    np.testing.assert_array_equal(indexed.neighbors, brute.neighbors)
    np.testing.assert_allclose(indexed.neighbor_distances, brute.neighbor_distances)
    np.testing.assert_array_equal(indexed.neighbor_frequencies, brute.neighbor_frequencies)


def test_precomputed_upper_triangular_distances(random_points):
    X = random_points.numeric_matrix()
    full = EUCLIDEAN.pairwise(X, X, 0)
    n = random_points.size()
    rows = [full[i, i + 1:] for i in range(n - 1)]
    from_rows = NeighborSetFinder(random_points, distances=rows).calculate_neighbor_sets(5)
    computed = NeighborSetFinder(random_points).calculate_neighbor_sets(5)
    np.testing.assert_array_equal(from_rows.neighbors, computed.neighbors)
    assert from_rows.distance_mean == pytest.approx(computed.distance_mean)
    assert from_rows.distance_variance == pytest.approx(computed.distance_variance)


def test_wrongly_shaped_distance_matrix_raises(random_points):
    with pytest.raises(ValueError):
        NeighborSetFinder(random_points, distances=np.zeros((3, 3)))


def test_sub_nsf_matches_recomputation(five_gaussians, nsf):
    sub = nsf.get_sub_nsf(5)
    fresh = NeighborSetFinder(five_gaussians).calculate_neighbor_sets(5)
    assert sub.k == 5
    np.testing.assert_array_equal(sub.neighbors, fresh.neighbors)
    np.testing.assert_array_equal(sub.neighbor_frequencies, fresh.neighbor_frequencies)
    np.testing.assert_array_equal(nsf.get_neighbor_occ_frequencies(5), fresh.neighbor_frequencies)
    with pytest.raises(ValueError):
        nsf.get_sub_nsf(11)


def test_hubness_statistics(nsf):
    stats = nsf.hubness_stats()
    assert stats["mean_occurrence"] == pytest.approx(10.0)
    assert stats["mean_good"] + stats["mean_bad"] == pytest.approx(10.0)
    hubs, orphans, regular = nsf.hub_orphan_regular_percentages()
    assert hubs + orphans + regular == pytest.approx(1.0)
    assert nsf.neighbor_frequencies[nsf.get_major_hub_index()] == stats["max_occurrence"]
    frequent = nsf.get_frequent_at_least(stats["max_occurrence"])
    assert nsf.get_major_hub_index() in frequent
    # well separated blobs: almost every neighbor shares the label
    assert nsf.get_label_mismatch_percentage() < 0.01
    assert np.isfinite(nsf.hubness_skewness())
    assert np.isfinite(nsf.hubness_kurtosis())


def test_hubness_grows_with_dimensionality():
    rng = np.random.default_rng(0)
    low = NeighborSetFinder(DataSet.from_arrays(float_attr=rng.uniform(size=(500, 2))))
    high = NeighborSetFinder(DataSet.from_arrays(float_attr=rng.uniform(size=(500, 100))))
    low.calculate_neighbor_sets(10)
    high.calculate_neighbor_sets(10)
    assert high.hubness_skewness() > low.hubness_skewness()


def test_entropies(nsf):
    k_entropies = nsf.calculate_k_entropies()
    reverse = nsf.calculate_reverse_neighbor_entropies()
    assert k_entropies.shape == reverse.shape == (nsf.dataset.size(),)
    assert (k_entropies >= 0).all() and (reverse >= 0).all()
    assert k_entropies.max() <= np.log2(5) + 1e-12
    orphans = nsf.neighbor_frequencies == 0
    assert (reverse[orphans] == 0).all()


def test_neighbors_of_outside_points(five_gaussians, nsf):
    query = DataSet.from_arrays(float_attr=[[0.0, 0.0], [30.0, 30.0]])
    idx, dist = nsf.get_indexes_of_neighbors(query, 3)
    assert idx.shape == (2, 3)
    assert (np.diff(dist, axis=1) >= 0).all()
    assert (five_gaussians.categories[idx[0]] == 0).all()
    assert (five_gaussians.categories[idx[1]] == 4).all()
    np.testing.assert_allclose(nsf.get_avg_dist_to_neighbors(), nsf.neighbor_distances.mean(axis=1))


def test_statistics_require_neighbor_sets(random_points):
    with pytest.raises(ValueError):
        NeighborSetFinder(random_points).hubness_stats()
