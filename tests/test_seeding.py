import numpy as np
import pytest

from dataset import DataSet
from seeding import PlusPlusSeeder, random_distinct_indexes


def test_random_indexes_are_distinct():
    rng = np.random.default_rng(0)
    idx = random_distinct_indexes(10, 10, rng)
    assert sorted(idx.tolist()) == list(range(10))
    with pytest.raises(ValueError):
        random_distinct_indexes(3, 4, rng)


def test_plus_plus_spreads_seeds(two_gaussians):
    seeds = PlusPlusSeeder(2, two_gaussians, seed=5).get_centroid_indexes()
    assert len(set(seeds.tolist())) == 2
    assert set(two_gaussians.categories[seeds].tolist()) == {0, 1}


def test_plus_plus_handles_duplicate_points():
    ds = DataSet.from_arrays(float_attr=np.zeros((6, 2)))
    seeds = PlusPlusSeeder(4, ds, seed=0).get_centroid_indexes()
    assert len(set(seeds.tolist())) == 4


def test_plus_plus_is_reproducible(two_gaussians):
    a = PlusPlusSeeder(5, two_gaussians, seed=9).get_centroid_indexes()
    b = PlusPlusSeeder(5, two_gaussians, seed=9).get_centroid_indexes()
    np.testing.assert_array_equal(a, b)
