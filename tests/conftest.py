import numpy as np
import pytest

from dataset import DataSet
from generators import gaussian_mixture


@pytest.fixture
def two_gaussians():
    """Two 2-D Gaussians, 100 points each, centers 20 standard deviations apart."""
    return gaussian_mixture([[0.0, 0.0], [20.0, 0.0]], 1.0, 100, seed=7)


@pytest.fixture
def five_gaussians():
    centers = [[0, 0], [15, 0], [0, 15], [15, 15], [30, 30]]
    return gaussian_mixture(centers, 1.0, 150, seed=11)


@pytest.fixture
def random_points():
    rng = np.random.default_rng(3)
    return DataSet.from_arrays(float_attr=rng.normal(size=(300, 3)))
