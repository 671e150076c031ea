import numpy as np

from dataset import DataSet


def gaussian_mixture(centers, stds, sizes, seed=None):
    """Labelled DataSet with ``sizes[i]`` points drawn around ``centers[i]``.

    ``stds`` is either one value per component or a (components, dims) array of
    per-dimension standard deviations.
    """
    centers = np.atleast_2d(np.asarray(centers, dtype=np.float64))
    num_components, dims = centers.shape
    stds = np.asarray(stds, dtype=np.float64)
    if stds.ndim == 0:
        stds = np.full(num_components, float(stds))
    if stds.ndim == 1:
        stds = np.repeat(stds[:, np.newaxis], dims, axis=1)
    if stds.shape != (num_components, dims):
        raise ValueError(f"stds has shape {stds.shape}, expected ({num_components}, {dims})")
    sizes = np.broadcast_to(np.asarray(sizes, dtype=np.int64), (num_components,))
    if (sizes < 0).any():
        raise ValueError("Component sizes must be non-negative")

    rng = np.random.default_rng(seed)
    points = [rng.normal(centers[c], stds[c], size=(sizes[c], dims)) for c in range(num_components)]
    labels = np.repeat(np.arange(num_components), sizes)
    return DataSet.from_arrays(float_attr=np.vstack(points).reshape(-1, dims), categories=labels)


def spheric_gaussian_clusters(num_clusters, dim, points_per_cluster, separation=10.0, std=1.0,
                              seed=None):
    """Isotropic Gaussian blobs whose centers lie at least ``separation`` apart.

    Centers are placed on a scaled simplex-like layout: cluster ``c`` sits at
    ``separation * e_c`` in the first ``num_clusters`` axes (cycled when there are
    fewer axes than clusters, with an extra offset along the first axis).
    """
    if num_clusters < 1 or dim < 1:
        raise ValueError("num_clusters and dim must be positive")
    centers = np.zeros((num_clusters, dim))
    for c in range(num_clusters):
        centers[c, c % dim] = separation * (1 + c // dim)
    return gaussian_mixture(centers, std, points_per_cluster, seed=seed)


def uniform_dataset(size, dim, low=0.0, high=1.0, seed=None):
    """Unlabelled points drawn uniformly from a hypercube. High dimensionality
    makes the neighbor occurrence distribution skewed."""
    rng = np.random.default_rng(seed)
    return DataSet.from_arrays(float_attr=rng.uniform(low, high, size=(size, dim)))
