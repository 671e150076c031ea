import numpy as np

from distances import EUCLIDEAN


def random_distinct_indexes(n, count, rng):
    """Draw ``count`` distinct indexes from range(n) by rejection sampling."""
    if count > n:
        raise ValueError(f"Cannot draw {count} distinct indexes out of {n}")
    chosen = []
    taken = set()
    while len(chosen) < count:
        idx = int(rng.integers(n))
        if idx not in taken:
            taken.add(idx)
            chosen.append(idx)
    return np.array(chosen, dtype=np.int64)


class PlusPlusSeeder:
    """K-means++ seeding: each next seed is drawn with probability proportional
    to its squared distance from the closest seed picked so far."""

    def __init__(self, num_clusters, dataset, metric=EUCLIDEAN, seed=None, rng=None,
                 distances=None):
        self.num_clusters = num_clusters
        self.dataset = dataset
        self.metric = metric
        self.rng = rng if rng is not None else np.random.default_rng(seed)
        self.distances = distances

    def _distances_to(self, X, index):
        if self.distances is not None:
            return self.distances[:, index]
        return self.metric.pairwise(X, X[index:index + 1], self.dataset.num_int)[:, 0]

    def get_centroid_indexes(self):
        n = self.dataset.size()
        if not 1 <= self.num_clusters <= n:
            raise ValueError(f"Inappropriate cluster number: {self.num_clusters}")
        X = self.dataset.numeric_matrix() if self.distances is None else None

        chosen = [int(self.rng.integers(n))]
        closest = self._distances_to(X, chosen[0]).astype(np.float64)
        for _ in range(1, self.num_clusters):
            weights = closest ** 2
            weights[chosen] = 0.0
            weights[~np.isfinite(weights)] = 0.0
            total = weights.sum()
            if total > 0:
                idx = int(self.rng.choice(n, p=weights / total))
            else:
                # Every remaining point coincides with a seed.
                remaining = np.setdiff1d(np.arange(n), chosen)
                idx = int(self.rng.choice(remaining))
            chosen.append(idx)
            closest = np.minimum(closest, self._distances_to(X, idx))
        return np.array(chosen, dtype=np.int64)
