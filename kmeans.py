import threading

import numpy as np

from clusters import (
    MIN_ITERATIONS, MAX_RETRIES, ClusteringAlgorithm, EmptyClusterError, InvalidErrorValue,
    error_difference_significant,
)
from distances import EUCLIDEAN
from seeding import random_distinct_indexes

DEFAULT_MAX_ITERATIONS = 250


class ClusterSums:
    """Per-cluster running totals of one assignment pass.

    Passes record chunks with ``add``; ``reduce`` then folds them into
    ``counts[c]`` members, ``present[c, d]`` members with a value in dimension d,
    ``linear[c]`` the coordinate sums and ``square[c]`` the sum of squared
    coordinates. Each cluster has its own lock so concurrent passes can record
    into different clusters without contention. Chunks are folded in ascending
    order of their first point index, so the floating-point totals do not
    depend on the order in which threads recorded them.
    """

    def __init__(self, num_clusters, dims):
        self.num_clusters = num_clusters
        self.dims = dims
        self.chunks = [[] for _ in range(num_clusters)]
        self.locks = [threading.Lock() for _ in range(num_clusters)]
        self.counts = None
        self.present = None
        self.linear = None
        self.square = None

    def add(self, cluster, indexes, present, linear, square):
        with self.locks[cluster]:
            self.chunks[cluster].append((int(indexes[0]), indexes, present, linear, square))

    def add_points(self, cluster, indexes, points):
        absent = np.isnan(points)
        values = np.where(absent, 0.0, points)
        self.add(cluster, indexes, (~absent).sum(axis=0), values.sum(axis=0),
                 (values * values).sum())

    def reduce(self):
        self.counts = np.zeros(self.num_clusters, dtype=np.int64)
        self.present = np.zeros((self.num_clusters, self.dims), dtype=np.int64)
        self.linear = np.zeros((self.num_clusters, self.dims))
        self.square = np.zeros(self.num_clusters)
        for c, chunks in enumerate(self.chunks):
            # Chunks of one pass are disjoint, their first indexes never collide.
            chunks.sort(key=lambda chunk: chunk[0])
            for _, indexes, present, linear, square in chunks:
                self.counts[c] += len(indexes)
                self.present[c] += present
                self.linear[c] += linear
                self.square[c] += square
        return self

    def associations(self, n):
        assoc = np.full(n, -1, dtype=np.int64)
        for c, chunks in enumerate(self.chunks):
            for chunk in chunks:
                assoc[chunk[1]] = c
        return assoc

    def centroids(self):
        return np.divide(self.linear, self.present, out=np.full(self.linear.shape, np.nan),
                         where=self.present > 0)

    def squared_error(self, centroids):
        """Sum of squared distances to ``centroids`` from the totals alone:
        sum(sq) - 2 c.lin + |c|^2 n per cluster, n counted per dimension."""
        c = np.nan_to_num(centroids, nan=0.0)
        per_cluster = self.square - 2.0 * (c * self.linear).sum(axis=1) + (c * c * self.present).sum(axis=1)
        return float(abs(per_cluster.sum()))


class KMeans(ClusteringAlgorithm):
    """Lloyd's K-means on a DataSet: assign every point to its nearest centroid,
    move the centroids to their members' means, repeat."""

    min_iterations_default = MIN_ITERATIONS

    def __init__(self, dataset, num_clusters, metric=EUCLIDEAN, seed=None,
                 initial_centroids=None, max_iterations=DEFAULT_MAX_ITERATIONS,
                 min_iterations=None, max_retries=MAX_RETRIES, verbose=False):
        super().__init__(dataset, num_clusters, metric=metric, seed=seed,
                         max_retries=max_retries, verbose=verbose)
        self.initial_centroids = initial_centroids
        self.max_iterations = max_iterations
        self.min_iterations = self.min_iterations_default if min_iterations is None else min_iterations
        self.iteration_error = None
        self.num_iterations = 0

    def perform_basic_checks(self):
        super().perform_basic_checks()
        if self.max_iterations < 1:
            raise ValueError(f"max_iterations must be positive, got {self.max_iterations}")
        if self.initial_centroids is not None:
            shape = np.shape(self.initial_centroids)
            expected = (self.num_clusters, self.dataset.num_numeric)
            if shape != expected:
                raise ValueError(f"initial_centroids has shape {shape}, expected {expected}")

    @property
    def clusters(self):
        return self.get_clusters() if self.cluster_associations is not None else None

    def _seed_centroids(self, X, attempt):
        # An explicit starting configuration is only used for the first attempt,
        # retries after a degenerate run fall back to random seeds.
        if self.initial_centroids is not None and attempt == 1:
            return np.array(self.initial_centroids, dtype=np.float64)
        idx = random_distinct_indexes(X.shape[0], self.num_clusters, self.rng)
        return X[idx].copy()

    def _assign(self, X, centroids):
        dists = self.metric.pairwise(X, centroids, self.dataset.num_int)
        labels = np.argmin(dists, axis=1)
        sums = ClusterSums(self.num_clusters, X.shape[1])
        for c in np.unique(labels):
            idx = np.flatnonzero(labels == c)
            sums.add_points(int(c), idx, X[idx])
        return sums.reduce()

    def _iteration_error(self, X, assoc, centroids, sums):
        dists = self.metric.paired(X, centroids[assoc], self.dataset.num_int)
        return float((dists * dists).sum())

    def _cluster_once(self, attempt):
        X = self.dataset.numeric_matrix()
        centroids = self._seed_centroids(X, attempt)
        previous_assoc = None
        previous_error = np.inf
        self.iteration = 0

        while True:
            sums = self._assign(X, centroids)
            empty = np.flatnonzero(sums.counts == 0)
            if empty.size:
                raise EmptyClusterError(int(empty[0]))
            assoc = sums.associations(X.shape[0])
            centroids = sums.centroids()
            error = self._iteration_error(X, assoc, centroids, sums)
            if not np.isfinite(error):
                raise InvalidErrorValue(error)
            self.next_iteration()
            if self.verbose:
                print(f"  iteration {self.iteration}: error {error:.4f}")

            changed = previous_assoc is None or bool((assoc != previous_assoc).any())
            converged = (self.iteration >= self.min_iterations
                         and not error_difference_significant(previous_error, error))
            previous_assoc, previous_error = assoc, error
            if not changed or converged or self.iteration >= self.max_iterations:
                break

        self.cluster_associations = assoc
        self.centroids = centroids
        self.iteration_error = error
        self.num_iterations = self.iteration

    def predict(self, dataset):
        return self.assign_points_to_model_clusters(dataset)
