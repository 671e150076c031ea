import numpy as np

from distances import EUCLIDEAN

# Minimal number of iterations for iterative clustering methods.
MIN_ITERATIONS = 15
# Upper bound on re-seeding attempts after a degenerate run (empty cluster,
# non-finite error) before giving up.
MAX_RETRIES = 10
ERROR_THRESHOLD = 0.001


class ClusteringError(Exception):
    """A clustering run ended in a degenerate state."""


class EmptyClusterError(ClusteringError):
    def __init__(self, cluster_index):
        super().__init__(f"Cluster {cluster_index} received no points.")
        self.cluster_index = cluster_index


class InvalidErrorValue(ClusteringError):
    def __init__(self, value):
        super().__init__(f"Iteration error is not finite: {value}")
        self.value = value


class UnableToFinishError(ClusteringError):
    def __init__(self, attempts, cause=None):
        super().__init__(f"Clustering failed after {attempts} attempts: {cause}")
        self.attempts = attempts
        self.cause = cause


class Cluster:
    """Indexes of a subset of a DataSet, with a lazily computed centroid."""

    def __init__(self, dataset, indexes=None):
        self.dataset = dataset
        self.indexes = [] if indexes is None else [int(i) for i in indexes]
        self._centroid = None

    @classmethod
    def from_entire_dataset(cls, dataset):
        return cls(dataset, range(dataset.size()))

    @staticmethod
    def configuration_from_associations(associations, dataset, num_clusters=None):
        associations = np.asarray(associations)
        if num_clusters is None:
            num_clusters = int(associations.max()) + 1 if associations.size else 0
        clusters = [Cluster(dataset) for _ in range(num_clusters)]
        for i, c in enumerate(associations):
            if c >= 0:
                clusters[c].indexes.append(i)
        return clusters

    @staticmethod
    def associations_for_clustering(clusters, dataset):
        associations = np.full(dataset.size(), -1, dtype=np.int64)
        for c, cluster in enumerate(clusters):
            associations[cluster.indexes] = c
        return associations

    def add_instance(self, index):
        self.indexes.append(int(index))
        self._centroid = None

    def size(self):
        return len(self.indexes)

    def __len__(self):
        return self.size()

    def is_empty(self):
        return not self.indexes

    def get_instance(self, position):
        return self.dataset.get_instance(self.indexes[position])

    def numeric_matrix(self):
        return self.dataset.numeric_matrix(np.asarray(self.indexes, dtype=np.int64))

    def get_centroid(self):
        """Mean over the int and float attributes, skipping missing values."""
        if self.is_empty():
            raise EmptyClusterError(-1)
        if self._centroid is None:
            pts = self.numeric_matrix()
            present = ~np.isnan(pts)
            counts = present.sum(axis=0)
            sums = np.where(present, pts, 0.0).sum(axis=0)
            self._centroid = np.divide(sums, counts, out=np.full(pts.shape[1], np.nan),
                                       where=counts > 0)
        return self._centroid

    def _distances(self, metric):
        pts = self.numeric_matrix()
        return metric.pairwise(pts, pts, self.dataset.num_int)

    def get_medoid_index(self, metric=EUCLIDEAN):
        if self.is_empty():
            raise EmptyClusterError(-1)
        return self.indexes[int(np.argmin(self._distances(metric).sum(axis=1)))]

    def calculate_diameter(self, metric=EUCLIDEAN):
        if self.size() < 2:
            return 0.0
        return float(self._distances(metric).max())

    def average_intra_distance(self, metric=EUCLIDEAN):
        n = self.size()
        if n < 2:
            return 0.0
        return float(self._distances(metric).sum() / (n * (n - 1)))

    def get_median_for_dimension(self, dim):
        values = self.numeric_matrix()[:, dim]
        values = values[~np.isnan(values)]
        return float(np.median(values)) if values.size else float("nan")

    def into_dataset(self):
        return self.dataset.subset(self.indexes)

    def __repr__(self):
        return f"Cluster(size={self.size()})"


class ClusteringAlgorithm:
    """Shared state and checks for the clustering methods.

    Subclasses implement ``_cluster_once(attempt)``; ``cluster`` runs it inside the
    re-seeding loop and stores the outcome.
    """

    def __init__(self, dataset, num_clusters, metric=EUCLIDEAN, seed=None,
                 max_retries=MAX_RETRIES, verbose=False):
        self.dataset = dataset
        self.num_clusters = num_clusters
        self.metric = metric if metric is not None else EUCLIDEAN
        self.seed = seed
        self.max_retries = max_retries
        self.verbose = verbose
        self.rng = np.random.default_rng(seed)
        self.cluster_associations = None
        self.centroids = None
        self.iteration = 0
        self.attempts = 0

    def perform_basic_checks(self):
        if self.dataset is None or self.dataset.is_empty():
            raise ValueError("No data provided for clustering.")
        if (isinstance(self.num_clusters, bool) or not isinstance(self.num_clusters, (int, np.integer))
                or self.num_clusters <= 0 or self.num_clusters > self.dataset.size()):
            raise ValueError(f"Inappropriate cluster number: {self.num_clusters}")

    def check_if_trivial(self):
        n = self.dataset.size()
        if self.num_clusters == 1:
            self.cluster_associations = np.zeros(n, dtype=np.int64)
        elif self.num_clusters == n:
            self.cluster_associations = np.arange(n, dtype=np.int64)
        else:
            return False
        self.centroids = np.vstack([c.get_centroid() for c in self.get_clusters()])
        return True

    def cluster(self):
        self.perform_basic_checks()
        if self.check_if_trivial():
            return self
        self.attempts = 0
        while True:
            self.attempts += 1
            try:
                self._cluster_once(self.attempts)
                return self
            except ClusteringError as err:
                if self.verbose:
                    print(f"  {err} Reclustering (attempt {self.attempts + 1})")
                if self.attempts > self.max_retries:
                    raise UnableToFinishError(self.attempts, err) from err

    def _cluster_once(self, attempt):
        raise NotImplementedError

    def next_iteration(self):
        self.iteration += 1

    def get_clusters(self):
        return Cluster.configuration_from_associations(
            self.cluster_associations, self.dataset, self.num_clusters)

    def assign_points_to_model_clusters(self, dataset):
        """Nearest final centroid assignment for points outside the training data."""
        if dataset is None or dataset.is_empty():
            return None
        if self.centroids is None:
            return np.zeros(dataset.size(), dtype=np.int64)
        dists = self.metric.pairwise(dataset.numeric_matrix(), self.centroids, dataset.num_int)
        return np.argmin(dists, axis=1)


def error_difference_significant(error_previous, error_current, threshold=ERROR_THRESHOLD):
    if not (np.isfinite(error_previous) and np.isfinite(error_current)) or error_previous == 0:
        return error_previous != error_current
    return abs(error_current / error_previous - 1.0) >= threshold


def select_num_clusters(algorithm_factory, dataset, min_clusters, max_clusters, quality,
                        maximize=True, verbose=False):
    """Run ``algorithm_factory(num_clusters)`` over a range and keep the best by ``quality``.

    ``quality(dataset, associations)`` scores a clustering. Returns
    (best_num_clusters, best_algorithm, scores).
    """
    if min_clusters < 1:
        raise ValueError(f"min_clusters must be positive, got {min_clusters}")
    if min_clusters > max_clusters:
        raise ValueError(f"min_clusters ({min_clusters}) > max_clusters ({max_clusters})")
    scores = {}
    best = None
    for num_clusters in range(min_clusters, max_clusters + 1):
        alg = algorithm_factory(num_clusters).cluster()
        score = quality(dataset, alg.cluster_associations)
        scores[num_clusters] = score
        if verbose:
            print(f"  {num_clusters} clusters: quality = {score:.4f}")
        better = best is None or (score > best[0] if maximize else score < best[0])
        if better:
            best = (score, num_clusters, alg)
    return best[1], best[2], scores
