import numpy as np

from distances import EUCLIDEAN
from kdtree import KDTree


def _entropy(labels, num_categories):
    labels = labels[labels >= 0]
    if labels.size == 0 or num_categories == 0:
        return 0.0
    probs = np.bincount(labels, minlength=num_categories) / labels.size
    probs = probs[probs > 0]
    return float(-(probs * np.log2(probs)).sum())


def _standardized_moment(values, order):
    values = np.asarray(values, dtype=np.float64)
    std = values.std()
    if values.size == 0 or std == 0:
        return 0.0
    return float((((values - values.mean()) / std) ** order).mean())


class NeighborSetFinder:
    """k-nearest-neighbor sets over a DataSet and the hubness counts derived from them.

    ``neighbors[i]`` holds the k instance indexes nearest to instance ``i`` in
    ascending distance (ties go to the lower index, ``i`` itself excluded) and
    ``neighbor_distances[i]`` the matching distances. Occurrence counts are
    rebuilt every time the sets are recalculated:

    * ``neighbor_frequencies[j]``: how many sets contain ``j`` (N_k)
    * ``good_frequencies[j]`` / ``bad_frequencies[j]``: occurrences in sets of
      instances sharing / not sharing ``j``'s label. A label is only shared when
      both sides are labeled, so an occurrence involving unlabeled data is bad
    * ``reverse_neighbors[j]``: the instances whose sets contain ``j``
    """

    def __init__(self, dataset, metric=EUCLIDEAN, distances=None, verbose=False):
        if dataset is None or dataset.is_empty():
            raise ValueError("No data provided for neighbor search.")
        self.dataset = dataset
        self.metric = metric if metric is not None else EUCLIDEAN
        self.verbose = verbose
        self.distances = None
        self.distance_mean = None
        self.distance_variance = None
        self.k = 0
        self.neighbors = None
        self.neighbor_distances = None
        self.neighbor_frequencies = None
        self.good_frequencies = None
        self.bad_frequencies = None
        self.reverse_neighbors = None
        if distances is not None:
            self.set_distances(distances)

    # ── distances ───────────────────────────────────────────────────────────
    def set_distances(self, distances):
        """Use a precomputed matrix: square (n, n), or upper-triangular rows where
        row ``i`` holds the distances to instances ``i+1 .. n-1``."""
        n = self.dataset.size()
        if isinstance(distances, np.ndarray) and distances.ndim == 2:
            if distances.shape != (n, n):
                raise ValueError(f"Distance matrix has shape {distances.shape}, expected ({n}, {n})")
            full = np.array(distances, dtype=np.float64)
        else:
            if len(distances) not in (n, n - 1):
                raise ValueError(f"Expected {n - 1} upper-triangular rows, got {len(distances)}")
            full = np.zeros((n, n))
            for i, row in enumerate(distances):
                row = np.asarray(row, dtype=np.float64)
                if row.shape[0] != n - i - 1:
                    raise ValueError(f"Row {i} has {row.shape[0]} entries, expected {n - i - 1}")
                full[i, i + 1:] = row
                full[i + 1:, i] = row
        np.fill_diagonal(full, 0.0)
        self.distances = full
        self._record_distance_stats()

    def calculate_distances(self):
        if self.distances is not None:
            return self.distances
        X = self.dataset.numeric_matrix()
        full = self.metric.pairwise(X, X, self.dataset.num_int)
        # Symmetrize from the upper triangle so rounding cannot break D[i, j] == D[j, i].
        upper = np.triu(full, 1)
        self.distances = upper + upper.T
        self._record_distance_stats()
        if self.verbose:
            print(f"  Distance matrix: {self.dataset.size()} x {self.dataset.size()}, "
                  f"mean {self.distance_mean:.4f}")
        return self.distances

    def _record_distance_stats(self):
        n = self.dataset.size()
        if n < 2:
            self.distance_mean, self.distance_variance = 0.0, 0.0
            return
        values = self.distances[np.triu_indices(n, 1)]
        self.distance_mean = float(values.mean())
        self.distance_variance = float(values.var())

    # ── kNN sets ────────────────────────────────────────────────────────────
    def _check_k(self, k, n):
        if isinstance(k, bool) or not isinstance(k, (int, np.integer)):
            raise ValueError(f"Neighborhood size must be an integer, got {k!r}")
        if k < 1 or k >= n:
            raise ValueError(f"Neighborhood size must satisfy 1 <= k < {n}, got {k}")

    def calculate_neighbor_sets(self, k, use_kdtree=False):
        n = self.dataset.size()
        self._check_k(k, n)

        if use_kdtree and self.metric.supports_box_bounds and self.dataset.num_numeric > 0:
            neighbors, neighbor_distances = self._search_kdtree(k)
        else:
            neighbors, neighbor_distances = self._search_matrix(k)

        self.k = int(k)
        self.neighbors = neighbors
        self.neighbor_distances = neighbor_distances
        self._count_occurrences()
        if self.verbose:
            stats = self.hubness_stats()
            print(f"  k={self.k}: occurrence skewness {self.hubness_skewness():.3f}, "
                  f"max N_k {stats['max_occurrence']}")
        return self

    def _search_matrix(self, k):
        D = self.calculate_distances().copy()
        np.fill_diagonal(D, np.inf)
        order = np.argsort(D, axis=1, kind="stable")[:, :k]
        return order, np.take_along_axis(D, order, axis=1)

    def _search_kdtree(self, k):
        tree = KDTree(self.dataset, verbose=self.verbose)
        n = self.dataset.size()
        neighbors = np.empty((n, k), dtype=np.int64)
        neighbor_distances = np.empty((n, k))
        for i in range(n):
            neighbors[i], neighbor_distances[i] = tree.query(tree.points[i], k, self.metric, exclude=i)
        return neighbors, neighbor_distances

    def _count_occurrences(self):
        n = self.dataset.size()
        labels = self.dataset.categories
        flat = self.neighbors.ravel()
        owners = np.repeat(np.arange(n), self.k)
        good = (labels[flat] == labels[owners]) & (labels[owners] >= 0)

        self.neighbor_frequencies = np.bincount(flat, minlength=n)
        self.good_frequencies = np.bincount(flat[good], minlength=n)
        self.bad_frequencies = np.bincount(flat[~good], minlength=n)

        reverse = [[] for _ in range(n)]
        for owner, neighbor in zip(owners, flat):
            reverse[neighbor].append(int(owner))
        self.reverse_neighbors = reverse

    def _require_sets(self):
        if self.neighbors is None:
            raise ValueError("Neighbor sets have not been calculated.")

    # ── hubness statistics ──────────────────────────────────────────────────
    def hubness_stats(self):
        self._require_sets()
        occ = self.neighbor_frequencies
        good, bad = self.good_frequencies, self.bad_frequencies
        return {
            "k": self.k,
            "mean_occurrence": float(occ.mean()),
            "std_occurrence": float(occ.std()),
            "max_occurrence": int(occ.max()),
            "mean_good": float(good.mean()),
            "std_good": float(good.std()),
            "mean_bad": float(bad.mean()),
            "std_bad": float(bad.std()),
            "mean_good_minus_bad": float((good - bad).mean()),
            "std_good_minus_bad": float((good - bad).std()),
        }

    def hubness_skewness(self):
        self._require_sets()
        return _standardized_moment(self.neighbor_frequencies, 3)

    def hubness_kurtosis(self):
        """Excess kurtosis of the occurrence distribution."""
        self._require_sets()
        if self.neighbor_frequencies.std() == 0:
            return 0.0
        return _standardized_moment(self.neighbor_frequencies, 4) - 3.0

    def get_neighbor_occ_frequencies(self, k_small=None):
        self._require_sets()
        if k_small is None or k_small == self.k:
            return self.neighbor_frequencies.copy()
        if not 1 <= k_small <= self.k:
            raise ValueError(f"k_small must be in [1, {self.k}], got {k_small}")
        return np.bincount(self.neighbors[:, :k_small].ravel(), minlength=self.dataset.size())

    def get_frequent_at_least(self, threshold):
        self._require_sets()
        return np.flatnonzero(self.neighbor_frequencies >= threshold)

    def get_major_hub_index(self):
        self._require_sets()
        return int(np.argmax(self.neighbor_frequencies))

    def hub_orphan_regular_percentages(self):
        """Shares of hubs (N_k >= k + 2 sd), orphans (N_k <= max(0, k - 2 sd)) and the rest."""
        self._require_sets()
        occ = self.neighbor_frequencies
        sd = occ.std()
        hubs = occ >= self.k + 2 * sd
        orphans = occ <= max(0.0, self.k - 2 * sd)
        n = occ.size
        return (float(hubs.sum() / n), float(orphans.sum() / n),
                float((~hubs & ~orphans).sum() / n))

    def get_label_mismatch_percentage(self):
        self._require_sets()
        return float(self.bad_frequencies.sum() / (self.dataset.size() * self.k))

    def class_occurrence_counts(self):
        """(num_categories, n) array: row ``c`` counts each instance's occurrences in
        the kNN sets of class ``c`` instances. Unlabeled owners are left out."""
        self._require_sets()
        n = self.dataset.size()
        num_categories = self.dataset.count_categories()
        labels = self.dataset.categories
        owners = np.repeat(labels, self.k)
        flat = self.neighbors.ravel()
        keep = owners >= 0
        counts = np.zeros((num_categories, n), dtype=np.int64)
        np.add.at(counts, (owners[keep], flat[keep]), 1)
        return counts

    def goodness_proportional_weights(self):
        """Per-instance weights in [0, 1] that grow as an instance's occurrences
        concentrate in a single class.

        The raw score is ``1.5 * sum_c N_{k,c}^2 - N_k^2``. Scores are min-max
        scaled over a range that always includes 0. All weights are 1 when every
        score is 0.
        """
        counts = self.class_occurrence_counts().astype(np.float64)
        occ = self.neighbor_frequencies.astype(np.float64)
        scores = 1.5 * (counts * counts).sum(axis=0) - occ * occ
        low, high = min(scores.min(), 0.0), max(scores.max(), 0.0)
        if high == low:
            return np.ones_like(scores)
        return (scores - low) / (high - low)

    def get_avg_dist_to_neighbors(self):
        self._require_sets()
        return self.neighbor_distances.mean(axis=1)

    def calculate_k_entropies(self):
        """Label entropy (bits) of each instance's kNN set."""
        self._require_sets()
        labels = self.dataset.categories
        num_categories = self.dataset.count_categories()
        return np.array([_entropy(labels[row], num_categories) for row in self.neighbors])

    def calculate_reverse_neighbor_entropies(self):
        """Label entropy (bits) of each instance's reverse kNN set, 0 for anti-hubs."""
        self._require_sets()
        labels = self.dataset.categories
        num_categories = self.dataset.count_categories()
        return np.array([
            _entropy(labels[np.asarray(rev, dtype=np.int64)], num_categories)
            for rev in self.reverse_neighbors
        ])

    # ── derived finders ─────────────────────────────────────────────────────
    def get_sub_nsf(self, k_smaller):
        """Finder over the same data restricted to the first ``k_smaller`` neighbors."""
        self._require_sets()
        if not 1 <= k_smaller <= self.k:
            raise ValueError(f"k_smaller must be in [1, {self.k}], got {k_smaller}")
        sub = NeighborSetFinder(self.dataset, self.metric, verbose=self.verbose)
        sub.distances = self.distances
        sub.distance_mean, sub.distance_variance = self.distance_mean, self.distance_variance
        sub.k = int(k_smaller)
        sub.neighbors = self.neighbors[:, :k_smaller].copy()
        sub.neighbor_distances = self.neighbor_distances[:, :k_smaller].copy()
        sub._count_occurrences()
        return sub

    def get_indexes_of_neighbors(self, query_dataset, k=None):
        """kNN indexes into this finder's data for instances of another set."""
        k = self.k if k is None else k
        self._check_k(k, self.dataset.size() + 1)
        Q = query_dataset.numeric_matrix()
        D = self.metric.pairwise(Q, self.dataset.numeric_matrix(), self.dataset.num_int)
        order = np.argsort(D, axis=1, kind="stable")[:, :k]
        return order, np.take_along_axis(D, order, axis=1)
