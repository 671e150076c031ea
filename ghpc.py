import numpy as np

from clusters import (
    ERROR_THRESHOLD, MAX_RETRIES, Cluster, ClusteringAlgorithm, EmptyClusterError,
    InvalidErrorValue, error_difference_significant,
)
from distances import EUCLIDEAN
from neighbors import NeighborSetFinder
from seeding import PlusPlusSeeder

PROBABILISTIC_ITERATIONS = 20
MAX_ITER = 100
DEFAULT_K = 10


class GHPC(ClusteringAlgorithm):
    """Global Hubness-Proportional Clustering.

    Clusters are represented by hub points instead of centroids. Points go to
    their nearest hub; each cluster then picks a new hub among its members,
    at first stochastically with probability proportional to squared neighbor
    occurrence, and increasingly often (always once ``probabilistic_iterations``
    have passed) as its highest-occurrence member.

    With ``hubness_mode="supervised"`` the occurrence of each point is scaled by
    ``NeighborSetFinder.goodness_proportional_weights``.
    """

    def __init__(self, dataset, num_clusters, k=DEFAULT_K, metric=EUCLIDEAN, nsf=None,
                 hubness=None, probabilistic_iterations=PROBABILISTIC_ITERATIONS,
                 max_iterations=MAX_ITER, hubness_mode="unsupervised", keep_history=False,
                 seed=None, max_retries=MAX_RETRIES, verbose=False):
        super().__init__(dataset, num_clusters, metric=metric, seed=seed,
                         max_retries=max_retries, verbose=verbose)
        if hubness_mode not in ("unsupervised", "supervised"):
            raise ValueError(f"Unknown hubness mode: {hubness_mode!r}")
        self.k = k
        self.nsf = nsf
        self.hubness = None if hubness is None else np.asarray(hubness, dtype=np.float64)
        self.probabilistic_iterations = probabilistic_iterations
        self.max_iterations = max_iterations
        self.hubness_mode = hubness_mode
        self.keep_history = keep_history
        self.hub_history = [] if keep_history else None
        self.hubs = None
        self.minimizing_associations = None
        self.minimal_error = None
        self.minimizing_hubs = None
        self.iteration_error = None
        self.num_iterations = 0

    def perform_basic_checks(self):
        super().perform_basic_checks()
        if self.probabilistic_iterations < 0:
            raise ValueError(f"probabilistic_iterations must be >= 0, got {self.probabilistic_iterations}")
        if self.max_iterations < 1:
            raise ValueError(f"max_iterations must be positive, got {self.max_iterations}")
        if self.hubness is not None and self.hubness.shape != (self.dataset.size(),):
            raise ValueError(f"hubness has shape {self.hubness.shape}, expected ({self.dataset.size()},)")

    # ── hubness source ──────────────────────────────────────────────────────
    def _prepare_neighbors(self):
        if self.nsf is None:
            self.nsf = NeighborSetFinder(self.dataset, self.metric, verbose=self.verbose)
        if self.hubness is None:
            self._hubness_from_neighbors()
        # Hub assignment reads the full matrix, which indexed kNN search does not fill.
        self.nsf.calculate_distances()

    def _hubness_from_neighbors(self):
        if self.nsf.neighbors is None:
            self.nsf.calculate_neighbor_sets(self.k)
        elif self.nsf.k > self.k:
            self.nsf = self.nsf.get_sub_nsf(self.k)
        elif self.nsf.k < self.k:
            self.nsf.calculate_neighbor_sets(self.k)
        if self.hubness_mode == "supervised":
            self.hubness = self.nsf.neighbor_frequencies * self.nsf.goodness_proportional_weights()
        else:
            self.hubness = self.nsf.neighbor_frequencies.astype(np.float64)

    def cluster(self):
        self.perform_basic_checks()
        self._prepare_neighbors()
        if self.keep_history:
            self.hub_history = []
        return super().cluster()

    def check_if_trivial(self):
        if not super().check_if_trivial():
            return False
        self.minimizing_associations = self.cluster_associations.copy()
        self.hubs = np.array([int(np.argmax(self.cluster_associations == c))
                              for c in range(self.num_clusters)], dtype=np.int64)
        self.minimizing_hubs = self.hubs.copy()
        return True

    # ── iterations ──────────────────────────────────────────────────────────
    def _assign_to_hubs(self, D, hubs):
        assoc = np.argmin(D[hubs], axis=0)
        assoc[hubs] = np.arange(hubs.size)
        counts = np.bincount(assoc, minlength=self.num_clusters)
        empty = np.flatnonzero(counts == 0)
        if empty.size:
            raise EmptyClusterError(int(empty[0]))
        return assoc

    def _error(self, D, hubs, assoc):
        dists = D[hubs[assoc], np.arange(assoc.size)]
        error = float((dists * dists).sum())
        if not np.isfinite(error):
            raise InvalidErrorValue(error)
        return error

    def _pick_hub(self, members, deterministic):
        if members.size == 1:
            return int(members[0])
        weights = self.hubness[members]
        if deterministic:
            # argmax keeps the first maximum, members are in ascending index order.
            return int(members[np.argmax(weights)])
        weights = weights * weights
        total = weights.sum()
        if total <= 0:
            return int(self.rng.choice(members))
        return int(self.rng.choice(members, p=weights / total))

    def _select_hubs(self, assoc):
        prob_det = (self.iteration / self.probabilistic_iterations
                    if self.iteration < self.probabilistic_iterations else 1.0)
        hubs = np.empty(self.num_clusters, dtype=np.int64)
        for c in range(self.num_clusters):
            members = np.flatnonzero(assoc == c)
            deterministic = self.rng.random() >= 1.0 - prob_det
            hubs[c] = self._pick_hub(members, deterministic)
        return hubs

    def _record(self, hubs):
        if self.keep_history:
            self.hub_history.append(hubs.copy())

    def _cluster_once(self, attempt):
        D = self.nsf.distances
        if self.keep_history:
            self.hub_history = []
        seeder = PlusPlusSeeder(self.num_clusters, self.dataset, self.metric, rng=self.rng,
                                distances=D)
        hubs = seeder.get_centroid_indexes()
        self._record(hubs)
        assoc = self._assign_to_hubs(D, hubs)
        error = self._error(D, hubs, assoc)
        best_assoc, best_error, best_hubs = assoc.copy(), error, hubs.copy()
        self.iteration = 0

        while self.iteration < self.max_iterations:
            self.next_iteration()
            hubs = self._select_hubs(assoc)
            self._record(hubs)
            new_assoc = self._assign_to_hubs(D, hubs)
            new_error = self._error(D, hubs, new_assoc)
            if self.verbose:
                print(f"  iteration {self.iteration}: error {new_error:.4f}")
            if new_error < best_error:
                best_assoc, best_error, best_hubs = new_assoc.copy(), new_error, hubs.copy()

            reassigned = bool((new_assoc != assoc).any())
            past_probabilistic = self.iteration >= self.probabilistic_iterations
            settled = past_probabilistic and not error_difference_significant(
                error, new_error, ERROR_THRESHOLD)
            assoc, error = new_assoc, new_error
            if not reassigned or settled:
                break

        self.cluster_associations = assoc
        self.hubs = hubs
        self.iteration_error = error
        self.minimizing_associations = best_assoc
        self.minimal_error = best_error
        self.minimizing_hubs = best_hubs
        self.num_iterations = self.iteration
        X = self.dataset.numeric_matrix()
        self.centroids = X[hubs]

    def get_minimizing_clusters(self):
        if self.minimizing_associations is None:
            return None
        return Cluster.configuration_from_associations(
            self.minimizing_associations, self.dataset, self.num_clusters)
