import threading
from concurrent.futures import ThreadPoolExecutor

import numpy as np

from clusters import MAX_RETRIES
from distances import EUCLIDEAN
from kdtree import KDTree
from kmeans import DEFAULT_MAX_ITERATIONS, ClusterSums, KMeans

# The KD-tree pass is much cheaper per iteration, the early error ratio is noisier.
MIN_ITERATIONS = 5
DEFAULT_NUM_THREADS = 8


class FastKMeans(KMeans):
    """K-means with the assignment step done over a KD-tree.

    Each iteration walks the tree from the root, pruning the candidate centroids
    per node. A node left with a single candidate is assigned wholesale through
    its cached sums; ambiguous leaves fall back to exact per-point assignment.
    The tree is built once and reused across retries.
    """

    min_iterations_default = MIN_ITERATIONS

    def __init__(self, dataset, num_clusters, metric=EUCLIDEAN, seed=None,
                 initial_centroids=None, max_iterations=DEFAULT_MAX_ITERATIONS,
                 max_retries=MAX_RETRIES, min_iterations=None, tree=None, verbose=False):
        super().__init__(dataset, num_clusters, metric=metric, seed=seed,
                         initial_centroids=initial_centroids, max_iterations=max_iterations,
                         min_iterations=min_iterations, max_retries=max_retries, verbose=verbose)
        self.tree = tree

    def _cluster_once(self, attempt):
        if self.tree is None:
            self.tree = KDTree(self.dataset, verbose=self.verbose)
        super()._cluster_once(attempt)

    def _assign(self, X, centroids):
        sums = ClusterSums(self.num_clusters, X.shape[1])
        self._centroids = centroids
        self._visit(self.tree.root, np.arange(self.num_clusters), sums)
        return sums.reduce()

    def _visit(self, node, candidates, sums):
        tree = self.tree
        candidates = tree.prune(node, candidates, self._centroids, self.metric)
        if candidates.size == 1:
            sums.add(int(candidates[0]), tree.node_indexes(node), tree.present_counts[node],
                     tree.linear_sums[node], tree.square_sums[node])
        elif tree.is_leaf(node):
            self._assign_leaf(node, candidates, sums)
        else:
            for child in (tree.left[node], tree.right[node]):
                self._descend(child, candidates, sums)

    def _descend(self, child, candidates, sums):
        self._visit(child, candidates, sums)

    def _assign_leaf(self, node, candidates, sums):
        idx = self.tree.node_indexes(node)
        points = self.tree.points[idx]
        dists = self.metric.pairwise(points, self._centroids[candidates], self.tree.num_int)
        # Candidates stay in ascending order, argmin keeps the lower cluster on ties.
        labels = candidates[np.argmin(dists, axis=1)]
        for c in np.unique(labels):
            mask = labels == c
            sums.add_points(int(c), idx[mask], points[mask])

    def _iteration_error(self, X, assoc, centroids, sums):
        return sums.squared_error(centroids)


class MTFastKMeans(FastKMeans):
    """FastKMeans with each tree pass split across a thread pool.

    Every iteration is a fork-join: subtrees are handed to the pool while a
    permit is free and walked inline otherwise, and all of them are joined
    before the centroids move. Subtree chunks are recorded under per-cluster
    locks and folded in a fixed order, so repeated runs give identical centroids.
    """

    def __init__(self, dataset, num_clusters, metric=EUCLIDEAN, seed=None,
                 initial_centroids=None, max_iterations=DEFAULT_MAX_ITERATIONS,
                 max_retries=MAX_RETRIES, min_iterations=None, tree=None,
                 num_threads=DEFAULT_NUM_THREADS, verbose=False):
        super().__init__(dataset, num_clusters, metric=metric, seed=seed,
                         initial_centroids=initial_centroids, max_iterations=max_iterations,
                         max_retries=max_retries, min_iterations=min_iterations, tree=tree,
                         verbose=verbose)
        if num_threads < 1:
            raise ValueError(f"num_threads must be positive, got {num_threads}")
        self.num_threads = num_threads
        self._executor = None
        self._permits = None
        self._futures = None
        self._futures_lock = threading.Lock()

    def cluster(self):
        with ThreadPoolExecutor(max_workers=self.num_threads) as executor:
            self._executor = executor
            try:
                return super().cluster()
            finally:
                self._executor = None

    def _assign(self, X, centroids):
        sums = ClusterSums(self.num_clusters, X.shape[1])
        self._centroids = centroids
        self._permits = threading.BoundedSemaphore(self.num_threads)
        self._futures = []
        try:
            self._visit(self.tree.root, np.arange(self.num_clusters), sums)
        finally:
            error = self._join_all()
        if error is not None:
            raise error
        return sums.reduce()

    def _join_all(self):
        # Tasks only ever append their children before finishing, so by the
        # time future i resolves everything it spawned is already listed.
        first_error = None
        i = 0
        while True:
            with self._futures_lock:
                if i >= len(self._futures):
                    return first_error
                future = self._futures[i]
            error = future.exception()
            if error is not None and first_error is None:
                first_error = error
            i += 1

    def _descend(self, child, candidates, sums):
        if self._executor is not None and self._permits.acquire(blocking=False):
            future = self._executor.submit(self._run_subtree, child, candidates, sums)
            with self._futures_lock:
                self._futures.append(future)
        else:
            self._visit(child, candidates, sums)

    def _run_subtree(self, node, candidates, sums):
        try:
            self._visit(node, candidates, sums)
        finally:
            self._permits.release()
