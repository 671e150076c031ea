import numpy as np

MIN_NODE_SIZE = 15
# Relative slack on the pruning comparison, absorbs rounding in the corner distances.
PRUNE_TOLERANCE = 1e-9


class KDTreeBuildError(ValueError):
    pass


class KDTree:
    """Median-split KD-tree over the int and float attributes of a DataSet.

    Nodes live in flat arrays addressed by id (root = 0, children always get
    larger ids than their parent). Node ``i`` owns the contiguous slice
    ``order[start[i]:end[i]]`` of one shared permutation of instance indexes and
    caches the aggregates K-means needs: size, linear sums, square sum, the
    per-dimension bounding box and per-dimension counts of present values.
    """

    def __init__(self, dataset, min_node_size=MIN_NODE_SIZE, verbose=False):
        if dataset is None or dataset.is_empty():
            raise ValueError("Cannot build a KD-tree over an empty dataset.")
        if dataset.num_numeric == 0:
            raise KDTreeBuildError("No int or float attributes available for splitting.")
        self.dataset = dataset
        self.num_int = dataset.num_int
        self.points = dataset.numeric_matrix()
        self.min_node_size = min_node_size
        self.order = np.arange(dataset.size(), dtype=np.int64)

        self._build()
        self._compute_aggregates()
        if verbose:
            print(f"  KD-tree: {self.num_nodes} nodes, {len(self.leaves())} leaves, depth {self.depth()}")

    # ── construction ────────────────────────────────────────────────────────
    def _can_split(self, size):
        return size >= 2 * self.min_node_size + 1

    def _build(self):
        dims = self.points.shape[1]
        start, end, left, right, parent = [0], [len(self.order)], [-1], [-1], [-1]
        split_dim, split_value = [-1], [np.nan]

        stack = [(0, 0)]
        while stack:
            node, first_dim = stack.pop()
            s, e = start[node], end[node]
            if not self._can_split(e - s):
                continue
            idx = self.order[s:e]
            for attempt in range(dims):
                dim = (first_dim + attempt) % dims
                values = self.points[idx, dim]
                present = ~np.isnan(values)
                if not present.any():
                    continue
                median = np.median(values[present])
                go_left = values < median
                num_left = int(go_left.sum())
                if num_left == 0 or num_left == e - s:
                    continue
                self.order[s:e] = np.concatenate([idx[go_left], idx[~go_left]])
                for cs, ce in ((s, s + num_left), (s + num_left, e)):
                    start.append(cs)
                    end.append(ce)
                    left.append(-1)
                    right.append(-1)
                    parent.append(node)
                    split_dim.append(-1)
                    split_value.append(np.nan)
                left[node], right[node] = len(start) - 2, len(start) - 1
                split_dim[node], split_value[node] = dim, median
                stack.append((left[node], (dim + 1) % dims))
                stack.append((right[node], (dim + 1) % dims))
                break

        self.start = np.array(start, dtype=np.int64)
        self.end = np.array(end, dtype=np.int64)
        self.left = np.array(left, dtype=np.int64)
        self.right = np.array(right, dtype=np.int64)
        self.parent = np.array(parent, dtype=np.int64)
        self.split_dim = np.array(split_dim, dtype=np.int64)
        self.split_value = np.array(split_value, dtype=np.float64)

    def _compute_aggregates(self):
        m, dims = self.num_nodes, self.points.shape[1]
        self.sizes = self.end - self.start
        self.linear_sums = np.zeros((m, dims))
        self.square_sums = np.zeros(m)
        self.lower = np.full((m, dims), np.nan)
        self.upper = np.full((m, dims), np.nan)
        self.missing = np.zeros((m, dims), dtype=bool)
        self.present_counts = np.zeros((m, dims), dtype=np.int64)

        # Children have larger ids than parents: a reverse sweep visits leaves
        # before the internal nodes that merge them.
        for node in range(m - 1, -1, -1):
            if self.is_leaf(node):
                pts = self.points[self.node_indexes(node)]
                absent = np.isnan(pts)
                self.linear_sums[node] = np.where(absent, 0.0, pts).sum(axis=0)
                self.square_sums[node] = np.where(absent, 0.0, pts * pts).sum()
                low = np.where(absent, np.inf, pts).min(axis=0)
                high = np.where(absent, -np.inf, pts).max(axis=0)
                self.lower[node] = np.where(np.isinf(low), np.nan, low)
                self.upper[node] = np.where(np.isinf(high), np.nan, high)
                self.missing[node] = absent.any(axis=0)
                self.present_counts[node] = (~absent).sum(axis=0)
            else:
                lc, rc = self.left[node], self.right[node]
                self.linear_sums[node] = self.linear_sums[lc] + self.linear_sums[rc]
                self.square_sums[node] = self.square_sums[lc] + self.square_sums[rc]
                self.lower[node] = np.fmin(self.lower[lc], self.lower[rc])
                self.upper[node] = np.fmax(self.upper[lc], self.upper[rc])
                self.missing[node] = self.missing[lc] | self.missing[rc]
                self.present_counts[node] = self.present_counts[lc] + self.present_counts[rc]

    # ── introspection ───────────────────────────────────────────────────────
    root = 0

    @property
    def num_nodes(self):
        return self.start.shape[0]

    def is_leaf(self, node):
        return self.left[node] < 0 and self.right[node] < 0

    def node_size(self, node):
        return int(self.end[node] - self.start[node])

    def node_indexes(self, node):
        return self.order[self.start[node]:self.end[node]]

    def leaves(self):
        return [node for node in range(self.num_nodes) if self.is_leaf(node)]

    def depth(self):
        depths = np.zeros(self.num_nodes, dtype=np.int64)
        for node in range(1, self.num_nodes):
            depths[node] = depths[self.parent[node]] + 1
        return int(depths.max())

    # ── pruning ─────────────────────────────────────────────────────────────
    def prune(self, node, candidates, centroids, metric):
        """Drop candidate centroids that cannot be nearest to any point in ``node``.

        A candidate survives when its distance to the closest corner of the node's
        box does not exceed the smallest furthest-corner distance over all
        candidates. ``candidates`` are row indexes into ``centroids``.
        """
        candidates = np.asarray(candidates, dtype=np.int64)
        if candidates.size == 0:
            raise ValueError("No centroids passed for pruning.")
        if candidates.size == 1 or not metric.supports_box_bounds:
            return candidates
        min_dists, max_dists = metric.dist_to_boxes(
            centroids[candidates], self.lower[node], self.upper[node], self.num_int,
            self.missing[node],
        )
        bound = max_dists.min()
        survivors = candidates[min_dists <= bound + PRUNE_TOLERANCE * max(bound, 1.0)]
        return survivors if survivors.size else candidates

    # ── search ──────────────────────────────────────────────────────────────
    def _lower_bound(self, point, node, metric):
        min_dist, _ = metric.dist_to_boxes(point[np.newaxis, :], self.lower[node], self.upper[node],
                                           self.num_int, self.missing[node])
        return float(min_dist[0])

    def query(self, point, k, metric, exclude=None):
        """Exact k nearest neighbors of ``point`` among the tree's instances.

        Returns (indexes, distances) sorted by distance, equal distances ordered by
        index. ``exclude`` is an instance index left out of the result (the query
        point itself during k-NN graph construction).
        """
        point = np.asarray(point, dtype=np.float64)
        best_idx = np.empty(0, dtype=np.int64)
        best_dist = np.empty(0)

        if not metric.supports_box_bounds:
            idx = np.arange(self.points.shape[0])
            dists = metric.paired(self.points, point[np.newaxis, :], self.num_int)
            if exclude is not None:
                keep = idx != exclude
                idx, dists = idx[keep], dists[keep]
            top = np.lexsort((idx, dists))[:k]
            return idx[top], dists[top]

        stack = [self.root]
        while stack:
            node = stack.pop()
            if best_idx.size == k and self._lower_bound(point, node, metric) > best_dist[-1]:
                continue
            if self.is_leaf(node):
                idx = self.node_indexes(node)
                if exclude is not None:
                    idx = idx[idx != exclude]
                if idx.size == 0:
                    continue
                dists = metric.paired(self.points[idx], point[np.newaxis, :], self.num_int)
                all_idx = np.concatenate([best_idx, idx])
                all_dist = np.concatenate([best_dist, dists])
                top = np.lexsort((all_idx, all_dist))[:k]
                best_idx, best_dist = all_idx[top], all_dist[top]
            else:
                children = [self.left[node], self.right[node]]
                bounds = [self._lower_bound(point, c, metric) for c in children]
                # Nearer child is pushed last so it is explored first.
                for _, child in sorted(zip(bounds, children), reverse=True):
                    stack.append(child)
        return best_idx, best_dist


def build(dataset, min_node_size=MIN_NODE_SIZE, verbose=False):
    return KDTree(dataset, min_node_size=min_node_size, verbose=verbose)
