import numpy as np
from scipy.optimize import linear_sum_assignment

from distances import EUCLIDEAN

SILHOUETTE_SAMPLE = 3000


def _valid(X, labels):
    labels = np.asarray(labels)
    mask = labels >= 0
    return X[mask], labels[mask]


def _distance_matrix(X, metric, num_int):
    return metric.pairwise(X, X, num_int)


def silhouette_score(X, labels, metric=EUCLIDEAN, num_int=0, seed=42):
    """Mean Silhouette Coefficient (subsampled for efficiency)."""
    X_v, lbl_v = _valid(X, labels)
    n = len(X_v)
    if n == 0:
        return 0.0
    if len(np.unique(lbl_v)) < 2:
        return 0.0

    if n > SILHOUETTE_SAMPLE:
        rng = np.random.default_rng(seed)
        idx = rng.choice(n, SILHOUETTE_SAMPLE, replace=False)
        X_v, lbl_v = X_v[idx], lbl_v[idx]
        n = SILHOUETTE_SAMPLE
    unique = np.unique(lbl_v)

    D = _distance_matrix(X_v, metric, num_int)
    sils = np.zeros(n)
    for i in range(n):
        same = lbl_v == lbl_v[i]
        same[i] = False
        if same.sum() == 0:
            continue
        a_i = D[i, same].mean()
        b_i = min(D[i, lbl_v == lab].mean() for lab in unique if lab != lbl_v[i])
        denom = max(a_i, b_i)
        sils[i] = (b_i - a_i) / denom if denom > 0 else 0

    return float(sils.mean())


def calinski_harabasz_score(X, labels):
    """Calinski-Harabasz Index: between- to within-cluster variance ratio."""
    X_v, lbl_v = _valid(X, labels)
    n = len(X_v)
    unique = np.unique(lbl_v)
    k = len(unique)
    if k < 2 or n <= k:
        return 0.0

    overall_mean = np.nanmean(X_v, axis=0)
    B, W = 0.0, 0.0
    for lab in unique:
        pts = X_v[lbl_v == lab]
        c_mean = np.nanmean(pts, axis=0)
        B += len(pts) * np.nansum((c_mean - overall_mean) ** 2)
        W += np.nansum((pts - c_mean) ** 2)

    return float((B / (k - 1)) / (W / (n - k))) if W > 0 else 0.0


def compute_inertia(X, labels, centroids=None):
    """Sum of squared distances to cluster centers."""
    X_v, lbl_v = _valid(X, labels)
    unique = np.unique(lbl_v)
    if centroids is None:
        centroids_map = {l: np.nanmean(X_v[lbl_v == l], axis=0) for l in unique}
    else:
        centroids_map = {l: centroids[l] for l in unique if l < len(centroids)}
    return float(sum(
        np.nansum((X_v[lbl_v == l] - centroids_map[l]) ** 2)
        for l in unique if l in centroids_map
    ))


def dunn_index(X, labels, metric=EUCLIDEAN, num_int=0):
    """Smallest between-cluster distance over the largest cluster diameter."""
    X_v, lbl_v = _valid(X, labels)
    unique = np.unique(lbl_v)
    if len(unique) < 2:
        return 0.0
    D = _distance_matrix(X_v, metric, num_int)
    diameter = max(D[np.ix_(lbl_v == lab, lbl_v == lab)].max() for lab in unique)
    separation = min(
        D[np.ix_(lbl_v == a, lbl_v == b)].min()
        for i, a in enumerate(unique) for b in unique[i + 1:]
    )
    return float(separation / diameter) if diameter > 0 else float("inf")


def davies_bouldin_score(X, labels, metric=EUCLIDEAN, num_int=0):
    """Average over clusters of the worst (s_i + s_j) / d(c_i, c_j) ratio. Lower is better."""
    X_v, lbl_v = _valid(X, labels)
    unique = np.unique(lbl_v)
    k = len(unique)
    if k < 2:
        return 0.0
    centroids = np.vstack([np.nanmean(X_v[lbl_v == lab], axis=0) for lab in unique])
    scatter = np.array([
        metric.pairwise(X_v[lbl_v == lab], centroids[j:j + 1], num_int).mean()
        for j, lab in enumerate(unique)
    ])
    C = metric.pairwise(centroids, centroids, num_int)
    ratios = np.zeros((k, k))
    off = ~np.eye(k, dtype=bool) & (C > 0)
    ratios[off] = ((scatter[:, None] + scatter[None, :])[off]) / C[off]
    return float(ratios.max(axis=1).mean())


def _pair_counts(labels_true, labels_pred):
    labels_true = np.asarray(labels_true)
    labels_pred = np.asarray(labels_pred)
    if labels_true.shape != labels_pred.shape:
        raise ValueError(f"Label arrays differ in shape: {labels_true.shape} vs {labels_pred.shape}")
    _, t = np.unique(labels_true, return_inverse=True)
    _, p = np.unique(labels_pred, return_inverse=True)
    contingency = np.zeros((t.max() + 1, p.max() + 1), dtype=np.int64)
    np.add.at(contingency, (t, p), 1)

    def pairs(x):
        return (x * (x - 1) // 2).sum()

    n = labels_true.size
    same_both = pairs(contingency)
    same_true = pairs(contingency.sum(axis=1))
    same_pred = pairs(contingency.sum(axis=0))
    total = n * (n - 1) // 2
    return same_both, same_true - same_both, same_pred - same_both, total


def rand_index(labels_true, labels_pred):
    tp, fn, fp, total = _pair_counts(labels_true, labels_pred)
    if total == 0:
        return 1.0
    tn = total - tp - fn - fp
    return float((tp + tn) / total)


def jaccard_index(labels_true, labels_pred):
    tp, fn, fp, _ = _pair_counts(labels_true, labels_pred)
    denom = tp + fn + fp
    return float(tp / denom) if denom > 0 else 1.0


def fowlkes_mallows_index(labels_true, labels_pred):
    tp, fn, fp, _ = _pair_counts(labels_true, labels_pred)
    denom = np.sqrt(float(tp + fp) * float(tp + fn))
    return float(tp / denom) if denom > 0 else 1.0


def best_match_accuracy(labels_true, labels_pred):
    """Share of points whose cluster maps to their class under the best one-to-one matching."""
    labels_true = np.asarray(labels_true)
    labels_pred = np.asarray(labels_pred)
    if labels_true.size == 0:
        return 0.0
    _, t = np.unique(labels_true, return_inverse=True)
    _, p = np.unique(labels_pred, return_inverse=True)
    contingency = np.zeros((p.max() + 1, t.max() + 1), dtype=np.int64)
    np.add.at(contingency, (p, t), 1)
    rows, cols = linear_sum_assignment(-contingency)
    return float(contingency[rows, cols].sum() / labels_true.size)
