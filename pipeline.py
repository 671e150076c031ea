import os
import time

import numpy as np
import pandas as pd
import matplotlib.pyplot as plt

from clusters import select_num_clusters
from fast_kmeans import FastKMeans, MTFastKMeans
from generators import spheric_gaussian_clusters, uniform_dataset
from ghpc import GHPC
from kdtree import KDTree
from kmeans import KMeans
from metrics import (
    silhouette_score, calinski_harabasz_score, compute_inertia, dunn_index,
    davies_bouldin_score, rand_index, fowlkes_mallows_index, best_match_accuracy,
)
from neighbors import NeighborSetFinder
from visualization import (
    plot_clusters, plot_clusters_detailed, plot_cluster_sizes, plot_occurrence_histogram,
    plot_good_bad_occurrences, plot_hub_history,
)

FIGURE_DIR = "figures"
NUM_CLUSTERS = 5
POINTS_PER_CLUSTER = 200
SEPARATION = 8.0
NEIGHBORHOOD_SIZE = 10
HIGH_DIM = 50
SEED = 42


def _save(name):
    plt.tight_layout()
    plt.savefig(os.path.join(FIGURE_DIR, name), dpi=150, bbox_inches="tight")
    plt.close()


def generate_data():
    print("\n[1/6] Generating data...")
    dataset = spheric_gaussian_clusters(NUM_CLUSTERS, 2, POINTS_PER_CLUSTER,
                                        separation=SEPARATION, std=1.0, seed=SEED)
    high_dim = uniform_dataset(NUM_CLUSTERS * POINTS_PER_CLUSTER, HIGH_DIM, seed=SEED)
    X = dataset.numeric_matrix()
    print(f"  Gaussian blobs: {dataset.size()} points, {dataset.num_numeric} dims, "
          f"{dataset.count_categories()} classes | X range: [{X[:, 0].min():.2f}, {X[:, 0].max():.2f}]")
    print(f"  Uniform cube: {high_dim.size()} points, {high_dim.num_numeric} dims")

    fig, ax = plt.subplots(figsize=(12, 8))
    ax.scatter(X[:, 0], X[:, 1], s=5, alpha=0.5, c="steelblue", edgecolors="none")
    ax.set_title("Raw Data Scatter Plot", fontsize=14, fontweight="bold")
    ax.set_xlabel("x"); ax.set_ylabel("y")
    _save("01_raw_data.png")
    return dataset, high_dim


def analyze_hubness(dataset, high_dim):
    print(f"\n[2/6] Computing {NEIGHBORHOOD_SIZE}-NN sets and hubness...")
    finders = {}
    for name, data in [("blobs (2-D)", dataset), (f"uniform ({HIGH_DIM}-D)", high_dim)]:
        start = time.perf_counter()
        nsf = NeighborSetFinder(data)
        nsf.calculate_neighbor_sets(NEIGHBORHOOD_SIZE, use_kdtree=data.num_numeric <= 10)
        hubs, orphans, regular = nsf.hub_orphan_regular_percentages()
        print(f"  {name}: skewness {nsf.hubness_skewness():.3f} | max N_k "
              f"{nsf.neighbor_frequencies.max()} | hubs {hubs:.1%} | orphans {orphans:.1%} | "
              f"regular {regular:.1%} ({time.perf_counter() - start:.2f}s)")
        finders[name] = nsf

    blobs = finders["blobs (2-D)"]
    print(f"  Label mismatch among blob neighbors: {blobs.get_label_mismatch_percentage():.2%}")

    fig, axes = plt.subplots(1, 2, figsize=(18, 6))
    for ax, (name, nsf), color in zip(axes, finders.items(), ["steelblue", "coral"]):
        plot_occurrence_histogram(ax, nsf.neighbor_frequencies, NEIGHBORHOOD_SIZE,
                                  f"Occurrence Distribution: {name}", color=color)
    _save("02_hubness.png")

    fig, ax = plt.subplots(figsize=(10, 8))
    plot_good_bad_occurrences(ax, blobs.good_frequencies, blobs.bad_frequencies,
                              "Good vs Bad Occurrences (blobs)")
    _save("03_good_bad.png")
    return blobs


def run_kmeans_variants(dataset):
    print("\n[3/6] Choosing the number of clusters...")
    best_k, _, scores = select_num_clusters(
        lambda c: FastKMeans(dataset, c, seed=SEED), dataset, 2, 8,
        lambda d, labels: silhouette_score(d.numeric_matrix(), labels),
    )
    for c, score in scores.items():
        print(f"  {c} clusters: silhouette {score:.4f}")
    print(f"  Best: {best_k} clusters")

    fig, ax = plt.subplots(figsize=(10, 6))
    ax.plot(list(scores), list(scores.values()), "bo-", linewidth=2, markersize=8)
    ax.set_xlabel("Number of Clusters", fontsize=13)
    ax.set_ylabel("Silhouette Score", fontsize=13)
    ax.set_title("Cluster Count Selection", fontsize=15, fontweight="bold")
    ax.grid(True, alpha=0.3)
    _save("04_cluster_count.png")

    print("\n[4/6] Running K-means variants...")
    tree = KDTree(dataset)
    print(f"  KD-tree: {tree.num_nodes} nodes, {len(tree.leaves())} leaves, depth {tree.depth()}")
    models = {
        "K-Means": KMeans(dataset, best_k, seed=SEED),
        "Fast K-Means": FastKMeans(dataset, best_k, seed=SEED, tree=tree),
        "MT Fast K-Means": MTFastKMeans(dataset, best_k, seed=SEED, tree=tree),
    }
    for name, model in models.items():
        start = time.perf_counter()
        model.cluster()
        print(f"  {name}: {model.num_iterations} iterations, error {model.iteration_error:,.1f} "
              f"({time.perf_counter() - start:.3f}s)")

    fast = models["Fast K-Means"]
    fig, ax = plt.subplots(figsize=(14, 9))
    plot_clusters_detailed(ax, dataset.numeric_matrix(), fast.cluster_associations, best_k,
                           f"Fast K-Means (k={best_k})", centers=fast.centroids)
    _save("05_fast_kmeans.png")
    return best_k, models


def run_ghpc(dataset, nsf, num_clusters):
    print("\n[5/6] Running GHPC...")
    ghpc = GHPC(dataset, num_clusters, k=NEIGHBORHOOD_SIZE, nsf=nsf, keep_history=True, seed=SEED)
    ghpc.cluster()
    print(f"  {ghpc.num_iterations} iterations, final error {ghpc.iteration_error:,.1f}, "
          f"best error {ghpc.minimal_error:,.1f}")
    print(f"  Hubs: {ghpc.hubs.tolist()} (occurrences {ghpc.hubness[ghpc.hubs].astype(int).tolist()})")

    X = dataset.numeric_matrix()
    fig, ax = plt.subplots(figsize=(14, 9))
    plot_hub_history(ax, X, ghpc.hub_history, ghpc.cluster_associations, num_clusters,
                     "GHPC Hub Trajectories")
    _save("06_ghpc_history.png")
    return ghpc


def evaluate_and_compare(dataset, models):
    print("\n[6/6] Computing evaluation metrics & generating comparison plots...")
    X = dataset.numeric_matrix()
    truth = dataset.categories

    metrics = {}
    for name, model in models.items():
        labels = model.cluster_associations
        metrics[name] = {
            "Silhouette Score": silhouette_score(X, labels),
            "Calinski-Harabasz Index": calinski_harabasz_score(X, labels),
            "Davies-Bouldin Index": davies_bouldin_score(X, labels),
            "Dunn Index": dunn_index(X, labels),
            "Inertia (SSE)": compute_inertia(X, labels),
            "Rand Index": rand_index(truth, labels),
            "Fowlkes-Mallows Index": fowlkes_mallows_index(truth, labels),
            "Accuracy": best_match_accuracy(truth, labels),
        }

    metrics_df = pd.DataFrame(metrics)
    print("\n" + "=" * 70 + "\n  COMPARISON SUMMARY\n" + "=" * 70)
    print(metrics_df.to_string(float_format=lambda v: f"{v:,.4f}"))

    names = list(models)
    fig, axes = plt.subplots(1, len(names), figsize=(8 * len(names), 7))
    for ax, name in zip(np.atleast_1d(axes), names):
        model = models[name]
        plot_clusters(ax, X, model.cluster_associations, model.num_clusters, name,
                      centers=model.centroids)
    plt.suptitle("Clustering Algorithm Comparison", fontsize=18, fontweight="bold", y=1.02)
    _save("07_comparison.png")

    bar_colors = ["#2196F3", "#FF9800", "#4CAF50", "#9C27B0"]
    fig, axes = plt.subplots(1, 3, figsize=(18, 5))
    for ax, metric in zip(axes, ["Silhouette Score", "Davies-Bouldin Index", "Accuracy"]):
        ax.bar(names, metrics_df.loc[metric], color=bar_colors[:len(names)], edgecolor="white",
               linewidth=1.5)
        ax.set_title(metric, fontsize=14, fontweight="bold")
        ax.tick_params(axis="x", rotation=20)
    _save("08_metrics.png")

    fig, axes = plt.subplots(1, len(names), figsize=(6 * len(names), 5))
    for ax, name, color in zip(np.atleast_1d(axes), names, bar_colors):
        plot_cluster_sizes(ax, models[name].cluster_associations, models[name].num_clusters,
                           name, color)
    _save("09_cluster_sizes.png")

    return metrics_df


def print_analysis(nsf, ghpc, metrics_df):
    print("\n" + "=" * 70 + "\n  ANALYSIS & DISCUSSION\n" + "=" * 70)
    stats = nsf.hubness_stats()
    best = metrics_df.loc["Accuracy"].idxmax()
    print(f"""
HUBNESS (k={stats['k']}):
  • Mean N_k {stats['mean_occurrence']:.2f} ± {stats['std_occurrence']:.2f}, max {stats['max_occurrence']}.
  • Good - bad occurrences: {stats['mean_good_minus_bad']:.2f} ± {stats['std_good_minus_bad']:.2f}.

GHPC:
  • {len(ghpc.hub_history)} hub configurations recorded, major hub index {nsf.get_major_hub_index()}.

BEST MATCH WITH GENERATING CLUSTERS: {best} ({metrics_df.loc['Accuracy', best]:.2%})
""")
    print(f"All figures saved to {FIGURE_DIR}/ directory.\nDone!")
