import numpy as np
import matplotlib.pyplot as plt
import seaborn as sns
from matplotlib.patches import Ellipse

CLUSTER_COLORS = [
    "#E63946", "#457B9D", "#2A9D8F", "#E9C46A", "#F4A261",
    "#264653", "#6A0572", "#AB83A1", "#1D3557", "#A8DADC",
]


def draw_cluster_ellipse(ax, points, color, alpha=0.15, n_std=2.0):
    """Draw a 2σ confidence ellipse around cluster points."""
    if len(points) < 3:
        return

    mean = points.mean(axis=0)
    cov = np.cov(points, rowvar=False)
    eigenvalues, eigenvectors = np.linalg.eigh(cov)

    order = eigenvalues.argsort()[::-1]
    eigenvalues = eigenvalues[order]
    eigenvectors = eigenvectors[:, order]

    angle = np.degrees(np.arctan2(eigenvectors[1, 0], eigenvectors[0, 0]))
    width = 2 * n_std * np.sqrt(max(eigenvalues[0], 0))
    height = 2 * n_std * np.sqrt(max(eigenvalues[1], 0))

    ax.add_patch(Ellipse(
        xy=mean, width=width, height=height, angle=angle,
        facecolor=color, edgecolor="none", alpha=alpha,
    ))
    ax.add_patch(Ellipse(
        xy=mean, width=width, height=height, angle=angle,
        facecolor="none", edgecolor=color, linewidth=3, alpha=0.9,
    ))


def plot_clusters_detailed(ax, data, labels, n_clusters, title, centers=None,
                           show_ellipses=True, show_annotations=True):
    """Cluster scatter of the first two dimensions with ellipses and center markers.

    ``centers`` overrides the member means as markers (GHPC hubs, K-means centroids).
    """
    non_empty = [i for i in range(n_clusters) if np.sum(labels == i) > 0]

    for ci, i in enumerate(non_empty):
        m = labels == i
        pts = data[m][:, :2]
        color = CLUSTER_COLORS[ci % len(CLUSTER_COLORS)]
        center = pts.mean(axis=0) if centers is None else np.asarray(centers[i])[:2]

        if show_ellipses and len(pts) > 10:
            draw_cluster_ellipse(ax, pts, color, alpha=0.20, n_std=2.0)

        ax.scatter(
            pts[:, 0], pts[:, 1],
            s=10, alpha=0.55, color=color, edgecolors="none",
            label=f"C{i} ({m.sum()} pts)", zorder=2,
        )
        ax.scatter(
            center[0], center[1],
            s=180, color=color, marker="D",
            edgecolors="white", linewidths=2, zorder=4,
        )

        if show_annotations:
            ax.annotate(
                f"C{i}\n({m.sum()})",
                xy=center, fontsize=8, fontweight="bold",
                ha="center", va="bottom",
                xytext=(0, 14), textcoords="offset points",
                bbox=dict(
                    boxstyle="round,pad=0.3", facecolor="white",
                    edgecolor=color, alpha=0.85, linewidth=1.5,
                ),
                zorder=5,
            )

    ax.set_title(title, fontsize=14, fontweight="bold", pad=12)
    ax.set_xlabel("x", fontsize=12)
    ax.set_ylabel("y", fontsize=12)
    ax.legend(fontsize=7, markerscale=2.5, loc="best", framealpha=0.9)
    ax.grid(True, alpha=0.15, linestyle="--")


def plot_clusters(ax, data, labels, n_clusters, title, centers=None):
    """Compact version for side-by-side comparison (ellipses, no annotations)."""
    plot_clusters_detailed(ax, data, labels, n_clusters, title, centers=centers,
                           show_ellipses=True, show_annotations=False)


def plot_cluster_sizes(ax, labels, n_clusters, title, color):
    """Bar chart of cluster sizes."""
    sizes = [int(np.sum(labels == i)) for i in range(n_clusters)]
    names = [f"C{i}" for i in range(n_clusters)]
    bars = ax.bar(names, sizes, color=color, edgecolor="white", linewidth=1.5)
    ax.set_title(title, fontsize=14, fontweight="bold")
    ax.set_ylabel("Number of Points")
    for bar, val in zip(bars, sizes):
        ax.text(
            bar.get_x() + bar.get_width() / 2,
            bar.get_height() + max(sizes) * 0.02,
            str(val), ha="center", fontsize=10,
        )


def plot_occurrence_histogram(ax, frequencies, k, title, color="steelblue"):
    """Distribution of neighbor occurrence counts N_k, with the hub threshold k + 2σ."""
    frequencies = np.asarray(frequencies)
    bins = np.arange(frequencies.max() + 2) - 0.5
    sns.histplot(frequencies, bins=bins, color=color, edgecolor="white", ax=ax)
    threshold = k + 2 * frequencies.std()
    ax.axvline(k, color="gray", linestyle=":", linewidth=1.5, label=f"k = {k}")
    ax.axvline(threshold, color="red", linestyle="--", linewidth=1.5,
               label=f"hub threshold ≈ {threshold:.1f}")
    ax.set_title(title, fontsize=14, fontweight="bold")
    ax.set_xlabel(f"N{k} (occurrences in {k}-NN sets)")
    ax.set_ylabel("Number of Points")
    ax.legend(fontsize=10)


def plot_good_bad_occurrences(ax, good, bad, title):
    """Good vs bad occurrence counts per point; points above the diagonal are bad hubs."""
    good = np.asarray(good)
    bad = np.asarray(bad)
    total = good + bad
    sc = ax.scatter(good, bad, c=total, cmap="YlOrRd", s=18, alpha=0.7, edgecolors="none")
    plt.colorbar(sc, ax=ax, label="Total occurrences")
    lim = max(int(good.max(initial=0)), int(bad.max(initial=0))) + 1
    ax.plot([0, lim], [0, lim], color="gray", linestyle="--", linewidth=1)
    ax.set_xlim(-0.5, lim)
    ax.set_ylim(-0.5, lim)
    ax.set_title(title, fontsize=14, fontweight="bold")
    ax.set_xlabel("Good occurrences (same label)")
    ax.set_ylabel("Bad occurrences (other label)")
    ax.grid(True, alpha=0.15, linestyle="--")


def plot_hub_history(ax, data, hub_history, labels, n_clusters, title):
    """Trajectories of GHPC hubs over the iterations on top of the final clustering."""
    for i in range(n_clusters):
        m = labels == i
        color = CLUSTER_COLORS[i % len(CLUSTER_COLORS)]
        ax.scatter(data[m, 0], data[m, 1], s=8, alpha=0.25, color=color, edgecolors="none")

    history = np.vstack(hub_history)
    for i in range(n_clusters):
        color = CLUSTER_COLORS[i % len(CLUSTER_COLORS)]
        path = data[history[:, i]][:, :2]
        ax.plot(path[:, 0], path[:, 1], "-o", color=color, markersize=4, linewidth=1.5,
                alpha=0.85, label=f"hub {i}")
        ax.scatter(path[0, 0], path[0, 1], s=120, marker="s", color=color,
                   edgecolors="black", linewidths=1, zorder=5)
        ax.scatter(path[-1, 0], path[-1, 1], s=220, marker="*", color=color,
                   edgecolors="black", linewidths=1, zorder=6)

    ax.set_title(title, fontsize=14, fontweight="bold", pad=12)
    ax.set_xlabel("x", fontsize=12)
    ax.set_ylabel("y", fontsize=12)
    ax.legend(fontsize=7, loc="best", framealpha=0.9)
    ax.grid(True, alpha=0.15, linestyle="--")
