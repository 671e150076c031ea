from enum import Enum

import numpy as np

# Upper bound on the number of float64 cells materialized per pairwise chunk.
MAX_CHUNK_ELEMENTS = 4_000_000
EPSILON = 1e-38


class MetricError(ValueError):
    pass


def _both_present(a, b):
    return ~(np.isnan(a) | np.isnan(b))


class DistanceMeasure:
    """Base class for primary distances on numeric vectors.

    ``paired`` works along the last axis and broadcasts over the leading ones,
    so ``paired(A[:, None, :], B[None, :, :])`` is a full pairwise matrix.
    Coordinates missing (NaN) in either vector are skipped.
    """

    # True when the distance never decreases as any per-coordinate absolute
    # difference grows. KD-tree box bounds are only valid for such measures.
    supports_box_bounds = False

    def paired(self, a, b):
        raise NotImplementedError

    def dist(self, first, second):
        first = np.asarray(first, dtype=np.float64)
        second = np.asarray(second, dtype=np.float64)
        if first.shape != second.shape:
            raise MetricError(f"Dimension mismatch: {first.shape} vs {second.shape}")
        return float(self.paired(first, second))

    def pairwise(self, A, B):
        return self.paired(A[:, np.newaxis, :], B[np.newaxis, :, :])

    def __repr__(self):
        return f"{type(self).__name__}()"


class MinkowskiMetric(DistanceMeasure):
    supports_box_bounds = True

    def __init__(self, p=2.0):
        if p < 1:
            raise ValueError(f"Minkowski degree must be >= 1, got {p}")
        self.p = float(p)

    def paired(self, a, b):
        diff = np.where(_both_present(a, b), np.abs(a - b), 0.0)
        if self.p == 2.0:
            return np.sqrt((diff * diff).sum(axis=-1))
        if self.p == 1.0:
            return diff.sum(axis=-1)
        return (diff ** self.p).sum(axis=-1) ** (1.0 / self.p)

    def __repr__(self):
        return f"MinkowskiMetric(p={self.p:g})"


class Manhattan(MinkowskiMetric):
    def __init__(self):
        super().__init__(p=1.0)

    def __repr__(self):
        return "Manhattan()"


class CosineMetric(DistanceMeasure):
    """(1 - cos) / 2. Two zero vectors are at distance 0, one zero vector at distance 1."""

    def paired(self, a, b):
        a0 = np.nan_to_num(a, nan=0.0)
        b0 = np.nan_to_num(b, nan=0.0)
        dot = np.where(_both_present(a, b), a0 * b0, 0.0).sum(axis=-1)
        norm_a = np.sqrt((a0 * a0).sum(axis=-1))
        norm_b = np.sqrt((b0 * b0).sum(axis=-1))
        denom = norm_a * norm_b
        cos = np.divide(dot, denom, out=np.zeros(np.shape(dot)), where=denom >= EPSILON)
        zero_a = np.broadcast_to(norm_a < EPSILON, np.shape(cos))
        zero_b = np.broadcast_to(norm_b < EPSILON, np.shape(cos))
        cos = np.where(zero_a & zero_b, 1.0, np.where(zero_a | zero_b, -1.0, cos))
        return (1.0 - cos) * 0.5


class Canberra(DistanceMeasure):
    def paired(self, a, b):
        denom = np.abs(a) + np.abs(b)
        usable = _both_present(a, b) & (denom > 0)
        terms = np.divide(np.abs(a - b), denom, out=np.zeros(np.broadcast_shapes(np.shape(a), np.shape(b))),
                          where=usable)
        return terms.sum(axis=-1)


class BrayCurtis(DistanceMeasure):
    def paired(self, a, b):
        present = _both_present(a, b)
        num = np.where(present, np.abs(a - b), 0.0).sum(axis=-1)
        denom = np.where(present, np.abs(a) + np.abs(b), 0.0).sum(axis=-1)
        return np.divide(num, denom, out=np.zeros(np.shape(num)), where=denom > 0)


class TanimotoDistance(DistanceMeasure):
    def paired(self, a, b):
        present = _both_present(a, b)
        a0 = np.where(present, a, 0.0)
        b0 = np.where(present, b, 0.0)
        dot = (a0 * b0).sum(axis=-1)
        denom = (a0 * a0).sum(axis=-1) + (b0 * b0).sum(axis=-1) - dot
        sim = np.divide(dot, denom, out=np.ones(np.shape(dot)), where=np.abs(denom) >= EPSILON)
        return 1.0 - sim


class Mixer(Enum):
    SUM = "sum"
    AVERAGE = "average"
    MAX = "max"
    MIN = "min"
    PRODUCT = "product"
    EUCLIDEAN = "euclidean"


class CombinedMetric:
    """Combines a distance over the integer attributes with one over the floats.

    Works on numeric matrices laid out as ``DataSet.numeric_matrix`` produces them:
    the first ``num_int`` columns are the integer attributes. Either metric may be
    None, in which case that block is ignored. Non-finite partial distances are
    left out of the combination.
    """

    def __init__(self, integer_metric=None, float_metric=None, combine_by=Mixer.SUM):
        self.integer_metric = integer_metric
        self.float_metric = float_metric
        self.combine_by = Mixer(combine_by)

    @property
    def supports_box_bounds(self):
        metrics = [m for m in (self.integer_metric, self.float_metric) if m is not None]
        return bool(metrics) and all(m.supports_box_bounds for m in metrics)

    def paired(self, a, b, num_int):
        a = np.asarray(a, dtype=np.float64)
        b = np.asarray(b, dtype=np.float64)
        if a.shape[-1] != b.shape[-1]:
            raise MetricError(f"Dimension mismatch: {a.shape[-1]} vs {b.shape[-1]}")
        shape = np.broadcast_shapes(a.shape[:-1], b.shape[:-1])
        parts = []
        if self.integer_metric is not None and num_int > 0:
            parts.append(self.integer_metric.paired(a[..., :num_int], b[..., :num_int]))
        if self.float_metric is not None and a.shape[-1] > num_int:
            parts.append(self.float_metric.paired(a[..., num_int:], b[..., num_int:]))
        return self._mix(parts, shape)

    def _mix(self, parts, shape):
        if not parts:
            return np.zeros(shape)
        stack = np.stack([np.broadcast_to(p, shape) for p in parts])
        finite = np.isfinite(stack)
        mixer = self.combine_by
        if mixer is Mixer.SUM:
            return np.where(finite, stack, 0.0).sum(axis=0)
        if mixer is Mixer.AVERAGE:
            total = np.where(finite, stack, 0.0).sum(axis=0)
            count = finite.sum(axis=0)
            return np.divide(total, count, out=np.zeros(shape), where=count > 0)
        if mixer is Mixer.MAX:
            return np.where(finite, stack, 0.0).max(axis=0)
        if mixer is Mixer.MIN:
            low = np.where(finite, stack, np.inf).min(axis=0)
            return np.where(np.isinf(low), 0.0, low)
        if mixer is Mixer.PRODUCT:
            return np.where(finite, stack, 1.0).prod(axis=0)
        return np.sqrt((np.where(finite, stack, 0.0) ** 2).sum(axis=0))

    def dist(self, first, second):
        """Distance between two DataInstance objects."""
        if first.num_int != second.num_int or first.float_attr.shape != second.float_attr.shape:
            raise MetricError("Instances do not share an attribute schema")
        return float(self.paired(first.numeric(), second.numeric(), first.num_int))

    def pairwise(self, A, B, num_int):
        """Full (len(A), len(B)) distance matrix, computed in row chunks."""
        A = np.atleast_2d(np.asarray(A, dtype=np.float64))
        B = np.atleast_2d(np.asarray(B, dtype=np.float64))
        if A.shape[1] != B.shape[1]:
            raise MetricError(f"Dimension mismatch: {A.shape[1]} vs {B.shape[1]}")
        out = np.empty((A.shape[0], B.shape[0]))
        rows = max(1, MAX_CHUNK_ELEMENTS // max(1, B.shape[0] * max(1, A.shape[1])))
        for start in range(0, A.shape[0], rows):
            end = min(start + rows, A.shape[0])
            out[start:end] = self.paired(A[start:end, np.newaxis, :], B[np.newaxis, :, :], num_int)
        return out

    def dist_to_boxes(self, points, lower, upper, num_int, missing=None):
        """Distances from each point to the closest and furthest corner of a box.

        ``missing`` flags dimensions where some point inside the box lacks a value;
        those are dropped from the closest corner so the minimum stays a lower bound.
        """
        points = np.atleast_2d(points)
        closest = np.minimum(np.maximum(points, lower), upper)
        if missing is not None and missing.any():
            closest[:, missing] = np.nan
        furthest = np.where(np.abs(upper - points) > np.abs(lower - points), upper, lower)
        return self.paired(points, closest, num_int), self.paired(points, furthest, num_int)

    def __repr__(self):
        return (f"CombinedMetric(integers={self.integer_metric!r}, floats={self.float_metric!r}, "
                f"combine_by={self.combine_by.name})")


EUCLIDEAN = CombinedMetric(MinkowskiMetric(), MinkowskiMetric(), Mixer.SUM)
MANHATTAN = CombinedMetric(Manhattan(), Manhattan(), Mixer.SUM)
FLOAT_EUCLIDEAN = CombinedMetric(None, MinkowskiMetric(), Mixer.SUM)
FLOAT_MANHATTAN = CombinedMetric(None, Manhattan(), Mixer.SUM)
FLOAT_COSINE = CombinedMetric(None, CosineMetric(), Mixer.SUM)
FLOAT_CANBERRA = CombinedMetric(None, Canberra(), Mixer.SUM)
FLOAT_BRAY_CURTIS = CombinedMetric(None, BrayCurtis(), Mixer.SUM)
FLOAT_TANIMOTO = CombinedMetric(None, TanimotoDistance(), Mixer.SUM)
INT_EUCLIDEAN = CombinedMetric(MinkowskiMetric(), None, Mixer.SUM)
INT_MANHATTAN = CombinedMetric(Manhattan(), None, Mixer.SUM)
