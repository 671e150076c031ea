import numpy as np
import pandas as pd

MISSING_INT = np.iinfo(np.int64).min
UNLABELED = -1


def is_acceptable_int(values):
    values = np.asarray(values)
    return (values != MISSING_INT) & (values != np.iinfo(np.int64).max)


def is_acceptable_float(values):
    return np.isfinite(np.asarray(values, dtype=float))


def ints_as_float(int_attr):
    """Integer attribute block as float64, with the missing sentinel mapped to NaN."""
    out = np.asarray(int_attr, dtype=np.float64).copy()
    out[~is_acceptable_int(int_attr)] = np.nan
    return out


class DataInstance:
    """A single row of a DataSet. Attribute arrays are views into the parent set."""

    __slots__ = ("int_attr", "float_attr", "nominal_attr", "category", "identifier")

    def __init__(self, int_attr, float_attr, nominal_attr=None, category=UNLABELED,
                 identifier=None):
        self.int_attr = np.asarray(int_attr, dtype=np.int64)
        self.float_attr = np.asarray(float_attr, dtype=np.float64)
        self.nominal_attr = nominal_attr if nominal_attr is not None else np.empty(0, dtype=object)
        self.category = int(category)
        self.identifier = identifier

    @property
    def num_int(self):
        return self.int_attr.shape[0]

    def numeric(self):
        return np.concatenate([ints_as_float(self.int_attr), self.float_attr])

    def copy_content(self):
        return DataInstance(self.int_attr.copy(), self.float_attr.copy(),
                            np.array(self.nominal_attr, dtype=object),
                            self.category, self.identifier)

    def __repr__(self):
        return (f"DataInstance(int={self.int_attr.tolist()}, float={self.float_attr.tolist()}, "
                f"category={self.category})")


class DataSet:
    """Fixed-schema collection of instances with int, float and nominal attributes.

    Rows of ``int_attr`` / ``float_attr`` / ``nominal_attr`` are parallel: row ``i``
    of every block belongs to instance ``i``. Missing floats are NaN, missing
    ints are ``MISSING_INT``. ``categories`` holds class labels, ``UNLABELED``
    where unknown.
    """

    def __init__(self, int_names=None, float_names=None, nominal_names=None,
                 int_attr=None, float_attr=None, nominal_attr=None,
                 categories=None, identifiers=None):
        self.int_names = list(int_names or [])
        self.float_names = list(float_names or [])
        self.nominal_names = list(nominal_names or [])

        n = None
        for block in (int_attr, float_attr, nominal_attr, categories):
            if block is not None:
                n = len(block)
                break
        n = 0 if n is None else n

        self.int_attr = self._block(int_attr, n, len(self.int_names), np.int64, "int")
        self.float_attr = self._block(float_attr, n, len(self.float_names), np.float64, "float")
        self.nominal_attr = self._block(nominal_attr, n, len(self.nominal_names), object, "nominal")

        if categories is None:
            self.categories = np.full(n, UNLABELED, dtype=np.int64)
        else:
            self.categories = np.asarray(categories, dtype=np.int64).reshape(-1)
            if self.categories.shape[0] != n:
                raise ValueError(f"Expected {n} category labels, got {self.categories.shape[0]}")
        if identifiers is not None and len(identifiers) != n:
            raise ValueError(f"Expected {n} identifiers, got {len(identifiers)}")
        self.identifiers = list(identifiers) if identifiers is not None else None

    @staticmethod
    def _block(values, n, width, dtype, kind):
        if values is None:
            if width > 0 and n > 0:
                raise ValueError(f"Missing {kind} attribute values for {width} named attributes")
            return np.empty((n, width), dtype=dtype)
        arr = np.asarray(values, dtype=dtype)
        if arr.ndim == 1 and width == 1:
            arr = arr.reshape(-1, 1)
        if arr.ndim != 2 or arr.shape != (n, width):
            raise ValueError(
                f"{kind} attribute block has shape {arr.shape}, expected ({n}, {width})"
            )
        return arr

    # ── construction ────────────────────────────────────────────────────────
    @classmethod
    def from_arrays(cls, float_attr=None, int_attr=None, categories=None, float_names=None,
                    int_names=None):
        """Build a set from plain 2-D arrays, naming attributes f0.., i0.. when not given."""
        if float_attr is not None:
            float_attr = np.atleast_2d(np.asarray(float_attr, dtype=np.float64))
            float_names = float_names or [f"f{i}" for i in range(float_attr.shape[1])]
        if int_attr is not None:
            int_attr = np.atleast_2d(np.asarray(int_attr, dtype=np.int64))
            int_names = int_names or [f"i{i}" for i in range(int_attr.shape[1])]
        return cls(int_names=int_names, float_names=float_names, int_attr=int_attr,
                   float_attr=float_attr, categories=categories)

    @classmethod
    def from_dataframe(cls, df, label_col=None, id_col=None):
        """Split a data frame into int / float / nominal blocks by column dtype.

        Nullable integer columns (pandas ``Int64``) stay int attributes, their missing
        entries become ``MISSING_INT``. Plain integer columns holding NaN are read by
        pandas as floats and load as float attributes.
        """
        feature_cols = [c for c in df.columns if c not in (label_col, id_col)]
        int_cols = [c for c in feature_cols if pd.api.types.is_integer_dtype(df[c])]
        float_cols = [c for c in feature_cols if pd.api.types.is_float_dtype(df[c])]
        nominal_cols = [c for c in feature_cols if c not in int_cols and c not in float_cols]

        categories = None
        if label_col is not None:
            labels = df[label_col]
            if pd.api.types.is_integer_dtype(labels):
                categories = labels.to_numpy(dtype=np.int64, na_value=UNLABELED)
            else:
                codes, _ = pd.factorize(labels)
                categories = codes.astype(np.int64)
        identifiers = df[id_col].tolist() if id_col is not None else None

        n = len(df)
        return cls(
            int_names=int_cols, float_names=float_cols, nominal_names=nominal_cols,
            int_attr=(df[int_cols].to_numpy(dtype=np.int64, na_value=MISSING_INT) if int_cols
                      else np.empty((n, 0))),
            float_attr=df[float_cols].to_numpy(dtype=np.float64) if float_cols else np.empty((n, 0)),
            nominal_attr=df[nominal_cols].to_numpy(dtype=object) if nominal_cols else np.empty((n, 0)),
            categories=categories, identifiers=identifiers,
        )

    def to_dataframe(self, label_col="category"):
        frame = {}
        for j, name in enumerate(self.int_names):
            col = self.int_attr[:, j]
            present = is_acceptable_int(col)
            frame[name] = pd.arrays.IntegerArray(np.where(present, col, 0), ~present)
        for j, name in enumerate(self.float_names):
            frame[name] = self.float_attr[:, j]
        for j, name in enumerate(self.nominal_names):
            frame[name] = self.nominal_attr[:, j]
        frame[label_col] = self.categories
        return pd.DataFrame(frame)

    # ── access ──────────────────────────────────────────────────────────────
    def size(self):
        return self.categories.shape[0]

    def __len__(self):
        return self.size()

    def is_empty(self):
        return self.size() == 0

    @property
    def num_int(self):
        return len(self.int_names)

    @property
    def num_float(self):
        return len(self.float_names)

    @property
    def num_numeric(self):
        return self.num_int + self.num_float

    def has_int_attr(self):
        return self.num_int > 0

    def has_float_attr(self):
        return self.num_float > 0

    def get_instance(self, index):
        ident = self.identifiers[index] if self.identifiers is not None else None
        return DataInstance(self.int_attr[index], self.float_attr[index],
                            self.nominal_attr[index], self.categories[index], ident)

    def __getitem__(self, index):
        return self.get_instance(index)

    def __iter__(self):
        for i in range(self.size()):
            yield self.get_instance(i)

    def numeric_matrix(self, indexes=None):
        """(n, num_int + num_float) float64 view of the numeric attributes, NaN = missing."""
        ints = self.int_attr if indexes is None else self.int_attr[indexes]
        floats = self.float_attr if indexes is None else self.float_attr[indexes]
        return np.hstack([ints_as_float(ints), floats.astype(np.float64, copy=False)])

    # ── derived sets ────────────────────────────────────────────────────────
    def subset(self, indexes):
        indexes = np.asarray(indexes, dtype=np.int64)
        return DataSet(
            self.int_names, self.float_names, self.nominal_names,
            self.int_attr[indexes], self.float_attr[indexes], self.nominal_attr[indexes],
            self.categories[indexes],
            [self.identifiers[i] for i in indexes] if self.identifiers is not None else None,
        )

    def append(self, other):
        if (other.int_names != self.int_names or other.float_names != self.float_names
                or other.nominal_names != self.nominal_names):
            raise ValueError("Cannot append a DataSet with a different attribute schema")
        identifiers = None
        if self.identifiers is not None and other.identifiers is not None:
            identifiers = self.identifiers + other.identifiers
        return DataSet(
            self.int_names, self.float_names, self.nominal_names,
            np.vstack([self.int_attr, other.int_attr]),
            np.vstack([self.float_attr, other.float_attr]),
            np.vstack([self.nominal_attr, other.nominal_attr]),
            np.concatenate([self.categories, other.categories]),
            identifiers,
        )

    def copy(self):
        return self.subset(np.arange(self.size()))

    def count_categories(self):
        labelled = self.categories[self.categories >= 0]
        return int(labelled.max()) + 1 if labelled.size else 0

    def class_priors(self):
        num_categories = self.count_categories()
        if num_categories == 0:
            return np.zeros(0)
        counts = np.bincount(self.categories[self.categories >= 0], minlength=num_categories)
        return counts / max(self.size(), 1)

    def __repr__(self):
        return (f"DataSet(n={self.size()}, int={self.num_int}, float={self.num_float}, "
                f"nominal={len(self.nominal_names)})")
