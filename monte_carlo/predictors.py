from dataclasses import dataclass
from typing import Protocol

import numpy as np

from custom_types.errors import DimensionMismatch, InvalidModelParameters
from custom_types.types import ArrayLike, FloatArray, as_1d

LEAF = -1


class PricePredictor(Protocol):
    def evaluate(self, X: ArrayLike) -> FloatArray:
        """Map an (n_rows, n_features) feature matrix to one value per row."""
        ...


def _as_feature_matrix(X: ArrayLike) -> FloatArray:
    X = np.asarray(X, dtype=np.float64)
    if X.ndim == 1:
        return X[None, :]
    if X.ndim != 2:
        raise DimensionMismatch(f"Feature matrix must be 2D, got shape {X.shape}")
    return X


@dataclass(frozen=True, eq=False)
class RegressionTreePredictor:
    """
    Binary regression tree stored as flat node arrays.

    Node i splits on feature[i] and sends a row left when
    x[feature[i]] <= threshold[i]. Leaves have left[i] == right[i] == -1
    and predict value[i]. Node 0 is the root.
    """
    feature: ArrayLike
    threshold: ArrayLike
    left: ArrayLike
    right: ArrayLike
    value: ArrayLike

    def __post_init__(self):
        feature = np.asarray(self.feature, dtype=np.int64).ravel()
        left = np.asarray(self.left, dtype=np.int64).ravel()
        right = np.asarray(self.right, dtype=np.int64).ravel()
        threshold = as_1d(self.threshold)
        value = as_1d(self.value)

        n = len(value)
        lengths = {len(feature), len(threshold), len(left), len(right), n}
        if n == 0 or len(lengths) > 1:
            raise InvalidModelParameters(
                f"Tree node arrays must be non-empty and equal length, got "
                f"feature={len(feature)}, threshold={len(threshold)}, left={len(left)}, "
                f"right={len(right)}, value={n}"
            )

        is_leaf = left == LEAF
        if np.any(is_leaf != (right == LEAF)):
            raise InvalidModelParameters("Tree nodes must have both children or none")

        children = np.concatenate([left[~is_leaf], right[~is_leaf]])
        if np.any((children <= 0) | (children >= n)):
            raise InvalidModelParameters("Tree child index out of range")
        if np.any(feature[~is_leaf] < 0):
            raise InvalidModelParameters("Split nodes need a non-negative feature index")
        if not np.all(np.isfinite(value[is_leaf])):
            raise InvalidModelParameters("Leaf values must be finite")

        object.__setattr__(self, 'feature', feature)
        object.__setattr__(self, 'threshold', threshold)
        object.__setattr__(self, 'left', left)
        object.__setattr__(self, 'right', right)
        object.__setattr__(self, 'value', value)

    @classmethod
    def from_fitted(cls, estimator) -> "RegressionTreePredictor":
        """Build from a fitted single-output tree exposing a ``tree_`` node table."""
        t = estimator.tree_
        return cls(
            feature=t.feature,
            threshold=t.threshold,
            left=t.children_left,
            right=t.children_right,
            value=np.asarray(t.value)[:, 0, 0],
        )

    @property
    def n_features_required(self) -> int:
        split = self.left != LEAF
        return int(self.feature[split].max()) + 1 if np.any(split) else 0

    def evaluate(self, X: ArrayLike) -> FloatArray:
        X = _as_feature_matrix(X)
        if X.shape[1] < self.n_features_required:
            raise DimensionMismatch(
                f"Tree splits on feature {self.n_features_required - 1} but rows have {X.shape[1]} columns"
            )

        rows = np.arange(X.shape[0])
        node = np.zeros(X.shape[0], dtype=np.int64)
        active = self.left[node] != LEAF

        # every pass moves each active row one level down
        while np.any(active):
            r = rows[active]
            n = node[r]
            go_left = X[r, self.feature[n]] <= self.threshold[n]
            node[r] = np.where(go_left, self.left[n], self.right[n])
            active[r] = self.left[node[r]] != LEAF

        return self.value[node]


@dataclass(frozen=True, eq=False)
class LinearSeasonalModel:
    """
    mean + sum_k amplitude_k * sin(frequency_k * t + phase_k)

    t is read from column ``time_column`` of the feature matrix (days).
    """
    mean: float
    amplitudes: ArrayLike = ()
    frequencies: ArrayLike = ()
    phases: ArrayLike = ()
    time_column: int = 0

    def __post_init__(self):
        a = as_1d(self.amplitudes) if np.size(self.amplitudes) else np.empty(0)
        b = as_1d(self.frequencies) if np.size(self.frequencies) else np.empty(0)
        c = as_1d(self.phases) if np.size(self.phases) else np.empty(0)

        if not len(a) == len(b) == len(c):
            raise InvalidModelParameters(
                f"Seasonal terms misaligned: {len(a)} amplitudes, {len(b)} frequencies, {len(c)} phases"
            )
        if not np.isfinite(self.mean) or not all(np.all(np.isfinite(v)) for v in (a, b, c)):
            raise InvalidModelParameters("Seasonal model parameters must be finite")

        object.__setattr__(self, 'amplitudes', a)
        object.__setattr__(self, 'frequencies', b)
        object.__setattr__(self, 'phases', c)

    def evaluate(self, X: ArrayLike) -> FloatArray:
        X = np.asarray(X, dtype=np.float64)
        t = X if X.ndim == 1 else _as_feature_matrix(X)[:, self.time_column]

        out = np.full(t.shape, float(self.mean))
        for a, b, c in zip(self.amplitudes, self.frequencies, self.phases):
            out += a * np.sin(b * t + c)
        return out
