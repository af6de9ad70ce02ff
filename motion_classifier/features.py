from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Dict, Tuple

import numpy as np

from .constants import NUM_AXES, NUM_MOTION_FEATURES, WINDOW_SIZE
from .errors import InsufficientDataError


AXES = ("x", "y", "z")
AXIS_PAIRS = ((0, 1), (1, 2), (0, 2))

FEATURE_NAMES: Tuple[str, ...] = (
    *(f"last_{a}" for a in AXES),
    *(f"{stat}_{a}" for a in AXES for stat in ("mean", "var", "range")),
    *(f"velocity_{a}" for a in AXES),
    *(f"jerk_{a}" for a in AXES),
    *(f"dominance_{a}" for a in AXES),
    *(f"corr_{AXES[i]}{AXES[j]}" for i, j in AXIS_PAIRS),
    "magnitude_mean",
    "magnitude_var",
)


def as_window(samples) -> np.ndarray:
    """Return samples as a float64 array shaped (T, 3)."""
    window = np.asarray(samples, dtype=np.float64)
    if window.ndim != 2 or window.shape[1] != NUM_AXES:
        raise ValueError(f"Expected a (T, {NUM_AXES}) window, got shape {window.shape}")
    return window


def population_variance(values: np.ndarray) -> np.ndarray:
    """
    Per-column mean of squared deviations (ddof=0).

    Columns whose range is zero are reported as exactly 0 so constant windows do
    not leak rounding residue from the mean into the ratios built on top.
    """
    variance = values.var(axis=0)
    return np.where(np.ptp(values, axis=0) == 0, 0.0, variance)


def pearson(a: np.ndarray, b: np.ndarray) -> float:
    if np.ptp(a) == 0 or np.ptp(b) == 0:
        return 0.0
    da = a - a.mean()
    db = b - b.mean()
    denominator = np.sqrt(np.sum(da * da) * np.sum(db * db))
    if denominator == 0:
        return 0.0
    return float(np.sum(da * db) / denominator)


def first_difference(values: np.ndarray) -> np.ndarray:
    # first row has no predecessor and is defined as 0
    return np.diff(values, axis=0, prepend=values[:1])


def extract_motion_features(window) -> np.ndarray:
    """
    Summarise a window of raw accelerometer samples into 26 features.

    Layout: last sample (3), per-axis mean/variance/range (9), mean absolute
    velocity (3), mean absolute jerk (3), variance dominance ratios (3),
    pairwise correlations xy/yz/xz (3), magnitude mean and variance (2).
    """
    window = as_window(window)
    if len(window) == 0:
        raise InsufficientDataError("Cannot extract features from an empty window", required=1)

    variances = population_variance(window)
    features = list(window[-1])

    for axis in range(NUM_AXES):
        column = window[:, axis]
        features.extend([column.mean(), variances[axis], np.ptp(column)])

    velocity = first_difference(window)
    jerk = first_difference(velocity)
    features.extend(np.abs(velocity).mean(axis=0))
    features.extend(np.abs(jerk).mean(axis=0))

    total_variance = variances.sum()
    if total_variance > 0:
        features.extend(variances / total_variance)
    else:
        features.extend([1.0 / 3.0] * NUM_AXES)

    for i, j in AXIS_PAIRS:
        features.append(pearson(window[:, i], window[:, j]))

    magnitude = np.sqrt(np.sum(window * window, axis=1))
    features.append(magnitude.mean())
    features.append(float(population_variance(magnitude[:, None])[0]))

    return np.asarray(features, dtype=np.float64)


def extract_raw_features(window) -> np.ndarray:
    """Pass the most recent sample through unchanged."""
    window = as_window(window)
    if len(window) == 0:
        raise InsufficientDataError("Cannot extract features from an empty window", required=1)
    return window[-1].copy()


@dataclass(frozen=True)
class FeatureExtractor:
    """A named window-to-vector function with a fixed window size and output width."""

    name: str
    window_size: int
    num_features: int
    fn: Callable[[np.ndarray], np.ndarray]

    def extract(self, window) -> np.ndarray:
        window = as_window(window)
        if len(window) != self.window_size:
            raise InsufficientDataError(
                f"Extractor '{self.name}' needs {self.window_size} samples, got {len(window)}",
                available=len(window),
                required=self.window_size,
            )
        return self.fn(window)

    @property
    def feature_columns(self) -> Tuple[str, ...]:
        if self.name == "raw":
            return AXES
        return tuple(f"feature_{i}" for i in range(self.num_features))


_REGISTRY: Dict[str, Tuple[Callable[[np.ndarray], np.ndarray], int, int]] = {
    "motion": (extract_motion_features, NUM_MOTION_FEATURES, WINDOW_SIZE),
    "raw": (extract_raw_features, NUM_AXES, 1),
}


def get_extractor(name: str = "motion", window_size: int | None = None) -> FeatureExtractor:
    if name not in _REGISTRY:
        raise ValueError(f"Unknown feature extractor '{name}'. Choose from {sorted(_REGISTRY)}")
    fn, num_features, default_window = _REGISTRY[name]
    if name == "raw":
        window_size = 1
    size = int(window_size or default_window)
    if size < 1:
        raise ValueError("window_size must be at least 1")
    return FeatureExtractor(name=name, window_size=size, num_features=num_features, fn=fn)
