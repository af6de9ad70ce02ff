from __future__ import annotations

import io
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Sequence, TextIO, Tuple, Union

import numpy as np
import pandas as pd

from .constants import FEATURE_OFFSET, NUM_AXES, NUM_CLASSES
from .errors import InsufficientDataError, MalformedRowError
from .features import FeatureExtractor, get_extractor

logger = logging.getLogger(__name__)

CsvSource = Union[str, Path, TextIO]

LAYOUT_RAW = "raw"
LAYOUT_FEATURES = "features"


@dataclass
class DatasetReport:
    """Per-row and per-class problems recovered from while building a dataset."""

    windows_per_class: Dict[int, int] = field(default_factory=dict)
    skipped_classes: List[InsufficientDataError] = field(default_factory=list)
    malformed_rows: List[MalformedRowError] = field(default_factory=list)

    def log_summary(self) -> None:
        for class_id, count in sorted(self.windows_per_class.items()):
            logger.info("[Data] class %d: %d feature vectors", class_id, count)
        for err in self.skipped_classes:
            logger.warning("[Data] Skipped class %s: %s", err.class_id, err)
        if self.malformed_rows:
            logger.warning("[Data] Skipped %d malformed rows", len(self.malformed_rows))


@dataclass(frozen=True)
class MotionDataset:
    """Matched feature vectors and one-hot labels ready for training."""

    features: np.ndarray
    labels: np.ndarray
    class_ids: np.ndarray
    report: DatasetReport = field(default_factory=DatasetReport)

    def __len__(self) -> int:
        return int(self.features.shape[0])

    @property
    def num_features(self) -> int:
        return int(self.features.shape[1]) if self.features.ndim == 2 else 0

    @property
    def num_classes(self) -> int:
        return int(self.labels.shape[1]) if self.labels.ndim == 2 else 0


def one_hot(class_id: int, num_classes: int = NUM_CLASSES) -> np.ndarray:
    if not 0 <= class_id < num_classes:
        raise ValueError(f"class id {class_id} outside [0, {num_classes})")
    encoded = np.zeros(num_classes, dtype=np.float32)
    encoded[class_id] = 1.0
    return encoded


def _read_text(source: CsvSource) -> str:
    if isinstance(source, (str, Path)):
        return Path(source).read_text(encoding="utf-8")
    return source.read()


def read_labeled_table(
    source: CsvSource,
    num_columns: Optional[int] = None,
    num_classes: int = NUM_CLASSES,
) -> Tuple[np.ndarray, List[MalformedRowError]]:
    """
    Parse a headed CSV of ``class,v0,v1,...`` rows.

    Parameters
    ----------
    source:
        Path or open text stream. The first line is a header and is ignored.
    num_columns:
        Expected fields per row including the class column. Taken from the
        header when omitted.
    num_classes:
        Rows whose class id is not an integer in ``[0, num_classes)`` are malformed.

    Returns
    -------
    rows, malformed
        ``rows`` is a float64 array of the valid rows in file order; ``malformed``
        holds one MalformedRowError per skipped row.
    """
    lines = _read_text(source).splitlines()
    if not lines:
        return np.empty((0, num_columns or 0), dtype=np.float64), []
    header, body = lines[0], lines[1:]
    if num_columns is None:
        num_columns = len(header.split(","))
    if not body:
        return np.empty((0, num_columns), dtype=np.float64), []

    table = pd.DataFrame(
        {
            "line": pd.Series(body, dtype=object),
            "row_number": np.arange(2, len(body) + 2),
        }
    )
    table = table[table["line"].str.strip() != ""]
    if table.empty:
        return np.empty((0, num_columns), dtype=np.float64), []

    fields = table["line"].str.strip().str.split(r"\s*,\s*", expand=True, regex=True)
    arity = fields.notna().sum(axis=1).to_numpy()
    values = fields.reindex(columns=range(num_columns)).apply(pd.to_numeric, errors="coerce")
    rows = values.to_numpy(dtype=np.float64)

    finite = np.isfinite(rows).all(axis=1)
    class_col = np.where(finite, rows[:, 0], -1.0)
    valid_class = (class_col == np.round(class_col)) & (class_col >= 0) & (class_col < num_classes)

    malformed: List[MalformedRowError] = []
    for row_number, line, n_fields, is_finite, class_ok in zip(
        table["row_number"], table["line"], arity, finite, valid_class
    ):
        if n_fields != num_columns:
            reason = f"expected {num_columns} fields, got {n_fields}"
        elif not is_finite:
            reason = "non-numeric or non-finite value"
        elif not class_ok:
            reason = f"class id must be an integer in [0, {num_classes})"
        else:
            continue
        malformed.append(MalformedRowError(f"row {row_number}: {reason} ({line.strip()!r})", int(row_number)))

    keep = (arity == num_columns) & finite & valid_class
    for err in malformed:
        logger.warning("[Data] Skipping malformed row: %s", err)
    return rows[keep], malformed


def windows_for_class(samples: np.ndarray, extractor: FeatureExtractor, class_id: int) -> np.ndarray:
    """
    Slide the extractor window over one class's samples with stride 1.

    Window ``samples[i - W:i]`` is anchored on sample ``i``, so ``n`` samples give
    ``n - W`` feature vectors. A single-sample window is its own anchor, so the
    raw pass-through keeps every sample.
    """
    window_size = extractor.window_size
    stop = len(samples) + 1 if window_size == 1 else len(samples)
    if len(samples) < window_size:
        raise InsufficientDataError(
            f"class {class_id} has {len(samples)} samples, needs at least {window_size}",
            class_id=class_id,
            available=len(samples),
            required=window_size,
        )
    vectors = [extractor.extract(samples[i - window_size:i]) for i in range(window_size, stop)]
    if not vectors:
        return np.empty((0, extractor.num_features), dtype=np.float64)
    return np.stack(vectors)


def _assemble(
    features: Sequence[np.ndarray],
    class_ids: Sequence[np.ndarray],
    num_features: int,
    num_classes: int,
    report: DatasetReport,
) -> MotionDataset:
    if features:
        all_features = np.concatenate(features, axis=0).astype(np.float32)
        all_ids = np.concatenate(class_ids, axis=0).astype(np.int64)
    else:
        all_features = np.empty((0, num_features), dtype=np.float32)
        all_ids = np.empty((0,), dtype=np.int64)
    labels = np.eye(num_classes, dtype=np.float32)[all_ids] if len(all_ids) else np.empty((0, num_classes), dtype=np.float32)
    report.log_summary()
    return MotionDataset(all_features, labels, all_ids, report)


def build_from_raw_rows(
    rows,
    extractor: Optional[FeatureExtractor] = None,
    num_classes: int = NUM_CLASSES,
    report: Optional[DatasetReport] = None,
) -> MotionDataset:
    """
    Build a windowed dataset from ``(class, x, y, z)`` rows.

    Rows are grouped by class in their original order so windows never span a
    class boundary. Classes that cannot fill a window are skipped and recorded in
    the report.
    """
    extractor = extractor or get_extractor()
    report = report or DatasetReport()
    rows = np.asarray(rows, dtype=np.float64).reshape(-1, FEATURE_OFFSET + NUM_AXES)

    features: List[np.ndarray] = []
    class_ids: List[np.ndarray] = []
    for class_id in sorted({int(c) for c in rows[:, 0]}):
        samples = rows[rows[:, 0] == class_id, FEATURE_OFFSET:]
        try:
            vectors = windows_for_class(samples, extractor, class_id)
        except InsufficientDataError as exc:
            report.skipped_classes.append(exc)
            continue
        report.windows_per_class[class_id] = len(vectors)
        features.append(vectors)
        class_ids.append(np.full(len(vectors), class_id))
    return _assemble(features, class_ids, extractor.num_features, num_classes, report)


def load_raw_dataset(
    source: CsvSource,
    extractor: Optional[FeatureExtractor] = None,
    num_classes: int = NUM_CLASSES,
) -> MotionDataset:
    rows, malformed = read_labeled_table(source, FEATURE_OFFSET + NUM_AXES, num_classes)
    report = DatasetReport(malformed_rows=malformed)
    return build_from_raw_rows(rows, extractor, num_classes, report)


def load_feature_dataset(
    source: CsvSource,
    num_classes: int = NUM_CLASSES,
    num_features: Optional[int] = None,
) -> MotionDataset:
    """Load precomputed ``class,feature_0,...`` rows; one row is one training example."""
    num_columns = FEATURE_OFFSET + num_features if num_features is not None else None
    rows, malformed = read_labeled_table(source, num_columns, num_classes)
    report = DatasetReport(malformed_rows=malformed)
    width = rows.shape[1] - FEATURE_OFFSET if rows.ndim == 2 and rows.shape[1] else int(num_features or 0)
    if len(rows) == 0:
        return _assemble([], [], width, num_classes, report)
    ids = rows[:, 0].astype(np.int64)
    for class_id in np.unique(ids):
        report.windows_per_class[int(class_id)] = int(np.sum(ids == class_id))
    return _assemble([rows[:, FEATURE_OFFSET:]], [ids], width, num_classes, report)


def load_dataset(
    source: CsvSource,
    layout: str = LAYOUT_RAW,
    extractor: Optional[FeatureExtractor] = None,
    num_classes: int = NUM_CLASSES,
) -> MotionDataset:
    if layout == LAYOUT_RAW:
        return load_raw_dataset(source, extractor, num_classes)
    if layout == LAYOUT_FEATURES:
        num_features = extractor.num_features if extractor is not None else None
        return load_feature_dataset(source, num_classes, num_features)
    raise ValueError(f"Unknown CSV layout '{layout}' (expected '{LAYOUT_RAW}' or '{LAYOUT_FEATURES}')")


def load_dataset_from_text(text: str, layout: str = LAYOUT_RAW, **kwargs) -> MotionDataset:
    """Same as load_dataset for CSV content already held in memory (e.g. an upload)."""
    return load_dataset(io.StringIO(text), layout=layout, **kwargs)
