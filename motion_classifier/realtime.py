"""
Live classification of an accelerometer stream.

Each incoming sample is one unit of work: buffer push, then (once the buffer
holds a full window) feature extraction, prediction, the confidence gate and
optional recording. Nothing is suspended mid-sample.
"""

from __future__ import annotations

import logging
import queue
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Optional, Sequence, TextIO, Tuple, Union

import numpy as np
import pandas as pd

from .buffer import RollingBuffer
from .constants import CONFIDENCE_THRESHOLD, LABEL_COLUMN
from .errors import DimensionMismatchError, ParseError
from .features import FeatureExtractor, get_extractor
from .ingest import RawSample, make_sample, try_parse_sample
from .modeling import ClassifierModel

logger = logging.getLogger(__name__)


class ConfidenceGate:
    """
    Keep-or-replace rule for the visible label.

    The visible label is replaced by the arg-max class only when the top
    probability is strictly above ``threshold``; otherwise the previous label
    stays (uncertain, not unknown).
    """

    def __init__(self, threshold: float = CONFIDENCE_THRESHOLD) -> None:
        self.threshold = float(threshold)
        self.current_label: Optional[int] = None

    @staticmethod
    def decide(previous: Optional[int], probs: np.ndarray, threshold: float) -> Tuple[Optional[int], bool]:
        class_id = int(np.argmax(probs))
        if float(probs[class_id]) > threshold:
            return class_id, True
        return previous, False

    def update(self, probs: np.ndarray) -> Tuple[Optional[int], bool]:
        """Returns (visible label, whether it was replaced by this prediction)."""
        self.current_label, accepted = self.decide(self.current_label, probs, self.threshold)
        return self.current_label, accepted

    def reset(self) -> None:
        self.current_label = None


class RecordedDataset:
    """In-memory ``(features, class)`` accumulator exported as CSV."""

    def __init__(self, columns: Sequence[str]) -> None:
        self.columns = tuple(columns)
        self.features: List[np.ndarray] = []
        self.class_ids: List[int] = []

    def append(self, features: np.ndarray, class_id: int) -> None:
        if len(features) != len(self.columns):
            raise DimensionMismatchError(len(self.columns), len(features), "recorded feature vector")
        self.features.append(np.asarray(features, dtype=np.float64).copy())
        self.class_ids.append(int(class_id))

    def __len__(self) -> int:
        return len(self.class_ids)

    def clear(self) -> None:
        self.features.clear()
        self.class_ids.clear()

    def to_frame(self) -> pd.DataFrame:
        values = np.stack(self.features) if self.features else np.empty((0, len(self.columns)))
        frame = pd.DataFrame(values, columns=list(self.columns))
        frame.insert(0, LABEL_COLUMN, np.asarray(self.class_ids, dtype=np.int64))
        return frame

    def to_csv(self, target: Union[str, Path, TextIO, None] = None) -> Optional[str]:
        """Write ``class,<columns...>`` rows; returns the text when no target is given."""
        return self.to_frame().to_csv(target, index=False)


@dataclass(frozen=True)
class WindowResult:
    features: np.ndarray
    probabilities: Optional[np.ndarray]
    predicted: Optional[int]
    confidence: float
    visible_label: Optional[int]
    accepted: bool
    recorded: bool


class InferenceSession:
    """
    Owns the rolling buffer, confidence gate and recording accumulator of one
    live stream. The classifier is passed in and can be swapped as a whole.
    """

    STATE_EMPTY = "Empty"
    STATE_READY = "Ready"
    STATE_PREDICTING = "Predicting"

    def __init__(
        self,
        classifier: Optional[ClassifierModel] = None,
        extractor: Optional[FeatureExtractor] = None,
        threshold: float = CONFIDENCE_THRESHOLD,
        buffer: Optional[RollingBuffer] = None,
    ) -> None:
        if extractor is None:
            extractor = (
                get_extractor(classifier.extractor, classifier.window_size)
                if classifier is not None
                else get_extractor()
            )
        self.extractor = extractor
        self.buffer = buffer if buffer is not None else RollingBuffer(extractor.window_size)
        if self.buffer.capacity != extractor.window_size:
            raise ValueError(
                f"Buffer capacity {self.buffer.capacity} does not match window size {extractor.window_size}"
            )
        self.gate = ConfidenceGate(threshold)
        self.classifier: Optional[ClassifierModel] = None
        self.swap_model(classifier)

        self.recorded = RecordedDataset(extractor.feature_columns)
        self.recording = False
        self.selected_class: Optional[int] = None
        self.samples_seen = 0
        self.windows_processed = 0
        self._predicting = False

    @property
    def state(self) -> str:
        if self._predicting:
            return self.STATE_PREDICTING
        return self.STATE_READY if self.buffer.is_full() else self.STATE_EMPTY

    @property
    def current_label(self) -> Optional[int]:
        return self.gate.current_label

    def label_name(self, class_id: Optional[int] = None) -> Optional[str]:
        class_id = self.current_label if class_id is None else class_id
        if class_id is None or self.classifier is None:
            return None
        return self.classifier.class_labels[class_id]

    def swap_model(self, classifier: Optional[ClassifierModel]) -> None:
        """Replace the active classifier; the new one must accept this session's features."""
        if classifier is not None and classifier.num_features != self.extractor.num_features:
            raise DimensionMismatchError(self.extractor.num_features, classifier.num_features, "classifier input")
        self.classifier = classifier
        self.gate.reset()
        if classifier is None:
            logger.info("[Session] No model attached; running in record-only mode")

    def start_recording(self, class_id: int) -> None:
        self.selected_class = int(class_id)
        self.recording = True
        logger.info("[Record] Recording class %d", class_id)

    def stop_recording(self) -> None:
        self.recording = False
        logger.info("[Record] Stopped; %d samples recorded", len(self.recorded))

    def process_sample(self, sample: RawSample) -> Optional[WindowResult]:
        """Push one sample; non-finite or non-numeric triples are dropped before buffering."""
        try:
            sample = make_sample(*sample)
        except (ParseError, TypeError) as exc:
            logger.warning("[Ingest] Dropping sample: %s", exc)
            return None
        self.buffer.push(sample)
        self.samples_seen += 1
        if not self.buffer.is_full():
            return None

        features = self.extractor.extract(self.buffer.snapshot())
        probs: Optional[np.ndarray] = None
        predicted: Optional[int] = None
        confidence = 0.0
        accepted = False
        classifier = self.classifier
        if classifier is not None:
            self._predicting = True
            try:
                probs = classifier.predict(features)
            finally:
                self._predicting = False
            predicted = int(np.argmax(probs))
            confidence = float(probs[predicted])
            _, accepted = self.gate.update(probs)

        recorded = False
        if self.recording and self.selected_class is not None:
            self.recorded.append(features, self.selected_class)
            recorded = True

        self.windows_processed += 1
        return WindowResult(
            features=features,
            probabilities=probs,
            predicted=predicted,
            confidence=confidence,
            visible_label=self.gate.current_label,
            accepted=accepted,
            recorded=recorded,
        )

    def process_line(self, line: Union[str, bytes]) -> Optional[WindowResult]:
        """Parse and process one transport line; malformed lines are dropped."""
        sample = try_parse_sample(line)
        if sample is None:
            return None
        return self.process_sample(sample)

    def run(
        self,
        samples: "queue.Queue[RawSample]",
        stop_event: threading.Event,
        on_result: Optional[Callable[[WindowResult], None]] = None,
        poll_timeout: float = 0.1,
    ) -> None:
        """Consume a sample queue until ``stop_event`` is set and the queue is drained."""
        while True:
            try:
                sample = samples.get(timeout=poll_timeout)
            except queue.Empty:
                if stop_event.is_set():
                    return
                continue
            result = self.process_sample(sample)
            if result is not None and on_result is not None:
                on_result(result)
