from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Sequence, Tuple

import numpy as np
import tensorflow as tf
from sklearn.metrics import accuracy_score, classification_report, confusion_matrix
from sklearn.preprocessing import StandardScaler
from tensorflow.keras import layers, models, regularizers

from .constants import CLASS_LABELS, NUM_CLASSES, WINDOW_SIZE
from .errors import DimensionMismatchError, EmptyDatasetError

logger = logging.getLogger(__name__)

EpochCallback = Callable[[int, Optional[float], Optional[float], Optional[float], Optional[float]], None]

DEFAULT_HIDDEN_UNITS = (64, 32, 16)


def build_motion_classifier(
    num_features: int,
    num_classes: int = NUM_CLASSES,
    hidden_units: Sequence[int] = DEFAULT_HIDDEN_UNITS,
    dropout: float = 0.3,
    l2: float = 1e-3,
) -> tf.keras.Model:
    """
    Feed-forward classifier over a single feature vector.

    The first two hidden layers carry l2 weight regularisation and are each
    followed by dropout; the remaining hidden layers are plain ReLU layers.
    """
    if not 1 <= len(hidden_units) <= 3:
        raise ValueError("hidden_units must describe one to three layers")
    inputs = layers.Input(shape=(num_features,), name="motion_features")
    x = inputs
    for idx, units in enumerate(hidden_units):
        regularized = idx < 2
        x = layers.Dense(
            units,
            activation="relu",
            kernel_regularizer=regularizers.l2(l2) if regularized else None,
            name=f"dense{idx + 1}",
        )(x)
        if regularized and dropout > 0.0 and idx < len(hidden_units) - 1:
            x = layers.Dropout(dropout, name=f"drop{idx + 1}")(x)
    outputs = layers.Dense(num_classes, activation="softmax", name="classifier")(x)
    return models.Model(inputs=inputs, outputs=outputs, name="motion_classifier")


def validation_count(num_rows: int, fraction: float) -> int:
    if fraction <= 0.0 or num_rows < 2:
        return 0
    return min(num_rows - 1, max(1, int(num_rows * fraction)))


def _metric(logs: dict, key: str) -> Optional[float]:
    value = logs.get(key)
    return None if value is None else float(value)


class EpochReporter(tf.keras.callbacks.Callback):
    """Forwards Keras epoch logs as ``(epoch, loss, acc, val_loss, val_acc)``."""

    def __init__(self, callback: EpochCallback) -> None:
        super().__init__()
        self.callback = callback

    def on_epoch_end(self, epoch, logs=None):
        logs = logs or {}
        self.callback(
            epoch,
            _metric(logs, "loss"),
            _metric(logs, "accuracy"),
            _metric(logs, "val_loss"),
            _metric(logs, "val_accuracy"),
        )


@dataclass
class TrainingHistory:
    history: Dict[str, List[float]]
    train_size: int
    val_size: int
    val_features: Optional[np.ndarray] = field(default=None, repr=False)
    val_labels: Optional[np.ndarray] = field(default=None, repr=False)

    @property
    def epochs(self) -> int:
        return len(self.history.get("loss", []))


def _fmt(value: Optional[float], digits: int) -> str:
    return "n/a" if value is None else f"{value:.{digits}f}"


def _log_epoch(epoch, loss, acc, val_loss, val_acc) -> None:
    message = f"[Training] Epoch {epoch + 1:03d} | loss {_fmt(loss, 4)}, acc {_fmt(acc, 3)}"
    if val_loss is not None:
        message += f" | val loss {_fmt(val_loss, 4)}, acc {_fmt(val_acc, 3)}"
    logger.info(message)


class ClassifierModel:
    """
    Trainable and invokable motion classifier.

    Wraps the Keras network together with the feature scaler fitted during
    training and the metadata (feature width, classes, extractor) that inference
    has to agree with.
    """

    def __init__(
        self,
        num_features: int,
        num_classes: int = NUM_CLASSES,
        class_labels: Optional[Sequence[str]] = None,
        extractor: str = "motion",
        window_size: int = WINDOW_SIZE,
        hidden_units: Sequence[int] = DEFAULT_HIDDEN_UNITS,
        dropout: float = 0.3,
        l2: float = 1e-3,
        learning_rate: float = 1e-3,
        model: Optional[tf.keras.Model] = None,
        scaler: Optional[StandardScaler] = None,
    ) -> None:
        self.num_features = int(num_features)
        self.num_classes = int(num_classes)
        labels = list(class_labels or CLASS_LABELS)[: self.num_classes]
        while len(labels) < self.num_classes:
            labels.append(f"class{len(labels)}")
        self.class_labels = labels
        self.extractor = extractor
        self.window_size = int(window_size)
        self.hidden_units = tuple(int(u) for u in hidden_units)
        self.dropout = float(dropout)
        self.l2 = float(l2)
        self.learning_rate = float(learning_rate)
        self.scaler = scaler
        if model is None:
            model = build_motion_classifier(
                self.num_features,
                self.num_classes,
                hidden_units=self.hidden_units,
                dropout=self.dropout,
                l2=self.l2,
            )
        self.model = model
        self._check_model_shape()
        self.compile()

    def _check_model_shape(self) -> None:
        in_width = int(self.model.input_shape[-1])
        out_width = int(self.model.output_shape[-1])
        if in_width != self.num_features:
            raise DimensionMismatchError(self.num_features, in_width, "model input")
        if out_width != self.num_classes:
            raise DimensionMismatchError(self.num_classes, out_width, "model output")

    def compile(self) -> None:
        self.model.compile(
            optimizer=tf.keras.optimizers.Adam(learning_rate=self.learning_rate),
            loss=tf.keras.losses.CategoricalCrossentropy(),
            metrics=["accuracy"],
        )

    @property
    def is_trained(self) -> bool:
        return self.scaler is not None

    def metadata(self) -> dict:
        return {
            "num_features": self.num_features,
            "num_classes": self.num_classes,
            "class_labels": list(self.class_labels),
            "extractor": self.extractor,
            "window_size": self.window_size,
            "hidden_units": list(self.hidden_units),
            "dropout": self.dropout,
            "l2": self.l2,
            "learning_rate": self.learning_rate,
        }

    def _as_matrix(self, features) -> np.ndarray:
        if features is None or len(features) == 0:
            raise EmptyDatasetError("Training dataset has no rows")
        if not isinstance(features, np.ndarray):
            widths = sorted({len(v) for v in features})
            if len(widths) != 1:
                raise DimensionMismatchError(self.num_features, widths, "training feature vectors")
        matrix = np.asarray(features, dtype=np.float64)
        if matrix.ndim != 2 or matrix.shape[1] != self.num_features:
            raise DimensionMismatchError(self.num_features, matrix.shape[1:], "training feature vectors")
        return matrix

    def _as_targets(self, labels, num_rows: int) -> np.ndarray:
        targets = np.asarray(labels)
        if targets.ndim == 1:
            targets = np.eye(self.num_classes, dtype=np.float32)[targets.astype(np.int64)]
        targets = targets.astype(np.float32)
        if targets.shape[0] != num_rows:
            raise ValueError(f"Got {targets.shape[0]} labels for {num_rows} feature vectors")
        if targets.shape[1] != self.num_classes:
            raise DimensionMismatchError(self.num_classes, targets.shape[1], "label vectors")
        return targets

    def fit(
        self,
        features,
        labels,
        epochs: int = 30,
        batch_size: int = 32,
        validation_fraction: float = 0.2,
        on_epoch_end: Optional[EpochCallback] = None,
        seed: Optional[int] = None,
        verbose: int = 0,
    ) -> TrainingHistory:
        """
        Train on ``features`` (N, F) and one-hot (or integer) ``labels``.

        Rows are shuffled once before a ``validation_fraction`` hold-out is cut
        off; the hold-out is only used for per-epoch reporting. The scaler is
        fitted on the training part alone.
        """
        x = self._as_matrix(features)
        y = self._as_targets(labels, len(x))

        rng = np.random.default_rng(seed)
        order = rng.permutation(len(x))
        n_val = validation_count(len(x), validation_fraction)
        val_idx, train_idx = order[:n_val], order[n_val:]

        scaler = StandardScaler().fit(x[train_idx])
        x_train = scaler.transform(x[train_idx]).astype(np.float32)
        y_train = y[train_idx]
        validation_data = None
        if n_val:
            validation_data = (scaler.transform(x[val_idx]).astype(np.float32), y[val_idx])

        def report(epoch, loss, acc, val_loss, val_acc):
            _log_epoch(epoch, loss, acc, val_loss, val_acc)
            if on_epoch_end is not None:
                on_epoch_end(epoch, loss, acc, val_loss, val_acc)

        logger.info("[Training] Train=%d, Val=%d, features=%d, classes=%d", len(train_idx), n_val, self.num_features, self.num_classes)
        self.scaler = scaler
        history = self.model.fit(
            x_train,
            y_train,
            validation_data=validation_data,
            epochs=epochs,
            batch_size=batch_size,
            shuffle=True,
            verbose=verbose,
            callbacks=[EpochReporter(report)],
        )
        return TrainingHistory(
            history={k: [float(v) for v in values] for k, values in history.history.items()},
            train_size=len(train_idx),
            val_size=n_val,
            val_features=x[val_idx] if n_val else None,
            val_labels=y[val_idx] if n_val else None,
        )

    def predict_batch(self, features) -> np.ndarray:
        matrix = np.asarray(features, dtype=np.float64)
        if matrix.ndim != 2 or matrix.shape[1] != self.num_features:
            raise DimensionMismatchError(self.num_features, matrix.shape[-1] if matrix.ndim else 0)
        if self.scaler is not None:
            matrix = self.scaler.transform(matrix)
        probs = self.model(matrix.astype(np.float32), training=False).numpy().astype(np.float64)
        probs = np.clip(probs, 0.0, None)
        return probs / probs.sum(axis=1, keepdims=True)

    def predict(self, vector) -> np.ndarray:
        """Class probabilities for one feature vector; non-negative and summing to 1."""
        vector = np.asarray(vector, dtype=np.float64)
        if vector.ndim != 1 or vector.shape[0] != self.num_features:
            raise DimensionMismatchError(self.num_features, vector.shape[0] if vector.ndim == 1 else vector.shape)
        return self.predict_batch(vector[None, :])[0]

    def predict_label(self, vector) -> Tuple[int, float]:
        probs = self.predict(vector)
        class_id = int(np.argmax(probs))
        return class_id, float(probs[class_id])

    def evaluate(self, features, labels) -> dict:
        x = self._as_matrix(features)
        y_true = np.argmax(self._as_targets(labels, len(x)), axis=1)
        y_pred = np.argmax(self.predict_batch(x), axis=1)
        classes = list(range(self.num_classes))
        return {
            "accuracy": float(accuracy_score(y_true, y_pred)),
            "confusion_matrix": confusion_matrix(y_true, y_pred, labels=classes),
            "report": classification_report(
                y_true,
                y_pred,
                labels=classes,
                target_names=self.class_labels,
                zero_division=0,
            ),
        }
