from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Tuple

import matplotlib.pyplot as plt
import tensorflow as tf

from .constants import CLASS_LABELS, CONFIDENCE_THRESHOLD, NUM_CLASSES, WINDOW_SIZE
from .data_utils import LAYOUT_RAW, MotionDataset, load_dataset
from .errors import EmptyDatasetError
from .features import get_extractor
from .modeling import DEFAULT_HIDDEN_UNITS, ClassifierModel, EpochCallback, TrainingHistory
from .store import ModelStore

logger = logging.getLogger(__name__)


@dataclass
class TrainingConfig:
    data_path: Optional[Path] = None
    model_dir: Path = Path("models")
    layout: str = LAYOUT_RAW
    extractor: str = "motion"
    window_size: int = WINDOW_SIZE
    num_classes: int = NUM_CLASSES
    class_labels: Tuple[str, ...] = CLASS_LABELS
    epochs: int = 30
    batch_size: int = 32
    learning_rate: float = 1e-3
    validation_fraction: float = 0.2
    hidden_units: Tuple[int, ...] = DEFAULT_HIDDEN_UNITS
    dropout: float = 0.3
    l2: float = 1e-3
    seed: Optional[int] = None
    confidence_threshold: float = CONFIDENCE_THRESHOLD
    plot_path: Optional[Path] = None
    history_path: Optional[Path] = None


def load_config(config_path: Path) -> TrainingConfig:
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")
    data = json.loads(config_path.read_text(encoding="utf-8"))

    def to_path(value):
        return Path(value) if value else None

    defaults = TrainingConfig()
    num_classes = int(data.get("num_classes", defaults.num_classes))
    labels = data.get("class_labels") or CLASS_LABELS[:num_classes]
    seed = data.get("seed")

    return TrainingConfig(
        data_path=to_path(data.get("data_path")),
        model_dir=to_path(data.get("model_dir")) or defaults.model_dir,
        layout=str(data.get("layout", defaults.layout)).lower(),
        extractor=str(data.get("extractor", defaults.extractor)).lower(),
        window_size=int(data.get("window_size", defaults.window_size)),
        num_classes=num_classes,
        class_labels=tuple(labels),
        epochs=int(data.get("epochs", defaults.epochs)),
        batch_size=int(data.get("batch_size", defaults.batch_size)),
        learning_rate=float(data.get("learning_rate", defaults.learning_rate)),
        validation_fraction=float(data.get("validation_fraction", defaults.validation_fraction)),
        hidden_units=tuple(int(u) for u in data.get("hidden_units", defaults.hidden_units)),
        dropout=float(data.get("dropout", defaults.dropout)),
        l2=float(data.get("l2", defaults.l2)),
        seed=int(seed) if seed is not None else None,
        confidence_threshold=float(data.get("confidence_threshold", defaults.confidence_threshold)),
        plot_path=to_path(data.get("plot_path")),
        history_path=to_path(data.get("history_path")),
    )


def train_classifier(
    dataset: MotionDataset,
    config: TrainingConfig,
    on_epoch_end: Optional[EpochCallback] = None,
) -> Tuple[ClassifierModel, TrainingHistory]:
    """
    Build and train a fresh classifier.

    A new instance is returned rather than retraining the active one, so a live
    session keeps predicting with its current model until the caller swaps it.
    """
    if len(dataset) == 0:
        raise EmptyDatasetError("No usable training rows; record or upload labeled data first")
    if config.seed is not None:
        tf.keras.utils.set_random_seed(config.seed)

    classifier = ClassifierModel(
        num_features=dataset.num_features,
        num_classes=config.num_classes,
        class_labels=config.class_labels,
        extractor=config.extractor,
        window_size=get_extractor(config.extractor, config.window_size).window_size,
        hidden_units=config.hidden_units,
        dropout=config.dropout,
        l2=config.l2,
        learning_rate=config.learning_rate,
    )
    history = classifier.fit(
        dataset.features,
        dataset.labels,
        epochs=config.epochs,
        batch_size=config.batch_size,
        validation_fraction=config.validation_fraction,
        on_epoch_end=on_epoch_end,
        seed=config.seed,
    )
    return classifier, history


REPORTED_METRICS = ("accuracy", "loss")


def plot_training_curves(history: TrainingHistory, output_path: Path) -> bool:
    """
    Draw one panel per reported metric with its validation counterpart when present.

    Returns False (and writes nothing) when the history has no epochs.
    """
    panels = [name for name in REPORTED_METRICS if history.history.get(name)]
    if not panels:
        return False

    fig, axes = plt.subplots(1, len(panels), figsize=(6 * len(panels), 5), squeeze=False)
    for ax, name in zip(axes[0], panels):
        epochs = range(1, len(history.history[name]) + 1)
        ax.plot(epochs, history.history[name], label=f"train ({history.train_size} rows)")
        val_values = history.history.get(f"val_{name}")
        if val_values:
            ax.plot(epochs, val_values, label=f"validation ({history.val_size} rows)")
        ax.set(title=name, xlabel="epoch")
        ax.grid(True)
        ax.legend()

    fig.tight_layout()
    output_path.parent.mkdir(parents=True, exist_ok=True)
    fig.savefig(output_path)
    plt.close(fig)
    logger.info("[Plot] Training curves saved to %s", output_path)
    return True


def write_training_report(history: TrainingHistory, config: TrainingConfig) -> None:
    """Persist the per-epoch metrics and their curves at the paths named in the config."""
    if config.history_path:
        config.history_path.parent.mkdir(parents=True, exist_ok=True)
        payload = {"train_size": history.train_size, "val_size": history.val_size, **history.history}
        config.history_path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
        logger.info("[History] Saved to %s", config.history_path)
    if config.plot_path:
        plot_training_curves(history, config.plot_path)


def run_training(
    config: TrainingConfig,
    dataset: Optional[MotionDataset] = None,
    on_epoch_end: Optional[EpochCallback] = None,
    store: Optional[ModelStore] = None,
) -> ClassifierModel:
    """Load the CSV named by the config (unless a dataset is given), train, report and save."""
    if dataset is None:
        if config.data_path is None:
            raise ValueError("TrainingConfig.data_path is required when no dataset is passed")
        extractor = get_extractor(config.extractor, config.window_size)
        dataset = load_dataset(config.data_path, config.layout, extractor, config.num_classes)
    logger.info("[Data] %d feature vectors of width %d", len(dataset), dataset.num_features)

    classifier, history = train_classifier(dataset, config, on_epoch_end)

    write_training_report(history, config)

    if history.val_features is not None:
        metrics = classifier.evaluate(history.val_features, history.val_labels)
        logger.info("[Eval] Validation accuracy: %.4f", metrics["accuracy"])
        logger.info("[Eval] Classification report:\n%s", metrics["report"])

    if store is None:
        store = ModelStore(config.model_dir)
    store.save(classifier)
    return classifier
