from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Optional, Union

import joblib
import tensorflow as tf

from .errors import DimensionMismatchError, ModelNotFoundError
from .modeling import ClassifierModel

logger = logging.getLogger(__name__)

MODEL_KEY = "motion_classifier"


class ModelStore:
    """
    Single-slot on-disk persistence for the active motion classifier.

    Three files share the ``motion_classifier`` key: the Keras network, the
    joblib-pickled feature scaler and a JSON metadata file.
    """

    def __init__(self, directory: Union[str, Path], key: str = MODEL_KEY) -> None:
        self.directory = Path(directory)
        self.key = key

    @property
    def model_path(self) -> Path:
        return self.directory / f"{self.key}.keras"

    @property
    def scaler_path(self) -> Path:
        return self.directory / f"{self.key}_scaler.pkl"

    @property
    def metadata_path(self) -> Path:
        return self.directory / f"{self.key}.json"

    def exists(self) -> bool:
        return self.model_path.exists() and self.metadata_path.exists()

    def save(self, classifier: ClassifierModel) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        classifier.model.save(self.model_path)
        if classifier.scaler is not None:
            joblib.dump(classifier.scaler, self.scaler_path)
        elif self.scaler_path.exists():
            self.scaler_path.unlink()
        self.metadata_path.write_text(json.dumps(classifier.metadata(), indent=2), encoding="utf-8")
        logger.info("[Store] Saved model to %s", self.model_path)

    def load(self, expected_features: Optional[int] = None) -> ClassifierModel:
        """
        Load the stored classifier.

        Raises ModelNotFoundError when nothing usable is stored, and
        DimensionMismatchError when ``expected_features`` differs from the
        stored input width.
        """
        if not self.exists():
            raise ModelNotFoundError(f"No stored model under {self.directory} (key '{self.key}')")
        try:
            metadata = json.loads(self.metadata_path.read_text(encoding="utf-8"))
            num_features = int(metadata["num_features"])
        except (OSError, ValueError, KeyError, TypeError) as exc:
            raise ModelNotFoundError(f"Model metadata at {self.metadata_path} is unreadable: {exc}") from exc

        if expected_features is not None and num_features != int(expected_features):
            raise DimensionMismatchError(int(expected_features), num_features, "stored model input")

        try:
            network = tf.keras.models.load_model(self.model_path, compile=False)
            scaler = joblib.load(self.scaler_path) if self.scaler_path.exists() else None
        except Exception as exc:
            raise ModelNotFoundError(f"Stored model at {self.model_path} is corrupt: {exc}") from exc

        classifier = ClassifierModel(
            num_features=num_features,
            num_classes=int(metadata.get("num_classes", network.output_shape[-1])),
            class_labels=metadata.get("class_labels"),
            extractor=metadata.get("extractor", "motion"),
            window_size=int(metadata.get("window_size", 1)),
            hidden_units=metadata.get("hidden_units", ()),
            dropout=float(metadata.get("dropout", 0.0)),
            l2=float(metadata.get("l2", 0.0)),
            learning_rate=float(metadata.get("learning_rate", 1e-3)),
            model=network,
            scaler=scaler,
        )
        logger.info("[Store] Loaded model from %s (%d features)", self.model_path, num_features)
        return classifier

    def remove(self) -> None:
        for path in (self.model_path, self.scaler_path, self.metadata_path):
            if path.exists():
                path.unlink()
        logger.info("[Store] Removed stored model '%s'", self.key)
