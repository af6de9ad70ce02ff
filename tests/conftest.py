import os

os.environ.setdefault("TF_CPP_MIN_LOG_LEVEL", "2")

import numpy as np
import pytest

from motion_classifier.data_utils import build_from_raw_rows
from motion_classifier.features import get_extractor


def make_rows(class_id, sample, count):
    return [(class_id, *sample) for _ in range(count)]


def rows_to_csv(rows, header="class,x,y,z"):
    lines = [header] + [",".join(str(v) for v in row) for row in rows]
    return "\n".join(lines) + "\n"


class ScriptedClassifier:
    """Stands in for ClassifierModel and returns queued probability vectors."""

    def __init__(self, probabilities, num_features=26, extractor="motion", window_size=10):
        self.queue = [np.asarray(p, dtype=np.float64) for p in probabilities]
        self.num_features = num_features
        self.extractor = extractor
        self.window_size = window_size
        self.class_labels = ["horizontal", "vertical", "still", "circular"]
        self.calls = 0

    def predict(self, vector):
        self.calls += 1
        if len(self.queue) > 1:
            return self.queue.pop(0)
        return self.queue[0]


@pytest.fixture(scope="session")
def two_class_dataset():
    rows = make_rows(0, (10.0, 0.0, 0.0), 60) + make_rows(1, (0.0, 10.0, 0.0), 60)
    return build_from_raw_rows(rows, get_extractor(), num_classes=2)


@pytest.fixture(scope="session")
def trained_classifier(two_class_dataset):
    from motion_classifier.training import TrainingConfig, train_classifier

    config = TrainingConfig(
        num_classes=2,
        class_labels=("horizontal", "vertical"),
        epochs=100,
        batch_size=16,
        seed=7,
    )
    classifier, _ = train_classifier(two_class_dataset, config)
    return classifier
