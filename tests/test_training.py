import json
from pathlib import Path

import numpy as np
import pytest

from conftest import make_rows, rows_to_csv
from motion_classifier.data_utils import load_dataset_from_text
from motion_classifier.errors import EmptyDatasetError
from motion_classifier.modeling import TrainingHistory
from motion_classifier.store import ModelStore
from motion_classifier.training import (
    TrainingConfig,
    load_config,
    plot_training_curves,
    run_training,
    train_classifier,
    write_training_report,
)


def test_load_config(tmp_path):
    path = tmp_path / "config.json"
    path.write_text(
        json.dumps(
            {
                "data_path": "data/motion.csv",
                "layout": "FEATURES",
                "num_classes": 3,
                "epochs": 5,
                "hidden_units": [32, 16],
                "seed": 3,
            }
        ),
        encoding="utf-8",
    )
    config = load_config(path)

    assert config.data_path == Path("data/motion.csv")
    assert config.layout == "features"
    assert config.class_labels == ("horizontal", "vertical", "still")
    assert config.hidden_units == (32, 16)
    assert config.seed == 3
    assert config.model_dir == Path("models")
    assert config.plot_path is None


def test_load_config_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_config(tmp_path / "absent.json")


def test_shipped_config_loads():
    config = load_config(Path(__file__).resolve().parents[1] / "config" / "training_config.json")
    assert config.num_classes == 4
    assert config.confidence_threshold == pytest.approx(0.3)


def test_empty_dataset_is_rejected():
    dataset = load_dataset_from_text("class,x,y,z\n")
    with pytest.raises(EmptyDatasetError):
        train_classifier(dataset, TrainingConfig())


def test_run_training_writes_artifacts(tmp_path):
    rows = make_rows(0, (10.0, 0.0, 0.0), 30) + make_rows(1, (0.0, 10.0, 0.0), 30)
    data_path = tmp_path / "motion.csv"
    data_path.write_text(rows_to_csv(rows), encoding="utf-8")
    config = TrainingConfig(
        data_path=data_path,
        model_dir=tmp_path / "models",
        num_classes=2,
        epochs=3,
        batch_size=8,
        seed=1,
        plot_path=tmp_path / "models" / "curves.png",
        history_path=tmp_path / "models" / "history.json",
    )
    epochs = []

    classifier = run_training(config, on_epoch_end=lambda epoch, *_: epochs.append(epoch))

    assert epochs == [0, 1, 2]
    assert config.plot_path.exists()
    history = json.loads(config.history_path.read_text(encoding="utf-8"))
    assert len(history["loss"]) == 3
    assert "val_accuracy" in history

    restored = ModelStore(config.model_dir).load(expected_features=26)
    vector = np.zeros(26)
    np.testing.assert_allclose(restored.predict(vector), classifier.predict(vector), atol=1e-6)


def test_run_training_requires_data(tmp_path):
    with pytest.raises(ValueError):
        run_training(TrainingConfig(model_dir=tmp_path))


def test_training_curves_skip_empty_history(tmp_path):
    history = TrainingHistory(history={}, train_size=0, val_size=0)
    assert not plot_training_curves(history, tmp_path / "curves.png")
    assert not (tmp_path / "curves.png").exists()


def test_training_report_without_holdout(tmp_path):
    history = TrainingHistory(
        history={"loss": [0.9, 0.5], "accuracy": [0.4, 0.8]},
        train_size=12,
        val_size=0,
    )
    config = TrainingConfig(plot_path=tmp_path / "out" / "curves.png", history_path=tmp_path / "out" / "history.json")

    write_training_report(history, config)

    assert config.plot_path.exists()
    payload = json.loads(config.history_path.read_text(encoding="utf-8"))
    assert payload["train_size"] == 12
    assert payload["accuracy"] == [0.4, 0.8]
    assert "val_loss" not in payload
