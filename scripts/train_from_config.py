from __future__ import annotations

import argparse
import logging
import os
import sys
from pathlib import Path

os.environ.setdefault("TF_CPP_MIN_LOG_LEVEL", "2")

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from motion_classifier.errors import EmptyDatasetError  # noqa: E402
from motion_classifier.training import TrainingConfig, load_config, run_training  # noqa: E402


def main(argv=None) -> None:
    parser = argparse.ArgumentParser(description="Train the motion classifier from a labeled CSV")
    parser.add_argument("--config", type=Path, default=Path("config/training_config.json"))
    parser.add_argument("--csv", type=Path, default=None, help="Override data_path from the config")
    parser.add_argument("--layout", choices=["raw", "features"], default=None)
    parser.add_argument("--epochs", type=int, default=None)
    parser.add_argument("--model-dir", type=Path, default=None)
    parser.add_argument("--log-level", default="INFO")
    args = parser.parse_args(argv)

    logging.basicConfig(level=args.log_level.upper(), format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    config = load_config(args.config) if args.config.exists() else TrainingConfig()
    if args.csv is not None:
        config.data_path = args.csv
    if args.layout is not None:
        config.layout = args.layout
    if args.epochs is not None:
        config.epochs = args.epochs
    if args.model_dir is not None:
        config.model_dir = args.model_dir
    if config.data_path is None or not config.data_path.exists():
        raise SystemExit(f"Training CSV not found: {config.data_path}")

    try:
        run_training(config)
    except EmptyDatasetError as exc:
        raise SystemExit(f"Nothing to train on: {exc}") from exc
    print(f"Training complete. Model saved to {config.model_dir}.")


if __name__ == "__main__":
    main(sys.argv[1:])
