#!/usr/bin/env python3
"""
Live motion classification from a serial accelerometer or stdin.

- reads ``x,y,z`` lines (serial port via --port, stdin otherwise)
- sliding window features + confidence-gated label output
- optional recording of one class to CSV for later training
"""

from __future__ import annotations

import argparse
import logging
import os
import sys
from pathlib import Path
from typing import Iterable, Optional

os.environ.setdefault("TF_CPP_MIN_LOG_LEVEL", "2")

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from motion_classifier.errors import DimensionMismatchError, ModelNotFoundError  # noqa: E402
from motion_classifier.features import get_extractor  # noqa: E402
from motion_classifier.ingest import DEFAULT_BAUD, SerialSampleReader  # noqa: E402
from motion_classifier.modeling import ClassifierModel  # noqa: E402
from motion_classifier.realtime import InferenceSession, WindowResult  # noqa: E402
from motion_classifier.store import ModelStore  # noqa: E402
from motion_classifier.training import TrainingConfig, load_config  # noqa: E402


def _load_classifier(store: ModelStore, expected_features: int) -> Optional[ClassifierModel]:
    try:
        return store.load(expected_features=expected_features)
    except ModelNotFoundError as exc:
        print(f"[Model] {exc}")
        print("[Model] No trained model. Record labeled data with --record and train with train_from_config.py.")
    except DimensionMismatchError as exc:
        print(f"[Model] Stored model does not match the configured extractor: {exc}")
        print("[Model] Retrain the model for this feature set.")
    return None


class ConsolePrinter:
    """Prints the visible label whenever it changes."""

    def __init__(self, session: InferenceSession) -> None:
        self.session = session
        self._last_label: Optional[int] = None

    def __call__(self, result: WindowResult) -> None:
        if result.probabilities is None:
            if result.recorded and len(self.session.recorded) % 50 == 0:
                print(f"[Record] {len(self.session.recorded)} samples")
            return
        if result.visible_label != self._last_label:
            self._last_label = result.visible_label
            name = self.session.label_name(result.visible_label)
            print(f"[Motion] {name} (p={result.confidence:.3f}, window #{self.session.windows_processed})")


def _consume_lines(session: InferenceSession, lines: Iterable[str], printer: ConsolePrinter) -> None:
    for line in lines:
        if not line.strip():
            continue
        result = session.process_line(line)
        if result is not None:
            printer(result)


def parse_args(argv: Iterable[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Live accelerometer motion classifier",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument("--config", type=Path, default=Path("config/training_config.json"))
    parser.add_argument("--model-dir", type=Path, default=None)
    parser.add_argument("--port", default=None, help="Serial port; reads stdin when omitted")
    parser.add_argument("--baud", type=int, default=DEFAULT_BAUD)
    parser.add_argument("--threshold", type=float, default=None, help="Confidence gate threshold")
    parser.add_argument("--record", type=int, default=None, help="Class id to record while streaming")
    parser.add_argument("--export", type=Path, default=None, help="CSV path for recorded samples")
    parser.add_argument("--log-level", default="WARNING")
    return parser.parse_args(argv)


def main(argv: Iterable[str]) -> None:
    args = parse_args(argv)
    logging.basicConfig(level=args.log_level.upper(), format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    config = load_config(args.config) if args.config.exists() else TrainingConfig()
    extractor = get_extractor(config.extractor, config.window_size)
    store = ModelStore(args.model_dir or config.model_dir)
    classifier = _load_classifier(store, extractor.num_features)
    threshold = args.threshold if args.threshold is not None else config.confidence_threshold

    session = InferenceSession(classifier, extractor, threshold=threshold)
    if args.record is not None:
        session.start_recording(args.record)
    printer = ConsolePrinter(session)

    reader: Optional[SerialSampleReader] = None
    try:
        if args.port:
            reader = SerialSampleReader(args.port, args.baud)
            reader.start()
            print(f"Streaming from {args.port} @ {args.baud} baud. Ctrl+C to stop.")
            session.run(reader.samples, reader.stop_event, on_result=printer)
        else:
            print("Reading x,y,z lines from stdin. Ctrl+D to stop.")
            _consume_lines(session, sys.stdin, printer)
    except KeyboardInterrupt:
        pass
    finally:
        if reader is not None:
            reader.stop()
        if session.recording:
            session.stop_recording()
        if args.export is not None and len(session.recorded):
            args.export.parent.mkdir(parents=True, exist_ok=True)
            session.recorded.to_csv(args.export)
            print(f"[Record] Saved {len(session.recorded)} rows to {args.export}")


if __name__ == "__main__":
    main(sys.argv[1:])
