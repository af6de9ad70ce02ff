"""
Turning raw transport input into validated accelerometer samples.

The serial reader runs on its own thread and only ever touches a bounded
``queue.Queue``; the inference session consumes that queue synchronously.
"""

from __future__ import annotations

import logging
import math
import queue
import threading
from typing import Iterable, Iterator, NamedTuple, Optional, Union

from .errors import ParseError

logger = logging.getLogger(__name__)

DEFAULT_BAUD = 230400
DEFAULT_QUEUE_SIZE = 1024


class RawSample(NamedTuple):
    x: float
    y: float
    z: float


def parse_sample_line(line: Union[str, bytes]) -> RawSample:
    """Parse ``"x,y,z"`` into a sample, raising ParseError for anything else."""
    if isinstance(line, bytes):
        line = line.decode("utf-8", errors="ignore")
    parts = line.strip().split(",")
    if len(parts) != 3:
        raise ParseError(f"Expected 3 comma-separated values, got {len(parts)}: {line.strip()!r}")
    try:
        values = [float(p) for p in parts]
    except ValueError as exc:
        raise ParseError(f"Non-numeric sample {line.strip()!r}") from exc
    return make_sample(*values)


def make_sample(x, y, z) -> RawSample:
    try:
        values = (float(x), float(y), float(z))
    except (TypeError, ValueError) as exc:
        raise ParseError(f"Non-numeric sample ({x!r}, {y!r}, {z!r})") from exc
    if not all(math.isfinite(v) for v in values):
        raise ParseError(f"Non-finite sample {values}")
    return RawSample(*values)


def try_parse_sample(line: Union[str, bytes]) -> Optional[RawSample]:
    """Parse a line, logging and returning None when it is malformed."""
    try:
        return parse_sample_line(line)
    except ParseError as exc:
        logger.warning("[Ingest] Dropping sample: %s", exc)
        return None


def iter_samples(lines: Iterable[Union[str, bytes]]) -> Iterator[RawSample]:
    for line in lines:
        if not line or not line.strip():
            continue
        sample = try_parse_sample(line)
        if sample is not None:
            yield sample


def put_latest(q: "queue.Queue[RawSample]", sample: RawSample) -> None:
    """Enqueue a sample, discarding the oldest queued one when the queue is full."""
    while True:
        try:
            q.put_nowait(sample)
            return
        except queue.Full:
            try:
                q.get_nowait()
            except queue.Empty:
                pass


class SerialSampleReader:
    """Reads ``x,y,z`` lines from a serial port into a bounded sample queue."""

    def __init__(
        self,
        port: str,
        baudrate: int = DEFAULT_BAUD,
        maxsize: int = DEFAULT_QUEUE_SIZE,
        timeout: float = 0.1,
    ) -> None:
        self.port = port
        self.baudrate = baudrate
        self.timeout = timeout
        self.samples: "queue.Queue[RawSample]" = queue.Queue(maxsize=maxsize)
        self.stop_event = threading.Event()
        self.dropped_lines = 0
        self._thread: Optional[threading.Thread] = None

    def start(self) -> None:
        self._thread = threading.Thread(target=self._run_loop, daemon=True)
        self._thread.start()

    def stop(self) -> None:
        self.stop_event.set()
        if self._thread:
            self._thread.join(timeout=2.0)

    def _run_loop(self) -> None:
        import serial

        try:
            ser = serial.Serial(self.port, self.baudrate, timeout=self.timeout)
        except serial.SerialException as exc:
            logger.error("[Serial] Open failed on %s: %s", self.port, exc)
            self.stop_event.set()
            return
        logger.info("[Serial] Connected to %s @ %d baud", self.port, self.baudrate)
        with ser:
            while not self.stop_event.is_set():
                try:
                    line = ser.readline()
                except serial.SerialException as exc:
                    logger.error("[Serial] Read failed: %s", exc)
                    break
                if not line or not line.strip():
                    continue
                sample = try_parse_sample(line)
                if sample is None:
                    self.dropped_lines += 1
                    continue
                put_latest(self.samples, sample)
        self.stop_event.set()
