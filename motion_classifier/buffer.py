from __future__ import annotations

from collections import deque
from typing import Deque, Iterator

import numpy as np

from .constants import NUM_AXES, WINDOW_SIZE
from .errors import InsufficientDataError
from .ingest import RawSample


class RollingBuffer:
    """Fixed-capacity FIFO holding the most recent raw samples, oldest first."""

    def __init__(self, capacity: int = WINDOW_SIZE) -> None:
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self.capacity = int(capacity)
        self._samples: Deque[RawSample] = deque(maxlen=self.capacity)

    def push(self, sample: RawSample) -> None:
        self._samples.append(sample)

    def is_full(self) -> bool:
        return len(self._samples) == self.capacity

    def snapshot(self) -> np.ndarray:
        """Current window as a (capacity, 3) array; only valid once the buffer is full."""
        if not self.is_full():
            raise InsufficientDataError(
                f"Buffer holds {len(self._samples)} of {self.capacity} samples",
                available=len(self._samples),
                required=self.capacity,
            )
        return np.asarray(self._samples, dtype=np.float64).reshape(self.capacity, NUM_AXES)

    def clear(self) -> None:
        self._samples.clear()

    def __len__(self) -> int:
        return len(self._samples)

    def __iter__(self) -> Iterator[RawSample]:
        return iter(list(self._samples))
