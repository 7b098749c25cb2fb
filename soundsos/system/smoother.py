"""Moving-average smoothing of raw model confidences."""
from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from typing import Deque

from soundsos.utils.constants import ALERT


@dataclass
class ConfidenceSmoother:
    """Mean of the last ``window_size`` confidences, kept with a running sum.

    Only the pipeline thread touches an instance, so there is no locking.
    """

    window_size: int = ALERT.smoothing_window
    _history: Deque[float] = field(init=False)
    _total: float = field(init=False, default=0.0)

    def __post_init__(self) -> None:
        if self.window_size < 1:
            raise ValueError("window_size must be at least 1")
        self._history = deque()

    def push(self, confidence: float) -> float:
        confidence = float(confidence)
        self._history.append(confidence)
        self._total += confidence
        if len(self._history) > self.window_size:
            self._total -= self._history.popleft()
        return self._total / len(self._history)

    @property
    def value(self) -> float:
        return self._total / len(self._history) if self._history else 0.0

    def __len__(self) -> int:
        return len(self._history)

    def reset(self) -> None:
        self._history.clear()
        self._total = 0.0
