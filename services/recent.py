"""In-process window of recent sensor results."""

from __future__ import annotations

import time
from collections import deque
from threading import Lock
from typing import Callable, Deque, Dict, Sequence, Tuple

from models.records import CycleReport, SensorResult


class RecentReadings:
    """Average source fed directly by poll cycle results.

    Stands in for the telemetry query when zones are controlled by the same
    process that polls their sensors.
    """

    def __init__(self, max_age: float = 3600.0, clock: Callable[[], float] = time.monotonic) -> None:
        self.max_age = max_age
        self._clock = clock
        self._readings: Dict[str, Deque[Tuple[float, float]]] = {}
        self._lock = Lock()

    def record(self, result: SensorResult) -> None:
        now = self._clock()
        with self._lock:
            history = self._readings.setdefault(result.part_id, deque())
            history.append((now, result.temperature))
            self._prune(history, now)

    def record_report(self, report: CycleReport) -> None:
        if report.result is not None:
            self.record(report.result)

    def average_over(self, machine_ids: Sequence[str], window: float) -> Tuple[float, int]:
        now = self._clock()
        cutoff = now - window
        total = 0.0
        count = 0
        with self._lock:
            for part_id in machine_ids:
                for captured, temperature in self._readings.get(part_id, ()):
                    if captured > cutoff:
                        total += temperature
                        count += 1
        if not count:
            return 0.0, 0
        return total / count, count

    def _prune(self, history: Deque[Tuple[float, float]], now: float) -> None:
        while history and now - history[0][0] > self.max_age:
            history.popleft()
