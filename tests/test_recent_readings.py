from __future__ import annotations

from datetime import datetime, timezone

import pytest

from models.records import CycleReport, SensorResult
from services.recent import RecentReadings


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


def _result(part_id: str, temperature: float) -> SensorResult:
    return SensorResult(
        part_id=part_id,
        captured_at=datetime(2024, 1, 1, tzinfo=timezone.utc),
        filtered_mean=temperature,
        temperature=temperature,
        sample_count=4,
    )


def test_average_over_window_and_machines() -> None:
    clock = FakeClock()
    recent = RecentReadings(max_age=3600.0, clock=clock)
    recent.record(_result("a", 20.0))
    clock.now += 100
    recent.record(_result("b", 22.0))
    recent.record(_result("c", 40.0))
    clock.now += 10

    assert recent.average_over(["a", "b"], window=3600.0) == (pytest.approx(21.0), 2)
    assert recent.average_over(["a", "b"], window=50.0) == (pytest.approx(22.0), 1)
    assert recent.average_over(["missing"], window=3600.0) == (0.0, 0)


def test_old_results_are_pruned() -> None:
    clock = FakeClock()
    recent = RecentReadings(max_age=60.0, clock=clock)
    recent.record(_result("a", 10.0))
    clock.now += 120
    recent.record(_result("a", 30.0))

    assert recent.average_over(["a"], window=10_000.0) == (pytest.approx(30.0), 1)


def test_failed_reports_are_ignored() -> None:
    recent = RecentReadings(clock=FakeClock())
    recent.record_report(CycleReport(part_id="a", iteration=0, error=RuntimeError("boom")))
    recent.record_report(CycleReport(part_id="a", iteration=1, result=_result("a", 18.0)))

    assert recent.average_over(["a"], window=60.0) == (pytest.approx(18.0), 1)
