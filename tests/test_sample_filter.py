"""Unit tests for the outlier-rejecting sample filter."""

from __future__ import annotations

import random

import pytest

from services.errors import NoSamples
from services.sample_filter import SampleFilter


def test_empty_batch_raises_no_samples() -> None:
    with pytest.raises(NoSamples):
        SampleFilter().filter([])


@pytest.mark.parametrize(
    "readings",
    [
        [21.5],
        [20.0, 30.0],
        [10.0, -5.0, 40.0],
        [1.0, 2.0, 3.0, 4.0, 100.0],
    ],
)
def test_small_batches_are_not_trimmed(readings: list[float]) -> None:
    summary = SampleFilter().filter(readings)

    assert summary.retained == readings
    assert summary.trimmed == 0
    assert summary.mean == pytest.approx(sum(readings) / len(readings))


def test_six_readings_keep_the_middle_two() -> None:
    summary = SampleFilter().filter([50.0, 20.0, 22.0, -10.0, 21.0, 23.0])

    assert summary.retained == [21.0, 22.0]
    assert summary.mean == pytest.approx(21.5)


def test_outliers_are_discarded_from_a_ten_sample_batch() -> None:
    readings = [22.0, 21.8, 85.0, 22.1, 21.9, -40.0, 22.0, 22.2, 21.7, 22.3]

    summary = SampleFilter().filter(readings)

    assert len(summary.retained) == 10 - 2 * 3
    assert 85.0 not in summary.retained
    assert -40.0 not in summary.retained
    assert summary.mean == pytest.approx((21.9 + 22.0 + 22.0 + 22.1) / 4)


def test_retained_values_are_the_sorted_middle_slice() -> None:
    rng = random.Random(1234)
    for size in range(6, 40):
        readings = [rng.uniform(-20.0, 60.0) for _ in range(size)]
        cut = size // 3

        summary = SampleFilter().filter(readings)

        assert summary.retained == sorted(readings)[cut : size - cut]
        assert len(summary.retained) == size - 2 * cut
        assert summary.retained


def test_input_order_is_preserved() -> None:
    readings = [30.0, 10.0, 20.0, 50.0, 40.0, 0.0]
    snapshot = list(readings)

    summary = SampleFilter().filter(readings)

    assert readings == snapshot
    assert summary.raw == snapshot


def test_result_does_not_depend_on_input_order() -> None:
    readings = [23.0, 19.0, 21.0, 40.0, 20.0, 22.0, 5.0]

    assert SampleFilter().filter(readings).mean == SampleFilter().filter(list(reversed(readings))).mean
