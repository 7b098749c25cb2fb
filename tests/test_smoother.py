import numpy as np
import pytest

from soundsos.system.smoother import ConfidenceSmoother


def test_mean_of_all_values_before_window_fills():
    smoother = ConfidenceSmoother(window_size=7)
    assert smoother.push(0.2) == pytest.approx(0.2)
    assert smoother.push(0.4) == pytest.approx(0.3)
    assert smoother.push(0.9) == pytest.approx(0.5)
    assert len(smoother) == 3


def test_oldest_value_evicted():
    values = [0.1, 0.9, 0.8, 0.7, 0.95, 0.6, 0.85, 0.99]
    smoother = ConfidenceSmoother(window_size=7)
    results = [smoother.push(v) for v in values]
    assert results[-1] == pytest.approx(np.mean(values[1:]))
    assert len(smoother) == 7


def test_window_of_one_tracks_latest():
    smoother = ConfidenceSmoother(window_size=1)
    smoother.push(0.1)
    assert smoother.push(0.95) == pytest.approx(0.95)


def test_running_sum_stays_accurate():
    rng = np.random.default_rng(7)
    values = rng.random(5000)
    smoother = ConfidenceSmoother(window_size=7)
    for v in values:
        smoothed = smoother.push(v)
    assert smoothed == pytest.approx(np.mean(values[-7:]), abs=1e-9)
    assert smoother.value == pytest.approx(smoothed)


def test_reset_and_validation():
    smoother = ConfidenceSmoother(window_size=3)
    smoother.push(0.5)
    smoother.reset()
    assert len(smoother) == 0
    assert smoother.value == 0.0
    with pytest.raises(ValueError):
        ConfidenceSmoother(window_size=0)
