import math

import numpy as np
import pytest

from conftest import consecutive_months, make_incidents
from ml_model import _ModelProxy
from sequence_model import (
    InsufficientHistoryError, ModelNotTrainedError, RecurrentNetwork, SequenceSnapshot,
    SeriesScaler, build_training_pairs, prediction_confidence, train_snapshot,
)

TWO_YEARS = [3, 4, 6, 5, 7, 8, 6, 5, 4, 6, 7, 9, 4, 5, 7, 6, 8, 9, 7, 6, 5, 7, 8, 10]


def test_scaler_handles_flat_and_nan():
    flat = SeriesScaler.fit([4, 4, 4])
    assert flat.span == 1.0
    assert flat.inverse(0.5) == pytest.approx(4.5)
    assert math.isnan(flat.inverse(float("nan")))
    scaled = SeriesScaler.fit([0, 10]).transform([5, float("nan"), 20])
    assert scaled.tolist() == pytest.approx([0.5, 0.5, 1.0])


def test_training_pairs_window():
    incidents = make_incidents(consecutive_months(2023, 1, list(range(1, 9))))
    pairs = build_training_pairs(incidents, window=6)
    assert len(pairs) == 2
    assert pairs[0] == ([1.0, 2.0, 3.0, 4.0, 5.0, 6.0], 7.0)


def test_training_skipped_with_few_samples():
    incidents = make_incidents(consecutive_months(2024, 1, [1, 2, 3, 4, 5, 6, 7, 8]))
    snap = train_snapshot(incidents)
    assert not snap.is_trained
    assert snap.report.trained is False
    assert "insufficient" in snap.report.reason


def test_untrained_rollout_raises():
    with pytest.raises(ModelNotTrainedError):
        SequenceSnapshot().rollout([1, 2, 3, 4, 5, 6], 3)


def test_network_training_is_deterministic():
    X = np.linspace(0, 1, 30).reshape(5, 6)
    y = np.linspace(0.2, 0.8, 5)
    a, b = RecurrentNetwork(seed=7), RecurrentNetwork(seed=7)
    assert a.fit(X, y, 50, 0.5, 0.0) == b.fit(X, y, 50, 0.5, 0.0)
    assert np.array_equal(a.activate(X), b.activate(X))


def test_trained_rollout():
    incidents = make_incidents(consecutive_months(2023, 1, TWO_YEARS))
    snap = train_snapshot(incidents, iterations=300)
    assert snap.is_trained
    assert snap.raw_samples == 18
    assert snap.report.trained

    with pytest.raises(InsufficientHistoryError):
        snap.rollout([1, 2, 3], 2)

    out = snap.rollout(TWO_YEARS, 4)
    assert len(out) == 4
    for value, confidence in out:
        assert math.isfinite(value)
        assert min(TWO_YEARS) <= value <= max(TWO_YEARS)
        assert 0.1 <= confidence <= 1.0


def test_prediction_confidence_bounds():
    assert prediction_confidence(5, 5, 1) == 1.0
    assert prediction_confidence(100, 5, 1) == 0.1
    assert prediction_confidence(3, 0, 0) == 0.5


def test_holder_swaps_snapshot_and_resets():
    holder = _ModelProxy(iterations=200)
    assert not holder.is_trained
    before = holder.snapshot

    report = holder.retrain(make_incidents(consecutive_months(2023, 1, TWO_YEARS)))
    assert report.trained
    assert holder.is_trained
    assert holder.snapshot is not before
    assert holder.info()["isTrained"] is True
    assert holder.info()["rawSamples"] == 18

    holder.reset()
    assert not holder.is_trained
    assert holder.info()["status"] == "not initialized"
