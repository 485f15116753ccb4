from datetime import datetime

import pytest

from conftest import consecutive_months, make_incidents
from forecasting import _validate_learned, generate_forecast, smoothing_amplitude, smoothing_factor
from sequence_model import SequenceSnapshot, train_snapshot
from statistical import forecast_cap
from timeseries import monthly_counts, series_stats

TODAY = datetime(2025, 1, 15)
TWO_YEARS = [3, 4, 6, 5, 7, 8, 6, 5, 4, 6, 7, 9, 4, 5, 7, 6, 8, 9, 7, 6, 5, 7, 8, 10]


def test_untrained_model_falls_back_to_statistical():
    incidents = make_incidents(consecutive_months(2024, 1, [2, 3, 2, 4, 3, 5]))
    forecast = generate_forecast(incidents, 6, SequenceSnapshot(), TODAY)
    assert len(forecast) == 6
    assert all(p.method == "statistical" for p in forecast)


def test_no_incidents_untrained():
    forecast = generate_forecast([], 6, SequenceSnapshot(), TODAY)
    assert [p.predicted for p in forecast] == [0] * 6
    assert all(p.method == "statistical" for p in forecast)


def test_short_history_falls_back_even_when_trained():
    snapshot = train_snapshot(make_incidents(consecutive_months(2023, 1, TWO_YEARS)), iterations=200)
    assert snapshot.is_trained
    short = make_incidents(consecutive_months(2024, 9, [2, 3, 1]), barangay="OTHER")
    forecast = generate_forecast(short, 3, snapshot, TODAY)
    assert all(p.method == "statistical" for p in forecast)


def test_learned_forecast_is_capped_and_labelled_from_today():
    incidents = make_incidents(consecutive_months(2023, 1, TWO_YEARS))
    snapshot = train_snapshot(incidents, iterations=300)
    forecast = generate_forecast(incidents, 6, snapshot, TODAY)

    mean, peak = series_stats(monthly_counts(incidents))
    assert [p.month for p in forecast] == ["2025-02", "2025-03", "2025-04", "2025-05", "2025-06", "2025-07"]
    for p in forecast:
        assert p.method == "learned"
        assert p.predicted <= forecast_cap(mean, peak)
        assert p.lower <= p.predicted <= p.upper
        assert 0 <= p.confidence <= 1


def test_learned_forecast_is_reproducible():
    incidents = make_incidents(consecutive_months(2023, 1, TWO_YEARS))
    first = generate_forecast(incidents, 6, train_snapshot(incidents, iterations=200), TODAY)
    second = generate_forecast(incidents, 6, train_snapshot(incidents, iterations=200), TODAY)
    assert [p.model_dump() for p in first] == [p.model_dump() for p in second]


def test_smoothing_helpers():
    assert smoothing_amplitude([5, 5, 5]) == 0.06
    assert smoothing_amplitude([1, 20, 1, 20]) == 0.18
    assert smoothing_factor(0, 0.1) == 1.0


def test_learned_confidence_drops_for_low_frequency_keys():
    sparse = monthly_counts(make_incidents(consecutive_months(2024, 1, [1, 1, 2, 1, 1, 2])))
    busy = monthly_counts(make_incidents(consecutive_months(2024, 1, [5, 5, 6, 5, 5, 6])))
    raw = [(1.0, 0.9), (1.2, 0.9)]

    low = _validate_learned(raw, sparse, TODAY)
    high = _validate_learned(raw, busy, TODAY)
    assert [p.confidence for p in low] == [pytest.approx(0.72)] * 2
    assert [p.confidence for p in high] == [pytest.approx(0.9)] * 2
    assert all(p.method == "learned" for p in low + high)


def test_trained_low_frequency_key_is_capped_at_reduced_confidence():
    snapshot = train_snapshot(make_incidents(consecutive_months(2023, 1, TWO_YEARS)), iterations=200)
    sparse = make_incidents(consecutive_months(2024, 5, [1, 1, 2, 1, 1, 2, 1, 2]), barangay="OTHER")
    forecast = generate_forecast(sparse, 6, snapshot, TODAY)
    assert all(p.method == "learned" for p in forecast)
    assert all(p.confidence <= 0.8 for p in forecast)


def test_non_finite_learned_value_falls_back_to_history_mean():
    series = monthly_counts(make_incidents(consecutive_months(2024, 1, [2, 3, 2, 4, 3, 5])))
    forecast = _validate_learned([(float("nan"), 0.7)], series, TODAY)
    assert forecast[0].predicted == 3
    assert forecast[0].confidence == pytest.approx(0.7)
