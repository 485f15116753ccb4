from datetime import datetime

import pytest

from statistical import (
    default_forecast, finalize_prediction, forecast_cap, round_half_up, statistical_forecast,
)
from timeseries import MonthlyCount, series_stats

TODAY = datetime(2025, 1, 15)


def _series(counts, start=(2024, 1)):
    y, m = start
    out = []
    for c in counts:
        out.append(MonthlyCount(f"{y:04d}-{m:02d}", c))
        m += 1
        if m > 12:
            y, m = y + 1, 1
    return out


def test_round_half_up():
    assert round_half_up(2.5) == 3
    assert round_half_up(0.25, 1) == 0.3
    assert round_half_up(4.49) == 4


def test_trend_forecast_six_months():
    series = _series([2, 3, 2, 4, 3, 5])
    forecast = statistical_forecast(series, 3, TODAY)

    assert [p.month for p in forecast] == ["2024-07", "2024-08", "2024-09"]
    assert [p.predicted for p in forecast] == [5, 5, 5]
    for p in forecast:
        assert p.method == "statistical"
        assert p.predicted <= 7
        assert p.lower <= p.predicted <= p.upper
        assert p.confidence == 0.8


def test_no_history_forecasts_zero():
    forecast = statistical_forecast([], 6, TODAY)
    assert len(forecast) == 6
    assert [p.month for p in forecast][:2] == ["2025-02", "2025-03"]
    for p in forecast:
        assert (p.predicted, p.lower, p.upper) == (0, 0, 0)
        assert p.method == "statistical"


def test_single_month_uses_default_wave():
    forecast = statistical_forecast(_series([4]), 6, TODAY)
    assert len(forecast) == 6
    assert all(p.confidence == 0.6 for p in forecast)
    assert all(0 < p.predicted <= 6 for p in forecast)


@pytest.mark.parametrize("counts", [
    [1, 2, 4, 8, 16],
    [1, 1, 1, 1],
    [0, 1, 0, 3],
    [30, 2, 1, 1, 1, 1],
    [1, 1, 1, 9],
])
def test_predictions_never_exceed_cap(counts):
    series = _series(counts)
    mean, peak = series_stats(series)
    cap = forecast_cap(mean, peak)
    for p in statistical_forecast(series, 12, TODAY):
        assert p.predicted <= cap
        if mean < 2:
            assert p.predicted <= max(peak, mean) * 2


def test_low_frequency_confidence_not_higher():
    low = statistical_forecast(_series([1, 1, 1, 1]), 3, TODAY)
    high = statistical_forecast(_series([5, 5, 5, 5]), 3, TODAY)
    assert all(a.confidence <= b.confidence for a, b in zip(low, high))

    low_default = default_forecast(3, 1.0, 1.0, TODAY)
    high_default = default_forecast(3, 5.0, 5.0, TODAY)
    assert all(a.confidence <= b.confidence for a, b in zip(low_default, high_default))


def test_fractional_mean_keeps_decimal():
    assert finalize_prediction(0.34, 0.4, 3.0) == 0.3
    assert finalize_prediction(7.6, 5.0, 7.5) == 7
    assert finalize_prediction(3.0, 0.0, 0.0) == 0
