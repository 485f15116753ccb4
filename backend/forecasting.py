"""Bantay Backend: Forecast Orchestrator

Picks the learned path or the statistical path for one (area, crime type)
and post-processes learned output into the shared ForecastPoint shape:

  TRY_LEARNED → VALIDATE        model trained and rollout succeeded
  TRY_LEARNED → STATISTICAL     model untrained, short history, or any error

A pure function of the incident list, the model snapshot and `today`.
"""

import logging
import math
from datetime import datetime

from models import ForecastPoint
from sequence_model import SequenceSnapshot, InsufficientHistoryError, ModelNotTrainedError
from statistical import (
    statistical_forecast, forecast_cap, finalize_prediction, is_low_frequency,
    keeps_decimal, round_half_up,
)
from timeseries import (
    MonthlyCount, month_key, monthly_counts, shift_month_key, series_counts, series_stats,
    coefficient_of_variation,
)

logger = logging.getLogger("bantay.forecast")

_AMPLITUDE_RANGE = (0.06, 0.18)
_LOW_FREQUENCY_CONFIDENCE_FACTOR = 0.8


def smoothing_amplitude(counts: list[int]) -> float:
    """Coefficient of variation of the key's monthly counts, clamped to [0.06, 0.18]."""
    low, high = _AMPLITUDE_RANGE
    return max(low, min(high, coefficient_of_variation(counts)))


def smoothing_factor(step: int, amplitude: float) -> float:
    """Deterministic seasonal + trend multiplier for forecast step (0-based)."""
    seasonal = math.sin((step * math.pi) / 3) * amplitude
    trend = step * min(0.03, amplitude * 0.2)
    return 1 + seasonal + trend


def _validate_learned(
    raw: list[tuple[float, float]],
    series: list[MonthlyCount],
    today: datetime,
) -> list[ForecastPoint]:
    counts = series_counts(series)
    historical_mean, historical_max = series_stats(series)
    low = is_low_frequency(historical_mean)
    fallback_value = round_half_up(historical_mean, 1) if historical_mean > 0 else 0.0
    cap = forecast_cap(historical_mean, historical_max)
    amplitude = smoothing_amplitude(counts)
    decimal = keeps_decimal(historical_mean)
    start = month_key(today)

    forecast = []
    for step, (value, confidence) in enumerate(raw):
        if not math.isfinite(value):
            value = fallback_value
        if not math.isfinite(confidence):
            confidence = 0.5
        predicted = finalize_prediction(value * smoothing_factor(step, amplitude), historical_mean, cap)

        if decimal:
            lower = round_half_up(predicted * 0.8, 1)
            upper = round_half_up(predicted * 1.2, 1)
        else:
            lower = round_half_up(predicted * 0.8)
            upper = round_half_up(predicted * 1.2)
        if low:
            confidence *= _LOW_FREQUENCY_CONFIDENCE_FACTOR

        forecast.append(ForecastPoint(
            month=shift_month_key(start, step + 1),
            predicted=predicted,
            lower=max(0.0, min(lower, predicted)),
            upper=max(upper, predicted),
            confidence=min(1.0, max(0.0, confidence)),
            method="learned",
        ))
    return forecast


def generate_forecast(
    incidents: list,
    horizon: int,
    snapshot: SequenceSnapshot,
    today: datetime,
    series: list[MonthlyCount] | None = None,
) -> list[ForecastPoint]:
    """Forecast `horizon` months for one key from its incidents (sorted by date)."""
    if series is None:
        series = monthly_counts(incidents)

    if snapshot.is_trained:
        try:
            raw = snapshot.rollout(series_counts(series), horizon)
            if raw:
                return _validate_learned(raw, series, today)
        except (ModelNotTrainedError, InsufficientHistoryError) as e:
            logger.info(f"Learned forecast unavailable ({e}); using statistical fallback")
        except Exception as e:
            logger.warning(f"Learned forecast failed, using statistical method: {e}")

    return statistical_forecast(series, horizon, today)
