"""Bantay Backend: Statistical Forecaster

Linear trend + bounded seasonal term over a sparse monthly series. Also
serves as the deterministic fallback whenever the sequence model cannot
be used.
"""

import logging
import math
from datetime import datetime

import numpy as np

from config import (
    LOW_FREQUENCY_THRESHOLD, FRACTIONAL_MEAN_THRESHOLD,
    CAP_MULTIPLIER, LOW_FREQUENCY_CAP_MULTIPLIER, LOW_FREQUENCY_CAP_CEILING,
    MARGIN_Z,
)
from models import ForecastPoint
from timeseries import MonthlyCount, month_key, shift_month_key, series_counts, series_stats

logger = logging.getLogger("bantay.statistical")

# Seasonal amplitude for the regression path (normal / low-frequency)
_REGRESSION_AMPLITUDE = (0.2, 0.05)
# Default-forecast amplitude and per-month trend (normal / low-frequency)
_DEFAULT_AMPLITUDE = (0.4, 0.1)
_DEFAULT_TREND = (0.1, 0.0)


def round_half_up(value: float, digits: int = 0) -> float:
    scale = 10 ** digits
    return math.floor(value * scale + 0.5) / scale


def is_low_frequency(historical_mean: float) -> bool:
    return historical_mean < LOW_FREQUENCY_THRESHOLD


def forecast_cap(historical_mean: float, historical_max: float) -> float:
    """Upper bound for any predicted value of a series."""
    if is_low_frequency(historical_mean):
        return min(
            max(historical_max * LOW_FREQUENCY_CAP_MULTIPLIER, historical_mean * LOW_FREQUENCY_CAP_MULTIPLIER),
            LOW_FREQUENCY_CAP_CEILING,
        )
    return max(historical_max * CAP_MULTIPLIER, historical_mean * CAP_MULTIPLIER)


def keeps_decimal(historical_mean: float) -> bool:
    return historical_mean < FRACTIONAL_MEAN_THRESHOLD


def finalize_prediction(value: float, historical_mean: float, cap: float) -> float:
    """Clamp at zero, apply the rounding policy, then the cap (rounded down to the same precision)."""
    if historical_mean <= 0:
        return 0.0
    value = max(0.0, value)
    if keeps_decimal(historical_mean):
        return min(round_half_up(value, 1), math.floor(cap * 10) / 10)
    return min(round_half_up(value), float(math.floor(cap)))


def seasonal_term(month_of_year: int, amplitude: float) -> float:
    """month_of_year is 0-based (January = 0)."""
    return math.sin((month_of_year / 12) * 2 * math.pi) * amplitude


def _month_of_year(key: str) -> int:
    return int(key.split("-")[1]) - 1


def default_forecast(
    horizon: int,
    historical_mean: float,
    historical_max: float,
    today: datetime,
) -> list[ForecastPoint]:
    """Forecast for series too short to regress: a seasonal wave around the historical mean."""
    low = is_low_frequency(historical_mean)
    base = round_half_up(historical_mean, 1) if historical_mean > 0 else 0.0
    amplitude = _DEFAULT_AMPLITUDE[1] if low else _DEFAULT_AMPLITUDE[0]
    trend = _DEFAULT_TREND[1] if low else _DEFAULT_TREND[0]
    cap = forecast_cap(historical_mean, historical_max)
    confidence = 0.5 if low else 0.6
    start = month_key(today)

    forecast = []
    for i in range(1, horizon + 1):
        month = shift_month_key(start, i)
        variation = seasonal_term(_month_of_year(month), amplitude) + trend * i
        predicted = finalize_prediction(base * (1 + variation), historical_mean, cap)

        if base <= 0:
            lower = upper = 0.0
        elif keeps_decimal(historical_mean):
            margin = max(0.1, predicted * 0.3)
            lower = max(0.0, round_half_up(predicted - margin, 1))
            upper = round_half_up(predicted + margin, 1)
        else:
            margin = max(0.5, predicted * 0.3)
            lower = max(0.0, round_half_up(predicted - margin))
            upper = round_half_up(predicted + margin)

        forecast.append(ForecastPoint(
            month=month,
            predicted=predicted,
            lower=min(lower, predicted),
            upper=max(upper, predicted),
            confidence=confidence,
            method="statistical",
        ))
    return forecast


def _regression_margin(x: np.ndarray, y: np.ndarray, slope: float, intercept: float, historical_mean: float) -> float:
    """1.96 × residual standard error, or a mean-based margin when that is degenerate."""
    n = len(y)
    rse = float("nan")
    if n > 2:
        residuals = y - (slope * x + intercept)
        rse = math.sqrt(float(np.sum(residuals ** 2)) / (n - 2))
    if math.isnan(rse) or math.isinf(rse):
        return max(0.1, historical_mean * 0.3)
    return max(0.1, rse * MARGIN_Z)


def statistical_forecast(series: list[MonthlyCount], horizon: int, today: datetime) -> list[ForecastPoint]:
    """Trend + seasonal forecast for one key's monthly series.

    Regression months are labelled forward from the last observed month, so
    stale data yields months before `today`. The default forecast (fewer than
    two points) is labelled forward from `today`, as is the learned path.
    """
    historical_mean, historical_max = series_stats(series)

    points = [
        (float(i), float(c)) for i, c in enumerate(series_counts(series))
        if math.isfinite(c)
    ]
    if len(points) < 2:
        logger.info(f"Only {len(points)} monthly point(s); using default forecast")
        return default_forecast(horizon, historical_mean, historical_max, today)

    x = np.array([p[0] for p in points])
    y = np.array([p[1] for p in points])
    slope, intercept = (float(v) for v in np.polyfit(x, y, 1))
    margin = _regression_margin(x, y, slope, intercept, historical_mean)

    low = is_low_frequency(historical_mean)
    amplitude = _REGRESSION_AMPLITUDE[1] if low else _REGRESSION_AMPLITUDE[0]
    cap = forecast_cap(historical_mean, historical_max)
    confidence = 0.6 if low else 0.8
    last_index = len(series) - 1
    last_month = series[-1].month

    forecast = []
    for i in range(1, horizon + 1):
        month = shift_month_key(last_month, i)
        raw = slope * (last_index + i) + intercept
        raw *= 1 + seasonal_term(_month_of_year(month), amplitude)
        if not math.isfinite(raw):
            raw = round_half_up(historical_mean, 1)
        predicted = finalize_prediction(raw, historical_mean, cap)

        forecast.append(ForecastPoint(
            month=month,
            predicted=predicted,
            lower=max(0.0, min(predicted, round_half_up(predicted - margin, 1))),
            upper=max(predicted, round_half_up(predicted + margin, 1)),
            confidence=confidence,
            method="statistical",
        ))
    return forecast
