"""Bantay Backend: Risk Assessment

Four factors derived from a key's incident history and its barangay
population, combined into a probability and a Low/Medium/High label.
"""

import calendar
import logging
from datetime import datetime
from typing import Optional

import numpy as np

from config import (
    ASSUMED_AREA_KM2, DENSITY_CEILING, SEASONAL_MIN_INCIDENTS, RECENT_WINDOW_MONTHS,
    RISK_WEIGHTS, LEARNED_BOOST_THRESHOLD, LEARNED_BOOST_CONFIDENCE, LEARNED_BOOST_FACTOR,
)
from models import ForecastPoint, RiskAssessment, RiskFactors
from timeseries import MonthlyCount, add_months, monthly_counts, parse_incident_date

logger = logging.getLogger("bantay.risk")

_DAYS_PER_MONTH = 30
# Highest probability a key without any dated incident can reach (stays Low)
_NO_HISTORY_CEILING = 0.29


def historical_trend(series: list[MonthlyCount]) -> float:
    """Relative change from the first-half mean to the second-half mean."""
    if len(series) < 2:
        return 0.0
    mid = len(series) // 2
    first = float(np.mean([p.count for p in series[:mid]]))
    second = float(np.mean([p.count for p in series[mid:]]))
    if first <= 0:
        return 0.0
    return (second - first) / first


def seasonal_pattern(series: list[MonthlyCount], incident_count: int) -> float:
    """Coefficient of variation of per-calendar-month averages (needs 12+ incidents)."""
    if incident_count < SEASONAL_MIN_INCIDENTS or not series:
        return 0.0
    totals = np.zeros(12)
    seen = np.zeros(12)
    for point in series:
        idx = int(point.month.split("-")[1]) - 1
        totals[idx] += point.count
        seen[idx] += 1
    averages = totals[seen > 0] / seen[seen > 0]
    averages = averages[averages > 0]
    if averages.size < 2:
        return 0.0
    overall = float(averages.mean())
    if overall <= 0:
        return 0.0
    return float(averages.std(ddof=1)) / overall


def population_density(population: float) -> float:
    """Population per assumed barangay area, normalised against the density ceiling."""
    density = max(0.0, population) / ASSUMED_AREA_KM2
    return min(1.0, density / DENSITY_CEILING)


def recent_activity(incidents: list, now: datetime) -> float:
    """Recent monthly rate (trailing 3 months) relative to the older monthly rate."""
    dates = [d for d in (parse_incident_date(getattr(i, "confinementDate", None)) for i in incidents) if d]
    if not dates:
        return 0.0

    y, m = add_months(now.year, now.month, -RECENT_WINDOW_MONTHS)
    # 31 May → 28/29 Feb
    cutoff = now.replace(year=y, month=m, day=min(now.day, calendar.monthrange(y, m)[1]))

    recent = [d for d in dates if d >= cutoff]
    older = sorted(d for d in dates if d < cutoff)
    if not older:
        return len(recent) / 10

    recent_rate = len(recent) / RECENT_WINDOW_MONTHS
    elapsed_months = max(1.0, (now - older[0]).total_seconds() / 86400 / _DAYS_PER_MONTH)
    historical_rate = len(older) / elapsed_months
    return recent_rate / max(1.0, historical_rate)


def risk_probability(factors: RiskFactors) -> float:
    weighted = sum(getattr(factors, name) * w for name, w in RISK_WEIGHTS.items())
    variation = (factors.populationDensity - 0.5) * 0.3 + (factors.recentActivity - 0.5) * 0.2
    probability = 0.5 + weighted * 0.3 + variation
    if not np.isfinite(probability):
        probability = 0.5
    return max(0.1, min(0.9, probability))


def risk_level(probability: float) -> str:
    if probability < 0.3:
        return "Low"
    if probability < 0.7:
        return "Medium"
    return "High"


def boost_from_learned(probability: float, next_month: Optional[ForecastPoint]) -> float:
    """Raise (never lower) the probability when the learned model expects a confident spike."""
    if next_month is None or next_month.method != "learned":
        return probability
    if next_month.predicted > LEARNED_BOOST_THRESHOLD and next_month.confidence > LEARNED_BOOST_CONFIDENCE:
        return min(1.0, probability * LEARNED_BOOST_FACTOR)
    return probability


def assess_risk(
    incidents: list,
    population: float,
    now: datetime,
    next_month: Optional[ForecastPoint] = None,
) -> RiskAssessment:
    series = monthly_counts(incidents)
    factors = RiskFactors(
        historicalTrend=historical_trend(series),
        seasonalPattern=seasonal_pattern(series, len(incidents)),
        populationDensity=population_density(population),
        recentActivity=recent_activity(incidents, now),
    )
    probability = boost_from_learned(risk_probability(factors), next_month)
    if not series:
        probability = min(probability, _NO_HISTORY_CEILING)
    logger.debug(f"Risk factors {factors.model_dump()} -> p={probability:.3f}")
    return RiskAssessment(riskLevel=risk_level(probability), probability=probability, factors=factors)
