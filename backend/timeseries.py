"""Bantay Backend: Monthly Time-Series Aggregation

Buckets incident timestamps into calendar months. Both the statistical
forecaster and the sequence model read their history through here, so
the bucketing rule (truncate to the first of the month) is defined once.
Missing months are left out, never filled with zeros.
"""

import logging
from collections import defaultdict
from datetime import date, datetime
from typing import Iterable, NamedTuple, Optional

import numpy as np

logger = logging.getLogger("bantay.timeseries")

_DATE_FORMATS = ("%m/%d/%Y", "%m/%d/%Y %H:%M", "%d-%m-%Y", "%Y/%m/%d", "%B %d, %Y", "%b %d, %Y")


class MonthlyCount(NamedTuple):
    month: str  # YYYY-MM
    count: int


def parse_incident_date(value) -> Optional[datetime]:
    """Resolve a raw confinement date into a naive datetime, or None if unusable."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.replace(tzinfo=None)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    text = str(value).strip()
    if not text:
        return None
    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00")).replace(tzinfo=None)
    except (ValueError, TypeError):
        pass
    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt)
        except ValueError:
            continue
    return None


def month_key(dt: datetime) -> str:
    return f"{dt.year:04d}-{dt.month:02d}"


def add_months(year: int, month: int, n: int) -> tuple[int, int]:
    """Shift a (year, month) pair by n months."""
    idx = year * 12 + (month - 1) + n
    return idx // 12, idx % 12 + 1


def shift_month_key(key: str, n: int) -> str:
    year, month = (int(p) for p in key.split("-"))
    y, m = add_months(year, month, n)
    return f"{y:04d}-{m:02d}"


def monthly_counts(incidents: Iterable) -> list[MonthlyCount]:
    """Group incidents into ascending (month, count) pairs; unparseable dates are skipped."""
    buckets: dict[str, int] = defaultdict(int)
    skipped = 0
    for inc in incidents:
        dt = parse_incident_date(getattr(inc, "confinementDate", None))
        if dt is None:
            skipped += 1
            continue
        buckets[month_key(dt)] += 1
    if skipped:
        logger.warning(f"Skipped {skipped} incident(s) with invalid confinement dates")
    return [MonthlyCount(m, c) for m, c in sorted(buckets.items())]


def series_counts(series: list[MonthlyCount]) -> list[int]:
    return [point.count for point in series]


def series_stats(series: list[MonthlyCount]) -> tuple[float, float]:
    """Return (mean, max) of the monthly counts; (0, 0) for an empty series."""
    if not series:
        return 0.0, 0.0
    counts = np.array(series_counts(series), dtype=np.float64)
    return float(counts.mean()), float(counts.max())


def coefficient_of_variation(counts: list[int]) -> float:
    """Sample std / mean, with the mean floored at 1. Zero for empty or single-value input."""
    if len(counts) < 2:
        return 0.0
    arr = np.asarray(counts, dtype=np.float64)
    mean = float(arr.mean())
    if mean <= 0:
        return 0.0
    return float(arr.std(ddof=1)) / max(1.0, mean)
