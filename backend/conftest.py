"""Shared pytest fixtures for the backend test modules."""

from datetime import datetime

import pytest

from cache import analytics_cache, summary_cache
from ml_model import _ModelProxy
from models import Incident
from store import DocumentStore

TODAY = datetime(2025, 1, 15, 9, 0)


def make_incidents(monthly: dict[str, int], barangay="SAN ISIDRO", crime_type="THEFT",
                   municipality="LUBAO", province="PAMPANGA") -> list[Incident]:
    """{"2024-03": 2, ...} → that many incidents dated within each month."""
    out = []
    for month, count in monthly.items():
        for i in range(count):
            out.append(Incident(
                type=crime_type,
                barangay=barangay,
                municipality=municipality,
                province=province,
                confinementDate=f"{month}-{(i % 27) + 1:02d}T{(8 + i) % 24:02d}:30:00Z",
            ))
    return out


def consecutive_months(start_year: int, start_month: int, counts: list[int]) -> dict[str, int]:
    out = {}
    y, m = start_year, start_month
    for c in counts:
        out[f"{y:04d}-{m:02d}"] = c
        m += 1
        if m > 12:
            y, m = y + 1, 1
    return out


@pytest.fixture
def store():
    return DocumentStore()


@pytest.fixture
def model():
    return _ModelProxy(iterations=300)


@pytest.fixture
def clock():
    return lambda: TODAY


@pytest.fixture(autouse=True)
def _clear_caches():
    analytics_cache.clear()
    summary_cache.clear()
    yield
    analytics_cache.clear()
    summary_cache.clear()
