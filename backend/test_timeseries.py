from datetime import date, datetime

from models import Incident
from timeseries import (
    MonthlyCount, add_months, coefficient_of_variation, month_key, monthly_counts,
    parse_incident_date, series_stats, shift_month_key,
)


def _inc(when):
    return Incident(type="THEFT", barangay="A", municipality="B", province="C", confinementDate=when)


def test_parse_incident_date_formats():
    assert parse_incident_date("2024-03-05T10:00:00Z") == datetime(2024, 3, 5, 10, 0)
    assert parse_incident_date("2024-03-05") == datetime(2024, 3, 5)
    assert parse_incident_date("03/05/2024") == datetime(2024, 3, 5)
    assert parse_incident_date(date(2024, 3, 5)) == datetime(2024, 3, 5)
    assert parse_incident_date("not a date") is None
    assert parse_incident_date("") is None
    assert parse_incident_date(None) is None


def test_monthly_counts_sparse_and_sorted():
    incidents = [_inc("2024-05-02"), _inc("2024-01-10"), _inc("2024-01-20"), _inc("2024-05-31")]
    assert monthly_counts(incidents) == [MonthlyCount("2024-01", 2), MonthlyCount("2024-05", 2)]


def test_monthly_counts_skips_bad_dates():
    incidents = [_inc("2024-01-10"), _inc("garbage"), _inc(None)]
    assert monthly_counts(incidents) == [MonthlyCount("2024-01", 1)]


def test_month_arithmetic_crosses_year():
    assert add_months(2024, 11, 3) == (2025, 2)
    assert add_months(2025, 1, -3) == (2024, 10)
    assert shift_month_key("2024-12", 1) == "2025-01"
    assert month_key(datetime(2025, 1, 15)) == "2025-01"


def test_series_stats_and_cv():
    series = [MonthlyCount("2024-01", 2), MonthlyCount("2024-02", 4)]
    assert series_stats(series) == (3.0, 4.0)
    assert series_stats([]) == (0.0, 0.0)
    assert coefficient_of_variation([5]) == 0.0
    assert coefficient_of_variation([3, 3, 3]) == 0.0
    assert coefficient_of_variation([2, 4]) > 0
