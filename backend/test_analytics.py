from analytics import (
    barangay_counts, barangay_stats, crime_type_distribution, low_rate_barangays,
    summary_stats, top_by_count, top_by_rate,
)
from models import Barangay, Incident


def _inc(barangay, crime_type="THEFT", date="2024-03-01"):
    return Incident(type=crime_type, barangay=barangay, municipality="LUBAO", province="PAMPANGA",
                    confinementDate=date)


INCIDENTS = (
    [_inc("SAN ISIDRO", date="2023-02-01") for _ in range(4)]
    + [_inc("STA. CRUZ", crime_type="ROBBERY", date="2024-11-30") for _ in range(2)]
    + [_inc("NO POP")]
)
BARANGAYS = [
    Barangay(name="san isidro", municipality="Lubao", province="Pampanga", population=2000),
    Barangay(name="Sta. Cruz", municipality="Lubao", province="Pampanga", population=4000),
    Barangay(name="No Pop", municipality="Lubao", province="Pampanga", population=0),
    Barangay(name="Empty", municipality="Lubao", province="Pampanga"),
]


def test_missing_population_gives_none_rate():
    rows = {r["barangay"]: r for r in barangay_stats(INCIDENTS, BARANGAYS)}
    assert rows["SAN ISIDRO"]["crimeRate"] == 2.0
    assert rows["STA. CRUZ"]["crimeRate"] == 0.5
    assert rows["NO POP"]["crimeRate"] is None


def test_summary_stats():
    stats = summary_stats(INCIDENTS, BARANGAYS)
    assert stats["totalCrimes"] == 7
    assert stats["averageCrimesPerBarangay"] == 2.33
    assert stats["highestCrimeCount"] == {"barangay": "SAN ISIDRO", "count": 4}
    assert stats["lowestCrimeCount"] == {"barangay": "NO POP", "count": 1}
    assert stats["highestCrimeRate"] == {"barangay": "SAN ISIDRO", "rate": 2.0}
    assert stats["lowestCrimeRate"] == {"barangay": "STA. CRUZ", "rate": 0.5}
    assert stats["dateRange"] == {"earliest": "2023-02-01", "latest": "2024-11-30", "duration": "2023 - 2024"}


def test_summary_stats_empty():
    stats = summary_stats([], [])
    assert stats["totalCrimes"] == 0
    assert stats["highestCrimeRate"] == {"barangay": "", "rate": 0}
    assert stats["dateRange"]["duration"] is None


def test_rankings_exclude_unknown_rates():
    assert [r["barangay"] for r in top_by_count(INCIDENTS, BARANGAYS, 2)] == ["SAN ISIDRO", "STA. CRUZ"]
    assert [r["barangay"] for r in top_by_rate(INCIDENTS, BARANGAYS)] == ["SAN ISIDRO", "STA. CRUZ"]
    assert low_rate_barangays(INCIDENTS, BARANGAYS, threshold=1.0) == [{"barangay": "STA. CRUZ", "crimeRate": 0.5}]


def test_crime_type_distribution_with_filter():
    assert crime_type_distribution(INCIDENTS) == [{"type": "THEFT", "count": 5}, {"type": "ROBBERY", "count": 2}]
    assert crime_type_distribution(INCIDENTS, barangay="sta. cruz") == [{"type": "ROBBERY", "count": 2}]


def test_barangay_counts():
    assert barangay_counts(INCIDENTS, BARANGAYS) == {"totalBarangays": 4, "withPopulation": 2, "withCrimes": 3}
