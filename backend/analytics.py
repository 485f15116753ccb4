"""Bantay Backend: Descriptive Analytics

Group-by / population-join / rate computations over the materialised
incident list. A barangay without a positive population has a rate of
None (not 0) and is left out of every rate ranking.
"""

from collections import Counter
from typing import Optional

from models import Barangay, Incident
from statistical import round_half_up
from store import norm
from timeseries import parse_incident_date


def _population_index(barangays: list[Barangay]) -> dict[tuple, Optional[int]]:
    return {
        (norm(b.name), norm(b.municipality), norm(b.province), norm(b.country)): b.population
        for b in barangays
    }


def crime_rate(count: int, population: Optional[int]) -> Optional[float]:
    """Incidents per 1000 residents; None when population is unknown or non-positive."""
    if population is None or population <= 0:
        return None
    return (count / population) * 1000


def barangay_stats(incidents: list[Incident], barangays: list[Barangay]) -> list[dict]:
    """One row per (barangay, municipality, province, country) with count, population and rate."""
    counts = Counter(
        (norm(i.barangay), norm(i.municipality), norm(i.province), norm(i.country))
        for i in incidents
    )
    populations = _population_index(barangays)
    rows = []
    for key, count in counts.items():
        population = populations.get(key)
        rows.append({
            "barangay": key[0],
            "municipality": key[1],
            "province": key[2],
            "country": key[3],
            "crimeCount": count,
            "population": population,
            "crimeRate": crime_rate(count, population),
        })
    return rows


def _duration_label(earliest, latest) -> str:
    if earliest.year == latest.year:
        return f"{earliest.year}"
    return f"{earliest.year} - {latest.year}"


def summary_stats(incidents: list[Incident], barangays: list[Barangay]) -> dict:
    rows = barangay_stats(incidents, barangays)
    counts = [r["crimeCount"] for r in rows]
    average = sum(counts) / len(counts) if counts else 0.0

    highest = max(rows, key=lambda r: r["crimeCount"], default=None)
    lowest = min(rows, key=lambda r: r["crimeCount"], default=None)
    rated = [r for r in rows if r["crimeRate"] is not None]
    highest_rate = max(rated, key=lambda r: r["crimeRate"], default=None)
    lowest_rate = min(rated, key=lambda r: r["crimeRate"], default=None)

    dates = [d for d in (parse_incident_date(i.confinementDate) for i in incidents) if d]
    earliest = min(dates) if dates else None
    latest = max(dates) if dates else None

    return {
        "totalCrimes": len(incidents),
        "averageCrimesPerBarangay": round_half_up(average, 2),
        "highestCrimeCount": {"barangay": highest["barangay"], "count": highest["crimeCount"]}
                             if highest else {"barangay": "", "count": 0},
        "lowestCrimeCount": {"barangay": lowest["barangay"], "count": lowest["crimeCount"]}
                            if lowest else {"barangay": "", "count": 0},
        "highestCrimeRate": {"barangay": highest_rate["barangay"],
                             "rate": round_half_up(highest_rate["crimeRate"], 2)}
                            if highest_rate else {"barangay": "", "rate": 0},
        "lowestCrimeRate": {"barangay": lowest_rate["barangay"],
                            "rate": round_half_up(lowest_rate["crimeRate"], 2)}
                           if lowest_rate else {"barangay": "", "rate": 0},
        "dateRange": {
            "earliest": earliest.date().isoformat() if earliest else None,
            "latest": latest.date().isoformat() if latest else None,
            "duration": _duration_label(earliest, latest) if earliest and latest else None,
        },
    }


def top_by_count(incidents: list[Incident], barangays: list[Barangay], limit: int = 5) -> list[dict]:
    rows = sorted(barangay_stats(incidents, barangays), key=lambda r: -r["crimeCount"])
    return [
        {"barangay": r["barangay"], "crimeCount": r["crimeCount"], "population": r["population"]}
        for r in rows[:limit]
    ]


def top_by_rate(incidents: list[Incident], barangays: list[Barangay], limit: int = 5) -> list[dict]:
    rated = [r for r in barangay_stats(incidents, barangays) if r["crimeRate"] is not None]
    rated.sort(key=lambda r: -r["crimeRate"])
    return [{"barangay": r["barangay"], "crimeRate": round_half_up(r["crimeRate"], 2)} for r in rated[:limit]]


def crime_type_distribution(
    incidents: list[Incident],
    barangay: Optional[str] = None,
    municipality: Optional[str] = None,
    province: Optional[str] = None,
) -> list[dict]:
    def keep(i: Incident) -> bool:
        return (
            (not barangay or norm(i.barangay) == norm(barangay))
            and (not municipality or norm(i.municipality) == norm(municipality))
            and (not province or norm(i.province) == norm(province))
        )

    counts = Counter(norm(i.type) for i in incidents if keep(i))
    return [{"type": t, "count": n} for t, n in sorted(counts.items(), key=lambda kv: (-kv[1], kv[0]))]


def barangay_counts(incidents: list[Incident], barangays: list[Barangay]) -> dict:
    with_crimes = {
        (norm(i.barangay), norm(i.municipality), norm(i.province), norm(i.country)) for i in incidents
    }
    return {
        "totalBarangays": len(barangays),
        "withPopulation": sum(1 for b in barangays if b.population and b.population > 0),
        "withCrimes": len(with_crimes),
    }


def low_rate_barangays(incidents: list[Incident], barangays: list[Barangay], threshold: float = 1.0) -> list[dict]:
    """Barangays with a known population whose rate is at or below `threshold`, lowest first."""
    rows = [
        r for r in barangay_stats(incidents, barangays)
        if r["crimeRate"] is not None and r["crimeRate"] <= threshold
    ]
    rows.sort(key=lambda r: r["crimeRate"])
    return [{"barangay": r["barangay"], "crimeRate": round_half_up(r["crimeRate"], 2)} for r in rows]
