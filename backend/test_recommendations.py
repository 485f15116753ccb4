from models import ForecastPoint, Incident, Prediction, RiskFactors
from recommendations import (
    AreaContext, build_recommendations, crime_patterns, forecast_trend, municipality_rate, priority_for,
)


def _prediction(risk_level="High", probability=0.8, crime_type="THEFT", predicted=(4, 4)):
    forecast = [
        ForecastPoint(month=f"2025-0{i + 2}", predicted=v, lower=0, upper=v + 1, confidence=0.7, method="statistical")
        for i, v in enumerate(predicted)
    ]
    return Prediction(
        barangay="SAN ISIDRO", municipality="LUBAO", province="PAMPANGA",
        crimeType=crime_type, forecast=forecast, riskLevel=risk_level,
        probability=probability, confidence=0.7, factors=RiskFactors(),
    )


def test_low_risk_has_no_recommendations():
    assert build_recommendations(_prediction("Low", 0.2), AreaContext()) == []


def test_priority_scoring():
    above = AreaContext(population=1000, total_incidents=50, municipality_rate=10)
    assert above.above_average
    assert priority_for(_prediction("High", 0.8), above, increasing=True) == "Critical"
    assert priority_for(_prediction("Medium", 0.5), AreaContext(), increasing=False) == "Low"
    assert priority_for(_prediction("Medium", 0.5), AreaContext(), increasing=True) == "Medium"
    assert priority_for(_prediction("High", 0.5), AreaContext(), increasing=False) == "Medium"


def test_rising_forecast_adds_urgent_intervention():
    recs = build_recommendations(_prediction(predicted=(4, 6)), AreaContext())
    assert forecast_trend(_prediction(predicted=(4, 6))) == 50
    urgent = [r for r in recs if r["title"].startswith("Urgent Intervention")]
    assert len(urgent) == 1
    assert urgent[0]["priority"] == "High"


def test_dense_area_gets_infrastructure_and_multi_session_community():
    ctx = AreaContext(population=8000, total_incidents=4, municipality_rate=1.0)
    recs = build_recommendations(_prediction("Medium", 0.5), ctx)
    categories = [r["category"] for r in recs]
    assert "infrastructure" in categories
    community = next(r for r in recs if r["category"] == "community")
    assert "multiple sessions" in community["description"]
    assert community["implementationCost"] == "Medium"
    assert all(0 <= r["confidence"] <= 1 for r in recs)


def test_crime_patterns_peak_hours_and_days():
    def inc(date, time=None):
        return Incident(type="THEFT", barangay="A", municipality="B", province="C",
                        confinementDate=date, confinementTime=time)

    incidents = [
        inc("2024-06-03", "22:15"), inc("2024-06-10", "22:40"), inc("2024-06-17", "21:00"),
        inc("2024-06-08T14:00:00"), inc("2024-06-15"),
    ]
    hours, days = crime_patterns(incidents)
    assert hours[0] == "22:00"
    assert len(hours) == 3
    assert days == ["Monday", "Saturday"]


def test_municipality_rate_ignores_missing_population():
    assert municipality_rate(10, [1000, 0, 1000]) == 5.0
    assert municipality_rate(10, []) == 0.0
