import asyncio

from conftest import TODAY, consecutive_months, make_incidents
from models import AreaKey, Barangay, ForecastPoint, Prediction, RiskFactors
from service import PredictiveService

AREA = AreaKey("SAN ISIDRO", "LUBAO", "PAMPANGA")
TWO_YEARS = [3, 4, 6, 5, 7, 8, 6, 5, 4, 6, 7, 9, 4, 5, 7, 6, 8, 9, 7, 6, 5, 7, 8, 10]


def _service(store, model, clock):
    return PredictiveService(store, model, clock)


def _stable(predictions):
    return [p.model_dump(exclude={"id", "createdAt"}) for p in predictions]


def test_forecast_without_initialize_is_statistical(store, model, clock):
    svc = _service(store, model, clock)
    asyncio.run(store.add_incidents(make_incidents(consecutive_months(2024, 1, [2, 3, 2, 4, 3, 5]))))
    forecast = asyncio.run(svc.generate_forecast(AREA, "theft", 6))
    assert len(forecast) == 6
    assert all(p.method == "statistical" for p in forecast)


def test_unknown_key_gets_zero_forecast_and_low_risk(store, model, clock):
    svc = _service(store, model, clock)
    forecast = asyncio.run(svc.generate_forecast(AreaKey("NOWHERE", "X", "Y"), "ARSON", 6))
    assert [p.predicted for p in forecast] == [0] * 6
    risk = asyncio.run(svc.assess_risk(AreaKey("NOWHERE", "X", "Y"), "ARSON"))
    assert risk.riskLevel == "Low"


def test_single_qualifying_combination(store, model, clock):
    svc = _service(store, model, clock)
    incidents = make_incidents({"2024-03": 1, "2024-07": 1})
    incidents += make_incidents({"2024-05": 1}, barangay="STA. CRUZ")
    asyncio.run(store.add_incidents(incidents))

    report = asyncio.run(svc.generate_all_predictions())
    assert report.processed == 1
    assert report.succeeded == 1
    assert report.failed == 0
    assert len(store.predictions) == 1
    prediction = store.predictions[0]
    assert prediction.barangay == "SAN ISIDRO"
    assert len(prediction.forecast) == 6
    assert 0 <= prediction.confidence <= 1


def test_regeneration_replaces_wholesale(store, model, clock):
    svc = _service(store, model, clock)
    incidents = make_incidents(consecutive_months(2023, 1, TWO_YEARS))
    incidents += make_incidents(consecutive_months(2024, 6, [1, 2, 1]), crime_type="ROBBERY")
    asyncio.run(store.add_incidents(incidents))

    first = asyncio.run(svc.generate_all_predictions())
    snapshot_one = _stable(asyncio.run(store.list_predictions()))
    second = asyncio.run(svc.generate_all_predictions())
    snapshot_two = _stable(asyncio.run(store.list_predictions()))

    assert first.succeeded == second.succeeded == 2
    assert snapshot_one == snapshot_two
    assert model.is_trained
    assert first.learnedCount == 1


def test_failing_key_is_counted_and_pass_continues(store, model, clock, monkeypatch):
    svc = _service(store, model, clock)
    incidents = make_incidents({"2024-03": 2})
    incidents += make_incidents({"2024-04": 2}, barangay="BROKEN")
    asyncio.run(store.add_incidents(incidents))

    original = svc.assess_risk

    async def flaky(area, crime_type, next_month=None):
        if area.barangay == "BROKEN":
            raise ZeroDivisionError("boom")
        return await original(area, crime_type, next_month)

    monkeypatch.setattr(svc, "assess_risk", flaky)
    report = asyncio.run(svc.generate_all_predictions())
    assert report.processed == 2
    assert report.succeeded == 1
    assert report.failed == 1
    assert report.failedKeys == ["BROKEN/LUBAO/PAMPANGA:THEFT"]


def _prediction(risk_level, probability, crime_type="DRUGS"):
    forecast = [
        ForecastPoint(month=f"2025-0{i}", predicted=4, lower=3, upper=5, confidence=0.8, method="statistical")
        for i in range(2, 8)
    ]
    return Prediction(
        barangay=AREA.barangay, municipality=AREA.municipality, province=AREA.province,
        crimeType=crime_type, forecast=forecast, riskLevel=risk_level,
        probability=probability, confidence=0.8, factors=RiskFactors(),
    )


def test_recommendations_for_high_risk_drug_prediction(store, model, clock):
    svc = _service(store, model, clock)
    asyncio.run(store.upsert_barangays([Barangay(name="San Isidro", municipality="Lubao",
                                                 province="Pampanga", population=1000)]))
    asyncio.run(store.insert_prediction(_prediction("High", 0.8)))
    asyncio.run(store.insert_prediction(_prediction("Low", 0.2, crime_type="THEFT")))

    created = asyncio.run(svc.generate_recommendations())
    recs = asyncio.run(store.list_recommendations())
    assert created == len(recs) == 4
    assert {r.category for r in recs} == {"patrol", "community", "investigation", "prevention"}
    assert all(r.crimeType == "DRUGS" and r.status == "pending" for r in recs)
    patrol = next(r for r in recs if r.category == "patrol")
    assert patrol.priority == "High"
    assert patrol.confidence == 0.8

    # regenerating replaces rather than appends
    asyncio.run(svc.generate_recommendations())
    assert len(asyncio.run(store.list_recommendations())) == 4


def test_predictive_summary(store, model, clock):
    svc = _service(store, model, clock)
    asyncio.run(store.insert_prediction(_prediction("High", 0.8)))
    asyncio.run(store.insert_prediction(_prediction("Medium", 0.5)))
    summary = asyncio.run(svc.predictive_summary())
    assert summary["totalPredictions"] == 2
    assert summary["riskDistribution"] == {"high": 1, "medium": 1, "low": 0}
    assert summary["avgConfidence"] == 0.8
    assert summary["avgPredictedChange"] == 0
    assert summary["topRiskBarangays"][0]["riskProbability"] == 80
    assert summary["generatedAt"] == TODAY.isoformat()


def test_model_performance_reports_state(store, model, clock):
    svc = _service(store, model, clock)
    perf = svc.model_performance()
    assert perf["sequenceModel"]["isTrained"] is False
    assert perf["statistical"]["enabled"] is True


def test_known_population_without_incidents_is_low(store, model, clock):
    svc = _service(store, model, clock)
    asyncio.run(store.upsert_barangays([Barangay(name="Big", municipality="M", province="P", population=3000)]))
    risk = asyncio.run(svc.assess_risk(AreaKey("BIG", "M", "P"), "ARSON"))
    assert risk.riskLevel == "Low"
    assert risk.factors.populationDensity > 0
