"""Bantay Backend: FastAPI Routes"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Optional

from fastapi import FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware

from analytics import (
    summary_stats, top_by_count, top_by_rate, crime_type_distribution,
    barangay_counts, low_rate_barangays,
)
from cache import analytics_cache
from config import (
    ADMIN_TIMEOUT_SECONDS, CORS_ORIGINS, DATASET_PATH, FORECAST_HORIZON,
    MAX_FORECAST_HORIZON, TRAIN_ON_STARTUP,
)
from importer import UnknownRecordKindError, import_rows
from ml_model import sequence_model
from models import (
    AreaKey, ForecastResponse, ImportRequest, RecommendationUpdate, RiskResponse,
)
from service import PredictiveService
from store import DocumentStore, paginate

logger = logging.getLogger("bantay")

_MISSING_PARAMS = "Missing required parameters: barangay, municipality, province, crimeType"


# ─────────────────────────── App Setup ──────────────────────────

app = FastAPI(title="Bantay Crime Analytics API", version="1.0.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

store = DocumentStore()
service = PredictiveService(store, sequence_model)


# ─────────────────────────── Startup Event ──────────────────────

@app.on_event("startup")
async def startup_event():
    """Seed the store from DATASET_PATH and optionally train the sequence model."""
    if DATASET_PATH:
        await store.load_json(DATASET_PATH)
    if TRAIN_ON_STARTUP:
        report = await service.initialize()
        logger.info(f"Startup training: trained={report.trained} {report.reason}")
    else:
        logger.info("Sequence model untrained until /api/predictive/initialize is called")


# ─────────────────────────── Helpers ────────────────────────────

def _require_area(barangay, municipality, province, crime_type) -> AreaKey:
    if not (barangay and municipality and province and crime_type):
        raise HTTPException(status_code=400, detail=_MISSING_PARAMS)
    return AreaKey(barangay, municipality, province)


async def _run_admin(coro, name: str):
    try:
        return await asyncio.wait_for(coro, timeout=ADMIN_TIMEOUT_SECONDS)
    except asyncio.TimeoutError:
        logger.error(f"{name} exceeded {ADMIN_TIMEOUT_SECONDS}s")
        raise HTTPException(status_code=504, detail=f"{name} timed out")


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


async def _cached_analytics(key: str, compute):
    cached = analytics_cache.get(key, store.version)
    if cached is not None:
        return cached
    incidents = await store.all_incidents()
    barangays = await store.list_barangays()
    value = compute(incidents, barangays)
    analytics_cache.set(key, value, store.version)
    return value


# ─────────────────────────── Predictive: queries ────────────────

@app.get("/api/predictive/incidents", response_model=ForecastResponse)
async def incident_forecast(
    barangay: str = "",
    municipality: str = "",
    province: str = "",
    crimeType: str = "",
    months: int = FORECAST_HORIZON,
):
    area = _require_area(barangay, municipality, province, crimeType)
    if not 1 <= months <= MAX_FORECAST_HORIZON:
        raise HTTPException(status_code=400, detail=f"months must be between 1 and {MAX_FORECAST_HORIZON}")

    forecast = await service.generate_forecast(area, crimeType, months)
    return ForecastResponse(
        barangay=barangay,
        municipality=municipality,
        province=province,
        crimeType=crimeType,
        forecast=forecast,
        generatedAt=_now_iso(),
    )


@app.get("/api/predictive/risk", response_model=RiskResponse)
async def risk_assessment(
    barangay: str = "",
    municipality: str = "",
    province: str = "",
    crimeType: str = "",
):
    area = _require_area(barangay, municipality, province, crimeType)
    risk = await service.assess_risk(area, crimeType)
    return RiskResponse(
        barangay=barangay,
        municipality=municipality,
        province=province,
        crimeType=crimeType,
        riskLevel=risk.riskLevel,
        probability=risk.probability,
        factors=risk.factors,
        assessedAt=_now_iso(),
    )


@app.get("/api/predictive/summary")
async def predictive_summary():
    return await service.predictive_summary()


@app.get("/api/predictive/predictions")
async def list_predictions(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    barangay: Optional[str] = None,
    municipality: Optional[str] = None,
    province: Optional[str] = None,
    crimeType: Optional[str] = None,
    riskLevel: Optional[str] = None,
):
    rows = await store.list_predictions(barangay, municipality, province, crimeType, riskLevel)
    items, pagination = paginate(rows, page, limit)
    return {"predictions": items, "pagination": pagination}


@app.get("/api/predictive/predictions/{prediction_id}")
async def get_prediction(prediction_id: str):
    prediction = await store.get_prediction(prediction_id)
    if prediction is None:
        raise HTTPException(status_code=404, detail="Prediction not found")
    return prediction


@app.get("/api/predictive/recommendations")
async def list_recommendations(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    barangay: Optional[str] = None,
    municipality: Optional[str] = None,
    province: Optional[str] = None,
    crimeType: Optional[str] = None,
    category: Optional[str] = None,
    priority: Optional[str] = None,
    status: Optional[str] = None,
):
    rows = await store.list_recommendations(
        barangay, municipality, province, crimeType, category, priority, status,
    )
    items, pagination = paginate(rows, page, limit)
    return {"recommendations": items, "pagination": pagination}


@app.get("/api/predictive/recommendations/{recommendation_id}")
async def get_recommendation(recommendation_id: str):
    recommendation = await store.get_recommendation(recommendation_id)
    if recommendation is None:
        raise HTTPException(status_code=404, detail="Recommendation not found")
    return recommendation


@app.put("/api/predictive/recommendations/{recommendation_id}")
async def update_recommendation(recommendation_id: str, update: RecommendationUpdate):
    updated = await store.update_recommendation(recommendation_id, update.model_dump(exclude_none=True))
    if updated is None:
        raise HTTPException(status_code=404, detail="Recommendation not found")
    logger.info(f"Recommendation {recommendation_id} updated: {update.model_dump(exclude_none=True)}")
    return updated


@app.get("/api/predictive/predictions-with-recommendations")
async def predictions_with_recommendations(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    barangay: Optional[str] = None,
    municipality: Optional[str] = None,
    province: Optional[str] = None,
    crimeType: Optional[str] = None,
    riskLevel: Optional[str] = None,
    category: Optional[str] = None,
    priority: Optional[str] = None,
    status: Optional[str] = None,
):
    rows = await store.list_predictions(barangay, municipality, province, crimeType, riskLevel)
    items, pagination = paginate(rows, page, limit)
    recommendations = await store.list_recommendations(category=category, priority=priority, status=status)

    grouped = []
    for p in items:
        key = (p.barangay, p.municipality, p.province, p.crimeType)
        grouped.append({
            "prediction": p,
            "recommendations": [
                r for r in recommendations
                if (r.barangay, r.municipality, r.province, r.crimeType) == key
            ],
        })
    return {"predictions": grouped, "pagination": pagination}


@app.get("/api/predictive/model/performance")
async def model_performance():
    return service.model_performance()


# ─────────────────────────── Predictive: admin ──────────────────

@app.post("/api/predictive/initialize")
async def initialize_model():
    report = await _run_admin(service.initialize(), "Model initialization")
    return {"message": "Sequence model initialized", "report": report, "initializedAt": _now_iso()}


@app.post("/api/predictive/generate/predictions")
async def generate_predictions():
    report = await _run_admin(service.generate_all_predictions(), "Prediction generation")
    return {"message": "Predictions generated successfully", "report": report, "generatedAt": _now_iso()}


@app.post("/api/predictive/generate/recommendations")
async def generate_recommendations():
    created = await _run_admin(service.generate_recommendations(), "Recommendation generation")
    return {"message": "Recommendations generated successfully", "created": created, "generatedAt": _now_iso()}


# ─────────────────────────── Descriptive analytics ──────────────

@app.get("/api/analytics/summary")
async def analytics_summary():
    return await _cached_analytics("summary", summary_stats)


@app.get("/api/analytics/top-barangays")
async def top_barangays(by: str = "count", limit: int = Query(5, ge=1, le=100)):
    if by not in ("count", "rate"):
        raise HTTPException(status_code=400, detail="by must be 'count' or 'rate'")
    ranker = top_by_count if by == "count" else top_by_rate
    return await _cached_analytics(f"top:{by}:{limit}", lambda inc, brgy: ranker(inc, brgy, limit))


@app.get("/api/analytics/crime-types")
async def crime_types(
    barangay: Optional[str] = None,
    municipality: Optional[str] = None,
    province: Optional[str] = None,
):
    key = f"types:{barangay or ''}:{municipality or ''}:{province or ''}"
    return await _cached_analytics(
        key, lambda inc, _: crime_type_distribution(inc, barangay, municipality, province),
    )


@app.get("/api/analytics/barangay-counts")
async def get_barangay_counts():
    return await _cached_analytics("counts", barangay_counts)


@app.get("/api/analytics/low-rate")
async def low_rate(threshold: float = Query(1.0, ge=0)):
    return await _cached_analytics(f"low:{threshold}", lambda inc, brgy: low_rate_barangays(inc, brgy, threshold))


# ─────────────────────────── Import ─────────────────────────────

@app.post("/api/import")
async def import_data(req: ImportRequest):
    if not req.rows:
        raise HTTPException(status_code=400, detail="No data rows found")
    retrain = None
    if req.retrain:
        async def retrain():
            await asyncio.wait_for(service.refresh(), timeout=ADMIN_TIMEOUT_SECONDS)
    try:
        result = await import_rows(store, req.rows, req.filename, mode=req.mode, retrain=retrain)
    except UnknownRecordKindError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return result.as_dict()


@app.get("/api/import/history")
async def import_history(limit: int = Query(50, ge=1, le=100)):
    return {"history": await store.list_import_history(limit)}


# ─────────────────────────── Utility Endpoints ──────────────────

@app.get("/api/health")
async def health():
    return {
        "status": "ok",
        "model": "elman-rnn",
        "modelTrained": sequence_model.is_trained,
        "incidents": len(store.incidents),
        "version": "1.0.0",
    }
