"""Bantay Backend: Predictive Service

Admin triggers (initialize, regenerate predictions / recommendations) and
single-key queries (forecast, risk) over the document store and the
shared sequence model.
"""

import asyncio
import logging
import threading
from datetime import datetime
from typing import Callable, Optional

import numpy as np
from cachetools import LRUCache

from cache import summary_cache
from config import FORECAST_HORIZON
from forecasting import generate_forecast
from ml_model import _ModelProxy
from models import AreaKey, ForecastPoint, Incident, Prediction, RegenerationReport, RiskAssessment, TrainingReport
from recommendations import AreaContext, build_recommendations, crime_patterns, forecast_trend, municipality_rate, to_records
from risk import assess_risk
from statistical import round_half_up
from store import DocumentStore, norm

logger = logging.getLogger("bantay.service")

MIN_COMBINATION_INCIDENTS = 2


def _key_label(area: AreaKey, crime_type: str) -> str:
    return f"{area.barangay}/{area.municipality}/{area.province}:{crime_type}"


class PredictiveService:
    def __init__(self, store: DocumentStore, model: _ModelProxy,
                 clock: Callable[[], datetime] = datetime.now):
        self.store = store
        self.model = model
        self.clock = clock
        # (store version, barangay, municipality, province, crime type) → sorted incidents
        self._incident_cache = LRUCache(maxsize=2048)
        self._incident_cache_lock = threading.Lock()

    # ─────────────────────────── History ────────────────────────

    async def _history(self, area: AreaKey, crime_type: str) -> list[Incident]:
        cache_key = (self.store.version, norm(area.barangay), norm(area.municipality),
                     norm(area.province), norm(crime_type))
        with self._incident_cache_lock:
            if cache_key in self._incident_cache:
                return self._incident_cache[cache_key]
        incidents = await self.store.find_incidents(area, crime_type)
        with self._incident_cache_lock:
            self._incident_cache[cache_key] = incidents
        return incidents

    # ─────────────────────────── Admin triggers ─────────────────

    async def initialize(self) -> TrainingReport:
        """Retrain the sequence model from the full incident history (always from scratch)."""
        incidents = await self.store.all_incidents()
        logger.info(f"Training sequence model on {len(incidents)} incidents")
        report = await asyncio.to_thread(self.model.retrain, incidents)
        summary_cache.invalidate()
        return report

    async def generate_all_predictions(self, horizon: int = FORECAST_HORIZON) -> RegenerationReport:
        """Retrain, then replace every Prediction for keys with at least two incidents."""
        await self.initialize()
        deleted = await self.store.delete_predictions()
        logger.info(f"Cleared {deleted} existing predictions")

        combos = await self.store.combinations(min_count=MIN_COMBINATION_INCIDENTS)
        logger.info(f"Found {len(combos)} combinations with sufficient data")
        report = RegenerationReport()

        for area, crime_type, _ in combos:
            report.processed += 1
            try:
                prediction = await self._build_prediction(area, crime_type, horizon)
                await self.store.insert_prediction(prediction)
                report.succeeded += 1
                if prediction.forecast and prediction.forecast[0].method == "learned":
                    report.learnedCount += 1
            except Exception as e:
                label = _key_label(area, crime_type)
                logger.error(f"Prediction failed for {label}: {e}")
                report.failed += 1
                report.failedKeys.append(label)
            await asyncio.sleep(0)

        summary_cache.invalidate()
        logger.info(
            f"Generated {report.succeeded}/{report.processed} predictions "
            f"({report.learnedCount} learned, {report.failed} failed)"
        )
        return report

    async def _build_prediction(self, area: AreaKey, crime_type: str, horizon: int) -> Prediction:
        forecast = await self.generate_forecast(area, crime_type, horizon)
        risk = await self.assess_risk(area, crime_type, next_month=forecast[0] if forecast else None)
        confidence = float(np.mean([p.confidence for p in forecast])) if forecast else 0.5
        return Prediction(
            barangay=area.barangay,
            municipality=area.municipality,
            province=area.province,
            country=area.country,
            crimeType=crime_type,
            forecast=forecast,
            riskLevel=risk.riskLevel,
            probability=risk.probability,
            confidence=min(1.0, max(0.0, confidence)),
            factors=risk.factors,
        )

    async def generate_recommendations(self) -> int:
        """Replace every Recommendation from the current Medium/High predictions."""
        deleted = await self.store.delete_recommendations()
        logger.info(f"Cleared {deleted} existing recommendations")

        created = 0
        municipality_rates: dict[tuple[str, str], float] = {}
        for prediction in await self.store.list_predictions():
            if prediction.riskLevel not in ("Medium", "High"):
                continue
            area = AreaKey(prediction.barangay, prediction.municipality, prediction.province, prediction.country)
            try:
                ctx = await self._area_context(area, prediction.crimeType, municipality_rates)
                for rec in to_records(prediction, build_recommendations(prediction, ctx)):
                    rec.riskFactors = [f for f in rec.riskFactors if f and f.strip()]
                    await self.store.insert_recommendation(rec)
                    created += 1
            except Exception as e:
                logger.error(f"Recommendations failed for {_key_label(area, prediction.crimeType)}: {e}")
            await asyncio.sleep(0)

        summary_cache.invalidate()
        logger.info(f"Generated {created} recommendations")
        return created

    async def refresh(self, horizon: int = FORECAST_HORIZON) -> RegenerationReport:
        """Retrain, regenerate predictions, then recommendations (run after a data import)."""
        report = await self.generate_all_predictions(horizon)
        await self.generate_recommendations()
        return report

    async def _area_context(self, area: AreaKey, crime_type: str, rates: dict) -> AreaContext:
        population = await self.store.get_population(area)
        incidents = await self._history(area, crime_type)

        town = (norm(area.municipality), norm(area.province))
        if town not in rates:
            town_incidents = await self.store.incidents_in(area.municipality, area.province)
            populations = [
                b.population or 0 for b in await self.store.list_barangays()
                if (b.municipality, b.province) == town
            ]
            rates[town] = municipality_rate(len(town_incidents), populations)

        peak_hours, peak_days = crime_patterns(incidents)
        return AreaContext(
            population=population,
            total_incidents=len(incidents),
            municipality_rate=rates[town],
            peak_hours=peak_hours,
            peak_days=peak_days,
        )

    # ─────────────────────────── Single-key queries ─────────────

    async def generate_forecast(self, area: AreaKey, crime_type: str,
                                horizon: int = FORECAST_HORIZON) -> list[ForecastPoint]:
        incidents = await self._history(area, crime_type)
        return generate_forecast(incidents, horizon, self.model.snapshot, self.clock())

    async def assess_risk(self, area: AreaKey, crime_type: str,
                          next_month: Optional[ForecastPoint] = None) -> RiskAssessment:
        incidents = await self._history(area, crime_type)
        population = await self.store.get_population(area)
        if next_month is None and self.model.is_trained:
            ahead = generate_forecast(incidents, 1, self.model.snapshot, self.clock())
            next_month = ahead[0] if ahead else None
        return assess_risk(incidents, population, self.clock(), next_month)

    # ─────────────────────────── Reporting ──────────────────────

    def model_performance(self) -> dict:
        return {
            "sequenceModel": self.model.info(),
            "statistical": {
                "enabled": True,
                "method": "Linear Regression with Seasonal Adjustment",
                "library": "numpy",
            },
            "hybrid": {
                "enabled": True,
                "description": "Sequence model with statistical fallback",
            },
        }

    async def predictive_summary(self) -> dict:
        cached = summary_cache.get("predictive", self.store.version)
        if cached is not None:
            return cached

        predictions = await self.store.list_predictions()
        distribution = {"high": 0, "medium": 0, "low": 0}
        for p in predictions:
            distribution[p.riskLevel.lower()] += 1

        point_confidences = [f.confidence for p in predictions for f in p.forecast]
        if point_confidences:
            avg_confidence = float(np.mean(point_confidences))
        elif predictions:
            avg_confidence = float(np.mean([p.confidence for p in predictions]))
        else:
            avg_confidence = 0.0

        changes = [forecast_trend(p) for p in predictions[:100]]
        avg_change = float(np.mean(changes)) if changes else 0.0

        top = [p for p in predictions if p.riskLevel == "High"][:5]
        summary = {
            "totalPredictions": len(predictions),
            "riskDistribution": distribution,
            "avgConfidence": round_half_up(avg_confidence, 4),
            "avgPredictedChange": round_half_up(avg_change, 2),
            "topRiskBarangays": [
                {
                    "barangay": p.barangay,
                    "municipality": p.municipality,
                    "crimeType": p.crimeType,
                    "riskProbability": round(p.probability * 100),
                    "confidence": round(p.confidence * 100),
                }
                for p in top
            ],
            "generatedAt": self.clock().isoformat(),
        }
        summary_cache.set("predictive", summary, self.store.version)
        return summary
