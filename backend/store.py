"""Bantay Backend: In-process Document Store

Holds incidents, barangay metadata, predictions, recommendations and
import history in memory behind async accessors. Optionally seeded from
a JSON file of the shape {"incidents": [...], "barangays": [...]}.

Text fields are upper-cased and trimmed on insert so lookups are
case-insensitive.
"""

import json
import logging
import math
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from config import DEFAULT_COUNTRY, DEFAULT_POPULATION
from models import AreaKey, Barangay, ImportHistory, Incident, Prediction, Recommendation
from timeseries import parse_incident_date

logger = logging.getLogger("bantay.store")

_FAR_FUTURE = datetime.max


def norm(value) -> str:
    return str(value or "").strip().upper()


def _place_key(barangay, municipality, province) -> tuple[str, str, str]:
    return norm(barangay), norm(municipality), norm(province)


def _contains(haystack: Optional[str], needle: Optional[str]) -> bool:
    return not needle or norm(needle) in norm(haystack)


def paginate(items: list, page: int, limit: int) -> tuple[list, dict]:
    total = len(items)
    start = (page - 1) * limit
    return items[start:start + limit], {
        "page": page,
        "limit": limit,
        "total": total,
        "pages": math.ceil(total / limit) if limit else 0,
    }


class DocumentStore:
    def __init__(self):
        self.incidents: list[Incident] = []
        self.barangays: dict[tuple[str, str, str, str], Barangay] = {}
        self.predictions: list[Prediction] = []
        self.recommendations: list[Recommendation] = []
        self.import_history: list[ImportHistory] = []
        self.version = 0

    def _touch(self):
        self.version += 1

    def clear(self):
        self.incidents.clear()
        self.barangays.clear()
        self.predictions.clear()
        self.recommendations.clear()
        self.import_history.clear()
        self._touch()

    # ─────────────────────────── Incidents ──────────────────────

    async def add_incidents(self, incidents: list[Incident]) -> int:
        for inc in incidents:
            self.incidents.append(inc.model_copy(update={
                "type": norm(inc.type),
                "barangay": norm(inc.barangay),
                "municipality": norm(inc.municipality),
                "province": norm(inc.province),
                "country": norm(inc.country) or DEFAULT_COUNTRY,
            }))
        self._touch()
        return len(incidents)

    async def clear_incidents(self) -> int:
        n = len(self.incidents)
        self.incidents = []
        self._touch()
        return n

    async def case_identifiers(self) -> set[tuple[str, str]]:
        """("caseId" | "caseNumber", value) for every stored incident that carries one."""
        ids = set()
        for inc in self.incidents:
            if inc.caseId:
                ids.add(("caseId", inc.caseId))
            if inc.caseNumber:
                ids.add(("caseNumber", inc.caseNumber))
        return ids

    async def all_incidents(self) -> list[Incident]:
        return sorted(self.incidents, key=self._date_sort_key)

    async def find_incidents(self, area: AreaKey, crime_type: str) -> list[Incident]:
        """Incidents for (barangay, municipality, province, type), ascending by confinement date."""
        place = _place_key(area.barangay, area.municipality, area.province)
        ctype = norm(crime_type)
        matched = [
            inc for inc in self.incidents
            if (inc.barangay, inc.municipality, inc.province) == place and inc.type == ctype
        ]
        return sorted(matched, key=self._date_sort_key)

    async def incidents_in(self, municipality: str, province: str) -> list[Incident]:
        m, p = norm(municipality), norm(province)
        return [inc for inc in self.incidents if inc.municipality == m and inc.province == p]

    async def combinations(self, min_count: int = 1) -> list[tuple[AreaKey, str, int]]:
        """Distinct (area, crime type) pairs with at least `min_count` incidents."""
        counts: dict[tuple[AreaKey, str], int] = {}
        for inc in self.incidents:
            key = (inc.area, inc.type)
            counts[key] = counts.get(key, 0) + 1
        return [(area, ctype, n) for (area, ctype), n in sorted(counts.items()) if n >= min_count]

    @staticmethod
    def _date_sort_key(inc: Incident):
        # Unparseable dates sort last; the aggregator drops them anyway
        return parse_incident_date(inc.confinementDate) or _FAR_FUTURE

    # ─────────────────────────── Barangays ──────────────────────

    async def upsert_barangays(self, barangays: list[Barangay]) -> tuple[int, int]:
        """Returns (inserted, modified)."""
        inserted = modified = 0
        for b in barangays:
            clean = b.model_copy(update={
                "name": norm(b.name),
                "municipality": norm(b.municipality),
                "province": norm(b.province),
                "country": norm(b.country) or DEFAULT_COUNTRY,
            })
            key = (clean.name, clean.municipality, clean.province, clean.country)
            if key in self.barangays:
                modified += 1
            else:
                inserted += 1
            self.barangays[key] = clean
        self._touch()
        return inserted, modified

    async def clear_barangays(self) -> int:
        n = len(self.barangays)
        self.barangays = {}
        self._touch()
        return n

    async def find_barangay(self, area: AreaKey) -> Optional[Barangay]:
        place = _place_key(area.barangay, area.municipality, area.province)
        for (name, municipality, province, _), b in self.barangays.items():
            if (name, municipality, province) == place:
                return b
        return None

    async def list_barangays(self) -> list[Barangay]:
        return list(self.barangays.values())

    async def get_population(self, area: AreaKey) -> int:
        b = await self.find_barangay(area)
        if b is None or not b.population or b.population <= 0:
            return DEFAULT_POPULATION
        return b.population

    # ─────────────────────────── Predictions ────────────────────

    async def delete_predictions(self) -> int:
        n = len(self.predictions)
        self.predictions = []
        return n

    async def insert_prediction(self, prediction: Prediction) -> Prediction:
        saved = prediction.model_copy(update={
            "id": uuid.uuid4().hex,
            "createdAt": datetime.now(timezone.utc),
        })
        self.predictions.append(saved)
        return saved

    async def list_predictions(self, barangay=None, municipality=None, province=None,
                               crime_type=None, risk_level=None) -> list[Prediction]:
        rows = [
            p for p in self.predictions
            if _contains(p.barangay, barangay)
            and _contains(p.municipality, municipality)
            and _contains(p.province, province)
            and _contains(p.crimeType, crime_type)
            and (not risk_level or p.riskLevel == risk_level)
        ]
        return sorted(rows, key=lambda p: -p.probability)

    async def get_prediction(self, prediction_id: str) -> Optional[Prediction]:
        return next((p for p in self.predictions if p.id == prediction_id), None)

    # ─────────────────────────── Recommendations ────────────────

    async def delete_recommendations(self) -> int:
        n = len(self.recommendations)
        self.recommendations = []
        return n

    async def insert_recommendation(self, recommendation: Recommendation) -> Recommendation:
        saved = recommendation.model_copy(update={
            "id": uuid.uuid4().hex,
            "createdAt": datetime.now(timezone.utc),
        })
        self.recommendations.append(saved)
        return saved

    async def list_recommendations(self, barangay=None, municipality=None, province=None,
                                   crime_type=None, category=None, priority=None,
                                   status=None) -> list[Recommendation]:
        priority_order = {"Critical": 0, "High": 1, "Medium": 2, "Low": 3}
        rows = [
            r for r in self.recommendations
            if _contains(r.barangay, barangay)
            and _contains(r.municipality, municipality)
            and _contains(r.province, province)
            and _contains(r.crimeType, crime_type)
            and (not category or r.category == category)
            and (not priority or r.priority == priority)
            and (not status or r.status == status)
        ]
        return sorted(rows, key=lambda r: (priority_order.get(r.priority, 9), -r.confidence))

    async def get_recommendation(self, recommendation_id: str) -> Optional[Recommendation]:
        return next((r for r in self.recommendations if r.id == recommendation_id), None)

    async def update_recommendation(self, recommendation_id: str, changes: dict) -> Optional[Recommendation]:
        for idx, r in enumerate(self.recommendations):
            if r.id == recommendation_id:
                updated = r.model_copy(update={k: v for k, v in changes.items() if v is not None})
                self.recommendations[idx] = updated
                return updated
        return None

    # ─────────────────────────── Import history ─────────────────

    async def record_import(self, entry: ImportHistory) -> ImportHistory:
        saved = entry.model_copy(update={
            "id": uuid.uuid4().hex,
            "createdAt": datetime.now(timezone.utc),
        })
        self.import_history.append(saved)
        return saved

    async def list_import_history(self, limit: int = 50) -> list[ImportHistory]:
        """Newest first."""
        return list(reversed(self.import_history))[:limit]

    # ─────────────────────────── Seeding ────────────────────────

    async def load_json(self, path: str) -> tuple[int, int]:
        """Seed from a JSON dataset. Returns (incidents, barangays) loaded."""
        p = Path(path)
        if not p.exists():
            logger.warning(f"Dataset not found: {p}")
            return 0, 0
        with open(p) as f:
            data = json.load(f)

        incidents = [Incident(**row) for row in data.get("incidents", [])]
        barangays = [Barangay(**row) for row in data.get("barangays", [])]
        await self.add_incidents(incidents)
        await self.upsert_barangays(barangays)
        logger.info(f"Loaded {len(incidents)} incidents and {len(barangays)} barangays from {p}")
        return len(incidents), len(barangays)
