"""Bantay Backend: Configuration & Constants"""

import os
from pathlib import Path
from dotenv import load_dotenv

# Load .env from project root (one level up from backend/)
_env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(_env_path)


def _env_int(name: str, default: int) -> int:
    try:
        return int(os.environ.get(name, default))
    except (TypeError, ValueError):
        return default


def _env_float(name: str, default: float) -> float:
    try:
        return float(os.environ.get(name, default))
    except (TypeError, ValueError):
        return default


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


# ── Data ──
DATASET_PATH = os.environ.get("DATASET_PATH", "")
TRAIN_ON_STARTUP = _env_bool("TRAIN_ON_STARTUP", False)
DEFAULT_COUNTRY = "PHILIPPINES"

# ── Admin triggers ──
ADMIN_TIMEOUT_SECONDS = _env_float("ADMIN_TIMEOUT_SECONDS", 300.0)

# ── Forecast horizon ──
FORECAST_HORIZON = _env_int("FORECAST_HORIZON", 6)
MAX_FORECAST_HORIZON = _env_int("MAX_FORECAST_HORIZON", 24)

# ── Sequence model (recurrent network) ──
MODEL_WINDOW = 6
MODEL_HIDDEN_SIZE = _env_int("MODEL_HIDDEN_SIZE", 8)
MODEL_ITERATIONS = _env_int("MODEL_ITERATIONS", 1000)
MODEL_LEARNING_RATE = _env_float("MODEL_LEARNING_RATE", 0.5)
MODEL_ERROR_THRESHOLD = _env_float("MODEL_ERROR_THRESHOLD", 0.05)
MODEL_SEED = _env_int("MODEL_SEED", 42)
MIN_TRAINING_SAMPLES = 5
MIN_VALID_TRAINING_SAMPLES = 3

# ── Statistical forecaster ──
LOW_FREQUENCY_THRESHOLD = 2.0      # mean incidents/month below this = low-frequency
FRACTIONAL_MEAN_THRESHOLD = 0.5    # keep one decimal place below this mean
CAP_MULTIPLIER = 1.5
LOW_FREQUENCY_CAP_MULTIPLIER = 2.0
LOW_FREQUENCY_CAP_CEILING = 3.0
MARGIN_Z = 1.96

# ── Risk assessment ──
DEFAULT_POPULATION = 1000
ASSUMED_AREA_KM2 = 2.0
DENSITY_CEILING = 10_000.0
SEASONAL_MIN_INCIDENTS = 12
RECENT_WINDOW_MONTHS = 3
RISK_WEIGHTS = {
    "historicalTrend": 0.25,
    "seasonalPattern": 0.15,
    "populationDensity": 0.3,
    "recentActivity": 0.3,
}
LEARNED_BOOST_THRESHOLD = 10.0
LEARNED_BOOST_CONFIDENCE = 0.7
LEARNED_BOOST_FACTOR = 1.2

# ── CORS ──
CORS_ORIGINS = [
    o.strip() for o in os.environ.get("CORS_ORIGINS", "").split(",") if o.strip()
] or (
    [f"http://localhost:{p}" for p in range(5173, 5180)]
    + [f"http://localhost:{p}" for p in range(8080, 8090)]
    + [f"http://127.0.0.1:{p}" for p in range(5173, 5180)]
)

# Crime types that warrant an investigation protocol recommendation
SERIOUS_CRIMES = {
    "RAPE", "MURDER", "HOMICIDE", "ASSAULT",
    "DRUGS", "DRUG POSSESSION", "DRUG TRAFFICKING",
}

# Import header aliases → canonical field names
CRIME_HEADER_ALIASES = {
    "type": "type", "crime type": "type", "crimetype": "type", "crime": "type", "offense": "type",
    "confinementdate": "confinementDate", "confinement date": "confinementDate",
    "date": "confinementDate", "incident date": "confinementDate",
    "confinementtime": "confinementTime", "confinement time": "confinementTime", "time": "confinementTime",
    "barangay": "barangay", "brgy": "barangay",
    "municipality": "municipality", "city": "municipality", "city/municipality": "municipality",
    "province": "province",
    "country": "country",
    "status": "status",
    "gender": "gender", "sex": "gender",
    "age": "age",
    "civilstatus": "civilStatus", "civil status": "civilStatus",
    "caseid": "caseId", "case id": "caseId",
    "casenumber": "caseNumber", "case number": "caseNumber",
}

POPULATION_HEADER_ALIASES = {
    "name": "name", "barangay": "name", "brgy": "name",
    "municipality": "municipality", "city": "municipality", "city/municipality": "municipality",
    "province": "province",
    "country": "country",
    "population": "population", "total population": "population",
    "latitude": "latitude", "lat": "latitude",
    "longitude": "longitude", "lng": "longitude", "lon": "longitude",
}
