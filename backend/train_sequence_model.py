"""Bantay Backend: Sequence Model Training

Trains the recurrent sequence model offline on a JSON incident dataset
and reports one-step-ahead error on the most recent months of the
citywide series. The service itself retrains in memory on
/api/predictive/initialize; this script is for checking hyperparameters.

Run from project root:
    python backend/train_sequence_model.py [datasets/incidents.json]
"""

import json
import logging
import sys
import time
from pathlib import Path

import numpy as np

from config import (
    DATASET_PATH, MODEL_HIDDEN_SIZE, MODEL_ITERATIONS, MODEL_LEARNING_RATE,
    MODEL_ERROR_THRESHOLD, MODEL_SEED, MODEL_WINDOW,
)
from models import Incident
from sequence_model import InsufficientHistoryError, train_snapshot
from timeseries import month_key, monthly_counts, parse_incident_date, series_counts

logging.basicConfig(level=logging.INFO, format="%(asctime)s  %(message)s")
logger = logging.getLogger("train")

_SCRIPT_DIR = Path(__file__).resolve().parent
_PROJECT_ROOT = _SCRIPT_DIR.parent
_DATASETS_DIR = _PROJECT_ROOT / "datasets"


def _load_incidents(path: Path) -> list[Incident]:
    if not path.exists():
        logger.error(f"Dataset not found: {path}")
        sys.exit(1)
    with open(path) as f:
        data = json.load(f)
    rows = data.get("incidents", []) if isinstance(data, dict) else data
    incidents = [Incident(**row) for row in rows]
    logger.info(f"Loaded {len(incidents)} incidents from {path}")
    return incidents


def holdout_start(counts: list[int], window: int, holdout: float = 0.2) -> int:
    return max(window, int(len(counts) * (1 - holdout)))


def evaluate(snapshot, counts: list[int], start: int) -> dict:
    """One-step-ahead MAE / RMSE over counts[start:], each month predicted from the months before it."""
    errors = []
    for i in range(start, len(counts)):
        try:
            value, _ = snapshot.rollout(counts[:i], 1)[0]
        except InsufficientHistoryError as e:
            logger.warning(f"Skipping month {i}: {e}")
            continue
        if not np.isfinite(value):
            logger.warning(f"Skipping month {i}: non-finite prediction")
            continue
        errors.append(value - counts[i])
    if not errors:
        return {"n_eval": 0, "mae": None, "rmse": None}
    err = np.asarray(errors)
    return {
        "n_eval": int(err.size),
        "mae": float(np.mean(np.abs(err))),
        "rmse": float(np.sqrt(np.mean(err ** 2))),
    }


def _before_month(incidents: list[Incident], cutoff: str) -> list[Incident]:
    out = []
    for inc in incidents:
        dt = parse_incident_date(inc.confinementDate)
        if dt is not None and month_key(dt) < cutoff:
            out.append(inc)
    return out


def _train(incidents: list[Incident]):
    return train_snapshot(
        incidents,
        hidden_size=MODEL_HIDDEN_SIZE,
        iterations=MODEL_ITERATIONS,
        rate=MODEL_LEARNING_RATE,
        error_threshold=MODEL_ERROR_THRESHOLD,
        seed=MODEL_SEED,
        window=MODEL_WINDOW,
    )


def main():
    t0 = time.time()
    path = Path(sys.argv[1]) if len(sys.argv) > 1 else Path(DATASET_PATH or _DATASETS_DIR / "incidents.json")
    incidents = _load_incidents(path)
    series = monthly_counts(incidents)
    counts = series_counts(series)
    logger.info(f"Citywide series: {len(counts)} months, mean={np.mean(counts) if counts else 0:.2f}")

    start = holdout_start(counts, MODEL_WINDOW)
    scores = {"n_eval": 0, "mae": None, "rmse": None}
    if start < len(counts):
        cutoff = series[start].month
        held_out = _train(_before_month(incidents, cutoff))
        if held_out.is_trained:
            logger.info(f"Evaluating on {len(counts) - start} months from {cutoff}")
            scores = evaluate(held_out, counts, start)
        else:
            logger.warning(f"Holdout model not trained: {held_out.report.reason}")

    snapshot = _train(incidents)
    if not snapshot.is_trained:
        logger.error(f"Model not trained: {snapshot.report.reason}")
        sys.exit(1)

    logger.info(f"\n{'='*50}")
    logger.info("Holdout Results:")
    logger.info(f"  Months:     {scores['n_eval']}")
    if scores["mae"] is not None:
        logger.info(f"  MAE:        {scores['mae']:.4f}")
        logger.info(f"  RMSE:       {scores['rmse']:.4f}")
    logger.info(f"{'='*50}")

    _DATASETS_DIR.mkdir(exist_ok=True)
    meta_path = _DATASETS_DIR / "training_metadata.json"
    metadata = {
        "n_incidents": len(incidents),
        "n_months": len(counts),
        "raw_samples": snapshot.raw_samples,
        "valid_samples": snapshot.valid_samples,
        "iterations": snapshot.iterations,
        "final_error": snapshot.error,
        "window": snapshot.window,
        "hidden_size": MODEL_HIDDEN_SIZE,
        "learning_rate": MODEL_LEARNING_RATE,
        "seed": MODEL_SEED,
        **scores,
    }
    with open(meta_path, "w") as f:
        json.dump(metadata, f, indent=2)
    logger.info(f"Training metadata saved to {meta_path}")

    elapsed = time.time() - t0
    logger.info(f"Total training time: {elapsed:.1f}s")


if __name__ == "__main__":
    main()
