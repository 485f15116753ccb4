"""Bantay Backend: Recurrent Sequence Predictor

A small Elman-style recurrent network built on torch (`nn.RNN` with a
tanh hidden layer, `nn.Linear` read-out squashed by a sigmoid). The six
trailing monthly counts are fed one step at a time; the output is the
next month in normalised [0, 1] space. Counts are scaled with
scikit-learn's MinMaxScaler.

Training pairs come from the citywide monthly series (all barangays and
crime types combined). A trained network is wrapped in an immutable
`SequenceSnapshot`; ml_model.py swaps snapshots wholesale on retrain.
"""

import logging
import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

import numpy as np
import torch
import torch.nn as nn
from sklearn.preprocessing import MinMaxScaler

from config import (
    MODEL_WINDOW, MODEL_HIDDEN_SIZE, MODEL_ITERATIONS, MODEL_LEARNING_RATE,
    MODEL_ERROR_THRESHOLD, MODEL_SEED,
    MIN_TRAINING_SAMPLES, MIN_VALID_TRAINING_SAMPLES,
)
from models import TrainingReport
from timeseries import monthly_counts, series_counts

logger = logging.getLogger("bantay.sequence")

_NORMALIZED_FALLBACK = 0.5
_GRAD_CLIP = 5.0


class ModelNotTrainedError(RuntimeError):
    pass


class InsufficientHistoryError(ValueError):
    pass


# ─────────────────────────── Scaling ────────────────────────────

class SeriesScaler:
    """One-column MinMaxScaler. Non-finite inputs map to the midpoint; a flat
    history keeps a unit span so values still inverse-transform around it."""

    def __init__(self, scaler: MinMaxScaler):
        self._scaler = scaler

    @classmethod
    def fit(cls, values) -> "SeriesScaler":
        arr = np.asarray(list(values), dtype=np.float64)
        arr = arr[np.isfinite(arr)]
        if arr.size == 0:
            arr = np.zeros(1)
        return cls(MinMaxScaler(feature_range=(0, 1), clip=True).fit(arr.reshape(-1, 1)))

    @property
    def low(self) -> float:
        return float(self._scaler.data_min_[0])

    @property
    def span(self) -> float:
        return 1.0 / float(self._scaler.scale_[0])

    def transform(self, values) -> np.ndarray:
        arr = np.asarray(values, dtype=np.float64).reshape(-1)
        out = np.full(arr.shape, _NORMALIZED_FALLBACK)
        finite = np.isfinite(arr)
        if finite.any():
            out[finite] = self._scaler.transform(arr[finite].reshape(-1, 1))[:, 0]
        return out

    def inverse(self, value: float) -> float:
        """Back to counts. A non-finite model output stays non-finite."""
        if not math.isfinite(value):
            return float("nan")
        return float(self._scaler.inverse_transform([[value]])[0, 0])


# ─────────────────────────── Network ────────────────────────────

class RecurrentNetwork(nn.Module):
    """Single-layer tanh RNN with a scalar sigmoid output, trained full-batch."""

    def __init__(self, hidden_size: int = MODEL_HIDDEN_SIZE, seed: int = MODEL_SEED):
        super().__init__()
        torch.manual_seed(seed)
        self.hidden_size = hidden_size
        self.rnn = nn.RNN(input_size=1, hidden_size=hidden_size, nonlinearity="tanh", batch_first=True)
        self.fc = nn.Linear(hidden_size, 1)

    def forward(self, x: torch.Tensor) -> torch.Tensor:
        # x: [batch, steps] → [batch]
        out, _ = self.rnn(x.unsqueeze(-1))
        return torch.sigmoid(self.fc(out[:, -1, :])).squeeze(-1)

    def activate(self, X) -> np.ndarray:
        inputs = torch.as_tensor(np.atleast_2d(X), dtype=torch.float32)
        self.eval()
        with torch.no_grad():
            return self(inputs).double().numpy()

    def fit(self, X: np.ndarray, y: np.ndarray, iterations: int, rate: float, error_threshold: float):
        """Full-batch SGD on MSE. Returns (iterations run, final error)."""
        torch.use_deterministic_algorithms(True)
        inputs = torch.as_tensor(X, dtype=torch.float32)
        targets = torch.as_tensor(y, dtype=torch.float32)
        optimizer = torch.optim.SGD(self.parameters(), lr=rate)
        mse_loss = nn.MSELoss()

        self.train()
        error = float("inf")
        iteration = 0
        for iteration in range(1, iterations + 1):
            optimizer.zero_grad()
            loss = mse_loss(self(inputs), targets)
            error = float(loss.item())
            if error <= error_threshold:
                break
            loss.backward()
            nn.utils.clip_grad_value_(self.parameters(), _GRAD_CLIP)
            optimizer.step()
        self.eval()
        return iteration, error


# ─────────────────────────── Training data ──────────────────────

def build_training_pairs(incidents, window: int = MODEL_WINDOW) -> list[tuple[list[float], float]]:
    """(trailing `window` monthly counts → next month) pairs from the citywide series."""
    counts = series_counts(monthly_counts(incidents))
    return [
        ([float(c) for c in counts[i - window:i]], float(counts[i]))
        for i in range(window, len(counts))
    ]


def _is_valid_pair(pair, window: int) -> bool:
    inputs, target = pair
    return (
        len(inputs) == window
        and all(isinstance(v, (int, float)) and math.isfinite(v) for v in inputs)
        and isinstance(target, (int, float)) and math.isfinite(target)
    )


# ─────────────────────────── Snapshot ───────────────────────────

@dataclass(frozen=True)
class SequenceSnapshot:
    """A fully trained (or explicitly untrained) model state. Never mutated after creation."""
    network: Optional[RecurrentNetwork] = None
    window: int = MODEL_WINDOW
    raw_samples: int = 0
    valid_samples: int = 0
    iterations: int = 0
    error: Optional[float] = None
    trained_at: Optional[datetime] = None
    report: TrainingReport = field(default_factory=lambda: TrainingReport(trained=False, reason="not initialized"))

    @property
    def is_trained(self) -> bool:
        return self.network is not None

    def rollout(self, history: list[int], horizon: int) -> list[tuple[float, float]]:
        """Predict `horizon` months ahead for one key. Returns (value, confidence) per month.

        The key's own history provides the scaling range and the initial window;
        each predicted value is appended to the window for the next step. A
        non-finite value is returned as is for the caller to replace.
        """
        if self.network is None:
            raise ModelNotTrainedError("sequence model is not trained")
        if len(history) < self.window:
            raise InsufficientHistoryError(
                f"need {self.window} months of history, have {len(history)}"
            )

        scaler = SeriesScaler.fit(history)
        arr = np.asarray(history, dtype=np.float64)
        mean = float(arr.mean())
        std = float(arr.std())
        window = [float(v) for v in history[-self.window:]]

        results = []
        for _ in range(horizon):
            raw = float(self.network.activate(scaler.transform(window))[0])
            value = scaler.inverse(raw)
            results.append((value, prediction_confidence(value, mean, std)))
            window = window[1:] + [value]
        return results


def prediction_confidence(value: float, mean: float, std: float) -> float:
    """Closer to the key's historical mean → higher confidence. 0.5 on invalid arithmetic."""
    denom = 2 * mean + std
    if denom <= 0:
        return 0.5
    confidence = 1 - abs(value - mean) / denom
    if not math.isfinite(confidence):
        return 0.5
    return min(1.0, max(0.1, confidence))


def train_snapshot(
    incidents,
    hidden_size: int = MODEL_HIDDEN_SIZE,
    iterations: int = MODEL_ITERATIONS,
    rate: float = MODEL_LEARNING_RATE,
    error_threshold: float = MODEL_ERROR_THRESHOLD,
    seed: int = MODEL_SEED,
    window: int = MODEL_WINDOW,
) -> SequenceSnapshot:
    """Train a fresh network on every incident. Returns an untrained snapshot if data is too thin."""
    pairs = build_training_pairs(incidents, window)
    logger.info(f"Prepared {len(pairs)} training samples")

    if len(pairs) < MIN_TRAINING_SAMPLES:
        reason = f"insufficient training data ({len(pairs)} < {MIN_TRAINING_SAMPLES} samples)"
        logger.info(f"Sequence model not trained: {reason}. Using statistical fallback.")
        return SequenceSnapshot(raw_samples=len(pairs), report=TrainingReport(
            trained=False, rawSamples=len(pairs), reason=reason))

    valid = [p for p in pairs if _is_valid_pair(p, window)]
    if len(valid) < MIN_VALID_TRAINING_SAMPLES:
        reason = f"insufficient valid training data ({len(valid)} < {MIN_VALID_TRAINING_SAMPLES})"
        logger.info(f"Sequence model not trained: {reason}. Using statistical fallback.")
        return SequenceSnapshot(raw_samples=len(pairs), valid_samples=len(valid), report=TrainingReport(
            trained=False, rawSamples=len(pairs), validSamples=len(valid), reason=reason))

    scaler = SeriesScaler.fit([v for inputs, target in valid for v in (*inputs, target)])
    X = np.vstack([scaler.transform(inputs) for inputs, _ in valid])
    y = scaler.transform([target for _, target in valid])

    network = RecurrentNetwork(hidden_size=hidden_size, seed=seed)
    n_iter, error = network.fit(X, y, iterations, rate, error_threshold)
    logger.info(f"Sequence model trained: {len(valid)} samples, {n_iter} iterations, error={error:.6f}")

    return SequenceSnapshot(
        network=network,
        window=window,
        raw_samples=len(pairs),
        valid_samples=len(valid),
        iterations=n_iter,
        error=error,
        trained_at=datetime.now(timezone.utc),
        report=TrainingReport(
            trained=True, rawSamples=len(pairs), validSamples=len(valid),
            iterations=n_iter, error=error,
        ),
    )
