"""Bantay Backend: Sequence Model Holder

Process-wide owner of the current sequence-model snapshot. Nothing is
persisted: the network lives in memory until the next retrain or process
restart. Readers grab the snapshot reference once and keep using it, so a
retrain in flight never exposes a half-trained network.
"""

import logging
import threading

from config import MODEL_WINDOW, MODEL_HIDDEN_SIZE
from models import TrainingReport
from sequence_model import SequenceSnapshot, train_snapshot

logger = logging.getLogger("bantay.model")


class _ModelProxy:
    """Single-writer holder: retrain() builds a new snapshot, then swaps the reference."""

    def __init__(self, **train_options):
        self._snapshot = SequenceSnapshot()
        self._swap_lock = threading.Lock()
        self._train_lock = threading.Lock()
        self._train_options = train_options

    @property
    def snapshot(self) -> SequenceSnapshot:
        with self._swap_lock:
            return self._snapshot

    @property
    def is_trained(self) -> bool:
        return self.snapshot.is_trained

    def retrain(self, incidents) -> TrainingReport:
        """Always trains from scratch on the given incidents."""
        with self._train_lock:
            try:
                fresh = train_snapshot(incidents, **self._train_options)
            except Exception as e:
                logger.error(f"Sequence model training failed: {e}")
                fresh = SequenceSnapshot(report=TrainingReport(trained=False, reason=f"training failed: {e}"))
            with self._swap_lock:
                self._snapshot = fresh
        return fresh.report

    def reset(self):
        with self._swap_lock:
            self._snapshot = SequenceSnapshot()

    def info(self) -> dict:
        snap = self.snapshot
        return {
            "isTrained": snap.is_trained,
            "architecture": f"nn.RNN ({MODEL_WINDOW}-step input, "
                            f"{self._train_options.get('hidden_size', MODEL_HIDDEN_SIZE)} hidden, 1 output)",
            "algorithm": "Backpropagation Through Time (full-batch SGD)",
            "library": "torch",
            "rawSamples": snap.raw_samples,
            "validSamples": snap.valid_samples,
            "iterations": snap.iterations,
            "error": snap.error,
            "trainedAt": snap.trained_at.isoformat() if snap.trained_at else None,
            "status": snap.report.reason or "trained",
        }


# Shared holder; starts untrained until initialize() runs
sequence_model = _ModelProxy()
