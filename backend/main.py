"""
Bantay Crime Analytics Backend: FastAPI + torch
Modular entry point. All logic is split across:
  config.py, models.py, store.py, timeseries.py, statistical.py,
  sequence_model.py, ml_model.py, forecasting.py, risk.py,
  recommendations.py, analytics.py, importer.py, service.py, routes.py, cache.py
"""

import logging

logging.basicConfig(level=logging.INFO)

# Import the FastAPI app from routes (this also creates the store and service)
from routes import app  # noqa: F401

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
