"""Example: Daily Traffic Forecasting Workflow

This example demonstrates how to forecast the next 14 days of traffic volume
for one counting station. It holds out the last 14 observed days, selects a
SARIMA model on the rest, back-tests it on the held-out days and then refits
on all data for the final forecast.

Prerequisites:
- A CSV with columns `date` and `volume` (one row per day, no gaps), or
  nothing at all: a synthetic series is generated when the file is missing.
"""

import logging
from pathlib import Path

import numpy as np
import pandas as pd

from traffic_core.forecasting import ForecastConfig, run_traffic_forecast
from traffic_core.forecasting.data import build_series, make_partition
from traffic_core.forecasting.types import SarimaOrder

logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

data_file = Path("data/traffic_daily.csv")  # MODIFY AS NEEDED

if data_file.exists():
    print(f"Loading traffic counts from: {data_file}")
    raw = pd.read_csv(data_file, parse_dates=["date"]).sort_values("date")
    series = build_series(raw["volume"], start=raw["date"].iloc[0], name="volume")
else:
    print("No data file found, generating a synthetic weekly-seasonal series...")
    rng = np.random.default_rng(2016)
    t = np.arange(335)
    weekly = np.array([0.15, 0.1, 0.1, 0.1, 0.12, -0.2, -0.35])
    level = 8.0 + 0.0005 * t + weekly[t % 7] + np.cumsum(rng.normal(0.0, 0.01, len(t)))
    series = build_series(np.exp(level + rng.normal(0.0, 0.03, len(t))), start="2016-01-01", name="volume")

print(f"Loaded {len(series)} days ({series.index[0].date()} to {series.index[-1].date()})")

partition = make_partition(series, validation_size=14)

# Configure and run forecast
config = ForecastConfig(
    forecast_horizon=14,
    candidate_orders=[
        SarimaOrder(1, 1, 1, 1, 1, 1, 7),
        SarimaOrder(1, 1, 1, 0, 1, 2, 7),
        SarimaOrder(0, 1, 1, 0, 1, 1, 7),
    ],
)

print("Running traffic forecast...")
result = run_traffic_forecast(partition, config, debug=True)

print(f"\nTransform: {result.transform.chosen.label}")
print("\nVariance after each differencing step:")
print(result.stationarity.trace_frame())

print("\nCandidates ranked by AICc:")
print(result.search.summary())

print(f"\nDiagnostics for {result.selected.label}:")
print(result.diagnostics[result.selected.label].to_frame())

print("\nHoldout back-test:")
for name, value in (result.holdout_metrics or {}).items():
    print(f"- {name}: {value:.4g}")

print("\nForecast (vehicles per day):")
print(result.forecast.original.round(0))
