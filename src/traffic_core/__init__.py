"""Traffic Core - SARIMA modeling engine for daily traffic volume.

This package forecasts a univariate, seasonal, non-stationary series:

- **Transform selection**: Box-Cox profile likelihood vs. log transform
- **Differencing**: seasonal then trend differencing with a variance trace
- **Model search**: constrained SARIMA candidates ranked by AICc
- **Diagnostics**: residual normality, portmanteau and AR-order checks
- **Forecasting**: intervals on the transformed scale, back-transformed

Module Structure:
    traffic_core.forecasting: Pipeline API (ForecastConfig, run_traffic_forecast)
    traffic_core.forecasting.transforms: Box-Cox / log transforms
    traffic_core.forecasting.differencing: Stationarity reducer
    traffic_core.forecasting.models: SARIMA fitting and candidate search
    traffic_core.forecasting.diagnostics: Residual diagnostics
    traffic_core.forecasting.forecaster: Forecasts and back-testing
    traffic_core.exceptions: Error taxonomy

Quick Start:
    >>> from traffic_core.forecasting import ForecastConfig, run_traffic_forecast
    >>> result = run_traffic_forecast(series, ForecastConfig(forecast_horizon=14))
    >>> print(result.forecast.original.head())
"""

__version__ = "0.1.0"

from traffic_core.exceptions import (
    ConfigError,
    ConvergenceError,
    DomainError,
    EstimationError,
    InsufficientDataError,
    ModelSelectionError,
    NonInvertibleFitError,
    NonStationaryFitError,
    NumericalError,
    TrafficCoreError,
)

__all__ = [
    "ConfigError",
    "ConvergenceError",
    "DomainError",
    "EstimationError",
    "InsufficientDataError",
    "ModelSelectionError",
    "NonInvertibleFitError",
    "NonStationaryFitError",
    "NumericalError",
    "TrafficCoreError",
    "__version__",
]
