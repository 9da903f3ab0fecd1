"""Traffic volume forecasting module.

This module provides the SARIMA modeling engine for one daily series.

Example:
    >>> from traffic_core.forecasting import ForecastConfig, run_traffic_forecast
    >>> from traffic_core.forecasting.data import build_series, make_partition
    >>>
    >>> series = build_series(daily_volumes, start="2016-01-01")
    >>> partition = make_partition(series, validation_size=14)
    >>>
    >>> config = ForecastConfig(seasonal_period=7, forecast_horizon=14)
    >>> result = run_traffic_forecast(partition, config)
    >>>
    >>> print(result.search.summary())  # Ranked candidates by AICc
    >>> print(result.diagnostics[result.selected.label].to_frame())
    >>> print(result.forecast.original)  # Forecast in vehicles per day

"""

from traffic_core.forecasting.api import ForecastConfig, ForecastResult, run_traffic_forecast

__all__ = ["ForecastConfig", "ForecastResult", "run_traffic_forecast"]
