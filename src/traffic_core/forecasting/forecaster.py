"""Forecast generation and back-transformation.

Point forecasts and standard errors come from the fitted model's recursive
state-space prediction equations on the transformed scale. Interval bounds are
mean +- n_se * se; point forecasts and both bounds are then mapped back to the
original units through the inverse transform.
"""

from __future__ import annotations

import logging
from typing import Dict

import numpy as np
import pandas as pd

from traffic_core.exceptions import ConfigError
from traffic_core.forecasting.config import INTERVAL_SE
from traffic_core.forecasting.transforms import inverse_transform
from traffic_core.forecasting.types import FittedModel, Forecast, TransformSpec

logger = logging.getLogger(__name__)


def forecast(
    fitted: FittedModel,
    horizon: int,
    transform: TransformSpec,
    n_se: float = INTERVAL_SE,
) -> Forecast:
    """Forecast `horizon` steps beyond the end of the fitting series.

    Args:
        fitted: Fitted model (on the transformed scale)
        horizon: Number of steps to forecast
        transform: Transform the model's training series was built with
        n_se: Interval half-width in standard errors (default: 2)

    Returns:
        Forecast with transformed-scale mean/se/lower/upper and original-scale
        mean/lower/upper

    Raises:
        ConfigError: If horizon or n_se is not positive
        DomainError: If a value cannot be inverted (interval reaches an
            invalid region of the inverse power transform)
    """
    if horizon < 1:
        raise ConfigError(f"Forecast horizon must be >= 1, got {horizon}")
    if n_se <= 0:
        raise ConfigError(f"n_se must be positive, got {n_se}")

    prediction = fitted.results.get_forecast(steps=horizon)
    predicted = prediction.predicted_mean
    index = predicted.index if isinstance(predicted, pd.Series) else pd.RangeIndex(horizon)
    mean = np.asarray(predicted, dtype=float)
    se = np.asarray(prediction.se_mean, dtype=float)

    transformed = pd.DataFrame(
        {
            "mean": mean,
            "se": se,
            "lower": mean - n_se * se,
            "upper": mean + n_se * se,
        },
        index=index,
    )
    original = pd.DataFrame(
        {
            "mean": inverse_transform(transformed["mean"], transform),
            "lower": inverse_transform(transformed["lower"], transform),
            "upper": inverse_transform(transformed["upper"], transform),
        },
        index=index,
    )

    logger.debug("Forecast %d steps with %s (%s)", horizon, fitted.label, transform.label)
    return Forecast(
        horizon=horizon,
        transform=transform,
        transformed=transformed,
        original=original,
        model=fitted.label,
    )


def evaluate_forecast(result: Forecast, actual: pd.Series) -> Dict[str, float]:
    """Back-test a forecast against held-out values on the original scale.

    Values are aligned by position; only the overlap of the forecast horizon
    and the actual series is scored.

    Args:
        result: Forecast to evaluate
        actual: Observed values following the fitting series

    Returns:
        Dictionary with n, coverage (share of actuals inside the interval),
        rmse and mape (percent)
    """
    n = min(result.horizon, len(actual))
    if n == 0:
        raise ConfigError("No overlap between forecast horizon and actual values")

    observed = np.asarray(actual, dtype=float)[:n]
    mean = result.original["mean"].to_numpy()[:n]
    lower = result.original["lower"].to_numpy()[:n]
    upper = result.original["upper"].to_numpy()[:n]

    errors = observed - mean
    inside = (observed >= lower) & (observed <= upper)
    with np.errstate(divide="ignore", invalid="ignore"):
        mape = float(np.mean(np.abs(errors / observed)) * 100.0)

    return {
        "n": float(n),
        "coverage": float(inside.mean()),
        "rmse": float(np.sqrt(np.mean(errors**2))),
        "mape": mape,
    }
