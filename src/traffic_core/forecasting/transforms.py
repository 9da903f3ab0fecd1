"""Variance-stabilizing transforms and Box-Cox lambda selection.

The Box-Cox lambda is chosen by maximizing the profile log-likelihood of a
linear-trend regression fitted to the transformed values. The resulting power
transform is then compared against the plain log transform by how close each
transformed series gets to normality (Shapiro-Wilk W, ideal value 1).
"""

from __future__ import annotations

import logging
from typing import Tuple

import numpy as np
import pandas as pd
from scipy import optimize, special, stats

from traffic_core.exceptions import ConfigError, DomainError, InsufficientDataError, NumericalError
from traffic_core.forecasting.config import TRANSFORM_GRID_SIZE, TRANSFORM_SEARCH_RANGE
from traffic_core.forecasting.data.preparation import validate_series
from traffic_core.forecasting.types import LOG, POWER, TransformSelection, TransformSpec

logger = logging.getLogger(__name__)

# Profile log-likelihood spread below which no optimum is distinguishable
FLAT_TOLERANCE = 1e-8


def _require_positive(series: pd.Series) -> pd.Series:
    series = validate_series(series)
    if (series <= 0).any():
        raise DomainError(
            f"Power and log transforms need strictly positive values "
            f"(found {int((series <= 0).sum())} values <= 0, minimum {series.min()})"
        )
    return series


def _like(values: np.ndarray, template):
    """Wrap an array like `template` (Series keeps its index, arrays stay arrays)."""
    if isinstance(template, pd.Series):
        return pd.Series(values, index=template.index, name=template.name)
    if np.ndim(template) == 0:
        return float(values)
    return values


def power_transform(series: pd.Series, lmbda: float) -> pd.Series:
    """Box-Cox transform: (x**lmbda - 1) / lmbda, or log(x) when lmbda == 0."""
    series = _require_positive(series)
    return _like(special.boxcox(series.to_numpy(), lmbda), series)


def log_transform(series: pd.Series) -> pd.Series:
    series = _require_positive(series)
    return _like(np.log(series.to_numpy()), series)


def apply_transform(series: pd.Series, spec: TransformSpec) -> pd.Series:
    """Apply the transform described by `spec` to a positive series."""
    if spec.family == LOG:
        return log_transform(series)
    return power_transform(series, spec.lmbda)


def inverse_power_transform(values, lmbda: float):
    """Invert the Box-Cox transform.

    x = (y * lmbda + 1) ** (1 / lmbda) for lmbda != 0 and x = exp(y) for lmbda == 0.

    Args:
        values: Scalar, array or Series on the transformed scale
        lmbda: Box-Cox lambda

    Returns:
        Values on the original scale, same shape/type as the input

    Raises:
        DomainError: If y * lmbda + 1 is negative, or zero with a negative lambda
    """
    arr = np.asarray(values, dtype=float)
    if lmbda == 0:
        return _like(np.exp(arr), values)

    base = arr * lmbda + 1.0
    invalid = (base < 0) | ((base == 0) & (lmbda < 0))
    if np.any(invalid):
        worst = float(np.min(base))
        raise DomainError(
            f"Inverse Box-Cox undefined for {int(np.sum(invalid))} values: "
            f"y*lambda+1 = {worst:.6g} with lambda={lmbda:.6g}"
        )
    return _like(np.power(base, 1.0 / lmbda), values)


def inverse_transform(values, spec: TransformSpec):
    """Map transformed-scale values back to the original scale."""
    if spec.family == LOG:
        return _like(np.exp(np.asarray(values, dtype=float)), values)
    return inverse_power_transform(values, spec.lmbda)


def boxcox_profile(series: pd.Series, lmbdas) -> np.ndarray:
    """Box-Cox profile log-likelihood of a linear-trend regression.

    For every lambda the transformed values are regressed on an intercept
    and a time index; the profile log-likelihood is
    -n/2 * log(RSS/n) + (lambda - 1) * sum(log y).

    Args:
        series: Strictly positive series
        lmbdas: Lambda values to evaluate

    Returns:
        Array of log-likelihoods, one per lambda

    Raises:
        DomainError: If the series has non-positive values
        InsufficientDataError: If fewer than 3 observations are given
        NumericalError: If the series is constant
    """
    series = _require_positive(series)
    y = series.to_numpy()
    n = len(y)
    if n < 3:
        raise InsufficientDataError(f"Box-Cox trend regression needs >= 3 observations, got {n}")
    if np.ptp(y) == 0:
        raise NumericalError("Box-Cox likelihood is undefined for a constant series")

    lmbdas = np.atleast_1d(np.asarray(lmbdas, dtype=float))
    design = np.column_stack([np.ones(n), np.arange(n, dtype=float)])
    z = special.boxcox(y[:, None], lmbdas[None, :])
    beta, *_ = np.linalg.lstsq(design, z, rcond=None)
    rss = np.sum((z - design @ beta) ** 2, axis=0)

    with np.errstate(divide="ignore"):
        llf = -0.5 * n * np.log(rss / n) + (lmbdas - 1.0) * np.sum(np.log(y))
    return llf


def estimate_boxcox_lambda(
    series: pd.Series,
    search_range: Tuple[float, float] = TRANSFORM_SEARCH_RANGE,
    grid_size: int = TRANSFORM_GRID_SIZE,
) -> float:
    """Find the lambda maximizing the Box-Cox profile likelihood.

    A dense grid over `search_range` brackets the optimum, which is then
    refined with a bounded scalar search between the neighbouring grid points.

    Raises:
        ConfigError: If the search range or grid size is invalid
        NumericalError: If the likelihood surface is flat or non-finite
    """
    low, high = search_range
    if not low < high:
        raise ConfigError(f"Invalid lambda search range {search_range}")
    if grid_size < 3:
        raise ConfigError(f"Lambda grid needs at least 3 points, got {grid_size}")

    grid = np.linspace(low, high, grid_size)
    llf = boxcox_profile(series, grid)
    if not np.all(np.isfinite(llf)):
        raise NumericalError("Box-Cox profile likelihood is not finite (zero residual variance)")
    if np.ptp(llf) < FLAT_TOLERANCE:
        raise NumericalError(
            f"Box-Cox likelihood surface is flat over {search_range} (spread {np.ptp(llf):.3g})"
        )

    best = int(np.argmax(llf))
    bounds = (grid[max(best - 1, 0)], grid[min(best + 1, grid_size - 1)])
    refined = optimize.minimize_scalar(
        lambda lmbda: -boxcox_profile(series, [lmbda])[0],
        bounds=bounds,
        method="bounded",
        options={"xatol": 1e-6},
    )
    lmbda = float(grid[best])
    if refined.success and -refined.fun >= llf[best]:
        lmbda = float(refined.x)

    if best in (0, grid_size - 1):
        logger.warning("Box-Cox lambda %.4f lies on the edge of the search range %s", lmbda, search_range)
    return lmbda


def shapiro_statistic(series: pd.Series) -> float:
    """Shapiro-Wilk W statistic (1.0 means perfectly normal)."""
    statistic, _ = stats.shapiro(np.asarray(series, dtype=float))
    return float(statistic)


def select_transform(
    series: pd.Series,
    search_range: Tuple[float, float] = TRANSFORM_SEARCH_RANGE,
    grid_size: int = TRANSFORM_GRID_SIZE,
    normality_tolerance: float = 0.0,
) -> TransformSelection:
    """Choose between the Box-Cox power transform and the log transform.

    The power transform is chosen when its distance from ideal normality
    (1 - W) is no worse than the log transform's distance plus
    `normality_tolerance`; ties go to the power transform.

    Args:
        series: Strictly positive training series
        search_range: Lambda search interval
        grid_size: Number of grid points for the lambda scan
        normality_tolerance: Slack granted to the power transform

    Returns:
        TransformSelection with both candidates and the chosen spec

    Raises:
        DomainError: If the series has non-positive values
        NumericalError: If the Box-Cox likelihood surface is degenerate
    """
    series = _require_positive(series)
    if normality_tolerance < 0:
        raise ConfigError("normality_tolerance must be non-negative")

    lmbda = estimate_boxcox_lambda(series, search_range, grid_size)
    power = TransformSpec(POWER, lmbda)
    log = TransformSpec(LOG)

    power_series = power_transform(series, lmbda)
    log_series = log_transform(series)
    power_w = shapiro_statistic(power_series)
    log_w = shapiro_statistic(log_series)

    chosen = power if (1.0 - power_w) <= (1.0 - log_w) + normality_tolerance else log
    logger.info(
        "Transform selection: boxcox lambda=%.4f (W=%.4f) vs log (W=%.4f) -> %s",
        lmbda,
        power_w,
        log_w,
        chosen.label,
    )
    return TransformSelection(
        chosen=chosen,
        power=power,
        log=log,
        power_normality=power_w,
        log_normality=log_w,
        power_series=power_series,
        log_series=log_series,
    )
