"""Differencing to stationarity and autocorrelation spike detection.

Every function here is pure: it returns a new series and leaves its input
untouched. The variance after each differencing step is recorded so a caller
can spot overdifferencing (variance rising, or barely falling, after a step).
"""

from __future__ import annotations

import logging
from typing import List, Optional

import numpy as np
import pandas as pd
from scipy import stats
from statsmodels.tsa.stattools import acf, adfuller, pacf

from traffic_core.exceptions import ConfigError, InsufficientDataError
from traffic_core.forecasting.config import MIN_VARIANCE_REDUCTION, SIGNIFICANCE_LEVEL
from traffic_core.forecasting.data.preparation import validate_series
from traffic_core.forecasting.types import DifferencingSpec, StationarityResult

logger = logging.getLogger(__name__)

# Shortest series the augmented Dickey-Fuller summary is computed for
ADF_MIN_LENGTH = 50


def difference(series: pd.Series, lag: int = 1) -> pd.Series:
    """Lag-`lag` difference: X[t] - X[t - lag].

    The first `lag` observations are consumed, so the result has
    len(series) - lag values and keeps the index of the later observation.

    Raises:
        ConfigError: If lag < 1
        InsufficientDataError: If the series has no more than `lag` values
    """
    if lag < 1:
        raise ConfigError(f"Differencing lag must be >= 1, got {lag}")
    series = validate_series(series)
    if len(series) <= lag:
        raise InsufficientDataError(
            f"Cannot difference at lag {lag}: only {len(series)} observations"
        )
    values = series.to_numpy()
    return pd.Series(values[lag:] - values[:-lag], index=series.index[lag:], name=series.name)


def undifference(diffed: pd.Series, seed, lag: int = 1) -> pd.Series:
    """Rebuild a series from its lag difference and its first `lag` values.

    Each seasonal phase is reconstructed by cumulative summation starting
    from its seed value.

    Args:
        diffed: Output of difference(series, lag)
        seed: The first `lag` values of the original series
        lag: Lag used for differencing

    Returns:
        Series of length lag + len(diffed)
    """
    seed_values = np.asarray(seed, dtype=float)
    if seed_values.shape != (lag,):
        raise ConfigError(f"Seed must hold exactly {lag} values, got {seed_values.size}")

    out = np.concatenate([seed_values, np.asarray(diffed, dtype=float)])
    for phase in range(lag):
        out[phase::lag] = np.cumsum(out[phase::lag])

    index = None
    if isinstance(seed, pd.Series) and isinstance(diffed, pd.Series):
        index = seed.index.append(diffed.index)
    return pd.Series(out, index=index, name=getattr(diffed, "name", None))


def reduce_to_stationary(
    series: pd.Series,
    spec: DifferencingSpec,
    min_length: int = 1,
    min_variance_reduction: float = MIN_VARIANCE_REDUCTION,
) -> StationarityResult:
    """Apply a differencing spec step by step, tracking the variance.

    Args:
        series: Transformed (not yet differenced) series
        spec: Ordered (lag, order) steps; an order-2 step applies the lag twice
        min_length: Minimum length the differenced series must keep
        min_variance_reduction: Relative variance drop below which a step is
            flagged as overdifferencing

    Returns:
        StationarityResult with the final series and the variance trace

    Raises:
        InsufficientDataError: If a step consumes the series or the result
            is shorter than `min_length`
    """
    current = validate_series(series)
    trace = [float(np.var(current.to_numpy()))]
    labels = ["original"]

    for lag, order in spec.steps:
        for k in range(order):
            current = difference(current, lag)
            trace.append(float(np.var(current.to_numpy())))
            labels.append(f"diff(lag={lag}) #{k + 1}")

    if len(current) < min_length:
        raise InsufficientDataError(
            f"Differenced series has {len(current)} observations after consuming "
            f"{spec.total_lag}; at least {min_length} are required"
        )

    overdifferenced_at: Optional[int] = None
    for i in range(1, len(trace)):
        if trace[i] >= trace[i - 1] * (1.0 - min_variance_reduction):
            overdifferenced_at = i
            break

    adf_pvalue: Optional[float] = None
    if len(current) >= ADF_MIN_LENGTH and np.ptp(current.to_numpy()) > 0:
        adf_pvalue = float(adfuller(current.to_numpy(), autolag="AIC")[1])

    logger.info(
        "Differencing %s: variance trace %s",
        spec.label,
        ", ".join(f"{label}={value:.6g}" for label, value in zip(labels, trace)),
    )
    if overdifferenced_at is not None:
        logger.warning(
            "Possible overdifferencing at step '%s': variance %.6g vs %.6g before",
            labels[overdifferenced_at],
            trace[overdifferenced_at],
            trace[overdifferenced_at - 1],
        )

    return StationarityResult(
        series=current,
        spec=spec,
        variance_trace=tuple(trace),
        step_labels=tuple(labels),
        overdifferenced_at=overdifferenced_at,
        adf_pvalue=adf_pvalue,
    )


def significant_lags(
    series: pd.Series,
    nlags: int,
    alpha: float = SIGNIFICANCE_LEVEL,
    kind: str = "acf",
) -> List[int]:
    """Lags whose ACF or PACF spike leaves the +-z/sqrt(n) confidence band.

    Args:
        series: Stationary series
        nlags: Highest lag examined
        alpha: Two-sided significance level of the band (0.05 -> 1.96/sqrt(n))
        kind: "acf" or "pacf"

    Returns:
        Sorted list of significant lags (lag 0 excluded)
    """
    series = validate_series(series)
    n = len(series)
    if kind == "acf":
        if nlags >= n:
            raise InsufficientDataError(f"ACF to lag {nlags} needs more than {n} observations")
        values = acf(series.to_numpy(), nlags=nlags, fft=True)
    elif kind == "pacf":
        if nlags >= n // 2:
            raise InsufficientDataError(f"PACF to lag {nlags} needs more than {2 * nlags} observations")
        values = pacf(series.to_numpy(), nlags=nlags)
    else:
        raise ConfigError(f"kind must be 'acf' or 'pacf', got {kind!r}")

    band = stats.norm.ppf(1.0 - alpha / 2.0) / np.sqrt(n)
    return [lag for lag in range(1, nlags + 1) if abs(values[lag]) > band]
