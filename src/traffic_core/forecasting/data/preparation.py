"""Data preparation utilities for time series forecasting.

The engine consumes one evenly spaced series with no gaps. Ingestion and
date aggregation happen upstream; this module only validates and slices.
"""

from __future__ import annotations

from typing import Iterable, Optional

import numpy as np
import pandas as pd

from traffic_core.exceptions import ConfigError, DomainError, InsufficientDataError
from traffic_core.forecasting.types import Partition


def validate_series(series: pd.Series, name: str = "series") -> pd.Series:
    """Check that a series is non-empty and finite.

    Args:
        series: Series to validate
        name: Name used in error messages

    Returns:
        A float copy of the series

    Raises:
        InsufficientDataError: If the series is empty
        DomainError: If the series contains NaN or infinite values
    """
    if len(series) == 0:
        raise InsufficientDataError(f"{name} is empty")

    values = series.astype(float)
    bad = ~np.isfinite(values.to_numpy())
    if bad.any():
        positions = np.flatnonzero(bad)[:5].tolist()
        raise DomainError(
            f"{name} contains {int(bad.sum())} non-finite values (first positions: {positions})"
        )
    return values.copy()


def build_series(
    values: Iterable[float],
    start: Optional[str | pd.Timestamp] = None,
    freq: str = "D",
    name: Optional[str] = None,
) -> pd.Series:
    """Build a validated float series from raw values.

    Args:
        values: Observations in time order, one per period
        start: Optional first timestamp. If given, a DatetimeIndex with
            frequency `freq` is attached; otherwise a RangeIndex is used.
        freq: Sampling frequency of the DatetimeIndex (default: daily)
        name: Optional series name

    Returns:
        Float Series ready for the forecasting engine
    """
    data = np.asarray(list(values), dtype=float)
    index = None
    if start is not None:
        index = pd.date_range(start=start, periods=len(data), freq=freq)
    return validate_series(pd.Series(data, index=index, name=name))


def make_partition(series: pd.Series, validation_size: int, discard: int = 0) -> Partition:
    """Split a series into training and validation slices.

    The first `discard` observations are dropped, the last `validation_size`
    observations become the validation slice and everything in between is
    training.

    Args:
        series: Parent series
        validation_size: Number of trailing observations held out
        discard: Number of leading observations dropped

    Returns:
        Partition with training, validation, combined and discarded slices

    Raises:
        ConfigError: If sizes are negative
        InsufficientDataError: If no training observations remain
    """
    if validation_size < 0 or discard < 0:
        raise ConfigError("validation_size and discard must be non-negative")

    series = validate_series(series)
    n_training = len(series) - discard - validation_size
    if n_training < 1:
        raise InsufficientDataError(
            f"No training data left: {len(series)} observations, discard={discard}, "
            f"validation_size={validation_size}"
        )

    split = discard + n_training
    return Partition(
        training=series.iloc[discard:split].copy(),
        validation=series.iloc[split:].copy(),
        combined=series.iloc[discard:].copy(),
        discarded=series.iloc[:discard].copy(),
    )
