"""Shared fixtures: synthetic daily traffic series.

The log of the simulated traffic is a linear trend plus a period-7 sinusoid
plus a seasonal ARIMA disturbance,
(1 - phi B)(1 - Phi B^7)(1 - B)(1 - B^7) x_t = (1 + theta B)(1 + Theta B^7) e_t.
Seasonal and trend differencing remove the deterministic part exactly, so
SARIMA(., 1, .)x(., 1, ., 7) candidates are correctly specified. With the
default phi = Phi = 0 the disturbance is the airline model.
"""

from __future__ import annotations

import numpy as np
import pandas as pd
import pytest

SEASON = 7


def simulate_log_traffic(
    n: int,
    seed: int,
    theta: float = -0.4,
    seasonal_theta: float = -0.6,
    phi: float = 0.0,
    seasonal_phi: float = 0.0,
    sigma: float = 0.01,
    burn: int = 50,
) -> pd.Series:
    """Log-scale synthetic traffic series of length n with a daily index."""
    rng = np.random.default_rng(seed)
    total = n + burn
    e = rng.normal(0.0, sigma, total + SEASON + 1)
    u = (
        e[SEASON + 1 :]
        + theta * e[SEASON:-1]
        + seasonal_theta * e[1:-SEASON]
        + theta * seasonal_theta * e[: -SEASON - 1]
    )

    w = np.zeros(total)
    for t in range(total):
        w[t] = u[t]
        if t >= 1:
            w[t] += phi * w[t - 1]
        if t >= SEASON:
            w[t] += seasonal_phi * w[t - SEASON]
        if t >= SEASON + 1:
            w[t] -= phi * seasonal_phi * w[t - SEASON - 1]

    x = w.copy()
    for phase in range(SEASON):
        x[phase::SEASON] = np.cumsum(x[phase::SEASON])
    x = np.cumsum(x)[burn:]

    t = np.arange(n, dtype=float)
    signal = 8.0 + 0.001 * t + 0.1 * np.sin(2.0 * np.pi * t / SEASON) + x
    return pd.Series(signal, index=pd.date_range("2016-01-01", periods=n, freq="D"), name="volume")


@pytest.fixture(scope="session")
def log_traffic():
    """Factory fixture: log_traffic(n, seed, ...) -> log-scale series."""
    return simulate_log_traffic


@pytest.fixture
def traffic_series() -> pd.Series:
    """335 days of positive traffic volume (321 training + 14 held out)."""
    return np.exp(simulate_log_traffic(335, seed=7))
