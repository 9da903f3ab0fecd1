"""SARIMA candidate identification, parallel estimation and AICc ranking.

Candidate orders are read off the ACF/PACF of the stationary series: spikes
outside the confidence band at non-seasonal lags bound q (ACF) and p (PACF),
spikes at multiples of the seasonal period bound Q and P. Each candidate is
fitted independently; failures are recorded per candidate and never abort the
search.
"""

from __future__ import annotations

import logging
import time
from concurrent.futures import Future, ThreadPoolExecutor, wait
from itertools import product
from typing import Dict, Iterable, List, Optional, Sequence, Union

import pandas as pd

from traffic_core.exceptions import (
    ConfigError,
    ConvergenceError,
    EstimationError,
    InsufficientDataError,
)
from traffic_core.forecasting.config import MAX_ITER, SIGNIFICANCE_LEVEL
from traffic_core.forecasting.data.preparation import validate_series
from traffic_core.forecasting.differencing import significant_lags
from traffic_core.forecasting.models.sarima import fit_sarima
from traffic_core.forecasting.types import CandidateFailure, FittedModel, SarimaOrder, SearchResult

logger = logging.getLogger(__name__)

Outcome = Union[FittedModel, CandidateFailure]


def _gap_lags(lags: Sequence[int]) -> List[int]:
    """Positions strictly between the lowest and highest spike with no spike."""
    if len(lags) < 2:
        return []
    present = set(lags)
    return [k for k in range(min(lags) + 1, max(lags)) if k not in present]


def propose_candidates(
    stationary: pd.Series,
    d: int,
    D: int,
    seasonal_period: int,
    max_p: int = 3,
    max_q: int = 3,
    max_P: int = 2,
    max_Q: int = 2,
    alpha: float = SIGNIFICANCE_LEVEL,
) -> List[SarimaOrder]:
    """Enumerate candidate orders from ACF/PACF spikes of a stationary series.

    Orders 0..highest-significant-lag are enumerated for p, q, P and Q with
    the integration orders (d, D, s) held fixed. When the highest orders skip
    lags without a spike, one more candidate at the highest orders fixes the
    skipped coefficients to zero.

    Args:
        stationary: Differenced (stationary) series
        d: Trend integration order already confirmed necessary
        D: Seasonal integration order already confirmed necessary
        seasonal_period: Seasonal period s
        max_p, max_q: Upper bounds for the non-seasonal orders
        max_P, max_Q: Upper bounds for the seasonal orders
        alpha: Significance level of the spike band

    Returns:
        Candidate orders, unmasked ones first
    """
    s = seasonal_period
    if s < 2:
        raise ConfigError(f"Seasonal period must be >= 2, got {s}")

    nlags = max(max_p, max_q, s * max(max_P, max_Q))
    acf_lags = significant_lags(stationary, nlags, alpha=alpha, kind="acf")
    pacf_lags = significant_lags(stationary, nlags, alpha=alpha, kind="pacf")

    q_lags = [k for k in acf_lags if k < s and k <= max_q]
    p_lags = [k for k in pacf_lags if k < s and k <= max_p]
    Q_lags = [k // s for k in acf_lags if k % s == 0 and k // s <= max_Q]
    P_lags = [k // s for k in pacf_lags if k % s == 0 and k // s <= max_P]
    logger.info(
        "Significant spikes: ACF %s, PACF %s (q<=%s, p<=%s, Q<=%s, P<=%s)",
        acf_lags,
        pacf_lags,
        max(q_lags, default=0),
        max(p_lags, default=0),
        max(Q_lags, default=0),
        max(P_lags, default=0),
    )

    p_hi, q_hi = max(p_lags, default=0), max(q_lags, default=0)
    P_hi, Q_hi = max(P_lags, default=0), max(Q_lags, default=0)

    candidates = [
        SarimaOrder(p, d, q, P, D, Q, s)
        for p, q, P, Q in product(range(p_hi + 1), range(q_hi + 1), range(P_hi + 1), range(Q_hi + 1))
    ]

    mask = {f"ar.L{k}" for k in _gap_lags(p_lags)}
    mask |= {f"ma.L{k}" for k in _gap_lags(q_lags)}
    mask |= {f"ar.S.L{k * s}" for k in _gap_lags(P_lags)}
    mask |= {f"ma.S.L{k * s}" for k in _gap_lags(Q_lags)}
    if mask:
        candidates.append(SarimaOrder(p_hi, d, q_hi, P_hi, D, Q_hi, s, mask=frozenset(mask)))

    return candidates


def rank_models(models: Iterable[FittedModel]) -> List[FittedModel]:
    """Sort ascending by AICc; ties go to the model with fewer free parameters."""
    return sorted(models, key=lambda fitted: (fitted.aicc, fitted.k_free))


# How often a not-yet-started candidate is polled while waiting for a worker
START_POLL_SECONDS = 0.05


def _attempt(
    series: pd.Series,
    order: SarimaOrder,
    maxiter: int,
    started: Optional[Dict[SarimaOrder, float]] = None,
) -> Outcome:
    if started is not None:
        started[order] = time.monotonic()
    try:
        return fit_sarima(series, order, maxiter=maxiter)
    except (EstimationError, InsufficientDataError) as exc:
        return CandidateFailure(order=order, kind=type(exc).__name__, message=str(exc))


def _await_candidate(
    order: SarimaOrder,
    future: Future,
    started: Dict[SarimaOrder, float],
    timeout: Optional[float],
) -> Outcome:
    """Wait for one candidate; its timeout runs from the moment its fit started."""
    while not future.done():
        start = started.get(order)
        if timeout is None:
            wait([future])
        elif start is None:
            wait([future], timeout=START_POLL_SECONDS)
        else:
            remaining = start + timeout - time.monotonic()
            if remaining <= 0:
                error = ConvergenceError(f"{order.label}: fit exceeded the {timeout}s timeout")
                return CandidateFailure(order, type(error).__name__, str(error))
            wait([future], timeout=remaining)
    return future.result()


def search_models(
    series: pd.Series,
    candidates: Iterable[SarimaOrder],
    maxiter: int = MAX_ITER,
    n_jobs: Optional[int] = 1,
    timeout: Optional[float] = None,
) -> SearchResult:
    """Fit every candidate independently and rank the successful fits by AICc.

    Args:
        series: Transformed, non-differenced training series
        candidates: Orders (with optional masks) to fit
        maxiter: Maximum optimizer iterations per candidate
        n_jobs: Worker threads; 1 fits sequentially, None uses the executor default.
            Ignored when a timeout is set: every candidate then gets its own worker.
        timeout: Seconds each fit may run, counted from the moment that fit
            started; expiry is a ConvergenceError for that candidate only

    Returns:
        SearchResult with ranked fits and rejected candidates

    Raises:
        ConfigError: If no candidates are given
    """
    orders = list(dict.fromkeys(candidates))
    if not orders:
        raise ConfigError("No candidate orders to fit")
    series = validate_series(series, name="training series")

    logger.info("Fitting %d SARIMA candidates on %d observations", len(orders), len(series))
    outcomes: Dict[SarimaOrder, Outcome] = {}

    if n_jobs == 1 and timeout is None:
        for order in orders:
            outcomes[order] = _attempt(series, order, maxiter)
    else:
        # a queued candidate never runs out of time, so with a timeout every fit starts at once
        max_workers = len(orders) if timeout is not None else n_jobs
        started: Dict[SarimaOrder, float] = {}
        executor = ThreadPoolExecutor(max_workers=max_workers)
        try:
            futures = {
                order: executor.submit(_attempt, series, order, maxiter, started) for order in orders
            }
            # single join: ranking starts only after every candidate finished or timed out
            for order, future in futures.items():
                outcomes[order] = _await_candidate(order, future, started, timeout)
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

    fitted = [outcome for outcome in outcomes.values() if isinstance(outcome, FittedModel)]
    failures = [outcome for outcome in outcomes.values() if isinstance(outcome, CandidateFailure)]
    for failure in failures:
        logger.warning("Rejected %s (%s): %s", failure.label, failure.kind, failure.message)

    ranked = rank_models(fitted)
    logger.info(
        "Model search: %d fitted, %d rejected; best %s",
        len(ranked),
        len(failures),
        f"{ranked[0].label} (AICc={ranked[0].aicc:.3f})" if ranked else "none",
    )
    return SearchResult(ranked=tuple(ranked), failures=tuple(failures))
