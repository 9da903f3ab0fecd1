"""Tests for candidate identification, parallel estimation and ranking."""

import time

import numpy as np
import pandas as pd
import pytest

from traffic_core.exceptions import ConfigError, InsufficientDataError, NonStationaryFitError
from traffic_core.forecasting.differencing import difference
from traffic_core.forecasting.models import search
from traffic_core.forecasting.models.search import propose_candidates, rank_models, search_models
from traffic_core.forecasting.types import FittedModel, SarimaOrder


def _dummy_fit(order: SarimaOrder, aicc: float) -> FittedModel:
    """FittedModel stand-in carrying only what ranking looks at."""
    return FittedModel(
        order=order,
        params=pd.Series(dtype=float),
        bse=pd.Series(dtype=float),
        llf=-aicc / 2.0,
        aic=aicc,
        aicc=aicc,
        k_free=order.k_arma + 1,
        nobs_effective=300,
        ar_roots=np.array([]),
        ma_roots=np.array([]),
        training=pd.Series(dtype=float),
        results=None,
    )


def _fake_aicc(order: SarimaOrder) -> float:
    return 100.0 + 3.0 * order.p + 2.0 * order.q - order.Q


CANDIDATES = [
    SarimaOrder(p, 1, q, 0, 1, Q, 7) for p in range(2) for q in range(2) for Q in range(1, 3)
]


def test_rank_models_orders_by_aicc_then_parameters() -> None:
    """Ties on AICc go to the model with fewer free parameters."""
    small = _dummy_fit(SarimaOrder(0, 1, 1, 0, 1, 1, 7), aicc=-50.0)
    large = _dummy_fit(SarimaOrder(1, 1, 1, 0, 1, 1, 7), aicc=-50.0)
    best = _dummy_fit(SarimaOrder(0, 1, 1, 0, 1, 2, 7), aicc=-60.0)

    ranked = rank_models([large, small, best])

    assert ranked == [best, small, large]
    assert [m.aicc for m in ranked] == sorted(m.aicc for m in ranked)


def test_propose_candidates_on_airline_series(log_traffic) -> None:
    """The airline disturbance yields spikes at lag 1 and lag s."""
    series = log_traffic(321, seed=7)
    stationary = difference(difference(series, 7), 1)

    candidates = propose_candidates(stationary, d=1, D=1, seasonal_period=7)

    assert SarimaOrder(0, 1, 1, 0, 1, 1, 7) in candidates
    assert SarimaOrder(0, 1, 0, 0, 1, 0, 7) in candidates
    assert all((c.d, c.D, c.s) == (1, 1, 7) for c in candidates)
    assert all(c.p <= 3 and c.q <= 3 and c.P <= 2 and c.Q <= 2 for c in candidates)
    assert len(set(candidates)) == len(candidates)


def test_propose_candidates_masks_skipped_lags(monkeypatch) -> None:
    """Spikes at lags 1 and 3 only: the highest-order candidate fixes ma.L2 at zero."""

    def fake_significant_lags(series, nlags, alpha=0.05, kind="acf"):
        return [1, 3] if kind == "acf" else []

    monkeypatch.setattr(search, "significant_lags", fake_significant_lags)

    candidates = propose_candidates(pd.Series(np.zeros(200)), d=1, D=1, seasonal_period=7)

    assert [c.q for c in candidates if not c.mask] == [0, 1, 2, 3]
    assert candidates[-1] == SarimaOrder(0, 1, 3, 0, 1, 0, 7, mask=frozenset({"ma.L2"}))
    assert candidates[-1].k_arma == 2


def test_propose_candidates_rejects_non_seasonal_period() -> None:
    with pytest.raises(ConfigError):
        propose_candidates(pd.Series(np.zeros(200)), d=1, D=0, seasonal_period=1)


def test_failures_are_recorded_and_never_abort(monkeypatch) -> None:
    """One bad candidate does not stop the others from being ranked."""

    def fake_fit(series, order, maxiter=200):
        if order.p == 1 and order.q == 1:
            raise NonStationaryFitError(f"{order.label}: AR root modulus 0.9000 <= 1 (non-stationary)")
        if order.Q == 2 and order.p == 1:
            raise InsufficientDataError(f"{order.label}: too many parameters")
        return _dummy_fit(order, _fake_aicc(order))

    monkeypatch.setattr(search, "fit_sarima", fake_fit)

    result = search_models(pd.Series(np.linspace(1.0, 2.0, 100)), CANDIDATES)

    kinds = {f.label: f.kind for f in result.failures}
    assert kinds[SarimaOrder(1, 1, 1, 0, 1, 1, 7).label] == "NonStationaryFitError"
    assert kinds[SarimaOrder(1, 1, 0, 0, 1, 2, 7).label] == "InsufficientDataError"
    assert len(result.ranked) + len(result.failures) == len(CANDIDATES)
    assert result.best.order == SarimaOrder(0, 1, 0, 0, 1, 2, 7)

    summary = result.summary()
    assert len(summary) == len(CANDIDATES)
    assert summary.loc[0, "status"] == "ok"
    assert set(summary["status"]) == {"ok", "NonStationaryFitError", "InsufficientDataError"}


def test_duplicate_candidates_are_fitted_once(monkeypatch) -> None:
    calls = []

    def fake_fit(series, order, maxiter=200):
        calls.append(order)
        return _dummy_fit(order, _fake_aicc(order))

    monkeypatch.setattr(search, "fit_sarima", fake_fit)

    search_models(pd.Series(np.ones(50)), CANDIDATES + CANDIDATES[:3])

    assert len(calls) == len(CANDIDATES)


def test_empty_candidate_list_raises() -> None:
    with pytest.raises(ConfigError):
        search_models(pd.Series(np.ones(50)), [])


def test_parallel_search_matches_sequential(monkeypatch) -> None:
    """Thread-parallel estimation gives the same ranking as sequential estimation."""

    def fake_fit(series, order, maxiter=200):
        time.sleep(0.01)
        return _dummy_fit(order, _fake_aicc(order))

    monkeypatch.setattr(search, "fit_sarima", fake_fit)
    series = pd.Series(np.ones(50))

    sequential = search_models(series, CANDIDATES, n_jobs=1)
    parallel = search_models(series, CANDIDATES, n_jobs=4)

    assert [m.label for m in parallel.ranked] == [m.label for m in sequential.ranked]
    assert [m.aicc for m in parallel.ranked] == [m.aicc for m in sequential.ranked]


def test_timeout_is_reported_as_convergence_failure(monkeypatch) -> None:
    """A candidate that exceeds the timeout is rejected; the rest are ranked."""
    slow = SarimaOrder(1, 1, 1, 0, 1, 2, 7)

    def fake_fit(series, order, maxiter=200):
        if order == slow:
            time.sleep(1.0)
        return _dummy_fit(order, _fake_aicc(order))

    monkeypatch.setattr(search, "fit_sarima", fake_fit)

    result = search_models(pd.Series(np.ones(50)), CANDIDATES, n_jobs=2, timeout=0.3)

    assert [f.order for f in result.failures] == [slow]
    assert result.failures[0].kind == "ConvergenceError"
    assert "timeout" in result.failures[0].message
    assert len(result.ranked) == len(CANDIDATES) - 1


def test_timeout_counts_from_fit_start_not_from_queue(monkeypatch) -> None:
    """With one requested worker, a fast candidate queued behind a slow one is still ranked."""
    slow = SarimaOrder(1, 1, 1, 0, 1, 2, 7)
    fast = SarimaOrder(0, 1, 1, 0, 1, 1, 7)

    def fake_fit(series, order, maxiter=200):
        if order == slow:
            time.sleep(1.5)
        return _dummy_fit(order, _fake_aicc(order))

    monkeypatch.setattr(search, "fit_sarima", fake_fit)

    result = search_models(pd.Series(np.ones(50)), [slow, fast], n_jobs=1, timeout=0.5)

    assert [m.order for m in result.ranked] == [fast]
    assert [f.order for f in result.failures] == [slow]
    assert result.failures[0].kind == "ConvergenceError"


def test_search_ranks_real_fits(log_traffic) -> None:
    """Real estimation of two candidates returns both ranked by AICc."""
    series = log_traffic(321, seed=3)
    orders = [SarimaOrder(0, 1, 1, 0, 1, 1, 7), SarimaOrder(1, 1, 1, 0, 1, 1, 7)]

    result = search_models(series, orders, n_jobs=2)

    assert len(result.ranked) + len(result.failures) == 2
    assert len(result.ranked) >= 1
    aiccs = [m.aicc for m in result.ranked]
    assert aiccs == sorted(aiccs)
