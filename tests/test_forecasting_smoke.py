"""Smoke test for forecasting API imports and the end-to-end pipeline.

These tests verify that the forecasting API can be imported and that the
full pipeline (transform, differencing, search, diagnostics, forecast) runs
on a synthetic daily traffic series without runtime errors.
"""

import numpy as np
import pandas as pd
import pytest

from traffic_core.exceptions import (
    ConfigError,
    DomainError,
    InsufficientDataError,
    NonStationaryFitError,
)
from traffic_core.forecasting import ForecastConfig, ForecastResult, api, run_traffic_forecast
from traffic_core.forecasting.data import make_partition
from traffic_core.forecasting.models import sarima
from traffic_core.forecasting.types import CheckResult, DiagnosticsReport, SarimaOrder

CANDIDATES = [
    SarimaOrder(0, 1, 1, 0, 1, 1, 7),
    SarimaOrder(1, 1, 1, 0, 1, 1, 7),
    SarimaOrder(0, 1, 1, 0, 1, 2, 7),
]


def _config(**overrides) -> ForecastConfig:
    settings = {
        "candidate_orders": CANDIDATES,
        "significance_level": 0.001,
        "forecast_horizon": 14,
    }
    settings.update(overrides)
    return ForecastConfig(**settings)


def test_forecasting_smoke(traffic_series: pd.Series) -> None:
    """Test that the pipeline runs on a training/validation partition."""
    partition = make_partition(traffic_series, validation_size=14)

    result = run_traffic_forecast(partition, config=_config())

    # Verify result structure
    assert isinstance(result, ForecastResult)
    assert result.transform.chosen.family in ("power", "log")
    assert result.differencing.steps == ((7, 1), (1, 1))
    assert len(result.stationarity.variance_trace) == 3
    assert len(result.stationarity.series) == 321 - 8

    # Every candidate is either ranked or recorded as a failure
    assert len(result.ranked) + len(result.search.failures) == len(CANDIDATES)
    aiccs = [m.aicc for m in result.ranked]
    assert aiccs == sorted(aiccs)
    assert set(result.diagnostics) == {m.label for m in result.ranked}

    # The selected model is the best-ranked one that passed diagnostics
    assert result.diagnostics[result.selected.label].passed
    for fitted in result.ranked:
        if fitted is result.selected:
            break
        assert not result.diagnostics[fitted.label].passed

    # Forecast on both scales
    assert result.forecast.horizon == 14
    assert len(result.forecast.original) == 14
    original = result.forecast.original
    assert (original["lower"] <= original["mean"]).all()
    assert (original["mean"] <= original["upper"]).all()
    assert (original["lower"] > 0).all()

    # Holdout back-test and refit on training + validation
    assert result.holdout_forecast is not None
    assert result.holdout_forecast.original.index[0] == partition.validation.index[0]
    assert result.holdout_metrics["n"] == 14.0
    assert 0.0 <= result.holdout_metrics["coverage"] <= 1.0
    assert result.final_model is not result.selected
    assert result.final_model.order == result.selected.order
    assert len(result.final_model.training) == 335
    assert result.final_diagnostics is not None
    assert result.final_diagnostics.passed
    assert result.final_diagnostics.model == result.final_model.label
    assert result.forecast.original.index[0] == traffic_series.index[-1] + pd.Timedelta(days=1)

    assert result.metadata["n_training"] == 321
    assert result.metadata["refit_on_combined"] is True
    assert result.metadata["refit_rejected"] is None
    assert result.debug is None


def test_forecasting_with_debug(traffic_series: pd.Series) -> None:
    """Test that debug=True exposes the model's debug info."""
    result = run_traffic_forecast(traffic_series.iloc[:321], config=_config(), debug=True)

    assert result.debug is not None
    info = result.debug[result.final_model.label]
    assert info.model_name == "sarima"
    assert info.data["horizon_steps"] == 14
    assert info.data["transform"] == result.transform.chosen.label


def test_series_input_has_no_holdout(traffic_series: pd.Series) -> None:
    result = run_traffic_forecast(traffic_series.iloc[:321], config=_config(refit_on_combined=True))

    assert result.holdout_forecast is None
    assert result.holdout_metrics is None
    assert result.final_model is result.selected
    assert result.metadata["n_validation"] == 0


def test_mismatched_candidate_orders_raise(traffic_series: pd.Series) -> None:
    """Candidate integration orders must agree with the differencing spec."""
    config = _config(candidate_orders=[SarimaOrder(0, 1, 1, 0, 0, 1, 7)])

    with pytest.raises(ConfigError, match="disagree"):
        run_traffic_forecast(traffic_series.iloc[:321], config=config)


def test_non_positive_values_raise(traffic_series: pd.Series) -> None:
    series = traffic_series.iloc[:321].copy()
    series.iloc[10] = 0.0

    with pytest.raises(DomainError):
        run_traffic_forecast(series, config=_config())


def test_short_series_raises(traffic_series: pd.Series) -> None:
    """Too few observations for the differenced analysis length."""
    with pytest.raises(InsufficientDataError):
        run_traffic_forecast(traffic_series.iloc[:60], config=_config())


def test_config_validation() -> None:
    with pytest.raises(ConfigError):
        ForecastConfig(seasonal_period=1)
    with pytest.raises(ConfigError):
        ForecastConfig(significance_level=0.0)
    with pytest.raises(ConfigError):
        ForecastConfig(forecast_horizon=0)
    with pytest.raises(ConfigError):
        ForecastConfig(transform_search_range=(2.0, -2.0))
    with pytest.raises(ConfigError):
        ForecastConfig(fit_timeout=0.0)


def test_imports() -> None:
    """Test that the public package surface can be imported."""
    import traffic_core
    from traffic_core.forecasting.diagnostics import run_diagnostics
    from traffic_core.forecasting.forecaster import forecast
    from traffic_core.forecasting.models import ForecastModel, SarimaModel, search_models

    assert traffic_core.__version__
    assert issubclass(SarimaModel, ForecastModel)
    assert callable(run_diagnostics)
    assert callable(forecast)
    assert callable(search_models)


@pytest.mark.slow
def test_candidates_identified_from_correlogram(traffic_series: pd.Series) -> None:
    """Without explicit orders the pipeline proposes its own candidates."""
    partition = make_partition(traffic_series, validation_size=14)

    result = run_traffic_forecast(partition, config=_config(candidate_orders=None, n_jobs=4))

    assert result.metadata["n_candidates"] >= 2
    assert (result.selected.order.d, result.selected.order.D) == (1, 1)
    assert np.isfinite(result.selected.aicc)


def test_failed_refit_falls_back_to_training_fit(traffic_series: pd.Series, monkeypatch) -> None:
    """A refit that does not estimate leaves the training fit and its forecast in place."""

    def failing_fit(series, order, maxiter=200):
        raise NonStationaryFitError(f"{order.label}: AR root modulus 0.9000 <= 1 (non-stationary)")

    # the search binds its own fit_sarima, so only the refit sees this one
    monkeypatch.setattr(sarima, "fit_sarima", failing_fit)
    partition = make_partition(traffic_series, validation_size=14)

    result = run_traffic_forecast(partition, config=_config())

    assert result.final_model is result.selected
    assert result.forecast is result.holdout_forecast
    assert result.final_diagnostics is None
    assert result.metadata["refit_on_combined"] is False
    assert "NonStationaryFitError" in result.metadata["refit_rejected"]


def test_refit_failing_diagnostics_falls_back_to_training_fit(
    traffic_series: pd.Series, monkeypatch
) -> None:
    """A refit whose residuals fail a gating check is not used for the final forecast."""

    def failing_diagnostics(fitted, lag=18, alpha=0.05):
        check = CheckResult(
            name="ljung_box",
            statistic=50.0,
            pvalue=0.0001,
            alpha=alpha,
            passed=False,
            gating=True,
            detail=f"ljung_box: statistic=50.0000, p=0.0001 vs alpha={alpha} (rejected null)",
        )
        return DiagnosticsReport(model=fitted.label, lag=lag, alpha=alpha, checks=(check,))

    monkeypatch.setattr(api, "run_diagnostics", failing_diagnostics)
    partition = make_partition(traffic_series, validation_size=14)

    result = run_traffic_forecast(partition, config=_config())

    assert result.final_model is result.selected
    assert len(result.final_model.training) == 321
    assert result.forecast is result.holdout_forecast
    assert not result.final_diagnostics.passed
    assert "ljung_box" in result.metadata["refit_rejected"]


@pytest.mark.slow
def test_seasonal_arma_candidates_fit_and_cover_holdout(log_traffic) -> None:
    """(1,1,1)x(1,1,1,7) and (1,1,1)x(0,1,2,7) both estimate on every series and cover the holdout."""
    candidates = [SarimaOrder(1, 1, 1, 1, 1, 1, 7), SarimaOrder(1, 1, 1, 0, 1, 2, 7)]
    config = _config(candidate_orders=candidates, refit_on_combined=False)
    coverages = []
    for seed in range(200, 205):
        series = np.exp(log_traffic(335, seed=seed, phi=0.5, seasonal_phi=0.3))
        partition = make_partition(series, validation_size=14)

        result = run_traffic_forecast(partition, config=config)

        assert len(result.ranked) == 2
        assert result.search.failures == ()
        assert [m.aicc for m in result.ranked] == sorted(m.aicc for m in result.ranked)
        coverages.append(result.holdout_metrics["coverage"])

    assert np.mean(coverages) >= 0.8
