"""Public API for the traffic forecasting pipeline.

This module runs the modeling engine end to end on one in-memory series:
transform selection, differencing, candidate search, residual diagnostics and
forecasting with back-transformation.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple, Union

import pandas as pd

from traffic_core.exceptions import ConfigError, EstimationError, ModelSelectionError
from traffic_core.forecasting.config import (
    DIAGNOSTICS_LAG,
    FORECAST_DAYS,
    INTERVAL_SE,
    MAX_ITER,
    MIN_STATIONARY_LENGTH,
    MIN_VARIANCE_REDUCTION,
    SEASONAL_PERIOD,
    SIGNIFICANCE_LEVEL,
    TRANSFORM_GRID_SIZE,
    TRANSFORM_SEARCH_RANGE,
)
from traffic_core.forecasting.data.preparation import make_partition, validate_series
from traffic_core.forecasting.diagnostics import diagnose_all, run_diagnostics
from traffic_core.forecasting.differencing import reduce_to_stationary
from traffic_core.forecasting.forecaster import evaluate_forecast
from traffic_core.forecasting.models.sarima import SarimaModel
from traffic_core.forecasting.models.search import propose_candidates, search_models
from traffic_core.forecasting.transforms import select_transform
from traffic_core.forecasting.types import (
    DiagnosticsReport,
    DifferencingSpec,
    FittedModel,
    Forecast,
    ModelDebugInfo,
    Partition,
    SarimaOrder,
    SearchResult,
    StationarityResult,
    TransformSelection,
)

logger = logging.getLogger(__name__)


@dataclass
class ForecastConfig:
    """Configuration for one forecasting run.

    Attributes:
        transform_search_range: Box-Cox lambda search interval.
        transform_grid_size: Grid points for the lambda scan.
        normality_tolerance: Slack granted to the Box-Cox transform when its
            Shapiro-Wilk W is compared with the log transform's.
        seasonal_period: Seasonal period s (default: 7, weekly).
        differencing: Differencing spec. If None, seasonal lag then lag 1.
        candidate_orders: Orders to fit. If None, identified from ACF/PACF spikes.
        significance_level: Alpha for diagnostics and spike detection.
        forecast_horizon: Steps to forecast (default: 14).
        diagnostics_lag: Lag horizon of the residual portmanteau tests.
        min_stationary_length: Minimum length of the differenced series.
        min_variance_reduction: Relative variance drop below which a
            differencing step is flagged as overdifferencing.
        interval_se: Interval half-width in standard errors.
        n_jobs: Worker threads for the candidate search (1 = sequential).
        fit_timeout: Optional per-candidate timeout in seconds.
        maxiter: Optimizer iterations per candidate.
        refit_on_combined: Refit the selected order on training+validation
            before the final forecast when validation data exists.
    """

    transform_search_range: Tuple[float, float] = TRANSFORM_SEARCH_RANGE
    transform_grid_size: int = TRANSFORM_GRID_SIZE
    normality_tolerance: float = 0.0
    seasonal_period: int = SEASONAL_PERIOD
    differencing: Optional[DifferencingSpec] = None  # if None, seasonal then lag 1
    candidate_orders: Optional[List[SarimaOrder]] = None  # if None, identify from ACF/PACF
    significance_level: float = SIGNIFICANCE_LEVEL
    forecast_horizon: int = FORECAST_DAYS
    diagnostics_lag: int = DIAGNOSTICS_LAG
    min_stationary_length: int = MIN_STATIONARY_LENGTH
    min_variance_reduction: float = MIN_VARIANCE_REDUCTION
    interval_se: float = INTERVAL_SE
    n_jobs: Optional[int] = 1
    fit_timeout: Optional[float] = None
    maxiter: int = MAX_ITER
    refit_on_combined: bool = True

    def __post_init__(self) -> None:
        low, high = self.transform_search_range
        if not low < high:
            raise ConfigError(f"transform_search_range must be increasing, got {self.transform_search_range}")
        if self.seasonal_period < 2:
            raise ConfigError(f"seasonal_period must be >= 2, got {self.seasonal_period}")
        if not 0 < self.significance_level < 1:
            raise ConfigError(f"significance_level must be in (0, 1), got {self.significance_level}")
        if self.forecast_horizon < 1:
            raise ConfigError(f"forecast_horizon must be >= 1, got {self.forecast_horizon}")
        if self.diagnostics_lag < 1:
            raise ConfigError(f"diagnostics_lag must be >= 1, got {self.diagnostics_lag}")
        if self.min_stationary_length < 1:
            raise ConfigError(f"min_stationary_length must be >= 1, got {self.min_stationary_length}")
        if self.n_jobs is not None and self.n_jobs < 1:
            raise ConfigError(f"n_jobs must be >= 1 or None, got {self.n_jobs}")
        if self.fit_timeout is not None and self.fit_timeout <= 0:
            raise ConfigError(f"fit_timeout must be positive, got {self.fit_timeout}")

    @property
    def differencing_spec(self) -> DifferencingSpec:
        if self.differencing is not None:
            return self.differencing
        return DifferencingSpec.seasonal(self.seasonal_period)


@dataclass
class ForecastResult:
    """Result of one forecasting run.

    Attributes:
        transform: Transform selection (chosen spec, both candidates, normality).
        stationarity: Differenced training series and its variance trace.
        search: Ranked fitted candidates and rejected ones.
        diagnostics: DiagnosticsReport per ranked candidate label.
        selected: Lowest-AICc candidate that passed diagnostics (training fit).
        final_model: Model the final forecast came from (refit on combined
            data when validation exists and refitting is enabled).
        forecast: Final forecast on both scales.
        holdout_forecast: Forecast from the training fit over the validation
            period, or None without validation data.
        holdout_metrics: Back-test of holdout_forecast (coverage, rmse, mape).
        final_diagnostics: Diagnostics of the refit on combined data, or None
            when no refit was attempted or it failed to estimate.
        metadata: Dictionary with additional information about the run.
        debug: Optional model debug info keyed by model label.
    """

    transform: TransformSelection
    stationarity: StationarityResult
    search: SearchResult
    diagnostics: Dict[str, DiagnosticsReport]
    selected: FittedModel
    final_model: FittedModel
    forecast: Forecast
    holdout_forecast: Optional[Forecast] = None
    holdout_metrics: Optional[Dict[str, float]] = None
    final_diagnostics: Optional[DiagnosticsReport] = None
    metadata: Dict[str, object] = field(default_factory=dict)
    debug: Optional[Dict[str, ModelDebugInfo]] = None

    @property
    def differencing(self) -> DifferencingSpec:
        return self.stationarity.spec

    @property
    def ranked(self) -> Tuple[FittedModel, ...]:
        return self.search.ranked


def _resolve_candidates(
    config: ForecastConfig, stationarity: StationarityResult, d: int, seasonal_d: int
) -> List[SarimaOrder]:
    s = config.seasonal_period
    if config.candidate_orders is None:
        return propose_candidates(
            stationarity.series, d, seasonal_d, s, alpha=config.significance_level
        )

    mismatched = [
        order.label
        for order in config.candidate_orders
        if (order.d, order.D, order.s) != (d, seasonal_d, s)
    ]
    if mismatched:
        raise ConfigError(
            f"Candidate orders {mismatched} disagree with the differencing "
            f"{config.differencing_spec.label} (expected d={d}, D={seasonal_d}, s={s})"
        )
    return list(config.candidate_orders)


def _select_model(search: SearchResult, diagnostics: Dict[str, DiagnosticsReport]) -> FittedModel:
    for fitted in search.ranked:
        if diagnostics[fitted.label].passed:
            return fitted

    reasons = [f"{failure.label}: {failure.message}" for failure in search.failures]
    reasons += [report.describe() for report in diagnostics.values()]
    raise ModelSelectionError(
        "No candidate estimated successfully and passed diagnostics. " + " | ".join(reasons)
    )


def run_traffic_forecast(
    data: Union[Partition, pd.Series],
    config: Optional[ForecastConfig] = None,
    debug: bool = False,
) -> ForecastResult:
    """Run the modeling engine in memory.

    This function:
    - does NOT read or write any files,
    - does NOT plot or render reports,
    - MAY log progress via the logging module.

    Args:
        data: Partition (training/validation/combined) or a single series
            used entirely for training. Values must be positive, finite and
            evenly spaced with no gaps.
        config: ForecastConfig. If None, uses defaults.
        debug: If True, collects model debug information in result.debug.

    Returns:
        ForecastResult with the chosen transform, differencing trace, ranked
        candidates with diagnostics, the selected model and the forecast.

    Raises:
        DomainError: If the training data has non-positive or non-finite values
        InsufficientDataError: If the data is too short for the differencing
            or diagnostic horizon
        NumericalError: If the Box-Cox likelihood surface is degenerate
        ModelSelectionError: If no candidate fits and passes diagnostics
    """
    if config is None:
        config = ForecastConfig()

    partition = data if isinstance(data, Partition) else make_partition(data, validation_size=0)
    training = validate_series(partition.training, name="training series")
    has_validation = len(partition.validation) > 0

    logger.info(
        "Running forecast: %d training, %d validation observations, horizon %d",
        len(training),
        len(partition.validation),
        config.forecast_horizon,
    )

    # 1. Variance stabilization
    selection = select_transform(
        training,
        search_range=config.transform_search_range,
        grid_size=config.transform_grid_size,
        normality_tolerance=config.normality_tolerance,
    )
    transformed = selection.series

    # 2. Differencing to stationarity (for identification; SARIMAX integrates itself)
    spec = config.differencing_spec
    stationarity = reduce_to_stationary(
        transformed,
        spec,
        min_length=config.min_stationary_length,
        min_variance_reduction=config.min_variance_reduction,
    )
    d, seasonal_d = spec.integration_orders(config.seasonal_period)

    # 3. Candidate search on the transformed, non-differenced series
    candidates = _resolve_candidates(config, stationarity, d, seasonal_d)
    search = search_models(
        transformed,
        candidates,
        maxiter=config.maxiter,
        n_jobs=config.n_jobs,
        timeout=config.fit_timeout,
    )

    # 4. Diagnostics and selection
    diagnostics = diagnose_all(search.ranked, lag=config.diagnostics_lag, alpha=config.significance_level)
    selected = _select_model(search, diagnostics)
    logger.info("Selected %s (AICc=%.3f)", selected.label, selected.aicc)

    # 5. Forecast
    model = SarimaModel(selected.order, selection.chosen, maxiter=config.maxiter)
    training_forecast = model.forecast(selected, steps=config.forecast_horizon, n_se=config.interval_se)

    holdout_forecast: Optional[Forecast] = None
    holdout_metrics: Optional[Dict[str, float]] = None
    final_model = selected
    final_forecast = training_forecast
    final_diagnostics: Optional[DiagnosticsReport] = None
    refit_rejected: Optional[str] = None
    if has_validation:
        holdout_forecast = training_forecast
        holdout_metrics = evaluate_forecast(training_forecast, partition.validation)
        logger.info(
            "Holdout: coverage=%.2f rmse=%.4g mape=%.2f%% over %d steps",
            holdout_metrics["coverage"],
            holdout_metrics["rmse"],
            holdout_metrics["mape"],
            int(holdout_metrics["n"]),
        )
        if config.refit_on_combined:
            # the refit must pass the same gates as the selected training fit
            try:
                refit = model.train(partition.combined)
            except EstimationError as exc:
                refit_rejected = f"{type(exc).__name__}: {exc}"
            else:
                final_diagnostics = run_diagnostics(
                    refit, lag=config.diagnostics_lag, alpha=config.significance_level
                )
                if final_diagnostics.passed:
                    final_model = refit
                    final_forecast = model.forecast(
                        refit, steps=config.forecast_horizon, n_se=config.interval_se
                    )
                else:
                    refit_rejected = final_diagnostics.describe()
            if refit_rejected is not None:
                logger.warning(
                    "Refit of %s on combined data rejected, forecasting from the training fit: %s",
                    selected.label,
                    refit_rejected,
                )

    debug_info: Optional[Dict[str, ModelDebugInfo]] = None
    if debug and model.debug_ is not None:
        debug_info = {final_model.label: model.debug_}

    return ForecastResult(
        transform=selection,
        stationarity=stationarity,
        search=search,
        diagnostics=diagnostics,
        selected=selected,
        final_model=final_model,
        forecast=final_forecast,
        holdout_forecast=holdout_forecast,
        holdout_metrics=holdout_metrics,
        final_diagnostics=final_diagnostics,
        metadata={
            "n_training": len(training),
            "n_validation": len(partition.validation),
            "transform": selection.chosen.label,
            "differencing": spec.label,
            "overdifferenced": stationarity.is_overdifferenced,
            "n_candidates": len(candidates),
            "n_fitted": len(search.ranked),
            "n_rejected": len(search.failures),
            "selected": selected.label,
            "selected_aicc": selected.aicc,
            "refit_on_combined": final_model is not selected,
            "refit_rejected": refit_rejected,
            "horizon": config.forecast_horizon,
        },
        debug=debug_info,
    )
